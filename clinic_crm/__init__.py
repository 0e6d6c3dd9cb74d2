"""Clinic CRM - lead / customer lifecycle service"""

__version__ = "1.0.0"
