"""Clinic CRM core services"""
