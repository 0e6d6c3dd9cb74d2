"""
Shared Flask-SQLAlchemy handle

Import `db` from here everywhere (models, services, tests) so there is
exactly one extension instance per process.
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
