"""
Trade Operations Platform
Model package.

The shared ``db`` extension instance lives here so every model module can
``from app.models import db`` without importing the application factory.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
