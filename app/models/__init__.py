"""
Project Tracker
Shared SQLAlchemy instance.

Import ``db`` from here in every model module; the app factory binds it
with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
