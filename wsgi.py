"""
Project Tracker WSGI entry point (also used by Flask-Migrate / Alembic).

Usage:
    flask --app wsgi run
    flask --app wsgi db init       # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from app import create_app

app = create_app()
