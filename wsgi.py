"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-board-templates --organization-id 1
"""

from proposal_board import create_app

app = create_app()
