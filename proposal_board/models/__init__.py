"""
Proposal Board Workflow Engine
Database handle shared by all model modules.

Usage:
    from proposal_board.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
