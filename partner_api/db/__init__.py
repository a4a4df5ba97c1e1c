# partner_api/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from partner_api.db.base import Base
from partner_api.db.session import get_session, transaction_session

__all__ = [
    "Base",
    "get_session",
    "transaction_session",
]
