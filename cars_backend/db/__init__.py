"""
Database Package - SQLAlchemy
=============================

Storage layer for profiles, reports, messages and the points ledger.
"""

from .models import (
    Base,
    UserProfile, Report, Message, PointsLedgerEntry,
    Role, ReportStatus,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Models
    "UserProfile", "Report", "Message", "PointsLedgerEntry",
    # Enums
    "Role", "ReportStatus",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
