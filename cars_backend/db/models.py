"""
SQLAlchemy Models for Database
==============================

Persisted state of the reporting service:
- User profiles (role, ban flag, points balance)
- Safety reports and their lifecycle fields
- Chat messages between users and administrators
- Points ledger (append-only audit of every balance change)

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Enum, ForeignKey,
    Index, JSON, CheckConstraint
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, enum.Enum):
    """Account roles, lowest privilege first"""
    USER = "user"
    PATROL = "patrol"
    ADMIN = "admin"
    SUPER_ADMIN = "superAdmin"


class ReportStatus(str, enum.Enum):
    """Report lifecycle status"""
    VERIFYING = "verifying"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    AWAITING_VERIFICATION = "awaiting_verification"
    RESOLVED = "resolved"
    CLOSED = "closed"


# =============================================================================
# MODELS
# =============================================================================

class UserProfile(Base):
    """Profile keyed by the identity provider's subject id"""
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    photo_url = Column(Text, nullable=True)
    role = Column(Enum(Role), default=Role.USER, nullable=False, index=True)
    points = Column(Integer, default=0, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_active = Column(DateTime, default=datetime.utcnow)

    reports = relationship("Report", back_populates="owner", foreign_keys="Report.user_id")

    __table_args__ = (
        Index("ix_users_points", "points"),
    )


class Report(Base):
    """Safety report filed by a user"""
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_number = Column(String(32), nullable=False, index=True)  # CARS-123456-789
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, index=True)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    image_urls = Column(JSON, default=list)
    proof_images = Column(JSON, default=list)
    status = Column(Enum(ReportStatus), default=ReportStatus.VERIFYING, nullable=False, index=True)
    priority_level = Column(Integer, default=1, nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    patrol_user_id = Column(String(128), ForeignKey("users.id"), nullable=True)
    points_awarded = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("UserProfile", back_populates="reports", foreign_keys=[user_id])
    patrol = relationship("UserProfile", foreign_keys=[patrol_user_id])

    __table_args__ = (
        CheckConstraint("priority_level >= 1 AND priority_level <= 5", name="ck_reports_priority_range"),
        Index("ix_reports_user_created", "user_id", "created_at"),
        Index("ix_reports_patrol_created", "patrol_user_id", "created_at"),
    )


class Message(Base):
    """Chat message; immutable once written"""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    text = Column(Text, nullable=False)
    user_id = Column(String(128), nullable=False, index=True)  # sender
    user_display_name = Column(String(255), nullable=True)
    user_role = Column(Enum(Role), nullable=False)  # snapshot at send time
    is_admin_reply = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class PointsLedgerEntry(Base):
    """Append-only audit of points changes"""
    __tablename__ = "points_log"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False, index=True)
    points = Column(Integer, nullable=False)  # signed delta
    reason = Column(String(500), nullable=False)
    balance_after = Column(Integer, nullable=True)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=True)
    added_by = Column(String(128), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
