"""
User & Points Ledger
====================

Role management, bans, the points balance and its audit trail.

Every change to a balance goes through `UserService.apply_points`, which
performs the increment in SQL (``points = points + delta``) and appends a
`PointsLedgerEntry` inside the caller's transaction. Callers commit once, so
the balance and its audit entry are persisted together or not at all.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import DataError, SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import AuthContext, Relation
from .config import get_settings, Settings
from .db.models import Role, ReportStatus, UserProfile, Report, PointsLedgerEntry
from .errors import Forbidden, NotFound, InvalidInput, Internal

logger = logging.getLogger(__name__)

DEFAULT_ADJUST_REASON = "Manual points adjustment"

# keeps balances inside a 32-bit INTEGER column
MAX_POINTS_DELTA = 1000000


def parse_role(value) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidInput("Invalid role")


def compute_user_stats(reports: List[Report], reward: int) -> dict:
    """Counts by status and category, and the derived points figure."""
    by_status = Counter(r.status.value if hasattr(r.status, "value") else r.status for r in reports)
    by_category = Counter(r.category for r in reports)
    resolved = by_status.get(ReportStatus.RESOLVED.value, 0)
    return {
        "total_reports": len(reports),
        "reports_by_status": dict(by_status),
        "reports_by_category": dict(by_category),
        "total_points": resolved * reward,
    }


class UserService:
    """User administration and the points ledger"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_profile(self, user_id: str) -> UserProfile:
        profile = self.db.query(UserProfile).filter(UserProfile.id == user_id).first()
        if not profile:
            raise NotFound("User not found")
        return profile

    def _self_relation(self, auth: AuthContext, user_id: str) -> Relation:
        return Relation.OWNER if auth.user_id == user_id else Relation.NONE

    def list_users(
        self, auth: AuthContext, role: Optional[str] = None,
        limit: Optional[int] = None, offset: int = 0
    ) -> Tuple[List[UserProfile], int]:
        auth.require(Role.ADMIN)

        query = self.db.query(UserProfile)
        if role:
            query = query.filter(UserProfile.role == parse_role(role))

        total = query.count()
        users = (
            query.order_by(UserProfile.created_at.desc())
            .offset(offset)
            .limit(limit or self.settings.default_page_size)
            .all()
        )
        return users, total

    def leaderboard(self, limit: Optional[int] = None) -> List[UserProfile]:
        """Top profiles by points. Public."""
        n = limit or self.settings.leaderboard_default_size
        n = min(n, self.settings.leaderboard_max_size)
        return (
            self.db.query(UserProfile)
            .order_by(UserProfile.points.desc(), UserProfile.created_at.asc())
            .limit(n)
            .all()
        )

    def get_user(self, auth: AuthContext, user_id: str) -> UserProfile:
        auth.require(Role.ADMIN, self._self_relation(auth, user_id))
        return self._get_profile(user_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def update_role(self, auth: AuthContext, user_id: str, role) -> UserProfile:
        auth.require(Role.ADMIN)

        if not role:
            raise InvalidInput("Invalid role")
        new_role = parse_role(role)

        if new_role == Role.SUPER_ADMIN and not auth.is_super_admin:
            logger.warning(f"Escalation blocked: {auth.user_id} tried to grant superAdmin to {user_id}")
            raise Forbidden("Only superAdmin can assign superAdmin role")

        target = self._get_profile(user_id)
        if target.role == Role.SUPER_ADMIN and not auth.is_super_admin:
            raise Forbidden("Only superAdmin can change a superAdmin's role")

        target.role = new_role
        target.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(target)
        logger.info(f"Role of {user_id} set to {new_role.value} by {auth.user_id}")
        return target

    def set_ban(self, auth: AuthContext, user_id: str, is_banned) -> UserProfile:
        auth.require(Role.ADMIN)

        if not isinstance(is_banned, bool):
            raise InvalidInput("isBanned must be a boolean")

        target = self._get_profile(user_id)
        if target.role == Role.SUPER_ADMIN:
            logger.warning(f"Ban blocked: {auth.user_id} tried to ban superAdmin {user_id}")
            raise Forbidden("Cannot ban superAdmin")

        target.is_banned = is_banned
        target.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(target)
        logger.info(f"User {user_id} {'banned' if is_banned else 'unbanned'} by {auth.user_id}")
        return target

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def apply_points(
        self,
        user_id: str,
        delta: int,
        reason: str,
        actor_id: str,
        report_id: Optional[str] = None,
    ) -> PointsLedgerEntry:
        """
        Increment a balance and append the matching ledger entry.

        Does not commit: the caller owns the transaction.
        """
        result = self.db.execute(
            update(UserProfile)
            .where(UserProfile.id == user_id)
            .values(points=UserProfile.points + delta, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("User not found")

        balance_after = (
            self.db.query(UserProfile.points).filter(UserProfile.id == user_id).scalar()
        )
        entry = PointsLedgerEntry(
            user_id=user_id,
            points=delta,
            reason=reason,
            balance_after=balance_after,
            report_id=report_id,
            added_by=actor_id,
            timestamp=datetime.utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def adjust_points(self, auth: AuthContext, user_id: str, points, reason: Optional[str] = None) -> PointsLedgerEntry:
        auth.require(Role.ADMIN)

        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidInput("Points must be a number")
        if abs(points) > MAX_POINTS_DELTA:
            raise InvalidInput(f"Points must be between -{MAX_POINTS_DELTA} and {MAX_POINTS_DELTA}")

        reason = (reason or "").strip() or DEFAULT_ADJUST_REASON
        try:
            entry = self.apply_points(user_id, points, reason, actor_id=auth.user_id)
            self.db.commit()
        except NotFound:
            self.db.rollback()
            raise
        except DataError:
            self.db.rollback()
            logger.warning(f"Points balance out of range for {user_id}")
            raise InvalidInput("Points balance out of range")
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to adjust points for {user_id}")
            raise Internal("Failed to update user points")

        self.db.refresh(entry)
        logger.info(f"{points:+d} points for {user_id} by {auth.user_id} ({reason})")
        return entry

    def points_log(
        self, auth: AuthContext, user_id: str,
        limit: Optional[int] = None, offset: int = 0
    ) -> Tuple[List[PointsLedgerEntry], int]:
        auth.require(Role.ADMIN, self._self_relation(auth, user_id))

        query = self.db.query(PointsLedgerEntry).filter(PointsLedgerEntry.user_id == user_id)
        total = query.count()
        entries = (
            query.order_by(PointsLedgerEntry.timestamp.desc())
            .offset(offset)
            .limit(limit or self.settings.default_page_size)
            .all()
        )
        return entries, total

    def stats(self, auth: AuthContext, user_id: str) -> dict:
        """
        Report counts for a user.

        `total_points` is recomputed from resolved reports and is independent
        of the persisted balance (admin adjustments are not reflected in it).
        """
        auth.require(Role.ADMIN, self._self_relation(auth, user_id))

        reports = self.db.query(Report).filter(Report.user_id == user_id).all()
        return compute_user_stats(reports, self.settings.resolution_reward_points)

    # ------------------------------------------------------------------
    # Self-service profile
    # ------------------------------------------------------------------

    def update_profile(
        self, auth: AuthContext, display_name: Optional[str] = None, photo_url: Optional[str] = None
    ) -> UserProfile:
        profile = self._get_profile(auth.user_id)
        if display_name and display_name.strip():
            profile.display_name = display_name.strip()
        if photo_url and photo_url.strip():
            profile.photo_url = photo_url.strip()
        profile.last_active = datetime.utcnow()
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def get_own_profile(self, auth: AuthContext) -> UserProfile:
        return self._get_profile(auth.user_id)
