"""
Report Lifecycle
================

Creation, reads, status changes, patrol assignment and priority for safety
reports.

Status values: verifying -> pending -> in_progress -> awaiting_verification
-> resolved -> closed. By default any authorized caller may set any
recognized status. With STRICT_STATUS_TRANSITIONS enabled, moves are checked
against `STATUS_TRANSITIONS`.

The first time a report reaches `resolved` its owner is awarded the
resolution reward. The increment, the ledger entry and the report's
`points_awarded` flag are committed together; later writes of `resolved`
(including after toggling away and back) award nothing.
"""

import logging
import random
import re
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import AuthContext, Relation, report_relation, can_access_report
from .config import get_settings, Settings
from .db.models import Role, ReportStatus, Report, UserProfile
from .errors import Forbidden, NotFound, InvalidInput, Internal
from .users import UserService

logger = logging.getLogger(__name__)

CASE_NUMBER_PATTERN = re.compile(r"^CARS-\d{6}-\d{3}$")

MIN_PRIORITY = 1
MAX_PRIORITY = 5

STATUS_TRANSITIONS = {
    ReportStatus.VERIFYING: {ReportStatus.PENDING, ReportStatus.CLOSED},
    ReportStatus.PENDING: {ReportStatus.IN_PROGRESS, ReportStatus.CLOSED},
    ReportStatus.IN_PROGRESS: {ReportStatus.AWAITING_VERIFICATION, ReportStatus.PENDING},
    ReportStatus.AWAITING_VERIFICATION: {ReportStatus.RESOLVED, ReportStatus.IN_PROGRESS},
    ReportStatus.RESOLVED: {ReportStatus.CLOSED},
    ReportStatus.CLOSED: set(),
}


def generate_case_number(now: Optional[datetime] = None, rng=random) -> str:
    """CARS-<last 6 digits of epoch millis>-<3 random digits>"""
    now = now or datetime.utcnow()
    millis = str(int(now.timestamp() * 1000))
    return f"CARS-{millis[-6:]}-{rng.randint(0, 999):03d}"


def parse_status(value) -> ReportStatus:
    try:
        return ReportStatus(value)
    except ValueError:
        raise InvalidInput(f"Invalid status: {value}")


def status_transition_allowed(current: ReportStatus, requested: ReportStatus, strict: bool = False) -> bool:
    if not strict or current == requested:
        return True
    return requested in STATUS_TRANSITIONS.get(current, set())


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"Missing required field: {field}")
    return value.strip()


def _parse_location(location) -> Tuple[float, float]:
    if location is None:
        raise InvalidInput("Missing required field: location")
    if hasattr(location, "lat"):
        lat, lng = location.lat, location.lng
    elif isinstance(location, dict):
        lat, lng = location.get("lat"), location.get("lng")
    else:
        raise InvalidInput("Location must have lat and lng")

    for v in (lat, lng):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise InvalidInput("Location must have numeric lat and lng")
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidInput("Location out of range")
    return float(lat), float(lng)


def _parse_url_list(urls, field: str, required: bool = False) -> List[str]:
    if urls is None:
        if required:
            raise InvalidInput(f"Missing required field: {field}")
        return []
    if not isinstance(urls, list) or not all(isinstance(u, str) and u.strip() for u in urls):
        raise InvalidInput(f"{field} must be a list of URLs")
    if required and not urls:
        raise InvalidInput(f"{field} must not be empty")
    return [u.strip() for u in urls]


class ReportService:
    """Report lifecycle operations"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _get_report(self, report_id: str) -> Report:
        report = self.db.query(Report).filter(Report.id == report_id).first()
        if not report:
            raise NotFound("Report not found")
        return report

    def _require_access(self, auth: AuthContext, report: Report) -> Relation:
        relation = report_relation(auth.user_id, report)
        if not can_access_report(auth.role, relation):
            logger.warning(f"Report access denied: {auth.user_id} -> {report.id}")
            raise Forbidden("Access denied")
        return relation

    def _claim_award(self, report_id: str) -> bool:
        """
        Flip points_awarded from False to True in SQL.

        Only the writer whose UPDATE matches the row gets to pay out, so two
        concurrent resolutions of the same report award once.
        """
        result = self.db.execute(
            update(Report)
            .where(Report.id == report_id, Report.points_awarded.is_(False))
            .values(points_awarded=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to {action}")
            raise Internal(f"Failed to {action}")

    # ------------------------------------------------------------------
    # Create & read
    # ------------------------------------------------------------------

    def create(
        self,
        auth: AuthContext,
        title=None,
        description=None,
        category=None,
        location=None,
        is_anonymous: Optional[bool] = False,
        image_urls=None,
    ) -> Report:
        title = _require_text(title, "title")
        description = _require_text(description, "description")
        category = _require_text(category, "category")
        lat, lng = _parse_location(location)
        images = _parse_url_list(image_urls, "imageUrls")

        now = datetime.utcnow()
        report = Report(
            case_number=generate_case_number(now),
            title=title,
            description=description,
            category=category,
            is_anonymous=bool(is_anonymous),
            latitude=lat,
            longitude=lng,
            image_urls=images,
            proof_images=[],
            status=ReportStatus.VERIFYING,
            priority_level=MIN_PRIORITY,
            user_id=auth.user_id,
            points_awarded=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(report)
        self._commit("create report")
        self.db.refresh(report)
        logger.info(f"Report {report.case_number} created by {auth.user_id}")
        return report

    def get(self, auth: AuthContext, report_id: str) -> Report:
        report = self._get_report(report_id)
        self._require_access(auth, report)
        return report

    def list_mine(self, auth: AuthContext) -> List[Report]:
        return (
            self.db.query(Report)
            .filter(Report.user_id == auth.user_id)
            .order_by(Report.created_at.desc())
            .all()
        )

    def list_assigned(self, auth: AuthContext) -> List[Report]:
        auth.require(Role.PATROL)
        return (
            self.db.query(Report)
            .filter(Report.patrol_user_id == auth.user_id)
            .order_by(Report.created_at.desc())
            .all()
        )

    def list_all(
        self, auth: AuthContext, status: Optional[str] = None,
        limit: Optional[int] = None, offset: int = 0
    ) -> Tuple[List[Report], int]:
        auth.require(Role.ADMIN)

        query = self.db.query(Report)
        if status:
            query = query.filter(Report.status == parse_status(status))

        total = query.count()
        reports = (
            query.order_by(Report.created_at.desc())
            .offset(offset)
            .limit(limit or self.settings.default_page_size)
            .all()
        )
        return reports, total

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_status(self, auth: AuthContext, report_id: str, status) -> Report:
        if not status:
            raise InvalidInput("Status is required")
        new_status = parse_status(status)

        report = self._get_report(report_id)
        self._require_access(auth, report)

        current = ReportStatus(report.status)
        if not status_transition_allowed(current, new_status, self.settings.strict_status_transitions):
            raise InvalidInput(f"Cannot move report from {current.value} to {new_status.value}")

        report.status = new_status
        report.updated_at = datetime.utcnow()

        if new_status == ReportStatus.RESOLVED and not report.points_awarded:
            try:
                awarded = self._claim_award(report.id)
                if awarded:
                    UserService(self.db, self.settings).apply_points(
                        report.user_id,
                        self.settings.resolution_reward_points,
                        reason=f"Report {report.case_number} resolved",
                        actor_id=auth.user_id,
                        report_id=report.id,
                    )
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"Failed to award points for report {report.id}")
                raise Internal("Failed to update report status")

            if awarded:
                logger.info(
                    f"Awarded {self.settings.resolution_reward_points} points to {report.user_id} "
                    f"for report {report.case_number}"
                )

        self._commit("update report status")
        self.db.refresh(report)
        return report

    def assign(self, auth: AuthContext, report_id: str, patrol_user_id) -> Report:
        auth.require(Role.ADMIN)

        if not patrol_user_id or not isinstance(patrol_user_id, str):
            raise InvalidInput("Patrol user ID is required")

        report = self._get_report(report_id)

        patrol = self.db.query(UserProfile).filter(UserProfile.id == patrol_user_id).first()
        if not patrol or patrol.role != Role.PATROL:
            raise InvalidInput("Invalid patrol user")

        report.patrol_user_id = patrol_user_id
        report.updated_at = datetime.utcnow()
        self._commit("assign report")
        self.db.refresh(report)
        logger.info(f"Report {report.case_number} assigned to {patrol_user_id} by {auth.user_id}")
        return report

    def update_priority(self, auth: AuthContext, report_id: str, priority_level) -> Report:
        auth.require(Role.ADMIN)

        if (
            isinstance(priority_level, bool)
            or not isinstance(priority_level, int)
            or not MIN_PRIORITY <= priority_level <= MAX_PRIORITY
        ):
            raise InvalidInput("Priority level must be between 1 and 5")

        report = self._get_report(report_id)
        report.priority_level = priority_level
        report.updated_at = datetime.utcnow()
        self._commit("update report priority")
        self.db.refresh(report)
        return report

    def add_proof_images(self, auth: AuthContext, report_id: str, proof_images) -> Report:
        """Evidence photos from the assigned patrol or an admin."""
        urls = _parse_url_list(proof_images, "proofImages", required=True)

        report = self._get_report(report_id)
        # an owner who is also the assigned patrol still qualifies
        if report.patrol_user_id and report.patrol_user_id == auth.user_id:
            relation = Relation.ASSIGNED_PATROL
        else:
            relation = Relation.NONE
        auth.require(Role.ADMIN, relation)

        report.proof_images = list(report.proof_images or []) + urls
        report.updated_at = datetime.utcnow()
        self._commit("upload proof images")
        self.db.refresh(report)
        return report
