"""
Access Control (RBAC) with JWT Support
======================================

Roles (totally ordered by privilege):
- user (1): files reports, chats with admins
- patrol (2): investigates reports assigned to them
- admin (3): triage, assignment, moderation, points
- superAdmin (4): admin plus granting superAdmin

Authorization Flow:
1. Verify the bearer credential (identity verifier) -> subject id + claims
2. Load the caller's profile by subject id
3. Decide with `authorize(role, relation, required)`:
   allowed when the caller is related to the resource (owner, assigned
   patrol, the subject itself) or the caller's role reaches `required`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import Role, UserProfile, Report
from .db.session import get_db
from .errors import Unauthorized, Forbidden, NotFound

logger = logging.getLogger(__name__)


# =============================================================================
# ROLE HIERARCHY & POLICY
# =============================================================================

ROLE_LEVELS = {
    Role.USER: 1,
    Role.PATROL: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}


class Relation(str, Enum):
    """How the caller relates to the resource being accessed"""
    OWNER = "owner"  # report owner, or the subject of a profile
    ASSIGNED_PATROL = "assigned_patrol"
    NONE = "none"


def role_level(role) -> int:
    try:
        return ROLE_LEVELS[Role(role)]
    except ValueError:
        return 0


def role_at_least(role, required: Role) -> bool:
    return role_level(role) >= ROLE_LEVELS[required]


def is_admin_or_above(role) -> bool:
    return role_at_least(role, Role.ADMIN)


def authorize(role, relation: Relation = Relation.NONE, required: Role = Role.USER) -> bool:
    """Single access rule used by every handler."""
    if relation in (Relation.OWNER, Relation.ASSIGNED_PATROL):
        return True
    return role_at_least(role, required)


def report_relation(user_id: str, report: Report) -> Relation:
    if report.user_id == user_id:
        return Relation.OWNER
    if report.patrol_user_id and report.patrol_user_id == user_id:
        return Relation.ASSIGNED_PATROL
    return Relation.NONE


def can_access_report(role, relation: Relation) -> bool:
    """Owner, assigned patrol, or admin-or-above."""
    return authorize(role, relation, required=Role.ADMIN)


# =============================================================================
# IDENTITY VERIFIER (JWT)
# =============================================================================

@dataclass
class Identity:
    """Verified claims of a bearer credential"""
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


def create_access_token(
    subject: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    picture: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a credential (development tooling and tests)"""
    settings = get_settings()
    to_encode = {"sub": subject, "iat": datetime.utcnow()}
    if email:
        to_encode["email"] = email
    if name:
        to_encode["name"] = name
    if picture:
        to_encode["picture"] = picture
    if settings.identity_jwt_audience:
        to_encode["aud"] = settings.identity_jwt_audience
    if settings.identity_jwt_issuer:
        to_encode["iss"] = settings.identity_jwt_issuer
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.identity_token_expire_minutes))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.identity_jwt_secret, algorithm=settings.identity_jwt_algorithm)


def verify_token(token: str) -> Identity:
    """
    Verify a credential and return its identity.

    Raises:
        Unauthorized (403): bad signature, expired, wrong audience/issuer, no subject
    """
    settings = get_settings()
    options = {"require": ["exp", "sub"]}
    kwargs = {}
    if settings.identity_jwt_audience:
        kwargs["audience"] = settings.identity_jwt_audience
    else:
        options["verify_aud"] = False
    if settings.identity_jwt_issuer:
        kwargs["issuer"] = settings.identity_jwt_issuer

    try:
        payload = jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            options=options,
            **kwargs,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Auth failed: token expired")
        raise Unauthorized("Invalid or expired token", status_code=403)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Auth failed: invalid token ({e})")
        raise Unauthorized("Invalid or expired token", status_code=403)

    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("Invalid or expired token", status_code=403)

    return Identity(
        subject=str(subject),
        email=payload.get("email"),
        name=payload.get("name"),
        picture=payload.get("picture"),
    )


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authorization context for a request"""
    user_id: str
    role: Role
    display_name: Optional[str]
    email: Optional[str]
    is_banned: bool = False

    @property
    def is_admin(self) -> bool:
        return is_admin_or_above(self.role)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def is_patrol(self) -> bool:
        return role_at_least(self.role, Role.PATROL)

    def can(self, required: Role, relation: Relation = Relation.NONE) -> bool:
        return authorize(self.role, relation, required)

    def require(self, required: Role, relation: Relation = Relation.NONE) -> None:
        if not self.can(required, relation):
            logger.warning(
                f"Permission denied: {self.user_id} ({self.role.value}) needs {required.value}"
            )
            raise Forbidden("Insufficient permissions")


def auth_context_from_profile(profile: UserProfile) -> AuthContext:
    return AuthContext(
        user_id=profile.id,
        role=Role(profile.role),
        display_name=profile.display_name,
        email=profile.email,
        is_banned=bool(profile.is_banned),
    )


class AuthService:
    """Loads and provisions profiles for verified identities"""

    def __init__(self, db: Session):
        self.db = db

    def get_auth_context(self, user_id: str) -> AuthContext:
        profile = self.db.query(UserProfile).filter(UserProfile.id == user_id).first()
        if not profile:
            logger.warning(f"Auth failed: profile {user_id} not found")
            raise NotFound("User profile not found")

        profile.last_active = datetime.utcnow()
        self.db.commit()

        return auth_context_from_profile(profile)

    def sign_in(self, identity: Identity):
        """
        Create the profile on first sign-in, otherwise touch last_active.

        Returns:
            (profile, created)
        """
        profile = self.db.query(UserProfile).filter(UserProfile.id == identity.subject).first()
        now = datetime.utcnow()
        if profile:
            profile.last_active = now
            self.db.commit()
            self.db.refresh(profile)
            return profile, False

        profile = UserProfile(
            id=identity.subject,
            display_name=identity.name or (identity.email.split("@", 1)[0] if identity.email else ""),
            email=identity.email or "",
            photo_url=identity.picture,
            role=Role.USER,
            points=0,
            is_banned=False,
            created_at=now,
            last_active=now,
        )
        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Provisioned profile {profile.id}")
        return profile, True


# =============================================================================
# FASTAPI DEPENDENCY HELPERS
# =============================================================================

async def get_identity(authorization: Optional[str] = Header(None, alias="Authorization")) -> Identity:
    """Verify `Authorization: Bearer <credential>`"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Access token required")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Access token required")
    return verify_token(token)


async def get_auth_context(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> AuthContext:
    return AuthService(db).get_auth_context(identity.subject)


def require_role(required: Role):
    """Dependency factory: caller's role must reach `required`"""

    async def _require(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        auth.require(required)
        return auth

    return _require


require_admin = require_role(Role.ADMIN)
require_patrol = require_role(Role.PATROL)


async def require_not_banned(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if auth.is_banned:
        logger.warning(f"Banned user {auth.user_id} attempted a write")
        raise Forbidden("Account is banned")
    return auth
