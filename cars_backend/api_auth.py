"""
Auth API Endpoints
==================

Sign-in provisioning and self-service profile, mounted at /api/auth.
Credentials are issued by the external identity provider; this router only
verifies them.
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .auth import AuthContext, AuthService, Identity, get_identity, get_auth_context
from .db.session import get_db
from .schemas import (
    UserOut,
    SessionResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    OwnPointsResponse,
    MessageResponse,
)
from .users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/session", response_model=SessionResponse)
async def sign_in(
    response: Response,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Create the caller's profile on first sign-in (201), else refresh it (200)."""
    profile, created = AuthService(db).sign_in(identity)
    if created:
        response.status_code = 201
    return SessionResponse(created=created, profile=UserOut.from_model(profile))


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    profile = UserService(db).get_own_profile(auth)
    return ProfileResponse(uid=profile.id, **UserOut.from_model(profile).model_dump())


@router.put("/profile", response_model=MessageResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    UserService(db).update_profile(auth, display_name=body.display_name, photo_url=body.photo_url)
    return MessageResponse(message="Profile updated successfully")


@router.get("/points", response_model=OwnPointsResponse)
async def get_own_points(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    profile = UserService(db).get_own_profile(auth)
    return OwnPointsResponse(points=profile.points or 0, display_name=profile.display_name, role=profile.role)
