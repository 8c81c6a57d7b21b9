"""
User API Endpoints
==================

FastAPI router for user administration, points and stats, mounted at
/api/users.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, get_auth_context, require_admin
from .config import get_settings
from .db.session import get_db
from .schemas import (
    UserOut,
    UserListResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    RoleUpdateRequest,
    BanRequest,
    PointsAdjustRequest,
    PointsAdjustResponse,
    PointsLedgerOut,
    PointsLogResponse,
    UserStats,
    UserStatsResponse,
    MessageResponse,
)
from .users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[str] = Query(default=None, description="Filter by role"),
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    limit = min(limit or get_settings().default_page_size, get_settings().max_page_size)
    users, total = UserService(db).list_users(auth, role=role, limit=limit, offset=offset)
    return UserListResponse(users=[UserOut.from_model(u) for u in users], total=total)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    """Top users by points. Public, no credential required."""
    profiles = UserService(db).leaderboard(limit)
    return LeaderboardResponse(leaderboard=[
        LeaderboardEntry(
            id=p.id,
            display_name=p.display_name,
            points=p.points or 0,
            role=p.role,
            photo_url=p.photo_url,
        )
        for p in profiles
    ])


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return UserOut.from_model(UserService(db).get_user(auth, user_id))


@router.put("/{user_id}/role", response_model=MessageResponse)
async def update_user_role(
    user_id: str,
    body: RoleUpdateRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    UserService(db).update_role(auth, user_id, body.role)
    return MessageResponse(message="User role updated successfully")


@router.put("/{user_id}/ban", response_model=MessageResponse)
async def ban_user(
    user_id: str,
    body: BanRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    profile = UserService(db).set_ban(auth, user_id, body.is_banned)
    return MessageResponse(message=f"User {'banned' if profile.is_banned else 'unbanned'} successfully")


@router.put("/{user_id}/points", response_model=PointsAdjustResponse)
async def adjust_user_points(
    user_id: str,
    body: PointsAdjustRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entry = UserService(db).adjust_points(auth, user_id, body.points, body.reason)
    direction = "added to" if entry.points > 0 else "removed from"
    return PointsAdjustResponse(
        message=f"{entry.points} points {direction} user",
        entry=PointsLedgerOut.from_model(entry),
    )


@router.get("/{user_id}/points-log", response_model=PointsLogResponse)
async def user_points_log(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    limit = min(limit or get_settings().default_page_size, get_settings().max_page_size)
    entries, total = UserService(db).points_log(auth, user_id, limit=limit, offset=offset)
    return PointsLogResponse(entries=[PointsLedgerOut.from_model(e) for e in entries], total=total)


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
async def user_stats(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return UserStatsResponse(stats=UserStats(**UserService(db).stats(auth, user_id)))
