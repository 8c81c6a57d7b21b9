"""
Chat API Endpoints
==================

FastAPI router for the user/admin chat, mounted at /api/chat.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, get_auth_context, require_admin, require_not_banned
from .config import get_settings
from .db.session import get_db
from .messaging import MessagingService
from .schemas import (
    SendMessageRequest,
    SendMessageResponse,
    ChatMessageOut,
    ChatMessageListResponse,
    ConversationSummary,
    ConversationListResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.get("", response_model=ChatMessageListResponse)
async def list_messages(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Oldest first. Non-admins get their own messages plus admin replies."""
    limit = min(limit or get_settings().default_page_size, get_settings().max_page_size)
    messages = MessagingService(db).list_messages(auth, limit=limit, offset=offset)
    return ChatMessageListResponse(messages=[ChatMessageOut.from_model(m) for m in messages])


@router.post("", response_model=SendMessageResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    auth: AuthContext = Depends(require_not_banned),
    db: Session = Depends(get_db),
):
    message = MessagingService(db).send(auth, body.text)
    return SendMessageResponse(**ChatMessageOut.from_model(message).model_dump())


@router.get("/conversation/{user_id}", response_model=ChatMessageListResponse)
async def get_conversation(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    messages = MessagingService(db).conversation(auth, user_id, limit=limit)
    return ChatMessageListResponse(messages=[ChatMessageOut.from_model(m) for m in messages])


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    summaries = MessagingService(db).conversations(auth)
    return ConversationListResponse(conversations=[ConversationSummary(**s) for s in summaries])


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    MessagingService(db).delete(auth, message_id)
    return MessageResponse(message="Message deleted successfully")


@router.put("/{user_id}/read", response_model=MessageResponse)
async def mark_messages_read(
    user_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    MessagingService(db).mark_read(auth, user_id)
    return MessageResponse(message="Messages marked as read")
