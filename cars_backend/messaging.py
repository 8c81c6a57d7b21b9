"""
Messaging Relay
===============

Append-only chat between users and administrators.

Visibility: admins see every message; everyone else sees their own messages
plus all admin replies. Messages are never edited; admins may delete them.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .auth import AuthContext
from .config import get_settings, Settings
from .db.models import Role, Message, UserProfile
from .errors import InvalidInput

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


def validate_message_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("Message text is required")
    text = text.strip()
    if len(text) > MAX_MESSAGE_LENGTH:
        raise InvalidInput(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
    return text


class MessagingService:
    """Chat storage and visibility rules"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def list_messages(self, auth: AuthContext, limit: Optional[int] = None, offset: int = 0) -> List[Message]:
        query = self.db.query(Message)
        if not auth.is_admin:
            query = query.filter(or_(Message.user_id == auth.user_id, Message.is_admin_reply.is_(True)))
        return (
            query.order_by(Message.created_at.asc())
            .offset(offset)
            .limit(limit or self.settings.default_page_size)
            .all()
        )

    def send(self, auth: AuthContext, text) -> Message:
        text = validate_message_text(text)
        message = Message(
            text=text,
            user_id=auth.user_id,
            user_display_name=auth.display_name,
            user_role=auth.role,
            is_admin_reply=auth.is_admin,
            created_at=datetime.utcnow(),
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def conversation(self, auth: AuthContext, user_id: str, limit: Optional[int] = None) -> List[Message]:
        auth.require(Role.ADMIN)
        n = min(limit or self.settings.conversation_default_size, self.settings.conversation_max_size)
        return (
            self.db.query(Message)
            .filter(Message.user_id == user_id)
            .order_by(Message.created_at.asc())
            .limit(n)
            .all()
        )

    def conversations(self, auth: AuthContext) -> List[dict]:
        """One summary per distinct sender, most recently active first."""
        auth.require(Role.ADMIN)

        latest = {}
        for message in self.db.query(Message).order_by(Message.created_at.desc()).all():
            if message.user_id not in latest:
                latest[message.user_id] = message

        profiles = {}
        if latest:
            profiles = {
                p.id: p
                for p in self.db.query(UserProfile).filter(UserProfile.id.in_(list(latest))).all()
            }

        summaries = []
        for user_id, message in latest.items():
            profile = profiles.get(user_id)
            summaries.append({
                "user_id": user_id,
                "user_display_name": (profile.display_name if profile else None) or "Unknown User",
                "user_role": profile.role if profile else Role.USER,
                "last_message": {"text": message.text, "created_at": message.created_at},
                # presence is not tracked
                "is_online": False,
            })
        return summaries

    def delete(self, auth: AuthContext, message_id: str) -> bool:
        """Best-effort delete. Returns whether a message was removed."""
        auth.require(Role.ADMIN)
        deleted = self.db.query(Message).filter(Message.id == message_id).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info(f"Message {message_id} deleted by {auth.user_id}")
        return bool(deleted)

    def mark_read(self, auth: AuthContext, user_id: str) -> None:
        # TODO: persist per-conversation read markers once the dashboards send them
        auth.require(Role.ADMIN)
