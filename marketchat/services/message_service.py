"""Message CRUD: pair history, insert, per-user listing and read flags."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from marketchat.models.message import Message


class MessageService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create_message(
        self,
        sender_id: UUID,
        recipient_id: UUID,
        content: str,
        message_id: Optional[UUID] = None,
    ) -> Message:
        msg = Message(
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            is_read=False,
        )
        if message_id is not None:
            msg.id = message_id
        self.db.add(msg)
        self.db.commit()
        self.db.refresh(msg)
        return msg

    def get_conversation_messages(
        self, self_id: UUID, counterpart_id: UUID
    ) -> List[Message]:
        """All messages between the two users, oldest first."""
        return (
            self.db.query(Message)
            .populate_existing()
            .filter(
                or_(
                    and_(
                        Message.sender_id == self_id,
                        Message.recipient_id == counterpart_id,
                    ),
                    and_(
                        Message.sender_id == counterpart_id,
                        Message.recipient_id == self_id,
                    ),
                )
            )
            .order_by(Message.created_at.asc())
            .all()
        )

    def get_messages_for_user(
        self, user_id: UUID, limit: Optional[int] = None
    ) -> List[Message]:
        """
        Every message the user sent or received, oldest first.

        With a limit, only the newest `limit` rows are kept.
        """
        query = (
            self.db.query(Message)
            .populate_existing()
            .filter(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
            .order_by(Message.created_at.desc(), Message.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return list(reversed(query.all()))

    def mark_read(self, recipient_id: UUID, sender_id: UUID) -> List[Message]:
        """Flag unread messages from sender to recipient as read. Returns the rows changed."""
        unread = (
            self.db.query(Message)
            .filter(
                Message.recipient_id == recipient_id,
                Message.sender_id == sender_id,
                Message.is_read.is_(False),
            )
            .all()
        )
        for msg in unread:
            msg.is_read = True
        self.db.commit()
        for msg in unread:
            self.db.refresh(msg)
        return unread

