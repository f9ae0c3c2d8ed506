"""
Message model: one directed text message between two marketplace users.

Rows are insert-only apart from the read flag. A conversation is not stored;
it is the set of rows for an unordered (sender, recipient) pair.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Text, Uuid

from marketchat.config import get_settings
from marketchat.db import Base
from marketchat.models.mixins import utcnow

_settings = get_settings()

RECIPIENT_COLUMN = _settings.messages_recipient_column


class Message(Base):
    """Directed message. recipient_id maps to the configured recipient column."""

    __tablename__ = _settings.messages_table

    __table_args__ = (
        CheckConstraint(
            f"sender_id <> {RECIPIENT_COLUMN}", name="ck_messages_distinct_parties"
        ),
        Index("ix_messages_pair_created", "sender_id", RECIPIENT_COLUMN, "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id = Column(Uuid, nullable=False)
    recipient_id = Column(RECIPIENT_COLUMN, Uuid, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

    def to_row(self) -> dict:
        """Row image keyed by database column names, as the change feed ships it."""
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            RECIPIENT_COLUMN: self.recipient_id,
            "content": self.content,
            "created_at": self.created_at,
            "is_read": self.is_read,
        }
