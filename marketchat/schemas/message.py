"""Pydantic schemas for messages and the rendered message list."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketchat.schemas.notice import Notice


class MessageCreate(BaseModel):
    """Body of a send request. Trimming and emptiness are checked by the sender."""

    content: str = Field(..., max_length=10_000)


class MessageRead(BaseModel):
    """A stored message (or, with pending=True, a local optimistic entry)."""

    id: UUID | str
    sender_id: UUID
    recipient_id: UUID
    content: str
    created_at: datetime
    is_read: bool = False
    pending: bool = False

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes; everything stored is UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ChatMessageView(BaseModel):
    """One entry of the rendered message list, labelled for the current user."""

    id: UUID | str
    sender_id: UUID
    sender_name: str
    content: str
    created_at: datetime
    is_own: bool
    is_read: bool = False
    pending: bool = False


class ConversationSnapshot(BaseModel):
    """
    What the WebSocket pushes: the full materialized list for one counterpart.

    notice is set when the push reports a non-fatal failure.
    """

    counterpart_id: UUID
    messages: list[ChatMessageView]
    notice: Optional[Notice] = None
