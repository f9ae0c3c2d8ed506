"""Schemas for the conversation index and the marketplace context that opens a chat."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from marketchat.models.profile import AppRole


class Conversation(BaseModel):
    """Derived view of the messages exchanged with one counterpart. id is the counterpart id."""

    id: UUID
    participant_name: str
    participant_type: AppRole = AppRole.BUYER
    last_message: str = ""
    last_message_at: Optional[datetime] = None
    unread_count: int = 0
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None


class ConversationContext(BaseModel):
    """Hint supplied from outside the chat, e.g. "ask farmer Y about product X"."""

    counterpart_id: UUID
    counterpart_name: str
    counterpart_type: AppRole = AppRole.FARMER
    counterpart_phone: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileRead(BaseModel):
    user_id: UUID
    full_name: str
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    role: Optional[AppRole] = None

    model_config = {"from_attributes": True}
