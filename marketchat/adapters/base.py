"""
Message store interface.

A store wraps the relational message table plus its change feed. The
synchronizer only talks to this contract, so a hosted backend and the local
SQLAlchemy store are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List
from uuid import UUID

from marketchat.core.change_feed import ChangeHandler, Subscription
from marketchat.schemas.conversation import ProfileRead
from marketchat.schemas.message import MessageRead


class BaseMessageStore(ABC):
    """Contract for message stores. Every failure is raised as StoreError."""

    table: str
    recipient_column: str
    timestamp_granularity_ms: int = 1000

    @abstractmethod
    async def select_conversation(
        self, self_id: UUID, counterpart_id: UUID
    ) -> List[MessageRead]:
        """Rows where (sender, recipient) is (self, counterpart) or (counterpart, self), oldest first."""
        ...

    @abstractmethod
    async def insert_message(
        self, sender_id: UUID, recipient_id: UUID, content: str
    ) -> MessageRead:
        """Insert one row; id, created_at and is_read take store defaults."""
        ...

    @abstractmethod
    async def list_for_participant(self, user_id: UUID) -> List[MessageRead]:
        """Every row the user sent or received, oldest first."""
        ...

    @abstractmethod
    async def mark_read(self, recipient_id: UUID, sender_id: UUID) -> int:
        """Set is_read on unread rows from sender to recipient. Returns the count."""
        ...

    @abstractmethod
    def subscribe(self, channel: str, handler: ChangeHandler) -> Subscription:
        """Join the change feed for this store's table."""
        ...

    async def get_profiles(self, user_ids: Iterable[UUID]) -> Dict[UUID, ProfileRead]:
        """Display data for users. Stores without profiles return nothing."""
        return {}
