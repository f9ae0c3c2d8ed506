"""SQLAlchemy-backed message store that publishes every write to a ChangeFeed."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar
from uuid import UUID

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketchat.adapters.base import BaseMessageStore
from marketchat.config import get_settings
from marketchat.core.change_feed import ChangeFeed, ChangeHandler, Subscription
from marketchat.core.errors import StoreError
from marketchat.infra.logging_config import get_logger
from marketchat.models.message import RECIPIENT_COLUMN, Message
from marketchat.schemas.change_event import ChangeEvent, ChangeType
from marketchat.schemas.conversation import ProfileRead
from marketchat.schemas.message import MessageRead
from marketchat.services.message_service import MessageService
from marketchat.services.profile_service import ProfileService

logger = get_logger("sql_store")

T = TypeVar("T")


class SqlMessageStore(BaseMessageStore):
    """
    Message store over a synchronous Session.

    Queries run in the threadpool so change-feed fan-out never blocks the
    event loop. A lock keeps the Session to one thread at a time.
    """

    def __init__(self, db: Session, feed: ChangeFeed) -> None:
        settings = get_settings()
        self.db = db
        self.feed = feed
        self.table = Message.__tablename__
        self.recipient_column = RECIPIENT_COLUMN
        self.timestamp_granularity_ms = settings.timestamp_granularity_ms
        self._messages = MessageService(db)
        self._profiles = ProfileService(db)
        self._lock = asyncio.Lock()

    async def select_conversation(
        self, self_id: UUID, counterpart_id: UUID
    ) -> List[MessageRead]:
        rows = await self._run(
            "select messages",
            self._messages.get_conversation_messages,
            self_id,
            counterpart_id,
        )
        return [MessageRead.model_validate(r) for r in rows]

    async def insert_message(
        self, sender_id: UUID, recipient_id: UUID, content: str
    ) -> MessageRead:
        msg = await self._run(
            "insert message",
            self._messages.create_message,
            sender_id,
            recipient_id,
            content,
        )
        stored = MessageRead.model_validate(msg)
        await self._publish(ChangeType.INSERT, new=msg.to_row())
        return stored

    async def list_for_participant(self, user_id: UUID) -> List[MessageRead]:
        rows = await self._run(
            "list messages", self._messages.get_messages_for_user, user_id
        )
        return [MessageRead.model_validate(r) for r in rows]

    async def mark_read(self, recipient_id: UUID, sender_id: UUID) -> int:
        changed = await self._run(
            "mark messages read", self._messages.mark_read, recipient_id, sender_id
        )
        images = [msg.to_row() for msg in changed]
        for new in images:
            await self._publish(ChangeType.UPDATE, new=new, old={**new, "is_read": False})
        return len(images)

    async def get_profiles(self, user_ids: Iterable[UUID]) -> Dict[UUID, ProfileRead]:
        return await self._run(
            "select profiles", self._profiles.get_profiles, list(user_ids)
        )

    def subscribe(self, channel: str, handler: ChangeHandler) -> Subscription:
        return self.feed.subscribe(channel, self.table, handler)

    async def _run(self, action: str, fn: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            try:
                return await run_in_threadpool(fn, *args)
            except SQLAlchemyError as e:
                await run_in_threadpool(self.db.rollback)
                logger.warning("Failed to %s: %s", action, e)
                raise StoreError(f"Failed to {action}: {e.__class__.__name__}") from e

    async def _publish(
        self,
        event_type: ChangeType,
        new: Optional[dict] = None,
        old: Optional[dict] = None,
    ) -> None:
        await self.feed.publish(
            ChangeEvent(event_type=event_type, table=self.table, new=new, old=old)
        )
