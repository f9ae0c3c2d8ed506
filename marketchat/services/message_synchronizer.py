"""
MessageSynchronizer: keep one selected conversation consistent with the store.

The materialized list is only ever replaced wholesale by a fresh history
fetch. Change events are treated as "something touched this user, re-read",
never applied as diffs, so a dropped notification is repaired by the next one.

Fetches overlap freely (selection changes, notifications). Each fetch carries
the SelectionTag it was issued under and its result is applied only if that
tag is still current.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AbstractSet, Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import UUID

from marketchat.adapters.base import BaseMessageStore
from marketchat.config import get_settings
from marketchat.core.change_feed import Subscription
from marketchat.core.errors import AbsentIdentityError, StoreError, ValidationError
from marketchat.core.identity import IdentityProvider
from marketchat.infra.logging_config import get_logger
from marketchat.schemas.change_event import ChangeEvent
from marketchat.schemas.message import MessageRead
from marketchat.schemas.notice import Notice

logger = get_logger("message_synchronizer")

PENDING_ID_PREFIX = "pending-"

NoticeHandler = Callable[[Notice], None]
UpdateHandler = Callable[[List[MessageRead]], Awaitable[None]]


@dataclass(frozen=True)
class SelectionTag:
    """Context a fetch was issued under. epoch changes on every selection or identity change."""

    self_id: UUID
    counterpart_id: UUID
    epoch: int


def matches_pending(
    pending: MessageRead,
    row: MessageRead,
    granularity_ms: int,
    known_ids: AbstractSet[str] = frozenset(),
) -> bool:
    """
    Whether a stored row can be the confirmation of a pending entry.

    Parties and content must be equal, the row must not have been visible
    when the entry was appended, and its store timestamp may trail the
    client's by at most one granularity step. A store clock running ahead
    of the client always matches.
    """
    if str(row.id) in known_ids:
        return False
    if (str(row.sender_id), str(row.recipient_id), row.content) != (
        str(pending.sender_id),
        str(pending.recipient_id),
        pending.content,
    ):
        return False
    slack = timedelta(milliseconds=max(granularity_ms, 1))
    return _utc(row.created_at) >= _utc(pending.created_at) - slack


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _log_notice(notice: Notice) -> None:
    logger.warning("%s: %s", notice.title, notice.description)


def _same_id(value: Any, identity: UUID) -> bool:
    return value is not None and str(value) == str(identity)


class MessageSynchronizer:
    def __init__(
        self,
        store: BaseMessageStore,
        identity: IdentityProvider,
        channel: Optional[str] = None,
        optimistic: Optional[bool] = None,
        on_notice: Optional[NoticeHandler] = None,
        on_update: Optional[UpdateHandler] = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._identity = identity
        self._channel = channel or settings.change_feed_channel
        self._optimistic = settings.optimistic_send if optimistic is None else optimistic
        self._on_notice = on_notice or _log_notice
        self._on_update = on_update

        self._selected: Optional[UUID] = None
        self._owner: Optional[UUID] = identity.current_identity()
        self._epoch = 0
        self._messages: List[MessageRead] = []
        # pending id -> stored ids already on screen when it was appended
        self._known_ids: Dict[str, Set[str]] = {}
        self._subscription: Optional[Subscription] = None
        self._unsubscribe_identity: Optional[Callable[[], None]] = None

    @property
    def messages(self) -> List[MessageRead]:
        return list(self._messages)

    @property
    def selected(self) -> Optional[UUID]:
        return self._selected

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Listen for identity changes and, if signed in, join the change feed."""
        if self._unsubscribe_identity is None:
            self._unsubscribe_identity = self._identity.on_identity_change(
                self._handle_identity_change
            )
        if self._identity.current_identity() is not None:
            self._subscribe()
            await self.refresh()

    async def close(self) -> None:
        """Tear down: release the feed and identity listener, void in-flight fetches."""
        self._epoch += 1
        self._release()
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None

    async def _handle_identity_change(self, identity: Optional[UUID]) -> None:
        self._epoch += 1
        previous, self._owner = self._owner, identity
        if identity is None or (previous is not None and previous != identity):
            # A selection belongs to the user who made it
            self._selected = None
            self._messages = []
        if identity is None:
            self._release()
            await self._emit_update()
            return
        self._subscribe()
        await self.refresh()

    def _subscribe(self) -> None:
        if self.subscribed:
            return
        self._subscription = self._store.subscribe(self._channel, self.handle_change)

    def _release(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # -- selection and fetching --------------------------------------------

    def current_tag(self) -> Optional[SelectionTag]:
        self_id = self._identity.current_identity()
        if self_id is None or self._selected is None:
            return None
        return SelectionTag(self_id, self._selected, self._epoch)

    async def select(self, counterpart_id: Optional[UUID]) -> None:
        """Switch the selected conversation and load its history."""
        if counterpart_id != self._selected:
            self._epoch += 1
            self._selected = counterpart_id
            self._messages = []
        if counterpart_id is not None:
            await self.refresh()

    async def fetch_history(
        self, self_id: Optional[UUID], counterpart_id: UUID
    ) -> List[MessageRead]:
        """Full history of the pair, oldest first. Raises StoreError or AbsentIdentityError."""
        if self_id is None:
            raise AbsentIdentityError()
        rows = await self._store.select_conversation(self_id, counterpart_id)
        pair = {str(self_id), str(counterpart_id)}
        rows = [
            r for r in rows if {str(r.sender_id), str(r.recipient_id)} == pair
        ]
        # sorted() is stable, so store order breaks timestamp ties
        return sorted(rows, key=lambda m: m.created_at)

    async def refresh(self) -> bool:
        """
        Re-fetch the selected conversation and replace the local list.

        Returns False when deferred (no identity or selection), when the fetch
        failed, or when the result arrived for a selection that is no longer
        current.
        """
        tag = self.current_tag()
        if tag is None:
            logger.debug("Refresh deferred: no identity or no selection")
            return False
        try:
            rows = await self.fetch_history(tag.self_id, tag.counterpart_id)
        except StoreError as e:
            if tag == self.current_tag():
                # Keep what is on screen; the next notification retries
                self._on_notice(
                    Notice(
                        title="Error fetching messages",
                        description=e.message,
                        variant="destructive",
                    )
                )
            return False
        if tag != self.current_tag():
            logger.debug(
                "Discarding stale history for %s (epoch %s)",
                tag.counterpart_id,
                tag.epoch,
            )
            return False
        self._messages = self._reconcile(rows)
        await self._emit_update()
        return True

    # -- sending -----------------------------------------------------------

    async def send(
        self, self_id: Optional[UUID], counterpart_id: UUID, content: str
    ) -> MessageRead:
        """Validate and insert one message. Raises ValidationError, AbsentIdentityError or StoreError."""
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content is empty")
        if self_id is None:
            raise AbsentIdentityError()
        if str(self_id) == str(counterpart_id):
            raise ValidationError("Sender and recipient must differ")

        pending = None
        tag = self.current_tag()
        if (
            self._optimistic
            and tag is not None
            and tag.self_id == self_id
            and tag.counterpart_id == counterpart_id
        ):
            pending = await self._append_pending(self_id, counterpart_id, text)

        try:
            stored = await self._store.insert_message(self_id, counterpart_id, text)
        except StoreError:
            if pending is not None:
                await self._drop(pending)
            raise
        if pending is not None:
            await self._confirm(pending, stored)
        return stored

    async def send_to_selected(self, content: str) -> Optional[MessageRead]:
        """Send to the selected counterpart; None when identity or selection is missing."""
        if not (content or "").strip():
            raise ValidationError("Message content is empty")
        tag = self.current_tag()
        if tag is None:
            logger.debug("Send deferred: no identity or no selection")
            return None
        return await self.send(tag.self_id, tag.counterpart_id, content)

    async def _append_pending(
        self, self_id: UUID, counterpart_id: UUID, text: str
    ) -> MessageRead:
        pending = MessageRead(
            id=f"{PENDING_ID_PREFIX}{uuid.uuid4().hex}",
            sender_id=self_id,
            recipient_id=counterpart_id,
            content=text,
            created_at=datetime.now(timezone.utc),
            pending=True,
        )
        self._known_ids[str(pending.id)] = {
            str(m.id) for m in self._messages if not m.pending
        }
        self._messages.append(pending)
        await self._emit_update()
        return pending

    async def _confirm(self, pending: MessageRead, stored: MessageRead) -> None:
        self._known_ids.pop(str(pending.id), None)
        idx = self._index_of(pending)
        if idx is None:
            # Already reconciled by a refresh, or the selection moved on
            return
        if any(not m.pending and str(m.id) == str(stored.id) for m in self._messages):
            del self._messages[idx]
        else:
            self._messages[idx] = stored
        await self._emit_update()

    async def _drop(self, pending: MessageRead) -> None:
        self._known_ids.pop(str(pending.id), None)
        idx = self._index_of(pending)
        if idx is not None:
            del self._messages[idx]
            await self._emit_update()

    def _index_of(self, pending: MessageRead) -> Optional[int]:
        for i, m in enumerate(self._messages):
            if m is pending:
                return i
        return None

    def _reconcile(self, rows: List[MessageRead]) -> List[MessageRead]:
        """Fetched rows replace the list; pending entries survive only while unmatched."""
        pending = [m for m in self._messages if m.pending]
        if not pending:
            return list(rows)
        granularity = self._store.timestamp_granularity_ms
        claimed: Set[int] = set()
        unmatched = []
        for entry in pending:
            known = self._known_ids.get(str(entry.id), set())
            match = next(
                (
                    i
                    for i, row in enumerate(rows)
                    if i not in claimed
                    and matches_pending(entry, row, granularity, known)
                ),
                None,
            )
            if match is None:
                unmatched.append(entry)
            else:
                claimed.add(match)
        self._known_ids = {
            str(m.id): self._known_ids.get(str(m.id), set()) for m in unmatched
        }
        return list(rows) + unmatched

    # -- change feed -------------------------------------------------------

    async def handle_change(self, event: ChangeEvent) -> None:
        """Re-fetch when a change touches the current user and something is selected."""
        identity = self._identity.current_identity()
        if identity is None or self._selected is None:
            return
        if event.table != self._store.table:
            return
        if not self._touches(event, identity):
            return
        await self.refresh()

    def _touches(self, event: ChangeEvent, identity: UUID) -> bool:
        recipient_column = self._store.recipient_column
        for row in event.rows():
            if _same_id(row.get("sender_id"), identity) or _same_id(
                row.get(recipient_column), identity
            ):
                return True
        return False

    async def _emit_update(self) -> None:
        if self._on_update is not None:
            await self._on_update(self.messages)
