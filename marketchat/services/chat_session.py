"""
ChatSession: the two-pane chat wired together.

Owns the conversation index, the synchronizer for the selected conversation,
the draft being typed and the search term. Identity comes from an injected
IdentityProvider; nothing here reads a global session.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from marketchat.adapters.base import BaseMessageStore
from marketchat.core.errors import StoreError
from marketchat.core.identity import IdentityProvider
from marketchat.infra.logging_config import get_logger
from marketchat.schemas.conversation import Conversation, ConversationContext
from marketchat.schemas.message import ChatMessageView, MessageRead
from marketchat.schemas.notice import Notice
from marketchat.services.conversation_index import ConversationIndex
from marketchat.services.message_synchronizer import MessageSynchronizer

logger = get_logger("chat_session")

OWN_LABEL = "You"
OTHER_LABEL = "Other User"
GREETING = "Hi! I'm interested in your {product}. Can you provide more details?"

ViewHandler = Callable[[List[ChatMessageView]], Awaitable[None]]


class ChatSession:
    def __init__(
        self,
        store: BaseMessageStore,
        identity: IdentityProvider,
        on_notice: Optional[Callable[[Notice], None]] = None,
        on_update: Optional[ViewHandler] = None,
        optimistic: Optional[bool] = None,
    ) -> None:
        self.identity = identity
        self.index = ConversationIndex()
        self.notices: List[Notice] = []
        self.draft = ""
        self.search_term = ""
        self._store = store
        self._on_notice = on_notice
        self._on_update = on_update
        self._unsubscribe_identity: Optional[Callable[[], None]] = None
        self._owner: Optional[UUID] = identity.current_identity()
        self.synchronizer = MessageSynchronizer(
            store,
            identity,
            optimistic=optimistic,
            on_notice=self.notify,
            on_update=self._handle_messages,
        )

    async def open(self) -> None:
        self._unsubscribe_identity = self.identity.on_identity_change(
            self._handle_identity_change
        )
        await self.synchronizer.start()
        if self.identity.current_identity() is not None:
            await self.load_conversations()

    async def close(self) -> None:
        await self.synchronizer.close()
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self._on_notice is not None:
            self._on_notice(notice)

    async def _handle_identity_change(self, identity: Optional[UUID]) -> None:
        previous, self._owner = self._owner, identity
        if identity is None or (previous is not None and previous != identity):
            self.index.clear()
            self.draft = ""
        if identity is not None:
            await self.load_conversations()

    async def load_conversations(self) -> List[Conversation]:
        """Rebuild the index from every message touching the current user."""
        self_id = self.identity.current_identity()
        if self_id is None:
            return []
        try:
            rows = await self._store.list_for_participant(self_id)
            counterparts = {
                r.recipient_id if r.sender_id == self_id else r.sender_id for r in rows
            }
            profiles = await self._store.get_profiles(counterparts)
        except StoreError as e:
            self.notify(
                Notice(
                    title="Error loading conversations",
                    description=e.message,
                    variant="destructive",
                )
            )
            return self.index.conversations
        return self.index.rebuild(rows, self_id, profiles)

    def visible_conversations(self) -> List[Conversation]:
        return self.index.filter(self.search_term)

    async def select(self, counterpart_id: Optional[UUID]) -> Optional[Conversation]:
        conversation = self.index.select(counterpart_id)
        await self.synchronizer.select(counterpart_id)
        return conversation

    async def start_from_context(self, context: ConversationContext) -> Conversation:
        """Open (or reopen) a chat from a marketplace listing and pre-fill a greeting."""
        conversation = self.index.upsert_from_external_context(context)
        if not self.draft and context.product_name:
            self.draft = GREETING.format(product=context.product_name)
        self.notify(
            Notice(
                title="Chat Started",
                description=f"Started conversation with {conversation.participant_name}",
            )
        )
        await self.synchronizer.select(conversation.id)
        return conversation

    async def send(self, content: Optional[str] = None) -> Optional[MessageRead]:
        """
        Send content (default: the draft) to the selected conversation.

        ValidationError propagates. A StoreError becomes a notice and the
        draft is left untouched so the user can retry.
        """
        from_draft = content is None
        text = self.draft if from_draft else content
        try:
            stored = await self.synchronizer.send_to_selected(text)
        except StoreError as e:
            self.notify(
                Notice(
                    title="Error sending message",
                    description=e.message,
                    variant="destructive",
                )
            )
            return None
        if stored is not None and from_draft:
            self.draft = ""
        return stored

    async def mark_selected_read(self) -> int:
        self_id = self.identity.current_identity()
        counterpart = self.synchronizer.selected
        if self_id is None or counterpart is None:
            return 0
        try:
            return await self._store.mark_read(self_id, counterpart)
        except StoreError as e:
            self.notify(
                Notice(
                    title="Error updating messages",
                    description=e.message,
                    variant="destructive",
                )
            )
            return 0

    def contact_details(self) -> Notice:
        conversation = self.index.selected
        if conversation is not None and conversation.phone_number:
            notice = Notice(
                title=f"{conversation.participant_type.value.capitalize()} Contact",
                description=f"{conversation.participant_name}: {conversation.phone_number}",
            )
        else:
            notice = Notice(
                title="Contact",
                description="Contact feature available for marketplace connections",
            )
        self.notify(notice)
        return notice

    def message_views(self) -> List[ChatMessageView]:
        return self._views(self.synchronizer.messages)

    def _views(self, messages: List[MessageRead]) -> List[ChatMessageView]:
        self_id = self.identity.current_identity()
        conversation = self.index.selected
        other = conversation.participant_name if conversation else OTHER_LABEL
        views = []
        for m in messages:
            is_own = self_id is not None and m.sender_id == self_id
            views.append(
                ChatMessageView(
                    id=m.id,
                    sender_id=m.sender_id,
                    sender_name=OWN_LABEL if is_own else other,
                    content=m.content,
                    created_at=m.created_at,
                    is_own=is_own,
                    is_read=m.is_read,
                    pending=m.pending,
                )
            )
        return views

    async def _handle_messages(self, messages: List[MessageRead]) -> None:
        self_id = self.identity.current_identity()
        counterpart = self.synchronizer.selected
        if self_id is not None and counterpart is not None:
            self.index.apply_messages(
                counterpart, [m for m in messages if not m.pending], self_id
            )
        if self._on_update is not None:
            await self._on_update(self._views(messages))
