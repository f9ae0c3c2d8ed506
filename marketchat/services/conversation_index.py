"""In-memory, ordered index of conversations keyed by counterpart id."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from marketchat.models.profile import AppRole
from marketchat.schemas.conversation import Conversation, ConversationContext, ProfileRead
from marketchat.schemas.message import MessageRead

UNKNOWN_PARTICIPANT = "Unknown user"


def interest_preview(product_name: Optional[str]) -> str:
    return f"Interested in {product_name}" if product_name else "New conversation"


class ConversationIndex:
    """
    Ordered conversations for the current user.

    Entries are derived from messages (rebuild/apply_messages) or synthesized
    from external context; either way there is at most one entry per
    counterpart.
    """

    def __init__(self) -> None:
        self._conversations: List[Conversation] = []
        self._selected: Optional[UUID] = None

    def __len__(self) -> int:
        return len(self._conversations)

    @property
    def conversations(self) -> List[Conversation]:
        return list(self._conversations)

    @property
    def selected(self) -> Optional[Conversation]:
        return self.get(self._selected) if self._selected is not None else None

    @property
    def selected_id(self) -> Optional[UUID]:
        return self._selected

    def get(self, counterpart_id: UUID) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.id == counterpart_id:
                return conversation
        return None

    def select(self, counterpart_id: Optional[UUID]) -> Optional[Conversation]:
        self._selected = counterpart_id
        return self.selected

    def clear(self) -> None:
        self._conversations = []
        self._selected = None

    def upsert_from_external_context(self, context: ConversationContext) -> Conversation:
        """Add (at the top) an entry for the context's counterpart unless one exists; select it."""
        conversation = self.get(context.counterpart_id)
        if conversation is None:
            conversation = Conversation(
                id=context.counterpart_id,
                participant_name=context.counterpart_name,
                participant_type=context.counterpart_type,
                last_message=interest_preview(context.product_name),
                avatar_url=context.avatar_url,
                phone_number=context.counterpart_phone,
                product_id=context.product_id,
                product_name=context.product_name,
            )
            self._conversations.insert(0, conversation)
        else:
            # Fill in what the context knows and the existing entry does not
            if conversation.phone_number is None:
                conversation.phone_number = context.counterpart_phone
            if conversation.product_id is None:
                conversation.product_id = context.product_id
                conversation.product_name = context.product_name
        self._selected = conversation.id
        return conversation

    def filter(self, search_term: str) -> List[Conversation]:
        """Case-insensitive substring match on participant name, order preserved."""
        term = (search_term or "").lower()
        if not term:
            return self.conversations
        return [c for c in self._conversations if term in c.participant_name.lower()]

    def apply_messages(
        self,
        counterpart_id: UUID,
        messages: Iterable[MessageRead],
        self_id: UUID,
    ) -> Optional[Conversation]:
        """Recompute preview, timestamp and unread count from the pair's full message set."""
        conversation = self.get(counterpart_id)
        if conversation is None:
            return None
        _derive_into(conversation, list(messages), self_id)
        return conversation

    def rebuild(
        self,
        messages: Iterable[MessageRead],
        self_id: UUID,
        profiles: Optional[Mapping[UUID, ProfileRead]] = None,
    ) -> List[Conversation]:
        """
        Derive every conversation from the messages touching self_id.

        Entries that only came from external context (no messages yet) are
        kept at the top; derived entries follow, most recent first.
        """
        profiles = profiles or {}
        by_counterpart: Dict[UUID, List[MessageRead]] = {}
        for msg in messages:
            if msg.sender_id == self_id:
                counterpart = msg.recipient_id
            elif msg.recipient_id == self_id:
                counterpart = msg.sender_id
            else:
                continue
            by_counterpart.setdefault(counterpart, []).append(msg)

        derived: List[Conversation] = []
        for counterpart, rows in by_counterpart.items():
            conversation = self.get(counterpart) or Conversation(
                id=counterpart, participant_name=UNKNOWN_PARTICIPANT
            )
            profile = profiles.get(counterpart)
            if profile is not None:
                conversation.participant_name = profile.full_name
                conversation.avatar_url = profile.avatar_url or conversation.avatar_url
                conversation.phone_number = (
                    profile.phone_number or conversation.phone_number
                )
                if profile.role is not None:
                    conversation.participant_type = AppRole(profile.role)
            _derive_into(conversation, rows, self_id)
            derived.append(conversation)

        derived.sort(key=lambda c: c.last_message_at, reverse=True)
        context_only = [c for c in self._conversations if c.id not in by_counterpart]
        self._conversations = context_only + derived
        return self.conversations


def _derive_into(
    conversation: Conversation, messages: List[MessageRead], self_id: UUID
) -> None:
    if not messages:
        conversation.unread_count = 0
        return
    latest = max(messages, key=lambda m: m.created_at)
    conversation.last_message = latest.content
    conversation.last_message_at = latest.created_at
    conversation.unread_count = sum(
        1 for m in messages if m.recipient_id == self_id and not m.is_read
    )
