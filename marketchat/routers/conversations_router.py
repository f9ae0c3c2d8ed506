"""Conversations API: list, history, send, mark read, and a live WebSocket feed."""

from __future__ import annotations

import json
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi_pagination import Page, Params, paginate

from marketchat.adapters.sql_store import SqlMessageStore
from marketchat.core.errors import ValidationError
from marketchat.core.identity import StaticIdentityProvider
from marketchat.infra.logging_config import get_logger
from marketchat.routers.utils.dependencies import get_current_user_id, get_message_store
from marketchat.schemas.conversation import Conversation
from marketchat.schemas.message import (
    ChatMessageView,
    ConversationSnapshot,
    MessageCreate,
    MessageRead,
)
from marketchat.schemas.notice import Notice
from marketchat.services.chat_session import ChatSession
from marketchat.services.message_synchronizer import MessageSynchronizer

logger = get_logger("conversations_router")

conversations_router = APIRouter(prefix="/conversations", tags=["Conversation"])


async def _synchronizer_for(
    user_id: UUID, store: SqlMessageStore
) -> MessageSynchronizer:
    identity = StaticIdentityProvider(user_id)
    await identity.start()
    return MessageSynchronizer(store, identity)


@conversations_router.get("", response_model=Page[Conversation])
async def list_conversations(
    params: Params = Depends(),
    q: Optional[str] = Query(None, description="Filter by participant name"),
    user_id: UUID = Depends(get_current_user_id),
    store: SqlMessageStore = Depends(get_message_store),
) -> Page[Conversation]:
    """Conversations of the caller, most recent first."""
    identity = StaticIdentityProvider(user_id)
    await identity.start()
    session = ChatSession(store, identity)
    await session.load_conversations()
    session.search_term = q or ""
    return paginate(session.visible_conversations(), params)


@conversations_router.get(
    "/{counterpart_id}/messages", response_model=list[MessageRead]
)
async def get_history(
    counterpart_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    store: SqlMessageStore = Depends(get_message_store),
) -> list[MessageRead]:
    """Full history between the caller and the counterpart, oldest first."""
    synchronizer = await _synchronizer_for(user_id, store)
    return await synchronizer.fetch_history(user_id, counterpart_id)


@conversations_router.post(
    "/{counterpart_id}/messages", response_model=MessageRead, status_code=201
)
async def send_message(
    counterpart_id: UUID,
    body: MessageCreate,
    user_id: UUID = Depends(get_current_user_id),
    store: SqlMessageStore = Depends(get_message_store),
) -> MessageRead:
    """Store a message; subscribers of the change feed are notified."""
    synchronizer = await _synchronizer_for(user_id, store)
    return await synchronizer.send(user_id, counterpart_id, body.content)


@conversations_router.post("/{counterpart_id}/read", response_model=dict[str, Any])
async def mark_read(
    counterpart_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    store: SqlMessageStore = Depends(get_message_store),
) -> dict[str, Any]:
    """Mark every message the counterpart sent the caller as read."""
    updated = await store.mark_read(user_id, counterpart_id)
    return {"data": {"updated": updated}}


@conversations_router.websocket("/{counterpart_id}/ws")
async def conversation_socket(
    websocket: WebSocket,
    counterpart_id: UUID,
    user_id: UUID = Query(...),
    store: SqlMessageStore = Depends(get_message_store),
) -> None:
    """
    Push a snapshot of the conversation on connect and after every relevant change.

    Accepts {"type": "send", "content": "..."} and {"type": "read"} frames.
    Failures the session reports as notices are pushed as a snapshot with
    notice set.
    """
    await websocket.accept()
    queued: list[Notice] = []

    async def push(
        views: list[ChatMessageView], notice: Optional[Notice] = None
    ) -> None:
        snapshot = ConversationSnapshot(
            counterpart_id=counterpart_id, messages=views, notice=notice
        )
        await websocket.send_json(snapshot.model_dump(mode="json"))

    def on_notice(notice: Notice) -> None:
        logger.info("Notice for %s: %s %s", user_id, notice.title, notice.description)
        queued.append(notice)

    async def flush_notices() -> None:
        while queued:
            await push(session.message_views(), queued.pop(0))

    identity = StaticIdentityProvider(user_id)
    await identity.start()
    session = ChatSession(store, identity, on_notice=on_notice, on_update=push)
    await session.open()
    await session.select(counterpart_id)
    await flush_notices()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await websocket.send_json({"error": "Frame is not valid JSON"})
                continue
            if not isinstance(frame, dict):
                await websocket.send_json({"error": "Frame must be a JSON object"})
                continue
            kind = frame.get("type")
            if kind == "send":
                content = frame.get("content", "")
                if not isinstance(content, str):
                    await websocket.send_json({"error": "content must be a string"})
                    continue
                try:
                    await session.send(content)
                except ValidationError as e:
                    await websocket.send_json({"error": e.message})
            elif kind == "read":
                await session.mark_selected_read()
            else:
                await websocket.send_json({"error": f"Unknown frame type: {kind}"})
            await flush_notices()
    except WebSocketDisconnect:
        logger.debug("Socket closed for %s", user_id)
    finally:
        await session.close()
