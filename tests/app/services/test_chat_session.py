"""Tests for ChatSession."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio

from marketchat.core.errors import ValidationError
from marketchat.core.identity import IdentityProvider
from marketchat.schemas.conversation import ConversationContext
from marketchat.services.chat_session import GREETING, OTHER_LABEL, OWN_LABEL, ChatSession

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def me():
    return uuid4()


@pytest_asyncio.fixture
async def identity(me):
    provider = IdentityProvider()
    await provider.sign_in(me)
    return provider


@pytest.fixture
def context():
    return ConversationContext(
        counterpart_id=uuid4(),
        counterpart_name="Nimal Perera",
        counterpart_phone="+94 77 123 4567",
        product_id="p-42",
        product_name="Red Onions",
    )


@pytest_asyncio.fixture
async def session(memory_store, identity):
    chat = ChatSession(memory_store, identity)
    await chat.open()
    yield chat
    await chat.close()


@pytest.mark.asyncio
async def test_open_loads_conversations(memory_store, identity, me):
    farmer = uuid4()
    memory_store.seed(farmer, me, "hello", created_at=T0)
    chat = ChatSession(memory_store, identity)

    await chat.open()

    assert [c.id for c in chat.index.conversations] == [farmer]
    assert chat.index.get(farmer).unread_count == 1
    await chat.close()


@pytest.mark.asyncio
async def test_start_from_context_prefills_greeting(session, context):
    conversation = await session.start_from_context(context)

    assert session.draft == GREETING.format(product="Red Onions")
    assert session.index.selected_id == context.counterpart_id
    assert session.synchronizer.selected == context.counterpart_id
    assert conversation.last_message == "Interested in Red Onions"
    assert session.notices[-1].title == "Chat Started"
    assert session.notices[-1].description == "Started conversation with Nimal Perera"


@pytest.mark.asyncio
async def test_start_from_context_keeps_existing_draft(session, context):
    session.draft = "Already typing"
    await session.start_from_context(context)
    await session.start_from_context(context)

    assert session.draft == "Already typing"
    assert len(session.index) == 1


@pytest.mark.asyncio
async def test_send_draft_clears_it(session, context, memory_store, me):
    await session.start_from_context(context)

    stored = await session.send()

    assert stored.content == GREETING.format(product="Red Onions")
    assert session.draft == ""
    assert memory_store.insert_calls == [
        (me, context.counterpart_id, stored.content)
    ]
    assert [m.content for m in session.synchronizer.messages] == [stored.content]
    assert session.index.get(context.counterpart_id).last_message == stored.content


@pytest.mark.asyncio
async def test_send_failure_keeps_draft_and_notifies(session, context, memory_store):
    await session.start_from_context(context)
    memory_store.fail_inserts = True

    assert await session.send() is None

    assert session.draft == GREETING.format(product="Red Onions")
    assert session.notices[-1].title == "Error sending message"
    assert session.notices[-1].variant == "destructive"


@pytest.mark.asyncio
async def test_send_blank_raises(session, context, memory_store):
    await session.start_from_context(context)
    with pytest.raises(ValidationError):
        await session.send("   ")
    assert memory_store.insert_calls == []


@pytest.mark.asyncio
async def test_load_conversations_failure_notifies(memory_store, identity):
    chat = ChatSession(memory_store, identity)

    async def broken(user_id):
        from marketchat.core.errors import StoreError

        raise StoreError("timeout")

    memory_store.list_for_participant = broken
    assert await chat.load_conversations() == []
    assert chat.notices[-1].title == "Error loading conversations"


@pytest.mark.asyncio
async def test_contact_details_with_phone(session, context):
    await session.start_from_context(context)

    notice = session.contact_details()

    assert notice.title == "Farmer Contact"
    assert notice.description == "Nimal Perera: +94 77 123 4567"


@pytest.mark.asyncio
async def test_contact_details_without_phone(session):
    notice = session.contact_details()
    assert notice.title == "Contact"
    assert notice.description == "Contact feature available for marketplace connections"


@pytest.mark.asyncio
async def test_message_views_label_ownership(session, context, memory_store, me):
    farmer = context.counterpart_id
    memory_store.seed(farmer, me, "How many kilos?", created_at=T0)
    memory_store.seed(me, farmer, "Fifty", created_at=T0 + timedelta(minutes=1))

    await session.start_from_context(context)
    views = session.message_views()

    assert [(v.sender_name, v.is_own) for v in views] == [
        ("Nimal Perera", False),
        (OWN_LABEL, True),
    ]


@pytest.mark.asyncio
async def test_message_views_fallback_label(session, memory_store, me):
    stranger = uuid4()
    memory_store.seed(stranger, me, "hi", created_at=T0)

    await session.synchronizer.select(stranger)

    assert [v.sender_name for v in session.message_views()] == [OTHER_LABEL]


@pytest.mark.asyncio
async def test_on_update_receives_views(memory_store, identity, context, me):
    received = []

    async def on_update(views):
        received.append([v.content for v in views])

    chat = ChatSession(memory_store, identity, on_update=on_update)
    await chat.open()
    await chat.start_from_context(context)
    await chat.send("Is it organic?")

    assert received[-1] == ["Is it organic?"]
    await chat.close()


@pytest.mark.asyncio
async def test_sign_out_clears_index(session, context, identity):
    await session.start_from_context(context)
    await identity.sign_out()

    assert len(session.index) == 0
    assert session.draft == ""
    assert session.synchronizer.subscribed is False


@pytest.mark.asyncio
async def test_new_user_after_sign_out_has_no_selection(
    session, context, identity, memory_store
):
    carol = uuid4()
    await session.start_from_context(context)
    await identity.sign_out()
    await identity.sign_in(carol)

    assert session.index.selected_id is None
    assert session.synchronizer.selected is None
    assert await session.send("hi") is None
    assert memory_store.insert_calls == []


@pytest.mark.asyncio
async def test_direct_user_switch_clears_index(session, context, identity):
    await session.start_from_context(context)

    await identity.sign_in(uuid4())

    assert len(session.index) == 0
    assert session.draft == ""
    assert session.synchronizer.selected is None


@pytest.mark.asyncio
async def test_mark_selected_read(session, context, memory_store, me):
    farmer = context.counterpart_id
    memory_store.seed(farmer, me, "one", created_at=T0)
    memory_store.seed(farmer, me, "two", created_at=T0 + timedelta(minutes=1))
    await session.load_conversations()
    await session.start_from_context(context)
    assert session.index.get(farmer).unread_count == 2

    assert await session.mark_selected_read() == 2

    assert session.index.get(farmer).unread_count == 0
    assert all(m.is_read for m in session.synchronizer.messages)


@pytest.mark.asyncio
async def test_mark_selected_read_without_selection(session):
    assert await session.mark_selected_read() == 0


@pytest.mark.asyncio
async def test_search_term_filters_visible(session, memory_store, me):
    a, b = uuid4(), uuid4()
    memory_store.seed(a, me, "x", created_at=T0)
    memory_store.seed(b, me, "y", created_at=T0 + timedelta(minutes=1))
    await session.load_conversations()
    session.index.get(a).participant_name = "Kamala"
    session.index.get(b).participant_name = "Ruwan"

    session.search_term = "KAM"

    assert [c.id for c in session.visible_conversations()] == [a]
