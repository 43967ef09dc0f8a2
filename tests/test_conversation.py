"""Tests for chat actions: send_message, suggest_reality, check_connection."""

import json

import pytest

from persona_chat.conversation import check_connection, send_message, suggest_reality
from persona_chat.llm import MissingCredential, TransportError
from persona_chat.models import Message, RealityResponse, Settings, TextResponse
from persona_chat.narrative import NotFoundError
from persona_chat.prompts import SUGGEST_REQUEST
from persona_chat.session import Busy, Session

PAYLOAD = {
    "type": "reality",
    "title": "Night Market",
    "paragraph": "Lanterns flicker on along the river.",
    "choices": [{"id": "1", "label": "Follow the music"}],
}
FENCED = "Come with me!\n```json\n" + json.dumps(PAYLOAD) + "\n```"


# ── send_message ────────────────────────────────────────


async def test_text_reply_is_stored(session, provider, chat, storage):
    provider.reply("Welcome back, traveller!")
    reply = await send_message(session, chat.id, "  Hello Mira  ")

    assert reply.response == TextResponse(content="Welcome back, traveller!")
    assert reply.reality is None
    stored = storage.get_messages(chat.id)
    assert [(m.sender, m.content) for m in stored] == [
        ("user", "Hello Mira"),
        ("ai", "Welcome back, traveller!"),
    ]
    assert storage.get_chat(chat.id).last_message == "Welcome back, traveller!"


async def test_prompt_has_persona_and_history(session, provider, chat, storage):
    storage.append_messages(chat.id, [
        Message(chat_id=chat.id, sender="user", content="earlier"),
        Message(chat_id=chat.id, sender="ai", content="indeed"),
    ])
    provider.reply("ok")
    await send_message(session, chat.id, "now")

    messages = provider.calls[0]["messages"]
    assert messages[0].role == "system"
    assert messages[0].content.startswith("You are Mira. A cheerful innkeeper.")
    assert [(m.role, m.content) for m in messages[1:]] == [
        ("user", "earlier"),
        ("assistant", "indeed"),
        ("user", "now"),
    ]


async def test_payload_reply_creates_pending_reality(session, provider, chat, storage):
    provider.reply(FENCED)
    reply = await send_message(session, chat.id, "Show me something fun")

    assert isinstance(reply.response, RealityResponse)
    assert reply.reality.status == "pending"
    assert [c.id for c in reply.reality.paragraphs[0].choices] == ["1", "end"]
    invite = storage.get_messages(chat.id)[-1]
    assert invite.type == "reality"
    assert invite.metadata == {"reality_id": reply.reality.id}
    assert storage.get_chat(chat.id).last_message == "[Reality]"


async def test_invites_are_not_sent_back_to_the_model(session, provider, chat):
    provider.reply(FENCED)
    await send_message(session, chat.id, "first")
    provider.reply("plain")
    await send_message(session, chat.id, "second")

    contents = [m.content for m in provider.calls[1]["messages"][1:]]
    assert contents == ["first", "second"]


async def test_blank_message_rejected(session, provider, chat):
    with pytest.raises(ValueError):
        await send_message(session, chat.id, "   ")
    assert provider.calls == []


async def test_unknown_chat(session):
    with pytest.raises(NotFoundError):
        await send_message(session, "missing", "hi")


async def test_missing_key_raises(storage, provider, chat):
    session = Session(storage, provider_factory=lambda _pid: provider)
    with pytest.raises(MissingCredential):
        await send_message(session, chat.id, "hi")
    assert provider.calls == []


async def test_busy_chat(session, chat):
    with session.guard(chat.id):
        with pytest.raises(Busy):
            await send_message(session, chat.id, "hi")


# ── suggest_reality ─────────────────────────────────────


async def test_suggest_creates_invite(session, provider, chat, storage):
    provider.reply(FENCED)
    reply = await suggest_reality(session, chat.id)

    assert reply.reality is not None
    assert reply.messages[0].type == "reality"
    assert provider.calls[0]["messages"][-1].content == SUGGEST_REQUEST
    assert storage.get_reality(reply.reality.id).status == "pending"


async def test_suggest_plain_text_stores_nothing(session, provider, chat, storage):
    provider.reply("Sorry, I'm not in the mood for stories.")
    reply = await suggest_reality(session, chat.id)

    assert isinstance(reply.response, TextResponse)
    assert reply.reality is None
    assert storage.get_messages(chat.id) == []
    assert storage.list_realities(chat.id) == []


# ── check_connection ────────────────────────────────────


async def test_connection_ok_with_preview(session, provider):
    provider.reply("connection successful " * 5)
    result = await check_connection(session)
    assert result.ok is True
    assert result.message.startswith("Connection successful! Reply: connection successful")
    assert result.message.endswith("...")


async def test_connection_short_reply_not_truncated(session, provider):
    provider.reply("connection successful")
    result = await check_connection(session)
    assert result.message == "Connection successful! Reply: connection successful"


async def test_connection_failure_reported(session, provider):
    provider.fail(TransportError("LLM backend returned HTTP 401: bad key", status=401))
    result = await check_connection(session)
    assert result.ok is False
    assert "401" in result.message


async def test_connection_uses_given_settings(session, provider):
    provider.reply("ok")
    await check_connection(session, Settings(api_key="other", model="gpt-4o"))
    assert provider.calls[0]["credential"] == "other"
    assert provider.calls[0]["model"] == "gpt-4o"


async def test_connection_missing_key_reported(session, provider):
    result = await check_connection(session, Settings(api_key=""))
    assert result.ok is False
    assert "API key" in result.message
    assert provider.calls == []
