"""Chat actions: send a message, ask for a Reality invite, test a connection.

send_message flow:
  1. Append the user's message to the chat.
  2. Build the persona + lore system prompt and the recent history window.
  3. Call the model through the session (usage + debug accounted there).
  4. Classify the reply:
       text     → append an ai text message
       reality  → NarrativeEngine.create: pending Reality + invite message
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from persona_chat.classifier import classify
from persona_chat.llm import LLMError, require_credentials
from persona_chat.models import (
    ChatMessage,
    DebugTrace,
    Message,
    ModelResponse,
    Reality,
    RealityResponse,
    Settings,
)
from persona_chat.narrative import NarrativeEngine, load_chat_character
from persona_chat.prompts import build_chat_messages, build_suggest_messages
from persona_chat.session import Session

logger = logging.getLogger(__name__)

CONNECTION_TEST_MESSAGES = [
    ChatMessage(role="system", content="You are an assistant."),
    ChatMessage(role="user", content='Reply with the words "connection successful".'),
]


class Reply(BaseModel):
    """What one chat action produced."""

    response: ModelResponse
    messages: list[Message] = Field(default_factory=list)
    reality: Reality | None = None
    debug: DebugTrace | None = None


class ConnectionCheck(BaseModel):
    ok: bool
    message: str


async def send_message(session: Session, chat_id: str, text: str) -> Reply:
    """Store the user's message and answer it in character."""
    text = text.strip()
    if not text:
        raise ValueError("Message must not be empty")

    with session.guard(chat_id):
        chat, character = load_chat_character(session, chat_id)
        user_msg = Message(chat_id=chat.id, sender="user", type="text", content=text)
        session.storage.append_messages(chat.id, [user_msg])

        history = session.storage.get_messages(chat.id)
        lore = session.storage.get_lorebook()
        messages = build_chat_messages(character, lore, history)
        call = await session.call_model(character, messages)
        response = classify(call.text)

        if isinstance(response, RealityResponse):
            reality, invite = NarrativeEngine(session).create(chat.id, response)
            return Reply(
                response=response,
                messages=[user_msg, invite],
                reality=reality,
                debug=call.debug,
            )

        ai_msg = Message(chat_id=chat.id, sender="ai", type="text", content=response.content)
        session.storage.append_messages(chat.id, [ai_msg])
        return Reply(response=response, messages=[user_msg, ai_msg], debug=call.debug)


async def suggest_reality(session: Session, chat_id: str) -> Reply:
    """Ask the character for a Reality invite based on the conversation.

    A reply that is not a valid payload is returned as-is and nothing is stored.
    """
    with session.guard(chat_id):
        chat, character = load_chat_character(session, chat_id)
        history = session.storage.get_messages(chat.id)
        lore = session.storage.get_lorebook()
        messages = build_suggest_messages(character, lore, history)
        call = await session.call_model(character, messages)
        response = classify(call.text)

        if not isinstance(response, RealityResponse):
            logger.warning("suggestion for chat %s came back as plain text", chat.id)
            return Reply(response=response, debug=call.debug)

        reality, invite = NarrativeEngine(session).create(chat.id, response)
        return Reply(response=response, messages=[invite], reality=reality, debug=call.debug)


async def check_connection(session: Session, settings: Settings | None = None) -> ConnectionCheck:
    """Send a tiny fixed prompt. Never raises for provider failures."""
    if settings is None:
        settings = session.storage.get_settings()
    try:
        require_credentials(settings)
        provider = session.provider_factory(settings.provider)
        completion = await provider.invoke(
            settings.api_endpoint, settings.api_key, settings.model, CONNECTION_TEST_MESSAGES
        )
    except LLMError as e:
        return ConnectionCheck(ok=False, message=str(e))

    reply = completion.text
    preview = reply[:50] + ("..." if len(reply) > 50 else "")
    return ConnectionCheck(ok=True, message=f"Connection successful! Reply: {preview}")

