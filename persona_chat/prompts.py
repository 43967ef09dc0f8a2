"""Prompt assembly: Handlebars templates rendered into provider-agnostic messages.

Four prompt families share the same persona + lore header:

  chat      - general conversation; the model may answer in free text or
              open a Reality with a fenced JSON payload.
  suggest   - explicitly ask the model for a Reality invite.
  continue  - next narrative beat after the user picked a choice.
  summary   - first-person recap once the user ends a Reality.

Chat and suggest carry a window of recent chat messages. Continue and summary
reason over the Reality's paragraph/choice history instead, so they get a
standalone system prompt and a single user turn.

User-authored text is inserted with triple-stash ({{{x}}}) so names and
personas reach the model unescaped.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pybars

from persona_chat.models import (
    ChatMessage,
    Character,
    LoreEntry,
    Message,
    Reality,
    RealityChoice,
    Role,
)

DEFAULT_HISTORY_LIMIT = 20
SUGGEST_HISTORY_LIMIT = 10

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

HEADER_TEMPLATE = (
    "You are {{{char.name}}}. {{{char.persona}}}\n\n"
    "{{#if lore}}[World Lore]\n"
    "{{#each lore}}{{{name}}}: {{{content}}}\n{{/each}}"
    "\n{{/if}}"
)

_PAYLOAD_EXAMPLE = """```json
{
  "type": "reality",
  "title": "{{{title}}}",
  "paragraph": "{{{paragraph}}}",
  "choices": [
    {"id": "1", "label": "Option 1"},
    {"id": "2", "label": "Option 2"}
  ]
}
```"""

CHAT_INSTRUCTIONS = (
    "Stay in character and reply to the user. You may answer with a normal "
    "text message, or open a \"Reality\": an interactive-fiction scene the "
    "user can play through.\n\n"
    "To open a Reality, reply with JSON in exactly this format:\n"
    + _PAYLOAD_EXAMPLE
    + "\n\nFor ordinary conversation, reply with plain text only and no JSON."
)

SUGGEST_INSTRUCTIONS = (
    "Based on the conversation so far, create an engaging interactive scene "
    "(a \"Reality\"). The scene should:\n"
    "1. Relate to what you and the user have been talking about\n"
    "2. Open with a vivid, inviting description\n"
    "3. Offer 2-3 meaningful choices\n\n"
    "Reply with JSON in exactly this format:\n"
    + _PAYLOAD_EXAMPLE
)

STORY_SO_FAR_TEMPLATE = (
    "You are playing through an interactive story titled \"{{{title}}}\" "
    "with the user.\n\n"
    "[Story so far]\n"
    "{{#each paragraphs}}{{{content}}}\n"
    "{{#if chosen_label}}[User chose: {{{chosen_label}}}]\n{{/if}}"
    "{{/each}}\n"
)

CONTINUE_INSTRUCTIONS = (
    "Continue the story from the user's latest choice. Reply with JSON in "
    "exactly this format:\n"
    + _PAYLOAD_EXAMPLE
    + "\n\nIf the story should end here, make the choices array empty."
)

SUMMARY_INSTRUCTIONS = (
    "The story has ended. In your own voice, as {{{char.name}}}, write a short "
    "first-person recap (2-4 sentences) of what happened between you and the "
    "user in this story, so you can remember it later. Reply with plain text "
    "only, no JSON and no title."
)

_CHAT_SYSTEM_TEMPLATE = HEADER_TEMPLATE + CHAT_INSTRUCTIONS
_SUGGEST_SYSTEM_TEMPLATE = HEADER_TEMPLATE + SUGGEST_INSTRUCTIONS
_CONTINUE_SYSTEM_TEMPLATE = HEADER_TEMPLATE + STORY_SO_FAR_TEMPLATE + CONTINUE_INSTRUCTIONS
_SUMMARY_SYSTEM_TEMPLATE = HEADER_TEMPLATE + STORY_SO_FAR_TEMPLATE + SUMMARY_INSTRUCTIONS

SUGGEST_REQUEST = "Please create an interactive scene based on our conversation."
CONTINUE_REQUEST = "Please continue the story."
SUMMARY_REQUEST = "Please recap our story."


# ── Context building ─────────────────────────────────────


def enabled_lore(entries: Iterable[LoreEntry]) -> list[LoreEntry]:
    """Enabled entries, highest priority first. Ties keep insertion order."""
    return sorted(
        (e for e in entries if e.enabled),
        key=lambda e: e.priority,
        reverse=True,
    )


def build_context(
    character: Character,
    lore: Iterable[LoreEntry],
    title: str | None = None,
    paragraphs: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Assemble template variables for the system prompt templates."""
    ctx: dict[str, Any] = {
        "char": {"name": character.name, "persona": character.persona},
        "lore": [
            {"name": e.name, "content": e.content, "category": e.category}
            for e in enabled_lore(lore)
        ],
        # placeholders shown inside the JSON example
        "title": title if title is not None else "Scene title",
        "paragraph": "Scene description" if title is None else "What happens next",
    }
    if paragraphs is not None:
        ctx["paragraphs"] = paragraphs
    return ctx


def build_system_prompt(character: Character, lore: Iterable[LoreEntry]) -> str:
    """Persona line + lore block + the two legal response shapes."""
    return render_prompt(_CHAT_SYSTEM_TEMPLATE, build_context(character, lore))


# ── History window ───────────────────────────────────────

_SENDER_ROLES: dict[str, Role] = {
    "user": "user",
    "ai": "assistant",
    "system": "assistant",  # Reality recaps are carried as assistant memory
}


def is_invite(message: Message) -> bool:
    return message.type == "reality" or bool(
        message.metadata and message.metadata.get("reality_id")
    )


def history_window(
    messages: Iterable[Message], limit: int = DEFAULT_HISTORY_LIMIT
) -> list[ChatMessage]:
    """The last `limit` text-bearing messages, Reality invites excluded."""
    eligible = [m for m in messages if m.type == "text" and not is_invite(m)]
    if limit <= 0:
        return []
    return [
        ChatMessage(role=_SENDER_ROLES[m.sender], content=m.content)
        for m in eligible[-limit:]
    ]


# ── Message lists ────────────────────────────────────────


def build_chat_messages(
    character: Character,
    lore: Iterable[LoreEntry],
    messages: Iterable[Message],
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[ChatMessage]:
    system = ChatMessage(role="system", content=build_system_prompt(character, lore))
    return [system, *history_window(messages, limit)]


def build_suggest_messages(
    character: Character,
    lore: Iterable[LoreEntry],
    messages: Iterable[Message],
    limit: int = SUGGEST_HISTORY_LIMIT,
) -> list[ChatMessage]:
    prompt = render_prompt(_SUGGEST_SYSTEM_TEMPLATE, build_context(character, lore))
    return [
        ChatMessage(role="system", content=prompt),
        *history_window(messages, limit),
        ChatMessage(role="user", content=SUGGEST_REQUEST),
    ]


def paragraph_history(
    reality: Reality, choice: RealityChoice | None = None
) -> list[dict[str, Any]]:
    """[{content, chosen_label}] for every paragraph.

    When `choice` is given it overrides the last paragraph's label: the
    choice being submitted is not stored until the call succeeds.
    """
    history = [
        {"content": p.content, "chosen_label": p.chosen_label()}
        for p in reality.paragraphs
    ]
    if choice is not None and history:
        history[-1]["chosen_label"] = choice.label
    return history


def build_continue_messages(
    character: Character,
    lore: Iterable[LoreEntry],
    title: str,
    history: list[dict[str, Any]],
) -> list[ChatMessage]:
    ctx = build_context(character, lore, title=title, paragraphs=history)
    return [
        ChatMessage(role="system", content=render_prompt(_CONTINUE_SYSTEM_TEMPLATE, ctx)),
        ChatMessage(role="user", content=CONTINUE_REQUEST),
    ]


def build_summary_messages(
    character: Character,
    lore: Iterable[LoreEntry],
    title: str,
    history: list[dict[str, Any]],
) -> list[ChatMessage]:
    ctx = build_context(character, lore, title=title, paragraphs=history)
    return [
        ChatMessage(role="system", content=render_prompt(_SUMMARY_SYSTEM_TEMPLATE, ctx)),
        ChatMessage(role="user", content=SUMMARY_REQUEST),
    ]
