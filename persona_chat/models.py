"""Core domain models.

Every component (provider adapter, prompt assembler, classifier, narrative
engine, storage) operates on these types. Pydantic is used for validation and
serialisation at every data boundary: JSON files on disk, HTTP bodies, and
the structured payloads embedded in model output.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Provider catalog + user settings
# ---------------------------------------------------------------------------

ProviderId = Literal["openai", "gemini", "deepseek", "moonshot", "custom"]

ProviderStyle = Literal["chat_completion", "generate_content"]


class ProviderProfile(BaseModel):
    """A compiled-in LLM provider entry. Immutable."""

    model_config = ConfigDict(frozen=True)

    id: ProviderId
    name: str
    default_endpoint: str
    models: tuple[str, ...] = ()
    style: ProviderStyle = "chat_completion"


class Settings(BaseModel):
    """User settings read before every model call."""

    provider: ProviderId = "openai"
    api_endpoint: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    debug_mode: bool = False


# ---------------------------------------------------------------------------
# Characters, lore, chats
# ---------------------------------------------------------------------------

class Character(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    bio: str = ""
    persona: str = ""
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class LoreEntry(BaseModel):
    """A world-building fact injected into prompts while enabled."""

    id: str = Field(default_factory=new_id)
    name: str
    content: str
    category: str = ""
    priority: int = 0
    enabled: bool = True


class Chat(BaseModel):
    """A conversation with one character."""

    id: str = Field(default_factory=new_id)
    character_id: str
    name: str
    last_message: str = ""
    last_message_time: int = Field(default_factory=now_ms)
    unread_count: int = 0


Sender = Literal["user", "ai", "system"]

MessageType = Literal["text", "image", "voice", "link", "system", "reality"]


class Message(BaseModel):
    """A single entry in a chat's append-only message log."""

    id: str = Field(default_factory=new_id)
    chat_id: str
    sender: Sender
    type: MessageType = "text"
    content: str
    metadata: dict[str, Any] | None = None  # {"reality_id": ...} on invites
    timestamp: int = Field(default_factory=now_ms)


# ---------------------------------------------------------------------------
# Reality (branching narrative)
# ---------------------------------------------------------------------------

RealityStatus = Literal["pending", "active", "ended"]

END_CHOICE_ID = "end"


class RealityChoice(BaseModel):
    # Models often emit numeric ids ("id": 1); keep them as strings.
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    label: str


class RealityParagraph(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str
    choices: list[RealityChoice] | None = None
    chosen_id: str | None = None

    def chosen_label(self) -> str | None:
        for choice in self.choices or []:
            if choice.id == self.chosen_id:
                return choice.label
        return None


class Reality(BaseModel):
    """One branching interactive-fiction session attached to a chat."""

    id: str = Field(default_factory=new_id)
    chat_id: str
    status: RealityStatus = "pending"
    title: str
    paragraphs: list[RealityParagraph] = Field(default_factory=list)
    summary: str | None = None
    created_at: int = Field(default_factory=now_ms)

    @property
    def current_paragraph(self) -> RealityParagraph | None:
        return self.paragraphs[-1] if self.paragraphs else None


# ---------------------------------------------------------------------------
# Provider I/O
# ---------------------------------------------------------------------------

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """Provider-agnostic prompt message."""

    role: Role
    content: str


class Usage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def is_empty(self) -> bool:
        return not (self.prompt or self.completion or self.total)


class Completion(BaseModel):
    """Normalised result of one provider call."""

    text: str
    usage: Usage | None = None


# ---------------------------------------------------------------------------
# Classified model responses
# ---------------------------------------------------------------------------

class TextResponse(BaseModel):
    type: Literal["text"] = "text"
    content: str


class RealityResponse(BaseModel):
    type: Literal["reality"] = "reality"
    title: str
    paragraph: str
    choices: list[RealityChoice]


ModelResponse = TextResponse | RealityResponse


# ---------------------------------------------------------------------------
# Token usage + debug traces
# ---------------------------------------------------------------------------

class TokenUsageRecord(BaseModel):
    """One provider call's token consumption. Append-only."""

    id: str = Field(default_factory=new_id)
    character_id: str
    character_name: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    timestamp: int = Field(default_factory=now_ms)


class TokenStats(BaseModel):
    """Aggregate over usage records. Derived, never persisted."""

    character_id: str | None = None
    character_name: str | None = None
    provider: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    request_count: int = 0


class DebugTrace(BaseModel):
    """Exact request/response of one model call, for interactive inspection."""

    messages: list[ChatMessage]
    raw_response: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    timestamp: int = Field(default_factory=now_ms)
