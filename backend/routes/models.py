"""Pydantic request/response models for API endpoints."""

from typing import Literal

from pydantic import BaseModel

from persona_chat.models import ProviderId


class UpdateSettings(BaseModel):
    provider: ProviderId | None = None
    api_endpoint: str | None = None
    api_key: str | None = None
    model: str | None = None
    debug_mode: bool | None = None


class CheckConnectionBody(BaseModel):
    provider: ProviderId
    api_endpoint: str
    api_key: str = ""
    model: str = ""


class CreateCharacter(BaseModel):
    name: str
    bio: str = ""
    persona: str = ""


class UpdateCharacter(BaseModel):
    name: str | None = None
    bio: str | None = None
    persona: str | None = None


class CreateLoreEntry(BaseModel):
    name: str
    content: str
    category: str = ""
    priority: int = 0
    enabled: bool = True


class UpdateLoreEntry(BaseModel):
    name: str | None = None
    content: str | None = None
    category: str | None = None
    priority: int | None = None
    enabled: bool | None = None


class CreateChat(BaseModel):
    character_id: str


class SendMessageBody(BaseModel):
    content: str


class ChooseBody(BaseModel):
    choice_id: str


GroupByParam = Literal["character", "provider", "character_provider"]
