"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM: reads and writes go through plain helper
methods that load and dump JSON via the pydantic models.

Directory layout:

    {base}/
      settings.json           ← Settings singleton (defaults merged on read)
      characters.json         ← list of Character
      lorebook.json           ← list of LoreEntry, insertion order kept
      chats.json              ← list of Chat
      messages/
        {chat_id}.json        ← append-only Message log per chat
      realities/
        {reality_id}.json     ← one Reality per file
      token_usage.json        ← append-only TokenUsageRecord list

Every action reads what it needs fresh and writes back once at the end.
Single local user: no locking, last writer wins.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from persona_chat.llm import get_profile
from persona_chat.models import (
    Character,
    Chat,
    LoreEntry,
    Message,
    Reality,
    Settings,
    TokenUsageRecord,
)

M = TypeVar("M", bound=BaseModel)

PREVIEW_LENGTH = 50

_PREVIEW_LABELS = {
    "image": "[Image]",
    "voice": "[Voice]",
    "link": "[Link]",
    "reality": "[Reality]",
}


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        (self._base / "messages").mkdir(exist_ok=True)
        (self._base / "realities").mkdir(exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False))

    def _read_list(self, filename: str, model: type[M]) -> list[M]:
        path = self._base / filename
        if not path.exists():
            return []
        return [model.model_validate(item) for item in self._read_json(path)]

    def _write_list(self, filename: str, items: list[BaseModel]) -> None:
        self._write_json(self._base / filename, [i.model_dump() for i in items])

    def _upsert(self, filename: str, model: type[M], item: M) -> M:
        """Replace the item with the same id, or append it."""
        items = self._read_list(filename, model)
        for i, existing in enumerate(items):
            if existing.id == item.id:
                items[i] = item
                break
        else:
            items.append(item)
        self._write_list(filename, items)
        return item

    def _delete(self, filename: str, model: type[M], item_id: str) -> bool:
        items = self._read_list(filename, model)
        kept = [i for i in items if i.id != item_id]
        if len(kept) == len(items):
            return False
        self._write_list(filename, kept)
        return True

    def _find(self, filename: str, model: type[M], item_id: str) -> M | None:
        for item in self._read_list(filename, model):
            if item.id == item_id:
                return item
        return None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> Settings:
        """Stored settings merged over defaults."""
        path = self._base / "settings.json"
        if not path.exists():
            return Settings()
        return Settings.model_validate(self._read_json(path))

    def update_settings(self, fields: dict[str, Any]) -> Settings:
        """Merge fields into settings and persist. Returns the full settings.

        Switching provider without an explicit endpoint/model resets them to
        the new provider's defaults.
        """
        current = self.get_settings()
        merged = current.model_dump()
        merged.update(fields)
        new_provider = fields.get("provider")
        if new_provider and new_provider != current.provider:
            profile = get_profile(new_provider)
            if "api_endpoint" not in fields:
                merged["api_endpoint"] = profile.default_endpoint
            if "model" not in fields:
                merged["model"] = profile.models[0] if profile.models else ""
        settings = Settings.model_validate(merged)
        self._write_json(self._base / "settings.json", settings.model_dump())
        return settings

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def list_characters(self) -> list[Character]:
        return sorted(self._read_list("characters.json", Character), key=lambda c: c.name)

    def get_character(self, character_id: str) -> Character | None:
        return self._find("characters.json", Character, character_id)

    def save_character(self, character: Character) -> Character:
        """Upsert a character by id."""
        return self._upsert("characters.json", Character, character)

    def delete_character(self, character_id: str) -> bool:
        return self._delete("characters.json", Character, character_id)

    # ------------------------------------------------------------------
    # Lorebook
    # ------------------------------------------------------------------

    def get_lorebook(self) -> list[LoreEntry]:
        """All entries in insertion order, enabled or not."""
        return self._read_list("lorebook.json", LoreEntry)

    def get_lore_entry(self, entry_id: str) -> LoreEntry | None:
        return self._find("lorebook.json", LoreEntry, entry_id)

    def save_lore_entry(self, entry: LoreEntry) -> LoreEntry:
        """Upsert by id. Updates keep the entry's original position."""
        return self._upsert("lorebook.json", LoreEntry, entry)

    def delete_lore_entry(self, entry_id: str) -> bool:
        return self._delete("lorebook.json", LoreEntry, entry_id)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def list_chats(self) -> list[Chat]:
        """Most recently active first."""
        chats = self._read_list("chats.json", Chat)
        return sorted(chats, key=lambda c: c.last_message_time, reverse=True)

    def get_chat(self, chat_id: str) -> Chat | None:
        return self._find("chats.json", Chat, chat_id)

    def save_chat(self, chat: Chat) -> Chat:
        return self._upsert("chats.json", Chat, chat)

    def delete_chat(self, chat_id: str) -> bool:
        """Delete a chat together with its messages and realities."""
        if not self._delete("chats.json", Chat, chat_id):
            return False
        self._messages_path(chat_id).unlink(missing_ok=True)
        for reality in self.list_realities(chat_id):
            self._reality_path(reality.id).unlink(missing_ok=True)
        return True

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    def _messages_path(self, chat_id: str) -> Path:
        return self._base / "messages" / f"{chat_id}.json"

    def get_messages(self, chat_id: str) -> list[Message]:
        """Messages of a chat, oldest first. Returns [] if none exist."""
        path = self._messages_path(chat_id)
        if not path.exists():
            return []
        messages = [Message.model_validate(m) for m in self._read_json(path)]
        return sorted(messages, key=lambda m: m.timestamp)

    def append_messages(self, chat_id: str, messages: list[Message]) -> None:
        """Append to a chat's log and refresh the chat's preview fields."""
        if not messages:
            return
        existing = self.get_messages(chat_id)
        existing.extend(messages)
        self._write_json(self._messages_path(chat_id), [m.model_dump() for m in existing])

        chat = self.get_chat(chat_id)
        if chat is None:
            return
        last = messages[-1]
        preview = last.content if last.type == "text" else _PREVIEW_LABELS.get(last.type, last.content)
        chat.last_message = preview[:PREVIEW_LENGTH]
        chat.last_message_time = last.timestamp
        chat.unread_count += sum(1 for m in messages if m.sender == "ai")
        self.save_chat(chat)

    # ------------------------------------------------------------------
    # Realities
    # ------------------------------------------------------------------

    def _reality_path(self, reality_id: str) -> Path:
        return self._base / "realities" / f"{reality_id}.json"

    def get_reality(self, reality_id: str) -> Reality | None:
        path = self._reality_path(reality_id)
        if not path.exists():
            return None
        return Reality.model_validate_json(path.read_text())

    def save_reality(self, reality: Reality) -> Reality:
        self._reality_path(reality.id).write_text(reality.model_dump_json(indent=2))
        return reality

    def list_realities(self, chat_id: str) -> list[Reality]:
        """Realities of a chat, oldest first."""
        realities = [
            Reality.model_validate_json(path.read_text())
            for path in (self._base / "realities").glob("*.json")
        ]
        return sorted(
            (r for r in realities if r.chat_id == chat_id),
            key=lambda r: r.created_at,
        )

    # ------------------------------------------------------------------
    # Token usage (append-only)
    # ------------------------------------------------------------------

    def get_token_usage(self) -> list[TokenUsageRecord]:
        return self._read_list("token_usage.json", TokenUsageRecord)

    def append_token_usage(self, record: TokenUsageRecord) -> None:
        records = self.get_token_usage()
        records.append(record)
        self._write_list("token_usage.json", records)

    def clear_token_usage(self) -> None:
        self._write_list("token_usage.json", [])
