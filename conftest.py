import pytest

from persona_chat.models import Character, Chat, ChatMessage, Completion, Usage
from persona_chat.session import Session
from persona_chat.storage import Storage


class ScriptedProvider:
    """Fake provider: replays queued replies and records every call."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._script: list[Completion | Exception] = []

    def reply(self, text: str, usage: Usage | None = None) -> None:
        self._script.append(Completion(text=text, usage=usage))

    def fail(self, error: Exception) -> None:
        self._script.append(error)

    async def invoke(
        self, endpoint: str, credential: str, model: str, messages: list[ChatMessage]
    ) -> Completion:
        self.calls.append({
            "endpoint": endpoint,
            "credential": credential,
            "model": model,
            "messages": messages,
        })
        if not self._script:
            raise AssertionError("ScriptedProvider called with nothing scripted")
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(tmp_path / "data")


@pytest.fixture
def configured(storage: Storage) -> Storage:
    """Storage whose settings can reach a (fake) backend."""
    storage.update_settings({"api_key": "sk-test"})
    return storage


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def session(configured: Storage, provider: ScriptedProvider) -> Session:
    return Session(configured, provider_factory=lambda _provider_id: provider)


@pytest.fixture
def character(storage: Storage) -> Character:
    return storage.save_character(Character(name="Mira", persona="A cheerful innkeeper."))


@pytest.fixture
def chat(storage: Storage, character: Character) -> Chat:
    return storage.save_chat(Chat(character_id=character.id, name=character.name))
