"""Session - the context every conversation and narrative action runs in.

A Session bundles the collaborators an action needs instead of reaching for
globals:

    storage           - record store (settings are read from it per call)
    provider_factory  - provider id -> Provider; tests inject fakes here
    ledger            - token usage ledger
    recorder          - in-memory debug traces

call_model() is the single place a model call happens: credential check,
provider dispatch, usage accounting and debug capture.

guard() is the single-flight check. Only one action may be outstanding per
chat or Reality; a second one raises Busy instead of racing the first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from pydantic import BaseModel

from persona_chat.debug import DebugRecorder
from persona_chat.llm import Provider, get_provider, require_credentials
from persona_chat.models import ChatMessage, Character, DebugTrace
from persona_chat.storage import Storage
from persona_chat.usage import UsageLedger

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], Provider]


class Busy(RuntimeError):
    """Another action is already in flight for the same chat or Reality."""


class ModelCall(BaseModel):
    """Outcome of one model call as seen by the caller."""

    text: str
    debug: DebugTrace | None = None


class Session:
    def __init__(
        self,
        storage: Storage,
        *,
        provider_factory: ProviderFactory | None = None,
        ledger: UsageLedger | None = None,
        recorder: DebugRecorder | None = None,
        timeout: float | None = None,
    ) -> None:
        self.storage = storage
        self.provider_factory = provider_factory or (
            lambda provider_id: get_provider(provider_id, timeout=timeout)
        )
        self.ledger = ledger or UsageLedger(storage)
        self.recorder = recorder or DebugRecorder()
        self._in_flight: set[str] = set()

    @contextmanager
    def guard(self, key: str) -> Iterator[None]:
        if key in self._in_flight:
            raise Busy(f"An action for {key} is already in progress")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    async def call_model(self, character: Character, messages: list[ChatMessage]) -> ModelCall:
        """Send messages with the current settings and account for the call."""
        settings = self.storage.get_settings()
        require_credentials(settings)

        provider = self.provider_factory(settings.provider)
        completion = await provider.invoke(
            settings.api_endpoint, settings.api_key, settings.model, messages
        )

        usage = completion.usage
        if usage is not None and not usage.is_empty():
            self.ledger.record(
                character.id, character.name, settings.provider,
                usage.prompt, usage.completion, usage.total,
            )

        trace = None
        if settings.debug_mode:
            trace = self.recorder.capture(messages, completion)
        return ModelCall(text=completion.text, debug=trace)
