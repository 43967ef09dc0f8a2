"""In-memory debug traces of model calls.

Traces hold the exact message list sent, the raw reply before
classification and the token breakdown. They live only as long as the
recorder (one per Session) and are never written to disk.
"""

from __future__ import annotations

from collections import deque

from persona_chat.models import ChatMessage, Completion, DebugTrace

DEFAULT_CAPACITY = 20


class DebugRecorder:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._traces: deque[DebugTrace] = deque(maxlen=capacity)

    def capture(self, messages: list[ChatMessage], completion: Completion) -> DebugTrace:
        usage = completion.usage
        trace = DebugTrace(
            messages=[m.model_copy() for m in messages],
            raw_response=completion.text,
            prompt_tokens=usage.prompt if usage else 0,
            completion_tokens=usage.completion if usage else 0,
            total_tokens=usage.total if usage else 0,
        )
        self._traces.append(trace)
        return trace

    @property
    def last(self) -> DebugTrace | None:
        return self._traces[-1] if self._traces else None

    def recent(self) -> list[DebugTrace]:
        """Captured traces, newest first."""
        return list(reversed(self._traces))

    def clear(self) -> None:
        self._traces.clear()
