"""Model output classification: plain text or a Reality payload.

The model is free text we don't control. classify() tries an ordered list of
extraction attempts and returns the first valid Reality payload; when every
attempt fails the raw text comes back as a TextResponse, byte for byte.
Nothing here raises.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError, field_validator

from persona_chat.models import ModelResponse, RealityResponse, TextResponse

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class _RealityPayload(RealityResponse):
    """Wire validation: title and paragraph must carry text."""

    @field_validator("title", "paragraph")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


def _validate(data: Any) -> RealityResponse | None:
    if not isinstance(data, dict) or data.get("type") != "reality":
        return None
    try:
        payload = _RealityPayload.model_validate(data)
    except ValidationError as e:
        logger.warning("Discarding malformed reality payload: %d errors", e.error_count())
        return None
    return RealityResponse(
        title=payload.title, paragraph=payload.paragraph, choices=payload.choices
    )


def _from_fenced_block(text: str) -> RealityResponse | None:
    match = _FENCED_JSON.search(text)
    if not match:
        return None
    try:
        return _validate(json.loads(match.group(1)))
    except (json.JSONDecodeError, RecursionError):
        return None


def _from_whole_text(text: str) -> RealityResponse | None:
    try:
        return _validate(json.loads(text))
    except (json.JSONDecodeError, RecursionError):
        return None


ATTEMPTS: tuple[Callable[[str], RealityResponse | None], ...] = (
    _from_fenced_block,
    _from_whole_text,
)


def classify(text: str) -> ModelResponse:
    """Classify raw model output. First successful attempt wins."""
    for attempt in ATTEMPTS:
        reality = attempt(text)
        if reality is not None:
            return reality
    return TextResponse(content=text)
