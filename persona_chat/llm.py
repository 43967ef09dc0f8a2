"""LLM providers - HTTP connections to chat-model backends.

Every provider strategy matches the protocol:

    async def invoke(endpoint, credential, model, messages) -> Completion

`messages` is an ordered list of ChatMessage (role system/user/assistant).
The result carries the reply text and, when the backend reports it, token
usage normalised to {prompt, completion, total}.

Two strategies are provided:

    ChatCompletionProvider   - OpenAI-style /chat/completions. Shared by
                               openai, deepseek, moonshot and custom endpoints.
    GenerateContentProvider  - Gemini-style /models/{model}:generateContent.
                               System prompt travels as systemInstruction,
                               the credential as a ?key= query parameter.

The active strategy is picked by get_provider() from the provider id stored
in Settings; the catalog entry's `style` decides which class is used.
Providers never retry. Any failure raises an LLMError subclass.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from persona_chat.models import ChatMessage, Completion, ProviderProfile, Settings, Usage

logger = logging.getLogger(__name__)

TEMPERATURE = 0.8
MAX_OUTPUT_TOKENS = 2000


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be used or returns an error."""


class MissingCredential(LLMError):
    """No API key or endpoint configured. Raised before any network call."""


class TransportError(LLMError):
    """Non-success HTTP status, connection failure, or timeout.

    `status` is None when no response was received at all.
    """

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ProviderShapeMismatch(LLMError):
    """A success response without the fields the provider is known to return."""


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

PROVIDERS: dict[str, ProviderProfile] = {
    "openai": ProviderProfile(
        id="openai",
        name="OpenAI (ChatGPT)",
        default_endpoint="https://api.openai.com/v1",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
    ),
    "gemini": ProviderProfile(
        id="gemini",
        name="Google Gemini",
        default_endpoint="https://generativelanguage.googleapis.com/v1beta",
        models=("gemini-1.5-pro", "gemini-1.5-flash", "gemini-2.0-flash-exp"),
        style="generate_content",
    ),
    "deepseek": ProviderProfile(
        id="deepseek",
        name="DeepSeek",
        default_endpoint="https://api.deepseek.com/v1",
        models=("deepseek-chat", "deepseek-reasoner"),
    ),
    "moonshot": ProviderProfile(
        id="moonshot",
        name="Moonshot",
        default_endpoint="https://api.moonshot.cn/v1",
        models=("moonshot-v1-8k", "moonshot-v1-32k", "moonshot-v1-128k"),
    ),
    "custom": ProviderProfile(
        id="custom",
        name="Custom (OpenAI-compatible)",
        default_endpoint="",
    ),
}


def get_profile(provider_id: str) -> ProviderProfile:
    try:
        return PROVIDERS[provider_id]
    except KeyError:
        raise ValueError(
            f"Unknown provider '{provider_id}'. Choose from: {list(PROVIDERS)}"
        ) from None


def require_credentials(settings: Settings) -> None:
    """Fail fast when the settings cannot possibly reach a backend."""
    if not settings.api_key.strip():
        raise MissingCredential("Configure an API key in Settings first")
    if not settings.api_endpoint.strip():
        raise MissingCredential("Configure an API endpoint in Settings first")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class Provider(Protocol):
    async def invoke(
        self,
        endpoint: str,
        credential: str,
        model: str,
        messages: list[ChatMessage],
    ) -> Completion: ...


# ---------------------------------------------------------------------------
# Shared HTTP plumbing
# ---------------------------------------------------------------------------

class _HttpProvider:
    """POST + error mapping shared by both wire formats.

    Args:
        timeout: HTTP timeout in seconds. None (the default) waits forever.
    """

    name = "http"

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=headers, params=params)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to LLM backend at {url}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            text = e.response.text
            raise TransportError(
                f"LLM backend returned HTTP {status}: {text}", status=status, body=text
            ) from e

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderShapeMismatch(f"{self.name} backend returned a non-JSON body") from e


# ---------------------------------------------------------------------------
# ChatCompletionProvider - OpenAI-compatible
# ---------------------------------------------------------------------------

class ChatCompletionProvider(_HttpProvider):
    """OpenAI-style chat completions.

      POST {endpoint}/chat/completions
        {"model", "messages", "temperature", "max_tokens"}
        Authorization: Bearer {credential}
      Response:
        {"choices": [{"message": {"content": "..."}}],
         "usage": {"prompt_tokens", "completion_tokens", "total_tokens"}}
    """

    name = "chat-completion"

    def _build_request(
        self, endpoint: str, credential: str, model: str, messages: list[ChatMessage]
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        url = f"{endpoint.rstrip('/')}/chat/completions"
        body = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
        }
        return url, body, headers

    def _parse_response(self, data: Any) -> Completion:
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderShapeMismatch(
                "Unexpected response format from chat-completion backend"
            ) from e
        if not isinstance(text, str):
            raise ProviderShapeMismatch("Chat-completion backend returned no message content")

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            try:
                usage = Usage(
                    prompt=raw_usage.get("prompt_tokens") or 0,
                    completion=raw_usage.get("completion_tokens") or 0,
                    total=raw_usage.get("total_tokens") or 0,
                )
            except ValidationError as e:
                raise ProviderShapeMismatch(
                    f"{self.name} backend returned malformed usage counters"
                ) from e
        return Completion(text=text, usage=usage)

    async def invoke(
        self,
        endpoint: str,
        credential: str,
        model: str,
        messages: list[ChatMessage],
    ) -> Completion:
        url, body, headers = self._build_request(endpoint, credential, model, messages)
        logger.debug("llm call format=%s url=%s messages=%d", self.name, url, len(messages))
        completion = self._parse_response(await self._post(url, body, headers))
        logger.debug("llm response format=%s len=%d", self.name, len(completion.text))
        return completion


# ---------------------------------------------------------------------------
# GenerateContentProvider - Gemini
# ---------------------------------------------------------------------------

class GenerateContentProvider(_HttpProvider):
    """Gemini-style turn list.

      POST {endpoint}/models/{model}:generateContent?key={credential}
        {"systemInstruction": {"parts": [{"text"}]},
         "contents": [{"role": "user"|"model", "parts": [{"text"}]}],
         "generationConfig": {"temperature", "maxOutputTokens"}}
      Response:
        {"candidates": [{"content": {"parts": [{"text": "..."}]}}],
         "usageMetadata": {"promptTokenCount", "candidatesTokenCount",
                           "totalTokenCount"}}
    """

    name = "generate-content"

    def _build_request(
        self, endpoint: str, model: str, messages: list[ChatMessage]
    ) -> tuple[str, dict[str, Any]]:
        url = f"{endpoint.rstrip('/')}/models/{model}:generateContent"

        system = next((m for m in messages if m.role == "system"), None)
        contents = [
            {
                "role": "user" if m.role == "user" else "model",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m is not system
        ]
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
            },
        }
        if system is not None:
            body["systemInstruction"] = {"parts": [{"text": system.content}]}
        return url, body

    def _parse_response(self, data: Any) -> Completion:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderShapeMismatch(
                "Unexpected response format from generate-content backend"
            ) from e
        if not isinstance(text, str):
            raise ProviderShapeMismatch("Generate-content backend returned no text part")

        usage = None
        meta = data.get("usageMetadata")
        if isinstance(meta, dict):
            try:
                usage = Usage(
                    prompt=meta.get("promptTokenCount") or 0,
                    completion=meta.get("candidatesTokenCount") or 0,
                    total=meta.get("totalTokenCount") or 0,
                )
            except ValidationError as e:
                raise ProviderShapeMismatch(
                    f"{self.name} backend returned malformed usage counters"
                ) from e
        return Completion(text=text, usage=usage)

    async def invoke(
        self,
        endpoint: str,
        credential: str,
        model: str,
        messages: list[ChatMessage],
    ) -> Completion:
        url, body = self._build_request(endpoint, model, messages)
        # credential rides in the query string; keep it out of the log line
        logger.debug("llm call format=%s url=%s messages=%d", self.name, url, len(messages))
        headers = {"Content-Type": "application/json"}
        data = await self._post(url, body, headers, params={"key": credential})
        completion = self._parse_response(data)
        logger.debug("llm response format=%s len=%d", self.name, len(completion.text))
        return completion


_STRATEGIES: dict[str, type[_HttpProvider]] = {
    "chat_completion": ChatCompletionProvider,
    "generate_content": GenerateContentProvider,
}


def get_provider(provider_id: str, timeout: float | None = None) -> Provider:
    """Instantiate the strategy for a catalog provider id."""
    profile = get_profile(provider_id)
    return _STRATEGIES[profile.style](timeout=timeout)
