"""Tests for persona_chat.llm - provider catalog and both wire formats."""

import json
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from persona_chat.llm import (
    ChatCompletionProvider,
    GenerateContentProvider,
    MissingCredential,
    ProviderShapeMismatch,
    TransportError,
    get_profile,
    get_provider,
    require_credentials,
)
from persona_chat.models import ChatMessage, Settings, Usage


MESSAGES = [
    ChatMessage(role="system", content="You are Mira."),
    ChatMessage(role="user", content="Hello"),
    ChatMessage(role="assistant", content="Welcome, traveller."),
    ChatMessage(role="user", content="Any rooms free?"),
]


def _mock_response(body, status: int = 200, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text or json.dumps(body)
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


# ---------------------------------------------------------------------------
# Catalog + credentials
# ---------------------------------------------------------------------------

class TestCatalog:
    def test_gemini_uses_generate_content(self) -> None:
        assert isinstance(get_provider("gemini"), GenerateContentProvider)

    @pytest.mark.parametrize("provider_id", ["openai", "deepseek", "moonshot", "custom"])
    def test_others_use_chat_completion(self, provider_id: str) -> None:
        assert isinstance(get_provider(provider_id), ChatCompletionProvider)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            get_profile("nope")

    def test_custom_has_no_default_endpoint(self) -> None:
        assert get_profile("custom").default_endpoint == ""

    def test_blank_key_rejected(self) -> None:
        with pytest.raises(MissingCredential):
            require_credentials(Settings(api_key="   "))

    def test_blank_endpoint_rejected(self) -> None:
        with pytest.raises(MissingCredential):
            require_credentials(Settings(api_key="sk", api_endpoint=""))

    def test_complete_settings_pass(self) -> None:
        require_credentials(Settings(api_key="sk"))


# ---------------------------------------------------------------------------
# ChatCompletionProvider
# ---------------------------------------------------------------------------

class TestChatCompletion:
    @pytest.fixture
    def llm(self) -> ChatCompletionProvider:
        return ChatCompletionProvider()

    def _ok(self, content="Yes, one room left.", usage=None) -> dict:
        body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
        if usage is not None:
            body["usage"] = usage
        return body

    async def test_happy_path(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm.invoke("https://api.example.com/v1", "sk", "gpt-4o-mini", MESSAGES)
        assert result.text == "Yes, one room left."
        assert result.usage is None

    async def test_posts_to_chat_completions(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.invoke("https://api.example.com/v1/", "sk", "m", MESSAGES)
        assert mock_post.call_args[0][0] == "https://api.example.com/v1/chat/completions"

    async def test_body_and_headers(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.invoke("https://api.example.com/v1", "secret", "gpt-4o", MESSAGES)
        body = mock_post.call_args.kwargs["json"]
        assert body["model"] == "gpt-4o"
        assert body["temperature"] == 0.8
        assert body["max_tokens"] == 2000
        assert body["messages"] == [m.model_dump() for m in MESSAGES]
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

    async def test_usage_normalised(self, llm: ChatCompletionProvider) -> None:
        usage = {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}
        mock_post = AsyncMock(return_value=_mock_response(self._ok(usage=usage)))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm.invoke("https://x/v1", "sk", "m", MESSAGES)
        assert result.usage == Usage(prompt=12, completion=5, total=17)

    async def test_malformed_usage_is_shape_mismatch(self, llm: ChatCompletionProvider) -> None:
        usage = {"prompt_tokens": "n/a", "completion_tokens": 1, "total_tokens": 2}
        mock_post = AsyncMock(return_value=_mock_response(self._ok(usage=usage)))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderShapeMismatch, match="usage"):
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)

    async def test_http_error_carries_status_and_body(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=401, text="bad key"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TransportError, match="HTTP 401") as exc_info:
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)
        assert exc_info.value.status == 401
        assert exc_info.value.body == "bad key"

    async def test_connect_error(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TransportError, match="Cannot connect") as exc_info:
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)
        assert exc_info.value.status is None

    async def test_timeout(self) -> None:
        llm = ChatCompletionProvider(timeout=5)
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TransportError, match="timed out"):
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)

    async def test_missing_choices(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderShapeMismatch):
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)

    async def test_null_content(self, llm: ChatCompletionProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok(content=None)))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderShapeMismatch):
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)

    async def test_non_json_body(self, llm: ChatCompletionProvider) -> None:
        resp = _mock_response({}, text="<html>")
        resp.json.side_effect = ValueError("not json")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(ProviderShapeMismatch):
                await llm.invoke("https://x/v1", "sk", "m", MESSAGES)


# ---------------------------------------------------------------------------
# GenerateContentProvider
# ---------------------------------------------------------------------------

class TestGenerateContent:
    @pytest.fixture
    def llm(self) -> GenerateContentProvider:
        return GenerateContentProvider()

    def _ok(self, text="Of course.", usage=None) -> dict:
        body = {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}
        if usage is not None:
            body["usageMetadata"] = usage
        return body

    async def test_url_and_key_param(self, llm: GenerateContentProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm.invoke(
                "https://generativelanguage.googleapis.com/v1beta", "g-key",
                "gemini-1.5-flash", MESSAGES,
            )
        assert result.text == "Of course."
        assert mock_post.call_args[0][0] == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-1.5-flash:generateContent"
        )
        assert mock_post.call_args.kwargs["params"] == {"key": "g-key"}
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    async def test_system_instruction_and_roles(self, llm: GenerateContentProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.invoke("https://g/v1beta", "k", "m", MESSAGES)
        body = mock_post.call_args.kwargs["json"]
        assert body["systemInstruction"] == {"parts": [{"text": "You are Mira."}]}
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][0]["parts"] == [{"text": "Hello"}]
        assert body["generationConfig"] == {"temperature": 0.8, "maxOutputTokens": 2000}

    async def test_no_system_instruction_without_system_message(
        self, llm: GenerateContentProvider
    ) -> None:
        mock_post = AsyncMock(return_value=_mock_response(self._ok()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.invoke("https://g/v1beta", "k", "m", MESSAGES[1:])
        assert "systemInstruction" not in mock_post.call_args.kwargs["json"]

    async def test_usage_metadata(self, llm: GenerateContentProvider) -> None:
        usage = {"promptTokenCount": 20, "candidatesTokenCount": 8, "totalTokenCount": 28}
        mock_post = AsyncMock(return_value=_mock_response(self._ok(usage=usage)))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm.invoke("https://g/v1beta", "k", "m", MESSAGES)
        assert result.usage == Usage(prompt=20, completion=8, total=28)

    async def test_malformed_usage_is_shape_mismatch(self, llm: GenerateContentProvider) -> None:
        usage = {"promptTokenCount": "n/a", "candidatesTokenCount": 1, "totalTokenCount": 2}
        mock_post = AsyncMock(return_value=_mock_response(self._ok(usage=usage)))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderShapeMismatch, match="usage"):
                await llm.invoke("https://g/v1beta", "k", "m", MESSAGES)

    async def test_no_candidates(self, llm: GenerateContentProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"candidates": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderShapeMismatch):
                await llm.invoke("https://g/v1beta", "k", "m", MESSAGES)

    async def test_http_error(self, llm: GenerateContentProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=429, text="quota"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TransportError) as exc_info:
                await llm.invoke("https://g/v1beta", "k", "m", MESSAGES)
        assert exc_info.value.status == 429
