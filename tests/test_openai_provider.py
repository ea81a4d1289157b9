"""Tests for the OpenAI adapter.

Covers: bearer auth and payload shape, default model/temperature, content
extraction from choices, and resolved model reporting.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from prompt_compare.errors import UnsupportedOutputPolicyError
from prompt_compare.providers.openai import OpenAIProvider, _extract_content
from prompt_compare.types import GenerationOptions


def _mock_openai_success(content: str = "Hi from GPT") -> MagicMock:
    """Build a mock httpx.Response for a successful chat completion."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = 200
    resp.json.return_value = {
        "id": "chatcmpl-1",
        "model": "gpt-4o-mini-2024-07-18",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }
    return resp


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


class TestBuildRequest:
    """OpenAIProvider.build_request()."""

    def test_url_and_bearer_header(self) -> None:
        url, headers, _ = OpenAIProvider().build_request(
            "Hi", "gpt-4o", "sk-test", GenerationOptions(max_tokens=5, temperature=0.1)
        )
        assert url == "https://api.openai.com/v1/chat/completions"
        assert headers == {"Authorization": "Bearer sk-test"}

    def test_payload_shape(self) -> None:
        _, _, payload = OpenAIProvider().build_request(
            "Hi", "gpt-4o", "sk-test", GenerationOptions(max_tokens=5, temperature=0.1)
        )
        assert payload == {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 5,
            "temperature": 0.1,
        }

    @pytest.mark.asyncio
    async def test_defaults_applied(self) -> None:
        async with OpenAIProvider() as provider:
            mock_post = AsyncMock(return_value=_mock_openai_success())
            provider._client.post = mock_post  # type: ignore[union-attr]
            content, model = await provider.generate("Hello", credential="sk-test")

        payload = mock_post.call_args.kwargs["json"]
        assert payload["model"] == "gpt-4o-mini"
        assert payload["max_tokens"] == 1024
        assert payload["temperature"] == 0.7
        assert content == "Hi from GPT"
        assert model == "gpt-4o-mini-2024-07-18"


# ---------------------------------------------------------------------------
# Content extraction
# ---------------------------------------------------------------------------


class TestExtractContent:
    """_extract_content() reads the first choice."""

    def test_first_choice(self) -> None:
        data = {
            "choices": [
                {"message": {"content": "first"}},
                {"message": {"content": "second"}},
            ]
        }
        assert _extract_content(data) == "first"

    def test_no_choices(self) -> None:
        assert _extract_content({"choices": []}) == ""
        assert _extract_content({}) == ""

    def test_null_content(self) -> None:
        assert _extract_content({"choices": [{"message": {"content": None}}]}) == ""

    def test_choices_not_list_raises(self) -> None:
        with pytest.raises(UnsupportedOutputPolicyError):
            _extract_content({"choices": {"message": "x"}})
