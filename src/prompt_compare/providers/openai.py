"""OpenAI Chat Completions adapter."""

from __future__ import annotations

from typing import Any

from prompt_compare.errors import UnsupportedOutputPolicyError
from prompt_compare.providers.base import PreparedRequest, Provider
from prompt_compare.types import GenerationOptions, ProviderId


class OpenAIProvider(Provider):
    """Adapter for the OpenAI Chat Completions API (bearer auth)."""

    provider_id = ProviderId.OPENAI

    def build_request(
        self,
        prompt: str,
        model: str,
        credential: str,
        options: GenerationOptions,
    ) -> PreparedRequest:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens,
        }
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        headers = {"Authorization": f"Bearer {credential}"}
        return f"{self.descriptor.base_url}/chat/completions", headers, payload

    def extract_content(self, data: dict[str, Any], options: GenerationOptions) -> str:
        return _extract_content(data)


def _extract_content(data: dict[str, Any]) -> str:
    """Take ``choices[0].message.content``, defaulting to an empty string.

    Args:
        data: Parsed JSON response body.

    Returns:
        The first choice's message content, or "" when absent.

    Raises:
        UnsupportedOutputPolicyError: If ``choices`` is present but not a list.
    """
    choices = data.get("choices") or []
    if not isinstance(choices, list):
        raise UnsupportedOutputPolicyError(
            "OpenAI ChatGPT", f"choices is {type(choices).__name__}, expected a list"
        )
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""
