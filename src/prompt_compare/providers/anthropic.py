"""Anthropic Messages API adapter.

Sends a single user turn to ``/messages`` and joins every text fragment of
the returned content block array.

Typical usage::

    async with AnthropicProvider() as provider:
        outcome = await provider.invoke("Hello", credential="sk-ant-...")
"""

from __future__ import annotations

from typing import Any

from prompt_compare.errors import UnsupportedOutputPolicyError
from prompt_compare.providers.base import PreparedRequest, Provider
from prompt_compare.types import GenerationOptions, ProviderId


class AnthropicProvider(Provider):
    """Adapter for the Anthropic Messages API.

    Authenticates with the ``x-api-key`` header and pins the
    ``anthropic-version`` header from the registry.
    """

    provider_id = ProviderId.ANTHROPIC

    def build_request(
        self,
        prompt: str,
        model: str,
        credential: str,
        options: GenerationOptions,
    ) -> PreparedRequest:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": prompt}],
                }
            ],
        }
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        return f"{self.descriptor.base_url}/messages", {"x-api-key": credential}, payload

    def extract_content(self, data: dict[str, Any], options: GenerationOptions) -> str:
        return _extract_content(data)


def _extract_content(data: dict[str, Any]) -> str:
    """Join the text fragments of an Anthropic content block array.

    Blocks may be bare strings or objects carrying ``text`` (or
    ``content``). Empty fragments are dropped; the rest are joined with
    newlines. A missing content array yields an empty string.

    Args:
        data: Parsed JSON response body.

    Returns:
        The joined text.

    Raises:
        UnsupportedOutputPolicyError: If ``content`` is present but not a list.
    """
    blocks = data.get("content") or []
    if not isinstance(blocks, list):
        raise UnsupportedOutputPolicyError(
            "Anthropic Claude", f"content is {type(blocks).__name__}, expected a list"
        )
    fragments: list[str] = []
    for block in blocks:
        if isinstance(block, str):
            text = block
        elif isinstance(block, dict):
            text = block.get("text") or block.get("content") or ""
        else:
            text = ""
        if isinstance(text, str) and text:
            fragments.append(text)
    return "\n".join(fragments)
