"""Shared fixtures: key-free environments and adapters with mocked calls."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from prompt_compare.config import Config
from prompt_compare.providers import AnthropicProvider, GeminiProvider, OpenAIProvider, Provider

TEST_ENV = {
    "ANTHROPIC_API_KEY": "sk-ant-test",
    "OPENAI_API_KEY": "sk-openai-test",
    "GEMINI_API_KEY": "gm-test",
}


@pytest.fixture()
def env() -> dict[str, str]:
    """Environment with a key for every provider."""
    return dict(TEST_ENV)


@pytest.fixture()
def config() -> Config:
    """Default configuration (client keys disallowed, 25s timeout)."""
    return Config()


@pytest.fixture()
def providers() -> dict[str, Provider]:
    """One adapter per provider, each with ``generate`` mocked to succeed."""
    adapters: dict[str, Provider] = {
        "anthropic": AnthropicProvider(),
        "openai": OpenAIProvider(),
        "gemini": GeminiProvider(),
    }
    for provider_id, adapter in adapters.items():
        adapter.generate = AsyncMock(  # type: ignore[method-assign]
            return_value=(f"{provider_id} says hi", f"{provider_id}-model")
        )
    return adapters
