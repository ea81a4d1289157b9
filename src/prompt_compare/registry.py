"""Static registry of supported providers.

One ``ProviderDescriptor`` per provider, created at import time and never
mutated. Lookups are pure.

Typical usage::

    from prompt_compare.registry import describe

    descriptor = describe("gemini")
    print(descriptor.default_model)
"""

from __future__ import annotations

from types import MappingProxyType

from prompt_compare.errors import UnknownProviderError
from prompt_compare.types import ProviderDescriptor, ProviderId

ANTHROPIC_VERSION = "2023-06-01"

PROVIDERS: MappingProxyType[str, ProviderDescriptor] = MappingProxyType(
    {
        ProviderId.ANTHROPIC: ProviderDescriptor(
            id=ProviderId.ANTHROPIC,
            display_name="Anthropic Claude",
            base_url="https://api.anthropic.com/v1",
            default_model="claude-3-haiku-20240307",
            credential_env="ANTHROPIC_API_KEY",
            fixed_headers={"anthropic-version": ANTHROPIC_VERSION},
            default_max_tokens=1024,
        ),
        ProviderId.OPENAI: ProviderDescriptor(
            id=ProviderId.OPENAI,
            display_name="OpenAI ChatGPT",
            base_url="https://api.openai.com/v1",
            default_model="gpt-4o-mini",
            credential_env="OPENAI_API_KEY",
            default_max_tokens=1024,
            default_temperature=0.7,
        ),
        ProviderId.GEMINI: ProviderDescriptor(
            id=ProviderId.GEMINI,
            display_name="Google Gemini",
            base_url="https://generativelanguage.googleapis.com/v1beta",
            default_model="gemini-2.5-flash",
            credential_env="GEMINI_API_KEY",
            default_max_tokens=2048,
            default_temperature=0.7,
        ),
    }
)


def describe(provider_id: str) -> ProviderDescriptor:
    """Look up the descriptor for a provider.

    Args:
        provider_id: Provider identifier (e.g. "openai").

    Returns:
        The registered ProviderDescriptor.

    Raises:
        UnknownProviderError: If no provider is registered under the id.
    """
    try:
        return PROVIDERS[provider_id]
    except KeyError as exc:
        raise UnknownProviderError(provider_id) from exc


def known_providers() -> list[str]:
    """Return registered provider ids in registration order."""
    return [str(provider_id) for provider_id in PROVIDERS]
