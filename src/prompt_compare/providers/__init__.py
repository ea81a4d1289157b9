"""Provider adapters for multi-vendor dispatch.

Re-exports the public interface so callers can write::

    from prompt_compare.providers import Provider, get_provider_class

Adding a provider means adding one adapter module, one registry entry, and
one line in ``PROVIDER_CLASSES``.
"""

from prompt_compare.errors import UnknownProviderError
from prompt_compare.providers.anthropic import AnthropicProvider
from prompt_compare.providers.base import DEFAULT_TIMEOUT, Provider
from prompt_compare.providers.gemini import GeminiProvider
from prompt_compare.providers.openai import OpenAIProvider

PROVIDER_CLASSES: dict[str, type[Provider]] = {
    AnthropicProvider.provider_id: AnthropicProvider,
    OpenAIProvider.provider_id: OpenAIProvider,
    GeminiProvider.provider_id: GeminiProvider,
}


def get_provider_class(provider_id: str) -> type[Provider]:
    """Return the adapter class for a provider id.

    Raises:
        UnknownProviderError: If no adapter handles the provider.
    """
    try:
        return PROVIDER_CLASSES[provider_id]
    except KeyError as exc:
        raise UnknownProviderError(provider_id) from exc


__all__ = [
    "DEFAULT_TIMEOUT",
    "PROVIDER_CLASSES",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "Provider",
    "get_provider_class",
]
