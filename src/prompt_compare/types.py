"""Core provider types shared by the registry, adapters, and dispatcher.

Defines the provider identifiers, the immutable descriptor for each
supported provider, and per-call generation options. Kept apart from
``models.py`` so adapters can import descriptors without pulling in the
conversation and configuration types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ProviderId(StrEnum):
    """Supported provider styles.

    Values are the lowercase identifiers used in model configurations,
    proxy routes, and the ``[models.*]`` tables of ``config.toml``.
    """

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GEMINI = "gemini"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one provider endpoint.

    Attributes:
        id: Provider identifier (e.g. "anthropic").
        display_name: Human-readable name used in messages.
        base_url: API root without trailing slash.
        default_model: Model used when a call names none.
        credential_env: Environment variable holding the API key.
        fixed_headers: Headers sent on every request (e.g. an API version).
        default_max_tokens: Output token limit when the caller gives none.
        default_temperature: Sampling temperature when the caller gives
            none. ``None`` means the field is omitted from the request.
    """

    id: str
    display_name: str
    base_url: str
    default_model: str
    credential_env: str
    fixed_headers: dict[str, str] = field(default_factory=dict)
    default_max_tokens: int = 1024
    default_temperature: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary.

        Returns:
            Dictionary with all public fields.
        """
        return {
            "id": self.id,
            "display_name": self.display_name,
            "base_url": self.base_url,
            "default_model": self.default_model,
            "credential_env": self.credential_env,
            "default_max_tokens": self.default_max_tokens,
            "default_temperature": self.default_temperature,
        }


@dataclass
class GenerationOptions:
    """Per-call generation parameters.

    Attributes:
        max_tokens: Output token limit. ``None`` uses the provider default.
        temperature: Sampling temperature. ``None`` uses the provider default.
    """

    max_tokens: int | None = None
    temperature: float | None = None

    def resolve(self, descriptor: ProviderDescriptor) -> GenerationOptions:
        """Fill unset fields from a provider's defaults.

        Args:
            descriptor: Provider whose defaults apply.

        Returns:
            New GenerationOptions with every default applied.
        """
        return GenerationOptions(
            max_tokens=(
                self.max_tokens if self.max_tokens is not None else descriptor.default_max_tokens
            ),
            temperature=(
                self.temperature if self.temperature is not None else descriptor.default_temperature
            ),
        )
