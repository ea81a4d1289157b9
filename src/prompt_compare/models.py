"""Data models for model configurations, conversations, and outcomes.

Defines the structures passed between the configuration layer, the
dispatcher, and the conversation store. Outcomes serialize to the same
``{content, model}`` / ``{error, model}`` shapes the proxy server returns.

Typical usage::

    from prompt_compare.models import DispatchOutcome, ModelConfiguration

    cfg = ModelConfiguration(instance_id="gpt-fast", provider_id="openai", model="gpt-4o-mini")
    outcome = DispatchOutcome.success(
        instance_id=cfg.instance_id,
        provider_id=cfg.provider_id,
        content="Hi!",
        resolved_model="gpt-4o-mini",
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from prompt_compare.registry import PROVIDERS
from prompt_compare.types import ProviderId

Speaker = Literal["user", "assistant"]


@dataclass
class ModelConfiguration:
    """A user-configured model to query.

    Attributes:
        instance_id: Stable unique id (e.g. "anthropic-default").
        provider_id: Registered provider identifier.
        model: Provider-specific model identifier. Empty string means the
            provider default.
        active: Whether the model takes part in dispatch rounds.
        api_key: Optional per-model key override. Never serialized.
        name: Optional display name.
    """

    instance_id: str
    provider_id: str
    model: str = ""
    active: bool = True
    api_key: str | None = field(default=None, repr=False)
    name: str = ""

    @property
    def label(self) -> str:
        """Display label: the name, else the model, else the instance id."""
        return self.name or self.model or self.instance_id

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary, omitting the API key.

        Returns:
            Dictionary with all non-secret fields.
        """
        return {
            "instance_id": self.instance_id,
            "provider_id": self.provider_id,
            "model": self.model,
            "active": self.active,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelConfiguration:
        """Deserialize from a dictionary.

        Accepts both snake_case keys and the camelCase keys the browser
        client sends (``providerId``, ``isActive``, ``apiKey``).

        Args:
            data: Dictionary with ModelConfiguration fields.

        Returns:
            ModelConfiguration instance.

        Raises:
            ValueError: If the instance id or provider id is missing.
        """
        instance_id = data.get("instance_id") or data.get("id")
        provider_id = data.get("provider_id") or data.get("providerId")
        if not instance_id or not provider_id:
            raise ValueError("Model configuration needs an instance id and a provider id.")
        active = data.get("active", data.get("isActive", True))
        return cls(
            instance_id=str(instance_id),
            provider_id=str(provider_id),
            model=str(data.get("model") or ""),
            active=bool(active),
            api_key=data.get("api_key") or data.get("apiKey") or None,
            name=str(data.get("name") or ""),
        )


def default_configurations() -> dict[str, ModelConfiguration]:
    """Build the seeded roster: one active model per provider.

    Returns a fresh mapping on every call so callers may mutate it.

    Returns:
        Ordered mapping of instance id to configuration.
    """
    seeds = [
        ("anthropic-default", ProviderId.ANTHROPIC, "Claude Haiku"),
        ("openai-default", ProviderId.OPENAI, "ChatGPT GPT-4o mini"),
        ("gemini-default", ProviderId.GEMINI, "Gemini 2.5 Flash"),
    ]
    return {
        instance_id: ModelConfiguration(
            instance_id=instance_id,
            provider_id=str(provider_id),
            model=PROVIDERS[provider_id].default_model,
            name=name,
        )
        for instance_id, provider_id, name in seeds
    }


def merge_configurations(
    defaults: Mapping[str, ModelConfiguration],
    edits: Mapping[str, ModelConfiguration],
    *,
    removed: Iterable[str] = (),
) -> dict[str, ModelConfiguration]:
    """Merge user edits over the default roster.

    Defaults keep their position and are replaced by an edit sharing their
    id. Ids only present in ``edits`` follow in edit order. Ids listed in
    ``removed`` are dropped from the result.

    Args:
        defaults: Seeded configurations keyed by instance id.
        edits: User-added or user-edited configurations keyed by instance id.
        removed: Instance ids the user removed.

    Returns:
        New ordered mapping of instance id to configuration.
    """
    dropped = set(removed)
    merged: dict[str, ModelConfiguration] = {}
    for instance_id, default in defaults.items():
        if instance_id not in dropped:
            merged[instance_id] = edits.get(instance_id, default)
    for instance_id, edit in edits.items():
        if instance_id not in merged and instance_id not in dropped:
            merged[instance_id] = edit
    return merged


@dataclass(frozen=True)
class ConversationTurn:
    """One message in a per-model conversation.

    Attributes:
        speaker: "user" or "assistant".
        text: Message text.
    """

    speaker: Speaker
    text: str

    def to_dict(self) -> dict[str, str]:
        """Serialize to a JSON-compatible dictionary."""
        return {"speaker": self.speaker, "text": self.text}


@dataclass
class DispatchOutcome:
    """Normalized result of one provider call.

    Exactly one of ``content`` (success) or ``error`` (failure) is set.

    Attributes:
        instance_id: Configuration this outcome belongs to.
        provider_id: Provider that was called.
        content: Response text on success.
        resolved_model: Model the provider reported (or was asked for).
        error: Human-readable failure message.
        requested_model: Model that was asked for, kept on failure.
        error_kind: Failure category ("configuration", "unreachable",
            "rejected", "empty", "internal"). None on success.
        latency_ms: Wall-clock duration of the call.
        timestamp: When the outcome was recorded (UTC).
    """

    instance_id: str
    provider_id: str
    content: str | None = None
    resolved_model: str = ""
    error: str | None = None
    requested_model: str = ""
    error_kind: str | None = None
    latency_ms: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def success(
        cls,
        *,
        instance_id: str,
        provider_id: str,
        content: str,
        resolved_model: str,
        latency_ms: int | None = None,
    ) -> DispatchOutcome:
        """Build a success outcome."""
        return cls(
            instance_id=instance_id,
            provider_id=provider_id,
            content=content,
            resolved_model=resolved_model,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(
        cls,
        *,
        instance_id: str,
        provider_id: str,
        error: str,
        requested_model: str = "",
        kind: str = "configuration",
        latency_ms: int | None = None,
    ) -> DispatchOutcome:
        """Build a failure outcome."""
        return cls(
            instance_id=instance_id,
            provider_id=provider_id,
            error=error,
            requested_model=requested_model,
            error_kind=kind,
            latency_ms=latency_ms,
        )

    @classmethod
    def for_error(
        cls,
        configuration: ModelConfiguration,
        exc: BaseException,
        *,
        latency_ms: int | None = None,
    ) -> DispatchOutcome:
        """Build a failure outcome for a configuration from an exception.

        Args:
            configuration: Configuration whose call failed.
            exc: The exception raised while preparing or making the call.
            latency_ms: Elapsed time, if measured.

        Returns:
            Failure outcome carrying the exception's message and kind.
        """
        return cls.failure(
            instance_id=configuration.instance_id,
            provider_id=configuration.provider_id,
            error=str(exc) or type(exc).__name__,
            requested_model=configuration.model,
            kind=getattr(exc, "kind", "internal"),
            latency_ms=latency_ms,
        )

    @property
    def ok(self) -> bool:
        """True when the call produced content."""
        return self.error is None

    @property
    def model(self) -> str:
        """Model name for display: resolved on success, requested on failure."""
        return self.resolved_model if self.ok else self.requested_model

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the proxy's wire shape plus bookkeeping fields.

        Returns:
            ``{"content", "model"}`` on success or ``{"error", "model"}`` on
            failure, with ``instance_id``, ``provider_id``, ``latency_ms``
            and, for failures, ``error_kind``.
        """
        data: dict[str, Any] = {
            "instance_id": self.instance_id,
            "provider_id": self.provider_id,
            "model": self.model,
            "latency_ms": self.latency_ms,
        }
        if self.ok:
            data["content"] = self.content
        else:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        return data
