"""API key resolution for provider calls.

Resolves the key for each call fresh: a client-supplied override when
server policy allows it, otherwise the provider's environment variable.
Nothing is cached, so a key edited between calls takes effect at once.

Typical usage::

    from prompt_compare.credentials import resolve_credential

    key = resolve_credential("openai", override, allow_override=config.allow_client_keys)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from prompt_compare.errors import MissingCredentialError
from prompt_compare.registry import describe

logger = logging.getLogger(__name__)

# Placeholder strings browsers send when a JS variable was never set.
_PLACEHOLDER_VALUES = frozenset({"undefined", "null"})
_QUOTES = "'\""


def _usable_override(override: str | None) -> str | None:
    """Return the trimmed override, or None if it is blank or a placeholder."""
    if override is None:
        return None
    trimmed = override.strip()
    if not trimmed or trimmed in _PLACEHOLDER_VALUES:
        return None
    return trimmed


def sanitize_env_value(raw: str) -> str:
    """Trim whitespace and strip one quote character from each end.

    Mirrors what users paste into ``.env`` files: ``KEY="sk-..."`` with the
    quotes kept by the loader.

    Args:
        raw: Raw environment variable value.

    Returns:
        Cleaned value, possibly empty.
    """
    value = raw.strip()
    if value[:1] and value[0] in _QUOTES:
        value = value[1:]
    if value[-1:] and value[-1] in _QUOTES:
        value = value[:-1]
    return value


def mask_credential(value: str) -> str:
    """Render a key for log output without revealing it.

    Args:
        value: Secret to mask.

    Returns:
        First four and last four characters around an ellipsis, or
        ``"***"`` for short values.
    """
    if len(value) <= 12:
        return "***"
    return f"{value[:4]}…{value[-4:]}"


def resolve_credential(
    provider_id: str,
    override: str | None = None,
    *,
    allow_override: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Determine the API key for one provider call.

    An override is ignored (logged at debug level only) when
    ``allow_override`` is false; the caller is not told.

    Args:
        provider_id: Registered provider identifier.
        override: Client-supplied key, if any.
        allow_override: Whether server policy honours client keys.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        The key to send to the provider.

    Raises:
        UnknownProviderError: If the provider is not registered.
        MissingCredentialError: If neither source yields a non-empty key.
    """
    descriptor = describe(provider_id)
    env = os.environ if environ is None else environ

    explicit = _usable_override(override)
    if explicit is not None:
        if allow_override:
            logger.debug(
                "Using client-supplied key for %s (length %d)", provider_id, len(explicit)
            )
            return explicit
        logger.debug(
            "Ignoring client-supplied key for %s: server prefers environment key", provider_id
        )

    raw = env.get(descriptor.credential_env)
    if not raw:
        raise MissingCredentialError(
            descriptor.credential_env,
            f"Missing API key. Define {descriptor.credential_env} in the server environment "
            f"or authenticate a key for {descriptor.display_name}.",
        )

    key = sanitize_env_value(raw)
    if not key:
        raise MissingCredentialError(
            descriptor.credential_env,
            f"The environment variable {descriptor.credential_env} is defined but empty.",
        )
    return key


def has_credential(provider_id: str, environ: Mapping[str, str] | None = None) -> bool:
    """Report whether the environment holds a usable key for a provider.

    Args:
        provider_id: Registered provider identifier.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        True if ``resolve_credential`` would succeed without an override.
    """
    try:
        resolve_credential(provider_id, environ=environ)
    except MissingCredentialError:
        return False
    return True
