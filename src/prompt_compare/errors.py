"""Exception hierarchy for provider dispatch.

Adapters raise these internally; ``Provider.invoke()`` and the dispatcher
convert them into failure outcomes, and the proxy server maps
``status_code`` onto its HTTP responses.

Each error carries a ``kind`` that tells the user what went wrong:

- ``configuration``: unknown provider or missing API key.
- ``unreachable``: timeout or transport failure.
- ``rejected``: the provider answered with a non-2xx status.
- ``empty``: the provider answered but the body was unusable.
"""

from __future__ import annotations

MAX_DETAIL_CHARS = 500


def truncate(text: str, limit: int = MAX_DETAIL_CHARS) -> str:
    """Shorten a raw body for inclusion in an error message.

    Args:
        text: Raw text to shorten.
        limit: Maximum number of characters kept.

    Returns:
        The text, cut to ``limit`` characters with an ellipsis if longer.
    """
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


class PromptCompareError(Exception):
    """Base exception for prompt_compare.

    Attributes:
        status_code: HTTP status the proxy server answers with.
        kind: Failure category for display.
    """

    status_code: int = 500
    kind: str = "configuration"


class UnknownProviderError(PromptCompareError):
    """Raised when a configuration names an unregistered provider."""

    kind = "configuration"

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"Unsupported provider: {provider_id}")


class MissingCredentialError(PromptCompareError):
    """Raised when no usable API key is available for a provider.

    Attributes:
        env_var: Environment variable that was expected to hold the key.
    """

    kind = "configuration"

    def __init__(self, env_var: str, message: str) -> None:
        self.env_var = env_var
        super().__init__(message)


class UpstreamHTTPError(PromptCompareError):
    """Raised when a provider returns a non-2xx status.

    Attributes:
        provider: Provider display name.
        status_code: HTTP status code from the provider.
        detail: Truncated response body.
    """

    kind = "rejected"

    def __init__(self, provider: str, status_code: int, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.detail = truncate(body)
        super().__init__(f"{provider} API error ({status_code}): {self.detail}")


class UpstreamTimeoutError(PromptCompareError):
    """Raised when a provider call exceeds its wall-clock timeout."""

    kind = "unreachable"

    def __init__(self, provider: str, timeout: float) -> None:
        self.provider = provider
        self.timeout = timeout
        super().__init__(f"{provider} request timed out after {timeout:g}s")


class UpstreamRequestError(PromptCompareError):
    """Raised on transport failures (DNS, refused or reset connections)."""

    kind = "unreachable"

    def __init__(self, provider: str, detail: str) -> None:
        self.provider = provider
        self.detail = detail
        super().__init__(f"{provider} request failed: {detail}")


class MalformedUpstreamResponseError(PromptCompareError):
    """Raised when a 2xx provider response body is not valid JSON."""

    status_code = 502
    kind = "empty"

    def __init__(self, provider: str, body: str) -> None:
        self.provider = provider
        self.detail = truncate(body, 200)
        super().__init__(f"Invalid JSON returned from {provider}: {self.detail}")


class UnsupportedOutputPolicyError(PromptCompareError):
    """Raised when a decoded response has no shape the adapter understands."""

    status_code = 502
    kind = "empty"

    def __init__(self, provider: str, detail: str) -> None:
        self.provider = provider
        self.detail = detail
        super().__init__(f"{provider} returned no usable text: {detail}")
