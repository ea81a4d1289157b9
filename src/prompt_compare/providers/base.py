"""Abstract base class for provider adapters.

Defines the ``Provider`` interface that all vendor-specific adapters
follow. Each adapter knows how to build its provider's request and how to
pull plain text out of its provider's response shape; the shared request
path (timeouts, status checks, JSON decoding) lives here.

Adapters expose two entry points:

- ``generate()`` returns ``(content, resolved_model)`` and raises the typed
  errors from ``prompt_compare.errors``. The proxy server uses it to map
  failures onto HTTP statuses.
- ``invoke()`` never raises for upstream faults: it converts every typed
  error into a failure ``DispatchOutcome``. The dispatcher uses it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from prompt_compare.errors import (
    MalformedUpstreamResponseError,
    PromptCompareError,
    UnsupportedOutputPolicyError,
    UpstreamHTTPError,
    UpstreamRequestError,
    UpstreamTimeoutError,
)
from prompt_compare.models import DispatchOutcome
from prompt_compare.registry import describe
from prompt_compare.types import GenerationOptions, ProviderDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 25.0  # seconds, wall clock per call

PreparedRequest = tuple[str, dict[str, str], dict[str, Any]]


class Provider(ABC):
    """Base class for all provider adapters.

    Designed as an async context manager for connection lifecycle. The
    credential is passed per call, so one adapter instance serves every
    model configuration that targets its provider.

    Args:
        timeout: Wall-clock limit for one call, in seconds.
        descriptor: Provider descriptor. Defaults to the registry entry for
            ``provider_id``.
    """

    provider_id: ClassVar[str]

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        descriptor: ProviderDescriptor | None = None,
    ) -> None:
        self._descriptor = descriptor or describe(self.provider_id)
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def descriptor(self) -> ProviderDescriptor:
        """The provider this adapter talks to."""
        return self._descriptor

    async def __aenter__(self) -> Provider:
        """Open the underlying HTTP connection pool."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                **self._descriptor.fixed_headers,
            },
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def build_request(
        self,
        prompt: str,
        model: str,
        credential: str,
        options: GenerationOptions,
    ) -> PreparedRequest:
        """Build the provider-specific request.

        Args:
            prompt: User prompt text.
            model: Model identifier (already defaulted).
            credential: API key for this call.
            options: Generation options with provider defaults applied.

        Returns:
            Tuple of (url, per-request headers, JSON payload).
        """
        ...

    @abstractmethod
    def extract_content(self, data: dict[str, Any], options: GenerationOptions) -> str:
        """Normalize a decoded response body into plain text.

        Args:
            data: Decoded JSON response body.
            options: Generation options the request was sent with.

        Returns:
            The response text (possibly empty for providers that allow it).

        Raises:
            UnsupportedOutputPolicyError: If the body has no recognizable shape.
        """
        ...

    async def generate(
        self,
        prompt: str,
        *,
        credential: str,
        model: str | None = None,
        options: GenerationOptions | None = None,
    ) -> tuple[str, str]:
        """Send one generation request and normalize the response.

        Args:
            prompt: Non-empty user prompt.
            credential: API key for this call.
            model: Model identifier. Defaults to the provider's default model.
            options: Generation options. Unset fields use provider defaults.

        Returns:
            Tuple of (content, resolved_model).

        Raises:
            RuntimeError: If the adapter is used outside a context manager.
            UpstreamTimeoutError: If the call exceeds the timeout.
            UpstreamRequestError: On transport failures.
            UpstreamHTTPError: If the provider returns a non-2xx status.
            MalformedUpstreamResponseError: If the body is not valid JSON.
            UnsupportedOutputPolicyError: If the body has no usable shape.
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        name = self._descriptor.display_name
        target = model or self._descriptor.default_model
        resolved_options = (options or GenerationOptions()).resolve(self._descriptor)
        url, headers, payload = self.build_request(prompt, target, credential, resolved_options)

        try:
            async with asyncio.timeout(self._timeout):
                resp = await self._client.post(url, headers=headers, json=payload)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeoutError(name, self._timeout) from exc
        except httpx.HTTPError as exc:
            raise UpstreamRequestError(name, str(exc) or type(exc).__name__) from exc

        if not 200 <= resp.status_code < 300:
            raise UpstreamHTTPError(name, resp.status_code, _error_body(resp))

        try:
            data = resp.json()
        except ValueError as exc:
            logger.debug("%s returned non-JSON body: %.200s", name, resp.text)
            raise MalformedUpstreamResponseError(name, resp.text) from exc

        if not isinstance(data, dict):
            raise UnsupportedOutputPolicyError(
                name, f"expected a JSON object, got {type(data).__name__}"
            )

        try:
            content = self.extract_content(data, resolved_options)
        except (TypeError, AttributeError, KeyError) as exc:
            logger.debug("%s returned an unexpected body: %.200s", name, resp.text)
            raise UnsupportedOutputPolicyError(
                name, f"unexpected response shape ({type(exc).__name__}: {exc})"
            ) from exc
        reported = data.get("model")
        resolved_model = reported if isinstance(reported, str) and reported else target
        return content, resolved_model

    async def invoke(
        self,
        prompt: str,
        model: str | None = None,
        *,
        credential: str,
        options: GenerationOptions | None = None,
        instance_id: str = "",
    ) -> DispatchOutcome:
        """Call the provider and return a normalized outcome.

        Upstream faults never propagate: timeouts, transport errors,
        non-2xx statuses, and unusable bodies all become failure outcomes.

        Args:
            prompt: Non-empty user prompt.
            model: Model identifier. Defaults to the provider's default model.
            credential: API key for this call.
            options: Generation options. Unset fields use provider defaults.
            instance_id: Configuration id recorded on the outcome.

        Returns:
            DispatchOutcome with content on success or an error message.
        """
        requested = model or self._descriptor.default_model
        start = time.monotonic()
        try:
            content, resolved_model = await self.generate(
                prompt, credential=credential, model=model, options=options
            )
        except PromptCompareError as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("%s call failed for %s: %s", self.provider_id, instance_id, exc)
            return DispatchOutcome.failure(
                instance_id=instance_id,
                provider_id=self.provider_id,
                error=str(exc),
                requested_model=requested,
                kind=exc.kind,
                latency_ms=elapsed_ms,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return DispatchOutcome.success(
            instance_id=instance_id,
            provider_id=self.provider_id,
            content=content,
            resolved_model=resolved_model,
            latency_ms=elapsed_ms,
        )


def _error_body(resp: httpx.Response) -> str:
    """Return the raw body of an error response, or its reason phrase.

    Args:
        resp: The httpx response object.

    Returns:
        Response text, falling back to the reason phrase when empty.
    """
    text = resp.text
    if isinstance(text, str) and text:
        return text
    return str(getattr(resp, "reason_phrase", "") or "")
