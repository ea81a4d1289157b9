"""Concurrent fan-out of one prompt to many model configurations.

The dispatcher owns one adapter per provider and runs every configuration
of a round at once. Each branch settles to exactly one ``DispatchOutcome``:
a failure in one branch (unknown provider, missing key, timeout, bad
response, or an unexpected exception) becomes that branch's failure
outcome and never cancels its siblings.

Typical usage::

    import asyncio
    from prompt_compare.config import load_config
    from prompt_compare.dispatcher import Dispatcher

    async def main():
        config = load_config()
        async with Dispatcher(config) as dispatcher:
            outcomes = await dispatcher.run_round("Hello", config.active_models())

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from contextlib import AsyncExitStack
from typing import Any

from prompt_compare.config import Config
from prompt_compare.credentials import resolve_credential
from prompt_compare.errors import PromptCompareError, UnknownProviderError
from prompt_compare.models import DispatchOutcome, ModelConfiguration
from prompt_compare.providers import PROVIDER_CLASSES, Provider
from prompt_compare.types import GenerationOptions

logger = logging.getLogger(__name__)


class Dispatcher:
    """Runs dispatch rounds across registered provider adapters.

    Designed as an async context manager: entering opens every adapter's
    connection pool, exiting closes them.

    Args:
        config: Application configuration (timeout, key policy, file keys).
        providers: Adapters keyed by provider id. Defaults to one adapter
            per class in ``PROVIDER_CLASSES``.
        allow_client_keys: Override for ``config.allow_client_keys``. The
            CLI passes True because per-model keys there come from the
            user's own config file.
        environ: Environment used for key lookup. Defaults to ``os.environ``.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        providers: Mapping[str, Provider] | None = None,
        allow_client_keys: bool | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config or Config()
        if providers is None:
            providers = {
                provider_id: cls(timeout=self._config.timeout)
                for provider_id, cls in PROVIDER_CLASSES.items()
            }
        self._providers: dict[str, Provider] = dict(providers)
        self._allow_client_keys = (
            self._config.allow_client_keys if allow_client_keys is None else allow_client_keys
        )
        self._environ = environ
        self._stack: AsyncExitStack | None = None

    async def __aenter__(self) -> Dispatcher:
        """Open every adapter."""
        stack = AsyncExitStack()
        try:
            for provider in self._providers.values():
                await stack.enter_async_context(provider)
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        return self

    async def __aexit__(self, *exc: Any) -> None:
        """Close every adapter."""
        if self._stack:
            await self._stack.aclose()
            self._stack = None

    def provider_for(self, provider_id: str) -> Provider:
        """Return the adapter for a provider id.

        Raises:
            UnknownProviderError: If no adapter is registered for the id.
        """
        try:
            return self._providers[provider_id]
        except KeyError as exc:
            raise UnknownProviderError(provider_id) from exc

    async def dispatch(
        self,
        configuration: ModelConfiguration,
        prompt: str,
        *,
        options: GenerationOptions | None = None,
    ) -> DispatchOutcome:
        """Run one configuration's call.

        Credentials are resolved fresh for every call.

        Args:
            configuration: Model configuration to query.
            prompt: Non-empty prompt text.
            options: Generation options shared by the round.

        Returns:
            The configuration's outcome. Configuration problems (unknown
            provider, missing key) come back as failure outcomes.
        """
        try:
            provider = self.provider_for(configuration.provider_id)
            credential = resolve_credential(
                configuration.provider_id,
                configuration.api_key,
                allow_override=self._allow_client_keys,
                environ=self._config.credential_environ(self._environ),
            )
        except PromptCompareError as exc:
            logger.warning("Skipping %s: %s", configuration.instance_id, exc)
            return DispatchOutcome.for_error(configuration, exc)

        return await provider.invoke(
            prompt,
            configuration.model or None,
            credential=credential,
            options=options,
            instance_id=configuration.instance_id,
        )

    async def run_round(
        self,
        prompt: str,
        configurations: Iterable[ModelConfiguration],
        *,
        options: GenerationOptions | None = None,
    ) -> dict[str, DispatchOutcome]:
        """Send one prompt to every configuration concurrently.

        All calls start together and the round completes when every call
        has settled. Unexpected exceptions in a branch are converted to
        failure outcomes, so the result always has one entry per input.

        Args:
            prompt: Non-empty prompt text.
            configurations: Configurations to query. Instance ids must be
                unique.
            options: Generation options shared by the round.

        Returns:
            Mapping of instance id to outcome, in input order.

        Raises:
            ValueError: If two configurations share an instance id.
        """
        configs = list(configurations)
        ids = check_unique_ids(configs)

        logger.info("Dispatching round to %d model(s): %s", len(configs), ", ".join(ids))
        results = await asyncio.gather(
            *(self.dispatch(cfg, prompt, options=options) for cfg in configs),
            return_exceptions=True,
        )

        outcomes: dict[str, DispatchOutcome] = {}
        for cfg, result in zip(configs, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected failure for %s: %r", cfg.instance_id, result, exc_info=result
                )
                result = DispatchOutcome.for_error(cfg, result)
            outcomes[cfg.instance_id] = result

        failed = sum(1 for outcome in outcomes.values() if not outcome.ok)
        logger.info("Round complete: %d ok, %d failed", len(outcomes) - failed, failed)
        return outcomes


def check_unique_ids(configurations: Iterable[ModelConfiguration]) -> list[str]:
    """Return the instance ids of a round, rejecting duplicates.

    Raises:
        ValueError: If two configurations share an instance id.
    """
    ids = [cfg.instance_id for cfg in configurations]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate model instance ids in round: {ids}")
    return ids


def outcomes_in_order(
    outcomes: Mapping[str, DispatchOutcome],
    configurations: Iterable[ModelConfiguration],
) -> list[DispatchOutcome]:
    """List a round's outcomes in configuration order.

    Args:
        outcomes: Result of ``Dispatcher.run_round()``.
        configurations: The configurations the round was run with.

    Returns:
        Outcomes aligned with ``configurations``.
    """
    return [outcomes[cfg.instance_id] for cfg in configurations]
