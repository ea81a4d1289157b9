"""Submit and follow-up flows over a dispatcher and conversation store.

A top-level submission resets every targeted instance's history to the new
prompt and runs one dispatch round. A follow-up talks to a single instance:
the user turn is recorded immediately, the whole history is sent, and the
assistant turn is recorded only if the call succeeds. A failed follow-up
leaves the history reading "message sent, no reply received".

Typical usage::

    async with Dispatcher(config) as dispatcher:
        session = ComparisonSession(dispatcher)
        outcomes = await session.submit("Explain recursion", config.active_models())
        reply = await session.follow_up(config.get_model("openai-default"), "Shorter?")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import AsyncExitStack

from prompt_compare.conversation import ConversationStore
from prompt_compare.dispatcher import Dispatcher, check_unique_ids
from prompt_compare.models import ConversationTurn, DispatchOutcome, ModelConfiguration
from prompt_compare.types import GenerationOptions

logger = logging.getLogger(__name__)


class ComparisonSession:
    """Conversation-aware front end to a ``Dispatcher``.

    Calls touching the same instance run one at a time: a second reply (or
    a new submission) waits for the first to settle, so assistant turns are
    appended in the order their user turns were sent.

    Args:
        dispatcher: An entered dispatcher.
        store: Conversation store. A fresh one is created when omitted.
    """

    def __init__(self, dispatcher: Dispatcher, store: ConversationStore | None = None) -> None:
        self._dispatcher = dispatcher
        self.store = store or ConversationStore()
        self.last_outcomes: dict[str, DispatchOutcome] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, instance_id: str) -> asyncio.Lock:
        return self._locks.setdefault(instance_id, asyncio.Lock())

    async def submit(
        self,
        prompt: str,
        configurations: Iterable[ModelConfiguration],
        *,
        options: GenerationOptions | None = None,
    ) -> dict[str, DispatchOutcome]:
        """Send a fresh prompt to every active configuration.

        Inactive configurations in the input are skipped.

        Args:
            prompt: The new top-level prompt.
            configurations: Candidate configurations.
            options: Generation options for the round.

        Returns:
            Mapping of instance id to outcome for the active configurations.

        Raises:
            ValueError: If the prompt is blank, no configuration is active, or
                two configurations share an instance id.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt is required.")
        active = [cfg for cfg in configurations if cfg.active]
        if not active:
            raise ValueError("Select at least one model to run the comparison.")
        # Reject before any history is reset.
        check_unique_ids(active)

        async with AsyncExitStack() as stack:
            # Sorted acquisition keeps concurrent submissions deadlock-free.
            for instance_id in sorted({cfg.instance_id for cfg in active}):
                await stack.enter_async_context(self._lock_for(instance_id))

            for cfg in active:
                self.store.reset(cfg.instance_id, prompt)

            outcomes = await self._dispatcher.run_round(prompt, active, options=options)

            for instance_id, outcome in outcomes.items():
                if outcome.ok and outcome.content:
                    self.store.append_turn(
                        instance_id, ConversationTurn("assistant", outcome.content)
                    )
            self.last_outcomes.update(outcomes)
            return outcomes

    async def follow_up(
        self,
        configuration: ModelConfiguration,
        text: str,
        *,
        options: GenerationOptions | None = None,
    ) -> DispatchOutcome:
        """Continue one instance's conversation.

        Args:
            configuration: The instance to reply to.
            text: The user's follow-up message.
            options: Generation options for the call.

        Returns:
            The call's outcome.

        Raises:
            ValueError: If the message is blank.
        """
        message = text.strip() if text else ""
        if not message:
            raise ValueError("Reply text is required.")

        instance_id = configuration.instance_id
        async with self._lock_for(instance_id):
            prompt = self.store.build_follow_up_prompt(instance_id, message)
            self.store.append_turn(instance_id, ConversationTurn("user", message))
            logger.debug(
                "Follow-up for %s with %d prior turn(s)",
                instance_id,
                len(self.store.history(instance_id)) - 1,
            )

            outcome = await self._dispatcher.dispatch(configuration, prompt, options=options)

            if outcome.ok and outcome.content:
                self.store.append_turn(instance_id, ConversationTurn("assistant", outcome.content))
            self.last_outcomes[instance_id] = outcome
            return outcome

    def history(self, instance_id: str) -> list[ConversationTurn]:
        """Return an instance's conversation turns."""
        return self.store.history(instance_id)
