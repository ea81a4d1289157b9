"""Per-model conversation history.

Each model instance keeps an ordered list of user/assistant turns. Because
provider calls are stateless, a follow-up replays the whole history as a
single prompt of labelled lines::

    User: hi

    Assistant: hello

    User: more

History lives in process memory only.
"""

from __future__ import annotations

from collections.abc import Iterable

from prompt_compare.models import ConversationTurn

SPEAKER_LABELS: dict[str, str] = {"user": "User", "assistant": "Assistant"}
TURN_SEPARATOR = "\n\n"


def format_conversation(turns: Iterable[ConversationTurn]) -> str:
    """Render turns as labelled lines separated by blank lines.

    Turns with empty text are skipped.

    Args:
        turns: Conversation turns in order.

    Returns:
        The rendered prompt text.
    """
    return TURN_SEPARATOR.join(
        f"{SPEAKER_LABELS[turn.speaker]}: {turn.text}" for turn in turns if turn.text
    )


class ConversationStore:
    """In-memory turn lists keyed by model instance id.

    Each instance's list is only written by the flow acting on that
    instance, so no locking happens here; see ``ComparisonSession`` for
    the follow-up serialization.
    """

    def __init__(self) -> None:
        self._turns: dict[str, list[ConversationTurn]] = {}

    def append_turn(self, instance_id: str, turn: ConversationTurn) -> None:
        """Append a turn to an instance's history."""
        self._turns.setdefault(instance_id, []).append(turn)

    def history(self, instance_id: str) -> list[ConversationTurn]:
        """Return a copy of an instance's turns (empty if none)."""
        return list(self._turns.get(instance_id, []))

    def reset(self, instance_id: str, prompt: str) -> None:
        """Replace an instance's history with a single user turn.

        Args:
            instance_id: Model instance to reset.
            prompt: The new top-level prompt.
        """
        self._turns[instance_id] = [ConversationTurn("user", prompt)]

    def discard(self, instance_id: str) -> None:
        """Forget an instance's history."""
        self._turns.pop(instance_id, None)

    def clear(self) -> None:
        """Forget every instance's history."""
        self._turns.clear()

    def instance_ids(self) -> list[str]:
        """Instance ids that have any history, in first-seen order."""
        return list(self._turns)

    def build_follow_up_prompt(self, instance_id: str, new_user_text: str) -> str:
        """Render prior turns plus a new user message as one prompt.

        Does not modify the stored history.

        Args:
            instance_id: Model instance whose history is replayed.
            new_user_text: The follow-up message.

        Returns:
            The full conversation, ending with ``User: <new_user_text>``.
        """
        turns = [*self._turns.get(instance_id, []), ConversationTurn("user", new_user_text)]
        return format_conversation(turns)
