"""Tests for the submit and follow-up flows.

Covers: submit validation, history reset and assistant recording, the
end-to-end three-provider round with one timeout, optimistic user turns on
follow-up, and serialization of concurrent follow-ups for one instance.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from prompt_compare.config import Config
from prompt_compare.dispatcher import Dispatcher
from prompt_compare.errors import UpstreamHTTPError
from prompt_compare.models import ConversationTurn, ModelConfiguration, default_configurations
from prompt_compare.orchestrator import ComparisonSession
from prompt_compare.providers import Provider


def _roster() -> list[ModelConfiguration]:
    return list(default_configurations().values())


def _json_response(body: dict[str, object]) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = 200
    resp.json.return_value = body
    return resp


# ---------------------------------------------------------------------------
# submit()
# ---------------------------------------------------------------------------


class TestSubmit:
    """ComparisonSession.submit()."""

    @pytest.mark.asyncio
    async def test_blank_prompt_rejected(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            with pytest.raises(ValueError, match="Prompt is required"):
                await session.submit("   ", _roster())

    @pytest.mark.asyncio
    async def test_no_active_models_rejected(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        inactive = [ModelConfiguration("o", "openai", active=False)]
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            with pytest.raises(ValueError, match="at least one model"):
                await session.submit("Hello", inactive)

    @pytest.mark.asyncio
    async def test_inactive_models_skipped(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        configs = [
            ModelConfiguration("o", "openai"),
            ModelConfiguration("g", "gemini", active=False),
        ]
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            outcomes = await ComparisonSession(dispatcher).submit("Hello", configs)
        assert list(outcomes) == ["o"]
        providers["gemini"].generate.assert_not_called()  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_duplicate_ids_leave_history_untouched(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            await session.submit("first", [ModelConfiguration("a", "openai")])
            with pytest.raises(ValueError, match="Duplicate"):
                await session.submit(
                    "second",
                    [ModelConfiguration("a", "openai"), ModelConfiguration("a", "gemini")],
                )

        assert session.history("a") == [
            ConversationTurn("user", "first"),
            ConversationTurn("assistant", "openai says hi"),
        ]
        providers["gemini"].generate.assert_not_called()  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_submit_resets_history(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            await session.submit("First", _roster())
            await session.submit("Second", _roster())
            assert session.history("openai-default") == [
                ConversationTurn("user", "Second"),
                ConversationTurn("assistant", "openai says hi"),
            ]

    @pytest.mark.asyncio
    async def test_explain_recursion_end_to_end(
        self, config: Config, env: dict[str, str]
    ) -> None:
        """Anthropic and OpenAI answer; Gemini times out."""
        from prompt_compare.providers import AnthropicProvider, GeminiProvider, OpenAIProvider

        adapters: dict[str, Provider] = {
            "anthropic": AnthropicProvider(),
            "openai": OpenAIProvider(),
            "gemini": GeminiProvider(),
        }
        async with Dispatcher(config, providers=adapters, environ=env) as dispatcher:
            adapters["anthropic"]._client.post = AsyncMock(  # type: ignore[union-attr]
                return_value=_json_response(
                    {"content": [{"type": "text", "text": "A function calling itself."}]}
                )
            )
            adapters["openai"]._client.post = AsyncMock(  # type: ignore[union-attr]
                return_value=_json_response(
                    {"choices": [{"message": {"content": "Recursion is self-reference."}}]}
                )
            )
            adapters["gemini"]._client.post = AsyncMock(  # type: ignore[union-attr]
                side_effect=httpx.ReadTimeout("timed out")
            )
            session = ComparisonSession(dispatcher)
            outcomes = await session.submit("Explain recursion", _roster())

        assert len(outcomes) == 3
        assert outcomes["anthropic-default"].content == "A function calling itself."
        assert outcomes["openai-default"].content == "Recursion is self-reference."
        gemini = outcomes["gemini-default"]
        assert not gemini.ok
        assert "timed out" in (gemini.error or "")
        assert session.history("gemini-default") == [
            ConversationTurn("user", "Explain recursion")
        ]
        assert session.last_outcomes["gemini-default"] is gemini


# ---------------------------------------------------------------------------
# follow_up()
# ---------------------------------------------------------------------------


class TestFollowUp:
    """ComparisonSession.follow_up()."""

    @pytest.mark.asyncio
    async def test_sends_full_history(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        cfg = ModelConfiguration("openai-default", "openai")
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            await session.submit("hi", [cfg])
            outcome = await session.follow_up(cfg, "more")

        assert outcome.ok
        prompt = providers["openai"].generate.call_args.args[0]  # type: ignore[attr-defined]
        assert prompt == "User: hi\n\nAssistant: openai says hi\n\nUser: more"
        assert [t.speaker for t in session.history("openai-default")] == [
            "user",
            "assistant",
            "user",
            "assistant",
        ]

    @pytest.mark.asyncio
    async def test_failed_follow_up_keeps_user_turn(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        cfg = ModelConfiguration("openai-default", "openai")
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            await session.submit("hi", [cfg])
            providers["openai"].generate = AsyncMock(  # type: ignore[method-assign]
                side_effect=UpstreamHTTPError("OpenAI ChatGPT", 500, "server error")
            )
            outcome = await session.follow_up(cfg, "more")

        assert not outcome.ok
        history = session.history("openai-default")
        assert history[-1] == ConversationTurn("user", "more")
        assert len(history) == 3

    @pytest.mark.asyncio
    async def test_blank_reply_rejected(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        cfg = ModelConfiguration("o", "openai")
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            with pytest.raises(ValueError, match="Reply text is required"):
                await session.follow_up(cfg, "  ")
            assert session.history("o") == []

    @pytest.mark.asyncio
    async def test_concurrent_follow_ups_do_not_interleave(
        self, config: Config, providers: dict[str, Provider], env: dict[str, str]
    ) -> None:
        cfg = ModelConfiguration("o", "openai")
        release = asyncio.Event()

        async def _reply(prompt: str, **kwargs: object) -> tuple[str, str]:
            last = prompt.rsplit("User: ", 1)[-1]
            if last == "first":
                await release.wait()
            return f"re: {last}", "m"

        providers["openai"].generate = _reply  # type: ignore[method-assign]
        async with Dispatcher(config, providers=providers, environ=env) as dispatcher:
            session = ComparisonSession(dispatcher)
            first = asyncio.create_task(session.follow_up(cfg, "first"))
            await asyncio.sleep(0)
            second = asyncio.create_task(session.follow_up(cfg, "second"))
            await asyncio.sleep(0.01)
            release.set()
            await asyncio.gather(first, second)

        assert [t.text for t in session.history("o")] == [
            "first",
            "re: first",
            "second",
            "re: second",
        ]
