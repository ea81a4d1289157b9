"""Tests for configuration, conversation, and outcome data models.

Covers: ModelConfiguration labels and (de)serialization, the seeded
default roster, merge_configurations() ordering and removal, and
DispatchOutcome constructors, properties, and wire shapes.
"""

from __future__ import annotations

import pytest

from prompt_compare.errors import UpstreamTimeoutError
from prompt_compare.models import (
    ConversationTurn,
    DispatchOutcome,
    ModelConfiguration,
    default_configurations,
    merge_configurations,
)

# ---------------------------------------------------------------------------
# ModelConfiguration
# ---------------------------------------------------------------------------


class TestModelConfiguration:
    """ModelConfiguration fields, label, and serialization."""

    def test_label_prefers_name(self) -> None:
        cfg = ModelConfiguration("a", "openai", model="gpt-4o", name="Big GPT")
        assert cfg.label == "Big GPT"

    def test_label_falls_back_to_model_then_id(self) -> None:
        assert ModelConfiguration("a", "openai", model="gpt-4o").label == "gpt-4o"
        assert ModelConfiguration("a", "openai").label == "a"

    def test_to_dict_omits_api_key(self) -> None:
        cfg = ModelConfiguration("a", "openai", api_key="sk-secret")
        data = cfg.to_dict()
        assert "api_key" not in data
        assert "sk-secret" not in str(data)

    def test_repr_hides_api_key(self) -> None:
        cfg = ModelConfiguration("a", "openai", api_key="sk-secret")
        assert "sk-secret" not in repr(cfg)

    def test_from_dict_camel_case(self) -> None:
        cfg = ModelConfiguration.from_dict(
            {
                "id": "gem",
                "providerId": "gemini",
                "model": "gemini-2.5-pro",
                "isActive": False,
                "apiKey": "gm-key",
            }
        )
        assert cfg.instance_id == "gem"
        assert cfg.provider_id == "gemini"
        assert cfg.active is False
        assert cfg.api_key == "gm-key"

    def test_from_dict_snake_case_round_trip(self) -> None:
        cfg = ModelConfiguration("x", "anthropic", model="claude", active=False, name="C")
        assert ModelConfiguration.from_dict(cfg.to_dict()) == cfg

    def test_from_dict_missing_id_raises(self) -> None:
        with pytest.raises(ValueError, match="instance id"):
            ModelConfiguration.from_dict({"provider_id": "openai"})


# ---------------------------------------------------------------------------
# Default roster and merging
# ---------------------------------------------------------------------------


class TestDefaultsAndMerge:
    """default_configurations() and merge_configurations()."""

    def test_defaults_one_per_provider(self) -> None:
        defaults = default_configurations()
        assert list(defaults) == ["anthropic-default", "openai-default", "gemini-default"]
        assert defaults["openai-default"].model == "gpt-4o-mini"
        assert all(cfg.active for cfg in defaults.values())

    def test_defaults_fresh_each_call(self) -> None:
        first = default_configurations()
        first.pop("openai-default")
        assert "openai-default" in default_configurations()

    def test_edit_replaces_default_in_place(self) -> None:
        edit = ModelConfiguration("openai-default", "openai", model="gpt-4o")
        merged = merge_configurations(default_configurations(), {"openai-default": edit})
        assert list(merged) == ["anthropic-default", "openai-default", "gemini-default"]
        assert merged["openai-default"].model == "gpt-4o"

    def test_new_ids_appended_in_edit_order(self) -> None:
        edits = {
            "z-model": ModelConfiguration("z-model", "openai"),
            "a-model": ModelConfiguration("a-model", "gemini"),
        }
        merged = merge_configurations(default_configurations(), edits)
        assert list(merged)[-2:] == ["z-model", "a-model"]

    def test_removed_ids_dropped(self) -> None:
        merged = merge_configurations(
            default_configurations(), {}, removed=["anthropic-default"]
        )
        assert "anthropic-default" not in merged
        assert len(merged) == 2

    def test_removed_applies_to_edits(self) -> None:
        edits = {"mine": ModelConfiguration("mine", "openai")}
        merged = merge_configurations({}, edits, removed=["mine"])
        assert merged == {}


# ---------------------------------------------------------------------------
# ConversationTurn
# ---------------------------------------------------------------------------


class TestConversationTurn:
    """ConversationTurn is an immutable record."""

    def test_frozen(self) -> None:
        turn = ConversationTurn("user", "hi")
        with pytest.raises(AttributeError):
            turn.text = "changed"  # type: ignore[misc]

    def test_to_dict(self) -> None:
        assert ConversationTurn("assistant", "hello").to_dict() == {
            "speaker": "assistant",
            "text": "hello",
        }


# ---------------------------------------------------------------------------
# DispatchOutcome
# ---------------------------------------------------------------------------


class TestDispatchOutcome:
    """DispatchOutcome constructors and wire shapes."""

    def test_success_shape(self) -> None:
        outcome = DispatchOutcome.success(
            instance_id="a",
            provider_id="openai",
            content="Hi",
            resolved_model="gpt-4o-mini-2024",
            latency_ms=120,
        )
        assert outcome.ok
        assert outcome.model == "gpt-4o-mini-2024"
        data = outcome.to_dict()
        assert data["content"] == "Hi"
        assert data["model"] == "gpt-4o-mini-2024"
        assert "error" not in data

    def test_failure_shape(self) -> None:
        outcome = DispatchOutcome.failure(
            instance_id="a",
            provider_id="gemini",
            error="boom",
            requested_model="gemini-2.5-flash",
            kind="rejected",
        )
        assert not outcome.ok
        assert outcome.model == "gemini-2.5-flash"
        data = outcome.to_dict()
        assert data["error"] == "boom"
        assert data["error_kind"] == "rejected"
        assert "content" not in data

    def test_empty_content_is_still_success(self) -> None:
        outcome = DispatchOutcome.success(
            instance_id="a", provider_id="openai", content="", resolved_model="m"
        )
        assert outcome.ok

    def test_for_error_uses_exception_kind(self) -> None:
        cfg = ModelConfiguration("g", "gemini", model="gemini-2.5-flash")
        outcome = DispatchOutcome.for_error(cfg, UpstreamTimeoutError("Google Gemini", 25))
        assert outcome.error_kind == "unreachable"
        assert "timed out after 25s" in (outcome.error or "")
        assert outcome.requested_model == "gemini-2.5-flash"

    def test_for_error_unexpected_exception_is_internal(self) -> None:
        cfg = ModelConfiguration("g", "gemini")
        outcome = DispatchOutcome.for_error(cfg, RuntimeError())
        assert outcome.error_kind == "internal"
        assert outcome.error == "RuntimeError"
