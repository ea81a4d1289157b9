"""Google Gemini ``generateContent`` adapter.

Gemini is the one provider whose empty answers need explaining: a reply
can be cut off at the output token limit, or withheld entirely by a safety
filter. ``_extract_content`` turns those signals into user-facing text
with a fixed precedence:

1. Text present and ``finishReason == "MAX_OUTPUT_TOKENS"``: append a
   truncation note naming the configured limit.
2. No text but a block reason, a non-STOP finish reason, or blocked safety
   categories: explain which.
3. Still nothing: a generic "no text returned" message.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from prompt_compare.errors import UnsupportedOutputPolicyError
from prompt_compare.providers.base import PreparedRequest, Provider
from prompt_compare.types import GenerationOptions, ProviderId

MAX_TOKENS_REASON = "MAX_OUTPUT_TOKENS"
STOP_REASON = "STOP"
NO_TEXT_MESSAGE = "Gemini did not return any text. Check the server logs for the raw response."


class GeminiProvider(Provider):
    """Adapter for the Gemini ``models/{model}:generateContent`` endpoint.

    The key travels as the ``key`` query parameter.
    """

    provider_id = ProviderId.GEMINI

    def build_request(
        self,
        prompt: str,
        model: str,
        credential: str,
        options: GenerationOptions,
    ) -> PreparedRequest:
        generation_config: dict[str, Any] = {"maxOutputTokens": options.max_tokens}
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        url = (
            f"{self.descriptor.base_url}/models/{quote(model, safe='')}:generateContent"
            f"?key={quote(credential, safe='')}"
        )
        return url, {}, payload

    def extract_content(self, data: dict[str, Any], options: GenerationOptions) -> str:
        return _extract_content(data, options.max_tokens)


def _limit_label(max_output_tokens: int | None) -> str:
    return str(max_output_tokens) if max_output_tokens is not None else "the current"


def _primary_candidate(data: dict[str, Any]) -> dict[str, Any]:
    """Return the first candidate, or an empty dict when there is none."""
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise UnsupportedOutputPolicyError(
            "Google Gemini", f"candidates is {type(candidates).__name__}, expected a list"
        )
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _text_fragments(candidate: dict[str, Any]) -> list[str]:
    """Collect trimmed, non-empty text fragments from a candidate's parts."""
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    fragments: list[str] = []
    for part in parts:
        if isinstance(part, str):
            text = part
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            text = part["text"]
        else:
            text = ""
        text = text.strip()
        if text:
            fragments.append(text)
    return fragments


def _blocked_categories(feedback: Any, candidate: dict[str, Any]) -> list[str]:
    """Names of safety categories flagged as blocked.

    Candidate ratings take precedence over prompt feedback ratings.
    """
    ratings = candidate.get("safetyRatings")
    if not ratings and isinstance(feedback, dict):
        ratings = feedback.get("safetyRatings")
    if not isinstance(ratings, list):
        return []
    return [
        str(rating["category"])
        for rating in ratings
        if isinstance(rating, dict) and rating.get("blocked") and rating.get("category")
    ]


def _extract_content(data: dict[str, Any], max_output_tokens: int | None) -> str:
    """Normalize a Gemini response into user-facing text.

    Args:
        data: Parsed JSON response body.
        max_output_tokens: Limit the request was sent with, quoted in the
            truncation note.

    Returns:
        Response text, possibly with a truncation note, or an explanation
        of why no text came back. Never empty.

    Raises:
        UnsupportedOutputPolicyError: If ``candidates`` is not a list.
    """
    candidate = _primary_candidate(data)
    content = "\n".join(_text_fragments(candidate))
    finish_reason = candidate.get("finishReason")

    if content:
        if finish_reason == MAX_TOKENS_REASON:
            content = (
                f"{content}\n\n(Gemini stopped early after hitting the max output token limit "
                f"of {_limit_label(max_output_tokens)} tokens. Increase the limit if you need "
                "a longer reply.)"
            )
        return content

    feedback = data.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
    blocked = _blocked_categories(feedback, candidate)

    reason_parts: list[str] = []
    if finish_reason and finish_reason != STOP_REASON:
        reason_parts.append(f"finish reason: {finish_reason}")
    if block_reason:
        reason_parts.append(f"block reason: {block_reason}")
    if blocked:
        reason_parts.append(f"safety categories: {', '.join(blocked)}")

    if reason_parts:
        return (
            f"Gemini did not return any text for this prompt ({'; '.join(reason_parts)}). "
            "Try rephrasing or adjusting the request."
        )

    return NO_TEXT_MESSAGE
