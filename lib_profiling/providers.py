"""Tier-2 validation providers.

The engine talks to an external language model through one capability,
``validate(summary, tier1_results)``.  The crewai-backed implementation
tries the primary model and falls back to OpenRouter when configured.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from pydantic import BaseModel, Field

from lib_profiling.errors import ValidationProviderError
from lib_profiling.llm_config import get_available_llms
from lib_profiling.trait_types import SCORED_TRAITS


logger = logging.getLogger(__name__)

# Rough characters-per-token ratio for usage estimates
_CHARS_PER_TOKEN = 4


class ValidationResponse(BaseModel):
    """Validated trait scores returned by a provider."""

    traits: dict[str, int]
    confidence: int = Field(ge=0, le=100)
    conflicts: list[str] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)
    provider_label: str = ""


class ValidationProvider(Protocol):
    """Single abstract capability used by the Tier-2 validator."""

    def validate(self, summary: dict[str, Any], tier1_results: list[dict[str, Any]]) -> ValidationResponse:
        ...


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------
VALIDATION_SYSTEM_PROMPT = (
    "You are a workplace personality assessment expert. You receive aggregated, "
    "anonymised communication statistics and the trait scores of three heuristic "
    "models. Re-score each trait from 0 to 100 for the Big Five, DISC and "
    "emotional-intelligence frameworks. Return JSON only."
)


def build_validation_messages(summary: dict[str, Any], tier1_results: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Chat messages for a validation request; contains aggregates only."""
    user_prompt = (
        "Communication statistics for the analysis period:\n"
        f"{json.dumps(summary, indent=2, sort_keys=True)}\n\n"
        "Heuristic model predictions (score 0-100, confidence 0-100):\n"
        f"{json.dumps(tier1_results, indent=2, sort_keys=True)}\n\n"
        f"Score exactly these traits: {', '.join(SCORED_TRAITS)}.\n"
        "Respond with a JSON object of the form:\n"
        '{"traits": {"<trait_id>": <0-100>, ...}, "confidence": <0-100>, '
        '"conflicts": ["<trait_id where the heuristics disagree>", ...]}'
    )
    return [
        {"role": "system", "content": VALIDATION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def parse_validation_reply(raw_text: str, default_confidence: int) -> tuple[dict[str, int], int, list[str]]:
    """Parse a provider reply into (traits, confidence, conflicts).

    Handles JSON embedded in markdown code blocks as well as bare JSON.

    Raises:
        ValidationProviderError: If no JSON object with usable trait scores
            can be read from the reply.
    """
    json_match = re.search(r"```(?:json)?\s*(\{.*\})\s*```", raw_text, re.DOTALL)
    json_str = json_match.group(1) if json_match else raw_text.strip()

    if not json_str.startswith("{"):
        brace_start = json_str.find("{")
        brace_end = json_str.rfind("}")
        if brace_start >= 0 and brace_end > brace_start:
            json_str = json_str[brace_start : brace_end + 1]

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise ValidationProviderError(f"Unparseable validation reply: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationProviderError("Validation reply is not a JSON object")

    raw_traits = data.get("traits", {})
    if not isinstance(raw_traits, dict):
        raw_traits = {}

    traits: dict[str, int] = {}
    for trait_id, value in raw_traits.items():
        if trait_id not in SCORED_TRAITS:
            continue
        if isinstance(value, dict):
            value = value.get("score")
        try:
            traits[trait_id] = max(0, min(100, int(round(float(value)))))
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric score for %s", trait_id)

    if not traits:
        raise ValidationProviderError("Validation reply contained no usable trait scores")

    try:
        confidence = max(0, min(100, int(data.get("confidence", default_confidence))))
    except (TypeError, ValueError):
        confidence = default_confidence

    raw_conflicts = data.get("conflicts", [])
    if not isinstance(raw_conflicts, list):
        raw_conflicts = []
    conflicts = [str(c) for c in raw_conflicts if str(c) in SCORED_TRAITS]
    return traits, confidence, conflicts


def estimate_tokens(messages: list[dict[str, str]], reply: str) -> int:
    chars = sum(len(m["content"]) for m in messages) + len(reply)
    return max(1, chars // _CHARS_PER_TOKEN)


# ---------------------------------------------------------------------------
# crewai provider
# ---------------------------------------------------------------------------
class CrewAIValidationProvider:
    """Validation through crewai ``LLM`` objects, tried in order."""

    def __init__(self, llms: list[tuple[str, Any]], default_confidence: int = 85):
        if not llms:
            raise ValueError("At least one LLM is required")
        self._llms = list(llms)
        self.default_confidence = default_confidence

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self._llms]

    def validate(self, summary: dict[str, Any], tier1_results: list[dict[str, Any]]) -> ValidationResponse:
        messages = build_validation_messages(summary, tier1_results)
        errors: list[str] = []
        for label, llm in self._llms:
            before = _reported_total_tokens(llm)
            try:
                reply = llm.call(messages)
                traits, confidence, conflicts = parse_validation_reply(str(reply), self.default_confidence)
            except Exception as e:
                logger.warning("Validation via %s failed: %s", label, e)
                errors.append(f"{label}: {e}")
                continue

            after = _reported_total_tokens(llm)
            if before is not None and after is not None and after >= before:
                tokens = after - before
            else:
                tokens = estimate_tokens(messages, str(reply))
            return ValidationResponse(
                traits=traits,
                confidence=confidence,
                conflicts=conflicts,
                tokens_used=tokens,
                provider_label=label,
            )

        raise ValidationProviderError("; ".join(errors))


def _reported_total_tokens(llm: Any) -> int | None:
    usage_fn = getattr(llm, "get_token_usage_summary", None)
    if not callable(usage_fn):
        return None
    try:
        total = getattr(usage_fn(), "total_tokens", None)
    except Exception:
        logger.debug("Token usage summary unavailable", exc_info=True)
        return None
    return total if isinstance(total, int) else None


def build_validation_provider(timeout: float | None = None, default_confidence: int = 85) -> CrewAIValidationProvider | None:
    """Provider over every configured LLM, or None when none is configured."""
    llms = get_available_llms(timeout=timeout)
    if not llms:
        logger.warning("No validation LLM configured; Tier-2 validation disabled")
        return None
    return CrewAIValidationProvider(llms, default_confidence=default_confidence)
