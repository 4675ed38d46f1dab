"""Tier-2 selective validator.

Decides when the external model is worth its cost and, when it is, sends a
redacted aggregate summary through the injected provider.  Rate limiting,
retry with backoff and the per-call timeout all live here.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
import hashlib
import logging
import time
from typing import Any

from pydantic import BaseModel, Field

from lib_profiling.errors import ValidationProviderError
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.profile_models import LlmValidationOutput, ModelOutputBase
from lib_profiling.providers import ValidationProvider, ValidationResponse
from lib_profiling.rate_limit import RateLimiter, call_with_timeout, retry_with_backoff
from lib_profiling.settings import ValidatorSettings
from lib_profiling.trait_types import SCORED_TRAITS


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Trigger evaluation
# ---------------------------------------------------------------------------
class TriggerDecision(BaseModel):
    """Why (or whether) Tier-2 validation should run for one user."""

    low_confidence: bool = False
    conflicting_traits: list[str] = Field(default_factory=list)
    sampled: bool = False

    @property
    def triggered(self) -> bool:
        return self.low_confidence or bool(self.conflicting_traits) or self.sampled

    @property
    def reasons(self) -> list[str]:
        reasons = []
        if self.low_confidence:
            reasons.append("low_confidence")
        if self.conflicting_traits:
            reasons.append("sign_conflict")
        if self.sampled:
            reasons.append("quality_sample")
        return reasons


def detect_sign_conflicts(outputs: list[ModelOutputBase], settings: ValidatorSettings) -> list[str]:
    """Traits where two confident Tier-1 outputs land on opposite sides."""
    confident = [
        o for o in outputs
        if o.model_type != "tier2_llm" and o.confidence > settings.conflict_min_confidence
    ]
    conflicts: list[str] = []
    for trait_id in SCORED_TRAITS:
        scores = [o.trait_scores[trait_id] for o in confident if trait_id in o.trait_scores]
        if len(scores) < 2:
            continue
        if max(scores) >= settings.conflict_high_score and min(scores) <= settings.conflict_low_score:
            conflicts.append(trait_id)
    return conflicts


def in_quality_sample(user_id: str, when: date, seed: str, rate: float) -> bool:
    """Deterministic weekly sample: same user, ISO week and seed -> same answer."""
    if rate <= 0:
        return False
    if rate >= 1:
        return True
    iso = when.isocalendar()
    key = f"{seed}:{user_id}:{iso[0]}-W{iso[1]:02d}"
    bucket = int(hashlib.sha256(key.encode("utf-8")).hexdigest()[:16], 16) / float(1 << 64)
    return bucket < rate


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------
def build_redacted_summary(summary: AggregationWindow, periods: int) -> dict[str, Any]:
    """Aggregate statistics for the provider: no identifiers, no content."""
    messages = summary.message_count
    mean_response = summary.mean_response_time()
    participated = summary.conversations_participated
    keyword_rates = {
        category: round(count / messages, 3)
        for category, count in sorted(summary.keyword_counts.items())
    } if messages else {}
    return {
        "periods_analyzed": periods,
        "message_count": messages,
        "conversations_participated": participated,
        "conversation_initiation_rate": round(summary.conversations_initiated / participated, 3) if participated else None,
        "sentiment_percentages": summary.sentiment_percentages(),
        "mean_formality": round(summary.rate("formality_sum"), 1),
        "mean_message_length_chars": round(summary.rate("char_total"), 1),
        "mean_lexical_diversity_pct": round(summary.rate("lexical_diversity_sum"), 1),
        "question_rate": round(summary.rate("question_count"), 3),
        "exclamation_rate": round(summary.rate("exclamation_count"), 3),
        "emoji_rate": round(summary.rate("emoji_count"), 3),
        "mean_response_time_seconds": round(mean_response, 1) if mean_response is not None else None,
        "keyword_category_rates": keyword_rates,
    }


def tier1_payload(outputs: list[ModelOutputBase]) -> list[dict[str, Any]]:
    return [
        {"model_type": o.model_type, "confidence": o.confidence, "trait_scores": dict(o.trait_scores)}
        for o in outputs
        if o.model_type != "tier2_llm"
    ]


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------
class TierTwoValidator:
    """Trigger evaluation plus rate-limited, retried, time-boxed provider calls."""

    def __init__(
        self,
        provider: ValidationProvider | None,
        settings: ValidatorSettings | None = None,
        limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.settings = settings or ValidatorSettings()
        self.limiter = limiter or RateLimiter(self.settings.requests_per_minute)
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def should_validate(
        self,
        consensus_confidence: int,
        tier1_outputs: list[ModelOutputBase],
        user_id: str,
        when: date,
    ) -> TriggerDecision:
        s = self.settings
        return TriggerDecision(
            low_confidence=consensus_confidence < s.confidence_threshold,
            conflicting_traits=detect_sign_conflicts(tier1_outputs, s),
            sampled=in_quality_sample(user_id, when, s.sample_seed, s.sample_rate),
        )

    def validate(
        self,
        summary: AggregationWindow,
        periods: int,
        tier1_outputs: list[ModelOutputBase],
        run_id: str | None = None,
    ) -> LlmValidationOutput:
        """Call the provider once (with retries) and wrap the reply as a model output.

        Raises:
            ValidationProviderError: On timeout, provider error or unusable
                reply after the retry budget is spent, or when no provider
                is configured.
        """
        if self.provider is None:
            raise ValidationProviderError("No validation provider configured")

        redacted = build_redacted_summary(summary, periods)
        predictions = tier1_payload(tier1_outputs)

        s = self.settings
        call = retry_with_backoff(
            max_attempts=s.max_attempts,
            base_delay=s.base_delay_seconds,
            sleep=self._sleep,
        )(self._attempt)
        try:
            response = call(redacted, predictions)
        except ValidationProviderError:
            raise
        except Exception as exc:
            raise ValidationProviderError(f"Validation provider failed: {exc}") from exc

        return LlmValidationOutput(
            run_id=run_id,
            user_id=summary.user_id,
            organization_id=summary.organization_id,
            trait_scores=response.traits,
            confidence=response.confidence,
            tokens_used=response.tokens_used,
            conflicts=response.conflicts,
            provider_label=response.provider_label,
        )

    def _attempt(self, redacted: dict[str, Any], predictions: list[dict[str, Any]]) -> ValidationResponse:
        self.limiter.acquire()
        return call_with_timeout(self.provider.validate, self.settings.timeout_seconds, redacted, predictions)
