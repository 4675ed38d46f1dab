"""Tier-1 model bank: keyword, sentiment and behavioral analyzers.

Each analyzer is a pure function of an aggregated window (plus, for the
sentiment analyzer, per-period history) and returns one immutable model
output with a per-trait score map and one confidence for the model.
"""

from __future__ import annotations

from collections import defaultdict
import logging
import statistics

from lib_profiling.engine.lexicon import trait_category
from lib_profiling.engine.numeric import clamp_score
from lib_profiling.errors import InsufficientDataError
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.profile_models import (
    BehavioralOutput,
    KeywordOutput,
    ModelOutputBase,
    SentimentOutput,
)
from lib_profiling.trait_types import SCORED_TRAITS


logger = logging.getLogger(__name__)

# Confidence floors/caps per analyzer
KEYWORD_CONFIDENCE_RANGE = (30, 70)
SENTIMENT_CONFIDENCE_RANGE = (35, 85)
BEHAVIORAL_CONFIDENCE_RANGE = (40, 95)

# Pseudo-count that pulls sparse keyword evidence toward the midpoint
_KEYWORD_SMOOTHING = 4

_QUICK_RESPONSE_SECONDS = 180
_SLOW_RESPONSE_SECONDS = 600
_SHORT_MESSAGE_CHARS = 50
_LONG_MESSAGE_CHARS = 150


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------
def summarize_windows(windows: list[AggregationWindow]) -> AggregationWindow | None:
    """Combine windows (any channels, any periods) into one aggregate."""
    if not windows:
        return None
    total = windows[0]
    for window in windows[1:]:
        total = total.combine(window)
    return total


def period_totals(windows: list[AggregationWindow]) -> list[AggregationWindow]:
    """Cross-channel totals per period, ordered by period start."""
    by_period: dict = defaultdict(list)
    for window in windows:
        by_period[window.period_start].append(window)
    return [summarize_windows(by_period[start]) for start in sorted(by_period)]


def _bound(value: int, bounds: tuple[int, int]) -> int:
    lo, hi = bounds
    return max(lo, min(hi, value))


# ---------------------------------------------------------------------------
# Keyword analyzer
# ---------------------------------------------------------------------------
def run_keyword_analysis(summary: AggregationWindow, run_id: str | None = None) -> KeywordOutput:
    """Score traits from lexicon pole counts.

    A trait is only predicted when at least one of its pole terms occurred.
    """
    scores: dict[str, int] = {}
    total_hits = 0
    for trait_id in SCORED_TRAITS:
        high = summary.keyword_counts.get(trait_category(trait_id, "high"), 0)
        low = summary.keyword_counts.get(trait_category(trait_id, "low"), 0)
        if high + low == 0:
            continue
        total_hits += high + low
        scores[trait_id] = clamp_score(50 + 50 * (high - low) / (high + low + _KEYWORD_SMOOTHING))

    return KeywordOutput(
        run_id=run_id,
        user_id=summary.user_id,
        organization_id=summary.organization_id,
        trait_scores=scores,
        confidence=keyword_confidence(summary, total_hits),
    )


def keyword_confidence(summary: AggregationWindow, total_hits: int) -> int:
    """Data-quality confidence for the keyword analyzer (lowest of the bank)."""
    confidence = 50
    if summary.message_count > 100:
        confidence += 20
    elif summary.message_count > 50:
        confidence += 10
    elif summary.message_count > 20:
        confidence += 5

    if summary.rate("lexical_diversity_sum") > 60:
        confidence += 5
    if total_hits < 5:
        confidence -= 15
    elif total_hits / max(1, summary.message_count) >= 0.5:
        confidence += 10
    if summary.conversations_participated > 10:
        confidence += 5
    return _bound(confidence, KEYWORD_CONFIDENCE_RANGE)


# ---------------------------------------------------------------------------
# Sentiment analyzer
# ---------------------------------------------------------------------------
def run_sentiment_analysis(
    summary: AggregationWindow,
    history: list[AggregationWindow] | None = None,
    run_id: str | None = None,
) -> SentimentOutput:
    """Score traits from sentiment distribution and its variation over time."""
    pct = summary.sentiment_percentages()
    positive, neutral, negative = pct["positive"], pct["neutral"], pct["negative"]
    emoji_rate = summary.rate("emoji_count")
    question_rate = summary.rate("question_count")
    volatility = negative_volatility(history or [])

    raw = {
        "openness": positive * 0.6 + emoji_rate * 40,
        "conscientiousness": neutral * 0.8 + 20,
        "extraversion": positive * 0.9,
        "agreeableness": positive * 0.85 + 10,
        "neuroticism": negative * 1.2 + volatility * 0.5,
        "dominance": 100 - neutral * 0.7 - question_rate * 100,
        "influence": positive * 0.85 + 10,
        "steadiness": neutral * 0.9 + 10 - volatility * 0.3,
        "compliance": neutral * 0.75 + positive * 0.25,
        "self_awareness": 50 + positive * 0.3 + neutral * 0.2,
        "self_regulation": 100 - negative * 1.5 - volatility * 0.5,
        "motivation": positive * 0.8 + 15,
        "empathy": positive * 0.7 + neutral * 0.3,
        "social_skills": positive * 0.6 + neutral * 0.3 + 10,
    }

    return SentimentOutput(
        run_id=run_id,
        user_id=summary.user_id,
        organization_id=summary.organization_id,
        trait_scores={trait_id: clamp_score(raw[trait_id]) for trait_id in SCORED_TRAITS},
        confidence=sentiment_confidence(summary, len(history or [])),
    )


def negative_volatility(history: list[AggregationWindow]) -> float:
    """Population std-dev of the negative-sentiment share across periods."""
    shares = [w.sentiment_percentages()["negative"] for w in history if w.message_count > 0]
    if len(shares) < 2:
        return 0.0
    return statistics.pstdev(shares)


def sentiment_confidence(summary: AggregationWindow, history_periods: int) -> int:
    confidence = 55
    if summary.message_count > 100:
        confidence += 15
    elif summary.message_count > 50:
        confidence += 10

    pct = summary.sentiment_percentages()
    skew = abs(pct["positive"] - 50) + abs(pct["negative"] - 20) + abs(pct["neutral"] - 30)
    if skew < 50:
        confidence += 20
    elif skew < 100:
        confidence += 10

    if summary.emoji_count > 0:
        confidence += 10
    if history_periods < 2:
        confidence -= 10
    return _bound(confidence, SENTIMENT_CONFIDENCE_RANGE)


# ---------------------------------------------------------------------------
# Behavioral analyzer
# ---------------------------------------------------------------------------
def run_behavioral_analysis(summary: AggregationWindow, run_id: str | None = None) -> BehavioralOutput:
    """Score traits from initiation, latency, length and question patterns."""
    response_time = summary.mean_response_time()
    quick = response_time is not None and response_time < _QUICK_RESPONSE_SECONDS
    slow = response_time is not None and response_time > _SLOW_RESPONSE_SECONDS
    mean_length = summary.rate("char_total")
    short = mean_length < _SHORT_MESSAGE_CHARS
    long = mean_length > _LONG_MESSAGE_CHARS

    initiated = summary.conversations_initiated
    participated = summary.conversations_participated
    initiation_rate = initiated / participated if participated else 0.0
    high_initiator = participated > 0 and initiation_rate > 0.3
    high_participant = participated >= 10 and initiation_rate < 0.5
    question_rate = summary.rate("question_count")

    raw = {
        "openness": summary.rate("lexical_diversity_sum"),
        "conscientiousness": 75 if quick else 40 if slow else 60,
        "extraversion": 80 if high_initiator else 65 if high_participant else 50,
        "agreeableness": 75 if high_participant else 55,
        "neuroticism": 60 if quick and short else 40,
        "dominance": (75 if short and quick else 45) - question_rate * 20,
        "influence": 80 if high_initiator else 50,
        "steadiness": 70 if response_time is not None and not quick and not slow else 50,
        "compliance": (75 if long and not quick else 50) + question_rate * 10,
        "self_awareness": 65 if long else 50,
        "self_regulation": 55 if quick else 70,
        "motivation": 75 if high_initiator else 55,
        "empathy": 70 if high_participant else 50,
        "social_skills": 75 if high_participant else 50,
    }

    return BehavioralOutput(
        run_id=run_id,
        user_id=summary.user_id,
        organization_id=summary.organization_id,
        trait_scores={trait_id: clamp_score(raw[trait_id]) for trait_id in SCORED_TRAITS},
        confidence=behavioral_confidence(summary),
    )


def behavioral_confidence(summary: AggregationWindow) -> int:
    confidence = 60
    if summary.message_count > 100:
        confidence += 20
    elif summary.message_count > 50:
        confidence += 15
    elif summary.message_count > 20:
        confidence += 10

    if summary.conversations_participated > 20:
        confidence += 10
    elif summary.conversations_participated > 10:
        confidence += 5
    if summary.response_time_samples >= 10:
        confidence += 5
    return _bound(confidence, BEHAVIORAL_CONFIDENCE_RANGE)


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------
def run_tier1(
    windows: list[AggregationWindow],
    min_messages: int,
    run_id: str | None = None,
) -> list[ModelOutputBase]:
    """Run all three analyzers over the analysis-period windows.

    Raises:
        InsufficientDataError: If fewer than *min_messages* quality messages.
    """
    summary = summarize_windows(windows)
    message_count = summary.message_count if summary else 0
    if summary is None or message_count < min_messages:
        raise InsufficientDataError(
            f"{message_count} messages in analysis period, {min_messages} required",
            message_count=message_count,
            required=min_messages,
        )

    history = period_totals(windows)
    outputs: list[ModelOutputBase] = [
        run_keyword_analysis(summary, run_id=run_id),
        run_sentiment_analysis(summary, history, run_id=run_id),
        run_behavioral_analysis(summary, run_id=run_id),
    ]
    logger.debug(
        "Tier-1 confidences: %s",
        {o.model_type: o.confidence for o in outputs},
    )
    return outputs
