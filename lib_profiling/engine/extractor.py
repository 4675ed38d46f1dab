"""Metric extractor: one interaction event -> one bounded feature record.

The content string is read here and nowhere else.  Only counts, scores and
category tallies leave this module.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
import logging
import re

from lib_profiling.engine.lexicon import (
    FORMAL_MARKERS,
    INFORMAL_MARKERS,
    NEGATIVE_WORDS,
    NEGATORS,
    POSITIVE_WORDS,
    all_categories,
)
from lib_profiling.errors import ExtractionError
from lib_profiling.interaction_models import FeatureRecord, InteractionEvent


logger = logging.getLogger(__name__)

_CHANNELS = frozenset({"chat", "email", "meeting", "comment", "other"})

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")
_EMOJI_RE = re.compile(r"[\U0001F300-\U0001FAFF\u2600-\u27BF]|[:;]-?[)(DPp]")
_CONTRACTION_RE = re.compile(r"\b[a-z]+'(?:s|t|re|ve|ll|d|m)\b")


def _build_matchers() -> list[tuple[str, frozenset[str], re.Pattern | None]]:
    matchers = []
    for category, terms in all_categories().items():
        words = frozenset(t for t in terms if " " not in t)
        phrases = [t for t in terms if " " in t]
        pattern = None
        if phrases:
            alternation = "|".join(re.escape(p) for p in sorted(phrases))
            pattern = re.compile(rf"(?<![\w'])(?:{alternation})(?![\w'])")
        matchers.append((category, words, pattern))
    return matchers


_CATEGORY_MATCHERS = _build_matchers()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def extract_features(event: InteractionEvent) -> FeatureRecord:
    """Convert *event* into a :class:`FeatureRecord`.

    Raises:
        ExtractionError: If user, organization or channel is missing.
    """
    user_id, organization_id, channel = _require_identifiers(event)
    observed_at = _as_utc(event.timestamp)

    text = (event.content or "").strip()
    lowered = text.lower()
    tokens = _TOKEN_RE.findall(lowered)
    if not tokens:
        return FeatureRecord(
            user_id=user_id,
            organization_id=organization_id,
            channel_type=channel,
            observed_at=observed_at,
            low_quality=True,
        )

    emoji_count = len(_EMOJI_RE.findall(text))
    exclamations = text.count("!")
    sentiment, sentiment_score = classify_sentiment(tokens)

    return FeatureRecord(
        user_id=user_id,
        organization_id=organization_id,
        channel_type=channel,
        observed_at=observed_at,
        char_count=len(text),
        word_count=len(tokens),
        sentiment=sentiment,
        sentiment_score=sentiment_score,
        question_count=text.count("?"),
        exclamation_count=exclamations,
        emoji_count=emoji_count,
        formality_score=formality_score(text, tokens, emoji_count, exclamations),
        lexical_diversity=round(len(set(tokens)) * 100 / len(tokens)),
        response_time_seconds=_response_time(event, observed_at),
        keyword_categories=keyword_categories(lowered, tokens),
        starts_conversation=event.starts_conversation,
        joins_conversation=event.joins_conversation,
        recipient_role=event.recipient_role,
    )


def extract_batch(events: Iterable[InteractionEvent]) -> tuple[list[FeatureRecord], int]:
    """Extract every event, skipping those with missing identifiers.

    Returns the records and the number of skipped events.
    """
    records: list[FeatureRecord] = []
    skipped = 0
    for event in events:
        try:
            records.append(extract_features(event))
        except ExtractionError as exc:
            skipped += 1
            logger.warning("Skipping interaction event: %s", exc)
    return records, skipped


def classify_sentiment(tokens: list[str]) -> tuple[str, int]:
    """Lexicon sentiment with single-token negation; score in [-100, 100]."""
    positive = negative = 0
    for i, token in enumerate(tokens):
        negated = i > 0 and tokens[i - 1] in NEGATORS
        if token in POSITIVE_WORDS:
            if negated:
                negative += 1
            else:
                positive += 1
        elif token in NEGATIVE_WORDS:
            if negated:
                positive += 1
            else:
                negative += 1

    hits = positive + negative
    if hits == 0:
        return "neutral", 0
    score = round((positive - negative) * 100 / hits)
    if score > 0:
        return "positive", score
    if score < 0:
        return "negative", score
    return "neutral", 0


def formality_score(text: str, tokens: list[str], emoji_count: int, exclamations: int) -> int:
    """Heuristic register score, 0 (very casual) to 100 (very formal)."""
    score = 50.0
    score += 8 * sum(1 for t in tokens if t in FORMAL_MARKERS)
    score -= 8 * sum(1 for t in tokens if t in INFORMAL_MARKERS)
    score -= 5 * emoji_count
    score -= 3 * min(exclamations, 5)
    score -= 2 * len(_CONTRACTION_RE.findall(text.lower()))

    if text[0].isupper() and text.rstrip()[-1:] in {".", "?"}:
        score += 10
    mean_word_length = sum(len(t) for t in tokens) / len(tokens)
    if mean_word_length >= 6:
        score += 10
    elif mean_word_length < 4:
        score -= 5

    return int(max(0, min(100, round(score))))


def keyword_categories(lowered: str, tokens: list[str]) -> dict[str, int]:
    """Non-zero category counts for the lowercased text."""
    token_counts = Counter(tokens)
    counts: dict[str, int] = {}
    for category, words, pattern in _CATEGORY_MATCHERS:
        total = sum(token_counts[w] for w in words if w in token_counts)
        if pattern is not None:
            total += len(pattern.findall(lowered))
        if total:
            counts[category] = total
    return counts


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _require_identifiers(event: InteractionEvent) -> tuple[str, str, str]:
    missing = [
        name for name, value in (
            ("user_id", event.user_id),
            ("organization_id", event.organization_id),
            ("channel_type", event.channel_type),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ExtractionError(f"Interaction event missing {', '.join(missing)}")

    channel = event.channel_type.strip().lower()
    if channel not in _CHANNELS:
        channel = "other"
    return event.user_id.strip(), event.organization_id.strip(), channel


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def _response_time(event: InteractionEvent, observed_at: datetime) -> int | None:
    if event.in_reply_to_at is None:
        return None
    seconds = (observed_at - _as_utc(event.in_reply_to_at)).total_seconds()
    if seconds < 0:
        return None
    return int(round(seconds))
