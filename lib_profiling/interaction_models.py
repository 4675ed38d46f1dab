"""Pydantic models for interaction events, feature records and windows.

``InteractionEvent`` is the only model that ever holds message content, and
that content is excluded from ``repr`` and from every dump.  Everything
downstream of the extractor works with counts and sums.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lib_profiling.trait_types import ChannelType, RecipientRole


SENTIMENT_CLASSES = ("positive", "neutral", "negative")


# ---------------------------------------------------------------------------
# Ephemeral input
# ---------------------------------------------------------------------------
class InteractionEvent(BaseModel):
    """One message or interaction from the event feed."""

    user_id: str | None = None
    organization_id: str | None = None
    channel_type: str | None = None
    content: str = Field(default="", repr=False, exclude=True)
    timestamp: datetime

    # Optional feed hints
    in_reply_to_at: datetime | None = None
    starts_conversation: bool = False
    joins_conversation: bool = False
    recipient_role: RecipientRole | None = None


# ---------------------------------------------------------------------------
# Extractor output
# ---------------------------------------------------------------------------
class FeatureRecord(BaseModel):
    """Bounded numeric summary of one event. Holds no text from the content."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    organization_id: str
    channel_type: ChannelType
    observed_at: datetime

    char_count: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    sentiment: str = "neutral"
    sentiment_score: int = Field(default=0, ge=-100, le=100)
    question_count: int = Field(default=0, ge=0)
    exclamation_count: int = Field(default=0, ge=0)
    emoji_count: int = Field(default=0, ge=0)
    formality_score: int = Field(default=0, ge=0, le=100)
    lexical_diversity: int = Field(default=0, ge=0, le=100)  # percent of distinct words
    response_time_seconds: int | None = Field(default=None, ge=0)
    keyword_categories: dict[str, int] = Field(default_factory=dict)
    starts_conversation: bool = False
    joins_conversation: bool = False
    recipient_role: RecipientRole | None = None
    low_quality: bool = False

    @field_validator("sentiment")
    @classmethod
    def validate_sentiment(cls, v: str) -> str:
        if v not in SENTIMENT_CLASSES:
            raise ValueError(f"sentiment must be one of {SENTIMENT_CLASSES}")
        return v

    @field_validator("keyword_categories")
    @classmethod
    def validate_counts(cls, v: dict[str, int]) -> dict[str, int]:
        if any(count < 0 for count in v.values()):
            raise ValueError("keyword category counts must be >= 0")
        return v


# ---------------------------------------------------------------------------
# Aggregation window
# ---------------------------------------------------------------------------
class AggregationWindow(BaseModel):
    """Summary of one user's activity on one channel over one period.

    Every field is an integer count or sum, so :meth:`combine` is associative and
    commutative and windows can be merged in any order.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    organization_id: str
    channel_type: ChannelType
    period_start: datetime
    period_end: datetime
    is_rollup: bool = False

    message_count: int = Field(default=0, ge=0)
    low_quality_count: int = Field(default=0, ge=0)
    char_total: int = Field(default=0, ge=0)
    word_total: int = Field(default=0, ge=0)
    positive_count: int = Field(default=0, ge=0)
    neutral_count: int = Field(default=0, ge=0)
    negative_count: int = Field(default=0, ge=0)
    sentiment_score_sum: int = 0
    question_count: int = Field(default=0, ge=0)
    exclamation_count: int = Field(default=0, ge=0)
    emoji_count: int = Field(default=0, ge=0)
    formality_sum: int = Field(default=0, ge=0)
    lexical_diversity_sum: int = Field(default=0, ge=0)
    superior_message_count: int = Field(default=0, ge=0)
    superior_formality_sum: int = Field(default=0, ge=0)
    response_time_sum: int = Field(default=0, ge=0)
    response_time_samples: int = Field(default=0, ge=0)
    conversations_initiated: int = Field(default=0, ge=0)
    conversations_participated: int = Field(default=0, ge=0)
    keyword_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str, str, datetime]:
        return (self.user_id, self.organization_id, self.channel_type, self.period_start)

    # -- merging ------------------------------------------------------------

    def add_features(self, record: FeatureRecord) -> AggregationWindow:
        """Return a new window with *record* folded in."""
        return self.combine(window_from_features(record, self.period_start, self.period_end))

    def combine(self, other: AggregationWindow) -> AggregationWindow:
        """Return the field-wise sum of two windows for the same user and org.

        Windows from different channels combine into an ``"other"`` channel
        aggregate.
        """
        if (self.user_id, self.organization_id) != (other.user_id, other.organization_id):
            raise ValueError("Cannot combine windows for different users or organizations")
        channel = self.channel_type if self.channel_type == other.channel_type else "other"

        keywords = dict(self.keyword_counts)
        for category, count in other.keyword_counts.items():
            keywords[category] = keywords.get(category, 0) + count

        summed = {name: getattr(self, name) + getattr(other, name) for name in _SUMMED_FIELDS}
        return AggregationWindow(
            user_id=self.user_id,
            organization_id=self.organization_id,
            channel_type=channel,
            period_start=min(self.period_start, other.period_start),
            period_end=max(self.period_end, other.period_end),
            is_rollup=self.is_rollup or other.is_rollup,
            keyword_counts=dict(sorted(keywords.items())),
            **summed,
        )

    # -- derived values -----------------------------------------------------

    @property
    def total_messages(self) -> int:
        return self.message_count + self.low_quality_count

    def sentiment_percentages(self) -> dict[str, int]:
        """Positive/neutral/negative shares as integers that always sum to 100."""
        return sentiment_percentages(self.positive_count, self.neutral_count, self.negative_count)

    def mean_formality(self) -> float | None:
        return self.formality_sum / self.message_count if self.message_count else None

    def mean_response_time(self) -> float | None:
        if not self.response_time_samples:
            return None
        return self.response_time_sum / self.response_time_samples

    def rate(self, counter: str) -> float:
        """Per-message rate of a counter field (0.0 for an empty window)."""
        if not self.message_count:
            return 0.0
        return getattr(self, counter) / self.message_count


_SUMMED_FIELDS = (
    "message_count",
    "low_quality_count",
    "char_total",
    "word_total",
    "positive_count",
    "neutral_count",
    "negative_count",
    "sentiment_score_sum",
    "question_count",
    "exclamation_count",
    "emoji_count",
    "formality_sum",
    "lexical_diversity_sum",
    "superior_message_count",
    "superior_formality_sum",
    "response_time_sum",
    "response_time_samples",
    "conversations_initiated",
    "conversations_participated",
)


def window_from_features(record: FeatureRecord, period_start: datetime, period_end: datetime) -> AggregationWindow:
    """Build a single-event window from a feature record."""
    base = AggregationWindow(
        user_id=record.user_id,
        organization_id=record.organization_id,
        channel_type=record.channel_type,
        period_start=period_start,
        period_end=period_end,
    )
    if record.low_quality:
        return base.model_copy(update={"low_quality_count": 1})

    to_superior = record.recipient_role == "superior"
    return base.model_copy(update={
        "message_count": 1,
        "char_total": record.char_count,
        "word_total": record.word_count,
        "positive_count": int(record.sentiment == "positive"),
        "neutral_count": int(record.sentiment == "neutral"),
        "negative_count": int(record.sentiment == "negative"),
        "sentiment_score_sum": record.sentiment_score,
        "question_count": record.question_count,
        "exclamation_count": record.exclamation_count,
        "emoji_count": record.emoji_count,
        "formality_sum": record.formality_score,
        "lexical_diversity_sum": record.lexical_diversity,
        "superior_message_count": int(to_superior),
        "superior_formality_sum": record.formality_score if to_superior else 0,
        "response_time_sum": record.response_time_seconds or 0,
        "response_time_samples": int(record.response_time_seconds is not None),
        "conversations_initiated": int(record.starts_conversation),
        "conversations_participated": int(record.starts_conversation or record.joins_conversation),
        "keyword_counts": dict(sorted(record.keyword_categories.items())),
    })


def sentiment_percentages(positive: int, neutral: int, negative: int) -> dict[str, int]:
    """Largest-remainder percentages; an empty distribution is all neutral."""
    total = positive + neutral + negative
    if total == 0:
        return {"positive": 0, "neutral": 100, "negative": 0}

    counts = {"positive": positive, "neutral": neutral, "negative": negative}
    exact = {k: v * 100 / total for k, v in counts.items()}
    floors = {k: int(v) for k, v in exact.items()}
    remaining = 100 - sum(floors.values())
    # Ties break in the fixed class order so results are deterministic
    by_remainder = sorted(SENTIMENT_CLASSES, key=lambda k: (-(exact[k] - floors[k]), SENTIMENT_CLASSES.index(k)))
    for k in by_remainder[:remaining]:
        floors[k] += 1
    return floors
