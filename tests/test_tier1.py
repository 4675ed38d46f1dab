"""Tests for lib_profiling.engine.tier1."""

from datetime import datetime, timedelta, timezone

import pytest

from lib_profiling.engine.tier1 import (
    BEHAVIORAL_CONFIDENCE_RANGE,
    KEYWORD_CONFIDENCE_RANGE,
    SENTIMENT_CONFIDENCE_RANGE,
    negative_volatility,
    period_totals,
    run_behavioral_analysis,
    run_keyword_analysis,
    run_sentiment_analysis,
    run_tier1,
    summarize_windows,
)
from lib_profiling.errors import InsufficientDataError
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.trait_types import SCORED_TRAITS


START = datetime(2026, 3, 2, tzinfo=timezone.utc)


def _window(week: int = 0, channel: str = "chat", **counts) -> AggregationWindow:
    data = {
        "user_id": "u1",
        "organization_id": "org1",
        "channel_type": channel,
        "period_start": START + timedelta(weeks=week),
        "period_end": START + timedelta(weeks=week + 1),
        "message_count": 30,
        "char_total": 30 * 80,
        "word_total": 30 * 14,
        "positive_count": 15,
        "neutral_count": 10,
        "negative_count": 5,
        "formality_sum": 30 * 55,
        "lexical_diversity_sum": 30 * 70,
        "question_count": 6,
        "emoji_count": 3,
        "response_time_sum": 12 * 120,
        "response_time_samples": 12,
        "conversations_initiated": 6,
        "conversations_participated": 12,
        "keyword_counts": {"extraversion_high": 8, "extraversion_low": 2, "conscientiousness_high": 4},
    }
    data.update(counts)
    return AggregationWindow(**data)


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------


class TestSummaries:
    """Tests for summarize_windows and period_totals."""

    def test_summarize_empty(self):
        assert summarize_windows([]) is None

    def test_summarize_sums_counts(self):
        summary = summarize_windows([_window(0), _window(1)])
        assert summary.message_count == 60
        assert summary.keyword_counts["extraversion_high"] == 16

    def test_period_totals_group_channels(self):
        totals = period_totals([_window(0), _window(0, channel="email"), _window(1)])
        assert len(totals) == 2
        assert totals[0].message_count == 60
        assert totals[0].channel_type == "other"


# ---------------------------------------------------------------------------
# Keyword analyzer
# ---------------------------------------------------------------------------


class TestKeywordAnalysis:
    """Tests for run_keyword_analysis."""

    def test_only_traits_with_evidence(self):
        output = run_keyword_analysis(_window())
        assert set(output.trait_scores) == {"extraversion", "conscientiousness"}

    def test_high_pole_raises_score(self):
        output = run_keyword_analysis(_window())
        # 50 + 50 * (8 - 2) / (8 + 2 + 4)
        assert output.trait_scores["extraversion"] == 71
        assert output.trait_scores["conscientiousness"] == 75

    def test_low_pole_lowers_score(self):
        output = run_keyword_analysis(_window(keyword_counts={"openness_low": 6}))
        assert output.trait_scores["openness"] == 20

    def test_confidence_in_range(self):
        for counts in ({}, {"extraversion_high": 500}):
            output = run_keyword_analysis(_window(keyword_counts=counts, message_count=400))
            lo, hi = KEYWORD_CONFIDENCE_RANGE
            assert lo <= output.confidence <= hi

    def test_model_type_tag(self):
        assert run_keyword_analysis(_window()).model_type == "tier1_keyword"


# ---------------------------------------------------------------------------
# Sentiment analyzer
# ---------------------------------------------------------------------------


class TestSentimentAnalysis:
    """Tests for run_sentiment_analysis."""

    def test_scores_every_trait(self):
        output = run_sentiment_analysis(_window(), [_window()])
        assert set(output.trait_scores) == set(SCORED_TRAITS)
        assert all(0 <= s <= 100 for s in output.trait_scores.values())

    def test_positive_user_more_extraverted(self):
        cheerful = run_sentiment_analysis(_window(positive_count=28, neutral_count=2, negative_count=0))
        gloomy = run_sentiment_analysis(_window(positive_count=2, neutral_count=8, negative_count=20))
        assert cheerful.trait_scores["extraversion"] > gloomy.trait_scores["extraversion"]
        assert cheerful.trait_scores["neuroticism"] < gloomy.trait_scores["neuroticism"]

    def test_volatility_from_history(self):
        calm = [_window(i) for i in range(3)]
        swinging = [
            _window(0, positive_count=25, neutral_count=5, negative_count=0),
            _window(1, positive_count=0, neutral_count=5, negative_count=25),
        ]
        assert negative_volatility(calm) == 0.0
        assert negative_volatility(swinging) > 30

    def test_confidence_in_range(self):
        output = run_sentiment_analysis(_window(message_count=500), [_window(i) for i in range(4)])
        lo, hi = SENTIMENT_CONFIDENCE_RANGE
        assert lo <= output.confidence <= hi


# ---------------------------------------------------------------------------
# Behavioral analyzer
# ---------------------------------------------------------------------------


class TestBehavioralAnalysis:
    """Tests for run_behavioral_analysis."""

    def test_quick_responder_is_conscientious(self):
        quick = run_behavioral_analysis(_window(response_time_sum=12 * 60))
        slow = run_behavioral_analysis(_window(response_time_sum=12 * 900))
        assert quick.trait_scores["conscientiousness"] == 75
        assert slow.trait_scores["conscientiousness"] == 40

    def test_initiator_is_extraverted(self):
        output = run_behavioral_analysis(_window(conversations_initiated=8, conversations_participated=12))
        assert output.trait_scores["extraversion"] == 80

    def test_confidence_highest_of_bank(self):
        summary = _window(message_count=150, conversations_participated=25)
        behavioral = run_behavioral_analysis(summary)
        keyword = run_keyword_analysis(summary)
        assert behavioral.confidence > keyword.confidence
        lo, hi = BEHAVIORAL_CONFIDENCE_RANGE
        assert lo <= behavioral.confidence <= hi


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------


class TestRunTier1:
    """Tests for run_tier1."""

    def test_returns_three_outputs(self):
        outputs = run_tier1([_window(0), _window(1)], min_messages=20, run_id="r1")
        assert [o.model_type for o in outputs] == ["tier1_keyword", "tier1_sentiment", "tier1_behavioral"]
        assert all(o.run_id == "r1" for o in outputs)
        assert all(o.user_id == "u1" for o in outputs)

    def test_insufficient_data(self):
        with pytest.raises(InsufficientDataError) as excinfo:
            run_tier1([_window(message_count=5)], min_messages=20)
        assert excinfo.value.message_count == 5
        assert excinfo.value.required == 20

    def test_no_windows(self):
        with pytest.raises(InsufficientDataError):
            run_tier1([], min_messages=1)

    def test_deterministic(self):
        windows = [_window(0), _window(1)]
        first = run_tier1(windows, min_messages=20, run_id="r1")
        second = run_tier1(windows, min_messages=20, run_id="r1")
        assert [o.checksum for o in first] == [o.checksum for o in second]
