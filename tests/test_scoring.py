"""Tests for lib_profiling.engine.scoring."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from lib_profiling.directory import InMemoryMetricDataSource
from lib_profiling.engine.scoring import (
    WINDOW_SOURCE,
    WindowMetricDataSource,
    aggregate,
    default_insight,
    evaluate_target,
    percentage_of_target,
    performance_summary,
    score_metric,
)
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.metric_models import FormulaDescriptor, MetricDataPoint, MetricDefinition, PerformanceScore
from lib_profiling.window_store import WindowStore


MONDAY = datetime(2026, 3, 2, tzinfo=timezone.utc)
PERIOD_END = MONDAY + timedelta(days=14)


def _metric(metric_id="tasks_done", aggregation="sum", target=10.0, lower=False, source="tasks", field="done",
            weight=1.0, name=None):
    return MetricDefinition(
        metric_id=metric_id,
        name=name or metric_id.replace("_", " ").title(),
        formula=FormulaDescriptor(source=source, field=field, aggregation=aggregation, lower_is_better=lower),
        target_value=target,
        weight=weight,
    )


def _source(values, source="tasks", field="done"):
    data = InMemoryMetricDataSource()
    for i, value in enumerate(values):
        data.add("u1", "org1", source, field, MetricDataPoint(value=value, observed_at=MONDAY + timedelta(days=i)))
    return data


def _score(metric_id, pct):
    return PerformanceScore(
        user_id="u1", organization_id="org1", metric_id=metric_id,
        period_start=MONDAY, period_end=PERIOD_END, score=1.0, percentage_of_target=pct,
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestAggregate:
    """Tests for aggregate."""

    @pytest.mark.parametrize("aggregation, expected", [
        ("sum", 12.0),
        ("average", 3.0),
        ("rate", 3.0),
        ("percentage", 3.0),
        ("min", 1.0),
        ("max", 6.0),
        ("count", 4.0),
    ])
    def test_aggregations(self, aggregation, expected):
        assert aggregate([1.0, 2.0, 3.0, 6.0], aggregation) == expected

    def test_empty_is_zero(self):
        assert aggregate([], "max") == 0.0

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown aggregation"):
            aggregate([1.0], "median")


class TestTargets:
    """Tests for evaluate_target and percentage_of_target."""

    def test_higher_is_better(self):
        assert evaluate_target(12, 10, False)
        assert percentage_of_target(12, 10, False) == 120

    def test_lower_is_better(self):
        assert evaluate_target(3, 4, True)
        assert not evaluate_target(5, 4, True)
        assert percentage_of_target(5, 4, True) == 80
        assert percentage_of_target(2, 4, True) == 200

    def test_lower_is_better_zero_score(self):
        assert percentage_of_target(0, 4, True) == 200

    def test_zero_target(self):
        assert percentage_of_target(5, 0, False) == 0


class TestInsights:
    """Tests for default_insight."""

    def test_met(self):
        text = default_insight("Task Completion", True, 115)
        assert text.startswith("Excellent work on Task Completion!")
        assert "by 15%" in text

    def test_close(self):
        assert "close to the target" in default_insight("NPS", False, 85)

    def test_needs_attention(self):
        assert "needs attention at 40%" in default_insight("NPS", False, 40)


# ---------------------------------------------------------------------------
# score_metric
# ---------------------------------------------------------------------------


class TestScoreMetric:
    """Tests for score_metric."""

    def test_target_met(self):
        score = score_metric(_metric(), "u1", "org1", MONDAY, PERIOD_END, _source([4, 5, 3]))
        assert score.score == 12
        assert score.target_met
        assert score.percentage_of_target == 120
        assert score.data_points == 3
        assert score.insight.startswith("Excellent work")

    def test_lower_is_better_missed(self):
        metric = _metric(aggregation="average", target=4, lower=True)
        score = score_metric(metric, "u1", "org1", MONDAY, PERIOD_END, _source([6, 4]))
        assert not score.target_met
        assert score.percentage_of_target == 80
        assert "close to the target" in score.insight

    def test_period_bounds_exclusive_end(self):
        data = _source([1.0] * 20)
        score = score_metric(_metric(aggregation="count"), "u1", "org1", MONDAY, PERIOD_END, data)
        assert score.data_points == 14

    def test_no_data(self):
        score = score_metric(_metric(), "u1", "org1", MONDAY, PERIOD_END, _source([]))
        assert score.data_points == 0
        assert not score.target_met
        assert score.insight == "No data recorded for Tasks Done in this period."

    def test_no_target(self):
        score = score_metric(_metric(target=None), "u1", "org1", MONDAY, PERIOD_END, _source([2]))
        assert score.score == 2
        assert score.percentage_of_target == 0
        assert score.insight == ""


class TestPerformanceSummary:
    """Tests for performance_summary."""

    def test_weighted_rating(self):
        metrics = {
            "a": _metric("a", weight=3.0, name="Alpha"),
            "b": _metric("b", weight=1.0, name="Beta"),
        }
        summary = performance_summary([_score("a", 120), _score("b", 40)], metrics)
        assert summary.overall_rating == 100
        assert summary.strengths == ["Alpha"]
        assert summary.areas_for_improvement == ["Beta"]
        assert summary.scores_considered == 2

    def test_unknown_metric_weight_one(self):
        summary = performance_summary([_score("mystery", 90)], {})
        assert summary.overall_rating == 90
        assert summary.strengths == []
        assert summary.areas_for_improvement == []

    def test_empty(self):
        assert performance_summary([], {}).overall_rating == 0


# ---------------------------------------------------------------------------
# WindowMetricDataSource
# ---------------------------------------------------------------------------


def _window(week, channel="chat", **counts):
    data = {
        "user_id": "u1",
        "organization_id": "org1",
        "channel_type": channel,
        "period_start": MONDAY + timedelta(weeks=week),
        "period_end": MONDAY + timedelta(weeks=week + 1),
        "message_count": 20,
        "positive_count": 10,
        "neutral_count": 5,
        "negative_count": 5,
        "question_count": 5,
        "response_time_sum": 600,
        "response_time_samples": 5,
    }
    data.update(counts)
    return AggregationWindow(**data)


class TestWindowMetricDataSource:
    """Window-backed metric resolution."""

    def _store(self):
        store = WindowStore()
        store.merge_window(_window(0))
        store.merge_window(_window(1, message_count=30))
        store.merge_window(_window(1, channel="email", message_count=4, positive_count=4, neutral_count=0,
                                   negative_count=0, question_count=0))
        store.merge_window(_window(5))
        return store

    def test_reads_window_field(self):
        source = WindowMetricDataSource(self._store())
        formula = FormulaDescriptor(source=WINDOW_SOURCE, field="message_count", aggregation="sum")
        points = source.data_points("u1", "org1", formula, MONDAY, PERIOD_END)
        assert sorted(p.value for p in points) == [4.0, 20.0, 30.0]

    def test_filters_match_window_attributes(self):
        source = WindowMetricDataSource(self._store())
        formula = FormulaDescriptor(source=WINDOW_SOURCE, field="positive_percentage", filters={"channel_type": "email"})
        points = source.data_points("u1", "org1", formula, MONDAY, PERIOD_END)
        assert [p.value for p in points] == [100.0]
        assert points[0].observed_at == MONDAY + timedelta(weeks=1)

    def test_derived_fields(self):
        source = WindowMetricDataSource(self._store())
        formula = FormulaDescriptor(source=WINDOW_SOURCE, field="response_time_seconds", filters={"channel_type": "chat"})
        points = source.data_points("u1", "org1", formula, MONDAY, PERIOD_END)
        assert [p.value for p in points] == [120.0, 120.0]

    def test_unknown_field(self):
        source = WindowMetricDataSource(self._store())
        formula = FormulaDescriptor(source=WINDOW_SOURCE, field="keystrokes")
        with pytest.raises(ValueError, match="Unknown window field"):
            source.data_points("u1", "org1", formula, MONDAY, PERIOD_END)

    def test_delegates_other_sources(self):
        fallback = MagicMock()
        fallback.data_points.return_value = [MetricDataPoint(value=1.0, observed_at=MONDAY)]
        source = WindowMetricDataSource(WindowStore(), fallback=fallback)
        formula = FormulaDescriptor(source="crm", field="retained")
        assert len(source.data_points("u1", "org1", formula, MONDAY, PERIOD_END)) == 1
        fallback.data_points.assert_called_once_with("u1", "org1", formula, MONDAY, PERIOD_END)

    def test_other_source_without_fallback(self):
        source = WindowMetricDataSource(WindowStore())
        formula = FormulaDescriptor(source="crm", field="retained")
        assert source.data_points("u1", "org1", formula, MONDAY, PERIOD_END) == []

    def test_end_to_end_score(self):
        metric = _metric("weekly_messages", aggregation="average", target=20,
                         source=WINDOW_SOURCE, field="message_count")
        source = WindowMetricDataSource(self._store())
        score = score_metric(metric, "u1", "org1", MONDAY, PERIOD_END, source)
        assert score.score == 18
        assert score.percentage_of_target == 90
