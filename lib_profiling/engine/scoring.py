"""Performance scoring for metric definitions.

Aggregates a metric's data points for one user and period, evaluates the
target and attaches a rule-based insight.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging

from pydantic import BaseModel, Field

from lib_profiling.directory import MetricDataSource
from lib_profiling.engine.numeric import round_half_up
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.metric_models import (
    AggregationType,
    FormulaDescriptor,
    MetricDataPoint,
    MetricDefinition,
    PerformanceScore,
)
from lib_profiling.window_store import WindowStore


logger = logging.getLogger(__name__)

WINDOW_SOURCE = "interaction_windows"

# Ceiling for percentage-of-target on lower-is-better metrics with a zero score
_MAX_PERCENTAGE = 200


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------
class PerformanceSummary(BaseModel):
    """Weighted roll-up of a user's performance scores."""

    available: bool = True
    message: str = ""
    overall_rating: int = 0
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)
    scores_considered: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
def aggregate(values: list[float], aggregation: AggregationType) -> float:
    """Aggregate data-point values; an empty list aggregates to 0."""
    if not values:
        return 0.0
    match aggregation:
        case "sum":
            return float(sum(values))
        case "average" | "rate" | "percentage":
            return sum(values) / len(values)
        case "min":
            return float(min(values))
        case "max":
            return float(max(values))
        case "count":
            return float(len(values))
    raise ValueError(f"Unknown aggregation type: {aggregation}")


def evaluate_target(score: float, target: float, lower_is_better: bool) -> bool:
    return score <= target if lower_is_better else score >= target


def percentage_of_target(score: float, target: float, lower_is_better: bool) -> int:
    """Percent of target achieved; above 100 means the target was beaten."""
    if target == 0:
        return 0
    if lower_is_better:
        if score <= 0:
            return _MAX_PERCENTAGE
        return round_half_up(target / score * 100)
    return round_half_up(score / target * 100)


def default_insight(metric_name: str, target_met: bool, percentage: int) -> str:
    if target_met:
        return (
            f"Excellent work on {metric_name}! You're exceeding the target by "
            f"{max(0, percentage - 100)}%. Keep up the great performance."
        )
    if percentage >= 80:
        return f"You're close to the target for {metric_name} at {percentage}%. A small improvement will get you there."
    return f"{metric_name} needs attention at {percentage}% of target. Consider prioritizing this area for improvement."


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def score_metric(
    metric: MetricDefinition,
    user_id: str,
    organization_id: str,
    period_start: datetime,
    period_end: datetime,
    data_source: MetricDataSource,
) -> PerformanceScore:
    """Compute a :class:`PerformanceScore` for one user, metric and period."""
    points = data_source.data_points(user_id, organization_id, metric.formula, period_start, period_end)
    score = aggregate([p.value for p in points], metric.aggregation)

    lower = metric.formula.lower_is_better
    if metric.target_value is not None and points:
        target_met = evaluate_target(score, metric.target_value, lower)
        percentage = percentage_of_target(score, metric.target_value, lower)
        insight = default_insight(metric.name, target_met, percentage)
    else:
        target_met = False
        percentage = 0
        insight = f"No data recorded for {metric.name} in this period." if not points else ""

    return PerformanceScore(
        user_id=user_id,
        organization_id=organization_id,
        metric_id=metric.metric_id,
        period_start=period_start,
        period_end=period_end,
        score=round(score, 4),
        target_met=target_met,
        percentage_of_target=percentage,
        data_points=len(points),
        insight=insight,
    )


def performance_summary(
    scores: list[PerformanceScore],
    metrics: dict[str, MetricDefinition],
) -> PerformanceSummary:
    """Weight each score's percentage-of-target by its metric weight."""
    total_weight = 0.0
    weighted_sum = 0.0
    strengths: list[str] = []
    improvements: list[str] = []
    for s in scores:
        metric = metrics.get(s.metric_id)
        weight = metric.weight if metric else 1.0
        name = metric.name if metric else s.metric_id
        total_weight += weight
        weighted_sum += s.percentage_of_target * weight
        if s.percentage_of_target >= 100:
            strengths.append(name)
        elif s.percentage_of_target < 80:
            improvements.append(name)

    return PerformanceSummary(
        overall_rating=round_half_up(weighted_sum / total_weight) if total_weight > 0 else 0,
        strengths=strengths,
        areas_for_improvement=improvements,
        scores_considered=len(scores),
    )


# ---------------------------------------------------------------------------
# Window-backed data source
# ---------------------------------------------------------------------------
_WINDOW_FIELDS: dict[str, Callable[[AggregationWindow], float | None]] = {
    "message_count": lambda w: float(w.message_count),
    "conversations_participated": lambda w: float(w.conversations_participated),
    "conversations_initiated": lambda w: float(w.conversations_initiated),
    "response_time_seconds": lambda w: w.mean_response_time(),
    "positive_percentage": lambda w: float(w.sentiment_percentages()["positive"]) if w.message_count else None,
    "mean_formality": lambda w: w.mean_formality(),
    "question_rate": lambda w: w.rate("question_count") if w.message_count else None,
}


class WindowMetricDataSource:
    """Resolves ``interaction_windows`` formulas from the window store.

    Every other source is delegated to *fallback* when one is given.
    """

    def __init__(self, store: WindowStore, fallback: MetricDataSource | None = None):
        self.store = store
        self.fallback = fallback

    def data_points(
        self,
        user_id: str,
        organization_id: str,
        formula: FormulaDescriptor,
        period_start: datetime,
        period_end: datetime,
    ) -> list[MetricDataPoint]:
        if formula.source != WINDOW_SOURCE:
            if self.fallback is None:
                logger.warning("No data source for metric source '%s'", formula.source)
                return []
            return self.fallback.data_points(user_id, organization_id, formula, period_start, period_end)

        reader = _WINDOW_FIELDS.get(formula.field)
        if reader is None:
            raise ValueError(f"Unknown window field: {formula.field}")

        points: list[MetricDataPoint] = []
        for window in self.store.windows_for_user(user_id, organization_id, since=period_start, until=period_end):
            if any(getattr(window, key, None) != value for key, value in formula.filters.items()):
                continue
            value = reader(window)
            if value is not None:
                points.append(MetricDataPoint(value=value, observed_at=window.period_start))
        return points
