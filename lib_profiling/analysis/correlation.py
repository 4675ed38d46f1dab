"""Benchmark correlation analysis.

Implements:
    composite = 0.5·z(revenue) + 0.3·z(retention) + 0.2·z(satisfaction)
    r(metric, indicator) = Pearson over observations pooled across the cohort

Pooling pairs each organization's metric value with its success indicators
for the same period; organizations that do not report the metric contribute
nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy import stats

from lib_profiling.errors import CorrelationComputeError
from lib_profiling.metric_models import BenchmarkObservation

logger = logging.getLogger(__name__)

SUCCESS_INDICATORS: tuple[str, ...] = ("revenue_growth", "retention", "satisfaction")


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PooledSample:
    """Metric values aligned with success indicators."""

    metric: np.ndarray
    revenue_growth: np.ndarray
    retention: np.ndarray
    satisfaction: np.ndarray
    organizations: int

    @property
    def n(self) -> int:
        return int(self.metric.shape[0])


@dataclass(frozen=True)
class MetricCorrelation:
    """Pearson correlation of one metric against each success indicator."""

    metric_id: str
    revenue: float
    retention: float
    satisfaction: float
    overall: float
    sample_size: int
    organizations: int


# ---------------------------------------------------------------------------
# Sample preparation
# ---------------------------------------------------------------------------
def pool_observations(metric_id: str, observations: list[BenchmarkObservation]) -> PooledSample:
    """Collect (metric, indicators) pairs for every observation reporting *metric_id*."""
    rows = [
        (o.metric_values[metric_id], o.revenue_growth, o.retention, o.satisfaction, o.organization_id)
        for o in sorted(observations, key=lambda o: (o.organization_id, o.period))
        if metric_id in o.metric_values
    ]
    if not rows:
        empty = np.array([], dtype=float)
        return PooledSample(empty, empty, empty, empty, 0)

    data = np.array([r[:4] for r in rows], dtype=float)
    return PooledSample(
        metric=data[:, 0],
        revenue_growth=data[:, 1],
        retention=data[:, 2],
        satisfaction=data[:, 3],
        organizations=len({r[4] for r in rows}),
    )


def zscore(values: np.ndarray) -> np.ndarray:
    """Standardize; a constant vector maps to zeros."""
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return values
    sd = float(np.std(values))
    if sd == 0:
        return np.zeros_like(values)
    return (values - float(np.mean(values))) / sd


def composite_success(
    observations: list[BenchmarkObservation],
    weights: tuple[float, float, float] = (0.5, 0.3, 0.2),
) -> dict[str, float]:
    """Mean z-scored composite success per organization.

    Indicators are standardized across all observations before weighting.
    """
    if not observations:
        return {}
    revenue = zscore(np.array([o.revenue_growth for o in observations]))
    retention = zscore(np.array([o.retention for o in observations]))
    satisfaction = zscore(np.array([o.satisfaction for o in observations]))
    composite = weights[0] * revenue + weights[1] * retention + weights[2] * satisfaction

    per_org: dict[str, list[float]] = {}
    for obs, value in zip(observations, composite):
        per_org.setdefault(obs.organization_id, []).append(float(value))
    return {org: float(np.mean(vals)) for org, vals in sorted(per_org.items())}


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------
def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson r via :func:`scipy.stats.pearsonr`.

    Raises:
        CorrelationComputeError: On fewer than two pairs or constant input.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape or x.size < 2:
        raise CorrelationComputeError(f"Need two aligned samples of at least 2 values, got {x.size} and {y.size}")
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        raise CorrelationComputeError("Correlation undefined for constant input")
    r = float(stats.pearsonr(x, y)[0])
    if not np.isfinite(r):
        raise CorrelationComputeError("Correlation is not finite")
    return max(-1.0, min(1.0, r))


def correlate_metric(
    metric_id: str,
    observations: list[BenchmarkObservation],
    min_sample_size: int = 8,
    min_cohort_size: int = 3,
    weights: tuple[float, float, float] = (0.5, 0.3, 0.2),
) -> MetricCorrelation:
    """Correlate one metric against the three success indicators.

    Raises:
        CorrelationComputeError: When fewer than *min_sample_size* pairs or
            *min_cohort_size* organizations report the metric, or when any
            series is constant.
    """
    sample = pool_observations(metric_id, observations)
    if sample.n < min_sample_size:
        raise CorrelationComputeError(
            f"{metric_id}: {sample.n} observations, need at least {min_sample_size}"
        )
    if sample.organizations < min_cohort_size:
        raise CorrelationComputeError(
            f"{metric_id}: {sample.organizations} organizations, need at least {min_cohort_size}"
        )

    revenue = pearson(sample.metric, sample.revenue_growth)
    retention = pearson(sample.metric, sample.retention)
    satisfaction = pearson(sample.metric, sample.satisfaction)
    overall = weights[0] * revenue + weights[1] * retention + weights[2] * satisfaction

    logger.debug("%s: r_rev=%.3f r_ret=%.3f r_sat=%.3f n=%d", metric_id, revenue, retention, satisfaction, sample.n)
    return MetricCorrelation(
        metric_id=metric_id,
        revenue=revenue,
        retention=retention,
        satisfaction=satisfaction,
        overall=max(-1.0, min(1.0, overall)),
        sample_size=sample.n,
        organizations=sample.organizations,
    )
