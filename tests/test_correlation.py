"""Tests for lib_profiling.analysis.correlation."""

import numpy as np
import pytest

from lib_profiling.analysis.correlation import (
    composite_success,
    correlate_metric,
    pearson,
    pool_observations,
    zscore,
)
from lib_profiling.errors import CorrelationComputeError
from lib_profiling.metric_models import BenchmarkObservation


def _obs(org, period, success, **metrics):
    return BenchmarkObservation(
        organization_id=org,
        period=period,
        metric_values=metrics,
        revenue_growth=success,
        retention=success + 50,
        satisfaction=success / 2,
    )


def _linear_observations(n_orgs=4, periods=3):
    observations = []
    for i in range(n_orgs):
        for p in range(periods):
            success = float(i * periods + p)
            observations.append(_obs(f"org-{i}", f"2025-Q{p + 1}", success, linear=success * 3 + 1))
    return observations


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestZscore:
    """Tests for zscore."""

    def test_standardizes(self):
        z = zscore(np.array([1.0, 2.0, 3.0]))
        assert z.mean() == pytest.approx(0.0)
        assert z.std() == pytest.approx(1.0)

    def test_constant_is_zero(self):
        assert zscore(np.array([4.0, 4.0])).tolist() == [0.0, 0.0]

    def test_empty(self):
        assert zscore(np.array([])).size == 0


class TestPoolObservations:
    """Tests for pool_observations."""

    def test_skips_non_reporting(self):
        observations = [_obs("a", "p1", 1.0, m=2.0), _obs("b", "p1", 2.0)]
        sample = pool_observations("m", observations)
        assert sample.n == 1
        assert sample.organizations == 1

    def test_empty(self):
        sample = pool_observations("m", [])
        assert sample.n == 0

    def test_order_is_canonical(self):
        observations = _linear_observations()
        forward = pool_observations("linear", observations)
        backward = pool_observations("linear", list(reversed(observations)))
        assert forward.metric.tolist() == backward.metric.tolist()


class TestCompositeSuccess:
    """Tests for composite_success."""

    def test_better_org_scores_higher(self):
        observations = [_obs("weak", "p1", 1.0), _obs("strong", "p1", 9.0), _obs("mid", "p1", 5.0)]
        composite = composite_success(observations)
        assert composite["strong"] > composite["mid"] > composite["weak"]
        assert composite["mid"] == pytest.approx(0.0)

    def test_mean_per_org(self):
        observations = [_obs("a", "p1", 1.0), _obs("a", "p2", 3.0), _obs("b", "p1", 2.0)]
        composite = composite_success(observations)
        assert composite["a"] == pytest.approx(0.0)

    def test_empty(self):
        assert composite_success([]) == {}


# ---------------------------------------------------------------------------
# Pearson
# ---------------------------------------------------------------------------


class TestPearson:
    """Tests for pearson."""

    def test_matches_numpy(self):
        rng = np.random.RandomState(42)
        x = rng.normal(size=60)
        y = 2 * x + rng.normal(scale=0.8, size=60)
        assert pearson(x, y) == pytest.approx(np.corrcoef(x, y)[0, 1])

    def test_perfect_negative(self):
        x = np.arange(10, dtype=float)
        assert pearson(x, -x) == pytest.approx(-1.0)

    def test_constant_input(self):
        with pytest.raises(CorrelationComputeError, match="constant"):
            pearson(np.ones(5), np.arange(5, dtype=float))

    def test_too_short(self):
        with pytest.raises(CorrelationComputeError):
            pearson(np.array([1.0]), np.array([2.0]))

    def test_misaligned(self):
        with pytest.raises(CorrelationComputeError):
            pearson(np.arange(3, dtype=float), np.arange(4, dtype=float))


# ---------------------------------------------------------------------------
# correlate_metric
# ---------------------------------------------------------------------------


class TestCorrelateMetric:
    """Tests for correlate_metric."""

    def test_linear_metric(self):
        result = correlate_metric("linear", _linear_observations())
        assert result.revenue == pytest.approx(1.0)
        assert result.overall == pytest.approx(1.0)
        assert result.sample_size == 12
        assert result.organizations == 4

    def test_too_few_pairs(self):
        with pytest.raises(CorrelationComputeError, match="observations"):
            correlate_metric("linear", _linear_observations(n_orgs=2, periods=3))

    def test_too_few_organizations(self):
        with pytest.raises(CorrelationComputeError, match="organizations"):
            correlate_metric("linear", _linear_observations(n_orgs=2, periods=5))

    def test_unreported_metric(self):
        with pytest.raises(CorrelationComputeError):
            correlate_metric("missing", _linear_observations())

    def test_bounds(self):
        rng = np.random.RandomState(42)
        observations = [
            _obs(f"org-{i % 5}", f"p{i}", float(rng.normal()), noisy=float(rng.normal()))
            for i in range(40)
        ]
        result = correlate_metric("noisy", observations)
        for value in (result.revenue, result.retention, result.satisfaction, result.overall):
            assert -1.0 <= value <= 1.0
