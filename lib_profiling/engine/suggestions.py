"""Metric suggestion engine.

Ranks metrics that successful peer organizations track and the target does
not, by how strongly each one correlates with business success in the
benchmark cohort.
"""

from __future__ import annotations

import logging

import numpy as np

from lib_profiling.analysis.correlation import MetricCorrelation, composite_success, correlate_metric
from lib_profiling.cache import CohortCache, CohortEntry
from lib_profiling.directory import BenchmarkSource, OrganizationDirectory
from lib_profiling.engine.numeric import clamp_score
from lib_profiling.errors import CorrelationComputeError
from lib_profiling.metric_catalog import DEFAULT_METRICS
from lib_profiling.metric_models import FormulaDescriptor, MetricDefinition, MetricSuggestion, OrganizationProfile
from lib_profiling.settings import SuggestionSettings


logger = logging.getLogger(__name__)

# Ceiling on suggestion confidence when no benchmark evidence exists
_FALLBACK_CONFIDENCE_CAP = 50


# ---------------------------------------------------------------------------
# Cohort selection (pure)
# ---------------------------------------------------------------------------
def size_in_band(target_employees: int, other_employees: int, tolerance: float) -> bool:
    """True when *other* lies within ``target * (1 ± tolerance)``."""
    low = target_employees * (1 - tolerance)
    high = target_employees * (1 + tolerance)
    return low <= other_employees <= high


def select_cohort(
    target: OrganizationProfile,
    organizations: list[OrganizationProfile],
    tolerance: float,
) -> list[OrganizationProfile]:
    """Same industry, similar size, target excluded; ordered by id."""
    return sorted(
        (
            o for o in organizations
            if o.organization_id != target.organization_id
            and o.industry.lower() == target.industry.lower()
            and size_in_band(target.employee_count, o.employee_count, tolerance)
        ),
        key=lambda o: o.organization_id,
    )


def top_performers(composite: dict[str, float], quantile: float) -> set[str]:
    """Organizations whose composite success is at or above the quantile."""
    if not composite:
        return set()
    threshold = float(np.quantile(np.array(list(composite.values())), quantile))
    return {org for org, value in composite.items() if value >= threshold}


def candidate_metric_ids(
    target: OrganizationProfile,
    cohort: list[OrganizationProfile],
    performers: set[str],
) -> list[str]:
    tracked = set(target.tracked_metric_ids)
    candidates = {
        metric_id
        for o in cohort
        if o.organization_id in performers
        for metric_id in o.tracked_metric_ids
    }
    return sorted(candidates - tracked)


def adoption_rate(metric_id: str, cohort: list[OrganizationProfile]) -> float:
    if not cohort:
        return 0.0
    return sum(1 for o in cohort if metric_id in o.tracked_metric_ids) / len(cohort)


def build_rationale(
    correlation: MetricCorrelation,
    adoption: float,
    cohort_size: int,
    industry: str,
) -> str:
    return (
        f"Tracked by {adoption:.0%} of {cohort_size} similar {industry} organizations. "
        f"Correlation with business success r={correlation.overall:.2f} "
        f"(revenue {correlation.revenue:.2f}, retention {correlation.retention:.2f}, "
        f"satisfaction {correlation.satisfaction:.2f}) over {correlation.sample_size} observations."
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class MetricSuggestionEngine:
    """Cohort benchmarking over injected organization and benchmark sources."""

    def __init__(
        self,
        organizations: OrganizationDirectory,
        benchmarks: BenchmarkSource,
        settings: SuggestionSettings | None = None,
        cache: CohortCache | None = None,
        catalog: dict[str, MetricDefinition] | None = None,
    ):
        self.organizations = organizations
        self.benchmarks = benchmarks
        self.settings = settings or SuggestionSettings()
        self.cache = cache if cache is not None else CohortCache()
        self.catalog = catalog if catalog is not None else DEFAULT_METRICS

    def cohort_for(self, target: OrganizationProfile) -> list[OrganizationProfile]:
        """Benchmark cohort, resolved through the cohort cache."""
        entry = self.cache.get(target.organization_id)
        if entry is None:
            cohort = select_cohort(target, self.organizations.list_organizations(), self.settings.size_tolerance)
            self.cache.put(CohortEntry(
                organization_id=target.organization_id,
                industry=target.industry,
                member_ids=[o.organization_id for o in cohort],
            ))
            return cohort

        members = []
        for org_id in entry.member_ids:
            org = self.organizations.get_organization(org_id)
            if org is not None:
                members.append(org)
        return members

    def suggest(self, organization_id: str) -> list[MetricSuggestion]:
        """Top-N ranked metric suggestions for *organization_id*.

        Raises:
            ValueError: If the organization is unknown.
        """
        target = self.organizations.get_organization(organization_id)
        if target is None:
            raise ValueError(f"Unknown organization: {organization_id}")

        s = self.settings
        cohort = self.cohort_for(target)
        if len(cohort) < s.min_cohort_size:
            logger.warning(
                "Cohort for %s has %d organizations (need %d)", organization_id, len(cohort), s.min_cohort_size
            )
            return self._fallback(target)

        observations = self.benchmarks.observations_for([o.organization_id for o in cohort])
        weights = (s.revenue_weight, s.retention_weight, s.satisfaction_weight)
        performers = top_performers(composite_success(observations, weights), s.top_performer_quantile)

        ranked: list[tuple[MetricCorrelation, float]] = []
        for metric_id in candidate_metric_ids(target, cohort, performers):
            try:
                correlation = correlate_metric(
                    metric_id,
                    observations,
                    min_sample_size=s.min_sample_size,
                    min_cohort_size=s.min_cohort_size,
                    weights=weights,
                )
            except CorrelationComputeError as e:
                logger.info("Excluding metric from suggestions: %s", e)
                continue
            ranked.append((correlation, adoption_rate(metric_id, cohort)))

        if not ranked:
            return self._fallback(target)

        ranked.sort(key=lambda item: (-item[0].overall, item[0].metric_id))
        suggestions = []
        for rank, (correlation, adoption) in enumerate(ranked[: s.top_n], start=1):
            rationale = build_rationale(correlation, adoption, len(cohort), target.industry)
            metric = self._definition(correlation.metric_id).model_copy(update={
                "ai_suggested": True,
                "suggestion_confidence": clamp_score(abs(correlation.overall) * 100),
                "suggestion_reason": rationale,
                "organization_id": target.organization_id,
            })
            suggestions.append(MetricSuggestion(
                rank=rank,
                metric=metric,
                overall_correlation=correlation.overall,
                revenue_correlation=correlation.revenue,
                retention_correlation=correlation.retention,
                satisfaction_correlation=correlation.satisfaction,
                adoption_rate=adoption,
                sample_size=correlation.sample_size,
                rationale=rationale,
            ))
        logger.info("Suggested %d metrics for %s from a cohort of %d", len(suggestions), organization_id, len(cohort))
        return suggestions

    def _fallback(self, target: OrganizationProfile) -> list[MetricSuggestion]:
        if not self.settings.fallback_to_catalog:
            return []
        tracked = set(target.tracked_metric_ids)
        pool = sorted(
            (m for m in self.catalog.values() if m.metric_id not in tracked and m.is_active),
            key=lambda m: (-m.weight, m.metric_id),
        )
        rationale = "No benchmark data for similar organizations; suggested from the default catalog by weight."
        suggestions = []
        for rank, metric in enumerate(pool[: self.settings.top_n], start=1):
            suggestions.append(MetricSuggestion(
                rank=rank,
                metric=metric.model_copy(update={
                    "ai_suggested": True,
                    "suggestion_confidence": min(metric.suggestion_confidence, _FALLBACK_CONFIDENCE_CAP),
                    "suggestion_reason": rationale,
                    "organization_id": target.organization_id,
                }),
                overall_correlation=0.0,
                rationale=rationale,
                from_benchmark=False,
            ))
        return suggestions

    def _definition(self, metric_id: str) -> MetricDefinition:
        known = self.catalog.get(metric_id)
        if known is not None:
            return known
        return MetricDefinition(
            metric_id=metric_id,
            name=metric_id.replace("_", " ").title(),
            description="Metric tracked by benchmark peers.",
            formula=FormulaDescriptor(source="benchmark", field=metric_id),
        )
