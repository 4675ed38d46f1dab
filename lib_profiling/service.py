"""Outbound surface of the profiling engine.

``ProfilingService`` wires the window store, repository, validator, pipeline,
orchestrator and suggestion engine together.  Nothing it returns carries
interaction content.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
import logging
import threading
import time

from pydantic import BaseModel

from lib_profiling.cache import CohortCache
from lib_profiling.directory import BenchmarkSource, MetricDataSource, OrganizationDirectory, UserDirectory
from lib_profiling.engine.extractor import extract_features
from lib_profiling.engine.scoring import PerformanceSummary, WindowMetricDataSource, performance_summary
from lib_profiling.engine.scoring import score_metric as compute_score
from lib_profiling.engine.suggestions import MetricSuggestionEngine
from lib_profiling.engine.validator import TierTwoValidator
from lib_profiling.errors import ConsentMissingError, ExtractionError, RunFailure
from lib_profiling.interaction_models import InteractionEvent
from lib_profiling.metric_catalog import DEFAULT_METRICS
from lib_profiling.metric_models import MetricDefinition, MetricSuggestion, PerformanceScore
from lib_profiling.orchestrator import AnalysisRunOrchestrator
from lib_profiling.pipeline import ProfilingPipeline
from lib_profiling.profile_models import AnalysisRun, PersonalityTrait, ProfileView, RunType, UserJob
from lib_profiling.profile_repository import ProfileRepository
from lib_profiling.providers import ValidationProvider, build_validation_provider
from lib_profiling.settings import EngineSettings
from lib_profiling.trait_types import framework_of
from lib_profiling.window_store import WindowStore


logger = logging.getLogger(__name__)

CONSENT_REQUIRED_MESSAGE = "not available — consent required"
NO_PROFILE_MESSAGE = "No analysis has been run for this user yet"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestSummary(BaseModel):
    """Counts from one batch ingestion."""

    accepted: int = 0
    skipped_invalid: int = 0
    skipped_consent: int = 0


class ProfilingService:
    """Ingestion, analysis runs, profile reads, metric suggestions and scoring."""

    def __init__(
        self,
        users: UserDirectory,
        organizations: OrganizationDirectory,
        benchmarks: BenchmarkSource,
        settings: EngineSettings | None = None,
        provider: ValidationProvider | None = None,
        windows: WindowStore | None = None,
        repository: ProfileRepository | None = None,
        metric_data: MetricDataSource | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or EngineSettings()
        self.users = users
        self.organizations = organizations
        self.windows = windows if windows is not None else WindowStore(self.settings.windows)
        self.repository = repository if repository is not None else ProfileRepository()
        self.cohort_cache = CohortCache()
        self.metrics: dict[str, MetricDefinition] = dict(DEFAULT_METRICS)
        self.metric_data = WindowMetricDataSource(self.windows, fallback=metric_data)
        self._clock = clock

        self.validator = TierTwoValidator(provider, self.settings.validator, sleep=sleep)
        self.pipeline = ProfilingPipeline(
            self.windows, self.repository, users, self.validator, self.settings, clock=clock,
        )
        self.orchestrator = AnalysisRunOrchestrator(
            self.pipeline, self.repository, self.windows, self.settings, clock=clock,
        )
        self.suggestions = MetricSuggestionEngine(
            organizations, benchmarks, self.settings.suggestions, cache=self.cohort_cache, catalog=self.metrics,
        )

    @classmethod
    def from_env(
        cls,
        users: UserDirectory,
        organizations: OrganizationDirectory,
        benchmarks: BenchmarkSource,
        metric_data: MetricDataSource | None = None,
    ) -> ProfilingService:
        """Service with settings and the crewai provider configured from the environment."""
        settings = EngineSettings.from_env()
        provider = build_validation_provider(
            timeout=settings.validator.timeout_seconds,
            default_confidence=settings.validator.default_llm_confidence,
        )
        return cls(users, organizations, benchmarks, settings=settings, provider=provider, metric_data=metric_data)

    # -- ingestion ---------------------------------------------------------

    def ingest_event(self, event: InteractionEvent) -> bool:
        """Extract and merge one event; False when it was skipped.

        Events from users without consent are dropped before extraction.
        """
        if event.user_id and not self._consented(event.user_id):
            logger.debug("Dropping event for user %s: consent not granted", event.user_id)
            return False
        try:
            record = extract_features(event)
        except ExtractionError as exc:
            logger.warning("Skipping interaction event: %s", exc)
            return False
        self.windows.merge_features(record)
        return True

    def ingest_events(self, events: Iterable[InteractionEvent]) -> IngestSummary:
        summary = IngestSummary()
        for event in events:
            if not event.user_id or not event.organization_id or not event.channel_type:
                summary.skipped_invalid += 1
                logger.warning("Skipping interaction event: missing identifiers")
                continue
            if self.ingest_event(event):
                summary.accepted += 1
            else:
                summary.skipped_consent += 1
        return summary

    def compact_windows(self, before: datetime | None = None) -> int:
        """Roll windows older than *before* (default: the configured age) into rollups."""
        cutoff = before or self._clock() - timedelta(days=self.settings.windows.rollup_after_days)
        return self.windows.compact(cutoff)

    # -- profile reads -----------------------------------------------------

    def get_profile(self, user_id: str, organization_id: str) -> ProfileView:
        """Profile with current traits and cultural data.

        Always returns a view; without consent it carries only the
        consent-required message.
        """
        if not self._consented(user_id):
            return ProfileView(available=False, message=CONSENT_REQUIRED_MESSAGE)

        profile = self.repository.get_profile(user_id, organization_id)
        if profile is None:
            return ProfileView(available=False, message=NO_PROFILE_MESSAGE)

        message = ""
        if profile.status == "degraded":
            message = "External validation was unavailable; scores come from heuristic models only"
        elif profile.status == "insufficient_data":
            message = "Not enough activity yet for trait analysis; cultural values are location-based"
        return ProfileView(
            available=True,
            message=message,
            profile=profile,
            traits=self.repository.latest_traits(profile.profile_id),
            cultural=self.repository.get_cultural(profile.profile_id),
        )

    def get_trait_history(self, profile_id: str, framework: str, trait_id: str) -> list[PersonalityTrait]:
        """Time series of one trait, oldest first.

        Raises:
            ValueError: If *trait_id* does not belong to *framework*.
        """
        if framework_of(trait_id) != framework:
            raise ValueError(f"Trait {trait_id} is not part of framework {framework}")
        profile = self.repository.get_profile_by_id(profile_id)
        if profile is None:
            return []
        if not self._consented(profile.user_id):
            return []
        return self.repository.trait_history(profile_id, framework, trait_id)

    # -- runs --------------------------------------------------------------

    def run_analysis(
        self,
        organization_id: str,
        user_ids: list[str] | None = None,
        run_type: RunType = "on_demand",
        as_of: datetime | None = None,
    ) -> AnalysisRun:
        """Create and execute a run synchronously; a failed run is returned, not raised."""
        run = self.orchestrator.create_run(organization_id, run_type=run_type, user_ids=user_ids)
        try:
            return self.orchestrator.run(run.run_id, as_of=as_of)
        except RunFailure as exc:
            logger.warning("%s", exc)
            return self.repository.get_run(run.run_id)

    def start_analysis(
        self,
        organization_id: str,
        user_ids: list[str] | None = None,
        run_type: RunType = "scheduled_weekly",
        as_of: datetime | None = None,
    ) -> tuple[AnalysisRun, threading.Thread]:
        """Create a run and execute it on a background thread."""
        run = self.orchestrator.create_run(organization_id, run_type=run_type, user_ids=user_ids)

        def _target() -> None:
            try:
                self.orchestrator.run(run.run_id, as_of=as_of)
            except RunFailure as exc:
                logger.warning("%s", exc)

        thread = threading.Thread(target=_target, name=f"analysis-run-{run.run_id[:8]}", daemon=True)
        thread.start()
        return run, thread

    def get_run_status(self, run_id: str) -> AnalysisRun | None:
        return self.repository.get_run(run_id)

    def get_run_jobs(self, run_id: str) -> list[UserJob]:
        """Per-user job records of a run, ordered by user id."""
        return self.repository.jobs_for_run(run_id)

    def cancel_run(self, run_id: str) -> AnalysisRun:
        return self.orchestrator.cancel_run(run_id)

    # -- metrics -----------------------------------------------------------

    def suggest_metrics(self, organization_id: str) -> list[MetricSuggestion]:
        return self.suggestions.suggest(organization_id)

    def register_metric(self, metric: MetricDefinition) -> None:
        self.metrics[metric.metric_id] = metric

    def score_metric(
        self,
        user_id: str,
        organization_id: str,
        metric_id: str,
        period_start: datetime,
        period_end: datetime,
    ) -> PerformanceScore:
        """Score one metric for one user and period and append the result.

        Raises:
            ConsentMissingError: If the user has not consented. Nothing is
                computed or written.
            ValueError: If the metric is unknown or the period is empty.
        """
        if not self._consented(user_id):
            raise ConsentMissingError(user_id)
        metric = self.metrics.get(metric_id)
        if metric is None:
            raise ValueError(f"Unknown metric: {metric_id}")
        if period_end <= period_start:
            raise ValueError("period_end must be after period_start")
        score = compute_score(metric, user_id, organization_id, period_start, period_end, self.metric_data)
        self.repository.add_score(score)
        return score

    def get_performance_summary(self, user_id: str, organization_id: str) -> PerformanceSummary:
        if not self._consented(user_id):
            return PerformanceSummary(available=False, message=CONSENT_REQUIRED_MESSAGE)
        return performance_summary(self.repository.scores_for(user_id, organization_id), self.metrics)

    # -- lifecycle events --------------------------------------------------

    def erase_user(self, user_id: str) -> int:
        """Delete every window and stored record for *user_id*."""
        removed = self.windows.erase_user(user_id) + self.repository.erase_user(user_id)
        logger.info("Erased user %s (%d records)", user_id, removed)
        return removed

    def on_organization_changed(self, organization_id: str, previous_industry: str | None = None) -> int:
        """Invalidate cached cohorts affected by a change to *organization_id*."""
        removed = self.cohort_cache.invalidate(f"org:{organization_id}")
        org = self.organizations.get_organization(organization_id)
        industries = {previous_industry, org.industry if org else None} - {None}
        for industry in sorted(industries):
            removed += self.cohort_cache.invalidate(f"industry:{industry}")
        return removed

    # -- internals ---------------------------------------------------------

    def _consented(self, user_id: str) -> bool:
        user = self.users.get_user(user_id)
        return user is not None and user.consent_granted
