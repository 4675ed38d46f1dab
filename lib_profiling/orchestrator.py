"""Analysis run orchestration.

A run moves ``pending -> running -> completed | failed``.  Each user gets a
job record; users are dispatched lazily to a bounded thread pool so
cancellation stops new work while in-flight users finish and persist
normally.  A user whose analysis raises is retried up to
``max_attempts_per_user`` times and then marked failed while the run carries
on.  The run itself fails only on an orchestration error or when more users
fail than ``max_failed_users`` allows; per-user results written before that
stay written.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
import logging
import threading
import time

from pydantic import BaseModel, Field

from lib_profiling.errors import ConsentMissingError, RunFailure, RunStateError
from lib_profiling.pipeline import ProfilingPipeline, UserAnalysisResult
from lib_profiling.profile_models import AnalysisRun, RunType, UserJob
from lib_profiling.profile_repository import ProfileRepository
from lib_profiling.settings import EngineSettings
from lib_profiling.trait_types import MODEL_TYPES
from lib_profiling.window_store import WindowStore


logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled by operator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunTally(BaseModel):
    """Mutable per-run counters, folded into the run record."""

    users_processed: int = 0
    failed_users: int = 0
    consent_skipped_users: int = 0
    degraded_users: int = 0
    insufficient_data_users: int = 0
    models_used: set[str] = Field(default_factory=set)
    tier2_invocations: int = 0
    tokens_consumed: int = 0
    error_message: str | None = None

    def record_result(self, result: UserAnalysisResult) -> None:
        self.users_processed += 1
        if result.status == "degraded":
            self.degraded_users += 1
        elif result.status == "insufficient_data":
            self.insufficient_data_users += 1
        self.models_used.update(result.models_used)
        self.tier2_invocations += int(result.tier2_invoked)
        self.tokens_consumed += result.tokens_used

    def run_fields(self) -> dict:
        return {
            "users_processed": self.users_processed,
            "failed_users": self.failed_users,
            "consent_skipped_users": self.consent_skipped_users,
            "degraded_users": self.degraded_users,
            "insufficient_data_users": self.insufficient_data_users,
            "models_used": [m for m in MODEL_TYPES if m in self.models_used],
            "tier2_invocations": self.tier2_invocations,
            "tokens_consumed": self.tokens_consumed,
        }


class AnalysisRunOrchestrator:
    """Creates, executes and cancels analysis runs."""

    def __init__(
        self,
        pipeline: ProfilingPipeline,
        repository: ProfileRepository,
        windows: WindowStore,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.repository = repository
        self.windows = windows
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._timer = timer
        self._populations: dict[str, list[str] | None] = {}
        self._cancel_flags: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # -- lifecycle ---------------------------------------------------------

    def create_run(
        self,
        organization_id: str,
        run_type: RunType = "on_demand",
        user_ids: list[str] | None = None,
    ) -> AnalysisRun:
        """Register a pending run.

        ``user_ids`` pins the population; otherwise every user with window
        activity in the organization over the lookback is analyzed.
        """
        if not organization_id:
            raise ValueError("organization_id is required")
        run = AnalysisRun(run_type=run_type, organization_id=organization_id)
        with self._lock:
            self._populations[run.run_id] = sorted(set(user_ids)) if user_ids is not None else None
            self._cancel_flags[run.run_id] = threading.Event()
        self.repository.save_run(run)
        logger.info("Created %s run %s for %s", run_type, run.run_id, organization_id)
        return run

    def cancel_run(self, run_id: str) -> AnalysisRun:
        """Stop dispatching new users for *run_id*.

        A pending run fails immediately; a running run finishes its
        in-flight users and then ends ``failed``.

        Raises:
            ValueError: If the run is unknown.
            RunStateError: If the run already finished.
        """
        with self._lock:
            run = self.repository.get_run(run_id)
            if run is None:
                raise ValueError(f"Unknown run: {run_id}")
            if run.is_terminal:
                raise RunStateError(f"Run {run_id} already {run.status}")
            self._cancel_flags.setdefault(run_id, threading.Event()).set()
            if run.status == "pending":
                run = run.transition(
                    "failed",
                    cancel_requested=True,
                    error_message=CANCELLED_MESSAGE,
                    completed_at=self._clock(),
                )
                self._forget(run_id)
            else:
                run = run.model_copy(update={"cancel_requested": True})
            self.repository.save_run(run)
        logger.info("Cancellation requested for run %s", run_id)
        return run

    def run(self, run_id: str, as_of: datetime | None = None) -> AnalysisRun:
        """Execute a pending run to completion.

        Raises:
            ValueError: If the run is unknown.
            RunStateError: If the run is not pending.
            RunFailure: If the run failed; the failed record is saved first.
        """
        started = self._timer()
        as_of = as_of or self._clock()
        with self._lock:
            run = self.repository.get_run(run_id)
            if run is None:
                raise ValueError(f"Unknown run: {run_id}")
            run = run.transition("running", started_at=self._clock())
            self.repository.save_run(run)
        logger.info("Run %s started", run_id)

        tally = RunTally()
        try:
            population = self.select_population(run, as_of)
            self._update(run_id, total_users=len(population))
            self._fan_out(run, population, as_of, tally)
        except Exception as exc:
            logger.exception("Run %s failed", run_id)
            tally.error_message = tally.error_message or str(exc)

        elapsed = round(self._timer() - started, 3)
        if tally.error_message:
            self._finish(run_id, "failed", tally, elapsed, error_message=tally.error_message)
            raise RunFailure(f"Run {run_id} failed: {tally.error_message}")
        if self._cancelled(run_id):
            final = self._finish(run_id, "failed", tally, elapsed, error_message=CANCELLED_MESSAGE)
            logger.info("Run %s cancelled after %d users", run_id, tally.users_processed)
            return final

        final = self._finish(run_id, "completed", tally, elapsed)
        logger.info(
            "Run %s completed: %d processed, %d failed, %d skipped (consent), %d degraded, %d tokens in %.1fs",
            run_id, final.users_processed, final.failed_users, final.consent_skipped_users,
            final.degraded_users, final.tokens_consumed, elapsed,
        )
        return final

    def select_population(self, run: AnalysisRun, as_of: datetime) -> list[str]:
        with self._lock:
            pinned = self._populations.get(run.run_id)
        if pinned is not None:
            return list(pinned)
        since = as_of - timedelta(days=self.settings.model_bank.lookback_days)
        return self.windows.active_users(run.organization_id, since=since, until=as_of)

    # -- internals ---------------------------------------------------------

    def _fan_out(self, run: AnalysisRun, population: list[str], as_of: datetime, tally: RunTally) -> None:
        settings = self.settings.orchestrator
        for user_id in population:
            self.repository.save_job(
                UserJob(run_id=run.run_id, user_id=user_id, max_attempts=settings.max_attempts_per_user)
            )

        queue = deque(population)
        in_flight: dict[Future, str] = {}
        with ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="profiling") as pool:
            def dispatch() -> None:
                while (
                    queue
                    and len(in_flight) < settings.max_workers
                    and not self._cancelled(run.run_id)
                    and not tally.error_message
                ):
                    user_id = queue.popleft()
                    self._start_job(run.run_id, user_id)
                    future = pool.submit(self.pipeline.analyze_user, user_id, run.organization_id, run.run_id, as_of)
                    in_flight[future] = user_id

            dispatch()
            while in_flight:
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    user_id = in_flight.pop(future)
                    if self._collect(run.run_id, user_id, future, tally):
                        queue.append(user_id)
                self._update(run.run_id, **tally.run_fields())
                dispatch()

    def _start_job(self, run_id: str, user_id: str) -> None:
        job = self.repository.get_job(run_id, user_id)
        self.repository.save_job(job.model_copy(update={
            "status": "running",
            "attempts": job.attempts + 1,
            "started_at": job.started_at or self._clock(),
        }))

    def _collect(self, run_id: str, user_id: str, future: Future, tally: RunTally) -> bool:
        """Fold one finished attempt into the tally; True when the user goes back on the queue."""
        job = self.repository.get_job(run_id, user_id)
        try:
            result = future.result()
        except ConsentMissingError:
            logger.info("Skipping user %s: consent not granted", user_id)
            tally.consent_skipped_users += 1
            job = job.model_copy(update={"status": "skipped", "completed_at": self._clock()})
        except Exception as exc:
            if job.attempts < job.max_attempts:
                logger.warning(
                    "Attempt %d/%d failed for user %s: %s", job.attempts, job.max_attempts, user_id, exc,
                )
                self.repository.save_job(job.model_copy(update={"status": "pending", "error_message": str(exc)}))
                return True
            logger.exception("Analysis failed for user %s after %d attempts", user_id, job.attempts)
            tally.failed_users += 1
            job = job.model_copy(update={
                "status": "failed",
                "error_message": str(exc),
                "completed_at": self._clock(),
            })
            limit = self.settings.orchestrator.max_failed_users
            if limit is not None and tally.failed_users > limit and tally.error_message is None:
                tally.error_message = f"failed-user limit {limit} exceeded; last error user {user_id}: {exc}"
        else:
            tally.record_result(result)
            job = job.model_copy(update={
                "status": "completed",
                "profile_status": result.status,
                "error_message": None,
                "completed_at": self._clock(),
            })
        self.repository.save_job(job)
        return False

    def _cancelled(self, run_id: str) -> bool:
        with self._lock:
            flag = self._cancel_flags.get(run_id)
        return flag is not None and flag.is_set()

    def _update(self, run_id: str, **fields) -> AnalysisRun:
        with self._lock:
            run = self.repository.get_run(run_id)
            run = run.model_copy(update=fields)
            self.repository.save_run(run)
            return run

    def _finish(self, run_id: str, status: str, tally: RunTally, elapsed: float, **extra) -> AnalysisRun:
        with self._lock:
            run = self.repository.get_run(run_id)
            final = run.transition(
                status,
                processing_time_seconds=elapsed,
                completed_at=self._clock(),
                **tally.run_fields(),
                **extra,
            )
            self.repository.save_run(final)
            self._forget(run_id)
        return final

    def _forget(self, run_id: str) -> None:
        """Drop per-run bookkeeping; callers hold ``self._lock``."""
        self._populations.pop(run_id, None)
        self._cancel_flags.pop(run_id, None)
