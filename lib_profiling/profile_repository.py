"""Repository for profiles, trait time series, model outputs, runs, jobs and scores."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import threading

from lib_profiling.metric_models import PerformanceScore
from lib_profiling.profile_models import (
    MODEL_OUTPUT_LIST,
    AnalysisRun,
    CulturalProfile,
    ModelOutputBase,
    PersonalityProfile,
    PersonalityTrait,
    UserJob,
)


logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


class ProfileRepository:
    """Thread-safe in-memory store with JSON snapshots.

    Trait rows, model outputs and performance scores are append-only; a
    profile's current trait values are the latest row per trait.
    """

    def __init__(self):
        self._profiles: dict[tuple[str, str], PersonalityProfile] = {}
        self._traits: dict[str, list[PersonalityTrait]] = {}
        self._cultural: dict[str, CulturalProfile] = {}
        self._outputs: list[ModelOutputBase] = []
        self._runs: dict[str, AnalysisRun] = {}
        self._jobs: dict[tuple[str, str], UserJob] = {}
        self._scores: list[PerformanceScore] = []
        self._lock = threading.Lock()

    # -- profiles ----------------------------------------------------------

    def get_profile(self, user_id: str, organization_id: str) -> PersonalityProfile | None:
        with self._lock:
            return self._profiles.get((user_id, organization_id))

    def get_profile_by_id(self, profile_id: str) -> PersonalityProfile | None:
        with self._lock:
            return next((p for p in self._profiles.values() if p.profile_id == profile_id), None)

    def list_profiles(self, organization_id: str | None = None) -> list[PersonalityProfile]:
        with self._lock:
            profiles = [
                p for p in self._profiles.values()
                if organization_id is None or p.organization_id == organization_id
            ]
        return sorted(profiles, key=lambda p: (p.organization_id, p.user_id))

    def upsert_profile(self, profile: PersonalityProfile) -> None:
        with self._lock:
            self._profiles[(profile.user_id, profile.organization_id)] = profile

    def write_analysis(
        self,
        profile: PersonalityProfile,
        traits: list[PersonalityTrait],
        cultural: CulturalProfile | None,
        outputs: list[ModelOutputBase],
    ) -> None:
        """Persist one user's analysis result as a single unit."""
        with self._lock:
            self._profiles[(profile.user_id, profile.organization_id)] = profile
            if traits:
                self._traits[profile.profile_id] = [*self._traits.get(profile.profile_id, []), *traits]
            if cultural is not None:
                self._cultural[profile.profile_id] = cultural
            self._outputs = [*self._outputs, *outputs]

    # -- traits ------------------------------------------------------------

    def latest_traits(self, profile_id: str) -> dict[str, list[PersonalityTrait]]:
        """Current value of every trait, grouped by framework."""
        with self._lock:
            rows = list(self._traits.get(profile_id, []))
        latest: dict[str, PersonalityTrait] = {}
        for row in rows:
            current = latest.get(row.trait_id)
            if current is None or row.observed_at >= current.observed_at:
                latest[row.trait_id] = row
        grouped: dict[str, list[PersonalityTrait]] = {}
        for row in sorted(latest.values(), key=lambda r: (r.framework, r.trait_id)):
            grouped.setdefault(row.framework, []).append(row)
        return grouped

    def trait_history(self, profile_id: str, framework: str, trait_id: str) -> list[PersonalityTrait]:
        with self._lock:
            rows = [
                r for r in self._traits.get(profile_id, [])
                if r.framework == framework and r.trait_id == trait_id
            ]
        return sorted(rows, key=lambda r: r.observed_at)

    def get_cultural(self, profile_id: str) -> CulturalProfile | None:
        with self._lock:
            return self._cultural.get(profile_id)

    # -- model outputs -----------------------------------------------------

    def outputs_for(self, user_id: str, run_id: str | None = None) -> list[ModelOutputBase]:
        with self._lock:
            return [
                o for o in self._outputs
                if o.user_id == user_id and (run_id is None or o.run_id == run_id)
            ]

    # -- runs --------------------------------------------------------------

    def save_run(self, run: AnalysisRun) -> None:
        with self._lock:
            self._runs[run.run_id] = run

    def get_run(self, run_id: str) -> AnalysisRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def list_runs(self, organization_id: str | None = None) -> list[AnalysisRun]:
        with self._lock:
            runs = [
                r for r in self._runs.values()
                if organization_id is None or r.organization_id == organization_id
            ]
        return sorted(runs, key=lambda r: r.created_at)

    # -- per-user jobs -----------------------------------------------------

    def save_job(self, job: UserJob) -> None:
        with self._lock:
            self._jobs[(job.run_id, job.user_id)] = job

    def get_job(self, run_id: str, user_id: str) -> UserJob | None:
        with self._lock:
            return self._jobs.get((run_id, user_id))

    def jobs_for_run(self, run_id: str) -> list[UserJob]:
        with self._lock:
            jobs = [j for key, j in self._jobs.items() if key[0] == run_id]
        return sorted(jobs, key=lambda j: j.user_id)

    # -- performance scores ------------------------------------------------

    def add_score(self, score: PerformanceScore) -> None:
        with self._lock:
            self._scores = [*self._scores, score]

    def scores_for(
        self,
        user_id: str,
        organization_id: str,
        metric_id: str | None = None,
    ) -> list[PerformanceScore]:
        with self._lock:
            scores = [
                s for s in self._scores
                if s.user_id == user_id and s.organization_id == organization_id
                and (metric_id is None or s.metric_id == metric_id)
            ]
        return sorted(scores, key=lambda s: (s.period_start, s.metric_id))

    # -- erasure -----------------------------------------------------------

    def erase_user(self, user_id: str) -> int:
        """Delete every record tied to *user_id*; returns the number removed."""
        with self._lock:
            profile_ids = {p.profile_id for key, p in self._profiles.items() if key[0] == user_id}
            removed = len(profile_ids)
            for key in [k for k in self._profiles if k[0] == user_id]:
                del self._profiles[key]
            for profile_id in profile_ids:
                removed += len(self._traits.pop(profile_id, []))
                removed += 1 if self._cultural.pop(profile_id, None) is not None else 0

            kept_outputs = [o for o in self._outputs if o.user_id != user_id]
            removed += len(self._outputs) - len(kept_outputs)
            self._outputs = kept_outputs

            kept_scores = [s for s in self._scores if s.user_id != user_id]
            removed += len(self._scores) - len(kept_scores)
            self._scores = kept_scores

            doomed_jobs = [k for k in self._jobs if k[1] == user_id]
            for key in doomed_jobs:
                del self._jobs[key]
            removed += len(doomed_jobs)
        logger.info("Erased %d profile records for user %s", removed, user_id)
        return removed

    def record_count(self) -> int:
        """Total stored records across every collection."""
        with self._lock:
            return (
                len(self._profiles)
                + sum(len(rows) for rows in self._traits.values())
                + len(self._cultural)
                + len(self._outputs)
                + len(self._runs)
                + len(self._jobs)
                + len(self._scores)
            )

    # -- persistence -------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Snapshot every collection to JSON (atomic write)."""
        target = Path(path)
        with self._lock:
            data = {
                "version": SNAPSHOT_VERSION,
                "profiles": [p.model_dump(mode="json") for p in self._profiles.values()],
                "traits": [t.model_dump(mode="json") for rows in self._traits.values() for t in rows],
                "cultural": [c.model_dump(mode="json") for c in self._cultural.values()],
                "outputs": MODEL_OUTPUT_LIST.dump_python(self._outputs, mode="json"),
                "runs": [r.model_dump(mode="json") for r in self._runs.values()],
                "jobs": [j.model_dump(mode="json") for j in self._jobs.values()],
                "scores": [s.model_dump(mode="json") for s in self._scores],
            }
        tmp = target.with_suffix(".tmp")
        try:
            with open(tmp, "w") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            tmp.replace(target)
        except Exception as exc:
            if tmp.exists():
                tmp.unlink()
            raise ValueError(f"Failed to save profiles: {exc}") from exc

    def load(self, path: str | Path) -> None:
        """Replace the repository contents with a snapshot."""
        try:
            with open(path) as fh:
                data = json.load(fh)
            profiles = [PersonalityProfile.model_validate(p) for p in data.get("profiles", [])]
            traits = [PersonalityTrait.model_validate(t) for t in data.get("traits", [])]
            cultural = [CulturalProfile.model_validate(c) for c in data.get("cultural", [])]
            outputs = MODEL_OUTPUT_LIST.validate_python(data.get("outputs", []))
            runs = [AnalysisRun.model_validate(r) for r in data.get("runs", [])]
            jobs = [UserJob.model_validate(j) for j in data.get("jobs", [])]
            scores = [PerformanceScore.model_validate(s) for s in data.get("scores", [])]
        except Exception as exc:
            raise ValueError(f"Failed to load profiles: {exc}") from exc

        grouped: dict[str, list[PersonalityTrait]] = {}
        for row in traits:
            grouped.setdefault(row.profile_id, []).append(row)
        with self._lock:
            self._profiles = {(p.user_id, p.organization_id): p for p in profiles}
            self._traits = grouped
            self._cultural = {c.profile_id: c for c in cultural}
            self._outputs = list(outputs)
            self._runs = {r.run_id: r for r in runs}
            self._jobs = {(j.run_id, j.user_id): j for j in jobs}
            self._scores = scores
