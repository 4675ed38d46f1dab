"""Per-user analysis pipeline.

consent check -> windows over the lookback -> Tier-1 -> fusion -> Tier-2
trigger -> optional Tier-2 and re-fusion -> MBTI / DISC / cultural ->
one repository write.  Users are independent, so the orchestrator may run
many pipelines at once.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
import logging
from uuid import uuid4

from pydantic import BaseModel, Field

from lib_profiling.directory import UserDirectory
from lib_profiling.engine.cultural import adapt
from lib_profiling.engine.fusion import fuse_outputs, models_used, overall_confidence
from lib_profiling.engine.numeric import clamp_score
from lib_profiling.engine.tier1 import period_totals, run_tier1, summarize_windows
from lib_profiling.engine.typology import derive_mbti, disc_primary, mbti_type
from lib_profiling.engine.validator import TierTwoValidator
from lib_profiling.errors import ConsentMissingError, InsufficientDataError, ValidationProviderError
from lib_profiling.profile_models import (
    CulturalProfile,
    PersonalityProfile,
    PersonalityTrait,
    ProfileStatus,
    TraitConsensus,
)
from lib_profiling.profile_repository import ProfileRepository
from lib_profiling.settings import EngineSettings
from lib_profiling.trait_types import CULTURAL_DIMENSIONS, ModelType
from lib_profiling.window_store import WindowStore


logger = logging.getLogger(__name__)


class UserAnalysisResult(BaseModel):
    """Outcome of one user's analysis, consumed by run aggregation."""

    user_id: str
    organization_id: str
    profile_id: str
    status: ProfileStatus
    overall_confidence: int = 0
    models_used: list[ModelType] = Field(default_factory=list)
    tier2_invoked: bool = False
    tokens_used: int = 0
    trigger_reasons: list[str] = Field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfilingPipeline:
    """Runs the full analysis for one (user, organization) pair."""

    def __init__(
        self,
        windows: WindowStore,
        repository: ProfileRepository,
        users: UserDirectory,
        validator: TierTwoValidator,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.windows = windows
        self.repository = repository
        self.users = users
        self.validator = validator
        self.settings = settings or EngineSettings()
        self._clock = clock

    def analyze_user(
        self,
        user_id: str,
        organization_id: str,
        run_id: str | None = None,
        as_of: datetime | None = None,
    ) -> UserAnalysisResult:
        """Analyze one user and persist the result.

        Raises:
            ConsentMissingError: If the user is unknown or has not consented.
                Nothing is read from the window store and nothing is written.
        """
        user = self.users.get_user(user_id)
        if user is None or not user.consent_granted:
            raise ConsentMissingError(user_id)

        now = self._clock()
        as_of = as_of or now
        since = as_of - timedelta(days=self.settings.model_bank.lookback_days)
        windows = self.windows.windows_for_user(user_id, organization_id, since=since, until=as_of)
        summary = summarize_windows(windows)

        existing = self.repository.get_profile(user_id, organization_id)
        profile_id = existing.profile_id if existing else uuid4().hex
        created_at = existing.created_at if existing else now
        stored_cultural = self.repository.get_cultural(profile_id) if existing else None

        try:
            outputs = run_tier1(windows, self.settings.model_bank.min_messages_for_traits, run_id=run_id)
        except InsufficientDataError as e:
            logger.info("Insufficient data for user %s: %s", user_id, e)
            cultural = adapt(profile_id, user.country_code, [], self.settings.cultural, stored_cultural)
            profile = PersonalityProfile(
                profile_id=profile_id,
                user_id=user_id,
                organization_id=organization_id,
                status="insufficient_data",
                conversations_analyzed=summary.conversations_participated if summary else 0,
                messages_analyzed=e.message_count,
                last_run_id=run_id,
                created_at=created_at,
                updated_at=now,
            )
            self.repository.write_analysis(profile, [], cultural, [])
            return UserAnalysisResult(
                user_id=user_id,
                organization_id=organization_id,
                profile_id=profile_id,
                status="insufficient_data",
            )

        weights = self.settings.fusion
        consensus = fuse_outputs(outputs, weights)
        confidence = overall_confidence(consensus)

        status: ProfileStatus = "ok"
        tier2_invoked = False
        tokens = 0
        decision = self.validator.should_validate(confidence, outputs, user_id, as_of.date())
        if decision.triggered:
            if self.validator.enabled:
                tier2_invoked = True
                logger.info("Tier-2 validation for user %s (%s)", user_id, ", ".join(decision.reasons))
                try:
                    llm_output = self.validator.validate(summary, len(period_totals(windows)), outputs, run_id=run_id)
                except ValidationProviderError as e:
                    logger.warning("Tier-2 failed for user %s, keeping Tier-1 consensus: %s", user_id, e)
                    status = "degraded"
                else:
                    outputs = [*outputs, llm_output]
                    tokens = llm_output.tokens_used
                    consensus = fuse_outputs(outputs, weights)
                    confidence = overall_confidence(consensus)
            else:
                logger.info(
                    "Tier-2 would run for user %s (%s) but no provider is configured",
                    user_id, ", ".join(decision.reasons),
                )

        mbti = derive_mbti(consensus)
        cultural = adapt(profile_id, user.country_code, windows, self.settings.cultural, stored_cultural)
        traits = _trait_rows(profile_id, consensus, mbti, cultural, run_id, as_of)
        used = models_used(outputs)

        profile = PersonalityProfile(
            profile_id=profile_id,
            user_id=user_id,
            organization_id=organization_id,
            status=status,
            overall_confidence=confidence,
            conversations_analyzed=summary.conversations_participated,
            messages_analyzed=summary.message_count,
            mbti_type=mbti_type(mbti),
            disc_primary=disc_primary(consensus),
            models_used_count=len(used),
            last_run_id=run_id,
            created_at=created_at,
            updated_at=now,
        )
        self.repository.write_analysis(profile, traits, cultural, outputs)

        return UserAnalysisResult(
            user_id=user_id,
            organization_id=organization_id,
            profile_id=profile_id,
            status=status,
            overall_confidence=confidence,
            models_used=used,
            tier2_invoked=tier2_invoked,
            tokens_used=tokens,
            trigger_reasons=decision.reasons,
        )


def _trait_rows(
    profile_id: str,
    consensus: dict[str, TraitConsensus],
    mbti: dict[str, TraitConsensus],
    cultural: CulturalProfile,
    run_id: str | None,
    observed_at: datetime,
) -> list[PersonalityTrait]:
    rows = [
        PersonalityTrait(
            profile_id=profile_id,
            framework=c.framework,
            trait_id=c.trait_id,
            score=c.score,
            confidence=c.confidence,
            derivation=derivation,
            breakdown=c.breakdown,
            run_id=run_id,
            observed_at=observed_at,
        )
        for derivation, source in (("fusion", consensus), ("mbti_derived", mbti))
        for c in source.values()
    ]
    cultural_confidence = clamp_score(cultural.confidence)
    rows.extend(
        PersonalityTrait(
            profile_id=profile_id,
            framework="cultural",
            trait_id=dimension,
            score=clamp_score(cultural.values[dimension]),
            confidence=cultural_confidence,
            derivation="cultural_blend",
            run_id=run_id,
            observed_at=observed_at,
        )
        for dimension in CULTURAL_DIMENSIONS
    )
    return rows
