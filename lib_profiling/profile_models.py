"""Pydantic models for model outputs, trait rows, profiles and analysis runs."""

from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import json
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field, field_validator

from lib_profiling.errors import RunStateError
from lib_profiling.trait_types import Framework, ModelType


ProfileStatus = Literal["ok", "degraded", "insufficient_data"]
RunStatus = Literal["pending", "running", "completed", "failed"]
RunType = Literal["scheduled_weekly", "on_demand", "single_user"]
JobStatus = Literal["pending", "running", "completed", "skipped", "failed"]
Derivation = Literal["fusion", "mbti_derived", "cultural_blend"]

TERMINAL_RUN_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

_RUN_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"running", "failed"},
    "running": {"completed", "failed"},
    "completed": set(),
    "failed": set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Model outputs (tagged union on model_type)
# ---------------------------------------------------------------------------
class ModelOutputBase(BaseModel):
    """Immutable prediction of one model for one user in one run."""

    model_config = ConfigDict(frozen=True)

    model_type: ModelType
    output_id: str = Field(default_factory=_new_id)
    run_id: str | None = None
    user_id: str
    organization_id: str
    trait_scores: dict[str, int]
    confidence: int = Field(ge=0, le=100)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("trait_scores")
    @classmethod
    def validate_scores(cls, v: dict[str, int]) -> dict[str, int]:
        for trait_id, score in v.items():
            if not 0 <= score <= 100:
                raise ValueError(f"score for '{trait_id}' must be within 0-100, got {score}")
        return dict(sorted(v.items()))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checksum(self) -> str:
        """SHA-256 of the canonical prediction payload."""
        payload = {
            "model_type": self.model_type,
            "run_id": self.run_id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "trait_scores": self.trait_scores,
            "confidence": self.confidence,
            "tokens_used": getattr(self, "tokens_used", 0),
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class KeywordOutput(ModelOutputBase):
    model_type: Literal["tier1_keyword"] = "tier1_keyword"


class SentimentOutput(ModelOutputBase):
    model_type: Literal["tier1_sentiment"] = "tier1_sentiment"


class BehavioralOutput(ModelOutputBase):
    model_type: Literal["tier1_behavioral"] = "tier1_behavioral"


class LlmValidationOutput(ModelOutputBase):
    model_type: Literal["tier2_llm"] = "tier2_llm"
    tokens_used: int = Field(default=0, ge=0)
    conflicts: list[str] = Field(default_factory=list)
    provider_label: str = ""


ModelOutput = Annotated[
    Union[KeywordOutput, SentimentOutput, BehavioralOutput, LlmValidationOutput],
    Field(discriminator="model_type"),
]

MODEL_OUTPUT_LIST = TypeAdapter(list[ModelOutput])


# ---------------------------------------------------------------------------
# Fusion results
# ---------------------------------------------------------------------------
class ModelContribution(BaseModel):
    """One model's share of a consensus value."""

    model_type: ModelType
    score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    base_weight: float = Field(ge=0.0)
    adjusted_weight: float = Field(ge=0.0)


class TraitConsensus(BaseModel):
    """Fused score and confidence for one trait, with its audit breakdown."""

    trait_id: str
    framework: Framework
    score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    breakdown: list[ModelContribution] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------
class PersonalityTrait(BaseModel):
    """One observation in a trait's time series."""

    trait_row_id: str = Field(default_factory=_new_id)
    profile_id: str
    framework: Framework
    trait_id: str
    score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    derivation: Derivation = "fusion"
    breakdown: list[ModelContribution] = Field(default_factory=list)
    run_id: str | None = None
    observed_at: datetime = Field(default_factory=_utcnow)


class PersonalityProfile(BaseModel):
    """Canonical profile for one (user, organization)."""

    profile_id: str = Field(default_factory=_new_id)
    user_id: str
    organization_id: str
    consent_granted: bool = True
    status: ProfileStatus = "ok"
    overall_confidence: int = Field(default=0, ge=0, le=100)
    conversations_analyzed: int = Field(default=0, ge=0)
    messages_analyzed: int = Field(default=0, ge=0)
    mbti_type: str | None = None
    disc_primary: str | None = None
    models_used_count: int = Field(default=0, ge=0)
    last_run_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CulturalProfile(BaseModel):
    """Hofstede-dimension state for one profile."""

    profile_id: str
    country_code: str
    location_based: bool = True
    baseline: dict[str, float]
    adjustments: dict[str, float]
    values: dict[str, float]
    confidence: float = Field(ge=0.0, le=100.0)
    conversations_analyzed: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=_utcnow)


class AnalysisRun(BaseModel):
    """Provenance record for one batch pass."""

    run_id: str = Field(default_factory=_new_id)
    run_type: RunType = "on_demand"
    organization_id: str | None = None
    status: RunStatus = "pending"
    fusion_strategy: str = "confidence_weighted"
    total_users: int = Field(default=0, ge=0)
    users_processed: int = Field(default=0, ge=0)
    failed_users: int = Field(default=0, ge=0)
    consent_skipped_users: int = Field(default=0, ge=0)
    degraded_users: int = Field(default=0, ge=0)
    insufficient_data_users: int = Field(default=0, ge=0)
    models_used: list[ModelType] = Field(default_factory=list)
    tier2_invocations: int = Field(default=0, ge=0)
    tokens_consumed: int = Field(default=0, ge=0)
    processing_time_seconds: float = Field(default=0.0, ge=0.0)
    cancel_requested: bool = False
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def transition(self, status: RunStatus, **updates) -> AnalysisRun:
        """Return a copy in *status*; terminal states are never left."""
        if status not in _RUN_TRANSITIONS[self.status]:
            raise RunStateError(f"Illegal run transition {self.status} -> {status} for run {self.run_id}")
        return self.model_copy(update={"status": status, **updates})


class UserJob(BaseModel):
    """One user's unit of work inside a run, with its attempt count."""

    run_id: str
    user_id: str
    status: JobStatus = "pending"
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=1, ge=1)
    profile_status: ProfileStatus | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------
class ProfileView(BaseModel):
    """What ``get_profile`` returns: always a value, never raw content."""

    available: bool
    message: str = ""
    profile: PersonalityProfile | None = None
    traits: dict[str, list[PersonalityTrait]] = Field(default_factory=dict)
    cultural: CulturalProfile | None = None
