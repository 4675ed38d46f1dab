"""Engine configuration.

Every weight, threshold and resource limit lives here so it can be
recalibrated from the environment or a JSON file without a code change.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from lib_profiling.trait_types import ModelType


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------
class FusionWeights(BaseModel):
    """Base weight per model type for consensus fusion."""

    keyword: float = Field(default=0.25, ge=0.0, le=1.0)
    sentiment: float = Field(default=0.25, ge=0.0, le=1.0)
    behavioral: float = Field(default=0.30, ge=0.0, le=1.0)
    llm: float = Field(default=0.20, ge=0.0, le=1.0)

    def for_model(self, model_type: ModelType) -> float:
        match model_type:
            case "tier1_keyword":
                return self.keyword
            case "tier1_sentiment":
                return self.sentiment
            case "tier1_behavioral":
                return self.behavioral
            case "tier2_llm":
                return self.llm
        raise ValueError(f"Unknown model type: {model_type}")


class ModelBankSettings(BaseModel):
    """Tier-1 input requirements."""

    lookback_days: int = Field(default=28, ge=1, le=365)
    min_messages_for_traits: int = Field(default=20, ge=1)


class ValidatorSettings(BaseModel):
    """Tier-2 trigger thresholds and call budget."""

    confidence_threshold: int = Field(default=70, ge=0, le=100)
    conflict_min_confidence: int = Field(default=60, ge=0, le=100)
    conflict_high_score: int = Field(default=60, ge=0, le=100)
    conflict_low_score: int = Field(default=40, ge=0, le=100)
    sample_rate: float = Field(default=0.10, ge=0.0, le=1.0)
    sample_seed: str = "weekly-quality-sample"
    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    requests_per_minute: int = Field(default=30, ge=1)
    default_llm_confidence: int = Field(default=85, ge=0, le=100)

    @model_validator(mode="after")
    def validate_conflict_band(self) -> ValidatorSettings:
        if self.conflict_low_score >= self.conflict_high_score:
            raise ValueError("conflict_low_score must be below conflict_high_score")
        return self


class WindowSettings(BaseModel):
    """Aggregation window boundaries and rollup policy."""

    window_days: int = Field(default=7, ge=1, le=366)
    anchor: datetime = datetime(1970, 1, 5, tzinfo=timezone.utc)  # a Monday
    rollup_days: int = Field(default=28, ge=1)
    rollup_after_days: int = Field(default=84, ge=1)

    @model_validator(mode="after")
    def validate_rollup(self) -> WindowSettings:
        if self.rollup_days % self.window_days != 0:
            raise ValueError("rollup_days must be a multiple of window_days")
        if self.anchor.tzinfo is None:
            self.anchor = self.anchor.replace(tzinfo=timezone.utc)
        return self


class CulturalSettings(BaseModel):
    """Cultural adaptation parameters."""

    full_confidence_conversations: int = Field(default=50, ge=1)
    default_country: str = Field(default="US", min_length=2, max_length=2)


class SuggestionSettings(BaseModel):
    """Benchmark cohort and ranking parameters."""

    size_tolerance: float = Field(default=0.5, ge=0.0)
    min_sample_size: int = Field(default=8, ge=3)
    min_cohort_size: int = Field(default=3, ge=1)
    top_n: int = Field(default=10, ge=1)
    top_performer_quantile: float = Field(default=0.5, ge=0.0, le=1.0)
    revenue_weight: float = Field(default=0.5, ge=0.0)
    retention_weight: float = Field(default=0.3, ge=0.0)
    satisfaction_weight: float = Field(default=0.2, ge=0.0)
    fallback_to_catalog: bool = True


class OrchestratorSettings(BaseModel):
    """Batch run resource limits."""

    max_workers: int = Field(default=4, ge=1, le=64)
    # Attempts per user before the user is marked failed
    max_attempts_per_user: int = Field(default=3, ge=1, le=10)
    # Failed users a run tolerates before it fails; None tolerates any number
    max_failed_users: int | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class EngineSettings(BaseModel):
    """All engine configuration."""

    fusion: FusionWeights = Field(default_factory=FusionWeights)
    model_bank: ModelBankSettings = Field(default_factory=ModelBankSettings)
    validator: ValidatorSettings = Field(default_factory=ValidatorSettings)
    windows: WindowSettings = Field(default_factory=WindowSettings)
    cultural: CulturalSettings = Field(default_factory=CulturalSettings)
    suggestions: SuggestionSettings = Field(default_factory=SuggestionSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)

    @classmethod
    def from_file(cls, path: str | Path) -> EngineSettings:
        """Load settings from a JSON calibration file."""
        try:
            with open(path) as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise ValueError(f"Failed to load settings from {path}: {exc}") from exc
        return cls.model_validate(data)

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from ``PROFILING_*`` environment variables.

        ``PROFILING_SETTINGS_FILE`` names an optional JSON base file; individual
        variables override its values.
        """
        load_dotenv()
        base_file = os.getenv("PROFILING_SETTINGS_FILE", "")
        data: dict[str, Any] = cls.from_file(base_file).model_dump() if base_file else cls().model_dump()

        for env_name, (section, field_name) in _ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            data[section][field_name] = raw
            logger.debug("Setting %s.%s from %s", section, field_name, env_name)

        return cls.model_validate(data)

    def save(self, path: str | Path) -> None:
        """Write settings as JSON (atomic write)."""
        target = Path(path)
        tmp = target.with_suffix(".tmp")
        try:
            with open(tmp, "w") as fh:
                json.dump(self.model_dump(mode="json"), fh, indent=2)
            tmp.replace(target)
        except Exception as exc:
            if tmp.exists():
                tmp.unlink()
            raise ValueError(f"Failed to save settings: {exc}") from exc


_ENV_FIELDS: dict[str, tuple[str, str]] = {
    "PROFILING_WEIGHT_KEYWORD": ("fusion", "keyword"),
    "PROFILING_WEIGHT_SENTIMENT": ("fusion", "sentiment"),
    "PROFILING_WEIGHT_BEHAVIORAL": ("fusion", "behavioral"),
    "PROFILING_WEIGHT_LLM": ("fusion", "llm"),
    "PROFILING_MIN_MESSAGES": ("model_bank", "min_messages_for_traits"),
    "PROFILING_LOOKBACK_DAYS": ("model_bank", "lookback_days"),
    "PROFILING_TIER2_CONFIDENCE_THRESHOLD": ("validator", "confidence_threshold"),
    "PROFILING_TIER2_SAMPLE_RATE": ("validator", "sample_rate"),
    "PROFILING_TIER2_TIMEOUT_SECONDS": ("validator", "timeout_seconds"),
    "PROFILING_TIER2_MAX_ATTEMPTS": ("validator", "max_attempts"),
    "PROFILING_TIER2_REQUESTS_PER_MINUTE": ("validator", "requests_per_minute"),
    "PROFILING_WINDOW_DAYS": ("windows", "window_days"),
    "PROFILING_ROLLUP_DAYS": ("windows", "rollup_days"),
    "PROFILING_DEFAULT_COUNTRY": ("cultural", "default_country"),
    "PROFILING_SUGGESTION_TOP_N": ("suggestions", "top_n"),
    "PROFILING_MIN_SAMPLE_SIZE": ("suggestions", "min_sample_size"),
    "PROFILING_MAX_WORKERS": ("orchestrator", "max_workers"),
    "PROFILING_MAX_ATTEMPTS_PER_USER": ("orchestrator", "max_attempts_per_user"),
    "PROFILING_MAX_FAILED_USERS": ("orchestrator", "max_failed_users"),
}
