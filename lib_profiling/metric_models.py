"""Pydantic models for metric definitions, benchmarks and performance scores."""

from __future__ import annotations

from datetime import datetime, timezone
import re
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


AggregationType = Literal["sum", "average", "min", "max", "count", "rate", "percentage"]

_IDENTIFIER_RE = re.compile(r"^[a-z][a-z0-9_]*$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------
class FormulaDescriptor(BaseModel):
    """Declarative description of how a metric is computed.

    ``source`` names a data source, ``field`` the value read from each record,
    ``filters`` restrict the records by exact match.  Nothing here is executed.
    """

    source: str = Field(..., min_length=1, max_length=60)
    field: str = Field(..., min_length=1, max_length=60)
    filters: dict[str, str | int | float | bool] = Field(default_factory=dict)
    aggregation: AggregationType = "average"
    lower_is_better: bool = False

    @field_validator("source", "field")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"'{v}' must be a snake_case identifier")
        return v

    @field_validator("filters")
    @classmethod
    def validate_filter_keys(cls, v: dict[str, str | int | float | bool]) -> dict[str, str | int | float | bool]:
        for key in v:
            if not _IDENTIFIER_RE.match(key):
                raise ValueError(f"filter key '{key}' must be a snake_case identifier")
        return v


class MetricDefinition(BaseModel):
    """A trackable performance metric."""

    metric_id: str = Field(..., min_length=1, max_length=80)
    name: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    formula: FormulaDescriptor
    target_value: float | None = None
    weight: float = Field(default=1.0, ge=0.0, le=10.0)
    ai_suggested: bool = False
    suggestion_confidence: int = Field(default=0, ge=0, le=100)
    suggestion_reason: str = ""
    organization_id: str | None = None
    is_active: bool = True

    @property
    def aggregation(self) -> AggregationType:
        return self.formula.aggregation

    @field_validator("metric_id")
    @classmethod
    def validate_metric_id(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError("metric_id must be a snake_case identifier")
        return v


class MetricDataPoint(BaseModel):
    """One observed value for a metric."""

    value: float
    observed_at: datetime


class PerformanceScore(BaseModel):
    """Computed value of one metric for one user and period (append-only)."""

    score_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    organization_id: str
    metric_id: str
    period_start: datetime
    period_end: datetime
    score: float
    target_met: bool = False
    percentage_of_target: int = 0
    data_points: int = Field(default=0, ge=0)
    insight: str = ""
    calculated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Benchmarking
# ---------------------------------------------------------------------------
class OrganizationProfile(BaseModel):
    """What the suggestion engine needs to know about an organization."""

    organization_id: str = Field(..., min_length=1)
    industry: str = Field(..., min_length=1)
    employee_count: int = Field(..., ge=0)
    tracked_metric_ids: list[str] = Field(default_factory=list)


class BenchmarkObservation(BaseModel):
    """One organization's metric values and success indicators for one period."""

    organization_id: str
    period: str = Field(..., min_length=1)
    metric_values: dict[str, float] = Field(default_factory=dict)
    revenue_growth: float
    retention: float
    satisfaction: float


class MetricSuggestion(BaseModel):
    """A ranked, untracked metric candidate with its evidence."""

    rank: int = Field(ge=1)
    metric: MetricDefinition
    overall_correlation: float = Field(ge=-1.0, le=1.0)
    revenue_correlation: float = Field(default=0.0, ge=-1.0, le=1.0)
    retention_correlation: float = Field(default=0.0, ge=-1.0, le=1.0)
    satisfaction_correlation: float = Field(default=0.0, ge=-1.0, le=1.0)
    adoption_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    sample_size: int = Field(default=0, ge=0)
    rationale: str = ""
    from_benchmark: bool = True
