"""Lookups the engine consumes from surrounding systems.

Each collaborator is a small ``Protocol``; the in-memory implementations back
tests, the example script and single-process deployments.
"""

from __future__ import annotations

from datetime import datetime
import threading
from typing import Protocol

from pydantic import BaseModel, Field

from lib_profiling.metric_models import (
    BenchmarkObservation,
    FormulaDescriptor,
    MetricDataPoint,
    OrganizationProfile,
)


class UserRecord(BaseModel):
    """Declared location and consent for one user."""

    user_id: str = Field(..., min_length=1)
    organization_id: str | None = None
    country_code: str | None = None
    consent_granted: bool = False


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------
class UserDirectory(Protocol):
    """``{user_id} -> {country_code, consent_granted}``."""

    def get_user(self, user_id: str) -> UserRecord | None:
        ...


class OrganizationDirectory(Protocol):
    """``{organization_id} -> {industry, employee_count, tracked_metric_ids}``."""

    def get_organization(self, organization_id: str) -> OrganizationProfile | None:
        ...

    def list_organizations(self) -> list[OrganizationProfile]:
        ...


class BenchmarkSource(Protocol):
    """Historical metric values and success indicators per organization."""

    def observations_for(self, organization_ids: list[str]) -> list[BenchmarkObservation]:
        ...


class MetricDataSource(Protocol):
    """Resolves a formula descriptor into data points for one user and period."""

    def data_points(
        self,
        user_id: str,
        organization_id: str,
        formula: FormulaDescriptor,
        period_start: datetime,
        period_end: datetime,
    ) -> list[MetricDataPoint]:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------
class InMemoryUserDirectory:
    """Thread-safe dict-backed user directory."""

    def __init__(self, users: list[UserRecord] | None = None):
        self._users: dict[str, UserRecord] = {u.user_id: u for u in users or []}
        self._lock = threading.Lock()

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            return self._users.get(user_id)

    def upsert(self, user: UserRecord) -> None:
        with self._lock:
            self._users[user.user_id] = user

    def remove(self, user_id: str) -> None:
        with self._lock:
            self._users.pop(user_id, None)


class InMemoryOrganizationDirectory:
    """Thread-safe dict-backed organization directory."""

    def __init__(self, organizations: list[OrganizationProfile] | None = None):
        self._orgs: dict[str, OrganizationProfile] = {o.organization_id: o for o in organizations or []}
        self._lock = threading.Lock()

    def get_organization(self, organization_id: str) -> OrganizationProfile | None:
        with self._lock:
            return self._orgs.get(organization_id)

    def list_organizations(self) -> list[OrganizationProfile]:
        with self._lock:
            return sorted(self._orgs.values(), key=lambda o: o.organization_id)

    def upsert(self, organization: OrganizationProfile) -> None:
        with self._lock:
            self._orgs[organization.organization_id] = organization


class InMemoryBenchmarkSource:
    """Benchmark observations held in a list."""

    def __init__(self, observations: list[BenchmarkObservation] | None = None):
        self._observations = list(observations or [])
        self._lock = threading.Lock()

    def observations_for(self, organization_ids: list[str]) -> list[BenchmarkObservation]:
        wanted = set(organization_ids)
        with self._lock:
            return [o for o in self._observations if o.organization_id in wanted]

    def add(self, observation: BenchmarkObservation) -> None:
        with self._lock:
            self._observations = [*self._observations, observation]


class InMemoryMetricDataSource:
    """Data points keyed by (user, organization, source, field).

    Each stored point may carry attributes matched against the formula filters.
    """

    def __init__(self):
        self._points: dict[tuple[str, str, str, str], list[tuple[MetricDataPoint, dict]]] = {}
        self._lock = threading.Lock()

    def add(
        self,
        user_id: str,
        organization_id: str,
        source: str,
        field: str,
        point: MetricDataPoint,
        attributes: dict | None = None,
    ) -> None:
        key = (user_id, organization_id, source, field)
        with self._lock:
            self._points[key] = [*self._points.get(key, []), (point, dict(attributes or {}))]

    def data_points(
        self,
        user_id: str,
        organization_id: str,
        formula: FormulaDescriptor,
        period_start: datetime,
        period_end: datetime,
    ) -> list[MetricDataPoint]:
        key = (user_id, organization_id, formula.source, formula.field)
        with self._lock:
            stored = list(self._points.get(key, []))
        return [
            point
            for point, attrs in stored
            if period_start <= point.observed_at < period_end
            and all(attrs.get(k) == v for k, v in formula.filters.items())
        ]
