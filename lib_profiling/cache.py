"""Explicit cohort cache with scope-based invalidation.

Entries never expire on their own; organization change events call
``invalidate`` with one of ``"all"``, ``"industry:<name>"`` or
``"org:<organization_id>"``.
"""

from __future__ import annotations

import logging
import threading

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class CohortEntry(BaseModel):
    """Cached benchmark cohort for one target organization."""

    organization_id: str
    industry: str
    member_ids: list[str] = Field(default_factory=list)


class CohortCache:
    """Thread-safe cohort membership cache keyed by target organization."""

    def __init__(self):
        self._entries: dict[str, CohortEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, organization_id: str) -> CohortEntry | None:
        with self._lock:
            entry = self._entries.get(organization_id)
            if entry is None:
                self.misses += 1
            else:
                self.hits += 1
            return entry

    def put(self, entry: CohortEntry) -> None:
        with self._lock:
            self._entries[entry.organization_id] = entry

    def invalidate(self, scope: str) -> int:
        """Drop the entries matching *scope* and return how many were removed.

        ``org:<id>`` drops the organization's own entry and every cohort that
        lists it as a member.

        Raises:
            ValueError: If the scope is not recognised.
        """
        kind, _, value = scope.partition(":")
        with self._lock:
            if scope == "all":
                doomed = list(self._entries)
            elif kind == "industry" and value:
                doomed = [k for k, e in self._entries.items() if e.industry == value]
            elif kind == "org" and value:
                doomed = [
                    k for k, e in self._entries.items()
                    if k == value or value in e.member_ids
                ]
            else:
                raise ValueError(f"Unknown cache scope: {scope}")
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.info("Invalidated %d cohort cache entries for scope %s", len(doomed), scope)
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
