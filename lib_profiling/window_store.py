"""Aggregation window store.

Feature records are upsert-merged into per (user, organization, channel,
period) windows.  Each rollup bucket (one user, organization and channel over
``rollup_days``) has its own lock, shared by merges and compaction, so work
on different buckets never contends and there is no engine-wide lock.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
import json
import logging
from pathlib import Path
import threading

from lib_profiling.interaction_models import AggregationWindow, FeatureRecord, window_from_features
from lib_profiling.settings import WindowSettings


logger = logging.getLogger(__name__)

WindowKey = tuple[str, str, str, datetime]


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


class WindowStore:
    """Thread-safe store of aggregation windows."""

    def __init__(self, settings: WindowSettings | None = None):
        self.settings = settings or WindowSettings()
        self._windows: dict[WindowKey, AggregationWindow] = {}
        self._key_locks: dict[WindowKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # -- period arithmetic --------------------------------------------------

    def period_for(self, ts: datetime) -> tuple[datetime, datetime]:
        """Window ``[start, end)`` containing *ts*."""
        return self._bucket(ts, timedelta(days=self.settings.window_days))

    def rollup_period_for(self, ts: datetime) -> tuple[datetime, datetime]:
        return self._bucket(ts, timedelta(days=self.settings.rollup_days))

    def _bucket(self, ts: datetime, size: timedelta) -> tuple[datetime, datetime]:
        anchor = _as_utc(self.settings.anchor)
        index = (_as_utc(ts) - anchor) // size
        start = anchor + index * size
        return start, start + size

    # -- locking ------------------------------------------------------------

    def _lock_for(self, key: WindowKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _snapshot(self) -> list[AggregationWindow]:
        with self._registry_lock:
            return list(self._windows.values())

    # -- writes -------------------------------------------------------------

    def _bucket_key(self, window: AggregationWindow) -> WindowKey:
        rollup_start, _ = self.rollup_period_for(window.period_start)
        return (window.user_id, window.organization_id, window.channel_type, rollup_start)

    def _upsert(self, window: AggregationWindow) -> AggregationWindow:
        """Merge *window* while holding its rollup-bucket lock.

        ``compact`` takes the same lock, so a merge either lands before the
        bucket is rolled up or goes straight into the rollup.
        """
        bucket_key = self._bucket_key(window)
        with self._lock_for(bucket_key):
            with self._registry_lock:
                rollup = self._windows.get(bucket_key)
                key = bucket_key if rollup is not None and rollup.is_rollup else window.key
                current = self._windows.get(key)
            merged = window if current is None else current.combine(window)
            with self._registry_lock:
                self._windows[key] = merged
        return merged

    def merge_features(self, record: FeatureRecord, period_start: datetime | None = None) -> AggregationWindow:
        """Fold *record* into its window and return the merged window.

        Records that fall inside an already compacted rollup merge into it.
        """
        if period_start is None:
            start, end = self.period_for(record.observed_at)
        else:
            start = _as_utc(period_start)
            end = start + timedelta(days=self.settings.window_days)
        return self._upsert(window_from_features(record, start, end))

    def merge_window(self, window: AggregationWindow) -> AggregationWindow:
        """Upsert-merge a pre-aggregated window (replication or replay)."""
        return self._upsert(window)

    def compact(self, before: datetime) -> int:
        """Roll windows into ``rollup_days`` rollups.

        Only rollup periods that end at or before *before* are compacted, so a
        rollup never mixes with live weekly windows.  Returns the number of
        windows folded into rollups.
        """
        cutoff = _as_utc(before)
        groups: dict[WindowKey, list[AggregationWindow]] = defaultdict(list)
        for window in self._snapshot():
            rollup_start, rollup_end = self.rollup_period_for(window.period_start)
            if rollup_end > cutoff or window.is_rollup:
                continue
            groups[(window.user_id, window.organization_id, window.channel_type, rollup_start)].append(window)

        folded = 0
        for rollup_key, members in groups.items():
            rollup_start = rollup_key[3]
            rollup_end = rollup_start + timedelta(days=self.settings.rollup_days)
            with self._lock_for(rollup_key):
                with self._registry_lock:
                    live = [self._windows.pop(w.key) for w in members if w.key in self._windows]
                    existing = self._windows.get(rollup_key)
                if not live:
                    continue
                rollup = live[0]
                for window in live[1:]:
                    rollup = rollup.combine(window)
                if existing is not None:
                    rollup = existing.combine(rollup)
                rollup = rollup.model_copy(update={
                    "period_start": rollup_start,
                    "period_end": rollup_end,
                    "is_rollup": True,
                })
                with self._registry_lock:
                    self._windows[rollup_key] = rollup
                folded += len(live)

        if folded:
            logger.info("Compacted %d windows into %d rollups (before %s)", folded, len(groups), cutoff.isoformat())
        return folded

    def erase_user(self, user_id: str) -> int:
        """Delete every window for *user_id*; returns the number removed."""
        with self._registry_lock:
            doomed = [k for k in self._windows if k[0] == user_id]
            for key in doomed:
                del self._windows[key]
                self._key_locks.pop(key, None)
        if doomed:
            logger.info("Erased %d windows for a user", len(doomed))
        return len(doomed)

    # -- reads --------------------------------------------------------------

    def get_window(
        self,
        user_id: str,
        organization_id: str,
        channel_type: str,
        period_start: datetime,
    ) -> AggregationWindow | None:
        key = (user_id, organization_id, channel_type, _as_utc(period_start))
        with self._registry_lock:
            return self._windows.get(key)

    def windows_for_user(
        self,
        user_id: str,
        organization_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AggregationWindow]:
        """Windows overlapping ``[since, until)`` ordered by period then channel."""
        lo = _as_utc(since) if since else None
        hi = _as_utc(until) if until else None
        selected = [
            w for w in self._snapshot()
            if w.user_id == user_id
            and (organization_id is None or w.organization_id == organization_id)
            and (lo is None or w.period_end > lo)
            and (hi is None or w.period_start < hi)
        ]
        return sorted(selected, key=lambda w: (w.period_start, w.channel_type))

    def active_users(
        self,
        organization_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[str]:
        """Users with at least one message in the organization over the range."""
        lo = _as_utc(since) if since else None
        hi = _as_utc(until) if until else None
        users = {
            w.user_id for w in self._snapshot()
            if w.organization_id == organization_id
            and w.total_messages > 0
            and (lo is None or w.period_end > lo)
            and (hi is None or w.period_start < hi)
        }
        return sorted(users)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._windows)

    # -- persistence --------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Snapshot every window to JSON (atomic write)."""
        target = Path(path)
        windows = sorted(self._snapshot(), key=lambda w: (w.user_id, w.organization_id, w.channel_type, w.period_start))
        data = {"version": "1.0", "windows": [w.model_dump(mode="json") for w in windows]}
        tmp = target.with_suffix(".tmp")
        try:
            with open(tmp, "w") as fh:
                json.dump(data, fh, indent=2)
            tmp.replace(target)
        except Exception as exc:
            if tmp.exists():
                tmp.unlink()
            raise ValueError(f"Failed to save windows: {exc}") from exc

    def load(self, path: str | Path) -> int:
        """Merge a snapshot into the store; returns the number of windows read."""
        try:
            with open(path) as fh:
                data = json.load(fh)
            windows = [AggregationWindow.model_validate(w) for w in data.get("windows", [])]
        except Exception as exc:
            raise ValueError(f"Failed to load windows: {exc}") from exc
        for window in windows:
            self.merge_window(window)
        return len(windows)
