"""Per-tenant memo for analytics payloads, evicted by change events and at day change."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from datetime import date
from functools import lru_cache
from typing import TypeVar
from uuid import UUID

from buildtrack.core.config import get_settings
from buildtrack.services.events import CacheInvalidationHint, ChangeEvent, NodeChanged, get_change_notifier

T = TypeVar("T")


class AnalyticsCache:
    """Locally consistent only: other processes never see these evictions.

    Entries are valid for the calendar day they were computed on, since
    planned progress and period windows depend on today's date. A value
    computed while an eviction of its tenant (or a clear) happened is
    returned to its caller but never stored.
    """

    def __init__(self, *, enabled: bool = True, today_provider: Callable[[], date] = date.today) -> None:
        self.enabled = enabled
        self.today_provider = today_provider
        self._entries: dict[UUID, dict[Hashable, object]] = {}
        self._generations: dict[UUID, int] = {}
        self._epoch = 0
        self._day: date | None = None
        self._lock = threading.Lock()

    def _roll_day(self) -> None:
        # Caller holds self._lock.
        today = self.today_provider()
        if today != self._day:
            self._entries.clear()
            self._epoch += 1
            self._day = today

    def _stamp(self, tenant_id: UUID) -> tuple[int, int]:
        return self._epoch, self._generations.get(tenant_id, 0)

    def get_or_compute(self, tenant_id: UUID, key: Hashable, compute: Callable[[], T]) -> T:
        if not self.enabled:
            return compute()
        with self._lock:
            self._roll_day()
            bucket = self._entries.get(tenant_id)
            if bucket is not None and key in bucket:
                return bucket[key]  # type: ignore[return-value]
            stamp = self._stamp(tenant_id)

        value = compute()
        with self._lock:
            self._roll_day()
            if self._stamp(tenant_id) == stamp:
                self._entries.setdefault(tenant_id, {})[key] = value
        return value

    def evict_tenant(self, tenant_id: UUID) -> None:
        with self._lock:
            self._entries.pop(tenant_id, None)
            self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._epoch += 1

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._entries.values())

    def handle_event(self, event: ChangeEvent) -> None:
        if isinstance(event, CacheInvalidationHint):
            self.evict_tenant(event.tenant_id)
        elif isinstance(event, NodeChanged):
            # Node events carry no tenant id.
            self.clear()


@lru_cache
def get_analytics_cache() -> AnalyticsCache:
    cache = AnalyticsCache(enabled=get_settings().analytics_cache_enabled)
    get_change_notifier().subscribe(cache.handle_event)
    return cache
