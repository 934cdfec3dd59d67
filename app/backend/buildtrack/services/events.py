"""Change events emitted by the progress core for external cache owners."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

from buildtrack.models.hierarchy import NodeLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NodeChanged:
    level: NodeLevel
    id: UUID


@dataclass(frozen=True, slots=True)
class CacheInvalidationHint:
    tenant_id: UUID
    unit_ids: tuple[UUID, ...]


ChangeEvent = NodeChanged | CacheInvalidationHint
Listener = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Synchronous fan-out of change events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def publish_all(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            self.publish(event)

    def invalidate_cache_hint(self, tenant_id: UUID, affected_unit_ids: Iterable[UUID]) -> CacheInvalidationHint:
        """Advisory hook for the CRUD layer to call after any write."""

        hint = CacheInvalidationHint(tenant_id=tenant_id, unit_ids=tuple(affected_unit_ids))
        logger.debug("Cache invalidation hint for tenant %s (%d units)", tenant_id, len(hint.unit_ids))
        self.publish(hint)
        return hint


@lru_cache
def get_change_notifier() -> ChangeNotifier:
    """Process-wide notifier shared by request handlers."""

    return ChangeNotifier()
