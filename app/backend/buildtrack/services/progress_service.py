"""Progress aggregation over the project/unit/category/assignment hierarchy.

A node with children stores the truncated integer mean of its children's
completion percentages; a node without children keeps whatever value was
assigned to it. Leaf (assignment) updates cascade eagerly to the project.
Direct overrides of intermediate nodes do not propagate to their ancestors;
downstream consumers rely on that asymmetry, so it is kept as observed.

Each recompute step is its own read-modify-write. Without a `KeyedCascadeLock`
two concurrent leaf updates under the same parent can overwrite each other's
recomputation (last write wins), and a failed ancestor step leaves the already
persisted descendant levels in place.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from functools import lru_cache
from typing import Protocol
from uuid import UUID

from buildtrack.core.config import get_settings
from buildtrack.core.errors import MissingAncestor, NotFound, PartialCascadeFailure
from buildtrack.models.hierarchy import HierarchyNode, NodeLevel, NodeRef, clamp_percentage
from buildtrack.repositories.hierarchy_repository import HierarchyStore
from buildtrack.services.events import ChangeNotifier, NodeChanged

logger = logging.getLogger(__name__)


class CascadeLock(Protocol):
    def hold(self, ref: NodeRef) -> AbstractContextManager[None]: ...


class NullCascadeLock:
    """No serialization: concurrent recomputes of one node race."""

    def hold(self, ref: NodeRef) -> AbstractContextManager[None]:
        return nullcontext()


class KeyedCascadeLock:
    """One lock per node, so recomputes of the same ancestor run one at a time."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # ref -> [lock, holders and waiters]; an entry lives only while in use.
        self._locks: dict[NodeRef, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, ref: NodeRef) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(ref, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[ref]


def truncated_mean(values: list[int]) -> int:
    """Unweighted mean truncated toward zero (values are never negative)."""

    return sum(values) // len(values)


class ProgressAggregator:
    """Recomputes completion percentages and cascades leaf changes to the root."""

    def __init__(
        self,
        store: HierarchyStore,
        *,
        notifier: ChangeNotifier | None = None,
        lock: CascadeLock | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier or ChangeNotifier()
        self.lock = lock or NullCascadeLock()

    # ---------- Single-node steps ----------
    def _recompute(self, level: NodeLevel, node_id: UUID) -> tuple[HierarchyNode, bool]:
        with self.lock.hold(NodeRef(level, node_id)):
            node = self.store.get_node(level, node_id)
            children = self.store.get_children(level, node_id)
            if not children:
                return node, False

            value = truncated_mean([child.progress_percentage for child in children])
            saved = self.store.save_progress(level, node_id, value)
            logger.debug(
                "Recomputed %s %s from %d children: %d%%",
                level.value,
                node_id,
                len(children),
                value,
            )
            return saved, True

    def recompute_from_children(self, level: NodeLevel, node_id: UUID) -> int:
        """Recompute one node from its direct children without touching ancestors.

        Returns the stored value unchanged when the node has no children.
        """

        node, persisted = self._recompute(level, node_id)
        if persisted:
            self.notifier.publish(NodeChanged(level, node_id))
        return node.progress_percentage

    # ---------- Cascades ----------
    def _propagate_upward(
        self,
        start: HierarchyNode,
        *,
        completed_levels: list[NodeLevel],
        changed: list[NodeChanged],
        deadline: float | None,
    ) -> None:
        current = start
        while current.parent_level is not None:
            parent_level = current.parent_level
            parent_id = current.parent_id

            if deadline is not None and time.monotonic() > deadline:
                self._announce(changed)
                logger.warning(
                    "Cascade from %s %s abandoned at %s: deadline exceeded",
                    start.level.value,
                    start.id,
                    parent_level.value,
                )
                raise PartialCascadeFailure(
                    f"Cascade deadline exceeded before updating {parent_level.label}.",
                    completed_levels=completed_levels,
                    failed_level=parent_level,
                )

            try:
                if parent_id is None:
                    raise NotFound(
                        f"{current.level.label} {current.id} has no parent {parent_level.label}.",
                        level=parent_level,
                    )
                node, persisted = self._recompute(parent_level, parent_id)
            except NotFound as exc:
                self._announce(changed)
                logger.warning(
                    "Cascade from %s %s stopped at missing %s %s",
                    start.level.value,
                    start.id,
                    parent_level.value,
                    parent_id,
                )
                raise MissingAncestor(
                    f"{exc.message} Cascade stopped after updating "
                    f"{', '.join(level.value for level in completed_levels)}.",
                    completed_levels=completed_levels,
                    failed_level=parent_level,
                    node_id=parent_id,
                ) from exc
            except Exception as exc:
                self._announce(changed)
                logger.warning(
                    "Cascade from %s %s failed at %s %s: %s",
                    start.level.value,
                    start.id,
                    parent_level.value,
                    parent_id,
                    exc,
                )
                raise PartialCascadeFailure(
                    f"Failed to update {parent_level.label} {parent_id}: {exc}",
                    completed_levels=completed_levels,
                    failed_level=parent_level,
                ) from exc

            completed_levels.append(parent_level)
            if persisted:
                changed.append(NodeChanged(parent_level, parent_id))
            current = node

    def _announce(self, changed: list[NodeChanged]) -> None:
        self.notifier.publish_all(changed)
        changed.clear()

    def set_leaf_progress(
        self,
        assignment_id: UUID,
        percentage: int,
        *,
        deadline_seconds: float | None = None,
    ) -> HierarchyNode:
        """Store a clamped assignment percentage, then recompute category, unit and project."""

        deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        value = clamp_percentage(percentage)

        self.store.get_node(NodeLevel.ASSIGNMENT, assignment_id)
        leaf = self.store.save_progress(NodeLevel.ASSIGNMENT, assignment_id, value)
        logger.debug("Assignment %s progress set to %d%%", assignment_id, value)

        completed_levels = [NodeLevel.ASSIGNMENT]
        changed = [NodeChanged(NodeLevel.ASSIGNMENT, assignment_id)]
        self._propagate_upward(leaf, completed_levels=completed_levels, changed=changed, deadline=deadline)
        self._announce(changed)

        return self.store.get_node(NodeLevel.ASSIGNMENT, assignment_id)

    def recompute_node(self, level: NodeLevel, node_id: UUID, *, cascade: bool = False) -> HierarchyNode:
        """Manual re-sync of one node, optionally carried on to every ancestor."""

        node, persisted = self._recompute(level, node_id)
        changed = [NodeChanged(level, node_id)] if persisted else []
        if cascade:
            self._propagate_upward(node, completed_levels=[level], changed=changed, deadline=None)
        self._announce(changed)
        return node

    def set_node_progress_direct(self, level: NodeLevel, node_id: UUID, percentage: int) -> HierarchyNode:
        """Manual override: clamp and persist one node, with no upward propagation."""

        value = clamp_percentage(percentage)
        self.store.get_node(level, node_id)
        node = self.store.save_progress(level, node_id, value)
        if level.parent is not None:
            logger.info(
                "Direct override of %s %s to %d%%; ancestors are not recomputed",
                level.value,
                node_id,
                value,
            )
        self.notifier.publish(NodeChanged(level, node_id))
        return node


@lru_cache
def get_cascade_lock() -> CascadeLock:
    """Process-wide lock strategy picked by `cascade_serialization`."""

    if get_settings().cascade_serialization:
        return KeyedCascadeLock()
    return NullCascadeLock()
