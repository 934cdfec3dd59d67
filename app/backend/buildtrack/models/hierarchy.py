"""Value types describing the four-level completion hierarchy."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from uuid import UUID


class NodeLevel(str, enum.Enum):
    PROJECT = "project"
    UNIT = "unit"
    CATEGORY = "category"
    ASSIGNMENT = "assignment"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def parent(self) -> NodeLevel | None:
        return PARENT_LEVEL.get(self)

    @property
    def child(self) -> NodeLevel | None:
        return CHILD_LEVEL.get(self)


PARENT_LEVEL: dict[NodeLevel, NodeLevel] = {
    NodeLevel.ASSIGNMENT: NodeLevel.CATEGORY,
    NodeLevel.CATEGORY: NodeLevel.UNIT,
    NodeLevel.UNIT: NodeLevel.PROJECT,
}

CHILD_LEVEL: dict[NodeLevel, NodeLevel] = {parent: child for child, parent in PARENT_LEVEL.items()}

MIN_PERCENTAGE = 0
MAX_PERCENTAGE = 100


def clamp_percentage(value: int) -> int:
    """Clamp a completion percentage into [0, 100] instead of rejecting it."""

    return max(MIN_PERCENTAGE, min(MAX_PERCENTAGE, int(value)))


@dataclass(frozen=True, slots=True)
class HierarchyNode:
    """Detached snapshot of one node; the store owns the live row."""

    level: NodeLevel
    id: UUID
    parent_id: UUID | None
    name: str | None
    progress_percentage: int
    status: str | None = None

    @property
    def parent_level(self) -> NodeLevel | None:
        return self.level.parent


@dataclass(frozen=True, slots=True)
class NodeRef:
    level: NodeLevel
    id: UUID
