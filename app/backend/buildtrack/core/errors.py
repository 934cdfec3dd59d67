"""Error taxonomy for progress propagation and analytics."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from buildtrack.models.hierarchy import NodeLevel


class ProgressEngineError(Exception):
    """Base class for every error raised by the progress core."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(ProgressEngineError):
    """A referenced node, parent or tenant does not exist."""

    def __init__(self, message: str, *, level: NodeLevel | None = None, node_id: UUID | None = None) -> None:
        super().__init__(message)
        self.level = level
        self.node_id = node_id

    @classmethod
    def for_node(cls, level: NodeLevel, node_id: UUID) -> NotFound:
        return cls(f"{level.label} not found with ID: {node_id}", level=level, node_id=node_id)


class InvalidRange(ProgressEngineError):
    """A date window ends before it starts."""

    def __init__(self, message: str, *, start: date | None = None, end: date | None = None) -> None:
        super().__init__(message)
        self.start = start
        self.end = end


class PartialCascadeFailure(ProgressEngineError):
    """An ancestor step failed after one or more descendant writes were persisted."""

    def __init__(
        self,
        message: str,
        *,
        completed_levels: Sequence[NodeLevel],
        failed_level: NodeLevel,
    ) -> None:
        super().__init__(message)
        self.completed_levels = tuple(completed_levels)
        self.failed_level = failed_level


class MissingAncestor(PartialCascadeFailure, NotFound):
    """Cascade stopped because an ancestor node could not be resolved."""

    def __init__(
        self,
        message: str,
        *,
        completed_levels: Sequence[NodeLevel],
        failed_level: NodeLevel,
        node_id: UUID | None = None,
    ) -> None:
        ProgressEngineError.__init__(self, message)
        self.completed_levels = tuple(completed_levels)
        self.failed_level = failed_level
        self.level = failed_level
        self.node_id = node_id
