"""Progress endpoints: leaf updates, manual recomputes and direct overrides."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from buildtrack.db.dependencies import get_db_session
from buildtrack.models.hierarchy import HierarchyNode, NodeLevel
from buildtrack.repositories.hierarchy_repository import HierarchyRepository
from buildtrack.services.events import ChangeNotifier, get_change_notifier
from buildtrack.services.progress_service import CascadeLock, ProgressAggregator, get_cascade_lock

router = APIRouter(prefix="/progress", tags=["progress"])


class ProgressPayload(BaseModel):
    # Out-of-range values are clamped by the aggregator, not rejected.
    progress_percentage: int


class CacheHintPayload(BaseModel):
    tenant_id: UUID
    unit_ids: list[UUID] = []


def get_aggregator(
    db: Session = Depends(get_db_session),
    notifier: ChangeNotifier = Depends(get_change_notifier),
    lock: CascadeLock = Depends(get_cascade_lock),
) -> ProgressAggregator:
    return ProgressAggregator(HierarchyRepository(db), notifier=notifier, lock=lock)


def _serialize_node(node: HierarchyNode) -> dict[str, object]:
    return {
        "level": node.level.value,
        "id": str(node.id),
        "parent_id": str(node.parent_id) if node.parent_id else None,
        "name": node.name,
        "status": node.status,
        "progress_percentage": node.progress_percentage,
    }


@router.put("/assignments/{assignment_id}")
def put_assignment_progress(
    assignment_id: UUID,
    payload: ProgressPayload,
    aggregator: ProgressAggregator = Depends(get_aggregator),
) -> dict[str, object]:
    node = aggregator.set_leaf_progress(assignment_id, payload.progress_percentage)
    return _serialize_node(node)


@router.post("/cache-hints", status_code=202)
def post_cache_hint(
    payload: CacheHintPayload,
    notifier: ChangeNotifier = Depends(get_change_notifier),
) -> dict[str, object]:
    hint = notifier.invalidate_cache_hint(payload.tenant_id, payload.unit_ids)
    return {"tenant_id": str(hint.tenant_id), "unit_ids": [str(unit_id) for unit_id in hint.unit_ids]}


@router.post("/{level}/{node_id}/recompute")
def post_recompute(
    level: NodeLevel,
    node_id: UUID,
    cascade: bool = False,
    aggregator: ProgressAggregator = Depends(get_aggregator),
) -> dict[str, object]:
    node = aggregator.recompute_node(level, node_id, cascade=cascade)
    return _serialize_node(node)


@router.put("/{level}/{node_id}")
def put_node_progress(
    level: NodeLevel,
    node_id: UUID,
    payload: ProgressPayload,
    aggregator: ProgressAggregator = Depends(get_aggregator),
) -> dict[str, object]:
    node = aggregator.set_node_progress_direct(level, node_id, payload.progress_percentage)
    return _serialize_node(node)
