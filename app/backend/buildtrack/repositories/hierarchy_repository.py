"""Repository helpers for the completion hierarchy and tenant-wide analytics reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from buildtrack.core.errors import NotFound
from buildtrack.models.entities import (
    AssignmentStatus,
    Category,
    CategoryTeam,
    Company,
    Payment,
    PaymentStatus,
    Project,
    ProjectStatus,
    Team,
    Unit,
)
from buildtrack.models.hierarchy import HierarchyNode, NodeLevel, NodeRef

ZERO = Decimal("0.00")

_MODEL_BY_LEVEL = {
    NodeLevel.PROJECT: Project,
    NodeLevel.UNIT: Unit,
    NodeLevel.CATEGORY: Category,
    NodeLevel.ASSIGNMENT: CategoryTeam,
}


class HierarchyStore(Protocol):
    """Persistence contract consumed by the progress aggregator."""

    def get_node(self, level: NodeLevel, node_id: UUID) -> HierarchyNode: ...

    def get_children(self, level: NodeLevel, parent_id: UUID) -> list[HierarchyNode]: ...

    def get_parent(self, level: NodeLevel, node_id: UUID) -> NodeRef | None: ...

    def save_progress(self, level: NodeLevel, node_id: UUID, percentage: int) -> HierarchyNode: ...

    def list_projects_for_tenant(self, tenant_id: UUID) -> list[Project]: ...


@dataclass(frozen=True, slots=True)
class CategoryRow:
    id: UUID
    unit_id: UUID
    project_id: UUID
    name: str
    start_date: date | None
    end_date: date | None
    progress_percentage: int


@dataclass(frozen=True, slots=True)
class AssignmentRow:
    id: UUID
    category_id: UUID
    team_id: UUID
    project_id: UUID
    project_status: ProjectStatus
    status: AssignmentStatus
    reception_status: bool
    payment_status: bool
    progress_percentage: int
    category_start_date: date | None
    category_end_date: date | None


def _to_node(level: NodeLevel, row: Project | Unit | Category | CategoryTeam) -> HierarchyNode:
    if level is NodeLevel.PROJECT:
        return HierarchyNode(level, row.id, None, row.name, row.progress_percentage, row.status.value)
    if level is NodeLevel.UNIT:
        return HierarchyNode(level, row.id, row.project_id, row.name, row.progress_percentage, row.type.value)
    if level is NodeLevel.CATEGORY:
        return HierarchyNode(level, row.id, row.unit_id, row.name, row.progress_percentage)
    return HierarchyNode(level, row.id, row.category_id, None, row.progress_percentage, row.status.value)


class HierarchyRepository:
    """SQLAlchemy-backed hierarchy store. Reads return detached snapshots."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Hierarchy store contract ----------
    def _get_row(self, level: NodeLevel, node_id: UUID):
        model = _MODEL_BY_LEVEL[level]
        return self.db.scalar(select(model).where(model.id == node_id))

    def get_node(self, level: NodeLevel, node_id: UUID) -> HierarchyNode:
        row = self._get_row(level, node_id)
        if row is None:
            raise NotFound.for_node(level, node_id)
        return _to_node(level, row)

    def get_children(self, level: NodeLevel, parent_id: UUID) -> list[HierarchyNode]:
        child_level = level.child
        if child_level is None:
            # Assignments own tasks, which are not part of the completion hierarchy.
            return []

        if child_level is NodeLevel.UNIT:
            stmt = select(Unit).where(Unit.project_id == parent_id).order_by(Unit.created_at.asc(), Unit.id.asc())
        elif child_level is NodeLevel.CATEGORY:
            stmt = (
                select(Category)
                .where(Category.unit_id == parent_id)
                .order_by(Category.order_sequence.asc(), Category.created_at.asc(), Category.id.asc())
            )
        else:
            stmt = (
                select(CategoryTeam)
                .where(CategoryTeam.category_id == parent_id)
                .order_by(CategoryTeam.created_at.asc(), CategoryTeam.id.asc())
            )
        return [_to_node(child_level, row) for row in self.db.scalars(stmt).all()]

    def get_parent(self, level: NodeLevel, node_id: UUID) -> NodeRef | None:
        node = self.get_node(level, node_id)
        if node.parent_level is None or node.parent_id is None:
            return None
        return NodeRef(node.parent_level, node.parent_id)

    def save_progress(self, level: NodeLevel, node_id: UUID, percentage: int) -> HierarchyNode:
        row = self._get_row(level, node_id)
        if row is None:
            raise NotFound.for_node(level, node_id)
        row.progress_percentage = percentage
        if hasattr(row, "updated_at"):
            row.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return _to_node(level, row)

    def list_projects_for_tenant(self, tenant_id: UUID) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .where(Project.company_id == tenant_id)
            .order_by(Project.created_at.asc(), Project.id.asc())
        ).all()

    # ---------- Tenants ----------
    def get_company(self, tenant_id: UUID) -> Company | None:
        return self.db.scalar(select(Company).where(Company.id == tenant_id))

    # ---------- Tenant-wide analytics reads ----------
    def list_units_for_tenant(self, tenant_id: UUID) -> list[Unit]:
        return self.db.scalars(
            select(Unit)
            .join(Project, Project.id == Unit.project_id)
            .where(Project.company_id == tenant_id)
            .order_by(Unit.created_at.asc(), Unit.id.asc())
        ).all()

    def list_categories_for_tenant(self, tenant_id: UUID) -> list[CategoryRow]:
        rows = self.db.execute(
            select(Category, Unit.project_id)
            .join(Unit, Unit.id == Category.unit_id)
            .join(Project, Project.id == Unit.project_id)
            .where(Project.company_id == tenant_id)
            .order_by(Category.name.asc(), Category.order_sequence.asc(), Category.id.asc())
        ).all()
        return [
            CategoryRow(
                id=category.id,
                unit_id=category.unit_id,
                project_id=project_id,
                name=category.name,
                start_date=category.start_date,
                end_date=category.end_date,
                progress_percentage=category.progress_percentage,
            )
            for category, project_id in rows
        ]

    def list_assignments_for_tenant(self, tenant_id: UUID) -> list[AssignmentRow]:
        rows = self.db.execute(
            select(CategoryTeam, Category, Project.id, Project.status)
            .join(Category, Category.id == CategoryTeam.category_id)
            .join(Unit, Unit.id == Category.unit_id)
            .join(Project, Project.id == Unit.project_id)
            .where(Project.company_id == tenant_id)
            .order_by(CategoryTeam.created_at.asc(), CategoryTeam.id.asc())
        ).all()
        return [
            AssignmentRow(
                id=assignment.id,
                category_id=assignment.category_id,
                team_id=assignment.team_id,
                project_id=project_id,
                project_status=project_status,
                status=assignment.status,
                reception_status=assignment.reception_status,
                payment_status=assignment.payment_status,
                progress_percentage=assignment.progress_percentage,
                category_start_date=category.start_date,
                category_end_date=category.end_date,
            )
            for assignment, category, project_id, project_status in rows
        ]

    def list_teams_for_tenant(self, tenant_id: UUID) -> list[Team]:
        return self.db.scalars(
            select(Team).where(Team.company_id == tenant_id).order_by(Team.name.asc(), Team.id.asc())
        ).all()

    def count_active_projects(self, tenant_id: UUID) -> int:
        return int(
            self.db.scalar(
                select(func.count(Project.id)).where(
                    Project.company_id == tenant_id,
                    Project.status == ProjectStatus.ACTIVE,
                )
            )
            or 0
        )

    def count_active_teams(self, tenant_id: UUID) -> int:
        return int(
            self.db.scalar(
                select(func.count(Team.id)).where(
                    Team.company_id == tenant_id,
                    Team.is_active.is_(True),
                )
            )
            or 0
        )

    def total_paid_amount(self, tenant_id: UUID) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .select_from(Payment)
            .join(CategoryTeam, CategoryTeam.id == Payment.category_team_id)
            .join(Category, Category.id == CategoryTeam.category_id)
            .join(Unit, Unit.id == Category.unit_id)
            .join(Project, Project.id == Unit.project_id)
            .where(
                Project.company_id == tenant_id,
                Payment.status == PaymentStatus.PAID,
            )
        )
        return Decimal(str(total)) if total is not None else ZERO

    # ---------- Reports ----------
    def get_project_for_tenant(self, tenant_id: UUID, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id, Project.company_id == tenant_id))

    def paid_amounts_by_project(self, tenant_id: UUID) -> dict[UUID, Decimal]:
        rows = self.db.execute(
            select(Project.id, func.coalesce(func.sum(Payment.amount), 0))
            .select_from(Payment)
            .join(CategoryTeam, CategoryTeam.id == Payment.category_team_id)
            .join(Category, Category.id == CategoryTeam.category_id)
            .join(Unit, Unit.id == Category.unit_id)
            .join(Project, Project.id == Unit.project_id)
            .where(
                Project.company_id == tenant_id,
                Payment.status == PaymentStatus.PAID,
            )
            .group_by(Project.id)
        ).all()
        return {project_id: Decimal(str(total)) for project_id, total in rows}
