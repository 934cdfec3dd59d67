from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from buildtrack.core.errors import NotFound
from buildtrack.models.entities import (
    Category,
    CategoryTeam,
    Company,
    Payment,
    PaymentStatus,
    Project,
    Team,
    Unit,
)
from buildtrack.models.hierarchy import NodeLevel, NodeRef
from buildtrack.repositories.hierarchy_repository import HierarchyRepository


def _seed_chain(db: Session) -> dict[str, uuid.UUID]:
    company = Company(name="Acme Builders")
    db.add(company)
    db.flush()
    team = Team(company_id=company.id, name="Crew 1")
    project = Project(company_id=company.id, name="Palm Villas")
    db.add_all([team, project])
    db.flush()
    unit = Unit(project_id=project.id, name="Villa 1")
    db.add(unit)
    db.flush()
    roofing = Category(unit_id=unit.id, name="Roofing", order_sequence=2)
    foundation = Category(unit_id=unit.id, name="Foundation", order_sequence=1)
    db.add_all([roofing, foundation])
    db.flush()
    assignment = CategoryTeam(category_id=foundation.id, team_id=team.id)
    db.add(assignment)
    db.flush()
    db.add_all(
        [
            Payment(category_team_id=assignment.id, amount=Decimal("120.50"), status=PaymentStatus.PAID),
            Payment(category_team_id=assignment.id, amount=Decimal("79.50"), status=PaymentStatus.PAID),
            Payment(category_team_id=assignment.id, amount=Decimal("500.00"), status=PaymentStatus.APPROVED),
        ]
    )
    db.commit()
    return {
        "company": company.id,
        "project": project.id,
        "unit": unit.id,
        "foundation": foundation.id,
        "roofing": roofing.id,
        "assignment": assignment.id,
    }


def test_get_parent_walks_up_the_hierarchy(db_session: Session) -> None:
    ids = _seed_chain(db_session)
    repo = HierarchyRepository(db_session)

    assert repo.get_parent(NodeLevel.ASSIGNMENT, ids["assignment"]) == NodeRef(NodeLevel.CATEGORY, ids["foundation"])
    assert repo.get_parent(NodeLevel.CATEGORY, ids["foundation"]) == NodeRef(NodeLevel.UNIT, ids["unit"])
    assert repo.get_parent(NodeLevel.UNIT, ids["unit"]) == NodeRef(NodeLevel.PROJECT, ids["project"])
    assert repo.get_parent(NodeLevel.PROJECT, ids["project"]) is None


def test_get_parent_of_missing_node_is_not_found(db_session: Session) -> None:
    missing_id = uuid.uuid4()

    with pytest.raises(NotFound) as exc_info:
        HierarchyRepository(db_session).get_parent(NodeLevel.CATEGORY, missing_id)

    assert exc_info.value.message == f"Category not found with ID: {missing_id}"


def test_get_children_orders_categories_by_sequence(db_session: Session) -> None:
    ids = _seed_chain(db_session)
    repo = HierarchyRepository(db_session)

    categories = repo.get_children(NodeLevel.UNIT, ids["unit"])

    assert [node.id for node in categories] == [ids["foundation"], ids["roofing"]]
    assert repo.get_children(NodeLevel.ASSIGNMENT, ids["assignment"]) == []


def test_paid_amounts_group_by_project_and_ignore_unpaid(db_session: Session) -> None:
    ids = _seed_chain(db_session)
    repo = HierarchyRepository(db_session)

    assert repo.paid_amounts_by_project(ids["company"]) == {ids["project"]: Decimal("200.00")}
    assert repo.paid_amounts_by_project(uuid.uuid4()) == {}
    assert repo.get_project_for_tenant(ids["company"], ids["project"]).name == "Palm Villas"
    assert repo.get_project_for_tenant(uuid.uuid4(), ids["project"]) is None
