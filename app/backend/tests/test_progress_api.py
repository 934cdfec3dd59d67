from __future__ import annotations

import uuid
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from buildtrack.models.entities import Category, CategoryTeam, Company, Project, ProjectStatus, Team, Unit
from buildtrack.services.analytics_cache import AnalyticsCache
from buildtrack.services.events import CacheInvalidationHint, ChangeNotifier


def _create_tree(db: Session) -> dict[str, uuid.UUID]:
    company = Company(name="Acme Builders")
    db.add(company)
    db.flush()
    team = Team(company_id=company.id, name="Crew 1", specialty="Masonry")
    project = Project(
        company_id=company.id,
        name="Palm Villas",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 6, 30),
        status=ProjectStatus.ACTIVE,
    )
    db.add_all([team, project])
    db.flush()
    unit_a = Unit(project_id=project.id, name="Villa 1")
    unit_b = Unit(project_id=project.id, name="Villa 2")
    db.add_all([unit_a, unit_b])
    db.flush()
    category = Category(unit_id=unit_a.id, name="Foundation")
    db.add(category)
    db.flush()
    assignment = CategoryTeam(category_id=category.id, team_id=team.id)
    db.add(assignment)
    db.commit()
    return {
        "company": company.id,
        "project": project.id,
        "unit_a": unit_a.id,
        "unit_b": unit_b.id,
        "category": category.id,
        "assignment": assignment.id,
    }


def test_put_assignment_progress_cascades(client: TestClient, db_session: Session) -> None:
    ids = _create_tree(db_session)

    response = client.put(f"/api/v1/progress/assignments/{ids['assignment']}", json={"progress_percentage": 80})

    assert response.status_code == 200
    body = response.json()
    assert body["level"] == "assignment"
    assert body["progress_percentage"] == 80
    assert body["parent_id"] == str(ids["category"])

    project = client.post(f"/api/v1/progress/project/{ids['project']}/recompute")
    assert project.status_code == 200
    # Two units, only the first has work: (80 + 0) // 2.
    assert project.json()["progress_percentage"] == 40


def test_put_assignment_progress_clamps(client: TestClient, db_session: Session) -> None:
    ids = _create_tree(db_session)

    response = client.put(f"/api/v1/progress/assignments/{ids['assignment']}", json={"progress_percentage": 250})

    assert response.status_code == 200
    assert response.json()["progress_percentage"] == 100


def test_unknown_assignment_maps_to_404(client: TestClient) -> None:
    missing_id = uuid.uuid4()

    response = client.put(f"/api/v1/progress/assignments/{missing_id}", json={"progress_percentage": 10})

    assert response.status_code == 404
    assert response.json() == {"detail": f"Assignment not found with ID: {missing_id}"}


def test_missing_ancestor_maps_to_404(client: TestClient, db_session: Session) -> None:
    ids = _create_tree(db_session)
    db_session.delete(db_session.get(Unit, ids["unit_a"]))
    db_session.commit()

    response = client.put(f"/api/v1/progress/assignments/{ids['assignment']}", json={"progress_percentage": 10})

    assert response.status_code == 404
    assert "Unit not found" in response.json()["detail"]


def test_direct_override_skips_ancestors(client: TestClient, db_session: Session) -> None:
    ids = _create_tree(db_session)

    response = client.put(f"/api/v1/progress/unit/{ids['unit_b']}", json={"progress_percentage": 60})

    assert response.status_code == 200
    assert response.json()["progress_percentage"] == 60
    assert db_session.get(Project, ids["project"]).progress_percentage == 0

    cascaded = client.post(f"/api/v1/progress/unit/{ids['unit_b']}/recompute", params={"cascade": "true"})

    # Childless unit keeps its override; the cascade still re-syncs the project.
    assert cascaded.json()["progress_percentage"] == 60
    db_session.expire_all()
    assert db_session.get(Project, ids["project"]).progress_percentage == 30


def test_unknown_level_is_rejected(client: TestClient) -> None:
    response = client.post(f"/api/v1/progress/task/{uuid.uuid4()}/recompute")

    assert response.status_code == 422


def test_cache_hint_evicts_tenant_entries(
    client: TestClient,
    notifier: ChangeNotifier,
    analytics_cache: AnalyticsCache,
) -> None:
    tenant_id = uuid.uuid4()
    unit_id = uuid.uuid4()
    hints: list[CacheInvalidationHint] = []

    def record(event: object) -> None:
        if isinstance(event, CacheInvalidationHint):
            hints.append(event)

    notifier.subscribe(record)
    analytics_cache.get_or_compute(tenant_id, "summary", lambda: {"cached": True})
    assert len(analytics_cache) == 1

    response = client.post(
        "/api/v1/progress/cache-hints",
        json={"tenant_id": str(tenant_id), "unit_ids": [str(unit_id)]},
    )

    assert response.status_code == 202
    assert response.json() == {"tenant_id": str(tenant_id), "unit_ids": [str(unit_id)]}
    assert hints == [CacheInvalidationHint(tenant_id=tenant_id, unit_ids=(unit_id,))]
    assert len(analytics_cache) == 0
