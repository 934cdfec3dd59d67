from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from buildtrack.models.entities import (
    AssignmentStatus,
    Category,
    CategoryTeam,
    Company,
    Project,
    ProjectStatus,
    Team,
    Unit,
)
from buildtrack.services.analytics_cache import AnalyticsCache


def _seed(db: Session) -> dict[str, uuid.UUID]:
    company = Company(name="Acme Builders")
    db.add(company)
    db.flush()
    team = Team(company_id=company.id, name="Alpha", specialty="Masonry")
    project = Project(
        company_id=company.id,
        name="Palm Villas",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 3, 31),
        budget=Decimal("9000.00"),
        status=ProjectStatus.ACTIVE,
    )
    db.add_all([team, project])
    db.flush()
    unit = Unit(project_id=project.id, name="Villa 1")
    db.add(unit)
    db.flush()
    category = Category(
        unit_id=unit.id,
        name="Foundation",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 2, 1),
    )
    db.add(category)
    db.flush()
    assignment = CategoryTeam(category_id=category.id, team_id=team.id, status=AssignmentStatus.IN_PROGRESS)
    db.add(assignment)
    db.commit()
    return {"company": company.id, "assignment": assignment.id}


def test_analytics_endpoints_shape(client: TestClient, db_session: Session) -> None:
    ids = _seed(db_session)
    base = f"/api/v1/analytics/tenants/{ids['company']}"

    summary = client.get(f"{base}/summary")
    categories = client.get(f"{base}/category-analysis")
    teams = client.get(f"{base}/team-performance")
    budget = client.get(f"{base}/budget-analysis")
    risks = client.get(f"{base}/risk-factors")
    dashboard = client.get(f"{base}/dashboard")

    assert summary.status_code == 200
    assert summary.json()["active_projects"] == 1
    assert summary.json()["on_time_delivery"] == 100
    assert categories.json()["items"][0]["name"] == "Foundation"
    assert teams.json()["items"][0]["name"] == "Alpha"
    assert budget.json()["total_budget"] == "9000.00"
    assert [item["factor"] for item in risks.json()["items"]] == ["Material Shortage", "Quality Issues"]
    assert dashboard.json()["in_progress_assignments"] == 1


def test_project_progress_resolves_period(client: TestClient, db_session: Session) -> None:
    ids = _seed(db_session)
    base = f"/api/v1/analytics/tenants/{ids['company']}"

    quarter = client.get(f"{base}/project-progress", params={"period": "last-3-months"})
    fallback = client.get(f"{base}/project-progress", params={"period": "forever"})

    assert quarter.status_code == 200
    assert quarter.json()["period"] == "last-3-months"
    assert [item["month"] for item in quarter.json()["items"]] == ["Jan", "Feb", "Mar", "Apr"]
    assert quarter.json()["items"][0]["budget"] == "3100.00"
    assert fallback.json()["period"] == "last-6-months"
    assert len(fallback.json()["items"]) == 7


def test_complete_analytics_endpoint(client: TestClient, db_session: Session) -> None:
    ids = _seed(db_session)

    response = client.get(f"/api/v1/analytics/tenants/{ids['company']}/complete", params={"period": "last-month"})

    assert response.status_code == 200
    body = response.json()
    assert body["overview"]["total_projects"] == 1
    assert [item["month"] for item in body["project_progress"]] == ["Mar", "Apr"]
    assert body["budget_analysis"]["projected_spend"] == "0.00"


def test_unknown_tenant_maps_to_404(client: TestClient) -> None:
    missing_id = uuid.uuid4()

    response = client.get(f"/api/v1/analytics/tenants/{missing_id}/summary")

    assert response.status_code == 404
    assert response.json() == {"detail": f"Company not found with ID: {missing_id}"}


def test_progress_update_evicts_cached_analytics(
    client: TestClient,
    db_session: Session,
    analytics_cache: AnalyticsCache,
) -> None:
    ids = _seed(db_session)
    summary_url = f"/api/v1/analytics/tenants/{ids['company']}/summary"

    before = client.get(summary_url)
    assert before.json()["project_completion_rate"] == 0
    assert len(analytics_cache) == 1

    update = client.put(f"/api/v1/progress/assignments/{ids['assignment']}", json={"progress_percentage": 70})
    assert update.status_code == 200
    assert len(analytics_cache) == 0

    after = client.get(summary_url)
    assert after.json()["project_completion_rate"] == 70


def test_report_endpoints(client: TestClient, db_session: Session) -> None:
    ids = _seed(db_session)
    base = f"/api/v1/analytics/tenants/{ids['company']}/reports"

    projects = client.get(f"{base}/projects")
    project_id = projects.json()["items"][0]["id"]
    single = client.get(f"{base}/projects/{project_id}")
    financial = client.get(f"{base}/financial-summary")
    bundle = client.get(base, params={"period": "last-month", "project_id": project_id})

    assert projects.status_code == 200
    assert single.json() == projects.json()["items"][0]
    assert (single.json()["units"], single.json()["categories"], single.json()["teams"]) == (1, 1, 1)
    assert financial.json() == {
        "total_budget": "9000.00",
        "total_spent": "0.00",
        "remaining": "9000.00",
        "projects": [{"id": project_id, "name": "Palm Villas", "budget": "9000.00", "spent": "0.00"}],
    }
    assert [row["id"] for row in bundle.json()["projects"]] == [project_id]
    assert [point["month"] for point in bundle.json()["monthly_progress"]] == ["Mar", "Apr"]


def test_unknown_project_report_maps_to_404(client: TestClient, db_session: Session) -> None:
    ids = _seed(db_session)
    missing_id = uuid.uuid4()

    response = client.get(f"/api/v1/analytics/tenants/{ids['company']}/reports/projects/{missing_id}")

    assert response.status_code == 404
    assert response.json() == {"detail": f"Project not found with ID: {missing_id}"}
