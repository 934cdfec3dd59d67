"""Tenant-scoped portfolio analytics endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from buildtrack.core.config import get_settings
from buildtrack.db.dependencies import get_db_session
from buildtrack.services.analytics_cache import AnalyticsCache, get_analytics_cache
from buildtrack.services.analytics_service import PortfolioAnalyticsService
from buildtrack.services.intervals import parse_period
from buildtrack.services.risk_rules import serialize_risk

router = APIRouter(prefix="/analytics/tenants/{tenant_id}", tags=["analytics"])


def get_analytics_service(db: Session = Depends(get_db_session)) -> PortfolioAnalyticsService:
    default_period = parse_period(get_settings().default_analysis_period)
    return PortfolioAnalyticsService(db, default_period=default_period)


@router.get("/summary")
def get_summary(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    return cache.get_or_compute(
        tenant_id,
        "summary",
        lambda: service.serialize_summary(service.summary(tenant_id)),
    )


@router.get("/project-progress")
def get_project_progress(
    tenant_id: UUID,
    period: str | None = None,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    resolved = parse_period(period, service.default_period)
    items = cache.get_or_compute(
        tenant_id,
        ("project-progress", resolved.value),
        lambda: [service.serialize_monthly_point(point) for point in service.monthly_progress_series(tenant_id, resolved)],
    )
    return {"period": resolved.value, "items": items}


@router.get("/category-analysis")
def get_category_analysis(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    items = cache.get_or_compute(
        tenant_id,
        "category-analysis",
        lambda: [service.serialize_category(metric) for metric in service.category_analysis(tenant_id)],
    )
    return {"items": items}


@router.get("/team-performance")
def get_team_performance(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    items = cache.get_or_compute(
        tenant_id,
        "team-performance",
        lambda: [service.serialize_team(metric) for metric in service.team_performance(tenant_id)],
    )
    return {"items": items}


@router.get("/budget-analysis")
def get_budget_analysis(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    return cache.get_or_compute(
        tenant_id,
        "budget-analysis",
        lambda: service.serialize_budget(service.budget_analysis(tenant_id)),
    )


@router.get("/risk-factors")
def get_risk_factors(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    items = cache.get_or_compute(
        tenant_id,
        "risk-factors",
        lambda: [serialize_risk(entry) for entry in service.risk_factors(tenant_id)],
    )
    return {"items": items}


@router.get("/complete")
def get_complete_analytics(
    tenant_id: UUID,
    period: str | None = None,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    resolved = parse_period(period, service.default_period)
    return cache.get_or_compute(
        tenant_id,
        ("complete", resolved.value),
        lambda: service.complete_analytics(tenant_id, resolved),
    )


@router.get("/dashboard")
def get_dashboard(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    return cache.get_or_compute(
        tenant_id,
        "dashboard",
        lambda: service.serialize_dashboard(service.dashboard_stats(tenant_id)),
    )


@router.get("/reports")
def get_report_data(
    tenant_id: UUID,
    period: str | None = None,
    project_id: UUID | None = None,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    resolved = parse_period(period, service.default_period)
    return cache.get_or_compute(
        tenant_id,
        ("reports", resolved.value, project_id),
        lambda: service.report_data(tenant_id, resolved, project_id),
    )


@router.get("/reports/projects")
def get_project_reports(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    items = cache.get_or_compute(
        tenant_id,
        "project-reports",
        lambda: [service.serialize_project_report(report) for report in service.project_reports(tenant_id)],
    )
    return {"items": items}


@router.get("/reports/projects/{project_id}")
def get_project_report(
    tenant_id: UUID,
    project_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    return cache.get_or_compute(
        tenant_id,
        ("project-report", project_id),
        lambda: service.serialize_project_report(service.project_report(tenant_id, project_id)),
    )


@router.get("/reports/financial-summary")
def get_financial_summary(
    tenant_id: UUID,
    service: PortfolioAnalyticsService = Depends(get_analytics_service),
    cache: AnalyticsCache = Depends(get_analytics_cache),
) -> dict[str, object]:
    return cache.get_or_compute(
        tenant_id,
        "financial-summary",
        lambda: service.serialize_financial_summary(service.financial_summary(tenant_id)),
    )
