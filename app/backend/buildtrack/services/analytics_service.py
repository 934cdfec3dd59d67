"""Portfolio analytics over one tenant's projects: schedule, budget, teams and risk."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from buildtrack.core.errors import NotFound
from buildtrack.models.entities import AssignmentStatus, Project, ProjectStatus
from buildtrack.models.hierarchy import NodeLevel
from buildtrack.repositories.hierarchy_repository import AssignmentRow, CategoryRow, HierarchyRepository
from buildtrack.services.intervals import (
    AnalysisPeriod,
    month_end,
    month_sequence,
    overlap_fraction,
    parse_period,
    period_window,
    planned_progress_at,
)
from buildtrack.services.risk_rules import RiskEntry, RiskInputs, evaluate_risk_factors, serialize_risk

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")
MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def round_percent(value: float | Decimal) -> int:
    """Round half up to an integer percentage (output boundary only)."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp_percent(value: Decimal) -> Decimal:
    return max(Decimal("0"), min(HUNDRED, value))


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _has_valid_range(start: date | None, end: date | None) -> bool:
    return start is not None and end is not None and end >= start


@dataclass(slots=True)
class SummaryMetrics:
    project_completion_rate: int
    budget_efficiency: int
    on_time_delivery: int
    active_projects: int
    active_teams: int
    total_projects: int
    avg_project_duration_days: int


@dataclass(slots=True)
class MonthlyPoint:
    month: str
    month_start: date
    planned: int
    actual: int
    budget: Decimal
    spent: Decimal


@dataclass(slots=True)
class CategoryMetric:
    name: str
    category_count: int
    avg_duration_days: int
    completion_rate: int
    delay_rate: int


@dataclass(slots=True)
class TeamMetric:
    team_id: UUID
    name: str
    specialty: str
    efficiency: int
    tasks_completed: int
    total_assignments: int
    active_projects: int
    avg_progress: int
    avg_duration_days: int


@dataclass(slots=True)
class BudgetMetric:
    total_budget: Decimal
    total_paid: Decimal
    projected_spend: Decimal
    savings: Decimal
    overrun: Decimal


@dataclass(slots=True)
class DashboardStats:
    total_projects: int
    active_projects: int
    total_units: int
    total_teams: int
    active_teams: int
    total_assignments: int
    completed_assignments: int
    in_progress_assignments: int
    delayed_assignments: int
    not_started_assignments: int
    assignments_requiring_payment: int
    avg_project_progress: int


@dataclass(slots=True)
class ProjectReport:
    project_id: UUID
    name: str
    location: str | None
    status: ProjectStatus
    progress: int
    start_date: date | None
    end_date: date | None
    budget: Decimal
    spent: Decimal
    units: int
    completed_units: int
    categories: int
    completed_categories: int
    teams: int
    delayed_assignments: int


@dataclass(slots=True)
class ProjectFinancial:
    project_id: UUID
    name: str
    budget: Decimal
    spent: Decimal


@dataclass(slots=True)
class FinancialSummary:
    total_budget: Decimal
    total_spent: Decimal
    remaining: Decimal
    projects: list[ProjectFinancial]


class PortfolioAnalyticsService:
    """Read-only metrics derived from the current hierarchy state of one tenant.

    "Actual" progress for past months is the current stored percentage; no
    historical snapshots exist. Malformed date ranges never fail a portfolio:
    the offending record contributes zero to date-derived averages.
    """

    def __init__(
        self,
        db: Session,
        *,
        today_provider: Callable[[], date] = date.today,
        default_period: AnalysisPeriod = AnalysisPeriod.LAST_6_MONTHS,
    ) -> None:
        self.db = db
        self.repo = HierarchyRepository(db)
        self.today_provider = today_provider
        self.default_period = default_period

    # ---------- Scope ----------
    def _ensure_tenant(self, tenant_id: UUID) -> None:
        if self.repo.get_company(tenant_id) is None:
            raise NotFound(f"Company not found with ID: {tenant_id}")

    def _projects(self, tenant_id: UUID) -> list[Project]:
        projects = self.repo.list_projects_for_tenant(tenant_id)
        for project in projects:
            if not _has_valid_range(project.start_date, project.end_date):
                logger.warning(
                    "Project %s has an invalid date range (%s..%s); it contributes zero to schedule metrics",
                    project.id,
                    project.start_date,
                    project.end_date,
                )
        return projects

    # ---------- Shared figures ----------
    @staticmethod
    def _average_progress(projects: list[Project]) -> float:
        return _mean([float(project.progress_percentage) for project in projects])

    @staticmethod
    def _total_budget(projects: Iterable[Project]) -> Decimal:
        return sum((project.budget or ZERO for project in projects), ZERO)

    @staticmethod
    def _project_duration_days(project: Project) -> int:
        if not _has_valid_range(project.start_date, project.end_date):
            return 0
        return (project.end_date - project.start_date).days

    @staticmethod
    def _category_duration_days(start: date | None, end: date | None) -> int:
        if not _has_valid_range(start, end):
            return 0
        return (end - start).days

    @staticmethod
    def _planned_progress(projects: list[Project], as_of: date) -> float:
        if not projects:
            return 0.0
        total = 0.0
        for project in projects:
            if _has_valid_range(project.start_date, project.end_date):
                total += planned_progress_at(project.start_date, project.end_date, as_of)
        return total / len(projects)

    @staticmethod
    def _allocated_through(project: Project, day: date) -> Decimal:
        """Budget share of the project days up to and including `day`, in cents."""

        if day < project.start_date:
            return ZERO
        fraction = overlap_fraction(project.start_date, project.end_date, project.start_date, day)
        return _q2(project.budget * fraction)

    @classmethod
    def _monthly_budget(cls, projects: list[Project], window_start: date, window_end: date) -> Decimal:
        # Cumulative cents per project, so the months of a project add up to its budget.
        allocated = ZERO
        for project in projects:
            if project.budget is None or not _has_valid_range(project.start_date, project.end_date):
                continue
            allocated += cls._allocated_through(project, window_end) - cls._allocated_through(
                project, window_start - timedelta(days=1)
            )
        return allocated

    # ---------- Summary ----------
    def summary(self, tenant_id: UUID) -> SummaryMetrics:
        self._ensure_tenant(tenant_id)
        projects = self._projects(tenant_id)
        assignments = self.repo.list_assignments_for_tenant(tenant_id)

        total_budget = self._total_budget(projects)
        total_paid = self.repo.total_paid_amount(tenant_id)
        if total_budget > ZERO:
            budget_efficiency = _clamp_percent(HUNDRED - total_paid / total_budget * HUNDRED)
        else:
            budget_efficiency = Decimal("0")

        delayed = sum(1 for row in assignments if row.status is AssignmentStatus.DELAYED)
        if assignments:
            on_time = _clamp_percent(HUNDRED - Decimal(delayed) / Decimal(len(assignments)) * HUNDRED)
        else:
            on_time = HUNDRED

        return SummaryMetrics(
            project_completion_rate=round_percent(self._average_progress(projects)),
            budget_efficiency=round_percent(budget_efficiency),
            on_time_delivery=round_percent(on_time),
            active_projects=self.repo.count_active_projects(tenant_id),
            active_teams=self.repo.count_active_teams(tenant_id),
            total_projects=len(projects),
            avg_project_duration_days=round_percent(
                _mean([float(self._project_duration_days(project)) for project in projects])
            ),
        )

    # ---------- Monthly series ----------
    def monthly_progress_series(self, tenant_id: UUID, period: str | AnalysisPeriod | None = None) -> list[MonthlyPoint]:
        self._ensure_tenant(tenant_id)
        resolved = period if isinstance(period, AnalysisPeriod) else parse_period(period, self.default_period)
        window_start, window_end = period_window(resolved, self.today_provider())

        projects = self._projects(tenant_id)
        average_progress = self._average_progress(projects)
        spend_ratio = Decimal(str(average_progress)) / HUNDRED

        points: list[MonthlyPoint] = []
        for month in month_sequence(window_start, window_end):
            last_day = month_end(month)
            monthly_budget = self._monthly_budget(projects, month, last_day)
            points.append(
                MonthlyPoint(
                    month=MONTH_LABELS[month.month - 1],
                    month_start=month,
                    planned=round_percent(self._planned_progress(projects, last_day)),
                    actual=round_percent(average_progress),
                    budget=_q2(monthly_budget),
                    spent=_q2(monthly_budget * spend_ratio),
                )
            )
        return points

    # ---------- Categories ----------
    def category_analysis(self, tenant_id: UUID) -> list[CategoryMetric]:
        self._ensure_tenant(tenant_id)
        today = self.today_provider()

        groups: dict[str, list[CategoryRow]] = {}
        for row in self.repo.list_categories_for_tenant(tenant_id):
            if not _has_valid_range(row.start_date, row.end_date):
                logger.warning(
                    "Category %s has an invalid date range (%s..%s); duration counted as zero",
                    row.id,
                    row.start_date,
                    row.end_date,
                )
            groups.setdefault(row.name, []).append(row)

        metrics: list[CategoryMetric] = []
        for name in sorted(groups):
            rows = groups[name]
            count = len(rows)
            completed = sum(1 for row in rows if row.progress_percentage >= 100)
            delayed = sum(
                1
                for row in rows
                if row.end_date is not None and row.end_date < today and row.progress_percentage < 100
            )
            metrics.append(
                CategoryMetric(
                    name=name,
                    category_count=count,
                    avg_duration_days=round_percent(
                        _mean([float(self._category_duration_days(row.start_date, row.end_date)) for row in rows])
                    ),
                    completion_rate=round_percent(completed / count * 100),
                    delay_rate=round_percent(delayed / count * 100),
                )
            )
        return metrics

    # ---------- Teams ----------
    def team_performance(self, tenant_id: UUID) -> list[TeamMetric]:
        self._ensure_tenant(tenant_id)

        by_team: dict[UUID, list[AssignmentRow]] = {}
        for row in self.repo.list_assignments_for_tenant(tenant_id):
            by_team.setdefault(row.team_id, []).append(row)

        metrics: list[TeamMetric] = []
        for team in self.repo.list_teams_for_tenant(tenant_id):
            rows = by_team.get(team.id, [])
            total = len(rows)
            completed = sum(1 for row in rows if row.status is AssignmentStatus.DONE)
            active_projects = {row.project_id for row in rows if row.project_status is ProjectStatus.ACTIVE}
            durations = [
                float(self._category_duration_days(row.category_start_date, row.category_end_date))
                for row in rows
                if _has_valid_range(row.category_start_date, row.category_end_date)
            ]
            metrics.append(
                TeamMetric(
                    team_id=team.id,
                    name=team.name,
                    specialty=team.specialty,
                    efficiency=round_percent(completed / total * 100) if total else 0,
                    tasks_completed=completed,
                    total_assignments=total,
                    active_projects=len(active_projects),
                    avg_progress=round_percent(_mean([float(row.progress_percentage) for row in rows])),
                    avg_duration_days=round_percent(_mean(durations)),
                )
            )
        return metrics

    # ---------- Budget ----------
    def budget_analysis(self, tenant_id: UUID) -> BudgetMetric:
        self._ensure_tenant(tenant_id)
        projects = self._projects(tenant_id)

        total_budget = self._total_budget(projects)
        total_paid = self.repo.total_paid_amount(tenant_id)
        average_progress = Decimal(str(self._average_progress(projects)))
        projected_spend = total_budget * average_progress / HUNDRED

        return BudgetMetric(
            total_budget=_q2(total_budget),
            total_paid=_q2(total_paid),
            projected_spend=_q2(projected_spend),
            savings=_q2(max(ZERO, total_budget - projected_spend)),
            overrun=_q2(max(ZERO, projected_spend - total_budget)),
        )

    # ---------- Risk ----------
    def risk_factors(self, tenant_id: UUID) -> list[RiskEntry]:
        budget = self.budget_analysis(tenant_id)
        assignments = self.repo.list_assignments_for_tenant(tenant_id)
        inputs = RiskInputs(
            delayed_assignments=sum(1 for row in assignments if row.status is AssignmentStatus.DELAYED),
            budget_overrun=budget.overrun,
            active_projects=self.repo.count_active_projects(tenant_id),
            active_teams=self.repo.count_active_teams(tenant_id),
        )
        return evaluate_risk_factors(inputs)

    # ---------- Dashboard ----------
    def dashboard_stats(self, tenant_id: UUID) -> DashboardStats:
        self._ensure_tenant(tenant_id)
        projects = self.repo.list_projects_for_tenant(tenant_id)
        assignments = self.repo.list_assignments_for_tenant(tenant_id)

        status_counts = {status: 0 for status in AssignmentStatus}
        for row in assignments:
            status_counts[row.status] += 1

        return DashboardStats(
            total_projects=len(projects),
            active_projects=self.repo.count_active_projects(tenant_id),
            total_units=len(self.repo.list_units_for_tenant(tenant_id)),
            total_teams=len(self.repo.list_teams_for_tenant(tenant_id)),
            active_teams=self.repo.count_active_teams(tenant_id),
            total_assignments=len(assignments),
            completed_assignments=status_counts[AssignmentStatus.DONE],
            in_progress_assignments=status_counts[AssignmentStatus.IN_PROGRESS],
            delayed_assignments=status_counts[AssignmentStatus.DELAYED],
            not_started_assignments=status_counts[AssignmentStatus.NOT_STARTED],
            assignments_requiring_payment=sum(
                1
                for row in assignments
                if row.status is AssignmentStatus.DONE and row.reception_status and not row.payment_status
            ),
            avg_project_progress=round_percent(self._average_progress(projects)),
        )

    # ---------- Reports ----------
    def _build_reports(self, tenant_id: UUID, projects: list[Project]) -> list[ProjectReport]:
        units_by_project: dict[UUID, list[int]] = {}
        for unit in self.repo.list_units_for_tenant(tenant_id):
            units_by_project.setdefault(unit.project_id, []).append(unit.progress_percentage)

        categories_by_project: dict[UUID, list[int]] = {}
        for row in self.repo.list_categories_for_tenant(tenant_id):
            categories_by_project.setdefault(row.project_id, []).append(row.progress_percentage)

        assignments_by_project: dict[UUID, list[AssignmentRow]] = {}
        for row in self.repo.list_assignments_for_tenant(tenant_id):
            assignments_by_project.setdefault(row.project_id, []).append(row)

        paid = self.repo.paid_amounts_by_project(tenant_id)

        reports: list[ProjectReport] = []
        for project in projects:
            units = units_by_project.get(project.id, [])
            categories = categories_by_project.get(project.id, [])
            assignments = assignments_by_project.get(project.id, [])
            reports.append(
                ProjectReport(
                    project_id=project.id,
                    name=project.name,
                    location=project.location,
                    status=project.status,
                    progress=project.progress_percentage,
                    start_date=project.start_date,
                    end_date=project.end_date,
                    budget=_q2(project.budget or ZERO),
                    spent=_q2(paid.get(project.id, ZERO)),
                    units=len(units),
                    completed_units=sum(1 for progress in units if progress >= 100),
                    categories=len(categories),
                    completed_categories=sum(1 for progress in categories if progress >= 100),
                    teams=len({row.team_id for row in assignments}),
                    delayed_assignments=sum(1 for row in assignments if row.status is AssignmentStatus.DELAYED),
                )
            )
        return reports

    def project_reports(self, tenant_id: UUID) -> list[ProjectReport]:
        self._ensure_tenant(tenant_id)
        return self._build_reports(tenant_id, self.repo.list_projects_for_tenant(tenant_id))

    def project_report(self, tenant_id: UUID, project_id: UUID) -> ProjectReport:
        self._ensure_tenant(tenant_id)
        project = self.repo.get_project_for_tenant(tenant_id, project_id)
        if project is None:
            raise NotFound.for_node(NodeLevel.PROJECT, project_id)
        return self._build_reports(tenant_id, [project])[0]

    def financial_summary(self, tenant_id: UUID) -> FinancialSummary:
        """Budget against PAID payments; `remaining` goes negative on overspend."""

        self._ensure_tenant(tenant_id)
        paid = self.repo.paid_amounts_by_project(tenant_id)
        rows = [
            ProjectFinancial(
                project_id=project.id,
                name=project.name,
                budget=_q2(project.budget or ZERO),
                spent=_q2(paid.get(project.id, ZERO)),
            )
            for project in self.repo.list_projects_for_tenant(tenant_id)
        ]
        total_budget = sum((row.budget for row in rows), ZERO)
        total_spent = sum((row.spent for row in rows), ZERO)
        return FinancialSummary(
            total_budget=total_budget,
            total_spent=total_spent,
            remaining=total_budget - total_spent,
            projects=rows,
        )

    def report_data(
        self,
        tenant_id: UUID,
        period: str | AnalysisPeriod | None = None,
        project_id: UUID | None = None,
    ) -> dict[str, object]:
        if project_id is not None:
            projects = [self.project_report(tenant_id, project_id)]
        else:
            projects = self.project_reports(tenant_id)
        return {
            "projects": [self.serialize_project_report(report) for report in projects],
            "teams": [self.serialize_team(metric) for metric in self.team_performance(tenant_id)],
            "monthly_progress": [
                self.serialize_monthly_point(point) for point in self.monthly_progress_series(tenant_id, period)
            ],
        }

    # ---------- Bundle ----------
    def complete_analytics(self, tenant_id: UUID, period: str | AnalysisPeriod | None = None) -> dict[str, object]:
        return {
            "overview": self.serialize_summary(self.summary(tenant_id)),
            "project_progress": [self.serialize_monthly_point(point) for point in self.monthly_progress_series(tenant_id, period)],
            "team_performance": [self.serialize_team(metric) for metric in self.team_performance(tenant_id)],
            "category_analysis": [self.serialize_category(metric) for metric in self.category_analysis(tenant_id)],
            "budget_analysis": self.serialize_budget(self.budget_analysis(tenant_id)),
            "risk_factors": [serialize_risk(entry) for entry in self.risk_factors(tenant_id)],
        }

    # ---------- Serialization ----------
    @staticmethod
    def serialize_summary(metrics: SummaryMetrics) -> dict[str, object]:
        return {
            "project_completion_rate": metrics.project_completion_rate,
            "budget_efficiency": metrics.budget_efficiency,
            "on_time_delivery": metrics.on_time_delivery,
            "active_projects": metrics.active_projects,
            "team_utilization": metrics.active_teams,
            "total_projects": metrics.total_projects,
            "avg_project_duration": metrics.avg_project_duration_days,
        }

    @staticmethod
    def serialize_monthly_point(point: MonthlyPoint) -> dict[str, object]:
        return {
            "month": point.month,
            "month_start": point.month_start.isoformat(),
            "planned": point.planned,
            "actual": point.actual,
            "budget": str(point.budget),
            "spent": str(point.spent),
        }

    @staticmethod
    def serialize_category(metric: CategoryMetric) -> dict[str, object]:
        return {
            "name": metric.name,
            "category_count": metric.category_count,
            "avg_duration": metric.avg_duration_days,
            "completion_rate": metric.completion_rate,
            "delay_rate": metric.delay_rate,
        }

    @staticmethod
    def serialize_team(metric: TeamMetric) -> dict[str, object]:
        return {
            "id": str(metric.team_id),
            "name": metric.name,
            "specialty": metric.specialty,
            "efficiency": metric.efficiency,
            "tasks_completed": metric.tasks_completed,
            "total_assignments": metric.total_assignments,
            "projects": metric.active_projects,
            "avg_progress": metric.avg_progress,
            "avg_duration": metric.avg_duration_days,
        }

    @staticmethod
    def serialize_budget(metric: BudgetMetric) -> dict[str, str]:
        return {
            "total_budget": str(metric.total_budget),
            "total_paid": str(metric.total_paid),
            "projected_spend": str(metric.projected_spend),
            "savings": str(metric.savings),
            "overrun": str(metric.overrun),
        }

    @staticmethod
    def serialize_dashboard(stats: DashboardStats) -> dict[str, int]:
        return {
            "total_projects": stats.total_projects,
            "active_projects": stats.active_projects,
            "total_units": stats.total_units,
            "total_teams": stats.total_teams,
            "active_teams": stats.active_teams,
            "total_assignments": stats.total_assignments,
            "completed_assignments": stats.completed_assignments,
            "in_progress_assignments": stats.in_progress_assignments,
            "delayed_assignments": stats.delayed_assignments,
            "not_started_assignments": stats.not_started_assignments,
            "assignments_requiring_payment": stats.assignments_requiring_payment,
            "avg_project_progress": stats.avg_project_progress,
        }

    @staticmethod
    def serialize_project_report(report: ProjectReport) -> dict[str, object]:
        return {
            "id": str(report.project_id),
            "name": report.name,
            "location": report.location,
            "status": report.status.value,
            "progress": report.progress,
            "start_date": report.start_date.isoformat() if report.start_date else None,
            "end_date": report.end_date.isoformat() if report.end_date else None,
            "budget": str(report.budget),
            "spent": str(report.spent),
            "units": report.units,
            "completed_units": report.completed_units,
            "categories": report.categories,
            "completed_categories": report.completed_categories,
            "teams": report.teams,
            "delayed_assignments": report.delayed_assignments,
        }

    @staticmethod
    def serialize_financial_summary(summary: FinancialSummary) -> dict[str, object]:
        return {
            "total_budget": str(summary.total_budget),
            "total_spent": str(summary.total_spent),
            "remaining": str(summary.remaining),
            "projects": [
                {"id": str(row.project_id), "name": row.name, "budget": str(row.budget), "spent": str(row.spent)}
                for row in summary.projects
            ],
        }
