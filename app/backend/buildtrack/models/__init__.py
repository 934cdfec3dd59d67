"""ORM model package."""

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
    UnitType,
)
from buildtrack.models.hierarchy import HierarchyNode, NodeLevel, NodeRef

__all__ = [
    "AssignmentStatus",
    "Category",
    "CategoryTeam",
    "Company",
    "HierarchyNode",
    "NodeLevel",
    "NodeRef",
    "Payment",
    "PaymentStatus",
    "Project",
    "ProjectStatus",
    "Team",
    "Unit",
    "UnitType",
]
