"""Rule table turning portfolio metrics into qualitative risk entries.

Rules are evaluated independently and each yields at most one entry. The two
advisory entries at the end are always present.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal

DELAY_HIGH_IMPACT_THRESHOLD = 5
TEAM_SHORTAGE_HIGH_RATIO = Decimal("1.5")


class RiskTier(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass(frozen=True, slots=True)
class RiskEntry:
    factor: str
    impact: RiskTier
    probability: RiskTier
    mitigation: str


@dataclass(frozen=True, slots=True)
class RiskInputs:
    delayed_assignments: int
    budget_overrun: Decimal
    active_projects: int
    active_teams: int


ADVISORY_RISKS = (
    RiskEntry(
        factor="Material Shortage",
        impact=RiskTier.HIGH,
        probability=RiskTier.MEDIUM,
        mitigation="Alternative suppliers and early procurement",
    ),
    RiskEntry(
        factor="Quality Issues",
        impact=RiskTier.MEDIUM,
        probability=RiskTier.LOW,
        mitigation="Enhanced quality control and inspections",
    ),
)


def _weather_delays(inputs: RiskInputs) -> RiskEntry | None:
    if inputs.delayed_assignments <= 0:
        return None
    return RiskEntry(
        factor="Weather Delays",
        impact=RiskTier.HIGH if inputs.delayed_assignments > DELAY_HIGH_IMPACT_THRESHOLD else RiskTier.MEDIUM,
        probability=RiskTier.HIGH,
        mitigation="Schedule buffer and indoor work alternatives",
    )


def _budget_overrun(inputs: RiskInputs) -> RiskEntry | None:
    if inputs.budget_overrun <= 0:
        return None
    return RiskEntry(
        factor="Budget Overrun",
        impact=RiskTier.HIGH,
        probability=RiskTier.MEDIUM,
        mitigation="Cost control measures and value engineering",
    )


def _team_availability(inputs: RiskInputs) -> RiskEntry | None:
    if inputs.active_projects <= inputs.active_teams:
        return None
    shortage_is_severe = Decimal(inputs.active_projects) > Decimal(inputs.active_teams) * TEAM_SHORTAGE_HIGH_RATIO
    return RiskEntry(
        factor="Team Availability",
        impact=RiskTier.MEDIUM,
        probability=RiskTier.HIGH if shortage_is_severe else RiskTier.MEDIUM,
        mitigation="Cross-training and resource optimization",
    )


RULES = (_weather_delays, _budget_overrun, _team_availability)


def evaluate_risk_factors(inputs: RiskInputs) -> list[RiskEntry]:
    risks = [entry for entry in (rule(inputs) for rule in RULES) if entry is not None]
    risks.extend(ADVISORY_RISKS)
    return risks


def serialize_risk(entry: RiskEntry) -> dict[str, str]:
    return {
        "factor": entry.factor,
        "impact": entry.impact.value,
        "probability": entry.probability.value,
        "mitigation": entry.mitigation,
    }
