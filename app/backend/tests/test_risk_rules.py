from __future__ import annotations

from decimal import Decimal

from buildtrack.services.risk_rules import RiskInputs, RiskTier, evaluate_risk_factors, serialize_risk


def _inputs(**overrides: object) -> RiskInputs:
    values: dict[str, object] = {
        "delayed_assignments": 0,
        "budget_overrun": Decimal("0.00"),
        "active_projects": 1,
        "active_teams": 1,
    }
    values.update(overrides)
    return RiskInputs(**values)


def _by_factor(inputs: RiskInputs) -> dict[str, dict[str, str]]:
    return {entry.factor: serialize_risk(entry) for entry in evaluate_risk_factors(inputs)}


def test_quiet_portfolio_only_lists_advisory_risks() -> None:
    risks = evaluate_risk_factors(_inputs())

    assert [entry.factor for entry in risks] == ["Material Shortage", "Quality Issues"]


def test_delays_raise_weather_risk_with_impact_threshold() -> None:
    few = _by_factor(_inputs(delayed_assignments=5))["Weather Delays"]
    many = _by_factor(_inputs(delayed_assignments=6))["Weather Delays"]

    assert few["impact"] == "Medium"
    assert many["impact"] == "High"
    assert few["probability"] == many["probability"] == "High"


def test_budget_overrun_rule() -> None:
    assert "Budget Overrun" not in _by_factor(_inputs())
    entry = _by_factor(_inputs(budget_overrun=Decimal("0.01")))["Budget Overrun"]

    assert entry == {
        "factor": "Budget Overrun",
        "impact": "High",
        "probability": "Medium",
        "mitigation": "Cost control measures and value engineering",
    }


def test_team_availability_probability_tiers() -> None:
    severe = evaluate_risk_factors(_inputs(active_projects=6, active_teams=3))
    mild = evaluate_risk_factors(_inputs(active_projects=4, active_teams=3))

    severe_entry = next(entry for entry in severe if entry.factor == "Team Availability")
    mild_entry = next(entry for entry in mild if entry.factor == "Team Availability")
    assert severe_entry.impact is RiskTier.MEDIUM
    assert severe_entry.probability is RiskTier.HIGH
    assert mild_entry.probability is RiskTier.MEDIUM
    assert "Team Availability" not in _by_factor(_inputs(active_projects=3, active_teams=3))


def test_rules_fire_independently() -> None:
    risks = evaluate_risk_factors(
        _inputs(delayed_assignments=2, budget_overrun=Decimal("10.00"), active_projects=2, active_teams=1)
    )

    assert [entry.factor for entry in risks] == [
        "Weather Delays",
        "Budget Overrun",
        "Team Availability",
        "Material Shortage",
        "Quality Issues",
    ]
