"""Tests for scenario Pydantic models.

Covers: lever validation and aliases, budget resolution, status workflow,
persisted levers, summary and comparison figures.
"""

from uuid import UUID

import pytest
from pydantic import ValidationError
from uuid_extensions import uuid7

from src.models.common import (
    ALL_PRIORITY_BANDS,
    DEFAULT_CUT_ORDER,
    BudgetType,
    PriorityBand,
    new_uuid7,
    utc_now,
)
from src.models.plan import TrainingPlanItem
from src.models.scenario import (
    TERMINAL_STATUSES,
    VALID_STATUS_TRANSITIONS,
    AllocationStrategy,
    EntityCap,
    PlanScenario,
    ScenarioItem,
    ScenarioLevers,
    ScenarioStatus,
    build_comparison,
    build_summary,
)


def _scenario(**overrides) -> PlanScenario:
    fields = dict(
        name="S",
        basis_plan_id=uuid7(),
        basis_plan_version=1,
        owner_id=uuid7(),
        status=ScenarioStatus.DRAFT,
        creation_progress=100,
        baseline_total_cost=1_000.0,
        scenario_total_cost=1_000.0,
        baseline_total_participants=100,
        scenario_total_participants=100,
    )
    fields.update(overrides)
    return PlanScenario(**fields)


class TestCommon:
    def test_uuid7_is_uuid(self) -> None:
        assert isinstance(new_uuid7(), UUID)

    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is not None

    def test_default_cut_order_covers_all_bands(self) -> None:
        assert set(DEFAULT_CUT_ORDER) == set(ALL_PRIORITY_BANDS)
        assert DEFAULT_CUT_ORDER[0] == PriorityBand.LOW


class TestScenarioLevers:
    def test_defaults(self) -> None:
        levers = ScenarioLevers()
        assert levers.global_budget_value is None
        assert levers.target_budget(1_000.0) is None
        assert levers.included_bands == frozenset(ALL_PRIORITY_BANDS)
        assert levers.cut_order == list(DEFAULT_CUT_ORDER)
        assert levers.allocation_strategy == AllocationStrategy.PERSISTED_ORDER

    def test_camel_case_aliases(self) -> None:
        levers = ScenarioLevers.model_validate({
            "globalBudgetType": "absolute",
            "globalBudgetValue": 500,
            "includePriorityBands": ["critical"],
            "protectedCategories": ["HSE"],
            "cutAbroadFirst": True,
            "entityCaps": {"OPS": {"type": "percentage", "value": 50}},
        })
        assert levers.global_budget_type == BudgetType.ABSOLUTE
        assert levers.included_bands == frozenset({PriorityBand.CRITICAL})
        assert levers.entity_caps["OPS"] == EntityCap(type=BudgetType.PERCENTAGE, value=50)
        assert levers.cut_abroad_first is True

    def test_snake_case_accepted(self) -> None:
        levers = ScenarioLevers(global_budget_type="absolute", global_budget_value=10)
        assert levers.target_budget(999.0) == 10

    def test_percentage_target(self) -> None:
        levers = ScenarioLevers(global_budget_type=BudgetType.PERCENTAGE, global_budget_value=85)
        assert levers.target_budget(20_000.0) == pytest.approx(17_000.0)

    def test_value_without_type_is_percentage(self) -> None:
        levers = ScenarioLevers(global_budget_value=50)
        assert levers.global_budget_type == BudgetType.PERCENTAGE

    def test_zero_is_a_real_cap(self) -> None:
        assert ScenarioLevers(global_budget_value=0).target_budget(1_000.0) == 0.0

    def test_empty_band_list_includes_nothing(self) -> None:
        assert ScenarioLevers(include_priority_bands=[]).included_bands == frozenset()

    def test_rejects_negative_budget(self) -> None:
        with pytest.raises(ValidationError):
            ScenarioLevers(global_budget_value=-1)

    def test_rejects_duplicate_cut_order(self) -> None:
        with pytest.raises(ValidationError, match="cut_order"):
            ScenarioLevers(cut_order=["low", "low", "high"])

    def test_rejects_unknown_band(self) -> None:
        with pytest.raises(ValidationError):
            ScenarioLevers(include_priority_bands=["urgent"])


class TestStatusWorkflow:
    def test_terminal_states_have_no_exits(self) -> None:
        for status in TERMINAL_STATUSES:
            assert VALID_STATUS_TRANSITIONS[status] == frozenset()

    def test_adopted_only_via_promotion(self) -> None:
        for targets in VALID_STATUS_TRANSITIONS.values():
            assert ScenarioStatus.ADOPTED not in targets
            assert ScenarioStatus.CREATING not in targets

    def test_every_status_has_an_entry(self) -> None:
        assert set(VALID_STATUS_TRANSITIONS) == set(ScenarioStatus)


class TestPlanScenario:
    def test_persisted_levers_defaults(self) -> None:
        levers = _scenario().persisted_levers()
        assert levers.model_dump() == ScenarioLevers().model_dump()

    def test_persisted_levers_round_trip(self) -> None:
        original = ScenarioLevers(
            global_budget_type=BudgetType.ABSOLUTE,
            global_budget_value=700,
            include_priority_bands=[PriorityBand.HIGH],
            cut_order=[PriorityBand.MEDIUM, PriorityBand.LOW],
            protected_categories=["HSE"],
            allocation_strategy=AllocationStrategy.DECLARED_PRIORITY,
        )
        scenario = _scenario(**original.model_dump())
        assert scenario.persisted_levers().model_dump() == original.model_dump()

    def test_snapshot_failed(self) -> None:
        assert _scenario(creation_progress=-1).snapshot_failed is True
        assert _scenario().snapshot_failed is False

    def test_progress_bounds(self) -> None:
        with pytest.raises(ValidationError):
            _scenario(creation_progress=101)
        with pytest.raises(ValidationError):
            _scenario(creation_progress=-2)


class TestItems:
    def test_scenario_item_deltas(self) -> None:
        item = ScenarioItem(
            scenario_id=uuid7(), position=0,
            baseline_volume=10, baseline_cost=100.0,
            scenario_volume=4, scenario_cost=40.0,
        )
        assert item.volume_delta == -6
        assert item.cost_delta == pytest.approx(-60.0)
        assert item.model_dump()["volume_delta"] == -6

    def test_plan_item_rejects_negative_participants(self) -> None:
        with pytest.raises(ValidationError):
            TrainingPlanItem(plan_id=uuid7(), position=0, planned_participants=-1)


class TestSummary:
    def test_figures(self) -> None:
        scenario = _scenario(
            scenario_total_cost=800.0,
            scenario_total_participants=70,
            global_budget_type=BudgetType.PERCENTAGE,
            global_budget_value=90,
        )
        summary = build_summary(scenario, {
            "items": 5, "cut": 2, "excluded": 1, "locally_adjusted": 1, "protected": 0,
        })
        assert summary.cost_delta == pytest.approx(-200.0)
        assert summary.cost_delta_pct == pytest.approx(-20.0)
        assert summary.participants_delta == -30
        assert summary.target_budget == pytest.approx(900.0)
        assert summary.budget_utilization_pct == pytest.approx(800 / 900 * 100)
        assert summary.cut_count == 2

    def test_zero_baseline_has_no_percentages(self) -> None:
        scenario = _scenario(
            baseline_total_cost=0.0, scenario_total_cost=0.0,
            baseline_total_participants=0, scenario_total_participants=0,
        )
        summary = build_summary(scenario, {})
        assert summary.cost_delta_pct is None
        assert summary.participants_delta_pct is None
        assert summary.budget_utilization_pct is None
        assert summary.item_count == 0


class TestComparison:
    def test_relative_to_first(self) -> None:
        a = _scenario(name="A", scenario_total_cost=1_000.0, scenario_total_participants=100)
        b = _scenario(name="B", scenario_total_cost=750.0, scenario_total_participants=60)

        first, second = build_comparison([a, b])
        assert first.cost_diff_vs_reference == 0
        assert second.cost_diff_vs_reference == pytest.approx(-250.0)
        assert second.cost_diff_pct_vs_reference == pytest.approx(-25.0)
        assert second.participants_diff_vs_reference == -40
        assert second.cost_pct_of_baseline == pytest.approx(75.0)

    def test_empty(self) -> None:
        assert build_comparison([]) == []
