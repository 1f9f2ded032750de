"""Tests for the seed script — verifies the demo plan and scenario load into DB."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from scripts.seed import (
    DEMO_PLAN_NAME,
    DEMO_SCENARIO_NAME,
    SAMPLE_PLAN_ITEMS,
    seed_demo,
    seed_plan,
)
from src.models.common import PriorityBand
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import PlanScenarioRepository, ScenarioItemRepository


class TestSampleData:
    def test_covers_every_priority_band(self) -> None:
        assert {line["priority"] for line in SAMPLE_PLAN_ITEMS} == {b.value for b in PriorityBand}

    def test_has_protected_and_abroad_lines(self) -> None:
        assert any(line.get("is_protected") for line in SAMPLE_PLAN_ITEMS)
        assert any(line.get("is_abroad") for line in SAMPLE_PLAN_ITEMS)


class TestSeedPlan:
    """seed_plan creates the plan and its lines."""

    @pytest.mark.anyio
    async def test_creates_plan_with_totals(self, db_session: AsyncSession) -> None:
        plan, rows = await seed_plan(db_session)
        fetched = await TrainingPlanRepository(db_session).get(plan.plan_id)
        assert fetched is not None
        assert fetched.name == DEMO_PLAN_NAME
        assert fetched.total_budget == pytest.approx(
            sum(line["estimated_cost"] for line in SAMPLE_PLAN_ITEMS)
        )
        assert len(rows) == len(SAMPLE_PLAN_ITEMS)

    @pytest.mark.anyio
    async def test_lines_in_order_with_rates(self, db_session: AsyncSession) -> None:
        plan, _ = await seed_plan(db_session)
        items = await TrainingPlanItemRepository(db_session).get_by_plan(plan.plan_id)
        assert [i.course_id for i in items] == [line["course_id"] for line in SAMPLE_PLAN_ITEMS]
        first = items[0]
        assert first.cost_per_participant == pytest.approx(
            first.estimated_cost / first.planned_participants
        )


class TestSeedDemo:
    """seed_demo is idempotent and snapshots one scenario."""

    @pytest.mark.anyio
    async def test_creates_draft_scenario(self, db_session: AsyncSession) -> None:
        result = await seed_demo(db_session)
        assert result["created"] is True
        assert result["plan_item_count"] == len(SAMPLE_PLAN_ITEMS)

        scenario = await PlanScenarioRepository(db_session).get(result["scenario_id"])
        assert scenario.name == DEMO_SCENARIO_NAME
        assert scenario.status == "draft"
        assert scenario.creation_progress == 100
        count = await ScenarioItemRepository(db_session).count_by_scenario(scenario.scenario_id)
        assert count == len(SAMPLE_PLAN_ITEMS)

    @pytest.mark.anyio
    async def test_second_run_skips(self, db_session: AsyncSession) -> None:
        first = await seed_demo(db_session)
        second = await seed_demo(db_session)

        assert second["created"] is False
        assert second["plan_id"] == first["plan_id"]
        plans = await TrainingPlanRepository(db_session).list_all()
        assert [p.name for p in plans].count(DEMO_PLAN_NAME) == 1
        assert len(await PlanScenarioRepository(db_session).list_all()) == 1
