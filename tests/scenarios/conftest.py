"""Shared fixtures for scenario service and snapshot tests."""

import pytest
from uuid_extensions import uuid7

from src.db.tables import TrainingPlanItemRow, TrainingPlanRow
from src.models.common import PlanStatus
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios.service import ScenarioService


@pytest.fixture()
def actor_id():
    return uuid7()


@pytest.fixture()
def service(db_session) -> ScenarioService:
    return ScenarioService(
        session=db_session,
        plan_repo=TrainingPlanRepository(db_session),
        plan_item_repo=TrainingPlanItemRepository(db_session),
        scenario_repo=PlanScenarioRepository(db_session),
        item_repo=ScenarioItemRepository(db_session),
        audit_repo=ScenarioAuditRepository(db_session),
    )


@pytest.fixture()
def make_plan(db_session):
    """Factory: make_plan(lines, version=1) -> TrainingPlanRow.

    Each line is a dict of TrainingPlanItemRow fields; position follows
    list order.
    """

    async def _make(lines: list[dict], *, version: int = 1,
                    period_id: str = "FY2026") -> TrainingPlanRow:
        plan_id = uuid7()
        plan = await TrainingPlanRepository(db_session).create(
            plan_id=plan_id,
            name="Test plan",
            status=PlanStatus.APPROVED.value,
            version=version,
            period_id=period_id,
            total_budget=sum(line.get("estimated_cost", 0.0) for line in lines),
            total_participants=sum(line.get("planned_participants", 0) for line in lines),
        )
        rows = [
            TrainingPlanItemRow(item_id=uuid7(), plan_id=plan_id, position=i, **line)
            for i, line in enumerate(lines)
        ]
        if rows:
            await TrainingPlanItemRepository(db_session).create_many(rows)
        return plan

    return _make


@pytest.fixture()
def example_lines() -> list[dict]:
    """A(medium,100@$100), B(critical,protected,50@$200), C(low,20@$50)."""
    return [
        {"course_id": "A", "planned_participants": 100, "planned_sessions": 5,
         "estimated_cost": 10_000.0, "priority": "medium", "category_id": "TECH"},
        {"course_id": "B", "planned_participants": 50, "planned_sessions": 2,
         "estimated_cost": 10_000.0, "priority": "critical", "is_protected": True},
        {"course_id": "C", "planned_participants": 20, "planned_sessions": 1,
         "estimated_cost": 1_000.0, "priority": "low", "is_abroad": True},
    ]
