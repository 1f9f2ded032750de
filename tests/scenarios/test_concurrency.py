"""Concurrent writes on one scenario.

Two sessions on one file-backed SQLite engine. A competing session commits a
change to the scenario row after the write operation has loaded it, so the
lock_version check on the next UPDATE fails for real and the operation turns
into a ConflictError with none of its item writes kept.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from uuid_extensions import uuid7

from src.db.session import Base
from src.db.tables import PlanScenarioRow, TrainingPlanItemRow
from src.models.common import AuditAction, BudgetType, PlanStatus
from src.models.scenario import ScenarioLevers
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios.errors import ConflictError
from src.scenarios.service import ScenarioService


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scenarios.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


def _service(session: AsyncSession) -> ScenarioService:
    return ScenarioService(
        session=session,
        plan_repo=TrainingPlanRepository(session),
        plan_item_repo=TrainingPlanItemRepository(session),
        scenario_repo=PlanScenarioRepository(session),
        item_repo=ScenarioItemRepository(session),
        audit_repo=ScenarioAuditRepository(session),
    )


@pytest.fixture
async def scenario_id(session_factory, example_lines):
    async with session_factory() as session:
        plan_id = uuid7()
        await TrainingPlanRepository(session).create(
            plan_id=plan_id, name="Race plan", status=PlanStatus.APPROVED.value,
        )
        await TrainingPlanItemRepository(session).create_many([
            TrainingPlanItemRow(item_id=uuid7(), plan_id=plan_id, position=i, **line)
            for i, line in enumerate(example_lines)
        ])
        scenario = await _service(session).create_scenario(
            basis_plan_id=plan_id, basis_plan_version=1, name="Race", owner_id=uuid7(),
        )
        await session.commit()
    return scenario.scenario_id


def _rename_after_load(monkeypatch, session_factory) -> None:
    """Commit a rename from another session right after the row is locked for write."""
    original = PlanScenarioRepository.get_for_update

    async def _load_then_compete(self, scenario_id):
        row = await original(self, scenario_id)
        async with session_factory() as other:
            competing = await other.get(PlanScenarioRow, scenario_id)
            competing.name = "Renamed elsewhere"
            await other.commit()
        return row

    monkeypatch.setattr(PlanScenarioRepository, "get_for_update", _load_then_compete)


class TestConcurrentWrites:
    @pytest.mark.anyio
    async def test_recalculate_loses_race(
        self, session_factory, scenario_id, monkeypatch,
    ) -> None:
        _rename_after_load(monkeypatch, session_factory)
        levers = ScenarioLevers(global_budget_type=BudgetType.ABSOLUTE, global_budget_value=5_000)

        async with session_factory() as session:
            with pytest.raises(ConflictError, match="concurrently"):
                await _service(session).recalculate(scenario_id, levers, actor_id=uuid7())
            await session.rollback()

        async with session_factory() as session:
            row = await PlanScenarioRepository(session).get(scenario_id)
            assert row.name == "Renamed elsewhere"
            assert row.global_budget_value is None
            assert row.scenario_total_cost == pytest.approx(21_000)

            items = await ScenarioItemRepository(session).get_by_scenario(scenario_id)
            assert all(i.scenario_volume == i.baseline_volume for i in items)
            assert not any(i.is_cut for i in items)

            entries = await ScenarioAuditRepository(session).list_by_scenario(scenario_id)
            assert AuditAction.RECALCULATED not in [e.action for e in entries]

    @pytest.mark.anyio
    async def test_adjustment_item_write_is_undone(
        self, session_factory, scenario_id, monkeypatch,
    ) -> None:
        async with session_factory() as session:
            items = await ScenarioItemRepository(session).get_by_scenario(scenario_id)
        target = items[0]

        _rename_after_load(monkeypatch, session_factory)
        async with session_factory() as session:
            with pytest.raises(ConflictError):
                await _service(session).adjust_line(
                    scenario_id, target.item_id,
                    new_volume=10, reason=None, actor_id=uuid7(),
                )
            await session.rollback()

        async with session_factory() as session:
            item = await ScenarioItemRepository(session).get(target.item_id)
            assert item.scenario_volume == target.baseline_volume
            assert item.is_locally_adjusted is False
            row = await PlanScenarioRepository(session).get(scenario_id)
            assert row.scenario_total_participants == 170
