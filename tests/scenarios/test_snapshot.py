"""Tests for the plan snapshot builder and create_scenario.

Covers: batched copy with progress, completion totals, empty plans,
failure marking (-1) including real constraint violations, version checks,
and Celery dispatch.
"""

import pytest
from uuid_extensions import uuid7

from src.config.settings import Settings
from src.models.common import AuditAction
from src.models.scenario import ScenarioStatus
from src.repositories.plans import TrainingPlanItemRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios import snapshot
from src.scenarios.errors import NotFoundError, ValidationError
from src.scenarios.snapshot import ScenarioSnapshotBuilder


def _lines(n: int) -> list[dict]:
    return [
        {"course_id": f"C{i:03d}", "planned_participants": 10, "planned_sessions": 1,
         "estimated_cost": 1_000.0, "priority": "medium"}
        for i in range(n)
    ]


async def _creating_scenario(db_session, plan) -> object:
    return await PlanScenarioRepository(db_session).create(
        scenario_id=uuid7(),
        name="Snapshot test",
        basis_plan_id=plan.plan_id,
        basis_plan_version=plan.version,
        owner_id=uuid7(),
        status=ScenarioStatus.CREATING.value,
        visibility_scope="global",
    )


def _builder(db_session, batch_size: int) -> ScenarioSnapshotBuilder:
    return ScenarioSnapshotBuilder(
        session=db_session,
        scenario_repo=PlanScenarioRepository(db_session),
        plan_item_repo=TrainingPlanItemRepository(db_session),
        item_repo=ScenarioItemRepository(db_session),
        batch_size=batch_size,
    )


def _null_cost_at_position(monkeypatch, position: int) -> None:
    """Make the copied line at `position` violate NOT NULL on baseline_cost."""
    original = snapshot.copy_plan_item

    def _copy(scenario_id, pos, item):
        row = original(scenario_id, pos, item)
        if pos == position:
            row.baseline_cost = None
        return row

    monkeypatch.setattr(snapshot, "copy_plan_item", _copy)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TestSnapshotBuilder:
    """ScenarioSnapshotBuilder copies plan items in batches."""

    @pytest.mark.anyio
    async def test_copies_in_batches_with_progress(
        self, db_session, make_plan, monkeypatch,
    ) -> None:
        plan = await make_plan(_lines(5))
        scenario = await _creating_scenario(db_session, plan)

        progress_updates: list[int] = []
        original = PlanScenarioRepository.update_progress

        async def _spy(self, scenario_id, progress):
            progress_updates.append(progress)
            return await original(self, scenario_id, progress)

        monkeypatch.setattr(PlanScenarioRepository, "update_progress", _spy)

        final = await _builder(db_session, batch_size=2).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )

        assert final == 100
        assert progress_updates == [40, 80, 100]

        items = await ScenarioItemRepository(db_session).get_by_scenario(scenario.scenario_id)
        assert [i.position for i in items] == [0, 1, 2, 3, 4]
        assert [i.course_id for i in items] == ["C000", "C001", "C002", "C003", "C004"]

    @pytest.mark.anyio
    async def test_completion_sets_draft_and_totals(self, db_session, make_plan) -> None:
        plan = await make_plan(_lines(3))
        scenario = await _creating_scenario(db_session, plan)

        await _builder(db_session, batch_size=500).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )

        row = await PlanScenarioRepository(db_session).get(scenario.scenario_id)
        assert row.status == ScenarioStatus.DRAFT
        assert row.creation_progress == 100
        assert row.baseline_total_cost == pytest.approx(3_000)
        assert row.scenario_total_cost == pytest.approx(3_000)
        assert row.baseline_total_participants == 30
        assert row.scenario_total_participants == 30

    @pytest.mark.anyio
    async def test_empty_plan_completes_immediately(self, db_session, make_plan) -> None:
        plan = await make_plan([])
        scenario = await _creating_scenario(db_session, plan)

        final = await _builder(db_session, batch_size=2).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )

        row = await PlanScenarioRepository(db_session).get(scenario.scenario_id)
        assert final == 100
        assert row.creation_progress == 100
        assert row.scenario_total_cost == 0.0
        assert row.scenario_total_participants == 0

    @pytest.mark.anyio
    async def test_failure_marks_progress_minus_one(
        self, db_session, make_plan, monkeypatch,
    ) -> None:
        plan = await make_plan(_lines(4))
        scenario = await _creating_scenario(db_session, plan)

        calls = {"n": 0}
        original = ScenarioItemRepository.create_many

        async def _flaky(self, rows):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("connection reset")
            return await original(self, rows)

        monkeypatch.setattr(ScenarioItemRepository, "create_many", _flaky)

        final = await _builder(db_session, batch_size=2).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )

        row = await PlanScenarioRepository(db_session).get(scenario.scenario_id)
        assert final == -1
        assert row.creation_progress == -1
        assert row.status == ScenarioStatus.DRAFT

    @pytest.mark.anyio
    async def test_constraint_violation_undoes_only_failed_batch(
        self, db_session, make_plan, monkeypatch,
    ) -> None:
        plan = await make_plan(_lines(4))
        scenario = await _creating_scenario(db_session, plan)
        _null_cost_at_position(monkeypatch, 2)

        final = await _builder(db_session, batch_size=2).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )

        row = await PlanScenarioRepository(db_session).get(scenario.scenario_id)
        assert final == -1
        assert row.creation_progress == -1
        assert row.status == ScenarioStatus.DRAFT
        items = await ScenarioItemRepository(db_session).get_by_scenario(scenario.scenario_id)
        assert [i.position for i in items] == [0, 1]


    def test_rejects_zero_batch_size(self) -> None:
        with pytest.raises(ValueError, match="batch_size"):
            ScenarioSnapshotBuilder(
                session=None, scenario_repo=None, plan_item_repo=None,
                item_repo=None, batch_size=0,
            )


class TestLineCopy:
    """Baseline fields are derived once, at copy time."""

    @pytest.mark.anyio
    async def test_rate_from_cost_and_volume(self, db_session, make_plan) -> None:
        plan = await make_plan([
            {"planned_participants": 30, "estimated_cost": 1_200.0, "priority": "high"},
        ])
        scenario = await _creating_scenario(db_session, plan)
        await _builder(db_session, 10).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )
        [item] = await ScenarioItemRepository(db_session).get_by_scenario(scenario.scenario_id)
        assert item.baseline_cost_per_participant == pytest.approx(40.0)
        assert item.scenario_volume == item.baseline_volume == 30
        assert item.is_cut is False
        assert item.is_locally_adjusted is False

    @pytest.mark.anyio
    async def test_rate_falls_back_when_no_participants(self, db_session, make_plan) -> None:
        plan = await make_plan([
            {"planned_participants": 0, "estimated_cost": 0.0, "cost_per_participant": 75.0},
        ])
        scenario = await _creating_scenario(db_session, plan)
        await _builder(db_session, 10).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )
        [item] = await ScenarioItemRepository(db_session).get_by_scenario(scenario.scenario_id)
        assert item.baseline_cost_per_participant == pytest.approx(75.0)

    @pytest.mark.anyio
    async def test_missing_priority_defaults_to_medium(self, db_session, make_plan) -> None:
        plan = await make_plan([{"planned_participants": 5, "estimated_cost": 50.0}])
        scenario = await _creating_scenario(db_session, plan)
        await _builder(db_session, 10).build(
            scenario_id=scenario.scenario_id, basis_plan_id=plan.plan_id,
        )
        [item] = await ScenarioItemRepository(db_session).get_by_scenario(scenario.scenario_id)
        assert item.priority_band == "medium"


# ---------------------------------------------------------------------------
# create_scenario
# ---------------------------------------------------------------------------


class TestCreateScenario:
    """ScenarioService.create_scenario validates the basis plan and snapshots it."""

    @pytest.mark.anyio
    async def test_inline_snapshot_returns_draft(
        self, service, make_plan, example_lines, actor_id,
    ) -> None:
        plan = await make_plan(example_lines)
        scenario = await service.create_scenario(
            basis_plan_id=plan.plan_id,
            basis_plan_version=1,
            name="Cut 30%",
            owner_id=actor_id,
        )
        assert scenario.status == ScenarioStatus.DRAFT
        assert scenario.creation_progress == 100
        assert scenario.baseline_total_cost == pytest.approx(21_000)
        assert scenario.baseline_total_participants == 170
        assert scenario.owner_id == actor_id

    @pytest.mark.anyio
    async def test_writes_created_audit(
        self, db_session, service, make_plan, example_lines, actor_id,
    ) -> None:
        plan = await make_plan(example_lines)
        scenario = await service.create_scenario(
            basis_plan_id=plan.plan_id, basis_plan_version=1,
            name="Audit", owner_id=actor_id,
        )
        entries = await ScenarioAuditRepository(db_session).list_by_scenario(
            scenario.scenario_id,
        )
        assert [e.action for e in entries] == [AuditAction.CREATED]
        assert entries[0].details == {"plan_id": str(plan.plan_id), "plan_version": 1}

    @pytest.mark.anyio
    async def test_unknown_plan(self, service, actor_id) -> None:
        with pytest.raises(NotFoundError):
            await service.create_scenario(
                basis_plan_id=uuid7(), basis_plan_version=1,
                name="x", owner_id=actor_id,
            )

    @pytest.mark.anyio
    async def test_version_mismatch(self, service, make_plan, actor_id) -> None:
        plan = await make_plan(_lines(1), version=3)
        with pytest.raises(ValidationError, match="version 3"):
            await service.create_scenario(
                basis_plan_id=plan.plan_id, basis_plan_version=2,
                name="x", owner_id=actor_id,
            )

    @pytest.mark.anyio
    async def test_dispatches_to_celery_when_broker_set(
        self, service, make_plan, actor_id, monkeypatch,
    ) -> None:
        dispatched: list[dict] = []
        monkeypatch.setattr(
            "src.scenarios.service.get_settings",
            lambda: Settings(CELERY_BROKER_URL="redis://broker:6379/1"),
        )
        monkeypatch.setattr(
            "src.scenarios.service.dispatch_snapshot",
            lambda **kwargs: dispatched.append(kwargs),
        )

        plan = await make_plan(_lines(2))
        scenario = await service.create_scenario(
            basis_plan_id=plan.plan_id, basis_plan_version=1,
            name="Async", owner_id=actor_id,
        )

        assert scenario.status == ScenarioStatus.CREATING
        assert scenario.creation_progress == 0
        assert dispatched == [
            {"scenario_id": scenario.scenario_id, "basis_plan_id": plan.plan_id},
        ]

    @pytest.mark.anyio
    async def test_inline_constraint_violation_keeps_scenario(
        self, db_session, service, make_plan, actor_id, monkeypatch,
    ) -> None:
        monkeypatch.setattr(
            "src.scenarios.tasks.get_settings", lambda: Settings(SNAPSHOT_BATCH_SIZE=2),
        )
        _null_cost_at_position(monkeypatch, 2)
        plan = await make_plan(_lines(3))

        scenario = await service.create_scenario(
            basis_plan_id=plan.plan_id, basis_plan_version=1,
            name="Broken copy", owner_id=actor_id,
        )

        assert scenario.status == ScenarioStatus.DRAFT
        assert scenario.creation_progress == -1
        assert scenario.snapshot_failed is True
        entries = await ScenarioAuditRepository(db_session).list_by_scenario(
            scenario.scenario_id,
        )
        assert [e.action for e in entries] == [AuditAction.CREATED]
