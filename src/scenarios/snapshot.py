"""Plan snapshot builder — copies a training plan into a scenario workspace.

Items are copied in persisted plan order, in fixed-size batches, and the
scenario's creation_progress is updated after each batch so callers can
poll it. A failed copy leaves the scenario in DRAFT with progress -1
(snapshot incomplete); the error is logged, never raised to the poller.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import ScenarioItemRow, TrainingPlanItemRow
from src.models.common import ALL_PRIORITY_BANDS, PriorityBand, new_uuid7
from src.repositories.plans import TrainingPlanItemRepository
from src.repositories.scenarios import PlanScenarioRepository, ScenarioItemRepository

logger = logging.getLogger(__name__)


def _band(priority: str | None) -> str:
    if priority in ALL_PRIORITY_BANDS:
        return priority
    return PriorityBand.MEDIUM.value


def _baseline_rate(item: TrainingPlanItemRow) -> float | None:
    volume = item.planned_participants or 0
    if volume > 0:
        return (item.estimated_cost or 0.0) / volume
    return item.cost_per_participant


def copy_plan_item(scenario_id: UUID, position: int, item: TrainingPlanItemRow) -> ScenarioItemRow:
    """Build the scenario line for one plan item. Scenario values start at baseline."""
    volume = item.planned_participants or 0
    sessions = item.planned_sessions or 0
    cost = item.estimated_cost or 0.0
    return ScenarioItemRow(
        item_id=new_uuid7(),
        scenario_id=scenario_id,
        position=position,
        source_plan_item_id=item.item_id,
        course_id=item.course_id,
        course_name=item.course_name,
        entity_id=item.entity_id,
        entity_name=item.entity_name,
        category_id=item.category_id,
        category_name=item.category_name,
        priority_band=_band(item.priority),
        baseline_volume=volume,
        baseline_sessions=sessions,
        baseline_cost=cost,
        baseline_cost_per_participant=_baseline_rate(item),
        scenario_volume=volume,
        scenario_sessions=sessions,
        scenario_cost=cost,
        is_protected=bool(item.is_protected),
        is_abroad=bool(item.is_abroad),
        is_cut=False,
        is_locally_adjusted=False,
    )


class ScenarioSnapshotBuilder:
    """Copies plan items into a scenario in batches.

    With ``commit_batches`` (worker path) every batch is committed so
    progress is visible to pollers, and a failure rolls back the batch in
    flight before the scenario is marked failed. Otherwise the copy joins
    the caller's unit of work and each batch runs inside a SAVEPOINT, so a
    failed batch is undone on its own and the scenario row survives.
    """

    def __init__(
        self,
        *,
        session: AsyncSession,
        scenario_repo: PlanScenarioRepository,
        plan_item_repo: TrainingPlanItemRepository,
        item_repo: ScenarioItemRepository,
        batch_size: int = 500,
        commit_batches: bool = False,
    ) -> None:
        if batch_size < 1:
            msg = "batch_size must be >= 1"
            raise ValueError(msg)
        self._session = session
        self._scenario_repo = scenario_repo
        self._plan_item_repo = plan_item_repo
        self._item_repo = item_repo
        self._batch_size = batch_size
        self._commit_batches = commit_batches

    async def build(self, *, scenario_id: UUID, basis_plan_id: UUID) -> int:
        """Run the copy. Returns the final creation_progress (100 or -1)."""
        try:
            copied, total_cost, total_participants = await self._copy(
                scenario_id, basis_plan_id,
            )
        except Exception:
            logger.exception(
                "Snapshot of plan %s into scenario %s failed",
                basis_plan_id, scenario_id,
            )
            if self._commit_batches:
                await self._session.rollback()
            await self._scenario_repo.mark_snapshot_failed(scenario_id)
            await self._commit()
            return -1

        await self._scenario_repo.complete_snapshot(
            scenario_id,
            total_cost=total_cost,
            total_participants=total_participants,
        )
        await self._commit()
        logger.info(
            "Snapshot of plan %s into scenario %s complete: %d items",
            basis_plan_id, scenario_id, copied,
        )
        return 100

    async def _copy(self, scenario_id: UUID, basis_plan_id: UUID) -> tuple[int, float, int]:
        total = await self._plan_item_repo.count_by_plan(basis_plan_id)
        copied = 0
        total_cost = 0.0
        total_participants = 0

        while copied < total:
            batch = await self._plan_item_repo.get_by_plan(
                basis_plan_id, offset=copied, limit=self._batch_size,
            )
            if not batch:
                break
            rows = [
                copy_plan_item(scenario_id, copied + i, item)
                for i, item in enumerate(batch)
            ]
            if self._commit_batches:
                await self._item_repo.create_many(rows)
            else:
                async with self._session.begin_nested():
                    await self._item_repo.create_many(rows)

            copied += len(rows)
            total_cost += sum(r.baseline_cost for r in rows)
            total_participants += sum(r.baseline_volume for r in rows)

            await self._scenario_repo.update_progress(
                scenario_id, round(copied / total * 100),
            )
            await self._commit()

        return copied, total_cost, total_participants

    async def _commit(self) -> None:
        if self._commit_batches:
            await self._session.commit()
