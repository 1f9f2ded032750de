"""Scenario workspace, scenario item, and scenario audit repositories."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import PlanScenarioRow, ScenarioAuditLogRow, ScenarioItemRow
from src.models.common import new_uuid7, utc_now


class PlanScenarioRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, scenario_id: UUID, name: str, basis_plan_id: UUID,
                     basis_plan_version: int, owner_id: UUID, status: str,
                     visibility_scope: str, description: str = "") -> PlanScenarioRow:
        now = utc_now()
        row = PlanScenarioRow(
            scenario_id=scenario_id, name=name, description=description,
            basis_plan_id=basis_plan_id, basis_plan_version=basis_plan_version,
            owner_id=owner_id, status=status, visibility_scope=visibility_scope,
            creation_progress=0, cut_abroad_first=False,
            created_at=now, updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def get(self, scenario_id: UUID) -> PlanScenarioRow | None:
        return await self._session.get(PlanScenarioRow, scenario_id)

    async def get_for_update(self, scenario_id: UUID) -> PlanScenarioRow | None:
        """Load the row with a row lock (PostgreSQL) and fresh attributes."""
        result = await self._session.execute(
            select(PlanScenarioRow)
            .where(PlanScenarioRow.scenario_id == scenario_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self, basis_plan_id: UUID | None = None) -> list[PlanScenarioRow]:
        stmt = select(PlanScenarioRow).order_by(PlanScenarioRow.created_at.desc())
        if basis_plan_id is not None:
            stmt = stmt.where(PlanScenarioRow.basis_plan_id == basis_plan_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_many(self, scenario_ids: list[UUID]) -> list[PlanScenarioRow]:
        result = await self._session.execute(
            select(PlanScenarioRow).where(PlanScenarioRow.scenario_id.in_(scenario_ids))
        )
        return list(result.scalars().all())

    async def update_progress(self, scenario_id: UUID, progress: int) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.creation_progress = progress
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def complete_snapshot(self, scenario_id: UUID, *, total_cost: float,
                                total_participants: int) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.status = "draft"
            row.creation_progress = 100
            row.baseline_total_cost = total_cost
            row.scenario_total_cost = total_cost
            row.baseline_total_participants = total_participants
            row.scenario_total_participants = total_participants
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def mark_snapshot_failed(self, scenario_id: UUID) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.status = "draft"
            row.creation_progress = -1
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def set_levers(self, scenario_id: UUID, levers: dict) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.global_budget_type = levers.get("global_budget_type")
            row.global_budget_value = levers.get("global_budget_value")
            row.include_priority_bands = levers.get("include_priority_bands")
            row.cut_order = levers.get("cut_order")
            row.protected_categories = levers.get("protected_categories")
            row.cut_abroad_first = bool(levers.get("cut_abroad_first"))
            row.entity_caps = levers.get("entity_caps")
            row.allocation_strategy = levers.get("allocation_strategy")
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def set_aggregates(self, scenario_id: UUID, *, total_cost: float,
                             total_participants: int,
                             recalculated_at: datetime | None = None) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.scenario_total_cost = total_cost
            row.scenario_total_participants = total_participants
            if recalculated_at is not None:
                row.last_recalculation_at = recalculated_at
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def update_status(self, scenario_id: UUID, status: str) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            row.status = status
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def mark_promoted(self, scenario_id: UUID, *, plan_id: UUID,
                            actor_id: UUID) -> PlanScenarioRow | None:
        row = await self.get(scenario_id)
        if row is not None:
            now = utc_now()
            row.status = "adopted"
            row.promoted_to_plan_id = plan_id
            row.promoted_at = now
            row.promoted_by = actor_id
            row.updated_at = now
            await self._session.flush()
        return row

    async def delete(self, scenario_id: UUID) -> bool:
        row = await self.get(scenario_id)
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.flush()
        return True


class ScenarioItemRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_many(self, rows: list[ScenarioItemRow]) -> list[ScenarioItemRow]:
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    async def get(self, item_id: UUID) -> ScenarioItemRow | None:
        return await self._session.get(ScenarioItemRow, item_id)

    async def get_by_scenario(self, scenario_id: UUID) -> list[ScenarioItemRow]:
        """All items in persisted traversal order."""
        result = await self._session.execute(
            select(ScenarioItemRow)
            .where(ScenarioItemRow.scenario_id == scenario_id)
            .order_by(ScenarioItemRow.position)
        )
        return list(result.scalars().all())

    async def get_page(self, scenario_id: UUID, *, offset: int, limit: int,
                       priority_band: str | None = None,
                       cut_only: bool = False) -> tuple[list[ScenarioItemRow], int]:
        """Count-aware page of items. Returns (rows, total matching)."""
        conditions = [ScenarioItemRow.scenario_id == scenario_id]
        if priority_band is not None:
            conditions.append(ScenarioItemRow.priority_band == priority_band)
        if cut_only:
            conditions.append(ScenarioItemRow.is_cut.is_(True))

        total_result = await self._session.execute(
            select(func.count()).select_from(ScenarioItemRow).where(*conditions)
        )
        rows_result = await self._session.execute(
            select(ScenarioItemRow)
            .where(*conditions)
            .order_by(ScenarioItemRow.position)
            .offset(offset)
            .limit(limit)
        )
        return list(rows_result.scalars().all()), int(total_result.scalar_one())

    async def count_by_scenario(self, scenario_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(ScenarioItemRow)
            .where(ScenarioItemRow.scenario_id == scenario_id)
        )
        return int(result.scalar_one())

    async def totals(self, scenario_id: UUID) -> tuple[float, int]:
        """(sum of scenario_cost, sum of scenario_volume) over every item."""
        result = await self._session.execute(
            select(
                func.coalesce(func.sum(ScenarioItemRow.scenario_cost), 0.0),
                func.coalesce(func.sum(ScenarioItemRow.scenario_volume), 0),
            ).where(ScenarioItemRow.scenario_id == scenario_id)
        )
        total_cost, total_participants = result.one()
        return float(total_cost), int(total_participants)

    async def counts(self, scenario_id: UUID) -> dict[str, int]:
        """Item tallies for the scenario summary."""

        def _tally(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self._session.execute(
            select(
                func.count(),
                _tally(ScenarioItemRow.is_cut.is_(True)),
                _tally(
                    (ScenarioItemRow.scenario_volume == 0)
                    & (ScenarioItemRow.baseline_volume > 0)
                ),
                _tally(ScenarioItemRow.is_locally_adjusted.is_(True)),
                _tally(ScenarioItemRow.is_protected.is_(True)),
            ).where(ScenarioItemRow.scenario_id == scenario_id)
        )
        items, cut, excluded, adjusted, protected = result.one()
        return {
            "items": int(items),
            "cut": int(cut),
            "excluded": int(excluded),
            "locally_adjusted": int(adjusted),
            "protected": int(protected),
        }

    async def update_allocation(self, item_id: UUID, *, scenario_volume: int,
                                scenario_cost: float, is_cut: bool) -> ScenarioItemRow | None:
        row = await self.get(item_id)
        if row is not None:
            row.scenario_volume = scenario_volume
            row.scenario_cost = scenario_cost
            row.is_cut = is_cut
        return row

    async def apply_local_adjustment(self, item_id: UUID, *, scenario_volume: int,
                                     scenario_cost: float, reason: str,
                                     actor_id: UUID) -> ScenarioItemRow | None:
        row = await self.get(item_id)
        if row is not None:
            row.scenario_volume = scenario_volume
            row.scenario_cost = scenario_cost
            row.is_cut = scenario_volume < row.baseline_volume
            row.is_locally_adjusted = True
            row.local_adjustment_reason = reason
            row.local_adjustment_by = actor_id
            row.local_adjustment_at = utc_now()
            await self._session.flush()
        return row

    async def delete_by_scenario(self, scenario_id: UUID) -> int:
        result = await self._session.execute(
            delete(ScenarioItemRow).where(ScenarioItemRow.scenario_id == scenario_id)
        )
        return result.rowcount or 0


class ScenarioAuditRepository:
    """Append-only audit sink. No update or delete methods."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, *, scenario_id: UUID, action: str,
                     actor_id: UUID | None, details: dict | None = None) -> ScenarioAuditLogRow:
        row = ScenarioAuditLogRow(
            entry_id=new_uuid7(),
            scenario_id=scenario_id,
            action=action,
            actor_id=actor_id,
            details=details or {},
            created_at=utc_now(),
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_by_scenario(self, scenario_id: UUID) -> list[ScenarioAuditLogRow]:
        result = await self._session.execute(
            select(ScenarioAuditLogRow)
            .where(ScenarioAuditLogRow.scenario_id == scenario_id)
            .order_by(ScenarioAuditLogRow.created_at, ScenarioAuditLogRow.entry_id)
        )
        return list(result.scalars().all())
