"""Training plan and plan item repositories."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import TrainingPlanItemRow, TrainingPlanRow
from src.models.common import utc_now


class TrainingPlanRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, plan_id: UUID, name: str, status: str,
                     version: int = 1, description: str = "",
                     period_id: str | None = None,
                     created_by: UUID | None = None,
                     total_budget: float = 0.0,
                     total_participants: int = 0) -> TrainingPlanRow:
        now = utc_now()
        row = TrainingPlanRow(
            plan_id=plan_id, name=name, description=description,
            period_id=period_id, status=status, version=version,
            created_by=created_by, total_budget=total_budget,
            total_participants=total_participants,
            created_at=now, updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, plan_id: UUID) -> TrainingPlanRow | None:
        return await self._session.get(TrainingPlanRow, plan_id)

    async def list_all(self) -> list[TrainingPlanRow]:
        result = await self._session.execute(
            select(TrainingPlanRow).order_by(TrainingPlanRow.created_at.desc())
        )
        return list(result.scalars().all())


class TrainingPlanItemRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_many(self, rows: list[TrainingPlanItemRow]) -> list[TrainingPlanItemRow]:
        created_at = utc_now()
        for row in rows:
            row.created_at = created_at
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    async def count_by_plan(self, plan_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(TrainingPlanItemRow)
            .where(TrainingPlanItemRow.plan_id == plan_id)
        )
        return int(result.scalar_one())

    async def get_by_plan(self, plan_id: UUID, *, offset: int = 0,
                          limit: int | None = None) -> list[TrainingPlanItemRow]:
        stmt = (
            select(TrainingPlanItemRow)
            .where(TrainingPlanItemRow.plan_id == plan_id)
            .order_by(TrainingPlanItemRow.position, TrainingPlanItemRow.item_id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
