"""Scenario service — orchestrates snapshot, allocation, adjustment, promotion.

Every public method runs inside the caller's unit of work (one request,
one session). Repositories only flush; the session dependency commits on
success and rolls back on any exception, so a recalculation either lands
on every line or on none.

Writers lock the scenario row (SELECT ... FOR UPDATE on PostgreSQL) and
the row's lock_version is checked on every flush. A writer that loses a
race gets ConflictError.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.config.settings import get_settings
from src.db.tables import PlanScenarioRow, ScenarioItemRow, TrainingPlanItemRow
from src.engine.allocation import AllocationEngine, AllocationLine, LineOutcome
from src.export.scenario_export import (
    MEDIA_TYPES,
    ExportFormat,
    ExportOptions,
    ScenarioExcelExporter,
    export_headers,
    export_rows,
    to_csv,
)
from src.models.common import AuditAction, PlanStatus, VisibilityScope, new_uuid7, utc_now
from src.models.scenario import (
    SNAPSHOT_FAILED_PROGRESS,
    TERMINAL_STATUSES,
    VALID_STATUS_TRANSITIONS,
    AdjustmentResult,
    PlanScenario,
    PromotionResult,
    RecalculationResult,
    ScenarioAuditEntry,
    ScenarioComparisonEntry,
    ScenarioItem,
    ScenarioLevers,
    ScenarioStatus,
    ScenarioSummary,
    build_comparison,
    build_summary,
)
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios.errors import ConflictError, NotFoundError, ValidationError
from src.scenarios.tasks import dispatch_snapshot, run_snapshot

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


def _to_line(item: ScenarioItemRow) -> AllocationLine:
    return AllocationLine(
        item_id=item.item_id,
        priority_band=item.priority_band,
        baseline_volume=item.baseline_volume,
        baseline_cost=item.baseline_cost,
        baseline_cost_per_participant=item.baseline_cost_per_participant,
        scenario_volume=item.scenario_volume,
        scenario_cost=item.scenario_cost,
        is_protected=item.is_protected,
        is_abroad=item.is_abroad,
        is_locally_adjusted=item.is_locally_adjusted,
        category_id=item.category_id,
        entity_id=item.entity_id,
    )


@contextmanager
def _conflict_on_stale(scenario_id: UUID) -> Iterator[None]:
    try:
        yield
    except StaleDataError as exc:
        raise ConflictError(
            f"Scenario {scenario_id} was modified concurrently; retry."
        ) from exc


class ScenarioService:
    """Business operations over scenario workspaces."""

    def __init__(
        self,
        *,
        session: AsyncSession,
        plan_repo: TrainingPlanRepository,
        plan_item_repo: TrainingPlanItemRepository,
        scenario_repo: PlanScenarioRepository,
        item_repo: ScenarioItemRepository,
        audit_repo: ScenarioAuditRepository,
        engine: AllocationEngine | None = None,
    ) -> None:
        self._session = session
        self._plan_repo = plan_repo
        self._plan_item_repo = plan_item_repo
        self._scenario_repo = scenario_repo
        self._item_repo = item_repo
        self._audit_repo = audit_repo
        self._engine = engine or AllocationEngine()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def _load(self, scenario_id: UUID) -> PlanScenarioRow:
        row = await self._scenario_repo.get(scenario_id)
        if row is None:
            raise NotFoundError("Scenario", scenario_id)
        return row

    async def _load_for_write(self, scenario_id: UUID) -> PlanScenarioRow:
        row = await self._scenario_repo.get_for_update(scenario_id)
        if row is None:
            raise NotFoundError("Scenario", scenario_id)
        return row

    @staticmethod
    def _require_snapshot(row: PlanScenarioRow) -> None:
        if row.status == ScenarioStatus.CREATING:
            raise ConflictError(f"Scenario {row.scenario_id} is still being created.")
        if row.creation_progress == SNAPSHOT_FAILED_PROGRESS:
            raise ConflictError(
                f"Scenario {row.scenario_id} snapshot is incomplete; recreate it."
            )

    @staticmethod
    def _require_editable(row: PlanScenarioRow) -> None:
        if row.status in TERMINAL_STATUSES:
            raise ConflictError(
                f"Scenario {row.scenario_id} is {row.status} and can no longer change."
            )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def create_scenario(
        self,
        *,
        basis_plan_id: UUID,
        basis_plan_version: int,
        name: str,
        owner_id: UUID,
        description: str = "",
        visibility_scope: VisibilityScope = VisibilityScope.GLOBAL,
    ) -> PlanScenario:
        """Create the workspace row and copy the basis plan into it.

        With a Celery broker the copy is dispatched and the returned
        scenario is still CREATING; callers poll creation_progress.
        """
        plan = await self._plan_repo.get(basis_plan_id)
        if plan is None:
            raise NotFoundError("Plan", basis_plan_id)
        if plan.version != basis_plan_version:
            raise ValidationError(
                f"Plan {basis_plan_id} is at version {plan.version}, "
                f"not {basis_plan_version}.",
                details={"current_version": plan.version},
            )

        scenario_id = new_uuid7()
        await self._scenario_repo.create(
            scenario_id=scenario_id,
            name=name,
            description=description,
            basis_plan_id=basis_plan_id,
            basis_plan_version=basis_plan_version,
            owner_id=owner_id,
            status=ScenarioStatus.CREATING.value,
            visibility_scope=visibility_scope.value,
        )
        await self._audit_repo.append(
            scenario_id=scenario_id,
            action=AuditAction.CREATED,
            actor_id=owner_id,
            details={"plan_id": str(basis_plan_id), "plan_version": basis_plan_version},
        )

        settings = get_settings()
        if settings.CELERY_BROKER_URL:
            # The worker reads the row from its own session.
            await self._session.commit()
            dispatch_snapshot(scenario_id=scenario_id, basis_plan_id=basis_plan_id)
        else:
            await run_snapshot(
                scenario_id=scenario_id,
                basis_plan_id=basis_plan_id,
                session=self._session,
                scenario_repo=self._scenario_repo,
                plan_item_repo=self._plan_item_repo,
                item_repo=self._item_repo,
            )

        return PlanScenario.model_validate(await self._load(scenario_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_scenario(self, scenario_id: UUID) -> PlanScenario:
        return PlanScenario.model_validate(await self._load(scenario_id))

    async def list_scenarios(self, basis_plan_id: UUID | None = None) -> list[PlanScenario]:
        rows = await self._scenario_repo.list_all(basis_plan_id)
        return [PlanScenario.model_validate(r) for r in rows]

    async def list_items(
        self,
        scenario_id: UUID,
        *,
        page: int = 1,
        page_size: int = 50,
        priority_band: str | None = None,
        cut_only: bool = False,
    ) -> tuple[list[ScenarioItem], int]:
        """One page of items in position order, plus the filtered total."""
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        await self._load(scenario_id)

        rows, total = await self._item_repo.get_page(
            scenario_id,
            offset=(page - 1) * page_size,
            limit=page_size,
            priority_band=priority_band,
            cut_only=cut_only,
        )
        return [ScenarioItem.model_validate(r) for r in rows], total

    async def summary(self, scenario_id: UUID) -> ScenarioSummary:
        row = await self._load(scenario_id)
        counts = await self._item_repo.counts(scenario_id)
        return build_summary(PlanScenario.model_validate(row), counts)

    async def compare(self, scenario_ids: list[UUID]) -> list[ScenarioComparisonEntry]:
        """Totals side by side, in the order requested."""
        if not scenario_ids:
            raise ValidationError("At least one scenario id is required.")
        rows = {r.scenario_id: r for r in await self._scenario_repo.get_many(scenario_ids)}
        missing = [sid for sid in scenario_ids if sid not in rows]
        if missing:
            raise NotFoundError("Scenario", missing[0])
        return build_comparison([PlanScenario.model_validate(rows[sid]) for sid in scenario_ids])

    async def list_audit(self, scenario_id: UUID) -> list[ScenarioAuditEntry]:
        """Audit trail in insertion order. Survives scenario deletion."""
        rows = await self._audit_repo.list_by_scenario(scenario_id)
        return [ScenarioAuditEntry.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    async def recalculate(
        self,
        scenario_id: UUID,
        levers: ScenarioLevers,
        *,
        actor_id: UUID,
    ) -> RecalculationResult:
        """Persist levers, run one allocation pass, refresh aggregates."""
        with _conflict_on_stale(scenario_id):
            row = await self._load_for_write(scenario_id)
            self._require_snapshot(row)
            self._require_editable(row)

            levers_json = levers.model_dump(mode="json")
            await self._scenario_repo.set_levers(scenario_id, levers_json)

            items = await self._item_repo.get_by_scenario(scenario_id)
            result = self._engine.allocate(
                [_to_line(i) for i in items],
                levers,
                baseline_total_cost=row.baseline_total_cost or 0.0,
            )

            updated = 0
            for alloc in result.allocations:
                if alloc.outcome == LineOutcome.LOCKED:
                    continue
                await self._item_repo.update_allocation(
                    alloc.item_id,
                    scenario_volume=alloc.scenario_volume,
                    scenario_cost=alloc.scenario_cost,
                    is_cut=alloc.is_cut,
                )
                updated += 1

            total_cost, total_participants = await self._item_repo.totals(scenario_id)
            await self._scenario_repo.set_aggregates(
                scenario_id,
                total_cost=total_cost,
                total_participants=total_participants,
                recalculated_at=utc_now(),
            )
            await self._audit_repo.append(
                scenario_id=scenario_id,
                action=AuditAction.RECALCULATED,
                actor_id=actor_id,
                details={
                    "levers": levers_json,
                    "total_cost": total_cost,
                    "total_participants": total_participants,
                    "warnings": result.warnings,
                },
            )

        logger.info(
            "Recalculated scenario %s: %d items updated, total cost %.2f",
            scenario_id, updated, total_cost,
        )
        return RecalculationResult(
            total_cost=total_cost,
            total_participants=total_participants,
            items_updated=updated,
            target_budget=result.target_budget,
            warnings=result.warnings,
        )

    async def adjust_line(
        self,
        scenario_id: UUID,
        item_id: UUID,
        *,
        new_volume: int,
        reason: str | None,
        actor_id: UUID,
    ) -> AdjustmentResult:
        """Set one line's volume by hand and lock it against later passes."""
        with _conflict_on_stale(scenario_id):
            row = await self._load_for_write(scenario_id)
            self._require_snapshot(row)
            self._require_editable(row)

            item = await self._item_repo.get(item_id)
            if item is None or item.scenario_id != scenario_id:
                raise NotFoundError("Scenario item", item_id)

            if isinstance(new_volume, bool) or not isinstance(new_volume, int):
                raise ValidationError("new_volume must be an integer.")
            if new_volume < 0:
                raise ValidationError("new_volume must not be negative.")
            reason = (reason or "").strip()
            if new_volume > item.scenario_volume and not reason:
                raise ValidationError(
                    "A reason is required when increasing a line's volume.",
                    details={"current_volume": item.scenario_volume},
                )

            new_cost = new_volume * (item.baseline_cost_per_participant or 0)
            await self._item_repo.apply_local_adjustment(
                item_id,
                scenario_volume=new_volume,
                scenario_cost=new_cost,
                reason=reason,
                actor_id=actor_id,
            )

            total_cost, total_participants = await self._item_repo.totals(scenario_id)
            await self._scenario_repo.set_aggregates(
                scenario_id,
                total_cost=total_cost,
                total_participants=total_participants,
            )
            await self._audit_repo.append(
                scenario_id=scenario_id,
                action=AuditAction.LOCAL_ADJUSTMENT,
                actor_id=actor_id,
                details={"item_id": str(item_id), "new_volume": new_volume, "reason": reason},
            )

        return AdjustmentResult(item_id=item_id, new_volume=new_volume, new_cost=new_cost)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def update_status(
        self,
        scenario_id: UUID,
        status: ScenarioStatus,
        *,
        actor_id: UUID,
    ) -> PlanScenario:
        with _conflict_on_stale(scenario_id):
            row = await self._load_for_write(scenario_id)
            current = ScenarioStatus(row.status)
            if status not in VALID_STATUS_TRANSITIONS[current]:
                raise ConflictError(
                    f"Cannot move scenario {scenario_id} from {current} to {status}."
                )
            await self._scenario_repo.update_status(scenario_id, status.value)
            await self._audit_repo.append(
                scenario_id=scenario_id,
                action=AuditAction.STATUS_CHANGED,
                actor_id=actor_id,
                details={"from": current.value, "to": status.value},
            )
        return PlanScenario.model_validate(row)

    async def delete_scenario(self, scenario_id: UUID, *, actor_id: UUID) -> None:
        """Delete a draft scenario and its items. The audit trail is kept."""
        with _conflict_on_stale(scenario_id):
            row = await self._load_for_write(scenario_id)
            if row.status != ScenarioStatus.DRAFT:
                raise ConflictError(
                    f"Only draft scenarios can be deleted; {scenario_id} is {row.status}."
                )
            await self._audit_repo.append(
                scenario_id=scenario_id,
                action=AuditAction.DELETED,
                actor_id=actor_id,
                details={"name": row.name, "basis_plan_id": str(row.basis_plan_id)},
            )
            deleted_items = await self._item_repo.delete_by_scenario(scenario_id)
            await self._scenario_repo.delete(scenario_id)
        logger.info("Deleted scenario %s (%d items)", scenario_id, deleted_items)

    async def promote(
        self,
        scenario_id: UUID,
        *,
        new_plan_name: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> PromotionResult:
        """Materialise the scenario as a new draft plan version."""
        with _conflict_on_stale(scenario_id):
            row = await self._load_for_write(scenario_id)
            if row.promoted_to_plan_id is not None:
                raise ConflictError(
                    f"Scenario {scenario_id} was already promoted to plan "
                    f"{row.promoted_to_plan_id}."
                )
            if row.status == ScenarioStatus.ARCHIVED:
                raise ConflictError(f"Scenario {scenario_id} is archived.")
            self._require_snapshot(row)

            basis = await self._plan_repo.get(row.basis_plan_id)
            if basis is None:
                raise NotFoundError("Plan", row.basis_plan_id)

            new_plan_id = new_uuid7()
            await self._plan_repo.create(
                plan_id=new_plan_id,
                name=new_plan_name,
                description=description or f"Promoted from: {scenario_id}",
                period_id=basis.period_id,
                status=PlanStatus.DRAFT.value,
                version=basis.version + 1,
                created_by=actor_id,
                total_budget=row.scenario_total_cost or 0.0,
                total_participants=row.scenario_total_participants or 0,
            )

            items = await self._item_repo.get_by_scenario(scenario_id)
            plan_items = [
                TrainingPlanItemRow(
                    item_id=new_uuid7(),
                    plan_id=new_plan_id,
                    position=position,
                    course_id=item.course_id,
                    course_name=item.course_name,
                    entity_id=item.entity_id,
                    entity_name=item.entity_name,
                    category_id=item.category_id,
                    category_name=item.category_name,
                    planned_participants=item.scenario_volume,
                    planned_sessions=item.scenario_sessions,
                    estimated_cost=item.scenario_cost,
                    cost_per_participant=item.baseline_cost_per_participant,
                    priority=item.priority_band,
                    is_protected=item.is_protected,
                    is_abroad=item.is_abroad,
                    status="planned",
                )
                for position, item in enumerate(i for i in items if i.scenario_volume > 0)
            ]
            if plan_items:
                await self._plan_item_repo.create_many(plan_items)

            await self._scenario_repo.mark_promoted(
                scenario_id, plan_id=new_plan_id, actor_id=actor_id,
            )
            await self._audit_repo.append(
                scenario_id=scenario_id,
                action=AuditAction.PROMOTED,
                actor_id=actor_id,
                details={"new_plan_id": str(new_plan_id), "items_promoted": len(plan_items)},
            )

        logger.info(
            "Promoted scenario %s to plan %s (%d items)",
            scenario_id, new_plan_id, len(plan_items),
        )
        return PromotionResult(
            new_plan_id=new_plan_id,
            new_plan_name=new_plan_name,
            items_promoted=len(plan_items),
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export(
        self,
        scenario_id: UUID,
        *,
        fmt: ExportFormat,
        options: ExportOptions,
        actor_id: UUID | None,
    ) -> tuple[bytes, str, str]:
        """Render items. Returns (content, media type, filename)."""
        scenario = PlanScenario.model_validate(await self._load(scenario_id))
        items = [
            ScenarioItem.model_validate(r)
            for r in await self._item_repo.get_by_scenario(scenario_id)
        ]
        rows = export_rows(items, options)
        headers = export_headers(options)

        if fmt == ExportFormat.XLSX:
            content = ScenarioExcelExporter().export(scenario, rows, headers, options)
        else:
            content = to_csv(rows, headers)

        await self._audit_repo.append(
            scenario_id=scenario_id,
            action=AuditAction.EXPORTED,
            actor_id=actor_id,
            details={
                "format": fmt.value,
                "rows": len(rows),
                "include_baseline": options.include_baseline,
                "include_deltas": options.include_deltas,
                "include_costs": options.include_costs,
                "only_cut_items": options.only_cut_items,
            },
        )
        filename = f"scenario-{scenario_id}.{fmt.value}"
        return content, MEDIA_TYPES[fmt], filename
