"""FastAPI scenario endpoints.

POST   /v1/scenarios                                — create (snapshot a plan)
GET    /v1/scenarios                                — list (?basis_plan_id=)
POST   /v1/scenarios/compare                        — side-by-side totals
GET    /v1/scenarios/{id}                           — get / poll creation_progress
DELETE /v1/scenarios/{id}                           — delete (draft only)
PATCH  /v1/scenarios/{id}/status                    — status transition
POST   /v1/scenarios/{id}/recalculate               — run allocation with levers
GET    /v1/scenarios/{id}/items                     — paged line items
POST   /v1/scenarios/{id}/items/{item_id}/adjust    — local adjustment
POST   /v1/scenarios/{id}/promote                   — promote to a new plan
GET    /v1/scenarios/{id}/summary                   — headline figures
GET    /v1/scenarios/{id}/audit                     — audit trail
GET    /v1/scenarios/{id}/export                    — CSV / XLSX download

Writes require the X-Actor-Id header.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from src.api.dependencies import get_actor_id, get_scenario_service
from src.export.scenario_export import ExportFormat, ExportOptions
from src.models.common import PriorityBand, VisibilityScope
from src.models.scenario import (
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
)
from src.scenarios.errors import ConflictError, NotFoundError, ScenarioError, ValidationError
from src.scenarios.service import MAX_PAGE_SIZE, ScenarioService

router = APIRouter(prefix="/v1/scenarios", tags=["scenarios"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CreateScenarioRequest(BaseModel):
    basis_plan_id: UUID
    basis_plan_version: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=2000)
    visibility_scope: VisibilityScope = VisibilityScope.GLOBAL


class UpdateStatusRequest(BaseModel):
    status: ScenarioStatus


class AdjustLineRequest(BaseModel):
    new_volume: int = Field(..., ge=0, strict=True)
    reason: str | None = Field(default=None, max_length=2000)


class PromoteRequest(BaseModel):
    new_plan_name: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=2000)


class CompareRequest(BaseModel):
    scenario_ids: list[UUID] = Field(..., min_length=1)


class ScenarioListResponse(BaseModel):
    scenarios: list[PlanScenario]


class ItemsPageResponse(BaseModel):
    items: list[ScenarioItem]
    total: int
    page: int
    page_size: int


class CompareResponse(BaseModel):
    scenarios: list[ScenarioComparisonEntry]


class AuditTrailResponse(BaseModel):
    entries: list[ScenarioAuditEntry]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: ScenarioError) -> HTTPException:
    """Map a service error to its HTTP status."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=PlanScenario)
async def create_scenario(
    body: CreateScenarioRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> PlanScenario:
    """Snapshot a plan into a new scenario.

    Without a Celery broker the copy completes inline and the scenario comes
    back as draft; otherwise it is still creating and must be polled.
    """
    try:
        return await service.create_scenario(
            basis_plan_id=body.basis_plan_id,
            basis_plan_version=body.basis_plan_version,
            name=body.name,
            description=body.description,
            visibility_scope=body.visibility_scope,
            owner_id=actor_id,
        )
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.get("", response_model=ScenarioListResponse)
async def list_scenarios(
    basis_plan_id: UUID | None = Query(default=None),
    service: ScenarioService = Depends(get_scenario_service),
) -> ScenarioListResponse:
    """List scenarios, newest first."""
    return ScenarioListResponse(scenarios=await service.list_scenarios(basis_plan_id))


@router.post("/compare", response_model=CompareResponse)
async def compare_scenarios(
    body: CompareRequest,
    service: ScenarioService = Depends(get_scenario_service),
) -> CompareResponse:
    """Compare totals; differences are relative to the first id."""
    try:
        entries = await service.compare(body.scenario_ids)
    except ScenarioError as exc:
        raise _http_error(exc) from exc
    return CompareResponse(scenarios=entries)


@router.get("/{scenario_id}", response_model=PlanScenario)
async def get_scenario(
    scenario_id: UUID,
    service: ScenarioService = Depends(get_scenario_service),
) -> PlanScenario:
    try:
        return await service.get_scenario(scenario_id)
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.delete("/{scenario_id}", status_code=204)
async def delete_scenario(
    scenario_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> Response:
    try:
        await service.delete_scenario(scenario_id, actor_id=actor_id)
    except ScenarioError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.patch("/{scenario_id}/status", response_model=PlanScenario)
async def update_status(
    scenario_id: UUID,
    body: UpdateStatusRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> PlanScenario:
    try:
        return await service.update_status(scenario_id, body.status, actor_id=actor_id)
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.post("/{scenario_id}/recalculate", response_model=RecalculationResult)
async def recalculate(
    scenario_id: UUID,
    body: ScenarioLevers,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> RecalculationResult:
    """Apply levers to every line not locally adjusted."""
    try:
        return await service.recalculate(scenario_id, body, actor_id=actor_id)
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.get("/{scenario_id}/items", response_model=ItemsPageResponse)
async def list_items(
    scenario_id: UUID,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    priority_band: PriorityBand | None = Query(default=None),
    cut_only: bool = Query(default=False),
    service: ScenarioService = Depends(get_scenario_service),
) -> ItemsPageResponse:
    try:
        items, total = await service.list_items(
            scenario_id,
            page=page,
            page_size=page_size,
            priority_band=priority_band.value if priority_band else None,
            cut_only=cut_only,
        )
    except ScenarioError as exc:
        raise _http_error(exc) from exc
    return ItemsPageResponse(items=items, total=total, page=page, page_size=page_size)


@router.post("/{scenario_id}/items/{item_id}/adjust", response_model=AdjustmentResult)
async def adjust_line(
    scenario_id: UUID,
    item_id: UUID,
    body: AdjustLineRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> AdjustmentResult:
    """Override one line's volume. The line is then skipped by recalculation."""
    try:
        return await service.adjust_line(
            scenario_id,
            item_id,
            new_volume=body.new_volume,
            reason=body.reason,
            actor_id=actor_id,
        )
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.post("/{scenario_id}/promote", status_code=201, response_model=PromotionResult)
async def promote(
    scenario_id: UUID,
    body: PromoteRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> PromotionResult:
    try:
        return await service.promote(
            scenario_id,
            new_plan_name=body.new_plan_name,
            description=body.description,
            actor_id=actor_id,
        )
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.get("/{scenario_id}/summary", response_model=ScenarioSummary)
async def get_summary(
    scenario_id: UUID,
    service: ScenarioService = Depends(get_scenario_service),
) -> ScenarioSummary:
    try:
        return await service.summary(scenario_id)
    except ScenarioError as exc:
        raise _http_error(exc) from exc


@router.get("/{scenario_id}/audit", response_model=AuditTrailResponse)
async def get_audit_trail(
    scenario_id: UUID,
    service: ScenarioService = Depends(get_scenario_service),
) -> AuditTrailResponse:
    return AuditTrailResponse(entries=await service.list_audit(scenario_id))


@router.get("/{scenario_id}/export")
async def export_scenario(
    scenario_id: UUID,
    format: ExportFormat = Query(default=ExportFormat.CSV),
    include_baseline: bool = Query(default=True),
    include_deltas: bool = Query(default=True),
    include_costs: bool = Query(default=True),
    only_cut_items: bool = Query(default=False),
    actor_id: UUID = Depends(get_actor_id),
    service: ScenarioService = Depends(get_scenario_service),
) -> Response:
    """Download scenario items as CSV or XLSX."""
    options = ExportOptions(
        include_baseline=include_baseline,
        include_deltas=include_deltas,
        include_costs=include_costs,
        only_cut_items=only_cut_items,
    )
    try:
        content, media_type, filename = await service.export(
            scenario_id, fmt=format, options=options, actor_id=actor_id,
        )
    except ScenarioError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
