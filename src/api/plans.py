"""FastAPI training plan endpoints.

POST /v1/plans             — create a plan with its items
GET  /v1/plans/{plan_id}   — plan with items in position order

Plans are owned by the planning module; these endpoints exist so a basis
plan can be registered and a promoted plan inspected.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.api.dependencies import get_actor_id, get_plan_item_repo, get_plan_repo
from src.db.tables import TrainingPlanItemRow
from src.models.common import PlanStatus, PriorityBand, new_uuid7
from src.models.plan import TrainingPlan, TrainingPlanItem
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository

router = APIRouter(prefix="/v1/plans", tags=["plans"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class PlanItemPayload(BaseModel):
    course_id: str | None = None
    course_name: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    category_id: str | None = None
    category_name: str | None = None
    planned_participants: int = Field(default=0, ge=0)
    planned_sessions: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0.0)
    cost_per_participant: float | None = Field(default=None, ge=0.0)
    priority: PriorityBand | None = None
    is_protected: bool = False
    is_abroad: bool = False


class CreatePlanRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=2000)
    period_id: str | None = None
    status: PlanStatus = PlanStatus.DRAFT
    version: int = Field(default=1, ge=1)
    items: list[PlanItemPayload] = Field(default_factory=list)


class PlanResponse(BaseModel):
    plan: TrainingPlan
    items: list[TrainingPlanItem]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=PlanResponse)
async def create_plan(
    body: CreatePlanRequest,
    actor_id: UUID = Depends(get_actor_id),
    plan_repo: TrainingPlanRepository = Depends(get_plan_repo),
    item_repo: TrainingPlanItemRepository = Depends(get_plan_item_repo),
) -> PlanResponse:
    """Register a plan. Totals are derived from the items."""
    plan_id = new_uuid7()
    plan_row = await plan_repo.create(
        plan_id=plan_id,
        name=body.name,
        description=body.description,
        period_id=body.period_id,
        status=body.status.value,
        version=body.version,
        created_by=actor_id,
        total_budget=sum(i.estimated_cost for i in body.items),
        total_participants=sum(i.planned_participants for i in body.items),
    )

    item_rows = [
        TrainingPlanItemRow(
            item_id=new_uuid7(),
            plan_id=plan_id,
            position=position,
            priority=item.priority.value if item.priority else None,
            status="planned",
            **item.model_dump(exclude={"priority"}),
        )
        for position, item in enumerate(body.items)
    ]
    if item_rows:
        await item_repo.create_many(item_rows)

    return PlanResponse(
        plan=TrainingPlan.model_validate(plan_row),
        items=[TrainingPlanItem.model_validate(r) for r in item_rows],
    )


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: UUID,
    plan_repo: TrainingPlanRepository = Depends(get_plan_repo),
    item_repo: TrainingPlanItemRepository = Depends(get_plan_item_repo),
) -> PlanResponse:
    plan_row = await plan_repo.get(plan_id)
    if plan_row is None:
        raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found.")
    items = await item_repo.get_by_plan(plan_id)
    return PlanResponse(
        plan=TrainingPlan.model_validate(plan_row),
        items=[TrainingPlanItem.model_validate(r) for r in items],
    )
