"""Training plan models — the source a scenario is snapshotted from."""

from uuid import UUID

from pydantic import Field

from src.models.common import (
    PlanStatus,
    PlannerBase,
    PriorityBand,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class TrainingPlanItem(PlannerBase):
    """A course line of a plan with planned volume and cost."""

    model_config = {**PlannerBase.model_config, "from_attributes": True}

    item_id: UUIDv7 = Field(default_factory=new_uuid7)
    plan_id: UUID
    position: int = Field(..., ge=0)
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
    status: str = "planned"


class TrainingPlan(PlannerBase):
    """A versioned training plan. Scenarios point at (plan_id, version)."""

    model_config = {**PlannerBase.model_config, "from_attributes": True}

    plan_id: UUIDv7 = Field(default_factory=new_uuid7)
    name: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=2000)
    period_id: str | None = None
    status: PlanStatus = Field(default=PlanStatus.DRAFT)
    version: int = Field(default=1, ge=1)
    created_by: UUID | None = None
    total_budget: float = Field(default=0.0, ge=0.0)
    total_participants: int = Field(default=0, ge=0)
    created_at: UTCTimestamp = Field(default_factory=utc_now)
    updated_at: UTCTimestamp = Field(default_factory=utc_now)
