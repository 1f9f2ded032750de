"""SQLAlchemy ORM table models for the scenario service.

All tables defined in a single file. Uses FlexJSON (JSONB on Postgres,
JSON on SQLite) for lever lists and audit payloads.

Categories:
- SOURCE: TrainingPlan, TrainingPlanItem (owned by the planning module;
          the scenario engine reads them and only ever inserts new plans
          on promotion)
- OPERATIONAL: PlanScenario, ScenarioItem (mutated by recalculation and
               local adjustments)
- APPEND-ONLY: ScenarioAuditLog
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from src.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")


# ---------------------------------------------------------------------------
# Source plans
# ---------------------------------------------------------------------------


class TrainingPlanRow(Base):
    __tablename__ = "training_plans"

    plan_id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    period_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    total_budget: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TrainingPlanItemRow(Base):
    """One course line of a plan, optionally scoped to an entity/category."""

    __tablename__ = "training_plan_items"

    item_id: Mapped[UUID] = mapped_column(primary_key=True)
    plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("training_plans.plan_id"), nullable=False, index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    course_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    planned_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    planned_sessions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cost_per_participant: Mapped[float | None] = mapped_column(Float, nullable=True)
    priority: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_abroad: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="planned", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Scenarios — OPERATIONAL
# ---------------------------------------------------------------------------


class PlanScenarioRow(Base):
    """Scenario workspace: an isolated what-if copy of a plan.

    lock_version is the optimistic-concurrency token. Every ORM update of
    the row checks and bumps it, so two interleaved writers on the same
    scenario cannot both commit.
    """

    __tablename__ = "plan_scenarios"

    scenario_id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    basis_plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("training_plans.plan_id"), nullable=False, index=True,
    )
    basis_plan_version: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    visibility_scope: Mapped[str] = mapped_column(String(50), nullable=False)
    creation_progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    baseline_total_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    scenario_total_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    baseline_total_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scenario_total_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Levers persisted for audit / resume
    global_budget_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    global_budget_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    include_priority_bands = mapped_column(FlexJSON, nullable=True)
    cut_order = mapped_column(FlexJSON, nullable=True)
    protected_categories = mapped_column(FlexJSON, nullable=True)
    cut_abroad_first: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    entity_caps = mapped_column(FlexJSON, nullable=True)
    allocation_strategy: Mapped[str | None] = mapped_column(String(50), nullable=True)

    last_recalculation_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    promoted_to_plan_id: Mapped[UUID | None] = mapped_column(nullable=True)
    promoted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    promoted_by: Mapped[UUID | None] = mapped_column(nullable=True)

    lock_version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __mapper_args__ = {"version_id_col": lock_version}


class ScenarioItemRow(Base):
    """Scenario line item. Baseline columns are written once at snapshot time."""

    __tablename__ = "scenario_items"
    __table_args__ = (
        UniqueConstraint("scenario_id", "position", name="uq_scenario_item_position"),
    )

    item_id: Mapped[UUID] = mapped_column(primary_key=True)
    scenario_id: Mapped[UUID] = mapped_column(
        ForeignKey("plan_scenarios.scenario_id"), nullable=False, index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    source_plan_item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    course_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    course_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    priority_band: Mapped[str] = mapped_column(String(20), nullable=False)

    baseline_volume: Mapped[int] = mapped_column(Integer, nullable=False)
    baseline_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    baseline_cost: Mapped[float] = mapped_column(Float, nullable=False)
    baseline_cost_per_participant: Mapped[float | None] = mapped_column(Float, nullable=True)

    scenario_volume: Mapped[int] = mapped_column(Integer, nullable=False)
    scenario_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    scenario_cost: Mapped[float] = mapped_column(Float, nullable=False)

    is_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_abroad: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_cut: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_locally_adjusted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    local_adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    local_adjustment_by: Mapped[UUID | None] = mapped_column(nullable=True)
    local_adjustment_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )


# ---------------------------------------------------------------------------
# Audit — APPEND-ONLY
# ---------------------------------------------------------------------------


class ScenarioAuditLogRow(Base):
    """Append-only action record. No FK so entries outlive a deleted scenario."""

    __tablename__ = "scenario_audit_log"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True)
    scenario_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    details = mapped_column(FlexJSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
