"""Initial schema — training plans, scenarios, scenario items, audit log.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Source plans --
    op.create_table(
        "training_plans",
        sa.Column("plan_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("period_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("version", sa.Integer, server_default="1", nullable=False),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("total_budget", sa.Float, server_default="0", nullable=False),
        sa.Column("total_participants", sa.Integer, server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "training_plan_items",
        sa.Column("item_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("plan_id", UUID(as_uuid=True),
                  sa.ForeignKey("training_plans.plan_id"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("course_id", sa.String(100), nullable=True),
        sa.Column("course_name", sa.String(500), nullable=True),
        sa.Column("entity_id", sa.String(100), nullable=True),
        sa.Column("entity_name", sa.String(500), nullable=True),
        sa.Column("category_id", sa.String(100), nullable=True),
        sa.Column("category_name", sa.String(500), nullable=True),
        sa.Column("planned_participants", sa.Integer, server_default="0", nullable=False),
        sa.Column("planned_sessions", sa.Integer, server_default="0", nullable=False),
        sa.Column("estimated_cost", sa.Float, server_default="0", nullable=False),
        sa.Column("cost_per_participant", sa.Float, nullable=True),
        sa.Column("priority", sa.String(20), nullable=True),
        sa.Column("is_protected", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("is_abroad", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("status", sa.String(50), server_default="planned", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_training_plan_items_plan_id", "training_plan_items", ["plan_id"])

    # -- Scenarios (OPERATIONAL) --
    op.create_table(
        "plan_scenarios",
        sa.Column("scenario_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("basis_plan_id", UUID(as_uuid=True),
                  sa.ForeignKey("training_plans.plan_id"), nullable=False),
        sa.Column("basis_plan_version", sa.Integer, nullable=False),
        sa.Column("owner_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("visibility_scope", sa.String(50), nullable=False),
        sa.Column("creation_progress", sa.Integer, server_default="0", nullable=False),
        sa.Column("baseline_total_cost", sa.Float, nullable=True),
        sa.Column("scenario_total_cost", sa.Float, nullable=True),
        sa.Column("baseline_total_participants", sa.Integer, nullable=True),
        sa.Column("scenario_total_participants", sa.Integer, nullable=True),
        sa.Column("global_budget_type", sa.String(20), nullable=True),
        sa.Column("global_budget_value", sa.Float, nullable=True),
        sa.Column("include_priority_bands", JSONB, nullable=True),
        sa.Column("cut_order", JSONB, nullable=True),
        sa.Column("protected_categories", JSONB, nullable=True),
        sa.Column("cut_abroad_first", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("entity_caps", JSONB, nullable=True),
        sa.Column("allocation_strategy", sa.String(50), nullable=True),
        sa.Column("last_recalculation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoted_to_plan_id", UUID(as_uuid=True), nullable=True),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoted_by", UUID(as_uuid=True), nullable=True),
        sa.Column("lock_version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_plan_scenarios_basis_plan_id", "plan_scenarios", ["basis_plan_id"])

    op.create_table(
        "scenario_items",
        sa.Column("item_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scenario_id", UUID(as_uuid=True),
                  sa.ForeignKey("plan_scenarios.scenario_id"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("source_plan_item_id", UUID(as_uuid=True), nullable=True),
        sa.Column("course_id", sa.String(100), nullable=True),
        sa.Column("course_name", sa.String(500), nullable=True),
        sa.Column("entity_id", sa.String(100), nullable=True),
        sa.Column("entity_name", sa.String(500), nullable=True),
        sa.Column("category_id", sa.String(100), nullable=True),
        sa.Column("category_name", sa.String(500), nullable=True),
        sa.Column("priority_band", sa.String(20), nullable=False),
        sa.Column("baseline_volume", sa.Integer, nullable=False),
        sa.Column("baseline_sessions", sa.Integer, nullable=False),
        sa.Column("baseline_cost", sa.Float, nullable=False),
        sa.Column("baseline_cost_per_participant", sa.Float, nullable=True),
        sa.Column("scenario_volume", sa.Integer, nullable=False),
        sa.Column("scenario_sessions", sa.Integer, nullable=False),
        sa.Column("scenario_cost", sa.Float, nullable=False),
        sa.Column("is_protected", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("is_abroad", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("is_cut", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("is_locally_adjusted", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("local_adjustment_reason", sa.Text, nullable=True),
        sa.Column("local_adjustment_by", UUID(as_uuid=True), nullable=True),
        sa.Column("local_adjustment_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("scenario_id", "position", name="uq_scenario_item_position"),
    )
    op.create_index("ix_scenario_items_scenario_id", "scenario_items", ["scenario_id"])

    # -- Audit (APPEND-ONLY, no FK) --
    op.create_table(
        "scenario_audit_log",
        sa.Column("entry_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scenario_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("details", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_scenario_audit_log_scenario_id", "scenario_audit_log", ["scenario_id"])


def downgrade() -> None:
    op.drop_index("ix_scenario_audit_log_scenario_id", table_name="scenario_audit_log")
    op.drop_table("scenario_audit_log")
    op.drop_index("ix_scenario_items_scenario_id", table_name="scenario_items")
    op.drop_table("scenario_items")
    op.drop_index("ix_plan_scenarios_basis_plan_id", table_name="plan_scenarios")
    op.drop_table("plan_scenarios")
    op.drop_index("ix_training_plan_items_plan_id", table_name="training_plan_items")
    op.drop_table("training_plan_items")
    op.drop_table("training_plans")
