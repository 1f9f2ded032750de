"""Seed script — load a demo training plan into the database.

Creates:
1. A FY2026 corporate training plan (version 1, approved)
2. 12 plan lines across four entities and all four priority bands,
   including protected (compliance) and abroad lines
3. A draft "Budget -15%" scenario snapshotted from that plan

Idempotent: safe to run multiple times — skips if the demo plan already exists.

Usage:
    python -m scripts.seed          # against DATABASE_URL from .env
    pytest tests/scripts/test_seed.py  # against aiosqlite in-memory
"""

import asyncio
import sys
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from src.db.tables import TrainingPlanItemRow, TrainingPlanRow
from src.models.common import PlanStatus, PriorityBand
from src.models.plan import TrainingPlanItem
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios.service import ScenarioService

DEMO_PLAN_NAME = "FY2026 Corporate Training Plan (Demo)"
DEMO_PERIOD_ID = "FY2026"
DEMO_SCENARIO_NAME = "Budget -15%"

# Demo owner (stable so repeated seeds attribute to the same user)
DEMO_OWNER_ID = UUID("01890a5d-ac96-774b-b9aa-0a1b2c3d4e5f")

# ---------------------------------------------------------------------------
# Sample plan lines
# ---------------------------------------------------------------------------

SAMPLE_PLAN_ITEMS = [
    {"course_id": "HSE-101", "course_name": "Working at Heights", "entity_id": "OPS", "entity_name": "Operations", "category_id": "HSE", "category_name": "Health & Safety", "planned_participants": 120, "planned_sessions": 8, "estimated_cost": 36_000.0, "priority": "critical", "is_protected": True},
    {"course_id": "CMP-200", "course_name": "Anti-Bribery Compliance", "entity_id": "FIN", "entity_name": "Finance", "category_id": "COMPLIANCE", "category_name": "Regulatory Compliance", "planned_participants": 80, "planned_sessions": 4, "estimated_cost": 12_000.0, "priority": "critical"},
    {"course_id": "LDR-310", "course_name": "First-Line Leadership", "entity_id": "OPS", "entity_name": "Operations", "category_id": "LEADERSHIP", "category_name": "Leadership", "planned_participants": 40, "planned_sessions": 4, "estimated_cost": 60_000.0, "priority": "high"},
    {"course_id": "LDR-420", "course_name": "Executive Programme (INSEAD)", "entity_id": "HQ", "entity_name": "Head Office", "category_id": "LEADERSHIP", "category_name": "Leadership", "planned_participants": 6, "planned_sessions": 1, "estimated_cost": 90_000.0, "priority": "high", "is_abroad": True},
    {"course_id": "TEC-150", "course_name": "SAP S/4HANA Finance", "entity_id": "FIN", "entity_name": "Finance", "category_id": "TECHNICAL", "category_name": "Technical Skills", "planned_participants": 25, "planned_sessions": 3, "estimated_cost": 37_500.0, "priority": "high"},
    {"course_id": "TEC-220", "course_name": "PLC Programming", "entity_id": "OPS", "entity_name": "Operations", "category_id": "TECHNICAL", "category_name": "Technical Skills", "planned_participants": 30, "planned_sessions": 3, "estimated_cost": 45_000.0, "priority": "medium"},
    {"course_id": "TEC-305", "course_name": "Cloud Architecture Bootcamp", "entity_id": "IT", "entity_name": "Information Technology", "category_id": "TECHNICAL", "category_name": "Technical Skills", "planned_participants": 12, "planned_sessions": 2, "estimated_cost": 42_000.0, "priority": "medium", "is_abroad": True},
    {"course_id": "SFT-110", "course_name": "Business Writing", "entity_id": "HQ", "entity_name": "Head Office", "category_id": "SOFT", "category_name": "Soft Skills", "planned_participants": 60, "planned_sessions": 4, "estimated_cost": 15_000.0, "priority": "medium"},
    {"course_id": "SFT-140", "course_name": "Presentation Skills", "entity_id": "FIN", "entity_name": "Finance", "category_id": "SOFT", "category_name": "Soft Skills", "planned_participants": 45, "planned_sessions": 3, "estimated_cost": 13_500.0, "priority": "low"},
    {"course_id": "SFT-180", "course_name": "Time Management", "entity_id": "IT", "entity_name": "Information Technology", "category_id": "SOFT", "category_name": "Soft Skills", "planned_participants": 50, "planned_sessions": 2, "estimated_cost": 7_500.0, "priority": "low"},
    {"course_id": "LNG-010", "course_name": "Business English B2", "entity_id": "OPS", "entity_name": "Operations", "category_id": "LANGUAGE", "category_name": "Languages", "planned_participants": 35, "planned_sessions": 10, "estimated_cost": 28_000.0, "priority": "low"},
    {"course_id": "CNF-900", "course_name": "Industry Conference (Dubai)", "entity_id": "HQ", "entity_name": "Head Office", "category_id": "EVENTS", "category_name": "Conferences", "planned_participants": 8, "planned_sessions": 1, "estimated_cost": 32_000.0, "priority": "low", "is_abroad": True},
]


# ---------------------------------------------------------------------------
# Seed functions
# ---------------------------------------------------------------------------


async def seed_plan(session: AsyncSession) -> tuple[TrainingPlanRow, list[TrainingPlanItemRow]]:
    """Create the demo plan and its lines."""
    plan_repo = TrainingPlanRepository(session)
    item_repo = TrainingPlanItemRepository(session)

    plan_id = uuid7()
    # Validate through the domain model before writing rows
    items = [
        TrainingPlanItem(plan_id=plan_id, position=position, **line)
        for position, line in enumerate(SAMPLE_PLAN_ITEMS)
    ]

    plan_row = await plan_repo.create(
        plan_id=plan_id,
        name=DEMO_PLAN_NAME,
        description="Sample plan for local development and demos.",
        period_id=DEMO_PERIOD_ID,
        status=PlanStatus.APPROVED.value,
        version=1,
        created_by=DEMO_OWNER_ID,
        total_budget=sum(i.estimated_cost for i in items),
        total_participants=sum(i.planned_participants for i in items),
    )

    rows = [
        TrainingPlanItemRow(
            item_id=item.item_id,
            plan_id=plan_id,
            position=item.position,
            course_id=item.course_id,
            course_name=item.course_name,
            entity_id=item.entity_id,
            entity_name=item.entity_name,
            category_id=item.category_id,
            category_name=item.category_name,
            planned_participants=item.planned_participants,
            planned_sessions=item.planned_sessions,
            estimated_cost=item.estimated_cost,
            cost_per_participant=item.estimated_cost / item.planned_participants,
            priority=(item.priority or PriorityBand.MEDIUM).value,
            is_protected=item.is_protected,
            is_abroad=item.is_abroad,
            status=item.status,
        )
        for item in items
    ]
    await item_repo.create_many(rows)
    return plan_row, rows


async def seed_demo(session: AsyncSession) -> dict:
    """Idempotent demo seed: plan + lines + one draft scenario.

    Returns dict with keys: created (bool), plan_id, scenario_id.
    If the plan already exists, returns created=False and skips.
    """
    result = await session.execute(
        select(TrainingPlanRow).where(TrainingPlanRow.name == DEMO_PLAN_NAME),
    )
    existing = result.scalars().first()
    if existing is not None:
        return {"created": False, "plan_id": existing.plan_id, "scenario_id": None}

    plan_row, rows = await seed_plan(session)

    service = ScenarioService(
        session=session,
        plan_repo=TrainingPlanRepository(session),
        plan_item_repo=TrainingPlanItemRepository(session),
        scenario_repo=PlanScenarioRepository(session),
        item_repo=ScenarioItemRepository(session),
        audit_repo=ScenarioAuditRepository(session),
    )
    scenario = await service.create_scenario(
        basis_plan_id=plan_row.plan_id,
        basis_plan_version=plan_row.version,
        name=DEMO_SCENARIO_NAME,
        description="Trim 15% from the plan, lowest bands first.",
        owner_id=DEMO_OWNER_ID,
    )

    return {
        "created": True,
        "plan_id": plan_row.plan_id,
        "scenario_id": scenario.scenario_id,
        "plan_item_count": len(rows),
    }


async def _run_seed() -> None:
    """Entry point for `python -m scripts.seed`."""
    from src.db.session import async_session_factory

    async with async_session_factory() as session:
        summary = await seed_demo(session)
        await session.commit()

    if summary["created"]:
        print(f"Seeded demo plan {summary['plan_id']} "
              f"({summary['plan_item_count']} lines), scenario {summary['scenario_id']}")
    else:
        print(f"Demo plan already exists ({summary['plan_id']}); nothing to do.")


if __name__ == "__main__":
    asyncio.run(_run_seed())
    sys.exit(0)
