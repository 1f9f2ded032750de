"""FastAPI dependency injection factories for repositories and services.

Each factory takes AsyncSession via Depends(get_async_session) and returns
a repository instance. FastAPI caches the session per request, so every
repository of one request shares a single unit of work.
"""

from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.session import get_async_session
from src.repositories.plans import TrainingPlanItemRepository, TrainingPlanRepository
from src.repositories.scenarios import (
    PlanScenarioRepository,
    ScenarioAuditRepository,
    ScenarioItemRepository,
)
from src.scenarios.service import ScenarioService

# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


async def get_plan_repo(
    session: AsyncSession = Depends(get_async_session),
) -> TrainingPlanRepository:
    return TrainingPlanRepository(session)


async def get_plan_item_repo(
    session: AsyncSession = Depends(get_async_session),
) -> TrainingPlanItemRepository:
    return TrainingPlanItemRepository(session)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


async def get_scenario_repo(
    session: AsyncSession = Depends(get_async_session),
) -> PlanScenarioRepository:
    return PlanScenarioRepository(session)


async def get_scenario_item_repo(
    session: AsyncSession = Depends(get_async_session),
) -> ScenarioItemRepository:
    return ScenarioItemRepository(session)


async def get_scenario_audit_repo(
    session: AsyncSession = Depends(get_async_session),
) -> ScenarioAuditRepository:
    return ScenarioAuditRepository(session)


async def get_scenario_service(
    session: AsyncSession = Depends(get_async_session),
    plan_repo: TrainingPlanRepository = Depends(get_plan_repo),
    plan_item_repo: TrainingPlanItemRepository = Depends(get_plan_item_repo),
    scenario_repo: PlanScenarioRepository = Depends(get_scenario_repo),
    item_repo: ScenarioItemRepository = Depends(get_scenario_item_repo),
    audit_repo: ScenarioAuditRepository = Depends(get_scenario_audit_repo),
) -> ScenarioService:
    return ScenarioService(
        session=session,
        plan_repo=plan_repo,
        plan_item_repo=plan_item_repo,
        scenario_repo=scenario_repo,
        item_repo=item_repo,
        audit_repo=audit_repo,
    )


# ---------------------------------------------------------------------------
# Acting user
# ---------------------------------------------------------------------------


async def get_actor_id(
    x_actor_id: str = Header(..., alias="X-Actor-Id"),
) -> UUID:
    """Acting user from the X-Actor-Id header, trusted as authenticated upstream."""
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=422,
            detail="X-Actor-Id must be a UUID.",
        ) from None
