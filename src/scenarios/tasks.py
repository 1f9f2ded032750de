"""Celery async tasks for scenario snapshots.

When CELERY_BROKER_URL is configured, the plan copy runs in a Celery worker.
When empty (dev/test), the copy runs synchronously inline.

The run_snapshot function contains the shared logic used by both paths.
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import get_settings
from src.repositories.plans import TrainingPlanItemRepository
from src.repositories.scenarios import PlanScenarioRepository, ScenarioItemRepository
from src.scenarios.snapshot import ScenarioSnapshotBuilder

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Celery app (lazy init — only created if broker URL is configured)
# ---------------------------------------------------------------------------

_celery_app = None


def get_celery_app():
    """Get or create the Celery application."""
    global _celery_app
    if _celery_app is None:
        from celery import Celery

        settings = get_settings()
        broker_url = settings.CELERY_BROKER_URL or settings.REDIS_URL
        _celery_app = Celery(
            "training_scenarios",
            broker=broker_url,
            backend=broker_url,
        )
        _celery_app.conf.task_serializer = "json"
        _celery_app.conf.result_serializer = "json"
    return _celery_app


# ---------------------------------------------------------------------------
# Shared snapshot logic
# ---------------------------------------------------------------------------


async def run_snapshot(
    *,
    scenario_id: UUID,
    basis_plan_id: UUID,
    session: AsyncSession,
    scenario_repo: PlanScenarioRepository,
    plan_item_repo: TrainingPlanItemRepository,
    item_repo: ScenarioItemRepository,
    commit_batches: bool = False,
) -> int:
    """Copy the basis plan into the scenario.

    Called inline by the service (the request's unit of work commits) and
    by the Celery task (own session, committed per batch).

    Returns:
        Final creation_progress (100 on success, -1 on failure).
    """
    settings = get_settings()
    builder = ScenarioSnapshotBuilder(
        session=session,
        scenario_repo=scenario_repo,
        plan_item_repo=plan_item_repo,
        item_repo=item_repo,
        batch_size=settings.SNAPSHOT_BATCH_SIZE,
        commit_batches=commit_batches,
    )
    return await builder.build(scenario_id=scenario_id, basis_plan_id=basis_plan_id)


# ---------------------------------------------------------------------------
# Celery task wrapper
# ---------------------------------------------------------------------------


def _celery_snapshot_task(scenario_id_str: str, basis_plan_id_str: str) -> int:
    """Celery task that copies a plan in a worker process.

    Creates its own async session; the builder commits after every batch.
    """
    from src.db.session import async_session_factory

    async def _run() -> int:
        async with async_session_factory() as session:
            return await run_snapshot(
                scenario_id=UUID(scenario_id_str),
                basis_plan_id=UUID(basis_plan_id_str),
                scenario_repo=PlanScenarioRepository(session),
                plan_item_repo=TrainingPlanItemRepository(session),
                item_repo=ScenarioItemRepository(session),
                session=session,
                commit_batches=True,
            )

    return asyncio.run(_run())


def dispatch_snapshot(*, scenario_id: UUID, basis_plan_id: UUID) -> None:
    """Dispatch the plan copy to a Celery worker.

    Serializes ids as strings for JSON transport.
    """
    app = get_celery_app()
    task = app.task(name="training_scenarios.snapshot")(_celery_snapshot_task)
    task.delay(str(scenario_id), str(basis_plan_id))
    logger.info("Dispatched snapshot of plan %s into scenario %s", basis_plan_id, scenario_id)
