"""Shared types, enums, and base models used across scenario domain models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]


# --- Shared enums ---


class PriorityBand(StrEnum):
    """Coarse urgency classification of a plan line."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


ALL_PRIORITY_BANDS: tuple[PriorityBand, ...] = (
    PriorityBand.CRITICAL,
    PriorityBand.HIGH,
    PriorityBand.MEDIUM,
    PriorityBand.LOW,
)

# Bands that absorb cuts first come first.
DEFAULT_CUT_ORDER: tuple[PriorityBand, ...] = (
    PriorityBand.LOW,
    PriorityBand.MEDIUM,
    PriorityBand.HIGH,
    PriorityBand.CRITICAL,
)


class BudgetType(StrEnum):
    """How a budget cap value is interpreted."""

    PERCENTAGE = "percentage"
    ABSOLUTE = "absolute"


class VisibilityScope(StrEnum):
    """Who can see a scenario."""

    GLOBAL = "global"
    ENTITY = "entity"
    RESTRICTED = "restricted"


class PlanStatus(StrEnum):
    """Lifecycle status of a training plan."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    ACTIVE = "active"
    CLOSED = "closed"


class AuditAction(StrEnum):
    """Actions recorded in the scenario audit trail."""

    CREATED = "created"
    RECALCULATED = "recalculated"
    LOCAL_ADJUSTMENT = "local_adjustment"
    PROMOTED = "promoted"
    STATUS_CHANGED = "status_changed"
    EXPORTED = "exported"
    DELETED = "deleted"


# --- Base model ---


class PlannerBase(BaseModel):
    """Base model with common configuration for all scenario Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }
