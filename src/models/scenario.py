"""Scenario models — levers, scenario workspace, line items, status workflow."""

from enum import StrEnum
from uuid import UUID

from pydantic import Field, computed_field, field_validator, model_validator

from src.models.common import (
    ALL_PRIORITY_BANDS,
    DEFAULT_CUT_ORDER,
    AuditAction,
    BudgetType,
    PlannerBase,
    PriorityBand,
    UTCTimestamp,
    UUIDv7,
    VisibilityScope,
    new_uuid7,
    utc_now,
)


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------


class ScenarioStatus(StrEnum):
    """Scenario lifecycle states."""

    CREATING = "creating"
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    ADOPTED = "adopted"
    ARCHIVED = "archived"


TERMINAL_STATUSES: frozenset[ScenarioStatus] = frozenset({
    ScenarioStatus.ADOPTED,
    ScenarioStatus.ARCHIVED,
})

# Manual transitions only. CREATING -> DRAFT belongs to the snapshot builder
# and * -> ADOPTED to promotion.
VALID_STATUS_TRANSITIONS: dict[ScenarioStatus, frozenset[ScenarioStatus]] = {
    ScenarioStatus.CREATING: frozenset(),
    ScenarioStatus.DRAFT: frozenset({
        ScenarioStatus.UNDER_REVIEW,
        ScenarioStatus.ARCHIVED,
    }),
    ScenarioStatus.UNDER_REVIEW: frozenset({
        ScenarioStatus.DRAFT,
        ScenarioStatus.APPROVED,
        ScenarioStatus.ARCHIVED,
    }),
    ScenarioStatus.APPROVED: frozenset({
        ScenarioStatus.UNDER_REVIEW,
        ScenarioStatus.ARCHIVED,
    }),
    ScenarioStatus.ADOPTED: frozenset(),
    ScenarioStatus.ARCHIVED: frozenset(),
}


SNAPSHOT_FAILED_PROGRESS = -1


# ---------------------------------------------------------------------------
# Levers
# ---------------------------------------------------------------------------


class AllocationStrategy(StrEnum):
    """Traversal order used by the allocation pass.

    PERSISTED_ORDER visits lines in snapshot order; cut_order,
    cut_abroad_first and entity_caps are stored but inert.
    DECLARED_PRIORITY pre-sorts lines by cut_order / cut_abroad_first and
    enforces entity_caps as secondary ceilings.
    """

    PERSISTED_ORDER = "persisted_order"
    DECLARED_PRIORITY = "declared_priority"


class EntityCap(PlannerBase):
    """Per-entity secondary budget ceiling."""

    type: BudgetType
    value: float = Field(..., ge=0.0)


class ScenarioLevers(PlannerBase):
    """Input contract of one recalculation. Passive, validated, no behaviour.

    Accepts both snake_case names and the camelCase aliases used by the
    planning front end.
    """

    global_budget_type: BudgetType | None = Field(default=None, alias="globalBudgetType")
    global_budget_value: float | None = Field(default=None, ge=0.0, alias="globalBudgetValue")
    include_priority_bands: list[PriorityBand] | None = Field(
        default=None,
        alias="includePriorityBands",
        description="Bands retained at all. None = every band.",
    )
    cut_order: list[PriorityBand] = Field(
        default_factory=lambda: list(DEFAULT_CUT_ORDER),
        alias="cutOrder",
    )
    protected_categories: list[str] = Field(default_factory=list, alias="protectedCategories")
    cut_abroad_first: bool = Field(default=False, alias="cutAbroadFirst")
    entity_caps: dict[str, EntityCap] = Field(default_factory=dict, alias="entityCaps")
    allocation_strategy: AllocationStrategy = Field(
        default=AllocationStrategy.PERSISTED_ORDER,
        alias="allocationStrategy",
    )

    @field_validator("cut_order")
    @classmethod
    def _cut_order_unique(cls, v: list[PriorityBand]) -> list[PriorityBand]:
        if len(set(v)) != len(v):
            msg = "cut_order must not repeat a priority band"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _default_budget_type(self) -> "ScenarioLevers":
        if self.global_budget_value is not None and self.global_budget_type is None:
            self.global_budget_type = BudgetType.PERCENTAGE
        return self

    @property
    def included_bands(self) -> frozenset[PriorityBand]:
        if self.include_priority_bands is None:
            return frozenset(ALL_PRIORITY_BANDS)
        return frozenset(self.include_priority_bands)

    def target_budget(self, baseline_total_cost: float) -> float | None:
        """Resolve the global cap. None means no capping."""
        if self.global_budget_value is None:
            return None
        if self.global_budget_type == BudgetType.ABSOLUTE:
            return self.global_budget_value
        return baseline_total_cost * (self.global_budget_value / 100)


# ---------------------------------------------------------------------------
# Scenario workspace and items
# ---------------------------------------------------------------------------


class ScenarioItem(PlannerBase):
    """Read model of a scenario line item."""

    model_config = {**PlannerBase.model_config, "from_attributes": True}

    item_id: UUIDv7 = Field(default_factory=new_uuid7)
    scenario_id: UUID
    position: int = Field(..., ge=0)
    source_plan_item_id: UUID | None = None
    course_id: str | None = None
    course_name: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    category_id: str | None = None
    category_name: str | None = None
    priority_band: PriorityBand = PriorityBand.MEDIUM
    baseline_volume: int = Field(..., ge=0)
    baseline_sessions: int = Field(default=0, ge=0)
    baseline_cost: float = Field(..., ge=0.0)
    baseline_cost_per_participant: float | None = None
    scenario_volume: int = Field(..., ge=0)
    scenario_sessions: int = Field(default=0, ge=0)
    scenario_cost: float = Field(..., ge=0.0)
    is_protected: bool = False
    is_abroad: bool = False
    is_cut: bool = False
    is_locally_adjusted: bool = False
    local_adjustment_reason: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def volume_delta(self) -> int:
        return self.scenario_volume - self.baseline_volume

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cost_delta(self) -> float:
        return self.scenario_cost - self.baseline_cost


class PlanScenario(PlannerBase):
    """Scenario workspace: what-if copy of a plan plus its persisted levers."""

    model_config = {**PlannerBase.model_config, "from_attributes": True}

    scenario_id: UUIDv7 = Field(default_factory=new_uuid7)
    name: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=2000)
    basis_plan_id: UUID
    basis_plan_version: int = Field(..., ge=1)
    owner_id: UUID
    status: ScenarioStatus = ScenarioStatus.CREATING
    visibility_scope: VisibilityScope = VisibilityScope.GLOBAL
    creation_progress: int = Field(default=0, ge=SNAPSHOT_FAILED_PROGRESS, le=100)
    baseline_total_cost: float | None = None
    scenario_total_cost: float | None = None
    baseline_total_participants: int | None = None
    scenario_total_participants: int | None = None
    global_budget_type: BudgetType | None = None
    global_budget_value: float | None = None
    include_priority_bands: list[PriorityBand] | None = None
    cut_order: list[PriorityBand] | None = None
    protected_categories: list[str] | None = None
    cut_abroad_first: bool = False
    entity_caps: dict[str, EntityCap] | None = None
    allocation_strategy: AllocationStrategy | None = None
    last_recalculation_at: UTCTimestamp | None = None
    promoted_to_plan_id: UUID | None = None
    promoted_at: UTCTimestamp | None = None
    promoted_by: UUID | None = None
    created_at: UTCTimestamp = Field(default_factory=utc_now)
    updated_at: UTCTimestamp = Field(default_factory=utc_now)

    @property
    def snapshot_failed(self) -> bool:
        return self.creation_progress == SNAPSHOT_FAILED_PROGRESS

    def persisted_levers(self) -> ScenarioLevers:
        """Rebuild the levers of the last recalculation, for resume."""
        return ScenarioLevers(
            global_budget_type=self.global_budget_type,
            global_budget_value=self.global_budget_value,
            include_priority_bands=self.include_priority_bands,
            cut_order=self.cut_order or list(DEFAULT_CUT_ORDER),
            protected_categories=self.protected_categories or [],
            cut_abroad_first=self.cut_abroad_first,
            entity_caps=self.entity_caps or {},
            allocation_strategy=self.allocation_strategy or AllocationStrategy.PERSISTED_ORDER,
        )


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class RecalculationResult(PlannerBase):
    """Outcome of one allocation pass."""

    total_cost: float
    total_participants: int
    items_updated: int
    target_budget: float | None = None
    warnings: list[str] = Field(default_factory=list)


class AdjustmentResult(PlannerBase):
    item_id: UUID
    new_volume: int
    new_cost: float


class PromotionResult(PlannerBase):
    new_plan_id: UUID
    new_plan_name: str
    items_promoted: int


def _pct(part: float, whole: float | None) -> float | None:
    if not whole:
        return None
    return part / whole * 100


class ScenarioSummary(PlannerBase):
    """Headline numbers for one scenario, as shown above the item grid."""

    scenario_id: UUID
    baseline_total_cost: float
    scenario_total_cost: float
    baseline_total_participants: int
    scenario_total_participants: int
    cost_delta: float
    cost_delta_pct: float | None
    participants_delta: int
    participants_delta_pct: float | None
    target_budget: float | None
    budget_utilization_pct: float | None
    item_count: int
    cut_count: int
    excluded_count: int
    locally_adjusted_count: int
    protected_count: int


class ScenarioComparisonEntry(PlannerBase):
    """One column of a side-by-side comparison.

    Differences are relative to the first scenario requested.
    """

    scenario_id: UUID
    name: str
    status: ScenarioStatus
    baseline_total_cost: float
    scenario_total_cost: float
    baseline_total_participants: int
    scenario_total_participants: int
    cost_pct_of_baseline: float | None
    participants_pct_of_baseline: float | None
    cost_diff_vs_reference: float
    cost_diff_pct_vs_reference: float | None
    participants_diff_vs_reference: int


def build_summary(scenario: PlanScenario, counts: dict[str, int]) -> ScenarioSummary:
    """Derive the summary figures from persisted aggregates and item counts."""
    baseline_cost = scenario.baseline_total_cost or 0.0
    scenario_cost = scenario.scenario_total_cost or 0.0
    baseline_participants = scenario.baseline_total_participants or 0
    scenario_participants = scenario.scenario_total_participants or 0
    cost_delta = scenario_cost - baseline_cost
    participants_delta = scenario_participants - baseline_participants
    target = scenario.persisted_levers().target_budget(baseline_cost)

    return ScenarioSummary(
        scenario_id=scenario.scenario_id,
        baseline_total_cost=baseline_cost,
        scenario_total_cost=scenario_cost,
        baseline_total_participants=baseline_participants,
        scenario_total_participants=scenario_participants,
        cost_delta=cost_delta,
        cost_delta_pct=_pct(cost_delta, baseline_cost),
        participants_delta=participants_delta,
        participants_delta_pct=_pct(participants_delta, baseline_participants),
        target_budget=target,
        budget_utilization_pct=_pct(scenario_cost, target),
        item_count=counts.get("items", 0),
        cut_count=counts.get("cut", 0),
        excluded_count=counts.get("excluded", 0),
        locally_adjusted_count=counts.get("locally_adjusted", 0),
        protected_count=counts.get("protected", 0),
    )


def build_comparison(scenarios: list[PlanScenario]) -> list[ScenarioComparisonEntry]:
    """Side-by-side totals, each relative to its own baseline and to scenarios[0]."""
    if not scenarios:
        return []
    reference = scenarios[0]
    ref_cost = reference.scenario_total_cost or 0.0
    ref_participants = reference.scenario_total_participants or 0

    entries = []
    for s in scenarios:
        cost = s.scenario_total_cost or 0.0
        participants = s.scenario_total_participants or 0
        cost_diff = cost - ref_cost
        entries.append(ScenarioComparisonEntry(
            scenario_id=s.scenario_id,
            name=s.name,
            status=s.status,
            baseline_total_cost=s.baseline_total_cost or 0.0,
            scenario_total_cost=cost,
            baseline_total_participants=s.baseline_total_participants or 0,
            scenario_total_participants=participants,
            cost_pct_of_baseline=_pct(cost, s.baseline_total_cost),
            participants_pct_of_baseline=_pct(participants, s.baseline_total_participants),
            cost_diff_vs_reference=cost_diff,
            cost_diff_pct_vs_reference=_pct(cost_diff, ref_cost),
            participants_diff_vs_reference=participants - ref_participants,
        ))
    return entries


class ScenarioAuditEntry(PlannerBase):
    """Read model of one audit trail record."""

    model_config = {**PlannerBase.model_config, "from_attributes": True}

    entry_id: UUID
    scenario_id: UUID
    action: AuditAction
    actor_id: UUID | None = None
    details: dict = Field(default_factory=dict)
    created_at: UTCTimestamp
