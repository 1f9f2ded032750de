"""Scenario allocation engine — single-pass greedy budget allocator.

Given a scenario's line items (in persisted order) and a set of levers,
recompute scenario volume and cost per line:

- Locally adjusted lines are never touched; their current cost still
  consumes budget.
- Lines whose priority band is not included are zeroed.
- Every other line starts at baseline. When a budget target is active and
  the line is not protected, it is clamped to the remaining headroom of a
  running cost ledger.

The pass is order dependent by construction: lines visited earlier are
served first and the line at the budget boundary absorbs a partial cut.
Not an optimiser — reproducible for fixed inputs, not optimal.

Pure deterministic — no I/O, no side effects.
"""

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID

from src.models.common import BudgetType
from src.models.scenario import AllocationStrategy, ScenarioLevers

logger = logging.getLogger(__name__)


class LineOutcome(StrEnum):
    """What the allocation pass did to a line."""

    LOCKED = "LOCKED"
    EXCLUDED = "EXCLUDED"
    KEPT = "KEPT"
    CLAMPED = "CLAMPED"


@dataclass(frozen=True)
class AllocationLine:
    """Engine view of one scenario item."""

    item_id: UUID
    priority_band: str
    baseline_volume: int
    baseline_cost: float
    baseline_cost_per_participant: float | None
    scenario_volume: int
    scenario_cost: float
    is_protected: bool = False
    is_abroad: bool = False
    is_locally_adjusted: bool = False
    category_id: str | None = None
    entity_id: str | None = None


@dataclass(frozen=True)
class LineAllocation:
    """Result for one line."""

    item_id: UUID
    scenario_volume: int
    scenario_cost: float
    is_cut: bool
    outcome: LineOutcome


@dataclass(frozen=True)
class AllocationResult:
    """Result of a full pass. allocations are in traversal order."""

    allocations: list[LineAllocation]
    target_budget: float | None
    allocated_cost: float
    warnings: list[str] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return sum(a.scenario_cost for a in self.allocations)

    @property
    def total_participants(self) -> int:
        return sum(a.scenario_volume for a in self.allocations)

    def by_item(self) -> dict[UUID, LineAllocation]:
        return {a.item_id: a for a in self.allocations}


class AllocationEngine:
    """Recomputes a constrained allocation of volume and cost per line."""

    def allocate(
        self,
        lines: Sequence[AllocationLine],
        levers: ScenarioLevers,
        *,
        baseline_total_cost: float,
    ) -> AllocationResult:
        """Run one allocation pass.

        Args:
            lines: Scenario items in persisted order.
            levers: Lever configuration for this run.
            baseline_total_cost: Scenario baseline total, used to resolve a
                percentage budget.

        Returns:
            AllocationResult with one LineAllocation per input line.
        """
        target = levers.target_budget(baseline_total_cost)
        included = levers.included_bands
        protected_categories = set(levers.protected_categories)
        declared = levers.allocation_strategy == AllocationStrategy.DECLARED_PRIORITY

        ordered = self._traversal_order(lines, levers) if declared else list(lines)
        entity_targets = self._entity_targets(lines, levers) if declared else {}
        entity_running: dict[str, float] = defaultdict(float)

        warnings: list[str] = []
        allocations: list[LineAllocation] = []
        running_cost = 0.0

        for line in ordered:
            if line.is_locally_adjusted:
                running_cost += line.scenario_cost
                if line.entity_id is not None:
                    entity_running[line.entity_id] += line.scenario_cost
                allocations.append(LineAllocation(
                    item_id=line.item_id,
                    scenario_volume=line.scenario_volume,
                    scenario_cost=line.scenario_cost,
                    is_cut=line.scenario_volume < line.baseline_volume,
                    outcome=LineOutcome.LOCKED,
                ))
                continue

            if line.priority_band not in included:
                allocations.append(LineAllocation(
                    item_id=line.item_id,
                    scenario_volume=0,
                    scenario_cost=0.0,
                    is_cut=True,
                    outcome=LineOutcome.EXCLUDED,
                ))
                continue

            new_volume = line.baseline_volume
            new_cost = line.baseline_cost
            outcome = LineOutcome.KEPT

            is_protected = line.is_protected or (
                line.category_id is not None and line.category_id in protected_categories
            )

            headroom: list[float] = []
            if target is not None:
                headroom.append(target - running_cost)
            entity_target = entity_targets.get(line.entity_id) if line.entity_id else None
            if entity_target is not None:
                headroom.append(entity_target - entity_running[line.entity_id])

            if not is_protected and headroom and new_cost > min(headroom):
                remaining = max(0.0, min(headroom))
                rate = line.baseline_cost_per_participant
                if not rate:
                    msg = (
                        f"Item {line.item_id} has no cost per participant; "
                        "clamping with a unit rate and zero cost"
                    )
                    logger.warning(msg)
                    warnings.append(msg)
                new_volume = math.floor(remaining / (rate or 1))
                new_cost = new_volume * (rate or 0)
                outcome = LineOutcome.CLAMPED

            running_cost += new_cost
            if line.entity_id is not None:
                entity_running[line.entity_id] += new_cost

            allocations.append(LineAllocation(
                item_id=line.item_id,
                scenario_volume=new_volume,
                scenario_cost=new_cost,
                is_cut=new_volume < line.baseline_volume,
                outcome=outcome,
            ))

        return AllocationResult(
            allocations=allocations,
            target_budget=target,
            allocated_cost=running_cost,
            warnings=warnings,
        )

    @staticmethod
    def _traversal_order(
        lines: Sequence[AllocationLine],
        levers: ScenarioLevers,
    ) -> list[AllocationLine]:
        """Stable sort so that bands which absorb cuts first are visited last.

        Bands missing from cut_order are visited before any listed band.
        With cut_abroad_first, abroad lines follow domestic lines of the
        same band.
        """
        rank = {band: i for i, band in enumerate(levers.cut_order)}
        unlisted = len(levers.cut_order)

        def key(line: AllocationLine) -> tuple[int, int]:
            band_rank = rank.get(line.priority_band, unlisted)
            abroad_last = 1 if (levers.cut_abroad_first and line.is_abroad) else 0
            return (-band_rank, abroad_last)

        return sorted(lines, key=key)

    @staticmethod
    def _entity_targets(
        lines: Sequence[AllocationLine],
        levers: ScenarioLevers,
    ) -> dict[str, float]:
        """Resolve entity caps to absolute ceilings."""
        if not levers.entity_caps:
            return {}

        entity_baseline: dict[str, float] = defaultdict(float)
        for line in lines:
            if line.entity_id is not None:
                entity_baseline[line.entity_id] += line.baseline_cost

        targets: dict[str, float] = {}
        for entity_id, cap in levers.entity_caps.items():
            if cap.type == BudgetType.ABSOLUTE:
                targets[entity_id] = cap.value
            else:
                targets[entity_id] = entity_baseline.get(entity_id, 0.0) * (cap.value / 100)
        return targets
