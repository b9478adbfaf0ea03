"""
Station-level verdicts folded into inspection-level figures.

Approved output follows a serial-gate model: the batch cannot pass more than
its most restrictive station, so the approved total is the minimum across
steps. Rejections and holds are additive across stations.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Protocol

from tracker.domain.quantities import ZERO, to_quantity
from tracker.domain.workflow import InspectionStatus


class StepStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    FAILED = "FAILED"
    HOLD = "HOLD"


class StepQuantities(Protocol):
    approved_qty: Any
    rejected_qty: Any
    hold_qty: Any


@dataclass(frozen=True)
class AggregateTotals:
    final_approved: Decimal
    total_rejected: Decimal
    total_hold: Decimal

    @property
    def total(self) -> Decimal:
        return self.final_approved + self.total_rejected + self.total_hold


# PUBLIC_INTERFACE
def step_status(approved_qty: Any, rejected_qty: Any, hold_qty: Any) -> StepStatus:
    """Fixed precedence: reject > hold > approve > pending."""
    if to_quantity(rejected_qty) > ZERO:
        return StepStatus.FAILED
    if to_quantity(hold_qty) > ZERO:
        return StepStatus.HOLD
    if to_quantity(approved_qty) > ZERO:
        return StepStatus.APPROVED
    return StepStatus.PENDING


# PUBLIC_INTERFACE
def inspection_status(step_statuses: Iterable[Any]) -> InspectionStatus:
    statuses = [StepStatus(s) for s in step_statuses]
    if any(s == StepStatus.FAILED for s in statuses):
        return InspectionStatus.REJECTED
    if any(s == StepStatus.HOLD for s in statuses):
        return InspectionStatus.HOLD
    if statuses and all(s == StepStatus.APPROVED for s in statuses):
        return InspectionStatus.APPROVED
    if any(s != StepStatus.PENDING for s in statuses):
        return InspectionStatus.IN_PROGRESS
    return InspectionStatus.PENDING


# PUBLIC_INTERFACE
def aggregate(steps: Iterable[StepQuantities]) -> AggregateTotals:
    steps = list(steps)
    if not steps:
        return AggregateTotals(ZERO, ZERO, ZERO)
    return AggregateTotals(
        final_approved=min(to_quantity(s.approved_qty) for s in steps),
        total_rejected=sum((to_quantity(s.rejected_qty) for s in steps), ZERO),
        total_hold=sum((to_quantity(s.hold_qty) for s in steps), ZERO),
    )
