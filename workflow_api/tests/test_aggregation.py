from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from tracker.domain import aggregation
from tracker.domain.aggregation import StepStatus
from tracker.domain.workflow import InspectionStatus


def step(approved=0, rejected=0, hold=0):
    return SimpleNamespace(
        approved_qty=Decimal(str(approved)), rejected_qty=Decimal(str(rejected)), hold_qty=Decimal(str(hold))
    )


@pytest.mark.parametrize(
    "approved,rejected,hold,expected",
    [
        (0, 0, 0, StepStatus.PENDING),
        (5, 0, 0, StepStatus.APPROVED),
        (5, 0, 1, StepStatus.HOLD),
        (5, 1, 1, StepStatus.FAILED),
        (0, 0, 2, StepStatus.HOLD),
        ("0.0001", 0, 0, StepStatus.APPROVED),
    ],
)
def test_step_status_precedence(approved, rejected, hold, expected):
    assert aggregation.step_status(approved, rejected, hold) == expected


@pytest.mark.parametrize(
    "statuses,expected",
    [
        ([], InspectionStatus.PENDING),
        (["PENDING", "PENDING"], InspectionStatus.PENDING),
        (["APPROVED", "PENDING"], InspectionStatus.IN_PROGRESS),
        (["APPROVED", "APPROVED"], InspectionStatus.APPROVED),
        (["APPROVED", "HOLD", "PENDING"], InspectionStatus.HOLD),
        (["HOLD", "FAILED"], InspectionStatus.REJECTED),
    ],
)
def test_inspection_status(statuses, expected):
    assert aggregation.inspection_status(statuses) == expected


def test_approved_is_minimum_rejections_and_holds_add_up():
    totals = aggregation.aggregate([step(10), step(8, rejected=2), step(9, hold=1)])
    assert totals.final_approved == Decimal("8")
    assert totals.total_rejected == Decimal("2")
    assert totals.total_hold == Decimal("1")
    assert totals.total == Decimal("11")


def test_single_step_on_hold_blocks_approval():
    steps = [step(10), step(10), step(7, hold=3)]
    statuses = [aggregation.step_status(s.approved_qty, s.rejected_qty, s.hold_qty) for s in steps]
    assert aggregation.inspection_status(statuses) == InspectionStatus.HOLD
    assert aggregation.aggregate(steps).final_approved == Decimal("7")


def test_no_steps_aggregate_to_zero():
    totals = aggregation.aggregate([])
    assert totals.total == Decimal("0")
