"""
Tests for inspection header reconciliation.

Covers the derived/overridden bookkeeping, the all-or-nothing step save and
the header persistence decision.
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from tracker.domain import reconciler
from tracker.domain.aggregation import StepStatus
from tracker.domain.exceptions import InvalidOverrideState, RecordNotFound, StepQuantityExceeded
from tracker.domain.reconciler import HeaderField, InspectionHeader, Overridden, StepEdit, StepSnapshot
from tracker.domain.workflow import InspectionStatus

D = Decimal


def snap(key, approved=0, rejected=0, hold=0, remarks=None):
    status = StepStatus.PENDING
    if rejected:
        status = StepStatus.FAILED
    elif hold:
        status = StepStatus.HOLD
    elif approved:
        status = StepStatus.APPROVED
    return StepSnapshot(
        key=key, name=f"Step {key}", approved_qty=D(approved), rejected_qty=D(rejected),
        hold_qty=D(hold), remarks=remarks, status=status,
    )


@pytest.fixture
def presented():
    """A fresh inspection presented with 10 units: inspected is overridden."""
    return InspectionHeader.from_overrides(inspected=10, overrides={HeaderField.INSPECTED: 10})


# =============================================================================
# Recompute
# =============================================================================


class TestRecomputeDerived:

    def test_all_derived_keeps_inspected_identity(self):
        header = reconciler.recompute_derived(InspectionHeader(), [snap(1, 10), snap(2, 8, rejected=2)])
        assert (header.inspected, header.approved, header.rejected, header.hold) == (D(10), D(8), D(2), D(0))

    def test_partial_override_still_sums_to_inspected(self):
        header = InspectionHeader.from_overrides(overrides={HeaderField.APPROVED: 5})
        header = reconciler.recompute_derived(header, [snap(1, 10), snap(2, 8, rejected=2)])
        assert header.approved == D(5)
        assert header.rejected == D(2)
        assert header.inspected == D(7)

    def test_full_override_freezes_inspected(self, presented):
        header = reconciler.recompute_derived(presented, [snap(1, 4), snap(2, 4)])
        assert header.inspected == D(10)
        assert header.approved == D(4)

    def test_input_header_is_not_mutated(self):
        original = InspectionHeader()
        reconciler.recompute_derived(original, [snap(1, 3)])
        assert original.approved == D(0)


# =============================================================================
# Step save
# =============================================================================


class TestSaveSteps:

    def test_one_bad_edit_rejects_the_whole_batch(self, presented):
        steps = [snap("a"), snap("b")]
        edits = [StepEdit("a", approved_qty=D(10)), StepEdit("b", approved_qty=D(8), rejected_qty=D(3))]
        with pytest.raises(StepQuantityExceeded) as exc:
            reconciler.save_steps(presented, steps, edits)
        assert exc.value.step_name == "Step b"
        assert exc.value.requested == D(11)
        assert exc.value.ceiling == D(10)
        assert all(s.status == StepStatus.PENDING for s in steps)

    def test_negative_quantity_is_refused(self, presented):
        with pytest.raises(StepQuantityExceeded):
            reconciler.save_steps(presented, [snap("a")], [StepEdit("a", approved_qty=D(-1))])

    def test_unknown_step_is_refused(self, presented):
        with pytest.raises(RecordNotFound):
            reconciler.save_steps(presented, [snap("a")], [StepEdit("zz", approved_qty=D(1))])

    def test_successful_save_derives_statuses_and_header(self, presented):
        steps = [snap("a"), snap("b"), snap("c")]
        edits = [StepEdit("a", approved_qty=D(10)), StepEdit("b", approved_qty=D(8), rejected_qty=D(2))]
        result = reconciler.save_steps(presented, steps, edits)
        assert [s.status for s in result.steps] == [StepStatus.APPROVED, StepStatus.FAILED, StepStatus.PENDING]
        assert [s.key for s in result.changed] == ["a", "b"]
        assert result.status == InspectionStatus.REJECTED
        assert result.header.approved == D(0)
        assert result.header.rejected == D(2)
        assert result.header.inspected == D(10)

    def test_all_steps_approved(self, presented):
        steps = [snap("a"), snap("b")]
        edits = [StepEdit("a", approved_qty=D(10)), StepEdit("b", approved_qty=D(9))]
        result = reconciler.save_steps(presented, steps, edits)
        assert result.status == InspectionStatus.APPROVED
        assert result.header.approved == D(9)

    def test_remarks_none_keeps_existing(self, presented):
        result = reconciler.save_steps(
            presented, [snap("a", remarks="weld spatter")], [StepEdit("a", approved_qty=D(1))]
        )
        assert result.steps[0].remarks == "weld spatter"

    @pytest.mark.parametrize(
        "privileged,overrides,expected",
        [
            (False, {}, False),
            (True, {}, True),
            (True, {HeaderField.APPROVED: 3}, False),
            (True, {HeaderField.INSPECTED: 10}, True),
        ],
    )
    def test_persist_header_decision(self, privileged, overrides, expected):
        header = InspectionHeader.from_overrides(inspected=10, overrides={HeaderField.INSPECTED: 10, **overrides})
        result = reconciler.save_steps(header, [snap("a")], [StepEdit("a", approved_qty=D(5))], privileged)
        assert result.persist_header is expected


# =============================================================================
# Overrides
# =============================================================================


class TestOverrides:

    def test_set_override_freezes_value(self):
        header = reconciler.recompute_derived(InspectionHeader(), [snap(1, 10)])
        updated = reconciler.set_override(header, [snap(1, 10)], "approved", D(12))
        assert updated.state(HeaderField.APPROVED) == Overridden(D(12))
        assert updated.approved == D(12)
        assert updated.inspected == D(12)
        assert not header.is_overridden(HeaderField.APPROVED)

    def test_override_that_undercuts_a_step_is_refused(self):
        steps = [snap(1, 10)]
        header = reconciler.recompute_derived(InspectionHeader(), steps)
        with pytest.raises(InvalidOverrideState) as exc:
            reconciler.set_override(header, steps, HeaderField.APPROVED, D(2))
        assert exc.value.field == "approved"

    def test_negative_override_is_refused(self):
        with pytest.raises(InvalidOverrideState):
            reconciler.set_override(InspectionHeader(), [], HeaderField.HOLD, D(-1))

    def test_unknown_field_is_refused(self):
        with pytest.raises(InvalidOverrideState):
            reconciler.set_override(InspectionHeader(), [], "weight", D(1))

    def test_clear_returns_field_to_derivation(self):
        steps = [snap(1, 4), snap(2, 4)]
        header = reconciler.set_override(InspectionHeader(), steps, HeaderField.APPROVED, D(9))
        cleared = reconciler.clear_override(header, steps, HeaderField.APPROVED)
        assert not cleared.is_overridden(HeaderField.APPROVED)
        assert cleared.approved == D(4)

    def test_clear_of_derived_field_is_refused(self):
        with pytest.raises(InvalidOverrideState):
            reconciler.clear_override(InspectionHeader(), [], HeaderField.REJECTED)

    def test_clearing_inspected_below_a_step_is_refused(self, presented):
        # derived inspected would be min approved = 4, below the 10 recorded on step 2
        steps = [snap(1, 4), snap(2, 10)]
        with pytest.raises(InvalidOverrideState):
            reconciler.clear_override(presented, steps, HeaderField.INSPECTED)

    def test_hand_edit_requires_an_override(self):
        with pytest.raises(InvalidOverrideState):
            reconciler.hand_edit(InspectionHeader(), [], HeaderField.APPROVED, D(3))

    def test_hand_edit_of_overridden_field(self, presented):
        updated = reconciler.hand_edit(presented, [], HeaderField.INSPECTED, D(12))
        assert updated.inspected == D(12)
        assert updated.override_value(HeaderField.INSPECTED) == D(12)
