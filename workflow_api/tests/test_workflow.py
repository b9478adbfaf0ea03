from __future__ import annotations

import pytest

from tracker.domain import workflow
from tracker.domain.exceptions import InvalidTransition, LockedForEdit
from tracker.domain.workflow import InspectionStatus, ReleaseStatus


class TestNextStatus:

    @pytest.mark.parametrize(
        "current,action,expected",
        [
            ("PLANNING", "start_production", ReleaseStatus.IN_PRODUCTION),
            ("PLANNING", "push_for_inspection", ReleaseStatus.PENDING_INSPECTION),
            ("IN_PRODUCTION", "push_for_inspection", ReleaseStatus.PENDING_INSPECTION),
            ("REWORK", "push_for_inspection", ReleaseStatus.PENDING_INSPECTION),
            ("PENDING_INSPECTION", "inspection_withdrawn", ReleaseStatus.IN_PRODUCTION),
            ("PENDING_INSPECTION", "reject", ReleaseStatus.REJECTED),
            ("REWORK", "reject", ReleaseStatus.REJECTED),
        ],
    )
    def test_allowed(self, current, action, expected):
        assert workflow.next_status(current, action) == expected

    @pytest.mark.parametrize(
        "current,action",
        [
            ("APPROVED", "push_for_inspection"),
            ("REJECTED", "push_for_inspection"),
            ("PENDING_INSPECTION", "push_for_inspection"),
            ("IN_PRODUCTION", "start_production"),
            ("PLANNING", "reject"),
            ("APPROVED", "reject"),
        ],
    )
    def test_refused(self, current, action):
        with pytest.raises(InvalidTransition) as exc:
            workflow.next_status(current, action)
        assert exc.value.details() == {"from_state": current, "action": action}


class TestStatusAfterInspection:

    def test_approved_inspection_approves_release(self):
        assert workflow.status_after_inspection("PENDING_INSPECTION", "APPROVED") == ReleaseStatus.APPROVED

    def test_rejected_inspection_sends_release_to_rework(self):
        assert workflow.status_after_inspection("PENDING_INSPECTION", "REJECTED") == ReleaseStatus.REWORK

    @pytest.mark.parametrize("insp", ["PENDING", "IN_PROGRESS", "HOLD"])
    def test_open_inspection_leaves_release_alone(self, insp):
        assert workflow.status_after_inspection("PENDING_INSPECTION", insp) is None

    @pytest.mark.parametrize("current", ["PLANNING", "IN_PRODUCTION", "APPROVED", "REWORK", "REJECTED"])
    def test_release_not_waiting_on_inspection_does_not_react(self, current):
        assert workflow.status_after_inspection(current, InspectionStatus.APPROVED) is None


def test_enters_approved_only_on_the_transition():
    assert workflow.enters_approved("PENDING_INSPECTION", ReleaseStatus.APPROVED)
    assert not workflow.enters_approved("APPROVED", ReleaseStatus.APPROVED)
    assert not workflow.enters_approved("PENDING_INSPECTION", ReleaseStatus.REWORK)
    assert not workflow.enters_approved("PENDING_INSPECTION", None)


class TestEnsureReleaseEditable:

    @pytest.mark.parametrize("current", ["PLANNING", "IN_PRODUCTION", "PENDING_INSPECTION", "REWORK"])
    def test_untouched_release_is_editable(self, current):
        workflow.ensure_release_editable("r-1", current, inspection_touched=False)

    def test_touched_release_is_locked(self):
        with pytest.raises(LockedForEdit) as exc:
            workflow.ensure_release_editable("r-1", "PENDING_INSPECTION", inspection_touched=True)
        assert exc.value.code == "LOCKED_FOR_EDIT"

    @pytest.mark.parametrize("current", ["APPROVED", "REJECTED"])
    def test_terminal_release_is_locked(self, current):
        with pytest.raises(LockedForEdit):
            workflow.ensure_release_editable("r-1", current, inspection_touched=False)
