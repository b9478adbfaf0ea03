"""
Release lifecycle state machine.

    PLANNING -> IN_PRODUCTION -> PENDING_INSPECTION -> APPROVED
                                                    -> REWORK -> PENDING_INSPECTION
                                                    -> REJECTED (administrative)
                                                    -> IN_PRODUCTION (open inspection deleted)

Pure functions: callers load the release, ask for the next status and persist
it themselves.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from tracker.domain.exceptions import InvalidTransition, LockedForEdit


class ReleaseStatus(str, Enum):
    PLANNING = "PLANNING"
    IN_PRODUCTION = "IN_PRODUCTION"
    PENDING_INSPECTION = "PENDING_INSPECTION"
    APPROVED = "APPROVED"
    REWORK = "REWORK"
    REJECTED = "REJECTED"


class InspectionStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    HOLD = "HOLD"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


TERMINAL_RELEASE_STATES = (ReleaseStatus.APPROVED, ReleaseStatus.REJECTED)
TERMINAL_INSPECTION_STATES = (InspectionStatus.APPROVED, InspectionStatus.REJECTED)
EDITABLE_RELEASE_STATES = (ReleaseStatus.PLANNING, ReleaseStatus.IN_PRODUCTION)


@dataclass(frozen=True)
class Transition:
    from_state: ReleaseStatus
    to_state: ReleaseStatus
    action: str


TRANSITIONS: Tuple[Transition, ...] = (
    Transition(ReleaseStatus.PLANNING, ReleaseStatus.IN_PRODUCTION, "start_production"),
    Transition(ReleaseStatus.PLANNING, ReleaseStatus.PENDING_INSPECTION, "push_for_inspection"),
    Transition(ReleaseStatus.IN_PRODUCTION, ReleaseStatus.PENDING_INSPECTION, "push_for_inspection"),
    Transition(ReleaseStatus.REWORK, ReleaseStatus.PENDING_INSPECTION, "push_for_inspection"),
    Transition(ReleaseStatus.PENDING_INSPECTION, ReleaseStatus.APPROVED, "inspection_approved"),
    Transition(ReleaseStatus.PENDING_INSPECTION, ReleaseStatus.REWORK, "inspection_rejected"),
    Transition(ReleaseStatus.PENDING_INSPECTION, ReleaseStatus.IN_PRODUCTION, "inspection_withdrawn"),
    Transition(ReleaseStatus.PENDING_INSPECTION, ReleaseStatus.REJECTED, "reject"),
    Transition(ReleaseStatus.REWORK, ReleaseStatus.REJECTED, "reject"),
)


def _status(value) -> ReleaseStatus:
    return value if isinstance(value, ReleaseStatus) else ReleaseStatus(value)


# PUBLIC_INTERFACE
def next_status(current, action: str) -> ReleaseStatus:
    """Return the target status for ``action`` or raise InvalidTransition."""
    state = _status(current)
    for t in TRANSITIONS:
        if t.from_state == state and t.action == action:
            return t.to_state
    raise InvalidTransition(from_state=state.value, action=action)


def push_for_inspection(current) -> ReleaseStatus:
    """Initial inspection from PLANNING/IN_PRODUCTION, or re-inspection from REWORK."""
    return next_status(current, "push_for_inspection")


# PUBLIC_INTERFACE
def status_after_inspection(current, inspection_status) -> Optional[ReleaseStatus]:
    """
    Release status implied by a freshly derived inspection status.

    Only a release waiting on inspection reacts. A rejected inspection sends
    the release to REWORK, never to REJECTED: outright rejection is a separate
    administrative action. Returns None when the release stays where it is.
    """
    state = _status(current)
    if state != ReleaseStatus.PENDING_INSPECTION:
        return None
    insp = InspectionStatus(inspection_status)
    if insp == InspectionStatus.APPROVED:
        return next_status(state, "inspection_approved")
    if insp == InspectionStatus.REJECTED:
        return next_status(state, "inspection_rejected")
    return None


def enters_approved(previous, new) -> bool:
    """True exactly when a transition lands on APPROVED from another status."""
    if new is None:
        return False
    return _status(new) == ReleaseStatus.APPROVED and _status(previous) != ReleaseStatus.APPROVED


# PUBLIC_INTERFACE
def ensure_release_editable(release_id, current, inspection_touched: bool) -> None:
    """
    Quantity edits and deletion are refused once an inspector has recorded a
    verdict on any inspection of the release, and in terminal states.
    """
    state = _status(current)
    if inspection_touched:
        raise LockedForEdit("Release", release_id, "an inspection of this release has recorded results")
    if state in TERMINAL_RELEASE_STATES:
        raise LockedForEdit("Release", release_id, f"release is {state.value}")


def is_terminal_inspection(status) -> bool:
    return InspectionStatus(status) in TERMINAL_INSPECTION_STATES
