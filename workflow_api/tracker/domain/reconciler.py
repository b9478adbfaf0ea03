"""
Header totals of one inspection and their derived/overridden bookkeeping.

Each header value (inspected, approved, rejected, hold) is either derived
from the steps or overridden: frozen to a manually supplied value until the
override is cleared. The state is an explicit tag per field
(``Derived`` | ``Overridden(value)``) so a recompute never has to guess
which values it may touch.

Identities maintained by ``recompute_derived``:

- approved = min(step approved), rejected = sum(step rejected),
  hold = sum(step hold), for every field that is not overridden;
- inspected = approved + rejected + hold from the values in effect, unless
  inspected itself is overridden (a full override).

Every function returns new values; inputs are never mutated.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from tracker.domain import aggregation
from tracker.domain.aggregation import StepStatus
from tracker.domain.exceptions import InvalidOverrideState, RecordNotFound, StepQuantityExceeded
from tracker.domain.quantities import ZERO, to_quantity
from tracker.domain.workflow import InspectionStatus


class HeaderField(str, Enum):
    INSPECTED = "inspected"
    APPROVED = "approved"
    REJECTED = "rejected"
    HOLD = "hold"


# the three totals that come out of step aggregation
STEP_DERIVED_FIELDS = (HeaderField.APPROVED, HeaderField.REJECTED, HeaderField.HOLD)


@dataclass(frozen=True)
class Derived:
    """Value is computed from the steps on every recompute."""


@dataclass(frozen=True)
class Overridden:
    """Value is frozen to ``value`` until the override is cleared."""

    value: Decimal


FieldState = Union[Derived, Overridden]
DERIVED = Derived()


def _default_states() -> Dict[HeaderField, FieldState]:
    return {f: DERIVED for f in HeaderField}


@dataclass(frozen=True)
class InspectionHeader:
    inspected: Decimal = ZERO
    approved: Decimal = ZERO
    rejected: Decimal = ZERO
    hold: Decimal = ZERO
    states: Mapping[HeaderField, FieldState] = field(default_factory=_default_states)

    def state(self, name: HeaderField) -> FieldState:
        return self.states.get(HeaderField(name), DERIVED)

    def is_overridden(self, name: HeaderField) -> bool:
        return isinstance(self.state(name), Overridden)

    def override_value(self, name: HeaderField) -> Optional[Decimal]:
        st = self.state(name)
        return st.value if isinstance(st, Overridden) else None

    def any_step_total_overridden(self) -> bool:
        return any(self.is_overridden(f) for f in STEP_DERIVED_FIELDS)

    def value(self, name: HeaderField) -> Decimal:
        return getattr(self, HeaderField(name).value)

    @property
    def ceiling(self) -> Decimal:
        """Upper bound for any single step's recorded quantities."""
        return self.inspected

    @classmethod
    def from_overrides(
        cls,
        *,
        inspected: Any = None,
        approved: Any = None,
        rejected: Any = None,
        hold: Any = None,
        overrides: Optional[Mapping[HeaderField, Any]] = None,
    ) -> "InspectionHeader":
        """Build a header from stored columns; ``overrides`` maps fields to a value or None."""
        states: Dict[HeaderField, FieldState] = _default_states()
        for name, value in (overrides or {}).items():
            if value is not None:
                states[HeaderField(name)] = Overridden(to_quantity(value))
        return cls(
            inspected=to_quantity(inspected),
            approved=to_quantity(approved),
            rejected=to_quantity(rejected),
            hold=to_quantity(hold),
            states=states,
        )


@dataclass(frozen=True)
class StepSnapshot:
    """A step's recorded verdict, keyed by the caller's identifier."""

    key: Any
    name: str
    approved_qty: Decimal = ZERO
    rejected_qty: Decimal = ZERO
    hold_qty: Decimal = ZERO
    remarks: Optional[str] = None
    status: StepStatus = StepStatus.PENDING

    @property
    def total(self) -> Decimal:
        return self.approved_qty + self.rejected_qty + self.hold_qty


@dataclass(frozen=True)
class StepEdit:
    key: Any
    approved_qty: Decimal = ZERO
    rejected_qty: Decimal = ZERO
    hold_qty: Decimal = ZERO
    # None leaves the remarks as they are
    remarks: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return to_quantity(self.approved_qty) + to_quantity(self.rejected_qty) + to_quantity(self.hold_qty)


@dataclass(frozen=True)
class SaveResult:
    header: InspectionHeader
    steps: List[StepSnapshot]
    changed: List[StepSnapshot]
    status: InspectionStatus
    persist_header: bool


# PUBLIC_INTERFACE
def recompute_derived(header: InspectionHeader, steps: Iterable[Any]) -> InspectionHeader:
    """
    Re-derive every non-overridden header value from ``steps``.

    ``inspected`` always equals approved + rejected + hold unless it is
    overridden itself, so partial overrides never break the identity.
    """
    totals = aggregation.aggregate(steps)
    derived = {
        HeaderField.APPROVED: totals.final_approved,
        HeaderField.REJECTED: totals.total_rejected,
        HeaderField.HOLD: totals.total_hold,
    }
    values: Dict[str, Decimal] = {}
    for name in STEP_DERIVED_FIELDS:
        st = header.state(name)
        values[name.value] = st.value if isinstance(st, Overridden) else derived[name]

    st = header.state(HeaderField.INSPECTED)
    if isinstance(st, Overridden):
        values["inspected"] = st.value
    else:
        values["inspected"] = values["approved"] + values["rejected"] + values["hold"]
    return replace(header, **values)


def first_step_over_ceiling(
    steps: Iterable[Any], ceiling: Decimal
) -> Optional[Tuple[Any, Decimal]]:
    for step in steps:
        total = (
            to_quantity(step.approved_qty) + to_quantity(step.rejected_qty) + to_quantity(step.hold_qty)
        )
        if total > ceiling:
            return step, total
    return None


def _with_state(header: InspectionHeader, name: HeaderField, state: FieldState) -> InspectionHeader:
    states = dict(header.states)
    states[name] = state
    return replace(header, states=states)


def _check_steps_fit(name: HeaderField, header: InspectionHeader, steps: Sequence[Any]) -> None:
    hit = first_step_over_ceiling(steps, header.ceiling)
    if hit is not None:
        step, total = hit
        raise InvalidOverrideState(
            name.value,
            f"step '{step.name}' already records {total}, above the resulting inspected quantity {header.ceiling}",
        )


# PUBLIC_INTERFACE
def set_override(
    header: InspectionHeader, steps: Sequence[Any], name: Any, value: Any
) -> InspectionHeader:
    """Freeze ``name`` at ``value`` and recompute the rest of the header."""
    try:
        name = HeaderField(name)
    except ValueError:
        raise InvalidOverrideState(str(name), "unknown header field")
    qty = to_quantity(value)
    if qty < ZERO:
        raise InvalidOverrideState(name.value, "override value must not be negative")
    updated = recompute_derived(_with_state(header, name, Overridden(qty)), steps)
    _check_steps_fit(name, updated, steps)
    return updated


# PUBLIC_INTERFACE
def clear_override(header: InspectionHeader, steps: Sequence[Any], name: Any) -> InspectionHeader:
    """Return ``name`` to derivation; refuses fields that are not overridden."""
    try:
        name = HeaderField(name)
    except ValueError:
        raise InvalidOverrideState(str(name), "unknown header field")
    if not header.is_overridden(name):
        raise InvalidOverrideState(name.value, "field is not overridden")
    updated = recompute_derived(_with_state(header, name, DERIVED), steps)
    _check_steps_fit(name, updated, steps)
    return updated


# PUBLIC_INTERFACE
def hand_edit(header: InspectionHeader, steps: Sequence[Any], name: Any, value: Any) -> InspectionHeader:
    """
    Change the value of an already overridden field.

    A derived field cannot be typed over: the caller has to set an override
    first, otherwise the next recompute would silently discard the edit.
    """
    try:
        name = HeaderField(name)
    except ValueError:
        raise InvalidOverrideState(str(name), "unknown header field")
    if not header.is_overridden(name):
        raise InvalidOverrideState(name.value, "field is derived; set an override before editing it")
    return set_override(header, steps, name, value)


def apply_edit(step: StepSnapshot, edit: StepEdit) -> StepSnapshot:
    approved = to_quantity(edit.approved_qty)
    rejected = to_quantity(edit.rejected_qty)
    hold = to_quantity(edit.hold_qty)
    return replace(
        step,
        approved_qty=approved,
        rejected_qty=rejected,
        hold_qty=hold,
        remarks=step.remarks if edit.remarks is None else edit.remarks,
        status=aggregation.step_status(approved, rejected, hold),
    )


# PUBLIC_INTERFACE
def validate_step_edits(
    header: InspectionHeader, steps: Sequence[StepSnapshot], edits: Sequence[StepEdit]
) -> None:
    """
    Check every edit against the ceiling in effect before the save.

    Raises on the first offending step; callers must then persist nothing.
    """
    by_key = {s.key: s for s in steps}
    ceiling = header.ceiling
    for edit in edits:
        step = by_key.get(edit.key)
        if step is None:
            raise RecordNotFound("Inspection step", edit.key)
        for qty in (edit.approved_qty, edit.rejected_qty, edit.hold_qty):
            if to_quantity(qty) < ZERO:
                raise StepQuantityExceeded(step.name, to_quantity(qty), ceiling)
        if edit.total > ceiling:
            raise StepQuantityExceeded(step.name, edit.total, ceiling)


# PUBLIC_INTERFACE
def save_steps(
    header: InspectionHeader,
    steps: Sequence[StepSnapshot],
    edits: Sequence[StepEdit],
    privileged: bool = False,
) -> SaveResult:
    """
    All-or-nothing step save.

    Validation runs over every edit before anything is applied. On success
    the header is recomputed; ``persist_header`` tells the caller whether the
    derived totals should be written back (privileged caller, no step total
    overridden).
    """
    validate_step_edits(header, steps, edits)
    edits_by_key = {e.key: e for e in edits}
    new_steps: List[StepSnapshot] = []
    changed: List[StepSnapshot] = []
    for step in steps:
        edit = edits_by_key.get(step.key)
        if edit is None:
            new_steps.append(step)
            continue
        updated = apply_edit(step, edit)
        new_steps.append(updated)
        changed.append(updated)

    new_header = recompute_derived(header, new_steps)
    status = aggregation.inspection_status(s.status for s in new_steps)
    return SaveResult(
        header=new_header,
        steps=new_steps,
        changed=changed,
        status=status,
        persist_header=privileged and not new_header.any_step_total_overridden(),
    )
