"""
Typed errors raised by the reconciliation engine.

Every error carries a machine-readable ``code`` and structured attributes so
callers (and the API error envelope) never parse message text:

    TrackerError
    +-- QuantityExceeded          QUANTITY_EXCEEDED
    +-- InvalidReleaseQuantity    INVALID_RELEASE_QUANTITY
    +-- StepQuantityExceeded      STEP_QUANTITY_EXCEEDED
    +-- InvalidOverrideState      INVALID_OVERRIDE_STATE
    +-- LockedForEdit             LOCKED_FOR_EDIT
    +-- InvalidTransition         INVALID_TRANSITION
    +-- RecordNotFound            NOT_FOUND
    +-- PermissionDenied          PERMISSION_DENIED

All of them are expected, user-correctable outcomes. None is retried.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base class for all domain errors."""

    code: str = "TRACKER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        """Structured data describing the failure (JSON friendly)."""
        return {}


class QuantityExceeded(TrackerError):
    """A release or release edit would overshoot the work item's ordered quantity."""

    code = "QUANTITY_EXCEEDED"

    def __init__(self, requested: Decimal, ceiling: Decimal) -> None:
        self.requested = requested
        self.ceiling = ceiling
        super().__init__(
            f"Release quantity ({requested}) exceeds remaining quantity ({ceiling})"
        )

    def details(self) -> Dict[str, Any]:
        return {"requested": str(self.requested), "ceiling": str(self.ceiling)}


class InvalidReleaseQuantity(TrackerError):
    """A release must carry a positive quantity."""

    code = "INVALID_RELEASE_QUANTITY"

    def __init__(self, requested: Decimal) -> None:
        self.requested = requested
        super().__init__(f"Release quantity must be greater than zero (got {requested})")

    def details(self) -> Dict[str, Any]:
        return {"requested": str(self.requested)}


class StepQuantityExceeded(TrackerError):
    """A step edit claims more than the inspection's ceiling."""

    code = "STEP_QUANTITY_EXCEEDED"

    def __init__(self, step_name: str, requested: Decimal, ceiling: Decimal) -> None:
        self.step_name = step_name
        self.requested = requested
        self.ceiling = ceiling
        super().__init__(
            f"Step '{step_name}' quantities ({requested}) exceed inspected quantity ({ceiling})"
        )

    def details(self) -> Dict[str, Any]:
        return {
            "step": self.step_name,
            "requested": str(self.requested),
            "ceiling": str(self.ceiling),
        }


class InvalidOverrideState(TrackerError):
    """A header field edit does not respect derived/overridden bookkeeping."""

    code = "INVALID_OVERRIDE_STATE"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot change override for '{field}': {reason}")

    def details(self) -> Dict[str, Any]:
        return {"field": self.field, "reason": self.reason}


class LockedForEdit(TrackerError):
    """The record was already touched by an inspector (or is terminal)."""

    code = "LOCKED_FOR_EDIT"

    def __init__(self, entity: str, entity_id: Any, reason: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity} {entity_id} is locked: {reason}")

    def details(self) -> Dict[str, Any]:
        return {"entity": self.entity, "id": str(self.entity_id), "reason": self.reason}


class InvalidTransition(TrackerError):
    """The requested workflow action is not allowed from the current state."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_state: str, action: str) -> None:
        self.from_state = from_state
        self.action = action
        super().__init__(f"Action '{action}' is not allowed from status {from_state}")

    def details(self) -> Dict[str, Any]:
        return {"from_state": self.from_state, "action": self.action}


class RecordNotFound(TrackerError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")

    def details(self) -> Dict[str, Any]:
        return {"entity": self.entity, "id": str(self.entity_id)}


class PermissionDenied(TrackerError):
    code = "PERMISSION_DENIED"

    def __init__(self, action: str, required: Optional[str] = None) -> None:
        self.action = action
        self.required = required
        super().__init__(f"Not permitted to {action}")

    def details(self) -> Dict[str, Any]:
        return {"action": self.action, "required": self.required}
