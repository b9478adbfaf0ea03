from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tracker.domain.reconciler import HeaderField


class TemplateCreate(BaseModel):
    """Create an inspection template (ITP)."""
    name: str = Field(..., min_length=1)
    steps: List[str] = Field(..., min_length=1, description="Ordered station names")
    is_default: bool = Field(False, description="Make this the tenant default")


class TemplateRead(BaseModel):
    """Inspection template read model."""
    id: UUID = Field(..., description="Template id")
    name: str = Field(...)
    steps: List[str] = Field(default_factory=list)
    is_default: bool = Field(False)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class StepRead(BaseModel):
    """Inspection step read model."""
    id: UUID = Field(..., description="Step id")
    seq_no: int = Field(...)
    step_name: str = Field(...)
    approved_qty: Decimal = Field(...)
    rejected_qty: Decimal = Field(...)
    hold_qty: Decimal = Field(...)
    status: str = Field(...)
    remarks: Optional[str] = Field(None)
    inspected_by: Optional[str] = Field(None)
    inspected_at: Optional[datetime] = Field(None)

    class Config:
        from_attributes = True


class InspectionRead(BaseModel):
    """
    Inspection read model.

    The header quantities are the values in effect: overridden fields show
    their frozen value, derived fields are recomputed from the steps.
    """
    id: UUID = Field(..., description="Inspection id")
    release_id: UUID = Field(...)
    inspection_number: int = Field(...)
    status: str = Field(...)
    inspected_quantity: Decimal = Field(...)
    approved_quantity: Decimal = Field(...)
    rejected_quantity: Decimal = Field(...)
    hold_quantity: Decimal = Field(...)
    overrides: Dict[HeaderField, Optional[Decimal]] = Field(
        default_factory=dict, description="Override value per header field; null means derived"
    )
    drawing_batch: Optional[str] = Field(None)
    transmittal_ref: Optional[str] = Field(None)
    template_name: Optional[str] = Field(None)
    remarks: Optional[str] = Field(None)
    created_by: Optional[str] = Field(None)
    inspected_by: Optional[str] = Field(None)
    completed_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class InspectionDetail(InspectionRead):
    """Inspection with its steps in sequence order."""
    steps: List[StepRead] = Field(default_factory=list)


class StepEditIn(BaseModel):
    """Recorded verdict for one step."""
    step_id: UUID = Field(...)
    approved_qty: Decimal = Field(Decimal("0"))
    rejected_qty: Decimal = Field(Decimal("0"))
    hold_qty: Decimal = Field(Decimal("0"))
    remarks: Optional[str] = Field(None, description="Omit to keep existing remarks")


class SaveStepsRequest(BaseModel):
    """Batch of step edits applied all-or-nothing."""
    steps: List[StepEditIn] = Field(..., min_length=1)


class OverrideValue(BaseModel):
    value: Decimal = Field(..., ge=0)


class InspectionTextUpdate(BaseModel):
    """Free-text inspection header fields; omitted fields are left unchanged."""
    drawing_batch: Optional[str] = Field(None)
    transmittal_ref: Optional[str] = Field(None)
    remarks: Optional[str] = Field(None)
