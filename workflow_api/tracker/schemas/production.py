from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .drawing import DrawingEntryModel


class WorkItemCreate(BaseModel):
    """Create a work item."""
    item_no: str = Field(..., min_length=1, description="Item number, unique per tenant")
    job_no: Optional[str] = Field(None, description="Job/order reference")
    description: Optional[str] = Field(None)
    ordered_quantity: Decimal = Field(..., ge=0, description="Ordered quantity")
    unit: str = Field(..., min_length=1, description="Unit of measure (e.g., pcs, m, kg)")
    unit_weight: Optional[Decimal] = Field(None, ge=0, description="Weight per unit (kg)")


class WorkItemRead(BaseModel):
    """Work item read model."""
    id: UUID = Field(..., description="Work item id")
    item_no: str = Field(...)
    job_no: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    ordered_quantity: Decimal = Field(...)
    unit: str = Field(...)
    unit_weight: Optional[Decimal] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class LedgerSummaryRead(BaseModel):
    """Quantity position of a work item."""
    ordered: Decimal = Field(..., description="Ordered quantity")
    released: Decimal = Field(..., description="Sum of live release quantities")
    remaining: Decimal = Field(..., description="Ordered minus released")
    settled: Decimal = Field(..., description="Released quantity approved by inspection")

    class Config:
        from_attributes = True


class WorkItemDetail(WorkItemRead):
    """Work item with its ledger summary."""
    summary: LedgerSummaryRead = Field(...)


class OrderedQuantityCorrection(BaseModel):
    """Administrative correction of the ordered quantity."""
    ordered_quantity: Decimal = Field(..., ge=0)


class ReleaseCreate(BaseModel):
    """
    Create a production release.

    When drawing entries (or drawing batch text) carry numeric quantities, the
    release quantity is their sum and ``release_quantity`` is ignored.
    """
    work_item_id: UUID = Field(...)
    release_quantity: Optional[Decimal] = Field(None, description="Quantity when no drawing lines are given")
    drawing_entries: Optional[List[DrawingEntryModel]] = Field(None, description="Structured drawing lines")
    drawing_batch: Optional[str] = Field(None, description="Drawing batch text (one drawing per line)")
    transmittal_ref: Optional[str] = Field(None)
    template_id: Optional[UUID] = Field(None, description="Inspection template; tenant default when omitted")
    production_start_date: Optional[date] = Field(None)


class ReleaseUpdate(BaseModel):
    """Edit a release; omitted fields are left unchanged."""
    release_quantity: Optional[Decimal] = Field(None)
    drawing_entries: Optional[List[DrawingEntryModel]] = Field(None)
    drawing_batch: Optional[str] = Field(None)
    transmittal_ref: Optional[str] = Field(None)
    template_id: Optional[UUID] = Field(None)
    production_start_date: Optional[date] = Field(None)


class ReleaseRead(BaseModel):
    """Production release read model."""
    id: UUID = Field(..., description="Release id")
    work_item_id: UUID = Field(...)
    release_quantity: Decimal = Field(...)
    release_weight: Optional[Decimal] = Field(None)
    drawing_batch: Optional[str] = Field(None)
    transmittal_ref: Optional[str] = Field(None)
    status: str = Field(...)
    template_id: Optional[UUID] = Field(None)
    inspection_count: int = Field(0)
    production_start_date: Optional[date] = Field(None)
    created_by: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class BalanceRowRead(BaseModel):
    """One running-balance line: the balance left after the release."""
    release: ReleaseRead = Field(...)
    release_quantity: Decimal = Field(...)
    cumulative_released: Decimal = Field(...)
    balance_after: Decimal = Field(...)

    class Config:
        from_attributes = True
