from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from tracker.domain.drawing_batch import DrawingEntry, make_entry


class DrawingEntryModel(BaseModel):
    """One drawing line of a batch."""
    drawing_no: Optional[str] = Field(None)
    quantity: Optional[str] = Field(None, description="Quantity as entered; numeric values are normalized")
    unit: Optional[str] = Field(None)
    rff_ref: Optional[str] = Field(None)
    transmittal_ref: Optional[str] = Field(None)

    class Config:
        from_attributes = True

    def to_entry(self) -> DrawingEntry:
        return make_entry(**self.model_dump())


def to_entries(models: Optional[List[DrawingEntryModel]]) -> List[DrawingEntry]:
    return [m.to_entry() for m in (models or [])]


class DrawingBatchText(BaseModel):
    text: str = Field("", description="Drawing batch text")


class DrawingBatchParsed(BaseModel):
    entries: List[DrawingEntryModel] = Field(default_factory=list)
    total_quantity: Decimal = Field(..., description="Sum of numeric quantities")


class DrawingBatchFormatRequest(BaseModel):
    entries: List[DrawingEntryModel] = Field(default_factory=list)


class PasteRequest(BaseModel):
    """Spreadsheet paste buffer spliced into the entries being edited."""
    raw_text: str = Field(..., description="Tab-separated rows: drawing no, qty, unit, RFF")
    insertion_index: int = Field(0, ge=0, description="Row the paste lands on")
    entries: List[DrawingEntryModel] = Field(default_factory=list, description="Current entries")


class PasteResult(BaseModel):
    applied: bool = Field(..., description="False when the buffer was a plain single value")
    entries: List[DrawingEntryModel] = Field(default_factory=list)
