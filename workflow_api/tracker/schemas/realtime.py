from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'delivery.requested').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    user_id: Optional[str] = Field(default=None, description="Initiating user id, if applicable.")
    channel: Optional[str] = Field(default=None, description="Optional sub-channel.")


class DeliveryRequest(BaseModel):
    """Approved release quantity waiting for a delivery note."""
    inspection_id: UUID = Field(...)
    release_id: UUID = Field(...)
    work_item_id: UUID = Field(...)
    approved_quantity: Decimal = Field(..., description="Approved quantity of the inspection")
    drawing_batch: Optional[str] = Field(default=None)
    transmittal_ref: Optional[str] = Field(default=None)
    approved_by: Optional[str] = Field(default=None)
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Approval timestamp (UTC).")
