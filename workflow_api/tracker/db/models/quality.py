from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, SoftDeleteMixin, UUIDPkMixin, TimestampMixin, TenantMixin


class InspectionTemplate(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Named, ordered list of inspection stations (ITP)."""
    __tablename__ = "inspection_templates"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_inspection_templates_tenant_name"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    steps: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class InspectionRecord(UUIDPkMixin, TenantMixin, TimestampMixin, SoftDeleteMixin, Base):
    """
    One inspection pass over a release.

    The four header quantities hold the last persisted totals; a non-null
    ``*_override`` column marks the field as overridden (frozen to that value).
    """
    __tablename__ = "inspection_records"
    __table_args__ = (
        UniqueConstraint("release_id", "inspection_number", name="uq_inspection_records_release_number"),
    )

    release_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_releases.id", ondelete="CASCADE"), nullable=False
    )
    inspection_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default=text("'PENDING'"))

    inspected_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    approved_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    rejected_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    hold_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")

    inspected_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    approved_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    rejected_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    hold_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)

    drawing_batch: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transmittal_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    template_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inspected_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class StepResult(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """One station's verdict within an inspection; status is always derived."""
    __tablename__ = "inspection_steps"
    __table_args__ = (
        Index("ix_inspection_steps_inspection_seq", "inspection_id", "seq_no"),
    )

    inspection_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("inspection_records.id", ondelete="CASCADE"), nullable=False
    )
    seq_no: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(Text, nullable=False)
    approved_qty: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    rejected_qty: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    hold_qty: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default=text("'PENDING'"))
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inspected_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inspected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
