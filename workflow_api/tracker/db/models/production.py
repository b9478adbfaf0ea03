from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, SoftDeleteMixin, UUIDPkMixin, TimestampMixin, TenantMixin


class WorkItem(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Ordered line of production work; releases draw down its ordered quantity."""
    __tablename__ = "work_items"
    __table_args__ = (
        CheckConstraint("ordered_quantity >= 0", name="ordered_quantity_non_negative"),
        UniqueConstraint("tenant_id", "item_no", name="uq_work_items_tenant_item_no"),
    )

    item_no: Mapped[str] = mapped_column(Text, nullable=False)
    job_no: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ordered_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    unit_weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)


class ReleaseRecord(UUIDPkMixin, TenantMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Partial release of a work item's quantity into production."""
    __tablename__ = "production_releases"
    __table_args__ = (
        CheckConstraint("release_quantity > 0", name="release_quantity_positive"),
        Index("ix_production_releases_item_active", "work_item_id", "is_deleted"),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False
    )
    release_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    release_weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    drawing_batch: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transmittal_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PLANNING", server_default=text("'PLANNING'"))
    template_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("inspection_templates.id", ondelete="SET NULL"), nullable=True
    )
    inspection_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    production_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
