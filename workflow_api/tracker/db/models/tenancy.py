from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, UUIDPkMixin, TimestampMixin


class Tenant(UUIDPkMixin, TimestampMixin, Base):
    """Tenant (plant/company) owning all domain rows; rows are isolated by RLS."""
    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
