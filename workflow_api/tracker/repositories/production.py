from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db.models.production import ReleaseRecord, WorkItem
from .base import BaseRepository


class WorkItemRepository(BaseRepository):
    """Repository for work items."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_work_items(
        self, *, item_no: Optional[str], job_no: Optional[str], limit: int, offset: int
    ) -> List[WorkItem]:
        stmt = select(WorkItem)
        if item_no:
            stmt = stmt.where(WorkItem.item_no.ilike(f"%{item_no}%"))
        if job_no:
            stmt = stmt.where(WorkItem.job_no == job_no)
        stmt = stmt.order_by(WorkItem.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get(self, item_id: UUID) -> Optional[WorkItem]:
        stmt = select(WorkItem).where(WorkItem.id == item_id)
        return await self.scalar_one_or_none(stmt)

    async def lock(self, item_id: UUID) -> Optional[WorkItem]:
        """Load the work item with a row lock held until the transaction ends."""
        stmt = select(WorkItem).where(WorkItem.id == item_id).with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def create(self, **values: Any) -> WorkItem:
        item = WorkItem(**values)
        await self.add(item)
        await self.flush()
        return item


class ReleaseRepository(BaseRepository):
    """Repository for production releases. Soft-deleted rows are never returned."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_releases(
        self,
        *,
        work_item_id: Optional[UUID],
        status: Optional[str],
        limit: int,
        offset: int,
    ) -> List[ReleaseRecord]:
        stmt = select(ReleaseRecord).where(ReleaseRecord.is_deleted.is_(False))
        if work_item_id:
            stmt = stmt.where(ReleaseRecord.work_item_id == work_item_id)
        if status:
            stmt = stmt.where(ReleaseRecord.status == status)
        stmt = stmt.order_by(ReleaseRecord.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def list_active_for_item(self, work_item_id: UUID) -> List[ReleaseRecord]:
        stmt = (
            select(ReleaseRecord)
            .where(ReleaseRecord.work_item_id == work_item_id, ReleaseRecord.is_deleted.is_(False))
            .order_by(ReleaseRecord.created_at.desc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def get(self, release_id: UUID) -> Optional[ReleaseRecord]:
        stmt = select(ReleaseRecord).where(
            ReleaseRecord.id == release_id, ReleaseRecord.is_deleted.is_(False)
        )
        return await self.scalar_one_or_none(stmt)

    async def lock(self, release_id: UUID) -> Optional[ReleaseRecord]:
        stmt = (
            select(ReleaseRecord)
            .where(ReleaseRecord.id == release_id, ReleaseRecord.is_deleted.is_(False))
            .with_for_update()
        )
        return await self.scalar_one_or_none(stmt)

    async def create(self, **values: Any) -> ReleaseRecord:
        release = ReleaseRecord(**values)
        await self.add(release)
        await self.flush()
        return release

    async def soft_delete(self, release: ReleaseRecord) -> None:
        release.is_deleted = True
        release.deleted_at = datetime.now(timezone.utc)
        await self.flush()
