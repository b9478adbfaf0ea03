from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db.models.quality import InspectionRecord, InspectionTemplate, StepResult
from tracker.domain.workflow import InspectionStatus
from .base import BaseRepository

_TERMINAL = (InspectionStatus.APPROVED.value, InspectionStatus.REJECTED.value)


class InspectionRepository(BaseRepository):
    """Repository for inspection records and their step rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_inspections(
        self,
        *,
        release_id: Optional[UUID],
        completed: Optional[bool],
        status: Optional[str],
        limit: int,
        offset: int,
    ) -> List[InspectionRecord]:
        stmt = select(InspectionRecord).where(InspectionRecord.is_deleted.is_(False))
        if release_id:
            stmt = stmt.where(InspectionRecord.release_id == release_id)
        if completed is True:
            stmt = stmt.where(InspectionRecord.status.in_(_TERMINAL))
        elif completed is False:
            stmt = stmt.where(InspectionRecord.status.not_in(_TERMINAL))
        if status:
            stmt = stmt.where(InspectionRecord.status == status)
        stmt = stmt.order_by(InspectionRecord.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get(self, inspection_id: UUID) -> Optional[InspectionRecord]:
        stmt = select(InspectionRecord).where(
            InspectionRecord.id == inspection_id, InspectionRecord.is_deleted.is_(False)
        )
        return await self.scalar_one_or_none(stmt)

    async def lock(self, inspection_id: UUID) -> Optional[InspectionRecord]:
        stmt = (
            select(InspectionRecord)
            .where(InspectionRecord.id == inspection_id, InspectionRecord.is_deleted.is_(False))
            .with_for_update()
        )
        return await self.scalar_one_or_none(stmt)

    async def get_active_for_release(self, release_id: UUID) -> Optional[InspectionRecord]:
        """The open (non-terminal) inspection of a release, if any."""
        stmt = (
            select(InspectionRecord)
            .where(
                InspectionRecord.release_id == release_id,
                InspectionRecord.is_deleted.is_(False),
                InspectionRecord.status.not_in(_TERMINAL),
            )
            .order_by(InspectionRecord.inspection_number.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def lock_for_release(self, release_id: UUID) -> List[InspectionRecord]:
        """Row-lock every live inspection of a release. Callers hold the release lock already."""
        stmt = (
            select(InspectionRecord)
            .where(InspectionRecord.release_id == release_id, InspectionRecord.is_deleted.is_(False))
            .order_by(InspectionRecord.inspection_number.asc())
            .with_for_update()
        )
        res = await self.scalars(stmt)
        return list(res)

    async def create(self, step_names: Sequence[str], **values: Any) -> InspectionRecord:
        """Insert the inspection and one PENDING step row per name, in order."""
        record = InspectionRecord(**values)
        await self.add(record)
        await self.flush()
        await self.add_all(
            StepResult(inspection_id=record.id, seq_no=i, step_name=name)
            for i, name in enumerate(step_names, start=1)
        )
        await self.flush()
        return record

    async def list_steps(self, inspection_id: UUID) -> List[StepResult]:
        stmt = (
            select(StepResult)
            .where(StepResult.inspection_id == inspection_id)
            .order_by(StepResult.seq_no.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def has_touched_inspection(self, release_id: UUID) -> bool:
        """True when any live inspection of the release has a step with a recorded verdict."""
        stmt = select(
            exists()
            .where(StepResult.inspection_id == InspectionRecord.id)
            .where(
                InspectionRecord.release_id == release_id,
                InspectionRecord.is_deleted.is_(False),
                StepResult.status != "PENDING",
            )
        )
        res = await self.execute(stmt)
        return bool(res.scalar())

    async def soft_delete(self, record: InspectionRecord) -> None:
        record.is_deleted = True
        record.deleted_at = datetime.now(timezone.utc)
        await self.flush()

    async def soft_delete_for_release(self, release_id: UUID) -> None:
        await self.execute(
            update(InspectionRecord)
            .where(InspectionRecord.release_id == release_id, InspectionRecord.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )


class TemplateRepository(BaseRepository):
    """Repository for inspection templates."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_templates(self) -> List[InspectionTemplate]:
        stmt = select(InspectionTemplate).order_by(
            InspectionTemplate.is_default.desc(), InspectionTemplate.name.asc()
        )
        res = await self.scalars(stmt)
        return list(res)

    async def get(self, template_id: UUID) -> Optional[InspectionTemplate]:
        stmt = select(InspectionTemplate).where(InspectionTemplate.id == template_id)
        return await self.scalar_one_or_none(stmt)

    async def get_default(self) -> Optional[InspectionTemplate]:
        stmt = select(InspectionTemplate).where(InspectionTemplate.is_default.is_(True))
        return await self.scalar_one_or_none(stmt)

    async def clear_default(self) -> None:
        await self.execute(
            update(InspectionTemplate)
            .where(InspectionTemplate.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )

    async def create(self, *, name: str, steps: Sequence[str], is_default: bool) -> InspectionTemplate:
        template = InspectionTemplate(name=name, steps=list(steps), is_default=is_default)
        await self.add(template)
        await self.flush()
        return template
