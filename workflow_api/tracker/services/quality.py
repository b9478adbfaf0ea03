from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.deps import Actor
from tracker.db.models.production import ReleaseRecord
from tracker.db.models.quality import InspectionRecord, InspectionTemplate, StepResult
from tracker.domain import drawing_batch, reconciler, workflow
from tracker.domain.aggregation import StepStatus
from tracker.domain.exceptions import LockedForEdit, PermissionDenied, RecordNotFound
from tracker.domain.quantities import to_quantity
from tracker.domain.reconciler import HeaderField, InspectionHeader, StepEdit, StepSnapshot
from tracker.domain.workflow import ReleaseStatus
from tracker.repositories.production import ReleaseRepository
from tracker.repositories.quality import InspectionRepository, TemplateRepository
from tracker.schemas.quality import InspectionTextUpdate, TemplateCreate
from tracker.schemas.realtime import DeliveryRequest
from tracker.services.base import BaseService
from tracker.services.delivery import DeliveryNotifier, get_delivery_notifier

logger = logging.getLogger(__name__)

_OVERRIDE_COLUMNS = {
    HeaderField.INSPECTED: ("inspected_quantity", "inspected_override"),
    HeaderField.APPROVED: ("approved_quantity", "approved_override"),
    HeaderField.REJECTED: ("rejected_quantity", "rejected_override"),
    HeaderField.HOLD: ("hold_quantity", "hold_override"),
}


def header_from_record(record: InspectionRecord) -> InspectionHeader:
    """Header as stored: persisted totals plus the override columns."""
    return InspectionHeader.from_overrides(
        inspected=record.inspected_quantity,
        approved=record.approved_quantity,
        rejected=record.rejected_quantity,
        hold=record.hold_quantity,
        overrides={f: getattr(record, cols[1]) for f, cols in _OVERRIDE_COLUMNS.items()},
    )


def write_header(record: InspectionRecord, header: InspectionHeader) -> None:
    for name, (value_col, override_col) in _OVERRIDE_COLUMNS.items():
        setattr(record, value_col, header.value(name))
        setattr(record, override_col, header.override_value(name))


def snapshot(step: StepResult) -> StepSnapshot:
    return StepSnapshot(
        key=step.id,
        name=step.step_name,
        approved_qty=to_quantity(step.approved_qty),
        rejected_qty=to_quantity(step.rejected_qty),
        hold_qty=to_quantity(step.hold_qty),
        remarks=step.remarks,
        status=StepStatus(step.status),
    )


@dataclass
class InspectionView:
    """An inspection with the header values currently in effect."""

    record: InspectionRecord
    header: InspectionHeader
    steps: List[StepResult]


class InspectionService(BaseService):
    """
    Step-wise inspection of releases.

    Writers lock the release row before the inspection row, the same order
    release edits use. The derived inspection status is fed back into the
    release workflow in the same transaction, and the delivery notifier runs
    only after it commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        inspections: Optional[InspectionRepository] = None,
        releases: Optional[ReleaseRepository] = None,
        notifier: Optional[DeliveryNotifier] = None,
    ) -> None:
        super().__init__(session)
        self.inspections = inspections or InspectionRepository(session)
        self.releases = releases or ReleaseRepository(session)
        self.notifier = notifier or get_delivery_notifier()

    async def _view(self, record: InspectionRecord) -> InspectionView:
        steps = await self.inspections.list_steps(record.id)
        header = reconciler.recompute_derived(header_from_record(record), [snapshot(s) for s in steps])
        return InspectionView(record=record, header=header, steps=steps)

    async def _lock(self, inspection_id: UUID) -> InspectionRecord:
        record = await self.inspections.lock(inspection_id)
        if record is None:
            raise RecordNotFound("Inspection", inspection_id)
        return record

    async def _lock_with_release(self, inspection_id: UUID) -> Tuple[InspectionRecord, Optional[ReleaseRecord]]:
        """
        Lock the owning release, then the inspection.

        The release id of an inspection never changes, so reading it before
        taking either lock is safe.
        """
        current = await self.inspections.get(inspection_id)
        if current is None:
            raise RecordNotFound("Inspection", inspection_id)
        release = await self.releases.lock(current.release_id)
        return await self._lock(inspection_id), release

    # PUBLIC_INTERFACE
    async def list_inspections(
        self,
        *,
        release_id: Optional[UUID],
        completed: Optional[bool],
        status: Optional[str],
        limit: int,
        offset: int,
    ) -> List[InspectionView]:
        """Pending (completed=False) or completed (completed=True) inspections, newest first."""
        records = await self.inspections.list_inspections(
            release_id=release_id, completed=completed, status=status, limit=limit, offset=offset
        )
        return [await self._view(r) for r in records]

    # PUBLIC_INTERFACE
    async def get_inspection(self, inspection_id: UUID) -> InspectionView:
        record = await self.inspections.get(inspection_id)
        if record is None:
            raise RecordNotFound("Inspection", inspection_id)
        return await self._view(record)

    # PUBLIC_INTERFACE
    async def save_steps(self, inspection_id: UUID, edits: Sequence[StepEdit], actor: Actor) -> InspectionView:
        """
        Record step verdicts, all or nothing.

        Every edit is checked against the inspected quantity in effect before
        anything is written. Header totals are persisted only for privileged
        callers with no step total overridden; everyone else gets the derived
        values on read.
        """
        privileged = actor.is_privileged()
        notify: Optional[DeliveryRequest] = None
        async with self.atomic():
            record, release = await self._lock_with_release(inspection_id)
            if release is None:
                raise RecordNotFound("Release", record.release_id)
            if release.status != ReleaseStatus.PENDING_INSPECTION.value and not privileged:
                raise LockedForEdit("Inspection", record.id, f"release is {release.status}")
            if workflow.is_terminal_inspection(record.status) and not privileged:
                raise LockedForEdit("Inspection", record.id, f"inspection is {record.status}")

            rows = await self.inspections.list_steps(record.id)
            snapshots = [snapshot(s) for s in rows]
            current = reconciler.recompute_derived(header_from_record(record), snapshots)
            result = reconciler.save_steps(current, snapshots, edits, privileged=privileged)

            now = datetime.now(timezone.utc)
            rows_by_id = {s.id: s for s in rows}
            for changed in result.changed:
                row = rows_by_id[changed.key]
                row.approved_qty = changed.approved_qty
                row.rejected_qty = changed.rejected_qty
                row.hold_qty = changed.hold_qty
                row.remarks = changed.remarks
                row.status = changed.status.value
                row.inspected_by = actor.user_id
                row.inspected_at = now

            record.status = result.status.value
            record.inspected_by = actor.user_id
            record.completed_at = now if workflow.is_terminal_inspection(result.status) else None
            if result.persist_header:
                write_header(record, result.header)

            notify = self._feed_back(release, record, result.header, actor)
            await self.inspections.flush()

        logger.info(
            "Inspection %s saved by %s: %d step(s) changed, status %s",
            record.id, actor.user_id, len(result.changed), record.status,
        )
        if notify is not None:
            await self._notify(actor.tenant_id, notify)
        return InspectionView(record=record, header=result.header, steps=rows)

    def _feed_back(
        self, release: ReleaseRecord, record: InspectionRecord, header: InspectionHeader, actor: Actor
    ) -> Optional[DeliveryRequest]:
        """Apply the inspection verdict to the release; returns the delivery request to send, if any."""
        if record.inspection_number != release.inspection_count:
            # only the latest pass speaks for the release
            return None
        previous = release.status
        target = workflow.status_after_inspection(previous, record.status)
        if target is None:
            return None
        release.status = target.value
        logger.info("Release %s %s -> %s after inspection %s", release.id, previous, release.status, record.id)
        if not workflow.enters_approved(previous, target):
            return None
        return DeliveryRequest(
            inspection_id=record.id,
            release_id=release.id,
            work_item_id=release.work_item_id,
            approved_quantity=header.approved,
            drawing_batch=record.drawing_batch,
            transmittal_ref=record.transmittal_ref,
            approved_by=actor.user_id,
        )

    async def _notify(self, tenant_id: UUID, request: DeliveryRequest) -> None:
        try:
            await self.notifier.notify_approved(tenant_id, request)
        except Exception:
            # the approval is committed; a lost notification is re-sent by hand
            logger.exception("Delivery notification failed for release %s", request.release_id)

    async def _change_header(self, inspection_id: UUID, actor: Actor, action: str, change) -> InspectionView:
        if not actor.is_privileged():
            raise PermissionDenied(action, required="privileged role")
        async with self.atomic():
            record = await self._lock(inspection_id)
            rows = await self.inspections.list_steps(record.id)
            snapshots = [snapshot(s) for s in rows]
            current = reconciler.recompute_derived(header_from_record(record), snapshots)
            updated = change(current, snapshots)
            write_header(record, updated)
            await self.inspections.flush()
        return InspectionView(record=record, header=updated, steps=rows)

    # PUBLIC_INTERFACE
    async def set_override(self, inspection_id: UUID, field: Any, value: Decimal, actor: Actor) -> InspectionView:
        """Freeze one header field at ``value`` (privileged)."""
        view = await self._change_header(
            inspection_id, actor, "override inspection totals",
            lambda header, steps: reconciler.set_override(header, steps, field, value),
        )
        logger.info("Inspection %s: %s overridden to %s by %s", inspection_id, field, value, actor.user_id)
        return view

    # PUBLIC_INTERFACE
    async def edit_header_value(self, inspection_id: UUID, field: Any, value: Decimal, actor: Actor) -> InspectionView:
        """Change the value of a field that is already overridden (privileged)."""
        view = await self._change_header(
            inspection_id, actor, "edit inspection totals",
            lambda header, steps: reconciler.hand_edit(header, steps, field, value),
        )
        logger.info("Inspection %s: %s edited to %s by %s", inspection_id, field, value, actor.user_id)
        return view

    # PUBLIC_INTERFACE
    async def clear_override(self, inspection_id: UUID, field: Any, actor: Actor) -> InspectionView:
        """Return one header field to derivation from the steps (privileged)."""
        view = await self._change_header(
            inspection_id, actor, "clear inspection overrides",
            lambda header, steps: reconciler.clear_override(header, steps, field),
        )
        logger.info("Inspection %s: %s override cleared by %s", inspection_id, field, actor.user_id)
        return view

    # PUBLIC_INTERFACE
    async def update_text(self, inspection_id: UUID, payload: InspectionTextUpdate, actor: Actor) -> InspectionView:
        """Edit drawing batch, transmittal and remarks; drawing text is re-normalized."""
        provided = payload.model_fields_set
        async with self.atomic():
            record = await self._lock(inspection_id)
            if "drawing_batch" in provided:
                record.drawing_batch = drawing_batch.format(drawing_batch.parse(payload.drawing_batch)) or None
            if "transmittal_ref" in provided:
                record.transmittal_ref = payload.transmittal_ref
            if "remarks" in provided:
                record.remarks = payload.remarks
            await self.inspections.flush()
            view = await self._view(record)
        logger.info("Inspection %s details edited by %s", record.id, actor.user_id)
        return view

    # PUBLIC_INTERFACE
    async def delete_inspection(self, inspection_id: UUID, actor: Actor) -> None:
        """
        Soft delete an untouched inspection (privileged).

        Withdrawing the open inspection of a release waiting on quality puts
        the release back in production so it can be pushed again.
        """
        if not actor.is_privileged():
            raise PermissionDenied("delete an inspection", required="privileged role")
        async with self.atomic():
            record, release = await self._lock_with_release(inspection_id)
            rows = await self.inspections.list_steps(record.id)
            if any(r.status != StepStatus.PENDING.value for r in rows):
                raise LockedForEdit("Inspection", record.id, "steps have recorded results")
            await self.inspections.soft_delete(record)
            if release is not None and release.status == ReleaseStatus.PENDING_INSPECTION.value:
                release.status = workflow.next_status(release.status, "inspection_withdrawn").value
        logger.info("Inspection %s deleted by %s", inspection_id, actor.user_id)


class TemplateService(BaseService):
    """Inspection templates (ordered station lists)."""

    def __init__(self, session: AsyncSession, templates: Optional[TemplateRepository] = None) -> None:
        super().__init__(session)
        self.templates = templates or TemplateRepository(session)

    async def list_templates(self) -> List[InspectionTemplate]:
        return await self.templates.list_templates()

    # PUBLIC_INTERFACE
    async def create_template(self, payload: TemplateCreate, actor: Actor) -> InspectionTemplate:
        """Create a template; making it the default clears the previous default."""
        steps = [s.strip() for s in payload.steps if s and s.strip()]
        async with self.atomic():
            if payload.is_default:
                await self.templates.clear_default()
            template = await self.templates.create(
                name=payload.name.strip(), steps=steps, is_default=payload.is_default
            )
        logger.info("Inspection template %s created by %s (%d steps)", template.name, actor.user_id, len(steps))
        return template
