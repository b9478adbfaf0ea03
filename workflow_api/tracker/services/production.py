from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.deps import Actor
from tracker.db.models.production import ReleaseRecord, WorkItem
from tracker.db.models.quality import InspectionRecord
from tracker.domain import drawing_batch, ledger, workflow
from tracker.domain.exceptions import PermissionDenied, RecordNotFound
from tracker.domain.quantities import to_quantity
from tracker.domain.workflow import ReleaseStatus
from tracker.repositories.production import ReleaseRepository, WorkItemRepository
from tracker.repositories.quality import InspectionRepository, TemplateRepository
from tracker.schemas.drawing import to_entries
from tracker.schemas.production import ReleaseCreate, ReleaseUpdate, WorkItemCreate
from tracker.services.base import BaseService

logger = logging.getLogger(__name__)


def resolve_release_quantity(
    explicit: Optional[Decimal],
    entries: Optional[List[drawing_batch.DrawingEntry]],
    text: Optional[str],
) -> Tuple[Decimal, Optional[str]]:
    """
    Work out the release quantity and the drawing batch text to store.

    Structured entries win over text. When any drawing line carries a numeric
    quantity the release quantity is the sum of the lines; otherwise the
    explicit quantity is used.
    """
    if entries is None:
        entries = drawing_batch.parse(text)
    lines = [e for e in entries if not e.is_empty()]
    batch_text = drawing_batch.format(lines) or None
    if any(e.quantity_value is not None for e in lines):
        return drawing_batch.total_quantity(lines), batch_text
    return to_quantity(explicit), batch_text


def _release_weight(item: WorkItem, quantity: Decimal) -> Optional[Decimal]:
    if item.unit_weight is None:
        return None
    return quantity * to_quantity(item.unit_weight)


class WorkItemService(BaseService):
    """Work items and their quantity ledger."""

    def __init__(
        self,
        session: AsyncSession,
        work_items: Optional[WorkItemRepository] = None,
        releases: Optional[ReleaseRepository] = None,
    ) -> None:
        super().__init__(session)
        self.work_items = work_items or WorkItemRepository(session)
        self.releases = releases or ReleaseRepository(session)

    async def _require(self, item_id: UUID) -> WorkItem:
        item = await self.work_items.get(item_id)
        if item is None:
            raise RecordNotFound("Work item", item_id)
        return item

    # PUBLIC_INTERFACE
    async def create_work_item(self, payload: WorkItemCreate, actor: Actor) -> WorkItem:
        """Create a work item with its ordered quantity."""
        async with self.atomic():
            item = await self.work_items.create(**payload.model_dump())
        logger.info("Work item %s created by %s (ordered %s)", item.item_no, actor.user_id, item.ordered_quantity)
        return item

    # PUBLIC_INTERFACE
    async def get_with_summary(self, item_id: UUID) -> Tuple[WorkItem, ledger.LedgerSummary]:
        """Return the work item and its ordered/released/remaining/settled figures."""
        item = await self._require(item_id)
        releases = await self.releases.list_active_for_item(item_id)
        return item, ledger.summary(item, releases)

    # PUBLIC_INTERFACE
    async def running_balance(self, item_id: UUID) -> List[ledger.BalanceRow]:
        item = await self._require(item_id)
        releases = await self.releases.list_active_for_item(item_id)
        return ledger.running_balance(item, releases)

    # PUBLIC_INTERFACE
    async def correct_ordered_quantity(self, item_id: UUID, new_quantity: Decimal, actor: Actor) -> WorkItem:
        """
        Administrative correction of the ordered quantity.

        Never allowed below what is already released.
        """
        if not actor.is_privileged():
            raise PermissionDenied("correct the ordered quantity", required="privileged role")
        async with self.atomic():
            item = await self.work_items.lock(item_id)
            if item is None:
                raise RecordNotFound("Work item", item_id)
            releases = await self.releases.list_active_for_item(item_id)
            ledger.validate_ordered_quantity(new_quantity, releases)
            previous = item.ordered_quantity
            item.ordered_quantity = to_quantity(new_quantity)
        logger.info(
            "Ordered quantity of %s corrected by %s: %s -> %s",
            item.item_no, actor.user_id, previous, item.ordered_quantity,
        )
        return item


class ReleaseService(BaseService):
    """
    Production releases: ledger-checked create/edit/delete and the release workflow.

    Every ledger-affecting write locks the work item row first, then the
    release row, then the inspections of that release, so concurrent writers
    on one item serialize.
    """

    def __init__(
        self,
        session: AsyncSession,
        work_items: Optional[WorkItemRepository] = None,
        releases: Optional[ReleaseRepository] = None,
        inspections: Optional[InspectionRepository] = None,
        templates: Optional[TemplateRepository] = None,
    ) -> None:
        super().__init__(session)
        self.work_items = work_items or WorkItemRepository(session)
        self.releases = releases or ReleaseRepository(session)
        self.inspections = inspections or InspectionRepository(session)
        self.templates = templates or TemplateRepository(session)

    async def list_releases(
        self, *, work_item_id: Optional[UUID], status: Optional[str], limit: int, offset: int
    ) -> List[ReleaseRecord]:
        return await self.releases.list_releases(
            work_item_id=work_item_id, status=status, limit=limit, offset=offset
        )

    async def get_release(self, release_id: UUID) -> ReleaseRecord:
        release = await self.releases.get(release_id)
        if release is None:
            raise RecordNotFound("Release", release_id)
        return release

    async def _lock_item(self, item_id: UUID) -> WorkItem:
        item = await self.work_items.lock(item_id)
        if item is None:
            raise RecordNotFound("Work item", item_id)
        return item

    async def _lock_release(self, release_id: UUID) -> ReleaseRecord:
        release = await self.releases.lock(release_id)
        if release is None:
            raise RecordNotFound("Release", release_id)
        return release

    async def _check_template(self, template_id: Optional[UUID]) -> None:
        if template_id is not None and await self.templates.get(template_id) is None:
            raise RecordNotFound("Inspection template", template_id)

    # PUBLIC_INTERFACE
    async def create_release(self, payload: ReleaseCreate, actor: Actor) -> ReleaseRecord:
        """
        Release part of a work item's quantity into production.

        Raises InvalidReleaseQuantity for a non-positive quantity and
        QuantityExceeded when the remaining quantity would go negative.
        """
        entries = to_entries(payload.drawing_entries) if payload.drawing_entries is not None else None
        quantity, batch_text = resolve_release_quantity(payload.release_quantity, entries, payload.drawing_batch)
        async with self.atomic():
            item = await self._lock_item(payload.work_item_id)
            await self._check_template(payload.template_id)
            existing = await self.releases.list_active_for_item(item.id)
            ledger.validate_new_or_edited_release(item, existing, quantity)
            release = await self.releases.create(
                work_item_id=item.id,
                release_quantity=quantity,
                release_weight=_release_weight(item, quantity),
                drawing_batch=batch_text,
                transmittal_ref=payload.transmittal_ref,
                template_id=payload.template_id,
                production_start_date=payload.production_start_date,
                status=ReleaseStatus.PLANNING.value,
                inspection_count=0,
                created_by=actor.user_id,
            )
        logger.info("Release %s of %s created for item %s by %s", release.id, quantity, item.item_no, actor.user_id)
        return release

    # PUBLIC_INTERFACE
    async def update_release(self, release_id: UUID, payload: ReleaseUpdate, actor: Actor) -> ReleaseRecord:
        """Edit a release; quantity changes are checked against the ledger with its own quantity returned to the pool."""
        current = await self.get_release(release_id)
        provided = payload.model_fields_set
        async with self.atomic():
            item = await self._lock_item(current.work_item_id)
            release = await self._lock_release(release_id)
            await self.inspections.lock_for_release(release.id)
            touched = await self.inspections.has_touched_inspection(release.id)
            workflow.ensure_release_editable(release.id, release.status, touched)

            if provided & {"release_quantity", "drawing_entries", "drawing_batch"}:
                entries = to_entries(payload.drawing_entries) if payload.drawing_entries is not None else None
                text = payload.drawing_batch if "drawing_batch" in provided else release.drawing_batch
                explicit = payload.release_quantity if "release_quantity" in provided else release.release_quantity
                quantity, batch_text = resolve_release_quantity(explicit, entries, text)
                existing = await self.releases.list_active_for_item(item.id)
                ledger.validate_new_or_edited_release(
                    item, existing, quantity, existing_release_quantity=release.release_quantity
                )
                release.release_quantity = quantity
                release.release_weight = _release_weight(item, quantity)
                release.drawing_batch = batch_text
                # an open, untouched inspection is re-presented with the new quantity
                open_inspection = await self.inspections.get_active_for_release(release.id)
                if open_inspection is not None:
                    open_inspection.inspected_quantity = quantity
                    open_inspection.inspected_override = quantity
                    open_inspection.drawing_batch = batch_text
            if "transmittal_ref" in provided:
                release.transmittal_ref = payload.transmittal_ref
            if "template_id" in provided:
                await self._check_template(payload.template_id)
                release.template_id = payload.template_id
            if "production_start_date" in provided:
                release.production_start_date = payload.production_start_date
        logger.info("Release %s edited by %s", release.id, actor.user_id)
        return release

    # PUBLIC_INTERFACE
    async def delete_release(self, release_id: UUID, actor: Actor) -> None:
        """Soft delete; the quantity returns to the work item's remaining balance."""
        current = await self.get_release(release_id)
        async with self.atomic():
            await self._lock_item(current.work_item_id)
            release = await self._lock_release(release_id)
            await self.inspections.lock_for_release(release.id)
            touched = await self.inspections.has_touched_inspection(release.id)
            workflow.ensure_release_editable(release.id, release.status, touched)
            await self.inspections.soft_delete_for_release(release.id)
            await self.releases.soft_delete(release)
        logger.info("Release %s deleted by %s", release_id, actor.user_id)

    # PUBLIC_INTERFACE
    async def start_production(self, release_id: UUID, actor: Actor) -> ReleaseRecord:
        async with self.atomic():
            release = await self._lock_release(release_id)
            previous = release.status
            release.status = workflow.next_status(release.status, "start_production").value
            if release.production_start_date is None:
                release.production_start_date = date.today()
        logger.info("Release %s %s -> %s by %s", release.id, previous, release.status, actor.user_id)
        return release

    # PUBLIC_INTERFACE
    async def push_for_inspection(self, release_id: UUID, actor: Actor) -> InspectionRecord:
        """
        Send a release to quality.

        Reuses the open inspection of the release when there is one, otherwise
        starts pass ``inspection_count + 1`` with steps copied from the release
        template (or the tenant default). The new inspection is presented with
        the full release quantity: ``inspected`` starts overridden to it.
        """
        async with self.atomic():
            release = await self._lock_release(release_id)
            previous = release.status
            target = workflow.push_for_inspection(release.status)
            inspection = await self.inspections.get_active_for_release(release.id)
            if inspection is None:
                inspection = await self._open_inspection(release, actor)
            release.status = target.value
        logger.info(
            "Release %s %s -> %s by %s (inspection #%s)",
            release.id, previous, release.status, actor.user_id, inspection.inspection_number,
        )
        return inspection

    async def _open_inspection(self, release: ReleaseRecord, actor: Actor) -> InspectionRecord:
        template = None
        if release.template_id is not None:
            template = await self.templates.get(release.template_id)
        if template is None:
            template = await self.templates.get_default()
        if template is None:
            raise RecordNotFound("Inspection template", release.template_id or "default")

        quantity = to_quantity(release.release_quantity)
        release.inspection_count = (release.inspection_count or 0) + 1
        return await self.inspections.create(
            list(template.steps),
            release_id=release.id,
            inspection_number=release.inspection_count,
            status=workflow.InspectionStatus.PENDING.value,
            inspected_quantity=quantity,
            inspected_override=quantity,
            drawing_batch=release.drawing_batch,
            transmittal_ref=release.transmittal_ref,
            template_name=template.name,
            created_by=actor.user_id,
        )

    # PUBLIC_INTERFACE
    async def reject_release(self, release_id: UUID, actor: Actor) -> ReleaseRecord:
        """Administrative rejection; inspection results alone never reject a release."""
        if not actor.is_privileged():
            raise PermissionDenied("reject a release", required="privileged role")
        async with self.atomic():
            release = await self._lock_release(release_id)
            previous = release.status
            release.status = workflow.next_status(release.status, "reject").value
        logger.info("Release %s %s -> %s by %s", release.id, previous, release.status, actor.user_id)
        return release
