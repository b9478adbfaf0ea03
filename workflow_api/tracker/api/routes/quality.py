from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.deps import Actor, get_tenant_session, require_roles
from tracker.domain.reconciler import HeaderField, StepEdit
from tracker.schemas.common import MessageResponse
from tracker.schemas.quality import (
    InspectionDetail,
    InspectionRead,
    InspectionTextUpdate,
    OverrideValue,
    SaveStepsRequest,
    StepRead,
    TemplateCreate,
    TemplateRead,
)
from tracker.services.quality import InspectionService, InspectionView, TemplateService

router = APIRouter(tags=["Quality"])

VIEW_ROLES = ("admin", "quality:view", "quality:manage", "quality:supervisor")
MANAGE_ROLES = ("admin", "quality:manage", "quality:supervisor")


def _header_update(view: InspectionView) -> dict:
    h = view.header
    return {
        "inspected_quantity": h.inspected,
        "approved_quantity": h.approved,
        "rejected_quantity": h.rejected,
        "hold_quantity": h.hold,
        "overrides": {f: h.override_value(f) for f in HeaderField},
    }


def to_inspection_read(view: InspectionView) -> InspectionRead:
    """Read model carrying the header values in effect rather than the stored ones."""
    return InspectionRead.model_validate(view.record).model_copy(update=_header_update(view))


def to_inspection_detail(view: InspectionView) -> InspectionDetail:
    update = _header_update(view)
    update["steps"] = [StepRead.model_validate(s) for s in view.steps]
    return InspectionDetail.model_validate(view.record).model_copy(update=update)


# PUBLIC_INTERFACE
@router.get(
    "/inspections",
    response_model=List[InspectionRead],
    summary="List inspections",
    description="completed=false lists pending inspections, completed=true the approved/rejected ones.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_inspections(
    session: AsyncSession = Depends(get_tenant_session),
    completed: Optional[bool] = Query(None, description="Pending (false) or completed (true)"),
    release_id: Optional[UUID] = Query(None, description="Filter by release"),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[InspectionRead]:
    views = await InspectionService(session).list_inspections(
        release_id=release_id, completed=completed, status=status, limit=limit, offset=offset
    )
    return [to_inspection_read(v) for v in views]


# PUBLIC_INTERFACE
@router.get(
    "/inspections/{inspection_id}",
    response_model=InspectionDetail,
    summary="Get inspection",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_inspection(
    inspection_id: UUID, session: AsyncSession = Depends(get_tenant_session)
) -> InspectionDetail:
    view = await InspectionService(session).get_inspection(inspection_id)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.put(
    "/inspections/{inspection_id}/steps",
    response_model=InspectionDetail,
    summary="Save inspection steps",
    description=(
        "Apply step verdicts all-or-nothing. 409 when a step's quantities exceed the inspected "
        "quantity; nothing is saved in that case."
    ),
)
async def save_steps(
    inspection_id: UUID,
    payload: SaveStepsRequest,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionDetail:
    edits = [
        StepEdit(
            key=s.step_id,
            approved_qty=s.approved_qty,
            rejected_qty=s.rejected_qty,
            hold_qty=s.hold_qty,
            remarks=s.remarks,
        )
        for s in payload.steps
    ]
    view = await InspectionService(session).save_steps(inspection_id, edits, actor)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.put(
    "/inspections/{inspection_id}/overrides/{field}",
    response_model=InspectionDetail,
    summary="Override header value",
    description="Freeze one header value. Privileged roles only.",
)
async def set_override(
    inspection_id: UUID,
    field: HeaderField,
    payload: OverrideValue,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionDetail:
    view = await InspectionService(session).set_override(inspection_id, field, payload.value, actor)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.patch(
    "/inspections/{inspection_id}/header/{field}",
    response_model=InspectionDetail,
    summary="Edit overridden header value",
    description="Change a header value that is already overridden. Privileged roles only.",
)
async def edit_header_value(
    inspection_id: UUID,
    field: HeaderField,
    payload: OverrideValue,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionDetail:
    view = await InspectionService(session).edit_header_value(inspection_id, field, payload.value, actor)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.delete(
    "/inspections/{inspection_id}/overrides/{field}",
    response_model=InspectionDetail,
    summary="Clear header override",
    description="Return a header value to derivation from the steps. Privileged roles only.",
)
async def clear_override(
    inspection_id: UUID,
    field: HeaderField,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionDetail:
    view = await InspectionService(session).clear_override(inspection_id, field, actor)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.patch(
    "/inspections/{inspection_id}",
    response_model=InspectionDetail,
    summary="Edit inspection details",
    description="Edit drawing batch, transmittal reference and remarks.",
)
async def update_inspection(
    inspection_id: UUID,
    payload: InspectionTextUpdate,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionDetail:
    view = await InspectionService(session).update_text(inspection_id, payload, actor)
    return to_inspection_detail(view)


# PUBLIC_INTERFACE
@router.delete(
    "/inspections/{inspection_id}",
    response_model=MessageResponse,
    summary="Delete inspection",
    description="Soft delete an inspection without recorded results. Privileged roles only.",
)
async def delete_inspection(
    inspection_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> MessageResponse:
    await InspectionService(session).delete_inspection(inspection_id, actor)
    return MessageResponse(message="Inspection deleted", details={"id": str(inspection_id)})


# PUBLIC_INTERFACE
@router.get(
    "/inspection-templates",
    response_model=List[TemplateRead],
    summary="List inspection templates",
    dependencies=[Depends(require_roles(*VIEW_ROLES, "production:manage"))],
)
async def list_templates(session: AsyncSession = Depends(get_tenant_session)) -> List[TemplateRead]:
    rows = await TemplateService(session).list_templates()
    return [TemplateRead.model_validate(x) for x in rows]


# PUBLIC_INTERFACE
@router.post(
    "/inspection-templates",
    response_model=TemplateRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create inspection template",
)
async def create_template(
    payload: TemplateCreate,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> TemplateRead:
    template = await TemplateService(session).create_template(payload, actor)
    return TemplateRead.model_validate(template)
