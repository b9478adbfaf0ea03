from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.deps import Actor, get_tenant_session, require_roles
from tracker.schemas.common import MessageResponse
from tracker.schemas.production import (
    BalanceRowRead,
    LedgerSummaryRead,
    OrderedQuantityCorrection,
    ReleaseCreate,
    ReleaseRead,
    ReleaseUpdate,
    WorkItemCreate,
    WorkItemDetail,
    WorkItemRead,
)
from tracker.schemas.quality import InspectionRead
from tracker.services.production import ReleaseService, WorkItemService
from tracker.api.routes.quality import to_inspection_read
from tracker.services.quality import InspectionService

router = APIRouter(tags=["Production"])

VIEW_ROLES = ("admin", "production:view", "production:manage")
MANAGE_ROLES = ("admin", "production:manage")


# PUBLIC_INTERFACE
@router.get(
    "/work-items",
    response_model=List[WorkItemRead],
    summary="List work items",
    description="List work items ordered by created_at desc.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_work_items(
    session: AsyncSession = Depends(get_tenant_session),
    item_no: Optional[str] = Query(None, description="Filter by item number (ILIKE)"),
    job_no: Optional[str] = Query(None, description="Filter by job number"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[WorkItemRead]:
    svc = WorkItemService(session)
    rows = await svc.work_items.list_work_items(item_no=item_no, job_no=job_no, limit=limit, offset=offset)
    return [WorkItemRead.model_validate(x) for x in rows]


# PUBLIC_INTERFACE
@router.post(
    "/work-items",
    response_model=WorkItemRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create work item",
)
async def create_work_item(
    payload: WorkItemCreate,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> WorkItemRead:
    item = await WorkItemService(session).create_work_item(payload, actor)
    return WorkItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.get(
    "/work-items/{item_id}",
    response_model=WorkItemDetail,
    summary="Get work item",
    description="Work item with ordered, released, remaining and settled quantities.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_work_item(item_id: UUID, session: AsyncSession = Depends(get_tenant_session)) -> WorkItemDetail:
    item, summary = await WorkItemService(session).get_with_summary(item_id)
    read = WorkItemRead.model_validate(item)
    return WorkItemDetail(**read.model_dump(), summary=LedgerSummaryRead.model_validate(summary))


# PUBLIC_INTERFACE
@router.get(
    "/work-items/{item_id}/balance",
    response_model=List[BalanceRowRead],
    summary="Running balance",
    description="Balance after each release, newest release first.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_running_balance(
    item_id: UUID, session: AsyncSession = Depends(get_tenant_session)
) -> List[BalanceRowRead]:
    rows = await WorkItemService(session).running_balance(item_id)
    return [BalanceRowRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.patch(
    "/work-items/{item_id}/ordered-quantity",
    response_model=WorkItemRead,
    summary="Correct ordered quantity",
    description="Administrative correction; never below the released quantity. Privileged roles only.",
)
async def correct_ordered_quantity(
    item_id: UUID,
    payload: OrderedQuantityCorrection,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> WorkItemRead:
    item = await WorkItemService(session).correct_ordered_quantity(item_id, payload.ordered_quantity, actor)
    return WorkItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.get(
    "/releases",
    response_model=List[ReleaseRead],
    summary="List releases",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_releases(
    session: AsyncSession = Depends(get_tenant_session),
    work_item_id: Optional[UUID] = Query(None, description="Filter by work item"),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ReleaseRead]:
    rows = await ReleaseService(session).list_releases(
        work_item_id=work_item_id, status=status, limit=limit, offset=offset
    )
    return [ReleaseRead.model_validate(x) for x in rows]


# PUBLIC_INTERFACE
@router.post(
    "/releases",
    response_model=ReleaseRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create release",
    description="Release part of a work item's quantity. 409 when it exceeds the remaining quantity.",
)
async def create_release(
    payload: ReleaseCreate,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> ReleaseRead:
    release = await ReleaseService(session).create_release(payload, actor)
    return ReleaseRead.model_validate(release)


# PUBLIC_INTERFACE
@router.get(
    "/releases/{release_id}",
    response_model=ReleaseRead,
    summary="Get release",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_release(release_id: UUID, session: AsyncSession = Depends(get_tenant_session)) -> ReleaseRead:
    release = await ReleaseService(session).get_release(release_id)
    return ReleaseRead.model_validate(release)


# PUBLIC_INTERFACE
@router.patch(
    "/releases/{release_id}",
    response_model=ReleaseRead,
    summary="Edit release",
    description="423 once an inspection of the release has recorded results.",
)
async def update_release(
    release_id: UUID,
    payload: ReleaseUpdate,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> ReleaseRead:
    release = await ReleaseService(session).update_release(release_id, payload, actor)
    return ReleaseRead.model_validate(release)


# PUBLIC_INTERFACE
@router.delete(
    "/releases/{release_id}",
    response_model=MessageResponse,
    summary="Delete release",
    description="Soft delete; the quantity returns to the work item's balance.",
)
async def delete_release(
    release_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> MessageResponse:
    await ReleaseService(session).delete_release(release_id, actor)
    return MessageResponse(message="Release deleted", details={"id": str(release_id)})


# PUBLIC_INTERFACE
@router.post(
    "/releases/{release_id}/start",
    response_model=ReleaseRead,
    summary="Start production",
)
async def start_production(
    release_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> ReleaseRead:
    release = await ReleaseService(session).start_production(release_id, actor)
    return ReleaseRead.model_validate(release)


# PUBLIC_INTERFACE
@router.post(
    "/releases/{release_id}/push-for-inspection",
    response_model=InspectionRead,
    summary="Push for inspection",
    description="Open (or reuse) the release's inspection and move it to PENDING_INSPECTION.",
)
async def push_for_inspection(
    release_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles(*MANAGE_ROLES)),
) -> InspectionRead:
    inspection = await ReleaseService(session).push_for_inspection(release_id, actor)
    view = await InspectionService(session).get_inspection(inspection.id)
    return to_inspection_read(view)


# PUBLIC_INTERFACE
@router.post(
    "/releases/{release_id}/reject",
    response_model=ReleaseRead,
    summary="Reject release",
    description="Administrative rejection from PENDING_INSPECTION or REWORK. Privileged roles only.",
)
async def reject_release(
    release_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
    actor: Actor = Depends(require_roles("admin", "quality:manage", "quality:supervisor")),
) -> ReleaseRead:
    release = await ReleaseService(session).reject_release(release_id, actor)
    return ReleaseRead.model_validate(release)
