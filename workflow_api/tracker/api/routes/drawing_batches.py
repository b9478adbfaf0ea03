from __future__ import annotations

from fastapi import APIRouter, Depends

from tracker.core.deps import require_roles
from tracker.domain import drawing_batch
from tracker.schemas.drawing import (
    DrawingBatchFormatRequest,
    DrawingBatchParsed,
    DrawingBatchText,
    DrawingEntryModel,
    PasteRequest,
    PasteResult,
    to_entries,
)

router = APIRouter(
    prefix="/drawing-batches",
    tags=["Drawing Batches"],
    dependencies=[
        Depends(
            require_roles(
                "admin", "production:view", "production:manage", "quality:view", "quality:manage"
            )
        )
    ],
)


# PUBLIC_INTERFACE
@router.post(
    "/parse",
    response_model=DrawingBatchParsed,
    summary="Parse drawing batch text",
    description="Split batch text into drawing entries. Never rejects input.",
)
async def parse_batch(payload: DrawingBatchText) -> DrawingBatchParsed:
    entries = drawing_batch.parse(payload.text)
    return DrawingBatchParsed(
        entries=[DrawingEntryModel.model_validate(e) for e in entries],
        total_quantity=drawing_batch.total_quantity(entries),
    )


# PUBLIC_INTERFACE
@router.post(
    "/format",
    response_model=DrawingBatchText,
    summary="Format drawing entries",
    description="Render entries as batch text; empty entries are dropped.",
)
async def format_batch(payload: DrawingBatchFormatRequest) -> DrawingBatchText:
    return DrawingBatchText(text=drawing_batch.format(to_entries(payload.entries)))


# PUBLIC_INTERFACE
@router.post(
    "/paste",
    response_model=PasteResult,
    summary="Import pasted spreadsheet rows",
    description=(
        "Splice tab-separated rows into the current entries at the insertion index. "
        "A single value without tabs is not a table paste and leaves the entries unchanged."
    ),
)
async def paste_rows(payload: PasteRequest) -> PasteResult:
    current = to_entries(payload.entries)
    result = drawing_batch.import_pasted_rows(payload.raw_text, payload.insertion_index, current)
    if result is None:
        return PasteResult(applied=False, entries=payload.entries)
    return PasteResult(applied=True, entries=[DrawingEntryModel.model_validate(e) for e in result])
