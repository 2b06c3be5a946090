"""Deduplication API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from camp_pipeline.models.base import get_db
from camp_pipeline.schemas.deduplication import DeduplicationRequest, DeduplicationResult
from camp_pipeline.services.deduplication import DedupKind, run_deduplication_batch

router = APIRouter(prefix="/deduplication", tags=["deduplication"])


@router.post("/{kind}", response_model=DeduplicationResult)
async def run_batch(
    kind: DedupKind,
    body: DeduplicationRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Run one bounded deduplication batch. Call again with ``continuation`` as ``cursor`` until it is null."""
    body = body or DeduplicationRequest()
    try:
        result = await db.run_sync(run_deduplication_batch, kind.value, body.batch_size, body.cursor)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DeduplicationResult(kind=kind.value, **result.as_dict())
