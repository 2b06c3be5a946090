"""Discovery queue API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from camp_pipeline.models.base import get_db
from camp_pipeline.schemas.discovered_source import (
    AiAnalysis,
    DiscoveredSourceCreate,
    DiscoveredSourceRead,
    ReviewDecision,
)
from camp_pipeline.services import discovery

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.post("", response_model=DiscoveredSourceRead, status_code=201)
async def record_discovery(
    body: DiscoveredSourceCreate,
    db: AsyncSession = Depends(get_db),
):
    """Entry point for the discovery collaborator. Repeated URLs return the existing item."""
    def _record(session):
        item = discovery.record_discovery(
            session,
            url=body.url,
            title=body.title,
            snippet=body.snippet,
            discovery_query=body.discovery_query,
            city_id=body.city_id,
        )
        return DiscoveredSourceRead.model_validate(item)

    try:
        return await db.run_sync(_record)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=list[DiscoveredSourceRead])
async def list_discovered(
    status: str | None = Query(
        None,
        pattern="^(pending_analysis|pending_review|approved|rejected|scraper_generated|duplicate)$",
    ),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    def _list(session):
        return [
            DiscoveredSourceRead.model_validate(item)
            for item in discovery.list_discovered_sources(session, status, limit)
        ]

    return await db.run_sync(_list)


@router.get("/counts", response_model=dict[str, int])
async def queue_counts(db: AsyncSession = Depends(get_db)):
    return await db.run_sync(discovery.queue_counts)


@router.post("/{item_id}/analysis", response_model=DiscoveredSourceRead)
async def apply_analysis(
    item_id: UUID,
    body: AiAnalysis,
    db: AsyncSession = Depends(get_db),
):
    """Callback for the analysis collaborator."""
    def _apply(session):
        return DiscoveredSourceRead.model_validate(discovery.apply_analysis(session, item_id, body.model_dump()))

    return await db.run_sync(_apply)


@router.post("/{item_id}/review", response_model=DiscoveredSourceRead)
async def review(
    item_id: UUID,
    body: ReviewDecision,
    db: AsyncSession = Depends(get_db),
):
    """Operator approval or rejection."""
    def _review(session):
        item = discovery.review_discovered_source(
            session, item_id, body.decision, reviewed_by=body.reviewed_by, notes=body.notes
        )
        return DiscoveredSourceRead.model_validate(item)

    return await db.run_sync(_review)


@router.post("/{item_id}/duplicate", response_model=DiscoveredSourceRead)
async def mark_duplicate(
    item_id: UUID,
    duplicate_of_source_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    def _mark(session):
        return DiscoveredSourceRead.model_validate(
            discovery.mark_duplicate(session, item_id, duplicate_of_source_id)
        )

    return await db.run_sync(_mark)
