"""Scrape source API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from camp_pipeline.models.base import get_db
from camp_pipeline.schemas.scrape_job import ScrapeJobRead, TriggerJobRequest
from camp_pipeline.schemas.scrape_source import (
    OperatorAction,
    RescanRequest,
    ScrapeSourceCreate,
    ScrapeSourceRead,
    ScrapeSourceWithOrg,
    SourceHealthRead,
    SourceListItem,
    SourceListResponse,
)
from camp_pipeline.services import health, jobs, sources

router = APIRouter(prefix="/sources", tags=["sources"])


def health_read(snapshot: health.SourceHealth) -> SourceHealthRead:
    return SourceHealthRead(
        source_id=snapshot.source_id,
        total_runs=snapshot.total_runs,
        successful_runs=snapshot.successful_runs,
        consecutive_failures=snapshot.consecutive_failures,
        success_rate=snapshot.success_rate,
        last_success_at=snapshot.last_success_at,
        last_failure_at=snapshot.last_failure_at,
        last_error=snapshot.last_error,
        needs_regeneration=snapshot.needs_regeneration,
        classification=snapshot.classification.value,
    )


@router.get("", response_model=SourceListResponse)
async def list_sources(
    db: AsyncSession = Depends(get_db),
    source_filter: str = Query("all", alias="filter", pattern="^(all|active|healthy|failing|nodata)$"),
    city_id: str | None = Query(None, description="Filter by market"),
    limit: int = Query(50, ge=1, le=500),
):
    """List sources for one operator filter, with counts for every filter."""
    def _list(session):
        listing = sources.list_sources_filtered(session, source_filter, city_id=city_id, limit=limit)
        return SourceListResponse(
            sources=[
                SourceListItem(
                    **ScrapeSourceRead.model_validate(row.source).model_dump(),
                    health=health_read(row.health),
                    active_session_count=row.active_session_count,
                )
                for row in listing.sources
            ],
            counts_by_filter=listing.counts_by_filter,
            total_count=listing.total_count,
            has_more=listing.has_more,
        )

    return await db.run_sync(_list)


@router.post("", response_model=ScrapeSourceRead, status_code=201)
async def create_source(
    body: ScrapeSourceCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register a source by hand."""
    def _create(session):
        source = sources.create_source(
            session,
            name=body.name,
            url=body.url,
            organization_id=body.organization_id,
            city_id=body.city_id,
            extractor=body.extractor,
            additional_urls=[u.model_dump() for u in body.additional_urls],
            parsing_notes=body.parsing_notes,
            scrape_frequency_hours=body.scrape_frequency_hours,
        )
        return ScrapeSourceRead.model_validate(source)

    return await db.run_sync(_create)


@router.get("/{source_id}", response_model=ScrapeSourceWithOrg)
async def get_source(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    def _get(session):
        return ScrapeSourceWithOrg.model_validate(sources.get_source(session, source_id))

    return await db.run_sync(_get)


@router.delete("/{source_id}", status_code=204)
async def delete_source(
    source_id: UUID,
    cascade: bool = Query(False, description="Delete the source's sessions instead of unlinking them"),
    db: AsyncSession = Depends(get_db),
):
    await db.run_sync(sources.delete_source, source_id, cascade)
    return Response(status_code=204)


@router.get("/{source_id}/health", response_model=SourceHealthRead)
async def get_source_health(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Health counters and classification for one source."""
    snapshot = await db.run_sync(sources.get_source_health, source_id)
    return health_read(snapshot)


@router.post("/{source_id}/jobs", response_model=ScrapeJobRead, status_code=202)
async def trigger_job(
    source_id: UUID,
    body: TriggerJobRequest,
    enqueue: bool = Query(True, description="Queue the extraction task after creating the job"),
    db: AsyncSession = Depends(get_db),
):
    """Create a job for the source and queue it. 409 if one is already in progress."""
    def _trigger(session):
        return ScrapeJobRead.model_validate(jobs.trigger_job(session, source_id, body.triggered_by))

    job = await db.run_sync(_trigger)
    await db.commit()

    if enqueue:
        from camp_pipeline.tasks.scrape_tasks import run_extraction_job

        run_extraction_job.delay(str(job.id))

    return job


@router.get("/{source_id}/jobs", response_model=list[ScrapeJobRead])
async def list_source_jobs(
    source_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    def _list(session):
        sources.get_source(session, source_id)
        return [ScrapeJobRead.model_validate(j) for j in jobs.list_jobs_for_source(session, source_id, limit)]

    return await db.run_sync(_list)


@router.post("/{source_id}/clear-regeneration", response_model=SourceHealthRead)
async def clear_regeneration(
    source_id: UUID,
    body: OperatorAction | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Operator action after the source's extractor has been rebuilt."""
    actor = body.actor if body else None

    def _clear(session):
        return health.snapshot(health.clear_regeneration_flag(session, source_id, actor))

    return health_read(await db.run_sync(_clear))


@router.post("/{source_id}/rescan", response_model=ScrapeSourceRead)
async def request_rescan(
    source_id: UUID,
    body: RescanRequest,
    db: AsyncSession = Depends(get_db),
):
    """Flag the source so the next dispatch run scrapes it."""
    def _flag(session):
        return ScrapeSourceRead.model_validate(sources.flag_for_rescan(session, source_id, body.reason))

    return await db.run_sync(_flag)
