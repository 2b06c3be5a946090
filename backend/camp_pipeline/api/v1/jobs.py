"""Scrape job API endpoints, including the extraction callback."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from camp_pipeline.models.base import get_db
from camp_pipeline.schemas.scrape_job import (
    CancelJobRequest,
    ExtractionResultSubmit,
    ScrapeJobRead,
    ScrapeJobWithOutput,
)
from camp_pipeline.services import jobs

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=ScrapeJobWithOutput)
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    def _get(session):
        return ScrapeJobWithOutput.model_validate(jobs.get_job(session, job_id))

    return await db.run_sync(_get)


@router.post("/{job_id}/result", response_model=ScrapeJobRead)
async def submit_result(
    job_id: UUID,
    body: ExtractionResultSubmit,
    db: AsyncSession = Depends(get_db),
):
    """Terminate a running job with the extractor's records or its error."""
    records = None
    if body.records is not None:
        records = [r.model_dump(mode="json", exclude_none=True) for r in body.records]

    def _submit(session):
        job = jobs.submit_extraction_result(
            session,
            job_id,
            records=records,
            error=body.error,
            error_kind=body.error_kind,
            logs=body.logs,
        )
        return ScrapeJobRead.model_validate(job)

    return await db.run_sync(_submit)


@router.post("/{job_id}/cancel", response_model=ScrapeJobRead)
async def cancel_job(
    job_id: UUID,
    body: CancelJobRequest,
    db: AsyncSession = Depends(get_db),
):
    def _cancel(session):
        return ScrapeJobRead.model_validate(jobs.cancel_job(session, job_id, body.cancelled_by))

    return await db.run_sync(_cancel)
