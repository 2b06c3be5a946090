"""Job state machine — trigger, claim, extract and finalize scrape jobs.

    pending ──claim──▶ running ──records──▶ completed
       │                  │
       └──cancel──▶ failed ◀──error / timeout / cancel

A source holds at most one in-flight job. The lease is taken when the job is
triggered with a compare-and-swap on ``scrape_sources.running_job_id`` and is
released in the same transaction that makes the job terminal.

None of these functions commit except ``execute_job``, which commits the
claim before the extractor runs so the running state is visible while the
collaborator works. Callers own the transaction otherwise.
"""

import json
import logging
import uuid
from datetime import timedelta

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from camp_pipeline.config import get_settings
from camp_pipeline.errors import (
    ConflictError,
    ExtractionError,
    IllegalTransitionError,
    NotFoundError,
    StructuralExtractionError,
)
from camp_pipeline.extractors.registry import get_extractor_class
from camp_pipeline.models.base import utc_now
from camp_pipeline.models.scrape_job import JobErrorKind, JobStatus, ScrapeJob
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.services import catalog, health
from camp_pipeline.services.validation import validate

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(job: ScrapeJob, target: JobStatus) -> None:
    """Move a job to ``target`` or raise IllegalTransitionError."""
    current = JobStatus(job.status)
    if not can_transition(current, target):
        raise IllegalTransitionError("job", current.value, target.value)
    job.status = target.value


def trigger_job(db: Session, source_id, triggered_by: str) -> ScrapeJob:
    """Create a pending job for a source, taking the source's lease.

    Raises ConflictError if another job already holds the lease.
    """
    source = db.get(ScrapeSource, source_id)
    if source is None:
        raise NotFoundError(f"Source {source_id} not found")

    job_id = uuid.uuid4()
    claimed = (
        db.query(ScrapeSource)
        .filter(ScrapeSource.id == source_id, ScrapeSource.running_job_id.is_(None))
        .update({"running_job_id": job_id}, synchronize_session=False)
    )
    if claimed == 0:
        holder = db.query(ScrapeSource.running_job_id).filter(ScrapeSource.id == source_id).scalar()
        logger.info(f"Trigger for {source.name} rejected: job {holder} in progress")
        raise ConflictError(source_id, holder)

    job = ScrapeJob(
        id=job_id,
        source_id=source_id,
        status=JobStatus.PENDING.value,
        triggered_by=triggered_by,
    )
    db.add(job)
    db.flush()
    set_committed_value(source, "running_job_id", job_id)

    logger.info(f"Job {job_id} created for {source.name} (triggered by {triggered_by})")
    return job


def start_job(db: Session, job_id) -> ScrapeJob:
    """Claim a pending job for execution."""
    job = _lock_job(db, job_id)
    transition(job, JobStatus.RUNNING)
    job.started_at = utc_now()
    db.flush()
    logger.info(f"Job {job.id} running")
    return job


def submit_extraction_result(
    db: Session,
    job_id,
    records: list[dict] | None = None,
    error: str | None = None,
    error_kind: str = JobErrorKind.TRANSIENT.value,
    logs: list[str] | None = None,
) -> ScrapeJob:
    """Terminate a running job with the collaborator's records or error.

    On records: validate each one, upsert it into the catalog, mark the job
    completed and record a health success. On error: mark the job failed with
    the verbatim error text and record a health failure. Both paths release
    the source lease.
    """
    job = _lock_job(db, job_id)
    if JobStatus(job.status) != JobStatus.RUNNING:
        target = JobStatus.FAILED if error is not None else JobStatus.COMPLETED
        raise IllegalTransitionError("job", job.status, target.value)

    if error is not None:
        return _fail(db, job, error, error_kind, logs=logs)
    if records is None:
        raise ValueError("Either records or error must be provided")
    return _complete(db, job, records, logs or [])


def cancel_job(db: Session, job_id, cancelled_by: str) -> ScrapeJob:
    """Operator cancellation. Counts as a failure for health but never flags regeneration."""
    job = _lock_job(db, job_id)
    if JobStatus(job.status).is_terminal:
        raise IllegalTransitionError("job", job.status, JobStatus.FAILED.value)
    return _fail(db, job, f"Cancelled by {cancelled_by}", JobErrorKind.CANCELLED.value)


def fail_timed_out_jobs(db: Session, timeout_seconds: int | None = None) -> int:
    """Force jobs past the extraction timeout into ``failed``.

    Covers running jobs whose extractor never reported back and pending jobs
    that no worker claimed, which would otherwise hold their source's lease.
    """
    timeout_seconds = timeout_seconds or get_settings().extraction_timeout_seconds
    cutoff = utc_now() - timedelta(seconds=timeout_seconds)

    stale = (
        db.query(ScrapeJob)
        .populate_existing()
        .with_for_update(skip_locked=True)
        .filter(
            or_(
                and_(ScrapeJob.status == JobStatus.RUNNING.value, ScrapeJob.started_at < cutoff),
                and_(ScrapeJob.status == JobStatus.PENDING.value, ScrapeJob.created_at < cutoff),
            )
        )
        .order_by(ScrapeJob.created_at)
        .all()
    )

    for job in stale:
        if job.status == JobStatus.RUNNING.value:
            message = f"Extraction timed out after {timeout_seconds} seconds"
        else:
            message = f"Job was not claimed within {timeout_seconds} seconds"
        _fail(db, job, message, JobErrorKind.TIMEOUT.value)

    if stale:
        logger.warning(f"Timed out {len(stale)} jobs")
    return len(stale)


def execute_job(db: Session, job_id) -> ScrapeJob:
    """Claim a job, run its source's extractor and submit the outcome.

    The extractor call is the only point where the job waits on the outside
    world. The claim is committed before it so the job shows as running.
    """
    job = start_job(db, job_id)
    db.commit()

    source = job.source
    extractor_cls = get_extractor_class(source.extractor)
    if extractor_cls is None:
        error = StructuralExtractionError(f"No extractor registered for '{source.extractor}'")
        return submit_extraction_result(db, job.id, error=str(error), error_kind=error.kind)

    extractor = extractor_cls(source)
    try:
        records = extractor.extract()
    except ExtractionError as e:
        logger.error(f"Job {job.id} for {source.name} failed ({e.kind}): {e}")
        return submit_extraction_result(db, job.id, error=str(e), error_kind=e.kind, logs=extractor.logs)
    except (SoftTimeLimitExceeded, TimeoutError) as e:
        logger.error(f"Job {job.id} for {source.name} timed out")
        return submit_extraction_result(
            db, job.id,
            error=str(e) or "Extraction timed out",
            error_kind=JobErrorKind.TIMEOUT.value,
            logs=extractor.logs,
        )
    except Exception as e:
        logger.exception(f"Job {job.id} for {source.name} failed with an unexpected error")
        return submit_extraction_result(db, job.id, error=str(e) or type(e).__name__, logs=extractor.logs)

    return submit_extraction_result(db, job.id, records=records, logs=extractor.logs)


def dispatch_due_sources(db: Session, limit: int | None = None) -> list[ScrapeJob]:
    """Trigger jobs for active sources whose next scrape is due.

    Regeneration-flagged sources are skipped until an operator clears the
    flag; leased sources are skipped silently.
    """
    limit = limit or get_settings().max_dispatch_per_run
    now = utc_now()

    due = (
        db.query(ScrapeSource)
        .filter(
            ScrapeSource.is_active.is_(True),
            ScrapeSource.needs_regeneration.is_(False),
            ScrapeSource.running_job_id.is_(None),
            or_(
                ScrapeSource.needs_rescan.is_(True),
                ScrapeSource.next_scheduled_scrape.is_(None),
                ScrapeSource.next_scheduled_scrape <= now,
            ),
        )
        .order_by(ScrapeSource.needs_rescan.desc(), ScrapeSource.next_scheduled_scrape.asc())
        .limit(limit)
        .all()
    )

    jobs = []
    for source in due:
        try:
            jobs.append(trigger_job(db, source.id, triggered_by="scheduler"))
        except ConflictError:
            logger.info(f"Skipping {source.name}: job already in progress")
    return jobs


def list_jobs_for_source(db: Session, source_id, limit: int = 20) -> list[ScrapeJob]:
    return (
        db.query(ScrapeJob)
        .filter(ScrapeJob.source_id == source_id)
        .order_by(ScrapeJob.created_at.desc())
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id) -> ScrapeJob:
    job = db.get(ScrapeJob, job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return job


def _lock_job(db: Session, job_id) -> ScrapeJob:
    """Re-read a job under a row lock, discarding any state cached in the session.

    A worker's session may still hold the job as it was when the extractor
    started while an operator or the timeout sweep has since made it terminal.
    """
    job = (
        db.query(ScrapeJob)
        .populate_existing()
        .with_for_update()
        .filter(ScrapeJob.id == job_id)
        .one_or_none()
    )
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return job


def _lock_source(db: Session, source_id) -> ScrapeSource:
    return (
        db.query(ScrapeSource)
        .populate_existing()
        .with_for_update()
        .filter(ScrapeSource.id == source_id)
        .one()
    )


def _complete(db: Session, job: ScrapeJob, records: list[dict], logs: list[str]) -> ScrapeJob:
    source = _lock_source(db, job.source_id)
    created = updated = 0
    scores = []

    for record in records:
        result = validate(record)
        scores.append(result.completeness_score)
        upsert = catalog.upsert_session(db, source, job, result)
        if upsert.created:
            created += 1
        else:
            updated += 1

    transition(job, JobStatus.COMPLETED)
    now = utc_now()
    job.completed_at = now
    job.raw_output = {"records": _jsonable(records), "logs": list(logs)}
    job.sessions_found = len(records)
    job.sessions_created = created
    job.sessions_updated = updated
    job.average_completeness = int(round(sum(scores) / len(scores))) if scores else None

    source.last_scraped_at = now
    source.needs_rescan = False
    source.rescan_reason = None
    catalog.refresh_source_quality(db, source)
    _release_lease(db, source, job)
    health.record_outcome(db, source, health.JobOutcome(success=True))

    db.flush()
    logger.info(
        f"Job {job.id} completed for {source.name}: found={len(records)} "
        f"created={created} updated={updated}"
    )
    return job


def _fail(db: Session, job: ScrapeJob, message: str, kind: str, logs: list[str] | None = None) -> ScrapeJob:
    source = _lock_source(db, job.source_id)
    transition(job, JobStatus.FAILED)
    job.completed_at = utc_now()
    job.error_message = message
    job.error_kind = JobErrorKind(kind).value
    if logs:
        job.raw_output = {"records": [], "logs": list(logs)}

    _release_lease(db, source, job)
    health.record_outcome(db, source, health.JobOutcome(success=False, error_kind=job.error_kind, error_message=message))

    db.flush()
    logger.error(f"Job {job.id} failed for {source.name} ({job.error_kind}): {message}")
    return job


def _release_lease(db: Session, source: ScrapeSource, job: ScrapeJob) -> None:
    # Only the job holding the lease may clear it
    (
        db.query(ScrapeSource)
        .filter(ScrapeSource.id == source.id, ScrapeSource.running_job_id == job.id)
        .update({"running_job_id": None}, synchronize_session=False)
    )
    if source.running_job_id == job.id:
        set_committed_value(source, "running_job_id", None)


def _jsonable(records: list[dict]) -> list:
    # Extractors may hand back dates and decimals
    return json.loads(json.dumps(records, default=str))
