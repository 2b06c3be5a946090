"""Maintenance tasks — job timeouts and catalog deduplication."""

import logging

import camp_pipeline.models  # noqa: F401
from camp_pipeline.config import get_settings
from camp_pipeline.models.base import SyncSessionLocal
from camp_pipeline.services import jobs
from camp_pipeline.services.deduplication import run_deduplication_batch
from camp_pipeline.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="camp_pipeline.tasks.maintenance_tasks.fail_timed_out_jobs")
def fail_timed_out_jobs():
    """Fail jobs that outlived the extraction timeout and free their sources."""
    db = SyncSessionLocal()
    try:
        count = jobs.fail_timed_out_jobs(db, get_settings().extraction_timeout_seconds)
        db.commit()
        logger.info(f"Timed out {count} jobs")
        return {"timed_out": count}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="camp_pipeline.tasks.maintenance_tasks.deduplicate")
def deduplicate(kind: str, cursor: str | None = None):
    """Run one deduplication slice and re-enqueue until the whole table is covered."""
    db = SyncSessionLocal()
    try:
        result = run_deduplication_batch(db, kind, get_settings().dedup_batch_size, cursor)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if result.continuation:
        deduplicate.delay(kind, result.continuation)

    logger.info(f"Dedup {kind} slice: merged={result.merged} deleted={result.deleted} errors={result.errors}")
    return {"kind": kind, **result.as_dict()}
