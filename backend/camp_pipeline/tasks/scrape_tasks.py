"""Scrape orchestration tasks."""

import logging
from uuid import UUID

import camp_pipeline.extractors  # noqa: F401
import camp_pipeline.models  # noqa: F401
from camp_pipeline.errors import IllegalTransitionError, NotFoundError
from camp_pipeline.models.base import SyncSessionLocal
from camp_pipeline.services import jobs
from camp_pipeline.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="camp_pipeline.tasks.scrape_tasks.dispatch_due_scrapes")
def dispatch_due_scrapes():
    """Create jobs for sources due for refresh and queue their extraction."""
    db = SyncSessionLocal()
    try:
        created = jobs.dispatch_due_sources(db)
        job_ids = [str(job.id) for job in created]
        db.commit()

        # Queue only after commit so workers can see the jobs
        for job_id in job_ids:
            run_extraction_job.delay(job_id)

        logger.info(f"Dispatched {len(job_ids)} scrape jobs")
        return {"dispatched": len(job_ids)}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="camp_pipeline.tasks.scrape_tasks.run_extraction_job")
def run_extraction_job(job_id: str):
    """Claim a pending job, run its extractor and record the outcome."""
    db = SyncSessionLocal()
    try:
        job = jobs.execute_job(db, UUID(job_id))
        db.commit()
        return {
            "job_id": job_id,
            "status": job.status,
            "sessions_found": job.sessions_found,
            "error_kind": job.error_kind,
        }
    except (NotFoundError, IllegalTransitionError) as e:
        # Cancelled or swept before a worker picked it up
        db.rollback()
        logger.warning(f"Job {job_id} not executed: {e}")
        return {"job_id": job_id, "status": "skipped"}
    except Exception:
        db.rollback()
        logger.exception(f"Job {job_id} crashed while recording its outcome")
        raise
    finally:
        db.close()
