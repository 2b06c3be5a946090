"""API v1 router aggregation."""

from fastapi import APIRouter

from camp_pipeline.api.v1.sources import router as sources_router
from camp_pipeline.api.v1.jobs import router as jobs_router
from camp_pipeline.api.v1.discovery import router as discovery_router
from camp_pipeline.api.v1.deduplication import router as deduplication_router

router = APIRouter(prefix="/api/v1")

router.include_router(sources_router)
router.include_router(jobs_router)
router.include_router(discovery_router)
router.include_router(deduplication_router)
