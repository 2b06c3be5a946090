"""Pydantic schemas package."""

from camp_pipeline.schemas.organization import OrganizationSummary
from camp_pipeline.schemas.scrape_source import (
    AdditionalUrl,
    OperatorAction,
    RescanRequest,
    ScrapeSourceBase,
    ScrapeSourceCreate,
    ScrapeSourceRead,
    ScrapeSourceWithOrg,
    SourceHealthRead,
    SourceListItem,
    SourceListResponse,
)
from camp_pipeline.schemas.scrape_job import (
    CancelJobRequest,
    ExtractedRecord,
    ExtractionResultSubmit,
    ScrapeJobRead,
    ScrapeJobWithOutput,
    TriggerJobRequest,
)
from camp_pipeline.schemas.discovered_source import (
    AiAnalysis,
    DiscoveredSourceCreate,
    DiscoveredSourceRead,
    ReviewDecision,
)
from camp_pipeline.schemas.deduplication import (
    DeduplicationRequest,
    DeduplicationResult,
)

# Rebuild models to resolve forward references
ScrapeSourceWithOrg.model_rebuild()

__all__ = [
    # Organization
    "OrganizationSummary",
    # ScrapeSource
    "AdditionalUrl",
    "OperatorAction",
    "RescanRequest",
    "ScrapeSourceBase",
    "ScrapeSourceCreate",
    "ScrapeSourceRead",
    "ScrapeSourceWithOrg",
    "SourceHealthRead",
    "SourceListItem",
    "SourceListResponse",
    # ScrapeJob
    "CancelJobRequest",
    "ExtractedRecord",
    "ExtractionResultSubmit",
    "ScrapeJobRead",
    "ScrapeJobWithOutput",
    "TriggerJobRequest",
    # DiscoveredSource
    "AiAnalysis",
    "DiscoveredSourceCreate",
    "DiscoveredSourceRead",
    "ReviewDecision",
    # Deduplication
    "DeduplicationRequest",
    "DeduplicationResult",
]
