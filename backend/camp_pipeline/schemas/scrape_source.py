"""Pydantic schemas for ScrapeSource model and its health snapshot."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from camp_pipeline.schemas.organization import OrganizationSummary


class AdditionalUrl(BaseModel):
    url: str
    label: str | None = None


class ScrapeSourceBase(BaseModel):
    """Base fields for scrape source."""

    name: str
    url: str
    city_id: str | None = None
    extractor: str | None = None
    additional_urls: list[AdditionalUrl] = []
    parsing_notes: str | None = None
    scrape_frequency_hours: int = 24


class ScrapeSourceCreate(ScrapeSourceBase):
    """Fields for creating a scrape source."""

    organization_id: UUID | None = None


class ScrapeSourceRead(ScrapeSourceBase):
    """Full scrape source output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID | None = None
    domain: str | None = None
    is_active: bool
    discovered_by: str | None = None
    needs_rescan: bool = False
    rescan_reason: str | None = None
    last_scraped_at: datetime | None = None
    next_scheduled_scrape: datetime | None = None
    running_job_id: UUID | None = None
    data_quality_score: int | None = None
    quality_tier: str | None = None
    created_at: datetime
    updated_at: datetime


class ScrapeSourceWithOrg(ScrapeSourceRead):
    """Source with embedded organization info."""

    organization: "OrganizationSummary | None" = None


class SourceHealthRead(BaseModel):
    """Health snapshot with its computed classification."""

    model_config = ConfigDict(from_attributes=True)

    source_id: UUID
    total_runs: int
    successful_runs: int
    consecutive_failures: int
    success_rate: float
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None
    needs_regeneration: bool
    classification: str  # healthy, fair, degraded, critical, unknown


class SourceListItem(ScrapeSourceRead):
    health: SourceHealthRead
    active_session_count: int = 0


class SourceListResponse(BaseModel):
    sources: list[SourceListItem]
    counts_by_filter: dict[str, int]
    total_count: int
    has_more: bool


class RescanRequest(BaseModel):
    reason: str = Field(min_length=1)


class OperatorAction(BaseModel):
    actor: str | None = None
