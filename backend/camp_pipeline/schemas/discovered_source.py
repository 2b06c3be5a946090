"""Pydantic schemas for DiscoveredSource model and the analysis callback."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AiAnalysis(BaseModel):
    """Classification returned by the analysis collaborator."""

    is_likely_camp_site: bool
    confidence: float = Field(ge=0, le=1)
    page_type: Literal[
        "camp_provider_main", "camp_program_list", "aggregator", "directory", "unknown"
    ] = "unknown"
    detected_organization_names: list[str] = []
    has_schedule_info: bool = False
    has_pricing_info: bool = False
    suggested_approach: str | None = None


class DiscoveredSourceCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    url: str = Field(min_length=1)
    title: str
    snippet: str | None = None
    discovery_query: str
    city_id: str | None = None


class DiscoveredSourceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str
    domain: str
    title: str
    snippet: str | None = None
    discovery_query: str
    city_id: str | None = None
    ai_analysis: AiAnalysis | None = None
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    scrape_source_id: UUID | None = None
    duplicate_of_source_id: UUID | None = None
    created_at: datetime


class ReviewDecision(BaseModel):
    decision: Literal["approved", "rejected"]
    reviewed_by: str = Field(min_length=1)
    notes: str | None = None
