"""Pydantic schemas for ScrapeJob model and the extraction callback."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScrapeJobRead(BaseModel):
    """Full scrape job output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_id: UUID
    status: Literal["pending", "running", "completed", "failed"]
    triggered_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    sessions_found: int | None = None
    sessions_created: int | None = None
    sessions_updated: int | None = None
    average_completeness: int | None = None
    error_message: str | None = None
    error_kind: str | None = None
    created_at: datetime


class ScrapeJobWithOutput(ScrapeJobRead):
    raw_output: dict[str, Any] | None = None


class TriggerJobRequest(BaseModel):
    triggered_by: str = Field(min_length=1)


class ExtractedRecord(BaseModel):
    """One session as produced by an extractor.

    Types are loose: values that cannot be parsed are reported by the
    validator rather than rejected here.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    description: str | None = None
    category: str | None = None
    source_session_id: str | None = None
    start_date: date | str | None = None
    end_date: date | str | None = None
    date_raw: str | None = None
    drop_off_hour: int | str | None = None
    drop_off_minute: int | str | None = None
    pick_up_hour: int | str | None = None
    pick_up_minute: int | str | None = None
    time_raw: str | None = None
    price_in_cents: int | str | None = None
    price_raw: str | None = None
    min_age: int | str | None = None
    max_age: int | str | None = None
    min_grade: int | str | None = None
    max_grade: int | str | None = None
    age_grade_raw: str | None = None
    location: str | None = None
    registration_url: str | None = None
    image_urls: list[str] = []
    is_available: bool | None = None


class ExtractionResultSubmit(BaseModel):
    """Terminating callback: either records or an error."""

    records: list[ExtractedRecord] | None = None
    error: str | None = None
    error_kind: Literal["transient", "structural", "timeout"] = "transient"
    logs: list[str] = []

    @model_validator(mode="after")
    def _records_or_error(self):
        if (self.records is None) == (self.error is None):
            raise ValueError("Provide exactly one of 'records' or 'error'")
        return self


class CancelJobRequest(BaseModel):
    cancelled_by: str = Field(min_length=1)
