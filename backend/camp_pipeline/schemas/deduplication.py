"""Pydantic schemas for deduplication batches."""

from pydantic import BaseModel, Field


class DeduplicationRequest(BaseModel):
    batch_size: int | None = Field(default=None, ge=1, le=5000)
    cursor: str | None = None


class DeduplicationResult(BaseModel):
    kind: str
    merged: int
    deleted: int
    errors: int
    continuation: str | None = None
