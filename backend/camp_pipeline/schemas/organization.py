"""Pydantic schemas for Organization model."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class OrganizationSummary(BaseModel):
    """Minimal organization info for nested responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    website_domain: str | None = None
