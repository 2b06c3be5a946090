"""Scraper development request — work handed to the external scraper automation."""

from sqlalchemy import Column, String, Text, ForeignKey, Uuid

from camp_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class ScraperDevelopmentRequest(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scraper_development_requests"

    source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id", ondelete="CASCADE"), nullable=False, index=True)
    discovered_source_id = Column(Uuid(as_uuid=True), ForeignKey("discovered_sources.id"), nullable=True)

    source_url = Column(String(1000), nullable=False)
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, in_progress, completed
    requested_by = Column(String(255))
