"""Scraper alert model — operator-facing notices raised by the health tracker."""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid

from camp_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class ScraperAlert(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scraper_alerts"

    source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id", ondelete="CASCADE"), index=True)

    alert_type = Column(String(50), nullable=False)  # scraper_degraded, scraper_needs_regeneration, rate_limited, source_recovered
    severity = Column(String(10), nullable=False)  # info, warning, error
    message = Column(Text, nullable=False)

    acknowledged_at = Column(DateTime(timezone=True), index=True)
    acknowledged_by = Column(String(255))
