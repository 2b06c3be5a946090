"""Scrape source model — a managed ingestion target with its embedded health snapshot."""

from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class ScrapeSource(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scrape_sources"

    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True)
    city_id = Column(String(64), index=True)  # market tag owned by the surrounding product

    # Identity
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False)
    domain = Column(String(255), index=True)
    additional_urls = Column(JSONType, default=list, nullable=False)  # [{"url": ..., "label": ...}]

    # Extraction config
    extractor = Column(String(100))  # registered extractor name
    is_active = Column(Boolean, default=True, nullable=False)
    parsing_notes = Column(Text)
    parsing_notes_updated_at = Column(DateTime(timezone=True))
    scrape_frequency_hours = Column(Integer, default=24, nullable=False)
    discovered_by = Column(String(50), default="manual")  # manual, discovery

    # Re-scan flag
    needs_rescan = Column(Boolean, default=False, nullable=False)
    rescan_reason = Column(Text)
    rescan_requested_at = Column(DateTime(timezone=True))

    # Scheduling state
    last_scraped_at = Column(DateTime(timezone=True))
    next_scheduled_scrape = Column(DateTime(timezone=True))

    # Per-source lease: id of the job currently pending or running
    running_job_id = Column(Uuid(as_uuid=True), nullable=True)

    # Health
    total_runs = Column(Integer, default=0, nullable=False)
    successful_runs = Column(Integer, default=0, nullable=False)
    consecutive_failures = Column(Integer, default=0, nullable=False)
    success_rate = Column(Float, default=0.0, nullable=False)
    last_success_at = Column(DateTime(timezone=True))
    last_failure_at = Column(DateTime(timezone=True))
    last_error = Column(Text)
    needs_regeneration = Column(Boolean, default=False, nullable=False)

    # Data quality, from average session completeness
    data_quality_score = Column(Integer)
    quality_tier = Column(String(10))  # high, medium, low

    # Relationships
    organization = relationship("Organization", back_populates="scrape_sources")
    jobs = relationship("ScrapeJob", back_populates="source")
    sessions = relationship("CampSession", back_populates="source")

    __table_args__ = (
        Index("idx_source_due", "is_active", "needs_regeneration", "next_scheduled_scrape"),
    )
