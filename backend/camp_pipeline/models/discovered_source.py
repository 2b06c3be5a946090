"""Discovered source model — candidate websites awaiting analysis and review."""

import enum

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class DiscoveryStatus(str, enum.Enum):
    PENDING_ANALYSIS = "pending_analysis"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCRAPER_GENERATED = "scraper_generated"
    DUPLICATE = "duplicate"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DiscoveryStatus.REJECTED,
            DiscoveryStatus.SCRAPER_GENERATED,
            DiscoveryStatus.DUPLICATE,
        )


class DiscoveredSource(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "discovered_sources"

    city_id = Column(String(64), index=True)

    # Search hit
    url = Column(String(1000), unique=True, nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    snippet = Column(Text)
    discovery_query = Column(String(500), nullable=False)

    # Analysis collaborator output (see schemas.discovered_source.AiAnalysis)
    ai_analysis = Column(JSONType)

    # Review state
    status = Column(String(30), nullable=False, default=DiscoveryStatus.PENDING_ANALYSIS.value, index=True)
    status_changed_at = Column(DateTime(timezone=True))
    reviewed_by = Column(String(255))
    reviewed_at = Column(DateTime(timezone=True))
    review_notes = Column(Text)

    # Promotion / duplicate links
    scrape_source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id"), nullable=True)
    duplicate_of_source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id"), nullable=True)

    scrape_source = relationship("ScrapeSource", foreign_keys=[scrape_source_id])
