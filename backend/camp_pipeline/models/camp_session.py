"""Camp session model — a catalog row created from one validated extracted record."""

from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class CampSession(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "sessions"

    source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id"), nullable=True, index=True)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True)
    camp_id = Column(Uuid(as_uuid=True), ForeignKey("camps.id"), nullable=True, index=True)
    location_id = Column(Uuid(as_uuid=True), ForeignKey("locations.id"), nullable=True, index=True)
    last_job_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_jobs.id"), nullable=True)

    # Core
    name = Column(String(500), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    source_session_id = Column(String(255))

    # Dates
    start_date = Column(Date, index=True)
    end_date = Column(Date)
    date_raw = Column(String(255))

    # Daily schedule
    drop_off_hour = Column(Integer)
    drop_off_minute = Column(Integer)
    pick_up_hour = Column(Integer)
    pick_up_minute = Column(Integer)
    time_raw = Column(String(255))

    # Price
    price_in_cents = Column(Integer)
    price_raw = Column(String(255))

    # Age / grade
    min_age = Column(Integer)
    max_age = Column(Integer)
    min_grade = Column(Integer)
    max_grade = Column(Integer)
    age_grade_raw = Column(String(255))

    location_text = Column(String(500))
    registration_url = Column(Text)
    image_urls = Column(JSONType, default=list, nullable=False)
    is_available = Column(Boolean)

    # Validation snapshot
    status = Column(String(20), nullable=False, default="draft", index=True)  # active, draft, pending_review
    completeness_score = Column(Integer, nullable=False, default=0)
    missing_fields = Column(JSONType, default=list, nullable=False)
    validation_errors = Column(JSONType, default=list, nullable=False)

    last_scraped_at = Column(DateTime(timezone=True))

    # Relationships
    source = relationship("ScrapeSource", back_populates="sessions")
    camp = relationship("Camp", back_populates="sessions")
    location = relationship("Location", back_populates="sessions")

    __table_args__ = (
        Index("idx_session_source_start", "source_id", "start_date"),
        Index("idx_session_org_status", "organization_id", "status"),
    )
