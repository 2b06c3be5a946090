"""Scrape job model — one extraction attempt against one source, kept as an audit trail."""

import enum

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobErrorKind(str, enum.Enum):
    TRANSIENT = "transient"
    STRUCTURAL = "structural"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ScrapeJob(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scrape_jobs"

    source_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_sources.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value)
    triggered_by = Column(String(255))

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    # Raw collaborator output: {"records": [...], "logs": [...]}
    raw_output = Column(JSONType)

    sessions_found = Column(Integer)
    sessions_created = Column(Integer)
    sessions_updated = Column(Integer)
    average_completeness = Column(Integer)

    error_message = Column(Text)
    error_kind = Column(String(20))

    # Relationships
    source = relationship("ScrapeSource", back_populates="jobs")

    __table_args__ = (
        Index("idx_job_source_status", "source_id", "status"),
    )
