"""Camp model — a program offered by an organization; sessions are dated instances of it."""

from sqlalchemy import Column, String, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Camp(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "camps"

    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    category = Column(String(100))
    image_urls = Column(JSONType, default=list, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="camps")
    sessions = relationship("CampSession", back_populates="camp")

    __table_args__ = (
        Index("idx_camp_org_name", "organization_id", "name"),
    )
