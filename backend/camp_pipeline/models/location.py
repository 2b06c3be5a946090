"""Location model — physical venues where sessions run."""

from sqlalchemy import Column, String, Float, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from camp_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class Location(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "locations"

    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True)

    name = Column(String(255), nullable=False)

    # Address
    street = Column(String(255))
    city = Column(String(100))
    state = Column(String(2))
    zip_code = Column(String(10))

    # Geocoding
    latitude = Column(Float)
    longitude = Column(Float)

    # Relationships
    organization = relationship("Organization", back_populates="locations")
    sessions = relationship("CampSession", back_populates="location")

    __table_args__ = (
        Index("idx_location_org_name", "organization_id", "name"),
    )
