"""Organization model — camp providers that own sources, camps and locations."""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship, validates

from camp_pipeline.models.base import Base, JSONType, TimestampMixin, UUIDMixin
from camp_pipeline.services.domains import normalize_domain


class Organization(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "organizations"

    # Identity
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)

    # Web presence
    website_url = Column(String(500))
    website_domain = Column(String(255), index=True)  # derived from website_url
    logo_url = Column(String(500))

    # Markets served
    city_ids = Column(JSONType, default=list, nullable=False)

    # Relationships
    scrape_sources = relationship("ScrapeSource", back_populates="organization")
    locations = relationship("Location", back_populates="organization")
    camps = relationship("Camp", back_populates="organization")

    @validates("website_url")
    def _sync_website_domain(self, key, value):
        self.website_domain = normalize_domain(value) if value else None
        return value
