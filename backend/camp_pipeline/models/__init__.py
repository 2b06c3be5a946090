"""SQLAlchemy models package.

All mapped classes are imported here so relationship strings resolve no
matter which model a caller imports first.
"""

from camp_pipeline.models import (  # noqa: F401
    camp,
    camp_session,
    discovered_source,
    location,
    organization,
    scrape_job,
    scrape_source,
    scraper_alert,
    scraper_development_request,
)
