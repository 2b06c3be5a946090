"""Scrape source management — operator reads and actions on sources."""

import logging
from dataclasses import dataclass, field
from typing import Final

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from camp_pipeline.config import get_settings
from camp_pipeline.errors import ConflictError, NotFoundError
from camp_pipeline.models.base import utc_now
from camp_pipeline.models.camp_session import CampSession
from camp_pipeline.models.discovered_source import DiscoveredSource
from camp_pipeline.models.scrape_job import ScrapeJob
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.models.scraper_alert import ScraperAlert
from camp_pipeline.models.scraper_development_request import ScraperDevelopmentRequest
from camp_pipeline.services import health
from camp_pipeline.services.domains import normalize_domain

logger = logging.getLogger(__name__)

# "healthy" is accepted as an alias of "active"
SOURCE_FILTERS: Final[tuple[str, ...]] = ("all", "active", "failing", "nodata")
FILTER_ALIASES: Final[dict[str, str]] = {"healthy": "active"}


@dataclass
class SourceRow:
    source: ScrapeSource
    health: health.SourceHealth
    active_session_count: int


@dataclass
class SourceListing:
    sources: list[SourceRow] = field(default_factory=list)
    counts_by_filter: dict[str, int] = field(default_factory=dict)
    total_count: int = 0
    has_more: bool = False


def create_source(
    db: Session,
    name: str,
    url: str,
    organization_id=None,
    city_id: str | None = None,
    extractor: str | None = None,
    additional_urls: list[dict] | None = None,
    parsing_notes: str | None = None,
    scrape_frequency_hours: int | None = None,
    discovered_by: str = "manual",
) -> ScrapeSource:
    source = ScrapeSource(
        name=name,
        url=url,
        domain=normalize_domain(url),
        organization_id=organization_id,
        city_id=city_id,
        extractor=extractor,
        additional_urls=list(additional_urls or []),
        parsing_notes=parsing_notes,
        parsing_notes_updated_at=utc_now() if parsing_notes else None,
        scrape_frequency_hours=scrape_frequency_hours or get_settings().default_scrape_frequency_hours,
        discovered_by=discovered_by,
    )
    db.add(source)
    db.flush()
    logger.info(f"Created source {source.name} ({source.domain})")
    return source


def get_source(db: Session, source_id) -> ScrapeSource:
    source = db.get(ScrapeSource, source_id)
    if source is None:
        raise NotFoundError(f"Source {source_id} not found")
    return source


def get_source_health(db: Session, source_id) -> health.SourceHealth:
    return health.snapshot(get_source(db, source_id))


def list_sources_filtered(
    db: Session,
    source_filter: str = "all",
    city_id: str | None = None,
    limit: int = 50,
) -> SourceListing:
    """Sources matching an operator filter, with per-filter counts.

    active   active and fewer than DEGRADED_FAILURE_STREAK consecutive failures
    failing  at least DEGRADED_FAILURE_STREAK consecutive failures
    nodata   no linked active sessions
    """
    name = FILTER_ALIASES.get(source_filter, source_filter)
    if name not in SOURCE_FILTERS:
        raise ValueError(f"Unknown source filter '{source_filter}'")

    active_counts = (
        db.query(CampSession.source_id.label("source_id"), func.count(CampSession.id).label("n"))
        .filter(CampSession.status == "active")
        .group_by(CampSession.source_id)
        .subquery()
    )
    session_count = func.coalesce(active_counts.c.n, 0)

    def base_query(*columns):
        query = (
            db.query(*columns)
            .select_from(ScrapeSource)
            .outerjoin(active_counts, active_counts.c.source_id == ScrapeSource.id)
        )
        if city_id:
            query = query.filter(ScrapeSource.city_id == city_id)
        return query

    conditions = {
        "all": None,
        "active": and_(
            ScrapeSource.is_active.is_(True),
            ScrapeSource.consecutive_failures < health.DEGRADED_FAILURE_STREAK,
        ),
        "failing": ScrapeSource.consecutive_failures >= health.DEGRADED_FAILURE_STREAK,
        "nodata": session_count == 0,
    }

    counts = {}
    for key, condition in conditions.items():
        query = base_query(func.count(ScrapeSource.id))
        if condition is not None:
            query = query.filter(condition)
        counts[key] = query.scalar() or 0

    query = base_query(ScrapeSource, session_count)
    if conditions[name] is not None:
        query = query.filter(conditions[name])
    rows = query.order_by(ScrapeSource.name, ScrapeSource.id).limit(limit + 1).all()

    return SourceListing(
        sources=[
            SourceRow(source=source, health=health.snapshot(source), active_session_count=count)
            for source, count in rows[:limit]
        ],
        counts_by_filter=counts,
        total_count=counts[name],
        has_more=len(rows) > limit,
    )


def flag_for_rescan(db: Session, source_id, reason: str) -> ScrapeSource:
    """Ask the scheduler to scrape the source on its next dispatch run."""
    source = get_source(db, source_id)
    source.needs_rescan = True
    source.rescan_reason = reason
    source.rescan_requested_at = utc_now()
    db.flush()
    logger.info(f"Rescan requested for {source.name}: {reason}")
    return source


def delete_source(db: Session, source_id, cascade: bool = False) -> None:
    """Delete a source and its job history.

    Catalog sessions are unlinked (``source_id`` set to NULL) unless
    ``cascade`` is set, in which case they are deleted too.
    """
    source = get_source(db, source_id)
    if source.running_job_id is not None:
        raise ConflictError(source.id, source.running_job_id)

    if cascade:
        removed = db.query(CampSession).filter(CampSession.source_id == source.id).delete(synchronize_session=False)
    else:
        removed = db.query(CampSession).filter(CampSession.source_id == source.id).update(
            {"source_id": None}, synchronize_session=False
        )

    for column in (DiscoveredSource.scrape_source_id, DiscoveredSource.duplicate_of_source_id):
        db.query(DiscoveredSource).filter(column == source.id).update({column: None}, synchronize_session=False)
    for model in (ScraperAlert, ScraperDevelopmentRequest):
        db.query(model).filter(model.source_id == source.id).delete(synchronize_session=False)
    db.query(CampSession).filter(
        CampSession.last_job_id.in_(select(ScrapeJob.id).where(ScrapeJob.source_id == source.id))
    ).update({"last_job_id": None}, synchronize_session=False)
    db.query(ScrapeJob).filter(ScrapeJob.source_id == source.id).delete(synchronize_session=False)

    db.expire(source)
    db.delete(source)
    db.flush()
    logger.info(
        f"Deleted source {source_id}: {removed} sessions {'deleted' if cascade else 'unlinked'}"
    )
