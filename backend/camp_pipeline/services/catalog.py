"""Catalog writes — merge-on-write upsert of validated sessions.

A session re-extracted by a later job is matched to the existing row (same
source, same start date, similar name) and updated in place instead of being
inserted again. Camps and locations are found or created per organization.
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from camp_pipeline.config import get_settings
from camp_pipeline.models.base import utc_now
from camp_pipeline.models.camp import Camp
from camp_pipeline.models.camp_session import CampSession
from camp_pipeline.models.location import Location
from camp_pipeline.models.scrape_job import ScrapeJob
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.services.domains import normalize_name, similarity, slugify
from camp_pipeline.services.validation import (
    Validation,
    calculate_source_quality,
    determine_session_status,
)

logger = logging.getLogger(__name__)

NAME_MATCH_THRESHOLD = 0.8

# Typed fields copied from the validated record onto the session row
_SESSION_FIELDS = (
    "name", "description", "category", "source_session_id",
    "start_date", "end_date", "date_raw",
    "drop_off_hour", "drop_off_minute", "pick_up_hour", "pick_up_minute", "time_raw",
    "price_in_cents", "price_raw",
    "min_age", "max_age", "min_grade", "max_grade", "age_grade_raw",
    "registration_url", "is_available",
)


@dataclass
class UpsertResult:
    session: CampSession
    created: bool


def upsert_session(db: Session, source: ScrapeSource, job: ScrapeJob, validation: Validation) -> UpsertResult:
    """Insert or update the catalog session for one validated record."""
    record = validation.normalized
    name = record.name or f"Untitled session from {source.name}"
    now = utc_now()

    existing = find_matching_session(db, source.id, record.start_date, name)

    camp = find_or_create_camp(db, source.organization_id, name, record.category, record.image_urls)
    location = find_or_create_location(db, source.organization_id, record.location) if record.location else None

    status = determine_session_status(validation.completeness_score, record.price_in_cents, record.price_raw)

    if existing is None:
        session = CampSession(
            source_id=source.id,
            organization_id=source.organization_id,
            name=name,
            image_urls=list(record.image_urls),
        )
        db.add(session)
        created = True
    else:
        session = existing
        if record.image_urls:
            session.image_urls = list(record.image_urls)
        created = False

    for field_name in _SESSION_FIELDS:
        value = getattr(record, field_name)
        if field_name == "name":
            value = name
        # Keep what we already know when a re-extraction lost a field
        if value is not None or created:
            setattr(session, field_name, value)

    session.camp_id = camp.id
    if location is not None:
        session.location_id = location.id
        session.location_text = record.location
    session.last_job_id = job.id
    session.status = status
    session.completeness_score = validation.completeness_score
    session.missing_fields = list(validation.missing_fields)
    session.validation_errors = validation.errors_as_dicts()
    session.last_scraped_at = now

    db.flush()
    return UpsertResult(session=session, created=created)


def find_matching_session(db: Session, source_id, start_date, name: str) -> CampSession | None:
    """Existing session from the same source and start date whose name is a close match."""
    query = db.query(CampSession).filter(CampSession.source_id == source_id)
    if start_date is None:
        query = query.filter(CampSession.start_date.is_(None))
    else:
        query = query.filter(CampSession.start_date == start_date)

    best, best_score = None, NAME_MATCH_THRESHOLD
    for candidate in query.order_by(CampSession.created_at, CampSession.id).all():
        score = similarity(candidate.name, name)
        if score > best_score:
            best, best_score = candidate, score
    return best


def find_or_create_camp(db: Session, organization_id, name: str, category=None, image_urls=None) -> Camp:
    query = db.query(Camp).filter(func.lower(Camp.name) == normalize_name(name))
    query = query.filter(_same_org(Camp.organization_id, organization_id))
    camp = query.order_by(Camp.created_at, Camp.id).first()
    if camp is not None:
        if image_urls and not camp.image_urls:
            camp.image_urls = list(image_urls)
        return camp

    camp = Camp(
        organization_id=organization_id,
        name=re.sub(r"\s+", " ", name.strip()),
        slug=slugify(name),
        category=category,
        image_urls=list(image_urls or []),
    )
    db.add(camp)
    db.flush()
    return camp


def find_or_create_location(db: Session, organization_id, location_text: str) -> Location:
    """Resolve free location text to a Location row for the organization.

    New locations are not geocoded here; they get the configured placeholder
    city-centre point until a geocoder fills in real coordinates.
    """
    name = re.sub(r"\s+", " ", location_text.strip())[:255]
    location = (
        db.query(Location)
        .filter(_same_org(Location.organization_id, organization_id))
        .filter(func.lower(Location.name) == name.lower())
        .order_by(Location.created_at, Location.id)
        .first()
    )
    if location is not None:
        return location

    settings = get_settings()
    location = Location(
        organization_id=organization_id,
        name=name,
        street=name if looks_like_address(name) else "TBD",
        latitude=settings.placeholder_latitude,
        longitude=settings.placeholder_longitude,
    )
    db.add(location)
    db.flush()
    logger.info(f"Created location '{name}' with placeholder coordinates")
    return location


def looks_like_address(text: str | None) -> bool:
    return bool(text) and re.search(r"\d+\s+[A-Za-z]", text) is not None


def refresh_source_quality(db: Session, source: ScrapeSource) -> None:
    """Recompute the source's data quality from all of its catalog sessions."""
    scores = [
        score for (score,) in
        db.query(CampSession.completeness_score).filter(CampSession.source_id == source.id).all()
    ]
    if not scores:
        return
    source.data_quality_score, source.quality_tier = calculate_source_quality(scores)


def _same_org(column, organization_id):
    return column.is_(None) if organization_id is None else column == organization_id
