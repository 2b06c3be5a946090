"""Discovery queue — candidate websites on their way to becoming scrape sources.

    pending_analysis ──analysis──▶ pending_review ──operator──▶ approved ──▶ scraper_generated
           │                            │
           └──low confidence──▶ rejected ◀──operator──┘

Any non-terminal item can be short-circuited to ``duplicate`` when a source
already exists for its domain. Approval is always an operator decision.
"""

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from camp_pipeline.config import get_settings
from camp_pipeline.errors import IllegalTransitionError, NotFoundError
from camp_pipeline.models.base import utc_now
from camp_pipeline.models.discovered_source import DiscoveredSource, DiscoveryStatus
from camp_pipeline.models.organization import Organization
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.models.scraper_development_request import ScraperDevelopmentRequest
from camp_pipeline.services.domains import normalize_domain, slugify

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[DiscoveryStatus, set[DiscoveryStatus]] = {
    DiscoveryStatus.PENDING_ANALYSIS: {
        DiscoveryStatus.PENDING_REVIEW,
        DiscoveryStatus.APPROVED,
        DiscoveryStatus.REJECTED,
        DiscoveryStatus.DUPLICATE,
    },
    DiscoveryStatus.PENDING_REVIEW: {
        DiscoveryStatus.APPROVED,
        DiscoveryStatus.REJECTED,
        DiscoveryStatus.DUPLICATE,
    },
    DiscoveryStatus.APPROVED: {
        DiscoveryStatus.SCRAPER_GENERATED,
        DiscoveryStatus.DUPLICATE,
    },
    DiscoveryStatus.REJECTED: set(),
    DiscoveryStatus.SCRAPER_GENERATED: set(),
    DiscoveryStatus.DUPLICATE: set(),
}

REVIEW_DECISIONS = (DiscoveryStatus.APPROVED, DiscoveryStatus.REJECTED)


def can_transition(current: DiscoveryStatus, target: DiscoveryStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(item: DiscoveredSource, target: DiscoveryStatus) -> None:
    current = DiscoveryStatus(item.status)
    if not can_transition(current, target):
        raise IllegalTransitionError("discovered source", current.value, target.value)
    item.status = target.value
    item.status_changed_at = utc_now()


def record_discovery(
    db: Session,
    url: str,
    title: str,
    snippet: str | None,
    discovery_query: str,
    city_id: str | None = None,
) -> DiscoveredSource:
    """Entry point for the discovery collaborator. Idempotent on URL."""
    url = url.strip()
    existing = db.query(DiscoveredSource).filter(DiscoveredSource.url == url).first()
    if existing is not None:
        return existing

    domain = normalize_domain(url)
    if domain is None:
        raise ValueError(f"Cannot derive a domain from '{url}'")

    item = DiscoveredSource(
        url=url,
        domain=domain,
        title=title,
        snippet=snippet,
        discovery_query=discovery_query,
        city_id=city_id,
        status=DiscoveryStatus.PENDING_ANALYSIS.value,
        status_changed_at=utc_now(),
    )
    db.add(item)
    db.flush()
    logger.info(f"Discovered {domain} via '{discovery_query}'")
    return item


def apply_analysis(db: Session, item_id, analysis: dict[str, Any]) -> DiscoveredSource:
    """Store the analysis collaborator's classification and route the item.

    Existing source on the same domain wins over everything else. Otherwise
    a negative or low-confidence classification rejects the item and anything
    else waits for an operator in ``pending_review``.
    """
    item = get_discovered_source(db, item_id)
    if DiscoveryStatus(item.status) != DiscoveryStatus.PENDING_ANALYSIS:
        raise IllegalTransitionError("discovered source", item.status, DiscoveryStatus.PENDING_REVIEW.value)

    item.ai_analysis = dict(analysis)

    existing = find_source_for_domain(db, item.domain)
    if existing is not None:
        _mark_duplicate(item, existing.id)
        logger.info(f"{item.domain} already tracked by source {existing.id}")
    elif not analysis.get("is_likely_camp_site") or _confidence(analysis) < get_settings().discovery_confidence_threshold:
        transition(item, DiscoveryStatus.REJECTED)
        item.review_notes = "Rejected by analysis: not a likely camp site or low confidence"
        logger.info(f"{item.domain} rejected by analysis (confidence={_confidence(analysis):.2f})")
    else:
        transition(item, DiscoveryStatus.PENDING_REVIEW)
        logger.info(f"{item.domain} queued for review (confidence={_confidence(analysis):.2f})")

    db.flush()
    return item


def review_discovered_source(
    db: Session,
    item_id,
    decision: str,
    reviewed_by: str,
    notes: str | None = None,
) -> DiscoveredSource:
    """Operator decision on a discovered source.

    Approval creates the organization (unless one already exists for the
    domain) and the scrape source, moves the item to ``scraper_generated`` and
    enqueues a scraper development request.
    """
    target = DiscoveryStatus(decision)
    if target not in REVIEW_DECISIONS:
        raise ValueError(f"Review decision must be 'approved' or 'rejected', got '{decision}'")

    item = get_discovered_source(db, item_id)
    current = DiscoveryStatus(item.status)
    if current not in (DiscoveryStatus.PENDING_REVIEW, DiscoveryStatus.PENDING_ANALYSIS):
        raise IllegalTransitionError("discovered source", current.value, target.value)

    item.reviewed_by = reviewed_by
    item.reviewed_at = utc_now()
    item.review_notes = notes

    if target == DiscoveryStatus.REJECTED:
        transition(item, DiscoveryStatus.REJECTED)
        db.flush()
        logger.info(f"{item.domain} rejected by {reviewed_by}")
        return item

    existing = find_source_for_domain(db, item.domain)
    if existing is not None:
        _mark_duplicate(item, existing.id)
        db.flush()
        logger.info(f"{item.domain} approved but already tracked by source {existing.id}")
        return item

    transition(item, DiscoveryStatus.APPROVED)
    source = _promote(db, item, reviewed_by)
    transition(item, DiscoveryStatus.SCRAPER_GENERATED)
    item.scrape_source_id = source.id

    db.add(ScraperDevelopmentRequest(
        source_id=source.id,
        discovered_source_id=item.id,
        source_url=item.url,
        notes=_development_notes(item),
        requested_by=reviewed_by,
    ))
    db.flush()

    logger.info(f"{item.domain} approved by {reviewed_by}; created source {source.id}")
    return item


def mark_duplicate(db: Session, item_id, duplicate_of_source_id=None) -> DiscoveredSource:
    item = get_discovered_source(db, item_id)
    if duplicate_of_source_id is None:
        existing = find_source_for_domain(db, item.domain)
        duplicate_of_source_id = existing.id if existing is not None else None
    _mark_duplicate(item, duplicate_of_source_id)
    db.flush()
    return item


def queue_counts(db: Session) -> dict[str, int]:
    """Number of discovered sources in each status."""
    counts = {status.value: 0 for status in DiscoveryStatus}
    rows = (
        db.query(DiscoveredSource.status, func.count(DiscoveredSource.id))
        .group_by(DiscoveredSource.status)
        .all()
    )
    for status, count in rows:
        counts[status] = count
    return counts


def list_discovered_sources(db: Session, status: str | None = None, limit: int = 50) -> list[DiscoveredSource]:
    query = db.query(DiscoveredSource)
    if status:
        query = query.filter(DiscoveredSource.status == DiscoveryStatus(status).value)
    return query.order_by(DiscoveredSource.created_at.desc()).limit(limit).all()


def get_discovered_source(db: Session, item_id) -> DiscoveredSource:
    item = db.get(DiscoveredSource, item_id)
    if item is None:
        raise NotFoundError(f"Discovered source {item_id} not found")
    return item


def find_source_for_domain(db: Session, domain: str | None) -> ScrapeSource | None:
    if not domain:
        return None
    return (
        db.query(ScrapeSource)
        .filter(ScrapeSource.domain == domain)
        .order_by(ScrapeSource.created_at)
        .first()
    )


def _mark_duplicate(item: DiscoveredSource, source_id) -> None:
    transition(item, DiscoveryStatus.DUPLICATE)
    item.duplicate_of_source_id = source_id


def _promote(db: Session, item: DiscoveredSource, reviewed_by: str) -> ScrapeSource:
    analysis = item.ai_analysis or {}
    org_names = analysis.get("detected_organization_names") or []
    org_name = org_names[0] if org_names else item.title

    organization = (
        db.query(Organization)
        .filter(Organization.website_domain == item.domain)
        .order_by(Organization.created_at)
        .first()
    )
    if organization is None:
        organization = Organization(
            name=org_name,
            slug=_unique_slug(db, org_name),
            website_url=f"https://{item.domain}",
            city_ids=[item.city_id] if item.city_id else [],
        )
        db.add(organization)
        db.flush()
        logger.info(f"Created organization {organization.name} for {item.domain}")
    elif item.city_id and item.city_id not in (organization.city_ids or []):
        organization.city_ids = [*(organization.city_ids or []), item.city_id]

    source = ScrapeSource(
        organization_id=organization.id,
        city_id=item.city_id,
        name=org_name,
        url=item.url,
        domain=item.domain,
        additional_urls=[],
        is_active=False,  # activated once an extractor exists
        parsing_notes=analysis.get("suggested_approach"),
        parsing_notes_updated_at=utc_now() if analysis.get("suggested_approach") else None,
        scrape_frequency_hours=get_settings().default_scrape_frequency_hours,
        discovered_by="discovery",
    )
    db.add(source)
    db.flush()
    return source


def _unique_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug, n = base, 2
    while db.query(Organization.id).filter(Organization.slug == slug).first() is not None:
        slug = f"{base}-{n}"
        n += 1
    return slug


def _development_notes(item: DiscoveredSource) -> str:
    analysis = item.ai_analysis or {}
    lines = [f"Discovered via '{item.discovery_query}'", f"Page: {item.title}"]
    if analysis.get("page_type"):
        lines.append(f"Page type: {analysis['page_type']}")
    if analysis.get("suggested_approach"):
        lines.append(f"Suggested approach: {analysis['suggested_approach']}")
    return "\n".join(lines)


def _confidence(analysis: dict) -> float:
    try:
        return float(analysis.get("confidence") or 0.0)
    except (TypeError, ValueError):
        return 0.0
