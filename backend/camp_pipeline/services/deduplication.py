"""Deduplication engine — merge duplicate organizations, locations and camps.

Independent scrape jobs routinely create the same real-world entity twice.
The engine walks one kind of entity in creation order, a bounded slice per
call, groups each record with every other record sharing its key, keeps the
first record of the group and merges the rest into it:

    organizations   (normalized name, website domain)
    locations       (normalized name, organization)
    camps           (normalized name, organization)

Merging re-points every reference from the donor to the survivor and deletes
the donor, so re-running over an already merged group finds a group of one
and does nothing. Each group is merged inside its own SAVEPOINT; a failure is
logged and counted without touching the rest of the batch.

The locations pass also deletes unreferenced locations whose address is a
placeholder ("TBD", empty street, or the un-geocoded city-centre point).

Usage:
    result = run_deduplication_batch(db, "organizations", batch_size=200)
    while result.continuation:
        db.commit()
        result = run_deduplication_batch(db, "organizations", 200, result.continuation)
"""

import enum
import logging
import re
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from camp_pipeline.config import get_settings
from camp_pipeline.models.camp import Camp
from camp_pipeline.models.camp_session import CampSession
from camp_pipeline.models.location import Location
from camp_pipeline.models.organization import Organization
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.services.domains import normalize_name

logger = logging.getLogger(__name__)


class DedupKind(str, enum.Enum):
    ORGANIZATIONS = "organizations"
    LOCATIONS = "locations"
    CAMPS = "camps"


_MODELS = {
    DedupKind.ORGANIZATIONS: Organization,
    DedupKind.LOCATIONS: Location,
    DedupKind.CAMPS: Camp,
}


@dataclass
class DedupResult:
    merged: int = 0
    deleted: int = 0
    errors: int = 0
    continuation: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


def run_deduplication_batch(
    db: Session,
    kind: str,
    batch_size: int | None = None,
    cursor: str | None = None,
) -> DedupResult:
    """Process one slice of ``kind`` records created after ``cursor``.

    ``continuation`` is set when the slice was full; pass it back as
    ``cursor`` to process the next slice.
    """
    kind = DedupKind(kind)
    model = _MODELS[kind]
    batch_size = batch_size or get_settings().dedup_batch_size
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    query = db.query(model)
    if cursor:
        created_at, last_id = decode_cursor(cursor)
        query = query.filter(
            or_(
                model.created_at > created_at,
                and_(model.created_at == created_at, model.id > last_id),
            )
        )
    candidates = query.order_by(model.created_at, model.id).limit(batch_size).all()

    result = DedupResult()
    if len(candidates) == batch_size:
        last = candidates[-1]
        result.continuation = encode_cursor(last.created_at, last.id)

    candidate_ids = [c.id for c in candidates]

    if kind == DedupKind.LOCATIONS:
        result.deleted = _cleanup_bad_locations(db, candidate_ids, result)

    seen_keys: set = set()
    for candidate_id in candidate_ids:
        record = db.get(model, candidate_id)
        if record is None:
            continue  # merged away earlier in this batch
        key = _group_key(kind, record)
        if key in seen_keys:
            continue
        seen_keys.add(key)

        group = _find_group(db, kind, record, key)
        if len(group) < 2:
            continue

        survivor = _pick_survivor(kind, group)
        donors = [r for r in group if r.id != survivor.id]
        survivor_id = survivor.id
        try:
            with db.begin_nested():
                for donor in donors:
                    _MERGERS[kind](db, survivor, donor)
            result.merged += len(donors)
            logger.info(f"Merged {len(donors)} duplicate {kind.value} into {survivor_id}")
        except Exception as e:
            result.errors += 1
            logger.warning(f"Failed to merge {kind.value} group {key!r} into {survivor_id}: {e}")

    logger.info(
        f"Dedup {kind.value}: scanned={len(candidate_ids)} merged={result.merged} "
        f"deleted={result.deleted} errors={result.errors} more={result.continuation is not None}"
    )
    return result


def encode_cursor(created_at: datetime, record_id) -> str:
    return f"{created_at.isoformat()}|{record_id}"


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    try:
        created_at, record_id = cursor.split("|", 1)
        return datetime.fromisoformat(created_at), uuid.UUID(record_id)
    except ValueError as e:
        raise ValueError(f"Invalid deduplication cursor: {cursor!r}") from e


def is_placeholder_location(location: Location) -> bool:
    """True for locations with no usable address."""
    settings = get_settings()
    street = (location.street or "").strip()
    if not street or street.upper() == "TBD":
        return True
    if location.latitude is None or location.longitude is None:
        return False
    return (
        abs(location.latitude - settings.placeholder_latitude) < settings.placeholder_tolerance
        and abs(location.longitude - settings.placeholder_longitude) < settings.placeholder_tolerance
    )


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def _group_key(kind: DedupKind, record) -> tuple:
    if kind == DedupKind.ORGANIZATIONS:
        return normalize_name(record.name), record.website_domain
    return normalize_name(record.name), record.organization_id


def _find_group(db: Session, kind: DedupKind, record, key: tuple) -> list:
    """Every record sharing ``record``'s key, in creation order."""
    model = _MODELS[kind]
    query = db.query(model)
    if kind == DedupKind.ORGANIZATIONS:
        domain = key[1]
        if domain is None:
            query = query.filter(
                model.website_domain.is_(None),
                func.lower(model.name).like(_name_pattern(record.name), escape="\\"),
            )
        else:
            query = query.filter(model.website_domain == domain)
    else:
        org_id = key[1]
        query = query.filter(model.organization_id.is_(None) if org_id is None else model.organization_id == org_id)

    members = query.order_by(model.created_at, model.id).all()
    return [m for m in members if _group_key(kind, m) == key]


def _name_pattern(name: str | None) -> str:
    """LIKE pattern matching every spelling that normalizes to the same name."""
    words = [re.sub(r"([\\%_])", r"\\\1", word) for word in normalize_name(name).split(" ")]
    return "%" + "%".join(words) + "%"


def _pick_survivor(kind: DedupKind, group: list):
    # First record in creation order; locations prefer the first with a real address
    if kind == DedupKind.LOCATIONS:
        for location in group:
            if not is_placeholder_location(location):
                return location
    return group[0]


# ---------------------------------------------------------------------------
# Merges
# ---------------------------------------------------------------------------


def _merge_organization(db: Session, survivor: Organization, donor: Organization) -> None:
    for model in (ScrapeSource, CampSession, Camp, Location):
        db.query(model).filter(model.organization_id == donor.id).update({"organization_id": survivor.id})

    if not survivor.website_url and donor.website_url:
        survivor.website_url = donor.website_url
    if not survivor.logo_url and donor.logo_url:
        survivor.logo_url = donor.logo_url
    merged_cities = list(survivor.city_ids or [])
    for city_id in donor.city_ids or []:
        if city_id not in merged_cities:
            merged_cities.append(city_id)
    survivor.city_ids = merged_cities

    _delete_donor(db, donor)
    db.flush()


def _merge_location(db: Session, survivor: Location, donor: Location) -> None:
    db.query(CampSession).filter(CampSession.location_id == donor.id).update({"location_id": survivor.id})

    for field in ("street", "city", "state", "zip_code"):
        if not getattr(survivor, field) and getattr(donor, field):
            setattr(survivor, field, getattr(donor, field))
    if is_placeholder_location(survivor) and not is_placeholder_location(donor):
        survivor.latitude, survivor.longitude = donor.latitude, donor.longitude

    _delete_donor(db, donor)
    db.flush()


def _merge_camp(db: Session, survivor: Camp, donor: Camp) -> None:
    db.query(CampSession).filter(CampSession.camp_id == donor.id).update({"camp_id": survivor.id})

    images = list(survivor.image_urls or [])
    for url in donor.image_urls or []:
        if url not in images:
            images.append(url)
    survivor.image_urls = images
    if not survivor.category and donor.category:
        survivor.category = donor.category

    _delete_donor(db, donor)
    db.flush()


def _delete_donor(db: Session, donor) -> None:
    # Reload collections from the database so the delete sees the re-pointed rows
    db.expire(donor)
    db.delete(donor)


_MERGERS = {
    DedupKind.ORGANIZATIONS: _merge_organization,
    DedupKind.LOCATIONS: _merge_location,
    DedupKind.CAMPS: _merge_camp,
}


def _cleanup_bad_locations(db: Session, location_ids: list, result: DedupResult) -> int:
    deleted = 0
    for location_id in location_ids:
        location = db.get(Location, location_id)
        if location is None or not is_placeholder_location(location):
            continue
        in_use = db.query(CampSession.id).filter(CampSession.location_id == location_id).first()
        if in_use is not None:
            continue
        try:
            with db.begin_nested():
                db.delete(location)
                db.flush()
            deleted += 1
        except Exception as e:
            result.errors += 1
            logger.warning(f"Failed to delete placeholder location {location_id}: {e}")
    if deleted:
        logger.info(f"Deleted {deleted} unreferenced placeholder locations")
    return deleted
