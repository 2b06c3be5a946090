import pytest

from camp_pipeline.errors import IllegalTransitionError
from camp_pipeline.models.organization import Organization
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.models.scraper_development_request import ScraperDevelopmentRequest
from camp_pipeline.services import discovery


def _analysis(**overrides):
    analysis = {
        "is_likely_camp_site": True,
        "confidence": 0.95,
        "page_type": "camp_provider_main",
        "detected_organization_names": ["Trackers Earth"],
        "has_schedule_info": True,
        "has_pricing_info": True,
        "suggested_approach": "Session cards under #summer-camps",
    }
    analysis.update(overrides)
    return analysis


def _discover(db, url="https://www.trackersearth.com/portland/camps", **kwargs):
    kwargs.setdefault("title", "Trackers Earth Summer Camps")
    kwargs.setdefault("snippet", "Outdoor adventure camps in Portland")
    kwargs.setdefault("discovery_query", "portland summer camps")
    return discovery.record_discovery(db, url, **kwargs)


def test_record_discovery_starts_pending_analysis(db):
    item = _discover(db, city_id="portland")

    assert item.status == "pending_analysis"
    assert item.domain == "trackersearth.com"
    assert item.city_id == "portland"


def test_record_discovery_is_idempotent_on_url(db):
    first = _discover(db)
    second = _discover(db, title="Different title")

    assert first.id == second.id
    assert discovery.queue_counts(db)["pending_analysis"] == 1


def test_high_confidence_analysis_still_waits_for_review(db):
    item = _discover(db)

    discovery.apply_analysis(db, item.id, _analysis(confidence=0.95))

    assert item.status == "pending_review"
    assert item.ai_analysis["confidence"] == 0.95
    assert db.query(ScrapeSource).count() == 0


@pytest.mark.parametrize("overrides", [
    {"is_likely_camp_site": False, "confidence": 0.9},
    {"is_likely_camp_site": True, "confidence": 0.3},
])
def test_negative_or_low_confidence_analysis_rejects(db, overrides):
    item = _discover(db)

    discovery.apply_analysis(db, item.id, _analysis(**overrides))

    assert item.status == "rejected"


def test_analysis_for_tracked_domain_marks_duplicate(db, make_source):
    source = make_source(name="Trackers", url="https://trackersearth.com/portland")
    item = _discover(db)

    discovery.apply_analysis(db, item.id, _analysis())

    assert item.status == "duplicate"
    assert item.duplicate_of_source_id == source.id


def test_analysis_only_applies_once(db):
    item = _discover(db)
    discovery.apply_analysis(db, item.id, _analysis())

    with pytest.raises(IllegalTransitionError):
        discovery.apply_analysis(db, item.id, _analysis())


def test_approval_promotes_to_source_and_requests_scraper(db):
    item = _discover(db, city_id="portland")
    discovery.apply_analysis(db, item.id, _analysis())

    discovery.review_discovered_source(db, item.id, "approved", reviewed_by="ops@example.org", notes="looks good")

    assert item.status == "scraper_generated"
    assert item.reviewed_by == "ops@example.org"
    assert item.review_notes == "looks good"

    source = db.get(ScrapeSource, item.scrape_source_id)
    assert source.domain == "trackersearth.com"
    assert source.discovered_by == "discovery"
    assert source.is_active is False
    assert source.parsing_notes == "Session cards under #summer-camps"
    assert source.city_id == "portland"

    org = db.get(Organization, source.organization_id)
    assert org.name == "Trackers Earth"
    assert org.website_domain == "trackersearth.com"
    assert org.city_ids == ["portland"]

    request = db.query(ScraperDevelopmentRequest).one()
    assert request.source_id == source.id
    assert request.discovered_source_id == item.id
    assert "Suggested approach" in request.notes


def test_approval_reuses_organization_for_domain(db, make_org):
    org = make_org(name="Trackers Earth", website_url="https://trackersearth.com")
    item = _discover(db)
    discovery.apply_analysis(db, item.id, _analysis())

    discovery.review_discovered_source(db, item.id, "approved", reviewed_by="ops@example.org")

    source = db.get(ScrapeSource, item.scrape_source_id)
    assert source.organization_id == org.id
    assert db.query(Organization).count() == 1


def test_approval_when_domain_already_tracked_is_duplicate(db, make_source):
    item = _discover(db)
    discovery.apply_analysis(db, item.id, _analysis())
    source = make_source(name="Trackers", url="https://trackersearth.com/portland")

    discovery.review_discovered_source(db, item.id, "approved", reviewed_by="ops@example.org")

    assert item.status == "duplicate"
    assert item.duplicate_of_source_id == source.id
    assert db.query(ScraperDevelopmentRequest).count() == 0


def test_rejection_is_terminal(db):
    item = _discover(db)
    discovery.apply_analysis(db, item.id, _analysis())

    discovery.review_discovered_source(db, item.id, "rejected", reviewed_by="ops@example.org")
    assert item.status == "rejected"

    with pytest.raises(IllegalTransitionError):
        discovery.review_discovered_source(db, item.id, "approved", reviewed_by="ops@example.org")


def test_review_decision_must_be_approve_or_reject(db):
    item = _discover(db)

    with pytest.raises(ValueError):
        discovery.review_discovered_source(db, item.id, "duplicate", reviewed_by="ops@example.org")


def test_transition_table():
    S = discovery.DiscoveryStatus
    assert discovery.can_transition(S.PENDING_ANALYSIS, S.PENDING_REVIEW)
    assert discovery.can_transition(S.APPROVED, S.SCRAPER_GENERATED)
    assert not discovery.can_transition(S.PENDING_REVIEW, S.SCRAPER_GENERATED)
    assert not discovery.can_transition(S.REJECTED, S.APPROVED)
    assert not discovery.can_transition(S.SCRAPER_GENERATED, S.DUPLICATE)


def test_unique_slug_for_promoted_organizations(db, make_org):
    make_org(name="Trackers Earth", website_url="https://other-domain.org", slug="trackers-earth")
    item = _discover(db)
    discovery.apply_analysis(db, item.id, _analysis())

    discovery.review_discovered_source(db, item.id, "approved", reviewed_by="ops@example.org")

    source = db.get(ScrapeSource, item.scrape_source_id)
    assert source.organization.slug == "trackers-earth-2"


def test_queue_counts_cover_every_status(db):
    _discover(db)
    rejected = _discover(db, url="https://example.com/not-camps")
    discovery.apply_analysis(db, rejected.id, _analysis(is_likely_camp_site=False))

    counts = discovery.queue_counts(db)

    assert counts["pending_analysis"] == 1
    assert counts["rejected"] == 1
    assert counts["scraper_generated"] == 0
    assert set(counts) == {s.value for s in discovery.DiscoveryStatus}
