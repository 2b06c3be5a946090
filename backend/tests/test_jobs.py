import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from camp_pipeline.errors import (
    ConflictError,
    IllegalTransitionError,
    StructuralExtractionError,
    TransientExtractionError,
)
from camp_pipeline.extractors import json_feed
from camp_pipeline.extractors.base import BaseExtractor
from camp_pipeline.extractors.registry import register_extractor
from camp_pipeline.extractors.remote import RemoteServiceExtractor
from camp_pipeline.models.base import Base
from camp_pipeline.models.camp_session import CampSession
from camp_pipeline.models.scrape_job import ScrapeJob
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.services import jobs
from conftest import complete_record, minutes_ago


@register_extractor("test_static")
class StaticExtractor(BaseExtractor):
    def extract(self):
        self.log("returning canned records")
        return [complete_record(), complete_record(name="Chemistry Camp", age_grade_raw=None)]


@register_extractor("test_broken_layout")
class BrokenLayoutExtractor(BaseExtractor):
    def extract(self):
        raise StructuralExtractionError("selectors_not_found: .session-card")


@register_extractor("test_crash")
class CrashingExtractor(BaseExtractor):
    def extract(self):
        raise RuntimeError("boom")


def _running_job(db, source):
    job = jobs.trigger_job(db, source.id, "operator")
    return jobs.start_job(db, job.id)


def test_trigger_takes_the_source_lease(db, make_source):
    source = make_source()

    job = jobs.trigger_job(db, source.id, "operator")

    assert job.status == "pending"
    assert job.triggered_by == "operator"
    assert source.running_job_id == job.id


def test_second_trigger_conflicts_with_job_in_progress(db, make_source):
    source = make_source()
    first = jobs.trigger_job(db, source.id, "operator")

    with pytest.raises(ConflictError) as exc_info:
        jobs.trigger_job(db, source.id, "operator")

    assert exc_info.value.running_job_id == first.id
    assert db.query(ScrapeJob).count() == 1


def test_submitted_records_complete_the_job(db, make_source):
    source = make_source()
    job = _running_job(db, source)

    jobs.submit_extraction_result(db, job.id, records=[complete_record()], logs=["fetched 1 page"])

    assert job.status == "completed"
    assert job.sessions_found == 1
    assert job.sessions_created == 1
    assert job.average_completeness == 100
    assert job.raw_output["logs"] == ["fetched 1 page"]
    assert job.raw_output["records"][0]["name"] == "Robotics Camp"
    assert source.running_job_id is None
    assert source.total_runs == 1
    assert source.consecutive_failures == 0
    assert source.quality_tier == "high"

    session = db.query(CampSession).one()
    assert session.status == "active"
    assert session.last_job_id == job.id
    assert session.location.name == "1945 SE Water Ave, Portland, OR"


def test_zero_records_is_a_success(db, make_source):
    source = make_source(consecutive_failures=2, total_runs=2)
    job = _running_job(db, source)

    jobs.submit_extraction_result(db, job.id, records=[])

    assert job.status == "completed"
    assert job.sessions_found == 0
    assert job.average_completeness is None
    assert source.consecutive_failures == 0
    assert db.query(CampSession).count() == 0


def test_reextraction_updates_the_existing_session(db, make_source):
    source = make_source()
    first = _running_job(db, source)
    jobs.submit_extraction_result(db, first.id, records=[complete_record(price_raw="$350")])

    second = _running_job(db, source)
    jobs.submit_extraction_result(db, second.id, records=[complete_record(price_raw="$375", time_raw=None)])

    assert second.sessions_created == 0
    assert second.sessions_updated == 1
    session = db.query(CampSession).one()
    assert session.price_in_cents == 37500
    # time window lost in the re-extraction keeps the earlier value
    assert session.drop_off_hour == 9


def test_incomplete_records_land_in_draft_or_review(db, make_source):
    source = make_source()
    job = _running_job(db, source)

    jobs.submit_extraction_result(db, job.id, records=[
        complete_record(age_grade_raw=None),
        {"name": "Mystery Camp"},
    ])

    statuses = {s.name: s.status for s in db.query(CampSession).all()}
    assert statuses == {"Robotics Camp": "draft", "Mystery Camp": "pending_review"}
    mystery = db.query(CampSession).filter(CampSession.name == "Mystery Camp").one()
    assert mystery.completeness_score == 17
    assert "startDate" in mystery.missing_fields


def test_error_fails_the_job_and_releases_lease(db, make_source):
    source = make_source()
    job = _running_job(db, source)

    jobs.submit_extraction_result(db, job.id, error="HTTP 503: upstream unavailable")

    assert job.status == "failed"
    assert job.error_kind == "transient"
    assert job.error_message == "HTTP 503: upstream unavailable"
    assert source.running_job_id is None
    assert source.consecutive_failures == 1
    assert source.last_error == "HTTP 503: upstream unavailable"


def test_result_for_pending_job_is_rejected(db, make_source):
    source = make_source()
    job = jobs.trigger_job(db, source.id, "operator")

    with pytest.raises(IllegalTransitionError):
        jobs.submit_extraction_result(db, job.id, records=[])


def test_terminal_job_cannot_be_resubmitted(db, make_source):
    source = make_source()
    job = _running_job(db, source)
    jobs.submit_extraction_result(db, job.id, records=[])

    with pytest.raises(IllegalTransitionError):
        jobs.submit_extraction_result(db, job.id, error="late error")
    assert source.total_runs == 1


def test_cancel_running_job(db, make_source):
    source = make_source()
    job = _running_job(db, source)

    jobs.cancel_job(db, job.id, "ops@example.org")

    assert job.status == "failed"
    assert job.error_kind == "cancelled"
    assert job.error_message == "Cancelled by ops@example.org"
    assert source.running_job_id is None
    assert source.consecutive_failures == 1
    assert not source.needs_regeneration

    with pytest.raises(IllegalTransitionError):
        jobs.cancel_job(db, job.id, "ops@example.org")


def test_timeout_sweep_fails_stale_jobs(db, make_source):
    stuck = make_source(name="Stuck", url="https://stuck.example.org")
    unclaimed = make_source(name="Unclaimed", url="https://unclaimed.example.org")
    fresh = make_source(name="Fresh", url="https://fresh.example.org")

    stuck_job = _running_job(db, stuck)
    stuck_job.started_at = minutes_ago(10)
    unclaimed_job = jobs.trigger_job(db, unclaimed.id, "scheduler")
    unclaimed_job.created_at = minutes_ago(10)
    fresh_job = _running_job(db, fresh)
    db.flush()

    assert jobs.fail_timed_out_jobs(db, timeout_seconds=300) == 2

    assert stuck_job.status == "failed"
    assert stuck_job.error_kind == "timeout"
    assert unclaimed_job.status == "failed"
    assert fresh_job.status == "running"
    assert stuck.running_job_id is None
    assert unclaimed.running_job_id is None
    assert fresh.running_job_id == fresh_job.id


def test_execute_job_runs_registered_extractor(db, make_source):
    source = make_source(extractor="test_static")
    job = jobs.trigger_job(db, source.id, "operator")

    jobs.execute_job(db, job.id)

    assert job.status == "completed"
    assert job.sessions_found == 2
    assert job.raw_output["logs"] == ["returning canned records"]
    assert source.running_job_id is None


def test_structural_break_flags_source_for_regeneration(db, make_source):
    source = make_source(extractor="test_broken_layout")
    job = jobs.trigger_job(db, source.id, "scheduler")

    jobs.execute_job(db, job.id)

    assert job.status == "failed"
    assert job.error_kind == "structural"
    assert job.error_message == "selectors_not_found: .session-card"
    assert source.needs_regeneration
    assert source.running_job_id is None


def test_unexpected_extractor_crash_is_transient(db, make_source):
    source = make_source(extractor="test_crash")
    job = jobs.trigger_job(db, source.id, "scheduler")

    jobs.execute_job(db, job.id)

    assert job.status == "failed"
    assert job.error_kind == "transient"
    assert job.error_message == "boom"
    assert not source.needs_regeneration


def test_missing_extractor_is_structural(db, make_source):
    source = make_source(extractor=None)
    job = jobs.trigger_job(db, source.id, "scheduler")

    jobs.execute_job(db, job.id)

    assert job.error_kind == "structural"
    assert source.needs_regeneration


def test_dispatch_skips_inactive_flagged_and_leased_sources(db, make_source):
    due = make_source(name="Due", url="https://due.example.org")
    rescan = make_source(name="Rescan", url="https://rescan.example.org",
                         next_scheduled_scrape=minutes_ago(-600), needs_rescan=True)
    make_source(name="Later", url="https://later.example.org", next_scheduled_scrape=minutes_ago(-600))
    make_source(name="Inactive", url="https://inactive.example.org", is_active=False)
    make_source(name="Flagged", url="https://flagged.example.org", needs_regeneration=True)
    make_source(name="Leased", url="https://leased.example.org", running_job_id=uuid.uuid4())

    created = jobs.dispatch_due_sources(db)

    assert {job.source_id for job in created} == {due.id, rescan.id}
    assert all(job.triggered_by == "scheduler" for job in created)


def test_remote_extractor_maps_structural_error_codes(make_source):
    source = make_source(extractor="remote")

    def handler(request):
        return httpx.Response(422, json={"error": "Selectors not found", "code": "selectors_not_found"})

    extractor = RemoteServiceExtractor(source, client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(StructuralExtractionError, match="Selectors not found"):
        extractor.extract()


def test_remote_extractor_treats_server_errors_as_transient(make_source):
    source = make_source(extractor="remote")

    def handler(request):
        return httpx.Response(502, json={"error": "Bad gateway"})

    extractor = RemoteServiceExtractor(source, client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(TransientExtractionError, match="HTTP 502: Bad gateway"):
        extractor.extract()


def test_remote_extractor_returns_records_and_logs(make_source):
    source = make_source(extractor="remote", additional_urls=[{"url": "https://omsi.edu/camps/week2"}])
    seen = {}

    def handler(request):
        seen["body"] = request.read()
        return httpx.Response(200, json={"records": [complete_record()], "logs": ["parsed 1 card"]})

    extractor = RemoteServiceExtractor(source, client=httpx.Client(transport=httpx.MockTransport(handler)))
    records = extractor.extract()

    assert records[0]["name"] == "Robotics Camp"
    assert "parsed 1 card" in extractor.logs
    assert b"week2" in seen["body"]


def test_json_feed_extractor_reads_session_list(monkeypatch, make_source):
    source = make_source(extractor="json_feed", url="https://omsi.edu/camps.json")

    def fake_get(url, **kwargs):
        return httpx.Response(200, json={"sessions": [complete_record()]}, request=httpx.Request("GET", url))

    monkeypatch.setattr(json_feed.httpx, "get", fake_get)

    records = json_feed.JsonFeedExtractor(source).extract()

    assert [r["name"] for r in records] == ["Robotics Camp"]


def test_json_feed_extractor_rejects_non_json(monkeypatch, make_source):
    source = make_source(extractor="json_feed", url="https://omsi.edu/camps.json")

    def fake_get(url, **kwargs):
        return httpx.Response(200, text="<html>moved</html>", request=httpx.Request("GET", url))

    monkeypatch.setattr(json_feed.httpx, "get", fake_get)

    with pytest.raises(StructuralExtractionError):
        json_feed.JsonFeedExtractor(source).extract()


@register_extractor("test_outlived")
class OutlivedExtractor(BaseExtractor):
    """Returns records only after ``while_extracting`` has run."""

    while_extracting = None

    def extract(self):
        type(self).while_extracting()
        return [complete_record()]


@pytest.fixture
def worker_and_operator(tmp_path):
    """Two sessions on separate connections to one database file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'camps.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False)
    worker, operator = factory(), factory()
    yield worker, operator
    worker.close()
    operator.close()
    engine.dispose()


def _committed_source(session, **kwargs):
    source = ScrapeSource(
        name="OMSI Camps", url="https://omsi.edu/camps", domain="omsi.edu", scrape_frequency_hours=24, **kwargs
    )
    session.add(source)
    session.commit()
    return source.id


def test_late_result_after_cancel_is_rejected(worker_and_operator):
    worker, operator = worker_and_operator
    source_id = _committed_source(worker)
    job_id = jobs.trigger_job(worker, source_id, "scheduler").id
    jobs.start_job(worker, job_id)
    worker.commit()
    assert worker.get(ScrapeJob, job_id).source.running_job_id == job_id

    jobs.cancel_job(operator, job_id, "ops@example.org")
    operator.commit()
    next_job_id = jobs.trigger_job(operator, source_id, "operator").id
    operator.commit()

    with pytest.raises(IllegalTransitionError):
        jobs.submit_extraction_result(worker, job_id, records=[])
    worker.rollback()

    operator.expire_all()
    job = operator.get(ScrapeJob, job_id)
    source = operator.get(ScrapeSource, source_id)
    assert job.status == "failed"
    assert job.error_kind == "cancelled"
    assert source.running_job_id == next_job_id
    assert source.total_runs == 1
    assert source.successful_runs == 0
    assert source.consecutive_failures == 1


def test_extractor_outliving_timeout_sweep_keeps_new_lease(worker_and_operator, monkeypatch):
    worker, operator = worker_and_operator
    source_id = _committed_source(worker, extractor="test_outlived")
    job_id = jobs.trigger_job(worker, source_id, "scheduler").id
    worker.commit()
    next_job_ids = []

    def sweep_then_retrigger():
        operator.get(ScrapeJob, job_id).started_at = minutes_ago(30)
        operator.flush()
        assert jobs.fail_timed_out_jobs(operator, timeout_seconds=300) == 1
        next_job_ids.append(jobs.trigger_job(operator, source_id, "operator").id)
        operator.commit()

    monkeypatch.setattr(OutlivedExtractor, "while_extracting", sweep_then_retrigger)

    with pytest.raises(IllegalTransitionError):
        jobs.execute_job(worker, job_id)
    worker.rollback()

    operator.expire_all()
    source = operator.get(ScrapeSource, source_id)
    assert operator.get(ScrapeJob, job_id).error_kind == "timeout"
    assert source.running_job_id == next_job_ids[0]
    assert source.total_runs == 1
    assert operator.query(CampSession).count() == 0
