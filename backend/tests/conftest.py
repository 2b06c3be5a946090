"""Shared fixtures: an in-memory SQLite database and an API client bound to it."""

import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import camp_pipeline.extractors  # noqa: F401
import camp_pipeline.models  # noqa: F401
from camp_pipeline.models.base import Base, get_db, utc_now
from camp_pipeline.models.camp_session import CampSession
from camp_pipeline.models.organization import Organization
from camp_pipeline.models.scrape_source import ScrapeSource


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.rollback()
    session.close()


class _SessionBridge:
    """Async facade over the test's sync session, matching what the routers use."""

    def __init__(self, session):
        self.session = session

    async def run_sync(self, fn, *args, **kwargs):
        return fn(self.session, *args, **kwargs)

    async def commit(self):
        self.session.commit()


@pytest.fixture
def client(db):
    from camp_pipeline.main import app

    async def _override_get_db():
        yield _SessionBridge(db)
        db.commit()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_org(db):
    def _make(name="OMSI", website_url="https://omsi.edu", created_at=None, **kwargs):
        kwargs.setdefault("slug", f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}")
        org = Organization(
            name=name,
            website_url=website_url,
            created_at=created_at or utc_now(),
            **kwargs,
        )
        db.add(org)
        db.flush()
        return org

    return _make


@pytest.fixture
def make_source(db):
    def _make(name="OMSI Camps", url="https://omsi.edu/camps", **kwargs):
        kwargs.setdefault("scrape_frequency_hours", 24)
        source = ScrapeSource(name=name, url=url, domain=url.split("/")[2].removeprefix("www."), **kwargs)
        db.add(source)
        db.flush()
        return source

    return _make


@pytest.fixture
def make_session(db):
    def _make(source, name="Robotics Camp", status="active", **kwargs):
        session = CampSession(source_id=source.id, name=name, status=status, **kwargs)
        db.add(session)
        db.flush()
        return session

    return _make


def complete_record(**overrides) -> dict:
    record = {
        "name": "Robotics Camp",
        "date_raw": "June 10-14, 2030",
        "time_raw": "9:00 AM - 3:00 PM",
        "price_raw": "$350",
        "age_grade_raw": "Ages 8-12",
        "registration_url": "https://omsi.edu/camps/robotics",
        "location": "1945 SE Water Ave, Portland, OR",
    }
    record.update(overrides)
    return record


def minutes_ago(minutes: int):
    return utc_now() - timedelta(minutes=minutes)
