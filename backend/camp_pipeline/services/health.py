"""Source health tracking — run counters, classification and alerting.

Health lives on the ``scrape_sources`` row. ``record_outcome`` is called exactly
once per terminal job, inside the same transaction that finalizes the job, so
the counters always agree with the job audit trail.
"""

import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from sqlalchemy.orm import Session

from camp_pipeline.config import get_settings
from camp_pipeline.errors import NotFoundError
from camp_pipeline.models.base import utc_now
from camp_pipeline.models.scrape_job import JobErrorKind
from camp_pipeline.models.scrape_source import ScrapeSource
from camp_pipeline.models.scraper_alert import ScraperAlert

logger = logging.getLogger(__name__)

# Classification thresholds shared by the API, dashboards and the scheduler
CRITICAL_FAILURE_STREAK: Final[int] = 5
DEGRADED_FAILURE_STREAK: Final[int] = 3
HEALTHY_SUCCESS_RATE: Final[float] = 0.9
FAIR_SUCCESS_RATE: Final[float] = 0.7

RATE_LIMIT_DELAY_HOURS: Final[int] = 6

_RATE_LIMIT_PATTERN = re.compile(r"\b429\b|rate.?limit|too many requests", re.IGNORECASE)


class HealthClass(str, enum.Enum):
    HEALTHY = "healthy"
    FAIR = "fair"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class JobOutcome:
    """Terminal result of one job as seen by the health tracker."""

    success: bool
    error_kind: str | None = None
    error_message: str | None = None

    @property
    def is_structural(self) -> bool:
        return not self.success and self.error_kind == JobErrorKind.STRUCTURAL.value

    @property
    def is_rate_limited(self) -> bool:
        return (
            not self.success
            and self.error_kind == JobErrorKind.TRANSIENT.value
            and bool(self.error_message and _RATE_LIMIT_PATTERN.search(self.error_message))
        )


@dataclass
class SourceHealth:
    source_id: object
    total_runs: int
    successful_runs: int
    consecutive_failures: int
    success_rate: float
    last_success_at: datetime | None
    last_failure_at: datetime | None
    last_error: str | None
    needs_regeneration: bool
    classification: HealthClass


def snapshot(source: ScrapeSource) -> SourceHealth:
    return SourceHealth(
        source_id=source.id,
        total_runs=source.total_runs or 0,
        successful_runs=source.successful_runs or 0,
        consecutive_failures=source.consecutive_failures or 0,
        success_rate=source.success_rate or 0.0,
        last_success_at=source.last_success_at,
        last_failure_at=source.last_failure_at,
        last_error=source.last_error,
        needs_regeneration=bool(source.needs_regeneration),
        classification=classify(source),
    )


def compute_success_rate(successful_runs: int, total_runs: int) -> float:
    if total_runs <= 0:
        return 0.0
    return successful_runs / total_runs


def classify(source: ScrapeSource) -> HealthClass:
    """Classify a source's health for display. Computed on read, never stored."""
    streak = source.consecutive_failures or 0
    if source.needs_regeneration or streak >= CRITICAL_FAILURE_STREAK:
        return HealthClass.CRITICAL
    if streak >= DEGRADED_FAILURE_STREAK:
        return HealthClass.DEGRADED
    rate = source.success_rate or 0.0
    if rate >= HEALTHY_SUCCESS_RATE:
        return HealthClass.HEALTHY
    if rate >= FAIR_SUCCESS_RATE:
        return HealthClass.FAIR
    return HealthClass.UNKNOWN


def record_outcome(db: Session, source: ScrapeSource, outcome: JobOutcome) -> list[ScraperAlert]:
    """Fold one terminal job outcome into the source's health snapshot.

    Returns the alert rows added to the session (not yet flushed).
    """
    now = utc_now()
    alerts: list[ScraperAlert] = []
    previous_streak = source.consecutive_failures or 0

    source.total_runs = (source.total_runs or 0) + 1

    if outcome.success:
        source.successful_runs = (source.successful_runs or 0) + 1
        source.consecutive_failures = 0
        source.last_success_at = now
        source.next_scheduled_scrape = now + timedelta(hours=source.scrape_frequency_hours or 24)

        if previous_streak >= DEGRADED_FAILURE_STREAK:
            alerts.append(_alert(
                source, "source_recovered", "info",
                f'Scraper "{source.name}" succeeded after {previous_streak} consecutive failures.',
            ))
    else:
        source.consecutive_failures = previous_streak + 1
        source.last_failure_at = now
        source.last_error = outcome.error_message
        source.next_scheduled_scrape = next_scrape_after_failure(source, outcome, now)

        if outcome.is_structural and not source.needs_regeneration:
            source.needs_regeneration = True
            alerts.append(_alert(
                source, "scraper_needs_regeneration", "error",
                f'Scraper "{source.name}" no longer matches the site structure and needs regeneration. '
                f"Last error: {outcome.error_message}",
            ))

        if outcome.is_rate_limited:
            alerts.append(_alert(
                source, "rate_limited", "warning",
                f'Scraper "{source.name}" was rate limited. Next attempt in {RATE_LIMIT_DELAY_HOURS} hours.',
            ))

        if source.consecutive_failures == DEGRADED_FAILURE_STREAK:
            alerts.append(_alert(
                source, "scraper_degraded", "warning",
                f'Scraper "{source.name}" has failed {DEGRADED_FAILURE_STREAK} times consecutively. '
                f"Last error: {outcome.error_message}",
            ))
        elif source.consecutive_failures == CRITICAL_FAILURE_STREAK:
            alerts.append(_alert(
                source, "scraper_degraded", "error",
                f'Scraper "{source.name}" has failed {CRITICAL_FAILURE_STREAK} times consecutively.',
            ))

    source.success_rate = compute_success_rate(source.successful_runs or 0, source.total_runs)

    for alert in alerts:
        db.add(alert)

    logger.info(
        f"Health for {source.name}: runs={source.total_runs} "
        f"rate={source.success_rate:.2f} streak={source.consecutive_failures} "
        f"class={classify(source).value}"
    )
    return alerts


def next_scrape_after_failure(source: ScrapeSource, outcome: JobOutcome, now: datetime) -> datetime:
    """Back off exponentially on failure, with a fixed delay for rate limits."""
    if outcome.is_rate_limited:
        return now + timedelta(hours=RATE_LIMIT_DELAY_HOURS)
    settings = get_settings()
    frequency = source.scrape_frequency_hours or settings.default_scrape_frequency_hours
    backoff_hours = min(frequency * 2 ** (source.consecutive_failures or 0), settings.max_backoff_hours)
    return now + timedelta(hours=backoff_hours)


def clear_regeneration_flag(db: Session, source_id, cleared_by: str | None = None) -> ScrapeSource:
    """Operator action: the source's extractor has been rebuilt, resume scheduling."""
    source = db.get(ScrapeSource, source_id)
    if source is None:
        raise NotFoundError(f"Source {source_id} not found")

    source.needs_regeneration = False
    source.consecutive_failures = 0
    source.next_scheduled_scrape = utc_now()
    db.flush()

    logger.info(f"Regeneration flag cleared for {source.name} by {cleared_by or 'operator'}")
    return source


def _alert(source: ScrapeSource, alert_type: str, severity: str, message: str) -> ScraperAlert:
    return ScraperAlert(
        source_id=source.id,
        alert_type=alert_type,
        severity=severity,
        message=message,
    )
