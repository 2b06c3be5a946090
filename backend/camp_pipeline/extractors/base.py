"""Base extractor abstract class."""

import logging
from abc import ABC, abstractmethod

from camp_pipeline.models.scrape_source import ScrapeSource

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """Abstract base class for extraction collaborators.

    Subclasses must implement:
        extract() -> list[dict]  — fetch raw session records for the source

    Records are plain dicts in the extracted-record shape (name, date_raw,
    time_raw, price_raw, age_grade_raw, registration_url, ...). They are
    validated and written to the catalog by the job service, never here.

    Raise ``TransientExtractionError`` for faults a retry may fix and
    ``StructuralExtractionError`` when the source no longer matches what the
    extractor expects.
    """

    name: str = "base"

    def __init__(self, source: ScrapeSource):
        self.source = source
        self.logs: list[str] = []

    @abstractmethod
    def extract(self) -> list[dict]:
        """Fetch raw session records for ``self.source``."""
        ...

    def log(self, message: str) -> None:
        """Record a log line for the job's raw output and the process log."""
        self.logs.append(message)
        logger.info(f"[{self.name}/{self.source.name}] {message}")

    def target_urls(self) -> list[str]:
        """Canonical URL followed by the source's additional URLs, in order."""
        urls = [self.source.url]
        for entry in self.source.additional_urls or []:
            url = entry.get("url") if isinstance(entry, dict) else entry
            if url and url not in urls:
                urls.append(url)
        return urls
