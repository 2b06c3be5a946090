"""JSON feed extractor.

Some providers publish their schedule as a JSON document (a list of sessions,
or an object with a ``sessions`` list). Each configured URL is fetched and
the records are concatenated.
"""

import logging

import httpx

from camp_pipeline.errors import StructuralExtractionError, TransientExtractionError
from camp_pipeline.extractors.base import BaseExtractor
from camp_pipeline.extractors.registry import register_extractor

logger = logging.getLogger(__name__)


@register_extractor("json_feed")
class JsonFeedExtractor(BaseExtractor):

    def extract(self) -> list[dict]:
        records: list[dict] = []
        for url in self.target_urls():
            self.log(f"Fetching {url}")
            try:
                resp = httpx.get(url, timeout=30, headers={"Accept": "application/json"}, follow_redirects=True)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise TransientExtractionError(f"HTTP {e.response.status_code} fetching {url}") from e
            except httpx.HTTPError as e:
                raise TransientExtractionError(f"Request to {url} failed: {e}") from e

            try:
                data = resp.json()
            except ValueError as e:
                raise StructuralExtractionError(f"{url} no longer returns JSON") from e

            items = data.get("sessions") if isinstance(data, dict) else data
            if not isinstance(items, list):
                raise StructuralExtractionError(f"{url} returned JSON without a session list")

            page_records = [item for item in items if isinstance(item, dict)]
            self.log(f"Found {len(page_records)} records at {url}")
            records.extend(page_records)
        return records
