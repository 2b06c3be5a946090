"""Remote extraction service client.

Hands the source to the external extraction service and returns the records
it produced. The service owns the scraping technique (HTML parsing, browser
automation, AI field extraction); this adapter only maps its responses onto
the pipeline's error classes.
"""

import logging

import httpx

from camp_pipeline.config import get_settings
from camp_pipeline.errors import StructuralExtractionError, TransientExtractionError
from camp_pipeline.extractors.base import BaseExtractor
from camp_pipeline.extractors.registry import register_extractor

logger = logging.getLogger(__name__)

# Error codes the service uses when the site no longer matches the stored extractor
STRUCTURAL_ERROR_CODES = {"structure_changed", "selectors_not_found", "needs_regeneration"}


@register_extractor("remote")
class RemoteServiceExtractor(BaseExtractor):

    def __init__(self, source, client: httpx.Client | None = None):
        super().__init__(source)
        self.client = client

    def extract(self) -> list[dict]:
        settings = get_settings()
        payload = {
            "source_id": str(self.source.id),
            "url": self.source.url,
            "additional_urls": self.target_urls()[1:],
            "parsing_notes": self.source.parsing_notes,
        }

        self.log(f"Requesting extraction from {settings.extraction_service_url}")
        try:
            resp = self._post(f"{settings.extraction_service_url.rstrip('/')}/extract", payload,
                              settings.extraction_http_timeout)
        except httpx.HTTPError as e:
            raise TransientExtractionError(f"Extraction service unreachable: {e}") from e

        body = self._json(resp)

        if resp.status_code >= 400:
            error = body.get("error") or resp.text
            code = body.get("code")
            if code in STRUCTURAL_ERROR_CODES:
                raise StructuralExtractionError(error)
            raise TransientExtractionError(f"HTTP {resp.status_code}: {error}")

        for line in body.get("logs") or []:
            self.log(str(line))

        records = body.get("records")
        if not isinstance(records, list):
            raise StructuralExtractionError("Extraction service response has no record list")
        return [r for r in records if isinstance(r, dict)]

    def _post(self, url: str, payload: dict, timeout: float) -> httpx.Response:
        if self.client is not None:
            return self.client.post(url, json=payload, timeout=timeout)
        return httpx.post(url, json=payload, timeout=timeout)

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
