"""Extractor package — import all extractors to trigger @register_extractor decorators."""

from camp_pipeline.extractors.json_feed import JsonFeedExtractor  # noqa: F401
from camp_pipeline.extractors.remote import RemoteServiceExtractor  # noqa: F401
