"""Extractor registry — maps extractor names to extractor classes."""

import logging
from typing import Type

from camp_pipeline.extractors.base import BaseExtractor

logger = logging.getLogger(__name__)

# Extractor name -> extractor class mapping
_REGISTRY: dict[str, Type[BaseExtractor]] = {}


def register_extractor(name: str):
    """Decorator to register an extractor class under a name."""
    def decorator(cls: Type[BaseExtractor]):
        cls.name = name
        _REGISTRY[name] = cls
        logger.debug(f"Registered extractor: {name}")
        return cls
    return decorator


def get_extractor_class(name: str | None) -> Type[BaseExtractor] | None:
    """Look up the extractor class registered under ``name``."""
    if not name:
        return None
    return _REGISTRY.get(name)


def list_extractors() -> list[str]:
    """List all registered extractor names."""
    return list(_REGISTRY.keys())
