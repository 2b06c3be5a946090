"""Name, domain and slug normalization shared by discovery and deduplication."""

import re
from urllib.parse import urlparse

_PLACEHOLDER_VALUES = {"<unknown>", "unknown", "n/a", "tbd", "null", "none"}


def normalize_domain(url: str | None) -> str | None:
    """Return the lower-cased host of a URL without a leading ``www.``.

    Accepts bare hosts ("omsi.edu/camps") as well as full URLs. Returns None for
    empty and placeholder values.
    """
    if not url:
        return None
    text = url.strip()
    if not text or text.lower() in _PLACEHOLDER_VALUES:
        return None
    if "://" not in text:
        text = f"http://{text}"
    host = urlparse(text).hostname
    if not host:
        return None
    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or None


def normalize_name(name: str | None) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", name.strip().lower())


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", normalize_name(text))
    return slug.strip("-") or "org"


def similarity(a: str | None, b: str | None) -> float:
    """Levenshtein similarity in [0, 1] between two normalized names."""
    a_norm = normalize_name(a)
    b_norm = normalize_name(b)
    if a_norm == b_norm:
        return 1.0
    if not a_norm or not b_norm:
        return 0.0
    return 1 - _levenshtein(a_norm, b_norm) / max(len(a_norm), len(b_norm))


def _levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]
