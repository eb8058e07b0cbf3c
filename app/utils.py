"""Utility helpers for the Reelmerge service."""

from __future__ import annotations

import re
from typing import Any


IMDB_ID_RE = re.compile(r"^tt\d+$")
YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")


def compact_title(value: str) -> str:
    """Collapse a title to lowercase alphanumerics for cache keys."""

    return re.sub(r"[^a-z0-9]", "", value.lower())


def is_imdb_id(value: str | None) -> bool:
    return bool(value) and IMDB_ID_RE.match(value.strip()) is not None


def parse_year(value: Any) -> int | None:
    """Extract a four digit year from ints, dates or free-form strings."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not value:
        return None
    match = YEAR_RE.search(str(value))
    if not match:
        return None
    return int(match.group(0))


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def clean_text(value: Any) -> str | None:
    """Return a stripped string, treating blanks and ``N/A`` as missing."""

    if value is None:
        return None
    text = str(value).strip()
    if not text or text.upper() == "N/A":
        return None
    return text
