"""Reversible movie identifiers built from a provider name and external id."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

CANONICAL_PROVIDER = "~title"


@dataclass(frozen=True, slots=True)
class StableId:
    """Decoded form of a movie identifier."""

    provider: str
    external_id: str

    @property
    def is_canonical(self) -> bool:
        return self.provider == CANONICAL_PROVIDER


def encode_movie_id(provider: str, external_id: str) -> str:
    """Return the unpadded base64url encoding of ``provider:external_id``."""

    raw = f"{provider}:{external_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_movie_id(movie_id: str) -> StableId | None:
    """Decode an identifier, returning ``None`` when it is malformed.

    Only the first ``:`` separates the provider from the external id, so
    external ids may themselves contain colons.
    """

    if not movie_id or not isinstance(movie_id, str):
        return None
    candidate = movie_id.strip()
    padded = candidate + "=" * (-len(candidate) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        decoded = raw.decode("utf-8")
    except (binascii.Error, ValueError):
        return None

    provider, separator, external_id = decoded.partition(":")
    if not separator or not provider or not external_id:
        return None
    return StableId(provider=provider, external_id=external_id)


def canonical_movie_id(title: str, year: int | None) -> str:
    """Derive an identifier from the normalised title and year."""

    year_part = str(year) if year is not None else ""
    return encode_movie_id(CANONICAL_PROVIDER, f"{year_part}:{title.strip().lower()}")


def split_canonical(stable_id: StableId) -> tuple[str, int | None]:
    """Return the ``(title, year)`` pair stored in a canonical identifier."""

    year_part, _, title = stable_id.external_id.partition(":")
    year = int(year_part) if year_part.isdigit() else None
    return title, year
