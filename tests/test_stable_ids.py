"""Round-trip and malformed-input behaviour of movie identifiers."""

from __future__ import annotations

import base64

import pytest

from app.stable_ids import (
    CANONICAL_PROVIDER,
    canonical_movie_id,
    decode_movie_id,
    encode_movie_id,
    split_canonical,
)


@pytest.mark.parametrize(
    ("provider", "external_id"),
    [
        ("yts", "tt1375666"),
        ("catalogB", "ssa:1968:notld"),
        ("archive", "night_of_the_living_dead"),
        ("catalogA", "a:b::c:"),
        ("yts", "Ünïcødé title"),
    ],
)
def test_round_trip_preserves_colons(provider: str, external_id: str) -> None:
    decoded = decode_movie_id(encode_movie_id(provider, external_id))

    assert decoded is not None
    assert (decoded.provider, decoded.external_id) == (provider, external_id)


def test_encoding_is_unpadded_base64url() -> None:
    movie_id = encode_movie_id("yts", "tt0063350")

    assert "=" not in movie_id
    assert "+" not in movie_id and "/" not in movie_id
    padded = movie_id + "=" * (-len(movie_id) % 4)
    assert base64.urlsafe_b64decode(padded) == b"yts:tt0063350"


def test_encoding_is_deterministic() -> None:
    assert encode_movie_id("archive", "x") == encode_movie_id("archive", "x")


@pytest.mark.parametrize(
    "movie_id",
    [
        "",
        "!!!not-base64!!!",
        "abcde",
        base64.urlsafe_b64encode(b"noseparator").decode(),
        base64.urlsafe_b64encode(b":missing-provider").decode(),
        base64.urlsafe_b64encode(b"provider:").decode(),
        base64.urlsafe_b64encode(b"\xff\xfe:\xfd").decode(),
    ],
)
def test_decode_rejects_malformed_ids(movie_id: str) -> None:
    assert decode_movie_id(movie_id) is None


def test_canonical_ids_round_trip_title_and_year() -> None:
    decoded = decode_movie_id(canonical_movie_id("Inception", 2010))

    assert decoded is not None
    assert decoded.provider == CANONICAL_PROVIDER
    assert decoded.is_canonical
    assert split_canonical(decoded) == ("inception", 2010)


def test_canonical_ids_ignore_title_case() -> None:
    assert canonical_movie_id("INCEPTION", 2010) == canonical_movie_id("Inception", 2010)


def test_canonical_id_without_year() -> None:
    decoded = decode_movie_id(canonical_movie_id("Title: With Colon", None))

    assert decoded is not None
    assert split_canonical(decoded) == ("title: with colon", None)
