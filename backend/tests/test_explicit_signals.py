import asyncio

import pytest

from conftest import FakeTrackStore
from playlist_engine.explicit_signals import (
    ExplicitSignalExtractor,
    extract_explicit_decades,
    is_explicit_content_avoidance_requested,
    match_artists,
    match_genres,
)


@pytest.mark.parametrize("prompt, expected", [
    ("90s rock", [1990]),
    ("1980s synth", [1980]),
    ("some '70s soul", [1970]),
    ("disco era classics", [1970]),
    ("late nineties and the y2k vibe", [1990, 2000]),
    ("released in 1994", [1990]),
])
def test_extract_decades(prompt, expected):
    assert extract_explicit_decades(prompt, current_year=2026) == expected


def test_year_range_expands_to_every_decade():
    decades = extract_explicit_decades("songs from 1975 to 1983", current_year=2026)

    assert {1970, 1980} <= set(decades)
    assert len(decades) == len(set(decades))


def test_year_range_spanning_three_decades():
    assert extract_explicit_decades("1968-1991", current_year=2026) == [1960, 1970, 1980, 1990]


def test_two_digit_decade_uses_started_decade():
    assert extract_explicit_decades("20s jazz", current_year=2026) == [2020]
    assert extract_explicit_decades("20s jazz", current_year=2015) == [1920]
    assert extract_explicit_decades("30s swing", current_year=2026) == [1930]


def test_decades_are_deduplicated():
    assert extract_explicit_decades("90s, 1990s and 1995", current_year=2026) == [1990]


def test_no_decades():
    assert extract_explicit_decades("happy songs") == []


@pytest.mark.parametrize("prompt", ["Clean party songs", "family friendly road trip", "SFW office mix", "no swearing please"])
def test_explicit_avoidance_detected(prompt):
    assert is_explicit_content_avoidance_requested(prompt) is True


def test_explicit_avoidance_not_requested():
    assert is_explicit_content_avoidance_requested("angry metal") is False


def test_artists_match_longest_name_first():
    names = ["Swift", "Taylor Swift", "Queen"]

    assert match_artists("songs like Taylor Swift", names) == ["Taylor Swift"]


def test_artist_possessive_form():
    assert match_artists("Adele's best ballads", ["Adele"]) == ["Adele"]


def test_artist_requires_word_boundary():
    assert match_artists("queenly anthems", ["Queen"]) == []


def test_artists_capped():
    names = [f"Artist{i}" for i in range(8)]
    prompt = " ".join(names)

    assert len(match_artists(prompt, names)) == 5


def test_genre_aliases_normalize():
    assert match_genres("some kpop and hip-hop", ["pop", "rock"]) == ["hip hop", "k-pop"]


def test_genre_alias_does_not_leak_shorter_genre():
    assert match_genres("k-pop bangers", ["pop"]) == ["k-pop"]


def test_genre_compound_descriptor():
    assert match_genres("a jazz-influenced evening", ["jazz"]) == ["jazz"]


def test_genre_keeps_store_spelling():
    assert match_genres("rock and roll classics", ["Rock"]) == ["Rock"]


def test_extractor_runs_all_three(catalog):
    extractor = ExplicitSignalExtractor(catalog)

    artists, genres, decades = asyncio.run(extractor.extract("Queen and Adele 80s rock"))

    assert artists == ["Queen", "Adele"] or artists == ["Adele", "Queen"]
    assert genres == ["rock"]
    assert decades == [1980]


def test_extractor_survives_store_failure():
    store = FakeTrackStore([])
    store.failing = {"list_artist_names", "list_genre_names"}

    artists, genres, decades = asyncio.run(ExplicitSignalExtractor(store).extract("90s Queen"))

    assert artists == []
    assert genres == []
    assert decades == [1990]
