import asyncio
import json

import pytest

from conftest import FakeChat, FakeTrackStore, make_track
from playlist_engine.llm import MalformedModelOutputError
from playlist_engine.models import StrategyAnalysis
from playlist_engine.strategy_pipeline import (
    NoTracksFoundError,
    StrategyPipeline,
    backfill_tracks,
    parse_strategy,
    select_tracks,
    validate_selection,
)

RANDOM_STRATEGY = json.dumps({"strategy": "random", "reasoning": "Random selection requested", "params": {}})
NAMING = json.dumps({"title": "Surprise Mix", "description": "A little bit of everything #shuffle"})


def small_pool(n):
    return [make_track(i, artist=(i, f"Artist {i}")) for i in range(1, n + 1)]


def test_surprise_me_returns_exactly_target_unique_ids(catalog):
    chat = FakeChat(RANDOM_STRATEGY, "not a selection", NAMING)

    result = asyncio.run(StrategyPipeline(catalog, chat).run("surprise me"))

    assert result.strategy == "random"
    assert len(result.track_ids) == 24
    assert len(set(result.track_ids)) == 24
    assert result.title == "Surprise Mix"


def test_small_store_returns_every_track():
    store = FakeTrackStore(small_pool(5))
    chat = FakeChat(RANDOM_STRATEGY, NAMING)

    result = asyncio.run(StrategyPipeline(store, chat).run("surprise me", target_size=24))

    assert sorted(result.track_ids) == [1, 2, 3, 4, 5]
    # No ranking call when the pool already fits
    assert len(chat.calls) == 2


def test_empty_store_raises():
    store = FakeTrackStore([])
    chat = FakeChat(RANDOM_STRATEGY)

    with pytest.raises(NoTracksFoundError):
        asyncio.run(StrategyPipeline(store, chat).run("surprise me"))


def test_classification_failure_falls_back_to_text(catalog):
    chat = FakeChat(RuntimeError("rate limited"))

    analysis = asyncio.run(StrategyPipeline(catalog, chat).classify("happy tunes"))

    assert analysis.strategy == "text"
    assert analysis.params == {"query": "happy tunes"}


def test_malformed_classification_falls_back_to_text():
    analysis = parse_strategy("I think you want some jazz!", "jazz please")

    assert analysis.strategy == "text"
    assert analysis.params == {"query": "jazz please"}


def test_unknown_strategy_falls_back_to_text():
    analysis = parse_strategy('{"strategy": "vibes", "params": {}}', "good vibes")

    assert analysis.strategy == "text"


def test_criteria_params_are_rescaled():
    content = '```json\n{"strategy": "criteria", "params": {"minEnergy": 0.7, "maxValence": 40, "genres": "rock"}}\n```'

    analysis = parse_strategy(content, "hard rock")

    assert analysis.params["min_energy"] == pytest.approx(70)
    assert analysis.params["max_valence"] == 40
    assert analysis.params["genres"] == ["rock"]


def test_validate_selection_accepts_numeric_ids():
    pool = small_pool(4)

    selected = validate_selection({"songs": [3, "1"]}, pool, 2)

    assert [t.id for t in selected] == [3, 1]


@pytest.mark.parametrize("songs", [
    ["1", "2"],
    ["1", "1", "2"],
    ["1", "2", "99"],
    "1,2,3",
])
def test_validate_selection_rejects_bad_output(songs):
    with pytest.raises(MalformedModelOutputError):
        validate_selection({"songs": songs}, small_pool(5), 3)


def test_select_tracks_uses_model_order():
    chat = FakeChat('{"songs": ["5", "2", "4"]}')

    selected = asyncio.run(select_tracks(chat, small_pool(6), 3, "anything"))

    assert [t.id for t in selected] == [5, 2, 4]


def test_select_tracks_falls_back_on_duplicates():
    chat = FakeChat('{"songs": ["5", "5", "4"]}')

    selected = asyncio.run(select_tracks(chat, small_pool(6), 3, "anything"))

    assert [t.id for t in selected] == [1, 2, 3]


def test_naming_failure_gives_empty_strings(catalog):
    pipeline = StrategyPipeline(catalog, FakeChat(), naming_chat=FakeChat("no json here"))

    assert asyncio.run(pipeline.name("anything", catalog.tracks[:3], "text")) == ("", "")


def test_text_search_falls_back_through_substring_to_any_rows(catalog):
    pipeline = StrategyPipeline(catalog, FakeChat())

    tracks = asyncio.run(pipeline.search(StrategyAnalysis(strategy="text", params={"query": "zzz"})))

    assert len(tracks) == 30
    assert catalog.calls[:3] == ["search_text", "search_substring", "any_tracks"]


def test_genre_search(catalog):
    pipeline = StrategyPipeline(catalog, FakeChat())

    tracks = asyncio.run(pipeline.search(StrategyAnalysis(strategy="genre", params={"genres": ["jazz"]})))

    assert tracks
    assert all(t.genre_names == ["jazz"] for t in tracks)


def test_failed_query_falls_back_to_random(catalog):
    catalog.failing = {"search_by_artists"}
    pipeline = StrategyPipeline(catalog, FakeChat())

    tracks = asyncio.run(pipeline.search(StrategyAnalysis(strategy="artist", params={"artists": ["Queen"]})))

    assert len(tracks) == 30
    assert "random_tracks" in catalog.calls


def test_criteria_search_applies_bounds(catalog):
    pipeline = StrategyPipeline(catalog, FakeChat())
    analysis = StrategyAnalysis(strategy="criteria", params={"min_energy": 60.0})

    tracks = asyncio.run(pipeline.search(analysis, avoid_explicit=True))

    assert tracks
    assert all(t.energy >= 60 and not t.explicit for t in tracks)


def test_backfill_keeps_chosen_tracks_first(catalog):
    chosen = catalog.tracks[:2]

    result = asyncio.run(backfill_tracks(catalog, chosen, 5))

    assert [t.id for t in result[:2]] == [1, 2]
    assert len({t.id for t in result}) == 5


def test_backfill_survives_store_errors():
    store = FakeTrackStore(small_pool(3))
    store.failing = {"random_tracks"}

    result = asyncio.run(backfill_tracks(store, [], 5))

    assert [t.id for t in result] == [1, 2, 3]
