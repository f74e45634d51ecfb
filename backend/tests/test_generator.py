import asyncio
import random

import pytest

from conftest import FakeChat, FakeEmbedder, FakeTrackStore, make_track
from playlist_engine.criteria_builder import CriteriaBuilder
from playlist_engine.enhanced_search import EnhancedFilterEngine
from playlist_engine.explicit_signals import ExplicitSignalExtractor
from playlist_engine.generator import PlaylistGenerator
from playlist_engine.prompt_analyzer import PromptAnalyzer
from playlist_engine.semantic_analyzer import DeepSemanticAnalyzer
from playlist_engine.strategy_pipeline import NoTracksFoundError
from playlist_engine.vector_search import VectorSearchEngine


def make_generator(store, chat=None, seed=1234):
    analyzer = PromptAnalyzer(ExplicitSignalExtractor(store), DeepSemanticAnalyzer(FakeChat()))
    vector = VectorSearchEngine(store, FakeEmbedder(), random.Random(seed))
    enhanced = EnhancedFilterEngine(store, vector, random.Random(seed))
    return PlaylistGenerator(store, analyzer, CriteriaBuilder(store), enhanced, chat)


def test_explicit_genre_and_decade_lead_the_playlist(catalog):
    result = asyncio.run(make_generator(catalog).generate("90s pop", target_size=4))

    # The only 1990s pop tracks in the catalog
    assert set(result.track_ids) == {3, 9, 15, 21}
    assert result.strategy == "criteria"


def test_rerank_follows_model_selection(catalog):
    chat = FakeChat('{"songs": ["9", "3"]}')

    result = asyncio.run(make_generator(catalog, chat).generate("90s pop", target_size=2))

    assert result.track_ids == [9, 3]
    assert "HIGH PRIORITY" in chat.calls[0]["system"]


def test_rerank_failure_keeps_pool_order(catalog):
    chat = FakeChat(RuntimeError("provider down"))

    result = asyncio.run(make_generator(catalog, chat).generate("90s pop", target_size=4))

    assert set(result.track_ids) == {3, 9, 15, 21}


def test_short_results_are_backfilled():
    store = FakeTrackStore([make_track(i) for i in range(1, 4)])

    result = asyncio.run(make_generator(store).generate("anything at all", target_size=5))

    assert sorted(result.track_ids) == [1, 2, 3]


def test_avoid_explicit_holds_through_backfill(catalog):
    result = asyncio.run(make_generator(catalog).generate("clean music", target_size=24))

    by_id = {t.id: t for t in catalog.tracks}
    assert len(result.track_ids) == 24
    assert len(set(result.track_ids)) == 24
    assert not any(by_id[i].explicit for i in result.track_ids)


def test_empty_store_raises():
    with pytest.raises(NoTracksFoundError):
        asyncio.run(make_generator(FakeTrackStore([])).generate("anything at all"))
