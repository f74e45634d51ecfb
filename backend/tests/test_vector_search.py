import asyncio
import os
import random
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import FakeEmbedder, FakeTrackStore, make_track
from playlist_engine.llm import ProviderError
from playlist_engine.models import SearchCriteria
from playlist_engine.vector_search import (
    VectorSearchEngine,
    apply_adaptive_threshold,
    cosine_similarity,
    criteria_to_description,
    tiered_shuffle,
)


def search(store, criteria, limit, embedder=None, seed=1234):
    engine = VectorSearchEngine(store, embedder or FakeEmbedder(), random.Random(seed))
    return asyncio.run(engine.search_with_threshold(criteria, limit))


def test_cosine_of_vector_with_itself():
    assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)


def test_cosine_with_zero_vector():
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0


def test_cosine_opposite_vectors():
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)


def test_cosine_length_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])


def test_description_includes_all_fields():
    criteria = SearchCriteria(query="late night drive", genre_names=["synthwave"], mood="moody", tempo="slow", era="80s")

    assert criteria_to_description(criteria) == (
        "late night drive. Genres: synthwave. Mood: moody. Tempo: slow. Era: 80s."
    )


def test_results_never_exceed_limit_or_fall_below_threshold(catalog):
    candidates, threshold = search(catalog, SearchCriteria(query="upbeat rock"), 10)

    assert len(candidates) == 10
    assert threshold == 0.75
    assert all(c.similarity >= threshold for c in candidates)
    assert len({c.track_id for c in candidates}) == 10


def test_top_tier_keeps_similarity_order(catalog):
    candidates, _ = search(catalog, SearchCriteria(query="upbeat rock"), 10)

    # ceil(0.3 * 10) best matches stay in place; ids 1, 11 and 21 are exact matches
    assert [c.track_id for c in candidates[:3]] == [1, 11, 21]


def test_same_seed_gives_same_order(catalog):
    first, _ = search(catalog, SearchCriteria(query="upbeat rock"), 20, seed=99)
    second, _ = search(catalog, SearchCriteria(query="upbeat rock"), 20, seed=99)

    assert [c.track_id for c in first] == [c.track_id for c in second]


def test_avoid_explicit_excludes_flagged_tracks(catalog):
    candidates, _ = search(catalog, SearchCriteria(query="upbeat rock", avoid_explicit=True), 30)

    explicit_ids = {t.id for t in catalog.tracks if t.explicit}
    assert candidates
    assert not explicit_ids & {c.track_id for c in candidates}


def test_threshold_lowers_when_too_few_matches():
    store = FakeTrackStore([
        make_track(1, embedding=[1.0, 0.0]),
        make_track(2, embedding=[1.0, 1.0]),
        make_track(3, embedding=[0.0, 1.0]),
    ])

    candidates, threshold = search(store, SearchCriteria(query="anything"), 5, embedder=FakeEmbedder([1.0, 0.0]))

    assert threshold == 0.45
    # The orthogonal track never passes
    assert [c.track_id for c in candidates] == [1, 2]


def test_short_description_skips_embedding(catalog):
    embedder = FakeEmbedder()

    candidates, threshold = search(catalog, SearchCriteria(query="abc"), 10, embedder=embedder)

    assert candidates == []
    assert threshold is None
    assert embedder.calls == []


def test_embedding_failure_returns_empty(catalog):
    embedder = FakeEmbedder(error=ProviderError("model unavailable"))

    candidates, _ = search(catalog, SearchCriteria(query="upbeat rock"), 10, embedder=embedder)

    assert candidates == []


def test_store_failure_returns_empty(catalog):
    catalog.failing = {"fetch_embedded_tracks"}

    candidates, _ = search(catalog, SearchCriteria(query="upbeat rock"), 10)

    assert candidates == []


def test_mismatched_embeddings_are_skipped():
    store = FakeTrackStore([make_track(1, embedding=[1.0, 0.0, 0.0]), make_track(2, embedding=[1.0, 0.0])])

    candidates, _ = search(store, SearchCriteria(query="anything"), 5)

    assert [c.track_id for c in candidates] == [1]


@pytest.mark.parametrize("sims, expected_threshold, expected_count", [
    ([0.9] * 6, 0.75, 6),
    ([0.8] * 3 + [0.65] * 8, 0.6, 11),
    ([0.8] * 3 + [0.65] * 4 + [0.5] * 5 + [0.2], 0.45, 12),
])
def test_adaptive_threshold_cascade(sims, expected_threshold, expected_count):
    scored = [(object(), s) for s in sims]

    passing, threshold = apply_adaptive_threshold(scored, limit=10)

    assert threshold == expected_threshold
    assert len(passing) == expected_count


def test_tiered_shuffle_keeps_top_tier():
    items = list(range(10))

    shuffled = tiered_shuffle(items, 3, 7, random.Random(3))

    assert shuffled[:3] == [0, 1, 2]
    assert sorted(shuffled[3:7]) == [3, 4, 5, 6]
    assert sorted(shuffled[7:]) == [7, 8, 9]


def test_tiered_shuffle_can_leave_middle_alone():
    items = list(range(10))

    shuffled = tiered_shuffle(items, 3, 7, random.Random(3), shuffle_mid=False)

    assert shuffled[:7] == list(range(7))


def test_importable_without_the_embedding_model_stack():
    backend = Path(__file__).resolve().parents[1]
    env = dict(os.environ, PYTHONPATH=os.pathsep.join([str(backend), os.environ.get("PYTHONPATH", "")]))
    code = (
        "import sys, playlist_engine.vector_search; "
        "assert 'torch' not in sys.modules and 'transformers' not in sys.modules"
    )

    completed = subprocess.run([sys.executable, "-c", code], env=env, capture_output=True, text=True)

    assert completed.returncode == 0, completed.stderr
