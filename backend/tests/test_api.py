import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChat, FakeEmbedder, FakeTrackStore
from playlist_engine.api import app, get_analysis_chat, get_chat, get_embedder, get_store


@pytest.fixture
def override():
    """Install fakes for the external collaborators and return a client."""
    def install(store, chat=None, analysis_chat=None):
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_chat] = lambda: chat or FakeChat()
        app.dependency_overrides[get_analysis_chat] = lambda: analysis_chat or FakeChat()
        app.dependency_overrides[get_embedder] = lambda: FakeEmbedder()
        return TestClient(app)

    yield install
    app.dependency_overrides.clear()


def test_health(override):
    client = override(FakeTrackStore([]))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_generate_playlist(override, catalog):
    client = override(catalog)

    response = client.post("/api/playlist/generate", json={"prompt": "90s pop", "target_size": 4})

    assert response.status_code == 200
    body = response.json()
    assert set(body["track_ids"]) == {3, 9, 15, 21}
    assert body["strategy"] == "criteria"


def test_generate_with_empty_store_is_404(override):
    client = override(FakeTrackStore([]))

    response = client.post("/api/playlist/generate", json={"prompt": "anything at all"})

    assert response.status_code == 404


def test_direct_playlist(override, catalog):
    chat = FakeChat(json.dumps({"strategy": "genre", "reasoning": "Genre request", "params": {"genres": ["jazz"]}}))
    naming = FakeChat(json.dumps({"title": "Blue Notes", "description": "Late night jazz #jazz"}))
    client = override(catalog, chat=chat, analysis_chat=naming)

    response = client.post("/api/playlist/direct", json={"prompt": "jazz music", "target_size": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["strategy"] == "genre"
    assert body["title"] == "Blue Notes"
    assert len(body["track_ids"]) == 5


def test_direct_with_empty_store_is_404(override):
    chat = FakeChat(json.dumps({"strategy": "random", "reasoning": "", "params": {}}))
    client = override(FakeTrackStore([]), chat=chat)

    response = client.post("/api/playlist/direct", json={"prompt": "surprise me"})

    assert response.status_code == 404


def test_analyze_prompt(override, catalog):
    client = override(catalog)

    response = client.post("/api/prompt/analyze", json={"prompt": "🔥💪 90s rock for working out"})

    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["explicit_genres"] == ["rock"]
    assert body["analysis"]["emoji_occasion"] == "workout"
    assert body["criteria"]["year_ranges"] == [{"start": 1990, "end": 1999}]
    assert body["criteria"]["vector_similarity_weight"] == 0.3


def test_vector_search(override, catalog):
    client = override(catalog)

    response = client.post("/api/vector-search", json={"query": "upbeat rock", "limit": 5})

    assert response.status_code == 200
    assert len(response.json()["candidates"]) == 5


@pytest.mark.parametrize("body", [{"prompt": ""}, {"prompt": "rock", "target_size": 0}, {}])
def test_invalid_requests_are_rejected(override, body):
    client = override(FakeTrackStore([]))

    assert client.post("/api/playlist/generate", json=body).status_code == 422
