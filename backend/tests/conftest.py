import random
from datetime import date
from typing import Dict, List, Optional

import numpy as np
import pytest

from playlist_engine.models import Track


def make_track(
    track_id: int,
    title: Optional[str] = None,
    artist: Optional[tuple] = None,
    genres: Optional[List[tuple]] = None,
    year: Optional[int] = None,
    embedding: Optional[List[float]] = None,
    explicit: bool = False,
    **features,
) -> Track:
    artists = [artist] if artist else []
    genres = genres or []
    return Track(
        id=track_id,
        title=title or f"Track {track_id}",
        release_date=date(year, 6, 1) if year else None,
        explicit=explicit,
        embedding=embedding,
        artist_ids=[a[0] for a in artists],
        artist_names=[a[1] for a in artists],
        genre_ids=[g[0] for g in genres],
        genre_names=[g[1] for g in genres],
        **features,
    )


class FakeTrackStore:
    """In-memory TrackRepository."""

    def __init__(self, tracks: List[Track], artists: Optional[Dict[int, str]] = None, genres: Optional[Dict[int, str]] = None):
        self.tracks = list(tracks)
        self.artists = dict(artists or {})
        self.genres = dict(genres or {})
        for t in self.tracks:
            self.artists.update(zip(t.artist_ids, t.artist_names))
            self.genres.update(zip(t.genre_ids, t.genre_names))
        self.failing = set()
        self.calls: List[str] = []
        self.rng = random.Random(7)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    def _visible(self, avoid_explicit: bool) -> List[Track]:
        return [t for t in self.tracks if not (avoid_explicit and t.explicit)]

    def list_artist_names(self):
        self._check("list_artist_names")
        return sorted(self.artists.values(), key=len, reverse=True)

    def list_genre_names(self):
        self._check("list_genre_names")
        return list(self.genres.values())

    def find_artist_ids_by_name(self, names):
        self._check("find_artist_ids_by_name")
        wanted = {n.lower() for n in names}
        return [i for i, n in self.artists.items() if n.lower() in wanted]

    def find_genre_ids_by_name(self, names):
        self._check("find_genre_ids_by_name")
        wanted = {n.lower() for n in names}
        return [i for i, n in self.genres.items() if n.lower() in wanted]

    def count_tracks(self):
        self._check("count_tracks")
        return len(self.tracks)

    def fetch_embedded_tracks(self, limit, avoid_explicit=False):
        self._check("fetch_embedded_tracks")
        return [t for t in self._visible(avoid_explicit) if t.embedding is not None][:limit]

    def fetch_tracks_by_ids(self, track_ids, avoid_explicit=False):
        self._check("fetch_tracks_by_ids")
        wanted = set(track_ids)
        return [t for t in self._visible(avoid_explicit) if t.id in wanted]

    def has_release_dates(self):
        self._check("has_release_dates")
        return any(t.release_date for t in self.tracks)

    def primary_artists(self, track_ids):
        self._check("primary_artists")
        wanted = set(track_ids)
        return {t.id: t.artist_ids[0] for t in self.tracks if t.id in wanted and t.artist_ids}

    def search_text(self, query, limit, avoid_explicit=False):
        self._check("search_text")
        words = query.lower().split()
        return [
            t for t in self._visible(avoid_explicit)
            if all(w in (t.title + " " + " ".join(t.artist_names + t.genre_names)).lower() for w in words)
        ][:limit]

    def search_substring(self, query, limit, avoid_explicit=False):
        self._check("search_substring")
        q = query.lower()
        return [
            t for t in self._visible(avoid_explicit)
            if q in t.title.lower() or any(q in a.lower() for a in t.artist_names)
        ][:limit]

    def search_by_genres(self, genre_names, limit, avoid_explicit=False):
        self._check("search_by_genres")
        wanted = {g.lower() for g in genre_names}
        return [t for t in self._visible(avoid_explicit) if wanted & {g.lower() for g in t.genre_names}][:limit]

    def search_by_artists(self, artist_names, limit, avoid_explicit=False):
        self._check("search_by_artists")
        wanted = {a.lower() for a in artist_names}
        return [t for t in self._visible(avoid_explicit) if wanted & {a.lower() for a in t.artist_names}][:limit]

    def search_by_criteria(self, bounds, genre_names, limit, avoid_explicit=False):
        self._check("search_by_criteria")
        result = []
        for t in self._visible(avoid_explicit):
            ok = True
            for key, value in bounds.items():
                bound, _, column = key.partition("_")
                current = getattr(t, column)
                if current is None or (current < value if bound == "min" else current > value):
                    ok = False
            if genre_names and not {g.lower() for g in genre_names} & {g.lower() for g in t.genre_names}:
                ok = False
            if ok:
                result.append(t)
        return result[:limit]

    def random_tracks(self, limit, avoid_explicit=False):
        self._check("random_tracks")
        pool = self._visible(avoid_explicit)
        return self.rng.sample(pool, min(limit, len(pool)))

    def any_tracks(self, limit, avoid_explicit=False):
        self._check("any_tracks")
        return self._visible(avoid_explicit)[:limit]


class FakeEmbedder:
    def __init__(self, vector=None, error: Optional[Exception] = None):
        self.vector = np.asarray(vector if vector is not None else [1.0, 0.0, 0.0], dtype=np.float32)
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vector


class FakeChat:
    """Returns queued responses in order; queued exceptions are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[dict] = []

    async def complete(self, system, user, *, temperature=0.7, max_tokens=None):
        self.calls.append({"system": system, "user": user, "temperature": temperature})
        if not self.responses:
            raise RuntimeError("no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def catalog():
    """Thirty tracks over six artists, with rock/pop/jazz genres and 1970s-2010s dates."""
    rock, pop, jazz = (1, "rock"), (2, "pop"), (3, "jazz")
    artists = [(10, "Nirvana"), (11, "Pearl Jam"), (12, "Taylor Swift"), (13, "Miles Davis"), (14, "Queen"), (15, "Adele")]
    genre_of = {10: rock, 11: rock, 12: pop, 13: jazz, 14: rock, 15: pop}
    years = [1975, 1985, 1992, 1996, 2004, 2015]
    tracks = []
    for i in range(30):
        artist = artists[i % 6]
        tracks.append(make_track(
            i + 1,
            artist=artist,
            genres=[genre_of[artist[0]]],
            year=years[i % 6],
            embedding=[1.0, (i % 10) / 10.0, 0.0],
            energy=float((i * 7) % 100),
            danceability=float((i * 11) % 100),
            valence=float((i * 13) % 100),
            explicit=(i % 5 == 0),
        ))
    return FakeTrackStore(tracks)


@pytest.fixture
def rng():
    return random.Random(1234)
