"""
Embedding similarity search over stored track embeddings.

The query embedding comes from an ``EmbeddingProvider``; similarity is
computed locally with numpy against up to ``min(500, limit * 10)`` stored
embeddings, then an adaptive threshold cascade and a tiered shuffle are
applied.
"""
import math
import random
import asyncio
import logging
from typing import List, Optional, Protocol, Sequence, Tuple, TypeVar

import numpy as np

from .models import SearchCandidate, SearchCriteria, Track

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_DESCRIPTION_LENGTH = 5
MAX_FETCH = 500

PRIMARY_THRESHOLD = 0.75
SECONDARY_THRESHOLD = 0.6
TERTIARY_THRESHOLD = 0.45


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> np.ndarray:
        ...


def criteria_to_description(criteria: SearchCriteria) -> str:
    """Natural-language description of the criteria, used as embedding input."""
    description = ""
    if criteria.query:
        description += f"{criteria.query}. "
    if criteria.genre_names:
        description += f"Genres: {', '.join(criteria.genre_names)}. "
    if criteria.mood:
        description += f"Mood: {criteria.mood}. "
    if criteria.tempo:
        description += f"Tempo: {criteria.tempo}. "
    if criteria.era:
        description += f"Era: {criteria.era}. "
    return description.strip()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is a zero vector.

    Raises:
        ValueError: If the vectors differ in length
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.shape != vec_b.shape:
        raise ValueError(f"Vectors must have the same length ({vec_a.shape} vs {vec_b.shape})")

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def tiered_shuffle(
    items: List[T],
    top_end: int,
    mid_end: int,
    rng: random.Random,
    shuffle_mid: bool = True,
    shuffle_bottom: bool = True,
) -> List[T]:
    """Keep ``items[:top_end]`` in order and shuffle the following tiers independently."""
    top = list(items[:top_end])
    mid = list(items[top_end:mid_end])
    bottom = list(items[mid_end:])
    if shuffle_mid:
        rng.shuffle(mid)
    if shuffle_bottom:
        rng.shuffle(bottom)
    return top + mid + bottom


def apply_adaptive_threshold(
    scored: List[Tuple[Track, float]], limit: int
) -> Tuple[List[Tuple[Track, float]], float]:
    """Filter a similarity-sorted list, lowering the cutoff in fixed steps when too few pass."""
    threshold = PRIMARY_THRESHOLD
    passing = [item for item in scored if item[1] >= threshold]

    if len(passing) < max(5, 0.2 * limit):
        logger.info(f"Not enough high-quality matches ({len(passing)}), lowering threshold to {SECONDARY_THRESHOLD}")
        threshold = SECONDARY_THRESHOLD
        passing = [item for item in scored if item[1] >= threshold]

        if len(passing) < max(10, 0.4 * limit):
            logger.info(f"Still not enough matches ({len(passing)}), lowering threshold to {TERTIARY_THRESHOLD}")
            threshold = TERTIARY_THRESHOLD
            passing = [item for item in scored if item[1] >= threshold]

    return passing, threshold


def to_candidate(track: Track, similarity: float) -> SearchCandidate:
    return SearchCandidate(
        track_id=track.id,
        title=track.title,
        similarity=max(-1.0, min(1.0, similarity)),
        tempo=track.tempo,
        energy=track.energy,
        danceability=track.danceability,
        valence=track.valence,
        acousticness=track.acousticness,
        release_date=track.release_date,
    )


class VectorSearchEngine:
    def __init__(self, store, embedder: EmbeddingProvider, rng: Optional[random.Random] = None):
        self.store = store
        self.embedder = embedder
        self.rng = rng or random.Random()

    def _score(self, query: np.ndarray, tracks: List[Track]) -> List[Tuple[Track, float]]:
        scored = []
        skipped = 0
        for track in tracks:
            if track.embedding is None:
                continue
            try:
                scored.append((track, cosine_similarity(query, track.embedding)))
            except ValueError:
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} tracks with mismatched embedding dimensions")
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored

    async def search_with_threshold(
        self, criteria: SearchCriteria, limit: int
    ) -> Tuple[List[SearchCandidate], Optional[float]]:
        """Run the search and also report the similarity threshold finally used."""
        description = criteria_to_description(criteria)
        if len(description) < MIN_DESCRIPTION_LENGTH:
            logger.info("Description too short for embedding generation")
            return [], None

        try:
            query_embedding = await self.embedder.embed(description)
        except Exception as e:
            logger.error(f"Embedding generation failed for vector search: {str(e)}")
            return [], None

        fetch_limit = min(MAX_FETCH, limit * 10)
        try:
            tracks = await asyncio.to_thread(
                self.store.fetch_embedded_tracks, fetch_limit, criteria.avoid_explicit
            )
        except Exception as e:
            logger.error(f"Error fetching embedded tracks: {str(e)}")
            return [], None

        logger.info(f"Calculating similarity for {len(tracks)} tracks")
        scored = self._score(np.asarray(query_embedding), tracks)
        passing, threshold = apply_adaptive_threshold(scored, limit)

        ordered = tiered_shuffle(passing, math.ceil(limit * 0.3), math.ceil(limit * 0.7), self.rng)
        candidates = [to_candidate(track, similarity) for track, similarity in ordered[:limit]]

        logger.info(f"Vector search found {len(candidates)} matches with final threshold >= {threshold}")
        return candidates, threshold

    async def search(self, criteria: SearchCriteria, limit: int = 100) -> List[SearchCandidate]:
        candidates, _ = await self.search_with_threshold(criteria, limit)
        return candidates
