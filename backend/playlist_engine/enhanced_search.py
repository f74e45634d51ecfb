"""
Hard filtering and artist diversity on top of vector candidates.

Vector candidates are re-fetched from the store and filtered by explicit
content, release year and audio feature bounds. Survivors keep their vector
similarity and order; diversity shuffling and the per-artist cap come last.
"""
import re
import math
import random
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .explicit_signals import resolve_short_decade
from .models import EnhancedSearchParams, SearchCandidate, Track, YearRange
from .vector_search import VectorSearchEngine, tiered_shuffle

logger = logging.getLogger(__name__)

FEATURE_NAMES = ("tempo", "energy", "danceability", "valence", "acousticness")

_FULL_DECADE = re.compile(r"^(\d{4})s$", re.IGNORECASE)
_SHORT_DECADE = re.compile(r"^'?(\d{1,2})s$", re.IGNORECASE)


def parse_decade(decade: str, current_year: Optional[int] = None) -> Optional[Tuple[int, int]]:
    """Parse "1980s" or "80s" into an inclusive (start, end) year range."""
    text = (decade or "").strip()
    match = _FULL_DECADE.match(text)
    if match:
        start = int(match.group(1))
        return start, start + 9

    match = _SHORT_DECADE.match(text)
    if match:
        start = resolve_short_decade(int(match.group(1)), current_year or date.today().year)
        return start, start + 9
    return None


# Per feature, the first keyword family found in the mood sets the bound
MOOD_FEATURE_RULES: List[List[Tuple[Tuple[str, ...], str, float]]] = [
    [
        (("energetic", "upbeat", "powerful", "intense", "energizing"), "min_energy", 70),
        (("calm", "relaxed", "chill", "mellow", "peaceful"), "max_energy", 40),
    ],
    [
        (("dance", "danceable", "groovy", "funky"), "min_danceability", 70),
        (("serious", "reflective", "complex"), "max_danceability", 40),
    ],
    [
        (("happy", "cheerful", "positive", "uplifting", "joyful"), "min_valence", 70),
        (("sad", "melancholic", "sombre", "dark", "gloomy"), "max_valence", 30),
    ],
    [
        (("acoustic", "unplugged", "organic"), "min_acousticness", 70),
        (("electronic", "produced", "synthetic"), "max_acousticness", 30),
    ],
    [
        (("fast", "quick", "uptempo", "rapid"), "min_tempo", 120),
        (("slow", "downtempo", "gentle"), "max_tempo", 90),
    ],
]


def map_mood_to_audio_features(mood: str) -> Dict[str, float]:
    """Translate a mood word into audio feature bounds (e.g. "chill" -> max_energy 40)."""
    normalized = (mood or "").lower().strip()
    features: Dict[str, float] = {}
    for rules in MOOD_FEATURE_RULES:
        for terms, bound, value in rules:
            if any(term in normalized for term in terms):
                features[bound] = value
                break
    return features


DECADE_WORDS = [
    (("50s", "1950s", "fifties"), 1950),
    (("60s", "1960s", "sixties"), 1960),
    (("70s", "1970s", "seventies"), 1970),
    (("80s", "1980s", "eighties"), 1980),
    (("90s", "1990s", "nineties"), 1990),
    (("2000s", "00s", "aughts"), 2000),
    (("2010s", "10s"), 2010),
    (("2020s", "20s"), 2020),
]


def map_era_to_year_range(era: str) -> Dict[str, Any]:
    """Translate an era phrase into start_year/end_year/decade_filter values."""
    normalized = (era or "").lower().strip()

    for terms, decade in DECADE_WORDS:
        if any(term in normalized for term in terms):
            return {"start_year": decade, "end_year": decade + 9, "decade_filter": f"{decade}s"}

    if any(term in normalized for term in ("vintage", "classic", "oldies", "classics")):
        return {"end_year": 1979}
    if any(term in normalized for term in ("modern", "contemporary", "current", "recent", "today")):
        return {"start_year": 2010}
    if any(term in normalized for term in ("old school", "retro")):
        return {"start_year": 1970, "end_year": 1999}
    return {}


def resolve_year_ranges(params: EnhancedSearchParams) -> List[YearRange]:
    """Year ranges to enforce; a decade filter overrides start/end years."""
    start, end = params.start_year, params.end_year
    if params.decade_filter:
        parsed = parse_decade(params.decade_filter)
        if parsed:
            start, end = parsed
            logger.info(f"Parsed decade {params.decade_filter!r} to year range: {start}-{end}")

    ranges = list(params.year_ranges)
    if start is not None or end is not None:
        ranges.append(YearRange(start=start if start is not None else 0, end=end if end is not None else 9999))
    return ranges


def within_feature_bounds(track: Track, params: EnhancedSearchParams) -> bool:
    for name in FEATURE_NAMES:
        low = getattr(params, f"min_{name}")
        high = getattr(params, f"max_{name}")
        if low is None and high is None:
            continue
        value = getattr(track, name)
        # Unknown values never satisfy a bound
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
    return True


def within_year_ranges(track: Track, ranges: List[YearRange]) -> bool:
    if track.release_date is None:
        return False
    return any(r.contains(track.release_date.year) for r in ranges)


def limit_artist_repetition(
    track_ids: List[int],
    primary_artists: Dict[int, int],
    max_per_artist: int,
    limit: int,
) -> List[int]:
    """Greedy per-artist cap in list order, backfilled past the cap when under-filled."""
    counts: Dict[int, int] = {}
    selected: List[int] = []

    for track_id in track_ids:
        if len(selected) >= limit:
            break
        artist_id = primary_artists.get(track_id)
        if artist_id is None:
            selected.append(track_id)
            continue
        if counts.get(artist_id, 0) < max_per_artist:
            selected.append(track_id)
            counts[artist_id] = counts.get(artist_id, 0) + 1

    if len(selected) < limit:
        logger.warning(f"Only {len(selected)} tracks after artist diversity, backfilling to {limit}")
        chosen = set(selected)
        for track_id in track_ids:
            if len(selected) >= limit:
                break
            if track_id not in chosen:
                selected.append(track_id)
                chosen.add(track_id)

    return selected


class EnhancedFilterEngine:
    def __init__(self, store, vector_search: VectorSearchEngine, rng: Optional[random.Random] = None):
        self.store = store
        self.vector_search = vector_search
        self.rng = rng or random.Random()

    async def _apply_year_filter(self, tracks: List[Track], ranges: List[YearRange]) -> List[Track]:
        if not ranges:
            return tracks
        has_dates = await asyncio.to_thread(self.store.has_release_dates)
        if not has_dates:
            logger.warning("Skipping release date filter because all tracks have NULL release dates")
            return tracks
        return [t for t in tracks if within_year_ranges(t, ranges)]

    def _diversify(self, ordered: List[Tuple[Track, float]], factor: float) -> List[Tuple[Track, float]]:
        if factor <= 0.1:
            return ordered
        tier = math.ceil(len(ordered) / 3)
        return tiered_shuffle(ordered, tier, 2 * tier, self.rng, shuffle_mid=factor > 0.3)

    async def filter(
        self,
        params: EnhancedSearchParams,
        candidates: List[SearchCandidate],
        limit: int,
    ) -> List[int]:
        """Apply hard filters and diversity to vector candidates, returning track ids."""
        if not candidates:
            return []

        similarity = {c.track_id: c.similarity for c in candidates}
        try:
            tracks = await asyncio.to_thread(
                self.store.fetch_tracks_by_ids, list(similarity), params.avoid_explicit
            )
            tracks = await self._apply_year_filter(tracks, resolve_year_ranges(params))
        except Exception as e:
            logger.error(f"Error applying enhanced filters: {str(e)}")
            return []

        tracks = [t for t in tracks if within_feature_bounds(t, params)]
        logger.info(f"Found {len(tracks)} tracks after audio feature and date filtering")

        ordered = sorted(((t, similarity.get(t.id, 0.0)) for t in tracks), key=lambda item: item[1], reverse=True)
        ordered = self._diversify(ordered, params.diversity_factor)
        track_ids = [t.id for t, _ in ordered]

        if params.limit_artist_repetition:
            try:
                primary = await asyncio.to_thread(self.store.primary_artists, track_ids)
            except Exception as e:
                logger.error(f"Error fetching primary artists: {str(e)}")
                primary = {}
            track_ids = limit_artist_repetition(track_ids, primary, params.max_tracks_per_artist, limit)
            logger.info(f"Selected {len(track_ids)} tracks after applying artist diversity")

        return track_ids[:limit]

    async def find_enhanced_tracks(self, params: EnhancedSearchParams, limit: int = 100) -> List[int]:
        """Vector search with headroom for filtering, then the hard filters."""
        vector_limit = max(limit * 3, 150)
        candidates = await self.vector_search.search(params, vector_limit)
        if not candidates:
            logger.info("No vector matches found")
            return []
        logger.info(f"Found {len(candidates)} initial vector matches")
        return await self.filter(params, candidates, limit)
