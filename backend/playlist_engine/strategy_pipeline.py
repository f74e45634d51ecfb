"""
Direct playlist generation.

Classifying -> Searching -> Ranking -> Naming. Every stage has a local
fallback; the only error surfaced to callers is ``NoTracksFoundError``,
raised when the store itself has no rows to offer.
"""
import json
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .llm import ChatProvider, MalformedModelOutputError, parse_json_response
from .models import PlaylistResult, StrategyAnalysis, Track

logger = logging.getLogger(__name__)

CANDIDATE_POOL_SIZE = 50
MAX_TRACKS_SHOWN = 100
STRATEGIES = ("random", "text", "genre", "artist", "criteria")
CRITERIA_PARAMS = (
    ("minEnergy", "min_energy"),
    ("maxEnergy", "max_energy"),
    ("minDanceability", "min_danceability"),
    ("maxDanceability", "max_danceability"),
    ("minValence", "min_valence"),
    ("maxValence", "max_valence"),
)


class NoTracksFoundError(Exception):
    """Raised when storage has no usable tracks for a request."""
    pass


CLASSIFY_PROMPT = """Analyze this playlist request and determine the best search strategy.

Available strategies:
1. "random" - For general requests like "surprise me", "random music"
2. "text" - For mood/vibe requests like "happy music", "chill vibes", "energetic"
3. "genre" - For genre-specific requests like "rock playlist", "jazz music"
4. "artist" - For artist-specific requests like "songs by The Beatles"
5. "criteria" - For audio feature requests like "high energy workout", "slow songs"

Respond with ONLY this JSON format:
{
  "strategy": "random|text|genre|artist|criteria",
  "reasoning": "Brief explanation of why this strategy was chosen",
  "params": {}
}

Examples:
- "happy summer music" -> {"strategy": "text", "reasoning": "Mood-based request", "params": {"query": "happy summer"}}
- "rock playlist" -> {"strategy": "genre", "reasoning": "Genre-specific request", "params": {"genres": ["rock"]}}
- "songs by The Beatles" -> {"strategy": "artist", "reasoning": "Artist-specific request", "params": {"artists": ["The Beatles"]}}
- "high energy workout" -> {"strategy": "criteria", "reasoning": "Audio feature request", "params": {"minEnergy": 70, "minDanceability": 60}}
- "surprise me" -> {"strategy": "random", "reasoning": "Random selection requested", "params": {}}"""

RANK_PROMPT = """You are a music curator selecting tracks for a playlist.

Selection criteria:
- Relevance to the request
- Variety (avoid too many songs from same artist)
- Good flow and pacing
- Quality and appeal
- Mix of different styles/genres when appropriate"""

NAMING_PROMPT = """You are a professional music marketing expert who creates shareable playlist titles and descriptions.

Detect the language of the user's original prompt and respond in the SAME LANGUAGE throughout.

TITLE: 2-5 words, catchy and specific (e.g. "Late Night Feels", "Throwback Energy", "Indie Gold").
DESCRIPTION: 15-25 words, shareable, with relevant genre keywords and at most 2-3 hashtags or emojis.

Return as JSON: {"title": "playlist title", "description": "playlist description"}"""


def fallback_analysis(prompt: str, reason: str) -> StrategyAnalysis:
    return StrategyAnalysis(strategy="text", params={"query": prompt}, reasoning=reason)


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, (str, int)) and str(v).strip()]
    return []


def _percent(value: Any) -> Optional[float]:
    """Audio feature bound on a 0-100 scale; 0-1 model values are rescaled."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if 0 < value <= 1:
        value *= 100
    return max(0.0, min(100.0, value))


def parse_strategy(content: str, prompt: str) -> StrategyAnalysis:
    """Validate classifier output, falling back to a text search of the raw prompt."""
    try:
        data = parse_json_response(content)
    except MalformedModelOutputError as e:
        logger.warning(f"Strategy classification unparseable, using text search: {str(e)}")
        return fallback_analysis(prompt, "Fallback to text search: unparseable classification")

    strategy = data.get("strategy")
    if strategy not in STRATEGIES:
        logger.warning(f"Unknown strategy {strategy!r}, using text search")
        return fallback_analysis(prompt, "Fallback to text search: unknown strategy")

    raw = data.get("params") if isinstance(data.get("params"), dict) else {}
    params: Dict[str, Any] = {}
    if strategy == "text":
        query = raw.get("query")
        params["query"] = query.strip() if isinstance(query, str) and query.strip() else prompt
    elif strategy == "genre":
        params["genres"] = _string_list(raw.get("genres"))
    elif strategy == "artist":
        params["artists"] = _string_list(raw.get("artists"))
    elif strategy == "criteria":
        for source, target in CRITERIA_PARAMS:
            bound = _percent(raw.get(source))
            if bound is not None:
                params[target] = bound
        genres = _string_list(raw.get("genres"))
        if genres:
            params["genres"] = genres

    reasoning = data.get("reasoning")
    return StrategyAnalysis(
        strategy=strategy,
        params=params,
        reasoning=reasoning if isinstance(reasoning, str) else "",
    )


def unique_tracks(tracks: List[Track]) -> List[Track]:
    seen = set()
    result = []
    for track in tracks:
        if track.id not in seen:
            seen.add(track.id)
            result.append(track)
    return result


def describe_tracks(tracks: List[Track]) -> str:
    listing = [
        {
            "id": str(t.id),
            "title": t.title,
            "artists": t.artist_names,
            "genres": t.genre_names,
            "energy": t.energy,
            "danceability": t.danceability,
            "valence": t.valence,
        }
        for t in tracks[:MAX_TRACKS_SHOWN]
    ]
    text = json.dumps(listing, indent=2, ensure_ascii=False)
    if len(tracks) > MAX_TRACKS_SHOWN:
        text += f"\n... (showing first {MAX_TRACKS_SHOWN})"
    return text


def validate_selection(data: Dict[str, Any], pool: List[Track], target: int) -> List[Track]:
    """Map the model's id list back to pool tracks.

    Raises:
        MalformedModelOutputError: If the ids are missing, duplicated, unknown or the wrong count
    """
    ids = data.get("songs")
    if not isinstance(ids, list):
        raise MalformedModelOutputError("Selection response has no 'songs' list")
    if len(ids) != target:
        raise MalformedModelOutputError(f"Selection returned {len(ids)} ids, expected {target}")

    by_id = {str(t.id): t for t in pool}
    keys = [str(i) for i in ids]
    if len(set(keys)) != len(keys):
        raise MalformedModelOutputError("Selection contains duplicate ids")
    unknown = [k for k in keys if k not in by_id]
    if unknown:
        raise MalformedModelOutputError(f"Selection contains ids outside the candidate pool: {unknown[:5]}")
    return [by_id[k] for k in keys]


async def select_tracks(
    chat: ChatProvider,
    pool: List[Track],
    target: int,
    request: str,
    system: str = RANK_PROMPT,
) -> List[Track]:
    """AI re-rank of a candidate pool down to exactly ``target`` tracks.

    Pools no larger than the target are returned as-is; any provider or
    validation failure falls back to the first ``target`` tracks in pool order.
    """
    if len(pool) <= target:
        return list(pool)

    user = (
        f"Select the best {target} tracks for this playlist request: {request!r}\n\n"
        f"Available tracks ({len(pool)} total):\n{describe_tracks(pool)}\n\n"
        f'Return ONLY this JSON format: {{"songs": ["track_id_1", "track_id_2", ...]}}\n'
        f"Select exactly {target} tracks, each id at most once."
    )
    try:
        content = await chat.complete(system, user, temperature=0.4, max_tokens=2000)
        selected = validate_selection(parse_json_response(content), pool, target)
    except Exception as e:
        logger.warning(f"AI track selection failed, using first {target} candidates: {str(e)}")
        return list(pool[:target])

    logger.info(f"AI selected {len(selected)} tracks from {len(pool)} candidates")
    return selected


async def backfill_tracks(store, chosen: List[Track], target: int, avoid_explicit: bool = False) -> List[Track]:
    """Top up with random rows (then any rows) until ``target`` or storage runs out."""
    result = unique_tracks(chosen)
    for fetch in (store.random_tracks, store.any_tracks):
        if len(result) >= target:
            break
        try:
            extra = await asyncio.to_thread(fetch, target + len(result), avoid_explicit)
        except Exception as e:
            logger.error(f"Backfill query failed: {str(e)}")
            continue
        result = unique_tracks(result + extra)
    return result[:target]


class StrategyPipeline:
    def __init__(self, store, chat: ChatProvider, naming_chat: Optional[ChatProvider] = None):
        self.store = store
        self.chat = chat
        self.naming_chat = naming_chat or chat

    async def classify(self, prompt: str) -> StrategyAnalysis:
        try:
            content = await self.chat.complete(
                CLASSIFY_PROMPT, f'Request: "{prompt}"', temperature=0.3, max_tokens=300
            )
        except Exception as e:
            logger.warning(f"Strategy classification failed, using text search: {str(e)}")
            return fallback_analysis(prompt, "Fallback to text search: classification unavailable")
        return parse_strategy(content, prompt)

    async def _attempt(self, description: str, fetch: Callable, *args) -> Optional[List[Track]]:
        """Run one store query; None means it raised."""
        try:
            return await asyncio.to_thread(fetch, *args)
        except Exception as e:
            logger.error(f"Error in {description}: {str(e)}")
            return None

    async def _random(self, limit: int, avoid_explicit: bool) -> List[Track]:
        tracks = await self._attempt("random sample", self.store.random_tracks, limit, avoid_explicit)
        if tracks:
            return tracks
        logger.warning("Random sampling failed, fetching any rows")
        return await self._attempt("unordered fetch", self.store.any_tracks, limit, avoid_explicit) or []

    async def _text(self, query: str, limit: int, avoid_explicit: bool) -> List[Track]:
        tracks = await self._attempt("full-text search", self.store.search_text, query, limit, avoid_explicit)
        if tracks:
            return tracks
        logger.warning(f"Full-text search found nothing for {query!r}, trying substring match")
        tracks = await self._attempt("substring search", self.store.search_substring, query, limit, avoid_explicit)
        if tracks:
            return tracks
        logger.warning("Substring search found nothing, fetching any rows")
        return await self._attempt("unordered fetch", self.store.any_tracks, limit, avoid_explicit) or []

    async def search(self, analysis: StrategyAnalysis, avoid_explicit: bool = False) -> List[Track]:
        limit = CANDIDATE_POOL_SIZE
        params = analysis.params
        strategy = analysis.strategy

        if strategy == "text":
            tracks = await self._text(params.get("query", ""), limit, avoid_explicit)
        elif strategy == "random":
            tracks = await self._random(limit, avoid_explicit)
        else:
            if strategy == "genre":
                query: Tuple = ("genre search", self.store.search_by_genres, params.get("genres", []))
            elif strategy == "artist":
                query = ("artist search", self.store.search_by_artists, params.get("artists", []))
            else:
                bounds = {k: v for k, v in params.items() if k != "genres"}
                query = ("criteria search", self.store.search_by_criteria, bounds, params.get("genres"))
            description, fetch, *args = query
            tracks = await self._attempt(description, fetch, *args, limit, avoid_explicit)
            if tracks is None:
                tracks = await self._random(limit, avoid_explicit)

        if not tracks:
            logger.warning(f"{strategy} strategy found no tracks, falling back to random selection")
            tracks = await self._random(limit, avoid_explicit)

        tracks = unique_tracks(tracks)
        logger.info(f"{strategy} strategy found {len(tracks)} candidate tracks")
        return tracks

    async def name(self, prompt: str, tracks: List[Track], strategy: str) -> Tuple[str, str]:
        """Marketing title and description; empty strings on any failure."""
        track_info = ", ".join(
            f'"{t.title}" by {t.artist_names[0] if t.artist_names else "Unknown Artist"}' for t in tracks[:5]
        )
        genres = list(dict.fromkeys(g for t in tracks for g in t.genre_names))[:3]
        artists = list(dict.fromkeys(t.artist_names[0] for t in tracks if t.artist_names))[:3]

        user = f'Original prompt: "{prompt}"\nSelected tracks: {track_info}\n'
        if genres:
            user += f"Genres: {', '.join(genres)}\n"
        if artists:
            user += f"Featured artists: {', '.join(artists)}\n"
        user += f"Strategy used: {strategy}"

        try:
            content = await self.naming_chat.complete(NAMING_PROMPT, user, temperature=0.8)
            data = parse_json_response(content)
        except Exception as e:
            logger.warning(f"Title generation failed: {str(e)}")
            return "", ""

        title, description = data.get("title"), data.get("description")
        if not isinstance(title, str) or not isinstance(description, str) or not title or not description:
            logger.warning("Title generation response missing title or description")
            return "", ""
        return title.strip(), description.strip()

    async def run(self, prompt: str, target_size: int = 24, avoid_explicit: bool = False) -> PlaylistResult:
        """Generate a playlist for ``prompt``.

        Raises:
            NoTracksFoundError: If storage has no rows at all
        """
        logger.info(f"Starting direct playlist generation for: {prompt!r}")

        analysis = await self.classify(prompt)
        logger.info(f"Strategy: {analysis.strategy} - {analysis.reasoning}")

        pool = await self.search(analysis, avoid_explicit)
        if len(pool) < target_size:
            pool = await backfill_tracks(self.store, pool, target_size, avoid_explicit)

        if not pool:
            count = await self._attempt("track count", self.store.count_tracks)
            logger.error(f"No tracks found for {prompt!r} (tracks in storage: {count})")
            raise NoTracksFoundError("No tracks found in storage")

        selected = await select_tracks(self.chat, pool, target_size, prompt)
        title, description = await self.name(prompt, selected, analysis.strategy)

        logger.info(f"Generated playlist with {len(selected)} tracks using {analysis.strategy} strategy")
        return PlaylistResult(
            track_ids=[t.id for t in selected],
            strategy=analysis.strategy,
            reasoning=analysis.reasoning,
            title=title,
            description=description,
        )
