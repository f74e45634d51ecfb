from typing import List, Dict, Any, Optional, Protocol, Iterable
from datetime import date
import json
import logging

from supabase import create_client
from supabase.lib.client_options import ClientOptions

from . import config
from .models import Track

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000

TRACK_COLUMNS = (
    "id, title, tempo, energy, danceability, valence, acousticness, release_date, explicit, "
    "tracks_to_artists(is_primary, artists(id, name)), tracks_to_genres(genres(id, name))"
)
EMBEDDED_TRACK_COLUMNS = TRACK_COLUMNS + ", embedding"

AUDIO_FEATURE_COLUMNS = ("tempo", "energy", "danceability", "valence", "acousticness")


class SupabaseConnectionError(Exception):
    """Custom exception for Supabase connection issues."""
    pass


class TrackRepository(Protocol):
    """Read-only access to tracks, artists, genres and their join tables."""

    def list_artist_names(self) -> List[str]: ...
    def list_genre_names(self) -> List[str]: ...
    def find_artist_ids_by_name(self, names: List[str]) -> List[int]: ...
    def find_genre_ids_by_name(self, names: List[str]) -> List[int]: ...
    def count_tracks(self) -> int: ...
    def fetch_embedded_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def fetch_tracks_by_ids(self, track_ids: List[int], avoid_explicit: bool = False) -> List[Track]: ...
    def has_release_dates(self) -> bool: ...
    def primary_artists(self, track_ids: List[int]) -> Dict[int, int]: ...
    def search_text(self, query: str, limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def search_substring(self, query: str, limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def search_by_genres(self, genre_names: List[str], limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def search_by_artists(self, artist_names: List[str], limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def search_by_criteria(
        self,
        bounds: Dict[str, float],
        genre_names: Optional[List[str]],
        limit: int,
        avoid_explicit: bool = False,
    ) -> List[Track]: ...
    def random_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]: ...
    def any_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]: ...


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _parse_embedding(value: Any) -> Optional[List[float]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return [float(v) for v in value]


def row_to_track(row: Dict[str, Any]) -> Track:
    """Convert a PostgREST row (with embedded artist/genre joins) into a Track."""
    artist_links = sorted(
        row.get("tracks_to_artists") or [],
        key=lambda link: not link.get("is_primary"),
    )
    artists = [link["artists"] for link in artist_links if link.get("artists")]
    genres = [link["genres"] for link in row.get("tracks_to_genres") or [] if link.get("genres")]

    return Track(
        id=row["id"],
        title=row.get("title") or "Unknown Title",
        tempo=row.get("tempo"),
        energy=row.get("energy"),
        danceability=row.get("danceability"),
        valence=row.get("valence"),
        acousticness=row.get("acousticness"),
        release_date=_parse_date(row.get("release_date")),
        explicit=bool(row.get("explicit")),
        embedding=_parse_embedding(row.get("embedding")),
        artist_ids=[a["id"] for a in artists],
        artist_names=[a["name"] for a in artists],
        genre_ids=[g["id"] for g in genres],
        genre_names=[g["name"] for g in genres],
    )


class SupabaseTrackStore:
    def __init__(self, table_name: Optional[str] = None):
        """Initialize the Supabase track store.

        Args:
            table_name (str, optional): Name of the tracks table

        Raises:
            ValueError: If required environment variables are missing
            SupabaseConnectionError: If connection to Supabase fails
        """
        self.table_name = table_name or config.TRACKS_TABLE

        if not config.SUPABASE_URL or not config.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        try:
            options = ClientOptions(postgrest_client_timeout=10)
            self.client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY, options=options)
            self._test_connection()
            logger.info(f"Successfully connected to Supabase and verified table '{self.table_name}'")
        except Exception as e:
            error_msg = f"Failed to initialize Supabase client: {str(e)}"
            logger.error(error_msg)
            raise SupabaseConnectionError(error_msg) from e

    def _test_connection(self) -> None:
        """Test the Supabase connection and table access.

        Raises:
            SupabaseConnectionError: If connection test fails
        """
        try:
            self.client.table(self.table_name).select("id").limit(1).execute()
        except Exception as e:
            error_msg = f"Failed to verify table '{self.table_name}': {str(e)}"
            logger.error(error_msg)
            raise SupabaseConnectionError(error_msg) from e

    def _execute(self, query, description: str) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as e:
            error_msg = f"Error during {description}: {str(e)}"
            logger.error(error_msg)
            raise SupabaseConnectionError(error_msg) from e
        return response.data or []

    def _fetch_all(self, table: str, columns: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            query = self.client.table(table).select(columns).range(offset, offset + PAGE_SIZE - 1)
            page = self._execute(query, f"{table} listing")
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    def _tracks(self, columns: str = TRACK_COLUMNS, avoid_explicit: bool = False):
        query = self.client.table(self.table_name).select(columns)
        if avoid_explicit:
            query = query.eq("explicit", False)
        return query

    def _to_tracks(self, rows: Iterable[Dict[str, Any]]) -> List[Track]:
        return [row_to_track(row) for row in rows]

    # Name lookups

    def list_artist_names(self) -> List[str]:
        """Return every artist name, longest first."""
        rows = self._fetch_all("artists", "name")
        names = {row["name"] for row in rows if row.get("name")}
        return sorted(names, key=len, reverse=True)

    def list_genre_names(self) -> List[str]:
        rows = self._fetch_all("genres", "name")
        return [row["name"] for row in rows if row.get("name")]

    def _ids_by_name(self, table: str, names: List[str]) -> List[int]:
        if not names:
            return []
        wanted = {name.lower() for name in names}
        rows = self._fetch_all(table, "id, name")
        return [row["id"] for row in rows if (row.get("name") or "").lower() in wanted]

    def find_artist_ids_by_name(self, names: List[str]) -> List[int]:
        """Resolve artist names to ids (case-insensitive exact match)."""
        return self._ids_by_name("artists", names)

    def find_genre_ids_by_name(self, names: List[str]) -> List[int]:
        """Resolve genre names to ids (case-insensitive exact match)."""
        return self._ids_by_name("genres", names)

    # Track queries

    def count_tracks(self) -> int:
        try:
            response = self.client.table(self.table_name).select("id", count="exact").limit(1).execute()
        except Exception as e:
            error_msg = f"Error counting tracks: {str(e)}"
            logger.error(error_msg)
            raise SupabaseConnectionError(error_msg) from e
        return response.count or 0

    def fetch_embedded_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]:
        query = self._tracks(EMBEDDED_TRACK_COLUMNS, avoid_explicit).not_.is_("embedding", "null").limit(limit)
        return self._to_tracks(self._execute(query, "embedded track fetch"))

    def fetch_tracks_by_ids(self, track_ids: List[int], avoid_explicit: bool = False) -> List[Track]:
        if not track_ids:
            return []
        query = self._tracks(avoid_explicit=avoid_explicit).in_("id", list(track_ids))
        return self._to_tracks(self._execute(query, "track fetch by id"))

    def has_release_dates(self) -> bool:
        query = self.client.table(self.table_name).select("id").not_.is_("release_date", "null").limit(1)
        return bool(self._execute(query, "release date check"))

    def primary_artists(self, track_ids: List[int]) -> Dict[int, int]:
        """Map track id to its primary artist id (first linked artist when none is flagged)."""
        if not track_ids:
            return {}
        query = (
            self.client.table("tracks_to_artists")
            .select("track_id, artist_id, is_primary")
            .in_("track_id", list(track_ids))
        )
        mapping: Dict[int, int] = {}
        for row in self._execute(query, "primary artist lookup"):
            track_id = row["track_id"]
            if row.get("is_primary") or track_id not in mapping:
                mapping[track_id] = row["artist_id"]
        return mapping

    def _track_ids_linked_to(self, join_table: str, column: str, ids: List[int]) -> List[int]:
        if not ids:
            return []
        query = self.client.table(join_table).select("track_id").in_(column, ids)
        return list(dict.fromkeys(row["track_id"] for row in self._execute(query, f"{join_table} lookup")))

    def search_text(self, query: str, limit: int, avoid_explicit: bool = False) -> List[Track]:
        """Full-text search through the ``search_tracks`` database function."""
        rpc = self.client.rpc(
            "search_tracks",
            {"search_query": query, "row_limit": limit, "avoid_explicit": avoid_explicit},
        )
        ids = [row["id"] for row in self._execute(rpc, "full-text search")]
        return self._ordered(ids, avoid_explicit)

    def search_substring(self, query: str, limit: int, avoid_explicit: bool = False) -> List[Track]:
        pattern = f"%{query}%"
        by_title = self._tracks(avoid_explicit=avoid_explicit).ilike("title", pattern).limit(limit)
        tracks = self._to_tracks(self._execute(by_title, "title substring search"))
        if len(tracks) >= limit:
            return tracks

        artists = self.client.table("artists").select("id").ilike("name", pattern)
        artist_ids = [row["id"] for row in self._execute(artists, "artist substring search")]
        seen = {t.id for t in tracks}
        extra_ids = [
            i for i in self._track_ids_linked_to("tracks_to_artists", "artist_id", artist_ids)
            if i not in seen
        ]
        tracks.extend(self._ordered(extra_ids[:limit - len(tracks)], avoid_explicit))
        return tracks

    def search_by_genres(self, genre_names: List[str], limit: int, avoid_explicit: bool = False) -> List[Track]:
        genre_ids = self.find_genre_ids_by_name(genre_names)
        track_ids = self._track_ids_linked_to("tracks_to_genres", "genre_id", genre_ids)
        return self._ordered(track_ids[:limit], avoid_explicit)

    def search_by_artists(self, artist_names: List[str], limit: int, avoid_explicit: bool = False) -> List[Track]:
        artist_ids = self.find_artist_ids_by_name(artist_names)
        track_ids = self._track_ids_linked_to("tracks_to_artists", "artist_id", artist_ids)
        return self._ordered(track_ids[:limit], avoid_explicit)

    def search_by_criteria(
        self,
        bounds: Dict[str, float],
        genre_names: Optional[List[str]],
        limit: int,
        avoid_explicit: bool = False,
    ) -> List[Track]:
        """Filter by audio feature bounds keyed like ``min_energy``/``max_valence``."""
        query = self._tracks(avoid_explicit=avoid_explicit)
        for key, value in bounds.items():
            bound, _, column = key.partition("_")
            if column not in AUDIO_FEATURE_COLUMNS or value is None:
                continue
            query = query.gte(column, value) if bound == "min" else query.lte(column, value)

        if genre_names:
            genre_ids = self.find_genre_ids_by_name(genre_names)
            track_ids = self._track_ids_linked_to("tracks_to_genres", "genre_id", genre_ids)
            if not track_ids:
                return []
            query = query.in_("id", track_ids)

        return self._to_tracks(self._execute(query.limit(limit), "criteria search"))

    def random_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]:
        """Random sample through the ``random_tracks`` database function (ORDER BY RANDOM())."""
        rpc = self.client.rpc("random_tracks", {"row_limit": limit, "avoid_explicit": avoid_explicit})
        ids = [row["id"] for row in self._execute(rpc, "random sample")]
        return self._ordered(ids, avoid_explicit)

    def any_tracks(self, limit: int, avoid_explicit: bool = False) -> List[Track]:
        query = self._tracks(avoid_explicit=avoid_explicit).limit(limit)
        return self._to_tracks(self._execute(query, "unordered track fetch"))

    def _ordered(self, track_ids: List[int], avoid_explicit: bool) -> List[Track]:
        by_id = {t.id: t for t in self.fetch_tracks_by_ids(track_ids, avoid_explicit)}
        return [by_id[i] for i in track_ids if i in by_id]
