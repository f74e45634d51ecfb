from datetime import date
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List, Literal

from . import config

StrategyName = Literal["text", "genre", "artist", "criteria", "random"]


class Track(BaseModel):
    id: int
    title: str
    tempo: Optional[float] = None  # Beats per minute
    energy: Optional[float] = Field(default=None, ge=0, le=100)
    danceability: Optional[float] = Field(default=None, ge=0, le=100)
    valence: Optional[float] = Field(default=None, ge=0, le=100)
    acousticness: Optional[float] = Field(default=None, ge=0, le=100)
    release_date: Optional[date] = None
    explicit: bool = False
    embedding: Optional[List[float]] = None
    artist_ids: List[int] = Field(default_factory=list)  # Primary artist first
    artist_names: List[str] = Field(default_factory=list)
    genre_ids: List[int] = Field(default_factory=list)
    genre_names: List[str] = Field(default_factory=list)


class Signal(BaseModel):
    """A mood/genre/occasion label with the confidence it was detected with."""
    label: str
    confidence: float = Field(ge=0, le=1)
    source: Optional[str] = None  # Emoji that triggered the signal, if any


class EmojiAnalysisResult(BaseModel):
    moods: List[Signal] = Field(default_factory=list)
    genres: List[Signal] = Field(default_factory=list)
    energy: float = Field(default=50, ge=0, le=100)
    danceability: float = Field(default=50, ge=0, le=100)
    era: Optional[str] = None
    occasion: Optional[str] = None
    diversity_boost: int = 0
    has_emojis: bool = False


class SemanticAnalysis(BaseModel):
    moods: List[Signal] = Field(default_factory=list)
    occasions: List[Signal] = Field(default_factory=list)
    energy: float = Field(default=50, ge=0, le=100)
    diversity: float = Field(default=50, ge=0, le=100)
    narrative: List[str] = Field(default_factory=list)


class PromptAnalysisResult(BaseModel):
    # Explicit mentions
    explicit_artists: List[str] = Field(default_factory=list)
    explicit_genres: List[str] = Field(default_factory=list)
    explicit_decades: List[int] = Field(default_factory=list)

    # Emoji signals
    emoji_moods: List[Signal] = Field(default_factory=list)
    emoji_genres: List[Signal] = Field(default_factory=list)
    emoji_era: Optional[str] = None
    emoji_occasion: Optional[str] = None

    # Implied signals
    implied_moods: List[Signal] = Field(default_factory=list)
    implied_occasions: List[Signal] = Field(default_factory=list)
    energy_level: float = Field(default=50, ge=0, le=100)

    diversity_preference: float = Field(default=50, ge=0, le=100)
    obscurity_preference: float = Field(default=30, ge=0, le=100)

    narrative_elements: List[str] = Field(default_factory=list)
    avoid_explicit: bool = False
    has_emojis: bool = False

    def has_explicit_mentions(self) -> bool:
        return bool(self.explicit_artists or self.explicit_genres or self.explicit_decades)


class YearRange(BaseModel):
    start: int
    end: int

    def contains(self, year: int) -> bool:
        return self.start <= year <= self.end


class EnergyRange(BaseModel):
    min: float = Field(default=0, ge=0, le=100)
    max: float = Field(default=100, ge=0, le=100)


class SongSelectionCriteria(BaseModel):
    explicit_artist_ids: List[int] = Field(default_factory=list)
    explicit_genre_ids: List[int] = Field(default_factory=list)
    year_ranges: List[YearRange] = Field(default_factory=list)
    mood_weights: Dict[str, float] = Field(default_factory=dict)
    energy_range: EnergyRange = Field(default_factory=EnergyRange)
    vector_similarity_weight: float = Field(default=1.0, ge=0, le=1)
    max_artist_repetition: int = Field(default=3, ge=1)
    avoid_explicit: bool = False


class SearchCriteria(BaseModel):
    """Free-form search description used to build the embedding query."""
    query: Optional[str] = None
    genre_names: List[str] = Field(default_factory=list)
    mood: Optional[str] = None
    tempo: Optional[Literal["slow", "medium", "fast"]] = None
    era: Optional[str] = None
    avoid_explicit: bool = False


class EnhancedSearchParams(SearchCriteria):
    # Audio feature bounds
    min_tempo: Optional[float] = None
    max_tempo: Optional[float] = None
    min_energy: Optional[float] = None
    max_energy: Optional[float] = None
    min_danceability: Optional[float] = None
    max_danceability: Optional[float] = None
    min_valence: Optional[float] = None
    max_valence: Optional[float] = None
    min_acousticness: Optional[float] = None
    max_acousticness: Optional[float] = None

    # Time/era filters
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    decade_filter: Optional[str] = None  # e.g. "1980s", "90s"
    year_ranges: List[YearRange] = Field(default_factory=list)

    # Diversity
    diversity_factor: float = Field(default=0, ge=0, le=1)
    limit_artist_repetition: bool = False
    max_tracks_per_artist: int = Field(default=2, ge=1)


class SearchCandidate(BaseModel):
    track_id: int
    title: str = ""
    similarity: float = Field(ge=-1, le=1)
    tempo: Optional[float] = None
    energy: Optional[float] = None
    danceability: Optional[float] = None
    valence: Optional[float] = None
    acousticness: Optional[float] = None
    release_date: Optional[date] = None


class StrategyAnalysis(BaseModel):
    strategy: StrategyName
    params: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""


class PlaylistResult(BaseModel):
    track_ids: List[int]
    strategy: Optional[str] = None
    reasoning: Optional[str] = None
    title: str = ""
    description: str = ""


# API request/response bodies

class PromptRequest(BaseModel):
    prompt: str = Field(min_length=1)
    avoid_explicit: Optional[bool] = None
    target_size: int = Field(default=config.DEFAULT_TARGET_SIZE, gt=0, le=100)


class PromptAnalysisResponse(BaseModel):
    analysis: PromptAnalysisResult
    criteria: SongSelectionCriteria


class VectorSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=24, gt=0, le=500)
    avoid_explicit: bool = False


class VectorSearchResponse(BaseModel):
    candidates: List[SearchCandidate]
