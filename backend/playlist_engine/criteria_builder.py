import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from .enhanced_search import map_mood_to_audio_features
from .models import EnergyRange, EnhancedSearchParams, PromptAnalysisResult, SongSelectionCriteria, YearRange

logger = logging.getLogger(__name__)

EXPLICIT_MENTION_WEIGHT = 0.3
EMOJI_SIGNAL_WEIGHT = 0.35
EMOJI_GENRE_MIN_CONFIDENCE = 0.7
ENERGY_SPREAD = 25
NEUTRAL_ENERGY = 50
DEFAULT_ARTIST_REPETITION = 3


def emoji_era_range(era: str, current_year: Optional[int] = None) -> Optional[Tuple[int, int]]:
    """Year range for an emoji era; "modern" runs up to the current year."""
    ranges = {
        "retro": (1980, 1999),
        "classic": (1960, 1979),
        "classical": (1900, 1959),
        "modern": (2010, current_year or date.today().year),
    }
    return ranges.get(era)


# occasion -> (min energy floor, max energy ceiling, injected mood weights)
OCCASION_OVERRIDES: Dict[str, Tuple[Optional[float], Optional[float], Dict[str, float]]] = {
    "workout": (70, None, {"energetic": 0.9, "motivational": 0.8}),
    "party": (65, None, {"happy": 0.8, "celebratory": 0.9}),
    "study": (None, 40, {"calm": 0.8, "peaceful": 0.7}),
    "focus": (None, 40, {"calm": 0.8, "peaceful": 0.7}),
    "sleep": (None, 30, {"calm": 0.9, "peaceful": 0.9}),
    "meditation": (None, 30, {"calm": 0.9, "peaceful": 0.9}),
    "romantic": (None, None, {"romantic": 0.9, "emotional": 0.7}),
}


def artist_repetition_for(analysis: PromptAnalysisResult) -> int:
    if analysis.diversity_preference > 70:
        return 1
    if analysis.diversity_preference < 30:
        return 4
    if analysis.has_explicit_mentions() or analysis.emoji_genres or analysis.emoji_era:
        return 2
    return DEFAULT_ARTIST_REPETITION


def merge_mood_weights(analysis: PromptAnalysisResult) -> Dict[str, float]:
    """Per mood label keep the highest confidence; emoji wins ties."""
    weights: Dict[str, float] = {}
    for signal in analysis.implied_moods:
        if signal.confidence > weights.get(signal.label, -1):
            weights[signal.label] = signal.confidence
    for signal in analysis.emoji_moods:
        if signal.label not in weights or signal.confidence >= weights[signal.label]:
            weights[signal.label] = signal.confidence
    return weights


def energy_range_for(energy_level: float) -> EnergyRange:
    if energy_level == NEUTRAL_ENERGY:
        return EnergyRange()
    return EnergyRange(
        min=max(0, energy_level - ENERGY_SPREAD),
        max=min(100, energy_level + ENERGY_SPREAD),
    )


def apply_occasion(criteria: SongSelectionCriteria, occasion: Optional[str]) -> None:
    if occasion not in OCCASION_OVERRIDES:
        return

    floor, ceiling, moods = OCCASION_OVERRIDES[occasion]
    energy = criteria.energy_range
    if floor is not None:
        energy.min = max(energy.min, floor)
        energy.max = max(energy.max, energy.min)
    if ceiling is not None:
        energy.max = min(energy.max, ceiling)
        energy.min = min(energy.min, energy.max)
    criteria.mood_weights.update(moods)
    logger.info(f"Adjusted criteria for occasion '{occasion}': energy {energy.min:.0f}-{energy.max:.0f}")


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class CriteriaBuilder:
    """Turns a PromptAnalysisResult into storage-resolved SongSelectionCriteria."""

    def __init__(self, store):
        self.store = store

    async def _resolve(self, lookup, names: List[str]) -> List[int]:
        if not names:
            return []
        try:
            return await asyncio.to_thread(lookup, names)
        except Exception as e:
            logger.error(f"Error resolving names {names}: {str(e)}")
            return []

    async def build(self, analysis: PromptAnalysisResult) -> SongSelectionCriteria:
        criteria = SongSelectionCriteria(avoid_explicit=analysis.avoid_explicit)

        emoji_genres = [
            s.label for s in analysis.emoji_genres if s.confidence >= EMOJI_GENRE_MIN_CONFIDENCE
        ]
        genres = _unique(analysis.explicit_genres + emoji_genres)

        artist_ids, genre_ids = await asyncio.gather(
            self._resolve(self.store.find_artist_ids_by_name, analysis.explicit_artists),
            self._resolve(self.store.find_genre_ids_by_name, genres),
        )
        criteria.explicit_artist_ids = artist_ids
        criteria.explicit_genre_ids = genre_ids

        # Symbolic evidence steps the similarity weight down
        weight = 1.0
        if emoji_genres and not analysis.explicit_genres:
            weight = EMOJI_SIGNAL_WEIGHT
        if analysis.has_explicit_mentions():
            weight = EXPLICIT_MENTION_WEIGHT

        criteria.year_ranges = [YearRange(start=d, end=d + 9) for d in analysis.explicit_decades]
        if analysis.emoji_era:
            era_range = emoji_era_range(analysis.emoji_era)
            if era_range:
                criteria.year_ranges.append(YearRange(start=era_range[0], end=era_range[1]))
            if not analysis.explicit_decades:
                weight = min(weight, EMOJI_SIGNAL_WEIGHT)

        criteria.vector_similarity_weight = weight
        criteria.max_artist_repetition = artist_repetition_for(analysis)
        criteria.mood_weights = merge_mood_weights(analysis)
        criteria.energy_range = energy_range_for(analysis.energy_level)
        apply_occasion(criteria, analysis.emoji_occasion)

        logger.info(
            f"Built criteria: {len(artist_ids)} artists, {len(genre_ids)} genres, "
            f"{len(criteria.year_ranges)} year ranges, weight={criteria.vector_similarity_weight}, "
            f"max repetition={criteria.max_artist_repetition}"
        )
        return criteria


def to_search_params(prompt: str, analysis: PromptAnalysisResult, criteria: SongSelectionCriteria) -> EnhancedSearchParams:
    """Search parameters for the enhanced search, derived from the analysis and criteria."""
    emoji_genres = [s.label for s in analysis.emoji_genres if s.confidence >= EMOJI_GENRE_MIN_CONFIDENCE]
    top_mood = max(criteria.mood_weights, key=criteria.mood_weights.get) if criteria.mood_weights else None

    params = EnhancedSearchParams(
        query=prompt,
        genre_names=_unique(analysis.explicit_genres + emoji_genres),
        mood=top_mood,
        year_ranges=list(criteria.year_ranges),
        diversity_factor=analysis.diversity_preference / 100,
        limit_artist_repetition=True,
        max_tracks_per_artist=criteria.max_artist_repetition,
        avoid_explicit=criteria.avoid_explicit,
    )

    if top_mood:
        for bound, value in map_mood_to_audio_features(top_mood).items():
            setattr(params, bound, value)

    energy = criteria.energy_range
    if energy.min > 0 or energy.max < 100:
        params.min_energy = energy.min
        params.max_energy = energy.max
    return params
