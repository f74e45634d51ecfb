"""
Emoji signal extraction.

Translates the emoji in a prompt into musical hints: moods and genres with a
confidence, an occasion, an era, and averaged energy/danceability scores.
All tables are plain constant maps; an emoji may appear in several tables.
"""
import re
import logging
from typing import Dict, List, Tuple

from .models import EmojiAnalysisResult, Signal

logger = logging.getLogger(__name__)

VARIATION_SELECTOR = "\ufe0f"

EMOJI_PATTERN = re.compile(
    "(?:[\u00a9\u00ae\u203c\u2049\u2122\u2139\u2194-\u21ff\u2300-\u23ff"
    "\u24c2\u25a0-\u27bf\u2900-\u297f\u2b00-\u2bff\u3030\u303d\u3297\u3299"
    "\U0001f000-\U0001faff])\ufe0f?"
)

EMOJI_MOODS: Dict[str, Tuple[str, float]] = {
    # Happy / positive
    "😊": ("happy", 0.9),
    "😄": ("happy", 0.9),
    "😃": ("happy", 0.9),
    "😀": ("happy", 0.9),
    "🙂": ("pleasant", 0.7),
    "😁": ("happy", 0.8),
    "😆": ("cheerful", 0.8),
    # Love
    "❤️": ("romantic", 0.9),
    "💕": ("romantic", 0.9),
    "😍": ("romantic", 0.8),
    "🥰": ("romantic", 0.9),
    # Sad / melancholy
    "😢": ("sad", 0.9),
    "😭": ("sad", 0.9),
    "😞": ("melancholy", 0.8),
    "😔": ("melancholy", 0.8),
    "☹️": ("sad", 0.7),
    # Reflective
    "🤔": ("reflective", 0.7),
    "😌": ("peaceful", 0.8),
    "😴": ("calm", 0.8),
    # Energetic / excited
    "🔥": ("energetic", 0.9),
    "⚡": ("energetic", 0.8),
    "💪": ("motivational", 0.8),
    "🏃": ("energetic", 0.8),
    "🤩": ("excited", 0.9),
    "🎉": ("celebratory", 0.9),
    "🎊": ("celebratory", 0.9),
    # Angry / intense
    "😠": ("angry", 0.8),
    "😡": ("angry", 0.9),
    "👊": ("intense", 0.7),
    # Cool / chill
    "😎": ("cool", 0.8),
    "🆒": ("cool", 0.7),
    "❄️": ("chill", 0.7),
    # Misc
    "😱": ("dramatic", 0.7),
    "😵": ("chaotic", 0.7),
    "🥺": ("emotional", 0.8),
    "😳": ("emotional", 0.7),
}

# Duplicate source entries resolve to the later one (🤘 metal, 🔊 bass)
EMOJI_GENRES: Dict[str, Tuple[str, float]] = {
    "🎸": ("rock", 0.9),
    "🎧": ("electronic", 0.7),
    "🎤": ("pop", 0.7),
    "🎵": ("pop", 0.6),
    "🎼": ("classical", 0.7),
    "🎷": ("jazz", 0.8),
    "🎺": ("jazz", 0.7),
    "🎻": ("classical", 0.8),
    "🎹": ("piano", 0.8),
    "🪕": ("folk", 0.8),
    "👊": ("hip-hop", 0.6),
    "🎙️": ("hip-hop", 0.6),
    "🤠": ("country", 0.9),
    "🐴": ("country", 0.7),
    "🌾": ("country", 0.6),
    "🌿": ("folk", 0.6),
    "🎛️": ("electronic", 0.8),
    "🕺": ("dance", 0.8),
    "💃": ("dance", 0.8),
    "🔊": ("bass", 0.7),
    "🎚️": ("electronic", 0.7),
    "🌮": ("latin", 0.6),
    "🏝️": ("reggae", 0.7),
    "🌴": ("reggae", 0.6),
    "🌊": ("reggae", 0.5),
    "🤘": ("metal", 0.8),
    "⚔️": ("metal", 0.6),
    "💀": ("metal", 0.7),
    "🎭": ("indie", 0.6),
    "🕶️": ("indie", 0.5),
}

EMOJI_OCCASIONS: Dict[str, str] = {
    "🏋️": "workout",
    "🏃": "workout",
    "💪": "workout",
    "⛹️": "workout",
    "🚴": "workout",
    "🧘": "meditation",
    "📚": "study",
    "💻": "work",
    "🎓": "study",
    "🧠": "focus",
    "🎉": "party",
    "🎊": "party",
    "🥂": "party",
    "🍾": "party",
    "🍻": "party",
    "🍸": "dinner",
    "🍽️": "dinner",
    "🍲": "dinner",
    "🍷": "dinner",
    "🚗": "driving",
    "🚙": "driving",
    "🛣️": "roadtrip",
    "🧳": "travel",
    "✈️": "travel",
    "🏖️": "beach",
    "⛱️": "beach",
    "🌅": "morning",
    "☀️": "morning",
    "🌙": "night",
    "🌃": "night",
    "🌆": "night",
    "💤": "sleep",
    "🛌": "sleep",
    "💍": "romantic",
    "👰": "wedding",
    "🤵": "wedding",
    "💑": "romantic",
    "❤️": "romantic",
}

EMOJI_ERAS: Dict[str, str] = {
    "📻": "retro",
    "📼": "retro",
    "💽": "retro",
    "💾": "retro",
    "👾": "retro",
    "🕰️": "classic",
    "⏱️": "classic",
    "🦖": "classic",
    "🏛️": "classical",
    "🚀": "modern",
    "🎮": "modern",
    "📱": "modern",
}

EMOJI_ENERGY: Dict[str, float] = {
    # High
    "🔥": 90, "💥": 95, "💪": 85, "🏃": 90, "🏋️": 90, "⛹️": 85,
    "🎉": 85, "🎊": 85, "😆": 80, "🤩": 85, "😱": 80,
    # Medium
    "💃": 75, "🕺": 75, "😄": 70, "😁": 70, "😀": 65, "🎵": 65,
    "🎸": 70, "🎷": 65, "🎺": 70, "🎤": 65, "🎧": 60, "👊": 70,
    "🤘": 75, "😊": 55, "🙂": 50,
    # Low
    "🧘": 20, "😌": 30, "🥺": 40, "😢": 35, "😭": 30, "😞": 25,
    "😔": 25, "☹️": 30, "🎻": 40, "🎹": 45, "😴": 10, "💤": 5,
    "🛌": 10, "🌙": 25, "🌃": 30,
}

EMOJI_DANCEABILITY: Dict[str, float] = {
    # High
    "💃": 95, "🕺": 95, "🎊": 90, "🎉": 85, "🔥": 85, "💥": 80,
    "🎧": 80, "🎤": 80, "🎵": 75,
    # Medium
    "😊": 65, "😄": 70, "😃": 70, "😀": 65, "🎸": 65, "🎷": 75,
    "🎺": 70, "👊": 60, "🤘": 60,
    # Low
    "😢": 20, "😭": 15, "😞": 20, "😔": 25, "☹️": 20, "🎻": 30,
    "🎹": 40, "😴": 10, "🧘": 15, "📚": 20, "🧠": 25,
}

DIVERSITY_EMOJIS = frozenset(["🌈", "🔄", "🌎", "🌍", "🌏", "🌐", "🗺️", "🧩"])

NEUTRAL_SCORE = 50.0


def _strip_variation(emoji: str) -> str:
    return emoji.replace(VARIATION_SELECTOR, "")


def _normalized(table: Dict) -> Dict:
    return {_strip_variation(key): value for key, value in table.items()}


_MOODS = _normalized(EMOJI_MOODS)
_GENRES = _normalized(EMOJI_GENRES)
_OCCASIONS = _normalized(EMOJI_OCCASIONS)
_ERAS = _normalized(EMOJI_ERAS)
_ENERGY = _normalized(EMOJI_ENERGY)
_DANCEABILITY = _normalized(EMOJI_DANCEABILITY)
_DIVERSITY = frozenset(_strip_variation(e) for e in DIVERSITY_EMOJIS)


def extract_emojis(text: str) -> List[str]:
    """Return every emoji in ``text`` in order, without variation selectors."""
    if not text:
        return []
    return [_strip_variation(match) for match in EMOJI_PATTERN.findall(text)]


def _mean_score(emojis: List[str], table: Dict[str, float]) -> float:
    scores = [table[e] for e in emojis if e in table]
    if not scores:
        return NEUTRAL_SCORE
    return sum(scores) / len(scores)


def _diversity_boost(emojis: List[str]) -> int:
    genre_emojis = {e for e in emojis if e in _GENRES}
    if len(genre_emojis) >= 3:
        return 20
    if len(genre_emojis) == 2:
        return 10
    if any(e in _DIVERSITY for e in emojis):
        return 15
    return 0


class EmojiAnalyzer:
    """Lookup-table classifier for emoji in free text."""

    def analyze(self, text: str) -> EmojiAnalysisResult:
        result = EmojiAnalysisResult()

        emojis = extract_emojis(text)
        if not emojis:
            return result

        result.has_emojis = True

        for emoji in emojis:
            if emoji in _MOODS:
                mood, confidence = _MOODS[emoji]
                result.moods.append(Signal(label=mood, confidence=confidence, source=emoji))

            if emoji in _GENRES:
                genre, confidence = _GENRES[emoji]
                result.genres.append(Signal(label=genre, confidence=confidence, source=emoji))

            # First match wins for occasion and era
            if result.occasion is None and emoji in _OCCASIONS:
                result.occasion = _OCCASIONS[emoji]

            if result.era is None and emoji in _ERAS:
                result.era = _ERAS[emoji]

        result.energy = _mean_score(emojis, _ENERGY)
        result.danceability = _mean_score(emojis, _DANCEABILITY)
        result.diversity_boost = _diversity_boost(emojis)

        logger.info(
            f"Emoji analysis: {len(emojis)} emoji, {len(result.moods)} moods, "
            f"{len(result.genres)} genres, era={result.era}, occasion={result.occasion}, "
            f"energy={result.energy:.0f}, diversity boost={result.diversity_boost}"
        )
        return result
