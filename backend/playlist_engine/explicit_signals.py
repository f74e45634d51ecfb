"""
Explicit mention extraction.

Finds literal artist names, genre names (with alias normalization) and
decades/eras/years in prompt text. Artist and genre vocabularies come from
the track store; decade detection is purely textual.
"""
import re
import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_ARTISTS = 5
MAX_GENRES = 5

GENRE_ALIASES: Dict[str, List[str]] = {
    "k-pop": ["kpop", "k pop", "korean pop", "korean music", "korean", "k-pop music"],
    "j-pop": ["jpop", "j pop", "japanese pop", "japanese music"],
    "c-pop": ["cpop", "c pop", "chinese pop", "chinese music", "mandopop", "cantopop"],
    "hip hop": ["hip-hop", "hiphop", "rap"],
    "r&b": ["rnb", "r and b", "rhythm and blues"],
    "electronic": ["edm", "electronica", "electronic dance"],
    "rock": ["rock and roll", "rock n roll", "rock n'roll"],
    "indie": ["independent", "indie rock", "indie pop"],
}

GENRE_DESCRIPTORS = ("inspired", "influenced", "like", "style", "based")

ERA_PHRASES: Dict[str, int] = {
    "early 2000s": 2000,
    "mid 2000s": 2000,
    "late 2000s": 2000,
    "early nineties": 1990,
    "mid nineties": 1990,
    "late nineties": 1990,
    "early eighties": 1980,
    "mid eighties": 1980,
    "late eighties": 1980,
    "early seventies": 1970,
    "mid seventies": 1970,
    "late seventies": 1970,
    "early sixties": 1960,
    "mid sixties": 1960,
    "late sixties": 1960,
    "fifties": 1950,
    "sixties": 1960,
    "seventies": 1970,
    "eighties": 1980,
    "nineties": 1990,
    "disco era": 1970,
    "grunge era": 1990,
    "new wave era": 1980,
    "britpop era": 1990,
    "classic rock era": 1970,
    "hair metal era": 1980,
    "hip hop golden age": 1990,
    "motown era": 1960,
    "punk era": 1970,
    "y2k": 2000,
    "millennium": 2000,
}

EXPLICIT_AVOIDANCE_TERMS = (
    "clean",
    "no explicit",
    "non explicit",
    "not explicit",
    "family friendly",
    "kid friendly",
    "child friendly",
    "pg rated",
    "g rated",
    "appropriate for children",
    "appropriate for kids",
    "no swearing",
    "no profanity",
    "safe for work",
    "sfw",
)

DECADE_PATTERN = re.compile(r"(?<![\w])'?((?:19|20)\d0|\d0)s\b")
YEAR_RANGE_PATTERN = re.compile(
    r"\b(19\d\d|20\d\d)\s*(?:-|–|to|through|until|and)\s*(19\d\d|20\d\d)\b"
)
YEAR_PATTERN = re.compile(r"\b(19\d\d|20\d\d)\b")


def _bounded(phrase: str) -> str:
    return rf"(?<!\w){re.escape(phrase)}"


def _decade_of(year: int) -> int:
    return (year // 10) * 10


def resolve_short_decade(digits: int, current_year: int) -> int:
    """Resolve "80s"-style decades: the 2000s if already started, else the 1900s."""
    candidate = 2000 + digits
    return candidate if candidate <= current_year else 1900 + digits


def extract_explicit_decades(prompt: str, current_year: Optional[int] = None) -> List[int]:
    """Collect every decade mentioned in ``prompt``.

    Supports "80s"/"1980s" suffixes, named eras ("disco era"), year ranges
    ("1975-1983", expanded to every decade spanned) and bare years.
    """
    if not prompt:
        return []

    current_year = current_year or date.today().year
    text = prompt.lower()
    decades: List[int] = []

    def add(decade: int) -> None:
        if decade not in decades:
            decades.append(decade)

    for match in DECADE_PATTERN.finditer(text):
        value = match.group(1)
        if len(value) == 4:
            add(int(value))
        else:
            add(resolve_short_decade(int(value), current_year))

    for phrase, decade in ERA_PHRASES.items():
        if phrase in text:
            add(decade)

    for start_str, end_str in YEAR_RANGE_PATTERN.findall(text):
        start, end = sorted((int(start_str), int(end_str)))
        for decade in range(_decade_of(start), _decade_of(end) + 1, 10):
            add(decade)

    for year_str in YEAR_PATTERN.findall(text):
        add(_decade_of(int(year_str)))

    return decades


def is_explicit_content_avoidance_requested(prompt: str) -> bool:
    text = (prompt or "").lower()
    return any(term in text for term in EXPLICIT_AVOIDANCE_TERMS)


def match_artists(prompt: str, artist_names: List[str], limit: int = MAX_ARTISTS) -> List[str]:
    """Match known artist names against the prompt, longest names first."""
    text = (prompt or "").lower()
    found: List[str] = []

    for name in sorted(artist_names, key=len, reverse=True):
        if not name or not name.strip():
            continue
        pattern = _bounded(name.lower()) + r"(?:'s)?(?!\w)"
        if re.search(pattern, text):
            found.append(name)
            # Consume the span so shorter names inside it can't match again
            text = re.sub(pattern, " ", text)
        if len(found) >= limit:
            break

    return found


def build_genre_vocabulary(genre_names: List[str]) -> Dict[str, str]:
    """Map every lowercase spelling (store names and aliases) to a canonical genre."""
    vocabulary = {name.lower(): name for name in genre_names if name}
    for canonical, variations in GENRE_ALIASES.items():
        name = vocabulary.setdefault(canonical, canonical)
        for variation in variations:
            vocabulary[variation.lower()] = name
    return vocabulary


def match_genres(prompt: str, genre_names: List[str], limit: int = MAX_GENRES) -> List[str]:
    """Match genre names and aliases, including "<genre>-inspired" style descriptors."""
    text = (prompt or "").lower()
    vocabulary = build_genre_vocabulary(genre_names)
    descriptors = "|".join(GENRE_DESCRIPTORS)
    matched: List[str] = []

    for variation in sorted(vocabulary, key=len, reverse=True):
        canonical = vocabulary[variation]
        pattern = _bounded(variation) + rf"(?:[- ](?:{descriptors}))?(?!\w)"
        if not re.search(pattern, text):
            continue
        text = re.sub(pattern, " ", text)
        if canonical not in matched:
            matched.append(canonical)
        if len(matched) >= limit:
            break

    return matched


class ExplicitSignalExtractor:
    """Detects literal artist, genre and decade mentions in a prompt."""

    def __init__(self, store, max_artists: int = MAX_ARTISTS, max_genres: int = MAX_GENRES):
        self.store = store
        self.max_artists = max_artists
        self.max_genres = max_genres

    async def extract_artists(self, prompt: str) -> List[str]:
        try:
            names = await asyncio.to_thread(self.store.list_artist_names)
        except Exception as e:
            logger.error(f"Error extracting explicit artists: {str(e)}")
            return []
        return match_artists(prompt, names, self.max_artists)

    async def extract_genres(self, prompt: str) -> List[str]:
        try:
            names = await asyncio.to_thread(self.store.list_genre_names)
        except Exception as e:
            logger.error(f"Error extracting explicit genres: {str(e)}")
            return []
        return match_genres(prompt, names, self.max_genres)

    async def extract_decades(self, prompt: str) -> List[int]:
        return extract_explicit_decades(prompt)

    async def extract(self, prompt: str) -> Tuple[List[str], List[str], List[int]]:
        """Run the three extractions concurrently."""
        artists, genres, decades = await asyncio.gather(
            self.extract_artists(prompt),
            self.extract_genres(prompt),
            self.extract_decades(prompt),
        )
        logger.info(f"Explicit mentions: artists={artists}, genres={genres}, decades={decades}")
        return artists, genres, decades
