"""
Priority-based prompt analysis.

Signals are merged tier by tier: explicit mentions, then emoji signals, then
(only when neither produced any genre/artist/decade information) the deep
semantic analysis. Each tier is a pure merge step that fills the dimensions
the previous tiers left empty.
"""
import asyncio
import logging
from typing import Optional

from .emoji_analyzer import EmojiAnalyzer
from .explicit_signals import ExplicitSignalExtractor, is_explicit_content_avoidance_requested
from .models import EmojiAnalysisResult, PromptAnalysisResult, SemanticAnalysis
from .semantic_analyzer import DeepSemanticAnalyzer

logger = logging.getLogger(__name__)

NEUTRAL_ENERGY = 50


def _clamp(value: float) -> float:
    return max(0, min(100, value))


def merge_emoji_signals(result: PromptAnalysisResult, emoji: EmojiAnalysisResult) -> PromptAnalysisResult:
    """Emoji tier: copy emoji signals and let them drive energy and diversity."""
    merged = result.model_copy(deep=True)
    merged.emoji_moods = list(emoji.moods)
    merged.emoji_genres = list(emoji.genres)
    merged.emoji_era = emoji.era
    merged.emoji_occasion = emoji.occasion
    merged.has_emojis = emoji.has_emojis

    if emoji.has_emojis:
        merged.energy_level = emoji.energy
        if emoji.diversity_boost:
            merged.diversity_preference = _clamp(merged.diversity_preference + emoji.diversity_boost)
    return merged


def needs_semantic_analysis(result: PromptAnalysisResult) -> bool:
    """Deep analysis only runs when no explicit mention and no emoji genre exists."""
    return not result.has_explicit_mentions() and not result.emoji_genres


def merge_semantic_signals(result: PromptAnalysisResult, deep: SemanticAnalysis) -> PromptAnalysisResult:
    """Implied tier: adopt model-inferred signals only where emoji left a gap."""
    merged = result.model_copy(deep=True)

    if not merged.emoji_moods:
        merged.implied_moods = list(deep.moods)
    if not merged.emoji_occasion:
        merged.implied_occasions = list(deep.occasions)
    if not merged.has_emojis:
        merged.energy_level = deep.energy
    if not merged.has_emojis or deep.diversity > merged.diversity_preference:
        merged.diversity_preference = deep.diversity

    merged.narrative_elements = list(deep.narrative)
    return merged


class PromptAnalyzer:
    def __init__(
        self,
        extractor: ExplicitSignalExtractor,
        semantic: DeepSemanticAnalyzer,
        emoji: Optional[EmojiAnalyzer] = None,
    ):
        self.extractor = extractor
        self.semantic = semantic
        self.emoji = emoji or EmojiAnalyzer()

    async def _analyze_emoji(self, prompt: str) -> EmojiAnalysisResult:
        return self.emoji.analyze(prompt)

    async def analyze(self, prompt: str, avoid_explicit: Optional[bool] = None) -> PromptAnalysisResult:
        """Analyze a prompt under the explicit > emoji > implied priority policy.

        Args:
            prompt (str): Raw user request, may contain emoji
            avoid_explicit (bool, optional): Overrides phrase-based detection when given

        Returns:
            PromptAnalysisResult: Merged signals for criteria building
        """
        logger.info(f"Starting priority-based prompt analysis for: {prompt!r}")

        if avoid_explicit is None:
            avoid_explicit = is_explicit_content_avoidance_requested(prompt)
        result = PromptAnalysisResult(avoid_explicit=avoid_explicit)

        (artists, genres, decades), emoji = await asyncio.gather(
            self.extractor.extract(prompt),
            self._analyze_emoji(prompt),
        )
        result.explicit_artists = artists
        result.explicit_genres = genres
        result.explicit_decades = decades

        result = merge_emoji_signals(result, emoji)

        if needs_semantic_analysis(result):
            logger.info("No explicit mentions or emoji genres found, performing deep semantic analysis")
            deep = await self.semantic.analyze(prompt)
            result = merge_semantic_signals(result, deep)
        else:
            reason = "explicit mentions" if result.has_explicit_mentions() else "emoji indicators"
            logger.info(f"Skipping deep semantic analysis due to {reason}")

        logger.info(
            f"Completed prompt analysis: energy={result.energy_level:.0f}, "
            f"diversity={result.diversity_preference:.0f}, avoid_explicit={result.avoid_explicit}"
        )
        return result


EMOJI_ERA_DESCRIPTIONS = {
    "retro": "80s and 90s",
    "classic": "60s and 70s",
    "classical": "pre-60s",
    "modern": "modern/contemporary (2010+)",
}

HIGH_DIVERSITY_INSTRUCTIONS = (
    "IMPORTANT: Ensure MAXIMUM diversity by:\n"
    "- Minimizing artist repetition\n"
    "- Including contrasting genres and styles\n"
    "- Maximizing variety in tempo, mood, and production styles\n"
    "- Including unexpected elements and eclectic combinations\n\n"
)

LOW_DIVERSITY_INSTRUCTIONS = (
    "IMPORTANT: Maintain a cohesive, focused sound by:\n"
    "- Selecting tracks with similar production qualities\n"
    "- Staying within related genre families\n"
    "- Maintaining consistent mood and energy\n"
    "- Selecting artists with similar styles\n\n"
)

BALANCED_DIVERSITY_INSTRUCTIONS = (
    "IMPORTANT: Ensure balanced diversity by:\n"
    "- Limiting repetition of artists\n"
    "- Varying tempo and energy levels while maintaining coherence\n"
    "- Including both popular and lesser-known tracks that match criteria\n\n"
)


def _top_labels(signals, count: int):
    return [s.label for s in sorted(signals, key=lambda s: s.confidence, reverse=True)[:count]]


def generate_system_prompt_from_analysis(analysis: PromptAnalysisResult, target_size: int = 24) -> str:
    """Render curator instructions that put explicit mentions first."""
    instructions = ""

    if analysis.explicit_artists:
        instructions += (
            f"HIGHEST PRIORITY: Include songs from these specific artists: "
            f"{', '.join(analysis.explicit_artists)}. Limit to 2-3 songs per artist maximum.\n\n"
        )
    if analysis.explicit_genres:
        instructions += (
            f"HIGH PRIORITY: At least 60% of songs should be from these genres: "
            f"{', '.join(analysis.explicit_genres)}.\n\n"
        )
    if analysis.explicit_decades:
        decades = ", ".join(f"{d}s" for d in analysis.explicit_decades)
        instructions += f"HIGH PRIORITY: At least 80% of songs should be from these decades: {decades}.\n\n"

    emoji_parts = []
    if analysis.emoji_genres:
        emoji_parts.append(
            f"Include music from these genres specified by emojis: {', '.join(_top_labels(analysis.emoji_genres, 3))}.\n"
        )
    if analysis.emoji_moods:
        emoji_parts.append(f"Match these moods from emojis: {', '.join(_top_labels(analysis.emoji_moods, 3))}.\n")
    if analysis.emoji_era in EMOJI_ERA_DESCRIPTIONS:
        emoji_parts.append(f"Focus on the {EMOJI_ERA_DESCRIPTIONS[analysis.emoji_era]} era.\n")
    if analysis.emoji_occasion:
        emoji_parts.append(f"Select music appropriate for: {analysis.emoji_occasion}.\n")
    if analysis.has_emojis and emoji_parts:
        instructions += f"EMOJI SIGNALS: {''.join(emoji_parts)}\n\n"

    if not analysis.has_explicit_mentions() and not analysis.emoji_genres and not analysis.emoji_era:
        implied_parts = []
        if analysis.implied_moods and not analysis.emoji_moods:
            implied_parts.append(f"Match these moods: {', '.join(_top_labels(analysis.implied_moods, 3))}.\n")
        if analysis.implied_occasions and not analysis.emoji_occasion:
            implied_parts.append(
                f"Select songs appropriate for: {', '.join(_top_labels(analysis.implied_occasions, 2))}.\n"
            )
        if analysis.energy_level != NEUTRAL_ENERGY:
            if analysis.energy_level > 70:
                description = "high-energy"
            elif analysis.energy_level < 30:
                description = "low-energy/chill"
            else:
                description = "moderate energy"
            implied_parts.append(f"Aim for {description} songs.\n")
        if implied_parts:
            instructions += f"PRIORITY: {''.join(implied_parts)}\n\n"

    if analysis.diversity_preference > 70:
        instructions += HIGH_DIVERSITY_INSTRUCTIONS
    elif analysis.diversity_preference < 30:
        instructions += LOW_DIVERSITY_INSTRUCTIONS
    else:
        instructions += BALANCED_DIVERSITY_INSTRUCTIONS

    if analysis.avoid_explicit:
        instructions += (
            "CRITICAL: Exclude all explicit content. "
            "Only include family-friendly songs suitable for all audiences.\n\n"
        )

    return (
        f"You are a music curator tasked with selecting the best {target_size} songs for a playlist "
        f"based on the user's request.\n\n"
        f"{instructions}"
        "SELECTION PROCESS:\n"
        "1. First prioritize explicit requests (artists, genres, decades)\n"
        "2. Then consider thematic elements and mood\n"
        "3. Ensure cohesiveness while maintaining variety\n"
        "4. Verify each selection truly matches the request's intent\n\n"
        "FINAL CHECK: Before finalizing, review each track and confirm it truly matches the user's request. "
        "The playlist should tell a cohesive musical story while offering variety."
    )
