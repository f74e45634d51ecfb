import logging
from typing import Any, List

from .llm import ChatProvider, parse_json_response
from .models import SemanticAnalysis, Signal

logger = logging.getLogger(__name__)

DEEP_ANALYSIS_PROMPT = """
Analyze the following music playlist request and extract key characteristics.
Respond in JSON format with the following structure:
{
  "moods": [{"mood": string, "confidence": number}],
  "occasions": [{"occasion": string, "confidence": number}],
  "energy": number,
  "diversity": number,
  "narrative": [string]
}

Confidence values are between 0 and 1. Energy is on a 0-100 scale (0=calm, 100=energetic).
Diversity is on a 0-100 scale (0=highly focused on one style, 100=maximum variety).
Narrative lists key narrative elements or themes.

Common moods include: energetic, mellow, happy, sad, angry, romantic, nostalgic, dark, uplifting, relaxed, anxious
Common occasions include: workout, party, study, driving, dinner, morning, night, wedding, roadtrip, meditation

For diversity assessment:
- Low (0-30): When the request implies focus on a specific sound, artist similarity, or consistent style
- Medium (31-70): Default level - balanced variety while maintaining coherence
- High (71-100): When the request explicitly asks for eclectic mixes, variety, or diverse exploration

Be specific and detailed. Prioritize musical characteristics over generic descriptions.
"""


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def _signals(items: Any, key: str) -> List[Signal]:
    if not isinstance(items, list):
        return []
    signals = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get(key), str):
            continue
        confidence = item.get("confidence", 0.5)
        if not isinstance(confidence, (int, float)):
            confidence = 0.5
        signals.append(Signal(label=item[key].lower(), confidence=_clamp(float(confidence), 0, 1)))
    return signals


def _score(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _clamp(float(value))
    return 50.0


class DeepSemanticAnalyzer:
    """Infers moods, occasions, energy and diversity with a language model.

    Never raises: provider failures and malformed output both yield the
    neutral defaults (energy 50, diversity 50, no moods/occasions).
    """

    def __init__(self, chat: ChatProvider, temperature: float = 0.3):
        self.chat = chat
        self.temperature = temperature

    async def analyze(self, prompt: str) -> SemanticAnalysis:
        try:
            content = await self.chat.complete(DEEP_ANALYSIS_PROMPT, prompt, temperature=self.temperature)
            result = parse_json_response(content)
        except Exception as e:
            logger.warning(f"Deep prompt analysis failed, using neutral defaults: {str(e)}")
            return SemanticAnalysis()

        narrative = result.get("narrative")
        analysis = SemanticAnalysis(
            moods=_signals(result.get("moods"), "mood"),
            occasions=_signals(result.get("occasions"), "occasion"),
            energy=_score(result.get("energy")),
            diversity=_score(result.get("diversity")),
            narrative=[str(n) for n in narrative] if isinstance(narrative, list) else [],
        )
        logger.info(
            f"Deep analysis: {len(analysis.moods)} moods, {len(analysis.occasions)} occasions, "
            f"energy={analysis.energy:.0f}, diversity={analysis.diversity:.0f}"
        )
        return analysis
