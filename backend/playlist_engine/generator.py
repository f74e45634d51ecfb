import math
import asyncio
import logging
from typing import List, Optional

from .criteria_builder import CriteriaBuilder, to_search_params
from .enhanced_search import EnhancedFilterEngine
from .llm import ChatProvider
from .models import EnhancedSearchParams, PlaylistResult, PromptAnalysisResult, SearchCandidate, Track
from .prompt_analyzer import PromptAnalyzer, generate_system_prompt_from_analysis
from .strategy_pipeline import NoTracksFoundError, backfill_tracks, select_tracks, unique_tracks

logger = logging.getLogger(__name__)

POOL_MULTIPLIER = 2


class PlaylistGenerator:
    """Criteria-driven generation: analyze, build criteria, search, re-rank, backfill.

    The candidate pool mixes symbolic matches (explicit artists and genres)
    with vector matches; the share of vector matches follows the criteria's
    vector similarity weight.
    """

    def __init__(
        self,
        store,
        analyzer: PromptAnalyzer,
        criteria_builder: CriteriaBuilder,
        enhanced: EnhancedFilterEngine,
        chat: Optional[ChatProvider] = None,
    ):
        self.store = store
        self.analyzer = analyzer
        self.criteria_builder = criteria_builder
        self.enhanced = enhanced
        self.chat = chat

    async def _symbolic_ids(self, analysis: PromptAnalysisResult, params: EnhancedSearchParams, limit: int) -> List[int]:
        """Tracks by explicitly named artists first, then by requested genres, through the hard filters."""
        tracks: List[Track] = []
        try:
            if analysis.explicit_artists:
                tracks += await asyncio.to_thread(
                    self.store.search_by_artists, analysis.explicit_artists, limit, params.avoid_explicit
                )
            if params.genre_names:
                tracks += await asyncio.to_thread(
                    self.store.search_by_genres, params.genre_names, limit, params.avoid_explicit
                )
        except Exception as e:
            logger.error(f"Error fetching symbolic matches: {str(e)}")

        candidates = [SearchCandidate(track_id=t.id, title=t.title, similarity=0.0) for t in unique_tracks(tracks)]
        return await self.enhanced.filter(params, candidates, limit)

    async def _fetch(self, track_ids: List[int], avoid_explicit: bool) -> List[Track]:
        if not track_ids:
            return []
        try:
            tracks = await asyncio.to_thread(self.store.fetch_tracks_by_ids, track_ids, avoid_explicit)
        except Exception as e:
            logger.error(f"Error fetching selected tracks: {str(e)}")
            return []
        by_id = {t.id: t for t in tracks}
        return [by_id[i] for i in track_ids if i in by_id]

    async def generate(
        self, prompt: str, target_size: int = 24, avoid_explicit: Optional[bool] = None
    ) -> PlaylistResult:
        """Generate an ordered list of track ids for ``prompt``.

        Raises:
            NoTracksFoundError: If storage has no usable rows
        """
        analysis = await self.analyzer.analyze(prompt, avoid_explicit)
        criteria = await self.criteria_builder.build(analysis)
        params = to_search_params(prompt, analysis, criteria)

        pool_size = target_size * POOL_MULTIPLIER
        vector_share = math.ceil(pool_size * criteria.vector_similarity_weight)

        symbolic_ids, vector_ids = await asyncio.gather(
            self._symbolic_ids(analysis, params, pool_size),
            self.enhanced.find_enhanced_tracks(params, pool_size),
        )
        logger.info(f"Candidates: {len(symbolic_ids)} symbolic, {len(vector_ids)} vector (vector share {vector_share})")

        ordered = symbolic_ids[:pool_size - vector_share] + vector_ids[:vector_share]
        ordered += symbolic_ids + vector_ids
        pool = await self._fetch(list(dict.fromkeys(ordered))[:pool_size], params.avoid_explicit)

        if self.chat is not None:
            system = generate_system_prompt_from_analysis(analysis, target_size)
            selected = await select_tracks(self.chat, pool, target_size, prompt, system=system)
        else:
            selected = pool[:target_size]

        if len(selected) < target_size:
            logger.warning(f"Only {len(selected)} tracks matched, backfilling to {target_size}")
            selected = await backfill_tracks(self.store, selected, target_size, params.avoid_explicit)

        if not selected:
            raise NoTracksFoundError("No tracks found in storage")

        logger.info(f"Generated playlist with {len(selected)} tracks")
        return PlaylistResult(track_ids=[t.id for t in selected], strategy="criteria")
