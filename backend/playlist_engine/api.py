from fastapi import FastAPI, HTTPException, Depends
from functools import lru_cache
import logging

from . import config
from .criteria_builder import CriteriaBuilder
from .embeddings import ClapTextEmbedder
from .enhanced_search import EnhancedFilterEngine
from .explicit_signals import ExplicitSignalExtractor
from .generator import PlaylistGenerator
from .llm import OpenAIChatProvider
from .models import (
    PlaylistResult,
    PromptAnalysisResponse,
    PromptRequest,
    SearchCriteria,
    VectorSearchRequest,
    VectorSearchResponse,
)
from .prompt_analyzer import PromptAnalyzer
from .semantic_analyzer import DeepSemanticAnalyzer
from .strategy_pipeline import NoTracksFoundError, StrategyPipeline
from .vector_search import VectorSearchEngine
from .vector_store import SupabaseTrackStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Playlist Engine API")


# Collaborators are created on first use so the app imports without credentials;
# tests replace them through app.dependency_overrides.

@lru_cache()
def get_store():
    return SupabaseTrackStore()


@lru_cache()
def get_chat():
    return OpenAIChatProvider(model=config.CHAT_MODEL)


@lru_cache()
def get_analysis_chat():
    return OpenAIChatProvider(model=config.ANALYSIS_MODEL)


@lru_cache()
def get_embedder():
    return ClapTextEmbedder()


def get_prompt_analyzer(store=Depends(get_store), analysis_chat=Depends(get_analysis_chat)) -> PromptAnalyzer:
    return PromptAnalyzer(ExplicitSignalExtractor(store), DeepSemanticAnalyzer(analysis_chat))


def get_vector_search(store=Depends(get_store), embedder=Depends(get_embedder)) -> VectorSearchEngine:
    return VectorSearchEngine(store, embedder)


def get_generator(
    store=Depends(get_store),
    chat=Depends(get_chat),
    analyzer: PromptAnalyzer = Depends(get_prompt_analyzer),
    vector_search: VectorSearchEngine = Depends(get_vector_search),
) -> PlaylistGenerator:
    return PlaylistGenerator(
        store,
        analyzer,
        CriteriaBuilder(store),
        EnhancedFilterEngine(store, vector_search),
        chat,
    )


def get_pipeline(
    store=Depends(get_store),
    chat=Depends(get_chat),
    analysis_chat=Depends(get_analysis_chat),
) -> StrategyPipeline:
    return StrategyPipeline(store, chat, naming_chat=analysis_chat)


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.post("/api/prompt/analyze", response_model=PromptAnalysisResponse)
async def analyze_prompt(
    request: PromptRequest,
    analyzer: PromptAnalyzer = Depends(get_prompt_analyzer),
    store=Depends(get_store),
) -> PromptAnalysisResponse:
    """Analyze a prompt and show the selection criteria it resolves to."""
    try:
        analysis = await analyzer.analyze(request.prompt, request.avoid_explicit)
        criteria = await CriteriaBuilder(store).build(analysis)
        return PromptAnalysisResponse(analysis=analysis, criteria=criteria)
    except Exception as e:
        logger.error(f"Error analyzing prompt: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/vector-search", response_model=VectorSearchResponse)
async def vector_search(
    request: VectorSearchRequest,
    engine: VectorSearchEngine = Depends(get_vector_search),
) -> VectorSearchResponse:
    try:
        criteria = SearchCriteria(query=request.query, avoid_explicit=request.avoid_explicit)
        candidates = await engine.search(criteria, request.limit)
        return VectorSearchResponse(candidates=candidates)
    except Exception as e:
        logger.error(f"Error in vector search: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/playlist/generate", response_model=PlaylistResult)
async def generate_playlist(
    request: PromptRequest,
    generator: PlaylistGenerator = Depends(get_generator),
) -> PlaylistResult:
    """Criteria-driven generation: prompt analysis, enhanced search and AI re-rank."""
    try:
        return await generator.generate(request.prompt, request.target_size, request.avoid_explicit)
    except NoTracksFoundError as e:
        logger.warning(f"No tracks found for prompt {request.prompt!r}")
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating playlist: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/playlist/direct", response_model=PlaylistResult)
async def direct_playlist(
    request: PromptRequest,
    pipeline: StrategyPipeline = Depends(get_pipeline),
) -> PlaylistResult:
    """Strategy-classified generation with AI ranking and a generated title."""
    try:
        return await pipeline.run(request.prompt, request.target_size, bool(request.avoid_explicit))
    except NoTracksFoundError as e:
        logger.warning(f"No tracks found for prompt {request.prompt!r}")
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating direct playlist: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
