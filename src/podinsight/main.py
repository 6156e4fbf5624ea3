"""
PodInsight FastAPI Main Application
API endpoints for requesting transcripts, summaries and insights, for
polling their status and for asking questions about finished episodes.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from .config import settings
from .exceptions import ContextUnavailableError, ProviderError, StoreError
from .models import ArtifactResponse, EpisodeSource, EpisodeStatus
from .pipeline import PipelineFacade
from .summary.ask import ChatMessage

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_pipeline: Optional[PipelineFacade] = None


def get_pipeline() -> PipelineFacade:
    global _pipeline
    if _pipeline is None:
        settings.ensure_directories()
        _pipeline = PipelineFacade()
    return _pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _pipeline is not None and _pipeline.pending_tasks:
        logger.info(f"Shutdown: waiting for {_pipeline.pending_tasks} background jobs")
        await _pipeline.drain()


# Create FastAPI app
app = FastAPI(
    title="PodInsight",
    description="Transcripts, summaries and insights for podcast episodes",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Request Models ---

class EpisodeRequest(BaseModel):
    audio_url: str
    caption_url: Optional[str] = None
    title: Optional[str] = None
    language: str = "en"

    def to_source(self, episode_id: str) -> EpisodeSource:
        return EpisodeSource(
            episode_id=episode_id,
            audio_url=self.audio_url,
            caption_url=self.caption_url,
            title=self.title,
        )


class SummaryRequest(EpisodeRequest):
    level: Literal["quick", "deep"] = "quick"


class AskRequest(BaseModel):
    question: str
    history: List[ChatMessage] = []
    language: str = "en"


# --- Health Check ---

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# --- Artifact Endpoints ---

async def _request(episode_id: str, body: EpisodeRequest, kind: str, level: Optional[str] = None) -> ArtifactResponse:
    if not episode_id.strip():
        raise HTTPException(status_code=400, detail="Episode id must not be empty")
    try:
        return await get_pipeline().request_artifact(
            body.to_source(episode_id), kind, level=level, language=body.language
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/episodes/{episode_id}/transcript", response_model=ArtifactResponse)
async def request_transcript(episode_id: str, body: EpisodeRequest):
    """Request a transcript. Returns immediately with the current status."""
    return await _request(episode_id, body, "transcript")


@app.post("/episodes/{episode_id}/summaries", response_model=ArtifactResponse)
async def request_summary(episode_id: str, body: SummaryRequest):
    """Request a quick or deep summary; the transcript is produced first if needed."""
    return await _request(episode_id, body, "summary", level=body.level)


@app.post("/episodes/{episode_id}/insights", response_model=ArtifactResponse)
async def request_insights(episode_id: str, body: EpisodeRequest):
    """Request keywords, highlights, shownotes and mindmap."""
    return await _request(episode_id, body, "insights")


@app.get("/episodes/{episode_id}/status", response_model=EpisodeStatus)
async def episode_status(episode_id: str, language: str = Query("en")):
    """Transcript and summary status for one episode and language."""
    status = get_pipeline().get_status(episode_id, language)
    if status.store_error:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {status.store_error}")
    return status


@app.get("/episodes/{episode_id}/availability")
async def summary_availability(episode_id: str):
    """Best status per summary level across every language of an episode."""
    try:
        return {"episode_id": episode_id, "levels": get_pipeline().summary_availability(episode_id)}
    except StoreError as e:
        logger.error(f"Availability lookup failed for {episode_id}: {e}")
        raise HTTPException(status_code=503, detail="Store unavailable")


# --- Questions ---

@app.post("/episodes/{episode_id}/ask")
async def ask_episode(episode_id: str, body: AskRequest):
    """Answer a question about an episode from its transcript and ready summaries."""
    try:
        answer = await get_pipeline().ask(
            episode_id, body.question, history=body.history, language=body.language
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ContextUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        logger.error(f"Ask failed for {episode_id}: {e}")
        raise HTTPException(status_code=502, detail="Model provider unavailable")
    except StoreError as e:
        logger.error(f"Ask failed for {episode_id}: {e}")
        raise HTTPException(status_code=503, detail="Store unavailable")
    return {"episode_id": episode_id, "answer": answer}
