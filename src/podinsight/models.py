"""
PodInsight Data Models
Pydantic models for transcript and summary records, utterances and job responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

# Stored lifecycle values. "not_started" is never stored; it means "no record".
JobStatus = Literal["not_started", "queued", "transcribing", "summarizing", "ready", "failed"]
SummaryLevel = Literal["quick", "deep", "insights"]
ArtifactKind = Literal["transcript", "summary", "insights"]

IN_FLIGHT_STATUSES = frozenset({"queued", "transcribing", "summarizing"})
SUMMARY_LEVELS = ("quick", "deep", "insights")

# Higher wins when several records describe the same artifact
STATUS_PRIORITY: Dict[str, int] = {
    "ready": 6,
    "summarizing": 5,
    "transcribing": 4,
    "queued": 3,
    "failed": 2,
    "not_started": 1,
}


def utcnow() -> datetime:
    return datetime.utcnow()


class Utterance(BaseModel):
    """One timestamped, speaker-attributed span of transcript text."""

    speaker: int = Field(default=0, description="Diarized speaker index")
    start: float = Field(description="Start time in seconds")
    end: float = Field(description="End time in seconds")
    text: str = Field(description="Spoken text")
    confidence: Optional[float] = None


class DiarizedTranscript(BaseModel):
    """Transcript output of a provider, with utterances when timing is known."""

    utterances: List[Utterance] = Field(default_factory=list)
    full_text: str = ""
    duration_seconds: float = 0.0
    speaker_count: int = 1
    detected_language: Optional[str] = None
    speaker_names: Dict[int, str] = Field(default_factory=dict, description="Known names by speaker index")

    @property
    def has_timing(self) -> bool:
        return bool(self.utterances)


class EpisodeSource(BaseModel):
    """Where an episode's audio and optional pre-existing captions live."""

    episode_id: str
    audio_url: str
    caption_url: Optional[str] = Field(None, description="RSS transcript or platform captions URL")
    title: Optional[str] = None
    podcast_title: Optional[str] = None
    language: Optional[str] = Field(None, description="Language the feed declares for this episode")


class TranscriptRequest(BaseModel):
    """Input handed to every transcript provider in the fallback chain."""

    episode_id: str
    audio_url: str
    language: str = "en"
    caption_url: Optional[str] = None


class TranscriptRecord(BaseModel):
    """Durable transcript cache row keyed by (episode_id, language)."""

    episode_id: str
    language: str = "en"
    status: JobStatus = "queued"
    full_text: Optional[str] = None
    provider: Optional[str] = None
    error_message: Optional[str] = None
    utterances: List[Utterance] = Field(default_factory=list)
    duration_seconds: Optional[float] = None
    speaker_names: Dict[int, str] = Field(default_factory=dict, description="Known names by speaker index")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple:
        return (self.episode_id, self.language)

    def to_transcript(self) -> DiarizedTranscript:
        """Rebuild the provider-shaped transcript from a ready record."""
        speakers = {u.speaker for u in self.utterances}
        return DiarizedTranscript(
            utterances=self.utterances,
            full_text=self.full_text or "",
            duration_seconds=self.duration_seconds or 0.0,
            speaker_count=len(speakers) or 1,
            detected_language=self.language,
            speaker_names=dict(self.speaker_names),
        )


class SummaryRecord(BaseModel):
    """Durable summary row keyed by (episode_id, level, language)."""

    episode_id: str
    level: SummaryLevel
    language: str = "en"
    status: JobStatus = "queued"
    content: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple:
        return (self.episode_id, self.level, self.language)


class ArtifactResponse(BaseModel):
    """What a request returns immediately: current status, content on cache hit."""

    status: JobStatus
    content: Optional[Any] = None
    error: Optional[str] = None


class SummaryStatusEntry(BaseModel):
    status: JobStatus
    content: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    updated_at: Optional[datetime] = None


class EpisodeStatus(BaseModel):
    """Aggregated transcript and summary state for one episode and language."""

    episode_id: str
    language: str
    transcript_status: JobStatus = "not_started"
    transcript_text: Optional[str] = None
    transcript_error: Optional[str] = None
    summaries: Dict[str, SummaryStatusEntry] = Field(default_factory=dict)
    store_error: Optional[str] = Field(None, description="Set when the store could not be read")
