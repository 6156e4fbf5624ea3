"""
Transcript Acquisition Service

Materializes a TranscriptRecord for (episode, language) by walking the
provider fallback chain:

1. Cached ready record -> returned as-is, no provider is called
2. In-flight record -> current status, no new work
3. Missing or failed record -> queued -> transcribing -> ready | failed

The first provider to return non-empty text wins. Providers that report
"unavailable" or fail are noted and the next one is tried.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..db import ResourceStore
from ..exceptions import TranscriptUnavailableError
from ..jobs import Claim, JobStateMachine, short_error
from ..models import DiarizedTranscript, TranscriptRecord, TranscriptRequest
from .base_transcriber import BaseTranscriptProvider, ProviderResult
from .formatter import format_transcript_with_speaker_names
from .transcriber_factory import build_provider_chain

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    """{status, text?, error?} view of a transcript record."""

    status: str
    text: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None
    transcript: Optional[DiarizedTranscript] = None
    attempts: List[ProviderResult] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: TranscriptRecord) -> "AcquisitionResult":
        return cls(
            status=record.status,
            text=record.full_text if record.status == "ready" else None,
            error=record.error_message,
            provider=record.provider,
            transcript=record.to_transcript() if record.status == "ready" else None,
        )


def stored_text(transcript: DiarizedTranscript) -> str:
    """Text persisted for a transcript; speaker-attributed when diarized."""
    if transcript.has_timing and transcript.speaker_count > 1:
        return format_transcript_with_speaker_names(transcript, transcript.speaker_names)
    return transcript.full_text.strip()


class TranscriptAcquisitionService:
    """Drives transcript records through the provider fallback chain."""

    def __init__(
        self,
        store: ResourceStore,
        providers: Optional[Sequence[BaseTranscriptProvider]] = None,
        jobs: Optional[JobStateMachine] = None,
    ):
        self.store = store
        self.providers = list(providers) if providers is not None else build_provider_chain()
        self.jobs = jobs or JobStateMachine(store)

    def begin(self, request: TranscriptRequest) -> Claim:
        """Check-then-queue without yielding; see JobStateMachine.claim_transcript."""
        return self.jobs.claim_transcript(request.episode_id, request.language)

    async def acquire(self, request: TranscriptRequest) -> AcquisitionResult:
        """
        Full algorithm: claim the key, then run the chain if this call started it.

        Never raises.
        """
        try:
            claim = self.begin(request)
        except Exception as e:
            logger.error(f"Transcript store unavailable for {request.episode_id}: {e}")
            return AcquisitionResult(status="failed", error=short_error(e))

        if not claim.started:
            if claim.cached:
                logger.info(f"Transcript cache hit for {request.episode_id}/{request.language}")
            return AcquisitionResult.from_record(claim.record)
        return await self.run(request)

    async def _try_providers(self, request: TranscriptRequest) -> ProviderResult:
        attempts: List[ProviderResult] = []
        for provider in self.providers:
            logger.info(f"Trying transcript provider '{provider.name}' for {request.episode_id}")
            result = await provider.fetch(request)
            attempts.append(result)
            if result.outcome == "success":
                logger.info(f"Transcript provider '{provider.name}' succeeded for {request.episode_id}")
                return result
            logger.warning(
                f"Transcript provider '{provider.name}' {result.outcome} for "
                f"{request.episode_id}: {result.error}; falling back"
            )

        notes = [f"{a.provider}: {a.error or a.outcome}" for a in attempts]
        raise TranscriptUnavailableError(notes)

    async def run(self, request: TranscriptRequest) -> AcquisitionResult:
        """Execute an already-claimed (queued) transcript job to ready or failed."""
        episode_id, language = request.episode_id, request.language
        start_time = time.time()

        try:
            self.jobs.move_transcript(episode_id, language, "transcribing")
            result = await self._try_providers(request)
            transcript = result.transcript
            record = self.jobs.move_transcript(
                episode_id,
                language,
                "ready",
                full_text=stored_text(transcript),
                provider=result.provider,
                error_message=None,
                utterances=transcript.utterances,
                duration_seconds=transcript.duration_seconds,
                speaker_names=transcript.speaker_names,
            )
        except Exception as e:
            logger.debug(f"Transcript job {episode_id}/{language} raised", exc_info=True)
            try:
                record = self.jobs.fail_transcript(episode_id, language, e)
            except Exception as store_error:
                logger.error(f"Could not record transcript failure for {episode_id}: {store_error}")
                return AcquisitionResult(status="failed", error=short_error(e))
            return AcquisitionResult.from_record(record)

        logger.info(
            f"Transcript {episode_id}/{language} ready via {record.provider} "
            f"in {time.time() - start_time:.1f}s ({len(record.full_text or '')} chars)"
        )
        outcome = AcquisitionResult.from_record(record)
        outcome.transcript = transcript
        return outcome
