"""
Pipeline Facade

Two idempotent entry points for the API layer:

- request_artifact(): fire-and-continue. Returns the current status (and
  content on a cache hit) immediately; any new work runs as a background
  asyncio task.
- get_status(): transcript plus every summary tier for one episode/language.

ask() answers questions from whatever is already ready and never starts jobs.

Summary and insights jobs materialize the transcript first. The check and
the queued write for a key happen before the first await, so concurrent
requests on one event loop never start duplicate work.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, Hashable, List, Optional, Sequence, Tuple

from .config import settings
from .db import ResourceStore, create_store
from .exceptions import PodInsightError
from .jobs import JobStateMachine, short_error
from .llm import LanguageModel, create_language_model
from .models import (
    SUMMARY_LEVELS,
    ArtifactResponse,
    DiarizedTranscript,
    EpisodeSource,
    EpisodeStatus,
    SummaryRecord,
    SummaryStatusEntry,
    TranscriptRecord,
    TranscriptRequest,
)
from .podcast.acquisition import AcquisitionResult, TranscriptAcquisitionService
from .polling import best_status, is_in_flight, poll_until_settled
from .summary.agents import SynthesisOrchestrator
from .summary.ask import ChatMessage, EpisodeAssistant
from .summary.generator import SummaryGenerator
from .summary.insights import InsightsExtractor

logger = logging.getLogger(__name__)


def _transcript_response(record: TranscriptRecord) -> ArtifactResponse:
    return ArtifactResponse(
        status=record.status,
        content=record.full_text if record.status == "ready" else None,
        error=record.error_message if record.status == "failed" else None,
    )


def _summary_response(record: SummaryRecord) -> ArtifactResponse:
    return ArtifactResponse(
        status=record.status,
        content=record.content if record.status == "ready" else None,
        error=record.error_message if record.status == "failed" else None,
    )


class PipelineFacade:
    """
    Orchestrates transcript acquisition and summary generation.

    Background tasks are kept in a registry keyed by resource identity so
    they are not garbage collected mid-flight and so dependent jobs can
    await an in-flight transcript.
    """

    def __init__(
        self,
        store: Optional[ResourceStore] = None,
        providers=None,
        model: Optional[LanguageModel] = None,
        failure_policy: Optional[str] = None,
    ):
        self.store = store or create_store()
        self.jobs = JobStateMachine(self.store)
        self.acquisition = TranscriptAcquisitionService(self.store, providers, self.jobs)
        self._model = model
        self.failure_policy = failure_policy or settings.writer_failure_policy
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    @property
    def model(self) -> LanguageModel:
        # Created on first use so transcript-only deployments need no LLM credentials
        if self._model is None:
            self._model = create_language_model()
        return self._model

    # --- Task registry ---

    def _spawn(self, key: Hashable, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks[key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(key) is done:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every background job, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # --- Requests ---

    async def request_artifact(
        self,
        source: EpisodeSource,
        kind: str,
        level: Optional[str] = None,
        language: str = "en",
    ) -> ArtifactResponse:
        """
        Request a transcript, summary tier or insights for an episode.

        Raises:
            ValueError: unknown kind or level
        """
        if kind == "transcript":
            return await self.request_transcript(source, language)
        if kind == "insights":
            return await self.request_summary(source, "insights", language)
        if kind == "summary":
            level = level or "quick"
            if level not in SUMMARY_LEVELS:
                raise ValueError(f"Unknown summary level: {level}")
            return await self.request_summary(source, level, language)
        raise ValueError(f"Unknown artifact kind: {kind}")

    async def request_transcript(self, source: EpisodeSource, language: str = "en") -> ArtifactResponse:
        request = self._transcript_request(source, language)
        try:
            claim = self.acquisition.begin(request)
        except Exception as e:
            logger.error(f"Transcript request for {source.episode_id} failed: {e}")
            return ArtifactResponse(status="failed", error=short_error(e))

        if claim.started:
            self._spawn(("transcript", source.episode_id, language), self.acquisition.run(request))
        return _transcript_response(claim.record)

    async def request_summary(self, source: EpisodeSource, level: str, language: str = "en") -> ArtifactResponse:
        try:
            claim = self.jobs.claim_summary(source.episode_id, level, language)
        except Exception as e:
            logger.error(f"{level} summary request for {source.episode_id} failed: {e}")
            return ArtifactResponse(status="failed", error=short_error(e))

        if claim.started:
            self._spawn(
                ("summary", source.episode_id, level, language),
                self.jobs.run_summary(
                    source.episode_id,
                    level,
                    language,
                    lambda: self._summary_work(source, level, language),
                ),
            )
        return _summary_response(claim.record)

    # --- Job bodies ---

    @staticmethod
    def _transcript_request(source: EpisodeSource, language: str) -> TranscriptRequest:
        return TranscriptRequest(
            episode_id=source.episode_id,
            audio_url=source.audio_url,
            language=language,
            caption_url=source.caption_url,
        )

    async def _summary_work(self, source: EpisodeSource, level: str, language: str) -> Dict[str, Any]:
        text, transcript = await self._ensure_transcript(source, level, language)
        self.jobs.move_summary(source.episode_id, level, language, "summarizing")
        return await self._generate(level, text, transcript, source)

    async def _ensure_transcript(
        self,
        source: EpisodeSource,
        level: str,
        language: str,
    ) -> Tuple[str, DiarizedTranscript]:
        """
        Ready transcript for a summary job, driving acquisition if needed.

        Raises:
            PodInsightError: the transcript could not be produced
        """
        record = self.store.get_transcript(source.episode_id, language)
        if record and record.status == "ready":
            return record.full_text or "", record.to_transcript()

        self.jobs.move_summary(source.episode_id, level, language, "transcribing")
        key = ("transcript", source.episode_id, language)

        if key in self._tasks:
            logger.info(f"{level} summary for {source.episode_id} waiting on in-flight transcript")
            result = await self._tasks[key]
        else:
            request = self._transcript_request(source, language)
            claim = self.acquisition.begin(request)
            if claim.started:
                result = await self._spawn(key, self.acquisition.run(request))
            elif claim.cached:
                result = AcquisitionResult.from_record(claim.record)
            else:
                result = await self._wait_for_transcript(source.episode_id, language)

        if result.status != "ready" or not result.text:
            raise PodInsightError(result.error or "Transcript acquisition failed")
        return result.text, result.transcript or DiarizedTranscript(full_text=result.text)

    async def _wait_for_transcript(self, episode_id: str, language: str) -> AcquisitionResult:
        """Transcript in flight elsewhere (another worker): poll the store until it settles."""
        logger.info(f"Transcript {episode_id}/{language} is in flight elsewhere; polling")
        polled = await poll_until_settled(lambda: self.store.get_transcript(episode_id, language))
        if polled.timed_out or polled.value is None:
            raise PodInsightError("Timed out waiting for transcript")
        return AcquisitionResult.from_record(polled.value)

    async def _generate(
        self,
        level: str,
        text: str,
        transcript: DiarizedTranscript,
        source: EpisodeSource,
    ) -> Dict[str, Any]:
        if level == "insights":
            return await InsightsExtractor(self.model).generate(text)

        if level == "deep" and settings.use_multi_agent_deep:
            if transcript.utterances:
                orchestrator = SynthesisOrchestrator(self.model, failure_policy=self.failure_policy)
                final = await orchestrator.synthesize(transcript, title=source.title)
                return final.model_dump()
            logger.warning(
                f"No utterance timing for {source.episode_id}; using single-pass deep summary"
            )

        return await SummaryGenerator(self.model).generate(level, text)

    # --- Status ---

    def get_status(self, episode_id: str, language: str = "en") -> EpisodeStatus:
        """
        Aggregate transcript and summary records; missing ones are not_started.

        A store that cannot be read yields a status carrying store_error
        instead of raising.
        """
        try:
            transcript = self.store.get_transcript(episode_id, language)
            summaries = {s.level: s for s in self.store.list_summaries(episode_id, language)}
        except PodInsightError as e:
            logger.error(f"Status lookup for {episode_id}/{language} failed: {e}")
            return EpisodeStatus(episode_id=episode_id, language=language, store_error=short_error(e))

        entries = {}
        for level in SUMMARY_LEVELS:
            record = summaries.get(level)
            if record is None:
                entries[level] = SummaryStatusEntry(status="not_started")
                continue
            entries[level] = SummaryStatusEntry(
                status=record.status,
                content=record.content if record.status == "ready" else None,
                error=record.error_message if record.status == "failed" else None,
                updated_at=record.updated_at,
            )

        return EpisodeStatus(
            episode_id=episode_id,
            language=language,
            transcript_status=transcript.status if transcript else "not_started",
            transcript_text=transcript.full_text if transcript and transcript.status == "ready" else None,
            transcript_error=transcript.error_message if transcript and transcript.status == "failed" else None,
            summaries=entries,
        )

    def is_settled(self, episode_id: str, language: str = "en") -> bool:
        """True when nothing for this episode/language is queued or running."""
        status = self.get_status(episode_id, language)
        if status.store_error:
            return False
        statuses = [status.transcript_status] + [e.status for e in status.summaries.values()]
        return not any(is_in_flight(s) for s in statuses)

    def summary_availability(self, episode_id: str) -> Dict[str, str]:
        """
        Best status per summary level across every language of an episode.

        Raises:
            StoreError: the store could not be read
        """
        by_level: Dict[str, List[str]] = {level: [] for level in SUMMARY_LEVELS}
        for record in self.store.list_summaries(episode_id):
            by_level.setdefault(record.level, []).append(record.status)
        return {level: best_status(statuses) for level, statuses in by_level.items()}

    # --- Questions ---

    async def ask(
        self,
        episode_id: str,
        question: str,
        history: Optional[Sequence[ChatMessage]] = None,
        language: str = "en",
    ) -> str:
        """
        Answer a question about an episode from its ready artifacts.

        Raises:
            ValueError: empty or oversized question or history
            ContextUnavailableError: no ready transcript for the episode
            ProviderError: the model call failed
            StoreError: the store could not be read
        """
        return await EpisodeAssistant(self.model, self.store).answer(
            episode_id, question, history=history, language=language
        )
