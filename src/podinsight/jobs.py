"""
Job State Machine

Lifecycle bookkeeping for transcript and summary records:

    not_started -> queued -> transcribing -> summarizing -> ready

queued, transcribing and summarizing may each move to failed instead.

"not_started" means no record exists. A ready record is a durable cache hit;
an in-flight record (queued, transcribing, summarizing) is never restarted;
a failed record may be claimed again, which moves it back to queued.

Claims run the read and the queued write without yielding to the event
loop, so two coroutines can never both start work for the same key.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from .config import settings
from .db import ResourceStore
from .models import IN_FLIGHT_STATUSES, SummaryRecord, TranscriptRecord, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500
STALE_JOB_ERROR = "Stale job reset"

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "queued": frozenset({"transcribing", "summarizing", "failed"}),
    "transcribing": frozenset({"summarizing", "ready", "failed"}),
    "summarizing": frozenset({"ready", "failed"}),
    "ready": frozenset(),
    "failed": frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a record would move backwards or out of a terminal state."""
    pass


def short_error(error: Union[str, BaseException]) -> str:
    """Human-readable, bounded error text for storage."""
    text = str(error).strip() or (error.__class__.__name__ if isinstance(error, BaseException) else "")
    text = text or "Unknown error"
    return text[:MAX_ERROR_LENGTH]


@dataclass
class Claim:
    """
    Outcome of asking to start work on a key.

    started is True only for the caller that moved the record to queued.
    """

    started: bool
    record: Union[TranscriptRecord, SummaryRecord]

    @property
    def status(self) -> str:
        return self.record.status

    @property
    def cached(self) -> bool:
        return self.record.status == "ready"


@dataclass
class RecoveryReport:
    """Keys of the records recover_stale() moved to failed."""

    transcripts: List[Tuple[str, str]] = field(default_factory=list)
    summaries: List[Tuple[str, str, str]] = field(default_factory=list)


def check_transition(old: Optional[str], new: str) -> None:
    if old is None:
        if new != "queued":
            raise InvalidTransitionError(f"record must start as queued, not {new}")
        return
    if new not in ALLOWED_TRANSITIONS.get(old, frozenset()):
        raise InvalidTransitionError(f"cannot move from {old} to {new}")


class JobStateMachine:
    """Guards every status write for transcript and summary records."""

    def __init__(self, store: ResourceStore):
        self.store = store

    # --- Transcript records ---

    def claim_transcript(self, episode_id: str, language: str) -> Claim:
        existing = self.store.get_transcript(episode_id, language)
        if existing and (existing.status == "ready" or existing.status in IN_FLIGHT_STATUSES):
            return Claim(started=False, record=existing)

        if existing:
            logger.info(f"Retrying transcript {episode_id}/{language} after failure")
        record = self.store.upsert_transcript(
            episode_id,
            language,
            status="queued",
            full_text=None,
            error_message=None,
        )
        logger.info(f"Transcript {episode_id}/{language}: not_started -> queued")
        return Claim(started=True, record=record)

    def move_transcript(self, episode_id: str, language: str, status: str, **fields) -> TranscriptRecord:
        current = self.store.get_transcript(episode_id, language)
        old = current.status if current else None
        check_transition(old, status)
        if status != "ready":
            fields.setdefault("full_text", None)
        record = self.store.upsert_transcript(episode_id, language, status=status, **fields)
        logger.info(f"Transcript {episode_id}/{language}: {old} -> {status}")
        return record

    def fail_transcript(self, episode_id: str, language: str, error) -> TranscriptRecord:
        message = short_error(error)
        logger.error(f"Transcript {episode_id}/{language} failed: {message}")
        return self.move_transcript(episode_id, language, "failed", error_message=message)

    # --- Summary records ---

    def claim_summary(self, episode_id: str, level: str, language: str) -> Claim:
        existing = self.store.get_summary(episode_id, level, language)
        if existing and (existing.status == "ready" or existing.status in IN_FLIGHT_STATUSES):
            return Claim(started=False, record=existing)

        if existing:
            logger.info(f"Retrying {level} summary {episode_id}/{language} after failure")
        record = self.store.upsert_summary(
            episode_id,
            level,
            language,
            status="queued",
            content=None,
            error_message=None,
        )
        logger.info(f"Summary {episode_id}/{level}/{language}: not_started -> queued")
        return Claim(started=True, record=record)

    def move_summary(self, episode_id: str, level: str, language: str, status: str, **fields) -> SummaryRecord:
        current = self.store.get_summary(episode_id, level, language)
        old = current.status if current else None
        check_transition(old, status)
        if status != "ready":
            fields.setdefault("content", None)
        record = self.store.upsert_summary(episode_id, level, language, status=status, **fields)
        logger.info(f"Summary {episode_id}/{level}/{language}: {old} -> {status}")
        return record

    def fail_summary(self, episode_id: str, level: str, language: str, error) -> SummaryRecord:
        message = short_error(error)
        logger.error(f"Summary {episode_id}/{level}/{language} failed: {message}")
        return self.move_summary(episode_id, level, language, "failed", error_message=message)

    async def run_summary(
        self,
        episode_id: str,
        level: str,
        language: str,
        work: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> SummaryRecord:
        """
        Execute a claimed summary job to ready or failed.

        `work` produces the content payload and may move the record to
        transcribing/summarizing along the way. Any exception it raises is
        stored as a short error; nothing propagates to the caller.
        """
        start_time = time.time()
        try:
            content = await work()
            record = self.move_summary(episode_id, level, language, "ready", content=content, error_message=None)
        except Exception as e:
            logger.debug(f"Summary job {episode_id}/{level}/{language} raised", exc_info=True)
            try:
                record = self.fail_summary(episode_id, level, language, e)
            except Exception as store_error:
                logger.error(f"Could not record failure for {episode_id}/{level}/{language}: {store_error}")
                return SummaryRecord(
                    episode_id=episode_id,
                    level=level,
                    language=language,
                    status="failed",
                    error_message=short_error(e),
                )
            return record

        logger.info(f"Summary {episode_id}/{level}/{language} ready in {time.time() - start_time:.1f}s")
        return record

    # --- Recovery ---

    def recover_stale(self, max_age_minutes: Optional[float] = None, now: Optional[datetime] = None) -> RecoveryReport:
        """
        Fail in-flight records nobody has touched for max_age_minutes.

        A worker that dies mid-job leaves its record queued, transcribing or
        summarizing forever, and claims treat such a record as running.
        Failing it makes the next request retry from queued. Records that
        settle while recovery runs are left alone.
        """
        max_age = settings.stale_job_minutes if max_age_minutes is None else max_age_minutes
        cutoff = (now or utcnow()) - timedelta(minutes=max_age)
        report = RecoveryReport()

        for record in self.store.list_stale_transcripts(cutoff):
            try:
                self.fail_transcript(record.episode_id, record.language, STALE_JOB_ERROR)
            except InvalidTransitionError:
                logger.info(f"Transcript {record.episode_id}/{record.language} settled during recovery")
                continue
            report.transcripts.append(record.key)

        for record in self.store.list_stale_summaries(cutoff):
            try:
                self.fail_summary(record.episode_id, record.level, record.language, STALE_JOB_ERROR)
            except InvalidTransitionError:
                logger.info(f"Summary {record.episode_id}/{record.level}/{record.language} settled during recovery")
                continue
            report.summaries.append(record.key)

        logger.info(
            f"Recovered {len(report.transcripts)} transcripts and {len(report.summaries)} summaries "
            f"idle since {cutoff.isoformat(timespec='seconds')}"
        )
        return report
