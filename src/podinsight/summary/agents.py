"""
Multi-Agent Synthesis

Deep summaries for diarized transcripts, built in three stages:

A. Analyst  - one call over a sampled transcript: speaker roster + topic
              blocks as time ranges
B. Writers  - one call per block over the block's *full* utterances, all
              issued together and joined
C. Editor   - one call over every BlockSummary: the FinalSummary

Nothing is persisted between stages. A failure in any stage fails the whole
synthesis, except Writer failures under the "degrade" policy, where failed
blocks are recorded in FinalSummary.degraded_blocks.
"""

import asyncio
import logging
import time
from bisect import bisect_right
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import settings
from ..exceptions import AgentStageError
from ..llm import LanguageModel
from ..models import DiarizedTranscript, Utterance
from ..podcast.formatter import format_timestamp
from ..podcast.sampler import build_analyst_sample
from .output_parser import coerce_float, coerce_int, coerce_str, extract_json_object
from .prompts import (
    ANALYST_PROMPT,
    ANALYST_SYSTEM,
    EDITOR_PROMPT,
    EDITOR_SYSTEM,
    WRITER_PROMPT,
    WRITER_SYSTEM,
)
from .schemas import BlockSummary, FinalSummary, SpeakerInfo, TopicBlock

logger = logging.getLogger(__name__)

FULL_EPISODE_LABEL = "Full Episode"


@dataclass
class BlockRange:
    """A normalized Analyst block before utterances are assigned."""

    id: str
    label: str
    start: float
    primary_speaker: Optional[int] = None


@dataclass
class Analysis:
    speakers: List[SpeakerInfo]
    blocks: List[TopicBlock]


def episode_duration(transcript: DiarizedTranscript) -> float:
    last_end = max((u.end for u in transcript.utterances), default=0.0)
    return max(transcript.duration_seconds or 0.0, last_end)


def normalize_block_ranges(
    raw_blocks: Any,
    duration_seconds: float,
    max_blocks: Optional[int] = None,
) -> List[BlockRange]:
    """
    Turn the Analyst's minute ranges into ordered block start times.

    Blocks without a numeric start are dropped, starts are clamped to the
    episode, duplicates are collapsed and at most `max_blocks` are kept.
    The first block always starts at 0. Each block implicitly ends where the
    next one starts; the last one is open-ended.
    """
    max_blocks = max_blocks or settings.analyst_max_blocks
    candidates: List[Tuple[float, Dict[str, Any]]] = []

    for raw in raw_blocks if isinstance(raw_blocks, list) else []:
        if not isinstance(raw, dict):
            continue
        start_minute = coerce_float(raw.get("startMinute", raw.get("start_minute")))
        if start_minute is None:
            continue
        start = min(max(start_minute * 60.0, 0.0), duration_seconds)
        end_minute = coerce_float(raw.get("endMinute", raw.get("end_minute")))
        if end_minute is not None and end_minute * 60.0 < start:
            logger.warning(f"Analyst block '{raw.get('label')}' ends before it starts; using its start only")
        candidates.append((start, raw))

    candidates.sort(key=lambda c: c[0])

    ranges: List[BlockRange] = []
    seen_starts = set()
    for start, raw in candidates:
        if start in seen_starts:
            continue
        seen_starts.add(start)
        speaker = raw.get("primarySpeaker", raw.get("primary_speaker"))
        ranges.append(BlockRange(
            id=f"block-{len(ranges) + 1}",
            label=coerce_str(raw.get("label"), f"Part {len(ranges) + 1}"),
            start=start,
            primary_speaker=coerce_int(speaker, default=-1) if speaker is not None else None,
        ))
        if len(ranges) >= max_blocks:
            break

    if not ranges:
        return [BlockRange(id="block-1", label=FULL_EPISODE_LABEL, start=0.0)]

    ranges[0].start = 0.0
    for r in ranges:
        if r.primary_speaker is not None and r.primary_speaker < 0:
            r.primary_speaker = None
    return ranges


def partition_utterances(
    utterances: Sequence[Utterance],
    ranges: Sequence[BlockRange],
    duration_seconds: float,
) -> List[TopicBlock]:
    """
    Assign every utterance to the block whose [start, next start) holds its
    start time. Each utterance lands in exactly one block.
    """
    starts = [r.start for r in ranges]
    buckets: List[List[Utterance]] = [[] for _ in ranges]
    for u in utterances:
        index = max(bisect_right(starts, u.start) - 1, 0)
        buckets[index].append(u)

    blocks = []
    for i, (r, members) in enumerate(zip(ranges, buckets)):
        end = ranges[i + 1].start if i + 1 < len(ranges) else duration_seconds
        primary = r.primary_speaker
        if members:
            # The speaker who actually talks most wins over the model's guess
            primary = Counter(u.speaker for u in members).most_common(1)[0][0]
        blocks.append(TopicBlock(
            id=r.id,
            label=r.label,
            start_time=r.start,
            end_time=max(end, r.start),
            primary_speaker=primary,
            utterances=list(members),
        ))
    return blocks


def build_roster(
    raw_speakers: Any,
    utterances: Sequence[Utterance],
    known_names: Optional[Dict[int, str]] = None,
) -> List[SpeakerInfo]:
    """Analyst roster, completed with known or placeholder names for missing diarized speakers."""
    known_names = known_names or {}
    roster: Dict[int, SpeakerInfo] = {}
    for i, raw in enumerate(raw_speakers if isinstance(raw_speakers, list) else []):
        if isinstance(raw, dict):
            info = SpeakerInfo.from_raw(raw, fallback_id=i)
            roster.setdefault(info.id, info)

    for speaker in sorted({u.speaker for u in utterances}):
        if speaker not in roster:
            roster[speaker] = SpeakerInfo(id=speaker, name=known_names.get(speaker, f"Speaker {speaker}"))
    return [roster[k] for k in sorted(roster)]


def _speaker_names(speakers: Sequence[SpeakerInfo]) -> Dict[int, str]:
    return {s.id: s.display for s in speakers}


class SynthesisOrchestrator:
    """Analyst -> parallel Writers -> Editor over one diarized transcript."""

    def __init__(
        self,
        model: LanguageModel,
        failure_policy: Optional[str] = None,
        min_blocks: Optional[int] = None,
        max_blocks: Optional[int] = None,
    ):
        self.model = model
        self.failure_policy = failure_policy or settings.writer_failure_policy
        self.min_blocks = min_blocks or settings.analyst_min_blocks
        self.max_blocks = max_blocks or settings.analyst_max_blocks
        if self.failure_policy not in ("strict", "degrade"):
            raise ValueError(f"Unknown writer failure policy: {self.failure_policy}")

    # --- Stage A ---

    async def analyze(self, transcript: DiarizedTranscript, title: Optional[str] = None) -> Analysis:
        utterances = transcript.utterances
        duration = episode_duration(transcript)
        logger.info(f"Analyst starting: {len(utterances)} utterances, {duration / 60:.1f} min")
        start_time = time.time()

        sampled, sample_text = build_analyst_sample(utterances, names=transcript.speaker_names)
        prompt = ANALYST_PROMPT.format(
            title=title or "Untitled episode",
            duration_minutes=duration / 60.0,
            utterance_count=len(utterances),
            sample_count=len(sampled),
            speaker_count=len({u.speaker for u in utterances}),
            min_blocks=self.min_blocks,
            max_blocks=self.max_blocks,
            transcript=sample_text,
        )

        try:
            response = await self.model.complete(ANALYST_SYSTEM, prompt, settings.analyst_max_tokens)
            raw = extract_json_object(response)
        except Exception as e:
            logger.error(f"Analyst failed after {time.time() - start_time:.1f}s: {e}")
            raise AgentStageError("Analyst", str(e)) from e

        speakers = build_roster(raw.get("speakers"), utterances, transcript.speaker_names)
        ranges = normalize_block_ranges(
            raw.get("topicBlocks", raw.get("topic_blocks")), duration, self.max_blocks
        )
        blocks = partition_utterances(utterances, ranges, duration)

        logger.info(
            f"Analyst completed in {time.time() - start_time:.1f}s: "
            f"{len(speakers)} speakers, {len(blocks)} blocks"
        )
        return Analysis(speakers=speakers, blocks=blocks)

    # --- Stage B ---

    async def write_block(self, block: TopicBlock, speakers: Sequence[SpeakerInfo]) -> BlockSummary:
        if not block.utterances:
            logger.info(f"Writer skipped empty block {block.id} ('{block.label}')")
            return BlockSummary.empty(block)

        names = _speaker_names(speakers)
        transcript_text = "\n".join(
            f"{names.get(u.speaker, f'Speaker {u.speaker}')}: {u.text}" for u in block.utterances
        )
        prompt = WRITER_PROMPT.format(
            speakers="\n".join(f"Speaker {s.id} = {s.display}" for s in speakers),
            label=block.label,
            start=format_timestamp(block.start_time),
            end=format_timestamp(block.end_time),
            transcript=transcript_text,
        )

        start_time = time.time()
        response = await self.model.complete(WRITER_SYSTEM, prompt, settings.writer_max_tokens)
        summary = BlockSummary.from_raw(extract_json_object(response), block)
        logger.info(f"Writer completed block {block.id} in {time.time() - start_time:.1f}s")
        return summary

    async def write_all(
        self,
        blocks: Sequence[TopicBlock],
        speakers: Sequence[SpeakerInfo],
    ) -> Tuple[List[BlockSummary], List[str]]:
        """
        Fan out one Writer per block and join on all of them.

        Returns:
            Tuple of (one BlockSummary per block in block order, labels of
            blocks whose Writer failed)
        """
        logger.info(f"Writers starting for {len(blocks)} blocks")
        start_time = time.time()

        results = await asyncio.gather(
            *(self.write_block(block, speakers) for block in blocks),
            return_exceptions=True,
        )

        summaries: List[BlockSummary] = []
        failures: List[Tuple[TopicBlock, BaseException]] = []
        for block, result in zip(blocks, results):
            if isinstance(result, BaseException):
                logger.warning(f"Writer failed for block {block.id} ('{block.label}'): {result}")
                failures.append((block, result))
                summaries.append(BlockSummary.unavailable(block))
            else:
                summaries.append(result)

        if failures:
            attempted = sum(1 for b in blocks if b.utterances)
            first_block, first_error = failures[0]
            if self.failure_policy == "strict":
                raise AgentStageError("Writer", f"block {first_block.id}: {first_error}")
            if len(failures) >= attempted:
                raise AgentStageError("Writer", f"all {len(failures)} blocks failed: {first_error}")
            logger.warning(f"Continuing with {len(failures)} degraded blocks")

        logger.info(f"Writers completed in {time.time() - start_time:.1f}s")
        return summaries, [block.label for block, _ in failures]

    # --- Stage C ---

    async def edit(
        self,
        summaries: Sequence[BlockSummary],
        speakers: List[SpeakerInfo],
        degraded_blocks: Optional[List[str]] = None,
    ) -> FinalSummary:
        logger.info(f"Editor starting with {len(summaries)} block summaries")
        start_time = time.time()

        blocks_text = "\n---\n".join(self._format_block(i, s) for i, s in enumerate(summaries))
        prompt = EDITOR_PROMPT.format(
            speakers="\n".join(f"- {s.display}" for s in speakers),
            blocks=blocks_text,
        )

        try:
            response = await self.model.complete(EDITOR_SYSTEM, prompt, settings.editor_max_tokens)
            final = FinalSummary.from_raw(extract_json_object(response), speakers, degraded_blocks)
        except Exception as e:
            logger.error(f"Editor failed after {time.time() - start_time:.1f}s: {e}")
            raise AgentStageError("Editor", str(e)) from e

        logger.info(f"Editor completed in {time.time() - start_time:.1f}s: {len(final.sections)} sections")
        return final

    @staticmethod
    def _format_block(index: int, summary: BlockSummary) -> str:
        marker = " [EMPTY]" if summary.is_empty else " [UNAVAILABLE]" if summary.failed else ""
        lines = [f"### Block {index + 1}: {summary.label}{marker}", f"Summary: {summary.summary}"]
        if summary.key_points:
            lines.append("Key points:")
            lines.extend(f"- {p}" for p in summary.key_points)
        if summary.speaker_contributions:
            lines.append("Speaker contributions:")
            lines.extend(f"- {c.speaker}: {c.contribution}" for c in summary.speaker_contributions)
        return "\n".join(lines)

    # --- Pipeline ---

    async def synthesize(self, transcript: DiarizedTranscript, title: Optional[str] = None) -> FinalSummary:
        """
        Run all three stages.

        Raises:
            AgentStageError: naming the stage that failed
        """
        if not transcript.utterances:
            raise AgentStageError("Analyst", "transcript has no utterances to analyze")

        start_time = time.time()
        analysis = await self.analyze(transcript, title)
        summaries, degraded = await self.write_all(analysis.blocks, analysis.speakers)
        final = await self.edit(summaries, analysis.speakers, degraded)
        logger.info(f"Synthesis completed in {time.time() - start_time:.1f}s")
        return final
