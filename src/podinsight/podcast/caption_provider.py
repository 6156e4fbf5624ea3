"""
Caption Transcript Provider

Fetches a transcript that already exists for the episode, such as the file
linked from an RSS <podcast:transcript> tag or platform-native captions.
This is free and fast, so it sits first in the fallback chain.

Supported formats: WebVTT, SubRip, Podcasting 2.0 JSON, plain text and HTML.
"""

import json
import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..config import settings
from ..models import DiarizedTranscript, TranscriptRequest, Utterance
from .base_transcriber import BaseTranscriptProvider, ProviderResult

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_MULTI_SPACE_RE = re.compile(r"\s+")
_VOICE_RE = re.compile(r"<v(?:\.[^ >]*)?\s+([^>]+)>")
_CUE_TIME_RE = re.compile(
    r"((?:\d+:)?\d{1,2}:\d{2}[.,]\d{1,3})\s*-->\s*((?:\d+:)?\d{1,2}:\d{2}[.,]\d{1,3})"
)
_SPEAKER_PREFIX_RE = re.compile(r"^([A-Z][\w .'-]{0,40}):\s+(.*)$")


def parse_cue_time(value: str) -> float:
    """Parse 'hh:mm:ss.mmm', 'mm:ss.mmm' or the SubRip comma variant to seconds."""
    value = value.strip().replace(",", ".")
    parts = value.split(":")
    seconds = float(parts[-1])
    if len(parts) >= 2:
        seconds += int(parts[-2]) * 60
    if len(parts) == 3:
        seconds += int(parts[0]) * 3600
    return seconds


def clean_text(text: str) -> str:
    """Strip markup and collapse whitespace."""
    return _MULTI_SPACE_RE.sub(" ", _TAG_RE.sub(" ", text)).strip()


class _SpeakerIndex:
    """Maps speaker names to stable integer ids in order of first appearance."""

    def __init__(self):
        self._ids: Dict[str, int] = {}

    def get(self, name: Optional[str]) -> int:
        if not name:
            return 0
        name = name.strip()
        if name not in self._ids:
            self._ids[name] = len(self._ids)
        return self._ids[name]

    @property
    def count(self) -> int:
        return max(1, len(self._ids))

    @property
    def names(self) -> Dict[int, str]:
        return {i: name for name, i in self._ids.items()}


def _build_transcript(utterances: List[Utterance], speakers: _SpeakerIndex) -> DiarizedTranscript:
    utterances = sorted((u for u in utterances if u.text), key=lambda u: u.start)
    return DiarizedTranscript(
        utterances=utterances,
        full_text=" ".join(u.text for u in utterances),
        duration_seconds=utterances[-1].end if utterances else 0.0,
        speaker_count=speakers.count,
        speaker_names=speakers.names,
    )


def parse_timed_captions(content: str) -> DiarizedTranscript:
    """
    Parse WebVTT or SubRip cues into utterances.

    Speakers come from WebVTT voice tags (<v Name>) or a leading "Name:" prefix.
    """
    speakers = _SpeakerIndex()
    utterances: List[Utterance] = []

    for block in re.split(r"\n\s*\n", content.replace("\r\n", "\n")):
        lines = [line for line in block.strip().split("\n") if line.strip()]
        timing_idx = next((i for i, line in enumerate(lines) if _CUE_TIME_RE.search(line)), None)
        if timing_idx is None:
            continue

        match = _CUE_TIME_RE.search(lines[timing_idx])
        raw_text = " ".join(lines[timing_idx + 1:])
        voice = _VOICE_RE.search(raw_text)
        name = voice.group(1) if voice else None
        text = clean_text(raw_text)

        if not name:
            prefixed = _SPEAKER_PREFIX_RE.match(text)
            if prefixed:
                name, text = prefixed.group(1), prefixed.group(2)

        if not text:
            continue

        utterances.append(Utterance(
            speaker=speakers.get(name),
            start=parse_cue_time(match.group(1)),
            end=parse_cue_time(match.group(2)),
            text=text,
        ))

    return _build_transcript(utterances, speakers)


def parse_podcast_json(content: str) -> DiarizedTranscript:
    """Parse a Podcasting 2.0 JSON transcript ({"segments": [...]})."""
    data = json.loads(content)
    segments = data.get("segments", []) if isinstance(data, dict) else []
    speakers = _SpeakerIndex()
    utterances = []

    for seg in segments:
        if not isinstance(seg, dict):
            continue
        text = clean_text(str(seg.get("body", "")))
        if not text:
            continue
        start = float(seg.get("startTime", 0) or 0)
        utterances.append(Utterance(
            speaker=speakers.get(seg.get("speaker")),
            start=start,
            end=float(seg.get("endTime", start) or start),
            text=text,
        ))

    return _build_transcript(utterances, speakers)


def parse_plain_text(content: str) -> DiarizedTranscript:
    """Plain text or HTML transcript: text only, no timing."""
    return DiarizedTranscript(full_text=clean_text(content))


def detect_format(url: str, content_type: str, content: str) -> str:
    """Pick a parser from content type, file extension, then content sniffing."""
    content_type = (content_type or "").lower()
    path = urlparse(url).path.lower()
    head = content.lstrip()[:200]

    if "vtt" in content_type or path.endswith(".vtt") or head.startswith("WEBVTT"):
        return "vtt"
    if "srt" in content_type or "subrip" in content_type or path.endswith(".srt"):
        return "srt"
    if "json" in content_type or path.endswith(".json") or head.startswith("{"):
        return "json"
    if _CUE_TIME_RE.search(head):
        return "srt"
    return "text"


def parse_caption_document(url: str, content_type: str, content: str) -> DiarizedTranscript:
    fmt = detect_format(url, content_type, content)
    logger.debug(f"Caption document format: {fmt}")
    if fmt in ("vtt", "srt"):
        return parse_timed_captions(content)
    if fmt == "json":
        return parse_podcast_json(content)
    return parse_plain_text(content)


class CaptionProvider(BaseTranscriptProvider):
    """Downloads and parses a pre-existing transcript document."""

    name = "captions"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self.timeout = timeout or settings.http_timeout_seconds

    async def _download(self, url: str) -> Tuple[str, str]:
        if self._client is not None:
            response = await self._client.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, follow_redirects=True)
        if response.status_code == 404:
            return "", ""
        response.raise_for_status()
        return response.text, response.headers.get("content-type", "")

    async def _fetch(self, request: TranscriptRequest) -> ProviderResult:
        if not request.caption_url:
            return ProviderResult.unavailable(self.name, "no caption locator")

        logger.info(f"Fetching captions for {request.episode_id}: {request.caption_url[:80]}")
        content, content_type = await self._download(request.caption_url)
        if not content.strip():
            return ProviderResult.unavailable(self.name, "caption document empty or missing")

        transcript = parse_caption_document(request.caption_url, content_type, content)
        transcript.detected_language = request.language
        logger.info(
            f"Captions parsed: {len(transcript.utterances)} utterances, "
            f"{len(transcript.full_text)} chars"
        )
        return ProviderResult.success(self.name, transcript)
