"""
Deepgram Transcriber - Hosted Speech-to-Text with Diarization

Sends the episode audio URL to Deepgram's pre-recorded API and converts the
response into diarized utterances. Podcast enclosure URLs often sit behind
tracking redirects Deepgram cannot follow, so they are resolved first.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx

from ..config import settings
from ..exceptions import ProviderError
from ..models import DiarizedTranscript, TranscriptRequest, Utterance
from .base_transcriber import BaseTranscriptProvider, ProviderResult

logger = logging.getLogger(__name__)

DIRECT_AUDIO_EXTENSIONS = (".mp3", ".m4a", ".wav", ".ogg", ".flac", ".aac", ".opus")
MAX_REDIRECTS = 5
REDIRECT_TIMEOUT_SECONDS = 3.0


def is_direct_audio_url(url: str) -> bool:
    """True if the URL path already ends in an audio file extension."""
    return urlparse(url).path.lower().endswith(DIRECT_AUDIO_EXTENSIONS)


async def resolve_audio_url(client: httpx.AsyncClient, url: str, max_redirects: int = MAX_REDIRECTS) -> str:
    """
    Follow tracking redirects with HEAD requests until a direct audio URL.

    Any timeout or network error stops resolution and keeps the last URL.
    """
    if is_direct_audio_url(url):
        return url

    current = url
    for hop in range(max_redirects):
        try:
            response = await client.head(
                current,
                follow_redirects=False,
                timeout=REDIRECT_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Redirect resolution stopped at {current[:80]}: {e}")
            break

        if not 300 <= response.status_code < 400:
            break
        location = response.headers.get("location")
        if not location:
            break
        current = urljoin(current, location)
        logger.debug(f"Following redirect {hop + 1} to {current[:80]}")
        if is_direct_audio_url(current):
            break

    if current != url:
        logger.info(f"Resolved audio URL: {current[:80]}")
    return current


def parse_deepgram_response(payload: Dict[str, Any]) -> DiarizedTranscript:
    """
    Convert a Deepgram pre-recorded response to a DiarizedTranscript.

    Prefers the utterances array; otherwise groups word-level speaker labels
    into utterances; otherwise keeps the channel transcript as one utterance.
    """
    results = payload.get("results") or {}
    metadata = payload.get("metadata") or {}
    duration = float(metadata.get("duration") or 0.0)
    utterances: List[Utterance] = []
    full_text = ""

    channels = results.get("channels") or []
    alternative = {}
    if channels and channels[0].get("alternatives"):
        alternative = channels[0]["alternatives"][0]

    if results.get("utterances"):
        for utt in results["utterances"]:
            utterances.append(Utterance(
                speaker=int(utt.get("speaker") or 0),
                start=float(utt.get("start") or 0.0),
                end=float(utt.get("end") or 0.0),
                text=(utt.get("transcript") or "").strip(),
                confidence=utt.get("confidence"),
            ))
        full_text = " ".join(u.text for u in utterances if u.text)

    elif alternative:
        full_text = alternative.get("transcript") or ""
        words = alternative.get("words") or []
        if words:
            current_speaker = words[0].get("speaker") or 0
            current_start = float(words[0].get("start") or 0.0)
            current_words: List[str] = []
            for word in words:
                speaker = word.get("speaker") or 0
                if speaker != current_speaker and current_words:
                    utterances.append(Utterance(
                        speaker=current_speaker,
                        start=current_start,
                        end=float(word.get("start") or 0.0),
                        text=" ".join(current_words),
                    ))
                    current_words = []
                    current_start = float(word.get("start") or 0.0)
                    current_speaker = speaker
                current_words.append(word.get("punctuated_word") or word.get("word") or "")
            if current_words:
                utterances.append(Utterance(
                    speaker=current_speaker,
                    start=current_start,
                    end=float(words[-1].get("end") or current_start),
                    text=" ".join(current_words),
                ))
        elif full_text:
            utterances.append(Utterance(speaker=0, start=0.0, end=duration, text=full_text))

    utterances = [u for u in utterances if u.text]
    if not duration and utterances:
        duration = utterances[-1].end

    detected = channels[0].get("detected_language") if channels else None
    return DiarizedTranscript(
        utterances=utterances,
        full_text=full_text.strip(),
        duration_seconds=duration,
        speaker_count=len({u.speaker for u in utterances}) or 1,
        detected_language=detected,
    )


class DeepgramTranscriber(BaseTranscriptProvider):
    """Deepgram pre-recorded transcription over REST."""

    name = "deepgram"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.deepgram_api_key
        self.model = model or settings.deepgram_model
        self.base_url = (base_url or settings.deepgram_base_url).rstrip("/")
        self.max_retries = settings.deepgram_max_retries if max_retries is None else max_retries
        self.retry_base_delay = (
            settings.deepgram_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self._client = client

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _params(self, language: str) -> Dict[str, str]:
        # Language comes from the feed, so detection is switched off
        return {
            "model": self.model,
            "diarize": "true",
            "utterances": "true",
            "smart_format": "true",
            "punctuate": "true",
            "detect_language": "false",
            "language": language or "en",
        }

    async def _post_once(self, client: httpx.AsyncClient, audio_url: str, language: str) -> Dict[str, Any]:
        response = await client.post(
            f"{self.base_url}/v1/listen",
            params=self._params(language),
            json={"url": audio_url},
            headers={"Authorization": f"Token {self.api_key}"},
            timeout=settings.deepgram_timeout_seconds,
        )
        if response.status_code >= 400:
            raise ProviderError(
                f"Deepgram API error {response.status_code}: {response.text[:200]}",
                provider=self.name,
                status_code=response.status_code,
            )
        return response.json()

    async def _post_with_retry(self, client: httpx.AsyncClient, audio_url: str, language: str) -> Dict[str, Any]:
        """Retry transient failures with exponential backoff; 4xx fails immediately."""
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                return await self._post_once(client, audio_url, language)
            except ProviderError as e:
                if e.status_code is not None and 400 <= e.status_code < 500:
                    raise
                last_error = e
            except httpx.HTTPError as e:
                last_error = e

            if attempt < self.max_retries:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(f"Deepgram attempt {attempt + 1} failed, retrying in {delay:.1f}s: {last_error}")
                await asyncio.sleep(delay)

        raise ProviderError(f"Deepgram transcription failed: {last_error}", provider=self.name)

    async def _fetch(self, request: TranscriptRequest) -> ProviderResult:
        start_time = time.time()
        logger.info(f"Deepgram transcription started for {request.episode_id} ({request.language})")

        if self._client is not None:
            audio_url = await resolve_audio_url(self._client, request.audio_url)
            payload = await self._post_with_retry(self._client, audio_url, request.language)
        else:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                audio_url = await resolve_audio_url(client, request.audio_url)
                payload = await self._post_with_retry(client, audio_url, request.language)

        transcript = parse_deepgram_response(payload)
        transcript.detected_language = transcript.detected_language or request.language
        logger.info(
            f"Deepgram transcription complete in {time.time() - start_time:.1f}s: "
            f"{len(transcript.utterances)} utterances, {transcript.speaker_count} speakers"
        )
        return ProviderResult.success(self.name, transcript)
