"""
Whisper Transcriber - Local Last-Resort Fallback

Downloads the episode audio and transcribes it with faster-whisper.
No diarization: every utterance is attributed to speaker 0, so synthesis
consumers see a single-speaker transcript.
"""

import asyncio
import logging
import tempfile
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..config import settings
from ..models import DiarizedTranscript, TranscriptRequest, Utterance
from .base_transcriber import BaseTranscriptProvider, ProviderResult

logger = logging.getLogger(__name__)


class WhisperTranscriber(BaseTranscriptProvider):
    """Transcriber using faster-whisper on any platform."""

    name = "whisper"

    def __init__(
        self,
        model_size: Optional[str] = None,
        device: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model_size = model_size or settings.whisper_model
        self.device = device or settings.whisper_device
        self._client = client

        # Model loaded lazily
        self._whisper_model = None

    def is_available(self) -> bool:
        """Check if faster-whisper is installed."""
        try:
            import faster_whisper  # noqa: F401
            return True
        except ImportError:
            return False

    def _load_whisper(self):
        """Load faster-whisper model."""
        if self._whisper_model is None:
            from faster_whisper import WhisperModel

            device = self.device
            if device == "auto":
                try:
                    import torch
                    device = "cuda" if torch.cuda.is_available() else "cpu"
                except ImportError:
                    device = "cpu"

            # Optimize compute type for device
            compute_type = "float16" if device == "cuda" else "int8"

            logger.info(f"Loading Whisper model: {self.model_size} on {device}")
            self._whisper_model = WhisperModel(
                self.model_size,
                device=device,
                compute_type=compute_type,
            )
        return self._whisper_model

    async def _download(self, url: str, target_dir: Path) -> Path:
        ext = Path(urlparse(url).path).suffix or ".mp3"
        output_path = target_dir / f"episode{ext}"

        if self._client is not None:
            response = await self._client.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                response = await client.get(url, follow_redirects=True)
        response.raise_for_status()

        output_path.write_bytes(response.content)
        logger.info(f"Downloaded audio: {len(response.content) / 1_000_000:.1f} MB")
        return output_path

    def _transcribe_file(self, audio_path: Path, language: str) -> DiarizedTranscript:
        """Blocking faster-whisper call; run in a worker thread."""
        whisper = self._load_whisper()
        segments_raw, info = whisper.transcribe(
            str(audio_path),
            beam_size=5,
            language=language or None,
            vad_filter=True,
            vad_parameters={
                "min_silence_duration_ms": 500,
                "speech_pad_ms": 400,
            },
        )

        utterances = [
            Utterance(speaker=0, start=seg.start, end=seg.end, text=seg.text.strip())
            for seg in segments_raw
            if seg.text.strip()
        ]
        return DiarizedTranscript(
            utterances=utterances,
            full_text=" ".join(u.text for u in utterances),
            duration_seconds=info.duration,
            speaker_count=1,
            detected_language=getattr(info, "language", language),
        )

    async def _fetch(self, request: TranscriptRequest) -> ProviderResult:
        start_time = time.time()
        logger.info(f"Starting Whisper transcription for {request.episode_id}")

        with tempfile.TemporaryDirectory(prefix="podinsight-") as tmp:
            audio_path = await self._download(request.audio_url, Path(tmp))
            transcript = await asyncio.to_thread(self._transcribe_file, audio_path, request.language)

        duration = transcript.duration_seconds or 1.0
        processing_time = time.time() - start_time
        logger.info(
            f"Whisper transcription complete in {processing_time:.1f}s "
            f"({processing_time / duration:.2f}x realtime)"
        )
        return ProviderResult.success(self.name, transcript)
