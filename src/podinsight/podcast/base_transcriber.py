"""
Base Transcript Provider Interface

Abstract base class defining the contract for every transcript source in the
fallback chain (pre-existing captions, hosted speech-to-text, local Whisper).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional

from ..models import DiarizedTranscript, TranscriptRequest

logger = logging.getLogger(__name__)

ProviderOutcome = Literal["success", "unavailable", "error"]


@dataclass
class ProviderResult:
    """
    Tri-state result of one provider attempt.

    - success: transcript holds non-empty text
    - unavailable: this source has nothing for the episode (not a failure)
    - error: the source failed; error holds a short message
    """

    provider: str
    outcome: ProviderOutcome
    transcript: Optional[DiarizedTranscript] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, provider: str, transcript: DiarizedTranscript) -> "ProviderResult":
        return cls(provider=provider, outcome="success", transcript=transcript)

    @classmethod
    def unavailable(cls, provider: str, reason: str = "not available") -> "ProviderResult":
        return cls(provider=provider, outcome="unavailable", error=reason)

    @classmethod
    def failure(cls, provider: str, error: str) -> "ProviderResult":
        return cls(provider=provider, outcome="error", error=error)


class BaseTranscriptProvider(ABC):
    """
    Abstract base class for all transcript providers.

    Implementations:
    - CaptionProvider: pre-existing RSS/platform transcripts
    - DeepgramTranscriber: hosted speech-to-text with diarization
    - WhisperTranscriber: faster-whisper on the downloaded audio
    """

    name: str = "base"

    @abstractmethod
    async def _fetch(self, request: TranscriptRequest) -> ProviderResult:
        """Provider-specific work. May raise; fetch() converts errors."""
        pass

    def is_available(self) -> bool:
        """
        Check if this provider can run at all (credentials, installed packages).

        Returns:
            True if available, False otherwise
        """
        return True

    async def fetch(self, request: TranscriptRequest) -> ProviderResult:
        """Run the provider and always return a ProviderResult."""
        if not self.is_available():
            return ProviderResult.unavailable(self.name, "provider not configured")
        try:
            result = await self._fetch(request)
        except Exception as e:
            logger.debug(f"{self.name} raised", exc_info=True)
            return ProviderResult.failure(self.name, str(e) or e.__class__.__name__)

        if result.outcome == "success" and (
            result.transcript is None or not result.transcript.full_text.strip()
        ):
            return ProviderResult.unavailable(self.name, "empty transcript")
        return result
