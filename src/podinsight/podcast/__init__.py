"""
PodInsight Transcript Acquisition

Provider fallback chain (captions -> Deepgram -> Whisper), transcript
formatting and sampling for the synthesis agents.
"""

from .acquisition import AcquisitionResult, TranscriptAcquisitionService
from .base_transcriber import BaseTranscriptProvider, ProviderResult
from .caption_provider import CaptionProvider
from .deepgram_transcriber import DeepgramTranscriber
from .formatter import format_timestamp, format_transcript_with_speaker_names, format_utterances
from .sampler import build_analyst_sample, sample_utterances
from .transcriber_factory import build_provider_chain, create_provider
from .whisper_transcriber import WhisperTranscriber

__all__ = [
    # Acquisition
    "TranscriptAcquisitionService",
    "AcquisitionResult",
    # Providers
    "BaseTranscriptProvider",
    "ProviderResult",
    "CaptionProvider",
    "DeepgramTranscriber",
    "WhisperTranscriber",
    "build_provider_chain",
    "create_provider",
    # Formatting and sampling
    "format_timestamp",
    "format_utterances",
    "format_transcript_with_speaker_names",
    "sample_utterances",
    "build_analyst_sample",
]
