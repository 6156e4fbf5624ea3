"""
Transcript Provider Factory

Builds the ordered fallback chain of transcript providers from configuration.
"""

import logging
from typing import List, Optional, Sequence

from ..config import settings
from .base_transcriber import BaseTranscriptProvider

logger = logging.getLogger(__name__)


def create_provider(name: str) -> BaseTranscriptProvider:
    """Create a provider by name ('captions', 'deepgram', 'whisper')."""
    name = name.lower().strip().replace("-", "_")

    if name in ("captions", "caption", "rss"):
        from .caption_provider import CaptionProvider
        return CaptionProvider()
    elif name == "deepgram":
        from .deepgram_transcriber import DeepgramTranscriber
        return DeepgramTranscriber()
    elif name in ("whisper", "faster_whisper"):
        from .whisper_transcriber import WhisperTranscriber
        return WhisperTranscriber()
    else:
        raise ValueError(f"Unknown transcript provider: {name}")


def build_provider_chain(names: Optional[Sequence[str]] = None) -> List[BaseTranscriptProvider]:
    """
    Create providers in fallback order.

    Args:
        names: Provider names; defaults to settings.transcript_providers

    Returns:
        Providers in the order they should be tried
    """
    names = list(names) if names is not None else list(settings.transcript_providers)
    chain = [create_provider(name) for name in names]

    for provider in chain:
        if not provider.is_available():
            logger.warning(f"Transcript provider '{provider.name}' is configured but not available")

    logger.info(f"Transcript provider chain: {' -> '.join(p.name for p in chain)}")
    return chain
