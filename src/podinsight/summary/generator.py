"""
Single-Pass Summary Generator

Quick and deep (non-synthesized) tiers: one model call over the transcript
text, clipped to a fixed character ceiling. Long episodes lose their tail
beyond the ceiling; the multi-agent path covers the whole episode instead.
"""

import logging
import time
from typing import Any, Dict, Optional

from ..config import settings
from ..llm import LanguageModel
from .output_parser import extract_json_object
from .prompts import DEEP_PROMPT, JSON_ONLY_SYSTEM, QUICK_PROMPT
from .schemas import DeepSummary, QuickSummary

logger = logging.getLogger(__name__)


def clip_transcript(text: str, limit: Optional[int] = None) -> str:
    """First `limit` characters of the transcript."""
    limit = limit or settings.transcript_char_limit
    if len(text) > limit:
        logger.warning(f"Transcript clipped from {len(text)} to {limit} chars")
        return text[:limit]
    return text


class SummaryGenerator:
    """Quick and deep tiers from one model call each."""

    def __init__(self, model: LanguageModel, char_limit: Optional[int] = None):
        self.model = model
        self.char_limit = char_limit or settings.transcript_char_limit

    async def _run(self, prompt: str, text: str, max_tokens: int) -> Dict[str, Any]:
        response = await self.model.complete(
            JSON_ONLY_SYSTEM,
            prompt.format(transcript=clip_transcript(text, self.char_limit)),
            max_tokens,
        )
        return extract_json_object(response)

    async def quick(self, transcript_text: str) -> QuickSummary:
        logger.info("Generating quick summary")
        start_time = time.time()
        raw = await self._run(QUICK_PROMPT, transcript_text, settings.quick_max_tokens)
        summary = QuickSummary.from_raw(raw)
        logger.info(
            f"Quick summary: {len(summary.key_takeaways)} takeaways "
            f"in {time.time() - start_time:.1f}s"
        )
        return summary

    async def deep(self, transcript_text: str) -> DeepSummary:
        logger.info("Generating deep summary (single pass)")
        start_time = time.time()
        raw = await self._run(DEEP_PROMPT, transcript_text, settings.deep_max_tokens)
        summary = DeepSummary.from_raw(raw)
        logger.info(
            f"Deep summary: {len(summary.sections)} sections, {len(summary.resources)} resources "
            f"in {time.time() - start_time:.1f}s"
        )
        return summary

    async def generate(self, level: str, transcript_text: str) -> Dict[str, Any]:
        """
        Generate the stored payload for a level.

        Raises:
            ProviderError: model call failed
            ModelOutputError: no JSON object in the response
        """
        if level == "quick":
            return (await self.quick(transcript_text)).model_dump()
        if level == "deep":
            return (await self.deep(transcript_text)).model_dump()
        raise ValueError(f"Unsupported summary level: {level}")
