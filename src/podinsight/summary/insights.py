"""
Insights Extractor

Keywords, highlights, shownotes and a mindmap from one model call.
"""

import logging
import time
from typing import Any, Dict, Optional

from ..config import settings
from ..llm import LanguageModel
from .generator import clip_transcript
from .output_parser import extract_json_object
from .prompts import INSIGHTS_PROMPT, JSON_ONLY_SYSTEM
from .schemas import InsightsContent

logger = logging.getLogger(__name__)


class InsightsExtractor:
    """Runs the insights prompt and clamps the result to InsightsContent."""

    def __init__(self, model: LanguageModel, char_limit: Optional[int] = None):
        self.model = model
        self.char_limit = char_limit or settings.transcript_char_limit

    async def extract(self, transcript_text: str) -> InsightsContent:
        logger.info("Extracting insights")
        start_time = time.time()

        response = await self.model.complete(
            JSON_ONLY_SYSTEM,
            INSIGHTS_PROMPT.format(transcript=clip_transcript(transcript_text, self.char_limit)),
            settings.insights_max_tokens,
        )
        content = InsightsContent.from_raw(extract_json_object(response))

        logger.info(
            f"Insights: {len(content.keywords)} keywords, {len(content.highlights)} highlights, "
            f"{len(content.shownotes)} shownotes in {time.time() - start_time:.1f}s"
        )
        return content

    async def generate(self, transcript_text: str) -> Dict[str, Any]:
        return (await self.extract(transcript_text)).model_dump()
