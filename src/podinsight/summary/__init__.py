"""
PodInsight Summary Generation

Single-pass quick/deep tiers, the insights extractor, the multi-agent
(Analyst -> Writers -> Editor) synthesis for diarized transcripts and
question answering over finished episodes.
"""

from .agents import SynthesisOrchestrator
from .ask import EpisodeAssistant, build_episode_context
from .generator import SummaryGenerator
from .insights import InsightsExtractor
from .output_parser import extract_json_object
from .schemas import (
    BlockSummary,
    DeepSummary,
    FinalSummary,
    InsightsContent,
    QuickSummary,
    SpeakerInfo,
    TopicBlock,
)

__all__ = [
    "SummaryGenerator",
    "InsightsExtractor",
    "SynthesisOrchestrator",
    "EpisodeAssistant",
    "build_episode_context",
    "extract_json_object",
    # Content schemas
    "QuickSummary",
    "DeepSummary",
    "InsightsContent",
    "FinalSummary",
    "SpeakerInfo",
    "TopicBlock",
    "BlockSummary",
]
