"""
PodInsight Exceptions

Raised inside pipeline components and converted to a failed record at the
job boundary. Nothing here should ever reach an API caller.
"""

from typing import List, Optional


class PodInsightError(Exception):
    """Base class for all pipeline errors."""
    pass


class StoreError(PodInsightError):
    """Raised when the resource store cannot be read or written."""
    pass


class ProviderError(PodInsightError):
    """Raised when a transcription or language model provider fails."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class TranscriptUnavailableError(PodInsightError):
    """Raised when every transcript provider returned nothing or failed."""

    def __init__(self, notes: List[str]):
        self.notes = notes
        summary = "; ".join(notes) if notes else "no transcript providers configured"
        super().__init__(f"All transcript providers failed: {summary}")


class ModelOutputError(PodInsightError):
    """Raised when model output contains no parsable JSON object."""
    pass


class ContextUnavailableError(PodInsightError):
    """Raised when an episode has no ready transcript to answer questions from."""
    pass


class AgentStageError(PodInsightError):
    """Raised when a stage of the multi-agent synthesis pipeline fails."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
