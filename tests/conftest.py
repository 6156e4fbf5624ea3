"""
Shared test doubles and fixtures.

FakeLanguageModel and FakeProvider stand in for network-backed model and
transcript clients so pipeline behavior can be tested offline.
"""

import asyncio
import inspect
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from podinsight.db import MemoryStore
from podinsight.llm import LanguageModel
from podinsight.models import DiarizedTranscript, EpisodeSource, TranscriptRequest, Utterance
from podinsight.podcast.base_transcriber import BaseTranscriptProvider, ProviderResult


class FakeLanguageModel(LanguageModel):
    """
    Scripted language model.

    Either pops `responses` in order or asks `handler(system, prompt)`.
    A response that is an exception is raised; awaitables are awaited.
    """

    name = "fake"

    def __init__(self, responses: Optional[Sequence] = None, handler: Optional[Callable] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[Tuple[str, str, int]] = []

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        self.calls.append((system_prompt, user_prompt, max_tokens))
        if self.handler is not None:
            result = self.handler(system_prompt, user_prompt)
        else:
            result = self.responses.pop(0)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result

    def calls_with(self, system_prompt: str) -> List[Tuple[str, str, int]]:
        return [c for c in self.calls if c[0] == system_prompt]


class FakeProvider(BaseTranscriptProvider):
    """Transcript provider returning a fixed result (or raising)."""

    def __init__(
        self,
        name: str,
        result: Optional[ProviderResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0

    @classmethod
    def succeeding(cls, name: str, transcript: DiarizedTranscript, **kwargs) -> "FakeProvider":
        return cls(name, result=ProviderResult.success(name, transcript), **kwargs)

    @classmethod
    def unavailable(cls, name: str) -> "FakeProvider":
        return cls(name, result=ProviderResult.unavailable(name, "nothing here"))

    async def _fetch(self, request: TranscriptRequest) -> ProviderResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def make_utterances(count: int, speakers: int = 2, spacing: float = 10.0) -> List[Utterance]:
    """`count` utterances `spacing` seconds apart, alternating speakers."""
    return [
        Utterance(
            speaker=i % speakers,
            start=i * spacing,
            end=i * spacing + spacing - 1,
            text=f"utterance {i}",
        )
        for i in range(count)
    ]


def make_transcript(count: int = 12, speakers: int = 2, spacing: float = 10.0) -> DiarizedTranscript:
    utterances = make_utterances(count, speakers, spacing)
    return DiarizedTranscript(
        utterances=utterances,
        full_text=" ".join(u.text for u in utterances),
        duration_seconds=utterances[-1].end if utterances else 0.0,
        speaker_count=speakers,
    )


def plain_transcript(text: str = "Plain transcript text without timing.") -> DiarizedTranscript:
    return DiarizedTranscript(full_text=text)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def source():
    return EpisodeSource(
        episode_id="ep-1",
        audio_url="https://cdn.example.com/ep-1.mp3",
        title="Episode One",
    )


@pytest.fixture
def request_ep1():
    return TranscriptRequest(
        episode_id="ep-1",
        audio_url="https://cdn.example.com/ep-1.mp3",
        language="en",
    )
