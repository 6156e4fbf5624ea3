"""
Tests for episode question answering
"""

import pytest
from conftest import FakeLanguageModel

from podinsight.config import settings
from podinsight.exceptions import ContextUnavailableError, ProviderError
from podinsight.summary.ask import ChatMessage, EpisodeAssistant, build_episode_context
from podinsight.summary.prompts import ASK_SYSTEM


@pytest.fixture
def ready_episode(store):
    store.upsert_transcript("ep-1", "en", status="ready", full_text="We talked about caching layers at length.")
    store.upsert_summary(
        "ep-1", "quick", "en", status="ready",
        content={"tldr": "Caching matters.", "key_takeaways": ["Cache reads"], "topics": ["caching"]},
    )
    store.upsert_summary(
        "ep-1", "insights", "en", status="ready",
        content={"highlights": [{"quote": "Cache everything", "context": "Opening remark"}]},
    )
    return store


class TestBuildEpisodeContext:
    """Tests for build_episode_context()."""

    def test_no_transcript(self, store):
        """Episodes without a ready transcript should have no context."""
        store.upsert_transcript("ep-1", "en", status="transcribing")

        assert build_episode_context(store, "ep-1") is None
        assert build_episode_context(store, "ep-2") is None

    def test_includes_ready_artifacts(self, ready_episode):
        """Summaries, highlights and the transcript should all be included."""
        context = build_episode_context(ready_episode, "ep-1")

        assert "TL;DR: Caching matters." in context
        assert "- Cache reads" in context
        assert '> "Cache everything"' in context
        assert "--- DEEP ANALYSIS ---" not in context
        assert context.endswith("We talked about caching layers at length.")

    def test_deep_synthesis_sections(self, ready_episode):
        """Synthesized deep summaries should contribute sections and takeaways."""
        ready_episode.upsert_summary(
            "ep-1", "deep", "en", status="ready",
            content={"format": "synthesis", "tldr": "Long form.", "sections": [{"title": "Intro", "summary": "Hello"}],
                     "key_takeaways": ["Measure first"]},
        )

        context = build_episode_context(ready_episode, "ep-1")

        assert "- Intro: Hello" in context
        assert "- Measure first" in context

    def test_failed_summaries_are_skipped(self, store):
        """Only ready summaries should be used."""
        store.upsert_transcript("ep-1", "en", status="ready", full_text="text")
        store.upsert_summary("ep-1", "quick", "en", status="failed", error_message="boom")

        assert build_episode_context(store, "ep-1") == "--- FULL TRANSCRIPT ---\ntext"

    def test_transcript_is_capped(self, store):
        """Long transcripts should be cut to the character limit."""
        store.upsert_transcript("ep-1", "en", status="ready", full_text="x" * 100)

        context = build_episode_context(store, "ep-1", transcript_char_limit=10)

        assert context == "--- FULL TRANSCRIPT ---\n" + "x" * 10


class TestEpisodeAssistant:
    """Tests for EpisodeAssistant.answer()."""

    async def test_answer_uses_context_and_history(self, ready_episode):
        """The model should see the episode context and the earlier turns."""
        model = FakeLanguageModel(["  Caching layers.  "])
        history = [ChatMessage(role="user", text="Hi"), ChatMessage(role="assistant", text="Hello")]

        answer = await EpisodeAssistant(model, ready_episode).answer("ep-1", "What was discussed?", history)

        system, prompt, max_tokens = model.calls[0]
        assert answer == "Caching layers."
        assert system.startswith(ASK_SYSTEM.split("{context}")[0])
        assert "Caching matters." in system
        assert prompt == "Conversation so far:\nUser: Hi\nAssistant: Hello\n\nQuestion: What was discussed?"
        assert max_tokens == settings.ask_max_tokens

    async def test_no_transcript_raises(self, store):
        """Asking about an episode without a transcript should raise."""
        model = FakeLanguageModel([])

        with pytest.raises(ContextUnavailableError):
            await EpisodeAssistant(model, store).answer("ep-1", "Anything?")
        assert model.calls == []

    @pytest.mark.parametrize("question, history", [
        ("   ", []),
        ("x" * 2001, []),
        ("Fine?", [ChatMessage(role="user", text="hi")] * 21),
    ])
    async def test_invalid_input_rejected(self, ready_episode, question, history):
        """Empty or oversized questions and long histories should be rejected."""
        with pytest.raises(ValueError):
            await EpisodeAssistant(FakeLanguageModel([]), ready_episode).answer("ep-1", question, history)

    async def test_provider_error_propagates(self, ready_episode):
        """Model failures should reach the caller."""
        model = FakeLanguageModel([ProviderError("rate limited")])

        with pytest.raises(ProviderError):
            await EpisodeAssistant(model, ready_episode).answer("ep-1", "Why?")
