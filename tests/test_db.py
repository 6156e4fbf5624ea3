"""
Tests for the resource store

The same contract is checked against MemoryStore and against SqlStore on a
temporary SQLite file.
"""

from datetime import timedelta

import pytest

from podinsight.db import MemoryStore, SqlStore, create_store
from podinsight.models import Utterance, utcnow


@pytest.fixture(params=["memory", "sql"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqlStore(f"sqlite:///{tmp_path / 'store.db'}").connect()


class TestStoreContract:
    """Tests shared by every backend."""

    def test_missing_records(self, any_store):
        """Absent keys should read as None."""
        assert any_store.get_transcript("ep-1", "en") is None
        assert any_store.get_summary("ep-1", "quick", "en") is None
        assert any_store.list_summaries("ep-1", "en") == []

    def test_upsert_merges_fields(self, any_store):
        """A second upsert should keep fields it does not mention."""
        any_store.upsert_transcript("ep-1", "en", status="queued")
        any_store.upsert_transcript("ep-1", "en", status="ready", full_text="hello", provider="captions")

        record = any_store.upsert_transcript("ep-1", "en", error_message=None)

        assert record.status == "ready"
        assert record.full_text == "hello"
        assert record.provider == "captions"

    def test_created_at_is_stable(self, any_store):
        """created_at should survive updates while updated_at moves."""
        first = any_store.upsert_summary("ep-1", "quick", "en", status="queued")
        second = any_store.upsert_summary("ep-1", "quick", "en", status="summarizing")

        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at

    def test_utterances_round_trip(self, any_store):
        """Utterances should be stored and read back as models."""
        utterances = [Utterance(speaker=1, start=0.5, end=2.0, text="Hi", confidence=0.9)]

        any_store.upsert_transcript("ep-1", "en", status="ready", full_text="Hi", utterances=utterances)

        record = any_store.get_transcript("ep-1", "en")
        assert record.utterances == utterances

    def test_speaker_names_round_trip(self, any_store):
        """Speaker names should come back keyed by speaker index."""
        any_store.upsert_transcript("ep-1", "en", status="ready", full_text="Hi", speaker_names={0: "Alice", 1: "Bob"})

        record = any_store.get_transcript("ep-1", "en")

        assert record.speaker_names == {0: "Alice", 1: "Bob"}
        assert record.to_transcript().speaker_names == {0: "Alice", 1: "Bob"}

    def test_summary_content(self, any_store):
        """Summary content should be stored as structured data."""
        content = {"tldr": "x", "key_takeaways": ["a", "b"], "nested": {"n": 1}}

        any_store.upsert_summary("ep-1", "deep", "en", status="ready", content=content)

        assert any_store.get_summary("ep-1", "deep", "en").content == content

    def test_update_missing_is_noop(self, any_store):
        """update_* should not create rows."""
        assert any_store.update_transcript("ep-1", "en", status="failed") is None
        assert any_store.update_summary("ep-1", "quick", "en", status="failed") is None
        assert any_store.get_transcript("ep-1", "en") is None

    def test_update_existing(self, any_store):
        """update_* should change existing rows."""
        any_store.upsert_summary("ep-1", "quick", "en", status="queued")

        record = any_store.update_summary("ep-1", "quick", "en", status="failed", error_message="boom")

        assert record.status == "failed"
        assert record.error_message == "boom"

    def test_list_summaries_filters_language(self, any_store):
        """Only summaries for the requested episode and language should be listed."""
        any_store.upsert_summary("ep-1", "quick", "en", status="queued")
        any_store.upsert_summary("ep-1", "deep", "en", status="queued")
        any_store.upsert_summary("ep-1", "quick", "de", status="queued")
        any_store.upsert_summary("ep-2", "quick", "en", status="queued")

        levels = sorted(s.level for s in any_store.list_summaries("ep-1", "en"))

        assert levels == ["deep", "quick"]

    def test_list_summaries_every_language(self, any_store):
        """Without a language every summary of the episode should be listed."""
        any_store.upsert_summary("ep-1", "quick", "en", status="ready")
        any_store.upsert_summary("ep-1", "quick", "de", status="failed")
        any_store.upsert_summary("ep-2", "quick", "en", status="ready")

        keys = sorted(s.key for s in any_store.list_summaries("ep-1"))

        assert keys == [("ep-1", "quick", "de"), ("ep-1", "quick", "en")]

    def test_list_stale_in_flight_records(self, any_store):
        """Only in-flight records idle since the cutoff should be listed."""
        any_store.upsert_transcript("ep-1", "en", status="transcribing")
        any_store.upsert_transcript("ep-2", "en", status="ready", full_text="done")
        any_store.upsert_summary("ep-1", "quick", "en", status="queued")
        any_store.upsert_summary("ep-1", "deep", "en", status="failed", error_message="boom")
        later = utcnow() + timedelta(minutes=5)

        assert [t.key for t in any_store.list_stale_transcripts(later)] == [("ep-1", "en")]
        assert [s.key for s in any_store.list_stale_summaries(later)] == [("ep-1", "quick", "en")]
        assert any_store.list_stale_transcripts(utcnow() - timedelta(minutes=5)) == []

    def test_keys_are_independent(self, any_store):
        """Languages should not share transcript rows."""
        any_store.upsert_transcript("ep-1", "en", status="ready", full_text="english")
        any_store.upsert_transcript("ep-1", "es", status="queued")

        assert any_store.get_transcript("ep-1", "en").full_text == "english"
        assert any_store.get_transcript("ep-1", "es").status == "queued"


class TestMemoryStore:
    """Tests specific to MemoryStore."""

    def test_returns_copies(self):
        """Mutating a returned record should not change the store."""
        store = MemoryStore()
        record = store.upsert_summary("ep-1", "quick", "en", status="ready", content={"tldr": "x"})

        record.content["tldr"] = "changed"

        assert store.get_summary("ep-1", "quick", "en").content == {"tldr": "x"}


class TestSqlStore:
    """Tests specific to SqlStore."""

    def test_persists_across_instances(self, tmp_path):
        """Rows should survive reopening the database."""
        url = f"sqlite:///{tmp_path / 'nested' / 'store.db'}"
        SqlStore(url).connect().upsert_transcript("ep-1", "en", status="ready", full_text="kept")

        reopened = SqlStore(url).connect()

        assert reopened.get_transcript("ep-1", "en").full_text == "kept"

    def test_connects_lazily(self, tmp_path):
        """Operations should open the engine on first use."""
        store = SqlStore(f"sqlite:///{tmp_path / 'lazy.db'}")

        assert store.get_summary("ep-1", "quick", "en") is None


class TestCreateStore:
    """Tests for create_store()."""

    def test_memory_backend(self):
        """The memory backend should not touch the filesystem."""
        assert isinstance(create_store("memory"), MemoryStore)

    def test_unknown_backend(self):
        """Unknown backends should be rejected."""
        with pytest.raises(ValueError):
            create_store("redis")
