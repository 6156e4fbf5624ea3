"""
Tests for the HTTP API and the CLI

The pipeline is swapped for one backed by MemoryStore and scripted fakes.
"""

import json
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner
from conftest import FakeLanguageModel, FakeProvider, plain_transcript
from fastapi.testclient import TestClient

from podinsight import main
from podinsight.cli import cli
from podinsight.config import settings
from podinsight.db import MemoryStore, ResourceStore, SqlStore
from podinsight.exceptions import StoreError
from podinsight.pipeline import PipelineFacade

QUICK_JSON = json.dumps({"tldr": "Quick take.", "keyTakeaways": ["one"], "topics": []})

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Test Pod</title>
<item><title>Episode 1</title><guid>ep-1-guid</guid>
<enclosure url="https://cdn.example.com/ep1.mp3" type="audio/mpeg" length="1"/></item>
</channel></rss>"""


def _facade(store=None, providers=None):
    return PipelineFacade(
        store=store or MemoryStore(),
        providers=providers if providers is not None else [
            FakeProvider.succeeding("captions", plain_transcript("Transcript body."))
        ],
        model=FakeLanguageModel(handler=lambda system, prompt: QUICK_JSON),
    )


@pytest.fixture
def pipeline(monkeypatch):
    facade = _facade()
    monkeypatch.setattr(main, "_pipeline", facade)
    return facade


class TestApi:
    """Tests for the FastAPI endpoints."""

    def test_health(self, pipeline):
        """Health endpoint should report the version."""
        with TestClient(main.app) as client:
            response = client.get("/health")

        assert response.json() == {"status": "healthy", "version": "0.1.0"}

    def test_request_summary(self, pipeline):
        """A summary request should return queued and finish in the background."""
        with TestClient(main.app) as client:
            response = client.post(
                "/episodes/ep-1/summaries",
                json={"audio_url": "https://cdn.example.com/ep-1.mp3", "level": "quick"},
            )

        assert response.status_code == 200
        assert response.json()["status"] == "queued"
        assert pipeline.get_status("ep-1").summaries["quick"].status == "ready"

    def test_request_transcript_and_status(self, pipeline):
        """Status should reflect a completed transcript request."""
        with TestClient(main.app) as client:
            client.post("/episodes/ep-1/transcript", json={"audio_url": "https://cdn.example.com/ep-1.mp3"})

        with TestClient(main.app) as client:
            status = client.get("/episodes/ep-1/status", params={"language": "en"}).json()

        assert status["transcript_status"] == "ready"
        assert status["transcript_text"] == "Transcript body."
        assert status["summaries"]["deep"]["status"] == "not_started"

    def test_invalid_level(self, pipeline):
        """Unknown levels should be rejected by validation."""
        with TestClient(main.app) as client:
            response = client.post(
                "/episodes/ep-1/summaries",
                json={"audio_url": "https://cdn.example.com/ep-1.mp3", "level": "epic"},
            )

        assert response.status_code == 422

    def test_blank_episode_id(self, pipeline):
        """A blank episode id should be a client error."""
        with TestClient(main.app) as client:
            response = client.post("/episodes/%20/insights", json={"audio_url": "https://cdn.example.com/x.mp3"})

        assert response.status_code == 400

    def test_ask(self, pipeline):
        """A question about a transcribed episode should be answered."""
        pipeline.store.upsert_transcript("ep-1", "en", status="ready", full_text="Transcript body.")

        with TestClient(main.app) as client:
            response = client.post("/episodes/ep-1/ask", json={"question": "What happened?"})

        assert response.status_code == 200
        assert response.json() == {"episode_id": "ep-1", "answer": QUICK_JSON}

    @pytest.mark.parametrize("question, code", [("", 400), ("Anything?", 404)])
    def test_ask_errors(self, pipeline, question, code):
        """Blank questions and episodes without transcripts should be client errors."""
        with TestClient(main.app) as client:
            response = client.post("/episodes/ep-1/ask", json={"question": question})

        assert response.status_code == code

    def test_availability(self, pipeline):
        """Availability should merge every language per summary level."""
        pipeline.store.upsert_summary("ep-1", "quick", "en", status="failed", error_message="boom")
        pipeline.store.upsert_summary("ep-1", "quick", "es", status="ready", content={"tldr": "x"})

        with TestClient(main.app) as client:
            body = client.get("/episodes/ep-1/availability").json()

        assert body["levels"] == {"quick": "ready", "deep": "not_started", "insights": "not_started"}

    def test_status_store_outage(self, monkeypatch):
        """Store failures on status reads should map to 503."""
        store = MagicMock(spec=ResourceStore)
        store.get_transcript.side_effect = StoreError("down")
        monkeypatch.setattr(main, "_pipeline", _facade(store=store))

        with TestClient(main.app) as client:
            response = client.get("/episodes/ep-1/status")

        assert response.status_code == 503


class TestCli:
    """Tests for the click commands."""

    @pytest.fixture(autouse=True)
    def isolated_storage(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "storage_path", tmp_path)

    def test_version(self):
        """--version should print the package version."""
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_request_waits_for_result(self, monkeypatch):
        """request should run the job and print the final status."""
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade())

        result = CliRunner().invoke(cli, ["request", "ep-1", "https://cdn.example.com/ep-1.mp3", "--kind", "summary"])

        assert result.exit_code == 0, result.output
        assert "Requested summary: queued" in result.output
        assert '"transcript_status": "ready"' in result.output
        assert '"tldr": "Quick take."' in result.output

    def test_request_failure_exit_code(self, monkeypatch):
        """A failed job should exit non-zero."""
        monkeypatch.setattr(
            "podinsight.pipeline.PipelineFacade",
            lambda: _facade(providers=[FakeProvider.unavailable("captions")]),
        )

        result = CliRunner().invoke(cli, ["request", "ep-1", "https://cdn.example.com/ep-1.mp3", "--kind", "transcript"])

        assert result.exit_code == 1
        assert '"transcript_status": "failed"' in result.output

    def test_status(self, monkeypatch):
        """status should print the aggregated record states."""
        store = MemoryStore()
        store.upsert_transcript("ep-1", "en", status="ready", full_text="Stored text")
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade(store=store))

        result = CliRunner().invoke(cli, ["status", "ep-1"])

        assert result.exit_code == 0
        assert '"transcript_text": "Stored text"' in result.output

    def test_feed(self, monkeypatch):
        """feed should request every episode with audio in the feed."""
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade())

        result = CliRunner().invoke(cli, ["feed", FEED, "--kind", "transcript"])

        assert result.exit_code == 0, result.output
        assert "Test Pod: 1 episodes" in result.output
        assert "ep-1-guid: ready" in result.output

    def test_feed_uses_feed_language(self, monkeypatch):
        """Without --language each episode should be requested in the feed's language."""
        store = MemoryStore()
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade(store=store))

        spanish_feed = FEED.replace("<title>Test Pod</title>", "<title>Test Pod</title><language>es-ES</language>")

        result = CliRunner().invoke(cli, ["feed", spanish_feed, "--kind", "transcript"])

        assert result.exit_code == 0, result.output
        assert store.get_transcript("ep-1-guid", "es").status == "ready"
        assert store.get_transcript("ep-1-guid", "en") is None

    def test_ask(self, monkeypatch):
        """ask should print the model's answer."""
        store = MemoryStore()
        store.upsert_transcript("ep-1", "en", status="ready", full_text="Stored text")
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade(store=store))

        result = CliRunner().invoke(cli, ["ask", "ep-1", "What was said?"])

        assert result.exit_code == 0, result.output
        assert "Quick take." in result.output

    def test_ask_without_transcript(self, monkeypatch):
        """ask should fail cleanly when there is nothing to answer from."""
        monkeypatch.setattr("podinsight.pipeline.PipelineFacade", lambda: _facade())

        result = CliRunner().invoke(cli, ["ask", "ep-1", "What was said?"])

        assert result.exit_code == 1
        assert "No transcript available" in result.output

    def test_recover(self):
        """recover should fail in-flight jobs in the configured store."""
        store = SqlStore(settings.resolved_database_url).connect()
        store.upsert_transcript("ep-1", "en", status="transcribing")
        store.upsert_summary("ep-1", "quick", "en", status="ready", content={"tldr": "x"})

        result = CliRunner().invoke(cli, ["recover", "--older-than", "0"])

        assert result.exit_code == 0, result.output
        assert "Reset 1 transcripts and 0 summaries" in result.output
        assert store.get_transcript("ep-1", "en").error_message == "Stale job reset"
