"""
Tests for DeepgramTranscriber

Unit tests for redirect resolution, response parsing and retry behavior.
"""

import httpx
import pytest

from podinsight.models import TranscriptRequest
from podinsight.podcast.deepgram_transcriber import (
    DeepgramTranscriber,
    is_direct_audio_url,
    parse_deepgram_response,
    resolve_audio_url,
)

UTTERANCE_PAYLOAD = {
    "metadata": {"duration": 12.0},
    "results": {
        "channels": [{"alternatives": [{"transcript": "Hi there. Hello."}]}],
        "utterances": [
            {"speaker": 0, "start": 0.0, "end": 5.0, "transcript": "Hi there.", "confidence": 0.9},
            {"speaker": 1, "start": 5.5, "end": 9.0, "transcript": "Hello.", "confidence": 0.95},
        ],
    },
}


def _request(audio_url="https://cdn.example.com/ep-1.mp3"):
    return TranscriptRequest(episode_id="ep-1", audio_url=audio_url, language="en")


def _transcriber(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "test-key")
    kwargs.setdefault("retry_base_delay", 0.0)
    return DeepgramTranscriber(client=client, **kwargs)


class TestAudioUrl:
    """Tests for direct-audio detection and redirect resolution."""

    def test_direct_audio_extensions(self):
        """Audio file paths should be recognized regardless of query strings."""
        assert is_direct_audio_url("https://cdn.example.com/a/ep.MP3?x=1")
        assert is_direct_audio_url("https://cdn.example.com/ep.m4a")
        assert not is_direct_audio_url("https://track.example.com/redirect/ep")

    async def test_direct_url_is_not_requested(self):
        """Direct audio URLs should be returned without any request."""
        def handler(request):
            raise AssertionError("no request expected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            url = await resolve_audio_url(client, "https://cdn.example.com/ep.mp3")

        assert url == "https://cdn.example.com/ep.mp3"

    async def test_follows_tracking_redirects(self):
        """HEAD redirects should be followed to the audio file."""
        hops = {
            "https://track.example.com/r/ep": "https://stats.example.com/ep",
            "https://stats.example.com/ep": "https://cdn.example.com/ep.mp3",
        }

        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(302, headers={"location": hops[str(request.url)]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            url = await resolve_audio_url(client, "https://track.example.com/r/ep")

        assert url == "https://cdn.example.com/ep.mp3"

    async def test_network_error_keeps_last_url(self):
        """A failing hop should stop resolution without raising."""
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            url = await resolve_audio_url(client, "https://track.example.com/r/ep")

        assert url == "https://track.example.com/r/ep"


class TestParseResponse:
    """Tests for parse_deepgram_response()."""

    def test_utterances(self):
        """The utterances array should map one-to-one."""
        transcript = parse_deepgram_response(UTTERANCE_PAYLOAD)

        assert [u.speaker for u in transcript.utterances] == [0, 1]
        assert transcript.full_text == "Hi there. Hello."
        assert transcript.speaker_count == 2
        assert transcript.duration_seconds == 12.0

    def test_groups_words_by_speaker(self):
        """Without utterances, word speaker labels should be grouped."""
        payload = {
            "results": {
                "channels": [{
                    "alternatives": [{
                        "transcript": "hi there hello",
                        "words": [
                            {"word": "hi", "punctuated_word": "Hi", "start": 0.0, "end": 0.4, "speaker": 0},
                            {"word": "there", "start": 0.5, "end": 0.9, "speaker": 0},
                            {"word": "hello", "start": 1.2, "end": 1.8, "speaker": 1},
                        ],
                    }],
                }],
            },
        }

        transcript = parse_deepgram_response(payload)

        assert [(u.speaker, u.text) for u in transcript.utterances] == [(0, "Hi there"), (1, "hello")]
        assert transcript.duration_seconds == 1.8

    def test_transcript_only(self):
        """A bare channel transcript should become one utterance."""
        payload = {
            "metadata": {"duration": 30.0},
            "results": {"channels": [{"alternatives": [{"transcript": "Only text."}]}]},
        }

        transcript = parse_deepgram_response(payload)

        assert len(transcript.utterances) == 1
        assert transcript.utterances[0].end == 30.0

    def test_empty_payload(self):
        """An empty response should produce an empty transcript."""
        transcript = parse_deepgram_response({})

        assert transcript.full_text == ""
        assert transcript.utterances == []


class TestDeepgramTranscriber:
    """Tests for DeepgramTranscriber.fetch()."""

    async def test_unavailable_without_api_key(self):
        """Missing credentials should skip the provider."""
        transcriber = _transcriber(lambda request: httpx.Response(500), api_key="")

        result = await transcriber.fetch(_request())

        assert result.outcome == "unavailable"

    async def test_sends_diarization_request(self):
        """Request should carry the key, diarization and the episode language."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=UTTERANCE_PAYLOAD)

        result = await _transcriber(handler).fetch(_request())

        assert result.outcome == "success"
        request = seen[0]
        assert request.url.path == "/v1/listen"
        assert request.url.params["diarize"] == "true"
        assert request.url.params["language"] == "en"
        assert request.headers["Authorization"] == "Token test-key"

    async def test_retries_transient_errors(self):
        """5xx responses should be retried until success."""
        responses = [httpx.Response(503), httpx.Response(502), httpx.Response(200, json=UTTERANCE_PAYLOAD)]
        calls = []

        def handler(request):
            calls.append(request)
            return responses[len(calls) - 1]

        result = await _transcriber(handler, max_retries=3).fetch(_request())

        assert result.outcome == "success"
        assert len(calls) == 3

    async def test_client_errors_are_not_retried(self):
        """4xx responses should fail immediately."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="bad key")

        result = await _transcriber(handler, max_retries=3).fetch(_request())

        assert result.outcome == "error"
        assert "401" in result.error
        assert len(calls) == 1

    @pytest.mark.parametrize("max_retries", [0, 2])
    async def test_gives_up_after_max_retries(self, max_retries):
        """Persistent failures should stop after max_retries + 1 attempts."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        result = await _transcriber(handler, max_retries=max_retries).fetch(_request())

        assert result.outcome == "error"
        assert "Deepgram" in result.error
        assert len(calls) == max_retries + 1
