"""
Tests for transcript formatting
"""

from podinsight.models import DiarizedTranscript, Utterance
from podinsight.podcast.formatter import (
    format_timestamp,
    format_transcript_with_speaker_names,
    format_utterances,
)


def _transcript(*utterances):
    return DiarizedTranscript(
        utterances=list(utterances),
        full_text=" ".join(u.text for u in utterances),
        speaker_count=len({u.speaker for u in utterances}),
    )


class TestFormatTimestamp:
    """Tests for format_timestamp()."""

    def test_minutes_and_seconds(self):
        """Should format under an hour as mm:ss."""
        assert format_timestamp(65) == "01:05"

    def test_hours(self):
        """Should add hours past the hour mark."""
        assert format_timestamp(3725) == "1:02:05"

    def test_negative_clamped(self):
        """Negative values should clamp to zero."""
        assert format_timestamp(-4) == "00:00"


class TestFormatTranscript:
    """Tests for speaker-attributed transcript rendering."""

    def test_merges_consecutive_speaker_turns(self):
        """Back-to-back utterances of one speaker should form one paragraph."""
        transcript = _transcript(
            Utterance(speaker=0, start=0.0, end=4.0, text="Hi"),
            Utterance(speaker=0, start=5.0, end=8.0, text="there"),
            Utterance(speaker=1, start=9.0, end=12.0, text="Hello"),
        )

        text = format_transcript_with_speaker_names(transcript)

        assert text == "[00:00] [Speaker 0] Hi there\n[00:09] [Speaker 1] Hello"

    def test_long_silence_starts_new_paragraph(self):
        """A gap above the merge threshold should split the same speaker."""
        transcript = _transcript(
            Utterance(speaker=0, start=0.0, end=2.0, text="a"),
            Utterance(speaker=0, start=10.0, end=12.0, text="b"),
        )

        assert format_transcript_with_speaker_names(transcript).count("\n") == 1

    def test_uses_known_names(self):
        """Known speaker names should replace generic labels."""
        transcript = _transcript(Utterance(speaker=0, start=0.0, end=1.0, text="Welcome"))

        text = format_transcript_with_speaker_names(transcript, {0: "Alice"})

        assert text == "[00:00] [Alice] Welcome"

    def test_without_timing_returns_full_text(self):
        """Transcripts without utterances should render their plain text."""
        transcript = DiarizedTranscript(full_text="just text")

        assert format_transcript_with_speaker_names(transcript) == "just text"

    def test_format_utterances_line_per_utterance(self):
        """format_utterances should emit one prefixed line per utterance."""
        utterances = [
            Utterance(speaker=0, start=0.0, end=1.0, text="Hi"),
            Utterance(speaker=0, start=1.0, end=2.0, text="again"),
        ]

        assert format_utterances(utterances) == "[00:00] Speaker 0: Hi\n[00:01] Speaker 0: again"
