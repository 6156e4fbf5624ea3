"""
Transcript Formatter

Renders diarized utterances as readable text for storage and for prompts.
"""

from typing import Dict, List, Optional, Sequence

from ..models import DiarizedTranscript, Utterance

# Consecutive utterances by one speaker are merged unless separated by more than this
MAX_MERGE_GAP_SECONDS = 5.0


def format_timestamp(seconds: float) -> str:
    """Format seconds as mm:ss, or h:mm:ss past the hour."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{mins:02d}:{secs:02d}"
    return f"{mins:02d}:{secs:02d}"


def speaker_label(speaker: int, names: Optional[Dict[int, str]] = None) -> str:
    if names and speaker in names:
        return names[speaker]
    return f"Speaker {speaker}"


def format_utterances(
    utterances: Sequence[Utterance],
    names: Optional[Dict[int, str]] = None,
) -> str:
    """One line per utterance: [mm:ss] Speaker N: text"""
    return "\n".join(
        f"[{format_timestamp(u.start)}] {speaker_label(u.speaker, names)}: {u.text}"
        for u in utterances
    )


def format_transcript_with_speaker_names(
    transcript: DiarizedTranscript,
    names: Optional[Dict[int, str]] = None,
) -> str:
    """
    Merge consecutive utterances of the same speaker into paragraphs.

    A new paragraph starts when the speaker changes or the silence between
    two utterances exceeds MAX_MERGE_GAP_SECONDS.

    Returns:
        Lines of the form "[mm:ss] [Name] text"
    """
    if not transcript.utterances:
        return transcript.full_text

    blocks: List[dict] = []
    current = None
    last_end = 0.0

    for u in transcript.utterances:
        gap = u.start - last_end
        if current is None or current["speaker"] != u.speaker or gap > MAX_MERGE_GAP_SECONDS:
            current = {"speaker": u.speaker, "start": u.start, "texts": [u.text]}
            blocks.append(current)
        else:
            current["texts"].append(u.text)
        last_end = u.end

    return "\n".join(
        f"[{format_timestamp(b['start'])}] [{speaker_label(b['speaker'], names)}] "
        + " ".join(b["texts"])
        for b in blocks
    )
