"""
Transcript Sampler

Deterministic, bounded extraction of representative utterances from a long
diarized transcript. Used only to brief the Analyst agent: full transcripts
can exceed practical prompt budgets, but topic boundaries and speaker
identities are visible from a well-spread sample.

Selection:
1. The first `head` utterances (introductions, speaker names)
2. The last `tail` utterances (closing remarks)
3. Up to `per_section` utterances from each of `sections` equal time slices,
   taken with an even stride across the slice
Indices are deduplicated and re-sorted so the sample stays chronological.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..config import settings
from ..models import Utterance
from .formatter import format_utterances

logger = logging.getLogger(__name__)


def _even_stride(indices: List[int], count: int) -> List[int]:
    """Pick `count` items spread evenly across `indices` (all if fewer)."""
    if count <= 0:
        return []
    if len(indices) <= count:
        return list(indices)
    stride = len(indices) / count
    return [indices[int(j * stride)] for j in range(count)]


def sample_indices(
    utterances: Sequence[Utterance],
    sections: Optional[int] = None,
    head: Optional[int] = None,
    tail: Optional[int] = None,
    per_section: Optional[int] = None,
    max_utterances: Optional[int] = None,
) -> List[int]:
    """
    Choose which utterances to keep.

    Returns:
        Sorted, unique indices into `utterances`
    """
    sections = sections or settings.sampler_sections
    head = settings.sampler_head if head is None else head
    tail = settings.sampler_tail if tail is None else tail
    per_section = per_section or settings.sampler_per_section
    max_utterances = max_utterances or settings.sampler_max_utterances
    # Head and tail are always kept, so the cap can never be below them
    max_utterances = max(max_utterances, head + tail)

    n = len(utterances)
    if n <= head + tail:
        return list(range(n))

    must_keep: Set[int] = set(range(head)) | set(range(n - tail, n))

    start = utterances[0].start
    end = max(u.end for u in utterances)
    duration = max(end - start, 0.0)

    buckets: List[List[int]] = [[] for _ in range(sections)]
    for i, u in enumerate(utterances):
        if duration > 0:
            slot = int((u.start - start) / duration * sections)
        else:
            slot = 0
        buckets[min(max(slot, 0), sections - 1)].append(i)

    spread: Set[int] = set()
    for bucket in buckets:
        spread.update(_even_stride(bucket, per_section))

    middle = sorted(spread - must_keep)
    budget = max_utterances - len(must_keep)
    if len(middle) > budget:
        middle = _even_stride(middle, budget)

    return sorted(must_keep | set(middle))


def sample_utterances(utterances: Sequence[Utterance], **kwargs) -> List[Utterance]:
    """Order-preserving subsequence of `utterances` (see sample_indices)."""
    return [utterances[i] for i in sample_indices(utterances, **kwargs)]


def truncate_text(text: str, max_chars: int) -> str:
    """Hard cap on serialized size, cutting at a line boundary when possible."""
    if len(text) <= max_chars:
        return text
    clipped = text[:max_chars]
    newline = clipped.rfind("\n")
    return clipped[:newline] if newline > 0 else clipped


def build_analyst_sample(
    utterances: Sequence[Utterance],
    max_chars: Optional[int] = None,
    names: Optional[Dict[int, str]] = None,
    **kwargs,
) -> Tuple[List[Utterance], str]:
    """
    Sample the transcript and serialize it for the Analyst prompt.

    Returns:
        Tuple of (sampled utterances, prompt text within max_chars)
    """
    max_chars = max_chars or settings.sampler_max_chars
    sampled = sample_utterances(utterances, **kwargs)
    text = truncate_text(format_utterances(sampled, names), max_chars)
    logger.info(
        f"Sampled {len(sampled)}/{len(utterances)} utterances for analysis "
        f"({len(text)} chars)"
    )
    return sampled, text
