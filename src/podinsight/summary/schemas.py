"""
Summary Content Schemas

Typed payloads stored in SummaryRecord.content. Each `from_raw` classmethod
takes an untrusted dict parsed from model output and clamps it: list
lengths are capped, out-of-vocabulary enums fall back to a default, and
missing strings become empty rather than absent.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..models import Utterance, utcnow
from .output_parser import (
    coerce_choice,
    coerce_int,
    coerce_list,
    coerce_optional_str,
    coerce_str,
    coerce_str_list,
)

logger = logging.getLogger(__name__)

# --- Caps ---
QUICK_MAX_TAKEAWAYS = 7
QUICK_MAX_TOPICS = 5

DEEP_MAX_SECTIONS = 8
DEEP_MAX_RESOURCES = 20
DEEP_MAX_ACTIONS = 8
DEEP_MAX_TOPICS = 5

MAX_KEYWORDS = 30
MAX_HIGHLIGHTS = 15
MAX_SHOWNOTES = 12
MAX_MINDMAP_CHILDREN = 10
MAX_MINDMAP_DEPTH = 3

SYNTHESIS_MAX_SECTIONS = 12
SYNTHESIS_MAX_TAKEAWAYS = 10
SYNTHESIS_MAX_ACTIONS = 6
SYNTHESIS_MAX_TOPICS = 8

RESOURCE_TYPES = ("repo", "link", "tool", "person", "paper", "other")
RELEVANCE_LEVELS = ("high", "medium", "low")
IMPORTANCE_LEVELS = ("critical", "important", "notable")
SPEAKER_ROLES = ("host", "guest", "unknown")

EMPTY_BLOCK_SUMMARY = "No discussion captured in this segment."
FAILED_BLOCK_SUMMARY = "Summary unavailable for this segment."


def _dicts(value: Any, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Dict entries of a list, capped at limit."""
    items = [v for v in coerce_list(value) if isinstance(v, dict)]
    return items[:limit] if limit is not None else items


def _pick(raw: Dict[str, Any], *keys: str) -> Any:
    """First present key; models mix snake_case and camelCase."""
    for key in keys:
        if key in raw:
            return raw[key]
    return None


# --- Quick ---


class QuickSummary(BaseModel):
    """Quick tier: a skim-level overview."""

    tldr: str = ""
    key_takeaways: List[str] = Field(default_factory=list)
    who_is_this_for: str = ""
    topics: List[str] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "QuickSummary":
        return cls(
            tldr=coerce_str(raw.get("tldr")),
            key_takeaways=coerce_str_list(_pick(raw, "key_takeaways", "keyTakeaways"), QUICK_MAX_TAKEAWAYS),
            who_is_this_for=coerce_str(_pick(raw, "who_is_this_for", "whoIsThisFor")),
            topics=coerce_str_list(raw.get("topics"), QUICK_MAX_TOPICS),
        )


# --- Deep (single pass) ---


class DeepSection(BaseModel):
    title: str = ""
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)


class Resource(BaseModel):
    """Something mentioned in the episode that a listener could look up."""

    type: Literal["repo", "link", "tool", "person", "paper", "other"] = "other"
    label: str
    url: Optional[str] = None
    notes: Optional[str] = None


class ActionPrompt(BaseModel):
    title: str = ""
    details: str = ""


class DeepSummary(BaseModel):
    """Deep tier produced by one model call over the clipped transcript."""

    tldr: str = ""
    sections: List[DeepSection] = Field(default_factory=list)
    resources: List[Resource] = Field(default_factory=list)
    action_prompts: List[ActionPrompt] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "DeepSummary":
        sections = [
            DeepSection(
                title=coerce_str(s.get("title")),
                summary=coerce_str(s.get("summary")),
                key_points=coerce_str_list(_pick(s, "key_points", "keyPoints")),
            )
            for s in _dicts(raw.get("sections"), DEEP_MAX_SECTIONS)
        ]

        resources = []
        for r in _dicts(raw.get("resources")):
            label = coerce_str(r.get("label"))
            if not label:
                continue
            resources.append(Resource(
                type=coerce_choice(r.get("type"), RESOURCE_TYPES, "other"),
                label=label,
                url=coerce_optional_str(r.get("url")),
                notes=coerce_optional_str(r.get("notes")),
            ))

        actions = [
            ActionPrompt(title=coerce_str(a.get("title")), details=coerce_str(a.get("details")))
            for a in _dicts(_pick(raw, "action_prompts", "actionPrompts"), DEEP_MAX_ACTIONS)
        ]

        return cls(
            tldr=coerce_str(raw.get("tldr")),
            sections=sections,
            resources=resources[:DEEP_MAX_RESOURCES],
            action_prompts=actions,
            topics=coerce_str_list(raw.get("topics"), DEEP_MAX_TOPICS),
        )


# --- Insights ---


class Keyword(BaseModel):
    word: str
    frequency: int = 1
    relevance: Literal["high", "medium", "low"] = "medium"


class Highlight(BaseModel):
    quote: str
    timestamp: Optional[str] = None
    context: Optional[str] = None
    importance: Literal["critical", "important", "notable"] = "notable"


class ShownoteLink(BaseModel):
    label: str
    url: str


class Shownote(BaseModel):
    timestamp: Optional[str] = None
    title: str = "Section"
    content: str = ""
    links: Optional[List[ShownoteLink]] = None


class MindmapNode(BaseModel):
    id: str = "root"
    label: str = "Episode Overview"
    children: Optional[List["MindmapNode"]] = None

    @classmethod
    def from_raw(cls, raw: Any, depth: int = 0) -> "MindmapNode":
        if not isinstance(raw, dict):
            raw = {}
        children = None
        if isinstance(raw.get("children"), list) and depth < MAX_MINDMAP_DEPTH:
            children = [
                cls.from_raw(child, depth + 1)
                for child in _dicts(raw["children"], MAX_MINDMAP_CHILDREN)
            ]
        return cls(
            id=coerce_str(raw.get("id"), "root"),
            label=coerce_str(raw.get("label"), "Episode Overview"),
            children=children,
        )


MindmapNode.model_rebuild()


def validate_keywords(raw: Any) -> List[Keyword]:
    keywords = []
    for k in _dicts(raw):
        word = coerce_str(k.get("word"))
        if not word:
            continue
        if len(keywords) >= MAX_KEYWORDS:
            break
        keywords.append(Keyword(
            word=word,
            frequency=coerce_int(k.get("frequency"), default=1, minimum=1),
            relevance=coerce_choice(k.get("relevance"), RELEVANCE_LEVELS, "medium"),
        ))
    return keywords


def validate_highlights(raw: Any) -> List[Highlight]:
    highlights = []
    for h in _dicts(raw):
        quote = coerce_str(h.get("quote"))
        if not quote:
            continue
        if len(highlights) >= MAX_HIGHLIGHTS:
            break
        highlights.append(Highlight(
            quote=quote,
            timestamp=coerce_optional_str(h.get("timestamp")),
            context=coerce_optional_str(h.get("context")),
            importance=coerce_choice(h.get("importance"), IMPORTANCE_LEVELS, "notable"),
        ))
    return highlights


def validate_shownotes(raw: Any) -> List[Shownote]:
    shownotes = []
    for s in _dicts(raw, MAX_SHOWNOTES):
        links = None
        if isinstance(s.get("links"), list):
            links = [
                ShownoteLink(label=coerce_str(link.get("label")), url=coerce_str(link.get("url")))
                for link in _dicts(s["links"])
                if coerce_str(link.get("label")) and coerce_str(link.get("url"))
            ]
        shownotes.append(Shownote(
            timestamp=coerce_optional_str(s.get("timestamp")),
            title=coerce_str(s.get("title"), "Section"),
            content=coerce_str(s.get("content")),
            links=links,
        ))
    return shownotes


class InsightsContent(BaseModel):
    """Keywords, highlights, shownotes and mindmap extracted in one call."""

    keywords: List[Keyword] = Field(default_factory=list)
    highlights: List[Highlight] = Field(default_factory=list)
    shownotes: List[Shownote] = Field(default_factory=list)
    mindmap: MindmapNode = Field(default_factory=MindmapNode)
    generated_at: str = Field(default_factory=lambda: utcnow().isoformat())

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "InsightsContent":
        raw_keywords = coerce_list(raw.get("keywords"))
        if len(raw_keywords) > MAX_KEYWORDS:
            logger.warning(f"Clamped {len(raw_keywords)} keywords to {MAX_KEYWORDS}")
        return cls(
            keywords=validate_keywords(raw.get("keywords")),
            highlights=validate_highlights(raw.get("highlights")),
            shownotes=validate_shownotes(raw.get("shownotes")),
            mindmap=MindmapNode.from_raw(raw.get("mindmap")),
        )


# --- Multi-agent synthesis ---


class SpeakerInfo(BaseModel):
    """Roster entry produced by the Analyst."""

    id: int
    name: str
    role: Literal["host", "guest", "unknown"] = "unknown"

    @property
    def display(self) -> str:
        return f"{self.name} ({self.role})"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], fallback_id: int = 0) -> "SpeakerInfo":
        speaker_id = coerce_int(raw.get("id"), default=fallback_id, minimum=0)
        return cls(
            id=speaker_id,
            name=coerce_str(raw.get("name"), f"Speaker {speaker_id}"),
            role=coerce_choice(raw.get("role"), SPEAKER_ROLES, "unknown"),
        )


class TopicBlock(BaseModel):
    """Contiguous time range of the episode, holding its full utterances."""

    id: str
    label: str
    start_time: float
    end_time: float
    primary_speaker: Optional[int] = None
    utterances: List[Utterance] = Field(default_factory=list)


class SpeakerContribution(BaseModel):
    speaker: str
    contribution: str


class BlockSummary(BaseModel):
    """One Writer's output for one TopicBlock."""

    block_id: str
    label: str
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    speaker_contributions: List[SpeakerContribution] = Field(default_factory=list)
    is_empty: bool = False
    failed: bool = False

    @classmethod
    def empty(cls, block: TopicBlock) -> "BlockSummary":
        return cls(block_id=block.id, label=block.label, summary=EMPTY_BLOCK_SUMMARY, is_empty=True)

    @classmethod
    def unavailable(cls, block: TopicBlock) -> "BlockSummary":
        """Placeholder for a block whose Writer failed under the degrade policy."""
        return cls(block_id=block.id, label=block.label, summary=FAILED_BLOCK_SUMMARY, failed=True)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], block: TopicBlock) -> "BlockSummary":
        contributions = []
        for c in _dicts(_pick(raw, "speaker_contributions", "speakerContributions")):
            speaker = coerce_str(c.get("speaker"))
            contribution = coerce_str(c.get("contribution"))
            if speaker and contribution:
                contributions.append(SpeakerContribution(speaker=speaker, contribution=contribution))
        return cls(
            block_id=block.id,
            label=block.label,
            summary=coerce_str(raw.get("summary")),
            key_points=coerce_str_list(_pick(raw, "key_points", "keyPoints")),
            speaker_contributions=contributions,
        )


class FinalSection(BaseModel):
    title: str = ""
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    speakers: List[str] = Field(default_factory=list)


class FinalSummary(BaseModel):
    """Deep tier produced by Analyst -> Writers -> Editor."""

    format: Literal["synthesis"] = "synthesis"
    tldr: str = ""
    speakers: List[SpeakerInfo] = Field(default_factory=list)
    sections: List[FinalSection] = Field(default_factory=list)
    key_takeaways: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    degraded_blocks: List[str] = Field(default_factory=list)

    @classmethod
    def from_raw(
        cls,
        raw: Dict[str, Any],
        speakers: List[SpeakerInfo],
        degraded_blocks: Optional[List[str]] = None,
    ) -> "FinalSummary":
        sections = [
            FinalSection(
                title=coerce_str(s.get("title")),
                summary=coerce_str(s.get("summary")),
                key_points=coerce_str_list(_pick(s, "key_points", "keyPoints")),
                speakers=coerce_str_list(s.get("speakers")),
            )
            for s in _dicts(raw.get("sections"), SYNTHESIS_MAX_SECTIONS)
        ]
        return cls(
            tldr=coerce_str(raw.get("tldr")),
            speakers=speakers,
            sections=sections,
            key_takeaways=coerce_str_list(_pick(raw, "key_takeaways", "keyTakeaways"), SYNTHESIS_MAX_TAKEAWAYS),
            action_items=coerce_str_list(_pick(raw, "action_items", "actionItems"), SYNTHESIS_MAX_ACTIONS),
            topics=coerce_str_list(raw.get("topics"), SYNTHESIS_MAX_TOPICS),
            degraded_blocks=list(degraded_blocks or []),
        )
