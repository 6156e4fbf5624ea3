"""
Episode Question Answering

Answers free-form questions about one episode from the artifacts the
pipeline already produced: the ready transcript plus whichever of the
quick, deep and insights payloads are ready. Nothing is generated or
stored here; an episode without a ready transcript cannot be asked about.
"""

import logging
import time
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel

from ..config import settings
from ..db import ResourceStore
from ..exceptions import ContextUnavailableError
from ..llm import LanguageModel
from .prompts import ASK_PROMPT, ASK_SYSTEM

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """One earlier turn of the conversation."""

    role: Literal["user", "assistant"]
    text: str


def _bullets(items: Any) -> str:
    lines = [f"- {item}" for item in items or [] if isinstance(item, str) and item.strip()]
    return "\n".join(lines) or "N/A"


def _quick_section(content: Dict[str, Any]) -> str:
    return (
        "--- EPISODE SUMMARY ---\n"
        f"TL;DR: {content.get('tldr') or 'N/A'}\n"
        f"Key takeaways:\n{_bullets(content.get('key_takeaways'))}\n"
        f"Who it is for: {content.get('who_is_this_for') or 'N/A'}\n"
        f"Topics: {', '.join(content.get('topics') or []) or 'N/A'}"
    )


def _deep_section(content: Dict[str, Any]) -> str:
    # Single-pass and synthesized deep summaries share tldr, sections and topics
    sections = "\n".join(
        f"- {s.get('title') or 'Section'}: {s.get('summary') or ''}"
        for s in content.get("sections") or []
        if isinstance(s, dict)
    )
    takeaways = content.get("key_takeaways") or [
        a.get("title") for a in content.get("action_prompts") or [] if isinstance(a, dict)
    ]
    return (
        "--- DEEP ANALYSIS ---\n"
        f"Overview: {content.get('tldr') or 'N/A'}\n"
        f"Sections:\n{sections or 'N/A'}\n"
        f"Takeaways:\n{_bullets(takeaways)}"
    )


def _highlights_section(content: Dict[str, Any]) -> Optional[str]:
    highlights = [h for h in content.get("highlights") or [] if isinstance(h, dict) and h.get("quote")]
    if not highlights:
        return None
    quotes = "\n\n".join(
        f"> \"{h['quote']}\"\n  Context: {h.get('context') or 'N/A'}" for h in highlights
    )
    return f"--- KEY HIGHLIGHTS ---\n{quotes}"


def build_episode_context(
    store: ResourceStore,
    episode_id: str,
    language: str = "en",
    transcript_char_limit: Optional[int] = None,
) -> Optional[str]:
    """
    Assemble summaries, highlights and the capped transcript into one context.

    Returns:
        Context text, or None when the episode has no ready transcript
    """
    limit = transcript_char_limit or settings.ask_transcript_char_limit
    transcript = store.get_transcript(episode_id, language)
    if transcript is None or transcript.status != "ready" or not transcript.full_text:
        return None

    ready = {
        s.level: s.content
        for s in store.list_summaries(episode_id, language)
        if s.status == "ready" and s.content
    }

    parts: List[str] = []
    if "quick" in ready:
        parts.append(_quick_section(ready["quick"]))
    if "deep" in ready:
        parts.append(_deep_section(ready["deep"]))
    if "insights" in ready:
        highlights = _highlights_section(ready["insights"])
        if highlights:
            parts.append(highlights)
    parts.append(f"--- FULL TRANSCRIPT ---\n{transcript.full_text[:limit]}")
    return "\n\n".join(parts)


def format_history(history: Sequence[ChatMessage]) -> str:
    if not history:
        return ""
    lines = [f"{'User' if m.role == 'user' else 'Assistant'}: {m.text}" for m in history]
    return "Conversation so far:\n" + "\n".join(lines) + "\n\n"


class EpisodeAssistant:
    """Answers questions about one episode with a language model."""

    def __init__(self, model: LanguageModel, store: ResourceStore):
        self.model = model
        self.store = store

    @staticmethod
    def validate(question: str, history: Sequence[ChatMessage]) -> str:
        question = (question or "").strip()
        if not question:
            raise ValueError("question is required")
        if len(question) > settings.ask_max_question_chars:
            raise ValueError(f"Question too long (max {settings.ask_max_question_chars} chars)")
        if len(history) > settings.ask_max_history:
            raise ValueError(f"Conversation too long (max {settings.ask_max_history} messages)")
        return question

    async def answer(
        self,
        episode_id: str,
        question: str,
        history: Optional[Sequence[ChatMessage]] = None,
        language: str = "en",
    ) -> str:
        """
        Answer a question from the episode's ready artifacts.

        Raises:
            ValueError: empty or oversized question or history
            ContextUnavailableError: no ready transcript for the episode
            ProviderError: the model call failed
            StoreError: the store could not be read
        """
        history = list(history or [])
        question = self.validate(question, history)

        context = build_episode_context(self.store, episode_id, language)
        if context is None:
            raise ContextUnavailableError(f"No transcript available for episode {episode_id}")

        start_time = time.time()
        answer = await self.model.complete(
            ASK_SYSTEM.format(context=context),
            ASK_PROMPT.format(history=format_history(history), question=question),
            settings.ask_max_tokens,
        )
        logger.info(
            f"Answered question on {episode_id}/{language} with {len(context)} context chars "
            f"in {time.time() - start_time:.1f}s"
        )
        return answer.strip()
