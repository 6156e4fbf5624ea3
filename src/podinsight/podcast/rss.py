"""
Podcast RSS Feed Reader

Turns a podcast feed into EpisodeSource entries that can be requested
through the pipeline. Episodes carry the feed's <podcast:transcript> link
as their caption locator and the channel language as their language.
"""

import logging
from typing import Any, Dict, List, Optional

import feedparser
from pydantic import BaseModel

from ..models import EpisodeSource

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

# Preferred <podcast:transcript> types, best first
TRANSCRIPT_TYPE_PRIORITY = (
    "text/vtt",
    "application/srt",
    "application/x-subrip",
    "application/json",
    "text/html",
    "text/plain",
)


class FeedEpisode(BaseModel):
    """Represents a podcast episode from an RSS feed."""
    title: str
    audio_url: str
    published: str = ""
    duration: Optional[str] = None
    guid: Optional[str] = None
    transcript_url: Optional[str] = None
    language: str = DEFAULT_LANGUAGE

    def to_source(self, podcast_title: Optional[str] = None) -> EpisodeSource:
        return EpisodeSource(
            episode_id=self.guid or self.audio_url,
            audio_url=self.audio_url,
            caption_url=self.transcript_url,
            title=self.title,
            podcast_title=podcast_title,
            language=self.language,
        )


class PodcastFeed(BaseModel):
    """Represents a parsed podcast feed."""
    title: str
    language: Optional[str] = None
    episodes: List[FeedEpisode] = []

    def sources(self) -> List[EpisodeSource]:
        return [episode.to_source(podcast_title=self.title) for episode in self.episodes]


def normalize_language(value: Optional[str]) -> Optional[str]:
    """'en-US' -> 'en'. Codes that are not two letters are treated as unknown."""
    if not value:
        return None
    code = value.strip().lower().replace("_", "-").split("-")[0]
    return code if len(code) == 2 and code.isalpha() else None


def _audio_url(entry) -> Optional[str]:
    for link in entry.get("links", []):
        if link.get("type", "").startswith("audio/"):
            return link.get("href")
    for enc in entry.get("enclosures", []):
        if enc.get("type", "").startswith("audio/"):
            return enc.get("href")
    return None


def _type_rank(mime_type: str) -> int:
    for rank, preferred in enumerate(TRANSCRIPT_TYPE_PRIORITY):
        if preferred in mime_type:
            return rank
    return len(TRANSCRIPT_TYPE_PRIORITY)


def choose_transcript(tags: Any, channel_language: Optional[str] = None) -> Optional[Dict[str, Optional[str]]]:
    """
    Pick the best <podcast:transcript> candidate.

    Candidates in the channel language come first, then by type preference.

    Returns:
        Dict with url and language, or None when no candidate has a URL
    """
    if isinstance(tags, dict):
        tags = [tags]
    candidates = []
    for tag in tags if isinstance(tags, list) else []:
        if not isinstance(tag, dict) or not tag.get("url"):
            continue
        candidates.append({
            "url": tag["url"],
            "type": (tag.get("type") or "").lower(),
            "language": normalize_language(tag.get("language")),
        })
    if not candidates:
        return None

    candidates.sort(key=lambda c: (c["language"] != channel_language, _type_rank(c["type"])))
    best = candidates[0]
    return {"url": best["url"], "language": best["language"]}


def parse_feed(feed_url_or_content: str, limit: int = 5) -> PodcastFeed:
    """
    Parse a podcast RSS feed.

    Args:
        feed_url_or_content: Feed URL (or raw XML)
        limit: Max number of episodes to retrieve

    Returns:
        PodcastFeed with episodes that have an audio enclosure
    """
    logger.info(f"Parsing podcast feed: {feed_url_or_content[:80]}")
    feed = feedparser.parse(feed_url_or_content)

    if feed.bozo:
        # feedparser usually recovers; only fail when nothing came out
        logger.warning(f"Feed parsing warning: {feed.bozo_exception}")
    if not feed.entries:
        raise ValueError("No episodes found in feed")

    channel_language = normalize_language(feed.feed.get("language"))

    episodes = []
    for entry in feed.entries[:limit]:
        audio_url = _audio_url(entry)
        if not audio_url:
            logger.debug(f"Skipping entry without audio: {entry.get('title')}")
            continue
        # feedparser keeps the attributes of an entry's last <podcast:transcript>
        transcript = choose_transcript(entry.get("podcast_transcript"), channel_language)
        episodes.append(FeedEpisode(
            title=entry.get("title", "Untitled Episode"),
            audio_url=audio_url,
            published=entry.get("published", ""),
            duration=entry.get("itunes_duration") or None,
            guid=entry.get("id") or audio_url,
            transcript_url=transcript["url"] if transcript else None,
            language=(transcript and transcript["language"]) or channel_language or DEFAULT_LANGUAGE,
        ))

    with_transcripts = sum(1 for e in episodes if e.transcript_url)
    logger.info(f"Feed has {len(episodes)} episodes with audio, {with_transcripts} with transcripts")
    return PodcastFeed(
        title=feed.feed.get("title", "Unknown Podcast"),
        language=channel_language,
        episodes=episodes,
    )
