"""
SerpAPI Google News search, used to put the last day's headlines into the
AI filter prompt. Never raises: a failed search returns no articles.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

import aiohttp

from config import SERP_API_KEY, SERP_API_URL
from models.errors import SearchConfigError

logger = logging.getLogger("recommender.news")

_TIME_RANGES = {"past_24h": "d", "past_week": "w", "past_month": "m"}
_STOP_WORDS = {"will", "win", "the", "a", "an", "be", "is", "are", "at", "in", "on", "by", "for", "to"}


@dataclass
class NewsArticle:
    title: str
    link: str = ""
    snippet: str = ""
    date: str = ""
    source: str = ""


def _source_name(raw) -> str:
    # newer SerpAPI responses nest the publisher: {"name": ..., "icon": ...}
    if isinstance(raw, dict):
        return raw.get("name") or ""
    return raw or ""


def extract_keywords(question: str) -> str:
    """Up to five content words from the question; falls back to the raw question if too short."""
    words = re.sub(r"[^\w\s]", " ", question.lower()).split()
    keywords = " ".join([w for w in words if len(w) > 2 and w not in _STOP_WORDS][:5])
    if len(keywords) < 10:
        keywords = question[:100]
    return keywords


def format_news_for_prompt(articles: list[NewsArticle]) -> str:
    if not articles:
        return ""
    lines = ["", "**Recent News (Last 24 Hours):**"]
    for i, a in enumerate(articles[:5], 1):
        lines.append(f"{i}. {a.title}")
        if a.snippet:
            lines.append(f"   {a.snippet[:150]}...")
        if a.source:
            lines.append(f"   Source: {a.source}")
        lines.append("")
    return "\n".join(lines) + "\n"


class SerpNewsSearch:
    def __init__(self, api_key: Optional[str] = SERP_API_KEY, base_url: str = SERP_API_URL, timeout: float = 15):
        if not api_key:
            raise SearchConfigError("SERP_API_KEY environment variable is required")
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def search_news(
        self, query: str, num_results: int = 10, time_range: Optional[str] = None
    ) -> list[NewsArticle]:
        params = {"q": query, "engine": "google", "api_key": self.api_key, "tbm": "nws", "num": num_results}
        if time_range:
            params["tbs"] = f"qdr:{_TIME_RANGES.get(time_range, 'm')}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.base_url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        logger.warning("SerpAPI returned HTTP %d for %r", resp.status, query)
                        return []
                    data = await resp.json()
        except Exception as e:
            logger.warning("SerpAPI search failed (%s: %s)", type(e).__name__, e)
            return []

        articles = [
            NewsArticle(
                title=item.get("title") or "",
                link=item.get("link") or "",
                snippet=item.get("snippet") or "",
                date=item.get("date") or "",
                source=_source_name(item.get("source")),
            )
            for item in data.get("news_results") or []
        ]
        logger.info("SerpAPI found %d articles for %r", len(articles), query)
        return articles[:num_results]

    async def news_for_question(self, question: str, num_results: int = 5) -> list[NewsArticle]:
        return await self.search_news(extract_keywords(question), num_results=num_results, time_range="past_24h")
