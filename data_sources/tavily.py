"""
Tavily search client (AI-oriented web search with extracted content).

Used two ways:
  - deep_search(): detailed context for the AI filter on promising markets
  - search_news(): the news source handed to category agents
Failures raise SearchError; callers log and continue without enrichment.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import aiohttp

from config import TAVILY_API_KEY, TAVILY_API_URL
from models.errors import SearchConfigError, SearchError
from models.types import NewsItem

logger = logging.getLogger("recommender.tavily")


@dataclass
class TavilyResult:
    title: str
    url: str
    content: str
    score: float = 0.0
    published_date: Optional[str] = None


@dataclass
class TavilyResponse:
    query: str
    results: list[TavilyResult] = field(default_factory=list)
    answer: Optional[str] = None
    response_time: float = 0.0


def _parse_response(data: dict, query: str) -> TavilyResponse:
    results = [
        TavilyResult(
            title=item.get("title") or "",
            url=item.get("url") or "",
            content=item.get("content") or "",
            score=float(item.get("score") or 0),
            published_date=item.get("published_date"),
        )
        for item in data.get("results") or []
    ]
    return TavilyResponse(
        query=data.get("query") or query,
        results=results,
        answer=data.get("answer") or None,
        response_time=float(data.get("response_time") or 0),
    )


class TavilySearch:
    def __init__(self, api_key: Optional[str] = TAVILY_API_KEY, base_url: str = TAVILY_API_URL, timeout: float = 30):
        if not api_key:
            raise SearchConfigError("TAVILY_API_KEY environment variable is required")
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def search(
        self,
        query: str,
        max_results: int = 5,
        include_answer: bool = False,
        search_depth: str = "basic",
    ) -> TavilyResponse:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
            "include_answer": include_answer,
            "search_depth": search_depth,
            "include_images": False,
            "include_raw_content": False,
        }
        logger.debug("Tavily search %r (depth=%s)", query, search_depth)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/search", json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        raise SearchError(f"Tavily returned HTTP {resp.status}")
                    data = await resp.json()
        except aiohttp.ClientError as e:
            raise SearchError(f"Tavily request failed: {e}") from e
        except ValueError as e:
            raise SearchError(f"Tavily returned invalid JSON: {e}") from e

        try:
            response = _parse_response(data, query)
        except (AttributeError, TypeError, ValueError) as e:
            raise SearchError(f"Malformed Tavily response: {e}") from e
        logger.info("Tavily found %d results for %r", len(response.results), query)
        return response

    async def deep_search(self, query: str) -> TavilyResponse:
        return await self.search(query, max_results=10, include_answer=True, search_depth="advanced")

    async def quick_search(self, query: str, max_results: int = 5) -> TavilyResponse:
        return await self.search(query, max_results=max_results, search_depth="basic")

    async def search_news(self, query: str, max_results: int = 5) -> list[NewsItem]:
        response = await self.quick_search(query, max_results)
        return [
            NewsItem(
                title=r.title,
                url=r.url,
                content=r.content,
                published_date=r.published_date,
                source="tavily",
                relevance_score=r.score,
            )
            for r in response.results
        ]


def format_results_for_prompt(response: TavilyResponse) -> str:
    if not response.results:
        return ""
    lines = ["", "**Detailed Context (Tavily):**"]
    if response.answer:
        lines += ["", "**Summary:**", response.answer, ""]
    lines.append("**Sources:**")
    for i, r in enumerate(response.results[:5], 1):
        lines.append(f"{i}. **{r.title}**")
        lines.append(f"   {r.content[:200]}...")
        lines.append(f"   Source: {r.url}")
        if r.published_date:
            lines.append(f"   Date: {r.published_date}")
        lines.append("")
    return "\n".join(lines) + "\n"
