"""
Abstract category agent.

Every domain agent (sports, politics, crypto) is a concrete subclass of
BaseEventAgent. Each agent:
  1. Claims markets by keyword (matches_category)
  2. Turns a market + context into an AgentRecommendation (analyze)
  3. Gets caching, rate limiting, news fusion and tool access for free
     through analyze_with_cache()

New agents are added by:
  1. Subclassing BaseEventAgent with a category and a KEYWORDS table
  2. Implementing analyze()
  3. Registering in agents.build_registry()

Failure policy: a missing price or a failing enrichment never raises out
of an agent. Missing prices produce a SKIP with confidence 0; enrichment
failures are logged and the analysis proceeds without that input.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional, Protocol

from agents.cache import RecommendationCache
from agents.rate_limit import SlidingWindowRateLimiter
from agents.tool_servers import AGENT_TOOL_SERVERS, DEFAULT_AGENT_TOOL_SERVERS, ToolServerRegistry
from agents.tools import StubHandler, ToolHub, build_tool_client
from config import (
    AGENT_CACHE_SWEEP_SECONDS,
    AGENT_CACHE_TTL_SECONDS,
    AGENT_MAX_NEWS_RESULTS,
    AGENT_RATE_LIMIT_PER_MINUTE,
    TOOL_SERVERS_ENABLED,
)
from models.reasons import REASON_ANALYSIS_ERROR
from models.types import (
    Action,
    AgentRecommendation,
    AnalysisContext,
    Market,
    NewsItem,
    ToolResult,
)

STOP_WORDS = frozenset({
    "will", "the", "be", "a", "an", "is", "are", "was", "were", "to", "of", "in",
    "for", "on", "with", "at", "by", "from", "or", "and", "this", "that", "these",
    "those", "it", "its",
})


class NewsSource(Protocol):
    async def search_news(self, query: str, max_results: int = 5) -> list[NewsItem]:
        ...


# ─────────────────────────────────────────────────────────────────────────────
# Agent configuration
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class AgentConfig:
    name: str = "BaseAgent"
    enabled: bool = True
    min_confidence: float = 0.6
    min_edge: float = 0.05
    cache_ttl: float = AGENT_CACHE_TTL_SECONDS
    cache_sweep_interval: float = AGENT_CACHE_SWEEP_SECONDS
    rate_limit_per_minute: int = AGENT_RATE_LIMIT_PER_MINUTE
    use_news_search: bool = True
    max_news_results: int = AGENT_MAX_NEWS_RESULTS

    def __post_init__(self):
        if not 0 <= self.min_confidence <= 1:
            raise ValueError(f"Invalid min_confidence: {self.min_confidence}. Must be between 0 and 1")
        if not 0 <= self.min_edge <= 1:
            raise ValueError(f"Invalid min_edge: {self.min_edge}. Must be between 0 and 1")
        if self.rate_limit_per_minute < 1:
            raise ValueError(f"Invalid rate_limit_per_minute: {self.rate_limit_per_minute}")
        if self.cache_ttl <= 0:
            raise ValueError(f"Invalid cache_ttl: {self.cache_ttl}")


# ─────────────────────────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────────────────────────

def extract_search_keywords(question: str) -> list[str]:
    """First five meaningful words of a question, lowercased, stop words removed."""
    cleaned = re.sub(r"[?.,!]", "", question.lower())
    words = [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]
    return words[:5]


def clamp_probability(p: float) -> float:
    return max(0.01, min(0.99, p))


def clamp_unit(x: float) -> float:
    return max(0.0, min(1.0, x))


def count_hits(text: str, words) -> int:
    return sum(1 for w in words if w in text)


def _item_to_news(item: dict, content_field: str) -> Optional[NewsItem]:
    if not isinstance(item, dict):
        return None
    title = str(item.get("title") or "")
    content = str(item.get("content") or item.get("snippet") or item.get(content_field) or "")
    if not title and not content:
        return None
    return NewsItem(
        title=title,
        url=str(item.get("url") or item.get("link") or ""),
        content=content,
        published_date=item.get("published_date") or item.get("publishedDate"),
        source=item.get("source"),
    )


def parse_search_result(result: Optional[ToolResult], content_field: str = "content") -> list[NewsItem]:
    """
    Parse a search tool's output into NewsItems.

    Accepts text items holding a JSON list, a {"results": [...]} wrapper,
    or content items that carry a "data" list directly. Items with neither
    title nor content are dropped; unparseable text is ignored.
    """
    if result is None or result.is_error:
        return []

    raw_items: list = []
    for entry in result.content:
        data = entry.get("data")
        if isinstance(data, list):
            raw_items.extend(data)
            continue
        text = entry.get("text")
        if entry.get("type") != "text" or not text:
            continue
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, list):
            raw_items.extend(parsed)
        elif isinstance(parsed, dict) and isinstance(parsed.get("results"), list):
            raw_items.extend(parsed["results"])

    news = []
    for item in raw_items:
        converted = _item_to_news(item, content_field)
        if converted is not None:
            news.append(converted)
    return news


def parse_json_payload(result: Optional[ToolResult]) -> Optional[dict]:
    """First JSON object found in a tool result's text items, if any."""
    if result is None or result.is_error:
        return None
    for text in result.texts():
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Abstract agent
# ─────────────────────────────────────────────────────────────────────────────

class BaseEventAgent(ABC):
    """
    Abstract base class for category agents.

    Subclasses set `category` and `KEYWORDS` and implement analyze().
    Everything else (cache, rate limit, news, tools, lifecycle) is provided.
    """

    category: str = "general"
    KEYWORDS: dict[str, list[str]] = {}

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        news_source: Optional[NewsSource] = None,
        tools: Optional[ToolHub] = None,
    ):
        self.config = config or AgentConfig()
        self.name = self.config.name
        self.news_source = news_source
        self.tools = tools or ToolHub(owner=self.name)
        self.cache = RecommendationCache(self.config.cache_ttl, self.config.cache_sweep_interval)
        self.rate_limiter = SlidingWindowRateLimiter(self.config.rate_limit_per_minute)
        self.logger = logging.getLogger(f"recommender.agents.{self.category}")

    @property
    def keywords(self) -> list[str]:
        seen: dict[str, None] = {}
        for group in self.KEYWORDS.values():
            for kw in group:
                seen.setdefault(kw.lower(), None)
        return list(seen)

    @abstractmethod
    async def analyze(self, market: Market, context: AnalysisContext) -> AgentRecommendation:
        """
        Produce a recommendation for a market this agent has claimed.

        Rules:
          - Return a SKIP with confidence 0 when there is no YES price
          - Enrichment failures degrade the analysis, they never raise
          - The final probability estimate is clamped to [0.01, 0.99]
        """
        ...

    # ── Matching ─────────────────────────────────────────────────────────────

    def matches_category(self, market: Market) -> bool:
        text = f"{market.question} {market.description or ''}".lower()
        return any(kw in text for kw in self.keywords)

    # ── Entry point ──────────────────────────────────────────────────────────

    async def analyze_with_cache(
        self, market: Market, context: Optional[AnalysisContext] = None
    ) -> Optional[AgentRecommendation]:
        """
        Cached, rate-limited analysis.

        Returns None when the agent is disabled or over its rate limit.
        A failing analyze() yields a SKIP "Analysis error" that is not cached.
        """
        if not self.config.enabled:
            return None

        cached = self.cache.get(market.condition_id)
        if cached is not None:
            self.logger.debug("[%s] cache hit %s", self.name, market.condition_id[:10])
            return cached

        if not self.rate_limiter.try_acquire():
            self.logger.warning(
                "[%s] rate limit reached (%d/min), skipping %s",
                self.name, self.config.rate_limit_per_minute, market.condition_id[:10],
                extra={"agent": self.name, "condition_id": market.condition_id},
            )
            return None

        context = context or AnalysisContext()
        try:
            if self.config.use_news_search and not context.recent_news:
                context = replace(context, recent_news=await self.search_news(market.question))
            recommendation = await self.analyze(market, context)
        except Exception as e:
            self.logger.error(
                "[%s] analysis failed for %s (%s: %s)",
                self.name, market.condition_id[:10], type(e).__name__, e,
                extra={"agent": self.name, "condition_id": market.condition_id},
            )
            return self.default_recommendation(REASON_ANALYSIS_ERROR)

        self.cache.put(market.condition_id, recommendation)
        return recommendation

    # ── News ─────────────────────────────────────────────────────────────────

    async def search_news(self, question: str) -> list[NewsItem]:
        if self.news_source is None:
            return []
        query = " ".join(extract_search_keywords(question))
        if not query:
            return []
        try:
            items = await self.news_source.search_news(query, self.config.max_news_results)
        except Exception as e:
            self.logger.warning("[%s] news search failed (%s: %s)", self.name, type(e).__name__, e)
            return []
        return list(items)[: self.config.max_news_results]

    async def search_via_tool(
        self, server: str, tool: str, arguments: dict, content_field: str = "content"
    ) -> list[NewsItem]:
        """Run a search tool if that server is connected; [] otherwise."""
        if not self.tools.is_connected(server):
            return []
        return parse_search_result(await self.tools.call(server, tool, arguments), content_field)

    # ── Pricing and decisions ────────────────────────────────────────────────

    def yes_price(self, market: Market) -> Optional[float]:
        price = market.yes_price()
        if price is None:
            self.logger.warning(
                "[%s] no YES price for %s", self.name, market.condition_id[:10],
                extra={"agent": self.name, "condition_id": market.condition_id},
            )
        return price

    @staticmethod
    def calculate_edge(estimated_probability: float, market_price: float) -> float:
        return estimated_probability - market_price

    def decide_action(self, confidence: float, edge: float) -> Action:
        if confidence < self.config.min_confidence:
            return Action.SKIP
        if edge > self.config.min_edge:
            return Action.BUY
        if edge < -self.config.min_edge:
            return Action.SELL
        return Action.SKIP

    @staticmethod
    def default_recommendation(reasoning: str) -> AgentRecommendation:
        return AgentRecommendation(action=Action.SKIP, confidence=0.0, reasoning=reasoning, sources=())

    # ── Tool servers ─────────────────────────────────────────────────────────

    def preferred_tool_servers(self) -> list[str]:
        return AGENT_TOOL_SERVERS.get(self.category, DEFAULT_AGENT_TOOL_SERVERS)

    async def initialize_recommended_tool_servers(
        self,
        registry: ToolServerRegistry,
        max_servers: int = 3,
        enabled: bool = TOOL_SERVERS_ENABLED,
        stub_handlers: Optional[dict[str, dict[str, StubHandler]]] = None,
    ) -> list[str]:
        """
        Connect up to max_servers of this agent's preferred tool servers.
        Unknown or unavailable servers are skipped with a logged reason.
        Returns the names that ended up connected.
        """
        connected = []
        for name in self.preferred_tool_servers():
            if len(connected) >= max_servers:
                break
            server = registry.get_server(name)
            if server is None:
                self.logger.warning("[%s] unknown tool server %s", self.name, name)
                continue
            if not registry.is_server_available(name):
                self.logger.info(
                    "[%s] tool server %s unavailable, missing env: %s",
                    self.name, name, ", ".join(registry.missing_env_vars(name)),
                )
                continue
            client = build_tool_client(
                server, enabled, (stub_handlers or {}).get(name), env=registry.server_env(name)
            )
            if await self.tools.connect(name, client):
                connected.append(name)
        return connected

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def enable(self):
        self.config.enabled = True

    def disable(self):
        self.config.enabled = False

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    def describe_lines(self) -> list[str]:
        servers = ", ".join(self.tools.connected) or "none"
        return [
            f"{self.name} ({self.category})",
            f"- Enabled: {self.config.enabled}",
            f"- Keywords: {', '.join(self.keywords[:10])}...",
            f"- Min Confidence: {self.config.min_confidence}",
            f"- Cache Size: {len(self.cache)}",
            f"- Tool Servers: {servers}",
        ]

    def describe(self) -> str:
        return "\n".join(self.describe_lines())

    async def aclose(self) -> None:
        await self.tools.disconnect()
        self.cache.clear()

    def __repr__(self) -> str:
        status = "ON" if self.config.enabled else "OFF"
        return f"<{self.__class__.__name__} '{self.name}' [{status}]>"
