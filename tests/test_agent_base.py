"""
Tests for agents/base.py, agents/cache.py and agents/rate_limit.py.

Deterministic. No network calls. Time is controlled by monkeypatching
`_time.time` in the cache and rate-limit modules.
"""

import asyncio
import json
import sys
from pathlib import Path
from unittest import mock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from agents.base import (
    AgentConfig,
    BaseEventAgent,
    extract_search_keywords,
    parse_json_payload,
    parse_search_result,
)
from agents.cache import RecommendationCache
from agents.rate_limit import SlidingWindowRateLimiter
from models.types import (
    Action,
    AgentRecommendation,
    AnalysisContext,
    Market,
    NewsItem,
    Token,
    ToolResult,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_market(condition_id="0xabc123def456", question="Will the Lakers win tonight?", yes=0.6) -> Market:
    tokens = [Token("Yes", yes), Token("No", None if yes is None else round(1 - yes, 4))]
    return Market(condition_id=condition_id, question=question, tokens=tokens)


class DummyAgent(BaseEventAgent):
    category = "dummy"
    KEYWORDS = {"main": ["lakers", "Celtics"], "other": ["finals", "lakers"]}

    def __init__(self, config=None, fail=False, **kwargs):
        super().__init__(config or AgentConfig(name="DummyAgent", use_news_search=False), **kwargs)
        self.fail = fail
        self.seen_contexts = []

    async def analyze(self, market, context):
        self.seen_contexts.append(context)
        if self.fail:
            raise RuntimeError("model exploded")
        price = self.yes_price(market)
        if price is None:
            return self.default_recommendation("No price")
        estimate = min(0.99, price + 0.1)
        edge = self.calculate_edge(estimate, price)
        return AgentRecommendation(
            action=self.decide_action(0.8, edge),
            confidence=0.8,
            reasoning=f"Market: {price:.2f}",
            estimated_probability=estimate,
            edge=edge,
        )


# ---------------------------------------------------------------------------
# AgentConfig
# ---------------------------------------------------------------------------
class TestAgentConfig:
    def test_defaults_valid(self):
        cfg = AgentConfig()
        assert cfg.enabled
        assert 0 <= cfg.min_confidence <= 1

    def test_min_confidence_out_of_range(self):
        with pytest.raises(ValueError, match="Invalid min_confidence: 1.5"):
            AgentConfig(min_confidence=1.5)

    def test_min_edge_out_of_range(self):
        with pytest.raises(ValueError, match="min_edge"):
            AgentConfig(min_edge=-0.1)

    def test_rate_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            AgentConfig(rate_limit_per_minute=0)


# ---------------------------------------------------------------------------
# Keywords and matching
# ---------------------------------------------------------------------------
class TestKeywords:
    def test_extract_search_keywords(self):
        words = extract_search_keywords("Will the Boston Celtics win the 2025 NBA Finals?")
        assert words == ["boston", "celtics", "win", "2025", "nba"]

    def test_extract_drops_short_words_and_punctuation(self):
        assert extract_search_keywords("Is it on, or not?!") == ["not"]

    def test_keywords_deduped_lowercased(self):
        agent = DummyAgent()
        assert agent.keywords == ["lakers", "celtics", "finals"]

    def test_matches_question_or_description(self):
        agent = DummyAgent()
        assert agent.matches_category(_make_market(question="LAKERS vs Suns"))
        m = _make_market(question="Who wins game 7?")
        assert not agent.matches_category(m)
        m.description = "NBA Finals game between the two best teams"
        assert agent.matches_category(m)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------
class TestDecideAction:
    def test_low_confidence_skips(self):
        agent = DummyAgent(AgentConfig(min_confidence=0.7, min_edge=0.05))
        assert agent.decide_action(0.69, 0.30) == Action.SKIP

    def test_buy_and_sell(self):
        agent = DummyAgent(AgentConfig(min_confidence=0.6, min_edge=0.05))
        assert agent.decide_action(0.7, 0.06) == Action.BUY
        assert agent.decide_action(0.7, -0.06) == Action.SELL
        assert agent.decide_action(0.7, 0.05) == Action.SKIP

    def test_default_recommendation(self):
        rec = BaseEventAgent.default_recommendation("nothing to do")
        assert rec.action == Action.SKIP
        assert rec.confidence == 0.0
        assert rec.sources == ()

    def test_recommendation_clamps(self):
        rec = AgentRecommendation(Action.BUY, confidence=1.4, reasoning="", estimated_probability=-0.2, edge=2.0)
        assert rec.confidence == 1.0
        assert rec.estimated_probability == 0.0
        assert rec.edge == 1.0


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
class TestRecommendationCache:
    def test_fresh_entry_returned(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.cache._time.time", lambda: now)
        cache = RecommendationCache(ttl_seconds=300)
        rec = BaseEventAgent.default_recommendation("x")
        cache.put("m1", rec)
        assert cache.get("m1") is rec
        assert cache.stats().hits == 1

    def test_stale_entry_reads_absent(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.cache._time.time", lambda: now)
        cache = RecommendationCache(ttl_seconds=300)
        cache.put("m1", BaseEventAgent.default_recommendation("x"))
        monkeypatch.setattr("agents.cache._time.time", lambda: now + 301)
        assert cache.get("m1") is None
        assert cache.stats().misses == 1

    def test_sweep_evicts_stale(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.cache._time.time", lambda: now)
        cache = RecommendationCache(ttl_seconds=10, sweep_interval=60)
        cache.put("old", BaseEventAgent.default_recommendation("x"))
        monkeypatch.setattr("agents.cache._time.time", lambda: now + 20)
        cache.put("new", BaseEventAgent.default_recommendation("y"))
        assert len(cache) == 2
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_opportunistic_sweep_on_access(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.cache._time.time", lambda: now)
        cache = RecommendationCache(ttl_seconds=10, sweep_interval=60)
        cache.put("a", BaseEventAgent.default_recommendation("x"))
        cache.put("b", BaseEventAgent.default_recommendation("x"))
        monkeypatch.setattr("agents.cache._time.time", lambda: now + 61)
        cache.get("zzz")
        assert len(cache) == 0

    def test_hit_rate(self):
        cache = RecommendationCache()
        cache.put("a", BaseEventAgent.default_recommendation("x"))
        cache.get("a")
        cache.get("b")
        assert cache.stats().hit_rate == pytest.approx(0.5)


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
class TestRateLimiter:
    def test_exactly_limit_per_window(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.rate_limit._time.time", lambda: now)
        limiter = SlidingWindowRateLimiter(3)
        assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]
        assert limiter.remaining == 0
        limiter.reset()
        assert limiter.remaining == 3

    def test_window_slides(self, monkeypatch):
        now = 1_000_000.0
        monkeypatch.setattr("agents.rate_limit._time.time", lambda: now)
        limiter = SlidingWindowRateLimiter(2)
        limiter.try_acquire()
        monkeypatch.setattr("agents.rate_limit._time.time", lambda: now + 30)
        limiter.try_acquire()
        assert not limiter.try_acquire()
        monkeypatch.setattr("agents.rate_limit._time.time", lambda: now + 61)
        assert limiter.try_acquire()


# ---------------------------------------------------------------------------
# analyze_with_cache
# ---------------------------------------------------------------------------
class TestAnalyzeWithCache:
    def test_second_call_is_cache_hit(self):
        agent = DummyAgent()
        market = _make_market()

        async def run():
            first = await agent.analyze_with_cache(market)
            second = await agent.analyze_with_cache(market)
            return first, second

        first, second = asyncio.run(run())
        assert first is second
        assert len(agent.seen_contexts) == 1

    def test_cache_hit_does_not_consume_rate_slot(self):
        agent = DummyAgent(AgentConfig(rate_limit_per_minute=1, use_news_search=False))
        market = _make_market()

        async def run():
            results = [await agent.analyze_with_cache(market) for _ in range(3)]
            return results

        results = asyncio.run(run())
        assert all(r is not None for r in results)
        assert agent.rate_limiter.remaining == 0

    def test_rate_limited_returns_none(self):
        agent = DummyAgent(AgentConfig(rate_limit_per_minute=1, use_news_search=False))

        async def run():
            first = await agent.analyze_with_cache(_make_market("0x1"))
            second = await agent.analyze_with_cache(_make_market("0x2"))
            return first, second

        first, second = asyncio.run(run())
        assert first is not None
        assert second is None

    def test_disabled_returns_none(self):
        agent = DummyAgent()
        agent.disable()
        assert asyncio.run(agent.analyze_with_cache(_make_market())) is None
        assert not agent.is_enabled
        agent.enable()
        assert asyncio.run(agent.analyze_with_cache(_make_market())) is not None

    def test_error_returns_skip_not_cached(self):
        agent = DummyAgent(fail=True)
        market = _make_market()
        rec = asyncio.run(agent.analyze_with_cache(market))
        assert rec.action == Action.SKIP
        assert rec.confidence == 0.0
        assert rec.reasoning == "Analysis error"
        assert len(agent.cache) == 0

    def test_no_price_skips(self):
        agent = DummyAgent()
        rec = asyncio.run(agent.analyze_with_cache(_make_market(yes=None)))
        assert rec.action == Action.SKIP
        assert rec.confidence == 0.0

    def test_news_added_when_context_empty(self):
        news = mock.MagicMock()
        news.search_news = mock.AsyncMock(return_value=[NewsItem(title="Lakers rout Suns", url="https://x")])
        agent = DummyAgent(AgentConfig(use_news_search=True, max_news_results=3), news_source=news)

        asyncio.run(agent.analyze_with_cache(_make_market(question="Will the Lakers beat the Suns?")))
        news.search_news.assert_awaited_once_with("lakers beat suns", 3)
        assert agent.seen_contexts[0].recent_news[0].title == "Lakers rout Suns"

    def test_existing_news_not_refetched(self):
        news = mock.MagicMock()
        news.search_news = mock.AsyncMock(return_value=[])
        agent = DummyAgent(AgentConfig(use_news_search=True), news_source=news)
        ctx = AnalysisContext(recent_news=[NewsItem(title="given")])

        asyncio.run(agent.analyze_with_cache(_make_market(), ctx))
        news.search_news.assert_not_awaited()
        assert agent.seen_contexts[0].recent_news[0].title == "given"

    def test_news_failure_degrades(self):
        news = mock.MagicMock()
        news.search_news = mock.AsyncMock(side_effect=ConnectionError("down"))
        agent = DummyAgent(AgentConfig(use_news_search=True), news_source=news)
        rec = asyncio.run(agent.analyze_with_cache(_make_market()))
        assert rec.action == Action.BUY
        assert agent.seen_contexts[0].recent_news == []


# ---------------------------------------------------------------------------
# Tool output parsing
# ---------------------------------------------------------------------------
class TestParseSearchResult:
    def test_json_list(self):
        payload = [{"title": "A", "url": "https://a", "content": "alpha"}, {"title": "", "content": ""}]
        result = ToolResult(content=[{"type": "text", "text": json.dumps(payload)}])
        items = parse_search_result(result)
        assert [i.title for i in items] == ["A"]
        assert items[0].content == "alpha"

    def test_results_wrapper_and_content_field(self):
        payload = {"results": [{"title": "B", "link": "https://b", "description": "beta"}]}
        result = ToolResult(content=[{"type": "text", "text": json.dumps(payload)}])
        items = parse_search_result(result, content_field="description")
        assert items[0].url == "https://b"
        assert items[0].content == "beta"

    def test_data_list(self):
        result = ToolResult(content=[{"type": "json", "data": [{"title": "C"}]}])
        assert parse_search_result(result)[0].title == "C"

    def test_error_and_garbage(self):
        assert parse_search_result(None) == []
        assert parse_search_result(ToolResult(content=[{"type": "text", "text": "x"}], is_error=True)) == []
        assert parse_search_result(ToolResult(content=[{"type": "text", "text": "not json"}])) == []

    def test_parse_json_payload(self):
        result = ToolResult(content=[{"type": "text", "text": "noise"}, {"type": "text", "text": '{"win_pct": 60}'}])
        assert parse_json_payload(result) == {"win_pct": 60}


# ---------------------------------------------------------------------------
# describe / lifecycle
# ---------------------------------------------------------------------------
class TestDescribe:
    def test_describe_lines(self):
        agent = DummyAgent()
        text = agent.describe()
        assert text.startswith("DummyAgent (dummy)")
        assert "- Enabled: True" in text
        assert "- Tool Servers: none" in text

    def test_aclose_clears_cache(self):
        agent = DummyAgent()
        asyncio.run(agent.analyze_with_cache(_make_market()))
        assert len(agent.cache) == 1
        asyncio.run(agent.aclose())
        assert len(agent.cache) == 0
