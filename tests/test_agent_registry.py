"""
Tests for agents/registry.py and agents.build_registry: first-match routing,
multi-label matching, tool-server initialization and lifecycle.
"""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from agents import build_registry
from agents.registry import AgentRegistry
from agents.sports import SportsAgent
from agents.tool_servers import ToolServerRegistry
from models.types import Action, Market, Token


def _make_market(question, yes=0.5, condition_id="0xregistry01") -> Market:
    return Market(condition_id=condition_id, question=question, tokens=[Token("Yes", yes), Token("No", 1 - yes)])


class TestRouting:
    def test_default_order(self):
        registry = build_registry()
        assert registry.categories() == ["sports", "politics", "crypto"]
        assert len(registry) == 3

    @pytest.mark.parametrize("question,category", [
        ("Will the Lakers win tonight?", "sports"),
        ("Will Trump win the 2028 presidential election?", "politics"),
        ("Will Bitcoin ETF be approved by SEC?", "crypto"),
    ])
    def test_agent_for_market(self, question, category):
        agent = build_registry().agent_for_market(_make_market(question))
        assert agent is not None
        assert agent.category == category

    def test_first_match_wins(self):
        registry = build_registry()
        market = _make_market("Will the Lakers' owner endorse Trump?")
        assert registry.agent_for_market(market).category == "sports"
        categories = [a.category for a in registry.matching_agents(market)]
        assert "sports" in categories
        assert "politics" in categories

    def test_unclaimed_market(self):
        registry = build_registry()
        market = _make_market("Will it rain in Paris tomorrow?")
        assert registry.agent_for_market(market) is None
        assert asyncio.run(registry.analyze(market)) is None

    def test_analyze_routes_to_agent(self):
        registry = build_registry()
        rec = asyncio.run(registry.analyze(_make_market("Will the Lakers win tonight?", yes=0.95)))
        assert rec is not None
        assert "High probability adjustment: favorites often overvalued" in rec.metadata["heuristic_factors"]

    def test_agent_by_category(self):
        registry = build_registry()
        assert registry.agent_by_category("politics").name == "PoliticsAgent"
        assert registry.agent_by_category("weather") is None

    def test_empty_registry(self):
        registry = AgentRegistry()
        assert registry.agent_for_market(_make_market("Lakers")) is None
        assert registry.describe() == ""


class TestToolInitialization:
    def test_connects_available_preferred_servers(self):
        registry = build_registry()
        tools = ToolServerRegistry(env={"TAVILY_API_KEY": "tvly-test"})

        connected = asyncio.run(registry.initialize_tool_servers(tools, max_per_agent=2, enabled=False))
        assert connected["SportsAgent"] == ["tako", "tavily"]
        # brave-search is skipped: BRAVE_API_KEY missing
        assert connected["PoliticsAgent"] == ["tavily", "rss"]
        assert connected["CryptoAgent"] == ["coingecko", "tavily"]

        sports = registry.agent_by_category("sports")
        assert sports.tools.connected == ["tako", "tavily"]
        assert "- Tool Servers: tako, tavily" in sports.describe()

    def test_stub_handlers_wired(self):
        agent = SportsAgent()
        tools = ToolServerRegistry(env={})
        handlers = {"tako": {"sports_query": lambda args: {"win_pct": 55}}}

        async def run():
            await agent.initialize_recommended_tool_servers(tools, max_servers=1, enabled=False, stub_handlers=handlers)
            return await agent.team_stats("Lakers", "NBA")

        assert asyncio.run(run()) == {"win_pct": 55}


class TestLifecycle:
    def test_describe_joins_agents(self):
        text = build_registry().describe()
        blocks = text.split("\n\n")
        assert len(blocks) == 3
        assert blocks[0].startswith("SportsAgent (sports)")

    def test_aclose_disconnects_and_clears(self):
        registry = build_registry()
        tools = ToolServerRegistry(env={})

        async def run():
            await registry.initialize_tool_servers(tools, enabled=False)
            await registry.analyze(_make_market("Will the Lakers win tonight?"))
            await registry.aclose()

        asyncio.run(run())
        for agent in registry.agents:
            assert agent.tools.connected == []
            assert len(agent.cache) == 0

    def test_disabled_agent_returns_none(self):
        registry = build_registry()
        registry.agent_by_category("sports").disable()
        assert asyncio.run(registry.analyze(_make_market("Will the Lakers win tonight?"))) is None

    def test_rate_limited_agent_returns_none(self):
        registry = build_registry()
        sports = registry.agent_by_category("sports")
        sports.rate_limiter.max_per_minute = 1

        async def run():
            first = await registry.analyze(_make_market("Will the Lakers win tonight?", condition_id="0x1"))
            second = await registry.analyze(_make_market("Will the Celtics win tonight?", condition_id="0x2"))
            return first, second

        first, second = asyncio.run(run())
        assert first is not None and first.action in (Action.BUY, Action.SELL, Action.SKIP)
        assert second is None
