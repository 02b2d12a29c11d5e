"""
Agent registry: routes each market to the category agent that claims it.

Routing is first-match-wins in registration order. Categories are kept
near-disjoint by keyword design; callers that want every claiming agent use
matching_agents().

Usage:
    registry = AgentRegistry()
    registry.register(SportsAgent())
    registry.register(PoliticsAgent())
    rec = await registry.analyze(market)
"""
import logging
from typing import Optional

from agents.base import BaseEventAgent
from agents.tool_servers import ToolServerRegistry
from config import TOOL_SERVERS_PER_AGENT
from models.types import AgentRecommendation, AnalysisContext, Market

logger = logging.getLogger("recommender.agents.registry")


class AgentRegistry:
    def __init__(self):
        self._agents: list[BaseEventAgent] = []

    def register(self, agent: BaseEventAgent):
        self._agents.append(agent)
        logger.debug("Registered %r for category %s", agent, agent.category)

    @property
    def agents(self) -> list[BaseEventAgent]:
        return list(self._agents)

    def agent_for_market(self, market: Market) -> Optional[BaseEventAgent]:
        for agent in self._agents:
            if agent.matches_category(market):
                return agent
        return None

    def matching_agents(self, market: Market) -> list[BaseEventAgent]:
        return [a for a in self._agents if a.matches_category(market)]

    def agent_by_category(self, category: str) -> Optional[BaseEventAgent]:
        for agent in self._agents:
            if agent.category == category:
                return agent
        return None

    def categories(self) -> list[str]:
        return [a.category for a in self._agents]

    async def analyze(
        self, market: Market, context: Optional[AnalysisContext] = None
    ) -> Optional[AgentRecommendation]:
        """Route to the first claiming agent. None if no agent claims the market, or it declined."""
        agent = self.agent_for_market(market)
        if agent is None:
            logger.debug("No agent claims %s", market.condition_id[:10])
            return None
        return await agent.analyze_with_cache(market, context)

    async def initialize_tool_servers(
        self, tool_registry: ToolServerRegistry, max_per_agent: int = TOOL_SERVERS_PER_AGENT, **kwargs
    ) -> dict[str, list[str]]:
        connected = {}
        for agent in self._agents:
            connected[agent.name] = await agent.initialize_recommended_tool_servers(
                tool_registry, max_servers=max_per_agent, **kwargs
            )
        return connected

    def print_tool_status(self, tool_registry: ToolServerRegistry) -> None:
        from report import print_agent_tool_status
        print_agent_tool_status(self, tool_registry)

    def describe(self) -> str:
        return "\n\n".join(a.describe() for a in self._agents)

    async def aclose(self) -> None:
        for agent in self._agents:
            await agent.aclose()

    def __len__(self) -> int:
        return len(self._agents)
