"""
Category agents.

All agents are BaseEventAgent subclasses registered here.

Usage:
    from agents import build_registry
    registry = build_registry(news_source=TavilySearch())
    rec = await registry.analyze(market)
"""

from agents.base import AgentConfig, BaseEventAgent, NewsSource
from agents.crypto import CryptoAgent, CryptoAgentConfig
from agents.politics import PoliticsAgent, PoliticsAgentConfig
from agents.registry import AgentRegistry
from agents.sports import SportsAgent, SportsAgentConfig


def build_registry(news_source: NewsSource = None) -> AgentRegistry:
    """
    Build the default registry: Sports, Politics, Crypto, in that order.

    Order matters: a market matching several keyword sets goes to the
    first agent registered.
    """
    registry = AgentRegistry()
    registry.register(SportsAgent(news_source=news_source))
    registry.register(PoliticsAgent(news_source=news_source))
    registry.register(CryptoAgent(news_source=news_source))
    return registry


__all__ = [
    "AgentConfig",
    "AgentRegistry",
    "BaseEventAgent",
    "CryptoAgent",
    "CryptoAgentConfig",
    "NewsSource",
    "PoliticsAgent",
    "PoliticsAgentConfig",
    "SportsAgent",
    "SportsAgentConfig",
    "build_registry",
]
