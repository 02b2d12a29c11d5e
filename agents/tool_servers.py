"""
Catalog of tool servers the agents know how to launch.

Each server is an npx-launched stdio process. Availability is decided by the
presence of its required environment variables; ToolServerRegistry takes an
explicit env mapping so tests do not depend on the process environment.
"""
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

CATEGORIES = ("search", "news", "crypto", "finance", "sports", "web", "data", "ai")


@dataclass(frozen=True)
class ToolServerConfig:
    name: str
    description: str
    package: str
    categories: tuple[str, ...]
    priority: int
    is_free: bool
    required_env: tuple[str, ...] = ()
    optional_env: tuple[str, ...] = ()
    command: str = "npx"

    @property
    def args(self) -> list[str]:
        return ["-y", self.package]


TOOL_SERVERS: tuple[ToolServerConfig, ...] = (
    # ── Search / news ──
    ToolServerConfig("brave-search", "Brave Search: web, news, images", "@anthropic/mcp-server-brave-search",
                     ("search", "news", "web"), 90, False, required_env=("BRAVE_API_KEY",)),
    ToolServerConfig("tavily", "Tavily: AI-oriented search with content extraction", "tavily-mcp",
                     ("search", "news", "web", "ai"), 95, False, required_env=("TAVILY_API_KEY",)),
    ToolServerConfig("omnisearch", "Unified search over Tavily, Brave, Perplexity, Kagi", "mcp-omnisearch",
                     ("search", "news", "web", "ai"), 85, False,
                     optional_env=("TAVILY_API_KEY", "BRAVE_API_KEY", "PERPLEXITY_API_KEY", "KAGI_API_KEY")),
    ToolServerConfig("web-search-free", "Keyless Google web search", "@pskill9/web-search",
                     ("search", "web"), 70, True),
    # ── Crypto ──
    ToolServerConfig("coingecko", "CoinGecko: price, market cap, volume", "@anthropic/mcp-server-coingecko",
                     ("crypto", "finance", "data"), 95, True, optional_env=("COINGECKO_API_KEY",)),
    ToolServerConfig("coingecko-pro", "CoinGecko Pro API", "coingecko-mcp-pro",
                     ("crypto", "finance", "data"), 98, False, required_env=("COINGECKO_PRO_API_KEY",)),
    ToolServerConfig("armor-crypto", "DeFi, swaps, bridging, wallets", "armor-crypto-mcp",
                     ("crypto", "finance"), 80, True),
    ToolServerConfig("bankless-onchain", "On-chain ERC20 and transaction data", "bankless-onchain-mcp",
                     ("crypto", "data"), 75, True),
    # ── Finance ──
    ToolServerConfig("alphavantage", "Alpha Vantage: equities, FX, crypto, macro", "alphavantage-mcp",
                     ("finance", "crypto", "data"), 85, False, required_env=("ALPHAVANTAGE_API_KEY",)),
    ToolServerConfig("alpaca", "Alpaca market data", "alpaca-mcp",
                     ("finance", "data"), 80, False, required_env=("ALPACA_API_KEY", "ALPACA_SECRET_KEY")),
    # ── Web ──
    ToolServerConfig("fetch", "Fetch and convert web content", "@modelcontextprotocol/server-fetch",
                     ("web", "data"), 90, True),
    ToolServerConfig("browserbase", "Cloud browser automation", "@browserbase/mcp-server",
                     ("web", "data"), 75, False, required_env=("BROWSERBASE_API_KEY",)),
    ToolServerConfig("playwright", "Playwright browser automation", "@anthropic/mcp-server-playwright",
                     ("web", "data"), 85, True),
    ToolServerConfig("apify", "Apify scrapers", "apify-mcp",
                     ("web", "data", "news"), 80, False, required_env=("APIFY_TOKEN",)),
    # ── Data ──
    ToolServerConfig("rss", "RSS/Atom feed reader", "mcp-rss", ("news", "data"), 80, True),
    ToolServerConfig("tako", "Tako: finance, sports, public data", "tako-mcp",
                     ("finance", "sports", "data", "news"), 85, True),
    ToolServerConfig("memory", "Knowledge-graph memory", "@modelcontextprotocol/server-memory",
                     ("data", "ai"), 70, True),
    ToolServerConfig("sequential-thinking", "Sequential reasoning helper",
                     "@modelcontextprotocol/server-sequential-thinking", ("ai",), 65, True),
)

# Preferred servers per agent category, in preference order
AGENT_TOOL_SERVERS: dict[str, list[str]] = {
    "sports": ["tako", "tavily", "brave-search", "web-search-free", "fetch"],
    "politics": ["tavily", "brave-search", "rss", "fetch", "web-search-free"],
    "crypto": ["coingecko", "tavily", "armor-crypto", "alphavantage", "fetch"],
}
DEFAULT_AGENT_TOOL_SERVERS = ["tavily", "fetch"]

# Which catalog categories each agent category draws recommendations from
_RECOMMENDATION_CATEGORIES: dict[str, list[str]] = {
    "sports": ["sports", "news", "search", "data"],
    "politics": ["news", "search", "web", "data"],
    "crypto": ["crypto", "finance", "news", "search"],
}
_DEFAULT_RECOMMENDATION_CATEGORIES = ["search", "data"]


def _by_priority(servers) -> list[ToolServerConfig]:
    return sorted(servers, key=lambda s: s.priority, reverse=True)


class ToolServerRegistry:
    def __init__(self, servers=TOOL_SERVERS, env: Optional[Mapping[str, str]] = None):
        self._servers: dict[str, ToolServerConfig] = {s.name: s for s in servers}
        self.env = env if env is not None else os.environ

    def get_server(self, name: str) -> Optional[ToolServerConfig]:
        return self._servers.get(name)

    def all_servers(self) -> list[ToolServerConfig]:
        return list(self._servers.values())

    def servers_by_category(self, category: str) -> list[ToolServerConfig]:
        return _by_priority(s for s in self._servers.values() if category in s.categories)

    def free_servers(self) -> list[ToolServerConfig]:
        return _by_priority(s for s in self._servers.values() if s.is_free)

    def missing_env_vars(self, name: str) -> list[str]:
        server = self._servers.get(name)
        if server is None:
            return []
        return [v for v in server.required_env if not self.env.get(v)]

    def is_server_available(self, name: str) -> bool:
        return name in self._servers and not self.missing_env_vars(name)

    def available_servers(self) -> list[ToolServerConfig]:
        return _by_priority(s for s in self._servers.values() if not self.missing_env_vars(s.name))

    def best_server_for_category(self, category: str) -> Optional[ToolServerConfig]:
        for server in self.available_servers():
            if category in server.categories:
                return server
        return None

    def recommended_for_agent(self, agent_category: str) -> list[ToolServerConfig]:
        """Top three servers from each relevant catalog category, deduped, by priority."""
        categories = _RECOMMENDATION_CATEGORIES.get(agent_category, _DEFAULT_RECOMMENDATION_CATEGORIES)
        picked: dict[str, ToolServerConfig] = {}
        for category in categories:
            for server in self.servers_by_category(category)[:3]:
                picked.setdefault(server.name, server)
        return _by_priority(picked.values())

    def server_env(self, name: str) -> dict[str, str]:
        """Environment handed to a launched server: its declared vars that are set."""
        server = self._servers.get(name)
        if server is None:
            return {}
        keys = server.required_env + server.optional_env + ("PATH",)
        return {k: self.env[k] for k in keys if self.env.get(k)}

    def print_status(self) -> None:
        from report import print_tool_server_catalog
        print_tool_server_catalog(self)
