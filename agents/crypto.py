"""
Crypto agent: price-target, ETF, regulation, upgrade and halving markets.

For price-target markets the agent compares the target against a live
reference price (coingecko tool first, CoinGecko HTTP feed second) and
places the estimate in discrete distance bands. Without a reference price
it falls back to price-shape heuristics only.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from agents.base import AgentConfig, BaseEventAgent, clamp_probability, clamp_unit, count_hits, parse_json_payload
from data_sources.crypto import TICKER_TO_COINGECKO, PriceSnapshot, fetch_prices, parse_price_target
from models.reasons import REASON_NO_PRICE
from models.types import AgentRecommendation, AnalysisContext, Market, NewsItem

logger = logging.getLogger("recommender.agents.crypto")

CRYPTO_KEYWORDS: dict[str, list[str]] = {
    "bitcoin": ["bitcoin", "btc", "satoshi", "halving", "lightning network"],
    "ethereum": ["ethereum", "eth", "vitalik", "merge", "eip", "layer 2", "rollup"],
    "altcoins": ["solana", "sol", "cardano", "ada", "polkadot", "dot", "avalanche", "avax", "polygon",
                 "matic", "xrp", "ripple", "dogecoin", "doge", "shiba"],
    "defi": ["defi", "uniswap", "aave", "compound", "maker", "dao", "yield", "staking"],
    "regulatory": ["sec", "etf", "regulation", "ban", "legal", "approve", "reject", "lawsuit", "court"],
    "general": ["crypto", "cryptocurrency", "blockchain", "token", "coin", "market cap", "ath",
                "all-time high"],
}

# Checked in order; first substring hit wins
KNOWN_ASSETS: dict[str, str] = {
    "bitcoin": "BTC",
    "btc": "BTC",
    "ethereum": "ETH",
    "eth": "ETH",
    "solana": "SOL",
    "sol": "SOL",
    "cardano": "ADA",
    "xrp": "XRP",
    "ripple": "XRP",
    "dogecoin": "DOGE",
    "doge": "DOGE",
    "polygon": "MATIC",
    "matic": "MATIC",
}

BULLISH_WORDS = ("bullish", "surge", "rally", "buy", "accumulate", "institutional", "adoption", "approve",
                 "ath", "breakout")
BEARISH_WORDS = ("bearish", "crash", "dump", "sell", "reject", "ban", "hack", "exploit", "scam", "fear")

WEIGHT_MARKET = 0.55
WEIGHT_HEURISTIC = 0.3
WEIGHT_NEWS = 0.15
SENTIMENT_CAP = 0.25

PriceFeed = Callable[[list[str]], Awaitable[dict[str, PriceSnapshot]]]


@dataclass
class CryptoAgentConfig(AgentConfig):
    name: str = "CryptoAgent"
    min_confidence: float = 0.55
    min_edge: float = 0.04
    consider_volatility: bool = True
    use_price_feed: bool = False  # fall back to the CoinGecko HTTP feed when no coingecko tool


@dataclass
class CryptoEventInfo:
    type: str = "other"  # price | etf | regulation | upgrade | halving | other
    asset: Optional[str] = None
    price_target: Optional[float] = None
    direction: Optional[str] = None  # above | below
    deadline: Optional[datetime] = None


@dataclass
class NewsAnalysis:
    sentiment: float = 0.0
    insights: str = ""
    sources: list[str] = field(default_factory=list)


@dataclass
class HeuristicResult:
    probability: float
    factors: list[str]


def extract_event_info(market: Market) -> CryptoEventInfo:
    combined = f"{market.question} {market.description or ''}".lower()

    if any(w in combined for w in ("price", "reach", "hit", "above", "below")):
        event_type = "price"
    elif "etf" in combined:
        event_type = "etf"
    elif any(w in combined for w in ("sec", "regulation", "ban", "legal")):
        event_type = "regulation"
    elif any(w in combined for w in ("upgrade", "fork", "merge")):
        event_type = "upgrade"
    elif "halving" in combined:
        event_type = "halving"
    else:
        event_type = "other"

    asset = next((ticker for kw, ticker in KNOWN_ASSETS.items() if kw in combined), None)

    if any(w in combined for w in ("above", "reach", "hit")):
        direction = "above"
    elif "below" in combined or "under" in combined:
        direction = "below"
    else:
        direction = None

    return CryptoEventInfo(
        type=event_type,
        asset=asset,
        price_target=parse_price_target(market.question),
        direction=direction,
        deadline=market.end_date(),
    )


def analyze_news(news: list[NewsItem], info: CryptoEventInfo) -> NewsAnalysis:
    score = 0.0
    insights = []
    sources = []
    for article in news:
        content = f"{article.title} {article.content or ''}".lower()
        if article.url:
            sources.append(article.url)
        score += (count_hits(content, BULLISH_WORDS) - count_hits(content, BEARISH_WORDS)) * 0.04

        if "etf" in content and info.type == "etf":
            if "approve" in content or "approval" in content:
                score += 0.1
                insights.append(f"ETF approval signal: {article.title}")
            elif "reject" in content or "delay" in content:
                score -= 0.1
                insights.append(f"ETF rejection/delay: {article.title}")

        if "sec" in content or "regulation" in content:
            insights.append(f"Regulatory news: {article.title}")

        if "whale" in content or "large transfer" in content:
            insights.append(f"Whale activity: {article.title}")

    return NewsAnalysis(
        sentiment=max(-SENTIMENT_CAP, min(SENTIMENT_CAP, score)),
        insights="; ".join(insights),
        sources=sources[:5],
    )


def apply_heuristics(
    price: float, info: CryptoEventInfo, snapshot: Optional[PriceSnapshot], days_to_deadline: Optional[float]
) -> HeuristicResult:
    adjusted = price
    factors = []
    real = snapshot.current_price if snapshot and snapshot.current_price > 0 else None

    if info.type == "price" and info.price_target and real:
        target = info.price_target
        pct = (target - real) / real * 100
        factors.append(f"Current {info.asset or 'asset'}: ${real:,.0f}")
        factors.append(f"Target: ${target:,.0f} ({pct:+.1f}%)")

        if info.direction == "above":
            if real >= target:
                adjusted = 0.95
                factors.append("Target already reached!")
            elif pct > 50:
                adjusted = min(price, 0.3)
                factors.append("Large gap to target: bearish")
            elif pct > 20:
                adjusted = min(price * 0.85, 0.5)
                factors.append("Significant gap to target")
            elif pct < 5:
                adjusted = max(price * 1.1, 0.7)
                factors.append("Close to target: bullish")
        elif info.direction == "below":
            if real <= target:
                adjusted = 0.95
                factors.append("Already below target!")
            elif pct < -30:
                adjusted = min(price, 0.3)
                factors.append("Large drop needed: bearish outlook")

        change = snapshot.price_change_24h
        if abs(change) > 5:
            factors.append(f"24h change: {change:+.1f}%")
            if (change > 0 and info.direction == "above") or (change < 0 and info.direction == "below"):
                adjusted *= 1.05
    elif info.type == "price" and info.direction == "above" and price > 0.7:
        adjusted = price * 0.95
        factors.append("High probability price target: slight bearish adjustment")

    if info.type == "etf":
        adjusted -= (adjusted - 0.5) * 0.15
        factors.append("ETF uncertainty adjustment")

    if info.type == "regulation":
        adjusted -= (adjusted - 0.5) * 0.1
        factors.append("Regulatory uncertainty")

    if info.type == "halving":
        factors.append("Halving event (timing predictable)")

    if (
        days_to_deadline is not None
        and days_to_deadline < 3
        and info.type == "price"
        and price > 0.6
        and info.direction == "above"
    ):
        adjusted *= 0.9
        factors.append("Short timeframe for price movement")

    return HeuristicResult(probability=clamp_probability(adjusted), factors=factors)


def volatility_adjustment(price: float, snapshot: Optional[PriceSnapshot]) -> float:
    """Small pull toward 0.5 for extreme prices and for assets moving >10% a day."""
    adj = 0.0
    if price > 0.9 or price < 0.1:
        adj = (0.5 - price) * 0.05
    if snapshot and abs(snapshot.price_change_24h) > 10:
        adj += (0.5 - price) * 0.03
    return adj


def combine_probabilities(price: float, heuristic: float, sentiment: float, volatility: float) -> float:
    combined = (
        price * WEIGHT_MARKET
        + heuristic * WEIGHT_HEURISTIC
        + (price + sentiment) * WEIGHT_NEWS
        + volatility
    )
    return clamp_probability(combined)


class CryptoAgent(BaseEventAgent):
    category = "crypto"
    KEYWORDS = CRYPTO_KEYWORDS

    def __init__(self, config: Optional[CryptoAgentConfig] = None, price_feed: PriceFeed = fetch_prices, **kwargs):
        super().__init__(config or CryptoAgentConfig(), **kwargs)
        self.crypto_config: CryptoAgentConfig = self.config  # type: ignore[assignment]
        self.price_feed = price_feed

    async def reference_price(self, asset: str) -> Optional[PriceSnapshot]:
        coin_id = TICKER_TO_COINGECKO.get(asset.upper(), asset.lower())

        if self.tools.is_connected("coingecko"):
            data = parse_json_payload(
                await self.tools.call("coingecko", "get_coin_price", {"coin_id": coin_id, "vs_currency": "usd"})
            )
            if data and data.get("price"):
                try:
                    return PriceSnapshot(
                        coin_id=coin_id,
                        current_price=float(data["price"]),
                        price_change_24h=float(data.get("price_change_24h") or 0),
                        market_cap=float(data.get("market_cap") or 0),
                        total_volume=float(data.get("total_volume") or 0),
                    )
                except (TypeError, ValueError) as e:
                    logger.warning("[%s] Ignoring malformed coingecko price for %s: %s", self.name, coin_id, e)

        if self.crypto_config.use_price_feed:
            snapshots = await self.price_feed([coin_id])
            return snapshots.get(coin_id)
        return None

    async def search_crypto_news(self, asset: str) -> list[NewsItem]:
        return await self.search_via_tool("tavily", "search", {
            "query": f"{asset} cryptocurrency news",
            "max_results": 5,
            "search_depth": "basic",
        })

    async def analyze(self, market: Market, context: AnalysisContext) -> AgentRecommendation:
        price = self.yes_price(market)
        if price is None:
            return self.default_recommendation(REASON_NO_PRICE)

        info = extract_event_info(market)

        snapshot = None
        if info.type == "price" and info.asset:
            snapshot = await self.reference_price(info.asset)
            if snapshot:
                logger.debug("[%s] %s reference price $%.2f", self.name, info.asset, snapshot.current_price)

        news = list(context.recent_news)
        if not news and info.asset:
            news = await self.search_crypto_news(info.asset)
        news_analysis = analyze_news(news, info) if news else NewsAnalysis()

        heuristic = apply_heuristics(price, info, snapshot, market.days_until_end())
        volatility = volatility_adjustment(price, snapshot) if self.crypto_config.consider_volatility else 0.0
        estimate = combine_probabilities(price, heuristic.probability, news_analysis.sentiment, volatility)
        edge = self.calculate_edge(estimate, price)
        confidence = self._confidence(heuristic, news_analysis, market, info, snapshot)

        return AgentRecommendation(
            action=self.decide_action(confidence, edge),
            confidence=confidence,
            reasoning=self._reasoning(info, price, estimate, edge, heuristic),
            sources=tuple(news_analysis.sources),
            estimated_probability=estimate,
            edge=edge,
            metadata={
                "event_info": info,
                "heuristic_probability": heuristic.probability,
                "heuristic_factors": heuristic.factors,
                "news_sentiment": news_analysis.sentiment,
                "price_data": {
                    "real_price": snapshot.current_price if snapshot else None,
                    "change_24h": snapshot.price_change_24h if snapshot else None,
                    "source": "coingecko",
                },
            },
        )

    def _confidence(self, heuristic, news: NewsAnalysis, market: Market, info: CryptoEventInfo, snapshot) -> float:
        confidence = 0.45 + len(heuristic.factors) * 0.04
        if news.sources:
            confidence += min(0.12, len(news.sources) * 0.025)
        if market.liquidity_metrics and market.liquidity_metrics.has_liquidity:
            confidence += 0.08
        if snapshot and info.type == "price":
            confidence += 0.15
        if info.type == "halving":
            confidence += 0.1
        if info.type in ("etf", "regulation"):
            confidence -= 0.05
        return clamp_unit(confidence)

    @staticmethod
    def _reasoning(info: CryptoEventInfo, price, estimate, edge, heuristic) -> str:
        parts = []
        if info.asset:
            parts.append(f"Asset: {info.asset}")
        parts.append(f"Type: {info.type}")
        if info.price_target:
            parts.append(f"Target: ${info.price_target:,.0f}")
        parts.append(f"Market: {price * 100:.1f}%")
        parts.append(f"Estimated: {estimate * 100:.1f}%")
        parts.append(f"Edge: {edge * 100:.2f}%")
        if heuristic.factors:
            parts.append(f"Factors: {', '.join(heuristic.factors)}")
        return " | ".join(parts)

    def describe_lines(self) -> list[str]:
        cfg = self.crypto_config
        return super().describe_lines() + [
            f"- Min Edge: {cfg.min_edge}",
            f"- Consider Volatility: {cfg.consider_volatility}",
        ]
