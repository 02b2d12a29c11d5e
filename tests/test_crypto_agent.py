"""
Tests for agents/crypto.py and data_sources/crypto.py: price-target
parsing, distance bands, volatility, reference-price sources and the
end-to-end analysis.
"""

import asyncio
import sys
from pathlib import Path
from unittest import mock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from agents.crypto import (
    CryptoAgent,
    CryptoAgentConfig,
    CryptoEventInfo,
    analyze_news,
    apply_heuristics,
    extract_event_info,
    volatility_adjustment,
)
from agents.tools import StubToolClient
from data_sources.crypto import PriceSnapshot, coin_id_for, parse_price_target
from models.types import Action, Market, NewsItem, Token


def _make_market(question, yes=0.5, condition_id="0xcrypto0001", **kw) -> Market:
    tokens = [Token("Yes", yes), Token("No", None if yes is None else round(1 - yes, 4))]
    return Market(condition_id=condition_id, question=question, tokens=tokens, **kw)


def _snapshot(price, change=0.0) -> PriceSnapshot:
    return PriceSnapshot(coin_id="bitcoin", current_price=price, price_change_24h=change, market_cap=0.0)


BTC_100K = CryptoEventInfo(type="price", asset="BTC", price_target=100_000, direction="above")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
class TestParsing:
    @pytest.mark.parametrize("question,expected", [
        ("Will BTC be above $100,000 by end of 2025?", 100_000),
        ("Will Bitcoin close above $80k on March 1?", 80_000),
        ("Will ETH market cap hit $1b?", 1e9),
        ("Will SOL reach 250 this week?", None),
    ])
    def test_parse_price_target(self, question, expected):
        assert parse_price_target(question) == expected

    def test_coin_id_for(self):
        assert coin_id_for("Will ETH flip BTC?") == "bitcoin"
        assert coin_id_for("Will Solana hit $500?") == "solana"
        assert coin_id_for("Will it rain?") is None

    def test_extract_event_info(self):
        info = extract_event_info(_make_market("Will ETH be below $2,000 on Friday?"))
        assert info.type == "price"
        assert info.asset == "ETH"
        assert info.price_target == 2000
        assert info.direction == "below"

    def test_etf_event(self):
        info = extract_event_info(_make_market("Will the SEC approve a Solana ETF?"))
        assert info.type == "etf"
        assert info.asset == "SOL"


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------
class TestHeuristics:
    def test_large_gap_caps(self):
        result = apply_heuristics(0.4, BTC_100K, _snapshot(60_000), None)
        assert result.probability == pytest.approx(0.3)
        assert "Large gap to target: bearish" in result.factors

    def test_significant_gap(self):
        result = apply_heuristics(0.7, BTC_100K, _snapshot(75_000), None)
        assert result.probability == pytest.approx(0.5)

    def test_close_to_target(self):
        result = apply_heuristics(0.6, BTC_100K, _snapshot(97_000), None)
        assert result.probability == pytest.approx(0.7)

    def test_already_reached(self):
        result = apply_heuristics(0.6, BTC_100K, _snapshot(101_000), None)
        assert result.probability == pytest.approx(0.95)

    def test_momentum(self):
        result = apply_heuristics(0.6, BTC_100K, _snapshot(97_000, change=6.0), None)
        assert result.probability == pytest.approx(0.735)
        assert "24h change: +6.0%" in result.factors

    def test_below_direction(self):
        info = CryptoEventInfo(type="price", asset="BTC", price_target=40_000, direction="below")
        assert apply_heuristics(0.5, info, _snapshot(39_000), None).probability == pytest.approx(0.95)
        assert apply_heuristics(0.5, info, _snapshot(80_000), None).probability == pytest.approx(0.3)

    def test_no_reference_price(self):
        result = apply_heuristics(0.8, BTC_100K, None, None)
        assert result.probability == pytest.approx(0.76)

    def test_etf_pull(self):
        result = apply_heuristics(0.8, CryptoEventInfo(type="etf"), None, None)
        assert result.probability == pytest.approx(0.755)

    def test_short_timeframe(self):
        result = apply_heuristics(0.65, BTC_100K, None, 2)
        assert result.probability == pytest.approx(0.585)
        assert "Short timeframe for price movement" in result.factors

    def test_volatility_adjustment(self):
        assert volatility_adjustment(0.95, None) == pytest.approx(-0.0225)
        assert volatility_adjustment(0.5, _snapshot(1, change=12)) == pytest.approx(0.0)
        assert volatility_adjustment(0.3, _snapshot(1, change=-15)) == pytest.approx(0.006)


class TestNews:
    def test_etf_approval_signal(self):
        news = [NewsItem(title="SEC set to approve spot ETF", url="https://e")]
        analysis = analyze_news(news, CryptoEventInfo(type="etf"))
        # one bullish hit (approve) plus the approval bonus
        assert analysis.sentiment == pytest.approx(0.14)
        assert "ETF approval signal" in analysis.insights
        assert "Regulatory news" in analysis.insights

    def test_sentiment_capped(self):
        news = [NewsItem(title="crash dump sell hack exploit scam fear bearish")]
        assert analyze_news(news, CryptoEventInfo()).sentiment == pytest.approx(-0.25)


# ---------------------------------------------------------------------------
# Reference price and end to end
# ---------------------------------------------------------------------------
class TestCryptoAgent:
    def test_reference_price_from_tool(self):
        agent = CryptoAgent()
        coingecko = StubToolClient({"get_coin_price": lambda args: {"price": 97000, "price_change_24h": 2.0}})

        async def run():
            await agent.tools.connect("coingecko", coingecko)
            return await agent.reference_price("BTC")

        snap = asyncio.run(run())
        assert snap.current_price == 97000
        assert snap.price_change_24h == 2.0
        assert coingecko.calls[0][1]["coin_id"] == "bitcoin"

    def test_malformed_tool_price_falls_back_to_heuristics(self, caplog):
        agent = CryptoAgent()
        coingecko = StubToolClient({"get_coin_price": lambda args: {"price": "n/a"}})
        market = _make_market("Will Bitcoin price reach $150,000?", yes=0.3)

        async def run():
            await agent.tools.connect("coingecko", coingecko)
            return await agent.reference_price("BTC"), await agent.analyze_with_cache(market)

        with caplog.at_level("WARNING", logger="recommender.agents.crypto"):
            snap, rec = asyncio.run(run())
        assert snap is None
        assert "malformed coingecko price" in caplog.text
        assert rec.reasoning != "Analysis error"
        assert rec.estimated_probability is not None
        assert rec.confidence > 0

    def test_price_feed_only_when_enabled(self):
        feed = mock.AsyncMock(return_value={"bitcoin": _snapshot(50_000)})

        disabled = CryptoAgent(price_feed=feed)
        assert asyncio.run(disabled.reference_price("BTC")) is None
        feed.assert_not_awaited()

        enabled = CryptoAgent(CryptoAgentConfig(use_price_feed=True), price_feed=feed)
        snap = asyncio.run(enabled.reference_price("BTC"))
        assert snap.current_price == 50_000
        feed.assert_awaited_once_with(["bitcoin"])

    def test_price_market_with_reference(self):
        agent = CryptoAgent()
        coingecko = StubToolClient({"get_coin_price": lambda args: {"price": 60000}})
        market = _make_market("Will Bitcoin reach $100k by December?", yes=0.5)

        async def run():
            await agent.tools.connect("coingecko", coingecko)
            return await agent.analyze_with_cache(market)

        rec = asyncio.run(run())
        # 0.5*0.55 + 0.3*0.3 + 0.5*0.15
        assert rec.estimated_probability == pytest.approx(0.44)
        # 0.45 base + three factors + real price
        assert rec.confidence == pytest.approx(0.72)
        assert rec.action == Action.SELL
        assert rec.metadata["price_data"]["real_price"] == 60000
        assert "Asset: BTC" in rec.reasoning
        assert "Target: $100,000" in rec.reasoning

    def test_no_price(self):
        rec = asyncio.run(CryptoAgent().analyze_with_cache(_make_market("Will BTC hit $1m?", yes=None)))
        assert rec.action == Action.SKIP
        assert rec.confidence == 0.0
