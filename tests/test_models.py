"""
Tests for models/types.py: market parsing and recommendation clamping.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from models.types import Action, AgentRecommendation, Market, RiskLevel, Token


class TestMarket:
    def test_from_camel_case_dict(self):
        market = Market.from_dict({
            "conditionId": "0xabc",
            "question": "Will it happen?",
            "tokens": [
                {"outcome": "Yes", "price": "0.42", "tokenId": "1"},
                {"outcome": "No", "price": 0.58, "token_id": "2"},
            ],
            "endDateIso": "2025-06-01T00:00:00Z",
            "acceptingOrders": False,
            "negRisk": True,
            "liquidityMetrics": {"hasLiquidity": True, "spreadPercent": 1.5, "bidDepth": 100},
        })
        assert market.condition_id == "0xabc"
        assert market.yes_price() == pytest.approx(0.42)
        assert market.no_price() == pytest.approx(0.58)
        assert market.tokens[0].token_id == "1"
        assert market.tokens[1].token_id == "2"
        assert not market.accepting_orders
        assert market.neg_risk
        assert market.liquidity_metrics.has_liquidity
        assert market.liquidity_metrics.spread_percent == 1.5
        assert market.liquidity_metrics.bid_depth == 100.0

    def test_missing_prices(self):
        market = Market.from_dict({"condition_id": "0x1", "question": "q", "tokens": [{"outcome": "Yes"}]})
        assert market.yes_price() is None
        assert market.no_price() is None
        assert market.liquidity_metrics is None

    def test_end_date(self):
        market = Market(condition_id="0x1", question="q", end_date_iso="2025-01-03")
        assert market.end_date() == datetime(2025, 1, 3, tzinfo=timezone.utc)
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert market.days_until_end(now) == pytest.approx(2.0)
        assert Market(condition_id="0x1", question="q", end_date_iso="soon").end_date() is None

    def test_outcome_lookup_case_insensitive(self):
        market = Market(condition_id="0x1", question="q", tokens=[Token("YES", 0.3)])
        assert market.yes_price() == 0.3


class TestAgentRecommendation:
    def test_clamped_on_construction(self):
        rec = AgentRecommendation(
            action=Action.BUY, confidence=1.5, reasoning="r", sources=["a"],
            estimated_probability=-0.2, edge=1.8,
        )
        assert rec.confidence == 1.0
        assert rec.estimated_probability == 0.0
        assert rec.edge == 1.0
        assert rec.sources == ("a",)

    def test_frozen(self):
        rec = AgentRecommendation(action=Action.SKIP, confidence=0.0, reasoning="r")
        with pytest.raises(AttributeError):
            rec.confidence = 0.5


class TestRiskLevel:
    def test_parse_and_rank(self):
        assert RiskLevel.parse("LOW") == RiskLevel.LOW
        assert RiskLevel.parse(None) == RiskLevel.MEDIUM
        assert RiskLevel.parse(RiskLevel.HIGH) == RiskLevel.HIGH
        assert RiskLevel.LOW.rank < RiskLevel.MEDIUM.rank < RiskLevel.HIGH.rank
