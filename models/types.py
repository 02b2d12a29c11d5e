"""
Core data models for the market recommender.

Markets come in from the caller (Gamma/CLOB shaped dicts are accepted via
Market.from_dict); agents emit AgentRecommendation; the AI filter emits
MarketAnalysis.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ============================================================================
# MARKET INPUT
# ============================================================================

@dataclass
class Token:
    outcome: str
    price: Optional[float] = None
    token_id: str = ""


@dataclass
class LiquidityMetrics:
    has_liquidity: bool = False
    spread_percent: Optional[float] = None
    bid_depth: float = 0.0
    ask_depth: float = 0.0


@dataclass
class Market:
    """
    A binary prediction market as seen by the agents and the filter.
    Prices live on the tokens; the YES token price is the market's implied probability.
    """
    condition_id: str
    question: str
    description: str = ""
    tokens: list[Token] = field(default_factory=list)
    end_date_iso: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    active: bool = True
    accepting_orders: bool = True
    neg_risk: bool = False
    liquidity_metrics: Optional[LiquidityMetrics] = None

    def price_for(self, outcome: str) -> Optional[float]:
        for token in self.tokens:
            if token.outcome.lower() == outcome.lower():
                return token.price
        return None

    def yes_price(self) -> Optional[float]:
        return self.price_for("Yes")

    def no_price(self) -> Optional[float]:
        return self.price_for("No")

    def end_date(self) -> Optional[datetime]:
        """Parse end_date_iso into an aware datetime, or None if absent/unparseable."""
        if not self.end_date_iso:
            return None
        try:
            dt = datetime.fromisoformat(self.end_date_iso.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    def days_until_end(self, now: Optional[datetime] = None) -> Optional[float]:
        end = self.end_date()
        if end is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (end - now).total_seconds() / 86400

    @classmethod
    def from_dict(cls, data: dict) -> "Market":
        """Build a Market from a CLOB/Gamma style dict (camelCase or snake_case keys)."""
        def pick(*keys, default=None):
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        tokens = []
        for raw in pick("tokens", default=[]):
            price = raw.get("price")
            tokens.append(Token(
                outcome=str(raw.get("outcome", "")),
                price=float(price) if price is not None else None,
                token_id=str(raw.get("token_id") or raw.get("tokenId") or ""),
            ))

        liquidity = None
        raw_liq = pick("liquidity_metrics", "liquidityMetrics")
        if raw_liq:
            liquidity = LiquidityMetrics(
                has_liquidity=bool(raw_liq.get("has_liquidity", raw_liq.get("hasLiquidity", False))),
                spread_percent=raw_liq.get("spread_percent", raw_liq.get("spreadPercent")),
                bid_depth=float(raw_liq.get("bid_depth", raw_liq.get("bidDepth", 0)) or 0),
                ask_depth=float(raw_liq.get("ask_depth", raw_liq.get("askDepth", 0)) or 0),
            )

        return cls(
            condition_id=str(pick("condition_id", "conditionId", default="")),
            question=str(pick("question", default="")),
            description=str(pick("description", default="")),
            tokens=tokens,
            end_date_iso=pick("end_date_iso", "endDateIso", "endDate"),
            category=pick("category"),
            tags=list(pick("tags", default=[])),
            active=bool(pick("active", default=True)),
            accepting_orders=bool(pick("accepting_orders", "acceptingOrders", default=True)),
            neg_risk=bool(pick("neg_risk", "negRisk", default=False)),
            liquidity_metrics=liquidity,
        )


# ============================================================================
# ENRICHMENT
# ============================================================================

@dataclass
class NewsItem:
    title: str
    url: str = ""
    content: str = ""
    published_date: Optional[str] = None
    source: Optional[str] = None
    relevance_score: Optional[float] = None


@dataclass
class AnalysisContext:
    """Per-call context handed to an agent. recent_news is filled by the agent if empty."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    recent_news: list[NewsItem] = field(default_factory=list)
    historical_data: Any = None
    extra: dict = field(default_factory=dict)


@dataclass
class ToolResult:
    """Output of a tool call: a list of content items ({"type": "text", "text": ...})."""
    content: list[dict] = field(default_factory=list)
    is_error: bool = False

    def texts(self) -> list[str]:
        return [c.get("text", "") for c in self.content if c.get("type") == "text" and c.get("text")]


# ============================================================================
# AGENT OUTPUT
# ============================================================================

class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    SKIP = "SKIP"


@dataclass(frozen=True)
class AgentRecommendation:
    """
    Immutable agent verdict. Numeric fields are clamped on construction:
    confidence and estimated_probability to [0, 1], edge to [-1, 1].
    """
    action: Action
    confidence: float
    reasoning: str
    sources: tuple[str, ...] = ()
    estimated_probability: Optional[float] = None
    edge: Optional[float] = None
    metadata: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp(float(self.confidence), 0.0, 1.0))
        object.__setattr__(self, "sources", tuple(self.sources))
        if self.estimated_probability is not None:
            object.__setattr__(
                self, "estimated_probability", clamp(float(self.estimated_probability), 0.0, 1.0)
            )
        if self.edge is not None:
            object.__setattr__(self, "edge", clamp(float(self.edge), -1.0, 1.0))


# ============================================================================
# AI FILTER
# ============================================================================

class TradeAction(str, Enum):
    BUY_YES = "BUY_YES"
    BUY_NO = "BUY_NO"
    AVOID = "AVOID"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]

    @classmethod
    def parse(cls, value: Any) -> "RiskLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


@dataclass
class MarketAnalysis:
    should_trade: bool
    confidence: float
    reasoning: str
    attractiveness: float
    risk_level: RiskLevel = RiskLevel.MEDIUM
    risk_factors: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)
    estimated_probability: Optional[float] = None
    recommended_action: TradeAction = TradeAction.AVOID
    sources: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, reasoning: str, risk_factors: Optional[list[str]] = None) -> "MarketAnalysis":
        """Default no-trade analysis used when estimation for a market fails."""
        return cls(
            should_trade=False,
            confidence=0.0,
            reasoning=reasoning,
            attractiveness=0.0,
            risk_level=RiskLevel.HIGH,
            risk_factors=list(risk_factors or []),
            opportunities=[],
        )


@dataclass
class FilterContext:
    """Trading preferences the filter applies after estimation."""
    strategy_type: str = "general"
    min_attractiveness: float = 0.0
    max_risk: RiskLevel = RiskLevel.HIGH
    preferred_categories: list[str] = field(default_factory=list)
    excluded_categories: list[str] = field(default_factory=list)


@dataclass
class FilteredMarket:
    market: Market
    analysis: MarketAnalysis
