"""
Politics agent: elections, legislation, nominations and policy markets.

Political markets are priced mostly on polls and narrative. The agent leans
hard on the market price (0.6 weight), blends in poll-implied probabilities
when two candidates can be polled, and shades extreme prices and
last-week-before-election prices toward 0.5.
"""
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from agents.base import AgentConfig, BaseEventAgent, clamp_probability, clamp_unit, count_hits
from models.reasons import REASON_NO_PRICE
from models.types import AgentRecommendation, AnalysisContext, Market, NewsItem

POLITICS_KEYWORDS: dict[str, list[str]] = {
    "us_election": ["trump", "biden", "harris", "presidential election", "democrat", "republican", "gop",
                    "dnc", "rnc", "electoral college", "swing state", "primary election", "caucus"],
    "us_policy": ["congress", "senate vote", "house of representatives", "legislation", "supreme court",
                  "scotus", "federal government", "executive order", "veto"],
    "international": ["uk election", "parliament", "prime minister", "brexit", "european union",
                      "nato summit", "united nations", "g7 summit", "g20"],
    "general": ["ballot measure", "approval rating", "impeachment", "resign from office", "cabinet secretary",
                "governor election", "mayor election"],
}

KNOWN_POLITICIANS: dict[str, dict[str, str]] = {
    "trump": {"party": "Republican", "role": "Former President"},
    "biden": {"party": "Democrat", "role": "President"},
    "harris": {"party": "Democrat", "role": "Vice President"},
    "desantis": {"party": "Republican", "role": "Governor"},
    "newsom": {"party": "Democrat", "role": "Governor"},
    "pelosi": {"party": "Democrat", "role": "Representative"},
    "mcconnell": {"party": "Republican", "role": "Senator"},
}

POSITIVE_WORDS = ("lead", "ahead", "surge", "win", "victory", "support", "endorse", "popular")
NEGATIVE_WORDS = ("trail", "behind", "scandal", "controversy", "decline", "lose", "unpopular", "criticism")

_POLL_PCT = re.compile(r"(\d{1,2})%")
_NUMBERS = re.compile(r"\d+%?")

WEIGHT_MARKET = 0.6
WEIGHT_HEURISTIC = 0.3
WEIGHT_NEWS = 0.1
SENTIMENT_CAP = 0.2


@dataclass
class PoliticsAgentConfig(AgentConfig):
    name: str = "PoliticsAgent"
    min_confidence: float = 0.6
    min_edge: float = 0.03
    use_historical_patterns: bool = True


@dataclass
class PoliticalEventInfo:
    type: str = "other"  # election | legislation | nomination | policy | other
    country: str = "USA"
    candidates: list[str] = field(default_factory=list)
    is_incumbent: bool = False
    election_date: Optional[datetime] = None


@dataclass
class PollData:
    candidate: str
    percentage: int
    source: str = ""


@dataclass
class NewsAnalysis:
    sentiment: float = 0.0
    insights: str = ""
    sources: list[str] = field(default_factory=list)


@dataclass
class HeuristicResult:
    probability: float
    factors: list[str]


def extract_event_info(market: Market) -> PoliticalEventInfo:
    combined = f"{market.question} {market.description or ''}".lower()

    if any(w in combined for w in ("election", "win", "vote")):
        event_type = "election"
    elif any(w in combined for w in ("bill", "pass", "legislation")):
        event_type = "legislation"
    elif "nominate" in combined or "nomination" in combined:
        event_type = "nomination"
    elif "policy" in combined or "executive order" in combined:
        event_type = "policy"
    else:
        event_type = "other"

    if "uk" in combined or "britain" in combined or "parliament" in combined:
        country = "UK"
    elif "europe" in combined or "eu " in combined:
        country = "EU"
    else:
        country = "USA"

    return PoliticalEventInfo(
        type=event_type,
        country=country,
        candidates=[name for name in KNOWN_POLITICIANS if name in combined],
        is_incumbent=any(w in combined for w in ("incumbent", "re-elect", "reelect")),
        election_date=market.end_date(),
    )


def analyze_news(news: list[NewsItem]) -> NewsAnalysis:
    score = 0.0
    insights = []
    sources = []
    for article in news:
        content = f"{article.title} {article.content or ''}".lower()
        if article.url:
            sources.append(article.url)
        score += (count_hits(content, POSITIVE_WORDS) - count_hits(content, NEGATIVE_WORDS)) * 0.05

        if "poll" in content or "survey" in content:
            insights.append(f"Poll mentioned: {article.title}")
            numbers = _NUMBERS.findall(article.title)
            if numbers:
                insights.append(f"Numbers: {', '.join(numbers)}")

        if "endorse" in content:
            insights.append(f"Endorsement: {article.title}")
            score += 0.02

    return NewsAnalysis(
        sentiment=max(-SENTIMENT_CAP, min(SENTIMENT_CAP, score)),
        insights="; ".join(insights),
        sources=sources[:5],
    )


def polls_from_news(candidate: str, items: list[NewsItem]) -> list[PollData]:
    """First plausible (30-70%) vote share per article."""
    polls = []
    for item in items:
        for match in _POLL_PCT.findall(f"{item.title} {item.content or ''}"):
            pct = int(match)
            if 30 <= pct <= 70:
                polls.append(PollData(candidate=candidate, percentage=pct, source=item.url))
                break
    return polls


def apply_heuristics(
    price: float, info: PoliticalEventInfo, polls: list[PollData], days_to_election: Optional[float]
) -> HeuristicResult:
    adjusted = price
    factors = []

    if polls:
        by_candidate: dict[str, list[int]] = defaultdict(list)
        for poll in polls:
            by_candidate[poll.candidate].append(poll.percentage)
        averages = {c: sum(v) / len(v) for c, v in by_candidate.items()}
        for candidate, avg in averages.items():
            factors.append(f"Poll: {candidate} {avg:.0f}%")

        if len(averages) == 2:
            avg1, avg2 = averages.values()
            poll_probability = avg1 / (avg1 + avg2)
            if abs(price - poll_probability) > 0.1:
                adjusted = price * 0.7 + poll_probability * 0.3
                factors.append("Adjusted based on polls")

    if info.is_incumbent and price > 0.4:
        adjusted += 0.02
        factors.append("Incumbent advantage")

    if price > 0.85:
        adjusted = price * 0.97
        factors.append("High probability adjustment: political uncertainty")

    if days_to_election is not None and days_to_election < 7:
        adjusted -= (price - 0.5) * 0.05
        factors.append("Pre-election uncertainty adjustment")

    return HeuristicResult(probability=clamp_probability(adjusted), factors=factors)


def combine_probabilities(price: float, heuristic: float, sentiment: float, historical: float = 0.0) -> float:
    combined = (
        price * WEIGHT_MARKET
        + heuristic * WEIGHT_HEURISTIC
        + (price + sentiment) * WEIGHT_NEWS
        + historical
    )
    return clamp_probability(combined)


class PoliticsAgent(BaseEventAgent):
    category = "politics"
    KEYWORDS = POLITICS_KEYWORDS

    def __init__(self, config: Optional[PoliticsAgentConfig] = None, **kwargs):
        super().__init__(config or PoliticsAgentConfig(), **kwargs)
        self.politics_config: PoliticsAgentConfig = self.config  # type: ignore[assignment]

    async def search_polls(self, candidate: str) -> list[PollData]:
        items = await self.search_via_tool("tavily", "search", {
            "query": f"{candidate} poll percentage 2024 2025",
            "max_results": 3,
            "search_depth": "basic",
        })
        return polls_from_news(candidate, items)

    async def search_political_news(self, query: str) -> list[NewsItem]:
        news = await self.search_via_tool("tavily", "search", {
            "query": f"{query} politics election polls",
            "max_results": 5,
            "search_depth": "advanced",
        })
        if news:
            return news
        return await self.search_via_tool(
            "brave-search", "brave_search", {"query": f"{query} politics election", "count": 5},
            content_field="description",
        )

    def historical_adjustment(self, info: PoliticalEventInfo) -> float:
        """Placeholder hook for a cross-cycle adjustment; contributes nothing until one exists."""
        return 0.0

    async def analyze(self, market: Market, context: AnalysisContext) -> AgentRecommendation:
        price = self.yes_price(market)
        if price is None:
            return self.default_recommendation(REASON_NO_PRICE)

        info = extract_event_info(market)

        polls: list[PollData] = []
        if info.type == "election":
            for candidate in info.candidates[:2]:
                polls.extend(await self.search_polls(candidate))

        news = list(context.recent_news)
        if not news:
            news = await self.search_political_news(" ".join(info.candidates) or market.question)
        news_analysis = analyze_news(news) if news else NewsAnalysis()

        heuristic = apply_heuristics(price, info, polls, market.days_until_end())
        historical = self.historical_adjustment(info) if self.politics_config.use_historical_patterns else 0.0
        estimate = combine_probabilities(price, heuristic.probability, news_analysis.sentiment, historical)
        edge = self.calculate_edge(estimate, price)
        confidence = self._confidence(heuristic, news_analysis, market, polls)

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
                "poll_data": {"poll_count": len(polls), "polls": polls, "source": "tavily"},
            },
        )

    def _confidence(self, heuristic, news: NewsAnalysis, market: Market, polls: list[PollData]) -> float:
        confidence = 0.5 + len(heuristic.factors) * 0.05
        if news.sources:
            confidence += min(0.15, len(news.sources) * 0.03)
        if polls:
            confidence += 0.1
            if len({p.source for p in polls if p.source}) > 1:
                confidence += 0.05
        if market.liquidity_metrics and market.liquidity_metrics.has_liquidity:
            confidence += 0.1
        return clamp_unit(confidence)

    @staticmethod
    def _reasoning(info: PoliticalEventInfo, price, estimate, edge, heuristic) -> str:
        parts = [f"Type: {info.type}", f"Country: {info.country}"]
        if info.candidates:
            parts.append(f"Candidates: {', '.join(info.candidates)}")
        parts.append(f"Market: {price * 100:.1f}%")
        parts.append(f"Estimated: {estimate * 100:.1f}%")
        parts.append(f"Edge: {edge * 100:.2f}%")
        if heuristic.factors:
            parts.append(f"Factors: {', '.join(heuristic.factors)}")
        return " | ".join(parts)

    def describe_lines(self) -> list[str]:
        cfg = self.politics_config
        return super().describe_lines() + [
            f"- Min Edge: {cfg.min_edge}",
            f"- Use Historical Patterns: {cfg.use_historical_patterns} (placeholder, adds 0.0)",
        ]
