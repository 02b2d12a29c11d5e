"""
Sports agent: NBA/NFL/MLB/NHL/soccer winner and series markets.

Heuristics encode two well-known sports-book biases: heavy favorites are
overpriced and longshots underpriced, and playoff games are noisier than the
regular season. Team news comes from the tavily tool, team stats from tako;
both are optional.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from agents.base import AgentConfig, BaseEventAgent, clamp_probability, clamp_unit, count_hits, parse_json_payload
from models.reasons import REASON_LEAGUE_EXCLUDED, REASON_NO_PRICE
from models.types import AgentRecommendation, AnalysisContext, Market, NewsItem

SPORT_KEYWORDS: dict[str, list[str]] = {
    "basketball": ["nba", "basketball", "lakers", "celtics", "warriors", "bulls", "heat", "nuggets",
                   "suns", "bucks", "mvp", "playoffs", "finals"],
    "football": ["nfl", "football", "super bowl", "chiefs", "eagles", "cowboys", "patriots", "packers",
                 "49ers", "touchdown", "quarterback"],
    "baseball": ["mlb", "baseball", "world series", "yankees", "dodgers", "red sox", "cubs", "home run"],
    "hockey": ["nhl", "hockey", "stanley cup", "bruins", "rangers", "maple leafs", "canadiens"],
    "soccer": ["soccer", "football", "premier league", "champions league", "world cup", "la liga",
               "bundesliga", "serie a", "messi", "ronaldo", "manchester", "liverpool", "real madrid",
               "barcelona"],
}

LEAGUES = {
    "nba": "NBA",
    "nfl": "NFL",
    "mlb": "MLB",
    "nhl": "NHL",
    "premier league": "Premier League",
    "champions league": "Champions League",
    "la liga": "La Liga",
    "bundesliga": "Bundesliga",
    "serie a": "Serie A",
}

TEAM_PATTERNS = [
    re.compile(r"(\w+)\s+(?:vs?\.?|versus|at|@)\s+(\w+)", re.IGNORECASE),
    re.compile(r"(\w+)\s+(?:to )?(?:win|beat|defeat)\s+(\w+)?", re.IGNORECASE),
    re.compile(r"(\w+)\s+(?:game|match|series)", re.IGNORECASE),
]

PLAYOFF_TERMS = ("playoff", "finals", "championship", "world series", "super bowl", "stanley cup")
POSITIVE_WORDS = ("win", "victory", "dominant", "strong", "healthy", "confident", "favorite")
NEGATIVE_WORDS = ("lose", "injury", "injured", "out", "doubt", "struggling", "underdog", "suspended")
INJURY_WORDS = ("injury", "injured", "out")

# Combination weights; normalized by the weights actually present
WEIGHT_MARKET = 0.4
WEIGHT_HEURISTIC = 0.3
WEIGHT_NEWS = 0.2
WEIGHT_TOOL = 0.1


@dataclass
class SportsAgentConfig(AgentConfig):
    name: str = "SportsAgent"
    min_confidence: float = 0.65
    min_edge: float = 0.05
    preferred_leagues: list[str] = field(default_factory=list)
    excluded_leagues: list[str] = field(default_factory=list)


@dataclass
class SportEventInfo:
    sport: str = "other"
    league: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    is_playoff: bool = False
    event_date: Optional[datetime] = None


@dataclass
class HeuristicResult:
    probability: float
    factors: list[str]


def extract_event_info(market: Market) -> SportEventInfo:
    combined = f"{market.question} {market.description or ''}".lower()
    info = SportEventInfo(event_date=market.end_date())

    for sport, words in SPORT_KEYWORDS.items():
        if any(w in combined for w in words):
            info.sport = sport
            break

    for pattern, league in LEAGUES.items():
        if pattern in combined:
            info.league = league
            break

    for pattern in TEAM_PATTERNS:
        m = pattern.search(market.question)
        if m:
            info.home_team = m.group(1)
            info.away_team = m.group(2) if m.lastindex and m.lastindex >= 2 else None
            break

    info.is_playoff = any(t in combined for t in PLAYOFF_TERMS)
    return info


def analyze_news(news: list[NewsItem]) -> tuple[str, list[str]]:
    """Per-article sentiment and injury notes, joined with '; ', plus up to five source URLs."""
    insights = []
    sources = []
    for article in news:
        content = f"{article.title} {article.content or ''}".lower()
        if article.url:
            sources.append(article.url)
        pos = count_hits(content, POSITIVE_WORDS)
        neg = count_hits(content, NEGATIVE_WORDS)
        if pos > neg:
            insights.append(f"Positive news: {article.title}")
        elif neg > pos:
            insights.append(f"Negative news: {article.title}")
        if any(w in content for w in INJURY_WORDS):
            insights.append(f"Injury alert: {article.title}")
    return "; ".join(insights), sources[:5]


def news_probability(insights: str) -> Optional[float]:
    if not insights:
        return None
    text = insights.lower()
    pos = text.count("positive")
    neg = text.count("negative")
    injuries = text.count("injury")
    if pos == 0 and neg == 0:
        return None
    return 0.5 + (pos - neg - injuries * 0.5) * 0.02


def apply_heuristics(price: float, info: SportEventInfo) -> HeuristicResult:
    adjusted = price
    factors = []

    if info.is_playoff:
        adjusted -= (price - 0.5) * 0.1
        factors.append("Playoff adjustment: more uncertainty")

    if price > 0.9:
        adjusted = price * 0.95
        factors.append("High probability adjustment: favorites often overvalued")

    if price < 0.1:
        adjusted = price * 1.2
        factors.append("Low probability adjustment: underdogs sometimes undervalued")

    if info.home_team and info.away_team:
        factors.append(f"Home advantage considered for {info.home_team}")

    return HeuristicResult(probability=clamp_probability(adjusted), factors=factors)


def tool_probability(home_stats: Optional[dict], away_stats: Optional[dict]) -> Optional[float]:
    """Home share of combined win rate, when both teams' stats carry one."""
    def win_rate(stats: Optional[dict]) -> Optional[float]:
        if not stats:
            return None
        for key in ("win_pct", "win_percentage", "winPct"):
            val = stats.get(key)
            if isinstance(val, (int, float)):
                return float(val) / 100 if val > 1 else float(val)
        return None

    home, away = win_rate(home_stats), win_rate(away_stats)
    if home is None or away is None or home + away <= 0:
        return None
    return home / (home + away)


def combine_probabilities(
    price: float, heuristic: float, news: Optional[float], tool: Optional[float]
) -> float:
    combined = price * WEIGHT_MARKET + heuristic * WEIGHT_HEURISTIC
    total = WEIGHT_MARKET + WEIGHT_HEURISTIC
    if news is not None:
        combined += news * WEIGHT_NEWS
        total += WEIGHT_NEWS
    if tool is not None:
        combined += tool * WEIGHT_TOOL
        total += WEIGHT_TOOL
    return clamp_probability(combined / total)


class SportsAgent(BaseEventAgent):
    category = "sports"
    KEYWORDS = SPORT_KEYWORDS

    def __init__(self, config: Optional[SportsAgentConfig] = None, **kwargs):
        super().__init__(config or SportsAgentConfig(), **kwargs)
        self.sports_config: SportsAgentConfig = self.config  # type: ignore[assignment]

    async def search_team_news(self, team: str, league: Optional[str]) -> list[NewsItem]:
        query = f"{team} {league} news injuries updates" if league else f"{team} sports news injuries"
        return await self.search_via_tool("tavily", "search", {
            "query": query,
            "max_results": 5,
            "search_depth": "basic",
        })

    async def team_stats(self, team: str, league: Optional[str]) -> Optional[dict]:
        if not self.tools.is_connected("tako"):
            return None
        result = await self.tools.call("tako", "sports_query", {"query": f"{team} stats {league or ''}".strip()})
        return parse_json_payload(result)

    def _is_excluded(self, info: SportEventInfo) -> bool:
        excluded = {lg.lower() for lg in self.sports_config.excluded_leagues}
        return bool(info.league) and info.league.lower() in excluded

    async def analyze(self, market: Market, context: AnalysisContext) -> AgentRecommendation:
        price = self.yes_price(market)
        if price is None:
            return self.default_recommendation(REASON_NO_PRICE)

        info = extract_event_info(market)
        if self._is_excluded(info):
            return self.default_recommendation(f"{REASON_LEAGUE_EXCLUDED}: {info.league}")

        news = list(context.recent_news)
        tool_prob = None
        if info.home_team and info.away_team:
            home_stats = await self.team_stats(info.home_team, info.league)
            away_stats = await self.team_stats(info.away_team, info.league)
            tool_prob = tool_probability(home_stats, away_stats)
        if info.home_team:
            news.extend(await self.search_team_news(info.home_team, info.league))

        insights, sources = analyze_news(news)
        heuristic = apply_heuristics(price, info)
        estimate = combine_probabilities(price, heuristic.probability, news_probability(insights), tool_prob)
        edge = self.calculate_edge(estimate, price)
        confidence = self._confidence(heuristic, insights, market)

        return AgentRecommendation(
            action=self.decide_action(confidence, edge),
            confidence=confidence,
            reasoning=self._reasoning(info, price, estimate, edge, heuristic, insights),
            sources=tuple(sources),
            estimated_probability=estimate,
            edge=edge,
            metadata={
                "event_info": info,
                "heuristic_probability": heuristic.probability,
                "heuristic_factors": heuristic.factors,
                "tool_probability": tool_prob,
            },
        )

    def _confidence(self, heuristic: HeuristicResult, insights: str, market: Market) -> float:
        confidence = 0.5 + len(heuristic.factors) * 0.05
        if insights:
            confidence += 0.1
        liq = market.liquidity_metrics
        if liq and liq.has_liquidity:
            confidence += 0.1
        if liq and liq.spread_percent and liq.spread_percent < 5:
            confidence += 0.1
        return clamp_unit(confidence)

    @staticmethod
    def _reasoning(info, price, estimate, edge, heuristic, insights) -> str:
        parts = []
        if info.league:
            parts.append(f"League: {info.league}")
        if info.sport != "other":
            parts.append(f"Sport: {info.sport}")
        if info.is_playoff:
            parts.append("Playoff game")
        parts.append(f"Market price: {price * 100:.1f}%")
        parts.append(f"Estimated: {estimate * 100:.1f}%")
        parts.append(f"Edge: {edge * 100:.2f}%")
        if heuristic.factors:
            parts.append(f"Factors: {', '.join(heuristic.factors)}")
        if insights:
            parts.append(f"News: {insights[:100]}...")
        return " | ".join(parts)

    def describe_lines(self) -> list[str]:
        cfg = self.sports_config
        return super().describe_lines() + [
            f"- Min Edge: {cfg.min_edge}",
            f"- Preferred Leagues: {', '.join(cfg.preferred_leagues) or 'all'}",
            f"- Sports Keywords: {', '.join(SPORT_KEYWORDS)}",
        ]
