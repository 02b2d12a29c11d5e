"""
AI market filter: probability/edge estimation for Polymarket markets.

Pipeline per market:
  1. Optional enrichment: SerpAPI news (past 24h) and, for top or explicitly
     selected markets, a Tavily deep search. Both degrade to "no enrichment".
  2. Structured prompt -> estimator, submitted through the RequestQueue.
  3. Response parsing (JSON, embedded JSON, regex fallback) and normalization.
  4. Action derivation from estimatedProbability vs. YES price. The model's
     probability is the only thing taken from upstream; the action is always
     recomputed here and contradictory claims are forced to AVOID.

filter_markets() runs the pipeline over a batch, applies the staged filters
from FilterContext, and optionally re-analyzes the survivors with a forced
deep search.
"""
import asyncio
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from config import (
    DEEP_SEARCH_ATTRACTIVENESS_THRESHOLD,
    MIN_TRADE_EDGE,
    SERP_API_KEY,
    TAVILY_API_KEY,
    USE_DEEP_SEARCH_FOR_SELECTED_MARKETS,
    USE_DEEP_SEARCH_FOR_TOP_MARKETS,
    USE_NEWS_ENRICHMENT,
)
from data_sources.news import SerpNewsSearch, format_news_for_prompt
from data_sources.tavily import TavilySearch, format_results_for_prompt
from models.reasons import REASON_ANALYSIS_FAILED, REASON_NO_REASONING, REASON_RISK_ANALYSIS_ERROR
from models.types import (
    FilterContext,
    FilteredMarket,
    Market,
    MarketAnalysis,
    RiskLevel,
    TradeAction,
    clamp,
)
from ops.logging_setup import configure_run_logging
from ops.run_context import RunContext
from scanner.request_queue import QueueStats, RequestQueue
from scanner.response_parser import parse_analysis_text

logger = logging.getLogger("recommender.filter")

PROGRESS_EVERY = 5


# ─────────────────────────────────────────────────────────────────────────────
# SYSTEM PROMPT
# ─────────────────────────────────────────────────────────────────────────────
SYSTEM_PROMPT = """You are an expert prediction market analyst.

Your task is to analyze Polymarket prediction markets and determine whether they are suitable for trading.

**Your Analysis Should Consider:**

1. **Market Quality:**
   - Is the question clear and unambiguous?
   - Are resolution criteria well-defined?
   - Is there a clear date/time for resolution?

2. **Market Efficiency:**
   - Does the current price seem reasonable?
   - Is there potential mispricing or inefficiency?
   - What does market sentiment suggest?

3. **Risk Assessment:**
   - What are the main risk factors?
   - Is there manipulation potential?
   - What could go wrong with resolution?

4. **Opportunities:**
   - What makes this market attractive?
   - Is there sufficient information to make a decision?
   - Timing considerations

5. **Context & Strategy Fit:**
   - Does this market fit the trading strategy?
   - Category-specific considerations

**Output Format (JSON):**
{
  "shouldTrade": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "Detailed explanation of your analysis",
  "attractiveness": 0.0-1.0,
  "estimatedProbability": 0.0-1.0,
  "riskLevel": "low|medium|high",
  "riskFactors": ["risk1", "risk2"],
  "opportunities": ["opportunity1", "opportunity2"]
}

**estimatedProbability IS MANDATORY:**
1. ALWAYS include "estimatedProbability" in your JSON response
2. The value MUST be a number between 0.0 and 1.0 (e.g., 0.75 = 75% chance)
3. If you're uncertain, give your mid-range estimate (e.g., 0.50)
4. This value is compared with the current market price to find the edge

Example: if the market price is 60% (0.60) but you estimate 75% (0.75), that's a +15 percentage point edge.

Do NOT provide "recommendedAction"; the trading action is computed from your estimatedProbability.

Be thorough, analytical, and honest about both risks and opportunities."""


# ─────────────────────────────────────────────────────────────────────────────
# Prompt construction
# ─────────────────────────────────────────────────────────────────────────────

def build_analysis_prompt(
    market: Market,
    context: Optional[FilterContext] = None,
    news_text: str = "",
    deep_text: str = "",
    now: Optional[datetime] = None,
) -> str:
    yes = market.yes_price() or 0.0
    no = market.no_price() or 0.0
    end = market.end_date()
    now = now or datetime.now(timezone.utc)

    lines = [
        "Analyze this Polymarket prediction market in detail and determine if it's suitable for trading:",
        "",
        "**Market Information:**",
        f'Question: "{market.question}"',
    ]
    if market.description:
        lines.append(f"Description: {market.description}")
    lines += [
        "",
        "**Current Market Data:**",
        f"- YES Token Price: {yes * 100:.2f}% ({yes:.4f})",
        f"- NO Token Price: {no * 100:.2f}% ({no:.4f})",
        "",
        '**Your Task:** Compare YOUR estimated probability ("estimatedProbability") with the market price above. '
        "If there's a significant difference (edge), this is a trading opportunity. "
        "For example: if market price is 70% but you estimate 85%, that's a +15 percentage point edge.",
        f"- Market Active: {str(market.active).lower()}",
        f"- Accepting Orders: {str(market.accepting_orders).lower()}",
        f"- NegRisk Market: {str(market.neg_risk).lower()}",
    ]
    if end is not None:
        days = math.ceil((end - now).total_seconds() / 86400)
        lines.append(f"- Days to Resolution: {days}")
        lines.append(f"- Resolution Date: {end.date().isoformat()}")
    if market.category:
        lines.append(f"- Category: {market.category}")
    if market.tags:
        lines.append(f"- Tags: {', '.join(market.tags)}")

    if context is not None:
        lines += ["", "**Trading Context:**", f"- Strategy Type: {context.strategy_type}"]
        if context.preferred_categories:
            lines.append(f"- Preferred Categories: {', '.join(context.preferred_categories)}")
        if context.excluded_categories:
            lines.append(f"- Excluded Categories: {', '.join(context.excluded_categories)}")

    prompt = "\n".join(lines) + "\n"

    if news_text:
        prompt += news_text
        prompt += ("\n**Important:** Use the recent news above to inform your analysis. "
                   "Consider how current events might affect the outcome.\n")
    if deep_text:
        prompt += deep_text
        prompt += ("\n**Deep Analysis:** Use the detailed context above from multiple sources "
                   "to make a more informed decision. Consider cross-referencing information "
                   "from different sources for accuracy.\n")

    questions = [
        "1. Is the question clear and will it resolve unambiguously?",
        "2. Does the current market price seem efficient or is there mispricing?",
    ]
    if news_text:
        questions.append("2a. How do recent news affect the market price and probability?")
    questions += [
        "3. What are the main risks in this market?",
        "4. Are there opportunities for profitable trading?",
        "5. Does this market fit the trading strategy?",
        "6. Based on recent news, is there new information that changes the outlook?" if news_text
        else "6. What information would help make a better decision?",
    ]
    prompt += "\n**Analysis Questions to Consider:**\n" + "\n".join(questions) + "\n"
    prompt += "\nProvide your detailed analysis in JSON format as specified."
    return prompt


# ─────────────────────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────────────────────

def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip().rstrip("%"))
        except ValueError:
            return None
        return None if math.isnan(parsed) else parsed
    return None


def _to_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)] if value else []


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def calculate_recommended_action(
    estimate: float, market_price: float, min_edge: float = MIN_TRADE_EDGE
) -> TradeAction:
    if abs(estimate - market_price) <= min_edge:
        return TradeAction.AVOID
    if estimate > market_price:
        return TradeAction.BUY_YES
    if estimate < market_price:
        return TradeAction.BUY_NO
    return TradeAction.AVOID


def contradicts(action: TradeAction, estimate: float, market_price: float) -> bool:
    if action == TradeAction.BUY_YES:
        return estimate <= market_price
    if action == TradeAction.BUY_NO:
        return estimate >= market_price
    return False


def normalize_analysis(data: dict, market: Market, min_edge: float = MIN_TRADE_EDGE) -> MarketAnalysis:
    """Coerce a parsed estimator response into a validated MarketAnalysis."""
    confidence = _to_float(data.get("confidence"))
    attractiveness = _to_float(data.get("attractiveness"))
    market_price = market.yes_price()
    reference_price = market_price if market_price is not None else 0.5

    estimate = _to_float(data.get("estimatedProbability"))
    if estimate is not None:
        estimate = clamp(estimate, 0.0, 1.0)
        if estimate >= 0.99:
            logger.warning("Estimator returned very high probability %.3f for %s: likely overconfident",
                           estimate, market.question[:50])
        elif estimate <= 0.01:
            logger.warning("Estimator returned very low probability %.3f for %s: likely overconfident",
                           estimate, market.question[:50])
    else:
        logger.error(
            "Estimator response has no estimatedProbability (keys: %s) for %s; "
            "falling back to market price %.3f",
            sorted(data.keys()), market.question[:50], reference_price,
            extra={"condition_id": market.condition_id},
        )
        estimate = reference_price

    action = calculate_recommended_action(estimate, reference_price, min_edge)
    claimed = data.get("recommendedAction")
    if claimed is not None:
        try:
            claimed_action = TradeAction(str(claimed).upper())
        except ValueError:
            claimed_action = None
        if claimed_action is not None and contradicts(claimed_action, estimate, reference_price):
            logger.warning(
                "Contradictory recommendation %s: estimate %.3f vs price %.3f for %s; forcing AVOID",
                claimed_action.value, estimate, reference_price, market.question[:50],
                extra={"condition_id": market.condition_id},
            )
            action = TradeAction.AVOID
    if contradicts(action, estimate, reference_price):
        action = TradeAction.AVOID

    return MarketAnalysis(
        should_trade=_to_bool(data.get("shouldTrade")),
        confidence=clamp(confidence, 0.0, 1.0) if confidence is not None else 0.5,
        reasoning=str(data.get("reasoning") or data.get("reason") or REASON_NO_REASONING),
        attractiveness=clamp(attractiveness, 0.0, 1.0) if attractiveness is not None else 0.5,
        risk_level=RiskLevel.parse(data.get("riskLevel")),
        risk_factors=_to_list(data.get("riskFactors")),
        opportunities=_to_list(data.get("opportunities")),
        estimated_probability=estimate,
        recommended_action=action,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Filter
# ─────────────────────────────────────────────────────────────────────────────

class MarketFilter:
    def __init__(
        self,
        estimator,
        news_source: Optional[SerpNewsSearch] = None,
        deep_search: Optional[TavilySearch] = None,
        queue: Optional[RequestQueue] = None,
        min_trade_edge: float = MIN_TRADE_EDGE,
        deep_search_threshold: float = DEEP_SEARCH_ATTRACTIVENESS_THRESHOLD,
        use_news: bool = USE_NEWS_ENRICHMENT,
        deep_search_for_top: bool = USE_DEEP_SEARCH_FOR_TOP_MARKETS,
        deep_search_for_selected: bool = USE_DEEP_SEARCH_FOR_SELECTED_MARKETS,
        run_context: Optional[RunContext] = None,
    ):
        self.estimator = estimator
        self.news_source = news_source if use_news else None
        self.deep_search = deep_search
        self.queue = queue or RequestQueue()
        self.min_trade_edge = min_trade_edge
        self.deep_search_threshold = deep_search_threshold
        self.deep_search_for_top = deep_search_for_top
        self.deep_search_for_selected = deep_search_for_selected
        self.run_context = run_context or RunContext()

    @classmethod
    def from_config(cls, configure_logging: bool = False, log_dir: Optional[str] = None, **kwargs) -> "MarketFilter":
        """
        Wire the Claude estimator plus whichever enrichment sources have keys.

        configure_logging=True installs the recommender log handlers for this
        filter's run (see ops.logging_setup.configure_run_logging).
        """
        from scanner.estimator_client import EstimatorClient

        if configure_logging:
            options = {"log_dir": log_dir} if log_dir else {}
            kwargs["run_context"] = configure_run_logging(kwargs.get("run_context"), **options)

        news = SerpNewsSearch(api_key=SERP_API_KEY) if SERP_API_KEY and USE_NEWS_ENRICHMENT else None
        deep = TavilySearch(api_key=TAVILY_API_KEY) if TAVILY_API_KEY else None
        if deep is None:
            logger.info("TAVILY_API_KEY not set: deep search disabled")
        return cls(EstimatorClient(), news_source=news, deep_search=deep, **kwargs)

    def stats(self) -> QueueStats:
        return self.queue.stats()

    # ── Enrichment ──

    async def _news_block(self, market: Market, sources: list[str]) -> str:
        if self.news_source is None:
            return ""
        try:
            articles = await self.news_source.news_for_question(market.question, num_results=5)
        except Exception as e:
            logger.warning("News enrichment failed for %s (%s: %s)", market.question[:50], type(e).__name__, e)
            return ""
        sources.extend(a.link for a in articles if a.link)
        if articles:
            logger.debug("Found %d recent news articles for %s", len(articles), market.question[:50])
        return format_news_for_prompt(articles)

    async def _deep_block(self, market: Market, sources: list[str]) -> str:
        try:
            response = await self.deep_search.deep_search(market.question)
        except Exception as e:
            logger.warning("Deep search failed for %s, continuing without (%s: %s)",
                           market.question[:50], type(e).__name__, e)
            return ""
        if not response.results:
            return ""
        sources.extend(r.url for r in response.results if r.url)
        logger.info("Deep search: %d sources for %s", len(response.results), market.question[:50])
        return format_results_for_prompt(response)

    def _wants_deep_search(self, estimated_attractiveness: Optional[float], force: bool) -> bool:
        if self.deep_search is None:
            return False
        if force:
            return True
        return (
            self.deep_search_for_top
            and estimated_attractiveness is not None
            and estimated_attractiveness >= self.deep_search_threshold
        )

    # ── Single market ──

    async def analyze_market(
        self,
        market: Market,
        context: Optional[FilterContext] = None,
        estimated_attractiveness: Optional[float] = None,
        force_deep_search: bool = False,
    ) -> MarketAnalysis:
        """Analyze one market. Estimator failures (after queue retries) propagate."""
        sources: list[str] = []
        news_text = await self._news_block(market, sources)
        deep_text = ""
        if self._wants_deep_search(estimated_attractiveness, force_deep_search):
            deep_text = await self._deep_block(market, sources)

        prompt = build_analysis_prompt(market, context, news_text, deep_text)
        key = f"market-{market.condition_id[:10] or 'unknown'}"
        text = await self.queue.add(lambda: self.estimator.generate(prompt, system=SYSTEM_PROMPT), key=key)

        analysis = normalize_analysis(parse_analysis_text(text), market, self.min_trade_edge)
        analysis.sources = sources
        return analysis

    # ── Batch ──

    async def _analyze_or_default(
        self, market: Market, context: Optional[FilterContext], attractiveness: float, progress: dict, total: int
    ) -> FilteredMarket:
        try:
            analysis = await self.analyze_market(market, context, attractiveness)
        except Exception as e:
            logger.error("Analysis failed for %s (%s: %s)", market.question[:50], type(e).__name__, e,
                         extra={"condition_id": market.condition_id})
            analysis = MarketAnalysis.failed(REASON_ANALYSIS_FAILED, [REASON_RISK_ANALYSIS_ERROR])

        progress["done"] += 1
        if progress["done"] % PROGRESS_EVERY == 0:
            s = self.queue.stats()
            logger.info("Analyzed %d/%d markets (queue: %d, running: %d, rate_limit_hits: %d)",
                        progress["done"], total, s.queue_length, s.running, s.rate_limit_hits)
        return FilteredMarket(market=market, analysis=analysis)

    @staticmethod
    def _stage(name: str, items: list[FilteredMarket], keep) -> list[FilteredMarket]:
        kept = [item for item in items if keep(item)]
        logger.info("Filter %s: %d -> %d", name, len(items), len(kept))
        return kept

    def apply_filters(self, results: list[FilteredMarket], context: FilterContext) -> list[FilteredMarket]:
        filtered = self._stage("should_trade", results, lambda r: r.analysis.should_trade)
        filtered = self._stage(
            f"attractiveness>={context.min_attractiveness:.0%}", filtered,
            lambda r: r.analysis.attractiveness >= context.min_attractiveness,
        )
        filtered = self._stage(
            f"risk<={context.max_risk.value}", filtered,
            lambda r: r.analysis.risk_level.rank <= context.max_risk.rank,
        )
        if context.preferred_categories:
            filtered = self._stage(
                "preferred_categories", filtered,
                lambda r: r.market.category in context.preferred_categories,
            )
        if context.excluded_categories:
            filtered = self._stage(
                "excluded_categories", filtered,
                lambda r: not r.market.category or r.market.category not in context.excluded_categories,
            )
        filtered.sort(key=lambda r: r.analysis.attractiveness, reverse=True)
        return filtered

    async def _deepen(self, item: FilteredMarket, context: FilterContext) -> FilteredMarket:
        if item.analysis.attractiveness >= self.deep_search_threshold:
            return item
        try:
            enriched = await self.analyze_market(item.market, context, item.analysis.attractiveness,
                                                 force_deep_search=True)
        except Exception as e:
            logger.warning("Deep re-analysis failed for %s, keeping original (%s: %s)",
                           item.market.question[:50], type(e).__name__, e)
            return item
        merged = replace(
            enriched,
            confidence=max(item.analysis.confidence, enriched.confidence),
            attractiveness=max(item.analysis.attractiveness, enriched.attractiveness),
        )
        return FilteredMarket(market=item.market, analysis=merged)

    async def filter_markets(
        self, markets: list[Market], context: Optional[FilterContext] = None
    ) -> list[FilteredMarket]:
        """Analyze a batch and return the tradable markets, best first."""
        if not markets:
            logger.info("No markets to analyze")
            return []

        context = context or FilterContext()
        batch = self.run_context.next_batch("filter")
        logger.info("Batch %d: analyzing %d markets (max_concurrent=%d, delay=%dms)",
                    batch, len(markets), self.queue.max_concurrent, self.queue.delay_ms)

        progress = {"done": 0}
        results = await asyncio.gather(*[
            self._analyze_or_default(m, context, m.yes_price() if m.yes_price() is not None else 0.5,
                                     progress, len(markets))
            for m in markets
        ])

        final = self.queue.stats()
        if final.rate_limit_hits:
            logger.warning("Rate limit hits during batch: %d (retried)", final.rate_limit_hits)

        filtered = self.apply_filters(list(results), context)
        logger.info("Filtering complete: %d -> %d markets", len(markets), len(filtered))
        for i, r in enumerate(filtered[:3], 1):
            logger.info("  %d. %.1f%% %s", i, r.analysis.attractiveness * 100, r.market.question[:50])

        if filtered and self.deep_search is not None and self.deep_search_for_selected:
            pending = sum(1 for r in filtered if r.analysis.attractiveness < self.deep_search_threshold)
            if pending:
                logger.info("Deep re-analysis for %d selected markets", pending)
                filtered = list(await asyncio.gather(*[self._deepen(r, context) for r in filtered]))
                filtered.sort(key=lambda r: r.analysis.attractiveness, reverse=True)
        return filtered
