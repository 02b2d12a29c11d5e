"""
CoinGecko spot prices (free tier, no API key needed) and price-target
parsing for crypto market questions.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import aiohttp

from config import COINGECKO_API_URL

logger = logging.getLogger("recommender.crypto_feed")

# Map common token names/symbols to CoinGecko IDs
COINGECKO_ID_MAP = {
    "btc": "bitcoin",
    "bitcoin": "bitcoin",
    "eth": "ethereum",
    "ethereum": "ethereum",
    "sol": "solana",
    "solana": "solana",
    "xrp": "ripple",
    "ripple": "ripple",
    "doge": "dogecoin",
    "dogecoin": "dogecoin",
    "ada": "cardano",
    "cardano": "cardano",
    "avax": "avalanche-2",
    "avalanche": "avalanche-2",
    "dot": "polkadot",
    "polkadot": "polkadot",
    "matic": "matic-network",
    "polygon": "matic-network",
    "link": "chainlink",
    "uni": "uniswap",
    "ltc": "litecoin",
    "shib": "shiba-inu",
}

# Ticker -> CoinGecko ID, for agents that resolve assets to tickers first
TICKER_TO_COINGECKO = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "ADA": "cardano",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "MATIC": "matic-network",
}

# Checked in order; the first pattern that matches wins
_PRICE_PATTERNS = [
    (r"\$([0-9,]+(?:\.[0-9]+)?)\s*b(?:illion)?\b", 1e9),  # $1b, $1billion
    (r"\$([0-9,]+(?:\.[0-9]+)?)\s*m(?:illion)?\b", 1e6),  # $1m, $1million
    (r"\$([0-9,]+(?:\.[0-9]+)?)\s*k\b", 1e3),  # $80k
    (r"\$([0-9,]+(?:\.[0-9]+)?)", 1),  # $100,000
    (r"\b([0-9,]+(?:\.[0-9]+)?)\s*k\b", 1e3),  # 80k
    (r"\b([0-9]{4,}(?:,[0-9]{3})*(?:\.[0-9]+)?)\b", 1),  # 100000
    (r"\b([0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]+)?)\b", 1),  # 100,000
]


@dataclass
class PriceSnapshot:
    coin_id: str
    current_price: float
    price_change_24h: float  # percentage
    market_cap: float
    total_volume: float = 0.0


async def fetch_prices(coin_ids: list[str]) -> dict[str, PriceSnapshot]:
    """Fetch current prices for a list of CoinGecko coin IDs. Returns {} on any failure."""
    if not coin_ids:
        return {}

    url = f"{COINGECKO_API_URL}/coins/markets"
    params = {
        "vs_currency": "usd",
        "ids": ",".join(sorted(set(coin_ids))),
        "order": "market_cap_desc",
        "per_page": 100,
        "page": 1,
        "price_change_percentage": "24h",
    }

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=10)) as resp:
                if resp.status != 200:
                    logger.warning("CoinGecko returned HTTP %d", resp.status)
                    return {}
                data = await resp.json()
    except Exception as e:
        logger.warning("CoinGecko request failed (%s: %s)", type(e).__name__, e)
        return {}

    result = {}
    for item in data:
        cid = item.get("id", "")
        result[cid] = PriceSnapshot(
            coin_id=cid,
            current_price=float(item.get("current_price") or 0),
            price_change_24h=float(item.get("price_change_percentage_24h") or 0),
            market_cap=float(item.get("market_cap") or 0),
            total_volume=float(item.get("total_volume") or 0),
        )
    return result


def parse_price_target(question: str) -> Optional[float]:
    """
    Extract a USD price target from a market question.

    Examples:
    - "Will BTC be above $100,000 by end of 2025?"  -> 100000
    - "Will Bitcoin close above $80k on March 1?"   -> 80000
    - "Will ETH market cap hit $1b?"                -> 1e9
    """
    q = question.lower()
    for pattern, multiplier in _PRICE_PATTERNS:
        m = re.search(pattern, q)
        if not m:
            continue
        raw = m.group(1).replace(",", "")
        try:
            val = float(raw) * multiplier
        except ValueError:
            continue
        if val > 0:
            return val
    return None


def coin_id_for(question: str) -> Optional[str]:
    """CoinGecko ID of the first coin named in the question (word-boundary match)."""
    q = question.lower()
    for symbol, gid in COINGECKO_ID_MAP.items():
        if re.search(r"\b" + re.escape(symbol) + r"\b", q):
            return gid
    return None
