"""
Parsing of free-form estimator responses.

The estimator is asked for a JSON object but may wrap it in code fences,
prose, or emit slightly broken JSON. Recovery order:
  1. clean_json() and json.loads() of the whole text
  2. the outermost {...} block inside the text
  3. regex extraction of shouldTrade / confidence from plain text
"""
import json
import logging
import re
from typing import Optional

logger = logging.getLogger("recommender.parser")

_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")
_SHOULD_TRADE = re.compile(r'shouldTrade["\s]*:[\s]*(true|false)', re.IGNORECASE)
_CONFIDENCE = re.compile(r'confidence["\s]*:[\s]*([0-9.]+)', re.IGNORECASE)


def clean_json(text: str) -> str:
    """Strip markdown fences, trailing commas and control characters from LLM JSON."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*\n?", "", text)
    text = re.sub(r"\n?```\s*$", "", text)
    text = text.strip()

    # Trailing commas before closing brackets (common LLM JSON error)
    text = re.sub(r",\s*([\]\}])", r"\1", text)

    # Control characters that break JSON parsing
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return text


def extract_json_object(text: str) -> Optional[dict]:
    """Best-effort: the response as a JSON object, or the outermost {...} block in it."""
    cleaned = clean_json(text)
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, ValueError):
        pass

    m = _OBJECT_BLOCK.search(cleaned)
    if not m:
        return None
    try:
        parsed = json.loads(clean_json(m.group(0)))
    except (json.JSONDecodeError, ValueError):
        logger.debug("Embedded JSON block did not parse")
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_from_text(text: str) -> dict:
    """Regex fallback for responses without usable JSON. Never includes a probability."""
    should_trade = _SHOULD_TRADE.search(text)
    confidence_match = _CONFIDENCE.search(text)
    confidence = 0.5
    if confidence_match:
        try:
            confidence = float(confidence_match.group(1))
        except ValueError:
            pass
    return {
        "shouldTrade": bool(should_trade) and should_trade.group(1).lower() == "true",
        "confidence": confidence,
        "reasoning": text[:300],
        "attractiveness": confidence,
        "riskLevel": "medium",
        "riskFactors": [],
        "opportunities": [],
    }


def parse_analysis_text(text: str) -> dict:
    data = extract_json_object(text)
    if data is not None:
        return data
    logger.warning("No JSON object in estimator response; using text fallback")
    return parse_from_text(text)
