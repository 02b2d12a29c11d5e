"""
Centralized reasoning strings for agent and filter verdicts. Single source of truth.

Every module that emits one of these MUST import it from here.
Tests assert exact values (not partial matches).
"""

# ── Agents ──
REASON_NO_PRICE = "No price available - cannot analyze"
REASON_ANALYSIS_ERROR = "Analysis error"
REASON_AGENT_DISABLED = "Agent disabled"

# ── Sports ──
REASON_LEAGUE_EXCLUDED = "League excluded by configuration"  # append: ": {league}"

# ── AI filter ──
REASON_ANALYSIS_FAILED = "Analysis failed"
REASON_RISK_ANALYSIS_ERROR = "Analysis error"
REASON_NO_REASONING = "No reasoning provided"
REASON_AI_PARSE_FAILED = "AI analysis failed - defaulting to no trade"
