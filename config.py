# Market Recommender Configuration
# Category agents + AI edge filter for Polymarket-style binary markets

from pathlib import Path
from dotenv import load_dotenv
import os

# Load environment variables
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


# ============================================================================
# CREDENTIALS
# ============================================================================

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
TAVILY_API_KEY = os.getenv("TAVILY_API_KEY")
SERP_API_KEY = os.getenv("SERP_API_KEY")
BRAVE_API_KEY = os.getenv("BRAVE_API_KEY")
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY")

# ============================================================================
# ESTIMATOR (Claude)
# ============================================================================

CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-haiku-4-5-20251001")
ESTIMATOR_MAX_TOKENS = int(os.getenv("ESTIMATOR_MAX_TOKENS", "2000"))
ESTIMATOR_TEMPERATURE = float(os.getenv("ESTIMATOR_TEMPERATURE", "0.3"))
ESTIMATOR_TIMEOUT_SECONDS = float(os.getenv("ESTIMATOR_TIMEOUT_SECONDS", "120"))

# ============================================================================
# CATEGORY AGENTS
# ============================================================================

AGENT_CACHE_TTL_SECONDS = 300  # Recommendations are reused for 5 minutes
AGENT_CACHE_SWEEP_SECONDS = 60  # Stale entries evicted at most once a minute
AGENT_RATE_LIMIT_PER_MINUTE = 30  # Fresh analyses per agent per rolling minute
AGENT_MAX_NEWS_RESULTS = 5

# ============================================================================
# REQUEST QUEUE (estimator calls)
# ============================================================================

QUEUE_MAX_CONCURRENT = int(os.getenv("QUEUE_MAX_CONCURRENT", "3"))
QUEUE_DELAY_MS = int(os.getenv("QUEUE_DELAY_MS", "150"))  # Min spacing between dispatches
QUEUE_MAX_RETRIES = int(os.getenv("QUEUE_MAX_RETRIES", "3"))
QUEUE_RETRY_DELAY_BASE_MS = int(os.getenv("QUEUE_RETRY_DELAY_BASE_MS", "1000"))
QUEUE_RETRY_DELAY_CAP_MS = int(os.getenv("QUEUE_RETRY_DELAY_CAP_MS", "30000"))
# Backoff = min(base * 2^(attempt-1), cap)

# ============================================================================
# MARKET FILTER
# ============================================================================

MIN_TRADE_EDGE = 0.10  # |estimate - price| below this => AVOID
USE_NEWS_ENRICHMENT = _env_bool("USE_NEWS_ENRICHMENT", "true")
USE_DEEP_SEARCH_FOR_TOP_MARKETS = _env_bool("USE_DEEP_SEARCH_FOR_TOP_MARKETS", "true")
USE_DEEP_SEARCH_FOR_SELECTED_MARKETS = _env_bool("USE_DEEP_SEARCH_FOR_SELECTED_MARKETS", "true")
DEEP_SEARCH_ATTRACTIVENESS_THRESHOLD = float(os.getenv("DEEP_SEARCH_ATTRACTIVENESS_THRESHOLD", "0.75"))

# ============================================================================
# EXTERNAL ENDPOINTS
# ============================================================================

TAVILY_API_URL = "https://api.tavily.com"
SERP_API_URL = "https://serpapi.com/search.json"
COINGECKO_API_URL = "https://api.coingecko.com/api/v3"

# ============================================================================
# TOOL SERVERS
# ============================================================================

# False => agents get in-process stub tool clients; True => stdio tool servers via npx
TOOL_SERVERS_ENABLED = _env_bool("TOOL_SERVERS_ENABLED", "false")
TOOL_SERVERS_PER_AGENT = int(os.getenv("TOOL_SERVERS_PER_AGENT", "2"))

# ============================================================================
# LOGGING
# ============================================================================

LOG_DIR = Path(os.getenv("LOG_DIR", str(Path(__file__).resolve().parent / "logs")))
LOG_FILE = "recommender.log"
JSON_LOGGING = _env_bool("JSON_LOGGING", "false")
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")  # Console handler; the file handler always logs DEBUG
