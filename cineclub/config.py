import os
from dotenv import load_dotenv

load_dotenv()


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _flag_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", ""}


TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
TMDB_LANGUAGE = os.getenv("TMDB_LANGUAGE", "es-ES")
TMDB_TIMEOUT = float(os.getenv("TMDB_TIMEOUT", "10"))

# Deployment policy: when set, a missing generation key is a hard 503 instead of
# a silent fall-through to the catalog and local tiers.
RECOMMEND_REQUIRE_AI = _flag_from_env("RECOMMEND_REQUIRE_AI", False)
DEFAULT_MAX_ITEMS = _int_from_env("RECOMMEND_DEFAULT_MAX_ITEMS", 15)
MAX_ITEMS_LIMIT = _int_from_env("RECOMMEND_MAX_ITEMS_LIMIT", 50)

PROMPT_RATINGS_LIMIT = _int_from_env("PROMPT_RATINGS_LIMIT", 80)
PROMPT_BLOCKED_TITLES_LIMIT = _int_from_env("PROMPT_BLOCKED_TITLES_LIMIT", 200)
REASON_LANGUAGE = os.getenv("REASON_LANGUAGE", "Spanish")

CATALOG_NEIGHBOR_SEEDS = _int_from_env("CATALOG_NEIGHBOR_SEEDS", 5)
CATALOG_CONCURRENCY = max(1, _int_from_env("CATALOG_CONCURRENCY", 5))
CATALOG_CANDIDATE_POOL = _int_from_env("CATALOG_CANDIDATE_POOL", 30)

WEEKLY_EVENT_SECRET = os.getenv("WEEKLY_EVENT_SECRET") or None
WEEKLY_EVENT_MIN_VOTES = _int_from_env("WEEKLY_EVENT_MIN_VOTES", 2)
WEEKLY_EVENT_RANKING_LIMIT = _int_from_env("WEEKLY_EVENT_RANKING_LIMIT", 80)
WEEKLY_EVENT_CANDIDATES = _int_from_env("WEEKLY_EVENT_CANDIDATES", 3)
WEEKLY_EVENT_VOTE_DAYS = _int_from_env("WEEKLY_EVENT_VOTE_DAYS", 4)
