import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(val: str, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


class Settings:
    # Logging
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    TRACE_LOG_FILENAME = os.getenv("TRACE_LOG_FILENAME", "suggest_trace.log")
    TRACE_LOG_PATH = os.path.join(LOG_DIR, TRACE_LOG_FILENAME)

    # Suggestion Application
    APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
    APP_PORT = int(os.getenv("APP_PORT", "8000"))

    # Data
    PLACES_PATH = os.getenv(
        "PLACES_PATH",
        os.path.join(os.path.dirname(__file__), "..", "..", "data", "cities_sample.tsv"),
    )
    PLACES_MIN_POPULATION = int(os.getenv("PLACES_MIN_POPULATION", "0"))
    PLACES_LOAD_ALT_NAMES = _as_bool(os.getenv("PLACES_LOAD_ALT_NAMES"), True)

    # Query
    QUERY_MAX_LENGTH = int(os.getenv("QUERY_MAX_LENGTH", "100"))

    # Matching Constants
    MATCH_MIN_SIMILARITY = float(os.getenv("MATCH_MIN_SIMILARITY", "0.5"))
    MATCH_MAX_EDIT_RATIO = float(os.getenv("MATCH_MAX_EDIT_RATIO", "0.34"))
    MATCH_MAX_EDITS = int(os.getenv("MATCH_MAX_EDITS", "3"))
    MATCH_PREFIX_BASE = float(os.getenv("MATCH_PREFIX_BASE", "0.6"))

    # Matching Weights
    MATCH_WORD_WEIGHT = float(os.getenv("MATCH_WORD_WEIGHT", "0.85"))
    MATCH_ALT_NAME_WEIGHT = float(os.getenv("MATCH_ALT_NAME_WEIGHT", "0.95"))

    # Ranking Constants
    RANK_TOP_K = int(os.getenv("RANK_TOP_K", "5"))
    RANK_DIST_SIGMA_KM = float(os.getenv("RANK_DIST_SIGMA_KM", "1500.0"))
    RANK_PROXIMITY_FLOOR = float(os.getenv("RANK_PROXIMITY_FLOOR", "0.3"))
    SCORE_PRECISION = int(os.getenv("SCORE_PRECISION", "4"))
    DEDUP_PRECISION = int(os.getenv("DEDUP_PRECISION", "3"))

    # Sessions
    SESSION_TTL_SECONDS = float(os.getenv("SESSION_TTL_SECONDS", "1800"))
    SESSION_MAX_ENTRIES = int(os.getenv("SESSION_MAX_ENTRIES", "10000"))
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "suggest_sid")

    # Rate Limiting
    RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "5"))
    RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "1.0"))
    RATE_LIMIT_MAX_CLIENTS = int(os.getenv("RATE_LIMIT_MAX_CLIENTS", "100000"))


settings = Settings()
