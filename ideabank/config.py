"""
Configuration module for the Idea Bank API
Contains logger setup and environment variables
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# -------------------------
# Logger Setup
# -------------------------
def setup_logger(name: str = __name__, log_file: str = "ideabank.log") -> logging.Logger:
    """
    Set up and return a logger with both file and console handlers

    Args:
        name: Logger name (usually __name__)
        log_file: Path to log file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    file_handler = logging.FileHandler(log_file, mode="a")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


LOG_FILE = os.getenv("LOG_FILE", "ideabank.log")

# Create the main application logger
logger = setup_logger("ideabank", LOG_FILE)

# -------------------------
# Environment Variables
# -------------------------
GEMINI_KEY = os.getenv("GEMINI_KEY")

# Models
GEMINI_REASONING_MODEL = os.getenv("GEMINI_REASONING_MODEL", "gemini-3-flash-preview")
GEMINI_REASONING_FALLBACK_MODEL = os.getenv(
    "GEMINI_REASONING_FALLBACK_MODEL", "gemini-2.5-flash"
)
GEMINI_VISION_MODEL = os.getenv("GEMINI_VISION_MODEL", "gemini-3-pro-preview")
GEMINI_KB_MODEL = os.getenv("GEMINI_KB_MODEL", "gemini-2.5-flash")

# Knowledge base (Gemini File Search store resource name)
GEMINI_FILE_SEARCH_STORE = os.getenv("GEMINI_FILE_SEARCH_STORE")

# supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# Feature flags
ENABLE_DEBUG_CONTEXT = os.getenv("ENABLE_DEBUG_CONTEXT", "false").lower() == "true"
ENABLE_DURABLE_CACHE = os.getenv("ENABLE_DURABLE_CACHE", "true").lower() == "true"

# Rate limits
SUGGEST_RATE_LIMIT_MAX = _int_env("SUGGEST_RATE_LIMIT_MAX", 20)
SUGGEST_RATE_LIMIT_WINDOW_SECONDS = _int_env("SUGGEST_RATE_LIMIT_WINDOW_SECONDS", 60)
ANALYSIS_RATE_LIMIT_MAX = _int_env("ANALYSIS_RATE_LIMIT_MAX", 10)
ANALYSIS_RATE_LIMIT_WINDOW_SECONDS = _int_env("ANALYSIS_RATE_LIMIT_WINDOW_SECONDS", 60)
RATE_LIMIT_MAX_KEYS = _int_env("RATE_LIMIT_MAX_KEYS", 10000)
CACHE_MAX_ENTRIES = _int_env("CACHE_MAX_ENTRIES", 5000)


# Log configuration status
logger.info("Configuration loaded successfully")
logger.debug(f"GEMINI_KEY configured: {bool(GEMINI_KEY)}")
logger.debug(f"GEMINI_FILE_SEARCH_STORE configured: {bool(GEMINI_FILE_SEARCH_STORE)}")
logger.debug(f"SUPABASE_URL configured: {bool(SUPABASE_URL)}")
logger.debug(f"SUPABASE_SERVICE_KEY configured: {bool(SUPABASE_SERVICE_KEY)}")
logger.debug(f"Reasoning model: {GEMINI_REASONING_MODEL}")
logger.debug(f"Vision model: {GEMINI_VISION_MODEL}")
logger.debug(f"Debug context enabled: {ENABLE_DEBUG_CONTEXT}")
