"""
Configuration module for the Virtual Closet API
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
def setup_logger(name: str = __name__, log_file: str = "closet.log") -> logging.Logger:
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


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("closet").warning(
            f"Invalid integer for {name}: {raw!r}; using {default}"
        )
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Create the main application logger
logger = setup_logger("closet", os.getenv("LOG_FILE", "closet.log"))

# -------------------------
# Environment Variables
# -------------------------
GEMINI_KEY = os.getenv("GEMINI_KEY")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview")

# supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# mannequin reference used by every generation mode
BODY_IMAGE_PATH = os.getenv("BODY_IMAGE_PATH", "assets/model.png")

# generation rate limiting
RATE_LIMIT_COOLDOWN_MS = _env_int("RATE_LIMIT_COOLDOWN_MS", 2000)
RATE_LIMIT_MAX_CALLS = _env_int("RATE_LIMIT_MAX_CALLS", 10)
RATE_LIMIT_WINDOW_MS = _env_int("RATE_LIMIT_WINDOW_MS", 60000)

# Opt-in: key outfit transfers by content hash instead of file name + size
TRANSFER_CACHE_CONTENT_HASH = _env_bool("TRANSFER_CACHE_CONTENT_HASH")


# Log configuration status
logger.info("Configuration loaded successfully")
logger.debug(f"GEMINI_KEY configured: {bool(GEMINI_KEY)}")
logger.debug(f"GEMINI_IMAGE_MODEL: {GEMINI_IMAGE_MODEL}")
logger.debug(f"SUPABASE_URL configured: {bool(SUPABASE_URL)}")
logger.debug(f"SUPABASE_KEY configured: {bool(SUPABASE_KEY)}")
logger.debug(f"SUPABASE_SERVICE_KEY configured: {bool(SUPABASE_SERVICE_KEY)}")
logger.debug(
    "Rate limit: "
    f"cooldown={RATE_LIMIT_COOLDOWN_MS}ms max_calls={RATE_LIMIT_MAX_CALLS} "
    f"window={RATE_LIMIT_WINDOW_MS}ms"
)
