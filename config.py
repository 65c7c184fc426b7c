# config.py
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# -----------------------------------------------------------------------------
# Upstream aggregation service
# -----------------------------------------------------------------------------
MEDCOMP_BASE_URL = os.getenv("MEDCOMP_BASE_URL", "https://medicomp.in")
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "60"))
UPSTREAM_MAX_RETRIES = int(os.getenv("UPSTREAM_MAX_RETRIES", "3"))
UPSTREAM_RETRY_BACKOFF = float(os.getenv("UPSTREAM_RETRY_BACKOFF", "1"))

# -----------------------------------------------------------------------------
# Relay / client timings (seconds)
# -----------------------------------------------------------------------------
RELAY_IDLE_TIMEOUT = float(os.getenv("RELAY_IDLE_TIMEOUT", "60"))
RELAY_FLUSH_INTERVAL = float(os.getenv("RELAY_FLUSH_INTERVAL", "5"))
CLIENT_IDLE_TIMEOUT = float(os.getenv("CLIENT_IDLE_TIMEOUT", "60"))

# -----------------------------------------------------------------------------
# Price API (our own server) and defaults
# -----------------------------------------------------------------------------
PRICE_API_URL = os.getenv("PRICE_API_URL", "http://localhost:8000")
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "8000"))
DEFAULT_PIN = os.getenv("DEFAULT_PIN", "700001")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = None):
    """Apply the shared log format to the root logger."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
