import logging
import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/predictions.db")

# Security
SESSION_COOKIE_NAME = "predictions_session"
TASKS_API_KEY = os.getenv("TASKS_API_KEY", "")

# External fixture feed (api-football compatible)
FOOTBALL_API_BASE_URL = os.getenv("FOOTBALL_API_BASE_URL", "https://v3.football.api-sports.io")
FOOTBALL_API_KEY = os.getenv("FOOTBALL_API_KEY", "")
FOOTBALL_API_TIMEOUT_SECONDS = float(os.getenv("FOOTBALL_API_TIMEOUT_SECONDS", "30"))

# Rounds whose start date falls inside this horizon get published
PUBLISH_HORIZON_DAYS = 28

# Boosts
BOOST_DOUBLE_UP_CODE = "DoubleUp"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging() -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
