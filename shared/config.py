"""
Configuration for the auction coordinator.
Values come from environment variables, read when asked for.
"""

import logging
import os

DEFAULT_DB_PATH = "auction.db"
DEFAULT_INITIAL_BALANCE = 1000
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Catalogue used to seed an empty store
DEFAULT_ITEMS = [
    {"id": 1, "name": "Vintage Pocket Watch", "basePrice": 50},
    {"id": 2, "name": "Oil Painting", "basePrice": 120},
    {"id": 3, "name": "Signed Football", "basePrice": 80},
    {"id": 4, "name": "Antique Vase", "basePrice": 200},
    {"id": 5, "name": "Vinyl Record Collection", "basePrice": 60},
]


def get_db_path() -> str:
    """Path of the SQLite store, or ':memory:'."""
    return os.environ.get("AUCTION_DB_PATH", DEFAULT_DB_PATH)


def get_initial_balance() -> int:
    """Balance given to every newly registered user."""
    raw = os.environ.get("AUCTION_INITIAL_BALANCE")
    if raw is None or raw.strip() == "":
        return DEFAULT_INITIAL_BALANCE
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"AUCTION_INITIAL_BALANCE must be an integer, got {raw!r}")
    if value < 0:
        raise ValueError(f"AUCTION_INITIAL_BALANCE must not be negative, got {value}")
    return value


def get_log_level() -> str:
    return os.environ.get("AUCTION_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()


def configure_logging(level: str = None):
    """Set up root logging once for the launcher."""
    level = (level or get_log_level()).upper()
    # getLevelName maps known names to their numeric level
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=level, format=LOG_FORMAT)
