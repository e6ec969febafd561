#!/usr/bin/env python3
"""
Live Auction - Main Launcher

Starts the auction server on top of a SQLite record store.
"""

import argparse
import json
import sys

from shared.config import DEFAULT_ITEMS, configure_logging, get_db_path
from shared.errors import AuctionError
from shared.server_base import run_server
from shared.store import SQLiteStore


def load_items_file(path: str) -> list:
    """Read a JSON list of {id, name, basePrice} records."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live Auction - register players, take bids, settle on close"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=5080,
        help="Port to run on (default: 5080)"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite store path (default: $AUCTION_DB_PATH or auction.db)"
    )
    parser.add_argument(
        "--items",
        default=None,
        help="JSON file with the item catalogue to seed"
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop users and bids and start a fresh auction"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: $AUCTION_LOG_LEVEL or INFO)"
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    from auction.server import AuctionManager, create_app

    items = load_items_file(args.items) if args.items else None
    try:
        store = SQLiteStore(args.db or get_db_path())
    except AuctionError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    try:
        manager = AuctionManager(store)
        if args.reset:
            manager.reset(items)
        # No-op unless the store has no items yet
        manager.seed_items(items if items is not None else DEFAULT_ITEMS)

        print("=" * 40)
        print("Auction Server Started")
        print("=" * 40)
        print(f"Store: {store.db_path}")
        print(f"Server running at http://localhost:{args.port}")
        print("Press Ctrl+C to stop")
        print("=" * 40)

        run_server(create_app(manager), host=args.host, port=args.port)
    except AuctionError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
