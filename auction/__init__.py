"""
Live Auction Module

Single global auction: registration, bidding with balance reservation,
and settlement on close.
"""

from .server import run, create_app, create_manager, AuctionManager
from .ledger import (
    User, Item, AuctionState, BidRecord, BidResult, SaleResult,
    reserved_amount, available_balance, place_bid, settle
)

__all__ = [
    "run", "create_app", "create_manager", "AuctionManager",
    "User", "Item", "AuctionState", "BidRecord", "BidResult", "SaleResult",
    "reserved_amount", "available_balance", "place_bid", "settle"
]
