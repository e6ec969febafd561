"""
Auction Ledger - users, items, and the rules that move money between them.

Everything here works on plain in-memory collections loaded from the
record store. Nothing is cached: reserved money is re-derived from the
items on every call.

Key concepts:
- Reserved amount: sum of the highest bids a user is currently leading
- Available balance: balance minus reserved amount, the ceiling for a new bid
- Settlement: on close, every led item is sold and its leader is charged

Lifecycle: Closed -> Open -> Closed. Balances change only at settlement.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Dict, Iterable, List, Optional

from shared.config import DEFAULT_INITIAL_BALANCE
from shared.errors import (
    AlreadyClosed, AlreadyOpen, AuctionClosed, Conflict, InsufficientFunds,
    InvalidBid, InvalidInput, NotFound
)

logger = logging.getLogger(__name__)


@dataclass
class BidRecord:
    """One entry of a user's bid history."""
    item_id: int
    amount: int

    def to_record(self) -> dict:
        return {"itemId": self.item_id, "amount": self.amount}

    @classmethod
    def from_record(cls, rec: dict) -> "BidRecord":
        return cls(item_id=rec["itemId"], amount=rec["amount"])


@dataclass
class User:
    id: int
    name: str
    balance: int = DEFAULT_INITIAL_BALANCE
    bids: List[BidRecord] = field(default_factory=list)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "balance": self.balance,
            "bids": [b.to_record() for b in self.bids],
        }

    @classmethod
    def from_record(cls, rec: dict) -> "User":
        return cls(
            id=rec["id"],
            name=rec["name"],
            balance=rec.get("balance", DEFAULT_INITIAL_BALANCE),
            bids=[BidRecord.from_record(b) for b in rec.get("bids") or []],
        )

    def public_view(self) -> dict:
        """Registration response: bid history omitted."""
        return {"id": self.id, "name": self.name, "balance": self.balance}


@dataclass
class Item:
    id: int
    name: str
    base_price: int = 0
    highest_bid: int = 0
    highest_bidder: Optional[str] = None
    sold: bool = False

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "basePrice": self.base_price,
            "highestBid": self.highest_bid,
            "highestBidder": self.highest_bidder,
            "sold": self.sold,
        }

    @classmethod
    def from_record(cls, rec: dict) -> "Item":
        base_price = rec.get("basePrice", 0)
        return cls(
            id=rec["id"],
            name=rec["name"],
            base_price=base_price,
            highest_bid=rec.get("highestBid", base_price),
            highest_bidder=rec.get("highestBidder"),
            sold=bool(rec.get("sold", False)),
        )


@dataclass
class AuctionState:
    """The single global auction window."""
    is_open: bool = False
    start_time: Optional[str] = None

    def to_record(self) -> dict:
        return {"isOpen": self.is_open, "startTime": self.start_time}

    @classmethod
    def from_record(cls, rec: Optional[dict]) -> "AuctionState":
        if not isinstance(rec, dict):
            return cls()
        return cls(is_open=bool(rec.get("isOpen", False)), start_time=rec.get("startTime"))


@dataclass
class BidResult:
    item_id: int
    highest_bid: int
    highest_bidder: str

    def to_record(self) -> dict:
        return {
            "itemId": self.item_id,
            "highestBid": self.highest_bid,
            "highestBidder": self.highest_bidder,
        }


@dataclass
class SaleResult:
    """One sold item in the closing report."""
    item_id: int
    item: str
    winner: str
    final_bid: int

    def to_record(self) -> dict:
        return {
            "itemId": self.item_id,
            "item": self.item,
            "winner": self.winner,
            "finalBid": self.final_bid,
        }


def find_user(users: Iterable[User], user_id: int) -> Optional[User]:
    for u in users:
        if u.id == user_id:
            return u
    return None


def find_item(items: Iterable[Item], item_id: int) -> Optional[Item]:
    for i in items:
        if i.id == item_id:
            return i
    return None


def reserved_amount(user_name: str, items: Iterable[Item],
                    exclude_item_id: Optional[int] = None) -> int:
    """
    Money a user has tied up in items they currently lead.

    Every item naming the user as highest bidder counts, sold or not.
    exclude_item_id leaves one item out, so a leader raising their own
    bid is not charged twice for it.
    """
    return sum(
        i.highest_bid for i in items
        if i.highest_bidder == user_name and i.id != exclude_item_id
    )


def available_balance(user: User, items: Iterable[Item],
                      exclude_item_id: Optional[int] = None) -> int:
    return user.balance - reserved_amount(user.name, items, exclude_item_id)


def _require_int(value, what: str):
    # bool is an int subclass but never a valid id or amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{what} must be an integer")


# --------------------------------------------------------------------------
# Registration and queries
# --------------------------------------------------------------------------

def register_user(users: List[User], name,
                  initial_balance: int = DEFAULT_INITIAL_BALANCE) -> User:
    """Build a new user; the caller persists it."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidInput("name is required")
    clean = name.strip()

    if any(u.name == clean for u in users):
        raise Conflict(f"user name '{clean}' already exists")

    return User(id=len(users) + 1, name=clean, balance=initial_balance)


def user_view(user: User, items: Iterable[Item]) -> dict:
    """Current standing of a user, balance shown net of reservations."""
    return {
        "id": user.id,
        "name": user.name,
        "balance": available_balance(user, items),
        "bids": [b.to_record() for b in user.bids],
    }


def sort_items(items: Iterable[Item], by_highest_bid: bool = False) -> List[Item]:
    """Items in storage order, or by highest bid descending with id as tiebreak."""
    if not by_highest_bid:
        return list(items)
    return sorted(items, key=lambda i: (-i.highest_bid, i.id))


def auction_stats(items: Iterable[Item]) -> dict:
    items = list(items)
    return {
        "totalItems": len(items),
        "itemsWithBids": sum(1 for i in items if i.highest_bidder is not None),
        "totalValue": sum(i.highest_bid for i in items),
    }


# --------------------------------------------------------------------------
# Bidding
# --------------------------------------------------------------------------

def place_bid(auction: AuctionState, items: List[Item], users: List[User],
              item_id: int, user_id: int, amount: int) -> BidResult:
    """
    Validate and apply a bid, mutating the item and the user in place.

    Checks run in a fixed order and the first failure wins:
    auction open, item exists, user exists, amount beats the current
    highest bid, amount fits in the available balance.
    """
    if not auction.is_open:
        raise AuctionClosed("the auction is closed")

    item = find_item(items, item_id)
    if item is None:
        raise NotFound("item not found")

    user = find_user(users, user_id)
    if user is None:
        raise NotFound("user not found")

    _require_int(amount, "amount")
    if item.sold:
        raise InvalidBid(f"item '{item.name}' has already been sold")
    if amount <= item.highest_bid:
        raise InvalidBid(f"bid must exceed the current highest bid of {item.highest_bid}")

    available = available_balance(user, items, exclude_item_id=item.id)
    if amount > available:
        raise InsufficientFunds(f"insufficient funds: {available} available")

    item.highest_bid = amount
    item.highest_bidder = user.name
    user.bids.append(BidRecord(item_id=item.id, amount=amount))

    return BidResult(item_id=item.id, highest_bid=amount, highest_bidder=user.name)


# --------------------------------------------------------------------------
# Lifecycle
# --------------------------------------------------------------------------

def _timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def open_auction(auction: AuctionState, now: Optional[datetime] = None) -> str:
    """Open the window and return its start time."""
    if auction.is_open:
        raise AlreadyOpen("the auction is already open")
    auction.is_open = True
    auction.start_time = _timestamp(now)
    return auction.start_time


def mark_closed(auction: AuctionState):
    if not auction.is_open:
        raise AlreadyClosed("the auction is already closed")
    auction.is_open = False


def settle(items: List[Item], users: List[User]) -> List[SaleResult]:
    """
    Sell every led item and charge its winner.

    Items sold in an earlier cycle are left alone. A winner name that
    matches no user is reported but not charged.
    """
    by_name: Dict[str, User] = {u.name: u for u in users}
    results = []

    for item in items:
        if item.highest_bidder is None or item.sold:
            continue
        item.sold = True

        winner = by_name.get(item.highest_bidder)
        if winner is None:
            logger.warning("Winner '%s' of item %s (%s) matches no user; not charged",
                           item.highest_bidder, item.id, item.name)
        else:
            winner.balance -= item.highest_bid
            logger.info("%s paid %s for %s", winner.name, item.highest_bid, item.name)

        results.append(SaleResult(
            item_id=item.id,
            item=item.name,
            winner=item.highest_bidder,
            final_bid=item.highest_bid,
        ))

    return results


# --------------------------------------------------------------------------
# Catalogue
# --------------------------------------------------------------------------

def build_catalogue(records) -> List[Item]:
    """Validate raw item records and return fresh, unbid items."""
    if not isinstance(records, list):
        raise InvalidInput("items must be a list")

    catalogue = []
    seen = set()
    for rec in records:
        if not isinstance(rec, dict):
            raise InvalidInput("each item must be an object")
        item_id = rec.get("id")
        name = rec.get("name")
        base_price = rec.get("basePrice", 0)

        _require_int(item_id, "item id")
        if item_id <= 0:
            raise InvalidInput(f"item id must be positive, got {item_id}")
        if item_id in seen:
            raise InvalidInput(f"duplicate item id {item_id}")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput(f"item {item_id} needs a name")
        _require_int(base_price, "basePrice")
        if base_price < 0:
            raise InvalidInput(f"basePrice of item {item_id} must not be negative")

        seen.add(item_id)
        catalogue.append(Item(id=item_id, name=name.strip(), base_price=base_price,
                              highest_bid=base_price))
    return catalogue


def clear_bids(items: Iterable[Item]) -> List[Item]:
    """Same catalogue with every bid and sale removed."""
    return [
        Item(id=i.id, name=i.name, base_price=i.base_price, highest_bid=i.base_price)
        for i in items
    ]
