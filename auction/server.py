import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from shared.config import DEFAULT_ITEMS, get_db_path, get_initial_balance
from shared.errors import AlreadyOpen, NotFound
from shared.server_base import (
    BaseConnectionManager, register_error_handlers, run_blocking, run_server
)
from shared.store import RecordStore, SQLiteStore
from auction.ledger import (
    AuctionState, Item, User,
    auction_stats, build_catalogue, clear_bids, find_user, mark_closed,
    open_auction, place_bid, register_user, settle, sort_items, user_view
)

logger = logging.getLogger(__name__)


class AuctionManager(BaseConnectionManager):
    """
    Runs every auction operation against the record store.

    Each operation loads fresh collections, applies the ledger rules and
    saves the result while holding one process-wide lock, so two requests
    can never interleave their load and save.
    """

    def __init__(self, store: RecordStore, initial_balance: Optional[int] = None):
        super().__init__()
        self.store = store
        self.initial_balance = (initial_balance if initial_balance is not None
                                else get_initial_balance())
        self.lock = threading.Lock()

    # ------------------ Loading helpers ------------------

    def _load_list(self, name: str) -> List[dict]:
        records = self.store.load(name)
        return records if isinstance(records, list) else []

    def _load_users(self) -> List[User]:
        return [User.from_record(r) for r in self._load_list("users")]

    def _load_items(self) -> List[Item]:
        return [Item.from_record(r) for r in self._load_list("items")]

    def _load_auction(self) -> AuctionState:
        return AuctionState.from_record(self.store.load("auction"))

    # ------------------ Users ------------------

    def register(self, name) -> dict:
        with self.lock:
            users = self._load_users()
            user = register_user(users, name, self.initial_balance)
            self.store.add("users", user.to_record())
        logger.info("Registered user %s (id %s)", user.name, user.id)
        return user.public_view()

    def get_user(self, user_id: int) -> dict:
        with self.lock:
            users = self._load_users()
            items = self._load_items()
        user = find_user(users, user_id)
        if user is None:
            raise NotFound("user not found")
        return user_view(user, items)

    def list_users(self) -> List[dict]:
        """Raw user records, always a list."""
        with self.lock:
            return self._load_list("users")

    # ------------------ Items ------------------

    def list_items(self, sort_by_highest_bid: bool = False) -> List[dict]:
        with self.lock:
            items = self._load_items()
        return [i.to_record() for i in sort_items(items, sort_by_highest_bid)]

    def place_bid(self, item_id: int, user_id: int, amount: int) -> dict:
        with self.lock:
            auction = self._load_auction()
            items = self._load_items()
            users = self._load_users()
            result = place_bid(auction, items, users, item_id, user_id, amount)
            self.store.save_many({
                "items": [i.to_record() for i in items],
                "users": [u.to_record() for u in users],
            })
        logger.info("Bid accepted: %s leads item %s with %s",
                    result.highest_bidder, result.item_id, result.highest_bid)
        return result.to_record()

    # ------------------ Auction lifecycle ------------------

    def status(self) -> dict:
        with self.lock:
            return self._load_auction().to_record()

    def stats(self) -> dict:
        with self.lock:
            items = self._load_items()
        return auction_stats(items)

    def open_auction(self) -> str:
        with self.lock:
            auction = self._load_auction()
            start_time = open_auction(auction)
            self.store.save("auction", auction.to_record())
        logger.info("Auction opened at %s", start_time)
        return start_time

    def close_auction(self) -> List[dict]:
        with self.lock:
            auction = self._load_auction()
            mark_closed(auction)
            # Closed state goes to the store before settlement starts
            self.store.save("auction", auction.to_record())

            items = self._load_items()
            users = self._load_users()
            results = settle(items, users)
            self.store.save_many({
                "items": [i.to_record() for i in items],
                "users": [u.to_record() for u in users],
            })
        logger.info("Auction closed: %d item(s) sold", len(results))
        return [r.to_record() for r in results]

    def seed_items(self, records: Optional[List[dict]] = None) -> int:
        """Store a catalogue if there are no items yet. Returns how many were added."""
        records = DEFAULT_ITEMS if records is None else records
        with self.lock:
            if self._load_list("items"):
                return 0
            if self._load_auction().is_open:
                raise AlreadyOpen("cannot seed items while the auction is open")
            catalogue = build_catalogue(records)
            self.store.save("items", [i.to_record() for i in catalogue])
        logger.info("Seeded %d item(s)", len(catalogue))
        return len(catalogue)

    def reset(self, records: Optional[List[dict]] = None) -> dict:
        """
        Start over for a new auction: users are dropped and the catalogue
        comes back without bids. Only allowed while the auction is closed.
        """
        with self.lock:
            auction = self._load_auction()
            if auction.is_open:
                raise AlreadyOpen("cannot reset while the auction is open")
            if records is not None:
                catalogue = build_catalogue(records)
            else:
                catalogue = clear_bids(self._load_items())
            fresh = AuctionState()
            self.store.save_many({
                "users": [],
                "items": [i.to_record() for i in catalogue],
                "auction": fresh.to_record(),
            })
        logger.info("Auction reset with %d item(s)", len(catalogue))
        return {"auction": fresh.to_record(), "items": len(catalogue)}


# ------------------ Request bodies ------------------

class RegisterRequest(BaseModel):
    name: Optional[str] = None


class BidRequest(BaseModel):
    # Left untyped so the ledger decides the order of failures
    userId: Any = None
    amount: Any = None


class ResetRequest(BaseModel):
    items: Optional[List[Dict[str, Any]]] = None


INDEX_HTML = """<h1>Auction Server</h1>
<ul>
  <li>POST /users/register</li>
  <li>GET /items?sort=highestBid</li>
  <li>POST /items/{id}/bid</li>
  <li>POST /auction/openAll, POST /auction/closeAll</li>
  <li>WebSocket /ws for live updates</li>
</ul>
"""


def create_manager(db_path: Optional[str] = None) -> AuctionManager:
    """Manager backed by the configured SQLite store, seeded if empty."""
    manager = AuctionManager(SQLiteStore(db_path or get_db_path()))
    manager.seed_items()
    return manager


def create_app(manager: Optional[AuctionManager] = None) -> FastAPI:
    if manager is None:
        manager = create_manager()

    app = FastAPI(title="Live Auction")
    app.state.manager = manager
    register_error_handlers(app)

    @app.get("/", response_class=HTMLResponse)
    async def root():
        return INDEX_HTML

    @app.post("/users/register", status_code=201)
    async def register(body: RegisterRequest):
        return await run_blocking(manager.register, body.name)

    @app.get("/users")
    async def list_users():
        return await run_blocking(manager.list_users)

    @app.get("/users/{user_id}")
    async def get_user(user_id: int):
        return await run_blocking(manager.get_user, user_id)

    @app.get("/items")
    async def list_items(sort: Optional[str] = None):
        return await run_blocking(manager.list_items, sort_by_highest_bid=(sort == "highestBid"))

    @app.post("/items/{item_id}/bid")
    async def bid(item_id: int, body: BidRequest):
        result = await run_blocking(manager.place_bid, item_id, body.userId, body.amount)
        await manager.broadcast({"type": "bid", **result})
        return result

    @app.get("/auction")
    async def auction_status():
        return await run_blocking(manager.status)

    @app.get("/auction/stats")
    async def auction_stats_route():
        return await run_blocking(manager.stats)

    @app.post("/auction/openAll")
    async def open_all():
        start_time = await run_blocking(manager.open_auction)
        await manager.broadcast({"type": "auction_open", "startTime": start_time})
        return {"auction": "abierta", "startTime": start_time}

    @app.post("/auction/closeAll")
    async def close_all():
        results = await run_blocking(manager.close_auction)
        await manager.broadcast({"type": "auction_closed", "results": results})
        return {"auction": "cerrada", "results": results}

    @app.post("/auction/reset")
    async def reset(body: Optional[ResetRequest] = None):
        summary = await run_blocking(manager.reset, body.items if body is not None else None)
        await manager.broadcast({"type": "auction_reset", **summary})
        return summary

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await manager.connect(ws)
        try:
            while True:
                # Clients only listen; anything they send is ignored
                await ws.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(ws)

    return app


# For debugging/running directly
def run(host: str = "0.0.0.0", port: int = 5080):
    run_server(create_app(), host=host, port=port)


if __name__ == "__main__":
    run()
