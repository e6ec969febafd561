import pytest
from fastapi.testclient import TestClient

from shared.store import MemoryStore
from auction.server import AuctionManager, create_app

ITEMS = [
    {"id": 1, "name": "Lamp", "basePrice": 50},
    {"id": 2, "name": "Clock", "basePrice": 200},
    {"id": 3, "name": "Rug", "basePrice": 0},
]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def manager(store):
    m = AuctionManager(store, initial_balance=1000)
    m.seed_items(ITEMS)
    return m


@pytest.fixture
def open_manager(manager):
    manager.open_auction()
    return manager


@pytest.fixture
def client(manager):
    return TestClient(create_app(manager))
