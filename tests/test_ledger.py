from datetime import datetime, timezone

import pytest

from shared.errors import (
    AlreadyClosed, AlreadyOpen, AuctionClosed, Conflict, InsufficientFunds,
    InvalidBid, InvalidInput, NotFound
)
from auction.ledger import (
    AuctionState, Item, User,
    auction_stats, available_balance, build_catalogue, clear_bids, mark_closed,
    open_auction, place_bid, register_user, reserved_amount, settle,
    sort_items, user_view
)


def _items():
    return [
        Item(id=1, name="A", base_price=50, highest_bid=50),
        Item(id=2, name="B", base_price=200, highest_bid=200),
        Item(id=3, name="C", base_price=10, highest_bid=10),
    ]


def _users():
    return [User(id=1, name="Ana"), User(id=2, name="Leo")]


# --- registration --------------------------------------------------------

def test_register_trims_and_assigns_next_id():
    users = _users()
    user = register_user(users, "  Mia  ")
    assert (user.id, user.name, user.balance, user.bids) == (3, "Mia", 1000, [])


@pytest.mark.parametrize("name", ["", "   ", None, 42])
def test_register_rejects_blank_names(name):
    with pytest.raises(InvalidInput):
        register_user([], name)


def test_register_duplicate_name_is_conflict():
    with pytest.raises(Conflict):
        register_user(_users(), " Ana ")


def test_register_names_are_case_sensitive():
    assert register_user(_users(), "ana").name == "ana"


# --- reservation ---------------------------------------------------------

def test_reserved_amount_sums_led_items():
    items = _items()
    items[0].highest_bid, items[0].highest_bidder = 100, "Ana"
    items[1].highest_bid, items[1].highest_bidder = 300, "Ana"
    items[2].highest_bid, items[2].highest_bidder = 20, "Leo"

    assert reserved_amount("Ana", items) == 400
    assert reserved_amount("Ana", items, exclude_item_id=2) == 100
    assert available_balance(User(id=1, name="Ana"), items) == 600


def test_sold_items_still_count_as_reserved():
    items = _items()
    items[0].highest_bid, items[0].highest_bidder, items[0].sold = 100, "Ana", True
    assert reserved_amount("Ana", items) == 100
    assert available_balance(User(id=1, name="Ana", balance=900), items) == 800


def test_user_view_shows_available_balance_and_history():
    items, users = _items(), _users()
    place_bid(AuctionState(is_open=True), items, users, 1, 1, 120)

    view = user_view(users[0], items)
    assert view == {"id": 1, "name": "Ana", "balance": 880,
                    "bids": [{"itemId": 1, "amount": 120}]}


# --- listing -------------------------------------------------------------

def test_sort_items_by_highest_bid_with_id_tiebreak():
    items = _items()
    items[2].highest_bid = 200
    assert [i.id for i in sort_items(items)] == [1, 2, 3]
    assert [i.id for i in sort_items(items, by_highest_bid=True)] == [2, 3, 1]


def test_auction_stats():
    items = _items()
    items[0].highest_bid, items[0].highest_bidder = 70, "Ana"
    assert auction_stats(items) == {"totalItems": 3, "itemsWithBids": 1, "totalValue": 280}


# --- bidding -------------------------------------------------------------

def test_bid_rejected_while_closed_even_if_invalid():
    with pytest.raises(AuctionClosed):
        place_bid(AuctionState(), _items(), _users(), 99, 99, -5)


def test_bid_validation_order():
    auction = AuctionState(is_open=True)
    with pytest.raises(NotFound, match="item"):
        place_bid(auction, _items(), _users(), 99, 99, 500)
    with pytest.raises(NotFound, match="user"):
        place_bid(auction, _items(), _users(), 1, 99, 500)


@pytest.mark.parametrize("amount", [0, 49, 50])
def test_bid_must_exceed_current(amount):
    with pytest.raises(InvalidBid):
        place_bid(AuctionState(is_open=True), _items(), _users(), 1, 1, amount)


@pytest.mark.parametrize("amount", [60.5, "70", True])
def test_bid_amount_must_be_integer(amount):
    with pytest.raises(InvalidInput):
        place_bid(AuctionState(is_open=True), _items(), _users(), 1, 1, amount)


def test_successful_bid_updates_item_and_history():
    items, users = _items(), _users()
    result = place_bid(AuctionState(is_open=True), items, users, 1, 2, 75)

    assert result.to_record() == {"itemId": 1, "highestBid": 75, "highestBidder": "Leo"}
    assert (items[0].highest_bid, items[0].highest_bidder) == (75, "Leo")
    assert [b.to_record() for b in users[1].bids] == [{"itemId": 1, "amount": 75}]


def test_insufficient_funds_counts_other_led_items():
    auction, items, users = AuctionState(is_open=True), _items(), _users()
    place_bid(auction, items, users, 1, 1, 100)

    with pytest.raises(InsufficientFunds):
        place_bid(auction, items, users, 2, 1, 1000)
    place_bid(auction, items, users, 2, 1, 900)


def test_leader_can_raise_own_bid_up_to_full_balance():
    auction, items, users = AuctionState(is_open=True), _items(), _users()
    place_bid(auction, items, users, 1, 1, 600)
    place_bid(auction, items, users, 1, 1, 1000)
    assert items[0].highest_bid == 1000
    assert available_balance(users[0], items) == 0


def test_outbid_releases_reservation():
    auction, items, users = AuctionState(is_open=True), _items(), _users()
    place_bid(auction, items, users, 1, 1, 900)
    with pytest.raises(InsufficientFunds):
        place_bid(auction, items, users, 2, 1, 300)

    place_bid(auction, items, users, 1, 2, 950)
    place_bid(auction, items, users, 2, 1, 300)
    assert available_balance(users[0], items) == 700


def test_sold_item_cannot_be_bid_on():
    items = _items()
    items[0].sold, items[0].highest_bidder, items[0].highest_bid = True, "Leo", 60
    with pytest.raises(InvalidBid, match="sold"):
        place_bid(AuctionState(is_open=True), items, _users(), 1, 1, 500)


def test_available_balance_never_negative_after_accepted_bids():
    auction, items, users = AuctionState(is_open=True), _items(), _users()
    attempts = [(1, 1, 300), (2, 1, 400), (3, 1, 400), (3, 2, 500),
                (3, 1, 301), (1, 2, 350), (2, 2, 999), (2, 1, 650)]
    for item_id, user_id, amount in attempts:
        try:
            place_bid(auction, items, users, item_id, user_id, amount)
        except (InvalidBid, InsufficientFunds):
            pass
        for u in users:
            assert available_balance(u, items) >= 0


# --- lifecycle -----------------------------------------------------------

def test_open_sets_start_time():
    auction = AuctionState()
    when = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert open_auction(auction, now=when) == "2024-05-01T12:30:00.000Z"
    assert auction.is_open is True


def test_open_twice_and_close_twice_fail():
    auction = AuctionState()
    open_auction(auction)
    with pytest.raises(AlreadyOpen):
        open_auction(auction)
    mark_closed(auction)
    with pytest.raises(AlreadyClosed):
        mark_closed(auction)


def test_settle_charges_winners_in_storage_order():
    auction, items, users = AuctionState(is_open=True), _items(), _users()
    place_bid(auction, items, users, 2, 2, 250)
    place_bid(auction, items, users, 1, 1, 100)

    results = settle(items, users)

    assert [r.to_record() for r in results] == [
        {"itemId": 1, "item": "A", "winner": "Ana", "finalBid": 100},
        {"itemId": 2, "item": "B", "winner": "Leo", "finalBid": 250},
    ]
    assert [i.sold for i in items] == [True, True, False]
    assert (users[0].balance, users[1].balance) == (900, 750)


def test_settle_with_no_bids_is_empty():
    items, users = _items(), _users()
    assert settle(items, users) == []
    assert not any(i.sold for i in items)


def test_settle_unknown_winner_is_reported_not_charged(caplog):
    items, users = _items(), _users()
    items[0].highest_bid, items[0].highest_bidder = 80, "Ghost"

    results = settle(items, users)

    assert results[0].winner == "Ghost"
    assert items[0].sold is True
    assert [u.balance for u in users] == [1000, 1000]
    assert "Ghost" in caplog.text


def test_settle_skips_items_sold_earlier():
    items, users = _items(), _users()
    items[0].highest_bid, items[0].highest_bidder, items[0].sold = 80, "Ana", True
    assert settle(items, users) == []
    assert users[0].balance == 1000


# --- catalogue -----------------------------------------------------------

def test_build_catalogue_starts_at_base_price():
    items = build_catalogue([{"id": 4, "name": " Hat ", "basePrice": 30}, {"id": 5, "name": "Cup"}])
    assert [i.to_record() for i in items] == [
        {"id": 4, "name": "Hat", "basePrice": 30, "highestBid": 30, "highestBidder": None, "sold": False},
        {"id": 5, "name": "Cup", "basePrice": 0, "highestBid": 0, "highestBidder": None, "sold": False},
    ]


@pytest.mark.parametrize("records", [
    "nope",
    [{"id": 1, "name": "A"}, {"id": 1, "name": "B"}],
    [{"id": 0, "name": "A"}],
    [{"id": 1, "name": ""}],
    [{"id": 1, "name": "A", "basePrice": -1}],
    [{"name": "A"}],
])
def test_build_catalogue_rejects_bad_records(records):
    with pytest.raises(InvalidInput):
        build_catalogue(records)


def test_clear_bids():
    items = _items()
    items[0].highest_bid, items[0].highest_bidder, items[0].sold = 80, "Ana", True
    cleared = clear_bids(items)
    assert (cleared[0].highest_bid, cleared[0].highest_bidder, cleared[0].sold) == (50, None, False)


def test_records_round_trip_through_store_format():
    user = User.from_record({"id": 7, "name": "Zoe", "balance": 400,
                             "bids": [{"itemId": 2, "amount": 300}]})
    assert user.bids[0].item_id == 2
    assert User.from_record(user.to_record()) == user

    item = Item.from_record({"id": 9, "name": "Pen", "basePrice": 15})
    assert (item.highest_bid, item.highest_bidder, item.sold) == (15, None, False)

    assert AuctionState.from_record(None) == AuctionState()
