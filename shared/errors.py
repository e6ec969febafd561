"""
Error taxonomy for the auction coordinator.

Every failure the core reports to a caller is an AuctionError subclass.
Each class carries the HTTP status the web layer answers with, so the
core never needs to know about HTTP and the server never needs to know
about bidding rules.
"""


class AuctionError(Exception):
    """Base class for all errors reported to callers."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidInput(AuctionError):
    """Malformed or missing request data."""
    status_code = 400


class Conflict(AuctionError):
    """Duplicate user name."""
    status_code = 409


class NotFound(AuctionError):
    """Unknown user or item id."""
    status_code = 404


class AuctionClosed(AuctionError):
    """A bid arrived while the auction window is closed."""
    status_code = 403


class AlreadyOpen(AuctionError):
    status_code = 400


class AlreadyClosed(AuctionError):
    status_code = 400


class InvalidBid(AuctionError):
    """Bid does not exceed the current highest bid."""
    status_code = 400


class InsufficientFunds(AuctionError):
    """Bid exceeds the bidder's available balance."""
    status_code = 400


class ServerError(AuctionError):
    """The record store failed."""
    status_code = 500
