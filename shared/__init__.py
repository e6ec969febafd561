"""
Shared components for the live auction server.
"""

from .errors import AuctionError
from .store import RecordStore, MemoryStore, SQLiteStore

__all__ = ['AuctionError', 'RecordStore', 'MemoryStore', 'SQLiteStore']
