"""Ledger collaborators: contract, in-memory and SQLite implementations."""

from .base import Ledger, Transaction, WriteOp
from .memory_store import InMemoryLedger
from .sqlite_store import SqliteLedger

# Collection names shared by every component
INSTRUMENTS = "instruments"
ACCOUNTS = "accounts"
POSITIONS = "positions"
TREASURIES = "treasuries"
SETTINGS = "settings"
EVENT_SETTINGS = "event_settings"
ACTIVE_EVENTS = "active_events"
EVENT_LOGS = "event_logs"

__all__ = [
    "Ledger",
    "Transaction",
    "WriteOp",
    "InMemoryLedger",
    "SqliteLedger",
    "INSTRUMENTS",
    "ACCOUNTS",
    "POSITIONS",
    "TREASURIES",
    "SETTINGS",
    "EVENT_SETTINGS",
    "ACTIVE_EVENTS",
    "EVENT_LOGS",
]
