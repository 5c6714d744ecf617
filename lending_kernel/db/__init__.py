"""Database layer - ledger store and base classes."""

from lending_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from lending_kernel.db.engine import LedgerStore

__all__ = [
    "LedgerStore",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
