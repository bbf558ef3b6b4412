"""
Error types for the in-memory transactional store.

Invariants:
    - ConstraintError is the only recoverable store error; callers decide
      what it means for them
    - SchemaError, ReadOnlyTransactionError and TransactionClosedError signal
      programmer mistakes and are not meant to be caught by services
"""

from __future__ import annotations

from typing import Any


class StoreError(Exception):
    """Base exception for store operations."""

    pass


class SchemaError(StoreError):
    """Unknown table or index, wrong key arity, or an invalid schema."""

    pass


class ConstraintError(StoreError):
    """A unique index already maps this key to a different record.

    Attributes:
        table: Table name
        index: Name of the index that collided
        key: Index key that collided
    """

    def __init__(self, table: str, index: str, key: tuple[Any, ...]) -> None:
        self.table = table
        self.index = index
        self.key = key
        super().__init__(f"unique constraint violated on {table}.{index} for key {key!r}")


class RecordNotFoundError(StoreError):
    """Delete was asked to remove a record that is not stored."""

    pass


class ReadOnlyTransactionError(StoreError):
    """Write attempted on a read-only transaction."""

    pass


class TransactionClosedError(StoreError):
    """Write attempted after commit or abort."""

    pass
