"""
In-memory transactional store for simplestore.

This package provides a generic multi-table, multi-index store:
- Typed table handles (TableSchema[R]) with unique and compound indexes
- Read transactions over immutable snapshots
- Serialized write transactions with all-or-nothing commit

Invariants:
    - Exactly one writer at a time; readers never wait
    - Readers observe the snapshot current when they began
    - Commits are totally ordered and never partially visible

How to change safely:
    - Schema problems are programmer errors (SchemaError); only
      ConstraintError is meant to be handled by callers
    - Keep record types frozen so snapshots can share them
"""

from .errors import (
    ConstraintError,
    ReadOnlyTransactionError,
    RecordNotFoundError,
    SchemaError,
    StoreError,
    TransactionClosedError,
)
from .schema import PRIMARY_INDEX, DBSchema, IndexSchema, TableSchema
from .store import Store, Txn

__all__ = [
    # Schema
    "DBSchema",
    "TableSchema",
    "IndexSchema",
    "PRIMARY_INDEX",
    # Store
    "Store",
    "Txn",
    # Errors
    "StoreError",
    "SchemaError",
    "ConstraintError",
    "RecordNotFoundError",
    "ReadOnlyTransactionError",
    "TransactionClosedError",
]
