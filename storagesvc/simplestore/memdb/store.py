"""
In-memory transactional store for simplestore.

The store keeps every table in process memory and offers atomic read and
write transactions with snapshot isolation:

- Read transactions pin the snapshot that was current when they began and
  never wait
- Write transactions are serialized by a single writer lock and mutate
  private copy-on-write table copies
- Commit publishes all of a writer's tables by swapping the root snapshot
  in one assignment

Invariants:
    - At most one write transaction is open at any time
    - A snapshot, once published, is never mutated
    - A writer's changes are invisible to everyone else until commit
    - Commits are totally ordered; ``version`` increases by one per
      committed write that changed something
    - Non-primary unique indexes never map one key to two records

How to change safely:
    - Keep every mutation behind ``Txn._writable_state`` so the copy happens
      before the first write to a table
    - Never hand out references to mutable internal dicts
    - All data is lost on process exit

Cost model:
    - The first write to a table in a transaction copies that table's
      record and index dicts, O(rows); sessions are never deleted, so a
      login costs O(sessions issued). A persistent map would be needed to
      make this O(log n)
    - get() and full-key scan() are dict lookups; partial-prefix scans
      sort the matching keys of the index

Example:
    >>> store = Store(schema)
    >>> async with store.transaction(write=True) as txn:
    ...     txn.insert(USERS, User("alice", "..."))
    ...     txn.commit()
    >>> async with store.transaction() as txn:
    ...     txn.get(USERS, "id", "alice")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .errors import (
    ConstraintError,
    ReadOnlyTransactionError,
    RecordNotFoundError,
    SchemaError,
    TransactionClosedError,
)
from .schema import PRIMARY_INDEX, DBSchema, IndexSchema, TableSchema

logger = logging.getLogger(__name__)

R = TypeVar("R")

Key = tuple[Any, ...]


@dataclass
class _TableState:
    """Storage for one table inside one snapshot.

    Attributes:
        records: Primary key -> record
        unique: Secondary unique index name -> key -> primary key
        multi: Secondary non-unique index name -> key -> primary keys
    """

    records: dict[Key, Any] = field(default_factory=dict)
    unique: dict[str, dict[Key, Key]] = field(default_factory=dict)
    multi: dict[str, dict[Key, frozenset[Key]]] = field(default_factory=dict)

    @classmethod
    def empty(cls, table: TableSchema[Any]) -> _TableState:
        state = cls()
        for idx in table.secondary_indexes():
            if idx.unique:
                state.unique[idx.name] = {}
            else:
                state.multi[idx.name] = {}
        return state

    def copy(self) -> _TableState:
        # frozenset values are immutable, so shallow copies are enough
        return _TableState(
            records=dict(self.records),
            unique={name: dict(entries) for name, entries in self.unique.items()},
            multi={name: dict(entries) for name, entries in self.multi.items()},
        )

    def link(self, table: TableSchema[Any], pk: Key, record: Any) -> None:
        self.records[pk] = record
        for idx in table.secondary_indexes():
            key = idx.key_for(record)
            if idx.unique:
                self.unique[idx.name][key] = pk
            else:
                entries = self.multi[idx.name]
                entries[key] = entries.get(key, frozenset()) | {pk}

    def unlink(self, table: TableSchema[Any], pk: Key, record: Any) -> None:
        del self.records[pk]
        for idx in table.secondary_indexes():
            key = idx.key_for(record)
            if idx.unique:
                if self.unique[idx.name].get(key) == pk:
                    del self.unique[idx.name][key]
            else:
                entries = self.multi[idx.name]
                remaining = entries.get(key, frozenset()) - {pk}
                if remaining:
                    entries[key] = remaining
                else:
                    entries.pop(key, None)

    def primary_keys(self, idx: IndexSchema, prefix: Key) -> list[Key]:
        """Primary keys of records matching an index prefix, in index order."""
        n = len(prefix)
        if n == len(idx.fields):
            return self._exact(idx, prefix)
        if idx.name == PRIMARY_INDEX:
            return sorted(pk for pk in self.records if pk[:n] == prefix)
        if idx.unique:
            entries = self.unique[idx.name]
            return [entries[k] for k in sorted(k for k in entries if k[:n] == prefix)]
        multi = self.multi[idx.name]
        pks: list[Key] = []
        for k in sorted(k for k in multi if k[:n] == prefix):
            pks.extend(sorted(multi[k]))
        return pks

    def _exact(self, idx: IndexSchema, key: Key) -> list[Key]:
        # full key: hash lookup, no sort over the whole index
        if idx.name == PRIMARY_INDEX:
            return [key] if key in self.records else []
        if idx.unique:
            pk = self.unique[idx.name].get(key)
            return [pk] if pk is not None else []
        return sorted(self.multi[idx.name].get(key, ()))


class Txn:
    """A read or write transaction against a Store.

    Obtained from ``Store.begin()`` or ``Store.transaction()``. Reads see
    the snapshot the transaction started from plus, for writers, the
    transaction's own uncommitted writes.

    Thread safety:
        A transaction belongs to the task that opened it and must not be
        shared.
    """

    def __init__(
        self,
        store: Store,
        root: dict[str, _TableState],
        write: bool,
        version: int,
    ) -> None:
        self._store = store
        self._root = root
        self._write = write
        self._closed = False
        self._dirty: dict[str, _TableState] = {}
        self.version = version

    @property
    def writable(self) -> bool:
        return self._write

    @property
    def closed(self) -> bool:
        return self._closed

    def _index(self, table: TableSchema[Any], index: str) -> IndexSchema:
        self._store.check_table(table)
        return table.index(index)

    def _state(self, table: TableSchema[Any]) -> _TableState:
        state = self._dirty.get(table.name)
        if state is None:
            state = self._root[table.name]
        return state

    def _writable_state(self, table: TableSchema[Any]) -> _TableState:
        if self._closed:
            raise TransactionClosedError("transaction already committed or aborted")
        if not self._write:
            raise ReadOnlyTransactionError("cannot write in a read-only transaction")
        self._store.check_table(table)

        state = self._dirty.get(table.name)
        if state is None:
            state = self._root[table.name].copy()
            self._dirty[table.name] = state
        return state

    def get(self, table: TableSchema[R], index: str, *key: Any) -> R | None:
        """Point lookup by index.

        All key parts must be supplied, in index field order. On a
        non-unique index the first match in index order is returned.

        Args:
            table: Table handle
            index: Index name
            *key: Index key parts

        Returns:
            The record, or None if not found

        Raises:
            SchemaError: Unknown table/index or wrong number of key parts
        """
        idx = self._index(table, index)
        if len(key) != len(idx.fields):
            raise SchemaError(
                f"Index '{table.name}.{index}' takes {len(idx.fields)} key parts, got {len(key)}"
            )

        state = self._state(table)
        if idx.name == PRIMARY_INDEX:
            return state.records.get(key)
        if idx.unique:
            pk = state.unique[idx.name].get(key)
            return state.records[pk] if pk is not None else None

        pks = state.multi[idx.name].get(key)
        if not pks:
            return None
        return state.records[min(pks)]

    def scan(self, table: TableSchema[R], index: str, *prefix: Any) -> Iterator[R]:
        """Iterate records whose index key starts with ``prefix``.

        An empty prefix iterates the whole table. The iterator is lazy,
        single-pass and tied to this transaction.

        Raises:
            SchemaError: Unknown table/index or prefix longer than the key
        """
        idx = self._index(table, index)
        if len(prefix) > len(idx.fields):
            raise SchemaError(
                f"Index '{table.name}.{index}' has {len(idx.fields)} key parts, "
                f"prefix has {len(prefix)}"
            )
        return self._iter(self._state(table), idx, prefix)

    @staticmethod
    def _iter(state: _TableState, idx: IndexSchema, prefix: Key) -> Iterator[Any]:
        records = state.records
        for pk in state.primary_keys(idx, prefix):
            record = records.get(pk)
            if record is not None:
                yield record

    def insert(self, table: TableSchema[R], record: R) -> None:
        """Insert a record, replacing any record with the same primary key.

        Raises:
            ConstraintError: A secondary unique index already maps the
                record's key to a record with a different primary key
            SchemaError: Record is not of the table's record type
        """
        if not isinstance(record, table.record_type):
            raise SchemaError(
                f"Table '{table.name}' stores {table.record_type.__name__}, "
                f"got {type(record).__name__}"
            )
        state = self._writable_state(table)
        pk = table.primary.key_for(record)

        for idx in table.secondary_indexes():
            if not idx.unique:
                continue
            key = idx.key_for(record)
            holder = state.unique[idx.name].get(key)
            if holder is not None and holder != pk:
                raise ConstraintError(table.name, idx.name, key)

        existing = state.records.get(pk)
        if existing is not None:
            state.unlink(table, pk, existing)
        state.link(table, pk, record)

    def delete(self, table: TableSchema[R], record: R) -> None:
        """Remove the stored record with the same primary key as ``record``.

        Raises:
            RecordNotFoundError: No such record in this transaction's view
        """
        state = self._writable_state(table)
        pk = table.primary.key_for(record)
        existing = state.records.get(pk)
        if existing is None:
            raise RecordNotFoundError(f"{table.name}: no record with key {pk!r}")
        state.unlink(table, pk, existing)

    def delete_all(self, table: TableSchema[R], index: str, *prefix: Any) -> int:
        """Remove every record matching an index prefix.

        Returns:
            Number of records removed
        """
        self._writable_state(table)
        doomed = list(self.scan(table, index, *prefix))
        for record in doomed:
            self.delete(table, record)
        return len(doomed)

    def commit(self) -> None:
        """Publish all writes atomically and release the writer lock.

        Committing a read-only transaction just closes it.

        Raises:
            TransactionClosedError: Already committed or aborted
        """
        if self._closed:
            raise TransactionClosedError("transaction already committed or aborted")
        self._closed = True
        if self._write:
            self._store._publish(self._dirty)
        self._dirty = {}

    def abort(self) -> None:
        """Discard writes. Safe to call any number of times, including after commit."""
        if self._closed:
            return
        self._closed = True
        self._dirty = {}
        if self._write:
            self._store._release_writer()


class Store:
    """Multi-table in-memory store with snapshot isolation.

    Attributes:
        schema: Tables this store was created with
        version: Number of committed write transactions that changed data

    Thread safety:
        Designed for a single asyncio event loop. Writers are serialized
        with an ``asyncio.Lock``; readers never block.

    Example:
        >>> store = Store(build_schema())
        >>> txn = await store.begin(write=True)
        >>> txn.insert(SESSIONS, Session(token="...", username="alice"))
        >>> txn.commit()
    """

    def __init__(self, schema: DBSchema) -> None:
        """Create an empty store.

        Args:
            schema: Database schema

        Raises:
            SchemaError: If the schema is invalid
        """
        schema.validate()
        self.schema = schema
        self._root: dict[str, _TableState] = {
            table.name: _TableState.empty(table) for table in schema.tables
        }
        self._version = 0
        self._writer = asyncio.Lock()

        logger.info(
            "Store created",
            extra={"tables": [table.name for table in schema.tables]},
        )

    @property
    def version(self) -> int:
        return self._version

    def check_table(self, table: TableSchema[Any]) -> None:
        """Verify a table handle belongs to this store's schema.

        Raises:
            SchemaError: Unknown table, or a handle whose definition differs
        """
        registered = self.schema.table(table.name)
        if registered != table:
            raise SchemaError(f"Table handle '{table.name}' does not match the store schema")

    async def begin(self, write: bool = False) -> Txn:
        """Start a transaction.

        A write transaction waits for the writer lock and holds it until
        commit or abort.

        Args:
            write: Whether the transaction may modify data

        Returns:
            The open transaction
        """
        if write:
            await self._writer.acquire()
        # read the root only after the lock so a writer sees every prior commit
        return Txn(self, self._root, write, self._version)

    @asynccontextmanager
    async def transaction(self, write: bool = False) -> AsyncIterator[Txn]:
        """Context-manager form of ``begin``.

        The transaction is aborted on exit unless the body committed it.
        """
        txn = await self.begin(write)
        try:
            yield txn
        finally:
            txn.abort()

    def stats(self) -> dict[str, int]:
        """Record counts per table in the latest committed snapshot."""
        return {name: len(state.records) for name, state in self._root.items()}

    def _publish(self, dirty: dict[str, _TableState]) -> None:
        try:
            if dirty:
                root = dict(self._root)
                root.update(dirty)
                self._root = root
                self._version += 1
                logger.debug(
                    "Transaction committed",
                    extra={"version": self._version, "tables": sorted(dirty)},
                )
        finally:
            self._release_writer()

    def _release_writer(self) -> None:
        self._writer.release()
