"""
Table and index definitions for the in-memory store.

A database schema is a fixed set of tables. Each table names the record
type it holds and the indexes that can be used to look records up:

- IndexSchema: one or more record fields, optionally unique
- TableSchema: typed table handle (generic over its record type)
- DBSchema: the complete set of tables, validated once at startup

Invariants:
    - Every table has a unique primary index named "id"
    - Index fields exist on the record type
    - Table names are unique within a schema
    - Index names are unique within a table

How to change safely:
    - Adding a table or index is always safe (the store starts empty)
    - Records must be hashable frozen dataclasses so snapshots can share them

Example:
    >>> Users = TableSchema(
    ...     name="users",
    ...     record_type=User,
    ...     indexes=(IndexSchema("id", ("username",)),),
    ... )
    >>> schema = DBSchema(tables=(Users,))
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Generic, Iterator, TypeVar

from .errors import SchemaError

R = TypeVar("R")

PRIMARY_INDEX = "id"


@dataclass(frozen=True)
class IndexSchema:
    """Definition of a single index.

    Attributes:
        name: Index name, used in lookups
        fields: Record fields forming the key, in order (compound if > 1)
        unique: Whether at most one record may hold each key
    """

    name: str
    fields: tuple[str, ...]
    unique: bool = True

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaError("Index name cannot be empty")
        if not self.fields:
            raise SchemaError(f"Index '{self.name}' must have at least one field")

    def key_for(self, record: Any) -> tuple[Any, ...]:
        """Extract this index's key from a record."""
        return tuple(getattr(record, f) for f in self.fields)


@dataclass(frozen=True)
class TableSchema(Generic[R]):
    """Typed handle for one table.

    Lookups through a ``TableSchema[R]`` return ``R``, so callers never
    need to cast query results.

    Attributes:
        name: Table name
        record_type: Frozen dataclass stored in this table
        indexes: Index definitions; must include the primary "id" index
    """

    name: str
    record_type: type[R]
    indexes: tuple[IndexSchema, ...]

    def validate(self) -> None:
        """Validate the table definition.

        Raises:
            SchemaError: If the definition is inconsistent
        """
        if not self.name:
            raise SchemaError("Table name cannot be empty")

        if not dataclasses.is_dataclass(self.record_type):
            raise SchemaError(f"Table '{self.name}': record type must be a dataclass")
        params = getattr(self.record_type, "__dataclass_params__")
        if not params.frozen:
            raise SchemaError(f"Table '{self.name}': record type must be frozen")

        names = [idx.name for idx in self.indexes]
        if len(names) != len(set(names)):
            raise SchemaError(f"Table '{self.name}': duplicate index names {names}")

        primary = self.index(PRIMARY_INDEX)
        if not primary.unique:
            raise SchemaError(f"Table '{self.name}': primary index must be unique")

        known = {f.name for f in dataclasses.fields(self.record_type)}
        for idx in self.indexes:
            missing = [f for f in idx.fields if f not in known]
            if missing:
                raise SchemaError(
                    f"Table '{self.name}': index '{idx.name}' references unknown fields {missing}"
                )

    def index(self, name: str) -> IndexSchema:
        """Get an index by name.

        Raises:
            SchemaError: If the table has no such index
        """
        for idx in self.indexes:
            if idx.name == name:
                return idx
        raise SchemaError(f"Table '{self.name}' has no index '{name}'")

    @property
    def primary(self) -> IndexSchema:
        return self.index(PRIMARY_INDEX)

    def secondary_indexes(self) -> Iterator[IndexSchema]:
        return (idx for idx in self.indexes if idx.name != PRIMARY_INDEX)


@dataclass(frozen=True)
class DBSchema:
    """The full set of tables a store is created with."""

    tables: tuple[TableSchema[Any], ...]

    def validate(self) -> None:
        """Validate every table and check for duplicate names.

        Raises:
            SchemaError: If the schema is invalid
        """
        if not self.tables:
            raise SchemaError("Schema must define at least one table")

        seen: set[str] = set()
        for table in self.tables:
            if table.name in seen:
                raise SchemaError(f"Duplicate table name '{table.name}'")
            seen.add(table.name)
            table.validate()

    def table(self, name: str) -> TableSchema[Any]:
        """Get a table by name.

        Raises:
            SchemaError: If the schema has no such table
        """
        for table in self.tables:
            if table.name == name:
                return table
        raise SchemaError(f"Unknown table '{name}'")
