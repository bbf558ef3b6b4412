"""
Records and tables for simplestore.

Table schema:
    users:
        - username TEXT
        - password_hash TEXT
        - id index: (username), unique

    sessions:
        - token TEXT (UUID4 string)
        - username TEXT (soft reference to users.username)
        - id index: (token), unique

    files:
        - filename TEXT
        - owner TEXT (soft reference to users.username)
        - content_type TEXT
        - data BYTES
        - id index: (filename, owner), unique
        - owner index: (owner), unique in single-file mode

Invariants:
    - Records are immutable; updates replace the whole record
    - The store does not enforce references between tables; callers make
      sure a user exists before writing sessions or files for it
    - Both files tables are named "files"; exactly one of them is part of a
      given store's schema

How to change safely:
    - Add fields with defaults so existing constructors keep working
    - Choose the files table through ``files_table()`` so services and the
      schema always agree
"""

from __future__ import annotations

from dataclasses import dataclass

from .memdb import DBSchema, IndexSchema, TableSchema


@dataclass(frozen=True)
class User:
    """A registered account.

    Attributes:
        username: Unique login name
        password_hash: Salted password hash (never the plaintext)
    """

    username: str
    password_hash: str


@dataclass(frozen=True)
class Session:
    """An issued session token and the user it authenticates."""

    token: str
    username: str


@dataclass(frozen=True)
class FileRecord:
    """A stored file.

    Attributes:
        filename: Name chosen by the owner
        owner: Username of the owner
        content_type: MIME type reported at upload
        data: File contents
    """

    filename: str
    owner: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


USERS: TableSchema[User] = TableSchema(
    name="users",
    record_type=User,
    indexes=(IndexSchema("id", ("username",)),),
)

SESSIONS: TableSchema[Session] = TableSchema(
    name="sessions",
    record_type=Session,
    indexes=(IndexSchema("id", ("token",)),),
)

# One file per owner: the owner index is unique.
FILES_SINGLE: TableSchema[FileRecord] = TableSchema(
    name="files",
    record_type=FileRecord,
    indexes=(
        IndexSchema("id", ("filename", "owner")),
        IndexSchema("owner", ("owner",), unique=True),
    ),
)

# Any number of files per owner.
FILES_MULTI: TableSchema[FileRecord] = TableSchema(
    name="files",
    record_type=FileRecord,
    indexes=(
        IndexSchema("id", ("filename", "owner")),
        IndexSchema("owner", ("owner",), unique=False),
    ),
)


def files_table(single_file_per_owner: bool = True) -> TableSchema[FileRecord]:
    """Get the files table definition for the configured ownership model."""
    return FILES_SINGLE if single_file_per_owner else FILES_MULTI


def build_schema(single_file_per_owner: bool = True) -> DBSchema:
    """Build the database schema for a simplestore server.

    Args:
        single_file_per_owner: Whether each user may hold at most one file

    Returns:
        Schema with the users, sessions and files tables
    """
    return DBSchema(tables=(USERS, SESSIONS, files_table(single_file_per_owner)))
