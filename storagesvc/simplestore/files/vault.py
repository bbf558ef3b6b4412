"""
Per-owner file storage for simplestore.

Every lookup is keyed by the owner's username, so a user can only ever
reach their own files; there is no cross-owner query.

Invariants:
    - (filename, owner) identifies a file
    - In single-file mode an owner holds at most one file, and a new upload
      supersedes whatever the owner held before
    - Uploading to an existing (filename, owner) replaces the whole record
    - Check-then-act sequences (supersede, remove) run inside one write
      transaction

How to change safely:
    - Always pass the owner as part of the index key
    - Keep the files table handle in sync with the store schema through
      ``files_table()``
"""

from __future__ import annotations

import logging

from ..config import VaultConfig
from ..errors import NotFoundError, ValidationError
from ..memdb import Store
from ..models import FileRecord, files_table

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileVault:
    """Stores, fetches, lists and removes files for their owners.

    Example:
        >>> vault = FileVault(store)
        >>> await vault.store("alice", "notes.txt", "text/plain", b"hi")
        >>> record = await vault.fetch("alice", "notes.txt")
        >>> await vault.list("alice")
        ['notes.txt']
    """

    def __init__(self, store: Store, config: VaultConfig | None = None) -> None:
        """Initialize the vault.

        Args:
            store: Shared transactional store (built with the matching schema)
            config: File storage configuration
        """
        self._store = store
        self.config = config or VaultConfig()
        self._files = files_table(self.config.single_file_per_owner)
        store.check_table(self._files)

    async def store(
        self,
        owner: str,
        filename: str,
        content_type: str,
        data: bytes,
    ) -> FileRecord:
        """Store a file for its owner.

        Args:
            owner: Username of the uploader
            filename: Name to store the file under
            content_type: MIME type (empty means application/octet-stream)
            data: File contents

        Returns:
            The stored FileRecord

        Raises:
            ValidationError: Empty filename, empty data or data too large
        """
        if not filename:
            raise ValidationError("filename is required", field_name="filename")
        if not data:
            raise ValidationError("file was empty", field_name="data")
        if len(data) > self.config.max_file_bytes:
            raise ValidationError(
                f"file exceeds maximum size of {self.config.max_file_bytes} bytes",
                field_name="data",
            )

        record = FileRecord(
            filename=filename,
            owner=owner,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            data=bytes(data),
        )

        superseded = 0
        async with self._store.transaction(write=True) as txn:
            if self.config.single_file_per_owner:
                superseded = txn.delete_all(self._files, "owner", owner)
            txn.insert(self._files, record)
            txn.commit()

        logger.info(
            "Stored file",
            extra={
                "owner": owner,
                "file_name": filename,
                "size": record.size,
                "superseded": superseded,
            },
        )
        return record

    async def fetch(self, owner: str, filename: str) -> FileRecord:
        """Get one of the owner's files.

        Raises:
            NotFoundError: The owner has no file with that name
        """
        async with self._store.transaction() as txn:
            record = txn.get(self._files, "id", filename, owner)

        if record is None:
            raise NotFoundError(filename)
        return record

    async def remove(self, owner: str, filename: str) -> None:
        """Delete one of the owner's files.

        Raises:
            NotFoundError: The owner has no file with that name
        """
        async with self._store.transaction(write=True) as txn:
            record = txn.get(self._files, "id", filename, owner)
            if record is None:
                raise NotFoundError(filename)
            txn.delete(self._files, record)
            txn.commit()

        logger.info("Removed file", extra={"owner": owner, "file_name": filename})

    async def list(self, owner: str) -> list[str]:
        """Names of every file the owner currently holds, in index order."""
        async with self._store.transaction() as txn:
            return [record.filename for record in txn.scan(self._files, "owner", owner)]
