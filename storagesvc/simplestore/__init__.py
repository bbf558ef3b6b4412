"""
simplestore - minimal per-user file storage service.

Users register, log in to obtain an opaque session token, then upload,
fetch, list and delete files scoped to their own account.

Architecture:
    ┌─────────────┐     ┌──────────────────┐
    │   Client    │────▶│   HTTP server    │
    └─────────────┘     └────────┬─────────┘
                                 │ X-Session
                                 ▼
                        ┌──────────────────┐
                        │ SessionAuthority │
                        └────────┬─────────┘
                                 │ username
                    ┌────────────┴────────────┐
                    ▼                         ▼
           ┌─────────────────┐       ┌─────────────────┐
           │ AccountRegistry │       │    FileVault    │
           └────────┬────────┘       └────────┬────────┘
                    │                         │
                    ▼                         ▼
           ┌─────────────────────────────────────────┐
           │  Store (in-memory, snapshot isolation)  │
           └─────────────────────────────────────────┘

Invariants:
    - The store is the only owner of users, sessions and files
    - Every read and write goes through a store transaction
    - A user can only reach their own files
    - Nothing survives a process restart

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
