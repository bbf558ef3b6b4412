"""
File storage for simplestore.

Invariants:
    - Files are only reachable through their owner's username
    - All writes are atomic store transactions
"""

from .vault import DEFAULT_CONTENT_TYPE, FileVault

__all__ = [
    "FileVault",
    "DEFAULT_CONTENT_TYPE",
]
