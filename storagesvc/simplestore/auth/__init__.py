"""
Authentication for simplestore.

This module handles:
- Account registration and credential checks (AccountRegistry)
- Session token issue and resolution (SessionAuthority)

Invariants:
    - Authentication failures are distinguishable by type internally but
      reported identically to end users
    - Passwords and full tokens are never logged
"""

from .accounts import AccountRegistry
from .sessions import SessionAuthority

__all__ = [
    "AccountRegistry",
    "SessionAuthority",
]
