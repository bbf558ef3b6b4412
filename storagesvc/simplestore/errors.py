"""
Request-facing error types for simplestore.

This module defines the exceptions raised by the account, session and file
services. The HTTP layer maps each of them to a status code; nothing else
about an error crosses the request boundary.

- VaultError: Base exception
- ValidationError: Malformed or out-of-range input
- AlreadyExistsError: Username collision
- AuthenticationError: Credential or session failures
- NotFoundError: File absent or not owned by the caller

Store-level errors (ConstraintError, SchemaError, ...) live in
``memdb.errors``. Services check their preconditions inside the write
transaction, so valid requests never surface them.

Invariants:
    - All request-facing errors inherit from VaultError
    - Every error carries a stable ``code`` for programmatic handling
    - Authentication subclasses stay distinguishable internally even though
      the HTTP layer reports them identically
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VaultError(Exception):
    """Base exception for all request-facing simplestore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    default_code = "VAULT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class ValidationError(VaultError):
    """Input failed validation.

    Raised when:
    - Username or password length is out of range
    - Username contains disallowed characters
    - An uploaded file is empty or too large
    """

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message, details={"field": field_name})
        self.field_name = field_name


class AlreadyExistsError(VaultError):
    """A user with this username is already registered."""

    default_code = "ALREADY_EXISTS"

    def __init__(self, username: str) -> None:
        super().__init__("username already exists", details={"username": username})
        self.username = username


class AuthenticationError(VaultError):
    """Base for every authentication failure."""

    default_code = "AUTHENTICATION_FAILED"


class InvalidCredentialsError(AuthenticationError):
    """Username/password combination is not valid.

    Raised uniformly for an unknown username and for a wrong password.
    """

    default_code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("username/password combination incorrect")


class MissingTokenError(AuthenticationError):
    """No session token was supplied."""

    default_code = "MISSING_TOKEN"

    def __init__(self) -> None:
        super().__init__("missing session token")


class InvalidTokenError(AuthenticationError):
    """A session token was supplied but matches no session."""

    default_code = "INVALID_TOKEN"

    def __init__(self) -> None:
        super().__init__("session token invalid")


class NotFoundError(VaultError):
    """The requested file does not exist for this owner."""

    default_code = "NOT_FOUND"

    def __init__(self, filename: str) -> None:
        super().__init__("file not found", details={"filename": filename})
        self.filename = filename
