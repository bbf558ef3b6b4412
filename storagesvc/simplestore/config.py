"""
Configuration management for simplestore.

Settings are read from environment variables into frozen dataclasses, one
per concern, and checked together by ``ServerConfig.validate``.

Invariants:
    - Running with an empty environment gives a working local server
    - Account limits are validated so that min <= max
    - Nothing user-supplied is ever logged by ``log_config``

How to change safely:
    - New settings need a default so existing deployments keep starting
    - Document every new variable in the class docstring
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        max_body_bytes: Largest request body accepted by the server
    """

    host: str = "0.0.0.0"
    port: int = 8089
    max_body_bytes: int = 16 * 1024 * 1024  # 16MB

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8089")),
            max_body_bytes=int(os.getenv("HTTP_MAX_BODY_BYTES", str(16 * 1024 * 1024))),
        )


@dataclass(frozen=True)
class AccountPolicy:
    """Registration rules.

    Attributes:
        username_min_length: Shortest allowed username
        username_max_length: Longest allowed username
        password_min_length: Shortest allowed password
        username_alphanumeric: Restrict usernames to ASCII letters and digits
        password_hash_method: werkzeug hash method for stored passwords
    """

    username_min_length: int = 3
    username_max_length: int = 20
    password_min_length: int = 8
    username_alphanumeric: bool = True
    password_hash_method: str = "scrypt"

    @classmethod
    def from_env(cls) -> AccountPolicy:
        """Load configuration from environment variables."""
        return cls(
            username_min_length=int(os.getenv("USERNAME_MIN_LENGTH", "3")),
            username_max_length=int(os.getenv("USERNAME_MAX_LENGTH", "20")),
            password_min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "8")),
            username_alphanumeric=_env_bool("USERNAME_ALPHANUMERIC", "true"),
            password_hash_method=os.getenv("PASSWORD_HASH_METHOD", "scrypt"),
        )


@dataclass(frozen=True)
class VaultConfig:
    """File storage configuration.

    Attributes:
        single_file_per_owner: Each user holds at most one file; a new
            upload supersedes whatever the user stored before
        max_file_bytes: Largest file accepted
    """

    single_file_per_owner: bool = True
    max_file_bytes: int = 16 * 1024 * 1024  # 16MB

    @classmethod
    def from_env(cls) -> VaultConfig:
        """Load configuration from environment variables."""
        return cls(
            single_file_per_owner=_env_bool("VAULT_SINGLE_FILE_PER_OWNER", "true"),
            max_file_bytes=int(os.getenv("VAULT_MAX_FILE_BYTES", str(16 * 1024 * 1024))),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        http: HTTP server configuration
        accounts: Registration rules
        vault: File storage configuration
        observability: Logging configuration
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    accounts: AccountPolicy = field(default_factory=AccountPolicy)
    vault: VaultConfig = field(default_factory=VaultConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            http=HttpConfig.from_env(),
            accounts=AccountPolicy.from_env(),
            vault=VaultConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT must be between 1 and 65535, got {self.http.port}")

        accounts = self.accounts
        if accounts.username_min_length < 1:
            raise ValueError("USERNAME_MIN_LENGTH must be at least 1")
        if accounts.username_min_length > accounts.username_max_length:
            raise ValueError(
                "USERNAME_MIN_LENGTH cannot exceed USERNAME_MAX_LENGTH "
                f"({accounts.username_min_length} > {accounts.username_max_length})"
            )
        if accounts.password_min_length < 1:
            raise ValueError("PASSWORD_MIN_LENGTH must be at least 1")

        if self.vault.max_file_bytes < 1:
            raise ValueError("VAULT_MAX_FILE_BYTES must be positive")
        if self.vault.max_file_bytes > self.http.max_body_bytes:
            logger.warning(
                "VAULT_MAX_FILE_BYTES exceeds HTTP_MAX_BODY_BYTES; "
                "uploads are capped by the HTTP limit"
            )

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "max_body_bytes": self.http.max_body_bytes,
                "username_length": [
                    self.accounts.username_min_length,
                    self.accounts.username_max_length,
                ],
                "password_min_length": self.accounts.password_min_length,
                "single_file_per_owner": self.vault.single_file_per_owner,
                "max_file_bytes": self.vault.max_file_bytes,
                "log_level": self.observability.log_level,
            },
        )
