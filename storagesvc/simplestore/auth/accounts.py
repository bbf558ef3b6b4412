"""
User registration and credential checks for simplestore.

Invariants:
    - Usernames are unique; the existence check and the insert happen in
      one write transaction, so concurrent registrations of the same name
      cannot both succeed
    - Only salted password hashes are stored
    - authenticate() fails the same way for an unknown user and for a wrong
      password, and does the same hashing work in both cases

How to change safely:
    - Validate input before opening a transaction so bad requests never
      take the writer lock
    - Changing the hash method only affects new registrations; werkzeug
      reads the method from each stored hash
    - Hashing is CPU-bound; run it in the default executor, never directly
      in a coroutine
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re

from werkzeug.security import check_password_hash, generate_password_hash

from ..config import AccountPolicy
from ..errors import AlreadyExistsError, InvalidCredentialsError, ValidationError
from ..memdb import Store
from ..models import USERS, User

logger = logging.getLogger(__name__)

_ALPHANUMERIC = re.compile(r"[A-Za-z0-9]+")


class AccountRegistry:
    """Manages user accounts.

    Example:
        >>> accounts = AccountRegistry(store)
        >>> await accounts.register("alice", "password1")
        >>> user = await accounts.authenticate("alice", "password1")
    """

    def __init__(self, store: Store, policy: AccountPolicy | None = None) -> None:
        """Initialize the registry.

        Args:
            store: Shared transactional store
            policy: Registration rules (defaults if not provided)
        """
        self._store = store
        self.policy = policy or AccountPolicy()
        # Compared against when the username is unknown
        self._dummy_hash = generate_password_hash(
            "simplestore-no-such-user", method=self.policy.password_hash_method
        )

    def validate(self, username: str, password: str) -> None:
        """Check a username/password pair against the registration rules.

        Raises:
            ValidationError: If either value breaks a rule
        """
        policy = self.policy
        if not isinstance(username, str):
            raise ValidationError("username must be a string", field_name="username")
        if not isinstance(password, str):
            raise ValidationError("password must be a string", field_name="password")

        if not policy.username_min_length <= len(username) <= policy.username_max_length:
            raise ValidationError(
                f"username length must be {policy.username_min_length}-"
                f"{policy.username_max_length} characters long",
                field_name="username",
            )
        if policy.username_alphanumeric and not _ALPHANUMERIC.fullmatch(username):
            raise ValidationError(
                "username may only contain alphanumeric characters",
                field_name="username",
            )
        if len(password) < policy.password_min_length:
            raise ValidationError(
                f"password must be at least {policy.password_min_length} characters long",
                field_name="password",
            )

    async def register(self, username: str, password: str) -> User:
        """Register a new user.

        Args:
            username: Requested username
            password: Plaintext password (hashed before storage)

        Returns:
            The stored User

        Raises:
            ValidationError: If the input breaks a registration rule
            AlreadyExistsError: If the username is taken
        """
        self.validate(username, password)
        password_hash = await asyncio.get_running_loop().run_in_executor(
            None,
            functools.partial(
                generate_password_hash, password, method=self.policy.password_hash_method
            ),
        )
        user = User(username=username, password_hash=password_hash)

        async with self._store.transaction(write=True) as txn:
            if txn.get(USERS, "id", username) is not None:
                raise AlreadyExistsError(username)
            txn.insert(USERS, user)
            txn.commit()

        logger.info("Registered user", extra={"username": username})
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """Check credentials.

        Args:
            username: Username
            password: Plaintext password

        Returns:
            The matching User

        Raises:
            InvalidCredentialsError: Unknown user, wrong password or blank input
        """
        if not username or not password:
            raise InvalidCredentialsError()

        async with self._store.transaction() as txn:
            user = txn.get(USERS, "id", username)

        stored_hash = user.password_hash if user is not None else self._dummy_hash
        password_ok = await asyncio.get_running_loop().run_in_executor(
            None, check_password_hash, stored_hash, password
        )

        if user is None or not password_ok:
            logger.info(
                "Authentication failed",
                extra={"username": username, "known_user": user is not None},
            )
            raise InvalidCredentialsError()

        return user
