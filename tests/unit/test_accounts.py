"""
Unit tests for account registration and authentication.

Tests cover:
- Username and password rules
- Duplicate registration
- Credential checks
- Concurrent registration of one username
- Hashing off the event loop
"""

import asyncio
import time

import pytest

from storagesvc.simplestore.auth import AccountRegistry
from storagesvc.simplestore.auth import accounts as accounts_module
from storagesvc.simplestore.config import AccountPolicy
from storagesvc.simplestore.errors import (
    AlreadyExistsError,
    InvalidCredentialsError,
    ValidationError,
)
from storagesvc.simplestore.memdb import Store
from storagesvc.simplestore.models import USERS, build_schema

FAST_HASH = "pbkdf2:sha256:1000"


@pytest.fixture
def store():
    """Create an empty store."""
    return Store(build_schema())


@pytest.fixture
def accounts(store):
    """Create a registry with a fast hash method."""
    return AccountRegistry(store, AccountPolicy(password_hash_method=FAST_HASH))


class TestValidation:
    """Tests for registration rules."""

    @pytest.mark.parametrize("username", ["no", "a" * 21, ""])
    def test_username_length(self, accounts, username):
        """Usernames outside 3-20 characters are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            accounts.validate(username, "best_password")
        assert exc_info.value.message == "username length must be 3-20 characters long"

    @pytest.mark.parametrize("username", ["abc", "a" * 20, "Alice42"])
    def test_username_accepted(self, accounts, username):
        """Usernames within bounds pass."""
        accounts.validate(username, "best_password")

    def test_username_non_alphanumeric(self, accounts):
        """Usernames with punctuation are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            accounts.validate("bob/../x", "best_password")
        assert exc_info.value.details == {"field": "username"}

    def test_non_alphanumeric_allowed_when_disabled(self, store):
        """The alphanumeric rule can be turned off."""
        policy = AccountPolicy(username_alphanumeric=False, password_hash_method=FAST_HASH)
        AccountRegistry(store, policy).validate("bob.smith", "best_password")

    def test_short_password(self, accounts):
        """Passwords under 8 characters are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            accounts.validate("alice", "short")
        assert exc_info.value.message == "password must be at least 8 characters long"

    def test_username_checked_before_password(self, accounts):
        """A bad username is reported even when the password is also bad."""
        with pytest.raises(ValidationError) as exc_info:
            accounts.validate("no", "x")
        assert exc_info.value.details == {"field": "username"}

    def test_non_string_values(self, accounts):
        """Non-string input is a validation error, not a crash."""
        with pytest.raises(ValidationError):
            accounts.validate(None, "best_password")
        with pytest.raises(ValidationError):
            accounts.validate("alice", 12345678)


class TestRegister:
    """Tests for AccountRegistry.register."""

    @pytest.mark.asyncio
    async def test_register_stores_hash(self, accounts, store):
        """Registration stores a salted hash, never the plaintext."""
        user = await accounts.register("alice", "best_password")

        assert user.username == "alice"
        assert user.password_hash != "best_password"
        assert user.password_hash.startswith("pbkdf2:sha256")
        async with store.transaction() as txn:
            assert txn.get(USERS, "id", "alice") == user

    @pytest.mark.asyncio
    async def test_register_duplicate(self, accounts):
        """Registering a taken username fails."""
        await accounts.register("alice", "best_password")

        with pytest.raises(AlreadyExistsError) as exc_info:
            await accounts.register("alice", "other_password")
        assert exc_info.value.message == "username already exists"

    @pytest.mark.asyncio
    async def test_duplicate_keeps_original_password(self, accounts):
        """A rejected duplicate leaves the first account untouched."""
        await accounts.register("alice", "best_password")
        with pytest.raises(AlreadyExistsError):
            await accounts.register("alice", "other_password")

        await accounts.authenticate("alice", "best_password")
        with pytest.raises(InvalidCredentialsError):
            await accounts.authenticate("alice", "other_password")

    @pytest.mark.asyncio
    async def test_invalid_input_writes_nothing(self, accounts, store):
        """Rejected registrations leave the store unchanged."""
        with pytest.raises(ValidationError):
            await accounts.register("no", "best_password")

        assert store.version == 0
        assert store.stats()["users"] == 0

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_registration(self, accounts):
        """Of two concurrent registrations of one name, exactly one wins."""
        results = await asyncio.gather(
            accounts.register("alice", "password_one"),
            accounts.register("alice", "password_two"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, AlreadyExistsError)]
        assert len(failures) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1


class TestAuthenticate:
    """Tests for AccountRegistry.authenticate."""

    @pytest.mark.asyncio
    async def test_correct_credentials(self, accounts):
        """Correct credentials return the user."""
        await accounts.register("alice", "best_password")

        user = await accounts.authenticate("alice", "best_password")
        assert user.username == "alice"

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_alike(self, accounts):
        """Wrong password and unknown user fail with the same error."""
        await accounts.register("alice", "best_password")

        with pytest.raises(InvalidCredentialsError) as wrong_password:
            await accounts.authenticate("alice", "wrong_password")
        with pytest.raises(InvalidCredentialsError) as unknown_user:
            await accounts.authenticate("mallory", "best_password")

        assert wrong_password.value.message == unknown_user.value.message
        assert wrong_password.value.code == unknown_user.value.code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "best_password"), ("alice", "")])
    async def test_blank_credentials(self, accounts, username, password):
        """Blank username or password is rejected."""
        await accounts.register("alice", "best_password")

        with pytest.raises(InvalidCredentialsError):
            await accounts.authenticate(username, password)


class TestEventLoopResponsiveness:
    """Tests that password hashing leaves the event loop free."""

    SLOW_SECONDS = 0.2

    async def count_ticks_during(self, coro) -> int:
        """Run coro while a ticker counts how often the loop lets it run."""
        ticks = 0
        done = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not done.is_set():
                ticks += 1
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        try:
            await coro
        finally:
            done.set()
            await task
        return ticks

    @pytest.mark.asyncio
    async def test_authenticate_keeps_loop_running(self, accounts, monkeypatch):
        """Other coroutines keep running while a password is checked."""
        await accounts.register("alice", "password1")

        def slow_check(pwhash, password):
            time.sleep(self.SLOW_SECONDS)
            return True

        monkeypatch.setattr(accounts_module, "check_password_hash", slow_check)
        ticks = await self.count_ticks_during(accounts.authenticate("alice", "password1"))

        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_register_keeps_loop_running(self, accounts, store, monkeypatch):
        """Other coroutines keep running while a password is hashed."""

        def slow_hash(password, method):
            time.sleep(self.SLOW_SECONDS)
            return f"{method}$salt$hash"

        monkeypatch.setattr(accounts_module, "generate_password_hash", slow_hash)
        ticks = await self.count_ticks_during(accounts.register("alice", "password1"))

        assert ticks >= 5
        async with store.transaction() as txn:
            assert txn.get(USERS, "id", "alice").password_hash.endswith("$salt$hash")
