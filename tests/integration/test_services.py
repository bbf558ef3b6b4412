"""
Integration tests for the services sharing one store.

Tests cover:
- The register, login, store, fetch, remove flow without HTTP
- Concurrent writers on the shared store
"""

import asyncio

import pytest

from storagesvc.simplestore.config import AccountPolicy, ServerConfig
from storagesvc.simplestore.errors import NotFoundError
from storagesvc.simplestore.main import build_services
from storagesvc.simplestore.models import USERS, User


@pytest.fixture
def services():
    """Create services on a fresh store."""
    config = ServerConfig(accounts=AccountPolicy(password_hash_method="pbkdf2:sha256:1000"))
    return build_services(config)


class TestServiceFlow:
    """Tests for the services working together."""

    @pytest.mark.asyncio
    async def test_alice_notes(self, services):
        """Register, log in, store, fetch and remove a file."""
        await services.accounts.register("alice", "password1")
        user = await services.accounts.authenticate("alice", "password1")
        session = await services.sessions.create_session(user)

        owner = await services.sessions.resolve(session.token)
        assert owner == "alice"

        await services.vault.store(owner, "notes.txt", "text/plain", b"hi")
        assert (await services.vault.fetch(owner, "notes.txt")).data == b"hi"

        await services.vault.remove(owner, "notes.txt")
        with pytest.raises(NotFoundError):
            await services.vault.fetch(owner, "notes.txt")

    @pytest.mark.asyncio
    async def test_tokens_unique_across_logins(self, services):
        """Every login issues a token never issued before."""
        await services.accounts.register("alice", "password1")
        user = await services.accounts.authenticate("alice", "password1")

        tokens = {(await services.sessions.create_session(user)).token for _ in range(50)}
        assert len(tokens) == 50


class TestConcurrentWriters:
    """Tests for concurrent write transactions on the shared store."""

    @pytest.mark.asyncio
    async def test_two_writers_both_commit(self, services):
        """Each writer sees only committed rows and both users end up stored."""
        store = services.store
        observed = {}

        async def add(name: str, other: str) -> None:
            async with store.transaction(write=True) as txn:
                await asyncio.sleep(0)
                txn.insert(USERS, User(username=name, password_hash="x"))
                await asyncio.sleep(0)
                observed[name] = txn.get(USERS, "id", other)
                txn.commit()

        async def peek() -> None:
            await asyncio.sleep(0)
            async with store.transaction() as txn:
                observed["reader"] = [u.username for u in txn.scan(USERS, "id")]

        await asyncio.gather(add("alice", "bob"), add("bob", "alice"), peek())

        # the first writer finished before the second began
        assert observed["alice"] is None
        assert observed["bob"] == User(username="alice", password_hash="x")
        assert observed["reader"] == []

        async with store.transaction() as txn:
            assert [u.username for u in txn.scan(USERS, "id")] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_concurrent_registrations(self, services):
        """Concurrent registrations of different names all succeed."""
        names = [f"user{i}" for i in range(10)]
        await asyncio.gather(*(services.accounts.register(n, "password1") for n in names))

        async with services.store.transaction() as txn:
            for name in names:
                assert txn.get(USERS, "id", name) is not None
        assert services.store.stats()["users"] == 10
