"""
Session tokens for simplestore.

A session maps an opaque token to the username that logged in. Tokens are
random UUID4 strings and carry no decodable payload.

Invariants:
    - A token is never issued twice during the life of the process
    - Sessions are immutable and never expire or get deleted
    - Tokens are never logged in full
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from ..errors import InvalidTokenError, MissingTokenError
from ..memdb import Store
from ..models import SESSIONS, Session, User

logger = logging.getLogger(__name__)


def _new_token() -> str:
    return str(uuid.uuid4())


def _token_prefix(token: str) -> str:
    return token[:8]


class SessionAuthority:
    """Issues and resolves session tokens.

    Example:
        >>> sessions = SessionAuthority(store)
        >>> session = await sessions.create_session(user)
        >>> await sessions.resolve(session.token)
        'alice'
    """

    # Attempts to draw an unused token before giving up
    MAX_TOKEN_ATTEMPTS = 3

    def __init__(
        self,
        store: Store,
        token_factory: Callable[[], str] = _new_token,
    ) -> None:
        """Initialize the authority.

        Args:
            store: Shared transactional store
            token_factory: Source of new tokens
        """
        self._store = store
        self._token_factory = token_factory

    async def create_session(self, user: User) -> Session:
        """Create a session for an authenticated user.

        Args:
            user: The user that just authenticated

        Returns:
            The new Session

        Raises:
            RuntimeError: If no unused token could be drawn
        """
        async with self._store.transaction(write=True) as txn:
            for _ in range(self.MAX_TOKEN_ATTEMPTS):
                token = self._token_factory()
                if txn.get(SESSIONS, "id", token) is None:
                    break
                logger.warning(
                    "Session token collision, drawing another",
                    extra={"token_prefix": _token_prefix(token)},
                )
            else:
                raise RuntimeError("could not allocate a unique session token")

            session = Session(token=token, username=user.username)
            txn.insert(SESSIONS, session)
            txn.commit()

        logger.info(
            "Session created",
            extra={"username": user.username, "token_prefix": _token_prefix(token)},
        )
        return session

    async def resolve(self, token: str | None) -> str:
        """Resolve a token to the username it authenticates.

        Args:
            token: Token supplied by the caller, or None if absent

        Returns:
            The username

        Raises:
            MissingTokenError: No token was supplied
            InvalidTokenError: No session matches the token
        """
        if not token:
            raise MissingTokenError()

        async with self._store.transaction() as txn:
            session = txn.get(SESSIONS, "id", token)

        if session is None:
            logger.debug("Unknown session token", extra={"token_prefix": _token_prefix(token)})
            raise InvalidTokenError()
        return session.username
