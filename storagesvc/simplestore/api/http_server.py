"""
HTTP server implementation for simplestore.

Endpoints:
    POST   /register            register a user             204 | 400
    POST   /login               obtain a session token      200 | 403
    PUT    /files/{filename}    upload a file               200 | 400 | 403
    GET    /files/{filename}    download a file             200 | 403 | 404
    DELETE /files/{filename}    delete a file               204 | 403 | 404
    GET    /files               list the caller's files     200 | 403
    GET    /health              liveness and table counts   200

Invariants:
    - File endpoints require an X-Session header and act only on the
      caller's own files
    - Every failure is a JSON ``{"error": ...}`` body plus a status code;
      no stack traces or internal details are returned
    - Missing and invalid tokens look identical to the client

How to change safely:
    - Map new VaultError subclasses in ERROR_STATUS
    - Keep handlers thin; business rules belong in the services
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from aiohttp import web

from .._version import __version__
from ..auth import AccountRegistry, SessionAuthority
from ..config import HttpConfig
from ..errors import (
    AlreadyExistsError,
    AuthenticationError,
    InvalidCredentialsError,
    InvalidTokenError,
    MissingTokenError,
    NotFoundError,
    ValidationError,
    VaultError,
)
from ..files import FileVault
from ..memdb import Store

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session"

NOT_LOGGED_IN = "not logged in"

ERROR_STATUS: dict[type[VaultError], int] = {
    ValidationError: 400,
    AlreadyExistsError: 400,
    AuthenticationError: 403,
    NotFoundError: 404,
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@dataclass
class Services:
    """Everything the HTTP handlers call into."""

    store: Store
    accounts: AccountRegistry
    sessions: SessionAuthority
    vault: FileVault


def status_for(error: VaultError) -> int:
    """HTTP status for a request-facing error."""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def error_response(error: VaultError) -> web.Response:
    """Build the JSON error response for a request-facing error."""
    if isinstance(error, (MissingTokenError, InvalidTokenError)):
        message = NOT_LOGGED_IN
    else:
        message = error.message
    return web.json_response({"error": message}, status=status_for(error))


def create_http_app(services: Services, config: HttpConfig | None = None) -> web.Application:
    """Create the HTTP application.

    Args:
        services: Service instances sharing one store
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()

    @web.middleware
    async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except VaultError as e:
            logger.info(
                "Request rejected",
                extra={
                    "method": request.method,
                    "path": request.path,
                    "error_code": e.code,
                },
            )
            return error_response(e)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response({"error": "internal error"}, status=500)

    app = web.Application(
        client_max_size=config.max_body_bytes,
        middlewares=[error_middleware],
    )

    app.router.add_post("/register", lambda r: handle_register(r, services))
    app.router.add_post("/login", lambda r: handle_login(r, services))
    app.router.add_put("/files/{filename}", lambda r: handle_store_file(r, services))
    app.router.add_get("/files/{filename}", lambda r: handle_get_file(r, services))
    app.router.add_delete("/files/{filename}", lambda r: handle_delete_file(r, services))
    app.router.add_get("/files", lambda r: handle_list_files(r, services))
    app.router.add_get("/health", lambda r: handle_health(r, services))

    return app


async def read_json_object(request: web.Request) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    Raises:
        ValidationError: Body is not a JSON object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


async def authenticate_request(request: web.Request, services: Services) -> str:
    """Resolve the X-Session header to the acting username.

    Raises:
        MissingTokenError: Header absent or empty
        InvalidTokenError: No session matches the token
    """
    return await services.sessions.resolve(request.headers.get(SESSION_HEADER))


async def handle_register(request: web.Request, services: Services) -> web.Response:
    """Handle POST /register - Register a new user."""
    body = await read_json_object(request)

    await services.accounts.register(body.get("username", ""), body.get("password", ""))
    return web.Response(status=204)


async def handle_login(request: web.Request, services: Services) -> web.Response:
    """Handle POST /login - Exchange credentials for a session token."""
    try:
        body = await read_json_object(request)
    except ValidationError:
        raise InvalidCredentialsError()

    username = body.get("username")
    password = body.get("password")
    if not isinstance(username, str) or not isinstance(password, str):
        raise InvalidCredentialsError()

    user = await services.accounts.authenticate(username, password)
    session = await services.sessions.create_session(user)
    return web.json_response({"token": session.token})


async def handle_store_file(request: web.Request, services: Services) -> web.Response:
    """Handle PUT /files/{filename} - Upload a file."""
    owner = await authenticate_request(request, services)
    filename = request.match_info["filename"]

    try:
        data = await request.read()
    except web.HTTPRequestEntityTooLarge:
        raise ValidationError("file exceeds maximum request size", field_name="data")

    await services.vault.store(
        owner,
        filename,
        request.headers.get("Content-Type", ""),
        data,
    )
    return web.Response(status=200, headers={"Location": request.rel_url.raw_path})


async def handle_get_file(request: web.Request, services: Services) -> web.Response:
    """Handle GET /files/{filename} - Download a file."""
    owner = await authenticate_request(request, services)
    record = await services.vault.fetch(owner, request.match_info["filename"])

    return web.Response(
        status=200,
        body=record.data,
        headers={"Content-Type": record.content_type},
    )


async def handle_delete_file(request: web.Request, services: Services) -> web.Response:
    """Handle DELETE /files/{filename} - Delete a file."""
    owner = await authenticate_request(request, services)
    await services.vault.remove(owner, request.match_info["filename"])
    return web.Response(status=204)


async def handle_list_files(request: web.Request, services: Services) -> web.Response:
    """Handle GET /files - List the caller's files."""
    owner = await authenticate_request(request, services)
    return web.json_response(await services.vault.list(owner))


async def handle_health(request: web.Request, services: Services) -> web.Response:
    """Handle GET /health - Health check."""
    return web.json_response(
        {
            "healthy": True,
            "version": __version__,
            "store_version": services.store.version,
            **services.store.stats(),
        }
    )
