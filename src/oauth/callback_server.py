"""
OAuth callback server for the local-loopback authorization flow.

This module provides a minimal, single-purpose HTTP listener bound to the
user's machine. It exists only to receive the identity provider's redirect
(``GET /callback?code=...&state=...``), so instead of a full HTTP server it
reads one request head, parses the request line and query string, answers
with a small HTML page and resolves a one-shot future with the outcome.

The server runs temporarily during the authorization flow and shuts itself
down after the callback has been handled.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Dict, Optional, Set
from urllib.parse import parse_qs, urlsplit

from .exceptions import (
    AlreadyRunningError,
    AuthorizationCancelledError,
    CallbackOAuthError,
    CallbackServerError,
    FailedToGetPortError,
    FailedToStartError,
    InvalidCallbackPathError,
    InvalidRequestError,
    MissingCodeError,
    StateMismatchError,
)
from .html import DefaultOAuthHTMLProvider, OAuthHTMLProvider

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
MAX_REQUEST_BYTES = 65536
_HEADER_TERMINATOR = b"\r\n\r\n"


@dataclass
class CallbackRequest:
    """
    Parsed request line of an inbound callback.

    Attributes:
        method: HTTP method (e.g. "GET")
        path: URL path without the query string
        params: Query parameters (first value wins, percent-decoded)
    """

    method: str
    path: str
    params: Dict[str, str] = field(default_factory=dict)


def parse_request(data: bytes) -> CallbackRequest:
    """
    Parse the request line of a raw HTTP request.

    Only the first line is inspected; headers are ignored.

    Args:
        data: Raw request bytes (at least the request line)

    Returns:
        CallbackRequest with method, path and query parameters

    Raises:
        InvalidRequestError: If the request line is malformed
    """
    text = data.decode("utf-8", errors="replace")
    request_line = text.split("\r\n", 1)[0]
    parts = request_line.split(" ")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise InvalidRequestError("Invalid request format")

    target = urlsplit(parts[1])
    params = {name: values[0] for name, values in parse_qs(target.query).items()}
    return CallbackRequest(method=parts[0], path=target.path, params=params)


def _consume_result(future: "asyncio.Future[str]") -> None:
    # Waiters are optional; mark failures as retrieved.
    if not future.cancelled():
        future.exception()


class OAuthCallbackServer:
    """
    Local HTTP server that captures a single OAuth callback.

    The server:
    1. Binds a TCP listener on the loopback interface (start)
    2. Reads one request head, buffering across partial reads
    3. Answers with the success or error page
    4. Resolves wait_for_callback() with the code or a typed error
    5. Stops itself (after a short grace period on success)

    Connections that close without sending any bytes (browser pre-connects)
    are ignored. Only the first complete request settles the outcome.
    """

    def __init__(
        self,
        port: int = 0,
        html_provider: Optional[OAuthHTMLProvider] = None,
        host: str = "127.0.0.1",
        expected_state: Optional[str] = None,
        shutdown_grace: float = 0.5,
    ):
        """
        Initialize callback server.

        Args:
            port: Port to bind (0 lets the OS pick one)
            html_provider: Pages returned to the browser
            host: Interface to bind
            expected_state: CSRF state a code callback must echo back
                (no validation when None)
            shutdown_grace: Seconds to keep listening after a successful
                callback so the response can flush
        """
        self.port = port
        self.host = host
        self.html_provider = html_provider or DefaultOAuthHTMLProvider()
        self.expected_state = expected_state
        self.shutdown_grace = shutdown_grace
        self._server: Optional[asyncio.AbstractServer] = None
        self._bound_port: Optional[int] = None
        self._result: Optional["asyncio.Future[str]"] = None
        self._connections: Set[asyncio.StreamWriter] = set()
        self._shutdown_task: Optional["asyncio.Task[None]"] = None

    @property
    def is_running(self) -> bool:
        """Whether the listening socket is open."""
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        """Port of the listening socket (None before start)."""
        return self._bound_port

    async def start(self, port: Optional[int] = None) -> int:
        """
        Bind the listener and return the actual port.

        Args:
            port: Port override (defaults to the port given at construction)

        Returns:
            Bound port (OS-assigned when 0 was requested)

        Raises:
            AlreadyRunningError: If the server is already running
            FailedToStartError: If the port cannot be bound
            FailedToGetPortError: If the bound socket exposes no port
        """
        if self._server is not None:
            raise AlreadyRunningError("Server is already running")

        requested = self.port if port is None else port
        loop = asyncio.get_running_loop()

        try:
            server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                requested,
                reuse_address=True,
                limit=MAX_REQUEST_BYTES,
            )
        except OSError as e:
            logger.error(f"Could not bind callback server to {self.host}:{requested}: {e}")
            raise FailedToStartError(
                f"Failed to start OAuth callback server on port {requested}: {e}"
            ) from e

        sockets = server.sockets or ()
        if not sockets:
            server.close()
            await server.wait_closed()
            raise FailedToGetPortError("Failed to get server port")

        self._server = server
        self._bound_port = sockets[0].getsockname()[1]
        self._result = loop.create_future()
        self._result.add_done_callback(_consume_result)

        logger.info(f"OAuth callback server listening on {self.host}:{self._bound_port}")
        return self._bound_port

    async def wait_for_callback(self) -> str:
        """
        Wait for the OAuth callback.

        Returns:
            Authorization code from the callback

        Raises:
            InvalidRequestError: Request was not a well-formed GET
            InvalidCallbackPathError: Request path was not /callback
            StateMismatchError: Returned state did not match expected_state
            CallbackOAuthError: Provider returned an OAuth error
            MissingCodeError: Neither code nor error was present
            AuthorizationCancelledError: Server stopped before a callback
            CallbackServerError: Server was never started
        """
        if self._result is None:
            raise CallbackServerError("Callback server has not been started")
        return await asyncio.shield(self._result)

    async def stop(self) -> None:
        """
        Stop the callback server.

        Idempotent. Fails a pending wait_for_callback() with
        AuthorizationCancelledError and closes the listening socket so the
        port is free as soon as this returns.
        """
        task = self._shutdown_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._shutdown_task = None
        await self._close()

    async def wait_closed(self) -> None:
        """
        Let a scheduled shutdown finish, then make sure the server is stopped.

        After a successful callback the listener stays up for shutdown_grace
        seconds; this waits that out instead of cutting it short.
        """
        task = self._shutdown_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        await self.stop()

    # Connection handling

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        if self._result is None:
            writer.close()
            return

        self._connections.add(writer)
        try:
            try:
                data = await reader.readuntil(_HEADER_TERMINATOR)
            except asyncio.IncompleteReadError as e:
                data = e.partial
            except asyncio.LimitOverrunError:
                await self._respond(
                    writer, 400, self.html_provider.error_html("Request too large")
                )
                if not self._result.done():
                    self._fail(InvalidRequestError("Request headers too large"))
                return
            except ConnectionError as e:
                logger.debug(f"Ignoring broken callback connection: {e}")
                return

            if not data:
                logger.debug("Ignoring connection closed without a request")
                return

            if self._result.done():
                # Late requests (a second tab, a favicon fetch) are read and refused
                await self._respond(
                    writer, 400, self.html_provider.error_html("Authorization already handled")
                )
                return

            await self._process(data, writer)
        finally:
            self._connections.discard(writer)
            writer.close()

    async def _process(self, data: bytes, writer: asyncio.StreamWriter) -> None:
        provider = self.html_provider

        try:
            request = parse_request(data)
        except InvalidRequestError as e:
            await self._respond(writer, 400, provider.error_html("Invalid request format"))
            self._fail(e)
            return

        if request.method != "GET":
            await self._respond(writer, 400, provider.error_html("Invalid request"))
            self._fail(InvalidRequestError(f"Unsupported method: {request.method}"))
            return

        if not request.path.startswith(CALLBACK_PATH):
            await self._respond(writer, 404, provider.error_html("Invalid callback path"))
            self._fail(InvalidCallbackPathError(f"Invalid callback path: {request.path}"))
            return

        logger.info("Received OAuth callback")

        code = request.params.get("code")
        error = request.params.get("error")

        if code:
            if not self._state_matches(request.params.get("state")):
                await self._respond(writer, 400, provider.error_html("State mismatch"))
                self._fail(StateMismatchError("Callback state does not match the request"))
                return

            await self._respond(writer, 200, provider.success_html())
            logger.info("Authorization code received successfully")
            self._settle(code=code)
            self._schedule_stop(self.shutdown_grace)
        elif error:
            description = request.params.get("error_description")
            await self._respond(writer, 400, provider.error_html(description or error))
            self._fail(CallbackOAuthError(error, description))
        else:
            await self._respond(
                writer, 400, provider.error_html("Missing authorization code")
            )
            self._fail(MissingCodeError("Authorization code not received"))

    def _state_matches(self, state: Optional[str]) -> bool:
        if self.expected_state is None:
            return True
        if state is None:
            return False
        return secrets.compare_digest(state.encode("utf-8"), self.expected_state.encode("utf-8"))

    async def _respond(self, writer: asyncio.StreamWriter, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {HTTPStatus(status).phrase}\r\n"
            "Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        try:
            writer.write(head.encode("ascii") + payload)
            await writer.drain()
        except ConnectionError as e:
            logger.warning(f"Could not send callback response: {e}")

    # Outcome and shutdown

    def _settle(self, code: Optional[str] = None, error: Optional[Exception] = None) -> bool:
        if self._result is None or self._result.done():
            return False
        if error is not None:
            self._result.set_exception(error)
        else:
            self._result.set_result(code)
        return True

    def _fail(self, error: Exception) -> None:
        if self._settle(error=error):
            logger.error(f"OAuth callback failed: {error}")
        self._schedule_stop(0)

    def _schedule_stop(self, delay: float) -> None:
        if self._shutdown_task is None or self._shutdown_task.done():
            self._shutdown_task = asyncio.get_running_loop().create_task(
                self._stop_after(delay)
            )

    async def _stop_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._close()

    async def _close(self) -> None:
        self._settle(
            error=AuthorizationCancelledError(
                "Callback server stopped before a callback was received"
            )
        )

        for writer in list(self._connections):
            writer.close()
        self._connections.clear()

        server, self._server = self._server, None
        if server is None:
            return

        logger.info("OAuth callback server shutting down")
        server.close()
        await server.wait_closed()
