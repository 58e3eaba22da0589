"""
OAuth coordinator for high-level OAuth operations.

This module provides the main interface for OAuth operations in the
application. It orchestrates the per-region authorization flow (callback
server, PKCE, timeout and cancellation), hands received codes to the token
manager, and exposes simple methods for obtaining valid access tokens.
"""

import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import quote, urlencode, urlsplit

import httpx

from .callback_server import OAuthCallbackServer
from .config import AdsOAuthConfig
from .exceptions import (
    AdsOAuthError,
    AuthorizationCancelledError,
    AuthorizationError,
    AuthorizationTimeoutError,
    CallbackServerError,
    InvalidURLError,
)
from .html import OAuthHTMLProvider
from .pkce import generate_pkce_pair, generate_state
from .regions import Region
from .session import AuthorizationSession, SessionOutcome
from .token_manager import TokenManager, TokenResponse
from .token_storage import TokenStorage

logger = logging.getLogger(__name__)


class OAuthCoordinator:
    """
    High-level coordinator for OAuth operations.

    This is the main interface that applications should use for OAuth.
    At most one authorization session is in flight per region; starting a
    new one for the same region tears the previous one down first.

    Because the callback port is fixed (8765 by default), only one flow can
    hold the listener at a time across all regions.

    Example:
        async with OAuthCoordinator() as coordinator:
            url = await coordinator.initiate_authorization(Region.NORTH_AMERICA)
            webbrowser.open(url)
            await coordinator.wait_for_authorization(Region.NORTH_AMERICA)
            token = await coordinator.get_access_token(Region.NORTH_AMERICA)
    """

    def __init__(
        self,
        config: Optional[AdsOAuthConfig] = None,
        storage: Optional[TokenStorage] = None,
        token_manager: Optional[TokenManager] = None,
        html_provider: Optional[OAuthHTMLProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize OAuth coordinator.

        Args:
            config: OAuth configuration (loads from environment if not provided)
            storage: Token storage handed to the default token manager
            token_manager: Token manager (built from config/storage if not provided)
            html_provider: Pages shown in the browser after the redirect
            http_client: HTTP client handed to the default token manager
        """
        self.config = config or AdsOAuthConfig.from_env()
        self.token_manager = token_manager or TokenManager(
            self.config, storage=storage, http_client=http_client
        )
        self.html_provider = html_provider
        self._sessions: Dict[Region, AuthorizationSession] = {}
        # Last ended session per region, kept until the next initiate or cancel
        self._finished: Dict[Region, AuthorizationSession] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "OAuthCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Authorization flow

    async def initiate_authorization(self, region: Region) -> str:
        """
        Start the authorization flow for a region.

        Tears down any in-flight session for the region, binds the callback
        server, and launches a background task that waits for the redirect
        (up to config.authorization_timeout seconds) and exchanges the code.

        Opening the returned URL in a browser is the caller's job.

        Args:
            region: Region to authorize

        Returns:
            Authorization URL for the user to visit

        Raises:
            FailedToStartError: If the callback port cannot be bound
            InvalidURLError: If the authorization URL cannot be built
            PKCEGenerationError: If the PKCE challenge cannot be derived
        """
        async with self._lock:
            existing = self._sessions.pop(region, None)
            self._finished.pop(region, None)
            if existing is not None:
                logger.info(f"Replacing in-flight authorization for {region.value}")
                await self._abort(existing)

            code_verifier, code_challenge = generate_pkce_pair()
            state = generate_state()

            server = OAuthCallbackServer(
                port=self.config.callback_port,
                html_provider=self.html_provider,
                host=self.config.callback_host,
                expected_state=state,
                shutdown_grace=self.config.shutdown_grace,
            )
            port = await server.start()

            session = AuthorizationSession(
                region=region,
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                state=state,
                redirect_uri=self.config.redirect_uri(port),
                server=server,
            )

            try:
                url = self._build_authorization_url(session)
            except InvalidURLError:
                await server.stop()
                raise

            task = asyncio.get_running_loop().create_task(self._run_session(session))
            task.add_done_callback(
                lambda t, r=region: self._log_session_result(r, t)
            )
            session.task = task
            self._sessions[region] = session

            logger.info(
                f"Authorization started for {region.display_name}, "
                f"waiting for callback on port {port}"
            )
            return url

    async def cancel_authorization(self, region: Region) -> None:
        """
        Cancel the in-flight authorization for a region.

        Stops the callback server (freeing the port before returning),
        cancels the background task and forgets the session. Safe to call
        when no session exists.
        """
        async with self._lock:
            session = self._sessions.pop(region, None)
            self._finished.pop(region, None)
            if session is None:
                return
            logger.info(f"Cancelling authorization for {region.value}")
            await self._abort(session)

    async def wait_for_authorization(self, region: Region) -> None:
        """
        Wait for the in-flight authorization of a region to finish.

        Cancelling the caller does not cancel the flow itself. A flow that
        already ended (until the next initiate or cancel) is joined too: its
        result is returned or its error re-raised.

        Raises:
            AuthorizationError: If no authorization is in flight or ended since
                the last initiate or cancel
            AuthorizationTimeoutError: If no callback arrived in time
            AuthorizationCancelledError: If the flow was cancelled
            CallbackServerError: If the callback was invalid
            AdsOAuthError: If the code exchange failed
        """
        session = self._sessions.get(region) or self._finished.get(region)
        if session is None or session.task is None:
            raise AuthorizationError(f"No authorization in progress for {region.value}")

        task = session.task
        await asyncio.wait({task})
        if task.cancelled():
            raise AuthorizationCancelledError("Authorization was cancelled")
        task.result()

    def has_pending_authorization(self, region: Region) -> bool:
        """Check whether an authorization session is in flight for a region."""
        session = self._sessions.get(region)
        return session is not None and not session.outcome.is_final

    def get_session(self, region: Region) -> Optional[AuthorizationSession]:
        """Get the in-flight session for a region (None if there is none)."""
        return self._sessions.get(region)

    def _build_authorization_url(self, session: AuthorizationSession) -> str:
        base = session.region.authorization_url
        target = urlsplit(base)
        redirect = urlsplit(session.redirect_uri)
        if not target.scheme or not target.netloc:
            raise InvalidURLError(f"Invalid authorization endpoint: {base}")
        if not redirect.scheme or not redirect.hostname:
            raise InvalidURLError(f"Invalid redirect URI: {session.redirect_uri}")

        params = {
            "client_id": self.config.client_id,
            "scope": " ".join(self.config.scopes),
            "response_type": "code",
            "redirect_uri": session.redirect_uri,
            "state": session.state,
            "code_challenge": session.code_challenge,
            "code_challenge_method": "S256",
        }
        try:
            query = urlencode(params, quote_via=quote)
        except (TypeError, ValueError) as e:
            raise InvalidURLError(f"Failed to build authorization URL: {e}") from e
        return f"{base}?{query}"

    async def _run_session(self, session: AuthorizationSession) -> None:
        """Background task: wait for the callback, exchange the code, tear down."""
        region = session.region
        timeout = self.config.authorization_timeout
        try:
            try:
                code = await asyncio.wait_for(
                    session.server.wait_for_callback(), timeout=timeout
                )
            except asyncio.TimeoutError:
                error = AuthorizationTimeoutError(
                    f"No authorization callback received within {timeout:g} seconds"
                )
                session.finish(SessionOutcome.TIMED_OUT, error)
                raise error from None
            except AuthorizationCancelledError as e:
                session.finish(SessionOutcome.CANCELLED, e)
                raise
            except CallbackServerError as e:
                session.finish(SessionOutcome.ERROR, e)
                raise

            session.outcome = SessionOutcome.CODE_RECEIVED
            try:
                await self.token_manager.exchange_code(
                    region, code, session.code_verifier, session.redirect_uri
                )
            except AdsOAuthError as e:
                session.finish(SessionOutcome.ERROR, e)
                raise

            session.finish(SessionOutcome.COMPLETED)
            logger.info(f"Authorization complete for {region.display_name}, tokens saved")
        except asyncio.CancelledError:
            session.finish(
                SessionOutcome.CANCELLED,
                AuthorizationCancelledError("Authorization was cancelled"),
            )
            raise
        finally:
            await self._teardown(session)

    async def _abort(self, session: AuthorizationSession) -> None:
        # Stop first so the port is free even if the task is mid-exchange
        await session.server.stop()
        task = session.task
        if task is not None:
            if not task.done():
                task.cancel()
            await asyncio.wait({task})
        # A task cancelled before it first ran never records its outcome
        session.finish(
            SessionOutcome.CANCELLED,
            AuthorizationCancelledError("Authorization was cancelled"),
        )

    async def _teardown(self, session: AuthorizationSession) -> None:
        try:
            await session.server.wait_closed()
        except Exception as e:
            logger.warning(f"Error stopping callback server for {session.region.value}: {e}")
        finally:
            if self._sessions.get(session.region) is session:
                del self._sessions[session.region]
                self._finished[session.region] = session

    @staticmethod
    def _log_session_result(region: Region, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            logger.info(f"Authorization task for {region.value} cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Authorization failed for {region.value}: {error}")

    # Token facade

    async def get_access_token(self, region: Region) -> str:
        """
        Get a valid access token for API calls.

        This method automatically refreshes the token if it's expired or
        expiring soon.

        Raises:
            TokenNotAvailableError: If not authorized (need to run authorization flow)
        """
        return await self.token_manager.get_access_token(region)

    async def refresh_token(self, region: Region) -> TokenResponse:
        """Force a token refresh for a region."""
        return await self.token_manager.refresh_token(region)

    async def get_authorization_header(self, region: Region) -> dict:
        """
        Get headers for Advertising API requests.

        Returns:
            Dict with the bearer token and client id headers

        Raises:
            TokenNotAvailableError: If not authorized
        """
        token = await self.get_access_token(region)
        return {
            "Authorization": f"Bearer {token}",
            "Amazon-Advertising-API-ClientId": self.config.client_id,
        }

    async def is_authenticated(self, region: Region) -> bool:
        """Check if tokens are stored for a region."""
        return await self.token_manager.is_authenticated(region)

    async def get_status(self, region: Region) -> dict:
        """
        Get current authorization status for diagnostics.

        Returns:
            Token status (see TokenManager.get_token_status) plus
            pending_authorization
        """
        status = await self.token_manager.get_token_status(region)
        status["pending_authorization"] = self.has_pending_authorization(region)
        return status

    async def logout(self, region: Region) -> None:
        """
        Cancel any in-flight flow and delete stored tokens for a region.

        Note: This does NOT revoke the tokens on the provider's servers.
        """
        await self.cancel_authorization(region)
        await self.token_manager.revoke(region)
        logger.info(f"Logged out of {region.display_name}. Re-authorization required.")

    async def aclose(self) -> None:
        """Cancel every in-flight flow and release HTTP resources."""
        for region in list(self._sessions):
            await self.cancel_authorization(region)
        self._finished.clear()
        await self.token_manager.aclose()
