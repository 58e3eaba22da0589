"""Per-region authorization session state."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .callback_server import OAuthCallbackServer
from .regions import Region


class SessionOutcome(str, Enum):
    """Lifecycle state of an authorization session."""

    PENDING = "pending"
    CODE_RECEIVED = "code_received"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_final(self) -> bool:
        return self not in (SessionOutcome.PENDING, SessionOutcome.CODE_RECEIVED)


@dataclass
class AuthorizationSession:
    """
    One in-flight authorization flow for a region.

    Owned exclusively by the coordinator while the flow is in progress.
    The code challenge is derived from the verifier once at creation and
    never regenerated.

    Attributes:
        region: Region being authorized
        code_verifier: PKCE verifier kept secret until code exchange
        code_challenge: S256 challenge sent in the authorization URL
        state: CSRF state sent in the authorization URL
        redirect_uri: Redirect URI registered with the provider
        server: Callback server owning the bound socket
        outcome: Current lifecycle state
        error: Error that ended the session (if any)
        task: Background task driving the session
        created_at: When the session was created (UTC)
    """

    region: Region
    code_verifier: str
    code_challenge: str
    state: str
    redirect_uri: str
    server: OAuthCallbackServer
    outcome: SessionOutcome = SessionOutcome.PENDING
    error: Optional[BaseException] = None
    task: Optional["asyncio.Task[None]"] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def finish(self, outcome: SessionOutcome, error: Optional[BaseException] = None) -> bool:
        """
        Record the final outcome.

        Only the first final outcome sticks; later calls are ignored.

        Returns:
            True if this call set the outcome
        """
        if self.outcome.is_final:
            return False
        self.outcome = outcome
        self.error = error
        return True
