"""Session management for the remote compute service.

Several layers usually share one authenticated client. SessionContext keeps
the token the client was last initialized with so that re-rendering a layer
with an unchanged token costs nothing, while a new token triggers exactly one
initialization call.

Example:
    >>> session = SessionContext(EarthEngineService())
    >>> await session.initialize('ya29.token')
    >>> session.current_token
    'ya29.token'
"""
import asyncio
import logging
from typing import Optional

from .exceptions import AuthError
from .utils import run_blocking

logger = logging.getLogger(__name__)


class SessionContext:
    """
    Authenticated session state shared by layers.

    Attributes:
        service: BaseRemoteService used for the initialization call
        current_token (Optional[str]): Token of the last successful initialization
        initialized (bool): Whether any initialization has succeeded
    """

    def __init__(self, service=None) -> None:
        self.service = service
        self.current_token: Optional[str] = None
        self.initialized = False
        self._pending_token: Optional[str] = None
        self._pending: Optional[asyncio.Future] = None

    async def initialize(self, token: Optional[str]) -> None:
        """
        Initialize the service client for `token`.

        A falsy token or the token already in use is a no-op. A call made while
        an initialization for the same token is in flight waits for that one.
        The active token only changes once the service accepted it.

        Raises:
            AuthError: If the service rejects the token
        """
        if not token or token == self.current_token:
            return
        if self.service is None:
            raise AuthError("No remote service configured for this session")

        if self._pending is not None and self._pending_token == token:
            await asyncio.shield(self._pending)
            return

        future = asyncio.ensure_future(self._establish(token))
        self._pending_token, self._pending = token, future
        try:
            await future
        finally:
            if self._pending is future:
                self._pending_token, self._pending = None, None

    async def initialize_with_stored_credentials(self) -> None:
        """Initialize from credentials stored on this machine instead of a token."""
        if self.service is None:
            raise AuthError("No remote service configured for this session")
        try:
            await run_blocking(self.service.initialize_client)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Session initialization failed: {e}") from e
        self.initialized = True

    async def _establish(self, token: str) -> None:
        logger.debug("Initializing remote session for a new token")
        try:
            await run_blocking(self.service.initialize_session, token)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Session initialization failed: {e}") from e
        self.current_token = token
        self.initialized = True

    def reset(self) -> None:
        """Forget the active token, forcing the next initialize() to hit the service."""
        self.current_token = None
        self.initialized = False

    def __repr__(self) -> str:
        return f"SessionContext(service={self.service!r}, initialized={self.initialized})"


# Shared by layers that are not given their own context
default_session = SessionContext()
