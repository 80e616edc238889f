"""
Single-flight coordination of access token refreshes.

Requests that hit an expired access token while a refresh is already running
queue behind it as waiters; the running refresh settles every waiter with the
same outcome before the coordinator goes back to idle.
"""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum, auto

import anyio

from vizion_client.client.errors import REFRESH_INTERRUPTED_MESSAGE, SessionExpiredError
from vizion_client.shared.auth import TokenPair

logger = logging.getLogger(__name__)


class RefreshStateError(RuntimeError):
    """Raised when the coordinator is driven through an invalid transition."""

    pass


class RefreshState(Enum):
    IDLE = auto()
    REFRESHING = auto()


class PendingWaiter:
    """A caller suspended until the in-flight refresh settles."""

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._token: str | None = None
        self._error: BaseException | None = None

    @property
    def settled(self) -> bool:
        return self._event.is_set()

    def resolve(self, token: str) -> None:
        if self.settled:
            raise RefreshStateError("Waiter already settled")
        self._token = token
        self._event.set()

    def reject(self, error: BaseException) -> None:
        if self.settled:
            raise RefreshStateError("Waiter already settled")
        self._error = error
        self._event.set()

    async def wait(self) -> str:
        """Wait for the refresh outcome; return the new access token or raise its error."""
        await self._event.wait()
        if self._error is not None:
            raise self._error
        assert self._token is not None
        return self._token


class RefreshCoordinator:
    """Guarantees at most one refresh call in flight."""

    def __init__(self) -> None:
        self._state = RefreshState.IDLE
        self._waiters: deque[PendingWaiter] = deque()

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state is RefreshState.REFRESHING

    @property
    def pending(self) -> int:
        return len(self._waiters)

    def enqueue(self) -> PendingWaiter:
        if not self.is_refreshing:
            raise RefreshStateError("Cannot queue behind a refresh when none is in flight")
        waiter = PendingWaiter()
        self._waiters.append(waiter)
        logger.debug(f"Queued request behind token refresh ({len(self._waiters)} waiting)")
        return waiter

    async def run(self, refresh: Callable[[], Awaitable[TokenPair]]) -> TokenPair:
        """
        Run ``refresh`` as the single in-flight refresh.

        Waiters are resolved with the new access token, or rejected with the
        exception raised by ``refresh``. The coordinator is back to IDLE on
        every exit path, cancellation included.
        """
        if self.is_refreshing:
            raise RefreshStateError("A token refresh is already in flight")

        logger.debug("Transitioning from IDLE to REFRESHING")
        self._state = RefreshState.REFRESHING
        try:
            tokens = await refresh()
        except Exception as exc:
            self._reject_all(exc)
            raise
        else:
            self._resolve_all(tokens.access_token)
            return tokens
        finally:
            if self._waiters:
                # Only reachable when the refresh was cancelled
                self._reject_all(SessionExpiredError(REFRESH_INTERRUPTED_MESSAGE))
            self._state = RefreshState.IDLE
            logger.debug("Transitioning from REFRESHING to IDLE")

    def _resolve_all(self, token: str) -> None:
        while self._waiters:
            self._waiters.popleft().resolve(token)

    def _reject_all(self, error: BaseException) -> None:
        count = len(self._waiters)
        while self._waiters:
            self._waiters.popleft().reject(error)
        if count:
            logger.debug(f"Rejected {count} queued request(s): {error}")
