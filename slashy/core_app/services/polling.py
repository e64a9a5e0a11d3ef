# slashy/core_app/services/polling.py
import threading
import webbrowser
from typing import Callable, Optional, Protocol

from slashy.core_app.errors import AbandonedError, PollingTimeoutError, UpstreamProviderError
from slashy.core_app.models.models import ConnectionState, ConnectionStatusResult
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

DEFAULT_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 60  # 5 minutes at the default interval


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Block up to `seconds`; True if the token was cancelled meanwhile."""
        return self._event.wait(seconds)


class Clock(Protocol):
    def sleep(self, seconds: float, token: CancellationToken) -> bool:
        """Wait between checks; return False if cancelled before the wait elapsed."""


class SystemClock:
    def sleep(self, seconds: float, token: CancellationToken) -> bool:
        return not token.wait(seconds)


class AuthWindow(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class BrowserAuthWindow:
    """
    Opens the authorization URL in the system browser. A browser tab cannot be
    observed from here, so `closed` only reflects an explicit close().
    """

    def __init__(self, url: str, opener: Callable[[str], bool] = webbrowser.open):
        self.url = url
        self._closed = False
        if not opener(url):
            logger.warning(f"Could not open a browser; visit {url} to authorize")

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True


class ConnectionPoller:
    """Polls a connection request until it completes, times out or is abandoned."""

    def __init__(self, check: Callable[[str], ConnectionStatusResult], interval: float = DEFAULT_INTERVAL,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS, clock: Optional[Clock] = None):
        self.check = check
        self.interval = interval
        self.max_attempts = max(1, max_attempts)
        self.clock = clock or SystemClock()

    def poll(self, connection_request_id: str, window: AuthWindow,
             token: Optional[CancellationToken] = None) -> ConnectionStatusResult:
        token = token or CancellationToken()
        attempts = 0

        while True:
            if token.cancelled:
                raise AbandonedError("Authorization polling was cancelled")
            if window.closed:
                raise AbandonedError("Authentication window was closed")

            attempts += 1
            try:
                result = self.check(connection_request_id)
            except UpstreamProviderError as e:
                logger.warning(f"Error checking auth status (attempt {attempts}): {e.message}")
                result = None

            if result is not None and result.state in (ConnectionState.COMPLETED, ConnectionState.ERROR):
                window.close()
                return result

            if attempts >= self.max_attempts:
                window.close()
                logger.warning(f"Polling for {connection_request_id} gave up after {attempts} attempts")
                raise PollingTimeoutError("Authentication timed out")

            if not self.clock.sleep(self.interval, token):
                raise AbandonedError("Authorization polling was cancelled")
