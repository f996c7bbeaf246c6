"""Advisory messages: non-fatal, auto-expiring notices of degraded operations."""
import asyncio
import logging
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 4.0

Listener = Callable[[Optional[str]], None]


class AdvisoryCenter:
    """Holds at most one advisory message at a time.

    A new message supersedes the current one. Each message is dismissed
    automatically after ``timeout`` seconds when an event loop is running.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self._timeout = timeout
        self._message: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: List[Listener] = []

    @property
    def message(self) -> Optional[str]:
        return self._message

    def subscribe(self, listener: Listener) -> None:
        """Register a callback receiving each new message, or None on dismissal."""
        self._listeners.append(listener)

    def post(self, message: str) -> None:
        self._cancel_timer()
        self._message = message
        logger.warning(f"Advisory: {message}")
        self._notify()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(self._timeout, self.dismiss)

    def dismiss(self) -> None:
        self._cancel_timer()
        if self._message is None:
            return
        self._message = None
        self._notify()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self._message)
