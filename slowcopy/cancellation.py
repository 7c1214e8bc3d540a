"""
Module for turning process signals into per-job cancellation.
"""
import logging
import signal
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Optional

from .exceptions import CopyInterrupted

logger = logging.getLogger(__name__)


def default_signals() -> tuple:
    signals = [signal.SIGINT]
    if hasattr(signal, 'SIGTERM'):
        signals.append(signal.SIGTERM)
    return tuple(signals)


class CancellationToken:
    """Cancellation flag owned by a single copy job."""

    def __init__(self):
        self._event = threading.Event()
        self._signum: Optional[int] = None

    def cancel(self, signum: int = signal.SIGINT) -> None:
        if not self._event.is_set():
            self._signum = signum
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def signum(self) -> Optional[int]:
        return self._signum

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class CancellationGate:
    """Routes interrupt signals to the token of the active job."""

    def __init__(self):
        self._active: Optional[CancellationToken] = None
        self._previous_handlers: Dict[int, object] = {}
        self._lock = threading.Lock()

    def install(self, signals: Optional[Iterable[int]] = None) -> None:
        """Register the gate as handler for the given signals.

        Must be called from the main thread.

        Args:
            signals: Signals to handle; SIGINT and SIGTERM by default
        """
        for signum in signals or default_signals():
            if signum in self._previous_handlers:
                continue
            self._previous_handlers[signum] = signal.signal(signum, self.handle_signal)
            logger.debug(f"Installed cancellation handler for signal {signum}")

    def restore(self) -> None:
        """Put back the handlers that were active before install()."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def activate(self, token: CancellationToken) -> None:
        with self._lock:
            self._active = token

    def deactivate(self, token: CancellationToken) -> None:
        with self._lock:
            if self._active is token:
                self._active = None

    @property
    def active(self) -> Optional[CancellationToken]:
        return self._active

    def handle_signal(self, signum, frame=None) -> None:
        """Signal handler: cancel the active job, if any."""
        token = self._active
        if token is None:
            logger.warning(f"Received signal {signum} with no active copy")
            raise CopyInterrupted(signum)
        logger.info(f"Received signal {signum}, saving progress")
        token.cancel(signum)

    @contextmanager
    def guard(self, token: CancellationToken) -> Iterator[CancellationToken]:
        """Make ``token`` the active job token for the duration of the block."""
        self.activate(token)
        try:
            yield token
        finally:
            self.deactivate(token)
