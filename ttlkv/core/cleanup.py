"""Periodic expiry sweep for long-running stores.

Lazy expiry on read is always active; the sweeper only reclaims rows that are
never read again.
"""
import threading
from typing import Optional, TYPE_CHECKING

from .logging import get_logger

if TYPE_CHECKING:
    from ..store import TTLStore

logger = get_logger(__name__)


class ExpirySweeper:
    """Background thread that purges expired entries of one store."""

    def __init__(self, store: "TTLStore", interval: float):
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self.store = store
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweeper thread."""
        if self.running:
            logger.warning("Expiry sweeper already running", prefix=self.store.prefix)
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name=f"ttlkv-sweeper[{self.store.prefix}]",
            daemon=True,
        )
        self._thread.start()
        logger.info("Expiry sweeper started", prefix=self.store.prefix, interval=self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the sweeper and wait for the thread to exit."""
        self._stop.set()
        if self._thread:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout)
            self._thread = None
            logger.info("Expiry sweeper stopped", prefix=self.store.prefix)

    def _sweep_loop(self) -> None:
        """Main sweep loop - runs at configured interval."""
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception as e:
                logger.error("Expiry sweep failed", prefix=self.store.prefix, error=str(e))

    def run_once(self) -> int:
        """Run one sweep and return the number of purged entries."""
        count = self.store.purge_expired()
        if count > 0:
            logger.info("Expiry sweep completed", prefix=self.store.prefix, purged=count)
        return count
