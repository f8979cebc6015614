"""
Shared instance list with snapshot reads.
"""

import logging
import threading
import time
from typing import List, Optional

from models import Instance

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 10


class InstanceInventory:
    """Latest instance listing, replaced wholesale on each refresh."""

    def __init__(self, refresh_interval: float = REFRESH_INTERVAL):
        self.refresh_interval = refresh_interval
        self._lock = threading.Lock()
        self._instances: List[Instance] = []
        self._stale = True
        self.last_refresh: Optional[float] = None
        self.last_error: Optional[str] = None

    def refresh(self, lifecycle) -> List[Instance]:
        """
        Replace the listing with a fresh one from the daemon.

        On failure the listing is cleared and the error re-raised.
        """
        logger.debug("Refreshing instance list")
        try:
            instances = lifecycle.list_instances()
        except Exception as e:
            logger.error(f"Failed to refresh instances: {e}")
            with self._lock:
                self._instances = []
                self.last_error = str(e)
            raise

        with self._lock:
            self._instances = list(instances)
            self._stale = False
            self.last_refresh = time.monotonic()
            self.last_error = None
        logger.info(f"Instance list refreshed - {len(instances)} instances")
        return list(instances)

    def snapshot(self) -> List[Instance]:
        with self._lock:
            return list(self._instances)

    def find(self, name: str) -> Optional[Instance]:
        with self._lock:
            return next((i for i in self._instances if i.name == name), None)

    def mark_stale(self) -> None:
        with self._lock:
            self._stale = True

    def needs_refresh(self, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        with self._lock:
            if self._stale or self.last_refresh is None:
                return True
            return now - self.last_refresh > self.refresh_interval
