"""
Global gate for lifecycle-mutating requests.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class MutationSerializer:
    """Allows at most one mutating request to be submitted at a time.

    A single lock covers every instance. Hold it only around request
    submission, never while waiting for the resulting background operation.
    """

    def __init__(self):
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, label: str = "mutation") -> Iterator[None]:
        start = time.monotonic()
        with self._lock:
            waited = time.monotonic() - start
            if waited > 0.05:
                logger.debug(f"Waited {waited:.2f}s for mutation lock ({label})")
            yield
