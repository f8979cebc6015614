"""
Blocking wait on LXD background operations.
"""

import logging
import time
from typing import Optional

from errors import OperationCancelled, OperationFailed, OperationTimeout
from job_status import JobClass, classify
from models import RemoteJobStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
DEFAULT_TIMEOUT = 180


class OperationWaiter:
    """Polls an operation handle until it finishes or a time budget runs out."""

    def __init__(self, api, poll_interval: float = POLL_INTERVAL):
        self.api = api
        self.poll_interval = poll_interval

    def wait_for(self, handle: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> RemoteJobStatus:
        """
        Block until the operation reaches a terminal status.

        Args:
            handle: Operation path
            timeout: Budget in seconds (None waits forever)

        Returns:
            Final RemoteJobStatus on success

        Raises:
            OperationFailed: Job finished with status 400
            OperationCancelled: Job finished with status 401
            OperationTimeout: Budget exceeded
            LxdError: Poll request failed
        """
        start = time.monotonic()
        while True:
            elapsed = time.monotonic() - start
            if timeout is not None and elapsed > timeout:
                raise OperationTimeout(
                    f"Operation {handle} timed out after {timeout:.0f}s"
                )

            status = self.api.get_operation(handle)
            job_class = classify(status.status_code)

            if job_class is JobClass.SUCCESS:
                logger.debug(f"Operation {handle} succeeded after {elapsed:.1f}s")
                return status
            if job_class is JobClass.FAILURE:
                raise OperationFailed(status.err or "Operation failed")
            if job_class is JobClass.CANCELLED:
                raise OperationCancelled()
            if job_class is JobClass.UNKNOWN:
                logger.warning(
                    f"Unknown status code {status.status_code} for operation {handle}"
                )

            time.sleep(self.poll_interval)
