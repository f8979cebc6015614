"""
Classification of LXD background operation status codes.

Both the blocking waiter and the tracker tick use classify(), so a status
code always means the same thing regardless of who polled it.
"""

from enum import Enum

SUCCESS_CODE = 200
FAILURE_CODE = 400
CANCELLED_CODE = 401
RUNNING_CODES = range(103, 110)  # created, started, stopped, running, cancelling, pending, ...


class JobClass(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    RUNNING = "running"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (JobClass.SUCCESS, JobClass.FAILURE, JobClass.CANCELLED)


def classify(status_code: int) -> JobClass:
    """
    Map a daemon operation status code to its class.

    Unknown codes are not terminal; callers keep polling and log them.
    """
    if status_code == SUCCESS_CODE:
        return JobClass.SUCCESS
    if status_code == FAILURE_CODE:
        return JobClass.FAILURE
    if status_code == CANCELLED_CODE:
        return JobClass.CANCELLED
    if status_code in RUNNING_CODES:
        return JobClass.RUNNING
    return JobClass.UNKNOWN
