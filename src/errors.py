"""
Exception types raised by the LXD operations client.
"""

from typing import Optional


class LxdError(Exception):
    """Base class for all errors raised while talking to the LXD daemon."""


class SocketNotFound(LxdError):
    """None of the candidate LXD socket paths exists."""


class ProtocolError(LxdError):
    """Transport failure or a response envelope that cannot be decoded."""


class ApiError(LxdError):
    """Request rejected by the daemon."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class NotFound(ApiError):
    """Instance (or other resource) does not exist."""


class ServiceUnavailable(LxdError):
    """LXD daemon did not answer the reachability probe."""

    def __init__(self, message: str = "LXD service not available"):
        super().__init__(message)


class WaitError(LxdError):
    """A blocking wait on a remote job ended without success."""


class OperationTimeout(WaitError):
    """Blocking wait exceeded its time budget."""


class OperationFailed(WaitError):
    """Remote job finished with a failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OperationCancelled(WaitError):
    """Remote job was cancelled."""

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)
