"""
LXD container and VM lifecycle operations over the local daemon socket.
"""

from clients import LxdRestClient
from config import LxdConfig
from errors import (
    ApiError,
    LxdError,
    NotFound,
    OperationCancelled,
    OperationFailed,
    OperationTimeout,
    ProtocolError,
    ServiceUnavailable,
    SocketNotFound,
)
from inventory import InstanceInventory
from lifecycle import LifecycleClient
from log_utils import setup_logging
from models import Action, ActionKind, Instance, OperationRecord, OperationStatus
from operation_log import OperationLog
from serializer import MutationSerializer
from tracker import AsyncOperationTracker
from waiter import OperationWaiter

__all__ = [
    "LxdRestClient",
    "LxdConfig",
    "AsyncOperationTracker",
    "LifecycleClient",
    "OperationLog",
    "OperationWaiter",
    "MutationSerializer",
    "InstanceInventory",
    "setup_logging",
    "Action",
    "ActionKind",
    "Instance",
    "OperationRecord",
    "OperationStatus",
    "LxdError",
    "SocketNotFound",
    "ProtocolError",
    "ApiError",
    "NotFound",
    "ServiceUnavailable",
    "OperationTimeout",
    "OperationFailed",
    "OperationCancelled",
]
