"""
Data models for the LXD lifecycle operations client.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

CONTAINER = "container"
VIRTUAL_MACHINE = "virtual-machine"

# Instance status strings as reported by the daemon
RUNNING = "Running"
STOPPED = "Stopped"
FROZEN = "Frozen"
ERROR = "Error"

DEFAULT_LIMITS = {"limits.cpu": "2", "limits.memory": "2GB"}


def addresses_from_state(state: Optional[Dict]) -> Dict[str, List[str]]:
    """
    Extract IPv4 and global IPv6 addresses from an instance state document.

    Args:
        state: Metadata of GET /1.0/instances/{name}/state (may be None)

    Returns:
        Dictionary with 'ipv4' and 'ipv6' address lists
    """
    ipv4: List[str] = []
    ipv6: List[str] = []
    network = (state or {}).get("network") or {}
    for iface in network.values():
        for addr in iface.get("addresses") or []:
            family = addr.get("family")
            address = addr.get("address", "")
            if family == "inet" and address != "127.0.0.1":
                ipv4.append(address)
            elif family == "inet6" and addr.get("scope") == "global":
                ipv6.append(address)
    return {"ipv4": ipv4, "ipv6": ipv6}


@dataclass
class Instance:
    """Snapshot of an LXD instance."""

    name: str
    status: str  # "Running", "Stopped", "Frozen", "Error" or a transitional state
    status_code: int
    instance_type: str  # "container" or "virtual-machine"
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)

    @property
    def is_running(self) -> bool:
        return self.status == RUNNING

    @classmethod
    def from_api(cls, data: Dict, state: Optional[Dict] = None) -> "Instance":
        """Build an Instance from a recursion=1 instance document and its state."""
        if state is None:
            state = data.get("state")
        addresses = addresses_from_state(state)
        return cls(
            name=data["name"],
            status=data.get("status", ""),
            status_code=int(data.get("status_code", 0)),
            instance_type=data.get("type", CONTAINER),
            ipv4=addresses["ipv4"],
            ipv6=addresses["ipv6"],
        )


@dataclass
class RemoteJobStatus:
    """Snapshot of a daemon-side background operation."""

    id: str
    status: str
    status_code: int
    err: str = ""
    description: str = ""
    metadata: Optional[Dict[str, Any]] = None
    may_cancel: bool = False

    @property
    def progress(self) -> Union[int, str, None]:
        """Progress reported by the daemon, if any."""
        if not isinstance(self.metadata, dict):
            return None
        value = self.metadata.get("progress")
        if isinstance(value, (int, str)):
            return value
        # Image downloads report e.g. {"download_progress": "rootfs: 45% (12MB/s)"}
        for key, value in self.metadata.items():
            if key.endswith("_progress") and isinstance(value, str):
                return value
        return None

    @classmethod
    def from_api(cls, data: Dict) -> "RemoteJobStatus":
        if not isinstance(data, dict):
            raise TypeError(f"operation document must be an object, got {type(data).__name__}")
        return cls(
            id=data.get("id", ""),
            status=data.get("status", ""),
            status_code=int(data["status_code"]),
            err=data.get("err") or "",
            description=data.get("description", ""),
            metadata=data.get("metadata"),
            may_cancel=bool(data.get("may_cancel", False)),
        )


class ActionKind(Enum):
    """Lifecycle mutations that can be submitted to the daemon."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    DELETE = "delete"
    CREATE = "create"
    CLONE = "clone"


@dataclass(frozen=True)
class Action:
    """A lifecycle mutation and the parameters it needs."""

    kind: ActionKind
    target: str  # instance acted on; the destination for clones
    timeout: int = 30
    force: bool = False
    image: Optional[str] = None  # CREATE only
    instance_type: str = CONTAINER  # CREATE only
    source: Optional[str] = None  # CLONE only

    @classmethod
    def start(cls, name: str, timeout: int = 30) -> "Action":
        return cls(ActionKind.START, name, timeout=timeout)

    @classmethod
    def stop(cls, name: str, timeout: int = 30, force: bool = False) -> "Action":
        return cls(ActionKind.STOP, name, timeout=timeout, force=force)

    @classmethod
    def restart(cls, name: str, timeout: int = 30) -> "Action":
        return cls(ActionKind.RESTART, name, timeout=timeout)

    @classmethod
    def delete(cls, name: str) -> "Action":
        return cls(ActionKind.DELETE, name)

    @classmethod
    def create(cls, name: str, image: str, vm: bool = False) -> "Action":
        if not image:
            raise ValueError("create requires an image alias")
        return cls(
            ActionKind.CREATE,
            name,
            image=image,
            instance_type=VIRTUAL_MACHINE if vm else CONTAINER,
        )

    @classmethod
    def clone(cls, source: str, destination: str) -> "Action":
        if not source:
            raise ValueError("clone requires a source instance")
        return cls(ActionKind.CLONE, destination, source=source)

    def describe(self) -> str:
        """Human-readable description used for operation records."""
        if self.kind is ActionKind.CREATE:
            what = "VM" if self.instance_type == VIRTUAL_MACHINE else "container"
            return f"Create {what} '{self.target}' from '{self.image}'"
        if self.kind is ActionKind.CLONE:
            return f"Clone '{self.source}' to '{self.target}'"
        return f"{self.kind.value.capitalize()} instance '{self.target}'"


class OperationStatus(Enum):
    """Lifecycle states of a locally tracked operation."""

    REGISTERED = "registered"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {OperationStatus.SUCCESS, OperationStatus.FAILED, OperationStatus.CANCELLED}
)


@dataclass
class OperationRecord:
    """Caller-facing record of one submitted operation."""

    operation_id: str
    description: str
    target: Optional[str] = None
    status: OperationStatus = OperationStatus.REGISTERED
    error: Optional[str] = None  # set when status is FAILED
    created_at: float = 0.0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    retry_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    def label(self) -> str:
        """Status label, e.g. 'failed: container is running' or 'retrying (2)'."""
        if self.status is OperationStatus.FAILED:
            return f"failed: {self.error}" if self.error else "failed"
        if self.status is OperationStatus.RETRYING:
            return f"retrying ({self.retry_count})"
        return self.status.value


@dataclass
class TrackedRemoteOperation:
    """Correlation of an operation record with a daemon job handle."""

    operation_id: str
    handle: str  # e.g. /1.0/operations/<uuid>
    action: Action
    record: OperationRecord
    submitted_at: float  # monotonic
    last_polled: float  # monotonic
    last_status_code: int = 103
    progress: Union[int, str, None] = None
    polling: bool = False
