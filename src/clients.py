"""
REST API client for the LXD daemon (API 1.0 over the local Unix socket).
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from errors import ApiError, LxdError, NotFound, ProtocolError
from images import image_source
from models import DEFAULT_LIMITS, Action, ActionKind, RemoteJobStatus
from transport import BASE_URL, DEFAULT_SOCKET_PATHS, UnixSocketAdapter, find_socket

logger = logging.getLogger(__name__)

API_VERSION = "/1.0"


class LxdRestClient:
    """REST client for the LXD daemon.

    Requests are not retried here; callers decide what to do with failures.
    """

    def __init__(
        self,
        socket_path: Optional[str] = None,
        timeout_s: float = 30,
        socket_paths=DEFAULT_SOCKET_PATHS,
    ):
        """
        Initialize the LXD REST client.

        Args:
            socket_path: Explicit daemon socket; searched for when omitted
            timeout_s: Per-request socket timeout in seconds
            socket_paths: Candidate socket paths, in search order

        Raises:
            SocketNotFound: If no socket path was given and none was found
        """
        self.socket_path = socket_path or find_socket(socket_paths)
        self.timeout_s = timeout_s

        self.session = requests.Session()
        self.session.mount("http+unix://", UnixSocketAdapter(self.socket_path, timeout_s))

    def _url(self, path: str) -> str:
        """Construct full request URL from an API path."""
        return f"{BASE_URL}/{path.lstrip('/')}"

    def _request(self, verb: str, path: str, body: Optional[Dict] = None) -> Dict:
        """
        Send one request and return the decoded response envelope.

        Raises:
            ProtocolError: On transport failure or a malformed envelope
            ApiError: If the daemon rejected the request
        """
        url = self._url(path)
        logger.debug(f"{verb} {path}")
        try:
            resp = self.session.request(verb, url, json=body, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ProtocolError(f"{verb} {path} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError(
                f"{verb} {path} returned a non-JSON body (HTTP {resp.status_code})"
            ) from e

        if not isinstance(data, dict) or "type" not in data or "status_code" not in data:
            raise ProtocolError(f"{verb} {path} returned an unexpected envelope: {data!r}")

        self._raise_for_error(data, resp.status_code)
        return data

    @staticmethod
    def _raise_for_error(data: Dict, http_status: int) -> None:
        status_code = data.get("status_code") or 0
        error_code = data.get("error_code") or 0
        if data.get("type") != "error" and status_code < 400 and error_code < 400:
            return

        message = data.get("error") or "Unknown error"
        code = error_code or status_code or http_status
        if code == 404:
            raise NotFound(message, code)
        raise ApiError(message, code)

    def invoke(
        self,
        verb: str,
        path: str,
        body: Optional[Dict] = None,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """
        Issue a request and return its metadata.

        Args:
            verb: HTTP method
            path: API path (e.g. /1.0/instances/web1)
            body: Optional JSON body
            decode: Optional callable turning raw metadata into a typed value

        Returns:
            Decoded metadata

        Raises:
            ApiError: If the daemon rejected the request
            ProtocolError: On transport failure, missing or undecodable metadata
        """
        data = self._request(verb, path, body)
        metadata = data.get("metadata")
        if metadata is None:
            raise ProtocolError(f"{verb} {path} returned no metadata")
        if decode is None:
            return metadata
        try:
            return decode(metadata)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"{verb} {path} returned undecodable metadata: {e}") from e

    def invoke_async(
        self, verb: str, path: str, body: Optional[Dict] = None
    ) -> Optional[str]:
        """
        Issue a mutating request and return the background operation handle.

        Returns:
            Operation path (e.g. /1.0/operations/<uuid>), or None if the
            daemon completed the request synchronously

        Raises:
            ApiError: If the daemon rejected the request
            ProtocolError: If the response carries neither operation nor metadata
        """
        data = self._request(verb, path, body)
        operation = data.get("operation")
        if operation:
            return operation
        if data.get("metadata") is not None:
            logger.debug(f"{verb} {path} completed synchronously")
            return None
        raise ProtocolError(f"{verb} {path} returned neither operation nor metadata")

    def probe(self) -> bool:
        """Check the daemon answers on the API root. Never raises."""
        try:
            self.invoke("GET", "/")
            return True
        except LxdError as e:
            logger.debug(f"LXD probe failed: {e}")
            return False

    def list_instances(self) -> List[Dict]:
        """
        List all instances with full details.

        Returns:
            List of instance documents
        """
        return self.invoke("GET", f"{API_VERSION}/instances?recursion=1", decode=list)

    def get_instance(self, name: str) -> Dict:
        """Get the configuration document of one instance."""
        return self.invoke("GET", f"{API_VERSION}/instances/{name}", decode=dict)

    def get_instance_state(self, name: str) -> Dict:
        """Get the runtime state (status, network, usage) of one instance."""
        return self.invoke("GET", f"{API_VERSION}/instances/{name}/state", decode=dict)

    def change_state(
        self, name: str, action: str, timeout: int = 30, force: Optional[bool] = None
    ) -> Optional[str]:
        """
        Request a state change (start, stop, restart) for an instance.

        Returns:
            Operation handle, or None if completed synchronously
        """
        body: Dict[str, Any] = {"action": action, "timeout": timeout}
        if force is not None:
            body["force"] = force
        return self.invoke_async("PUT", f"{API_VERSION}/instances/{name}/state", body)

    def delete_instance(self, name: str) -> Optional[str]:
        """Request deletion of an instance."""
        return self.invoke_async("DELETE", f"{API_VERSION}/instances/{name}")

    def create_instance(
        self,
        name: str,
        image: str,
        instance_type: str = "container",
        config: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        """Request creation of an instance from an image alias."""
        body = {
            "name": name,
            "source": image_source(image),
            "type": instance_type,
            "config": dict(DEFAULT_LIMITS if config is None else config),
        }
        return self.invoke_async("POST", f"{API_VERSION}/instances", body)

    def clone_instance(self, source: str, destination: str) -> Optional[str]:
        """Request a copy of an existing instance under a new name."""
        body = {
            "name": destination,
            "source": {"type": "copy", "source": f"{API_VERSION}/instances/{source}"},
        }
        return self.invoke_async("POST", f"{API_VERSION}/instances", body)

    def submit_action(self, action: Action) -> Optional[str]:
        """
        Issue the request for a lifecycle action without waiting for it.

        Returns:
            Operation handle, or None if completed synchronously
        """
        kind = action.kind
        if kind in (ActionKind.START, ActionKind.RESTART):
            return self.change_state(action.target, kind.value, action.timeout)
        if kind is ActionKind.STOP:
            return self.change_state(
                action.target, kind.value, action.timeout, force=action.force
            )
        if kind is ActionKind.DELETE:
            return self.delete_instance(action.target)
        if kind is ActionKind.CREATE:
            return self.create_instance(action.target, action.image, action.instance_type)
        if kind is ActionKind.CLONE:
            return self.clone_instance(action.source, action.target)
        raise ValueError(f"Unsupported action: {kind}")

    def get_operation(self, handle: str) -> RemoteJobStatus:
        """
        Get status of a background operation.

        Args:
            handle: Operation path returned by a mutating call

        Returns:
            RemoteJobStatus snapshot
        """
        return self.invoke("GET", handle, decode=RemoteJobStatus.from_api)

    def list_operations(self) -> List[str]:
        """List handles of all operations the daemon knows about."""
        metadata = self.invoke("GET", f"{API_VERSION}/operations", decode=dict)
        handles: List[str] = []
        for ops in metadata.values():
            if isinstance(ops, list):
                handles.extend(op for op in ops if isinstance(op, str))
        return handles

    def close(self) -> None:
        self.session.close()
