"""
HTTP-over-Unix-socket transport for the LXD REST API.

Provides a requests adapter that sends every request mounted on the
``http+unix://`` prefix through a local Unix socket.
"""

import logging
import os
import socket
from typing import Iterable

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection
from urllib3.connectionpool import HTTPConnectionPool

from errors import SocketNotFound

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATHS = (
    "/var/lib/lxd/unix.socket",
    "/var/snap/lxd/common/lxd/unix.socket",
)

BASE_URL = "http+unix://lxd"


def find_socket(candidates: Iterable[str] = DEFAULT_SOCKET_PATHS) -> str:
    """
    Return the first existing socket path.

    Raises:
        SocketNotFound: If none of the candidates exists
    """
    candidates = list(candidates)
    for path in candidates:
        if os.path.exists(path):
            logger.debug(f"Using LXD socket {path}")
            return path
    raise SocketNotFound(
        f"LXD socket not found at standard locations: {', '.join(candidates)}"
    )


class UnixHTTPConnection(HTTPConnection):
    """urllib3 connection that connects to a Unix socket instead of TCP."""

    def __init__(self, *args, socket_path: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.socket_path = socket_path

    def _new_conn(self) -> socket.socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        timeout = self.timeout if isinstance(self.timeout, (int, float)) else None
        sock.settimeout(timeout)
        try:
            sock.connect(self.socket_path)
        except OSError:
            sock.close()
            raise
        return sock


class UnixHTTPConnectionPool(HTTPConnectionPool):
    ConnectionCls = UnixHTTPConnection


class UnixSocketAdapter(HTTPAdapter):
    """Transport adapter routing requests to a single Unix socket."""

    def __init__(self, socket_path: str, timeout_s: float = 30, pool_maxsize: int = 4):
        self.socket_path = socket_path
        self.timeout_s = timeout_s
        self._pool = UnixHTTPConnectionPool(
            "localhost",
            timeout=timeout_s,
            maxsize=pool_maxsize,
            socket_path=socket_path,
        )
        super().__init__()

    def get_connection_with_tls_context(self, request, verify, proxies=None, cert=None):
        return self._pool

    def get_connection(self, url, proxies=None):
        return self._pool

    def request_url(self, request, proxies):
        # Only the path and query go on the request line.
        return request.path_url

    def close(self):
        self._pool.close()
        super().close()
