"""
Configuration management for the LXD operations client.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class LxdConfig:
    """Configuration for daemon access and operation tracking."""

    socket_path: Optional[str] = None
    request_timeout: int = 30
    action_timeout: int = 30
    wait_timeout: int = 180
    poll_interval: float = 0.5
    max_tracked_age: Optional[int] = 600
    history_size: int = 10
    refresh_interval: int = 10
    verbose: bool = False
    log_file: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "LxdConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            LxdConfig instance
        """
        max_age = args.max_tracked_age
        return cls(
            socket_path=args.socket,
            request_timeout=args.request_timeout,
            action_timeout=args.action_timeout,
            wait_timeout=args.wait_timeout,
            poll_interval=args.poll_interval,
            # 0 disables the limit
            max_tracked_age=max_age if max_age and max_age > 0 else None,
            verbose=args.verbose,
            log_file=args.log_file,
        )
