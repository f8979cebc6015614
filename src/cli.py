"""Console entry point for the LXD operations CLI."""

from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional

from clients import LxdRestClient
from config import LxdConfig
from errors import LxdError, OperationTimeout, ProtocolError, ServiceUnavailable, SocketNotFound
from inventory import InstanceInventory
from lifecycle import LifecycleClient
from log_utils import setup_logging
from models import Action, ActionKind, Instance, OperationRecord, OperationStatus
from operation_log import OperationLog
from serializer import MutationSerializer
from tracker import AsyncOperationTracker

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNAVAILABLE = 2

MAX_RETRIES = 3
# Create and clone re-POST the instance, which the daemon rejects once it exists.
RETRYABLE_KINDS = frozenset(
    {ActionKind.START, ActionKind.STOP, ActionKind.RESTART, ActionKind.DELETE}
)


def _add_mutation_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--wait",
        action="store_true",
        help="Block until the instance reaches its final state instead of tracking the operation",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=0,
        choices=range(0, MAX_RETRIES + 1),
        metavar="N",
        help=(
            f"With --wait, retry up to N times (max {MAX_RETRIES}) after a timeout or "
            "transport error; create and clone are never retried"
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Manage LXD containers and virtual machines through the local daemon socket"
    )
    parser.add_argument(
        "--socket",
        metavar="PATH",
        help="LXD Unix socket (default: first of the standard locations that exists)",
    )
    parser.add_argument("--request-timeout", type=int, default=30, metavar="SECONDS")
    parser.add_argument(
        "--action-timeout",
        type=int,
        default=30,
        metavar="SECONDS",
        help="Timeout passed to the daemon for start/stop/restart (default: 30)",
    )
    parser.add_argument(
        "--wait-timeout",
        type=int,
        default=180,
        metavar="SECONDS",
        help="Maximum time to wait for each operation with --wait (default: 180)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=0.5,
        metavar="SECONDS",
        help="Time between operation status checks (default: 0.5)",
    )
    parser.add_argument(
        "--max-tracked-age",
        type=int,
        default=600,
        metavar="SECONDS",
        help="Give up on an operation with no final status after this long; 0 waits forever (default: 600)",
    )
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--log-file", metavar="PATH", help="Also write logs to this file")

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    sub.add_parser("list", help="List instances")
    sub.add_parser("images", help="Show the image catalog")
    sub.add_parser("operations", help="List background operations known to the daemon")
    info = sub.add_parser("info", help="Show the full document of an instance")
    info.add_argument("name")

    for command in ("start", "stop", "restart", "delete"):
        p = sub.add_parser(command, help=f"{command.capitalize()} an instance")
        p.add_argument("name")
        if command == "stop":
            p.add_argument("--force", action="store_true", help="Kill instead of shutting down")
        _add_mutation_options(p)

    create = sub.add_parser("create", help="Create and start an instance")
    create.add_argument("name")
    create.add_argument("--image", default="ubuntu:24.04", help="Image alias (default: ubuntu:24.04)")
    create.add_argument("--vm", action="store_true", help="Create a virtual machine")
    _add_mutation_options(create)

    clone = sub.add_parser("clone", help="Copy an instance under a new name")
    clone.add_argument("source")
    clone.add_argument("destination")
    _add_mutation_options(clone)

    return parser


def action_from_args(args, config: LxdConfig) -> Action:
    """Translate a parsed mutating command into an Action."""
    if args.command == "start":
        return Action.start(args.name, config.action_timeout)
    if args.command == "stop":
        return Action.stop(args.name, config.action_timeout, force=args.force)
    if args.command == "restart":
        return Action.restart(args.name, config.action_timeout)
    if args.command == "delete":
        return Action.delete(args.name)
    if args.command == "create":
        return Action.create(args.name, args.image, vm=args.vm)
    if args.command == "clone":
        return Action.clone(args.source, args.destination)
    raise ValueError(f"Not a mutating command: {args.command}")


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    mins = int(seconds // 60)
    secs = seconds % 60
    return f"{mins}m {secs:.0f}s"


def report(record: OperationRecord) -> None:
    """Log the outcome of a finished operation."""
    duration = record.duration_seconds
    suffix = f" ({format_duration(duration)})" if duration is not None else ""
    if record.status is OperationStatus.SUCCESS:
        logger.info(f"✓ Completed: {record.description}{suffix}")
    elif record.status is OperationStatus.CANCELLED:
        logger.warning(f"Cancelled: {record.description}{suffix}")
    else:
        logger.error(f"Failed: {record.description}{suffix}: {record.error or 'Unknown error'}")


def print_instances(instances: List[Instance]) -> None:
    print(f"{'NAME':<24} {'STATUS':<10} {'TYPE':<16} {'IPV4'}")
    for inst in instances:
        print(
            f"{inst.name:<24} {inst.status:<10} {inst.instance_type:<16} {', '.join(inst.ipv4) or '-'}"
        )


def run_tracked(
    tracker: AsyncOperationTracker,
    action: Action,
    poll_interval: float,
    lifecycle: Optional[LifecycleClient] = None,
    inventory: Optional[InstanceInventory] = None,
) -> int:
    """Submit an action and drive tracker ticks until its record is final."""
    operation_id = tracker.submit(action)
    last_progress = None
    try:
        while True:
            record = tracker.query(operation_id)
            if record is None or record.is_terminal:
                break
            tracker.tick()
            for tracked in tracker.tracked():
                if tracked.operation_id == operation_id and tracked.progress != last_progress:
                    last_progress = tracked.progress
                    logger.info(f"{tracked.record.description}: {last_progress}")
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        tracker.cancel(operation_id)
        logger.warning("Stopped tracking; the daemon may still complete the operation")

    record = tracker.query(operation_id)
    report(record)

    if record.status is OperationStatus.SUCCESS and lifecycle is not None and inventory is not None:
        if tracker.take_stale():
            inventory.mark_stale()
        if inventory.needs_refresh():
            inventory.refresh(lifecycle)
            inst = inventory.find(action.target)
            if inst is not None:
                logger.info(f"{inst.name} is now {inst.status}")
            else:
                logger.info(f"{action.target} is no longer listed")

    return EXIT_OK if record.status is OperationStatus.SUCCESS else EXIT_FAILED


def run_blocking(
    lifecycle: LifecycleClient, log: OperationLog, action: Action, retries: int = 0
) -> int:
    """Run an action through the blocking lifecycle flow, retrying on request."""
    record = log.register(action.describe(), action.target)
    log.mark_running(record)

    attempt = 0
    while True:
        try:
            lifecycle.perform(action)
        except (OperationTimeout, ProtocolError) as e:
            if attempt < retries and action.kind in RETRYABLE_KINDS:
                attempt += 1
                log.mark_retrying(record, attempt)
                logger.warning(f"Retrying ({attempt}/{retries}): {record.description}: {e}")
                continue
            if attempt < retries:
                logger.warning(
                    f"Not retrying '{record.description}': {action.kind.value} cannot be repeated safely"
                )
            log.complete(record, error=str(e))
        except LxdError as e:
            log.complete(record, error=str(e))
        else:
            log.complete(record)
        break

    final = log.snapshot_of(record)
    report(final)
    return EXIT_OK if final.status is OperationStatus.SUCCESS else EXIT_FAILED


def run_command(args, config: LxdConfig, api: LxdRestClient) -> int:
    """Dispatch a parsed command against a connected client."""
    serializer = MutationSerializer()
    lifecycle = LifecycleClient(
        api,
        serializer=serializer,
        wait_timeout=config.wait_timeout,
        action_timeout=config.action_timeout,
    )
    inventory = InstanceInventory(refresh_interval=config.refresh_interval)

    try:
        lifecycle.ensure_running()
    except ServiceUnavailable as e:
        logger.error(f"{e}: check 'systemctl status lxd' (or 'snap services lxd')")
        return EXIT_UNAVAILABLE

    try:
        if args.command == "list":
            print_instances(inventory.refresh(lifecycle))
            return EXIT_OK
        if args.command == "images":
            for image in lifecycle.list_images():
                print(f"{image.alias:<20} {image.description}")
            return EXIT_OK
        if args.command == "info":
            print(lifecycle.get_instance_info(args.name))
            return EXIT_OK
        if args.command == "operations":
            for handle in api.list_operations():
                print(handle)
            return EXIT_OK

        action = action_from_args(args, config)
        log = OperationLog(config.history_size)
        if args.wait:
            return run_blocking(lifecycle, log, action, retries=args.retries)

        tracker = AsyncOperationTracker(
            api,
            log=log,
            serializer=serializer,
            poll_interval=config.poll_interval,
            max_tracked_age=config.max_tracked_age,
            on_stale=inventory.mark_stale,
        )
        return run_tracked(tracker, action, config.poll_interval, lifecycle, inventory)
    except LxdError as e:
        logger.error(f"{args.command} failed: {e}")
        return EXIT_FAILED


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    config = LxdConfig.from_args(args)
    setup_logging(verbose=config.verbose, log_file=config.log_file)

    try:
        api = LxdRestClient(socket_path=config.socket_path, timeout_s=config.request_timeout)
    except SocketNotFound as e:
        logger.error(str(e))
        return EXIT_UNAVAILABLE

    try:
        return run_command(args, config, api)
    finally:
        api.close()
