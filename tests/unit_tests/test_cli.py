"""
Unit tests for CLI module.
"""

import unittest
from unittest.mock import MagicMock, patch

from cli import (
    EXIT_FAILED,
    EXIT_OK,
    EXIT_UNAVAILABLE,
    action_from_args,
    build_parser,
    format_duration,
    main,
    run_blocking,
    run_command,
    run_tracked,
)
from config import LxdConfig
from errors import ApiError, OperationTimeout, ProtocolError, SocketNotFound
from inventory import InstanceInventory
from lifecycle import LifecycleClient
from models import Action, ActionKind, OperationStatus, RemoteJobStatus
from operation_log import OperationLog
from tracker import AsyncOperationTracker


def job(status_code, err=""):
    return RemoteJobStatus(id="abc", status="", status_code=status_code, err=err)


class TestParser(unittest.TestCase):
    """Test CLI argument parsing."""

    def test_global_options(self):
        """Test global options before the command."""
        args = build_parser().parse_args(
            [
                "--socket",
                "/tmp/lxd.socket",
                "--wait-timeout",
                "60",
                "--poll-interval",
                "0.2",
                "--verbose",
                "list",
            ]
        )

        self.assertEqual(args.socket, "/tmp/lxd.socket")
        self.assertEqual(args.wait_timeout, 60)
        self.assertEqual(args.poll_interval, 0.2)
        self.assertTrue(args.verbose)
        self.assertEqual(args.command, "list")

    def test_command_required(self):
        """Test a command must be given."""
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])

    def test_retries_bounded(self):
        """Test more than three retries is rejected."""
        parser = build_parser()
        args = parser.parse_args(["start", "web1", "--wait", "--retries", "3"])
        self.assertEqual(args.retries, 3)

        with self.assertRaises(SystemExit):
            parser.parse_args(["start", "web1", "--retries", "4"])

    def test_create_options(self):
        """Test create defaults and VM flag."""
        args = build_parser().parse_args(["create", "vm1", "--vm"])

        action = action_from_args(args, LxdConfig())

        self.assertIs(action.kind, ActionKind.CREATE)
        self.assertEqual(action.image, "ubuntu:24.04")
        self.assertEqual(action.instance_type, "virtual-machine")

    def test_stop_force(self):
        """Test stop --force becomes a forced stop action."""
        args = build_parser().parse_args(["stop", "web1", "--force"])

        self.assertEqual(
            action_from_args(args, LxdConfig(action_timeout=45)),
            Action.stop("web1", 45, force=True),
        )

    def test_clone_arguments(self):
        """Test clone takes source then destination."""
        args = build_parser().parse_args(["clone", "web1", "web2"])

        self.assertEqual(action_from_args(args, LxdConfig()), Action.clone("web1", "web2"))


class TestFormatDuration(unittest.TestCase):
    """Test duration formatting."""

    def test_format_duration(self):
        """Test seconds and minutes."""
        self.assertEqual(format_duration(5.0), "5.0s")
        self.assertEqual(format_duration(125), "2m 5s")


class TestRunTracked(unittest.TestCase):
    """Test the tracked command loop."""

    def setUp(self):
        """Set up test fixtures."""
        self.api = MagicMock()
        self.api.submit_action.return_value = "/1.0/operations/abc"
        self.tracker = AsyncOperationTracker(self.api, poll_interval=0)

    @patch("cli.time.sleep")
    def test_success_refreshes_inventory(self, mock_sleep):
        """Test a success refreshes the instance list once."""
        self.api.get_operation.side_effect = [job(103), job(200)]
        lifecycle = MagicMock()
        inventory = MagicMock()

        result = run_tracked(self.tracker, Action.start("web1"), 0.5, lifecycle, inventory)

        self.assertEqual(result, EXIT_OK)
        inventory.refresh.assert_called_once_with(lifecycle)
        inventory.find.assert_called_once_with("web1")

    @patch("cli.time.sleep")
    def test_success_marks_fresh_inventory_stale(self, mock_sleep):
        """Test a success forces a refresh of a recently refreshed list."""
        self.api.get_operation.return_value = job(200)
        lifecycle = MagicMock()
        lifecycle.list_instances.return_value = []
        inventory = InstanceInventory()
        inventory.refresh(lifecycle)
        self.assertFalse(inventory.needs_refresh())

        result = run_tracked(self.tracker, Action.delete("web1"), 0.5, lifecycle, inventory)

        self.assertEqual(result, EXIT_OK)
        self.assertEqual(lifecycle.list_instances.call_count, 2)
        self.assertFalse(inventory.needs_refresh())

    @patch("cli.time.sleep")
    def test_failure(self, mock_sleep):
        """Test a remote failure exits with the failure code."""
        self.api.get_operation.return_value = job(400, err="container is running")
        inventory = MagicMock()

        with self.assertLogs("cli", level="ERROR") as logs:
            result = run_tracked(
                self.tracker, Action.delete("db1"), 0.5, MagicMock(), inventory
            )

        self.assertEqual(result, EXIT_FAILED)
        self.assertIn("container is running", logs.output[0])
        inventory.refresh.assert_not_called()

    @patch("cli.time.sleep")
    def test_interrupt_cancels(self, mock_sleep):
        """Test Ctrl-C stops tracking and marks the operation cancelled."""
        self.api.get_operation.return_value = job(103)
        mock_sleep.side_effect = KeyboardInterrupt

        result = run_tracked(self.tracker, Action.start("web1"), 0.5)

        self.assertEqual(result, EXIT_FAILED)
        self.assertEqual(self.tracker.tracked(), [])
        self.assertEqual(self.tracker.log.records()[0].status, OperationStatus.CANCELLED)


class TestRunBlocking(unittest.TestCase):
    """Test the blocking command flow."""

    def setUp(self):
        """Set up test fixtures."""
        self.lifecycle = MagicMock()
        self.log = OperationLog()

    def test_success(self):
        """Test a successful action completes its record."""
        result = run_blocking(self.lifecycle, self.log, Action.start("web1"))

        self.assertEqual(result, EXIT_OK)
        self.assertEqual(self.log.records()[0].status, OperationStatus.SUCCESS)
        self.lifecycle.perform.assert_called_once_with(Action.start("web1"))

    def test_retries_on_timeout(self):
        """Test a timeout is retried up to the requested count."""
        self.lifecycle.perform.side_effect = [OperationTimeout("timed out"), True]

        result = run_blocking(self.lifecycle, self.log, Action.start("web1"), retries=2)

        record = self.log.records()[0]
        self.assertEqual(result, EXIT_OK)
        self.assertEqual(record.status, OperationStatus.SUCCESS)
        self.assertEqual(record.retry_count, 1)
        self.assertEqual(self.lifecycle.perform.call_count, 2)

    def test_retries_exhausted(self):
        """Test the record fails once retries are used up."""
        self.lifecycle.perform.side_effect = OperationTimeout("timed out")

        result = run_blocking(self.lifecycle, self.log, Action.stop("web1"), retries=1)

        record = self.log.records()[0]
        self.assertEqual(result, EXIT_FAILED)
        self.assertEqual(record.status, OperationStatus.FAILED)
        self.assertEqual(record.error, "timed out")
        self.assertEqual(self.lifecycle.perform.call_count, 2)

    def test_create_timeout_not_retried(self):
        """Test a create that times out waiting for Running is not re-submitted."""
        api = MagicMock()
        api.submit_action.return_value = "/1.0/operations/abc"
        lifecycle = LifecycleClient(api, waiter=MagicMock())
        lifecycle.wait_for_state = MagicMock(
            side_effect=OperationTimeout("Timeout waiting for instance web1 to reach state Running")
        )

        with self.assertLogs("cli", level="WARNING") as logs:
            result = run_blocking(
                lifecycle, self.log, Action.create("web1", "ubuntu:24.04"), retries=2
            )

        record = self.log.records()[0]
        self.assertEqual(result, EXIT_FAILED)
        self.assertEqual(record.status, OperationStatus.FAILED)
        self.assertEqual(record.retry_count, 0)
        self.assertEqual(
            [c[0][0].kind for c in api.submit_action.call_args_list],
            [ActionKind.CREATE, ActionKind.START],
        )
        self.assertIn("Not retrying", logs.output[0])

    def test_clone_not_retried(self):
        """Test clone failures with retries requested run once."""
        self.lifecycle.perform.side_effect = ProtocolError("socket closed")

        result = run_blocking(self.lifecycle, self.log, Action.clone("web1", "web2"), retries=3)

        self.assertEqual(result, EXIT_FAILED)
        self.assertEqual(self.lifecycle.perform.call_count, 1)

    def test_rejection_not_retried(self):
        """Test daemon rejections are not retried."""
        self.lifecycle.perform.side_effect = ApiError("Instance is busy", 400)

        result = run_blocking(self.lifecycle, self.log, Action.start("web1"), retries=3)

        self.assertEqual(result, EXIT_FAILED)
        self.assertEqual(self.lifecycle.perform.call_count, 1)


class TestRunCommand(unittest.TestCase):
    """Test command dispatch."""

    def setUp(self):
        """Set up test fixtures."""
        self.api = MagicMock()
        self.api.probe.return_value = True
        self.config = LxdConfig(poll_interval=0)

    def parse(self, *argv):
        return build_parser().parse_args(list(argv))

    def test_daemon_unavailable(self):
        """Test an unreachable daemon exits with the unavailable code."""
        self.api.probe.return_value = False

        self.assertEqual(run_command(self.parse("list"), self.config, self.api), EXIT_UNAVAILABLE)
        self.assertEqual(
            run_command(self.parse("start", "web1"), self.config, self.api), EXIT_UNAVAILABLE
        )
        self.api.submit_action.assert_not_called()

    @patch("builtins.print")
    def test_list(self, mock_print):
        """Test listing prints a row per instance."""
        self.api.list_instances.return_value = [
            {
                "name": "web1",
                "status": "Running",
                "status_code": 103,
                "type": "container",
                "state": {"network": {}},
            }
        ]

        self.assertEqual(run_command(self.parse("list"), self.config, self.api), EXIT_OK)
        self.assertEqual(mock_print.call_count, 2)

    @patch("builtins.print")
    def test_operations(self, mock_print):
        """Test operations prints daemon handles."""
        self.api.list_operations.return_value = ["/1.0/operations/a"]

        self.assertEqual(run_command(self.parse("operations"), self.config, self.api), EXIT_OK)
        mock_print.assert_called_once_with("/1.0/operations/a")

    def test_info_not_found(self):
        """Test errors from read commands exit with the failure code."""
        self.api.get_instance.side_effect = ApiError("Instance not found", 404)

        self.assertEqual(
            run_command(self.parse("info", "ghost"), self.config, self.api), EXIT_FAILED
        )

    @patch("cli.time.sleep")
    def test_tracked_mutation(self, mock_sleep):
        """Test a mutating command is tracked to completion by default."""
        self.api.submit_action.return_value = "/1.0/operations/abc"
        self.api.get_operation.return_value = job(200)
        self.api.list_instances.return_value = []

        result = run_command(self.parse("restart", "web1"), self.config, self.api)

        self.assertEqual(result, EXIT_OK)
        self.api.submit_action.assert_called_once_with(Action.restart("web1"))
        self.api.list_instances.assert_called_once()


class TestMain(unittest.TestCase):
    """Test the entry point."""

    @patch("cli.setup_logging")
    @patch("cli.LxdRestClient")
    def test_socket_not_found(self, mock_client, mock_logging):
        """Test a missing socket exits with the unavailable code."""
        mock_client.side_effect = SocketNotFound("LXD socket not found")

        self.assertEqual(main(["list"]), EXIT_UNAVAILABLE)

    @patch("cli.run_command")
    @patch("cli.setup_logging")
    @patch("cli.LxdRestClient")
    def test_client_closed(self, mock_client, mock_logging, mock_run):
        """Test the client is built from options and always closed."""
        mock_run.return_value = EXIT_OK

        result = main(["--socket", "/tmp/lxd.socket", "--request-timeout", "5", "list"])

        self.assertEqual(result, EXIT_OK)
        mock_client.assert_called_once_with(socket_path="/tmp/lxd.socket", timeout_s=5)
        mock_client.return_value.close.assert_called_once()
        mock_logging.assert_called_once_with(verbose=False, log_file=None)


if __name__ == "__main__":
    unittest.main()
