"""
Blocking lifecycle operations for LXD instances.

These are the read-then-mutate flows that must not return before the daemon
reports the real outcome (e.g. "stop only if running", "delete stops first").
The mutation lock is held while reading state and submitting, and released
before waiting on the resulting background operation.
"""

import json
import logging
import time
from typing import List, Optional

from errors import LxdError, NotFound, OperationTimeout, ServiceUnavailable
from images import IMAGE_CATALOG, Image
from models import RUNNING, STOPPED, VIRTUAL_MACHINE, Action, ActionKind, Instance
from serializer import MutationSerializer
from waiter import DEFAULT_TIMEOUT, OperationWaiter

logger = logging.getLogger(__name__)

STATE_POLL_INTERVAL = 0.5


class LifecycleClient:
    """Synchronous instance lifecycle management on top of LxdRestClient."""

    def __init__(
        self,
        api,
        serializer: Optional[MutationSerializer] = None,
        waiter: Optional[OperationWaiter] = None,
        wait_timeout: float = DEFAULT_TIMEOUT,
        action_timeout: int = 30,
        state_poll_interval: float = STATE_POLL_INTERVAL,
    ):
        """
        Initialize the lifecycle client.

        Args:
            api: LxdRestClient (or compatible)
            serializer: Mutation gate shared with the async tracker
            waiter: Blocking operation waiter
            wait_timeout: Budget for each background operation wait (seconds)
            action_timeout: Timeout sent to the daemon with state changes
            state_poll_interval: Interval between instance state checks
        """
        self.api = api
        self.serializer = serializer or MutationSerializer()
        self.waiter = waiter or OperationWaiter(api)
        self.wait_timeout = wait_timeout
        self.action_timeout = action_timeout
        self.state_poll_interval = state_poll_interval

    def ensure_running(self) -> bool:
        """
        Check the daemon is reachable.

        Raises:
            ServiceUnavailable: If the probe fails
        """
        if self.api.probe():
            return True
        raise ServiceUnavailable()

    def list_instances(self) -> List[Instance]:
        """
        List instances with their addresses.

        State lookups that fail leave the instance without addresses.
        """
        instances: List[Instance] = []
        for data in self.api.list_instances():
            state = data.get("state")
            if state is None:
                try:
                    state = self.api.get_instance_state(data["name"])
                except LxdError as e:
                    logger.debug(f"Could not read state for {data['name']}: {e}")
            instances.append(Instance.from_api(data, state))
        return instances

    def get_instance_info(self, name: str) -> str:
        """Pretty-printed JSON document of one instance."""
        return json.dumps(self.api.get_instance(name), indent=2, sort_keys=True)

    def list_images(self) -> List[Image]:
        return list(IMAGE_CATALOG)

    def _status(self, name: str) -> str:
        return self.api.get_instance_state(name).get("status", "")

    def _wait(self, handle: Optional[str]) -> None:
        if handle:
            self.waiter.wait_for(handle, self.wait_timeout)

    def start(self, name: str) -> bool:
        """
        Start an instance and wait until it is Running.

        Returns:
            False if it was already running, True otherwise
        """
        with self.serializer.hold(f"start {name}"):
            if self._status(name) == RUNNING:
                logger.info(f"Instance {name} is already running")
                return False
            handle = self.api.submit_action(Action.start(name, self.action_timeout))
        self._wait(handle)
        self.wait_for_state(name, RUNNING, 30)
        return True

    def stop(self, name: str, force: bool = False) -> bool:
        """
        Stop an instance and wait until it is Stopped.

        Returns:
            False if it was already stopped, True otherwise
        """
        with self.serializer.hold(f"stop {name}"):
            if self._status(name) == STOPPED:
                logger.info(f"Instance {name} is already stopped")
                return False
            handle = self.api.submit_action(
                Action.stop(name, self.action_timeout, force=force)
            )
        self._wait(handle)
        self.wait_for_state(name, STOPPED, 30)
        return True

    def restart(self, name: str) -> bool:
        with self.serializer.hold(f"restart {name}"):
            handle = self.api.submit_action(Action.restart(name, self.action_timeout))
        self._wait(handle)
        self.wait_for_state(name, RUNNING, 60)
        return True

    def delete(self, name: str) -> bool:
        """Delete an instance, stopping it first if it is running."""
        with self.serializer.hold(f"inspect {name}"):
            status = self._status(name)
        if status == RUNNING:
            logger.info(f"Stopping {name} before deletion")
            self.stop(name)

        with self.serializer.hold(f"delete {name}"):
            handle = self.api.submit_action(Action.delete(name))
        self._wait(handle)
        return True

    def create(self, name: str, image: str, vm: bool = False) -> bool:
        """Create an instance from an image, then start it."""
        with self.serializer.hold(f"create {name}"):
            handle = self.api.submit_action(Action.create(name, image, vm=vm))
        self._wait(handle)

        with self.serializer.hold(f"start {name}"):
            handle = self.api.submit_action(Action.start(name, self.action_timeout))
        self._wait(handle)
        self.wait_for_state(name, RUNNING, 120)
        return True

    def clone(self, source: str, destination: str) -> bool:
        with self.serializer.hold(f"clone {source}"):
            handle = self.api.submit_action(Action.clone(source, destination))
        self._wait(handle)
        return True

    def perform(self, action: Action) -> bool:
        """Run an action through the matching blocking flow."""
        kind = action.kind
        if kind is ActionKind.START:
            return self.start(action.target)
        if kind is ActionKind.STOP:
            return self.stop(action.target, force=action.force)
        if kind is ActionKind.RESTART:
            return self.restart(action.target)
        if kind is ActionKind.DELETE:
            return self.delete(action.target)
        if kind is ActionKind.CREATE:
            return self.create(
                action.target, action.image, vm=action.instance_type == VIRTUAL_MACHINE
            )
        if kind is ActionKind.CLONE:
            return self.clone(action.source, action.target)
        raise ValueError(f"Unsupported action: {kind}")

    def wait_for_state(self, name: str, expected: str, timeout: float) -> None:
        """
        Poll an instance until it reports the expected status.

        While waiting for Running a failed lookup is tolerated, since the
        instance may still be being created.

        Raises:
            OperationTimeout: If the state is not reached within timeout
            NotFound: If the instance cannot be read while waiting for another state
        """
        start = time.monotonic()
        while True:
            if time.monotonic() - start > timeout:
                raise OperationTimeout(
                    f"Timeout waiting for instance {name} to reach state {expected}"
                )
            try:
                if self._status(name) == expected:
                    return
            except LxdError as e:
                if expected != RUNNING:
                    raise NotFound(f"Instance not found: {name}", 404) from e
                logger.debug(f"Instance {name} not readable yet: {e}")
            time.sleep(self.state_poll_interval)
