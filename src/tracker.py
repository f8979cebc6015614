"""
Non-blocking tracking of LXD lifecycle operations.

submit() sends a mutation and returns an operation id as soon as the daemon
hands back a background operation. tick(), called by the embedding loop,
polls outstanding operations and moves their records to a terminal state.
"""

import dataclasses
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from errors import LxdError
from job_status import JobClass, classify
from models import (
    Action,
    OperationRecord,
    OperationStatus,
    RemoteJobStatus,
    TrackedRemoteOperation,
)
from operation_log import OperationLog
from serializer import MutationSerializer

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
MAX_TRACKED_AGE = 600


class AsyncOperationTracker:
    """Correlates operation records with daemon background operations."""

    def __init__(
        self,
        api,
        log: Optional[OperationLog] = None,
        serializer: Optional[MutationSerializer] = None,
        poll_interval: float = POLL_INTERVAL,
        max_tracked_age: Optional[float] = MAX_TRACKED_AGE,
        on_terminal: Optional[Callable[[OperationRecord], None]] = None,
        on_stale: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            api: LxdRestClient (or compatible) used to submit and poll
            log: Operation history the records are written into
            serializer: Gate shared with every other mutating caller
            poll_interval: Minimum seconds between two polls of one operation
            max_tracked_age: Seconds after submission before an operation
                without a terminal status is failed locally (None: no limit)
            on_terminal: Called with a record copy after each terminal transition
            on_stale: Called when a success means the instance list is outdated
        """
        self.api = api
        self.log = log or OperationLog()
        self.serializer = serializer or MutationSerializer()
        self.poll_interval = poll_interval
        self.max_tracked_age = max_tracked_age
        self.on_terminal = on_terminal
        self.on_stale = on_stale

        self._lock = threading.Lock()
        self._tracked: Dict[str, TrackedRemoteOperation] = {}
        self._pending: Dict[str, OperationRecord] = {}  # submission in flight
        self._stale = False

    def submit(self, action: Action, description: Optional[str] = None) -> str:
        """
        Submit a lifecycle action without waiting for it to finish.

        Returns:
            Operation id; the record is Running, or already terminal if the
            daemon rejected or completed the request synchronously
        """
        record = self.log.register(description or action.describe(), action.target)
        operation_id = record.operation_id
        with self._lock:
            self._pending[operation_id] = record

        finished: Optional[OperationRecord] = None
        try:
            try:
                with self.serializer.hold(record.description):
                    handle = self.api.submit_action(action)
            except LxdError as e:
                logger.error(f"Failed to submit '{record.description}': {e}")
                if self.log.complete(record, error=str(e)):
                    finished = self.log.snapshot_of(record)
                return operation_id

            now = time.monotonic()
            with self._lock:
                if not self.log.mark_running(record):
                    logger.info(
                        f"Operation {operation_id} was cancelled while submitting; "
                        f"not tracking {handle}"
                    )
                    return operation_id
                if handle is None:
                    self.log.complete(record)
                    finished = self.log.snapshot_of(record)
                else:
                    self._tracked[operation_id] = TrackedRemoteOperation(
                        operation_id=operation_id,
                        handle=handle,
                        action=action,
                        record=record,
                        submitted_at=now,
                        last_polled=now,
                    )
            if handle is None:
                logger.info(f"Completed synchronously: {record.description}")
            else:
                logger.info(f"LXD operation started: {record.description} ({handle})")
        finally:
            with self._lock:
                self._pending.pop(operation_id, None)
            if finished is not None:
                self._notify([finished])

        return operation_id

    def tick(self) -> List[OperationRecord]:
        """
        Poll every tracked operation not polled within poll_interval.

        Returns:
            Copies of the records that reached a terminal state in this tick
        """
        now = time.monotonic()
        finished: List[OperationRecord] = []
        due: List[TrackedRemoteOperation] = []

        with self._lock:
            for tracked in list(self._tracked.values()):
                if tracked.polling:
                    continue
                if self._expired(tracked, now):
                    del self._tracked[tracked.operation_id]
                    age = now - tracked.submitted_at
                    message = f"no terminal status from {tracked.handle} after {age:.0f}s"
                    logger.error(f"Giving up on '{tracked.record.description}': {message}")
                    if self.log.complete(tracked.record, error=message):
                        finished.append(self.log.snapshot_of(tracked.record))
                    continue
                if now - tracked.last_polled >= self.poll_interval:
                    tracked.polling = True
                    tracked.last_polled = now
                    due.append(tracked)

        try:
            for tracked in due:
                try:
                    status = self.api.get_operation(tracked.handle)
                except LxdError as e:
                    # Kept for the next tick; bounded by max_tracked_age.
                    logger.warning(f"Error checking LXD operation {tracked.handle}: {e}")
                    continue

                with self._lock:
                    if self._tracked.get(tracked.operation_id) is not tracked:
                        continue
                    record = self._advance(tracked, status)
                if record is not None:
                    finished.append(record)
        finally:
            # Any exception must leave every entry pollable again.
            with self._lock:
                for tracked in due:
                    tracked.polling = False

        self._notify(finished)
        return finished

    def _expired(self, tracked: TrackedRemoteOperation, now: float) -> bool:
        if self.max_tracked_age is None:
            return False
        return now - tracked.submitted_at > self.max_tracked_age

    def _advance(
        self, tracked: TrackedRemoteOperation, status: RemoteJobStatus
    ) -> Optional[OperationRecord]:
        """Apply one poll result. Caller holds self._lock."""
        tracked.last_status_code = status.status_code
        progress = status.progress
        if progress is not None:
            tracked.progress = progress

        job_class = classify(status.status_code)
        description = tracked.record.description

        if job_class is JobClass.RUNNING:
            logger.debug(f"LXD operation {tracked.handle} still running (code {status.status_code})")
            return None
        if job_class is JobClass.UNKNOWN:
            logger.warning(
                f"Unknown LXD operation status code {status.status_code} for {tracked.handle}"
            )
            return None

        del self._tracked[tracked.operation_id]
        if job_class is JobClass.SUCCESS:
            logger.info(f"Completed: {description}")
            self.log.complete(tracked.record)
        elif job_class is JobClass.FAILURE:
            error = status.err or "Operation failed"
            logger.error(f"Failed: {description}: {error}")
            self.log.complete(tracked.record, error=error)
        else:
            logger.warning(f"Cancelled by daemon: {description}")
            self.log.mark_cancelled(tracked.record)
        return self.log.snapshot_of(tracked.record)

    def _notify(self, finished: List[OperationRecord]) -> None:
        if any(r.status is OperationStatus.SUCCESS for r in finished):
            with self._lock:
                self._stale = True
            if self.on_stale:
                self.on_stale()
        if self.on_terminal:
            for record in finished:
                self.on_terminal(record)

    def cancel(self, operation_id: str) -> bool:
        """
        Stop tracking an operation and mark it Cancelled.

        The daemon job is not aborted; its outcome is simply no longer
        observed.

        Returns:
            True if the record was cancelled, False if unknown or already terminal
        """
        with self._lock:
            tracked = self._tracked.pop(operation_id, None)
            record = tracked.record if tracked else self._pending.get(operation_id)
            if record is None:
                logger.debug(f"Nothing to cancel for operation {operation_id}")
                return False
            cancelled = self.log.mark_cancelled(record)

        if cancelled:
            logger.info(f"Cancelled: {record.description}")
            self._notify([self.log.snapshot_of(record)])
        return cancelled

    def query(self, operation_id: str) -> Optional[OperationRecord]:
        """Copy of the record for an operation id, or None if unknown."""
        with self._lock:
            tracked = self._tracked.get(operation_id)
            record = tracked.record if tracked else self._pending.get(operation_id)
        if record is not None:
            return self.log.snapshot_of(record)
        return self.log.get(operation_id)

    def tracked(self) -> List[TrackedRemoteOperation]:
        """Copies of the currently tracked operations."""
        with self._lock:
            return [
                dataclasses.replace(t, record=self.log.snapshot_of(t.record))
                for t in self._tracked.values()
            ]

    def is_tracked(self, operation_id: str) -> bool:
        with self._lock:
            return operation_id in self._tracked

    def take_stale(self) -> bool:
        """Return and clear the 'instance list is outdated' flag."""
        with self._lock:
            stale, self._stale = self._stale, False
        return stale
