"""
Bounded history of operation records.
"""

import dataclasses
import logging
import threading
import time
import uuid
from collections import deque
from typing import List, Optional

from models import OperationRecord, OperationStatus

logger = logging.getLogger(__name__)

HISTORY_SIZE = 10


class OperationLog:
    """Ring buffer of the most recent operation records.

    All transitions go through this class so readers, which always get
    copies, never see a half-updated record. Terminal records are never
    changed again.
    """

    def __init__(self, capacity: int = HISTORY_SIZE):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._records: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def register(self, description: str, target: Optional[str] = None) -> OperationRecord:
        """
        Create a new record in the Registered state.

        Returns:
            The live record; pass it to the transition methods below
        """
        record = OperationRecord(
            operation_id=str(uuid.uuid4()),
            description=description,
            target=target,
            created_at=time.time(),
        )
        with self._lock:
            if len(self._records) == self.capacity:
                evicted = self._records[0]
                logger.debug(f"Evicting operation {evicted.operation_id} from history")
            self._records.append(record)
        logger.debug(f"Registered operation {record.operation_id}: {description}")
        return record

    def mark_running(self, record: OperationRecord) -> bool:
        with self._lock:
            if record.is_terminal:
                return False
            record.status = OperationStatus.RUNNING
            if record.started_at is None:
                record.started_at = time.time()
            return True

    def mark_retrying(self, record: OperationRecord, attempt: int) -> bool:
        """Move a running record to Retrying(attempt)."""
        with self._lock:
            if record.status not in (OperationStatus.RUNNING, OperationStatus.RETRYING):
                return False
            record.status = OperationStatus.RETRYING
            record.retry_count = attempt
            return True

    def complete(self, record: OperationRecord, error: Optional[str] = None) -> bool:
        """Finish a record as Success, or as Failed(error) when error is given."""
        with self._lock:
            if record.is_terminal:
                return False
            if error is None:
                record.status = OperationStatus.SUCCESS
            else:
                record.status = OperationStatus.FAILED
                record.error = error
            record.completed_at = time.time()
            return True

    def mark_cancelled(self, record: OperationRecord) -> bool:
        with self._lock:
            if record.is_terminal:
                return False
            record.status = OperationStatus.CANCELLED
            record.completed_at = time.time()
            return True

    def snapshot_of(self, record: OperationRecord) -> OperationRecord:
        """Consistent copy of a live record."""
        with self._lock:
            return dataclasses.replace(record)

    def get(self, operation_id: str) -> Optional[OperationRecord]:
        with self._lock:
            for record in self._records:
                if record.operation_id == operation_id:
                    return dataclasses.replace(record)
        return None

    def records(self) -> List[OperationRecord]:
        """Copies of the retained records, oldest first."""
        with self._lock:
            return [dataclasses.replace(r) for r in self._records]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
