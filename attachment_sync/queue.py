"""In-memory queue of process items with status tracking."""

import logging
import threading
import time
from collections import deque
from typing import Any, Optional

from .models import QueueStats

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)


class QueueEntry:
    """An item in the queue together with its bookkeeping."""

    def __init__(self, item: Any, created_at: Optional[float] = None):
        self.item = item
        self.status = PENDING
        self.error = ""
        self.attempts = 0
        self.created_at = created_at or time.time()
        self.finished_at: Optional[float] = None

    @property
    def id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "event_type": self.item.event_type.value,
            "reference": self.item.reference,
            "status": self.status,
            "error": self.error,
            "attempts": self.attempts,
            "timestamp": self.created_at,
        }


class ProcessQueue:
    """FIFO queue of process items.

    Items are popped in insertion order. ``ack`` and ``fail`` only move an
    item out of ``processing``, so every item reaches a terminal status once.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._entries: dict[str, QueueEntry] = {}
        self._pending: deque[str] = deque()
        self._lock = threading.Lock()

    def push(self, item: Any) -> str:
        """Push an item to the queue.

        Args:
            item: Process item with a unique ``id``

        Returns:
            The ID of the pushed item
        """
        with self._lock:
            if item.id in self._entries:
                raise ValueError(f"Item {item.id} is already queued")
            self._entries[item.id] = QueueEntry(item)
            self._pending.append(item.id)
        return item.id

    def pop(self) -> Optional[Any]:
        """Take the oldest pending item and mark it processing.

        Returns:
            The item, or None when nothing is pending
        """
        with self._lock:
            while self._pending:
                entry = self._entries.get(self._pending.popleft())
                if entry is None or entry.status != PENDING:
                    continue
                entry.status = PROCESSING
                entry.attempts += 1
                return entry.item
            return None

    def ack(self, item_id: str) -> bool:
        """Mark a processing item completed.

        Returns:
            True if the item moved to completed
        """
        return self._settle(item_id, COMPLETED)

    def fail(self, item_id: str, error: str = "") -> bool:
        """Mark a processing item failed.

        Returns:
            True if the item moved to failed
        """
        return self._settle(item_id, FAILED, error)

    def _settle(self, item_id: str, status: str, error: str = "") -> bool:
        with self._lock:
            entry = self._entries.get(item_id)
            if entry is None or entry.status != PROCESSING:
                logger.warning(f"Item {item_id} is not processing, cannot mark it {status}")
                return False
            entry.status = status
            entry.error = error
            entry.finished_at = time.time()
            return True

    def drop_pending(self) -> int:
        """Forget every pending item.

        Returns:
            Number of items dropped
        """
        with self._lock:
            dropped = 0
            while self._pending:
                entry = self._entries.pop(self._pending.popleft(), None)
                if entry is not None and entry.status == PENDING:
                    dropped += 1
            return dropped

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_stats(self) -> QueueStats:
        """Get queue statistics."""
        with self._lock:
            counts = {status: 0 for status in STATUSES}
            for entry in self._entries.values():
                counts[entry.status] += 1
            return QueueStats(total=len(self._entries), **counts)

    def get_items(
        self,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[dict[str, Any]]:
        """Get items from the queue, newest first.

        Args:
            status: Filter by status (pending, processing, completed, failed)
            limit: Maximum number of items to return
            offset: Offset for pagination

        Returns:
            List of queue entries as dictionaries
        """
        with self._lock:
            entries = [e for e in self._entries.values() if status is None or e.status == status]
        entries.reverse()
        return [e.to_dict() for e in entries[offset:offset + limit]]

    def clear_finished(self) -> int:
        """Remove completed and failed entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            finished = [i for i, e in self._entries.items() if e.status in (COMPLETED, FAILED)]
            for item_id in finished:
                del self._entries[item_id]
            return len(finished)
