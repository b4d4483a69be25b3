"""Thread-safe registry of recent version resolutions."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models import FlowContext, ResolutionResult

logger = logging.getLogger(__name__)


@dataclass
class ResolutionRecord:
    """One resolver call as stored in the registry."""

    record_id: int
    operation: str  # "execution", "metadata", "subset", "reconcile"
    status: str  # "resolved", "failed"
    flow: Optional[str] = None
    execution_id: Optional[int] = None
    bucket: Optional[int] = None
    decisions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "operation": self.operation,
            "status": self.status,
            "flow": self.flow,
            "execution_id": self.execution_id,
            "bucket": self.bucket,
            "decisions": self.decisions,
            "unresolved": self.unresolved,
            "error": self.error,
            "error_type": self.error_type,
            "recorded_at": self.recorded_at.isoformat(),
        }


class ResolutionRegistry:
    """Thread-safe resolution history.

    Uses RLock for thread-safe operations and supports TTL-based cleanup as
    well as a hard cap on the number of records kept.
    """

    def __init__(self, history_ttl: int = 3600, history_limit: int = 500):
        """Initialize registry.

        Args:
            history_ttl: TTL in seconds for records (default: 3600)
            history_limit: Maximum records kept, oldest dropped first (default: 500)
        """
        self._records: Dict[int, ResolutionRecord] = {}
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._history_ttl = history_ttl
        self._history_limit = history_limit

    def record(
        self,
        operation: str,
        flow: Optional[FlowContext] = None,
        result: Optional[ResolutionResult] = None,
        error: Optional[BaseException] = None,
    ) -> ResolutionRecord:
        """Store the outcome of a resolver call.

        Args:
            operation: Resolver operation name
            flow: Flow the call resolved for, if any
            result: Tier composition result, if the call got that far
            error: Exception the call raised, if any

        Returns:
            The stored ResolutionRecord
        """
        with self._lock:
            entry = ResolutionRecord(
                record_id=next(self._ids),
                operation=operation,
                status="failed" if error is not None else "resolved",
                flow=flow.identity if flow else None,
                execution_id=flow.execution_id if flow else None,
            )
            if result is not None:
                entry.bucket = result.bucket
                entry.decisions = {
                    key: decision.to_dict() for key, decision in sorted(result.decisions.items())
                }
                entry.unresolved = sorted(result.unresolved)
            if error is not None:
                entry.error = str(error)
                entry.error_type = type(error).__name__

            self._records[entry.record_id] = entry
            while self._records and len(self._records) > self._history_limit:
                oldest = min(self._records)
                del self._records[oldest]

            logger.debug(
                "Recorded %s resolution %d (flow=%s status=%s)",
                operation,
                entry.record_id,
                entry.flow,
                entry.status,
            )
            return entry

    def get(self, record_id: int) -> Optional[ResolutionRecord]:
        """Get record by ID.

        Args:
            record_id: Record ID

        Returns:
            ResolutionRecord if found, None otherwise
        """
        with self._lock:
            return self._records.get(record_id)

    def list_records(
        self,
        operation: Optional[str] = None,
        flow: Optional[str] = None,
        failed_only: bool = False,
    ) -> List[ResolutionRecord]:
        """List records, newest first.

        Args:
            operation: Only records of this operation
            flow: Only records for this flow identity
            failed_only: Only failed records
        """
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.record_id, reverse=True)
        if operation:
            records = [r for r in records if r.operation == operation]
        if flow:
            records = [r for r in records if r.flow == flow]
        if failed_only:
            records = [r for r in records if r.status == "failed"]
        return records

    def counts(self) -> Dict[str, int]:
        """Number of records per status."""
        with self._lock:
            counts = {"resolved": 0, "failed": 0}
            for entry in self._records.values():
                counts[entry.status] = counts.get(entry.status, 0) + 1
            return counts

    def cleanup_old_entries(self) -> int:
        """Remove entries older than TTL.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = time.time()
            to_remove = [
                record_id
                for record_id, entry in self._records.items()
                if now - entry.recorded_at.timestamp() > self._history_ttl
            ]
            for record_id in to_remove:
                del self._records[record_id]

            if to_remove:
                logger.debug("Cleaned up %d old resolution entries", len(to_remove))
            return len(to_remove)

    def clear(self) -> None:
        """Clear all entries."""
        with self._lock:
            self._records.clear()
