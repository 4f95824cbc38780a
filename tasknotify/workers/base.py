"""Base worker abstraction.

Background workers poll for work items (broker records, tasks due for a
reminder), process them one at a time and report a WorkerResult. Each
worker owns whatever resources it needs (sessions, subscriptions); the
base class only drives the lifecycle and the logging around it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"


@dataclass
class WorkerResult:
    """Result of a worker processing cycle.

    Attributes:
        status: Overall status of the worker run
        processed_count: Number of items successfully processed
        failed_count: Number of items that failed
        duration_ms: Time taken for the processing cycle
        errors: List of error details for failed items
        metadata: Additional worker-specific metadata
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


# Generic type for work items
T = TypeVar("T")


class WorkerBase(ABC, Generic[T]):
    """Abstract base class for background workers.

    Workers follow this lifecycle:
    1. fetch_pending() - Get items to process
    2. mark_processing() - Claim the item (skip it when already handled)
    3. process_item() - Do the actual work
    4. mark_completed() or mark_failed() - Record the outcome

    Failed items are never retried by the base class.
    """

    def __init__(self, batch_size: int = 50) -> None:
        """Initialize the worker.

        Args:
            batch_size: Maximum items to process per cycle
        """
        self.batch_size = batch_size
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        """Return the worker name for logging."""
        pass

    @abstractmethod
    def fetch_pending(self) -> list[T]:
        """Fetch pending items to process (up to batch_size)."""
        pass

    @abstractmethod
    def mark_processing(self, item: T) -> bool:
        """Claim an item.

        Returns:
            True if the item should be processed, False to skip it
        """
        pass

    @abstractmethod
    def process_item(self, item: T) -> None:
        """Process a single item.

        Raises:
            Exception: If processing fails
        """
        pass

    @abstractmethod
    def mark_completed(self, item: T) -> None:
        """Record that an item was processed."""
        pass

    @abstractmethod
    def mark_failed(self, item: T, error: str) -> None:
        """Record that processing an item failed."""
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> str:
        """Identifier used in logs and error reports."""
        pass

    def close(self) -> None:
        """Release resources held between cycles."""

    def run(self) -> WorkerResult:
        """Execute one processing cycle.

        Returns:
            WorkerResult with processing statistics
        """
        start_time = datetime.utcnow()
        processed = 0
        failed = 0
        errors: list[dict[str, Any]] = []

        self._logger.debug(
            f"[{self.worker_name}] Starting processing cycle",
            extra={"batch_size": self.batch_size},
        )

        try:
            items = self.fetch_pending()

            if not items:
                self._logger.debug(f"[{self.worker_name}] No pending items")
                return WorkerResult(
                    status=WorkerStatus.NO_WORK,
                    duration_ms=self._elapsed_ms(start_time),
                )

            self._logger.info(
                f"[{self.worker_name}] Found {len(items)} items to process"
            )

            for item in items:
                item_id = self.get_item_id(item)

                try:
                    if not self.mark_processing(item):
                        self._logger.debug(
                            f"[{self.worker_name}] Item {item_id} skipped"
                        )
                        continue

                    self.process_item(item)
                    self.mark_completed(item)

                    processed += 1
                    self._logger.debug(
                        f"[{self.worker_name}] Processed item {item_id}",
                        extra={"item_id": item_id},
                    )

                except Exception as e:
                    failed += 1
                    error_msg = str(e)[:500]  # Truncate long errors
                    errors.append({"item_id": item_id, "error": error_msg})

                    self._logger.error(
                        f"[{self.worker_name}] Failed to process item {item_id}",
                        extra={"item_id": item_id, "error": error_msg},
                        exc_info=True,
                    )
                    self._safe_mark_failed(item, item_id, error_msg)

        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Worker cycle failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                processed_count=processed,
                failed_count=failed,
                duration_ms=self._elapsed_ms(start_time),
                errors=errors + [{"error": str(e)}],
            )

        # Determine overall status
        if failed == 0 and processed > 0:
            status = WorkerStatus.SUCCESS
        elif processed > 0 and failed > 0:
            status = WorkerStatus.PARTIAL
        elif failed > 0:
            status = WorkerStatus.FAILED
        else:
            status = WorkerStatus.NO_WORK

        result = WorkerResult(
            status=status,
            processed_count=processed,
            failed_count=failed,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
        )

        self._logger.info(
            f"[{self.worker_name}] Cycle complete",
            extra=result.to_dict(),
        )

        return result

    def _safe_mark_failed(self, item: T, item_id: str, error_msg: str) -> None:
        try:
            self.mark_failed(item, error_msg)
        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Failed to record failure for item {item_id}",
                extra={"item_id": item_id, "error": str(e)},
                exc_info=True,
            )

    def _elapsed_ms(self, start: datetime) -> float:
        """Calculate elapsed time in milliseconds."""
        return (datetime.utcnow() - start).total_seconds() * 1000
