"""Worker runner.

Entry points for running the pipeline's background workers:
- run_worker_once(): Single processing cycle of every worker
- run_worker_loop(): Continuous processing until a shutdown signal

The notification consumer runs on every tick; the reminder scanner only
when its scan interval has elapsed. On shutdown the current cycle is
allowed to finish before subscriptions are closed.
"""

import logging
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from tasknotify.workers.base import WorkerBase, WorkerResult

if TYPE_CHECKING:
    from tasknotify.pipeline import Pipeline

logger = logging.getLogger(__name__)

WORKER_NAMES = ("consumer", "reminders")


@dataclass
class RunnerResult:
    """Result of a complete worker runner cycle.

    Attributes:
        started_at: When the run started
        completed_at: When the run completed
        workers_run: Number of workers executed
        total_processed: Total items processed across all workers
        total_failed: Total items failed across all workers
        worker_results: Individual results per worker
        errors: Top-level errors during run
    """

    started_at: datetime
    completed_at: datetime | None = None
    workers_run: int = 0
    total_processed: int = 0
    total_failed: int = 0
    worker_results: dict[str, WorkerResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "workers_run": self.workers_run,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "worker_results": {
                name: result.to_dict()
                for name, result in self.worker_results.items()
            },
            "errors": self.errors,
        }


@dataclass
class ScheduledWorker:
    """A worker and how often it runs (0 means every tick)."""

    worker: WorkerBase
    interval_seconds: float = 0.0
    last_run: float | None = None

    def is_due(self, now: float) -> bool:
        if self.last_run is None or self.interval_seconds <= 0:
            return True
        return now - self.last_run >= self.interval_seconds


class WorkerRunner:
    """Orchestrates the pipeline's background workers.

    Usage:
        runner = WorkerRunner(pipeline)
        result = runner.run_once()
    """

    def __init__(
        self,
        pipeline: "Pipeline",
        only: str | None = None,
    ) -> None:
        """Initialize the worker runner.

        Args:
            pipeline: Built pipeline providing the workers
            only: Restrict to "consumer" or "reminders"
        """
        if only is not None and only not in WORKER_NAMES:
            raise ValueError(f"Unknown worker {only!r}, expected one of {WORKER_NAMES}")

        self.pipeline = pipeline
        settings = pipeline.settings
        self._scheduled: list[ScheduledWorker] = []
        if only in (None, "consumer"):
            self._scheduled.append(ScheduledWorker(pipeline.consumer))
        if only in (None, "reminders"):
            self._scheduled.append(
                ScheduledWorker(
                    pipeline.reminder_scanner,
                    interval_seconds=settings.REMINDER_SCAN_INTERVAL_SECONDS,
                )
            )

        self._logger = logging.getLogger(self.__class__.__name__)
        self._shutdown_requested = False
        self._previous_handlers: dict[int, Any] = {}

    @property
    def workers(self) -> list[WorkerBase]:
        return [scheduled.worker for scheduled in self._scheduled]

    def run_once(self, only_due: bool = False) -> RunnerResult:
        """Execute one processing cycle.

        Args:
            only_due: Skip workers whose interval has not elapsed

        Returns:
            RunnerResult with aggregated statistics
        """
        result = RunnerResult(started_at=datetime.utcnow())
        now = time.monotonic()

        for scheduled in self._scheduled:
            if only_due and not scheduled.is_due(now):
                continue

            worker = scheduled.worker
            scheduled.last_run = now
            try:
                worker_result = worker.run()
                result.worker_results[worker.worker_name] = worker_result
                result.workers_run += 1
                result.total_processed += worker_result.processed_count
                result.total_failed += worker_result.failed_count

            except Exception as e:
                error_msg = f"{worker.worker_name} failed: {str(e)}"
                result.errors.append(error_msg)
                self._logger.error(
                    error_msg,
                    extra={"worker": worker.worker_name},
                    exc_info=True,
                )

        result.completed_at = datetime.utcnow()

        if result.total_processed or result.total_failed or result.errors:
            self._logger.info("Worker run completed", extra=result.to_dict())

        return result

    def run_loop(
        self,
        interval_seconds: float | None = None,
        max_iterations: int | None = None,
    ) -> int:
        """Run workers continuously until shutdown is requested.

        Args:
            interval_seconds: Seconds between ticks (default from config)
            max_iterations: Max ticks to run (None for infinite)

        Returns:
            Number of iterations run
        """
        interval = interval_seconds or self.pipeline.settings.WORKER_POLL_INTERVAL_SECONDS
        iterations = 0

        self._setup_signal_handlers()

        self._logger.info(
            "Starting worker loop",
            extra={
                "interval_seconds": interval,
                "max_iterations": max_iterations,
                "workers": [worker.worker_name for worker in self.workers],
            },
        )

        try:
            while not self._shutdown_requested:
                if max_iterations is not None and iterations >= max_iterations:
                    self._logger.info(
                        f"Reached max iterations ({max_iterations}), stopping"
                    )
                    break

                self.run_once(only_due=True)
                iterations += 1

                if not self._shutdown_requested:
                    time.sleep(interval)

        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")

        finally:
            self._restore_signal_handlers()
            self.stop()

        self._logger.info(
            "Worker loop stopped",
            extra={"total_iterations": iterations},
        )
        return iterations

    def stop(self) -> None:
        """Close every worker's resources."""
        for worker in self.workers:
            try:
                worker.close()
            except Exception as e:
                self._logger.error(
                    f"Failed to close {worker.worker_name}",
                    extra={"error": str(e)},
                    exc_info=True,
                )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self._shutdown_requested = True

        self._previous_handlers = {
            signum: signal.signal(signum, handle_signal)
            for signum in (signal.SIGINT, signal.SIGTERM)
        }

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers = {}

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the loop."""
        self._shutdown_requested = True


# Convenience functions for easy usage


def run_worker_once(
    pipeline: "Pipeline",
    only: str | None = None,
) -> RunnerResult:
    """Run the workers once and return results.

    Example:
        >>> from tasknotify.workers import run_worker_once
        >>> result = run_worker_once(build_pipeline())
        >>> print(f"Processed: {result.total_processed}")
    """
    runner = WorkerRunner(pipeline, only=only)
    try:
        return runner.run_once()
    finally:
        runner.stop()


def run_worker_loop(
    pipeline: "Pipeline",
    only: str | None = None,
    interval_seconds: float | None = None,
    max_iterations: int | None = None,
) -> int:
    """Run workers continuously until interrupted (Ctrl+C / SIGTERM).

    Example:
        >>> from tasknotify.workers import run_worker_loop
        >>> run_worker_loop(build_pipeline(), interval_seconds=5)  # Ctrl+C to stop
    """
    runner = WorkerRunner(pipeline, only=only)
    return runner.run_loop(
        interval_seconds=interval_seconds,
        max_iterations=max_iterations,
    )


def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("tasknotify").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
