#!/usr/bin/env python3
"""Entrypoint for running the notification pipeline's background workers.

Usage:
    # Single run (drain pending notifications, scan reminders once)
    python scripts/run_workers.py --once

    # Continuous loop (Ctrl+C or SIGTERM to stop)
    python scripts/run_workers.py --loop

    # Only the notification consumer, ticking every 2 seconds
    python scripts/run_workers.py --loop --only consumer --interval 2

    # Limit iterations (for testing)
    python scripts/run_workers.py --loop --max-iterations 5

Environment variables:
    BROKER_BACKEND: memory, dapr or kafka (default: memory)
    NOTIFICATION_TOPIC: Topic carrying notifications (default: notifications)
    NOTIFICATION_CONSUMER_GROUP: Consumer group id (default: notification-consumer-group)
    REMINDER_HOURS_BEFORE_DUE: Reminder lead time in hours (default: 24)
    REMINDER_SCAN_INTERVAL_SECONDS: Seconds between reminder scans (default: 3600)
    WORKER_BATCH_SIZE: Records per consumer cycle (default: 50)
    WORKER_POLL_INTERVAL_SECONDS: Seconds between ticks (default: 1)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from tasknotify.db.session import get_engine, init_db
from tasknotify.pipeline import build_pipeline
from tasknotify.workers import configure_worker_logging, run_worker_loop, run_worker_once
from tasknotify.workers.runner import WORKER_NAMES


def main() -> int:
    """Main entrypoint for worker runner."""
    parser = argparse.ArgumentParser(
        description="Run background workers for the task notification pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run workers once and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run workers continuously in a loop",
    )

    # Configuration
    parser.add_argument(
        "--only",
        choices=WORKER_NAMES,
        default=None,
        help="Run a single worker",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between ticks (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations before stopping (loop mode only)",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    try:
        init_db(get_engine())
        pipeline = build_pipeline()
    except Exception as e:
        logger.error(f"Failed to start pipeline: {e}", exc_info=True)
        return 1

    try:
        if args.once:
            logger.info("Running workers once...")
            result = run_worker_once(pipeline, only=args.only)

            # Print summary
            print(f"\n--- Worker Run Summary ---")
            print(f"Workers run: {result.workers_run}")
            print(f"Total processed: {result.total_processed}")
            print(f"Total failed: {result.total_failed}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            for name, worker_result in result.worker_results.items():
                print(f"\n{name}:")
                print(f"  Status: {worker_result.status.value}")
                print(f"  Processed: {worker_result.processed_count}")
                print(f"  Failed: {worker_result.failed_count}")

            return 0 if not result.errors else 1

        logger.info("Starting worker loop (Ctrl+C to stop)...")
        run_worker_loop(
            pipeline,
            only=args.only,
            interval_seconds=args.interval,
            max_iterations=args.max_iterations,
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        return 1
    finally:
        pipeline.close()


if __name__ == "__main__":
    sys.exit(main())
