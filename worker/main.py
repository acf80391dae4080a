"""
Headless scheduler process entry point.

Runs the same ticker + worker pool the API embeds, without the HTTP server.
Use it when webhooks are served elsewhere (set RUN_SCHEDULER_IN_API=false on
the API side). Never run it alongside an API process that also has the
ticker enabled: only one scheduler may poll a given database file.

    1. Open the store (creates/migrates tables)
    2. Reset running rows left behind by an unclean shutdown
    3. Start the ticker (polls SQLite → WorkerPool → JobExecutor)

The main thread just waits for Ctrl+C (SIGINT) or SIGTERM.

To run:
    python -m worker.main
"""

import logging
import signal
import threading

from config.settings import settings
from services.runtime import build_runtime

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    runtime = build_runtime(settings)
    runtime.start_scheduler(stale_running_after=settings.stale_running_after)

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Scheduler process running. Press Ctrl+C to stop.")

    # Event.wait() instead of signal.pause() for Windows compatibility
    shutdown_event.wait()

    runtime.close()
    logger.info("Scheduler process exited")


if __name__ == "__main__":
    main()
