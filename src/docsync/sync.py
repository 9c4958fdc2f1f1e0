"""Periodic incremental passes on a background thread.

``docsync --interval N`` keeps a SyncManager alive after the first pass so that
edits to the docs tree reach the store without rerunning the command.
"""

import logging
import threading

from docsync.indexer import Indexer, SyncReport

logger = logging.getLogger(__name__)


def log_pass(report: SyncReport) -> None:
    """Log a background pass at a level matching its outcome."""
    if report.errors:
        logger.warning("Background sync %s: %s", report.version, report.summary())
        for error in report.errors:
            logger.warning("  %s", error)
    elif report.inserted or report.changed or report.parent_only or report.deleted:
        logger.info("Background sync %s: %s", report.version, report.summary())
    else:
        logger.debug("Background sync %s: nothing to do", report.version)


class SyncManager:
    """Runs ``indexer.sync()`` every ``interval`` seconds until stopped.

    The worker is a daemon thread, so an interrupted process never waits on
    it. A failed pass is logged and the next one runs on schedule.
    """

    def __init__(self, indexer: Indexer, interval: int):
        """
        Args:
            indexer: Indexer whose store is kept in step.
            interval: Seconds between passes. Must be > 0.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self._indexer = indexer
        self._interval = interval
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self.passes = 0
        self.last_report: SyncReport | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            logger.warning("Background sync already running")
            return

        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="docsync-sync", daemon=True)
        self._thread.start()
        logger.info("Background sync every %ds", self._interval)

    def stop(self) -> None:
        """Signal the worker and wait up to one interval for it to exit."""
        self._stopped.set()
        if not self.running:
            self._thread = None
            return

        self._thread.join(timeout=self._interval + 1)
        if self._thread.is_alive():
            logger.warning("Background sync thread did not exit in time")
        else:
            logger.info("Background sync stopped after %d passes", self.passes)
        self._thread = None

    def wait(self) -> None:
        """Block the caller until stop() is called."""
        self._stopped.wait()

    def run_once(self) -> SyncReport | None:
        """Run one incremental pass; returns None if the pass raised."""
        self.passes += 1
        try:
            report = self._indexer.sync()
        except Exception:
            logger.exception("Background sync pass %d failed", self.passes)
            return None
        log_pass(report)
        self.last_report = report
        return report

    def _run(self) -> None:
        # wait() returns True once stop() was called
        while not self._stopped.wait(timeout=self._interval):
            self.run_once()
