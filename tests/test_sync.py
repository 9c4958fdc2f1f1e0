"""Tests for sync module."""

import logging
import threading
import time
from unittest.mock import MagicMock

import pytest

from docsync.errors import StoreError
from docsync.indexer.reconciler import DocumentError, SyncReport
from docsync.sync import SyncManager


def wait_for_condition(condition_fn, timeout: float = 3.0, interval: float = 0.1) -> bool:
    """Wait for a condition to become true, polling at interval.

    Args:
        condition_fn: Callable that returns True when condition is met.
        timeout: Maximum time to wait in seconds.
        interval: Time between checks in seconds.

    Returns:
        True if condition was met, False if timeout was reached.
    """
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition_fn():
            return True
        time.sleep(interval)
    return False


def make_indexer(report: SyncReport | None = None) -> MagicMock:
    indexer = MagicMock()
    indexer.sync.return_value = report or SyncReport(version="v1", mode="incremental")
    return indexer


class TestSyncManager:
    """Tests for SyncManager class."""

    def test_init_requires_positive_interval(self):
        """Test SyncManager requires positive interval."""
        indexer = MagicMock()
        with pytest.raises(ValueError, match="Sync interval must be positive"):
            SyncManager(indexer, 0)
        with pytest.raises(ValueError, match="Sync interval must be positive"):
            SyncManager(indexer, -1)

    def test_start_creates_daemon_thread(self):
        """Test start() creates a daemon thread."""
        manager = SyncManager(make_indexer(), 1)

        manager.start()
        try:
            assert manager._thread is not None
            assert manager._thread.is_alive()
            assert manager._thread.daemon is True
            assert manager._thread.name == "docsync-sync"
        finally:
            manager.stop()

    def test_start_idempotent(self):
        """Test calling start() twice doesn't create duplicate threads."""
        manager = SyncManager(make_indexer(), 1)

        manager.start()
        thread1 = manager._thread
        manager.start()
        thread2 = manager._thread

        try:
            assert thread1 is thread2
        finally:
            manager.stop()

    def test_stop_terminates_thread(self):
        """Test stop() terminates the sync thread."""
        manager = SyncManager(make_indexer(), 1)

        manager.start()
        assert manager._thread.is_alive()

        manager.stop()
        assert manager._thread is None

    def test_stop_idempotent(self):
        """Test calling stop() when not running is safe."""
        manager = SyncManager(MagicMock(), 1)
        manager.stop()  # Should not raise

    def test_wait_returns_after_stop(self):
        """Test wait() unblocks once stop() is called from another thread."""
        manager = SyncManager(make_indexer(), 1)
        manager.start()

        stopper = threading.Timer(0.2, manager.stop)
        stopper.start()
        manager.wait()
        stopper.join()

        assert manager._thread is None

    def test_sync_called_after_interval(self):
        """Test incremental sync() is called after the interval elapses."""
        indexer = make_indexer()
        manager = SyncManager(indexer, 1)

        manager.start()
        try:
            condition_met = wait_for_condition(lambda: indexer.sync.call_count >= 1, timeout=3.0)
            assert condition_met, "sync() was not called within timeout"
            indexer.sync.assert_called_with()
        finally:
            manager.stop()

    def test_sync_exception_doesnt_stop_thread(self):
        """Test exceptions in sync() don't stop the thread."""
        indexer = MagicMock()
        call_count = 0

        def side_effect():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise StoreError("database is locked")
            return SyncReport(version="v1", mode="incremental")

        indexer.sync.side_effect = side_effect
        manager = SyncManager(indexer, 1)

        manager.start()
        try:
            condition_met = wait_for_condition(lambda: call_count >= 2, timeout=5.0)
            assert condition_met, "sync() was not called twice within timeout"
        finally:
            manager.stop()

    def test_document_errors_are_logged(self, caplog):
        """Test per-document failures of a background pass are logged."""
        report = SyncReport(version="v1", mode="incremental", inserted=1)
        report.errors.append(DocumentError("broken.mdx", StoreError("constraint failed")))
        indexer = make_indexer(report)
        manager = SyncManager(indexer, 1)

        with caplog.at_level(logging.WARNING, logger="docsync.sync"):
            manager.start()
            try:
                condition_met = wait_for_condition(
                    lambda: any("broken.mdx" in r.message for r in caplog.records), timeout=3.0
                )
            finally:
                manager.stop()

        assert condition_met, "document error was not logged"

    def test_run_once_records_report(self):
        """Test run_once() keeps the last report and counts passes."""
        report = SyncReport(version="v2", mode="incremental", changed=1)
        manager = SyncManager(make_indexer(report), 1)

        assert manager.run_once() is report
        assert manager.last_report is report
        assert manager.passes == 1

    def test_run_once_swallows_failure(self, caplog):
        """Test a failed pass is logged and returns None."""
        indexer = MagicMock()
        indexer.sync.side_effect = StoreError("disk full")
        manager = SyncManager(indexer, 1)

        with caplog.at_level(logging.ERROR, logger="docsync.sync"):
            assert manager.run_once() is None

        assert manager.last_report is None
        assert any("pass 1 failed" in r.message for r in caplog.records)
