"""
Workers
QThread workers that run addon operations off the UI thread
"""

import asyncio
import logging
import threading

from PyQt6.QtCore import QThread, pyqtSignal

from addon_errors import FilesystemError

logger = logging.getLogger(__name__)


class _EventBridge:
    """Forwards manager events to a Qt signal while a worker runs."""

    def __init__(self, addon_manager, signal):
        self.addon_manager = addon_manager
        self.listener = signal.emit

    def __enter__(self):
        self.addon_manager.add_listener(self.listener)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.addon_manager.remove_listener(self.listener)
        return False


class InstallWorker(QThread):
    """Thread worker for addon installation.

    Signals:
        finished(success, message) - Installation complete
        event(event) - Addon event (InstallStarted, InstallCopying, ...)
    """
    finished = pyqtSignal(bool, str)
    event = pyqtSignal(object)

    def __init__(self, addon_manager, source, provider=None, branch=None, channel='stable'):
        """Initialize installation worker.

        Args:
            addon_manager: AddonManager - Addon manager instance
            source: str - Repository / download page URL, or marketplace id
            provider: Optional str - 'wago' or 'tukui' for a marketplace install
            branch: Optional str - Git branch for repository installs
            channel: str - Marketplace release channel
        """
        super().__init__()
        self.addon_manager = addon_manager
        self.source = source
        self.provider = provider
        self.branch = branch
        self.channel = channel

    def run(self):
        try:
            with _EventBridge(self.addon_manager, self.event):
                if self.provider:
                    result = self.addon_manager.install_from_marketplace(self.provider, self.source, self.channel)
                else:
                    result = self.addon_manager.install_from_url(self.source, branch=self.branch)
            self.finished.emit(result.success, result.message)
        except Exception as e:
            logger.exception("Install worker failed")
            self.finished.emit(False, str(e))


class UpdateWorker(QThread):
    """Worker thread for a single addon update"""
    finished = pyqtSignal(bool, str, bool)  # success, message, updated
    event = pyqtSignal(object)

    def __init__(self, addon_manager, record, force=False):
        """Initialize update worker.

        Args:
            addon_manager: AddonManager - Addon manager instance
            record: AddonRecord - Addon to update
            force: bool - Reinstall even when up to date
        """
        super().__init__()
        self.addon_manager = addon_manager
        self.record = record
        self.force = force

    def run(self):
        try:
            with _EventBridge(self.addon_manager, self.event):
                result = self.addon_manager.update_addon(self.record, force=self.force)
            self.finished.emit(result.success, result.message, result.updated)
        except Exception as e:
            logger.exception("Update worker failed")
            self.finished.emit(False, str(e), False)


class BatchUpdateWorker(QThread):
    """Worker thread for updating every managed addon"""
    finished = pyqtSignal(int, int, int)  # updated, failed, up to date
    log = pyqtSignal(str)
    event = pyqtSignal(object)

    def __init__(self, addon_manager, force=False):
        super().__init__()
        self.addon_manager = addon_manager
        self.force = force
        self._is_cancelled = False

    def cancel(self):
        """Request cancellation; the addon being updated finishes first."""
        self._is_cancelled = True

    def run(self):
        updated = 0
        failed = 0
        skipped = 0

        with _EventBridge(self.addon_manager, self.event):
            results = self.addon_manager.update_all(
                force=self.force, should_cancel=lambda: self._is_cancelled
            )

        for record, result in results:
            if not result.success:
                failed += 1
                self.log.emit(f"{record.name} failed: {result.message}")
            elif result.updated:
                updated += 1
                self.log.emit(f"{record.name} updated successfully")
            else:
                skipped += 1
                self.log.emit(f"{record.name} already up-to-date")

        if self._is_cancelled:
            self.log.emit("Batch update cancelled by user")
        self.finished.emit(updated, failed, skipped)


class ScanWorker(QThread):
    finished = pyqtSignal(int, str)  # processed count, error
    event = pyqtSignal(object)

    def __init__(self, addon_manager):
        super().__init__()
        self.addon_manager = addon_manager

    def run(self):
        try:
            with _EventBridge(self.addon_manager, self.event):
                count = self.addon_manager.scan()
            self.finished.emit(count, '')
        except Exception as e:
            logger.exception("Scan worker failed")
            self.finished.emit(0, str(e))


class SearchWorker(QThread):
    """Worker thread for the AddOns directory search.

    Signals:
        finished(path, error) - Found path or None, and an error message
        progress(dirs_scanned, current_path) - Search progress
    """
    finished = pyqtSignal(object, str)
    progress = pyqtSignal(int, str)

    def __init__(self, locator, root):
        """Initialize search worker.

        Args:
            locator: DirectoryLocator - Path probing and search
            root: str - Directory to search from
        """
        super().__init__()
        self.locator = locator
        self.root = root
        self._cancel_event = threading.Event()

    def cancel(self):
        self._cancel_event.set()

    def run(self):
        found = self.locator.quick_check(self.root)
        if found:
            self.finished.emit(found, '')
            return

        try:
            found = asyncio.run(self.locator.search(self.root, self._cancel_event, self.progress.emit))
        except FilesystemError as e:
            self.finished.emit(None, str(e))
            return
        self.finished.emit(found, '')
