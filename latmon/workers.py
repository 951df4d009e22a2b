"""Worker classes for background persistence writes."""

import logging

from PySide6.QtCore import QObject, QRunnable, Signal

from latmon.store import Store

logger = logging.getLogger(__name__)


class WorkerSignals(QObject):
    """Signals for communicating between worker threads and main thread."""

    error = Signal(str)  # Emits error message
    finished = Signal()  # Emits when worker completes


class PersistWorker(QRunnable):
    """Worker that writes a batch of key/value pairs to a store."""

    def __init__(self, store: Store, items: dict):
        super().__init__()
        self.store = store
        self.items = dict(items)
        self.signals = WorkerSignals()

    def run(self):
        """Execute the write in a background thread."""
        try:
            logger.debug("Persist worker starting: keys=%s", sorted(self.items))

            for key, value in self.items.items():
                self.store.set(key, value)

            logger.debug("Persist worker completed: keys=%s", sorted(self.items))

        except Exception as e:
            # In-memory state stays authoritative; report and carry on
            logger.warning("Persist worker failed: %s", e, exc_info=True)
            self.signals.error.emit(str(e))

        finally:
            self.signals.finished.emit()
