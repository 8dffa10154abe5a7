# LCDM/lcdm_worker.py
from __future__ import annotations
from typing import Optional
from PySide6.QtCore import QCoreApplication, QObject, QThread, Signal, Slot

from logger import get_logger
from .lcdm_core import LcdmDispenser
from .lcdm_errors import LcdmError

logger = get_logger(__name__)


class LcdmWorker(QObject):
    """
    Qt-friendly owner of one LcdmDispenser.

    Lives on its own QThread so the blocking serial exchanges never stall the UI.
    Invoke the slots through queued connections; results come back as signals.
    """

    # ---- Signals you can wire to your UI ----
    started = Signal()
    stopped = Signal()
    status = Signal(object)        # StatusResult
    dispensed = Signal(object)     # DispenseResult | DualDispenseResult
    version = Signal(object)       # RomVersion
    resetDone = Signal()
    error = Signal(str)

    def __init__(self, dispenser: LcdmDispenser, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._dispenser = dispenser
        self._thread: Optional[QThread] = None
        self._running = False

    # ----- Public API -----
    @Slot()
    def start(self):
        if self._running:
            return
        self._running = True

        if self._thread is not None:
            # left behind by a failed start; its event loop is already quitting
            self._thread.wait()
        self._thread = QThread()
        self.moveToThread(self._thread)
        self._thread.started.connect(self._on_thread_started)
        self._thread.start()

    @Slot()
    def stop(self):
        self._running = False
        if self._dispenser.is_open:
            try:
                self._dispenser.close()
            except LcdmError as e:
                self.error.emit(f"LcdmWorker close failed: {e}")
        thread = self._thread
        if thread:
            if QThread.currentThread() == thread:
                # On the worker thread itself: a thread cannot wait on itself, so
                # push the worker back to the main thread and let the loop end.
                app = QCoreApplication.instance()
                if app is not None:
                    self.moveToThread(app.thread())
                thread.quit()
            else:
                thread.quit()
                thread.wait()
                self._thread = None
        self.stopped.emit()

    @Slot()
    def request_status(self):
        self._run(lambda: self.status.emit(self._dispenser.status()), "status")

    @Slot()
    def reset(self):
        def _do():
            self._dispenser.reset()
            self.resetDone.emit()
        self._run(_do, "reset")

    @Slot(int)
    def dispense_upper(self, count: int):
        self._run(lambda: self.dispensed.emit(self._dispenser.upper_dispense(count)), "upper dispense")

    @Slot(int)
    def dispense_lower(self, count: int):
        self._run(lambda: self.dispensed.emit(self._dispenser.lower_dispense(count)), "lower dispense")

    @Slot(int, int)
    def dispense(self, upper_count: int, lower_count: int):
        self._run(lambda: self.dispensed.emit(self._dispenser.dispense(upper_count, lower_count)), "dispense")

    @Slot()
    def request_version(self):
        self._run(lambda: self.version.emit(self._dispenser.rom_version()), "rom version")

    # ----- Private: lives on the worker thread -----
    @Slot()
    def _on_thread_started(self):
        try:
            if not self._dispenser.is_open:
                self._dispenser.connect()
            self.started.emit()
        except LcdmError as e:
            logger.error("LcdmWorker start failed: %s", e)
            self.error.emit(f"LcdmWorker start failed: {e}")
            self.stop()

    def _run(self, action, what: str):
        # No command-level retry: one attempt, failure goes to the error signal.
        try:
            action()
        except (LcdmError, ValueError) as e:
            self.error.emit(f"LcdmWorker {what} failed: {e}")
