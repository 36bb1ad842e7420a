from __future__ import annotations
import logging

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtWidgets import QPlainTextEdit, QWidget


class _LogSignalEmitter(QObject):
    log_message = pyqtSignal(str)


class QtLogHandler(logging.Handler):
    """Forward log records to the GUI through a Qt signal.

    Records may come from the batch worker thread; the signal is delivered
    to the GUI thread by Qt's queued connections.
    """

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)
        self.emitter = _LogSignalEmitter()
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record):
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.emitter.log_message.emit(msg)

    @property
    def log_message(self):
        return self.emitter.log_message


class LogView(QPlainTextEdit):
    """Read-only log panel attached to the ``confquant`` logger."""

    def __init__(self, parent: QWidget | None = None, logger_name: str = "confquant"):
        super().__init__(parent)
        self.setReadOnly(True)
        self.setMaximumBlockCount(5000)
        self.handler = QtLogHandler()
        self.handler.log_message.connect(self.appendPlainText)
        self._logger = logging.getLogger(logger_name)
        self._logger.addHandler(self.handler)

    def detach(self) -> None:
        self._logger.removeHandler(self.handler)
