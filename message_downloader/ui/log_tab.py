from __future__ import annotations

import logging

from PySide6.QtCore import QObject, Signal
from PySide6.QtWidgets import QHBoxLayout, QPlainTextEdit, QPushButton, QVBoxLayout, QWidget

from message_downloader.core.logging_setup import ROOT_LOGGER_NAME

MAX_LOG_BLOCKS = 5000


class _LogSignals(QObject):
    record = Signal(str)


class QtLogHandler(logging.Handler):
    """Forward records to the GUI thread through a queued Qt signal."""

    def __init__(self) -> None:
        super().__init__()
        self.signals = _LogSignals()
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - GUI side effect
        try:
            self.signals.record.emit(self.format(record))
        except RuntimeError:
            # Widget already destroyed during shutdown.
            pass


class LogTab(QWidget):
    def __init__(self, parent: QWidget | None = None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)

        self.view = QPlainTextEdit()
        self.view.setReadOnly(True)
        self.view.setMaximumBlockCount(MAX_LOG_BLOCKS)

        clear_button = QPushButton("Clear")
        clear_button.clicked.connect(self.view.clear)
        buttons = QHBoxLayout()
        buttons.addStretch(1)
        buttons.addWidget(clear_button)

        layout.addWidget(self.view, 1)
        layout.addLayout(buttons)

        self._handler = QtLogHandler()
        self._handler.signals.record.connect(self.view.appendPlainText)
        logging.getLogger(ROOT_LOGGER_NAME).addHandler(self._handler)

    def detach(self) -> None:
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(self._handler)
