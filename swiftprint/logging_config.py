# Logging configuration - rotating log file, console output, print failure alerts

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FILE = LOG_DIR / "swiftprint.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Third-party loggers that report every GATT or HTTP operation at DEBUG
NOISY_LOGGERS = ("bleak", "urllib3")

# Called with (message, level) for every ERROR record, e.g. a failed print
_error_alert_callback: Optional[Callable[[str, str], None]] = None


def set_error_alert_callback(callback: Optional[Callable[[str, str], None]]):
    global _error_alert_callback
    _error_alert_callback = callback


class ErrorAlertHandler(logging.Handler):
    """Forwards ERROR and CRITICAL records to the alert callback"""

    def emit(self, record: logging.LogRecord):
        if record.levelno >= logging.ERROR and _error_alert_callback:
            try:
                _error_alert_callback(self.format(record), record.levelname)
            except Exception:
                self.handleError(record)


class LastErrorTracker:
    """
    Alert callback that remembers the most recent error, so the agent's
    status endpoint can show why the last print or connect failed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.message: Optional[str] = None
        self.level: Optional[str] = None
        self.count = 0

    def __call__(self, message: str, level: str):
        with self._lock:
            self.message = message
            self.level = level
            self.count += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {'message': self.message, 'level': self.level, 'count': self.count}


def setup_logging(
    log_path: Optional[Path] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    console: bool = True,
    level: int = logging.INFO,
    alert_callback: Optional[Callable[[str, str], None]] = None,
) -> None:
    """
    Configure the root logger: rotating file, optional stderr console and
    the error alert hook. Safe to call more than once.
    """
    log_path = Path(log_path or LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    alert_handler = ErrorAlertHandler()
    alert_handler.setLevel(logging.ERROR)
    alert_handler.setFormatter(formatter)
    root.addHandler(alert_handler)
    if alert_callback is not None:
        set_error_alert_callback(alert_callback)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
