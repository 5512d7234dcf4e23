"""Log lines emitted by scripts through the ``log_*`` hooks, captured per test."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List

script_logger = logging.getLogger("rhai_test.script")


class LogLevel(Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def python_level(self) -> int:
        return _PYTHON_LEVELS[self]

    def __str__(self) -> str:
        return self.value


_PYTHON_LEVELS = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class CapturedLog:
    message: str
    level: LogLevel

    def __str__(self) -> str:
        return f"[{self.level}] {self.message}"


class LoggingContainer:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._logs: List[CapturedLog] = []

    def add_log(self, message: str, level: LogLevel) -> None:
        with self._lock:
            self._logs.append(CapturedLog(message, level))
        script_logger.log(level.python_level, "%s", message)

    def has_log(self, level: LogLevel) -> bool:
        with self._lock:
            return any(log.level is level for log in self._logs)

    def has_matching_log(self, level: LogLevel, pattern: str) -> bool:
        """True if a log at ``level`` equals ``pattern`` or contains a match for it."""
        try:
            regex = re.compile(pattern)
        except re.error:
            regex = None

        with self._lock:
            for log in self._logs:
                if log.level is not level:
                    continue
                if log.message == pattern or (regex is not None and regex.search(log.message)):
                    return True
        return False

    def get_logs(self) -> List[CapturedLog]:
        with self._lock:
            return list(self._logs)

    def reset(self) -> None:
        with self._lock:
            self._logs = []
