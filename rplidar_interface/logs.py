"""
Log Sinks
=========

The driver reports log events through a sink with a single
``emit(severity, message)`` method, called synchronously from whichever
thread produced the event.

Example:
    >>> from rplidar_interface import Lidar, CallbackSink
    >>>
    >>> lidar = Lidar(sink=CallbackSink(lambda sev, msg: print(f"[{sev.name}] {msg}")))
"""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Callable, List, Optional, Tuple


class Severity(IntEnum):
    """Log message severity."""
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


class LogSink(ABC):
    """Receiver of driver log events."""

    @abstractmethod
    def emit(self, severity: Severity, message: str) -> None:
        pass


class LoggingSink(LogSink):
    """Forwards events to the standard logging module."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("rplidar_interface")

    def emit(self, severity: Severity, message: str) -> None:
        self.logger.log(int(severity), message)


class CallbackSink(LogSink):
    """Forwards events to a user callable ``callback(severity, message)``."""

    def __init__(self, callback: Callable[[Severity, str], None]):
        self.callback = callback

    def emit(self, severity: Severity, message: str) -> None:
        self.callback(severity, message)


class MemorySink(LogSink):
    """Keeps events in a list. Handy for diagnostics and tests."""

    def __init__(self):
        self.events: List[Tuple[Severity, str]] = []

    def emit(self, severity: Severity, message: str) -> None:
        self.events.append((severity, message))

    def messages(self, severity: Optional[Severity] = None) -> List[str]:
        return [m for s, m in self.events if severity is None or s == severity]
