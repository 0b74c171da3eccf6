"""
RPLidar Interface Library
=========================

Serial driver for Slamtec RPLidar sensors.

This library provides:
- Device commands: info, health, configuration, reset, motor control (Lidar)
- Legacy and express legacy scan decoding into full rotations (Scan)
- A worker thread session with reset-and-retry recovery (LidarSession)
- A hardware-agnostic driver facade (LidarBase, drivers.RPLidarDriver)

Usage
-----
>>> from rplidar_interface import Lidar, LidarSession, ScanMode
>>>
>>> with LidarSession(Lidar(port_name="/dev/ttyUSB0")) as session:
...     session.start(ScanMode.LEGACY)
...     scan = session.get_scan(timeout=2.0)
...     angles, distances = scan.to_arrays()
"""

from .base import LidarBase, LidarScan, LidarConfig
from .data_types import (
    Configuration,
    HealthInfo,
    HealthStatus,
    LidarInfo,
    Measurement,
    Scan,
    ScanMode,
    ScanModeConfiguration,
)
from .errors import ErrorKind, LidarError, InvalidStateError, NotSupportedError
from .lidar import Lidar
from .logs import Severity, LogSink, LoggingSink, CallbackSink, MemorySink
from .session import LidarSession, ScanOptions, SessionState
from .transport import Transport, SerialTransport

__all__ = [
    # Facade
    "LidarBase",
    "LidarScan",
    "LidarConfig",
    # Device
    "Lidar",
    "LidarSession",
    "ScanOptions",
    "SessionState",
    "Transport",
    "SerialTransport",
    # Data
    "Configuration",
    "HealthInfo",
    "HealthStatus",
    "LidarInfo",
    "Measurement",
    "Scan",
    "ScanMode",
    "ScanModeConfiguration",
    # Errors
    "ErrorKind",
    "LidarError",
    "InvalidStateError",
    "NotSupportedError",
    # Logging
    "Severity",
    "LogSink",
    "LoggingSink",
    "CallbackSink",
    "MemorySink",
]

__version__ = "0.1.0"
