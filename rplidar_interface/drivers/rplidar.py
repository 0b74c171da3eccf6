"""
RPLidar Driver Implementation
=============================

Implements the LidarBase interface for Slamtec RPLidar sensors on top of
LidarSession, so scanning runs on a worker thread and recovers from device
faults on its own.

Supported Models
----------------
- RPLidar A1/A2 in legacy and express legacy scan modes

Usage
-----
>>> from rplidar_interface import LidarConfig, ScanMode
>>> from rplidar_interface.drivers.rplidar import RPLidarDriver
>>>
>>> config = LidarConfig(port="/dev/ttyUSB0", scan_mode=ScanMode.EXPRESS_LEGACY)
>>> with RPLidarDriver(config) as lidar:
...     scan = lidar.get_scan(timeout=2.0)
...     print(f"Got {len(scan.ranges)} points")
"""

import time
from typing import Optional

import numpy as np

from ..base import LidarBase, LidarScan, LidarConfig
from ..data_types import Scan
from ..lidar import Lidar
from ..logs import LogSink
from ..session import LidarSession, ScanOptions
from ..transport import SerialTransport, Transport


def scan_to_lidar_scan(scan: Scan, config: LidarConfig,
                       timestamp: Optional[float] = None) -> LidarScan:
    """
    Convert a Scan to the LaserScan convention.

    Failed samples get an infinite range. Intensities are the legacy quality
    values, 0 where the scan mode doesn't report them.
    """
    angles = np.radians(np.array([m.angle for m in scan.measurements], dtype=np.float64))
    ranges = np.array([m.distance if m.is_valid else np.inf for m in scan.measurements],
                      dtype=np.float64)
    intensities = np.array([m.quality or 0 for m in scan.measurements], dtype=np.float64)

    return LidarScan(
        timestamp=time.time() if timestamp is None else timestamp,
        angles=angles.tolist(),
        ranges=ranges.tolist(),
        intensities=intensities.tolist(),
        scan_time=scan.duration / 1000.0,
        range_min=config.range_min,
        range_max=config.range_max,
        frame_id=config.frame_id,
    )


class RPLidarDriver(LidarBase):
    """
    RPLidar driver.

    Configuration is done through the LidarConfig dataclass.
    """

    def __init__(self, config: LidarConfig, transport: Optional[Transport] = None,
                 sink: Optional[LogSink] = None):
        """
        Initialize RPLidar driver.

        Parameters
        ----------
        config : LidarConfig
            Sensor configuration. Key fields:
            - port: Serial port (e.g., "/dev/ttyUSB0")
            - baudrate: 115200 for A1, 256000 for some A2/A3
            - scan_mode: ScanMode.LEGACY or ScanMode.EXPRESS_LEGACY
        transport : Transport, optional
            Byte transport (default: SerialTransport)
        sink : LogSink, optional
            Log event sink (default: standard logging)
        """
        super().__init__(config)
        self._lidar = Lidar(
            transport=transport or SerialTransport(config.read_buffer_size),
            port_name=config.port,
            baudrate=config.baudrate,
            timeout_ms=config.timeout_ms,
            sink=sink,
            flip=config.flip,
            angle_offset=config.angle_offset,
        )
        self._session = LidarSession(self._lidar)

    @property
    def session(self) -> LidarSession:
        return self._session

    def initialize(self) -> bool:
        """
        Open the serial port.

        Returns
        -------
        bool
            True if the port is open
        """
        self._initialized = self._lidar.open()
        return self._initialized

    def start(self) -> bool:
        """
        Start the scanning session.

        Returns
        -------
        bool
            False if the configured scan mode can't be used
        """
        if not self._initialized:
            return False

        options = ScanOptions(
            flip=self.config.flip,
            angle_offset=self.config.angle_offset,
            timeout_ms=self.config.timeout_ms,
        )
        self._running = self._session.start(self.config.scan_mode, options)
        return self._running

    def stop(self) -> bool:
        """
        Stop scanning and close the port.

        Returns
        -------
        bool
            True if the worker has finished
        """
        stopped = self._session.stop()
        self._running = False
        self._initialized = False
        return stopped

    def get_scan(self, timeout: Optional[float] = None) -> Optional[LidarScan]:
        """
        Get the next complete rotation.

        Returns
        -------
        LidarScan or None
            Next scan, or None if none arrived in time
        """
        if not self._running:
            return None

        scan = self._session.get_scan(timeout)
        if scan is None or len(scan) == 0:
            return None
        return scan_to_lidar_scan(scan, self.config)

    def shutdown(self) -> None:
        """Clean up and disconnect."""
        if self._session.is_running:
            self._session.stop()
        self._lidar.close()
        self._initialized = False
        self._running = False
