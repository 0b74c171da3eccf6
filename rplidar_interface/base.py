"""
Abstract LiDAR Interface
========================

Robot-facing interface for LiDAR sensors. Drivers hide the sensor protocol
and hand out scans in the ROS LaserScan convention (radians, meters), so a
ROS2 node or any other consumer can use them without knowing the device.

The interface is designed to be:
1. ROS2-compatible but not ROS2-dependent
2. Independent of the sensor protocol

Example
-------
>>> from rplidar_interface import LidarConfig
>>> from rplidar_interface.drivers import RPLidarDriver
>>>
>>> with RPLidarDriver(LidarConfig(port="/dev/ttyUSB0")) as lidar:
...     scan = lidar.get_scan()
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List

from .data_types import ScanMode
from .protocol import DEFAULT_BAUDRATE, DEFAULT_READ_BUFFER_SIZE, DEFAULT_TIMEOUT_MS


@dataclass
class LidarScan:
    """
    A single LiDAR scan.

    Attributes
    ----------
    timestamp : float
        Time when scan was completed (seconds since epoch)
    angles : List[float]
        Angle for each measurement (radians)
    ranges : List[float]
        Distance for each measurement (meters)
    intensities : List[float], optional
        Intensity/reflectivity for each measurement
    angle_min : float
        Minimum angle in scan (radians)
    angle_max : float
        Maximum angle in scan (radians)
    angle_increment : float
        Mean angle between measurements (radians)
    scan_time : float
        Time the rotation took (seconds), 0 if unknown
    range_min : float
        Minimum valid range (meters)
    range_max : float
        Maximum valid range (meters)
    frame_id : str
        TF frame ID for this scan
    """
    timestamp: float
    angles: List[float]
    ranges: List[float]
    intensities: List[float] = field(default_factory=list)
    angle_min: float = 0.0
    angle_max: float = 0.0
    angle_increment: float = 0.0
    scan_time: float = 0.0
    range_min: float = 0.15
    range_max: float = 12.0
    frame_id: str = "laser"

    def __post_init__(self):
        """Compute angle bounds if not set."""
        if self.angles and self.angle_min == 0.0 and self.angle_max == 0.0:
            self.angle_min = min(self.angles)
            self.angle_max = max(self.angles)
            if len(self.angles) > 1:
                self.angle_increment = (self.angle_max - self.angle_min) / (len(self.angles) - 1)


@dataclass
class LidarConfig:
    """
    Configuration for an RPLidar sensor.

    Attributes
    ----------
    port : str
        Serial port or device path
    baudrate : int
        Serial baudrate
    timeout_ms : int
        Receive timeout of each logical read
    read_buffer_size : int
        Serial receive buffer size in bytes
    scan_mode : ScanMode
        Scan mode to start
    flip : bool
        Sensor mounted upside down
    angle_offset : float
        Degrees added to every measurement
    frame_id : str
        TF frame ID for published scans
    range_min : float
        Minimum valid range in meters
    range_max : float
        Maximum valid range in meters
    """
    port: str = "/dev/ttyUSB0"
    baudrate: int = DEFAULT_BAUDRATE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE
    scan_mode: ScanMode = ScanMode.LEGACY
    flip: bool = False
    angle_offset: float = 0.0
    frame_id: str = "laser"
    range_min: float = 0.15
    range_max: float = 12.0


class LidarBase(ABC):
    """
    Abstract base class for LiDAR sensors.

    The minimum implementation requires:
    - initialize(): Connect to hardware
    - start(): Begin scanning
    - stop(): Stop scanning
    - get_scan(): Return latest scan data
    - shutdown(): Clean up resources
    """

    def __init__(self, config: LidarConfig):
        """
        Initialize with configuration.

        Parameters
        ----------
        config : LidarConfig
            Sensor configuration
        """
        self.config = config
        self._initialized = False
        self._running = False

    @property
    def is_initialized(self) -> bool:
        """Check if sensor is initialized."""
        return self._initialized

    @property
    def is_running(self) -> bool:
        """Check if sensor is actively scanning."""
        return self._running

    @abstractmethod
    def initialize(self) -> bool:
        """
        Initialize connection to LiDAR hardware.

        Returns
        -------
        bool
            True if initialization successful
        """
        pass

    @abstractmethod
    def start(self) -> bool:
        """
        Start LiDAR scanning.

        Returns
        -------
        bool
            True if started successfully
        """
        pass

    @abstractmethod
    def stop(self) -> bool:
        """
        Stop LiDAR scanning.

        Returns
        -------
        bool
            True if stopped successfully
        """
        pass

    @abstractmethod
    def get_scan(self, timeout: Optional[float] = None) -> Optional[LidarScan]:
        """
        Get the next scan.

        Parameters
        ----------
        timeout : float, optional
            Seconds to wait, None waits forever

        Returns
        -------
        LidarScan or None
            Next scan, or None if no scan available
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """
        Clean up resources and disconnect.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        self.initialize()
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.stop()
        self.shutdown()
