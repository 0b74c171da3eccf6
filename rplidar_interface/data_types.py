"""
Data Types for RPLidar Sensors
==============================

This module contains all data structures used by the lidar driver.
These are pure Python dataclasses with no ROS2 dependencies.

Units:
    - angles: degrees, normalized into [0, 360)
    - distances: meters (0 means the sample failed)
    - durations: milliseconds
"""

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple

import numpy as np


# Distances at or below this are failed samples
MIN_VALID_DISTANCE = 1e-6


class ScanMode(Enum):
    """Scan modes. Every dispatch on this enum must handle all members."""
    NONE = "none"
    LEGACY = "legacy"
    EXPRESS_LEGACY = "express_legacy"
    EXPRESS_EXTENDED = "express_extended"


class HealthStatus(IntEnum):
    """Device self-reported health."""
    GOOD = 0
    WARNING = 1
    ERROR = 2
    UNKNOWN = 0xFF

    @classmethod
    def from_byte(cls, value: int) -> 'HealthStatus':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Descriptor:
    """
    Response descriptor.

    A length of -1 means "don't check" when used as an expected descriptor.
    """
    length: int
    is_single: bool
    data_type: int


@dataclass(frozen=True)
class Measurement:
    """
    Single distance/angle sample.

    Attributes:
        is_new_scan: First sample of a new rotation
        angle: Angle in degrees [0, 360)
        distance: Distance in meters, 0 for failed samples
        quality: Reflected signal quality (legacy mode only)
    """
    is_new_scan: bool
    angle: float
    distance: float
    quality: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        """False for failed samples which consumers should skip."""
        return self.distance > MIN_VALID_DISTANCE


@dataclass(frozen=True)
class Scan:
    """
    Measurements of one full rotation.

    Attributes:
        measurements: Samples in the order they were received
        duration: Milliseconds since the previous scan boundary (0 for the first scan)
        rate: Scans per second derived from duration (0 when unknown)
    """
    measurements: Tuple[Measurement, ...] = field(default_factory=tuple)
    duration: int = 0
    rate: float = 0.0

    def __len__(self) -> int:
        return len(self.measurements)

    def __iter__(self):
        return iter(self.measurements)

    def valid_measurements(self) -> Tuple[Measurement, ...]:
        return tuple(m for m in self.measurements if m.is_valid)

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert valid samples to arrays.

        Returns:
            (angles in degrees, distances in meters) as float32 arrays
        """
        valid = self.valid_measurements()
        angles = np.array([m.angle for m in valid], dtype=np.float32)
        distances = np.array([m.distance for m in valid], dtype=np.float32)
        return angles, distances


@dataclass
class ScanModeConfiguration:
    """Scan mode as reported by the device configuration."""
    name: str = ""
    us_per_sample: float = 0.0
    max_distance: float = 0.0
    answer_type: int = 0

    def __str__(self) -> str:
        return (f"Name: {self.name}, Ts: {self.us_per_sample:.2f} us, "
                f"Max distance: {self.max_distance:.2f} m, "
                f"Answer type: 0x{self.answer_type:02X}")


@dataclass
class Configuration:
    """
    Device configuration.

    Mode ids are contiguous 0..count-1.
    """
    typical_mode: int = 0
    modes: Dict[int, ScanModeConfiguration] = field(default_factory=dict)

    def find_mode(self, name: str) -> Optional[int]:
        """Return the id of the mode with given name, or None."""
        for mode_id, mode in self.modes.items():
            if mode.name == name:
                return mode_id
        return None


@dataclass
class HealthInfo:
    """Health status and error code."""
    status: HealthStatus = HealthStatus.UNKNOWN
    error_code: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> 'HealthInfo':
        """
        Parse a 3 byte health response.

        Format: status (1 byte), error code (uint16 little-endian)
        """
        error_code, = struct.unpack_from('<H', data, 1)
        return cls(status=HealthStatus.from_byte(data[0]), error_code=error_code)

    def __str__(self) -> str:
        return f"Health: {self.status.name}, Error code: {self.error_code}"


@dataclass
class LidarInfo:
    """Read-only device identity."""
    model: int = 0
    firmware: str = ""
    hardware: str = ""
    serial_number: str = ""

    @classmethod
    def from_bytes(cls, data: bytes) -> 'LidarInfo':
        """
        Parse a 20 byte info response.

        Format: model, firmware minor, firmware major, hardware, serial (16 bytes)
        """
        return cls(
            model=data[0],
            firmware=f"{data[2]}.{data[1]}",
            hardware=str(data[3]),
            serial_number=bytes(data[4:20]).hex().upper(),
        )

    def __str__(self) -> str:
        return (f"Model number: {self.model}, Firmware version: {self.firmware}, "
                f"Hardware version: {self.hardware}, Serial number: {self.serial_number}")
