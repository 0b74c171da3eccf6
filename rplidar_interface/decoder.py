"""
Scan packet decoders

Legacy format (5 bytes per measurement):

    byte 0: bit 0 new scan, bit 1 inverted new scan, bits 2-7 quality
    byte 1: bit 0 check bit (always 1), bits 1-7 angle low bits
    byte 2: angle high bits              angle = ((b2 << 7) | (b1 >> 1)) / 64 deg
    byte 3-4: distance (Q2, mm)          distance = ((b4 << 8) | b3) / 4 / 1000 m

Express legacy format (84 bytes per packet):

    byte 0: high nibble 0xA, low nibble checksum low bits
    byte 1: high nibble 0x5, low nibble checksum high bits
    byte 2-3: start angle (Q6) in 15 bits, bit 15 new scan flag
    byte 4-83: 16 cabins of 5 bytes, two measurements each

Express measurement angles are relative to the packet start angle and can
only be resolved once the start angle of the following packet is known, so
the express decoder always holds one packet back.
"""

import math
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .channel import xor_checksum
from .data_types import Measurement
from .protocol import (
    LEGACY_PACKET_LENGTH,
    EXPRESS_PACKET_LENGTH,
    EXPRESS_CABIN_LENGTH,
    MEASUREMENTS_PER_EXPRESS_PACKET,
)


def normalize_angle(angle: float, flip: bool = False, offset: float = 0.0) -> float:
    """
    Apply mount flip and user offset, then wrap into [0, 360).

    Args:
        angle: Raw angle in degrees
        flip: Lidar mounted upside down
        offset: User angle offset in degrees
    """
    angle = (-angle if flip else angle) + offset
    angle = math.fmod(angle, 360.0)
    if angle < 0.0:
        angle += 360.0
    # -1e-14 + 360 rounds to 360
    if angle >= 360.0:
        angle = 0.0
    return angle


class DecodeStatus(Enum):
    RESOLVED = "resolved"
    NEED_MORE_DATA = "need_more_data"
    ERROR = "error"


@dataclass
class DecodeResult:
    """Outcome of feeding bytes to a decoder."""
    status: DecodeStatus
    measurements: List[Measurement] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def resolved(cls, measurements: List[Measurement]) -> 'DecodeResult':
        return cls(DecodeStatus.RESOLVED, measurements)

    @classmethod
    def need_more_data(cls) -> 'DecodeResult':
        return cls(DecodeStatus.NEED_MORE_DATA)

    @classmethod
    def failed(cls, error: str) -> 'DecodeResult':
        return cls(DecodeStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status != DecodeStatus.ERROR


# =============================================================================
# Legacy
# =============================================================================

def check_legacy_packet(raw: bytes) -> Optional[str]:
    """Return why a 5 byte legacy packet is corrupt, or None if it is fine."""
    is_new_scan = raw[0] & 0x1
    is_new_scan_inverted = (raw[0] >> 1) & 0x1
    if is_new_scan == is_new_scan_inverted:
        return "Received invalid scan data (start flags not inverted)"
    if raw[1] & 0x1 != 1:
        return "Received invalid scan data (check bit not set)"
    return None


def parse_legacy_packet(raw: bytes) -> Tuple[bool, float, float, int]:
    """
    Decode a 5 byte legacy packet without validation.

    Returns:
        (is_new_scan, angle in degrees, distance in meters, quality)
    """
    is_new_scan = bool(raw[0] & 0x1)
    quality = raw[0] >> 2
    angle = ((raw[2] << 7) | (raw[1] >> 1)) / 64.0
    distance = (((raw[4] << 8) | raw[3]) / 4.0) / 1000.0
    return is_new_scan, angle, distance, quality


class LegacyDecoder:
    """Stateless decoder for the legacy 5 byte format."""

    packet_length = LEGACY_PACKET_LENGTH

    def __init__(self, flip: bool = False, angle_offset: float = 0.0):
        self.flip = flip
        self.angle_offset = angle_offset

    def decode(self, data: bytes) -> DecodeResult:
        """
        Decode whole 5 byte groups.

        Args:
            data: Multiple of 5 bytes
        """
        if len(data) % LEGACY_PACKET_LENGTH:
            return DecodeResult.failed(f"Legacy scan data length {len(data)} is not a multiple of 5")
        if not data:
            return DecodeResult.need_more_data()

        measurements = []
        for i in range(0, len(data), LEGACY_PACKET_LENGTH):
            raw = data[i:i + LEGACY_PACKET_LENGTH]
            error = check_legacy_packet(raw)
            if error:
                return DecodeResult.failed(error)

            is_new_scan, angle, distance, quality = parse_legacy_packet(raw)
            measurements.append(Measurement(
                is_new_scan,
                normalize_angle(angle, self.flip, self.angle_offset),
                distance,
                quality,
            ))

        return DecodeResult.resolved(measurements)

    def reset(self) -> None:
        pass


# =============================================================================
# Express legacy
# =============================================================================

@dataclass
class ExpressSample:
    """Measurement with angle still relative to the packet start angle."""
    distance: float
    compensation: float


@dataclass
class ExpressPacket:
    """Parsed express legacy packet."""
    start_angle: float
    start_angle_q6: int
    is_new_scan: bool
    samples: List[ExpressSample]

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'ExpressPacket':
        """
        Parse 84 byte packet.

        Raises:
            ValueError: If length, sync or checksum is invalid
        """
        error = check_express_packet(raw)
        if error:
            raise ValueError(error)

        start_angle_q6 = raw[2] | ((raw[3] & 0x7F) << 8)
        samples = []
        for i in range(4, EXPRESS_PACKET_LENGTH, EXPRESS_CABIN_LENGTH):
            c = raw[i:i + EXPRESS_CABIN_LENGTH]
            distance1 = ((c[0] >> 2) | (c[1] << 6)) / 1000.0
            distance2 = ((c[2] >> 2) | (c[3] << 6)) / 1000.0
            compensation1 = ((c[4] & 0xF) | ((c[0] & 0x3) << 4)) / 8.0
            compensation2 = ((c[4] >> 4) | ((c[2] & 0x3) << 4)) / 8.0
            samples.append(ExpressSample(distance1, compensation1))
            samples.append(ExpressSample(distance2, compensation2))

        return cls(
            start_angle=start_angle_q6 / 64.0,
            start_angle_q6=start_angle_q6,
            is_new_scan=bool(raw[3] >> 7),
            samples=samples,
        )


def check_express_packet(raw: bytes) -> Optional[str]:
    """Return why an express packet is corrupt, or None if it is fine."""
    if len(raw) != EXPRESS_PACKET_LENGTH:
        return f"Received invalid scan packet (length {len(raw)})"
    if (raw[0] >> 4) != 0xA or (raw[1] >> 4) != 0x5:
        return "Received invalid scan packet (invalid sync)"
    checksum = xor_checksum(raw[2:])
    if checksum != ((raw[0] & 0x0F) | ((raw[1] & 0x0F) << 4)):
        return "Received invalid scan packet (invalid checksum)"
    return None


def interpolate_angles(start_prev: float, start_new: float,
                       count: int = MEASUREMENTS_PER_EXPRESS_PACKET) -> np.ndarray:
    """
    Spread the angle covered by one packet evenly over its samples.

    Returns:
        count base angles starting at start_prev (degrees, not wrapped)
    """
    diff = (start_new - start_prev + 360.0) % 360.0
    fraction = diff / count
    return start_prev + fraction * np.arange(count, dtype=np.float64)


def interpolate_angles_q6(start_prev_q6: int, start_new_q6: int,
                          count: int = MEASUREMENTS_PER_EXPRESS_PACKET) -> np.ndarray:
    """
    Integer variant of interpolate_angles().

    Accumulates in Q16 fixed point from Q6 start angles, the way the vendor
    SDK does it.
    """
    full_turn_q6 = 360 << 6
    diff_q6 = (start_new_q6 - start_prev_q6 + full_turn_q6) % full_turn_q6
    step_q16 = (diff_q6 << 10) // count
    angle_q16 = start_prev_q6 << 10
    angles = np.empty(count, dtype=np.float64)
    for i in range(count):
        angles[i] = angle_q16 / 65536.0
        angle_q16 += step_q16
    return angles


class ExpressLegacyDecoder:
    """
    Decoder for the express legacy 84 byte format.

    Holds exactly one packet of lag: feeding packet N resolves the absolute
    angles of packet N-1. The first packet fed after creation or reset()
    yields no measurements.
    """

    packet_length = EXPRESS_PACKET_LENGTH

    def __init__(self, flip: bool = False, angle_offset: float = 0.0):
        self.flip = flip
        self.angle_offset = angle_offset
        self._previous: Optional[ExpressPacket] = None

    @property
    def has_pending_packet(self) -> bool:
        return self._previous is not None

    def feed(self, raw: bytes) -> DecodeResult:
        """
        Feed one 84 byte packet.

        Returns:
            RESOLVED with the previous packet's 32 measurements,
            NEED_MORE_DATA for the first packet,
            ERROR on sync or checksum failure (held packet is kept)
        """
        try:
            current = ExpressPacket.from_bytes(raw)
        except ValueError as e:
            return DecodeResult.failed(str(e))

        previous, self._previous = self._previous, current
        if previous is None:
            return DecodeResult.need_more_data()

        angles = interpolate_angles(previous.start_angle, current.start_angle,
                                    len(previous.samples))
        wrapped = current.start_angle < previous.start_angle

        measurements = []
        for i, sample in enumerate(previous.samples):
            angle = normalize_angle(float(angles[i]) - sample.compensation,
                                    self.flip, self.angle_offset)
            measurements.append(Measurement(i == 0 and wrapped, angle, sample.distance))

        return DecodeResult.resolved(measurements)

    def decode(self, data: bytes) -> DecodeResult:
        """Feed a run of whole packets and collect everything resolved."""
        if len(data) % EXPRESS_PACKET_LENGTH:
            return DecodeResult.failed(f"Express scan data length {len(data)} is not a multiple of 84")

        measurements = []
        for i in range(0, len(data), EXPRESS_PACKET_LENGTH):
            result = self.feed(data[i:i + EXPRESS_PACKET_LENGTH])
            if not result.ok:
                return result
            measurements.extend(result.measurements)

        if not measurements:
            return DecodeResult.need_more_data()
        return DecodeResult.resolved(measurements)

    def reset(self) -> None:
        self._previous = None


def build_express_packet(start_angle_q6: int, samples: List[Tuple[int, int]],
                         is_new_scan: bool = False) -> bytes:
    """
    Encode an express legacy packet (device side, used by simulators and tests).

    Args:
        start_angle_q6: Start angle in Q6 (0..0x7FFF)
        samples: 32 (distance in mm, compensation in 1/8 degree) pairs,
                 distance < 2**14, compensation < 2**6
        is_new_scan: New scan flag
    """
    if len(samples) != MEASUREMENTS_PER_EXPRESS_PACKET:
        raise ValueError(f"Expected {MEASUREMENTS_PER_EXPRESS_PACKET} samples")

    body = bytearray(struct.pack('<H', (start_angle_q6 & 0x7FFF) | (0x8000 if is_new_scan else 0)))
    for (d1, a1), (d2, a2) in zip(samples[0::2], samples[1::2]):
        body.append(((d1 << 2) & 0xFC) | ((a1 >> 4) & 0x3))
        body.append((d1 >> 6) & 0xFF)
        body.append(((d2 << 2) & 0xFC) | ((a2 >> 4) & 0x3))
        body.append((d2 >> 6) & 0xFF)
        body.append((a1 & 0xF) | ((a2 & 0xF) << 4))

    checksum = xor_checksum(body)
    return bytes([0xA0 | (checksum & 0xF), 0x50 | (checksum >> 4)]) + bytes(body)


def build_legacy_packet(angle: float, distance_mm: float, quality: int = 0,
                        is_new_scan: bool = False) -> bytes:
    """Encode a legacy packet (device side, used by simulators and tests)."""
    angle_q6 = int(round(angle * 64.0)) & 0x7FFF
    distance_q2 = int(round(distance_mm * 4.0)) & 0xFFFF
    flags = 0x1 if is_new_scan else 0x2
    return bytes([
        ((quality & 0x3F) << 2) | flags,
        ((angle_q6 << 1) & 0xFE) | 0x1,
        (angle_q6 >> 7) & 0xFF,
        distance_q2 & 0xFF,
        distance_q2 >> 8,
    ])
