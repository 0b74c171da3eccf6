"""
Wire Protocol for RPLidar Sensors
=================================

This module defines the binary request/response protocol used to talk
to the lidar over serial.

Protocol Overview
-----------------
Request (Host → Device):
    A5 cmd                               - Command without payload
    A5 cmd len payload... checksum       - Command with payload,
                                           checksum = XOR of all previous bytes

Response (Device → Host):
    A5 5A l0 l1 l2 l3 type               - 7 byte descriptor
                                           (30 bit length, 2 bit send mode)
    payload...                           - Descriptor declared length bytes

Scan data:
    Legacy          - 5 byte measurement groups
    Express legacy  - 84 byte packets of 16 cabins (32 measurements)
"""

from enum import IntEnum

from .data_types import Descriptor


class Command(IntEnum):
    """Request command bytes."""
    GET_INFO = 0x50
    GET_HEALTH = 0x52
    GET_CONFIG = 0x84
    STOP = 0x25
    RESET = 0x40
    SCAN = 0x20
    EXPRESS_SCAN = 0x82


class ConfigType(IntEnum):
    """GetConfig type words (sent as uint32 little-endian)."""
    SCAN_MODE_COUNT = 0x70
    SCAN_MODE_US_PER_SAMPLE = 0x71
    SCAN_MODE_MAX_DISTANCE = 0x74
    SCAN_MODE_ANSWER_TYPE = 0x75
    SCAN_MODE_TYPICAL = 0x7C
    SCAN_MODE_NAME = 0x7F


# Sync bytes
SYNC_BYTE = 0xA5
SYNC_BYTE2 = 0x5A

# Sizes
DESCRIPTOR_LENGTH = 7
LEGACY_PACKET_LENGTH = 5
EXPRESS_PACKET_LENGTH = 84
EXPRESS_CABIN_LENGTH = 5
MEASUREMENTS_PER_EXPRESS_PACKET = 32
CONFIG_TYPE_LENGTH = 4

# Descriptor length field
DESCRIPTOR_LENGTH_MASK = 0x3FFFFFFF
DESCRIPTOR_MODE_SHIFT = 30

# Expected response descriptors
INFO_DESCRIPTOR = Descriptor(20, True, 0x04)
HEALTH_DESCRIPTOR = Descriptor(3, True, 0x06)
LEGACY_SCAN_DESCRIPTOR = Descriptor(LEGACY_PACKET_LENGTH, False, 0x81)
EXPRESS_LEGACY_SCAN_DESCRIPTOR = Descriptor(EXPRESS_PACKET_LENGTH, False, 0x82)
CONFIG_DATA_TYPE = 0x20

# Express scan request payload (working mode 0 = legacy express)
EXPRESS_LEGACY_PAYLOAD = bytes(5)

# Default link parameters
DEFAULT_BAUDRATE = 115200
DEFAULT_TIMEOUT_MS = 500
DEFAULT_READ_BUFFER_SIZE = 4096
