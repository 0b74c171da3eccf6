"""
Command channel

Encodes request frames, locates and validates response descriptors and
accumulates exact-length payloads from a byte stream that has no message
boundaries of its own.

Frame format:
    A5 cmd                          - no payload
    A5 cmd len payload... checksum  - checksum = XOR of every preceding byte
"""

import struct
from functools import reduce
from typing import Optional, Tuple

from .data_types import Descriptor
from .errors import ErrorKind
from .logs import LogSink, LoggingSink, Severity
from .protocol import (
    SYNC_BYTE,
    SYNC_BYTE2,
    DESCRIPTOR_LENGTH,
    DESCRIPTOR_LENGTH_MASK,
    DESCRIPTOR_MODE_SHIFT,
    DEFAULT_TIMEOUT_MS,
)
from .transport import Transport
from .utils import Deadline


def xor_checksum(data: bytes) -> int:
    """XOR of all bytes."""
    return reduce(lambda a, b: a ^ b, data, 0)


def build_command(command: int, payload: Optional[bytes] = None) -> bytes:
    """
    Build request frame

    Args:
        command: Command byte
        payload: Optional payload (max 255 bytes)

    Returns:
        bytes: Frame ready to write
    """
    if payload is None:
        return bytes([SYNC_BYTE, command])

    if len(payload) > 0xFF:
        raise ValueError(f"Payload too long ({len(payload)} bytes)")

    frame = bytearray([SYNC_BYTE, command, len(payload)])
    frame.extend(payload)
    frame.append(xor_checksum(frame))
    return bytes(frame)


def parse_command(frame: bytes) -> Tuple[int, Optional[bytes]]:
    """
    Parse request frame built by build_command()

    Returns:
        (command, payload) where payload is None for commands without payload

    Raises:
        ValueError: On bad sync byte, length or checksum
    """
    if len(frame) < 2 or frame[0] != SYNC_BYTE:
        raise ValueError("Invalid command sync")

    if len(frame) == 2:
        return frame[1], None

    length = frame[2]
    if len(frame) != 4 + length:
        raise ValueError(f"Expected frame of {4 + length} bytes, got {len(frame)}")

    if xor_checksum(frame[:-1]) != frame[-1]:
        raise ValueError("Invalid command checksum")

    return frame[1], bytes(frame[3:3 + length])


def parse_descriptor(data: bytes) -> Descriptor:
    """
    Decode 7 aligned descriptor bytes

    Bytes 2-5 hold a little-endian word: low 30 bits length, top 2 bits send mode
    (0 = single response, 1 = multiple responses).
    """
    word, = struct.unpack_from('<I', data, 2)
    return Descriptor(
        length=word & DESCRIPTOR_LENGTH_MASK,
        is_single=(word >> DESCRIPTOR_MODE_SHIFT) == 0,
        data_type=data[6],
    )


def build_descriptor(length: int, is_single: bool, data_type: int) -> bytes:
    """Encode a response descriptor (device side, used by simulators and tests)."""
    word = (length & DESCRIPTOR_LENGTH_MASK) | ((0 if is_single else 1) << DESCRIPTOR_MODE_SHIFT)
    return bytes([SYNC_BYTE, SYNC_BYTE2]) + struct.pack('<I', word) + bytes([data_type])


class CommandChannel:
    """
    Request/response framing on top of a Transport.

    All operations return a failed result (False / None) on error and record
    the failure class in ``last_error``.
    """

    def __init__(self, transport: Transport, sink: Optional[LogSink] = None,
                 timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.transport = transport
        self.sink = sink or LoggingSink()
        self.timeout_ms = timeout_ms
        self.last_error: Optional[ErrorKind] = None

    def fail(self, kind: ErrorKind, message: str) -> None:
        self.last_error = kind
        self.sink.emit(Severity.ERROR, message)

    def send_command(self, command: int, payload: Optional[bytes] = None) -> bool:
        """
        Send command frame

        Returns:
            True if written, False if the transport failed
        """
        if not self.transport.write(build_command(command, payload)):
            self.fail(ErrorKind.TRANSPORT, f"Error at sending command 0x{command:02X}")
            return False
        return True

    def read_descriptor(self, timeout_ms: Optional[int] = None) -> Optional[Descriptor]:
        """
        Read response descriptor

        Discards bytes until the window starts with the sync pattern.

        Returns:
            Descriptor, or None on timeout or transport failure
        """
        deadline = Deadline(self.timeout_ms if timeout_ms is None else timeout_ms)
        window = bytearray()

        while True:
            chunk = self.transport.read(DESCRIPTOR_LENGTH - len(window), deadline.remaining_ms())
            if chunk is None:
                self.fail(ErrorKind.TRANSPORT, "Error at receiving descriptor")
                return None

            window.extend(chunk)
            while len(window) >= DESCRIPTOR_LENGTH:
                if window[0] == SYNC_BYTE and window[1] == SYNC_BYTE2:
                    return parse_descriptor(bytes(window[:DESCRIPTOR_LENGTH]))
                del window[0]

            if deadline.expired():
                self.fail(ErrorKind.FRAMING_TIMEOUT, "Timeout on receiving descriptor")
                return None

    def check_descriptor(self, expected: Descriptor, actual: Descriptor) -> bool:
        """
        Compare received descriptor with expected one

        Expected length -1 matches any length.
        """
        if expected.length >= 0 and expected.length != actual.length:
            self.fail(ErrorKind.PROTOCOL,
                      f"Expected descriptor length {expected.length}, got {actual.length}")
            return False

        if expected.is_single != actual.is_single:
            self.fail(ErrorKind.PROTOCOL,
                      f"Expected descriptor single to be {expected.is_single}, got {actual.is_single}")
            return False

        if expected.data_type != actual.data_type:
            self.fail(ErrorKind.PROTOCOL,
                      f"Expected descriptor data type 0x{expected.data_type:02X}, "
                      f"got 0x{actual.data_type:02X}")
            return False

        return True

    def wait_for_descriptor(self, expected: Descriptor, timeout_ms: Optional[int] = None) -> Optional[Descriptor]:
        """Read a descriptor and check it. Returns the received descriptor on success."""
        actual = self.read_descriptor(timeout_ms)
        if actual is None or not self.check_descriptor(expected, actual):
            return None
        return actual

    def read_exact(self, length: int, timeout_ms: Optional[int] = None) -> Optional[bytes]:
        """
        Read exactly length bytes

        One deadline covers the whole call and is re-checked after every
        partial read.

        Returns:
            The bytes, or None on timeout or transport failure
        """
        deadline = Deadline(self.timeout_ms if timeout_ms is None else timeout_ms)
        data = bytearray()

        while len(data) < length:
            chunk = self.transport.read(length - len(data), deadline.remaining_ms())
            if chunk is None:
                self.fail(ErrorKind.TRANSPORT, "Error at reading response")
                return None

            data.extend(chunk)
            if len(data) < length and deadline.expired():
                self.fail(ErrorKind.FRAMING_TIMEOUT,
                          f"Timeout on receiving data ({len(data)} of {length} bytes)")
                return None

        return bytes(data)
