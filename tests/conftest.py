"""
Shared fixtures: an in-memory transport and a scripted RPLidar device.
"""

import struct
import threading
from typing import Callable, List, Optional, Sequence

import pytest

from rplidar_interface.channel import build_descriptor, parse_command
from rplidar_interface.data_types import ScanModeConfiguration
from rplidar_interface.decoder import build_legacy_packet
from rplidar_interface.logs import MemorySink
from rplidar_interface.protocol import Command, ConfigType
from rplidar_interface.transport import Transport


# =============================================================================
# FAKE TRANSPORT
# =============================================================================

class FakeTransport(Transport):
    """
    Transport double backed by a byte buffer.

    Bytes written are recorded and optionally handed to a responder whose
    answer is appended to the receive buffer, like a device would.
    """

    def __init__(self, responder: Optional[Callable[[bytes], Optional[bytes]]] = None,
                 read_buffer_size: int = 4096):
        self.responder = responder
        self.read_buffer_size = read_buffer_size
        self.written: List[bytes] = []
        self.control_line = False
        self.control_history: List[bool] = []
        self.open_result = True
        self.fail_reads = False
        self.fail_writes = False
        self.max_chunk: Optional[int] = None
        self.read_calls = 0
        self._opened = False
        self._rx = bytearray()
        self._cond = threading.Condition()

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._rx.extend(data)
            self._cond.notify_all()

    def open(self, name: str, baudrate: int = 115200) -> bool:
        self._opened = self.open_result
        return self._opened

    def close(self) -> None:
        self._opened = False

    def is_open(self) -> bool:
        return self._opened

    def read(self, max_count: int, timeout_ms: int) -> Optional[bytes]:
        if self.fail_reads or not self._opened:
            return None

        with self._cond:
            self.read_calls += 1
            if not self._rx and timeout_ms > 0:
                self._cond.wait(timeout_ms / 1000.0)
            count = max_count if self.max_chunk is None else min(max_count, self.max_chunk)
            chunk = bytes(self._rx[:count])
            del self._rx[:count]
            return chunk

    def write(self, data: bytes) -> bool:
        if self.fail_writes or not self._opened:
            return False

        self.written.append(bytes(data))
        if self.responder is not None:
            response = self.responder(bytes(data))
            if response:
                self.feed(response)
        return True

    def bytes_available(self) -> Optional[int]:
        if not self._opened:
            return None
        with self._cond:
            return len(self._rx)

    def discard_input_buffer(self) -> bool:
        with self._cond:
            self._rx.clear()
        return self._opened

    def set_control_line(self, on: bool) -> bool:
        if not self._opened:
            return False
        self.control_line = on
        self.control_history.append(on)
        return True


# =============================================================================
# FAKE DEVICE
# =============================================================================

def legacy_rotation(count: int = 10, distance_mm: float = 1000.0, quality: int = 10) -> bytes:
    """One rotation of legacy packets, new scan flag on the first one."""
    return b''.join(
        build_legacy_packet(i * 360.0 / count, distance_mm, quality, is_new_scan=(i == 0))
        for i in range(count)
    )


class FakeDevice:
    """
    Answers request frames the way an RPLidar does.

    Scan data is streamed after the first scan request only, later requests
    get a descriptor and silence.
    """

    def __init__(self, health_status: int = 0, error_code: int = 0,
                 modes: Optional[Sequence[ScanModeConfiguration]] = None,
                 typical_mode: int = 0,
                 scan_data: bytes = b'', express_data: bytes = b'',
                 info: bytes = bytes([0x18, 0x1D, 0x01, 0x07]) + bytes(range(16))):
        self.health_status = health_status
        self.error_code = error_code
        self.modes = list(modes) if modes is not None else [
            ScanModeConfiguration("Legacy", 508.0, 12.0, 0x81),
            ScanModeConfiguration("Express", 254.0, 12.0, 0x82),
        ]
        self.typical_mode = typical_mode
        self.scan_data = scan_data
        self.express_data = express_data
        self.info = info
        self.commands: List[int] = []
        self._streamed = False

    def __call__(self, frame: bytes) -> Optional[bytes]:
        command, payload = parse_command(frame)
        self.commands.append(command)

        if command == Command.GET_HEALTH:
            return (build_descriptor(3, True, 0x06) + bytes([self.health_status])
                    + struct.pack('<H', self.error_code))

        if command == Command.GET_INFO:
            return build_descriptor(20, True, 0x04) + self.info

        if command == Command.GET_CONFIG:
            config_type, = struct.unpack_from('<I', payload)
            mode = struct.unpack_from('<H', payload, 4)[0] if len(payload) >= 6 else None
            answer = self.config_answer(config_type, mode)
            return (build_descriptor(len(answer) + 4, True, 0x20)
                    + struct.pack('<I', config_type) + answer)

        if command == Command.SCAN:
            data, self._streamed = (b'' if self._streamed else self.scan_data), True
            return build_descriptor(5, False, 0x81) + data

        if command == Command.EXPRESS_SCAN:
            data, self._streamed = (b'' if self._streamed else self.express_data), True
            return build_descriptor(84, False, 0x82) + data

        return None

    def config_answer(self, config_type: int, mode: Optional[int]) -> bytes:
        if config_type == ConfigType.SCAN_MODE_TYPICAL:
            return struct.pack('<H', self.typical_mode)
        if config_type == ConfigType.SCAN_MODE_COUNT:
            return struct.pack('<H', len(self.modes))

        scan_mode = self.modes[mode]
        if config_type == ConfigType.SCAN_MODE_NAME:
            return scan_mode.name.encode('ascii') + b'\0'
        if config_type == ConfigType.SCAN_MODE_US_PER_SAMPLE:
            return struct.pack('<I', int(scan_mode.us_per_sample * 256))
        if config_type == ConfigType.SCAN_MODE_MAX_DISTANCE:
            return struct.pack('<I', int(scan_mode.max_distance * 256))
        if config_type == ConfigType.SCAN_MODE_ANSWER_TYPE:
            return bytes([scan_mode.answer_type])
        raise AssertionError(f"Unexpected config type 0x{config_type:02X}")


class StepClock:
    """Clock advancing by a fixed step on every call."""

    def __init__(self, step: float = 0.1, start: float = 0.0):
        self.step = step
        self.now = start - step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def transport():
    """Open transport without a device behind it."""
    t = FakeTransport()
    t.open("/dev/fake")
    return t


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def device_transport(device):
    """Open transport wired to the fake device."""
    t = FakeTransport(responder=device)
    t.open("/dev/fake")
    return t


@pytest.fixture
def step_clock():
    """Clock reading 0.0, 0.1, 0.2, ... seconds."""
    return StepClock(0.1)
