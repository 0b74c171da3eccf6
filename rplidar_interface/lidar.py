"""
RPLidar Device
==============

Synchronous device operations over one transport: identify, health,
configuration, start/stop scanning, reset and motor control, plus the three
ways of retrieving scan data.

Example:
    >>> from rplidar_interface import Lidar, ScanMode
    >>>
    >>> lidar = Lidar(port_name='/dev/ttyUSB0')
    >>> if lidar.open() and lidar.start_scan(ScanMode.LEGACY):
    ...     lidar.control_motor(True)
    ...     ok, scan = lidar.get_scan()
    ...     lidar.stop_scan()
    ...     lidar.control_motor(False)
    >>> lidar.close()

Only one of get_scan(), get_measurements_until_boundary() and
get_measurements() may be used while a scan is active.
"""

import time
from typing import Callable, List, Optional, Tuple

from .assembler import Discipline, ScanAssembler
from .channel import CommandChannel
from .config_reader import ConfigurationReader
from .data_types import (
    Configuration,
    HealthInfo,
    LidarInfo,
    Measurement,
    Scan,
    ScanMode,
)
from .decoder import ExpressLegacyDecoder, LegacyDecoder
from .errors import ErrorKind, InvalidStateError, NotSupportedError
from .logs import LogSink, LoggingSink, Severity
from .protocol import (
    Command,
    DEFAULT_BAUDRATE,
    DEFAULT_TIMEOUT_MS,
    EXPRESS_LEGACY_PAYLOAD,
    EXPRESS_LEGACY_SCAN_DESCRIPTOR,
    EXPRESS_PACKET_LENGTH,
    HEALTH_DESCRIPTOR,
    INFO_DESCRIPTOR,
    LEGACY_PACKET_LENGTH,
    LEGACY_SCAN_DESCRIPTOR,
)
from .transport import SerialTransport, Transport


class Lidar:
    """
    RPLidar device.

    Attributes:
        BUFFER_WARNING_PERCENT: Receive buffer usage that triggers a warning
        RESET_SETTLE_S: Documented wait after reset
        STOP_SETTLE_S: Wait after stop before flushing input
    """

    BUFFER_WARNING_PERCENT = 50
    RESET_SETTLE_S = 0.002
    STOP_SETTLE_S = 0.01

    def __init__(
        self,
        transport: Optional[Transport] = None,
        port_name: str = "",
        baudrate: int = DEFAULT_BAUDRATE,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        sink: Optional[LogSink] = None,
        flip: bool = False,
        angle_offset: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize lidar.

        Args:
            transport: Byte transport (default: SerialTransport)
            port_name: Serial port path (e.g., '/dev/ttyUSB0', 'COM3')
            baudrate: Serial baudrate (default: 115200)
            timeout_ms: Receive timeout for each logical read
            sink: Log event sink (default: standard logging)
            flip: Lidar is mounted upside down
            angle_offset: Angle added to every measurement in degrees
            clock: Monotonic clock in seconds used for scan timing
        """
        self.transport = transport or SerialTransport()
        self.port_name = port_name
        self.baudrate = baudrate
        self.sink = sink or LoggingSink()
        self.flip = flip
        self.angle_offset = angle_offset

        self._channel = CommandChannel(self.transport, self.sink, timeout_ms)
        self._assembler = ScanAssembler(clock)
        self._legacy_decoder = LegacyDecoder(flip, angle_offset)
        self._express_decoder = ExpressLegacyDecoder(flip, angle_offset)
        self._active_mode = ScanMode.NONE

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def receive_timeout_ms(self) -> int:
        return self._channel.timeout_ms

    @receive_timeout_ms.setter
    def receive_timeout_ms(self, value: int) -> None:
        self._channel.timeout_ms = value

    @property
    def read_buffer_size(self) -> int:
        return self.transport.read_buffer_size

    @property
    def active_mode(self) -> ScanMode:
        return self._active_mode

    @property
    def last_error(self) -> Optional[ErrorKind]:
        """Classification of the most recent failure."""
        return self._channel.last_error

    @property
    def is_open(self) -> bool:
        return self.transport.is_open()

    def _log(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.sink.emit(severity, message)

    # =========================================================================
    # Connection Management
    # =========================================================================

    def open(self) -> bool:
        """
        Open the transport.

        Returns:
            True if open, False if it failed
        """
        if self.transport.is_open():
            return True
        if not self.transport.open(self.port_name, self.baudrate):
            self._channel.fail(ErrorKind.TRANSPORT, f"Error at opening port {self.port_name}")
            return False
        return True

    def close(self) -> None:
        self.transport.close()

    def control_motor(self, on: bool) -> bool:
        """Turn the motor on or off through the control line."""
        if not self.transport.set_control_line(on):
            self._channel.fail(ErrorKind.TRANSPORT, "Error at controlling motor")
            return False
        return True

    def flush_input(self) -> bool:
        if not self.transport.discard_input_buffer():
            self._channel.fail(ErrorKind.TRANSPORT, "Error on discarding input buffer")
            return False
        return True

    def read_available(self) -> bytes:
        """Read whatever is already buffered without waiting."""
        available = self.transport.bytes_available()
        if not available:
            return b''
        return self.transport.read(available, 0) or b''

    # =========================================================================
    # Commands
    # =========================================================================

    def reset(self, settle_s: Optional[float] = None) -> bool:
        """
        Reset the lidar core.

        The device prints a boot banner after resetting, whatever arrived
        during the settle time is logged and the rest of the input flushed.

        Args:
            settle_s: Wait after the command (documented 2 ms, hardware
                      may need up to 700 ms)
        """
        if not self._channel.send_command(Command.RESET):
            return False
        time.sleep(self.RESET_SETTLE_S if settle_s is None else settle_s)

        banner = self.read_available()
        if banner:
            self._log(f"Boot banner: {banner.decode('ascii', errors='replace').strip()}")
        self.flush_input()
        self._clear_scan_state()
        return True

    def get_info(self) -> Optional[LidarInfo]:
        """
        Get model, firmware, hardware and serial number.

        Returns:
            LidarInfo or None on failure
        """
        if not self._channel.send_command(Command.GET_INFO):
            return None
        if self._channel.wait_for_descriptor(INFO_DESCRIPTOR) is None:
            return None
        data = self._channel.read_exact(INFO_DESCRIPTOR.length)
        if data is None:
            return None
        return LidarInfo.from_bytes(data)

    def get_health(self) -> Optional[HealthInfo]:
        """
        Get health status and error code.

        Returns:
            HealthInfo or None on failure
        """
        if not self._channel.send_command(Command.GET_HEALTH):
            return None
        if self._channel.wait_for_descriptor(HEALTH_DESCRIPTOR) is None:
            return None
        data = self._channel.read_exact(HEALTH_DESCRIPTOR.length)
        if data is None:
            return None
        return HealthInfo.from_bytes(data)

    def get_configuration(self) -> Optional[Configuration]:
        """
        Get scan mode configuration.

        Returns:
            Configuration or None if any part of it failed
        """
        return ConfigurationReader(self._channel).read()

    def start_scan(self, mode: ScanMode) -> bool:
        """
        Start scanning in the given mode.

        Express extended mode is not supported and always fails with
        ErrorKind.NOT_SUPPORTED.

        Returns:
            True if the device accepted the scan request
        """
        if mode == ScanMode.LEGACY:
            if not self._channel.send_command(Command.SCAN):
                return False
            if self._channel.wait_for_descriptor(LEGACY_SCAN_DESCRIPTOR) is None:
                return False

        elif mode == ScanMode.EXPRESS_LEGACY:
            if not self._channel.send_command(Command.EXPRESS_SCAN, EXPRESS_LEGACY_PAYLOAD):
                return False
            if self._channel.wait_for_descriptor(EXPRESS_LEGACY_SCAN_DESCRIPTOR) is None:
                return False

        elif mode == ScanMode.EXPRESS_EXTENDED:
            self._channel.fail(ErrorKind.NOT_SUPPORTED, "Express extended scan not supported")
            return False

        elif mode == ScanMode.NONE:
            self._channel.fail(ErrorKind.INVALID_STATE, "Can't start scan without a scan mode")
            return False

        else:
            raise ValueError(f"Invalid scan mode {mode!r}")

        self._clear_scan_state()
        self._legacy_decoder = LegacyDecoder(self.flip, self.angle_offset)
        self._express_decoder = ExpressLegacyDecoder(self.flip, self.angle_offset)
        self._active_mode = mode
        return True

    def stop_scan(self) -> bool:
        """
        Stop scanning, flush input and drop all buffered scan data.

        Buffered state is dropped even when the command can't be sent.

        Returns:
            True if the stop command was sent
        """
        sent = self._channel.send_command(Command.STOP)
        if sent:
            # Documented 1 ms, leave some time for the serial port
            time.sleep(self.STOP_SETTLE_S)

        self.flush_input()
        self._clear_scan_state()
        return sent

    def _clear_scan_state(self) -> None:
        self._active_mode = ScanMode.NONE
        self._assembler.clear()
        self._legacy_decoder.reset()
        self._express_decoder.reset()

    # =========================================================================
    # Scan data
    # =========================================================================

    def get_scan(self) -> Tuple[bool, Optional[Scan]]:
        """
        Poll for a full 360 degree scan.

        Returns:
            (ok, scan) where scan is None until a rotation has completed

        Raises:
            InvalidStateError: No scan active, or another retrieval style in use
        """
        self._assembler.claim(Discipline.WHOLE_SCAN)
        # A previous read may have carried more than one rotation
        scan = self._assembler.next_scan()
        if scan is not None:
            return True, scan

        measurements = self._read_measurements()
        if measurements is None:
            return False, None

        self._assembler.add(measurements)
        return True, self._assembler.next_scan()

    def get_measurements_until_boundary(self) -> Tuple[bool, Optional[List[Measurement]]]:
        """
        Poll for the measurements of one rotation without timing information.

        Returns:
            (ok, measurements) where measurements is None until a rotation has completed
        """
        self._assembler.claim(Discipline.UNTIL_BOUNDARY)
        chunk = self._assembler.next_chunk()
        if chunk is not None:
            return True, chunk

        measurements = self._read_measurements()
        if measurements is None:
            return False, None

        self._assembler.add(measurements)
        return True, self._assembler.next_chunk()

    def get_measurements(self) -> Optional[List[Measurement]]:
        """
        Read the next batch of measurements as they arrive.

        Returns:
            New measurements (possibly empty), or None on failure
        """
        self._assembler.claim(Discipline.RAW)
        measurements = self._read_measurements()
        if measurements is None:
            return None

        self._assembler.add(measurements)
        return self._assembler.take_all()

    def _read_measurements(self) -> Optional[List[Measurement]]:
        available = self.transport.bytes_available()
        if available is None:
            self._channel.fail(ErrorKind.TRANSPORT, "Error at checking bytes to read")
            return None

        usage = (100 * available) // max(1, self.read_buffer_size)
        if usage > self.BUFFER_WARNING_PERCENT:
            self._log(f"Receive buffer is {usage}% full, should read measurements faster",
                      Severity.WARNING)

        mode = self._active_mode
        if mode == ScanMode.NONE:
            raise InvalidStateError("No scan mode active")
        elif mode == ScanMode.LEGACY:
            return self._read_legacy(available)
        elif mode == ScanMode.EXPRESS_LEGACY:
            return self._read_express_legacy()
        elif mode == ScanMode.EXPRESS_EXTENDED:
            raise NotSupportedError("Express extended scan not supported")
        else:
            raise ValueError(f"Invalid scan mode {mode!r}")

    def _read_legacy(self, available: int) -> Optional[List[Measurement]]:
        # All complete packets, and at least one so an idle link times out
        packets = max(1, min(available, self.read_buffer_size) // LEGACY_PACKET_LENGTH)
        data = self._channel.read_exact(packets * LEGACY_PACKET_LENGTH)
        if data is None:
            return None

        result = self._legacy_decoder.decode(data)
        if not result.ok:
            self._channel.fail(ErrorKind.PROTOCOL, result.error)
            return None
        return result.measurements

    def _read_express_legacy(self) -> Optional[List[Measurement]]:
        measurements: List[Measurement] = []
        while True:
            data = self._channel.read_exact(EXPRESS_PACKET_LENGTH)
            if data is None:
                return None

            result = self._express_decoder.feed(data)
            if not result.ok:
                self._channel.fail(ErrorKind.PROTOCOL, result.error)
                return None
            measurements.extend(result.measurements)

            available = self.transport.bytes_available()
            if not available or available < EXPRESS_PACKET_LENGTH:
                return measurements
