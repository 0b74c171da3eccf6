"""
Serial transport for the lidar

Handles opening, closing, reading and writing raw bytes. The protocol layer
only talks to the Transport interface so it can run against any byte stream.
"""

from abc import ABC, abstractmethod
from typing import Optional

import serial

from .protocol import DEFAULT_BAUDRATE, DEFAULT_READ_BUFFER_SIZE


class Transport(ABC):
    """
    Raw byte transport.

    Failures are reported through return values, never by raising:
    - read() returns None on IO error and b'' on timeout
    - write() returns False on IO error
    - bytes_available() returns None on IO error
    """

    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE

    @abstractmethod
    def open(self, name: str, baudrate: int = DEFAULT_BAUDRATE) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def read(self, max_count: int, timeout_ms: int) -> Optional[bytes]:
        """
        Read up to max_count bytes, waiting at most timeout_ms.

        Returns:
            Bytes read (b'' on timeout), None on IO error
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> bool:
        pass

    @abstractmethod
    def bytes_available(self) -> Optional[int]:
        pass

    @abstractmethod
    def discard_input_buffer(self) -> bool:
        pass

    @abstractmethod
    def set_control_line(self, on: bool) -> bool:
        """Drive the motor control line (DTR on serial adapters)."""
        pass


class SerialTransport(Transport):
    """
    Transport on top of pyserial.

    8N1 framing, motor power on DTR.
    """

    def __init__(self, read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE):
        self.port: Optional[serial.Serial] = None
        self.port_name: Optional[str] = None
        self.baudrate: int = DEFAULT_BAUDRATE
        self.read_buffer_size = read_buffer_size
        self.last_exception: Optional[Exception] = None

    def is_open(self) -> bool:
        return self.port is not None and self.port.is_open

    def open(self, name: str, baudrate: int = DEFAULT_BAUDRATE) -> bool:
        """
        Open serial port

        Args:
            name: Port device name (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Baud rate (default 115200)

        Returns:
            True if opened successfully, False otherwise
        """
        if self.is_open():
            return True

        try:
            self.port = serial.Serial(
                port=name,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0.1,
            )
            # Only some platforms allow resizing the driver buffer
            if hasattr(self.port, 'set_buffer_size'):
                self.port.set_buffer_size(rx_size=self.read_buffer_size)

            self.port_name = name
            self.baudrate = baudrate
            return True

        except (serial.SerialException, OSError, ValueError) as e:
            self.last_exception = e
            self.port = None
            self.port_name = None
            return False

    def close(self) -> None:
        if self.port is not None:
            try:
                self.port.close()
            except (serial.SerialException, OSError) as e:
                self.last_exception = e
            self.port = None
            self.port_name = None

    def read(self, max_count: int, timeout_ms: int) -> Optional[bytes]:
        if not self.is_open():
            return None
        if max_count <= 0:
            return b''

        try:
            timeout = max(0, timeout_ms) / 1000.0
            # pyserial reconfigures the port on every timeout assignment
            if self.port.timeout != timeout:
                self.port.timeout = timeout
            return self.port.read(max_count)
        except (serial.SerialException, OSError) as e:
            self.last_exception = e
            return None

    def write(self, data: bytes) -> bool:
        if not self.is_open():
            return False

        try:
            self.port.write(data)
            return True
        except (serial.SerialException, OSError) as e:
            self.last_exception = e
            return False

    def bytes_available(self) -> Optional[int]:
        if not self.is_open():
            return None

        try:
            return self.port.in_waiting
        except (serial.SerialException, OSError) as e:
            self.last_exception = e
            return None

    def discard_input_buffer(self) -> bool:
        if not self.is_open():
            return False

        try:
            self.port.reset_input_buffer()
            return True
        except (serial.SerialException, OSError) as e:
            self.last_exception = e
            return False

    def set_control_line(self, on: bool) -> bool:
        if not self.is_open():
            return False

        try:
            self.port.dtr = on
            return True
        except (serial.SerialException, OSError) as e:
            self.last_exception = e
            return False
