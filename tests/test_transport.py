"""
Tests for the pyserial transport.

Run with:
    pytest tests/test_transport.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
import serial

from rplidar_interface.transport import SerialTransport


@pytest.fixture
def mock_port():
    port = MagicMock()
    port.is_open = True
    port.in_waiting = 12
    port.read.return_value = b'\xa5\x5a'
    return port


@pytest.fixture
def transport(mock_port):
    with patch('serial.Serial') as mock_serial_class:
        mock_serial_class.return_value = mock_port
        t = SerialTransport(read_buffer_size=8192)
        assert t.open('/dev/ttyUSB0', 115200)
        yield t, mock_serial_class, mock_port


class TestSerialTransport:

    def test_open_settings(self, transport):
        t, mock_serial_class, mock_port = transport
        kwargs = mock_serial_class.call_args.kwargs
        assert kwargs['port'] == '/dev/ttyUSB0'
        assert kwargs['baudrate'] == 115200
        assert kwargs['bytesize'] == serial.EIGHTBITS
        assert kwargs['parity'] == serial.PARITY_NONE
        assert kwargs['stopbits'] == serial.STOPBITS_ONE
        mock_port.set_buffer_size.assert_called_once_with(rx_size=8192)
        assert t.is_open()
        assert t.port_name == '/dev/ttyUSB0'

    def test_open_failure(self):
        with patch('serial.Serial', side_effect=serial.SerialException("busy")):
            t = SerialTransport()
            assert not t.open('/dev/ttyUSB0')
        assert not t.is_open()
        assert isinstance(t.last_exception, serial.SerialException)

    def test_read_sets_timeout(self, transport):
        t, _, mock_port = transport
        assert t.read(2, 250) == b'\xa5\x5a'
        assert mock_port.timeout == pytest.approx(0.25)
        mock_port.read.assert_called_once_with(2)

    def test_read_keeps_unchanged_timeout(self, transport):
        t, _, _ = transport
        port = MagicMock()
        port.is_open = True
        port.read.return_value = b'\x00'
        assignments = []
        type(port).timeout = property(lambda self: assignments[-1] if assignments else None,
                                      lambda self, value: assignments.append(value))
        t.port = port

        t.read(1, 250)
        t.read(1, 250)
        t.read(1, 100)
        assert assignments == [pytest.approx(0.25), pytest.approx(0.1)]

    def test_read_error(self, transport):
        t, _, mock_port = transport
        mock_port.read.side_effect = serial.SerialException("gone")
        assert t.read(2, 100) is None

    def test_write(self, transport):
        t, _, mock_port = transport
        assert t.write(b'\xa5\x25')
        mock_port.write.assert_called_once_with(b'\xa5\x25')

    def test_write_error(self, transport):
        t, _, mock_port = transport
        mock_port.write.side_effect = OSError("gone")
        assert not t.write(b'\xa5\x25')

    def test_bytes_available(self, transport):
        t, _, _ = transport
        assert t.bytes_available() == 12

    def test_discard_input(self, transport):
        t, _, mock_port = transport
        assert t.discard_input_buffer()
        mock_port.reset_input_buffer.assert_called_once()

    def test_motor_on_dtr(self, transport):
        t, _, mock_port = transport
        assert t.set_control_line(True)
        assert mock_port.dtr is True

    def test_close(self, transport):
        t, _, mock_port = transport
        t.close()
        mock_port.close.assert_called_once()
        assert not t.is_open()
        assert t.read(1, 0) is None
        assert not t.write(b'\x00')
        assert t.bytes_available() is None
        assert not t.set_control_line(False)
