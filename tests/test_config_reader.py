"""
Tests for the GetConfig sub-query sequence.

Run with:
    pytest tests/test_config_reader.py -v
"""

import struct

import pytest

from rplidar_interface.channel import CommandChannel, build_command, build_descriptor
from rplidar_interface.config_reader import ConfigurationReader
from rplidar_interface.data_types import ScanModeConfiguration
from rplidar_interface.errors import ErrorKind
from rplidar_interface.protocol import Command, ConfigType

from conftest import FakeDevice, FakeTransport


def make_reader(device, sink, timeout_ms=100):
    transport = FakeTransport(responder=device)
    transport.open("/dev/fake")
    return ConfigurationReader(CommandChannel(transport, sink, timeout_ms)), transport


class TestConfigurationReader:

    def test_reads_all_modes(self, sink):
        reader, _ = make_reader(FakeDevice(typical_mode=1), sink)
        configuration = reader.read()

        assert configuration is not None
        assert configuration.typical_mode == 1
        assert sorted(configuration.modes) == [0, 1]
        legacy = configuration.modes[0]
        assert legacy.name == "Legacy"
        assert legacy.us_per_sample == pytest.approx(508.0)
        assert legacy.max_distance == pytest.approx(12.0)
        assert legacy.answer_type == 0x81
        assert configuration.find_mode("Express") == 1
        assert configuration.find_mode("Boost") is None

    def test_query_sequence(self, sink):
        device = FakeDevice(modes=[ScanModeConfiguration("Legacy", 508.0, 12.0, 0x81)])
        reader, transport = make_reader(device, sink)
        reader.read()

        assert transport.written[0] == build_command(
            Command.GET_CONFIG, struct.pack('<I', ConfigType.SCAN_MODE_TYPICAL))
        assert transport.written[1] == build_command(
            Command.GET_CONFIG, struct.pack('<I', ConfigType.SCAN_MODE_COUNT))
        assert transport.written[2] == build_command(
            Command.GET_CONFIG, struct.pack('<IH', ConfigType.SCAN_MODE_NAME, 0))
        assert len(transport.written) == 6

    def test_no_modes(self, sink):
        reader, _ = make_reader(FakeDevice(modes=[]), sink)
        configuration = reader.read()
        assert configuration is not None
        assert configuration.modes == {}

    def test_name_stops_at_nul(self, sink):
        class Device(FakeDevice):
            def config_answer(self, config_type, mode):
                if config_type == ConfigType.SCAN_MODE_NAME:
                    return b'Boost\0\xff\xff'
                return super().config_answer(config_type, mode)

        reader, _ = make_reader(Device(), sink)
        assert reader.read().modes[0].name == "Boost"

    def test_type_echo_mismatch(self, sink):
        class Device(FakeDevice):
            def __call__(self, frame):
                response = super().__call__(frame)
                # Echo the wrong type word
                return response[:7] + struct.pack('<I', 0x99) + response[11:]

        reader, _ = make_reader(Device(), sink)
        assert reader.read() is None
        assert reader.channel.last_error == ErrorKind.PROTOCOL

    def test_response_shorter_than_type_word(self, sink):
        class Device(FakeDevice):
            def __call__(self, frame):
                super().__call__(frame)
                return build_descriptor(2, True, 0x20) + bytes(2)

        reader, _ = make_reader(Device(), sink)
        assert reader.get_type(ConfigType.SCAN_MODE_NAME, 0) is None
        assert reader.channel.last_error == ErrorKind.PROTOCOL

    def test_wrong_answer_length(self, sink):
        class Device(FakeDevice):
            def config_answer(self, config_type, mode):
                if config_type == ConfigType.SCAN_MODE_COUNT:
                    return struct.pack('<I', 2)
                return super().config_answer(config_type, mode)

        reader, _ = make_reader(Device(), sink)
        assert reader.read() is None
        assert reader.channel.last_error == ErrorKind.PROTOCOL

    def test_failed_sub_query_aborts_everything(self, sink):
        class Device(FakeDevice):
            def __call__(self, frame):
                response = super().__call__(frame)
                # Second mode never answers its max distance query
                if frame[3:9] == struct.pack('<IH', ConfigType.SCAN_MODE_MAX_DISTANCE, 1):
                    return None
                return response

        reader, _ = make_reader(Device(), sink, timeout_ms=50)
        assert reader.read() is None
        assert reader.channel.last_error == ErrorKind.FRAMING_TIMEOUT
