"""
Configuration reader

Fetches the device scan mode configuration with a sequence of GetConfig
sub-queries:

    Typical mode id, mode count, then for every mode:
    name, microseconds per sample, max distance, answer type

Any failed sub-query aborts the whole fetch.
"""

import struct
from typing import Optional

from .channel import CommandChannel
from .data_types import Configuration, Descriptor, ScanModeConfiguration
from .errors import ErrorKind
from .logs import Severity
from .protocol import Command, ConfigType, CONFIG_DATA_TYPE, CONFIG_TYPE_LENGTH


class ConfigurationReader:
    """Reads Configuration over a CommandChannel."""

    def __init__(self, channel: CommandChannel):
        self.channel = channel

    def get_type(self, config_type: ConfigType, mode: Optional[int] = None,
                 answer_length: Optional[int] = None) -> Optional[bytes]:
        """
        Run one GetConfig sub-query

        Args:
            config_type: Requested type word
            mode: Scan mode id for per-mode queries
            answer_length: Expected answer length without the type echo, None for any

        Returns:
            Answer bytes following the echoed type word, or None on failure
        """
        payload = struct.pack('<I', config_type)
        if mode is not None:
            payload += struct.pack('<H', mode)

        expected = Descriptor(
            -1 if answer_length is None else answer_length + CONFIG_TYPE_LENGTH,
            True,
            CONFIG_DATA_TYPE,
        )

        if not self.channel.send_command(Command.GET_CONFIG, payload):
            return None
        descriptor = self.channel.wait_for_descriptor(expected)
        if descriptor is None:
            return None
        if descriptor.length < CONFIG_TYPE_LENGTH:
            self.channel.fail(ErrorKind.PROTOCOL,
                              f"Configuration response too short ({descriptor.length} bytes)")
            return None
        raw = self.channel.read_exact(descriptor.length)
        if raw is None:
            return None

        response_type, = struct.unpack_from('<I', raw, 0)
        if response_type != config_type:
            self.channel.fail(ErrorKind.PROTOCOL,
                              f"Expected configuration response type 0x{int(config_type):02X}, "
                              f"got 0x{response_type:02X}")
            return None

        return raw[CONFIG_TYPE_LENGTH:]

    def read(self) -> Optional[Configuration]:
        """
        Fetch complete configuration

        Returns:
            Configuration, or None if any sub-query failed
        """
        response = self.get_type(ConfigType.SCAN_MODE_TYPICAL, answer_length=2)
        if response is None:
            return None
        typical, = struct.unpack_from('<H', response)

        response = self.get_type(ConfigType.SCAN_MODE_COUNT, answer_length=2)
        if response is None:
            return None
        count, = struct.unpack_from('<H', response)

        configuration = Configuration(typical_mode=typical)
        for mode in range(count):
            mode_configuration = self._read_mode(mode)
            if mode_configuration is None:
                return None
            configuration.modes[mode] = mode_configuration

        self.channel.sink.emit(Severity.INFO,
                               f"Configuration: {count} scan modes, typical mode {typical}")
        return configuration

    def _read_mode(self, mode: int) -> Optional[ScanModeConfiguration]:
        name = self.get_type(ConfigType.SCAN_MODE_NAME, mode)
        if name is None:
            return None

        us_per_sample = self.get_type(ConfigType.SCAN_MODE_US_PER_SAMPLE, mode, 4)
        if us_per_sample is None:
            return None

        max_distance = self.get_type(ConfigType.SCAN_MODE_MAX_DISTANCE, mode, 4)
        if max_distance is None:
            return None

        answer_type = self.get_type(ConfigType.SCAN_MODE_ANSWER_TYPE, mode, 1)
        if answer_type is None:
            return None

        return ScanModeConfiguration(
            name=name.split(b'\0', 1)[0].decode('ascii', errors='replace'),
            us_per_sample=struct.unpack_from('<I', us_per_sample)[0] / 256.0,
            max_distance=struct.unpack_from('<I', max_distance)[0] / 256.0,
            answer_type=answer_type[0],
        )
