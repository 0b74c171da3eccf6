"""
Tests for the rplidar-scan command line tool.

Run with:
    pytest tests/test_cli.py -v
"""

from unittest.mock import patch

import pytest

from rplidar_interface import Scan, Measurement, ScanMode
from rplidar_interface.cli import MODES, build_parser, main


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.port == '/dev/ttyUSB0'
        assert args.baudrate == 115200
        assert args.mode == 'legacy'
        assert args.count == 0
        assert not args.flip

    def test_options(self):
        args = build_parser().parse_args(
            ['-p', 'COM3', '-b', '256000', '--mode', 'express', '--flip', '--offset', '90', '-n', '5'])
        assert args.port == 'COM3'
        assert args.baudrate == 256000
        assert MODES[args.mode] == ScanMode.EXPRESS_LEGACY
        assert args.flip
        assert args.offset == 90.0
        assert args.count == 5

    def test_unknown_mode(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--mode', 'boost'])


class TestMain:

    def test_express_extended_exits_with_error(self, capsys):
        assert main(['--mode', 'express-extended']) == 1
        assert "NOT_SUPPORTED" in capsys.readouterr().out

    def test_prints_scans(self, capsys):
        scan = Scan(measurements=(Measurement(True, 0.0, 1.0), Measurement(False, 1.0, 0.0)),
                    duration=100, rate=10.0)

        with patch('rplidar_interface.cli.LidarSession') as session_class:
            session = session_class.return_value
            session.start.return_value = True
            session.get_scan.return_value = scan
            session.info = None
            session.health = None
            session.configuration = None

            assert main(['--count', '2']) == 0
            session.stop.assert_called_once()

        out = capsys.readouterr().out
        assert "Scan 1: 2 samples, 1 valid, 100 ms, 10.0 Hz" in out
        assert "Scan 2:" in out
