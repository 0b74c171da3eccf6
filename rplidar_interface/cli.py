"""
RPLidar scan tool.

Entry point for the `rplidar-scan` command: prints device info, health and
scan mode configuration, then scans and prints one line per rotation.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .data_types import ScanMode
from .lidar import Lidar
from .logs import LoggingSink
from .protocol import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT_MS
from .session import LidarSession, ScanOptions
from .utils import smooth


MODES = {
    'legacy': ScanMode.LEGACY,
    'express': ScanMode.EXPRESS_LEGACY,
    'express-extended': ScanMode.EXPRESS_EXTENDED,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="RPLidar Scan Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
    rplidar-scan --port /dev/ttyUSB0 --mode express --count 10
        """
    )
    parser.add_argument('--port', '-p', default='/dev/ttyUSB0',
                        help='Serial port (default: /dev/ttyUSB0)')
    parser.add_argument('--baudrate', '-b', type=int, default=DEFAULT_BAUDRATE,
                        help=f'Baudrate (default: {DEFAULT_BAUDRATE})')
    parser.add_argument('--mode', '-m', choices=sorted(MODES), default='legacy',
                        help='Scan mode (default: legacy)')
    parser.add_argument('--flip', action='store_true',
                        help='Lidar is mounted upside down')
    parser.add_argument('--offset', type=float, default=0.0,
                        help='Angle offset in degrees (default: 0)')
    parser.add_argument('--timeout', type=int, default=DEFAULT_TIMEOUT_MS,
                        help=f'Receive timeout in ms (default: {DEFAULT_TIMEOUT_MS})')
    parser.add_argument('--count', '-n', type=int, default=0,
                        help='Number of scans to print, 0 runs until Ctrl+C')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log driver messages')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )

    lidar = Lidar(port_name=args.port, baudrate=args.baudrate, sink=LoggingSink())
    session = LidarSession(lidar)
    options = ScanOptions(flip=args.flip, angle_offset=args.offset, timeout_ms=args.timeout)

    print("=" * 60)
    print("RPLidar Scan Tool")
    print("=" * 60)
    print(f"\nConnecting to {args.port}...")

    if not session.start(MODES[args.mode], options):
        print(f"✗ Can't scan in {args.mode} mode ({session.last_error.name})")
        return 1

    rate = 0.0
    printed = 0
    try:
        while args.count == 0 or printed < args.count:
            scan = session.get_scan(timeout=1.0)
            if scan is None:
                continue

            if printed == 0:
                if session.info is not None:
                    print(f"  {session.info}")
                if session.health is not None:
                    print(f"  {session.health}")
                if session.configuration is not None:
                    for mode_id, mode in session.configuration.modes.items():
                        print(f"  Mode {mode_id}: {mode}")
                print()

            rate = scan.rate if rate == 0.0 else smooth(rate, scan.rate)
            valid = scan.valid_measurements()
            print(f"Scan {printed + 1}: {len(scan)} samples, {len(valid)} valid, "
                  f"{scan.duration} ms, {rate:.1f} Hz")
            printed += 1

    except KeyboardInterrupt:
        print("\nInterrupted")

    finally:
        session.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
