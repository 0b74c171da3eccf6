"""
Lidar Session
=============

Runs the device lifecycle on a worker thread:

    IDLE -> OPENING -> HEALTH_CHECK -> CONFIGURING -> SCANNING -> STOPPING -> IDLE

Any failure along the way resets the device, waits for a backoff period and
starts over, until the session is stopped. Unsupported scan modes are
rejected by start() and never retried.

Example:
    >>> from rplidar_interface import Lidar, LidarSession, ScanMode, ScanOptions
    >>>
    >>> with LidarSession(Lidar(port_name='/dev/ttyUSB0')) as session:
    ...     session.start(ScanMode.LEGACY, ScanOptions(angle_offset=90.0))
    ...     scan = session.get_scan(timeout=2.0)

Results are handed over through a queue (or the on_scan / on_measurements
callbacks, called from the worker thread). Marshaling them to a UI thread is
up to the caller.
"""

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from .data_types import (
    Configuration,
    HealthInfo,
    HealthStatus,
    LidarInfo,
    Measurement,
    Scan,
    ScanMode,
)
from .errors import ErrorKind, InvalidStateError
from .lidar import Lidar
from .logs import Severity
from .protocol import DEFAULT_TIMEOUT_MS
from .utils import log_exceptions


class SessionState(Enum):
    IDLE = "idle"
    OPENING = "opening"
    HEALTH_CHECK = "health_check"
    CONFIGURING = "configuring"
    SCANNING = "scanning"
    STOPPING = "stopping"


@dataclass
class ScanOptions:
    """
    Options for one scanning session.

    Attributes:
        flip: Lidar mounted upside down
        angle_offset: Degrees added to every measurement
        timeout_ms: Receive timeout of each logical read
        spin_up_timeout_ms: Receive timeout of the first read after the motor
            starts; the first packets only arrive once the motor is up to speed
        raw_measurements: Publish measurement batches instead of whole scans
        reset_settle_s: Wait after a reset before talking to the device again
        retry_backoff_s: Pause between recovery attempts
        queue_size: Results kept for the consumer, oldest dropped first
    """
    flip: bool = False
    angle_offset: float = 0.0
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    spin_up_timeout_ms: int = 2000
    raw_measurements: bool = False
    reset_settle_s: float = 0.7
    retry_backoff_s: float = 1.0
    queue_size: int = 16


Result = Union[Scan, List[Measurement]]


class LidarSession:
    """
    Owns a Lidar and drives it from a dedicated worker thread.

    Only the worker touches the device and its decoder state; the caller
    thread only starts, stops and consumes results.
    """

    def __init__(
        self,
        lidar: Lidar,
        on_scan: Optional[Callable[[Scan], None]] = None,
        on_measurements: Optional[Callable[[List[Measurement]], None]] = None,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ):
        """
        Args:
            lidar: Device to drive; the session owns its transport while running
            on_scan: Called with every completed Scan
            on_measurements: Called with every raw measurement batch
            on_state_change: Called with every new SessionState
        """
        self.lidar = lidar
        self.on_scan = on_scan
        self.on_measurements = on_measurements
        self.on_state_change = on_state_change

        self.mode = ScanMode.NONE
        self.options = ScanOptions()
        self.configuration: Optional[Configuration] = None
        self.health: Optional[HealthInfo] = None
        self.info: Optional[LidarInfo] = None
        self.last_error: Optional[ErrorKind] = None
        self.attempts = 0

        self._state = SessionState.IDLE
        self._cancel = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._results: "queue.Queue[Result]" = queue.Queue()

    def __enter__(self) -> 'LidarSession':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _log(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.lidar.sink.emit(severity, message)

    # =========================================================================
    # Control (caller thread)
    # =========================================================================

    def start(self, mode: ScanMode, options: Optional[ScanOptions] = None) -> bool:
        """
        Start scanning on the worker thread.

        Returns:
            False if the mode can't be used (last_error tells why)

        Raises:
            InvalidStateError: If the session is already running
        """
        if self.is_running:
            raise InvalidStateError("Session already running")

        if mode == ScanMode.EXPRESS_EXTENDED:
            self.last_error = ErrorKind.NOT_SUPPORTED
            self._log("Express extended scan not supported", Severity.ERROR)
            return False
        elif mode == ScanMode.NONE:
            self.last_error = ErrorKind.INVALID_STATE
            self._log("Can't start scan without a scan mode", Severity.ERROR)
            return False
        elif mode not in (ScanMode.LEGACY, ScanMode.EXPRESS_LEGACY):
            raise ValueError(f"Invalid scan mode {mode!r}")

        self.mode = mode
        self.options = options or ScanOptions()
        self.lidar.flip = self.options.flip
        self.lidar.angle_offset = self.options.angle_offset
        self.last_error = None
        self.attempts = 0
        self._results = queue.Queue(maxsize=self.options.queue_size)

        self._cancel.clear()
        self._worker = threading.Thread(target=self._run, name="lidar-session", daemon=True)
        self._worker.start()
        return True

    def cancel(self) -> None:
        """Ask the worker to stop after the current read; doesn't wait."""
        self._cancel.set()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop scanning, wait for the worker and close the transport.

        Returns:
            True if the worker has finished
        """
        self.cancel()
        if self._worker is not None:
            self._worker.join(timeout)
            if self._worker.is_alive():
                return False
            self._worker = None

        self.lidar.close()
        return True

    # =========================================================================
    # Results
    # =========================================================================

    def get_scan(self, timeout: Optional[float] = None) -> Optional[Scan]:
        """
        Wait for the next Scan.

        Returns:
            Scan, or None if none arrived within timeout
        """
        if self.options.raw_measurements:
            raise InvalidStateError("Session publishes raw measurements, not scans")
        return self._get(timeout)

    def get_measurements(self, timeout: Optional[float] = None) -> Optional[List[Measurement]]:
        """Wait for the next raw measurement batch."""
        if not self.options.raw_measurements:
            raise InvalidStateError("Session publishes scans, not raw measurements")
        return self._get(timeout)

    def _get(self, timeout: Optional[float]):
        try:
            return self._results.get(timeout=timeout)
        except queue.Empty:
            return None

    def _publish(self, result: Result) -> None:
        while True:
            try:
                self._results.put_nowait(result)
                return
            except queue.Full:
                try:
                    self._results.get_nowait()
                except queue.Empty:
                    pass

    # =========================================================================
    # Worker
    # =========================================================================

    @log_exceptions
    def _run(self) -> None:
        try:
            while not self._cancel.is_set():
                self.attempts += 1
                if self._attempt():
                    break

                if self.last_error == ErrorKind.NOT_SUPPORTED:
                    break

                self._log(f"Lidar unhealthy, retrying in {self.options.retry_backoff_s:.1f} s",
                          Severity.WARNING)
                if self._cancel.wait(self.options.retry_backoff_s):
                    break
        finally:
            self._set_state(SessionState.IDLE)

    def _attempt(self) -> bool:
        """
        Run one pass of the lifecycle.

        Returns:
            True if it ended because of cancellation, False on failure
        """
        self._set_state(SessionState.OPENING)
        self.lidar.receive_timeout_ms = self.options.timeout_ms
        if not self.lidar.open():
            self.last_error = self.lidar.last_error
            self._set_state(SessionState.IDLE)
            return False

        self._set_state(SessionState.HEALTH_CHECK)
        self.health = self.lidar.get_health()
        if self.health is None:
            return self._recover()
        self._log(str(self.health))
        if self.health.status != HealthStatus.GOOD:
            self._log(f"Lidar health is {self.health.status.name}, resetting", Severity.WARNING)
            return self._reset()

        if self._cancel.is_set():
            return self._stop()

        self._set_state(SessionState.CONFIGURING)
        self.info = self.lidar.get_info()
        if self.info is not None:
            self._log(str(self.info))
        configuration = self.lidar.get_configuration()
        if configuration is None:
            return self._recover()
        self.configuration = configuration
        for mode_id, mode in configuration.modes.items():
            self._log(f"Scan mode {mode_id}: {mode}")

        if self._cancel.is_set():
            return self._stop()

        self._set_state(SessionState.SCANNING)
        if not self.lidar.start_scan(self.mode):
            return self._recover()
        self.lidar.control_motor(True)

        try:
            scanned = self._scan_loop()
        except Exception:
            # Raised by a callback or a misused Lidar; leave the device stopped
            self._stop()
            raise

        if not scanned:
            error = self.lidar.last_error
            self._stop()
            return self._recover(error)
        return self._stop()

    def _scan_loop(self) -> bool:
        """Pull batches until cancelled. Returns False on read failure."""
        self.lidar.receive_timeout_ms = self.options.spin_up_timeout_ms
        while not self._cancel.is_set():
            if self.options.raw_measurements:
                measurements = self.lidar.get_measurements()
                if measurements is None:
                    return False
                if measurements:
                    self._publish(measurements)
                    if self.on_measurements:
                        self.on_measurements(measurements)
            else:
                ok, scan = self.lidar.get_scan()
                if not ok:
                    return False
                if scan is not None:
                    self._publish(scan)
                    if self.on_scan:
                        self.on_scan(scan)
            self.lidar.receive_timeout_ms = self.options.timeout_ms
        return True

    def _stop(self) -> bool:
        self._set_state(SessionState.STOPPING)
        self.lidar.stop_scan()
        self.lidar.control_motor(False)
        self._set_state(SessionState.IDLE)
        return True

    def _recover(self, error: Optional[ErrorKind] = None) -> bool:
        """Record the failure, reset the device and report the attempt as failed."""
        self.last_error = error or self.lidar.last_error
        return self._reset()

    def _reset(self) -> bool:
        self.lidar.reset(self.options.reset_settle_s)
        self._set_state(SessionState.IDLE)
        return False
