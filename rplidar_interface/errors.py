"""
Error taxonomy.

Expected failures (IO, protocol, timeouts) are reported as failed results
and classified with ErrorKind. Only misuse raises.
"""

from enum import Enum


class ErrorKind(Enum):
    """Classification of a failed operation."""
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    FRAMING_TIMEOUT = "framing_timeout"
    INVALID_STATE = "invalid_state"
    NOT_SUPPORTED = "not_supported"


class LidarError(Exception):
    """Base class for lidar driver exceptions."""


class InvalidStateError(LidarError, RuntimeError):
    """Operation used in a state where it can't work (programming error)."""


class NotSupportedError(LidarError, NotImplementedError):
    """Feature permanently unsupported by this driver."""
