"""
Decoder and serial host for BMS units speaking the 0x4E57 frame protocol.

The subpackage exposes the frame validator and layout decoder, the per-session
report pipeline that threads the current history between polls, and the
serial poller used by the command line tool.
"""

from .config import BmsConfig, HostRuntime, load_config
from .frames import (
    POLL_COMMAND,
    FieldRangeError,
    FrameError,
    FrameErrorKind,
    TelemetrySnapshot,
    ValidatedFrame,
    decode_frame,
    decode_snapshot,
    read_byte,
    read_uint,
    validate_frame,
)
from .processing import Report, ReportPipeline, decode_and_report
from .runner import BmsPoller, SerialSettings, SerialTransport

__all__ = [
    "BmsConfig",
    "HostRuntime",
    "load_config",
    "POLL_COMMAND",
    "FieldRangeError",
    "FrameError",
    "FrameErrorKind",
    "TelemetrySnapshot",
    "ValidatedFrame",
    "decode_frame",
    "decode_snapshot",
    "read_byte",
    "read_uint",
    "validate_frame",
    "Report",
    "ReportPipeline",
    "decode_and_report",
    "BmsPoller",
    "SerialSettings",
    "SerialTransport",
]
