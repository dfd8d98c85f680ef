from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator


FRAME_MAGIC = b"\x4E\x57"
MIN_FRAME_LENGTH = 8
PREAMBLE_LENGTH = 11
CHECKSUM_TRAILER = 3
MAX_CELLS = 16
CELL_GROUP_SIZE = 3
CURRENT_DIRECTION_BIT = 0x8000
CURRENT_MAGNITUDE_MASK = 0x7FFF

POLL_COMMAND = bytes.fromhex("4E5700130000000006030000000000006800000129")

_UINT_FORMATS = {1: ">B", 2: ">H", 4: ">I"}


class FrameErrorKind(str, enum.Enum):
    TOO_SHORT = "too_short"
    BAD_HEADER = "bad_header"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    INVALID_CELL_COUNT = "invalid_cell_count"
    TRUNCATED = "truncated"


class FrameError(ValueError):
    """Raised when a response frame cannot be validated or decoded."""

    def __init__(self, kind: FrameErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class FieldRangeError(IndexError):
    """A field read would fall outside the frame."""


@dataclass(frozen=True)
class ValidatedFrame:
    """Frame bytes that passed :func:`validate_frame`. Do not build directly."""

    data: bytes


@dataclass(frozen=True)
class TelemetrySnapshot:
    cell_voltages: Dict[int, float] = field(hash=False)
    mos_temperature: int
    probe_temperature_1: int
    probe_temperature_2: int
    pack_voltage: float
    is_charging: bool
    current_magnitude: float
    capacity_percent: int
    is_warning: bool
    pack_capacity_setting: float

    @property
    def cell_count(self) -> int:
        return len(self.cell_voltages)


def frame_checksum(data: bytes) -> int:
    return sum(data[:-CHECKSUM_TRAILER]) & 0xFFFF


def validate_frame(data: bytes) -> ValidatedFrame:
    data = bytes(data)
    if len(data) < MIN_FRAME_LENGTH:
        raise FrameError(
            FrameErrorKind.TOO_SHORT,
            f"Frame has {len(data)} bytes, expected at least {MIN_FRAME_LENGTH}",
        )
    if data[:2] != FRAME_MAGIC:
        raise FrameError(FrameErrorKind.BAD_HEADER, f"Unexpected frame header {data[:2].hex().upper()}")
    # The byte before the checksum is a terminator and is not summed.
    expected = struct.unpack_from(">H", data, len(data) - 2)[0]
    actual = frame_checksum(data)
    if actual != expected:
        raise FrameError(
            FrameErrorKind.CHECKSUM_MISMATCH,
            f"Checksum mismatch (expected=0x{expected:04X}, actual=0x{actual:04X})",
        )
    return ValidatedFrame(data)


def read_uint(frame: bytes, offset: int, width: int) -> int:
    """Read a big-endian unsigned integer of *width* bytes at *offset*."""
    if width not in (2, 4):
        raise ValueError(f"Unsupported field width {width}")
    return _unpack(frame, offset, width)


def read_byte(frame: bytes, offset: int) -> int:
    return _unpack(frame, offset, 1)


def _unpack(frame: bytes, offset: int, width: int) -> int:
    if offset < 0 or offset + width > len(frame):
        raise FieldRangeError(
            f"Field at offset {offset} (width {width}) exceeds frame length {len(frame)}"
        )
    return struct.unpack_from(_UINT_FORMATS[width], frame, offset)[0]


def decode_snapshot(frame: ValidatedFrame) -> TelemetrySnapshot:
    """
    Walk the telemetry payload after the fixed preamble.

    Every value sits in a 3-byte group (1 identifier byte + 2 value bytes), so
    the cursor moves by 3 between most fields. Any read past the end of the
    frame rejects the whole frame as truncated.
    """
    payload = frame.data[PREAMBLE_LENGTH:]
    try:
        cell_byte_length = read_byte(payload, 1)
        cell_count = cell_byte_length // CELL_GROUP_SIZE
        if cell_count == 0 or cell_count > MAX_CELLS:
            raise FrameError(
                FrameErrorKind.INVALID_CELL_COUNT,
                f"Frame reports {cell_count} cells (byte length {cell_byte_length})",
            )

        pos = 3
        cell_voltages: Dict[int, float] = {}
        for index in range(1, cell_count + 1):
            cell_voltages[index] = read_uint(payload, pos, 2) / 1000
            if index < cell_count:
                pos += CELL_GROUP_SIZE

        pos += 3
        mos_temperature = read_uint(payload, pos, 2)
        pos += 3
        probe_temperature_1 = read_uint(payload, pos, 2)
        pos += 3
        probe_temperature_2 = read_uint(payload, pos, 2)

        pos += 3
        pack_voltage = read_uint(payload, pos, 2) / 100

        pos += 3
        current_raw = read_uint(payload, pos, 2)
        is_charging = bool(current_raw & CURRENT_DIRECTION_BIT)
        current_magnitude = (current_raw & CURRENT_MAGNITUDE_MASK) / 100

        pos += 3
        capacity_percent = read_byte(payload, pos)

        pos += 15
        is_warning = read_uint(payload, pos, 2) > 0

        pos += 88
        pack_capacity_setting = read_uint(payload, pos, 4) / 100
    except FieldRangeError as exc:
        raise FrameError(FrameErrorKind.TRUNCATED, f"Truncated frame ({len(frame.data)} bytes): {exc}") from exc

    return TelemetrySnapshot(
        cell_voltages=cell_voltages,
        mos_temperature=mos_temperature,
        probe_temperature_1=probe_temperature_1,
        probe_temperature_2=probe_temperature_2,
        pack_voltage=pack_voltage,
        is_charging=is_charging,
        current_magnitude=current_magnitude,
        capacity_percent=capacity_percent,
        is_warning=is_warning,
        pack_capacity_setting=pack_capacity_setting,
    )


def decode_frame(data: bytes) -> TelemetrySnapshot:
    return decode_snapshot(validate_frame(data))


def iterate_hex_frames(lines: Iterable[str]) -> Iterator[bytes]:
    """Yield one frame per non-empty, non-comment line of hex text."""
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            yield bytes.fromhex(line.replace(":", " "))
        except ValueError as exc:
            raise ValueError(f"Line {lineno} is not valid hex: {line[:40]!r}") from exc
