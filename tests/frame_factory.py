"""Builders for synthetic 0x4E57 response frames."""
from __future__ import annotations

import struct
from typing import Optional, Sequence

from bmsmon.jk.frames import PREAMBLE_LENGTH

SAMPLE_CELLS_MV = (3300, 3310, 3295, 3305)


def build_payload(
    cells_mv: Sequence[int] = SAMPLE_CELLS_MV,
    *,
    mos_temp: int = 27,
    probe_temp_1: int = 25,
    probe_temp_2: int = 24,
    pack_voltage_raw: int = 1320,
    current_raw: int = 0x0BB8,
    capacity_percent: int = 80,
    warning_raw: int = 0,
    capacity_setting_raw: int = 10000,
    cell_byte_length: Optional[int] = None,
) -> bytearray:
    n = len(cells_mv)
    payload = bytearray(3 * n + 125)
    payload[0] = 0x79
    payload[1] = cell_byte_length if cell_byte_length is not None else 3 * n
    for i, mv in enumerate(cells_mv):
        payload[2 + 3 * i] = i + 1
        struct.pack_into(">H", payload, 3 + 3 * i, mv)
    base = 3 * n
    for ident, offset, value in (
        (0x80, base + 3, mos_temp),
        (0x81, base + 6, probe_temp_1),
        (0x82, base + 9, probe_temp_2),
        (0x83, base + 12, pack_voltage_raw),
        (0x84, base + 15, current_raw),
        (0x8B, base + 33, warning_raw),
    ):
        payload[offset - 1] = ident
        struct.pack_into(">H", payload, offset, value)
    payload[base + 17] = 0x85
    payload[base + 18] = capacity_percent
    payload[base + 120] = 0xAA
    struct.pack_into(">I", payload, base + 121, capacity_setting_raw)
    return payload


def seal(payload: bytes, *, magic: bytes = b"\x4E\x57") -> bytes:
    """Wrap a payload in the 11-byte preamble, end marker and checksum."""
    preamble = bytearray(PREAMBLE_LENGTH)
    preamble[0:2] = magic
    preamble[8] = 0x06
    preamble[9] = 0x03
    body = preamble + bytes(payload)
    total = len(body) + 3
    struct.pack_into(">H", body, 2, total - 2)
    checksum = sum(body) & 0xFFFF
    return bytes(body) + b"\x68" + checksum.to_bytes(2, "big")


def build_frame(cells_mv: Sequence[int] = SAMPLE_CELLS_MV, **fields) -> bytes:
    return seal(build_payload(cells_mv, **fields))
