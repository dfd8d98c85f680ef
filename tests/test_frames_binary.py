from __future__ import annotations

import pytest

from bmsmon.jk.frames import (
    POLL_COMMAND,
    FieldRangeError,
    FrameError,
    FrameErrorKind,
    decode_frame,
    decode_snapshot,
    frame_checksum,
    iterate_hex_frames,
    read_byte,
    read_uint,
    validate_frame,
)
from frame_factory import build_frame, build_payload, seal


def test_validate_accepts_sealed_frame(sample_frame: bytes) -> None:
    validated = validate_frame(sample_frame)
    assert validated.data == sample_frame
    assert frame_checksum(sample_frame) == int.from_bytes(sample_frame[-2:], "big")


def test_validate_rejects_short_frame() -> None:
    with pytest.raises(FrameError) as info:
        validate_frame(b"\x4E\x57\x00\x05\x00\x00\x00")
    assert info.value.kind is FrameErrorKind.TOO_SHORT


def test_validate_rejects_bad_header() -> None:
    frame = seal(build_payload(), magic=b"\x55\xAA")
    with pytest.raises(FrameError) as info:
        validate_frame(frame)
    assert info.value.kind is FrameErrorKind.BAD_HEADER


def test_validate_rejects_wrong_checksum(sample_frame: bytes) -> None:
    corrupted = sample_frame[:-1] + bytes([sample_frame[-1] ^ 0x01])
    with pytest.raises(FrameError) as info:
        validate_frame(corrupted)
    assert info.value.kind is FrameErrorKind.CHECKSUM_MISMATCH


def test_single_bit_corruption_in_summed_range_fails(sample_frame: bytes) -> None:
    for index in range(len(sample_frame) - 3):
        for bit in range(8):
            mutated = bytearray(sample_frame)
            mutated[index] ^= 1 << bit
            with pytest.raises(FrameError):
                validate_frame(bytes(mutated))


def test_byte_before_checksum_is_not_summed(sample_frame: bytes) -> None:
    mutated = bytearray(sample_frame)
    mutated[-3] ^= 0xFF
    validate_frame(bytes(mutated))


def test_checksum_wraps_at_16_bits() -> None:
    frame = seal(build_payload() + b"\xff" * 300)
    assert sum(frame[:-3]) > 0xFFFF
    validate_frame(frame)


def test_read_uint_big_endian() -> None:
    data = bytes([0x01, 0x02, 0x03, 0x04, 0x05])
    assert read_uint(data, 0, 2) == 0x0102
    assert read_uint(data, 1, 4) == 0x02030405
    assert read_byte(data, 4) == 0x05


def test_read_uint_out_of_range() -> None:
    data = bytes(4)
    with pytest.raises(FieldRangeError):
        read_uint(data, 3, 2)
    with pytest.raises(FieldRangeError):
        read_byte(data, 4)
    with pytest.raises(ValueError):
        read_uint(data, 0, 3)


def test_decode_sample_frame(sample_frame: bytes) -> None:
    snap = decode_frame(sample_frame)
    assert list(snap.cell_voltages) == [1, 2, 3, 4]
    assert snap.cell_voltages == {1: 3.3, 2: 3.31, 3: 3.295, 4: 3.305}
    assert snap.cell_count == 4
    assert (snap.mos_temperature, snap.probe_temperature_1, snap.probe_temperature_2) == (27, 25, 24)
    assert snap.pack_voltage == pytest.approx(13.20)
    assert snap.is_charging is False
    assert snap.current_magnitude == pytest.approx(30.0)
    assert snap.capacity_percent == 80
    assert snap.is_warning is False
    assert snap.pack_capacity_setting == pytest.approx(100.0)


def test_decode_charging_current_and_warning() -> None:
    snap = decode_frame(build_frame(current_raw=0x8000 | 1250, warning_raw=0x0004))
    assert snap.is_charging is True
    assert snap.current_magnitude == pytest.approx(12.5)
    assert snap.is_warning is True


def test_decode_temperatures_are_raw() -> None:
    snap = decode_frame(build_frame(mos_temp=140, probe_temp_1=0, probe_temp_2=65))
    assert snap.mos_temperature == 140
    assert snap.probe_temperature_1 == 0
    assert snap.probe_temperature_2 == 65


def test_decode_sixteen_cells() -> None:
    cells = [3200 + i for i in range(16)]
    snap = decode_frame(build_frame(cells))
    assert snap.cell_count == 16
    assert snap.cell_voltages[16] == pytest.approx(3.215)


@pytest.mark.parametrize("cell_byte_length", [0, 2])
def test_decode_rejects_zero_cells(cell_byte_length: int) -> None:
    frame = build_frame(cell_byte_length=cell_byte_length)
    with pytest.raises(FrameError) as info:
        decode_frame(frame)
    assert info.value.kind is FrameErrorKind.INVALID_CELL_COUNT


def test_decode_rejects_more_than_sixteen_cells() -> None:
    frame = build_frame([3300] * 17)
    with pytest.raises(FrameError) as info:
        decode_frame(frame)
    assert info.value.kind is FrameErrorKind.INVALID_CELL_COUNT


def test_decode_rejects_truncated_frame() -> None:
    payload = build_payload()[:-10]
    frame = seal(payload)
    validated = validate_frame(frame)
    with pytest.raises(FrameError) as info:
        decode_snapshot(validated)
    assert info.value.kind is FrameErrorKind.TRUNCATED


def test_decode_rejects_cell_list_past_frame_end() -> None:
    payload = build_payload()[:8]
    payload[1] = 48
    with pytest.raises(FrameError) as info:
        decode_frame(seal(payload))
    assert info.value.kind is FrameErrorKind.TRUNCATED


def test_minimum_length_frame_is_truncated_not_crash() -> None:
    head = b"\x4E\x57\x00\x06\x00"
    frame = head + b"\x68" + sum(head).to_bytes(2, "big")
    with pytest.raises(FrameError) as info:
        decode_frame(frame)
    assert info.value.kind is FrameErrorKind.TRUNCATED


def test_poll_command_constant() -> None:
    assert POLL_COMMAND.hex().upper() == "4E5700130000000006030000000000006800000129"
    assert len(POLL_COMMAND) == 0x13 + 2


def test_iterate_hex_frames_skips_comments(sample_frame: bytes) -> None:
    lines = ["# capture", "", sample_frame.hex(" "), "  " + sample_frame.hex().upper()]
    frames = list(iterate_hex_frames(lines))
    assert frames == [sample_frame, sample_frame]


def test_iterate_hex_frames_reports_bad_line() -> None:
    with pytest.raises(ValueError, match="Line 2"):
        list(iterate_hex_frames(["4E57", "zz"]))
