import io
import os
from pathlib import Path

import pytest

from romwrangler.exceptions import EcmFormatError
from romwrangler.extraction import ecm

END = bytes([0xFC, 0xFF, 0xFF, 0xFF, 0x3F])


def header(sector_type: int, count: int) -> bytes:
    num = count - 1
    out = bytearray()
    c = ((num & 0x1F) << 2) | sector_type
    num >>= 5
    if num:
        c |= 0x80
    out.append(c)
    while num:
        c = num & 0x7F
        num >>= 7
        if num:
            c |= 0x80
        out.append(c)
    return bytes(out)


def reference_edc(data: bytes) -> int:
    edc = 0
    for b in data:
        edc ^= b
        for _ in range(8):
            edc = (edc >> 1) ^ (0xD8018001 if edc & 1 else 0)
    return edc


def reference_parity(sector: bytearray, majors, minors, mult, inc, dest) -> None:
    src = sector[12:]
    size = majors * minors
    for major in range(majors):
        index = (major >> 1) * mult + (major & 1)
        a = b = 0
        for _ in range(minors):
            temp = src[index]
            index += inc
            if index >= size:
                index -= size
            a ^= temp
            b ^= temp
            a = ecm.MUL2[a]
        a = ecm.DIV3[ecm.MUL2[a] ^ b]
        sector[dest + major] = a
        sector[dest + major + majors] = a ^ b


def decode(payload: bytes) -> bytes:
    out = io.BytesIO()
    ecm.decompress_ecm_stream(io.BytesIO(payload), out)
    return out.getvalue()


def test_header_round_trip():
    for count in (1, 2, 33, 4096, 1 << 20):
        assert ecm.read_chunk_header(io.BytesIO(header(1, count))) == (1, count)
    assert ecm.read_chunk_header(io.BytesIO(END)) is None
    assert ecm.read_chunk_header(io.BytesIO(b"")) is None


def test_truncated_header_raises():
    with pytest.raises(EcmFormatError):
        ecm.read_chunk_header(io.BytesIO(b"\x80"))


def test_raw_chunk_copied_verbatim():
    assert decode(header(0, 5) + b"hello" + END) == b"hello"


def test_short_raw_chunk_raises():
    with pytest.raises(EcmFormatError):
        decode(header(0, 5) + b"hel")


def test_edc_table_matches_bitwise_crc():
    data = bytes(range(256)) * 3
    assert ecm.edc_compute(data) == reference_edc(data)


def test_mode1_sector_reconstruction():
    address = b"\x00\x02\x16"
    data = bytes((i * 7 + 3) & 0xFF for i in range(0x800))
    sector = decode(header(1, 1) + address + data + END)

    assert len(sector) == ecm.SECTOR_SIZE
    assert sector[:12] == ecm.SYNC
    assert sector[12:15] == address
    assert sector[15] == 0x01
    assert sector[0x10:0x810] == data
    assert sector[0x810:0x814] == reference_edc(sector[:0x810]).to_bytes(4, "little")
    assert sector[0x814:0x81C] == bytes(8)

    expected = bytearray(sector[:0x81C]) + bytearray(ecm.SECTOR_SIZE - 0x81C)
    reference_parity(expected, *ecm.P_PARITY)
    reference_parity(expected, *ecm.Q_PARITY)
    assert bytes(expected) == sector
    assert decode(header(1, 1) + address + data + END) == sector


def test_mode2_form1_reconstruction():
    payload = b"\x01\x02\x03\x04" + bytes((i * 13) & 0xFF for i in range(0x800))
    sector = decode(header(2, 1) + payload + END)

    assert len(sector) == ecm.SECTOR_SIZE
    assert sector[15] == 0x02
    assert sector[12:15] == b"\x00\x00\x00"
    assert sector[0x10:0x14] == sector[0x14:0x18] == b"\x01\x02\x03\x04"
    assert sector[0x818:0x81C] == reference_edc(sector[0x10:0x818]).to_bytes(4, "little")

    expected = bytearray(sector[:0x81C]) + bytearray(ecm.SECTOR_SIZE - 0x81C)
    expected[12:16] = bytes(4)
    reference_parity(expected, *ecm.P_PARITY)
    reference_parity(expected, *ecm.Q_PARITY)
    expected[15] = 0x02
    assert bytes(expected) == sector


def test_mode2_form2_reconstruction():
    payload = bytes((i * 5) & 0xFF for i in range(0x918))
    sector = decode(header(3, 1) + payload + END)
    assert len(sector) == ecm.SECTOR_SIZE
    assert sector[0x10:0x14] == payload[:4]
    assert sector[0x92C:0x930] == reference_edc(sector[0x10:0x92C]).to_bytes(4, "little")


def test_multi_sector_chunk_and_mixed_stream():
    data = bytes(0x800)
    stream = header(0, 3) + b"abc" + header(1, 2) + (b"\x00\x02\x00" + data) * 2 + END
    out = decode(stream)
    assert out[:3] == b"abc"
    assert len(out) == 3 + 2 * ecm.SECTOR_SIZE


def test_output_path():
    assert ecm.ecm_output_path("/x/Game.bin.ecm") == "/x/Game.bin"
    assert ecm.ecm_output_path("/x/Game.ECM") == "/x/Game"
    assert ecm.ecm_output_path("/x/Game.img") == "/x/Game.img.bin"


def test_decompress_file_patches_cue_and_removes_source(tmp_path: Path):
    src = tmp_path / "Game.bin.ecm"
    src.write_bytes(ecm.ECM_MAGIC + header(0, 4) + b"data" + END)
    cue = tmp_path / "Game.cue"
    cue.write_text('FILE "Game.bin.ecm" BINARY\n  TRACK 01 MODE1/2352\n', encoding="utf-8")

    out = ecm.decompress_ecm(str(src))

    assert out == str(tmp_path / "Game.bin")
    assert Path(out).read_bytes() == b"data"
    assert not src.exists()
    assert cue.read_text(encoding="utf-8").startswith('FILE "Game.bin" BINARY')


def test_bad_magic_keeps_existing_output(tmp_path: Path):
    src = tmp_path / "Game.bin.ecm"
    src.write_bytes(b"NOPE")
    existing = tmp_path / "Game.bin"
    existing.write_bytes(b"keep")
    with pytest.raises(EcmFormatError):
        ecm.decompress_ecm(str(src))
    assert existing.read_bytes() == b"keep"
    assert src.exists()


def test_truncated_stream_removes_partial_output(tmp_path: Path):
    src = tmp_path / "Game.bin.ecm"
    src.write_bytes(ecm.ECM_MAGIC + header(1, 1) + b"\x00\x02\x00" + bytes(100))
    with pytest.raises(EcmFormatError) as info:
        ecm.decompress_ecm(str(src))
    assert info.value.details["rom_path"] == str(src)
    assert not os.path.exists(tmp_path / "Game.bin")
    assert src.exists()


def test_init_tables_idempotent():
    before = ecm.MUL2
    ecm.init_tables()
    assert ecm.MUL2 is before
    assert ecm.MUL2[0x80] == 0x1D
    assert all(ecm.DIV3[ecm.MUL2[x] ^ x] == x for x in range(256))
