"""ECM decoder.

ECM strips the sync pattern, headers and EDC/ECC fields that a CD-ROM
sector can regenerate from its payload. Decoding rebuilds each 2352-byte
raw sector from the stored payload.

Call :func:`init_tables` once before decoding; :func:`decompress_ecm` and
:func:`decompress_ecm_stream` do so on first use.
"""

from __future__ import annotations

import logging
import os
import threading
from operator import itemgetter
from typing import BinaryIO, Callable, List, Optional, Tuple

from ..conversion.sheets import fix_cue_ecm_references
from ..exceptions import EcmFormatError

logger = logging.getLogger(__name__)

ECM_MAGIC = b"ECM\x00"
SECTOR_SIZE = 2352
END_MARKER = 0xFFFFFFFF
SYNC = b"\x00" + b"\xff" * 10 + b"\x00"

EDC_POLY = 0xD8018001
GF_POLY = 0x11D

# (majors, minors, major_mult, minor_inc, dest offset)
P_PARITY = (86, 24, 2, 86, 2076)
Q_PARITY = (52, 43, 86, 88, 2248)
ECC_BASE = 12

COPY_CHUNK = 1024 * 1024

_tables_lock = threading.Lock()
_tables_ready = False

EDC_LUT: List[int] = []
GF_EXP: List[int] = []
GF_LOG: List[int] = []
MUL2 = b""
DIV3 = b""


class _ParityLayout:
    """Precomputed gather indices and scaling tables for one parity block."""

    def __init__(self, majors: int, minors: int, mult: int, inc: int, dest: int) -> None:
        size = majors * minors
        self.majors = majors
        self.dest = dest
        self.rows: List[Callable] = []
        self.scales: List[bytes] = []
        for minor in range(minors):
            idx = [
                ECC_BASE + (((major >> 1) * mult + (major & 1) + minor * inc) % size)
                for major in range(majors)
            ]
            self.rows.append(itemgetter(*idx))
            self.scales.append(_mul_table(_gf_pow2(minors - minor + 1)))


_P_LAYOUT: Optional[_ParityLayout] = None
_Q_LAYOUT: Optional[_ParityLayout] = None


def _gf_mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return GF_EXP[(GF_LOG[a] + GF_LOG[b]) % 255]


def _gf_pow2(exponent: int) -> int:
    return GF_EXP[exponent % 255]


def _mul_table(factor: int) -> bytes:
    return bytes(_gf_mul(x, factor) for x in range(256))


def init_tables() -> None:
    """Build the EDC and GF(2^8) lookup tables. Safe to call repeatedly."""
    global _tables_ready, MUL2, DIV3, _P_LAYOUT, _Q_LAYOUT
    with _tables_lock:
        if _tables_ready:
            return

        EDC_LUT.clear()
        for i in range(256):
            edc = i
            for _ in range(8):
                edc = (edc >> 1) ^ (EDC_POLY if edc & 1 else 0)
            EDC_LUT.append(edc)

        GF_EXP[:] = [0] * 256
        GF_LOG[:] = [0] * 256
        x = 1
        for i in range(255):
            GF_EXP[i] = x
            GF_LOG[x] = i
            x <<= 1
            if x & 0x100:
                x ^= GF_POLY
        GF_EXP[255] = GF_EXP[0]

        MUL2 = _mul_table(2)
        log3 = GF_LOG[3]
        DIV3 = bytes([0] + [GF_EXP[(GF_LOG[v] - log3) % 255] for v in range(1, 256)])

        _P_LAYOUT = _ParityLayout(*P_PARITY)
        _Q_LAYOUT = _ParityLayout(*Q_PARITY)
        _tables_ready = True


def edc_compute(data: bytes, edc: int = 0) -> int:
    lut = EDC_LUT
    for b in data:
        edc = (edc >> 8) ^ lut[(edc ^ b) & 0xFF]
    return edc


def _edc_set(sector: bytearray, start: int, length: int) -> None:
    edc = edc_compute(memoryview(sector)[start:start + length])
    sector[start + length:start + length + 4] = edc.to_bytes(4, "little")


def _parity_block(sector: bytearray, layout: _ParityLayout) -> None:
    # Closed form of the shift-register loop: each minor row is scaled by
    # 2^(minors - minor + 1) and folded in with XOR; b is the plain XOR.
    majors = layout.majors
    acc_a = 0
    acc_b = 0
    for row, scale in zip(layout.rows, layout.scales):
        values = bytes(row(sector))
        acc_b ^= int.from_bytes(values, "big")
        acc_a ^= int.from_bytes(values.translate(scale), "big")
    ecc_a = (acc_a ^ acc_b).to_bytes(majors, "big").translate(DIV3)
    ecc_pair = (int.from_bytes(ecc_a, "big") ^ acc_b).to_bytes(majors, "big")
    sector[layout.dest:layout.dest + majors] = ecc_a
    sector[layout.dest + majors:layout.dest + 2 * majors] = ecc_pair


def ecc_generate(sector: bytearray, zero_address: bool) -> None:
    """Write P then Q parity into a raw sector."""
    saved = bytes(sector[12:16])
    if zero_address:
        sector[12:16] = b"\x00\x00\x00\x00"
    _parity_block(sector, _P_LAYOUT)
    _parity_block(sector, _Q_LAYOUT)
    if zero_address:
        sector[12:16] = saved


def reconstruct_sector(sector: bytearray, sector_type: int) -> None:
    """Fill in sync, mode, EDC and ECC for a sector whose payload is loaded."""
    sector[0:12] = SYNC
    if sector_type == 1:
        sector[0x0F] = 0x01
        _edc_set(sector, 0, 0x810)
        sector[0x814:0x81C] = bytes(8)
        ecc_generate(sector, zero_address=False)
    elif sector_type == 2:
        sector[0x0F] = 0x02
        sector[0x10:0x14] = sector[0x14:0x18]
        _edc_set(sector, 0x10, 0x808)
        ecc_generate(sector, zero_address=True)
    elif sector_type == 3:
        sector[0x0F] = 0x02
        sector[0x10:0x14] = sector[0x14:0x18]
        _edc_set(sector, 0x10, 0x91C)
    else:
        raise EcmFormatError(f"unknown sector type {sector_type}")


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EcmFormatError(f"{what}: short read ({len(data)} of {size} bytes)")
    return data


def read_chunk_header(stream: BinaryIO) -> Optional[Tuple[int, int]]:
    """Decode one chunk header.

    Returns ``(sector_type, count)``, or None at the end marker or a clean
    EOF before the first header byte.
    """
    first = stream.read(1)
    if not first:
        return None
    c = first[0]
    sector_type = c & 3
    num = (c >> 2) & 0x1F
    shift = 5
    for index in range(4):
        if not c & 0x80:
            break
        nxt = stream.read(1)
        if not nxt:
            raise EcmFormatError(f"truncated chunk header at byte {index + 2}")
        c = nxt[0]
        if index == 3:
            num |= c << 26
        else:
            num |= (c & 0x7F) << shift
            shift += 7
    num &= 0xFFFFFFFF
    if num == END_MARKER:
        return None
    return sector_type, num + 1


# sector type -> (payload offset, payload size)
_PAYLOADS = {
    2: (0x14, 0x804),
    3: (0x14, 0x918),
}


def decompress_ecm_stream(src: BinaryIO, dst: BinaryIO) -> int:
    """Decode the chunk stream that follows the magic; returns bytes written."""
    init_tables()
    written = 0
    sector = bytearray(SECTOR_SIZE)
    while True:
        header = read_chunk_header(src)
        if header is None:
            return written
        sector_type, count = header

        if sector_type == 0:
            remaining = count
            while remaining:
                block = _read_exact(src, min(remaining, COPY_CHUNK), "type 0 copy")
                dst.write(block)
                remaining -= len(block)
            written += count
            continue

        for _ in range(count):
            sector[:] = bytes(SECTOR_SIZE)
            if sector_type == 1:
                sector[0x0C:0x0F] = _read_exact(src, 3, "mode 1 address")
                sector[0x10:0x810] = _read_exact(src, 0x800, "mode 1 data")
            else:
                offset, size = _PAYLOADS[sector_type]
                sector[offset:offset + size] = _read_exact(src, size, f"mode 2 type {sector_type} data")
            reconstruct_sector(sector, sector_type)
            dst.write(sector)
            written += SECTOR_SIZE


def ecm_output_path(ecm_path: str) -> str:
    base, ext = os.path.splitext(ecm_path)
    return base if ext.lower() == ".ecm" else ecm_path + ".bin"


def decompress_ecm(ecm_path: str, remove_source: bool = True) -> str:
    """Decode ``<name>.ecm`` into ``<name>``, patch sibling cues, drop the .ecm.

    Partial output is removed when decoding fails. Returns the output path.
    """
    output_path = ecm_output_path(ecm_path)
    opened = False
    try:
        with open(ecm_path, "rb") as src:
            magic = src.read(4)
            if magic != ECM_MAGIC:
                raise EcmFormatError(f"invalid ECM magic: {magic!r}", rom_path=ecm_path)
            with open(output_path, "wb") as dst:
                opened = True
                written = decompress_ecm_stream(src, dst)
    except EcmFormatError as exc:
        if opened:
            _discard(output_path)
        if exc.details.get("rom_path") is None:
            exc.details["rom_path"] = ecm_path
        raise
    except OSError as exc:
        if opened:
            _discard(output_path)
        raise EcmFormatError(f"decompress {os.path.basename(ecm_path)}: {exc}", rom_path=ecm_path) from exc

    logger.info("Decompressed %s (%d bytes)", os.path.basename(ecm_path), written)
    fix_cue_ecm_references(ecm_path, output_path)
    if remove_source:
        try:
            os.remove(ecm_path)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", ecm_path, exc)
    return output_path


def _discard(path: str) -> None:
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as exc:
            logger.debug("Failed to remove partial output %s: %s", path, exc)
