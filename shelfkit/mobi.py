"""Byte-level editing of MOBI/AZW e-books stored as Palm databases.

A combined ("joint") Kindle file holds an old-style MOBI 7 book followed by a
KF8 book.  The helpers here read and rewrite the Palm record table and the
EXTH metadata block, and :class:`MobiEditor` splits such a file into a plain
MOBI 7 file or a KF8 (AZW3) file.
"""

from __future__ import annotations

import struct
import uuid
from pathlib import Path
from typing import Iterator

MOBI_VERSION = 36
MOBI_HEADER_BASE = 16
MOBI_HEADER_LENGTH = 20
UNIQUE_ID_SEED = 68
NUMBER_OF_PDB_RECORDS = 76
FIRST_PDB_RECORD = 78
FIRST_IMAGE_RECORD = 108
LAST_CONTENT_INDEX = 194
TITLE_OFFSET = 84
KF8_LAST_CONTENT_INDEX = 192
FCIS_INDEX = 200
FLIS_INDEX = 208
DATP_INDEX = 256
HUFF_TABLE_OFFSET = 120
SRCS_INDEX = 224
SRCS_COUNT = 228
EXTH_FLAGS = 0x80

NO_INDEX = 0xFFFFFFFF
NO_INDEX16 = 0xFFFF

_EXTRA_INDEX_OFFSETS = (
    KF8_LAST_CONTENT_INDEX,
    FCIS_INDEX,
    FLIS_INDEX,
    DATP_INDEX,
    HUFF_TABLE_OFFSET,
)
_STRIPPED_RESOURCES = (b"FONT", b"RESC")
_PERSONAL_DOC_TYPE = b"EBOK"

EXTH_KF8_BOUNDARY = 121
EXTH_KF8_COVER_URI = 129
EXTH_START_READING = 116
EXTH_RESOURCE_COUNT = 125
EXTH_COVER_OFFSET = 201
EXTH_THUMB_OFFSET = 202
EXTH_CDE_TYPE = 501
EXTH_ASIN = 113
EXTH_ASIN_ALT = 504


class MobiError(ValueError):
    """Raised when MOBI data is truncated or structurally inconsistent."""


def _unpack(fmt: str, data: bytes, offset: int) -> int:
    if offset < 0:
        raise MobiError(f"negative offset {offset}")
    try:
        return struct.unpack_from(fmt, data, offset)[0]
    except struct.error as exc:
        raise MobiError(f"cannot read at offset {offset}: data too short") from exc


def get_int32(data: bytes, offset: int = 0) -> int:
    """Read a big-endian unsigned 32-bit integer."""
    return _unpack(">I", data, offset)


def get_int16(data: bytes, offset: int = 0) -> int:
    """Read a big-endian unsigned 16-bit integer."""
    return _unpack(">H", data, offset)


def int32_bytes(value: int) -> bytes:
    """Encode ``value`` modulo 2**32 as four big-endian bytes."""
    return struct.pack(">I", value & 0xFFFFFFFF)


def int16_bytes(value: int) -> bytes:
    """Encode ``value`` modulo 2**16 as two big-endian bytes."""
    return struct.pack(">H", value & 0xFFFF)


def write_int32(data: bytes, offset: int, value: int) -> bytes:
    """Return a copy of ``data`` with a 32-bit value stored at ``offset``."""
    return bytes(data[:offset]) + int32_bytes(value) + bytes(data[offset + 4:])


def write_int16(data: bytes, offset: int, value: int) -> bytes:
    """Return a copy of ``data`` with a 16-bit value stored at ``offset``."""
    return bytes(data[:offset]) + int16_bytes(value) + bytes(data[offset + 2:])


def section_count(data: bytes) -> int:
    """Number of records in the Palm database."""
    return get_int16(data, NUMBER_OF_PDB_RECORDS)


def _entry(secno: int) -> int:
    return FIRST_PDB_RECORD + secno * 8


def section_bounds(data: bytes, secno: int) -> tuple[int, int]:
    """Return the ``(start, end)`` byte range of record ``secno``."""
    count = section_count(data)
    if not 0 <= secno < count:
        raise MobiError(f"record {secno} out of range (0..{count - 1})")
    start = get_int32(data, _entry(secno))
    end = len(data) if secno == count - 1 else get_int32(data, _entry(secno + 1))
    return start, end


def read_section(data: bytes, secno: int) -> bytes:
    """Return the bytes of record ``secno``."""
    start, end = section_bounds(data, secno)
    return bytes(data[start:end])


def _padding(size: int) -> bytes:
    if size < 0:
        raise MobiError("record table overlaps the first record")
    return b"\0" * size


def delete_section_range(data: bytes, first: int, last: int) -> bytes:
    """Remove records ``first`` to ``last`` inclusive."""
    count = section_count(data)
    if not 0 <= first <= last < count:
        raise MobiError(f"invalid record range {first}..{last} of {count}")
    removed = last - first + 1
    remaining = count - removed

    out = bytearray(data[:UNIQUE_ID_SEED])
    out += int32_bytes(2 * remaining + 1)
    out += data[UNIQUE_ID_SEED + 4:UNIQUE_ID_SEED + 8]
    out += int16_bytes(remaining)
    for i in range(first):
        out += int32_bytes(get_int32(data, _entry(i)) - 8 * removed)
        out += data[_entry(i) + 4:_entry(i) + 8]

    first_start, _ = section_bounds(data, first)
    _, last_end = section_bounds(data, last)
    shift = last_end - first_start + 8 * removed
    for i in range(last + 1, count):
        out += int32_bytes(get_int32(data, _entry(i)) - shift)
        out += data[_entry(i) + 4:_entry(i) + 8]

    zero_start, _ = section_bounds(data, 0)
    new_start = zero_start - 8 * removed
    out += _padding(new_start - (FIRST_PDB_RECORD + 8 * remaining))
    out += data[zero_start:first_start]
    out += data[last_end:]
    return bytes(out)


def insert_section(data: bytes, secno: int, secdata: bytes) -> bytes:
    """Insert ``secdata`` as a new record at position ``secno``.

    ``secno`` may equal the current record count to append a record.
    """
    count = section_count(data)
    if count == 0:
        raise MobiError("cannot insert into a database without records")
    if not 0 <= secno <= count:
        raise MobiError(f"record {secno} out of range (0..{count})")
    sec_start = len(data) if secno == count else section_bounds(data, secno)[0]
    zero_start, _ = section_bounds(data, 0)
    size = len(secdata)

    out = bytearray(data[:UNIQUE_ID_SEED])
    out += int32_bytes(2 * (count + 1) + 1)
    out += data[UNIQUE_ID_SEED + 4:UNIQUE_ID_SEED + 8]
    out += int16_bytes(count + 1)
    for i in range(secno):
        out += int32_bytes(get_int32(data, _entry(i)) + 8)
        out += data[_entry(i) + 4:_entry(i) + 8]
    out += int32_bytes(sec_start + 8)
    out += int32_bytes(2 * secno)
    for i in range(secno, count):
        out += int32_bytes(get_int32(data, _entry(i)) + 8 + size)
        out += int32_bytes(2 * (i + 1))

    new_start = zero_start + 8
    out += _padding(new_start - (FIRST_PDB_RECORD + 8 * (count + 1)))
    out += data[zero_start:sec_start]
    out += secdata
    out += data[sec_start:]
    return bytes(out)


def insert_section_range(
    data: bytes, first: int, last: int, target: bytes, targetsec: int
) -> bytes:
    """Copy records ``first``..``last`` of ``data`` into ``target`` at ``targetsec``."""
    out = bytes(target)
    for index in range(last, first - 1, -1):
        out = insert_section(out, targetsec, read_section(data, index))
    return out


def write_section(data: bytes, secno: int, secdata: bytes) -> bytes:
    """Replace record ``secno`` with ``secdata``."""
    return insert_section(delete_section_range(data, secno, secno), secno, secdata)


def null_section(data: bytes, secno: int) -> bytes:
    """Empty record ``secno`` while keeping its entry in the record table."""
    count = section_count(data)
    sec_start, sec_end = section_bounds(data, secno)
    zero_start, _ = section_bounds(data, 0)
    shift = sec_end - sec_start

    out = bytearray(data[:FIRST_PDB_RECORD])
    for i in range(count):
        offset = get_int32(data, _entry(i))
        if i > secno:
            offset -= shift
        out += int32_bytes(offset)
        out += data[_entry(i) + 4:_entry(i) + 8]
    out += _padding(zero_start - (FIRST_PDB_RECORD + 8 * count))
    out += data[zero_start:sec_start]
    out += data[sec_end:]
    return bytes(out)


def _exth_params(rec0: bytes) -> tuple[int, int, int]:
    base = MOBI_HEADER_BASE + get_int32(rec0, MOBI_HEADER_LENGTH)
    return base, get_int32(rec0, base + 4), get_int32(rec0, base + 8)


def _exth_entries(rec0: bytes) -> Iterator[tuple[int, int, int]]:
    """Yield ``(position, id, size)`` for each EXTH record."""
    base, _, count = _exth_params(rec0)
    pos = base + 12
    for _ in range(count):
        exth_id = get_int32(rec0, pos)
        size = get_int32(rec0, pos + 4)
        if size < 8:
            raise MobiError(f"invalid EXTH record size {size} at offset {pos}")
        yield pos, exth_id, size
        pos += size


def read_exth(rec0: bytes, exth_num: int) -> list[bytes]:
    """Return the payloads of all EXTH records with id ``exth_num``."""
    return [
        bytes(rec0[pos + 8:pos + size])
        for pos, exth_id, size in _exth_entries(rec0)
        if exth_id == exth_num
    ]


def write_exth(rec0: bytes, exth_num: int, exth_data: bytes) -> bytes:
    """Replace the payload of the first EXTH record ``exth_num``.

    The record is returned unchanged if no such EXTH record exists.
    """
    base, length, count = _exth_params(rec0)
    for pos, exth_id, size in _exth_entries(rec0):
        if exth_id != exth_num:
            continue
        new_size = len(exth_data) + 8
        diff = new_size - size
        head = bytes(rec0)
        if diff != 0:
            head = write_int32(head, TITLE_OFFSET, get_int32(head, TITLE_OFFSET) + diff)
        return (
            head[:base + 4]
            + int32_bytes(length + diff)
            + int32_bytes(count)
            + bytes(rec0[base + 12:pos + 4])
            + int32_bytes(new_size)
            + bytes(exth_data)
            + bytes(rec0[pos + size:])
        )
    return bytes(rec0)


def add_exth(rec0: bytes, exth_num: int, exth_data: bytes) -> bytes:
    """Prepend a new EXTH record ``exth_num`` carrying ``exth_data``."""
    base, length, count = _exth_params(rec0)
    size = 8 + len(exth_data)
    new_rec = (
        bytes(rec0[:base + 4])
        + int32_bytes(length + size)
        + int32_bytes(count + 1)
        + int32_bytes(exth_num)
        + int32_bytes(size)
        + bytes(exth_data)
        + bytes(rec0[base + 12:])
    )
    return write_int32(new_rec, TITLE_OFFSET, get_int32(new_rec, TITLE_OFFSET) + size)


def del_exth(rec0: bytes, exth_num: int) -> bytes:
    """Remove the first EXTH record ``exth_num``, if there is one."""
    base, length, count = _exth_params(rec0)
    for pos, exth_id, size in _exth_entries(rec0):
        if exth_id != exth_num:
            continue
        new_rec = write_int32(rec0, TITLE_OFFSET, get_int32(rec0, TITLE_OFFSET) - size)
        new_rec = new_rec[:pos] + new_rec[pos + size:]
        return (
            new_rec[:base + 4]
            + int32_bytes(length - size)
            + int32_bytes(count - 1)
            + new_rec[base + 12:]
        )
    return bytes(rec0)


def _kf8_boundary(rec0: bytes) -> int | None:
    values = read_exth(rec0, EXTH_KF8_BOUNDARY)
    if not values:
        return None
    boundary = get_int32(values[0], 0)
    return None if boundary == NO_INDEX else boundary


def _fix_metadata(rec0: bytes, remove_personal: bool, repair_cover: bool) -> bytes:
    if repair_cover:
        cover = read_exth(rec0, EXTH_COVER_OFFSET)
        if cover:
            rec0 = del_exth(rec0, EXTH_THUMB_OFFSET)
            rec0 = add_exth(rec0, EXTH_THUMB_OFFSET, cover[0])
    if remove_personal:
        rec0 = add_exth(rec0, EXTH_CDE_TYPE, _PERSONAL_DOC_TYPE)
    return rec0


class MobiEditor:
    """Splits a combined MOBI 7 / KF8 file read from ``filename``."""

    def __init__(self, filename):
        self.filename = str(filename)
        self.data = Path(filename).read_bytes()

    def save_mobi7(self, mobi_file, remove_personal, repair_cover) -> bool:
        """Write only the MOBI 7 part to ``mobi_file``.

        Returns False, writing nothing, if the file has no KF8 part.
        """
        rec0 = read_section(self.data, 0)
        if get_int32(rec0, MOBI_VERSION) == 8:
            return False
        boundary = _kf8_boundary(rec0)
        if boundary is None:
            return False

        count = section_count(self.data)
        result = delete_section_range(self.data, boundary - 1, count - 2)

        srcs = get_int32(rec0, SRCS_INDEX)
        srcs_count = get_int32(rec0, SRCS_COUNT)
        if srcs != NO_INDEX and srcs_count > 0:
            result = delete_section_range(result, srcs, srcs + srcs_count - 1)
            rec0 = write_int32(rec0, SRCS_INDEX, NO_INDEX)
            rec0 = write_int32(rec0, SRCS_COUNT, 0)

        rec0 = write_exth(rec0, EXTH_KF8_BOUNDARY, int32_bytes(NO_INDEX))
        rec0 = write_exth(rec0, EXTH_KF8_COVER_URI, b"")
        rec0 = write_int32(rec0, EXTH_FLAGS, get_int32(rec0, EXTH_FLAGS) & 0x07FF)
        rec0 = _fix_metadata(rec0, remove_personal, repair_cover)

        result = write_section(result, 0, rec0)

        first_image = get_int32(rec0, FIRST_IMAGE_RECORD)
        last_image = get_int16(rec0, LAST_CONTENT_INDEX)
        if last_image == NO_INDEX16:
            for offset in _EXTRA_INDEX_OFFSETS:
                value = get_int32(rec0, offset)
                if 0 < value < last_image:
                    last_image = value - 1

        for index in range(first_image, last_image):
            if read_section(result, index)[:4] in _STRIPPED_RESOURCES:
                result = null_section(result, index)

        Path(mobi_file).write_bytes(result)
        return True

    def save_azw(self, azw_file, remove_personal, repair_cover) -> bool:
        """Write only the KF8 part, with the shared images, to ``azw_file``.

        Returns False, writing nothing, if the file has no KF8 part.
        """
        rec0 = read_section(self.data, 0)
        if get_int32(rec0, MOBI_VERSION) == 8:
            return False
        boundary = _kf8_boundary(rec0)
        if boundary is None:
            return False

        kf_rec0 = read_section(self.data, boundary)
        first_image = get_int32(rec0, FIRST_IMAGE_RECORD)
        last_image = get_int16(rec0, LAST_CONTENT_INDEX)
        image_count = last_image - first_image + 1

        result = delete_section_range(self.data, 0, boundary - 1)
        target = get_int32(kf_rec0, FIRST_IMAGE_RECORD)
        result = insert_section_range(self.data, first_image, last_image, result, target)

        kf_rec0 = read_section(result, 0)
        for _ in range(len(read_exth(kf_rec0, EXTH_START_READING)) - 1):
            kf_rec0 = del_exth(kf_rec0, EXTH_START_READING)
        kf_rec0 = write_exth(kf_rec0, EXTH_RESOURCE_COUNT, int32_bytes(image_count))
        flags = (get_int32(kf_rec0, EXTH_FLAGS) & 0x1FFF) | 0x0800
        kf_rec0 = write_int32(kf_rec0, EXTH_FLAGS, flags)

        for offset in _EXTRA_INDEX_OFFSETS:
            value = get_int32(kf_rec0, offset)
            if value != NO_INDEX:
                kf_rec0 = write_int32(kf_rec0, offset, value + image_count)

        kf_rec0 = _fix_metadata(kf_rec0, remove_personal, repair_cover)
        result = write_section(result, 0, kf_rec0)
        Path(azw_file).write_bytes(result)
        return True

    def add_exth_to_mobi(self, exth_num, exth_data) -> bool:
        """Mark the book as a personal document with a fresh identifier.

        The result is written next to the source file with ``501.mobi``
        appended to its name.  ``exth_num`` and ``exth_data`` are unused: the
        records added are fixed.  Returns False if the file has no KF8 part.
        """
        ident = ("{" + str(uuid.uuid4()) + "}").encode("ascii")
        rec0 = read_section(self.data, 0)
        rec0 = add_exth(rec0, EXTH_CDE_TYPE, _PERSONAL_DOC_TYPE)
        rec0 = add_exth(rec0, EXTH_ASIN, ident)
        rec0 = add_exth(rec0, EXTH_ASIN_ALT, ident)
        result = write_section(self.data, 0, rec0)

        boundary = _kf8_boundary(read_section(self.data, 0))
        if boundary is None:
            return False
        kf_rec0 = read_section(result, boundary)
        kf_rec0 = add_exth(kf_rec0, EXTH_CDE_TYPE, _PERSONAL_DOC_TYPE)
        result = write_section(result, boundary, kf_rec0)

        Path(self.filename + "501.mobi").write_bytes(result)
        return True