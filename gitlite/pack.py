# pack.py -- For dealing with packed git objects.
# Copyright (C) 2024 The gitlite authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# gitlite is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Classes for dealing with packed git objects.

A pack is the container a server streams to a client during a fetch. It
starts with a 12 byte header (``PACK``, version, object count), followed by
one record per object and a SHA-1 trailer over everything before it.

Each record starts with a variable-length header carrying the object type
and its uncompressed size, followed by a zlib stream. Ref-delta records put
the 20 byte binary SHA of their base object between the two. The compressed
size is not stored anywhere, so the end of a record is only known once its
zlib stream has been inflated.
"""

__all__ = [
    "OFS_DELTA",
    "REF_DELTA",
    "PackDelta",
    "UnresolvedDeltas",
    "apply_delta",
    "parse_pack",
    "read_pack_header",
    "read_zlib_stream",
    "take_msb_bytes",
    "unpack_object_header",
]

import logging
import zlib
from hashlib import sha1
from struct import unpack_from
from typing import NamedTuple

from .errors import (
    ApplyDeltaError,
    ChecksumMismatch,
    CorruptObject,
    InvalidObjectType,
    InvalidPackHeader,
    ObjectLengthMismatch,
    UnsupportedObjectType,
)
from .objects import ObjectID, ShaFile, object_class, sha_to_hex

logger = logging.getLogger(__name__)

OFS_DELTA = 6
REF_DELTA = 7

PACK_HEADER_LENGTH = 12
PACK_VERSION = 2

_ZLIB_BUFSIZE = 65536


class UnresolvedDeltas(Exception):
    """Delta objects could not be resolved."""

    def __init__(self, shas: list[bytes]) -> None:
        """Initialize UnresolvedDeltas exception.

        Args:
            shas: List of base SHAs that could not be found
        """
        self.shas = shas
        super().__init__(
            "missing delta bases: " + ", ".join(sha.decode("ascii") for sha in shas)
        )


class PackDelta(NamedTuple):
    """A ref-delta record waiting for its base object.

    Attributes:
      base: Hex SHA of the base object
      delta: Decompressed delta instructions
      size: Size declared in the record header
      offset: Offset of the record in its pack
    """

    base: ObjectID
    delta: bytes
    size: int
    offset: int


def read_pack_header(data: bytes) -> tuple[int, int]:
    """Read the header of a pack file.

    Args:
      data: Pack contents
    Returns: Tuple of (pack version, number of objects)
    Raises:
      InvalidPackHeader: if the magic or version is wrong, or the data is
        too short to hold a header
    """
    if len(data) < PACK_HEADER_LENGTH:
        raise InvalidPackHeader(f"file too short to contain pack ({len(data)} bytes)")
    if data[:4] != b"PACK":
        raise InvalidPackHeader(f"Invalid pack header {data[:4]!r}")
    (version, num_objects) = unpack_from(">LL", data, 4)
    if version != PACK_VERSION:
        raise InvalidPackHeader(f"Version was {version}")
    return (version, num_objects)


def take_msb_bytes(data: bytes, offset: int) -> tuple[list[int], int]:
    """Read bytes up to and including the first without its high bit set.

    Args:
      data: Buffer to read from
      offset: Offset of the first byte
    Returns: Tuple of (list of bytes read, offset after the last one)
    """
    ret: list[int] = []
    while len(ret) == 0 or ret[-1] & 0x80:
        if offset >= len(data):
            raise CorruptObject(f"pack truncated in object header at offset {offset}")
        ret.append(data[offset])
        offset += 1
    return ret, offset


def unpack_object_header(data: bytes, offset: int) -> tuple[int, int, int]:
    """Decode the type and size at the start of a pack record.

    The first byte holds a continuation bit, three type bits and the lowest
    four size bits. Each continuation byte adds seven more size bits, so the
    shifts go 4, 11, 18 and so on.

    Args:
      data: Pack contents
      offset: Offset of the record
    Returns: Tuple of (type number, uncompressed size, header length)
    """
    raw, end = take_msb_bytes(data, offset)
    type_num = (raw[0] >> 4) & 0x07
    size = raw[0] & 0x0F
    for i, byte in enumerate(raw[1:]):
        size += (byte & 0x7F) << ((i * 7) + 4)
    return type_num, size, end - offset


def read_zlib_stream(
    data: bytes, offset: int, buffer_size: int = _ZLIB_BUFSIZE
) -> tuple[bytes, int]:
    """Inflate the zlib stream starting at an offset.

    Decompression stops at the natural end of the stream; whatever follows
    belongs to the next record.

    Args:
      data: Buffer holding the stream
      offset: Offset where the stream starts
      buffer_size: Number of compressed bytes fed to zlib at a time
    Returns: Tuple of (decompressed bytes, number of compressed bytes consumed)
    Raises:
      CorruptObject: if the stream is invalid or ends early
    """
    view = memoryview(data)
    decomp_obj = zlib.decompressobj()
    decomp_chunks = []
    pos = offset
    try:
        while not decomp_obj.eof:
            add = view[pos : pos + buffer_size]
            if len(add) == 0:
                raise CorruptObject(f"EOF before end of zlib stream at offset {offset}")
            decomp_chunks.append(decomp_obj.decompress(add))
            pos += len(add)
    except zlib.error as exc:
        raise CorruptObject(f"invalid zlib stream at offset {offset}: {exc}") from exc
    consumed = pos - offset - len(decomp_obj.unused_data)
    return b"".join(decomp_chunks), consumed


def parse_pack(data: bytes) -> tuple[list[ShaFile], list[PackDelta]]:
    """Decode every record of a pack.

    Args:
      data: Complete pack contents
    Returns: Tuple of (whole objects, pending ref-deltas), both in pack order
    Raises:
      InvalidPackHeader: on a bad header
      ObjectLengthMismatch: if a record inflates to a size other than declared
      UnsupportedObjectType: on an ofs-delta record
      InvalidObjectType: on an unknown type code
      CorruptObject: on truncated or invalid record data
      ChecksumMismatch: if the pack trailer does not match its contents
    """
    _version, num_objects = read_pack_header(data)
    offset = PACK_HEADER_LENGTH
    objects: list[ShaFile] = []
    deltas: list[PackDelta] = []

    for i in range(num_objects):
        record_offset = offset
        type_num, size, header_len = unpack_object_header(data, offset)
        offset += header_len
        if type_num == OFS_DELTA:
            raise UnsupportedObjectType(
                f"ofs-delta record {i} at offset {record_offset} is not supported"
            )
        elif type_num == REF_DELTA:
            if offset + 20 > len(data):
                raise CorruptObject(f"pack truncated in delta base at offset {offset}")
            base = sha_to_hex(data[offset : offset + 20])
            offset += 20
            delta, consumed = read_zlib_stream(data, offset)
            offset += consumed
            if len(delta) != size:
                raise ObjectLengthMismatch(
                    size, len(delta), f"ref-delta {i} at offset {record_offset}"
                )
            deltas.append(PackDelta(base, delta, size, record_offset))
        else:
            try:
                cls = object_class(type_num)
            except InvalidObjectType as exc:
                raise InvalidObjectType(
                    f"invalid object type {type_num} for object {i} at offset {record_offset}"
                ) from exc
            content, consumed = read_zlib_stream(data, offset)
            offset += consumed
            if len(content) != size:
                raise ObjectLengthMismatch(
                    size,
                    len(content),
                    f"{cls.type_name.decode('ascii')} {i} at offset {record_offset}",
                )
            objects.append(cls(content))
        logger.debug("decoded pack record %d (type %d, %d bytes)", i, type_num, size)

    trailer = data[offset : offset + 20]
    if len(trailer) == 20:
        checksum = sha1(memoryview(data)[:offset]).digest()
        if checksum != trailer:
            raise ChecksumMismatch(trailer, checksum, "pack trailer")
    elif trailer:
        logger.debug("ignoring %d trailing bytes after last record", len(trailer))
    return objects, deltas


def apply_delta(src_buf: bytes, delta: bytes) -> bytes:
    """Apply delta instructions to a base object's payload.

    The delta starts with the source and target sizes as little-endian
    base-128 numbers. Each following opcode either copies a range of the
    source (high bit set; the low bits say which offset and size bytes
    follow) or inserts the next 1-127 bytes of the delta literally.

    Args:
      src_buf: Source buffer
      delta: Delta instructions
    Returns: The reconstructed payload
    Raises:
      ApplyDeltaError: if the delta does not fit the source
    """
    out = []
    index = 0
    delta_length = len(delta)

    def get_delta_header_size(delta: bytes, index: int) -> tuple[int, int]:
        size = 0
        i = 0
        while True:
            if index >= delta_length:
                raise ApplyDeltaError("delta truncated in size header")
            cmd = delta[index]
            index += 1
            size |= (cmd & ~0x80) << i
            i += 7
            if not cmd & 0x80:
                break
        return size, index

    src_size, index = get_delta_header_size(delta, index)
    dest_size, index = get_delta_header_size(delta, index)
    if src_size != len(src_buf):
        raise ApplyDeltaError(
            f"Unexpected source buffer size: {src_size} vs {len(src_buf)}"
        )
    while index < delta_length:
        cmd = delta[index]
        index += 1
        if cmd & 0x80:
            # One byte per set bit: four for the offset, three for the size.
            needed = bin(cmd & 0x7F).count("1")
            if index + needed > delta_length:
                raise ApplyDeltaError("delta truncated in copy instruction")
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    cp_off |= delta[index] << (i * 8)
                    index += 1
            cp_size = 0
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    cp_size |= delta[index] << (i * 8)
                    index += 1
            if cp_size == 0:
                cp_size = 0x10000
            if cp_off + cp_size > src_size or cp_size > dest_size:
                raise ApplyDeltaError(
                    f"copy of {cp_size} bytes at {cp_off} is outside the source"
                )
            out.append(src_buf[cp_off : cp_off + cp_size])
        elif cmd != 0:
            if index + cmd > delta_length:
                raise ApplyDeltaError("delta truncated in insert instruction")
            out.append(delta[index : index + cmd])
            index += cmd
        else:
            raise ApplyDeltaError("Invalid opcode 0")

    result = b"".join(out)
    if dest_size != len(result):
        raise ApplyDeltaError("dest size incorrect")
    return result
