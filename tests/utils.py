# utils.py -- Test utilities for gitlite
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


"""Utility functions common to gitlite tests."""

import struct
import zlib
from hashlib import sha1
from io import BytesIO

from urllib3.response import HTTPResponse

from gitlite.objects import hex_to_sha
from gitlite.pack import OFS_DELTA, REF_DELTA


def encode_object_header(type_num: int, size: int) -> bytes:
    """Encode the type and size prefix of a pack record."""
    byte = (type_num << 4) | (size & 0x0F)
    size >>= 4
    ret = bytearray()
    while size:
        ret.append(byte | 0x80)
        byte = size & 0x7F
        size >>= 7
    ret.append(byte)
    return bytes(ret)


def _encode_delta_size(size: int) -> bytes:
    ret = bytearray()
    while True:
        byte = size & 0x7F
        size >>= 7
        if size:
            ret.append(byte | 0x80)
        else:
            ret.append(byte)
            return bytes(ret)


def create_delta(base: bytes, target: bytes) -> bytes:
    """Create a delta copying the common prefix of base and inserting the rest.

    Good enough for tests; real deltas look for matches anywhere in base.
    """
    prefix = 0
    while (
        prefix < min(len(base), len(target), 0xFFFF)
        and base[prefix] == target[prefix]
    ):
        prefix += 1
    out = bytearray(_encode_delta_size(len(base)) + _encode_delta_size(len(target)))
    if prefix:
        cmd = 0x80
        size_bytes = bytearray()
        for i in range(2):
            byte = (prefix >> (i * 8)) & 0xFF
            if byte:
                cmd |= 1 << (4 + i)
                size_bytes.append(byte)
        out.append(cmd)
        out += size_bytes
    rest = target[prefix:]
    for start in range(0, len(rest), 0x7F):
        chunk = rest[start : start + 0x7F]
        out.append(len(chunk))
        out += chunk
    return bytes(out)


def build_pack(objects_spec, trailer: bool = True) -> bytes:
    """Build pack data from a list of records.

    Args:
      objects_spec: A list of (type_num, obj). For whole objects, obj is the
        payload. For REF_DELTA, obj is a tuple of (base hex sha, delta). For
        OFS_DELTA, obj is a tuple of (negative offset, delta).
      trailer: Whether to append the SHA-1 trailer
    Returns: The pack contents
    """
    data = bytearray(b"PACK" + struct.pack(">LL", 2, len(objects_spec)))
    for type_num, obj in objects_spec:
        if type_num == REF_DELTA:
            base, delta = obj
            data += encode_object_header(type_num, len(delta))
            data += hex_to_sha(base)
            data += zlib.compress(delta)
        elif type_num == OFS_DELTA:
            offset, delta = obj
            data += encode_object_header(type_num, len(delta))
            data += bytes([offset & 0x7F])
            data += zlib.compress(delta)
        else:
            data += encode_object_header(type_num, len(obj))
            data += zlib.compress(obj)
    if trailer:
        data += sha1(data).digest()
    return bytes(data)


class PoolManagerMock:
    """Stands in for a urllib3 PoolManager, answering from canned responses.

    Args:
      responses: Dictionary mapping (method, url) to a tuple of
        (status, headers, body)
    """

    def __init__(self, responses) -> None:
        self.headers: dict[str, str] = {}
        self.responses = responses
        self.requests: list[tuple[str, str, dict, bytes | None]] = []

    def request(
        self,
        method,
        url,
        fields=None,
        headers=None,
        body=None,
        preload_content=True,
    ):
        self.requests.append((method, url, headers, body))
        status, resp_headers, data = self.responses[(method, url)]
        return HTTPResponse(
            body=BytesIO(data),
            headers=resp_headers,
            status=status,
            preload_content=preload_content,
            request_method=method,
            request_url=url,
        )
