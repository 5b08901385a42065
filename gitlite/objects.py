# objects.py -- Access to base git objects
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

"""Access to base git objects.

Every object is stored and transferred in its framed form,
``<kind> <size>\\0<payload>``, and is addressed by the SHA-1 of that frame.
Objects keep their payload bytes exactly as they were created or received,
so re-framing an object never changes its address.
"""

__all__ = [
    "DEFAULT_AUTHOR",
    "MODE_BLOB",
    "MODE_TREE",
    "ZERO_SHA",
    "Blob",
    "Commit",
    "ObjectID",
    "RawObjectID",
    "ShaFile",
    "Tag",
    "Tree",
    "TreeEntry",
    "address_of",
    "format_timezone",
    "frame",
    "hex_to_filename",
    "hex_to_sha",
    "object_class",
    "object_header",
    "parse_framed",
    "parse_timezone",
    "parse_tree",
    "serialize_tree",
    "sha_to_hex",
    "valid_hexsha",
]

import binascii
import os
import time
import zlib
from collections.abc import Iterable, Iterator
from hashlib import sha1
from typing import ClassVar, NamedTuple

from .errors import CorruptObject, InvalidObjectType, ObjectLengthMismatch

# 40 lowercase hex digits
ObjectID = bytes
# 20 byte binary digest
RawObjectID = bytes

ZERO_SHA = b"0" * 40

MODE_TREE = b"040000"
MODE_BLOB = b"100644"

DEFAULT_AUTHOR = b"author_name <author_email>"

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"


def sha_to_hex(sha: RawObjectID) -> ObjectID:
    """Takes a binary sha and returns the hex form of it."""
    hexsha = binascii.hexlify(sha)
    if len(hexsha) != 40:
        raise ValueError(f"Incorrect length of sha1 string: {hexsha!r}")
    return hexsha


def hex_to_sha(hex: ObjectID | str) -> RawObjectID:
    """Takes a hex sha and returns a binary sha."""
    if len(hex) != 40:
        raise ValueError(f"Incorrect length of hexsha: {hex!r}")
    try:
        return binascii.unhexlify(hex)
    except (TypeError, binascii.Error) as exc:
        if not isinstance(hex, bytes):
            raise
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a value is a 40 character lowercase hex sha."""
    if isinstance(hex, str):
        hex = hex.encode("ascii", "replace")
    if len(hex) != 40:
        return False
    return all(c in b"0123456789abcdef" for c in hex)


def hex_to_filename(path: str, hex: ObjectID) -> str:
    """Takes a hex sha and returns its filename relative to the given path.

    The first two hex digits name the shard directory, the remaining 38 the
    file within it.
    """
    hex_str = hex.decode("ascii")
    return os.path.join(path, hex_str[:2], hex_str[2:])


def object_header(type: "int | bytes | str", length: int) -> bytes:
    """Return the frame header for an object of the given type and length."""
    cls = object_class(type)
    return cls.type_name + b" " + str(length).encode("ascii") + b"\0"


def frame(type: "int | bytes | str", content: bytes) -> bytes:
    """Prepend the frame header to an object's payload."""
    return object_header(type, len(content)) + content


def address_of(framed: bytes) -> ObjectID:
    """Return the address (hex SHA-1) of a framed object."""
    return sha1(framed).hexdigest().encode("ascii")


def parse_framed(framed: bytes) -> tuple[type["ShaFile"], bytes]:
    """Split a framed object into its class and payload.

    Raises:
      CorruptObject: if the header is malformed
      InvalidObjectType: if the kind is not a known object type
      ObjectLengthMismatch: if the payload length differs from the
        declared size
    """
    header_end = framed.find(b"\0")
    if header_end == -1:
        raise CorruptObject("object header is not terminated by NUL")
    try:
        type_name, size_text = framed[:header_end].split(b" ", 1)
    except ValueError as exc:
        raise CorruptObject(f"malformed object header {framed[:header_end]!r}") from exc
    if not size_text.isdigit():
        raise CorruptObject(f"object size {size_text!r} is not a decimal number")
    cls = object_class(type_name)
    payload = framed[header_end + 1 :]
    if int(size_text) != len(payload):
        raise ObjectLengthMismatch(
            int(size_text), len(payload), type_name.decode("ascii", "replace")
        )
    return cls, payload


class ShaFile:
    """A git SHA file: an object addressed by the hash of its frame."""

    __slots__ = ("_data", "_sha")

    type_name: ClassVar[bytes]
    type_num: ClassVar[int]

    def __init__(self, data: bytes = b"") -> None:
        self._data = data
        self._sha: ObjectID | None = None

    @property
    def data(self) -> bytes:
        """The unframed payload of this object."""
        return self._data

    @data.setter
    def data(self, value: bytes) -> None:
        self._data = value
        self._sha = None

    @staticmethod
    def from_raw_string(type: "int | bytes | str", data: bytes) -> "ShaFile":
        """Creates an object of the indicated type from the raw payload given.

        Args:
          type: The numeric type or type name of the object.
          data: The raw uncompressed payload.
        """
        return object_class(type)(data)

    @staticmethod
    def from_framed(framed: bytes) -> "ShaFile":
        """Parse a framed object, checking its declared size."""
        cls, payload = parse_framed(framed)
        return cls(payload)

    def raw_length(self) -> int:
        """Returns the length of the payload of this object."""
        return len(self._data)

    def _header(self) -> bytes:
        return object_header(self.type_num, self.raw_length())

    def as_framed_string(self) -> bytes:
        """Return the framed form of this object, as hashed and stored."""
        return self._header() + self._data

    def as_legacy_object(self, compression_level: int = -1) -> bytes:
        """Return the zlib-compressed frame, as written to a loose object file."""
        return zlib.compress(self.as_framed_string(), compression_level)

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        if self._sha is None:
            self._sha = address_of(self.as_framed_string())
        return self._sha

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id.decode('ascii')}>"

    def __eq__(self, other: object) -> bool:
        """Return true if the sha of the two objects match."""
        return isinstance(other, ShaFile) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class Blob(ShaFile):
    """A Git Blob object."""

    __slots__ = ()

    type_name = b"blob"
    type_num = 3


class Tag(ShaFile):
    """A Git Tag object.

    Tags are only ever received from a remote; their payload is kept opaque.
    """

    __slots__ = ()

    type_name = b"tag"
    type_num = 4


class TreeEntry(NamedTuple):
    """Named tuple encapsulating a single tree entry."""

    mode: bytes
    name: bytes
    sha: ObjectID


def parse_tree(text: bytes) -> Iterator[TreeEntry]:
    """Parse a tree text.

    Args:
      text: Serialized text to parse
    Returns: iterator of TreeEntry
    Raises:
      CorruptObject: if an entry is truncated
    """
    count = 0
    length = len(text)
    while count < length:
        mode_end = text.find(b" ", count)
        name_end = text.find(b"\0", mode_end + 1)
        if mode_end == -1 or name_end == -1 or name_end + 21 > length:
            raise CorruptObject(f"truncated tree entry at offset {count}")
        mode = text[count:mode_end]
        name = text[mode_end + 1 : name_end]
        count = name_end + 21
        yield TreeEntry(mode, name, sha_to_hex(text[name_end + 1 : count]))


def serialize_tree(entries: Iterable[TreeEntry]) -> Iterator[bytes]:
    """Serialize tree entries, sorted byte-wise by name.

    Args:
      entries: Iterable of TreeEntry
    Returns: Serialized tree text as chunks
    """
    for mode, name, hexsha in sorted(entries, key=lambda entry: entry.name):
        yield mode + b" " + name + b"\0" + hex_to_sha(hexsha)


class Tree(ShaFile):
    """A Git tree object."""

    __slots__ = ()

    type_name = b"tree"
    type_num = 2

    @classmethod
    def from_entries(cls, entries: Iterable[TreeEntry]) -> "Tree":
        """Create a tree from its entries, in canonical order."""
        return cls(b"".join(serialize_tree(entries)))

    def entries(self) -> list[TreeEntry]:
        """Return the entries of this tree in serialized order."""
        return list(parse_tree(self._data))


def parse_timezone(text: bytes) -> int:
    """Parse a timezone text fragment (e.g. b'+0100') into seconds east of UTC."""
    if text[:1] not in (b"+", b"-"):
        raise ValueError(f"Timezone must start with + or - ({text!r})")
    sign = -1 if text[:1] == b"-" else 1
    offset = int(text[1:])
    hours = offset // 100
    minutes = offset % 100
    return sign * (hours * 3600 + minutes * 60)


def format_timezone(offset: int) -> bytes:
    """Format a timezone offset in seconds for Git serialization."""
    if offset % 60 != 0:
        raise ValueError("Unable to handle non-minute offset.")
    sign = "-" if offset < 0 else "+"
    offset = abs(offset)
    return f"{sign}{offset // 3600:02d}{(offset // 60) % 60:02d}".encode("ascii")


class Commit(ShaFile):
    """A git commit object."""

    __slots__ = ()

    type_name = b"commit"
    type_num = 1

    @classmethod
    def create(
        cls,
        tree: ObjectID,
        message: bytes,
        parent: ObjectID | None = None,
        author: bytes = DEFAULT_AUTHOR,
        timestamp: int | None = None,
        timezone: int = 0,
    ) -> "Commit":
        """Create a commit pointing at a tree.

        Args:
          tree: Hex SHA of the tree this commit records
          message: Commit message, without the trailing newline
          parent: Optional hex SHA of the parent commit
          author: Author identity, as ``name <email>``
          timestamp: Seconds since the epoch (defaults to now)
          timezone: Offset east of UTC in seconds
        """
        for sha in (tree, parent):
            if sha is not None and not valid_hexsha(sha):
                raise ValueError(f"invalid object id {sha!r}")
        if timestamp is None:
            timestamp = int(time.time())
        chunks = [_TREE_HEADER + b" " + tree + b"\n"]
        if parent is not None:
            chunks.append(_PARENT_HEADER + b" " + parent + b"\n")
        chunks.append(
            b"%s %s %d %s\n" % (_AUTHOR_HEADER, author, timestamp, format_timezone(timezone))
        )
        chunks.append(b"\n")
        chunks.append(message + b"\n")
        return cls(b"".join(chunks))

    def _headers(self) -> tuple[list[tuple[bytes, bytes]], bytes]:
        headers = []
        header_text, sep, message = self._data.partition(b"\n\n")
        if not sep:
            raise CorruptObject(f"commit {self.id!r} has no message separator")
        for line in header_text.split(b"\n"):
            field, _, value = line.partition(b" ")
            headers.append((field, value))
        return headers, message

    @property
    def tree(self) -> ObjectID:
        """Tree that is the state of this commit."""
        for field, value in self._headers()[0]:
            if field == _TREE_HEADER:
                return value
        raise CorruptObject(f"commit {self.id!r} has no tree")

    @property
    def parents(self) -> list[ObjectID]:
        """Parents of this commit, in order."""
        return [value for field, value in self._headers()[0] if field == _PARENT_HEADER]

    @property
    def author(self) -> bytes:
        """The author line of this commit, including time and timezone."""
        for field, value in self._headers()[0]:
            if field == _AUTHOR_HEADER:
                return value
        raise CorruptObject(f"commit {self.id!r} has no author")

    @property
    def message(self) -> bytes:
        """The commit message."""
        return self._headers()[1]


OBJECT_CLASSES = (
    Commit,
    Tree,
    Blob,
    Tag,
)

_TYPE_MAP: dict[bytes | int, type[ShaFile]] = {}

for cls in OBJECT_CLASSES:
    _TYPE_MAP[cls.type_name] = cls
    _TYPE_MAP[cls.type_num] = cls


def object_class(type: "int | bytes | str") -> type[ShaFile]:
    """Get the object class corresponding to the given type.

    Args:
      type: Either a type name or a numeric type.
    Returns: The ShaFile subclass corresponding to the given type.
    Raises:
      InvalidObjectType: if the type is not a known object type
    """
    if isinstance(type, str):
        type = type.encode("ascii", "replace")
    try:
        return _TYPE_MAP[type]
    except KeyError as exc:
        raise InvalidObjectType(f"invalid object type {type!r}") from exc
