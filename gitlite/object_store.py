# object_store.py -- Object store for git objects
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

"""Git object store interfaces and implementation."""

__all__ = [
    "DiskObjectStore",
]

import logging
import os
import zlib

from .errors import CorruptObject, ObjectMissing
from .file import FileLocked, GitFile, ensure_dir_exists
from .objects import ObjectID, ShaFile, hex_to_filename, parse_framed, valid_hexsha

logger = logging.getLogger(__name__)

PACK_MODE = 0o444


class DiskObjectStore:
    """Git-style object store that exists on disk as loose objects.

    Each object lives in ``<path>/<first two hex digits>/<remaining 38>``,
    holding the zlib-compressed frame of the object.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Open an object store.

        Args:
          path: Path of the objects directory
        """
        self.path = os.fspath(path)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def init(cls, path: str | os.PathLike[str]) -> "DiskObjectStore":
        """Create the objects directory and return a store for it."""
        os.mkdir(path)
        return cls(path)

    def _get_shafile_path(self, sha: ObjectID) -> str:
        if not valid_hexsha(sha):
            raise ValueError(f"invalid object id {sha!r}")
        return hex_to_filename(self.path, sha)

    def __contains__(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1."""
        return os.path.exists(self._get_shafile_path(sha))

    def write_object(self, sha: ObjectID, framed: bytes) -> None:
        """Write a framed object under its address.

        Objects are immutable, so an object that is already present is left
        alone. A lock file left by an interrupted write of the same object
        is replaced.

        Args:
          sha: Hex SHA of the framed bytes
          framed: The framed object (header and payload)
        """
        path = self._get_shafile_path(sha)
        ensure_dir_exists(os.path.dirname(path))
        if os.path.exists(path):
            logger.debug("object %s already present", sha.decode("ascii"))
            return
        try:
            f = GitFile(path, "wb", mask=PACK_MODE)
        except FileLocked as exc:
            # Left behind by an interrupted write of the same content.
            logger.warning("removing stale lock file %s", exc.lockfilename)
            os.remove(exc.lockfilename)
            f = GitFile(path, "wb", mask=PACK_MODE)
        with f:
            f.write(zlib.compress(framed))
        logger.debug("wrote object %s", sha.decode("ascii"))

    def add_object(self, obj: ShaFile) -> ObjectID:
        """Add a single object to this object store.

        Args:
          obj: Object to add
        Returns: The SHA of the object
        """
        self.write_object(obj.id, obj.as_framed_string())
        return obj.id

    def read_object(self, sha: ObjectID) -> bytes:
        """Read the framed bytes of an object.

        Raises:
          ObjectMissing: if there is no such object
          CorruptObject: if the object file cannot be decompressed
        """
        path = self._get_shafile_path(sha)
        try:
            with GitFile(path, "rb") as f:
                compressed = f.read()
        except FileNotFoundError as exc:
            raise ObjectMissing(sha, path) from exc
        try:
            return zlib.decompress(compressed)
        except zlib.error as exc:
            raise CorruptObject(f"unable to decompress object {path}: {exc}") from exc

    def cat_file(self, sha: ObjectID) -> bytes:
        """Return the payload of an object, without its frame header."""
        return parse_framed(self.read_object(sha))[1]

    def __getitem__(self, sha: ObjectID) -> ShaFile:
        """Obtain an object by SHA1."""
        return ShaFile.from_framed(self.read_object(sha))
