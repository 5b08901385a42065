# repo.py -- For dealing with git repositories.
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

"""Repository access.

A Repo is an explicit handle on one repository on disk. Nothing about the
repository is kept in module state, so any number of them can be open in
the same process.
"""

__all__ = [
    "CONTROLDIR",
    "DEFAULT_BRANCH",
    "OBJECTDIR",
    "REFSDIR",
    "Repo",
]

import logging
import os

from .errors import NotGitRepository, NotTreeError, RepositoryExists
from .file import GitFile
from .index import CONTROLDIR, blob_from_path, write_tree
from .object_store import DiskObjectStore
from .objects import Commit, ObjectID, Tree, TreeEntry

logger = logging.getLogger(__name__)

OBJECTDIR = "objects"
REFSDIR = "refs"
HEAD_FILENAME = "HEAD"
DEFAULT_BRANCH = b"main"


class Repo:
    """A git repository backed by local disk.

    Attributes:
      path: The working directory of the repository
      controldir: Path of the ``.git`` directory
      object_store: The DiskObjectStore holding the repository's objects
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        """Open a repository on disk.

        Args:
          root: Path to the working directory containing ``.git``
        Raises:
          NotGitRepository: if no control directory is found
        """
        self.path = os.fspath(root)
        self._controldir = os.path.join(self.path, CONTROLDIR)
        if not os.path.isdir(os.path.join(self._controldir, OBJECTDIR)):
            raise NotGitRepository(f"No git repository was found at {self.path}")
        self.object_store = DiskObjectStore(os.path.join(self._controldir, OBJECTDIR))

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    @classmethod
    def init(cls, path: str | os.PathLike[str], *, mkdir: bool = False) -> "Repo":
        """Create a new repository.

        Creates ``.git/objects``, ``.git/refs`` and a ``.git/HEAD`` pointing at
        ``refs/heads/main``. Initializing twice is an error rather than a
        no-op.

        Args:
          path: Path in which to create the repository
          mkdir: Whether to create the directory
        Returns: `Repo` instance
        Raises:
          RepositoryExists: if ``path/.git`` already exists
          OSError: on any other filesystem failure
        """
        path = os.fspath(path)
        if mkdir:
            os.mkdir(path)
        controldir = os.path.join(path, CONTROLDIR)
        try:
            os.mkdir(controldir)
        except FileExistsError as exc:
            raise RepositoryExists(controldir) from exc
        DiskObjectStore.init(os.path.join(controldir, OBJECTDIR))
        os.mkdir(os.path.join(controldir, REFSDIR))
        with GitFile(os.path.join(controldir, HEAD_FILENAME), "wb") as f:
            f.write(b"ref: refs/heads/" + DEFAULT_BRANCH + b"\n")
        logger.debug("initialized repository in %s", controldir)
        return cls(path)

    def head(self) -> bytes:
        """Return the contents of HEAD, without the trailing newline."""
        with GitFile(os.path.join(self._controldir, HEAD_FILENAME), "rb") as f:
            return f.read().rstrip(b"\n")

    def cat_file(self, sha: ObjectID) -> bytes:
        """Return the payload of an object."""
        return self.object_store.cat_file(sha)

    def hash_object(self, path: str | os.PathLike[str], write: bool = True) -> ObjectID:
        """Hash the contents of a file as a blob.

        Args:
          path: File to hash
          write: Whether to also store the blob
        Returns: SHA of the blob
        """
        blob = blob_from_path(path)
        if write:
            self.object_store.add_object(blob)
        return blob.id

    def write_tree(
        self, path: str | os.PathLike[str] | None = None
    ) -> tuple[ObjectID, list[TreeEntry]]:
        """Store a directory (the working directory by default) as a tree."""
        if path is None:
            path = self.path
        return write_tree(self.object_store, path)

    def commit_tree(
        self,
        tree: ObjectID,
        message: bytes,
        parent: ObjectID | None = None,
        timestamp: int | None = None,
    ) -> ObjectID:
        """Create and store a commit object for a tree.

        Args:
          tree: SHA of the tree to commit
          message: Commit message
          parent: Optional SHA of the parent commit
          timestamp: Commit time in seconds since the epoch (defaults to now)
        Returns: SHA of the new commit
        """
        commit = Commit.create(tree, message, parent=parent, timestamp=timestamp)
        return self.object_store.add_object(commit)

    def ls_tree(self, sha: ObjectID) -> list[TreeEntry]:
        """List the entries of a tree.

        Raises:
          NotTreeError: if the object is not a tree
        """
        obj = self.object_store[sha]
        if not isinstance(obj, Tree):
            raise NotTreeError(sha)
        return obj.entries()
