# index.py -- Building trees from a directory on disk
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

"""Writing the contents of a directory as nested tree objects."""

__all__ = [
    "CONTROLDIR",
    "blob_from_path",
    "write_tree",
]

import logging
import os

from .object_store import DiskObjectStore
from .objects import MODE_BLOB, MODE_TREE, Blob, ObjectID, Tree, TreeEntry

logger = logging.getLogger(__name__)

CONTROLDIR = ".git"


def blob_from_path(path: str | os.PathLike[str]) -> Blob:
    """Create a blob from the contents of a file."""
    with open(path, "rb") as f:
        return Blob(f.read())


def write_tree(
    object_store: DiskObjectStore, path: str | os.PathLike[str]
) -> tuple[ObjectID, list[TreeEntry]]:
    """Store a directory and everything below it as tree and blob objects.

    Subdirectories are written before the tree that contains them, since a
    tree entry needs the address of its child. The control directory is
    skipped. Regular files get mode 100644 and directories 040000; symlinks
    and executable bits are not distinguished.

    Args:
      object_store: Store to write objects to
      path: Directory to walk
    Returns: Tuple of (tree SHA, sorted list of its entries)
    Raises:
      OSError: if any file or directory cannot be read; blobs written up to
        that point stay in the store
    """
    entries = []
    with os.scandir(path) as it:
        children = list(it)
    for child in children:
        if child.name == CONTROLDIR:
            continue
        name = os.fsencode(child.name)
        if child.is_dir(follow_symlinks=False):
            sha, _ = write_tree(object_store, child.path)
            entries.append(TreeEntry(MODE_TREE, name, sha))
        else:
            sha = object_store.add_object(blob_from_path(child.path))
            entries.append(TreeEntry(MODE_BLOB, name, sha))
    entries.sort(key=lambda entry: entry.name)
    tree = Tree.from_entries(entries)
    object_store.add_object(tree)
    logger.debug("wrote tree %s for %s", tree.id.decode("ascii"), os.fspath(path))
    return tree.id, entries
