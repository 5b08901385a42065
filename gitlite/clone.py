# clone.py -- Cloning remote repositories over smart HTTP
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


"""Repository clone handling."""

__all__ = [
    "CloneOperation",
    "CloneState",
    "clone",
    "default_target",
    "resolve_deltas",
]

import enum
import logging
import os
import posixpath
from collections.abc import Callable, Sequence
from urllib.parse import urlparse

from .client import HttpGitClient
from .errors import RepositoryExists
from .object_store import DiskObjectStore
from .objects import ObjectID, ShaFile
from .pack import PackDelta, UnresolvedDeltas, apply_delta, parse_pack
from .repo import Repo

logger = logging.getLogger(__name__)


class CloneState(enum.Enum):
    """Stages of a clone, in the order they are reached."""

    IDLE = 0
    REFS_DISCOVERED = 1
    PACK_REQUESTED = 2
    PACK_DECODED = 3
    OBJECTS_PERSISTED = 4


def default_target(url: str) -> str:
    """Derive a directory name from the last path component of a URL.

    A trailing slash and a ``.git`` suffix are dropped, so both
    ``https://host/project`` and ``https://host/project.git/`` give
    ``project``.

    Raises:
      ValueError: if the URL has no path to derive a name from
    """
    name = posixpath.basename(urlparse(url).path.rstrip("/"))
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise ValueError(f"unable to derive a directory name from {url!r}")
    return name


def resolve_deltas(
    object_store: DiskObjectStore,
    deltas: Sequence[PackDelta],
    progress: Callable[[str], None] | None = None,
) -> list[ObjectID]:
    """Apply ref-deltas against base objects in a store.

    A delta may use the result of another delta as its base, so deltas are
    applied in passes until none is left or a pass makes no progress. The
    reconstructed object keeps the kind of its base.

    Args:
      object_store: Store holding the base objects; results are added to it
      deltas: Pending deltas, in pack order
      progress: Called with a line of text for every applied delta
    Returns: SHAs of the reconstructed objects, in the order they were stored
    Raises:
      UnresolvedDeltas: if some bases are neither in the store nor produced
        by another delta
      ApplyDeltaError: if a delta does not fit its base
    """
    pending = list(deltas)
    resolved: list[ObjectID] = []
    while pending:
        remaining = []
        for delta in pending:
            if delta.base not in object_store:
                remaining.append(delta)
                continue
            base = object_store[delta.base]
            obj = ShaFile.from_raw_string(
                base.type_num, apply_delta(base.data, delta.delta)
            )
            resolved.append(object_store.add_object(obj))
            if progress is not None:
                progress(f"Receiving deltas: ({len(resolved)},{len(deltas)}), done.")
        if len(remaining) == len(pending):
            raise UnresolvedDeltas(sorted({delta.base for delta in remaining}))
        pending = remaining
    return resolved


class CloneOperation:
    """A single clone of a remote repository into a new directory.

    Attributes:
      url: URL of the remote repository
      target: Directory the repository is created in
      state: The last stage the clone reached
    """

    def __init__(
        self,
        url: str,
        target: str | os.PathLike[str] | None = None,
        client: HttpGitClient | None = None,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self.url = url
        self.target = os.fspath(target) if target is not None else default_target(url)
        self.client = client if client is not None else HttpGitClient(url)
        self._progress = progress
        self.state = CloneState.IDLE

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.url!r} -> {self.target!r} ({self.state.name})>"

    def _report(self, line: str) -> None:
        if self._progress is not None:
            self._progress(line)

    def _advance(self, state: CloneState) -> None:
        if state.value != self.state.value + 1:
            raise RuntimeError(
                f"clone cannot move from {self.state.name} to {state.name}"
            )
        logger.debug("clone of %s: %s -> %s", self.url, self.state.name, state.name)
        self.state = state

    def run(self) -> Repo:
        """Run the clone.

        Returns: The new repository
        Raises:
          RepositoryExists: if the target directory already exists
          GitProtocolError: if talking to the remote fails
          FileFormatException: if the pack sent by the remote is invalid
          UnresolvedDeltas: if the pack refers to bases it does not contain
        """
        if self.state is not CloneState.IDLE:
            raise RuntimeError(f"clone already ran (state {self.state.name})")
        self._report(f"Cloning into '{os.path.basename(self.target)}'...")
        try:
            os.mkdir(self.target)
        except FileExistsError as exc:
            raise RepositoryExists(self.target) from exc
        repo = Repo.init(self.target)

        refs = self.client.discover_references()
        self._advance(CloneState.REFS_DISCOVERED)
        if not refs:
            logger.warning("You appear to have cloned an empty repository.")
            return repo
        head = refs[0]
        logger.debug("fetching %s (%s)", head.name, head.sha)

        pack = self.client.upload_pack([head.sha])
        self._advance(CloneState.PACK_REQUESTED)

        objects, deltas = parse_pack(pack)
        self._advance(CloneState.PACK_DECODED)
        self._report(f"remote: Enumerating objects: {len(objects)}, done.")

        for i, obj in enumerate(objects):
            repo.object_store.add_object(obj)
            self._report(f"Receiving objects: ({i + 1},{len(objects)}), done.")
        resolve_deltas(repo.object_store, deltas, self._report)
        self._advance(CloneState.OBJECTS_PERSISTED)
        logger.info(
            "cloned %d objects and %d deltas into %s",
            len(objects),
            len(deltas),
            self.target,
        )
        return repo


def clone(
    url: str,
    target: str | os.PathLike[str] | None = None,
    *,
    client: HttpGitClient | None = None,
    progress: Callable[[str], None] | None = None,
) -> Repo:
    """Clone a remote repository into a new directory.

    The fetched reference is not recorded under refs/ and no working tree
    is checked out; the new repository only holds the received objects.
    Nothing is removed if the clone fails part way.

    Args:
      url: URL of the remote repository
      target: Directory to create; defaults to the last component of url
      client: Client to fetch with; an HttpGitClient for url by default
      progress: Called with a line of text at each step
    Returns: The new repository
    """
    return CloneOperation(url, target, client=client, progress=progress).run()
