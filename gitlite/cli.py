# cli.py -- Command line interface for gitlite
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


"""Simple command-line interface to gitlite.

Commands work on the repository in the current directory, the way their git
counterparts do.
"""

import argparse
import logging
import os
import signal
import sys
import types
from collections.abc import Sequence

from .clone import clone
from .errors import (
    ApplyDeltaError,
    ChecksumMismatch,
    FileFormatException,
    GitProtocolError,
    NotGitRepository,
    ObjectMissing,
    RepositoryExists,
    WrongObjectException,
)
from .file import FileLocked
from .log_utils import default_logging_config
from .objects import MODE_TREE, Tree, TreeEntry
from .pack import UnresolvedDeltas
from .repo import Repo

logger = logging.getLogger(__name__)

# Errors reported as a failed command rather than a traceback.
_COMMAND_ERRORS = (
    ApplyDeltaError,
    ChecksumMismatch,
    FileFormatException,
    FileLocked,
    GitProtocolError,
    NotGitRepository,
    ObjectMissing,
    RepositoryExists,
    UnresolvedDeltas,
    WrongObjectException,
    OSError,
    ValueError,
)


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    sys.exit(1)


def _write_stdout(data: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _print_line(line: str) -> None:
    _write_stdout(line.encode("utf-8") + b"\n")


def _format_entry(entry: TreeEntry, name_only: bool = False) -> bytes:
    if name_only:
        return entry.name + b"\n"
    kind = b"tree" if entry.mode == MODE_TREE else b"blob"
    return b"%s %s %s\t%s\n" % (entry.mode, kind, entry.sha, entry.name)


class Command:
    """A gitlite subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_init(Command):
    """Create an empty Git repository."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the init command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite init")
        parser.add_argument(
            "path", nargs="?", default=os.getcwd(), help="Repository path"
        )
        parsed_args = parser.parse_args(args)
        repo = Repo.init(parsed_args.path, mkdir=not os.path.exists(parsed_args.path))
        _print_line(f"Initialized empty Git repository in {repo.controldir()}")


class cmd_cat_file(Command):
    """Provide the contents of a repository object."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the cat-file command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite cat-file")
        parser.add_argument(
            "-p",
            dest="pretty",
            action="store_true",
            required=True,
            help="Pretty-print the contents of the object",
        )
        parser.add_argument("object", help="SHA of the object")
        parsed_args = parser.parse_args(args)
        repo = Repo(".")
        obj = repo.object_store[parsed_args.object.encode("ascii")]
        if isinstance(obj, Tree):
            _write_stdout(b"".join(_format_entry(entry) for entry in obj.entries()))
        else:
            _write_stdout(obj.data)


class cmd_hash_object(Command):
    """Compute the object ID of a file, optionally storing it."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the hash-object command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite hash-object")
        parser.add_argument(
            "-w", dest="write", action="store_true", help="Write the object"
        )
        parser.add_argument("path", help="File to hash")
        parsed_args = parser.parse_args(args)
        repo = Repo(".")
        sha = repo.hash_object(parsed_args.path, write=parsed_args.write)
        _write_stdout(sha + b"\n")


class cmd_write_tree(Command):
    """Create a tree object from the current directory."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the write-tree command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite write-tree")
        parser.parse_args(args)
        repo = Repo(".")
        sha, _entries = repo.write_tree()
        _write_stdout(sha + b"\n")


class cmd_ls_tree(Command):
    """List the contents of a tree object."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the ls-tree command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite ls-tree")
        parser.add_argument(
            "--name-only", action="store_true", help="Only display name."
        )
        parser.add_argument("tree", help="SHA of the tree to list")
        parsed_args = parser.parse_args(args)
        repo = Repo(".")
        entries = repo.ls_tree(parsed_args.tree.encode("ascii"))
        _write_stdout(
            b"".join(_format_entry(entry, parsed_args.name_only) for entry in entries)
        )


class cmd_commit_tree(Command):
    """Create a new commit object from a tree."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the commit-tree command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite commit-tree")
        parser.add_argument("--message", "-m", required=True, help="Commit message")
        parser.add_argument("--parent", "-p", help="Parent commit SHA")
        parser.add_argument("tree", help="Tree SHA to commit")
        parsed_args = parser.parse_args(args)
        repo = Repo(".")
        sha = repo.commit_tree(
            parsed_args.tree.encode("ascii"),
            parsed_args.message.encode("utf-8"),
            parent=parsed_args.parent.encode("ascii") if parsed_args.parent else None,
        )
        _write_stdout(sha + b"\n")


class cmd_clone(Command):
    """Clone a repository into a new directory."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the clone command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="gitlite clone")
        parser.add_argument("source", help="Repository to clone from")
        parser.add_argument("target", nargs="?", help="Directory to clone into")
        parsed_args = parser.parse_args(args)
        clone(parsed_args.source, parsed_args.target, progress=_print_line)


commands = {
    "cat-file": cmd_cat_file,
    "clone": cmd_clone,
    "commit-tree": cmd_commit_tree,
    "hash-object": cmd_hash_object,
    "init": cmd_init,
    "ls-tree": cmd_ls_tree,
    "write-tree": cmd_write_tree,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the gitlite CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 on success, 1 on an unknown command or a failed one
    """
    if argv is None:
        argv = sys.argv[1:]

    default_logging_config()

    if not argv:
        parser = argparse.ArgumentParser(
            prog="gitlite", description="Simple command-line interface to gitlite"
        )
        parser.add_argument(
            "command",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    cmd = argv[0]
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logger.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        cmd_kls().run(argv[1:])
    except _COMMAND_ERRORS as e:
        logger.error("fatal: %s", e)
        logger.debug("%s failed", cmd, exc_info=True)
        return 1
    return 0


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)
    sys.exit(main())


if __name__ == "__main__":
    _main()
