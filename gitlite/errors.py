# errors.py -- errors for gitlite
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

"""gitlite-related exception classes."""

# Please do not add more errors here, but instead add them close to the code
# that raises the error.

import binascii
from collections.abc import Sequence


class ChecksumMismatch(Exception):
    """A checksum didn't match the expected contents."""

    def __init__(
        self,
        expected: bytes | str,
        got: bytes | str,
        extra: str | None = None,
    ) -> None:
        """Initialize a ChecksumMismatch exception.

        Args:
            expected: The expected checksum value (bytes or hex string).
            got: The actual checksum value (bytes or hex string).
            extra: Optional additional error information.
        """
        if isinstance(expected, bytes) and len(expected) == 20:
            expected_str = binascii.hexlify(expected).decode("ascii")
        else:
            expected_str = (
                expected if isinstance(expected, str) else expected.decode("ascii")
            )
        if isinstance(got, bytes) and len(got) == 20:
            got_str = binascii.hexlify(got).decode("ascii")
        else:
            got_str = got if isinstance(got, str) else got.decode("ascii")
        self.expected = expected_str
        self.got = got_str
        self.extra = extra
        message = f"Checksum mismatch: Expected {expected_str}, got {got_str}"
        if self.extra is not None:
            message += f"; {extra}"
        Exception.__init__(self, message)


class WrongObjectException(Exception):
    """Baseclass for all the _ is not a _ exceptions on objects.

    Do not instantiate directly.

    Subclasses should define a type_name attribute that indicates what
    was expected if they were raised.
    """

    type_name: str

    def __init__(self, sha: bytes) -> None:
        """Initialize a WrongObjectException.

        Args:
            sha: The SHA of the object that was not of the expected type.
        """
        self.sha = sha
        Exception.__init__(self, f"{sha.decode('ascii')} is not a {self.type_name}")


class NotTreeError(WrongObjectException):
    """Indicates that the sha requested does not point to a tree."""

    type_name = "tree"


class ObjectMissing(Exception):
    """Indicates that a requested object is not in the object store."""

    def __init__(self, sha: bytes, path: str | None = None) -> None:
        """Initialize an ObjectMissing exception.

        Args:
            sha: The SHA of the missing object.
            path: Path at which the object was looked for, if any.
        """
        self.sha = sha
        self.path = path
        message = f"{sha.decode('ascii')} is not in the object store"
        if path is not None:
            message += f" (looked for {path})"
        Exception.__init__(self, message)


class ApplyDeltaError(Exception):
    """Indicates that applying a delta failed."""


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""


class RepositoryExists(Exception):
    """Indicates that a repository already exists where one was to be created."""

    def __init__(self, path: str) -> None:
        """Initialize a RepositoryExists exception.

        Args:
            path: Path of the existing control directory.
        """
        self.path = path
        Exception.__init__(self, f"repository already exists at {path}")


class GitProtocolError(Exception):
    """Git protocol exception."""

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances.

        Args:
            other: The object to compare with.

        Returns:
            True if both are GitProtocolError instances with same args, False otherwise.
        """
        return isinstance(other, GitProtocolError) and self.args == other.args

    __hash__ = Exception.__hash__


class HangupException(GitProtocolError):
    """Hangup exception."""

    def __init__(self, stderr_lines: Sequence[bytes] | None = None) -> None:
        """Initialize a HangupException.

        Args:
            stderr_lines: Optional list of lines the remote reported before
                closing the connection.
        """
        if stderr_lines:
            super().__init__(
                "\n".join(
                    line.decode("utf-8", "surrogateescape") for line in stderr_lines
                )
            )
        else:
            super().__init__("The remote server unexpectedly closed the connection.")
        self.stderr_lines = stderr_lines


class UnsupportedTransport(GitProtocolError):
    """The remote does not speak the smart HTTP protocol."""


class UnexpectedServerResponse(GitProtocolError):
    """The server answered a request with something other than expected."""


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class ObjectFormatException(FileFormatException):
    """Indicates an error parsing an object."""


class CorruptObject(ObjectFormatException):
    """An object could not be decompressed or its frame is malformed."""


class ObjectLengthMismatch(CorruptObject):
    """The payload length of an object differs from its declared size."""

    def __init__(self, expected: int, got: int, extra: str | None = None) -> None:
        """Initialize an ObjectLengthMismatch exception.

        Args:
            expected: Size declared in the object or pack header.
            got: Length of the payload actually found.
            extra: Optional context, such as the object or byte offset.
        """
        self.expected = expected
        self.got = got
        message = f"object has bad length, expected {expected}, got {got}"
        if extra is not None:
            message += f" ({extra})"
        super().__init__(message)


class InvalidPackHeader(FileFormatException):
    """The pack file does not start with a valid version 2 header."""


class InvalidObjectType(FileFormatException):
    """An object type code or name is not a known git object type."""


class UnsupportedObjectType(FileFormatException):
    """An object type is valid in git but not handled by gitlite."""
