# log_utils.py -- Logging utilities for gitlite
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

"""Logging utilities for gitlite.

gitlite is used as a library as well as through its command line, so the
package logger starts out with a handler that discards records. Library
callers that want output configure logging themselves; the command line
calls default_logging_config(), which honours GIT_TRACE the way git does.
"""

import logging
import os
import sys

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_GITLITE_LOGGER = getLogger("gitlite")
_GITLITE_LOGGER.addHandler(_NULL_HANDLER)


def _get_trace_target() -> str | int | None:
    """Work out where GIT_TRACE output should go.

    Returns:
        - None if tracing is disabled or the value is not understood
        - 2 for stderr ("1", "2" or "true")
        - an int between 3 and 9 for an already open file descriptor
        - an absolute path to a file or directory
    """
    trace_value = os.environ.get("GIT_TRACE", "")
    if not trace_value or trace_value.lower() in ("0", "false"):
        return None
    if trace_value.lower() in ("1", "2", "true"):
        return 2
    if trace_value.isdigit() and 3 <= int(trace_value) <= 9:
        return int(trace_value)
    if os.path.isabs(trace_value):
        return trace_value
    return None


def _configure_logging_from_trace() -> bool:
    """Configure debug logging from GIT_TRACE.

    Returns True if tracing was set up, False otherwise.
    """
    trace_target = _get_trace_target()
    if trace_target is None:
        return False

    if trace_target == 2:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=TRACE_FORMAT)
        return True

    try:
        if isinstance(trace_target, int):
            stream = os.fdopen(trace_target, "w", buffering=1)
            logging.basicConfig(level=logging.DEBUG, stream=stream, format=TRACE_FORMAT)
            return True
        if os.path.isdir(trace_target):
            filename = os.path.join(trace_target, f"trace.{os.getpid()}")
        else:
            filename = trace_target
        logging.basicConfig(
            level=logging.DEBUG, filename=filename, filemode="a", format=TRACE_FORMAT
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open GIT_TRACE {trace_target}: {e}\n")
        return False
    return True


def default_logging_config() -> None:
    """Set up the default gitlite loggers.

    GIT_TRACE selects debug tracing to stderr, a file descriptor or a file;
    without it, INFO messages go to stderr.
    """
    remove_null_handler()
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            stream=sys.stderr,
            format="%(message)s",
        )


def remove_null_handler() -> None:
    """Remove the null handler from the gitlite loggers."""
    _GITLITE_LOGGER.removeHandler(_NULL_HANDLER)
