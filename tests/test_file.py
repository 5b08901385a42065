# test_file.py -- Test for git files
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


"""Tests for the git file locking protocol."""

import os

from gitlite.file import FileLocked, GitFile, ensure_dir_exists

from . import TestCase


class GitFileTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self._tempdir = self.make_temp_dir()
        with open(self.path("foo"), "wb") as f:
            f.write(b"foo contents")

    def path(self, filename: str) -> str:
        return os.path.join(self._tempdir, filename)

    def test_invalid(self) -> None:
        foo = self.path("foo")
        self.assertRaises(IOError, GitFile, foo, mode="r")
        self.assertRaises(IOError, GitFile, foo, mode="ab")
        self.assertRaises(IOError, GitFile, foo, mode="r+b")
        self.assertRaises(IOError, GitFile, foo, mode="w+b")
        self.assertRaises(IOError, GitFile, foo, mode="a+bU")

    def test_readonly(self) -> None:
        with GitFile(self.path("foo"), "rb") as f:
            self.assertEqual(b"foo contents", f.read())

    def test_default_mode(self) -> None:
        with GitFile(self.path("foo")) as f:
            self.assertEqual(b"foo contents", f.read())

    def test_write(self) -> None:
        foo = self.path("foo")
        foo_lock = f"{foo}.lock"

        f = GitFile(foo, "wb")
        self.assertTrue(os.path.exists(foo_lock))
        f.write(b"new stuff")
        with open(foo, "rb") as orig_f:
            self.assertEqual(b"foo contents", orig_f.read())
        f.close()

        self.assertFalse(os.path.exists(foo_lock))
        self.assertTrue(f.closed)
        with open(foo, "rb") as new_f:
            self.assertEqual(b"new stuff", new_f.read())

    def test_open_twice(self) -> None:
        foo = self.path("foo")
        f1 = GitFile(foo, "wb")
        f1.write(b"new")
        try:
            with self.assertRaises(FileLocked) as cm:
                GitFile(foo, "wb")
            self.assertEqual(foo + ".lock", cm.exception.lockfilename)
            self.assertEqual(f"unable to create {foo}.lock: file exists", str(cm.exception))
        finally:
            f1.close()
        with open(foo, "rb") as f:
            self.assertEqual(b"new", f.read())

    def test_abort(self) -> None:
        foo = self.path("foo")
        foo_lock = f"{foo}.lock"

        f = GitFile(foo, "wb")
        f.write(b"new contents")
        f.abort()
        self.assertTrue(f.closed)
        self.assertFalse(os.path.exists(foo_lock))

        with open(foo, "rb") as new_orig_f:
            self.assertEqual(b"foo contents", new_orig_f.read())

    def test_abort_close(self) -> None:
        foo = self.path("foo")
        f = GitFile(foo, "wb")
        f.abort()
        f.close()
        f.abort()

    def test_context_manager_error_aborts(self) -> None:
        foo = self.path("foo")
        with self.assertRaises(RuntimeError):
            with GitFile(foo, "wb") as f:
                f.write(b"partial")
                raise RuntimeError("boom")
        self.assertFalse(os.path.exists(f"{foo}.lock"))
        with open(foo, "rb") as f:
            self.assertEqual(b"foo contents", f.read())

    def test_mask(self) -> None:
        bar = self.path("bar")
        with GitFile(bar, "wb", mask=0o444) as f:
            f.write(b"bar")
        self.assertFalse(os.stat(bar).st_mode & 0o222)


class EnsureDirExistsTests(TestCase):
    def test_creates_nested(self) -> None:
        path = os.path.join(self.make_temp_dir(), "a", "b")
        ensure_dir_exists(path)
        self.assertTrue(os.path.isdir(path))

    def test_existing(self) -> None:
        path = self.make_temp_dir()
        ensure_dir_exists(path)
        self.assertTrue(os.path.isdir(path))
