# test_refs.py -- tests for refs.py
# Copyright (C) 2026 The mygit contributors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# mygit is dual-licensed under the Apache License, Version 2.0 and the GNU
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

"""Tests for mygit.refs."""

import os

from mygit.errors import CorruptFormat, NotFound, PackedRefsException, SymrefLoop
from mygit.object_format import SHA256
from mygit.refs import (
    REF_KIND_BRANCH,
    REF_KIND_OTHER,
    REF_KIND_REMOTE,
    REF_KIND_TAG,
    DiskRefsContainer,
    check_ref_format,
    expand_ref_name,
    parse_symref_value,
    read_packed_refs,
    ref_kind,
    shorten_ref_name,
)

from . import TestCase
from .utils import init_bare_repo, write_packed_refs, write_ref

ONES = b"1" * 40
TWOS = b"2" * 40
THREES = b"3" * 40


class CheckRefFormatTests(TestCase):
    """Tests for the check_ref_format function.

    These are the same tests as in the git test suite.
    """

    def test_valid(self) -> None:
        self.assertTrue(check_ref_format(b"heads/foo"))
        self.assertTrue(check_ref_format(b"foo/bar/baz"))
        self.assertTrue(check_ref_format(b"refs///heads/foo"))
        self.assertTrue(check_ref_format(b"foo./bar"))
        self.assertTrue(check_ref_format(b"heads/foo@bar"))
        self.assertTrue(check_ref_format(b"heads/fix.lock.error"))

    def test_invalid(self) -> None:
        self.assertFalse(check_ref_format(b"foo"))
        self.assertFalse(check_ref_format(b"heads/foo/"))
        self.assertFalse(check_ref_format(b"./foo"))
        self.assertFalse(check_ref_format(b".refs/foo"))
        self.assertFalse(check_ref_format(b"heads/foo..bar"))
        self.assertFalse(check_ref_format(b"heads/foo?bar"))
        self.assertFalse(check_ref_format(b"heads/foo.lock"))
        self.assertFalse(check_ref_format(b"heads/v@{ation"))
        self.assertFalse(check_ref_format(b"heads/foo\bar"))
        self.assertFalse(check_ref_format(b"heads/foo\\bar"))
        self.assertFalse(check_ref_format(b"heads/foo bar"))


class RefNameTests(TestCase):
    def test_parse_symref_value(self) -> None:
        self.assertEqual(b"refs/heads/foo", parse_symref_value(b"ref: refs/heads/foo\n"))
        self.assertRaises(ValueError, parse_symref_value, ONES)

    def test_ref_kind(self) -> None:
        self.assertEqual(REF_KIND_BRANCH, ref_kind(b"refs/heads/master"))
        self.assertEqual(REF_KIND_TAG, ref_kind(b"refs/tags/v1.0"))
        self.assertEqual(REF_KIND_REMOTE, ref_kind(b"refs/remotes/origin/main"))
        self.assertEqual(REF_KIND_OTHER, ref_kind(b"refs/notes/commits"))
        self.assertEqual(REF_KIND_OTHER, ref_kind(b"HEAD"))

    def test_shorten_ref_name(self) -> None:
        self.assertEqual(b"master", shorten_ref_name(b"refs/heads/master"))
        self.assertEqual(b"v1.0", shorten_ref_name(b"refs/tags/v1.0"))
        self.assertEqual(b"origin/main", shorten_ref_name(b"refs/remotes/origin/main"))
        self.assertEqual(b"refs/notes/x", shorten_ref_name(b"refs/notes/x"))

    def test_expand_ref_name(self) -> None:
        self.assertEqual(
            [
                b"foo",
                b"refs/foo",
                b"refs/tags/foo",
                b"refs/heads/foo",
                b"refs/remotes/foo",
                b"refs/remotes/foo/HEAD",
            ],
            expand_ref_name(b"foo"),
        )


class ReadPackedRefsTests(TestCase):
    def test_simple(self) -> None:
        lines = [
            b"# pack-refs with: peeled \n",
            ONES + b" refs/heads/master\n",
            TWOS + b" refs/tags/v1.0\n",
            b"^" + THREES + b"\n",
        ]
        self.assertEqual(
            [
                (ONES, b"refs/heads/master", None),
                (TWOS, b"refs/tags/v1.0", THREES),
            ],
            list(read_packed_refs(lines)),
        )

    def test_crlf(self) -> None:
        lines = [ONES + b" refs/heads/master\r\n"]
        self.assertEqual(
            [(ONES, b"refs/heads/master", None)], list(read_packed_refs(lines))
        )

    def test_peeled_without_ref(self) -> None:
        lines = [b"^" + ONES + b"\n"]
        self.assertRaises(PackedRefsException, list, read_packed_refs(lines))

    def test_double_peeled(self) -> None:
        lines = [
            ONES + b" refs/tags/v1.0\n",
            b"^" + TWOS + b"\n",
            b"^" + THREES + b"\n",
        ]
        self.assertRaises(PackedRefsException, list, read_packed_refs(lines))

    def test_invalid_sha(self) -> None:
        lines = [b"xyz refs/heads/master\n"]
        self.assertRaises(PackedRefsException, list, read_packed_refs(lines))

    def test_invalid_line(self) -> None:
        lines = [ONES + b"\n"]
        self.assertRaises(PackedRefsException, list, read_packed_refs(lines))

    def test_invalid_name(self) -> None:
        lines = [ONES + b" refs/heads/foo..bar\n"]
        self.assertRaises(PackedRefsException, list, read_packed_refs(lines))

    def test_lenient(self) -> None:
        lines = [
            b"garbage\n",
            ONES + b" refs/heads/master\n",
            b"^notasha\n",
        ]
        with self.assertLogs("mygit.refs", level="WARNING"):
            self.assertEqual(
                [(ONES, b"refs/heads/master", None)],
                list(read_packed_refs(lines, strict=False)),
            )

    def test_hex_length(self) -> None:
        lines = [ONES + b" refs/heads/master\n"]
        self.assertRaises(
            PackedRefsException, list, read_packed_refs(lines, hex_length=64)
        )
        self.assertEqual(
            [(b"1" * 64, b"refs/heads/master", None)],
            list(read_packed_refs([b"1" * 64 + b" refs/heads/master\n"], 64)),
        )


class DiskRefsContainerTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.controldir = init_bare_repo(os.path.join(self.mkdtemp(), "repo.git"))
        self.refs = DiskRefsContainer(self.controldir)

    def test_loose_ref(self) -> None:
        write_ref(self.controldir, b"refs/heads/master", ONES)
        self.assertEqual(ONES, self.refs[b"refs/heads/master"])
        self.assertEqual(ONES, self.refs.read_loose_ref(b"refs/heads/master"))
        self.assertIn(b"refs/heads/master", self.refs)

    def test_upper_case_sha(self) -> None:
        write_ref(self.controldir, b"refs/heads/master", b"A" * 40)
        self.assertEqual(b"a" * 40, self.refs[b"refs/heads/master"])

    def test_head_symref(self) -> None:
        write_ref(self.controldir, b"refs/heads/master", ONES)
        self.assertEqual(ONES, self.refs[b"HEAD"])
        self.assertEqual(b"refs/heads/master", self.refs.get_symref(b"HEAD"))
        self.assertIsNone(self.refs.get_symref(b"refs/heads/master"))
        self.assertEqual(
            ([b"HEAD", b"refs/heads/master"], ONES), self.refs.follow(b"HEAD")
        )

    def test_detached_head(self) -> None:
        write_ref(self.controldir, b"HEAD", TWOS)
        self.assertEqual(TWOS, self.refs[b"HEAD"])
        self.assertIsNone(self.refs.get_symref(b"HEAD"))

    def test_dangling_head(self) -> None:
        self.assertRaises(NotFound, self.refs.__getitem__, b"HEAD")
        self.assertEqual(
            ([b"HEAD", b"refs/heads/master"], None), self.refs.follow(b"HEAD")
        )
        self.assertEqual(b"refs/heads/master", self.refs.get_symref(b"HEAD"))
        self.assertIn(b"HEAD", self.refs.allkeys())

    def test_missing(self) -> None:
        self.assertRaises(NotFound, self.refs.__getitem__, b"refs/heads/missing")
        self.assertRaises(KeyError, self.refs.__getitem__, b"refs/heads/missing")
        self.assertNotIn(b"refs/heads/missing", self.refs)

    def test_symref_chain(self) -> None:
        write_ref(self.controldir, b"HEAD", b"ref: refs/heads/r1")
        for i in range(1, 4):
            write_ref(
                self.controldir,
                b"refs/heads/r%d" % i,
                b"ref: refs/heads/r%d" % (i + 1),
            )
        write_ref(self.controldir, b"refs/heads/r4", ONES)
        self.assertEqual(ONES, self.refs[b"HEAD"])

    def test_symref_chain_too_deep(self) -> None:
        write_ref(self.controldir, b"HEAD", b"ref: refs/heads/r1")
        for i in range(1, 6):
            write_ref(
                self.controldir,
                b"refs/heads/r%d" % i,
                b"ref: refs/heads/r%d" % (i + 1),
            )
        write_ref(self.controldir, b"refs/heads/r6", ONES)
        self.assertRaises(SymrefLoop, self.refs.__getitem__, b"HEAD")

    def test_symref_loop(self) -> None:
        write_ref(self.controldir, b"refs/heads/a", b"ref: refs/heads/b")
        write_ref(self.controldir, b"refs/heads/b", b"ref: refs/heads/a")
        self.assertRaises(SymrefLoop, self.refs.__getitem__, b"refs/heads/a")

    def test_symref_outside_refs(self) -> None:
        write_ref(self.controldir, b"HEAD", b"ref: config")
        self.assertRaises(NotFound, self.refs.__getitem__, b"HEAD")

    def test_malformed_loose_ref(self) -> None:
        write_ref(self.controldir, b"refs/heads/broken", b"not a sha")
        write_ref(self.controldir, b"refs/heads/master", ONES)
        self.assertRaises(CorruptFormat, self.refs.__getitem__, b"refs/heads/broken")
        self.assertNotIn(b"refs/heads/broken", self.refs)
        self.assertEqual(
            {b"refs/heads/master": ONES}, self.refs.as_dict(b"refs/heads/")
        )

    def test_refpath_outside_refs(self) -> None:
        self.assertRaises(NotFound, self.refs.refpath, b"config")
        self.assertRaises(NotFound, self.refs.refpath, b"refs/heads/../../config")
        self.assertRaises(NotFound, self.refs.__getitem__, b"objects/info")
        self.assertEqual(
            os.path.join(os.fsencode(self.controldir), b"refs", b"heads", b"x"),
            self.refs.refpath(b"refs/heads/x"),
        )

    def test_packed_refs(self) -> None:
        write_packed_refs(
            self.controldir,
            [(b"refs/heads/master", ONES), (b"refs/tags/v1.0", TWOS)],
            peeled={b"refs/tags/v1.0": THREES},
        )
        self.assertEqual(ONES, self.refs[b"refs/heads/master"])
        self.assertEqual(ONES, self.refs[b"HEAD"])
        self.assertEqual(TWOS, self.refs[b"refs/tags/v1.0"])
        self.assertEqual(THREES, self.refs.get_peeled(b"refs/tags/v1.0"))
        self.assertIsNone(self.refs.get_peeled(b"refs/heads/master"))
        self.assertIsNone(self.refs.read_loose_ref(b"refs/heads/master"))
        self.assertEqual(
            {b"refs/heads/master": ONES, b"refs/tags/v1.0": TWOS},
            self.refs.get_packed_refs(),
        )

    def test_loose_overrides_packed(self) -> None:
        write_packed_refs(self.controldir, [(b"refs/heads/master", ONES)])
        write_ref(self.controldir, b"refs/heads/master", TWOS)
        self.assertEqual(TWOS, self.refs[b"refs/heads/master"])

    def test_packed_refs_reloaded(self) -> None:
        write_packed_refs(self.controldir, [(b"refs/heads/master", ONES)])
        self.assertEqual(ONES, self.refs[b"refs/heads/master"])
        write_packed_refs(
            self.controldir,
            [(b"refs/heads/master", TWOS), (b"refs/heads/other", THREES)],
        )
        self.assertEqual(TWOS, self.refs[b"refs/heads/master"])
        self.assertEqual(THREES, self.refs[b"refs/heads/other"])
        os.remove(os.path.join(self.controldir, "packed-refs"))
        self.assertEqual({}, self.refs.get_packed_refs())
        self.assertNotIn(b"refs/heads/master", self.refs)

    def test_packed_refs_malformed_lines_skipped(self) -> None:
        with open(os.path.join(self.controldir, "packed-refs"), "wb") as f:
            f.write(b"this is garbage\n" + ONES + b" refs/heads/master\n")
        with self.assertLogs("mygit.refs", level="WARNING"):
            self.assertEqual(ONES, self.refs[b"refs/heads/master"])

    def test_keys(self) -> None:
        write_ref(self.controldir, b"refs/heads/master", ONES)
        write_ref(self.controldir, b"refs/heads/feature/x", ONES)
        write_ref(self.controldir, b"refs/heads/bad.lock", ONES)
        write_packed_refs(self.controldir, [(b"refs/tags/v1.0", TWOS)])
        self.assertEqual(
            [b"refs/heads/feature/x", b"refs/heads/master", b"refs/tags/v1.0"],
            self.refs.keys(),
        )
        self.assertEqual([b"refs/tags/v1.0"], self.refs.keys(b"refs/tags/"))
        self.assertEqual(
            {
                b"HEAD",
                b"refs/heads/feature/x",
                b"refs/heads/master",
                b"refs/tags/v1.0",
            },
            self.refs.allkeys(),
        )

    def test_as_dict(self) -> None:
        write_ref(self.controldir, b"refs/heads/master", ONES)
        write_ref(self.controldir, b"refs/heads/dangling", b"ref: refs/heads/nowhere")
        self.assertEqual({b"refs/heads/master": ONES}, self.refs.as_dict())

    def test_sha256(self) -> None:
        refs = DiskRefsContainer(self.controldir, object_format=SHA256)
        write_ref(self.controldir, b"refs/heads/master", b"a" * 64)
        self.assertEqual(b"a" * 64, refs[b"HEAD"])
        write_ref(self.controldir, b"refs/heads/short", ONES)
        self.assertRaises(CorruptFormat, refs.__getitem__, b"refs/heads/short")
