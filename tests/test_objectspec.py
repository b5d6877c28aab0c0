# test_objectspec.py -- tests for objectspec.py
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

"""Tests for revision spec parsing."""

import os

from mygit.errors import (
    ITEM_ERRORS,
    AmbiguousObjectName,
    InvalidRevision,
    NotCommitError,
    NotFound,
)
from mygit.objects import Commit, Tree
from mygit.objectspec import (
    parse_commit,
    parse_revision,
    parse_tree,
    scan_for_short_id,
    to_bytes,
)
from mygit.repo import Repo

from . import TestCase
from .utils import build_commit_graph, init_bare_repo, write_ref, write_tag


class ObjectSpecTestCase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.path = init_bare_repo(os.path.join(self.mkdtemp(), "a.git"))
        self.objects_dir = os.path.join(self.path, "objects")
        self.c1, self.c2, self.c3, self.c4 = build_commit_graph(
            self.objects_dir,
            [[1], [2, 1], [3, 1], [4, 2, 3]],
            trees={
                1: [(b"a.txt", b"one\n")],
                2: [(b"a.txt", b"two\n")],
                3: [(b"a.txt", b"one\n"), (b"dir/b.txt", b"b\n")],
                4: [(b"a.txt", b"two\n"), (b"dir/b.txt", b"b\n")],
            },
        )
        self.tag = write_tag(self.objects_dir, self.c3, name=b"v1.0")
        write_ref(self.path, b"refs/heads/master", self.c4)
        write_ref(self.path, b"refs/tags/v1.0", self.tag)
        self.repo = Repo(self.path)
        self.addCleanup(self.repo.close)

    def tree_of(self, commit_id: bytes) -> bytes:
        return self.repo.get_commit(commit_id).tree


class ParseRevisionTests(ObjectSpecTestCase):
    def test_full_id(self) -> None:
        self.assertEqual(self.c2, parse_revision(self.repo, self.c2))
        self.assertEqual(self.c2, parse_revision(self.repo, self.c2.upper()))
        self.assertEqual(self.c2, parse_revision(self.repo, self.c2.decode("ascii")))

    def test_abbreviated_id(self) -> None:
        self.assertEqual(self.c2, parse_revision(self.repo, self.c2[:10]))
        self.assertEqual(self.c2, parse_revision(self.repo, self.c2[:10].upper()))

    def test_abbreviation_too_short(self) -> None:
        self.assertRaises(NotFound, parse_revision, self.repo, self.c2[:3])

    def test_full_id_missing(self) -> None:
        self.assertRaises(NotFound, parse_revision, self.repo, b"f" * 40)

    def test_ambiguous(self) -> None:
        os.makedirs(os.path.join(self.objects_dir, "de"), exist_ok=True)
        for name in ("adbeef" + "0" * 32, "adbeef" + "1" * 32):
            with open(os.path.join(self.objects_dir, "de", name), "wb") as f:
                f.write(b"")
        with self.assertRaises(AmbiguousObjectName) as cm:
            parse_revision(self.repo, b"deadbeef")
        self.assertEqual(2, len(cm.exception.candidates))

    def test_ref_names(self) -> None:
        self.assertEqual(self.c4, parse_revision(self.repo, b"HEAD"))
        self.assertEqual(self.c4, parse_revision(self.repo, b"master"))
        self.assertEqual(self.c4, parse_revision(self.repo, b"refs/heads/master"))
        self.assertEqual(self.tag, parse_revision(self.repo, b"v1.0"))

    def test_ref_before_abbreviation(self) -> None:
        write_ref(self.path, b"refs/heads/" + self.c2[:8], self.c1)
        self.assertEqual(self.c1, parse_revision(self.repo, self.c2[:8]))

    def test_missing(self) -> None:
        self.assertRaises(NotFound, parse_revision, self.repo, b"nonexistent")
        self.assertRaises(KeyError, parse_revision, self.repo, b"nonexistent")

    def test_empty(self) -> None:
        self.assertRaises(InvalidRevision, parse_revision, self.repo, b"")

    def test_invalid_suffix(self) -> None:
        self.assertRaises(InvalidRevision, parse_revision, self.repo, b"HEAD~x")
        self.assertRaises(InvalidRevision, parse_revision, self.repo, "master^2x")
        with self.assertRaises(ITEM_ERRORS) as cm:
            parse_revision(self.repo, b"master~x")
        self.assertIsInstance(cm.exception, NotFound)
        self.assertEqual(b"master~x", cm.exception.revision)
        self.assertEqual("invalid revision: 'master~x'", str(cm.exception))

    def test_first_parent(self) -> None:
        self.assertEqual(self.c2, parse_revision(self.repo, b"HEAD^"))
        self.assertEqual(self.c2, parse_revision(self.repo, b"HEAD^1"))
        self.assertEqual(self.c2, parse_revision(self.repo, b"HEAD~"))
        self.assertEqual(self.c2, parse_revision(self.repo, b"HEAD~1"))
        self.assertEqual(self.c1, parse_revision(self.repo, b"HEAD~2"))
        self.assertEqual(self.c1, parse_revision(self.repo, b"HEAD^^"))
        self.assertEqual(self.c1, parse_revision(self.repo, b"HEAD~1^"))

    def test_second_parent(self) -> None:
        self.assertEqual(self.c3, parse_revision(self.repo, b"HEAD^2"))
        self.assertEqual(self.c1, parse_revision(self.repo, b"HEAD^2~1"))

    def test_zero(self) -> None:
        self.assertEqual(self.c4, parse_revision(self.repo, b"HEAD^0"))
        self.assertEqual(self.c4, parse_revision(self.repo, b"HEAD~0"))
        self.assertEqual(self.c3, parse_revision(self.repo, b"v1.0^0"))

    def test_parent_out_of_range(self) -> None:
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD^3")
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD~3")
        self.assertRaises(NotFound, parse_revision, self.repo, self.c1 + b"^")

    def test_parent_of_tag(self) -> None:
        self.assertEqual(self.c1, parse_revision(self.repo, b"v1.0^"))
        self.assertEqual(self.c1, parse_revision(self.repo, b"v1.0~1"))

    def test_peel(self) -> None:
        self.assertEqual(self.c3, parse_revision(self.repo, b"v1.0^{}"))
        self.assertEqual(self.c3, parse_revision(self.repo, b"v1.0^{commit}"))
        self.assertEqual(self.tree_of(self.c3), parse_revision(self.repo, b"v1.0^{tree}"))
        self.assertEqual(self.tree_of(self.c4), parse_revision(self.repo, b"HEAD^{tree}"))
        self.assertEqual(self.c2, parse_revision(self.repo, b"HEAD^{}^"))

    def test_peel_wrong_type(self) -> None:
        tree_id = self.tree_of(self.c4)
        self.assertRaises(NotFound, parse_revision, self.repo, tree_id + b"^{commit}")
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD^{blob}")
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD^{frob}")

    def test_peel_unterminated(self) -> None:
        self.assertRaises(InvalidRevision, parse_revision, self.repo, b"HEAD^{tree")
        self.assertRaises(NotFound, parse_revision, self.repo, "master^{")

    def test_parent_of_tree(self) -> None:
        tree_id = self.tree_of(self.c4)
        self.assertRaises(NotCommitError, parse_revision, self.repo, tree_id + b"^")

    def test_path(self) -> None:
        blob_id = self.repo.get_tree(self.tree_of(self.c4))[b"a.txt"][1]
        self.assertEqual(blob_id, parse_revision(self.repo, b"HEAD:a.txt"))
        self.assertEqual(blob_id, parse_revision(self.repo, b":a.txt"))
        self.assertEqual(blob_id, parse_revision(self.repo, "master:a.txt"))
        dir_id = self.repo.get_tree(self.tree_of(self.c4))[b"dir"][1]
        self.assertEqual(dir_id, parse_revision(self.repo, b"HEAD:dir"))
        self.assertEqual(
            self.repo.get_tree(dir_id)[b"b.txt"][1],
            parse_revision(self.repo, b"v1.0:dir/b.txt"),
        )
        self.assertEqual(self.tree_of(self.c4), parse_revision(self.repo, b"HEAD:"))

    def test_path_of_parent(self) -> None:
        blob_id = self.repo.get_tree(self.tree_of(self.c1))[b"a.txt"][1]
        self.assertEqual(blob_id, parse_revision(self.repo, b"HEAD~2:a.txt"))

    def test_missing_path(self) -> None:
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD:missing")
        self.assertRaises(NotFound, parse_revision, self.repo, b"HEAD~1:dir/b.txt")


class ParseCommitTests(ObjectSpecTestCase):
    def test_string(self) -> None:
        commit = parse_commit(self.repo, b"master")
        self.assertIsInstance(commit, Commit)
        self.assertEqual(self.c4, commit.id)

    def test_tag(self) -> None:
        self.assertEqual(self.c3, parse_commit(self.repo, b"v1.0").id)
        self.assertEqual(self.c3, parse_commit(self.repo, self.repo[self.tag]).id)

    def test_commit_object(self) -> None:
        commit = self.repo[self.c2]
        self.assertIs(commit, parse_commit(self.repo, commit))

    def test_not_a_commit(self) -> None:
        self.assertRaises(NotCommitError, parse_commit, self.repo, self.tree_of(self.c1))

    def test_missing(self) -> None:
        self.assertRaises(NotFound, parse_commit, self.repo, b"nonexistent")


class ParseTreeTests(ObjectSpecTestCase):
    def test_commit(self) -> None:
        tree = parse_tree(self.repo, b"HEAD")
        self.assertIsInstance(tree, Tree)
        self.assertEqual(self.tree_of(self.c4), tree.id)

    def test_tree_id(self) -> None:
        tree_id = self.tree_of(self.c2)
        self.assertEqual(tree_id, parse_tree(self.repo, tree_id).id)

    def test_objects(self) -> None:
        tree = self.repo[self.tree_of(self.c2)]
        self.assertIs(tree, parse_tree(self.repo, tree))
        self.assertEqual(
            self.tree_of(self.c3), parse_tree(self.repo, self.repo[self.tag]).id
        )
        self.assertEqual(
            self.tree_of(self.c1), parse_tree(self.repo, self.repo[self.c1]).id
        )


class ScanForShortIdTests(ObjectSpecTestCase):
    def test_unique(self) -> None:
        self.assertEqual(
            self.c1, scan_for_short_id(self.repo.object_store, self.c1[:6])
        )

    def test_missing(self) -> None:
        self.assertRaises(NotFound, scan_for_short_id, self.repo.object_store, b"0000ff")


class ToBytesTests(TestCase):
    def test_conversion(self) -> None:
        self.assertEqual(b"HEAD", to_bytes("HEAD"))
        self.assertEqual(b"HEAD", to_bytes(b"HEAD"))
