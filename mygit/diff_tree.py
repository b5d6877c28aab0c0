# diff_tree.py -- Utilities for diffing files and trees.
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

"""Utilities for diffing trees."""

__all__ = [
    "CHANGE_ADD",
    "CHANGE_DELETE",
    "CHANGE_MODIFY",
    "CHANGE_TYPE",
    "TreeChange",
    "tree_changes",
    "walk_trees",
]

import stat
from collections.abc import Callable, Iterator
from typing import NamedTuple

from .errors import NotTreeError
from .objects import ObjectID, ShaFile, Tree, TreeEntry, mode_kind

# TreeChange type constants.
CHANGE_ADD = "add"
CHANGE_MODIFY = "modify"
CHANGE_DELETE = "delete"
CHANGE_TYPE = "typechange"


class TreeChange(NamedTuple):
    """Named tuple a single change between two trees."""

    type: str
    old: TreeEntry | None
    new: TreeEntry | None

    @classmethod
    def add(cls, new: TreeEntry) -> "TreeChange":
        return cls(CHANGE_ADD, None, new)

    @classmethod
    def delete(cls, old: TreeEntry) -> "TreeChange":
        return cls(CHANGE_DELETE, old, None)

    @property
    def path(self) -> bytes:
        """Path of the changed entry; the new path where both sides exist."""
        entry = self.new if self.new is not None else self.old
        assert entry is not None
        return entry.path


def _tree_entries(path: bytes, tree: Tree | None) -> list[TreeEntry]:
    if tree is None:
        return []
    return sorted((entry.in_path(path) for entry in tree.iteritems()), key=lambda e: e.path)


def _merge_entries(
    path: bytes, tree1: Tree | None, tree2: Tree | None
) -> list[tuple[TreeEntry | None, TreeEntry | None]]:
    """Merge the entries of two trees.

    Args:
        path: A path to prepend to all tree entry names.
        tree1: The first Tree object to iterate, or None.
        tree2: The second Tree object to iterate, or None.

    Returns:
        A list of pairs of TreeEntry objects for each pair of entries in
        the trees. If an entry exists in one tree but not the other, the other
        entry will be None. If both entries exist, they have the same path.
    """
    entries1 = _tree_entries(path, tree1)
    entries2 = _tree_entries(path, tree2)
    i1 = i2 = 0
    len1 = len(entries1)
    len2 = len(entries2)

    result: list[tuple[TreeEntry | None, TreeEntry | None]] = []
    while i1 < len1 and i2 < len2:
        entry1 = entries1[i1]
        entry2 = entries2[i2]
        if entry1.path < entry2.path:
            result.append((entry1, None))
            i1 += 1
        elif entry1.path > entry2.path:
            result.append((None, entry2))
            i2 += 1
        else:
            result.append((entry1, entry2))
            i1 += 1
            i2 += 1
    for i in range(i1, len1):
        result.append((entries1[i], None))
    for i in range(i2, len2):
        result.append((None, entries2[i]))
    return result


def _is_tree(entry: TreeEntry | None) -> bool:
    return entry is not None and stat.S_ISDIR(entry.mode)


def _load_tree(lookup_obj: Callable[[ObjectID], ShaFile], sha: ObjectID) -> Tree:
    obj = lookup_obj(sha)
    if not isinstance(obj, Tree):
        raise NotTreeError(sha)
    return obj


def walk_trees(
    lookup_obj: Callable[[ObjectID], ShaFile],
    tree1_id: ObjectID | None,
    tree2_id: ObjectID | None,
    prune_identical: bool = True,
) -> Iterator[tuple[TreeEntry | None, TreeEntry | None]]:
    """Walk all the entries of two trees.

    Iteration is depth-first pre-order, as in e.g. os.walk, with entries
    of a tree visited in name order. Subtrees are expanded from an explicit
    work list rather than by recursion.

    Args:
        lookup_obj: Callback for retrieving objects by id
        tree1_id: The id of the first tree, or None.
        tree2_id: The id of the second tree, or None.
        prune_identical: If True, identical subtrees will not be walked.

    Returns:
        Iterator over pairs of TreeEntry objects for each pair of entries
        in the trees and their subtrees. If an entry exists in one tree but
        not the other, the other entry will be None.

    Raises:
        NotTreeError: If a directory entry names something that is not a tree
    """
    entry1 = TreeEntry(b"", stat.S_IFDIR, tree1_id) if tree1_id else None
    entry2 = TreeEntry(b"", stat.S_IFDIR, tree2_id) if tree2_id else None
    todo: list[tuple[TreeEntry | None, TreeEntry | None]] = [(entry1, entry2)]
    while todo:
        entry1, entry2 = todo.pop()
        is_tree1 = _is_tree(entry1)
        is_tree2 = _is_tree(entry2)
        if prune_identical and is_tree1 and is_tree2 and entry1 == entry2:
            continue

        tree1 = _load_tree(lookup_obj, entry1.sha) if is_tree1 and entry1 else None
        tree2 = _load_tree(lookup_obj, entry2.sha) if is_tree2 and entry2 else None
        path = (entry1.path if entry1 else None) or (entry2.path if entry2 else b"")

        if tree1 is not None or tree2 is not None:
            todo.extend(reversed(_merge_entries(path, tree1, tree2)))
        yield entry1, entry2


def _skip_tree(entry: TreeEntry | None) -> TreeEntry | None:
    if entry is None or stat.S_ISDIR(entry.mode):
        return None
    return entry


def tree_changes(
    lookup_obj: Callable[[ObjectID], ShaFile],
    tree1_id: ObjectID | None,
    tree2_id: ObjectID | None,
) -> list[TreeChange]:
    """Find the differences between the contents of two trees.

    Only non-tree entries are reported. Where a path is a tree on one side
    and something else on the other, the non-tree is reported as deleted
    or added and the files in the tree are reported individually.

    Args:
        lookup_obj: Callback for retrieving objects by id, e.g. an object
            store's ``__getitem__``
        tree1_id: The id of the source tree, or None for an empty tree
        tree2_id: The id of the target tree, or None for an empty tree

    Returns:
        List of TreeChange instances, in path order
    """
    changes = []
    for entry1, entry2 in walk_trees(lookup_obj, tree1_id, tree2_id):
        if entry1 == entry2:
            continue

        # Treat entries for trees as missing.
        entry1 = _skip_tree(entry1)
        entry2 = _skip_tree(entry2)

        if entry1 is not None and entry2 is not None:
            if entry1 == entry2:
                continue
            if mode_kind(entry1.mode) != mode_kind(entry2.mode):
                change_type = CHANGE_TYPE
            else:
                change_type = CHANGE_MODIFY
        elif entry1 is not None:
            change_type = CHANGE_DELETE
        elif entry2 is not None:
            change_type = CHANGE_ADD
        else:
            # Both were None because at least one was a tree.
            continue
        changes.append(TreeChange(change_type, entry1, entry2))
    return changes
