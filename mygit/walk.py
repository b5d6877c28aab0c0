# walk.py -- Walking commit history.
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

"""Walking commit history.

:class:`LogWalker` is an explicit cursor over the history reachable from a
set of starting points. In first-parent mode it follows ``parents[0]`` and
reads one commit per step. Otherwise it emits every reachable commit once,
never before any of its descendants, preferring the newest commit among
those that are ready.

Commits that cannot be read are reported as entries carrying the error;
their ancestry is not walked.
"""

__all__ = [
    "STATE_EXHAUSTED",
    "STATE_FAILED",
    "STATE_NOT_STARTED",
    "STATE_POSITIONED",
    "LogWalker",
    "WalkEntry",
]

import heapq
from collections import defaultdict
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from .diff_tree import TreeChange, tree_changes
from .errors import ITEM_ERRORS, CorruptFormat, NotFound
from .log_utils import getLogger
from .objects import Commit, ObjectID

if TYPE_CHECKING:
    from .repo import Repo

STATE_NOT_STARTED = "not-started"
STATE_POSITIONED = "positioned"
STATE_EXHAUSTED = "exhausted"
STATE_FAILED = "failed"

logger = getLogger(__name__)


class WalkEntry:
    """Object encapsulating a single result from a walk.

    Attributes:
        commit_id: Id of the commit
        commit: The parsed commit, or None if it could not be read
        error: The exception that prevented reading the commit, if any
    """

    __slots__ = ("_repo", "commit", "commit_id", "error")

    def __init__(
        self,
        repo: "Repo",
        commit_id: ObjectID,
        commit: Commit | None,
        error: Exception | None = None,
    ) -> None:
        self._repo = repo
        self.commit_id = commit_id
        self.commit = commit
        self.error = error

    def changes(self) -> list[TreeChange]:
        """Get the tree changes introduced by this commit.

        Merges are compared against their first parent.
        """
        if self.commit is None:
            raise self.error or NotFound(self.commit_id)
        if self.commit.parents:
            parent = self._repo.get_commit(self.commit.parents[0])
            old_tree: ObjectID | None = parent.tree
        else:
            old_tree = None
        return tree_changes(self._repo.object_store.__getitem__, old_tree, self.commit.tree)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WalkEntry):
            return NotImplemented
        return self.commit_id == other.commit_id and self.commit == other.commit

    def __repr__(self) -> str:
        if self.error is not None:
            return f"<WalkEntry commit={self.commit_id.decode('ascii')} error={self.error!r}>"
        return f"<WalkEntry commit={self.commit_id.decode('ascii')}>"


class LogWalker:
    """Explicit cursor over commit history.

    The cursor starts in the ``not-started`` state, moves to ``positioned``
    on the first call to :meth:`next` and ends in either ``exhausted`` or
    ``failed``. Both end states are terminal: further calls return None.

    Commits are read as the cursor advances. In full mode a single line of
    history is emitted as it is read, but everything reachable below the
    first merge is loaded before the next entry is returned, since
    topological order depends on all of it.
    """

    def __init__(
        self,
        repo: "Repo",
        start_ids: Sequence[ObjectID],
        limit: int | None = None,
        skip: int = 0,
        first_parent_only: bool = False,
    ) -> None:
        """Create a walker.

        Args:
            repo: Repository to read commits from
            start_ids: Ids to start from; annotated tags are peeled
            limit: Maximum number of entries to return, or None
            skip: Number of leading entries to skip
            first_parent_only: Only follow the first parent of each commit
        """
        if isinstance(start_ids, bytes):
            start_ids = [start_ids]
        if limit is not None and limit < 0:
            raise ValueError("limit must not be negative")
        if skip < 0:
            raise ValueError("skip must not be negative")
        self._repo = repo
        self.start_ids = list(start_ids)
        self.limit = limit
        self.skip = skip
        self.first_parent_only = first_parent_only
        self.state = STATE_NOT_STARTED
        self._shallow = repo.get_shallow()
        self._num_skipped = 0
        self._num_entries = 0
        self._entries: Iterator[WalkEntry] | None = None

    def _load(self, sha: ObjectID) -> WalkEntry:
        try:
            commit = self._repo.get_commit_for(sha)
        except ITEM_ERRORS as e:
            logger.warning("Unable to read commit %s: %s", sha.decode("ascii", "replace"), e)
            return WalkEntry(self._repo, sha, None, e)
        return WalkEntry(self._repo, commit.id, commit)

    def get_parents(self, entry: WalkEntry) -> list[ObjectID]:
        """Return the parents of an entry that the walk follows."""
        commit = entry.commit
        if commit is None or commit.id in self._shallow:
            return []
        if self.first_parent_only:
            return commit.parents[:1]
        return commit.parents

    def _walk_first_parent(self, start: ObjectID) -> Iterator[WalkEntry]:
        seen: set[ObjectID] = set()
        sha: ObjectID | None = start
        while sha is not None:
            entry = self._load(sha)
            if entry.commit_id in seen:
                raise CorruptFormat(
                    f"commit graph has a cycle through {entry.commit_id!r}"
                )
            seen.add(entry.commit_id)
            yield entry
            parents = self.get_parents(entry)
            sha = parents[0] if parents else None

    def _discover(
        self, starts: Sequence[ObjectID], emitted: set[ObjectID]
    ) -> tuple[list[WalkEntry], dict[ObjectID, WalkEntry]]:
        """Load every commit reachable from starts that was not yet emitted.

        Raises:
            CorruptFormat: If the commit graph has a cycle
        """
        on_path = 1
        done = 2
        nodes: dict[ObjectID, WalkEntry] = {}
        # Reaching an emitted commit again means it is its own ancestor.
        marks: dict[ObjectID, int] = dict.fromkeys(emitted, on_path)
        roots = []
        for start in starts:
            entry = self._load(start)
            if marks.get(entry.commit_id) == on_path:
                raise CorruptFormat(
                    f"commit graph has a cycle through {entry.commit_id!r}"
                )
            if entry.commit_id in nodes:
                continue
            nodes[entry.commit_id] = entry
            roots.append(entry)
            stack = [(entry.commit_id, iter(self.get_parents(entry)))]
            marks[entry.commit_id] = on_path
            while stack:
                sha, parents = stack[-1]
                parent_id = next(parents, None)
                if parent_id is None:
                    marks[sha] = done
                    stack.pop()
                    continue
                mark = marks.get(parent_id)
                if mark == on_path:
                    raise CorruptFormat(f"commit graph has a cycle through {parent_id!r}")
                if mark == done:
                    continue
                parent = self._load(parent_id)
                nodes[parent_id] = parent
                marks[parent_id] = on_path
                stack.append((parent_id, iter(self.get_parents(parent))))
        return roots, nodes

    def _walk_topological(self) -> Iterator[WalkEntry]:
        starts = list(dict.fromkeys(self.start_ids))
        emitted: set[ObjectID] = set()
        # While there is a single pending commit, nothing reachable can be
        # its descendant, so it is emitted without looking further.
        while len(starts) == 1:
            entry = self._load(starts[0])
            if entry.commit_id in emitted:
                raise CorruptFormat(
                    f"commit graph has a cycle through {entry.commit_id!r}"
                )
            emitted.add(entry.commit_id)
            yield entry
            starts = list(dict.fromkeys(self.get_parents(entry)))
        if not starts:
            return

        roots, nodes = self._discover(starts, emitted)
        num_children: dict[ObjectID, int] = defaultdict(int)
        for entry in nodes.values():
            for parent_id in set(self.get_parents(entry)):
                num_children[parent_id] += 1

        def key(sha: ObjectID) -> tuple[int, ObjectID]:
            commit = nodes[sha].commit
            return (-commit.commit_time if commit is not None else 0, sha)

        ready = [
            key(entry.commit_id) for entry in roots if not num_children[entry.commit_id]
        ]
        heapq.heapify(ready)
        while ready:
            _, sha = heapq.heappop(ready)
            entry = nodes[sha]
            yield entry
            for parent_id in set(self.get_parents(entry)):
                num_children[parent_id] -= 1
                if not num_children[parent_id]:
                    heapq.heappush(ready, key(parent_id))

    def _iter_entries(self) -> Iterator[WalkEntry]:
        if self.first_parent_only and len(self.start_ids) == 1:
            return self._walk_first_parent(self.start_ids[0])
        return self._walk_topological()

    def next(self) -> WalkEntry | None:
        """Advance the cursor.

        Returns:
            The next entry, or None once the walk has ended

        Raises:
            CorruptFormat: If the commit graph has a cycle; the walker is
                then in the ``failed`` state
        """
        if self.state in (STATE_EXHAUSTED, STATE_FAILED):
            return None
        if self.limit is not None and self._num_entries >= self.limit:
            self.state = STATE_EXHAUSTED
            return None
        if self._entries is None:
            self._entries = self._iter_entries()
            self.state = STATE_POSITIONED
        try:
            while True:
                entry = next(self._entries, None)
                if entry is None:
                    self.state = STATE_EXHAUSTED
                    return None
                if self._num_skipped < self.skip:
                    self._num_skipped += 1
                    continue
                self._num_entries += 1
                return entry
        except Exception:
            self.state = STATE_FAILED
            raise

    def __iter__(self) -> Iterator[WalkEntry]:
        return iter(self.next, None)
