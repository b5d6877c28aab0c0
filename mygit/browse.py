# browse.py -- Read-only queries over a single repository.
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

"""Read-only queries over a single repository.

:class:`RepositoryBrowser` answers the questions a repository web front end
asks: which refs exist, what a commit, tree or file contains, what the
history looks like and what changed. Results are plain named tuples that
can be handed to a template layer.

Listings report failures per item (the ``error`` field) so that a single
unreadable ref or file does not take the whole page down.
"""

__all__ = [
    "README_FILES",
    "BlobContent",
    "CommitDiff",
    "FileDiff",
    "Readme",
    "RefInfo",
    "RepositoryBrowser",
    "RepositorySummary",
]

import os
import stat
from typing import NamedTuple

from .diff_tree import TreeChange, tree_changes
from .errors import ITEM_ERRORS
from .log_utils import getLogger
from .objects import Commit, Identity, ObjectID, Tree, TreeEntry, valid_hexsha
from .patch import (
    DEFAULT_CONTEXT_LINES,
    BinaryChange,
    Hunk,
    blob_diff,
    object_diff,
)
from .refs import HEADREF, Ref, ref_kind
from .repo import Repo
from .walk import LogWalker

logger = getLogger(__name__)

README_FORMAT_PLAIN = "plain"
README_FORMAT_MARKDOWN = "markdown"
README_FORMAT_HTML = "html"

# Names looked up at the top of the tree, in order of preference.
README_FILES = (
    (b"README", README_FORMAT_PLAIN),
    (b"README.txt", README_FORMAT_PLAIN),
    (b"README.md", README_FORMAT_MARKDOWN),
    (b"README.mdown", README_FORMAT_MARKDOWN),
    (b"README.markdown", README_FORMAT_MARKDOWN),
    (b"README.html", README_FORMAT_HTML),
    (b"README.htm", README_FORMAT_HTML),
)


class RefInfo(NamedTuple):
    """A ref as shown in a ref listing.

    ``id`` and ``peeled`` are None when the ref could not be resolved, in
    which case ``error`` says why. ``peeled`` is only set for refs that
    point at annotated tags.
    """

    name: Ref
    id: ObjectID | None
    kind: str
    peeled: ObjectID | None = None
    error: Exception | None = None


class BlobContent(NamedTuple):
    data: bytes
    size: int


class FileDiff(NamedTuple):
    """The diff of a single file within a commit."""

    change: TreeChange
    result: list[Hunk] | BinaryChange | None
    error: Exception | None = None


class CommitDiff(NamedTuple):
    commit: Commit
    parent_id: ObjectID | None
    files: list[FileDiff]


class Readme(NamedTuple):
    name: bytes
    format: str
    data: bytes


class RepositorySummary(NamedTuple):
    """Overview of a repository as shown on an index page."""

    name: str
    description: bytes | None
    owner: bytes | None
    head: ObjectID | None
    last_modified: Identity | None
    is_empty: bool
    is_shallow: bool


def repo_name(repo: Repo) -> str:
    """Name of a repository: its working copy or bare directory name."""
    return os.path.basename(os.path.normpath(repo.path))


class RepositoryBrowser:
    """Read-only query interface for one repository."""

    def __init__(
        self, repo: Repo, name: str | None = None, close_repo: bool = True
    ) -> None:
        """Create a browser for an open repository.

        Args:
            repo: Repository to read from
            name: Name to report, defaults to the repository directory name
            close_repo: Whether :meth:`close` also closes repo; false for
                repositories shared with other browsers
        """
        self.repo = repo
        self.name = name if name is not None else repo_name(repo)
        self._close_repo = close_repo

    @classmethod
    def open(
        cls,
        path: str | os.PathLike[str],
        name: str | None = None,
        **kwargs: int,
    ) -> "RepositoryBrowser":
        """Open the repository at path.

        Keyword arguments are passed on to :class:`mygit.repo.Repo`.
        """
        return cls(Repo(path, **kwargs), name)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r}>"

    def __enter__(self) -> "RepositoryBrowser":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._close_repo:
            self.repo.close()

    def _parse(self, revision: bytes | str) -> ObjectID:
        if isinstance(revision, bytes) and valid_hexsha(
            revision, self.repo.object_format.hex_length
        ):
            return revision
        return self.repo.parse_revision(revision)

    def list_refs(self) -> list[RefInfo]:
        """List all refs below ``refs/``, sorted by name.

        A ref that cannot be resolved or peeled is listed with its error.
        """
        refs = self.repo.refs
        packed = refs.get_packed_refs()
        ret = []
        for name in sorted(refs.keys()):
            kind = ref_kind(name)
            try:
                sha = refs[name]
            except ITEM_ERRORS as e:
                logger.warning("Unable to resolve ref %r: %s", name, e)
                ret.append(RefInfo(name, None, kind, error=e))
                continue
            # A peeled line only applies while the loose ref has not moved on.
            peeled = refs.get_peeled(name) if packed.get(name) == sha else None
            if peeled is None:
                try:
                    peeled = self.repo.peel_sha(sha).id
                except ITEM_ERRORS as e:
                    logger.warning("Unable to peel ref %r: %s", name, e)
                    ret.append(RefInfo(name, sha, kind, error=e))
                    continue
            ret.append(RefInfo(name, sha, kind, peeled if peeled != sha else None))
        return ret

    def resolve_ref(self, name: Ref | str) -> ObjectID:
        if isinstance(name, str):
            name = name.encode("utf-8")
        return self.repo.resolve_ref(name)

    def get_commit(self, revision: bytes | str) -> Commit:
        return self.repo.get_commit_for(self._parse(revision))

    def get_tree(self, revision: bytes | str) -> list[TreeEntry]:
        """List the entries of a tree, or of a commit's root tree."""
        return self.repo.get_tree_for(self._parse(revision)).items()

    def get_blob(self, sha: ObjectID | str) -> BlobContent:
        blob = self.repo.get_blob(self._parse(sha))
        return BlobContent(blob.data, len(blob.data))

    def log(
        self,
        ref: bytes | str = HEADREF,
        limit: int | None = None,
        skip: int = 0,
        first_parent_only: bool = False,
    ) -> LogWalker:
        """Walk history backwards from a revision.

        The returned walker is lazy; commits are read as it advances. Unless
        first_parent_only is set, reaching the first merge loads all history
        below it at once, so deep pages of merge-heavy histories cost a full
        walk.

        Raises:
            NotFound: If ref does not name anything
        """
        return LogWalker(
            self.repo,
            [self._parse(ref)],
            limit=limit,
            skip=skip,
            first_parent_only=first_parent_only,
        )

    def _tree_id(self, revision: bytes | str | None) -> ObjectID | None:
        if revision is None:
            return None
        return self.repo.get_tree_for(self._parse(revision)).id

    def tree_diff(
        self, old: bytes | str | None, new: bytes | str | None
    ) -> list[TreeChange]:
        """Compare two trees, each given as a tree or commit revision.

        None stands for an empty tree.
        """
        return tree_changes(
            self.repo.object_store.__getitem__, self._tree_id(old), self._tree_id(new)
        )

    def blob_diff(
        self,
        old_id: ObjectID | None,
        new_id: ObjectID | None,
        context: int = DEFAULT_CONTEXT_LINES,
    ) -> list[Hunk] | BinaryChange:
        return blob_diff(self.repo.object_store.__getitem__, old_id, new_id, context)

    def commit_diff(
        self, revision: bytes | str, context: int = DEFAULT_CONTEXT_LINES
    ) -> CommitDiff:
        """Diff a commit against its first parent.

        A root commit is compared against the empty tree. A file whose
        contents cannot be read is reported with its error.
        """
        commit = self.get_commit(revision)
        parent_id = commit.parents[0] if commit.parents else None
        old_tree = self.repo.get_commit(parent_id).tree if parent_id else None
        lookup = self.repo.object_store.__getitem__
        files = []
        for change in tree_changes(lookup, old_tree, commit.tree):
            old = change.old
            new = change.new
            try:
                result = object_diff(
                    lookup,
                    (old.mode, old.sha) if old else (None, None),
                    (new.mode, new.sha) if new else (None, None),
                    context,
                )
            except ITEM_ERRORS as e:
                logger.warning("Unable to diff %r: %s", change.path, e)
                files.append(FileDiff(change, None, e))
            else:
                files.append(FileDiff(change, result))
        return CommitDiff(commit, parent_id, files)

    def tree_at_path(self, revision: bytes | str, path: bytes | str) -> TreeEntry:
        """Find the entry at path in a revision's tree.

        Raises:
            NotFound: If the path does not exist
        """
        if isinstance(path, str):
            path = path.encode("utf-8")
        tree = self.repo.get_tree_for(self._parse(revision))
        return self.repo.get_entry_at_path(tree.id, path)

    def readme(self, revision: bytes | str = HEADREF) -> Readme | None:
        """Find the README at the top of a revision's tree.

        Returns:
            The first README found, or None (also for empty repositories)
        """
        try:
            tree: Tree = self.repo.get_tree_for(self._parse(revision))
        except ITEM_ERRORS:
            return None
        for name, fmt in README_FILES:
            entry = tree.lookup(name)
            if entry is None or stat.S_ISDIR(entry.mode):
                continue
            try:
                blob = self.repo.get_blob(entry.sha)
            except ITEM_ERRORS as e:
                logger.warning("Unable to read %r: %s", name, e)
                continue
            return Readme(name, fmt, blob.data)
        return None

    def summary(self) -> RepositorySummary:
        """Describe the repository for an index page."""
        try:
            head: ObjectID | None = self.repo.head()
        except ITEM_ERRORS:
            head = None
        last_modified = None
        if head is not None:
            try:
                last_modified = self.repo.get_commit_for(head).committer
            except ITEM_ERRORS as e:
                logger.warning("Unable to read HEAD of %s: %s", self.name, e)
        try:
            is_empty = self.repo.is_empty()
        except ITEM_ERRORS:
            is_empty = True
        return RepositorySummary(
            name=self.name,
            description=self.repo.get_description(),
            owner=self.repo.get_owner(),
            head=head,
            last_modified=last_modified,
            is_empty=is_empty,
            is_shallow=bool(self.repo.get_shallow()),
        )
