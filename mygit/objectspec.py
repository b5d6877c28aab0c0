# objectspec.py -- Object specification
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

"""Object specification.

Supports a subset of gitrevisions(7): full and abbreviated object ids, ref
names (short or full), and any sequence of the ``^``, ``^N``, ``~N``,
``^{}``, ``^{commit}`` and ``^{tree}`` suffixes, optionally followed by
``:<path>``.
"""

__all__ = [
    "MIN_ABBREV_LENGTH",
    "parse_commit",
    "parse_revision",
    "parse_tree",
    "scan_for_short_id",
    "to_bytes",
]

import re
from typing import TYPE_CHECKING

from .errors import AmbiguousObjectName, InvalidRevision, NotFound
from .objects import Commit, ObjectID, ShaFile, Tag, Tree, valid_hexsha

if TYPE_CHECKING:
    from .object_store import DiskObjectStore
    from .repo import Repo

# Shortest abbreviated object id that will be expanded.
MIN_ABBREV_LENGTH = 4

_HEX_RE = re.compile(rb"^[0-9a-fA-F]+$")


def to_bytes(text: str | bytes) -> bytes:
    """Convert text to bytes.

    Args:
        text: Text to convert (str or bytes)

    Returns:
        Bytes representation of text
    """
    if isinstance(text, str):
        return text.encode("utf-8")
    return text


def _parse_number_suffix(suffix: bytes) -> tuple[int | None, bytes]:
    """Parse a number from the start of suffix, return (number, remaining)."""
    if not suffix or not suffix[0:1].isdigit():
        return None, suffix

    end = 1
    while end < len(suffix) and suffix[end : end + 1].isdigit():
        end += 1
    return int(suffix[:end]), suffix[end:]


def scan_for_short_id(object_store: "DiskObjectStore", prefix: bytes) -> ObjectID:
    """Scan an object store for an abbreviated object id.

    Raises:
        NotFound: If no object id starts with prefix
        AmbiguousObjectName: If more than one does
    """
    candidates = sorted(set(object_store.iter_prefix(prefix.lower())))
    if not candidates:
        raise NotFound(prefix)
    if len(candidates) > 1:
        raise AmbiguousObjectName(prefix, candidates)
    return candidates[0]


def _resolve_name(repo: "Repo", name: bytes) -> ObjectID:
    """Resolve a revision without suffixes to an object id."""
    if not name:
        raise InvalidRevision(name, "empty revision")
    hex_length = repo.object_format.hex_length
    if valid_hexsha(name, hex_length):
        name = name.lower()
        if name in repo.object_store:
            return name
    try:
        return repo.resolve_ref(name)
    except NotFound:
        pass
    if MIN_ABBREV_LENGTH <= len(name) < hex_length and _HEX_RE.match(name):
        return scan_for_short_id(repo.object_store, name)
    raise NotFound(name)


def _peel_to(repo: "Repo", sha: ObjectID, kind: bytes) -> ObjectID:
    obj = repo.peel_sha(sha)
    if kind == b"":
        return obj.id
    if kind == b"commit":
        return repo.get_commit_for(sha).id
    if kind == b"tree":
        return repo.get_tree_for(sha).id
    if kind == b"blob" and not isinstance(obj, (Commit, Tree)):
        return obj.id
    raise NotFound(sha)


def parse_revision(repo: "Repo", revision: bytes | str) -> ObjectID:
    """Parse a string referring to an object.

    Args:
        repo: A `Repo` object
        revision: A string referring to an object

    Returns:
        The id of the object

    Raises:
        NotFound: If the revision does not name an object
        AmbiguousObjectName: If an abbreviated id matches several objects
        InvalidRevision: If the revision can not be parsed
    """
    revision = to_bytes(revision)
    rev, sep, path = revision.partition(b":")
    if sep:
        tree = repo.get_tree_for(parse_revision(repo, rev or b"HEAD"))
        return repo.get_entry_at_path(tree.id, path).sha

    m = re.search(rb"[~^]", rev)
    if m is None:
        return _resolve_name(repo, rev)
    sha = _resolve_name(repo, rev[: m.start()])
    suffix = rev[m.start() :]
    while suffix:
        op, suffix = suffix[:1], suffix[1:]
        if op == b"^" and suffix[:1] == b"{":
            end = suffix.find(b"}")
            if end == -1:
                raise InvalidRevision(revision, "unterminated ^{")
            sha = _peel_to(repo, sha, suffix[1:end])
            suffix = suffix[end + 1 :]
            continue
        if op not in (b"~", b"^"):
            raise InvalidRevision(revision, "invalid revision")
        num, suffix = _parse_number_suffix(suffix)
        commit = repo.get_commit_for(sha)
        if op == b"~":
            for _ in range(1 if num is None else num):
                if not commit.parents:
                    raise NotFound(revision)
                commit = repo.get_commit(commit.parents[0])
            sha = commit.id
        elif num == 0:
            sha = commit.id
        else:
            n = 1 if num is None else num
            if n > len(commit.parents):
                raise NotFound(revision)
            sha = commit.parents[n - 1]
    return sha


def parse_commit(repo: "Repo", committish: bytes | str | Commit | Tag) -> Commit:
    """Parse a string referring to a single commit.

    Annotated tags are peeled.

    Raises:
        NotFound: When the commit can not be found
        NotCommitError: When the revision names something that is not a commit
    """
    if isinstance(committish, Commit):
        return committish
    if isinstance(committish, Tag):
        return repo.get_commit_for(committish.id)
    return repo.get_commit_for(parse_revision(repo, committish))


def parse_tree(repo: "Repo", treeish: bytes | str | Tree | Commit | Tag) -> Tree:
    """Parse a string referring to a tree.

    A commit (or a tag of a commit) stands for its root tree.
    """
    if isinstance(treeish, Tree):
        return treeish
    if isinstance(treeish, ShaFile):
        return repo.get_tree_for(treeish.id)
    return repo.get_tree_for(parse_revision(repo, treeish))
