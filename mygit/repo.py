# repo.py -- For dealing with git repositories.
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

"""Repository access.

This module contains the read-only :class:`Repo` class, which ties together
the configuration, the refs and the object store of a repository on disk.
"""

import os
from typing import IO

from .config import ConfigFile
from .errors import (
    CorruptFormat,
    NotBlobError,
    NotCommitError,
    NotFound,
    NotGitRepository,
    NotTagError,
    NotTreeError,
    Unsupported,
)
from .object_format import DEFAULT_OBJECT_FORMAT, ObjectFormat, get_object_format
from .object_store import DEFAULT_CACHE_SIZE, DiskObjectStore, tree_lookup_path
from .objects import (
    Blob,
    Commit,
    ObjectID,
    ShaFile,
    Tag,
    Tree,
    TreeEntry,
    valid_hexsha,
)
from .pack import DEFAULT_MAX_DELTA_DEPTH
from .refs import HEADREF, DiskRefsContainer, Ref, expand_ref_name

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
EXPORT_OK_FILENAME = "git-daemon-export-ok"

# Extensions that do not change how a repository is read.
_KNOWN_EXTENSIONS = (b"objectformat", b"worktreeconfig", b"noop", b"preciousobjects")

# Peeling stops after this many nested tags.
MAX_PEEL_DEPTH = 32


def read_gitfile(f: IO[bytes]) -> str:
    """Read a ``.git`` file.

    The first line of the file should start with "gitdir: "

    Args:
        f: File-like object to read from

    Returns:
        A path
    """
    cs = f.read()
    if not cs.startswith(b"gitdir: "):
        raise NotGitRepository("Expected file to start with 'gitdir: '")
    return os.fsdecode(cs[len(b"gitdir: ") :].rstrip(b"\r\n"))


class Repo:
    """A git repository backed by local disk, opened read-only.

    Both bare repositories and working copies (including ``.git`` files
    pointing elsewhere) can be opened.

    Attributes:
        path: Path to the working copy (if it exists) or repository control
            directory (if the repository is bare)
        bare: Whether this is a bare repository
    """

    def __init__(
        self,
        root: str | bytes | os.PathLike[str],
        *,
        cache_size: int = DEFAULT_CACHE_SIZE,
        max_delta_depth: int = DEFAULT_MAX_DELTA_DEPTH,
    ) -> None:
        """Open a repository on disk.

        Args:
            root: Path to the repository's root
            cache_size: Byte budget of the object cache
            max_delta_depth: Deepest delta chain that will be followed

        Raises:
            NotGitRepository: If no repository exists at root
            Unsupported: If the repository format or an extension is not
                understood
            CorruptFormat: If the repository config can not be parsed
        """
        root = os.fsdecode(os.fspath(root))
        hidden_path = os.path.join(root, CONTROLDIR)
        if os.path.isfile(hidden_path):
            self.bare = False
            with open(hidden_path, "rb") as f:
                path = read_gitfile(f)
            self._controldir = os.path.join(root, path)
        elif os.path.isdir(os.path.join(hidden_path, OBJECTDIR)):
            self.bare = False
            self._controldir = hidden_path
        elif os.path.isdir(os.path.join(root, OBJECTDIR)) and os.path.isdir(
            os.path.join(root, REFSDIR)
        ):
            self.bare = True
            self._controldir = root
        else:
            raise NotGitRepository(f"No git repository was found at {root}")
        self.path = root

        self._config = self._read_config()
        try:
            format_version = self._config.get_int("core", "repositoryformatversion", 0)
        except ValueError:
            raise CorruptFormat("core.repositoryformatversion is not an integer")
        if format_version not in (0, 1):
            raise Unsupported(f"Unsupported repository format version {format_version}")

        self.object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT
        if format_version == 1:
            for extension, value in self._config.items("extensions"):
                if extension not in _KNOWN_EXTENSIONS:
                    raise Unsupported(
                        f"Unsupported repository extension {extension.decode('utf-8', 'replace')}"
                    )
            try:
                object_format = self._config.get("extensions", "objectformat")
            except KeyError:
                pass
            else:
                self.object_format = get_object_format(object_format.decode("ascii"))

        self.object_store = DiskObjectStore(
            os.path.join(self._controldir, OBJECTDIR),
            object_format=self.object_format,
            cache_size=cache_size,
            max_delta_depth=max_delta_depth,
        )
        self.refs = DiskRefsContainer(self._controldir, self.object_format)

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    def __enter__(self) -> "Repo":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close any files opened by this repository."""
        self.object_store.close()

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def get_named_file(self, path: str) -> IO[bytes] | None:
        """Get a file from the control dir with a specific name.

        Args:
            path: The path to the file, relative to the control dir.

        Returns:
            An open file object, or None if the file does not exist.
        """
        try:
            return open(os.path.join(self._controldir, path.lstrip("/")), "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def _read_config(self) -> ConfigFile:
        path = os.path.join(self._controldir, "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            ret = ConfigFile()
            ret.path = path
            return ret

    def get_config(self) -> ConfigFile:
        """Retrieve the config object, as read when the repository was opened."""
        return self._config

    def get_description(self) -> bytes | None:
        """Retrieve the repository description.

        The first line of the ``description`` file wins; ``gitweb.description``
        in the repository config is the fallback.
        """
        f = self.get_named_file("description")
        if f is not None:
            with f:
                return f.readline().rstrip(b"\r\n")
        try:
            return self._config.get("gitweb", "description")
        except KeyError:
            return None

    def get_owner(self) -> bytes | None:
        """Retrieve the owner named by ``gitweb.owner``, if set."""
        try:
            return self._config.get("gitweb", "owner")
        except KeyError:
            return None

    def get_shallow(self) -> set[ObjectID]:
        """Get the set of shallow commits.

        Returns:
            Set of commit ids whose parents are not present
        """
        f = self.get_named_file("shallow")
        if f is None:
            return set()
        with f:
            return {
                line.strip()
                for line in f
                if valid_hexsha(line.strip(), self.object_format.hex_length)
            }

    def is_export_ok(self) -> bool:
        """Check whether the repository carries the git-daemon export marker."""
        return os.path.exists(os.path.join(self._controldir, EXPORT_OK_FILENAME))

    # Refs

    def head(self) -> ObjectID:
        """Return the SHA1 pointed at by HEAD.

        Raises:
            NotFound: If HEAD does not resolve, e.g. in an empty repository
        """
        return self.refs[HEADREF]

    def head_branch(self) -> Ref | None:
        """Return the ref HEAD points at, or None if HEAD is detached."""
        return self.refs.get_symref(HEADREF)

    def is_empty(self) -> bool:
        """Check whether the repository has no commits reachable from any ref."""
        try:
            self.head()
        except NotFound:
            pass
        else:
            return False
        return not self.refs.as_dict()

    def resolve_ref(self, name: Ref) -> ObjectID:
        """Resolve a ref name to an object id.

        Full names (``HEAD``, ``refs/...``) are looked up directly; short
        names are expanded the way git expands them. Symbolic refs are
        followed.

        Raises:
            NotFound: If no ref of that name exists
            CorruptFormat: If the ref is malformed or symrefs loop
        """
        for candidate in expand_ref_name(name):
            try:
                return self.refs[candidate]
            except NotFound:
                continue
        raise NotFound(name)

    def get_peeled(self, ref: Ref) -> ObjectID:
        """Get the peeled value of a ref.

        Returns:
            The id of the first non-tag object the ref leads to
        """
        sha = self.resolve_ref(ref)
        cached = self.refs.get_peeled(ref)
        # A loose ref may have moved since packed-refs was written.
        if cached is not None and self.refs.get_packed_refs().get(ref) == sha:
            return cached
        return self.peel_sha(sha).id

    def parse_revision(self, revision: bytes | str) -> ObjectID:
        """Resolve a revision such as ``main~2`` or ``v1.0^{}`` to an object id.

        See :func:`mygit.objectspec.parse_revision`.
        """
        from .objectspec import parse_revision

        return parse_revision(self, revision)

    # Objects

    def __getitem__(self, sha: ObjectID) -> ShaFile:
        return self.object_store[sha]

    def __contains__(self, sha: ObjectID) -> bool:
        return sha in self.object_store

    def get_object(self, sha: ObjectID) -> ShaFile:
        """Retrieve the object with the specified SHA."""
        return self.object_store[sha]

    def get_commit(self, sha: ObjectID) -> Commit:
        obj = self.object_store[sha]
        if not isinstance(obj, Commit):
            raise NotCommitError(sha)
        return obj

    def get_tree(self, sha: ObjectID) -> Tree:
        obj = self.object_store[sha]
        if not isinstance(obj, Tree):
            raise NotTreeError(sha)
        return obj

    def get_blob(self, sha: ObjectID) -> Blob:
        obj = self.object_store[sha]
        if not isinstance(obj, Blob):
            raise NotBlobError(sha)
        return obj

    def get_tag(self, sha: ObjectID) -> Tag:
        obj = self.object_store[sha]
        if not isinstance(obj, Tag):
            raise NotTagError(sha)
        return obj

    def peel_sha(self, sha: ObjectID) -> ShaFile:
        """Follow annotated tags until a non-tag object is reached.

        Raises:
            CorruptFormat: If tags are nested implausibly deep
        """
        obj = self.object_store[sha]
        depth = 0
        while isinstance(obj, Tag):
            depth += 1
            if depth > MAX_PEEL_DEPTH:
                raise CorruptFormat(f"tag chain from {sha!r} is too deep")
            obj = self.object_store[obj.object[1]]
        return obj

    def get_commit_for(self, sha: ObjectID) -> Commit:
        """Return the commit an id denotes, peeling annotated tags."""
        obj = self.peel_sha(sha)
        if not isinstance(obj, Commit):
            raise NotCommitError(obj.id)
        return obj

    def get_tree_for(self, sha: ObjectID) -> Tree:
        """Return the tree an id denotes: a tree, or a commit's (or tag's) tree."""
        obj = self.peel_sha(sha)
        if isinstance(obj, Commit):
            return self.get_tree(obj.tree)
        if not isinstance(obj, Tree):
            raise NotTreeError(obj.id)
        return obj

    def get_entry_at_path(self, tree_id: ObjectID, path: bytes) -> TreeEntry:
        """Find the tree entry at a path below a tree.

        An empty path denotes the tree itself.

        Raises:
            NotFound: If any path component is absent, or descends through
                something that is not a directory
        """
        path = path.strip(b"/")
        mode, sha = tree_lookup_path(self.object_store.__getitem__, tree_id, path)
        return TreeEntry(path, mode, sha)
