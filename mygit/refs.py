# refs.py -- For dealing with git refs
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

"""Ref handling.

Refs are the only part of a repository that changes while it is being
served: pushes rewrite loose ref files and repack them into
``packed-refs``. Nothing here caches a ref value. Loose refs are read from
disk on every lookup; the parsed ``packed-refs`` table is kept only for as
long as the file's size, mtime and inode stay the same.
"""

import os
import threading
from collections.abc import Iterable, Iterator

from .errors import CorruptFormat, NotFound, PackedRefsException, SymrefLoop
from .log_utils import getLogger
from .object_format import DEFAULT_OBJECT_FORMAT, ObjectFormat
from .objects import ObjectID, valid_hexsha

Ref = bytes

HEADREF = b"HEAD"
SYMREF = b"ref: "
LOCAL_BRANCH_PREFIX = b"refs/heads/"
LOCAL_TAG_PREFIX = b"refs/tags/"
LOCAL_REMOTE_PREFIX = b"refs/remotes/"
BAD_REF_CHARS = set(b"\177 ~^:?*[")

# git gives up after this many symbolic hops.
MAX_SYMREF_DEPTH = 5

REF_KIND_BRANCH = "branch"
REF_KIND_TAG = "tag"
REF_KIND_REMOTE = "remote"
REF_KIND_OTHER = "other"

logger = getLogger(__name__)


def parse_symref_value(contents: bytes) -> bytes:
    """Parse a symref value.

    Args:
        contents: Contents to parse

    Returns:
        Destination
    """
    if contents.startswith(SYMREF):
        return contents[len(SYMREF) :].rstrip(b"\r\n")
    raise ValueError(contents)


def check_ref_format(refname: Ref) -> bool:
    """Check if a refname is correctly formatted.

    Implements all the same rules as git-check-ref-format[1].

    [1]
    http://www.kernel.org/pub/software/scm/git/docs/git-check-ref-format.html

    Args:
        refname: The refname to check

    Returns:
        True if refname is valid, False otherwise
    """
    # These could be combined into one big expression, but are listed
    # separately to parallel [1].
    if b"/." in refname or refname.startswith(b"."):
        return False
    if b"/" not in refname:
        return False
    if b".." in refname:
        return False
    for c in refname:
        if c < 0o40 or c in BAD_REF_CHARS:
            return False
    if refname[-1:] in (b"/", b"."):
        return False
    if refname.endswith(b".lock"):
        return False
    if b"@{" in refname:
        return False
    if b"\\" in refname:
        return False
    return True


def ref_kind(name: Ref) -> str:
    """Classify a full ref name as branch, tag, remote or other."""
    if name.startswith(LOCAL_BRANCH_PREFIX):
        return REF_KIND_BRANCH
    if name.startswith(LOCAL_TAG_PREFIX):
        return REF_KIND_TAG
    if name.startswith(LOCAL_REMOTE_PREFIX):
        return REF_KIND_REMOTE
    return REF_KIND_OTHER


def shorten_ref_name(ref: bytes) -> bytes:
    """Convert a full ref name to its short form.

    Examples:
      >>> shorten_ref_name(b"refs/heads/master")
      b'master'
      >>> shorten_ref_name(b"refs/remotes/origin/main")
      b'origin/main'
      >>> shorten_ref_name(b"HEAD")
      b'HEAD'
    """
    for prefix in (LOCAL_BRANCH_PREFIX, LOCAL_REMOTE_PREFIX, LOCAL_TAG_PREFIX):
        if ref.startswith(prefix):
            return ref[len(prefix) :]
    return ref


def expand_ref_name(name: bytes) -> list[Ref]:
    """List the full ref names a short name may refer to, in git's order.

    See the "SPECIFYING REVISIONS" section of gitrevisions(7).
    """
    return [
        name,
        b"refs/" + name,
        LOCAL_TAG_PREFIX + name,
        LOCAL_BRANCH_PREFIX + name,
        LOCAL_REMOTE_PREFIX + name,
        LOCAL_REMOTE_PREFIX + name + b"/" + HEADREF,
    ]


def _split_ref_line(line: bytes, hex_length: int | None = None) -> tuple[bytes, bytes]:
    """Split a single ref line into a tuple of SHA1 and name."""
    fields = line.rstrip(b"\n\r").split(b" ")
    if len(fields) != 2:
        raise PackedRefsException(f"invalid ref line {line!r}")
    sha, name = fields
    if not valid_hexsha(sha, hex_length):
        raise PackedRefsException(f"Invalid hex sha {sha!r}")
    if not check_ref_format(name):
        raise PackedRefsException(f"invalid ref name {name!r}")
    return (sha, name)


def read_packed_refs(
    lines: Iterable[bytes], hex_length: int | None = None, strict: bool = True
) -> Iterator[tuple[bytes, bytes, bytes | None]]:
    """Read the lines of a packed-refs file.

    Yields tuples with SHA1s, ref names and peeled SHA1s (or None). A peeled
    line (``^<sha>``) applies to the ref on the line before it.

    Args:
        lines: Lines of the file
        hex_length: Length of hex object ids in this repository
        strict: If False, malformed lines are logged and skipped instead of
            raising PackedRefsException
    """
    last: tuple[bytes, bytes] | None = None
    for lineno, line in enumerate(lines, 1):
        line = line.rstrip(b"\r\n")
        if not line or line.startswith(b"#"):
            continue
        try:
            if line.startswith(b"^"):
                if last is None:
                    raise PackedRefsException("unexpected peeled ref line")
                if not valid_hexsha(line[1:], hex_length):
                    raise PackedRefsException(f"Invalid hex sha {line[1:]!r}")
                yield (last[0], last[1], line[1:])
                last = None
            else:
                if last is not None:
                    yield (last[0], last[1], None)
                last = None
                last = _split_ref_line(line, hex_length)
        except PackedRefsException as e:
            if strict:
                raise
            logger.warning("Skipping packed-refs line %d: %s", lineno, e)
    if last is not None:
        yield (last[0], last[1], None)


class DiskRefsContainer:
    """Read-only refs container that reads refs from disk."""

    def __init__(
        self,
        path: str | bytes | os.PathLike[str],
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> None:
        self.path = os.fsencode(os.fspath(path))
        self.object_format = object_format
        self._lock = threading.Lock()
        self._packed_signature: tuple[int, int, int] | None = None
        self._packed_refs: dict[Ref, ObjectID] = {}
        self._peeled_refs: dict[Ref, ObjectID] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    def refpath(self, name: Ref) -> bytes:
        """Return the disk path of a ref.

        Raises:
            NotFound: If the name is not HEAD or a well-formed name under
                refs/, so that no file outside the refs namespace is read
        """
        if name != HEADREF and not (
            name.startswith(b"refs/") and check_ref_format(name[len(b"refs/") :])
        ):
            raise NotFound(name)
        path = name
        if os.path.sep != "/":
            path = path.replace(b"/", os.fsencode(os.path.sep))
        return os.path.join(self.path, path)

    def _iter_loose_refs(self, base: bytes = b"refs/") -> Iterator[Ref]:
        refspath = os.path.join(self.path, base.rstrip(b"/"))
        prefix_len = len(os.path.join(self.path, b""))
        for root, dirs, files in os.walk(refspath):
            directory = root[prefix_len:]
            if os.path.sep != "/":
                directory = directory.replace(os.fsencode(os.path.sep), b"/")
            dirs.sort()
            for filename in sorted(files):
                refname = b"/".join([directory, filename])
                if check_ref_format(refname[len(b"refs/") :]):
                    yield refname

    def allkeys(self) -> set[Ref]:
        """Return all reference names, including HEAD if it exists."""
        keys = set()
        if os.path.exists(self.refpath(HEADREF)):
            keys.add(HEADREF)
        keys.update(self._iter_loose_refs())
        keys.update(self.get_packed_refs())
        return keys

    def keys(self, base: bytes = b"refs/") -> list[Ref]:
        """Return the sorted names of all refs under a prefix."""
        return sorted(k for k in self.allkeys() if k.startswith(base))

    def _packed_refs_signature(self, path: bytes) -> tuple[int, int, int] | None:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)

    def _load_packed_refs(self) -> tuple[dict[Ref, ObjectID], dict[Ref, ObjectID]]:
        path = os.path.join(self.path, b"packed-refs")
        with self._lock:
            signature = self._packed_refs_signature(path)
            if signature is None:
                self._packed_signature = None
                self._packed_refs = {}
                self._peeled_refs = {}
            elif signature != self._packed_signature:
                packed: dict[Ref, ObjectID] = {}
                peeled: dict[Ref, ObjectID] = {}
                try:
                    with open(path, "rb") as f:
                        lines = f.readlines()
                except FileNotFoundError:
                    lines = []
                    signature = None
                for sha, name, peeled_sha in read_packed_refs(
                    lines, self.object_format.hex_length, strict=False
                ):
                    packed[name] = sha
                    if peeled_sha is not None:
                        peeled[name] = peeled_sha
                self._packed_signature = signature
                self._packed_refs = packed
                self._peeled_refs = peeled
            return self._packed_refs, self._peeled_refs

    def get_packed_refs(self) -> dict[Ref, ObjectID]:
        """Get contents of the packed-refs file.

        Returns:
            Dictionary mapping ref names to SHA1s; empty when there is no
            packed-refs file
        """
        return dict(self._load_packed_refs()[0])

    def get_peeled(self, name: Ref) -> ObjectID | None:
        """Return the peeled value recorded in packed-refs, if any."""
        return self._load_packed_refs()[1].get(name)

    def read_loose_ref(self, name: Ref) -> bytes | None:
        """Read a reference file and return its contents.

        Args:
            name: the refname to read

        Returns:
            The first line of the ref file, or None if the file does not
            exist

        Raises:
            CorruptFormat: If the file holds neither a symref nor an id
        """
        filename = self.refpath(name)
        try:
            with open(filename, "rb") as f:
                contents = f.read(4096)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        line = contents.split(b"\n", 1)[0].rstrip(b"\r")
        if line.startswith(SYMREF):
            return line
        line = line.strip()
        if not valid_hexsha(line, self.object_format.hex_length):
            raise CorruptFormat(
                f"ref {name.decode('utf-8', 'replace')} has invalid contents "
                f"{line[:80]!r}"
            )
        return line.lower()

    def read_ref(self, refname: Ref) -> bytes | None:
        """Read a reference without following any references.

        Returns:
            The contents of the ref, or None if it does not exist.
        """
        contents = self.read_loose_ref(refname)
        if not contents:
            contents = self._load_packed_refs()[0].get(refname)
        return contents

    def follow(self, name: Ref) -> tuple[list[Ref], ObjectID | None]:
        """Follow a reference name.

        Returns:
            a tuple of (refnames, sha), where refnames are the names of
            references in the chain

        Raises:
            SymrefLoop: If more than MAX_SYMREF_DEPTH hops are needed
        """
        contents: bytes | None = SYMREF + name
        depth = 0
        refnames = []
        while contents and contents.startswith(SYMREF):
            refname = contents[len(SYMREF) :]
            refnames.append(refname)
            try:
                contents = self.read_ref(refname)
            except NotFound:
                # A symref pointing outside refs/ is treated as dangling.
                contents = None
            if not contents:
                break
            depth += 1
            if depth > MAX_SYMREF_DEPTH:
                raise SymrefLoop(name, depth)
        return refnames, contents

    def get_symref(self, name: Ref) -> Ref | None:
        """Return the target of a symbolic ref, or None if it is not one."""
        contents = self.read_loose_ref(name)
        if contents is None or not contents.startswith(SYMREF):
            return None
        return parse_symref_value(contents)

    def __contains__(self, refname: Ref) -> bool:
        try:
            return bool(self.read_ref(refname))
        except (NotFound, CorruptFormat):
            return False

    def __getitem__(self, name: Ref) -> ObjectID:
        """Get the SHA1 for a reference name.

        This method follows all symbolic references.

        Raises:
            NotFound: If the ref, or a ref it points to, does not exist
            SymrefLoop: If symbolic refs loop
            CorruptFormat: If a ref file is malformed
        """
        _, sha = self.follow(name)
        if sha is None:
            raise NotFound(name)
        return sha

    def as_dict(self, base: bytes = b"refs/") -> dict[Ref, ObjectID]:
        """Return refs under base as a name-to-id mapping.

        Refs that do not resolve are left out.
        """
        ret = {}
        for key in self.keys(base):
            try:
                ret[key] = self[key]
            except (NotFound, CorruptFormat):
                continue
        return ret
