# objects.py -- Access to base git objects
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

"""Parsed representations of the four git object kinds.

Objects are immutable once parsed. They are created from the raw
``(type_num, bytes)`` pairs returned by the object store through
:func:`object_from_raw`, which dispatches on the type number.
"""

import binascii
import stat
import zlib
from collections.abc import Iterator
from typing import NamedTuple

from .errors import (
    CorruptFormat,
    ObjectFormatException,
    Unsupported,
)
from .object_format import DEFAULT_OBJECT_FORMAT, ObjectFormat

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"
_ENCODING_HEADER = b"encoding"

# Header fields for objects
_OBJECT_HEADER = b"object"
_TYPE_HEADER = b"type"
_TAG_HEADER = b"tag"
_TAGGER_HEADER = b"tagger"

S_IFGITLINK = 0o160000

ObjectID = bytes
RawObjectID = bytes


def S_ISGITLINK(m: int) -> bool:
    """Check if a mode indicates a submodule.

    Args:
        m: Mode to check

    Returns:
        True if the mode is a gitlink
    """
    return stat.S_IFMT(m) == S_IFGITLINK


def sha_to_hex(sha: RawObjectID) -> ObjectID:
    """Takes a binary sha and returns a hex sha."""
    return binascii.hexlify(sha)


def hex_to_sha(hex: ObjectID | str) -> RawObjectID:
    """Takes a hex sha and returns a binary sha.

    Raises:
        ValueError: If the input is not valid hex
    """
    if isinstance(hex, str):
        hex = hex.encode("ascii")
    try:
        return binascii.unhexlify(hex)
    except (TypeError, binascii.Error) as exc:
        raise ValueError(exc.args[0])


def valid_hexsha(hex: bytes | str, hex_length: int | None = None) -> bool:
    """Check whether a value is a full hex object id.

    Args:
        hex: Value to check
        hex_length: Required length; either SHA-1 or SHA-256 length if None
    """
    if isinstance(hex, str):
        hex = hex.encode("ascii", "replace")
    if hex_length is None:
        if len(hex) not in (40, 64):
            return False
    elif len(hex) != hex_length:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    return True


# Type numbers as used in pack files and the object header
COMMIT = 1
TREE = 2
BLOB = 3
TAG = 4

_TYPE_NAMES = {
    COMMIT: b"commit",
    TREE: b"tree",
    BLOB: b"blob",
    TAG: b"tag",
}
_TYPE_NUMS = {name: num for (num, name) in _TYPE_NAMES.items()}


def type_num_to_name(type_num: int) -> bytes:
    """Map an object type number to its name.

    Raises:
        Unsupported: For type numbers that do not denote a full object
    """
    try:
        return _TYPE_NAMES[type_num]
    except KeyError:
        raise Unsupported(f"unknown object type number {type_num}")


def type_name_to_num(type_name: bytes) -> int:
    """Map an object type name to its number.

    Raises:
        Unsupported: For unknown type names
    """
    try:
        return _TYPE_NUMS[type_name]
    except KeyError:
        raise Unsupported(
            f"unknown object type {type_name.decode('ascii', 'replace')!r}"
        )


def object_header(type_num: int, length: int) -> bytes:
    """Return the header used to compute an object's id."""
    return type_num_to_name(type_num) + b" " + str(length).encode("ascii") + b"\0"


def parse_loose_object(compressed: bytes) -> tuple[int, bytes]:
    """Decode the contents of a loose object file.

    Args:
        compressed: The zlib-compressed file contents

    Returns:
        Tuple of (type_num, content)

    Raises:
        CorruptFormat: On a bad zlib stream, header or length
        Unsupported: On an unknown type name
    """
    try:
        raw = zlib.decompress(compressed)
    except zlib.error as e:
        raise CorruptFormat(f"invalid zlib stream in loose object: {e}")
    header_end = raw.find(b"\0")
    if header_end < 0:
        raise CorruptFormat("loose object header is not terminated")
    header = raw[:header_end]
    try:
        type_name, size_text = header.split(b" ", 1)
        size = int(size_text)
    except ValueError:
        raise CorruptFormat(f"invalid loose object header {header[:32]!r}")
    if size < 0 or not size_text.isdigit():
        raise CorruptFormat(f"invalid loose object length {size_text!r}")
    type_num = type_name_to_num(type_name)
    content = raw[header_end + 1 :]
    if len(content) != size:
        raise CorruptFormat(
            f"loose object length mismatch: header says {size}, "
            f"content has {len(content)}"
        )
    return type_num, content


def _parse_message(data: bytes) -> Iterator[tuple[bytes | None, bytes]]:
    """Parse the headers and message of a commit or tag.

    Continuation lines (starting with a space) are folded into the
    preceding header value.

    Yields:
        (field, value) pairs, ending with (None, message) if there is a
        message
    """
    lines = data.split(b"\n")
    k: bytes | None = None
    v = b""
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith(b" "):
            v += b"\n" + line[1:]
        else:
            if k is not None:
                yield (k, v)
            if line == b"":
                break
            k, sep, v = line.partition(b" ")
            if not sep:
                raise ObjectFormatException(f"invalid header line {line[:32]!r}")
        i += 1
    else:
        # Headers only, no message separator.
        if k is not None:
            yield (k, v)
        return
    yield (None, b"\n".join(lines[i + 1 :]))


def parse_timezone(text: bytes) -> int:
    """Parse a timezone text fragment (e.g. b'+0100').

    Returns:
        Offset from UTC in seconds
    """
    if not (text[:1] in (b"+", b"-") and text[1:].isdigit()):
        raise ObjectFormatException(f"invalid timezone {text!r}")
    offset = int(text)
    signum = -1 if offset < 0 else 1
    offset = abs(offset)
    hours = offset // 100
    minutes = offset % 100
    return signum * (hours * 3600 + minutes * 60)


def format_timezone(offset: int) -> bytes:
    """Format a timezone offset in seconds as git does (e.g. b'+0100')."""
    sign = "-" if offset < 0 else "+"
    offset = abs(offset)
    return f"{sign}{offset // 3600:02d}{(offset // 60) % 60:02d}".encode("ascii")


class Identity(NamedTuple):
    """Author, committer or tagger of an object."""

    name: bytes
    email: bytes
    time: int
    timezone: int

    def __bytes__(self) -> bytes:
        return self.name + b" <" + self.email + b">"


def parse_identity(value: bytes) -> Identity:
    """Parse an identity line such as b'Jane <jane@example.com> 1700000000 +0000'.

    A missing timestamp or timezone is treated as zero; git itself
    accepts such objects when reading.
    """
    lt = value.find(b"<")
    gt = value.find(b">", lt + 1)
    if lt < 0 or gt < 0:
        raise ObjectFormatException(f"invalid identity {value[:64]!r}")
    name = value[:lt].rstrip(b" ")
    email = value[lt + 1 : gt]
    rest = value[gt + 1 :].split()
    time = 0
    timezone = 0
    if rest:
        try:
            time = int(rest[0])
        except ValueError:
            raise ObjectFormatException(f"invalid timestamp {rest[0]!r}")
        if len(rest) > 1:
            timezone = parse_timezone(rest[1])
    return Identity(name, email, time, timezone)


class ShaFile:
    """A parsed git object."""

    type_name: bytes
    type_num: int

    __slots__ = ("id",)

    def __init__(self, id: ObjectID) -> None:
        self.id = id

    @classmethod
    def from_raw(
        cls,
        id: ObjectID,
        data: bytes,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> "ShaFile":
        """Parse an object of this class from its raw content."""
        raise NotImplementedError(cls.from_raw)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id.decode('ascii')}>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ShaFile) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class Blob(ShaFile):
    """A Git Blob object."""

    type_name = b"blob"
    type_num = BLOB

    __slots__ = ("data",)

    def __init__(self, id: ObjectID, data: bytes) -> None:
        super().__init__(id)
        self.data = data

    @classmethod
    def from_raw(
        cls,
        id: ObjectID,
        data: bytes,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> "Blob":
        return cls(id, data)

    def splitlines(self) -> list[bytes]:
        """Return the blob contents as a list of lines, keeping line endings."""
        return self.data.splitlines(keepends=True)


class TreeEntry(NamedTuple):
    """Named tuple encapsulating a single tree entry."""

    path: bytes
    mode: int
    sha: ObjectID

    def in_path(self, path: bytes) -> "TreeEntry":
        """Return a copy of this entry with the given path prepended."""
        return TreeEntry(posixpath_join(path, self.path), self.mode, self.sha)


def posixpath_join(base: bytes, name: bytes) -> bytes:
    if not base:
        return name
    return base + b"/" + name


def parse_tree(text: bytes, oid_length: int = 20) -> Iterator[TreeEntry]:
    """Parse a tree text.

    Args:
        text: Serialized text to parse
        oid_length: Length of binary object ids in this repository

    Yields:
        TreeEntry tuples in stored order

    Raises:
        ObjectFormatException: if the object was malformed in some way
    """
    count = 0
    length = len(text)
    while count < length:
        mode_end = text.find(b" ", count)
        if mode_end < 0:
            raise ObjectFormatException("truncated tree entry mode")
        mode_text = text[count:mode_end]
        if not mode_text or not all(0x30 <= c <= 0x37 for c in mode_text):
            raise ObjectFormatException(f"invalid mode {mode_text!r}")
        mode = int(mode_text, 8)
        name_end = text.find(b"\0", mode_end)
        if name_end < 0:
            raise ObjectFormatException("truncated tree entry name")
        name = text[mode_end + 1 : name_end]
        if not name or b"/" in name:
            raise ObjectFormatException(f"invalid tree entry name {name!r}")
        count = name_end + 1 + oid_length
        if count > length:
            raise ObjectFormatException("truncated tree entry id")
        sha = text[name_end + 1 : count]
        yield TreeEntry(name, mode, sha_to_hex(sha))


class Tree(ShaFile):
    """A Git tree object."""

    type_name = b"tree"
    type_num = TREE

    __slots__ = ("_entries", "_by_name")

    def __init__(self, id: ObjectID, entries: list[TreeEntry]) -> None:
        super().__init__(id)
        self._entries = entries
        self._by_name: dict[bytes, TreeEntry] | None = None

    @classmethod
    def from_raw(
        cls,
        id: ObjectID,
        data: bytes,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> "Tree":
        return cls(id, list(parse_tree(data, object_format.oid_length)))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[bytes]:
        return (entry.path for entry in self._entries)

    def __contains__(self, name: bytes) -> bool:
        return name in self._index()

    def __getitem__(self, name: bytes) -> tuple[int, ObjectID]:
        entry = self._index()[name]
        return entry.mode, entry.sha

    def _index(self) -> dict[bytes, TreeEntry]:
        if self._by_name is None:
            self._by_name = {entry.path: entry for entry in self._entries}
        return self._by_name

    def lookup(self, name: bytes) -> TreeEntry | None:
        """Look up a direct child of this tree by name."""
        return self._index().get(name)

    def items(self) -> list[TreeEntry]:
        """Return the entries of this tree in stored order."""
        return list(self._entries)

    def iteritems(self) -> Iterator[TreeEntry]:
        return iter(self._entries)


class Commit(ShaFile):
    """A git commit object."""

    type_name = b"commit"
    type_num = COMMIT

    __slots__ = (
        "tree",
        "parents",
        "author",
        "committer",
        "encoding",
        "extra",
        "message",
    )

    def __init__(
        self,
        id: ObjectID,
        tree: ObjectID,
        parents: list[ObjectID],
        author: Identity,
        committer: Identity,
        message: bytes,
        encoding: bytes | None = None,
        extra: list[tuple[bytes, bytes]] | None = None,
    ) -> None:
        super().__init__(id)
        self.tree = tree
        self.parents = parents
        self.author = author
        self.committer = committer
        self.message = message
        self.encoding = encoding
        self.extra = extra or []

    @classmethod
    def from_raw(
        cls,
        id: ObjectID,
        data: bytes,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> "Commit":
        tree = None
        parents = []
        author = None
        committer = None
        encoding = None
        extra = []
        message = b""
        for field, value in _parse_message(data):
            if field == _TREE_HEADER:
                if tree is not None:
                    raise ObjectFormatException("commit has multiple tree headers")
                tree = _check_hexsha(value, object_format, "tree")
            elif field == _PARENT_HEADER:
                parents.append(_check_hexsha(value, object_format, "parent"))
            elif field == _AUTHOR_HEADER:
                author = parse_identity(value)
            elif field == _COMMITTER_HEADER:
                committer = parse_identity(value)
            elif field == _ENCODING_HEADER:
                encoding = value
            elif field is None:
                message = value
            else:
                extra.append((field, value))
        if tree is None:
            raise ObjectFormatException(f"commit {id!r} has no tree")
        if author is None:
            raise ObjectFormatException(f"commit {id!r} has no author")
        if committer is None:
            committer = author
        return cls(id, tree, parents, author, committer, message, encoding, extra)

    @property
    def commit_time(self) -> int:
        return self.committer.time

    @property
    def author_time(self) -> int:
        return self.author.time

    @property
    def gpgsig(self) -> bytes | None:
        """The detached signature of this commit, if any."""
        for field, value in self.extra:
            if field == b"gpgsig":
                return value
        return None

    @property
    def summary(self) -> bytes:
        """First line of the commit message."""
        return self.message.split(b"\n", 1)[0]


class Tag(ShaFile):
    """A Git Tag object."""

    type_name = b"tag"
    type_num = TAG

    __slots__ = ("object", "name", "tagger", "message")

    def __init__(
        self,
        id: ObjectID,
        object: tuple[int, ObjectID],
        name: bytes,
        tagger: Identity | None,
        message: bytes,
    ) -> None:
        super().__init__(id)
        self.object = object
        self.name = name
        self.tagger = tagger
        self.message = message

    @classmethod
    def from_raw(
        cls,
        id: ObjectID,
        data: bytes,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> "Tag":
        target = None
        target_type = None
        name = b""
        tagger = None
        message = b""
        for field, value in _parse_message(data):
            if field == _OBJECT_HEADER:
                target = _check_hexsha(value, object_format, "object")
            elif field == _TYPE_HEADER:
                try:
                    target_type = type_name_to_num(value)
                except Unsupported:
                    raise ObjectFormatException(f"tag has invalid type {value!r}")
            elif field == _TAG_HEADER:
                name = value
            elif field == _TAGGER_HEADER:
                tagger = parse_identity(value)
            elif field is None:
                message = value
        if target is None or target_type is None:
            raise ObjectFormatException(f"tag {id!r} has no target")
        return cls(id, (target_type, target), name, tagger, message)


def _check_hexsha(value: bytes, object_format: ObjectFormat, what: str) -> ObjectID:
    if not valid_hexsha(value, object_format.hex_length):
        raise ObjectFormatException(f"invalid {what} id {value[:80]!r}")
    return value.lower()


OBJECT_CLASSES = (
    Commit,
    Tree,
    Blob,
    Tag,
)

_TYPE_MAP: dict[int, type[ShaFile]] = {cls.type_num: cls for cls in OBJECT_CLASSES}


def object_class(type_num: int) -> type[ShaFile]:
    """Get the object class corresponding to the given type number.

    Raises:
        Unsupported: For unknown type numbers
    """
    try:
        return _TYPE_MAP[type_num]
    except KeyError:
        raise Unsupported(f"unknown object type number {type_num}")


def object_from_raw(
    id: ObjectID,
    type_num: int,
    data: bytes,
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
) -> ShaFile:
    """Parse raw object content into the matching ShaFile subclass."""
    return object_class(type_num).from_raw(id, data, object_format)


# Permissions strings as shown by directory listings.
_MODE_STRINGS = {
    stat.S_IFDIR: "drwxr-xr-x",
    stat.S_IFREG | 0o755: "-rwxr-xr-x",
    stat.S_IFREG | 0o644: "-rw-r--r--",
    stat.S_IFLNK: "lrwxrwxrwx",
    S_IFGITLINK: "m---------",
}


def format_mode(mode: int) -> str:
    """Render a tree entry mode like ``ls -l`` would."""
    return _MODE_STRINGS.get(mode, "?---------")


def mode_kind(mode: int) -> str:
    """Classify a tree entry mode.

    Returns:
        One of "tree", "file", "symlink" or "gitlink"
    """
    fmt = stat.S_IFMT(mode)
    if fmt == stat.S_IFDIR:
        return "tree"
    if fmt == stat.S_IFLNK:
        return "symlink"
    if fmt == S_IFGITLINK:
        return "gitlink"
    return "file"
