# utils.py -- Test utilities for mygit.
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

"""Utility functions common to mygit tests.

mygit never writes to a repository, so the tests lay out repositories by
hand: loose objects, packs and their indexes, loose refs and packed-refs
are all written here the way git writes them.
"""

import binascii
import os
import stat
import struct
import zlib
from collections.abc import Iterable, Sequence
from difflib import SequenceMatcher
from typing import Any

from mygit.object_format import DEFAULT_OBJECT_FORMAT, ObjectFormat
from mygit.objects import (
    BLOB,
    COMMIT,
    S_IFGITLINK,
    TAG,
    TREE,
    hex_to_sha,
    object_header,
    type_num_to_name,
)
from mygit.pack import DELTA_TYPES, OFS_DELTA, REF_DELTA

# Plain file mode
F = 0o100644

DEFAULT_IDENTITY = b"Test Author <test@example.com>"

# Commit times handed out by build_commit_graph start here.
BASE_COMMIT_TIME = 1_000_000_000


def init_bare_repo(path: str, head: bytes = b"ref: refs/heads/master") -> str:
    """Lay out an empty bare repository at path."""
    for d in ("objects/pack", "objects/info", "refs/heads", "refs/tags"):
        os.makedirs(os.path.join(path, d), exist_ok=True)
    with open(os.path.join(path, "HEAD"), "wb") as f:
        f.write(head + b"\n")
    return path


def write_loose_object(
    objects_dir: str,
    type_num: int,
    data: bytes,
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
) -> bytes:
    """Store an object as a loose object.

    Returns:
        The hex id of the object
    """
    sha = object_format.hash_object_hex(type_num_to_name(type_num), data)
    hexsha = sha.decode("ascii")
    dirname = os.path.join(objects_dir, hexsha[:2])
    os.makedirs(dirname, exist_ok=True)
    with open(os.path.join(dirname, hexsha[2:]), "wb") as f:
        f.write(zlib.compress(object_header(type_num, len(data)) + data))
    return sha


def _tree_sort_key(entry: tuple[bytes, int, bytes]) -> bytes:
    name, mode, _ = entry
    return name + b"/" if stat.S_ISDIR(mode) else name


def make_tree_data(entries: Iterable[tuple[bytes, int, bytes]]) -> bytes:
    """Serialize (name, mode, hexsha) entries in git's tree order."""
    return b"".join(
        b"%o %s\0" % (mode, name) + hex_to_sha(sha)
        for name, mode, sha in sorted(entries, key=_tree_sort_key)
    )


def make_commit_data(
    tree: bytes,
    parents: Sequence[bytes] = (),
    *,
    author: bytes = DEFAULT_IDENTITY,
    committer: bytes | None = None,
    commit_time: int = BASE_COMMIT_TIME,
    author_time: int | None = None,
    timezone: bytes = b"+0000",
    message: bytes = b"A commit\n",
) -> bytes:
    lines = [b"tree " + tree]
    lines.extend(b"parent " + parent for parent in parents)
    if author_time is None:
        author_time = commit_time
    lines.append(b"author %s %d %s" % (author, author_time, timezone))
    lines.append(
        b"committer %s %d %s" % (committer or author, commit_time, timezone)
    )
    return b"\n".join(lines) + b"\n\n" + message


def make_tag_data(
    object_id: bytes,
    object_type: bytes = b"commit",
    name: bytes = b"v1.0",
    *,
    tagger: bytes | None = DEFAULT_IDENTITY,
    tag_time: int = BASE_COMMIT_TIME,
    message: bytes = b"Release\n",
) -> bytes:
    lines = [
        b"object " + object_id,
        b"type " + object_type,
        b"tag " + name,
    ]
    if tagger is not None:
        lines.append(b"tagger %s %d +0000" % (tagger, tag_time))
    return b"\n".join(lines) + b"\n\n" + message


def write_tree(
    objects_dir: str,
    files: Iterable[tuple[Any, ...]],
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
) -> bytes:
    """Store the blobs and trees for a set of files.

    Args:
        objects_dir: Path of the objects directory
        files: (path, data) or (path, data, mode) tuples. Paths may contain
            slashes. For gitlink entries, data is the hex id of the commit.
        object_format: Hash algorithm of the repository

    Returns:
        The hex id of the root tree
    """
    root: dict[bytes, Any] = {}
    for entry in files:
        if len(entry) == 2:
            path, data = entry
            mode = F
        else:
            path, data, mode = entry
        if stat.S_IFMT(mode) == S_IFGITLINK:
            sha = data
        else:
            sha = write_loose_object(objects_dir, BLOB, data, object_format)
        *dirs, name = path.split(b"/")
        node = root
        for d in dirs:
            node = node.setdefault(d, {})
        node[name] = (mode, sha)

    def build(node: dict[bytes, Any]) -> bytes:
        entries = []
        for name, value in node.items():
            if isinstance(value, dict):
                entries.append((name, stat.S_IFDIR, build(value)))
            else:
                entries.append((name, value[0], value[1]))
        return write_loose_object(
            objects_dir, TREE, make_tree_data(entries), object_format
        )

    return build(root)


def build_commit_graph(
    objects_dir: str,
    commit_spec: Sequence[Sequence[int]],
    trees: dict[int, list[tuple[Any, ...]]] | None = None,
    attrs: dict[int, dict[str, Any]] | None = None,
) -> list[bytes]:
    """Build a commit graph from a concise specification.

    Sample usage:
    >>> c1, c2, c3 = build_commit_graph(objects_dir, [[1], [2, 1], [3, 1, 2]])

    Args:
        objects_dir: Path of the objects directory to write to
        commit_spec: An iterable of iterables of ints defining the commit
            graph. Each entry defines one commit, and entries must be in
            topological order. The first element of each entry is a commit
            number, and the remaining elements are its parents.
        trees: An optional dict of commit number -> files, in the form
            accepted by :func:`write_tree`
        attrs: A dict of commit number -> keyword arguments for
            :func:`make_commit_data`

    Returns:
        The hex ids of the commits, in spec order. If not otherwise
        specified, commit times increase by 100 seconds per commit.

    Raises:
        ValueError: If an undefined commit identifier is listed as a parent.
    """
    if trees is None:
        trees = {}
    if attrs is None:
        attrs = {}
    commit_time = BASE_COMMIT_TIME
    nums: dict[int, bytes] = {}
    commits = []
    for commit in commit_spec:
        commit_num = commit[0]
        try:
            parent_ids = [nums[pn] for pn in commit[1:]]
        except KeyError as e:
            (missing_parent,) = e.args
            raise ValueError(f"Unknown parent {missing_parent}")
        tree_id = write_tree(objects_dir, trees.get(commit_num, []))
        commit_attrs: dict[str, Any] = {
            "message": b"Commit %d\n" % commit_num,
            "commit_time": commit_time,
        }
        commit_attrs.update(attrs.get(commit_num, {}))
        sha = write_loose_object(
            objects_dir, COMMIT, make_commit_data(tree_id, parent_ids, **commit_attrs)
        )
        commit_time = commit_attrs["commit_time"] + 100
        nums[commit_num] = sha
        commits.append(sha)
    return commits


def write_tag(
    objects_dir: str, object_id: bytes, object_type: bytes = b"commit", **kwargs: Any
) -> bytes:
    """Store an annotated tag object and return its hex id."""
    return write_loose_object(
        objects_dir, TAG, make_tag_data(object_id, object_type, **kwargs)
    )


def write_ref(controldir: str, name: bytes, value: bytes) -> None:
    """Write a loose ref file; value is a hex id or ``ref: <target>``."""
    path = os.path.join(controldir, os.fsdecode(name))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(value + b"\n")


def write_packed_refs(
    controldir: str,
    refs: Iterable[tuple[bytes, bytes]],
    peeled: dict[bytes, bytes] | None = None,
    header: bytes = b"# pack-refs with: peeled fully-peeled sorted \n",
) -> None:
    """Write a packed-refs file from (name, hexsha) pairs."""
    if peeled is None:
        peeled = {}
    with open(os.path.join(controldir, "packed-refs"), "wb") as f:
        f.write(header)
        for name, sha in refs:
            f.write(sha + b" " + name + b"\n")
            if name in peeled:
                f.write(b"^" + peeled[name] + b"\n")


def pack_object_header(type_num: int, delta_base: bytes | int | None, size: int) -> bytes:
    """Create a pack object header for the given object info.

    Args:
        type_num: Numeric type of the object.
        delta_base: Relative delta base offset or binary base id, or None
            for whole objects.
        size: Uncompressed object size.
    """
    header = []
    c = (type_num << 4) | (size & 15)
    size >>= 4
    while size:
        header.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    header.append(c)
    if type_num == OFS_DELTA:
        assert isinstance(delta_base, int)
        ret = [delta_base & 0x7F]
        delta_base >>= 7
        while delta_base:
            delta_base -= 1
            ret.insert(0, 0x80 | (delta_base & 0x7F))
            delta_base >>= 7
        header.extend(ret)
    elif type_num == REF_DELTA:
        assert isinstance(delta_base, bytes)
        header.extend(delta_base)
    return bytes(header)


def _delta_encode_size(size: int) -> bytes:
    ret = bytearray()
    c = size & 0x7F
    size >>= 7
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


# Copy lengths are limited to 64K in version 2 packs.
_MAX_COPY_LEN = 0xFFFF


def _encode_copy_operation(start: int, length: int) -> bytes:
    scratch = bytearray([0x80])
    for i in range(4):
        if start & 0xFF << i * 8:
            scratch.append((start >> i * 8) & 0xFF)
            scratch[0] |= 1 << i
    for i in range(2):
        if length & 0xFF << i * 8:
            scratch.append((length >> i * 8) & 0xFF)
            scratch[0] |= 1 << (4 + i)
    return bytes(scratch)


def create_delta(base_buf: bytes, target_buf: bytes) -> bytes:
    """Use difflib to work out how to transform base_buf to target_buf."""
    out = [_delta_encode_size(len(base_buf)), _delta_encode_size(len(target_buf))]
    seq = SequenceMatcher(isjunk=None, a=base_buf, b=target_buf, autojunk=False)
    for opcode, i1, i2, j1, j2 in seq.get_opcodes():
        if opcode == "equal":
            copy_start = i1
            copy_len = i2 - i1
            while copy_len > 0:
                to_copy = min(copy_len, _MAX_COPY_LEN)
                out.append(_encode_copy_operation(copy_start, to_copy))
                copy_start += to_copy
                copy_len -= to_copy
        if opcode in ("replace", "insert"):
            s = j2 - j1
            o = j1
            while s > 127:
                out.append(bytes([127]) + target_buf[o : o + 127])
                s -= 127
                o += 127
            if s:
                out.append(bytes([s]) + target_buf[o : o + s])
    return b"".join(out)


def write_pack_data(
    filename: str,
    entries: Sequence[tuple[int, bytes | int | None, bytes]],
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    version: int = 2,
) -> tuple[list[tuple[int, int]], bytes]:
    """Write a pack file from already encoded entries.

    Args:
        filename: Path of the pack file
        entries: (type_num, delta_base, data) tuples. For OFS_DELTA entries
            delta_base is the distance back to the base entry, for
            REF_DELTA entries the binary id of the base; data is the delta
            for both.
        object_format: Hash algorithm of the repository
        version: Pack version to put in the header

    Returns:
        Tuple of ([(offset, crc32)] in entry order, pack checksum)
    """
    out = bytearray(b"PACK" + struct.pack(">LL", version, len(entries)))
    locations = []
    for type_num, delta_base, data in entries:
        offset = len(out)
        chunk = pack_object_header(type_num, delta_base, len(data)) + zlib.compress(
            data
        )
        out += chunk
        locations.append((offset, binascii.crc32(chunk) & 0xFFFFFFFF))
    h = object_format.new_hash()
    h.update(out)
    checksum = h.digest()
    with open(filename, "wb") as f:
        f.write(out + checksum)
    return locations, checksum


def write_pack_index(
    filename: str,
    entries: Iterable[tuple[bytes, int, int]],
    pack_checksum: bytes,
    version: int = 2,
    large_offsets: bool = False,
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
) -> None:
    """Write a pack index file.

    Args:
        filename: Path of the index file
        entries: (binary id, offset, crc32) tuples, in any order
        pack_checksum: Checksum of the pack file
        version: Index version (1 or 2)
        large_offsets: Store every offset in the 8-byte offset table
        object_format: Hash algorithm of the repository
    """
    entries = sorted(entries)
    fan_out_table = [0] * 0x100
    for name, _offset, _crc32 in entries:
        fan_out_table[name[0]] += 1
    for i in range(1, 0x100):
        fan_out_table[i] += fan_out_table[i - 1]
    out = bytearray()
    if version == 2:
        out += b"\377tOc" + struct.pack(">L", 2)
    out += struct.pack(">256L", *fan_out_table)
    if version == 1:
        for name, offset, _crc32 in entries:
            out += struct.pack(">L", offset) + name
    else:
        for name, _offset, _crc32 in entries:
            out += name
        for _name, _offset, crc32 in entries:
            out += struct.pack(">L", crc32)
        largetable = []
        for _name, offset, _crc32 in entries:
            if large_offsets or offset > 0x7FFFFFFF:
                out += struct.pack(">L", 0x80000000 | len(largetable))
                largetable.append(offset)
            else:
                out += struct.pack(">L", offset)
        for offset in largetable:
            out += struct.pack(">Q", offset)
    out += pack_checksum
    h = object_format.new_hash()
    h.update(out)
    with open(filename, "wb") as f:
        f.write(out + h.digest())


def build_pack(
    basename: str,
    objects_spec: Sequence[tuple[int, Any]],
    store: Any = None,
    object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    index_version: int = 2,
    large_offsets: bool = False,
) -> list[tuple[int, int, bytes, bytes, int]]:
    """Write test pack data and its index from a concise spec.

    Args:
        basename: Path of the pack without the ``.pack``/``.idx`` suffix
        objects_spec: A list of (type_num, obj). For non-delta types, obj
            is the object's data. For delta types, obj is a tuple of
            (base, data), where base is either an index in objects_spec of
            the base for that delta, or (for REF_DELTA only) the hex id of
            an object in store, in which case the pack will be thin. data
            is the full, non-deltified data for that object.
        store: An object store for looking up external bases.
        object_format: Hash algorithm of the repository
        index_version: Version of the index to write
        large_offsets: Store every offset in the v2 large offset table

    Returns:
        A list of tuples in the order specified by objects_spec:
        (offset, type num, data, hex sha, CRC32)
    """
    num_objects = len(objects_spec)
    full_objects: dict[int, tuple[int, bytes, bytes]] = {}
    while len(full_objects) < num_objects:
        for i, (type_num, data) in enumerate(objects_spec):
            if type_num not in DELTA_TYPES:
                base_type_num = type_num
            else:
                base, data = data
                if isinstance(base, int):
                    if base not in full_objects:
                        continue
                    base_type_num = full_objects[base][0]
                else:
                    base_type_num = store.get_raw(base)[0]
            full_objects[i] = (
                base_type_num,
                data,
                object_format.hash_object_hex(type_num_to_name(base_type_num), data),
            )

    entries: list[tuple[int, bytes | int | None, bytes]] = []
    offset = 12
    offsets: dict[int, int] = {}
    for i, (type_num, obj) in enumerate(objects_spec):
        delta_base: bytes | int | None = None
        if type_num == OFS_DELTA:
            base_index, data = obj
            delta_base = offset - offsets[base_index]
            data = create_delta(full_objects[base_index][1], data)
        elif type_num == REF_DELTA:
            base_ref, data = obj
            if isinstance(base_ref, int):
                base_data = full_objects[base_ref][1]
                delta_base = hex_to_sha(full_objects[base_ref][2])
            else:
                base_data = store.get_raw(base_ref)[1]
                delta_base = hex_to_sha(base_ref)
            data = create_delta(base_data, data)
        else:
            data = obj
        offsets[i] = offset
        entries.append((type_num, delta_base, data))
        offset += len(pack_object_header(type_num, delta_base, len(data)))
        offset += len(zlib.compress(data))

    locations, checksum = write_pack_data(
        basename + ".pack", entries, object_format
    )
    write_pack_index(
        basename + ".idx",
        [
            (hex_to_sha(full_objects[i][2]), locations[i][0], locations[i][1])
            for i in range(num_objects)
        ],
        checksum,
        version=index_version,
        large_offsets=large_offsets,
        object_format=object_format,
    )
    expected = []
    for i in range(num_objects):
        type_num, data, sha = full_objects[i]
        expected.append((locations[i][0], type_num, data, sha, locations[i][1]))
    return expected
