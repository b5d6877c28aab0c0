# pack.py -- For dealing with packed git objects.
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

"""Classes for reading packed objects.

A pack is a pair of files: the ``.pack`` file holding zlib-compressed
objects, some of which are stored as deltas against other objects, and the
``.idx`` file mapping object ids to offsets in the pack.

Both files are memory-mapped read-only once and never seeked, so a single
:class:`Pack` can be read from many threads at the same time. All reads
take an explicit offset.

Delta chains are resolved by :class:`DeltaResolver`, which walks the chain
iteratively and enforces a maximum depth so that a hostile or corrupted
pack cannot exhaust the stack or loop forever.
"""

import binascii
import mmap
import os
import struct
import zlib
from collections.abc import Callable, Iterator
from struct import unpack_from

from .errors import (
    ApplyDeltaError,
    CorruptFormat,
    DeltaResolutionError,
    Unsupported,
)
from .log_utils import getLogger
from .object_format import DEFAULT_OBJECT_FORMAT, SHA1, ObjectFormat
from .objects import ObjectID, RawObjectID, hex_to_sha, sha_to_hex

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

# Deepest delta chain that will be followed. git itself refuses to create
# chains deeper than this when repacking with default settings.
DEFAULT_MAX_DELTA_DEPTH = 4095

_ZLIB_BUFSIZE = 65536

_IDX_MAGIC = b"\377tOc"

_FANOUT_SIZE = 0x100 * 4

logger = getLogger(__name__)


class PackFileDisappeared(Exception):
    """Raised when a pack file is closed while it is being read."""

    def __init__(self, obj: object) -> None:
        """Initialize PackFileDisappeared exception.

        Args:
            obj: The pack or index that was closed
        """
        super().__init__(obj)
        self.obj = obj


def _load_file_contents(path: str) -> "tuple[mmap.mmap | bytes, int]":
    """Map a file into memory read-only.

    Empty files cannot be mapped, so their (empty) contents are returned
    as bytes instead.
    """
    with open(path, "rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size == 0:
            return b"", 0
        return mmap.mmap(f.fileno(), size, access=mmap.ACCESS_READ), size


def load_pack_index(
    path: str, object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT
) -> "PackIndex":
    """Load an index file by path.

    Args:
        path: Path to the index file
        object_format: Hash algorithm used by the repository

    Returns:
        A PackIndex loaded from the given path

    Raises:
        CorruptFormat: If the index is structurally invalid
        Unsupported: If the index version is not 1 or 2
    """
    contents, size = _load_file_contents(path)
    try:
        if contents[:4] == _IDX_MAGIC:
            if size < 8:
                raise CorruptFormat(f"{path}: truncated pack index header")
            (version,) = unpack_from(">L", contents, 4)
            if version == 2:
                return PackIndex2(path, contents, size, object_format)
            raise Unsupported(f"{path}: unsupported pack index version {version}")
        return PackIndex1(path, contents, size, object_format)
    except BaseException:
        _close_contents(contents)
        raise


def _close_contents(contents: "mmap.mmap | bytes") -> None:
    close_fn = getattr(contents, "close", None)
    if close_fn is not None:
        close_fn()


def bisect_find_sha(
    start: int, end: int, sha: bytes, unpack_name: Callable[[int], bytes]
) -> int | None:
    """Find a SHA in a data blob with sorted SHAs.

    Args:
        start: Start index of range to search
        end: End index of range to search (exclusive)
        sha: Sha to find
        unpack_name: Callback to retrieve SHA by index

    Returns:
        Index of the SHA, or None if it wasn't found
    """
    lo = start
    hi = end - 1
    while lo <= hi:
        i = (lo + hi) // 2
        file_sha = unpack_name(i)
        if file_sha < sha:
            lo = i + 1
        elif file_sha > sha:
            hi = i - 1
        else:
            return i
    return None


PackIndexEntry = tuple[RawObjectID, int, int | None]


class PackIndex:
    """An index in to a packfile.

    Given the id of an object, a pack index tells you the location in the
    packfile of that object, if the pack has it.

    The first 256 four-byte groups form the fan-out table: entry ``b``
    counts the objects whose id starts with a byte ``<= b``. Subtracting
    the previous entry gives the range of the sorted name table sharing the
    same first byte, which is then bisected.
    """

    version: int
    _fan_out_table: list[int]

    def __init__(
        self,
        path: str,
        contents: "mmap.mmap | bytes",
        size: int,
        object_format: ObjectFormat,
    ) -> None:
        self.path = path
        self._contents = contents
        self._size = size
        self.object_format = object_format
        self.hash_size = object_format.oid_length

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    def close(self) -> None:
        """Release the mapping of the index file."""
        _close_contents(self._contents)

    def __len__(self) -> int:
        """Return the number of entries in this pack index."""
        return self._fan_out_table[-1]

    def __contains__(self, sha: ObjectID | RawObjectID) -> bool:
        return self.lookup(sha) is not None

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the hex ids in this index, in sorted order."""
        return (sha_to_hex(name) for name in self._itersha())

    def _unpack_name(self, i: int) -> bytes:
        raise NotImplementedError(self._unpack_name)

    def _unpack_offset(self, i: int) -> int:
        raise NotImplementedError(self._unpack_offset)

    def _unpack_crc32_checksum(self, i: int) -> int | None:
        raise NotImplementedError(self._unpack_crc32_checksum)

    def _unpack_entry(self, i: int) -> PackIndexEntry:
        return (
            self._unpack_name(i),
            self._unpack_offset(i),
            self._unpack_crc32_checksum(i),
        )

    def _itersha(self) -> Iterator[bytes]:
        for i in range(len(self)):
            yield self._unpack_name(i)

    def iterentries(self) -> Iterator[PackIndexEntry]:
        """Iterate over the entries in this pack index.

        Returns:
            iterator over tuples with binary object name, offset in packfile
            and crc32 checksum (None for version 1 indexes)
        """
        for i in range(len(self)):
            yield self._unpack_entry(i)

    def _read_fan_out_table(self, start_offset: int) -> list[int]:
        """Read and validate the fan-out table.

        Raises:
            CorruptFormat: If the table is truncated or not monotonic
        """
        if self._size < start_offset + _FANOUT_SIZE:
            raise CorruptFormat(f"{self.path}: truncated fan-out table")
        ret = list(struct.unpack_from(">256L", self._contents, start_offset))
        for i in range(1, 0x100):
            if ret[i] < ret[i - 1]:
                raise CorruptFormat(
                    f"{self.path}: fan-out table is not monotonic at {i}"
                )
        return ret

    def _to_binary(self, sha: ObjectID | RawObjectID) -> RawObjectID:
        if len(sha) == self.object_format.hex_length:
            return hex_to_sha(sha)
        if len(sha) != self.hash_size:
            raise ValueError(f"invalid object id length {len(sha)}")
        return sha

    def _find(self, sha: RawObjectID) -> int | None:
        idx = sha[0]
        start = 0 if idx == 0 else self._fan_out_table[idx - 1]
        end = self._fan_out_table[idx]
        try:
            return bisect_find_sha(start, end, sha, self._unpack_name)
        except ValueError as exc:
            if getattr(self._contents, "closed", False):
                raise PackFileDisappeared(self) from exc
            raise

    def lookup(self, sha: ObjectID | RawObjectID) -> tuple[int, int | None] | None:
        """Find where an object is stored in the pack.

        Args:
            sha: Hex or binary object id

        Returns:
            Tuple of (offset, crc32) where crc32 is None for version 1
            indexes, or None if the object is not in this index
        """
        i = self._find(self._to_binary(sha))
        if i is None:
            return None
        return self._unpack_offset(i), self._unpack_crc32_checksum(i)

    def object_offset(self, sha: ObjectID | RawObjectID) -> int:
        """Return the offset in to the corresponding packfile for the object.

        Raises:
            KeyError: If the object is not in this index
        """
        entry = self.lookup(sha)
        if entry is None:
            raise KeyError(sha)
        return entry[0]

    def iter_prefix(self, prefix: bytes) -> Iterator[RawObjectID]:
        """Iterate over all binary ids starting with the given binary prefix."""
        if not prefix:
            yield from self._itersha()
            return
        first = prefix[0]
        start = 0 if first == 0 else self._fan_out_table[first - 1]
        end = self._fan_out_table[first]
        started = False
        for i in range(start, end):
            name = self._unpack_name(i)
            if name.startswith(prefix):
                yield name
                started = True
            elif started:
                break

    def get_pack_checksum(self) -> bytes:
        """Return the checksum stored for the corresponding packfile."""
        return bytes(self._contents[-2 * self.hash_size : -self.hash_size])

    def get_stored_checksum(self) -> bytes:
        """Return the checksum stored for this index."""
        return bytes(self._contents[-self.hash_size :])

    def calculate_checksum(self) -> bytes:
        """Calculate the checksum over this pack index."""
        h = self.object_format.new_hash()
        h.update(self._contents[: -self.hash_size])
        return h.digest()

    def check(self) -> None:
        """Check that the stored checksum matches the actual checksum.

        Raises:
            CorruptFormat: On mismatch
        """
        actual = self.calculate_checksum()
        stored = self.get_stored_checksum()
        if actual != stored:
            raise CorruptFormat(
                f"{self.path}: index checksum mismatch: stored "
                f"{binascii.hexlify(stored).decode('ascii')}, computed "
                f"{binascii.hexlify(actual).decode('ascii')}"
            )


class PackIndex1(PackIndex):
    """Version 1 Pack Index file.

    Layout: fan-out table, then ``(4-byte offset, 20-byte name)`` pairs,
    then the pack checksum and the index checksum.
    """

    version = 1

    def __init__(
        self,
        path: str,
        contents: "mmap.mmap | bytes",
        size: int,
        object_format: ObjectFormat = SHA1,
    ) -> None:
        if object_format is not SHA1:
            raise Unsupported(
                f"{path}: version 1 pack indexes only support sha1, "
                f"not {object_format.name}"
            )
        super().__init__(path, contents, size, object_format)
        self._fan_out_table = self._read_fan_out_table(0)
        self._entry_size = 4 + self.hash_size
        expected = _FANOUT_SIZE + len(self) * self._entry_size + 2 * self.hash_size
        if size != expected:
            raise CorruptFormat(
                f"{path}: index size {size} does not match "
                f"{len(self)} objects (expected {expected})"
            )

    def _unpack_name(self, i: int) -> bytes:
        offset = _FANOUT_SIZE + (i * self._entry_size) + 4
        return bytes(self._contents[offset : offset + self.hash_size])

    def _unpack_offset(self, i: int) -> int:
        offset = _FANOUT_SIZE + (i * self._entry_size)
        return int(unpack_from(">L", self._contents, offset)[0])

    def _unpack_crc32_checksum(self, i: int) -> None:
        # Not stored in v1 index files
        return None


class PackIndex2(PackIndex):
    """Version 2 Pack Index file.

    Layout: magic, version, fan-out table, sorted names, CRC32 table,
    4-byte offset table, 8-byte large offset table, pack checksum, index
    checksum. An offset with the most significant bit set is an index into
    the large offset table.
    """

    version = 2

    def __init__(
        self,
        path: str,
        contents: "mmap.mmap | bytes",
        size: int,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
    ) -> None:
        super().__init__(path, contents, size, object_format)
        self._fan_out_table = self._read_fan_out_table(8)
        count = len(self)
        self._name_table_offset = 8 + _FANOUT_SIZE
        self._crc32_table_offset = self._name_table_offset + self.hash_size * count
        self._pack_offset_table_offset = self._crc32_table_offset + 4 * count
        self._pack_offset_largetable_offset = self._pack_offset_table_offset + 4 * count
        minimum = self._pack_offset_largetable_offset + 2 * self.hash_size
        if size < minimum or (size - minimum) % 8:
            raise CorruptFormat(
                f"{path}: index size {size} does not match {count} objects"
            )
        self._large_offset_count = (size - minimum) // 8

    def _unpack_name(self, i: int) -> bytes:
        offset = self._name_table_offset + i * self.hash_size
        return bytes(self._contents[offset : offset + self.hash_size])

    def _unpack_offset(self, i: int) -> int:
        offset = self._pack_offset_table_offset + i * 4
        offset_val = int(unpack_from(">L", self._contents, offset)[0])
        if offset_val & (2**31):
            large_index = offset_val & (2**31 - 1)
            if large_index >= self._large_offset_count:
                raise CorruptFormat(
                    f"{self.path}: large offset index {large_index} out of range"
                )
            offset = self._pack_offset_largetable_offset + large_index * 8
            offset_val = int(unpack_from(">Q", self._contents, offset)[0])
        return offset_val

    def _unpack_crc32_checksum(self, i: int) -> int:
        return int(
            unpack_from(">L", self._contents, self._crc32_table_offset + i * 4)[0]
        )


def read_pack_header(data: "mmap.mmap | bytes") -> tuple[int, int]:
    """Read the header of a pack file.

    Returns:
        Tuple of (pack version, number of objects)

    Raises:
        CorruptFormat: If the signature is missing
        Unsupported: If the version is not 2 or 3
    """
    header = bytes(data[:12])
    if len(header) < 12:
        raise CorruptFormat("file too short to contain pack")
    if header[:4] != b"PACK":
        raise CorruptFormat(f"Invalid pack header {header[:4]!r}")
    (version,) = unpack_from(">L", header, 4)
    if version not in (2, 3):
        raise Unsupported(f"unsupported pack version {version}")
    (num_objects,) = unpack_from(">L", header, 8)
    return (version, num_objects)


class UnpackedObject:
    """An object as stored in a pack, before delta resolution.

    Attributes:
        offset: Offset of the entry in the pack
        pack_type_num: Type number as stored (may be a delta type)
        delta_base: Relative base offset for OFS_DELTA, binary base id for
            REF_DELTA, None otherwise
        decomp_len: Declared size of the decompressed data
        data: Decompressed data (object content or delta instructions)
    """

    __slots__ = ("offset", "pack_type_num", "delta_base", "decomp_len", "data")

    def __init__(
        self,
        offset: int,
        pack_type_num: int,
        delta_base: int | bytes | None,
        decomp_len: int,
        data: bytes,
    ) -> None:
        self.offset = offset
        self.pack_type_num = pack_type_num
        self.delta_base = delta_base
        self.decomp_len = decomp_len
        self.data = data

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(offset={self.offset}, "
            f"type={self.pack_type_num}, delta_base={self.delta_base!r}, "
            f"len={self.decomp_len})"
        )


def read_zlib_at(
    data: "mmap.mmap | bytes", offset: int, end: int, expected_size: int
) -> bytes:
    """Decompress a zlib stream starting at an offset.

    Args:
        data: Buffer holding the stream
        offset: Where the stream starts
        end: Position past which the stream may not extend
        expected_size: Declared size of the decompressed data

    Raises:
        CorruptFormat: If the stream is invalid, truncated, or does not
            decompress to exactly expected_size bytes
    """
    decomp = zlib.decompressobj()
    out = []
    total = 0
    pos = offset
    while not decomp.eof:
        if pos >= end:
            raise CorruptFormat(f"truncated zlib stream at offset {offset}")
        chunk = data[pos : min(pos + _ZLIB_BUFSIZE, end)]
        pos += len(chunk)
        try:
            piece = decomp.decompress(chunk)
        except zlib.error as e:
            raise CorruptFormat(f"invalid zlib stream at offset {offset}: {e}")
        total += len(piece)
        if total > expected_size:
            raise CorruptFormat(
                f"object at offset {offset} is larger than declared size "
                f"{expected_size}"
            )
        out.append(piece)
    if total != expected_size:
        raise CorruptFormat(
            f"object at offset {offset} decompressed to {total} bytes, "
            f"expected {expected_size}"
        )
    return b"".join(out)


class PackData:
    """The data contained in a packfile.

    Pack files can be accessed both sequentially for exploding a pack, and
    directly with the help of an index to retrieve a specific object. Only
    direct access is supported here.

    The pack starts with a 12 byte header: ``PACK``, a 4-byte version and a
    4-byte object count. It ends with a checksum over everything before it.
    """

    def __init__(
        self, path: str, object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT
    ) -> None:
        """Open a pack data file.

        Raises:
            OSError: If the file can not be opened
            CorruptFormat: If the header is invalid or the file truncated
            Unsupported: If the pack version is not understood
        """
        self.path = path
        self.object_format = object_format
        self._contents, self._size = _load_file_contents(path)
        try:
            self.version, self._num_objects = read_pack_header(self._contents)
            if self._size < 12 + object_format.oid_length:
                raise CorruptFormat(f"{path}: pack file is truncated")
        except BaseException:
            self.close()
            raise
        self._end = self._size - object_format.oid_length

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    def __len__(self) -> int:
        """Returns the number of objects in this pack."""
        return self._num_objects

    def close(self) -> None:
        _close_contents(self._contents)

    def get_stored_checksum(self) -> bytes:
        """Return the checksum stored at the end of the pack."""
        return bytes(self._contents[self._end :])

    def calculate_checksum(self) -> bytes:
        """Calculate the checksum over everything but the trailer."""
        h = self.object_format.new_hash()
        h.update(self._contents[: self._end])
        return h.digest()

    def _byte_at(self, pos: int) -> int:
        if pos >= self._end:
            raise CorruptFormat(f"{self.path}: entry header runs past end of pack")
        return self._contents[pos]

    def get_unpacked_object_at(self, offset: int) -> UnpackedObject:
        """Read and decompress the entry at an offset.

        Raises:
            CorruptFormat: If the entry is malformed
            PackFileDisappeared: If the pack was closed underneath us
        """
        try:
            return self._unpack_at(offset)
        except ValueError as exc:
            if getattr(self._contents, "closed", False):
                raise PackFileDisappeared(self) from exc
            raise CorruptFormat(f"{self.path}: bad entry at {offset}: {exc}")
        except IndexError as exc:
            raise CorruptFormat(f"{self.path}: bad entry at {offset}: {exc}")

    def _unpack_at(self, offset: int) -> UnpackedObject:
        if offset < 12 or offset >= self._end:
            raise CorruptFormat(f"{self.path}: offset {offset} outside pack")
        pos = offset
        byte = self._byte_at(pos)
        pos += 1
        type_num = (byte >> 4) & 0x07
        size = byte & 0x0F
        shift = 4
        while byte & 0x80:
            byte = self._byte_at(pos)
            pos += 1
            size += (byte & 0x7F) << shift
            shift += 7

        delta_base: int | bytes | None
        if type_num == OFS_DELTA:
            byte = self._byte_at(pos)
            pos += 1
            delta_base_offset = byte & 0x7F
            while byte & 0x80:
                byte = self._byte_at(pos)
                pos += 1
                delta_base_offset += 1
                delta_base_offset <<= 7
                delta_base_offset += byte & 0x7F
            delta_base = delta_base_offset
        elif type_num == REF_DELTA:
            hash_size = self.object_format.oid_length
            if pos + hash_size > self._end:
                raise CorruptFormat(f"{self.path}: truncated delta base id")
            delta_base = bytes(self._contents[pos : pos + hash_size])
            pos += hash_size
        elif type_num in (1, 2, 3, 4):
            delta_base = None
        else:
            raise CorruptFormat(
                f"{self.path}: invalid object type {type_num} at offset {offset}"
            )
        decompressed = read_zlib_at(self._contents, pos, self._end, size)
        return UnpackedObject(offset, type_num, delta_base, size, decompressed)


def _delta_header_size(delta: bytes, index: int) -> tuple[int, int]:
    size = 0
    shift = 0
    while True:
        if index >= len(delta):
            raise ApplyDeltaError("truncated delta header")
        cmd = delta[index]
        index += 1
        size |= (cmd & 0x7F) << shift
        shift += 7
        if not cmd & 0x80:
            return size, index


def apply_delta(src_buf: bytes, delta: bytes) -> bytes:
    """Apply delta instructions to a base object.

    Based on the similar function in git's patch-delta.c. The result is
    written into a buffer of the size the delta declares, and every copy
    and insert is bounds-checked against both buffers.

    Args:
        src_buf: Source (base) buffer
        delta: Delta instructions

    Returns:
        The reconstructed target buffer

    Raises:
        ApplyDeltaError: If the delta is malformed or does not fit the base
    """
    delta_length = len(delta)
    src_size, index = _delta_header_size(delta, 0)
    dest_size, index = _delta_header_size(delta, index)
    if src_size != len(src_buf):
        raise ApplyDeltaError(
            f"Unexpected source buffer size: {src_size} vs {len(src_buf)}"
        )
    out = bytearray(dest_size)
    pos = 0
    while index < delta_length:
        cmd = delta[index]
        index += 1
        if cmd & 0x80:
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    if index >= delta_length:
                        raise ApplyDeltaError("truncated copy instruction")
                    cp_off |= delta[index] << (i * 8)
                    index += 1
            cp_size = 0
            # Version 3 packs can contain copy sizes larger than 64K.
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    if index >= delta_length:
                        raise ApplyDeltaError("truncated copy instruction")
                    cp_size |= delta[index] << (i * 8)
                    index += 1
            if cp_size == 0:
                cp_size = 0x10000
            if cp_off + cp_size > src_size:
                raise ApplyDeltaError(
                    f"copy of {cp_size} bytes at {cp_off} exceeds source "
                    f"size {src_size}"
                )
            if pos + cp_size > dest_size:
                raise ApplyDeltaError("copy exceeds declared target size")
            out[pos : pos + cp_size] = src_buf[cp_off : cp_off + cp_size]
            pos += cp_size
        elif cmd != 0:
            if index + cmd > delta_length:
                raise ApplyDeltaError("truncated insert instruction")
            if pos + cmd > dest_size:
                raise ApplyDeltaError("insert exceeds declared target size")
            out[pos : pos + cmd] = delta[index : index + cmd]
            index += cmd
            pos += cmd
        else:
            raise ApplyDeltaError("Invalid opcode 0")

    if pos != dest_size:
        raise ApplyDeltaError(f"dest size incorrect: {pos} vs {dest_size}")
    return bytes(out)


class ResolutionContext:
    """Bookkeeping for one delta resolution request.

    A context is shared by every pack that takes part in resolving a single
    object, so that chains which hop between packs through REF_DELTA bases
    are still checked for cycles and total depth.
    """

    __slots__ = ("max_depth", "depth", "seen")

    def __init__(self, max_depth: int = DEFAULT_MAX_DELTA_DEPTH) -> None:
        self.max_depth = max_depth
        self.depth = 0
        self.seen: set[object] = set()

    def copy(self) -> "ResolutionContext":
        """Return an independent copy, for trying an alternative source."""
        other = ResolutionContext(self.max_depth)
        other.depth = self.depth
        other.seen = set(self.seen)
        return other

    def enter(self, key: object) -> None:
        """Record a step of the chain.

        Raises:
            DeltaResolutionError: If the step was already visited or the
                chain has become too deep
        """
        if key in self.seen:
            raise DeltaResolutionError(f"delta chain cycle at {key!r}")
        self.seen.add(key)

    def descend(self) -> None:
        self.depth += 1
        if self.depth > self.max_depth:
            raise DeltaResolutionError(
                f"delta chain deeper than {self.max_depth}"
            )


ExternalRefResolver = Callable[[ObjectID, ResolutionContext], tuple[int, bytes]]


class DeltaResolver:
    """Reconstructs full objects from the entries of one pack.

    Bases referenced by offset must live in the same pack. Bases referenced
    by id are looked up in the same pack first, then through
    ``resolve_ext_ref`` (normally the object store), which may raise
    KeyError when the base does not exist anywhere.
    """

    def __init__(
        self,
        data: PackData,
        index: PackIndex,
        resolve_ext_ref: ExternalRefResolver | None = None,
        max_depth: int = DEFAULT_MAX_DELTA_DEPTH,
    ) -> None:
        self.data = data
        self.index = index
        self.resolve_ext_ref = resolve_ext_ref
        self.max_depth = max_depth

    def resolve(
        self, offset: int, context: ResolutionContext | None = None
    ) -> tuple[int, bytes]:
        """Return the type number and full content of the entry at offset.

        Args:
            offset: Offset of the entry in the pack
            context: Resolution state shared with other packs, if this is
                part of a larger request

        Raises:
            DeltaResolutionError: If a base is missing, the chain loops, or
                the chain is deeper than the maximum depth
            CorruptFormat: If an entry or delta is malformed
        """
        if context is None:
            context = ResolutionContext(self.max_depth)
        path = self.data.path
        deltas: list[bytes] = []
        context.enter((path, offset))
        unpacked = self.data.get_unpacked_object_at(offset)
        base: tuple[int, bytes] | None = None
        while base is None:
            if unpacked.pack_type_num not in DELTA_TYPES:
                base = (unpacked.pack_type_num, unpacked.data)
                break
            deltas.append(unpacked.data)
            context.descend()
            if unpacked.pack_type_num == OFS_DELTA:
                assert isinstance(unpacked.delta_base, int)
                base_offset = unpacked.offset - unpacked.delta_base
                if base_offset < 12 or base_offset >= unpacked.offset:
                    raise CorruptFormat(
                        f"{path}: invalid delta base offset {base_offset} "
                        f"for entry at {unpacked.offset}"
                    )
                context.enter((path, base_offset))
                unpacked = self.data.get_unpacked_object_at(base_offset)
                continue
            assert isinstance(unpacked.delta_base, bytes)
            base_id = sha_to_hex(unpacked.delta_base)
            context.enter(base_id)
            entry = self.index.lookup(unpacked.delta_base)
            if entry is not None:
                context.enter((path, entry[0]))
                unpacked = self.data.get_unpacked_object_at(entry[0])
                continue
            if self.resolve_ext_ref is None:
                raise DeltaResolutionError(
                    f"delta base {base_id.decode('ascii')} not found"
                )
            try:
                base = self.resolve_ext_ref(base_id, context)
            except KeyError:
                raise DeltaResolutionError(
                    f"delta base {base_id.decode('ascii')} not found"
                )

        type_num, content = base
        for delta in reversed(deltas):
            content = apply_delta(content, delta)
        return type_num, content


class Pack:
    """A pack file and its index, opened together.

    Opening validates that the index belongs to the pack: the object count
    in the pack header must equal the index length and the pack's trailing
    checksum must equal the pack checksum the index records.
    """

    def __init__(
        self,
        basename: str,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
        resolve_ext_ref: ExternalRefResolver | None = None,
        max_delta_depth: int = DEFAULT_MAX_DELTA_DEPTH,
    ) -> None:
        """Open a pack.

        Args:
            basename: Path of the pack without the ``.pack``/``.idx`` suffix
            object_format: Hash algorithm used by the repository
            resolve_ext_ref: Lookup for REF_DELTA bases outside this pack
            max_delta_depth: Deepest delta chain to follow

        Raises:
            OSError: If either file can not be opened
            CorruptFormat: If either file is malformed or they do not match
            Unsupported: If either file has an unsupported version
        """
        self._basename = basename
        self.object_format = object_format
        self.index = load_pack_index(basename + ".idx", object_format)
        try:
            self.data = PackData(basename + ".pack", object_format)
        except BaseException:
            self.index.close()
            raise
        try:
            self.check_length_and_checksum()
        except BaseException:
            self.close()
            raise
        self.resolver = DeltaResolver(
            self.data, self.index, resolve_ext_ref, max_delta_depth
        )
        logger.debug("Opened %s with %d objects", self.name, len(self.index))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._basename!r})"

    @property
    def name(self) -> str:
        """The base file name of this pack, e.g. ``pack-<checksum>``."""
        return os.path.basename(self._basename)

    def close(self) -> None:
        self.data.close()
        self.index.close()

    def __len__(self) -> int:
        """Number of entries in this pack."""
        return len(self.index)

    def __contains__(self, sha: ObjectID | RawObjectID) -> bool:
        return self.index.lookup(sha) is not None

    def __iter__(self) -> Iterator[ObjectID]:
        return iter(self.index)

    def check_length_and_checksum(self) -> None:
        """Sanity check the length and checksum of the pack index and data.

        Raises:
            CorruptFormat: If the index does not describe this pack
        """
        if len(self.index) != len(self.data):
            raise CorruptFormat(
                f"{self._basename}: index has {len(self.index)} entries but "
                f"pack has {len(self.data)}"
            )
        idx_stored_checksum = self.index.get_pack_checksum()
        data_stored_checksum = self.data.get_stored_checksum()
        if idx_stored_checksum != data_stored_checksum:
            raise CorruptFormat(
                f"{self._basename}: pack checksum "
                f"{binascii.hexlify(data_stored_checksum).decode('ascii')} "
                "does not match index "
                f"{binascii.hexlify(idx_stored_checksum).decode('ascii')}"
            )

    def iter_prefix(self, prefix: bytes) -> Iterator[RawObjectID]:
        return self.index.iter_prefix(prefix)

    def get_raw(
        self, sha: ObjectID, context: ResolutionContext | None = None
    ) -> tuple[int, bytes]:
        """Get the type number and content of an object in this pack.

        Raises:
            KeyError: If the object is not in this pack
            DeltaResolutionError: If its delta chain can not be resolved
            CorruptFormat: If its entry is malformed
        """
        entry = self.index.lookup(sha)
        if entry is None:
            raise KeyError(sha)
        return self.resolver.resolve(entry[0], context)
