# object_store.py -- Object store for git objects
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

"""Git object store interfaces and implementation."""

import binascii
import os
import stat
import threading
from collections.abc import Callable, Iterator

from .errors import (
    CorruptFormat,
    DeltaResolutionError,
    IntegrityError,
    NotFound,
    NotTreeError,
    Unsupported,
)
from .log_utils import getLogger
from .lru_cache import LRUSizeCache
from .object_format import DEFAULT_OBJECT_FORMAT, ObjectFormat
from .objects import (
    S_ISGITLINK,
    ObjectID,
    RawObjectID,
    ShaFile,
    Tree,
    object_from_raw,
    parse_loose_object,
    sha_to_hex,
    type_num_to_name,
    valid_hexsha,
)
from .pack import (
    DEFAULT_MAX_DELTA_DEPTH,
    Pack,
    PackFileDisappeared,
    ResolutionContext,
)

INFODIR = "info"
PACKDIR = "pack"

# Default budget for cached object contents, in bytes.
DEFAULT_CACHE_SIZE = 20 * 1024 * 1024

# git refuses to follow alternates nested deeper than this.
MAX_ALTERNATE_DEPTH = 5

logger = getLogger(__name__)

PackSignature = tuple[tuple[int, int], tuple[int, int]]


def _cache_entry_size(value: tuple[int, bytes]) -> int:
    return len(value[1])


class DiskObjectStore:
    """Git-style object store that exists on disk.

    Objects are looked up in loose storage first, then in every available
    pack, then (after rescanning the pack directory once) in newly appeared
    packs, and finally in alternate object stores. Every object handed out
    has had its id recomputed from its content.

    A pack that can not be opened or does not match its index is marked
    unavailable and skipped; it is retried only once its files change on
    disk.
    """

    def __init__(
        self,
        path: str,
        *,
        object_format: ObjectFormat = DEFAULT_OBJECT_FORMAT,
        cache_size: int = DEFAULT_CACHE_SIZE,
        max_delta_depth: int = DEFAULT_MAX_DELTA_DEPTH,
        _alternate_depth: int = 0,
    ) -> None:
        """Open an object store.

        Args:
            path: Path of the object store (the ``objects`` directory)
            object_format: Hash algorithm used by the repository
            cache_size: Byte budget of the object cache
            max_delta_depth: Deepest delta chain that will be followed
        """
        self.path = path
        self.pack_dir = os.path.join(self.path, PACKDIR)
        self.object_format = object_format
        self.max_delta_depth = max_delta_depth
        self._cache_size = cache_size
        self._cache = LRUSizeCache[ObjectID, tuple[int, bytes]](
            cache_size, compute_size=_cache_entry_size
        )
        self._lock = threading.Lock()
        self._pack_cache: dict[str, Pack] = {}
        self._pack_signatures: dict[str, PackSignature] = {}
        self._unavailable_packs: dict[str, PackSignature] = {}
        self._packs_loaded = False
        self._alternate_depth = _alternate_depth
        self._alternates: list["DiskObjectStore"] | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    # Packs

    def _pack_signature(self, name: str) -> PackSignature | None:
        base = os.path.join(self.pack_dir, name)
        try:
            pack_st = os.stat(base + ".pack")
            idx_st = os.stat(base + ".idx")
        except FileNotFoundError:
            return None
        return (
            (pack_st.st_size, pack_st.st_mtime_ns),
            (idx_st.st_size, idx_st.st_mtime_ns),
        )

    def rescan(self) -> list[Pack]:
        """Update the set of open packs from the pack directory.

        Opens packs that appeared since the last scan, closes packs that
        disappeared, and retries unavailable packs whose files changed.

        Returns:
            The packs opened by this scan
        """
        try:
            pack_dir_contents = set(os.listdir(self.pack_dir))
        except FileNotFoundError:
            pack_dir_contents = set()
        pack_files = set()
        for name in pack_dir_contents:
            if name.startswith("pack-") and name.endswith(".pack"):
                # Wait for the idx; until then the pack is still being written.
                pack_name = name[: -len(".pack")]
                if pack_name + ".idx" in pack_dir_contents:
                    pack_files.add(pack_name)

        new_packs = []
        with self._lock:
            self._packs_loaded = True
            for f in sorted(pack_files):
                signature = self._pack_signature(f)
                if signature is None:
                    continue
                if f in self._pack_cache:
                    if self._pack_signatures.get(f) == signature:
                        continue
                    # Rewritten in place; reopen.
                    self._pack_cache.pop(f).close()
                if self._unavailable_packs.get(f) == signature:
                    continue
                try:
                    pack = Pack(
                        os.path.join(self.pack_dir, f),
                        object_format=self.object_format,
                        resolve_ext_ref=self._resolve_ext_ref,
                        max_delta_depth=self.max_delta_depth,
                    )
                except (OSError, CorruptFormat, Unsupported) as e:
                    logger.warning("Pack %s is unavailable: %s", f, e)
                    self._unavailable_packs[f] = signature
                    continue
                self._unavailable_packs.pop(f, None)
                self._pack_cache[f] = pack
                self._pack_signatures[f] = signature
                new_packs.append(pack)
            for f in set(self._pack_cache) - pack_files:
                logger.debug("Pack %s disappeared", f)
                self._pack_cache.pop(f).close()
                self._pack_signatures.pop(f, None)
            for f in set(self._unavailable_packs) - pack_files:
                del self._unavailable_packs[f]
        if new_packs:
            logger.debug("Opened %d new pack(s) in %s", len(new_packs), self.pack_dir)
        return new_packs

    @property
    def packs(self) -> list[Pack]:
        """List with the currently available packs."""
        if not self._packs_loaded:
            self.rescan()
        with self._lock:
            return list(self._pack_cache.values())

    @property
    def unavailable_packs(self) -> list[str]:
        """Names of packs that could not be opened."""
        with self._lock:
            return sorted(self._unavailable_packs)

    def close(self) -> None:
        """Close all open packs and alternates."""
        with self._lock:
            for pack in self._pack_cache.values():
                pack.close()
            self._pack_cache.clear()
            self._pack_signatures.clear()
            self._packs_loaded = False
        if self._alternates is not None:
            for alternate in self._alternates:
                alternate.close()
        self._cache.clear()

    # Alternates

    @property
    def alternates(self) -> list["DiskObjectStore"]:
        """Alternate object stores, read from ``info/alternates``."""
        if self._alternates is not None:
            return self._alternates
        alternates = []
        for path in self._read_alternate_paths():
            if self._alternate_depth + 1 > MAX_ALTERNATE_DEPTH:
                logger.warning(
                    "Ignoring alternate %s: nested deeper than %d",
                    path,
                    MAX_ALTERNATE_DEPTH,
                )
                continue
            if not os.path.isdir(path):
                logger.warning("Ignoring missing alternate %s", path)
                continue
            alternates.append(
                DiskObjectStore(
                    path,
                    object_format=self.object_format,
                    cache_size=self._cache_size,
                    max_delta_depth=self.max_delta_depth,
                    _alternate_depth=self._alternate_depth + 1,
                )
            )
        self._alternates = alternates
        return alternates

    def _read_alternate_paths(self) -> Iterator[str]:
        try:
            with open(os.path.join(self.path, INFODIR, "alternates"), "rb") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return
        for line in lines:
            line = line.strip()
            if not line or line.startswith(b"#"):
                continue
            if os.path.isabs(line):
                yield os.fsdecode(line)
            else:
                yield os.fsdecode(os.path.join(os.fsencode(self.path), line))

    # Loose objects

    def _get_shafile_path(self, sha: ObjectID) -> str:
        hexsha = sha.decode("ascii")
        return os.path.join(self.path, hexsha[:2], hexsha[2:])

    def _get_loose_raw(self, sha: ObjectID) -> tuple[int, bytes] | None:
        try:
            with open(self._get_shafile_path(sha), "rb") as f:
                compressed = f.read()
        except (FileNotFoundError, NotADirectoryError):
            return None
        return parse_loose_object(compressed)

    def contains_loose(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1 and is loose."""
        return os.path.isfile(self._get_shafile_path(self._to_hex(sha)))

    def contains_packed(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1 and is packed."""
        hexsha = self._to_hex(sha)
        for pack in self.packs:
            try:
                if hexsha in pack:
                    return True
            except PackFileDisappeared:
                pass
        return False

    def __contains__(self, sha: object) -> bool:
        """Check if a particular object is present by SHA1.

        This method makes no distinction between loose and packed objects.
        """
        if not isinstance(sha, bytes):
            return False
        try:
            hexsha = self._to_hex(sha)
        except NotFound:
            return False
        if hexsha in self._cache:
            return True
        if self.contains_loose(hexsha) or self.contains_packed(hexsha):
            return True
        for pack in self.rescan():
            if hexsha in pack:
                return True
        return any(hexsha in alternate for alternate in self.alternates)

    # Retrieval

    def _to_hex(self, name: ObjectID | RawObjectID) -> ObjectID:
        if len(name) == self.object_format.oid_length:
            return sha_to_hex(name)
        if not valid_hexsha(name, self.object_format.hex_length):
            raise NotFound(name)
        return name.lower()

    def _verify(self, sha: ObjectID, type_num: int, data: bytes) -> None:
        actual = self.object_format.hash_object_hex(type_num_to_name(type_num), data)
        if actual != sha:
            raise IntegrityError(sha, actual)

    def _get_raw_uncached(
        self, sha: ObjectID, context: ResolutionContext
    ) -> tuple[int, bytes]:
        """Find an object in any source, without verification.

        Failures from one source do not prevent the others from being
        tried; the first failure is raised only if no source succeeds.
        """
        error: Exception | None = None
        try:
            ret = self._get_loose_raw(sha)
        except (CorruptFormat, Unsupported) as e:
            logger.warning("Loose object %s is unreadable: %s", sha.decode(), e)
            error = e
        else:
            if ret is not None:
                return ret

        def try_packs(packs: list[Pack]) -> tuple[int, bytes] | None:
            nonlocal error
            for pack in packs:
                try:
                    return pack.get_raw(sha, context.copy())
                except (KeyError, PackFileDisappeared):
                    continue
                except (CorruptFormat, DeltaResolutionError, Unsupported) as e:
                    logger.warning(
                        "Object %s in pack %s is unreadable: %s",
                        sha.decode(),
                        pack.name,
                        e,
                    )
                    if error is None:
                        error = e
            return None

        ret = try_packs(self.packs)
        if ret is not None:
            return ret
        # Maybe something else has added a pack with the object
        # in the mean time?
        ret = try_packs(self.rescan())
        if ret is not None:
            return ret
        for alternate in self.alternates:
            try:
                return alternate._get_raw_uncached(sha, context.copy())
            except NotFound:
                continue
        if error is not None:
            raise error
        raise NotFound(sha)

    def _resolve_ext_ref(
        self, sha: ObjectID, context: ResolutionContext
    ) -> tuple[int, bytes]:
        """Look up a delta base that lives outside the pack referencing it."""
        try:
            return self._cache[sha]
        except KeyError:
            pass
        type_num, data = self._get_raw_uncached(sha, context)
        self._verify(sha, type_num, data)
        self._cache.add(sha, (type_num, data))
        return type_num, data

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Obtain the raw fulltext for an object.

        Args:
            name: Hex or binary id of the object

        Returns:
            tuple with numeric type and object contents

        Raises:
            NotFound: If the object does not exist
            IntegrityError: If the content does not hash to the id
            CorruptFormat: If the object is stored in a malformed way
            DeltaResolutionError: If its delta chain can not be resolved
        """
        sha = self._to_hex(name)
        try:
            return self._cache[sha]
        except KeyError:
            pass
        context = ResolutionContext(self.max_delta_depth)
        context.enter(sha)
        type_num, data = self._get_raw_uncached(sha, context)
        self._verify(sha, type_num, data)
        self._cache.add(sha, (type_num, data))
        return type_num, data

    def __getitem__(self, sha: ObjectID | RawObjectID) -> ShaFile:
        """Obtain an object by id, parsed into its ShaFile subclass."""
        hexsha = self._to_hex(sha)
        type_num, data = self.get_raw(hexsha)
        return object_from_raw(hexsha, type_num, data, self.object_format)

    def get(self, sha: ObjectID, default: ShaFile | None = None) -> ShaFile | None:
        try:
            return self[sha]
        except NotFound:
            return default

    def iter_prefix(self, prefix: bytes) -> Iterator[ObjectID]:
        """Iterate over all object ids with the given hex prefix.

        Args:
            prefix: Hex prefix to search for (as bytes)
        """
        prefix = prefix.lower()
        try:
            binascii.unhexlify(prefix if len(prefix) % 2 == 0 else prefix[:-1])
        except binascii.Error:
            return
        seen = set()
        if len(prefix) >= 2:
            subdirs = [prefix[:2].decode("ascii")]
        else:
            try:
                subdirs = [
                    d
                    for d in os.listdir(self.path)
                    if len(d) == 2 and d.startswith(prefix.decode("ascii"))
                ]
            except FileNotFoundError:
                subdirs = []
        rest = prefix[2:].decode("ascii")
        for subdir in subdirs:
            try:
                names = os.listdir(os.path.join(self.path, subdir))
            except (FileNotFoundError, NotADirectoryError):
                continue
            for name in names:
                if name.startswith(rest):
                    sha = os.fsencode(subdir + name)
                    if valid_hexsha(sha, self.object_format.hex_length) and (
                        sha not in seen
                    ):
                        seen.add(sha)
                        yield sha

        bin_prefix = binascii.unhexlify(
            prefix if len(prefix) % 2 == 0 else prefix[:-1]
        )
        for p in self.packs:
            try:
                for bin_sha in p.iter_prefix(bin_prefix):
                    sha = sha_to_hex(bin_sha)
                    if sha.startswith(prefix) and sha not in seen:
                        seen.add(sha)
                        yield sha
            except PackFileDisappeared:
                continue
        for alternate in self.alternates:
            for sha in alternate.iter_prefix(prefix):
                if sha not in seen:
                    seen.add(sha)
                    yield sha


def tree_lookup_path(
    lookup_obj: Callable[[ObjectID], ShaFile],
    root_sha: ObjectID,
    path: bytes,
) -> tuple[int, ObjectID]:
    """Look up an object in a Git tree.

    The walk is iterative. A submodule (gitlink) entry is terminal: it can
    be returned itself, but nothing below it can be looked up.

    Args:
        lookup_obj: Callback for retrieving object by SHA1
        root_sha: SHA1 of the root tree
        path: Slash-separated path to lookup

    Returns:
        A tuple of (mode, SHA) of the resulting path.

    Raises:
        NotFound: If a path component does not exist or is not a directory
    """
    mode = stat.S_IFDIR
    sha = root_sha
    parts = [p for p in path.split(b"/") if p]
    for i, part in enumerate(parts):
        if S_ISGITLINK(mode):
            raise NotFound(b"/".join(parts[:i]))
        if not stat.S_ISDIR(mode):
            raise NotTreeError(sha)
        tree = lookup_obj(sha)
        if not isinstance(tree, Tree):
            raise NotTreeError(sha)
        entry = tree.lookup(part)
        if entry is None:
            raise NotFound(b"/".join(parts[: i + 1]))
        mode, sha = entry.mode, entry.sha
    return mode, sha
