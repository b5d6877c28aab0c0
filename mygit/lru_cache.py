# lru_cache.py -- Simple LRU cache for mygit
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

"""A thread-safe LRU cache, bounded by entry count or by total size."""

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

_null_key = object()


class LRUCache(Generic[K, V]):
    """A class which manages a cache of entries, removing unused ones.

    All operations take an internal lock, so one instance can be shared
    between threads serving concurrent requests.
    """

    def __init__(
        self, max_cache: int = 100, after_cleanup_count: int | None = None
    ) -> None:
        """Initialize an LRUCache.

        Args:
            max_cache: Maximum number of entries before a cleanup runs
            after_cleanup_count: Number of entries kept by a cleanup;
                defaults to 80% of max_cache
        """
        self._cache: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.Lock()
        self._update_max_cache(max_cache, after_cleanup_count)

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __getitem__(self, key: K) -> V:
        with self._lock:
            value = self._cache[key]
            self._cache.move_to_end(key)
            return value

    def __setitem__(self, key: K, value: V) -> None:
        self.add(key, value)

    def get(self, key: K, default: V | None = None) -> V | None:
        try:
            return self[key]
        except KeyError:
            return default

    def add(self, key: K, value: V) -> None:
        """Add a new value to the cache.

        Args:
            key: The key to store it under
            value: The object to store
        """
        if key is _null_key:
            raise ValueError("cannot use _null_key as a key")
        with self._lock:
            self._cache[key] = value
            self._cache.move_to_end(key)
            if self._needs_cleanup():
                self._cleanup()

    def keys(self) -> list[K]:
        """Get the list of keys currently cached, oldest first."""
        with self._lock:
            return list(self._cache)

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    def cleanup(self) -> None:
        """Clear the cache until it shrinks to the requested size."""
        with self._lock:
            self._cleanup()

    def clear(self) -> None:
        """Remove every entry from the cache."""
        with self._lock:
            self._cache.clear()
            self._on_clear()

    def _needs_cleanup(self) -> bool:
        return len(self._cache) > self._max_cache

    def _cleanup(self) -> None:
        while len(self._cache) > self._after_cleanup_count:
            self._remove_lru()

    def _remove_lru(self) -> None:
        self._on_remove(*self._cache.popitem(last=False))

    def _on_remove(self, key: K, value: V) -> None:
        pass

    def _on_clear(self) -> None:
        pass

    def _update_max_cache(
        self, max_cache: int, after_cleanup_count: int | None = None
    ) -> None:
        self._max_cache = max_cache
        if after_cleanup_count is None:
            self._after_cleanup_count = self._max_cache * 8 // 10
        else:
            self._after_cleanup_count = min(after_cleanup_count, self._max_cache)


class LRUSizeCache(LRUCache[K, V]):
    """An LRUCache that removes things based on the size of the values.

    Entries larger than the after-cleanup size are never stored.
    """

    def __init__(
        self,
        max_size: int = 1024 * 1024,
        after_cleanup_size: int | None = None,
        compute_size: Callable[[V], int] | None = None,
    ) -> None:
        """Create a new LRUSizeCache.

        Args:
            max_size: The max total size of values before a cleanup runs
            after_cleanup_size: The total size kept by a cleanup; defaults
                to 80% of max_size
            compute_size: Function returning the size of a value; defaults
                to len()
        """
        self._value_size = 0
        self._compute_size: Callable[[V], int] = compute_size or len  # type: ignore[assignment]
        self._update_max_size(max_size, after_cleanup_size)
        super().__init__(max_cache=max(int(max_size / 512), 1))

    @property
    def total_size(self) -> int:
        """Total size of the values currently cached."""
        return self._value_size

    def add(self, key: K, value: V) -> None:
        """Add a new value to the cache.

        Args:
            key: The key to store it under
            value: The object to store
        """
        if key is _null_key:
            raise ValueError("cannot use _null_key as a key")
        value_len = self._compute_size(value)
        with self._lock:
            old = self._cache.pop(key, None)
            if old is not None:
                self._value_size -= self._compute_size(old)
            if value_len >= self._after_cleanup_size:
                return
            self._cache[key] = value
            self._value_size += value_len
            if self._needs_cleanup():
                self._cleanup()

    def _needs_cleanup(self) -> bool:
        return self._value_size > self._max_size

    def _cleanup(self) -> None:
        while self._value_size > self._after_cleanup_size and self._cache:
            self._remove_lru()

    def _on_remove(self, key: K, value: V) -> None:
        self._value_size -= self._compute_size(value)

    def _on_clear(self) -> None:
        self._value_size = 0

    def _update_max_size(
        self, max_size: int, after_cleanup_size: int | None = None
    ) -> None:
        self._max_size = max_size
        if after_cleanup_size is None:
            self._after_cleanup_size = self._max_size * 8 // 10
        else:
            self._after_cleanup_size = min(after_cleanup_size, self._max_size)
