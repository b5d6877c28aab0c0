# object_format.py -- Hash algorithms used to name objects
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

"""Object formats (SHA-1 and SHA-256) that a repository may use."""

from collections.abc import Callable
from hashlib import sha1, sha256
from typing import TYPE_CHECKING

from .errors import Unsupported

if TYPE_CHECKING:
    from _hashlib import HASH


class ObjectFormat:
    """Hash algorithm used to name objects in a repository."""

    def __init__(
        self,
        name: str,
        oid_length: int,
        hash_func: Callable[[], "HASH"],
    ) -> None:
        """Initialize an object format.

        Args:
            name: Name of the format ("sha1" or "sha256")
            oid_length: Length of a binary object id in bytes
            hash_func: Hash constructor from hashlib
        """
        self.name = name
        self.oid_length = oid_length
        self.hex_length = oid_length * 2
        self.hash_func = hash_func

    def __repr__(self) -> str:
        return f"ObjectFormat({self.name!r})"

    def new_hash(self) -> "HASH":
        return self.hash_func()

    def hash_object_hex(self, type_name: bytes, data: bytes) -> bytes:
        """Compute the hex id of an object.

        Args:
            type_name: Object type name, e.g. b"blob"
            data: Object content, without header

        Returns:
            Hex object id as bytes
        """
        h = self.new_hash()
        h.update(type_name + b" " + str(len(data)).encode("ascii") + b"\0")
        h.update(data)
        return h.hexdigest().encode("ascii")


SHA1 = ObjectFormat("sha1", oid_length=20, hash_func=sha1)
SHA256 = ObjectFormat("sha256", oid_length=32, hash_func=sha256)

OBJECT_FORMATS = {
    "sha1": SHA1,
    "sha256": SHA256,
}

DEFAULT_OBJECT_FORMAT = SHA1


def get_object_format(name: str | None = None) -> ObjectFormat:
    """Get an object format by name.

    Args:
        name: Format name ("sha1" or "sha256"); None selects the default

    Returns:
        ObjectFormat instance

    Raises:
        Unsupported: If the format name is not known
    """
    if name is None:
        return DEFAULT_OBJECT_FORMAT
    try:
        return OBJECT_FORMATS[name.lower()]
    except KeyError:
        raise Unsupported(f"Unsupported object format: {name}")
