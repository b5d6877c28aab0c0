# errors.py -- errors for mygit
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

"""mygit exception classes.

Every failure surfaced by the engine is one of the classes below. Lookups
that miss raise :class:`NotFound`, which is a :class:`KeyError` so that
mapping-style access (``store[sha]``) behaves as expected.
"""

import binascii


class NotFound(KeyError):
    """An object or reference does not exist."""

    def __str__(self) -> str:
        """Return a readable message rather than KeyError's repr()."""
        if len(self.args) == 1 and isinstance(self.args[0], (bytes, str)):
            name = self.args[0]
            if isinstance(name, bytes):
                name = name.decode("ascii", "replace")
            return f"not found: {name}"
        return super().__str__()


class WrongObjectType(NotFound):
    """An object exists but is not of the requested type."""

    type_name: bytes = b""

    def __init__(self, sha: bytes) -> None:
        """Initialize a WrongObjectType error.

        Args:
            sha: Hex id of the object that has the wrong type
        """
        Exception.__init__(
            self,
            f"{sha.decode('ascii', 'replace')} is not a "
            f"{self.type_name.decode('ascii')}",
        )
        self.sha = sha

    def __str__(self) -> str:
        """Return the message."""
        return str(self.args[0])


class NotCommitError(WrongObjectType):
    """Indicates that the sha requested does not point to a commit."""

    type_name = b"commit"


class NotTreeError(WrongObjectType):
    """Indicates that the sha requested does not point to a tree."""

    type_name = b"tree"


class NotTagError(WrongObjectType):
    """Indicates that the sha requested does not point to a tag."""

    type_name = b"tag"


class NotBlobError(WrongObjectType):
    """Indicates that the sha requested does not point to a blob."""

    type_name = b"blob"


class IntegrityError(Exception):
    """The hash of an object's contents does not match its name."""

    def __init__(self, expected: bytes, got: bytes, extra: str | None = None) -> None:
        """Initialize an IntegrityError.

        Args:
            expected: The expected id (binary or hex)
            got: The id computed from the data (binary or hex)
            extra: Optional additional error information
        """
        self.expected = _to_hex(expected)
        self.got = _to_hex(got)
        self.extra = extra
        message = f"Checksum mismatch: Expected {self.expected}, got {self.got}"
        if extra is not None:
            message += f"; {extra}"
        Exception.__init__(self, message)


def _to_hex(value: bytes) -> str:
    if len(value) in (20, 32):
        return binascii.hexlify(value).decode("ascii")
    return value.decode("ascii", "replace")


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class CorruptFormat(FileFormatException):
    """A header, object, pack or index is malformed."""


class ObjectFormatException(CorruptFormat):
    """Indicates an error parsing an object."""


class PackedRefsException(CorruptFormat):
    """Indicates an error parsing a packed-refs file."""


class ApplyDeltaError(CorruptFormat):
    """Indicates that applying a delta failed."""


class SymrefLoop(CorruptFormat):
    """There is a loop between one or more symrefs."""

    def __init__(self, ref: bytes, depth: int) -> None:
        """Initialize a SymrefLoop exception.

        Args:
            ref: The ref at which the loop was detected
            depth: Number of hops followed before giving up
        """
        self.ref = ref
        self.depth = depth
        super().__init__(
            f"symbolic reference loop at {ref.decode('utf-8', 'replace')} "
            f"after {depth} hops"
        )


class DeltaResolutionError(Exception):
    """A delta chain could not be resolved.

    Raised when a base object is missing, when the chain refers back to
    itself, or when the chain is deeper than the configured limit.
    """


class Unsupported(Exception):
    """A format version or object type that mygit does not understand."""


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""


class AmbiguousObjectName(NotFound):
    """An abbreviated object id matches more than one object."""

    def __init__(self, prefix: bytes, candidates: list[bytes]) -> None:
        """Initialize an AmbiguousObjectName error.

        Args:
            prefix: The abbreviated id that was looked up
            candidates: The ids that share the prefix
        """
        Exception.__init__(self, prefix)
        self.prefix = prefix
        self.candidates = candidates

    def __str__(self) -> str:
        """Return a readable message."""
        return (
            f"short object id {self.prefix.decode('ascii', 'replace')} is "
            f"ambiguous ({len(self.candidates)} candidates)"
        )


class InvalidRevision(NotFound):
    """A revision string does not follow the supported syntax.

    A malformed revision can never name an object, so this is a kind of
    :class:`NotFound`.
    """

    def __init__(self, revision: bytes, reason: str) -> None:
        """Initialize an InvalidRevision error.

        Args:
            revision: The revision that failed to parse
            reason: What is wrong with it
        """
        Exception.__init__(self, revision)
        self.revision = revision
        self.reason = reason

    def __str__(self) -> str:
        """Return a readable message."""
        return f"{self.reason}: {self.revision.decode('utf-8', 'replace')!r}"


# Failures confined to a single object or ref. Listings report these per
# item instead of failing as a whole.
ITEM_ERRORS = (
    NotFound,
    CorruptFormat,
    IntegrityError,
    DeltaResolutionError,
    Unsupported,
)
