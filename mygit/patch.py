# patch.py -- Line diffs and unified diff output.
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

"""Line-level diffs of blobs.

Edit scripts are computed with Myers' O(ND) difference algorithm and grouped
into hunks the way ``diff -u`` and ``git diff`` group them.
"""

__all__ = [
    "DEFAULT_CONTEXT_LINES",
    "DEFAULT_MAX_DIFF_COST",
    "FIRST_FEW_BYTES",
    "BinaryChange",
    "DiffLine",
    "Hunk",
    "blob_diff",
    "diff_lines",
    "gen_diff_header",
    "is_binary",
    "myers_opcodes",
    "object_diff",
    "unified_diff",
    "write_object_diff",
    "write_tree_diff",
]

from collections.abc import Callable, Iterator, Sequence
from typing import IO, NamedTuple

from .diff_tree import tree_changes
from .errors import NotBlobError
from .objects import S_ISGITLINK, Blob, ObjectID, ShaFile

FIRST_FEW_BYTES = 8000

DEFAULT_CONTEXT_LINES = 3

# Ranges needing more than about twice this many edits become one replacement.
DEFAULT_MAX_DIFF_COST = 512

LINE_CONTEXT = " "
LINE_DELETE = "-"
LINE_ADD = "+"

Opcode = tuple[str, int, int, int, int]


class DiffLine(NamedTuple):
    """A single line of a hunk.

    Line numbers are 1-based; the side a line does not appear on is None.
    """

    kind: str
    text: bytes
    old_lineno: int | None
    new_lineno: int | None


class Hunk(NamedTuple):
    """A contiguous block of changed lines with surrounding context.

    Start lines follow the unified diff convention: 1-based, and for an
    empty range the number of the line before it.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[DiffLine]

    def header(self) -> bytes:
        return (
            f"@@ -{_format_range(self.old_start, self.old_count)}"
            f" +{_format_range(self.new_start, self.new_count)} @@"
        ).encode("ascii")


class BinaryChange(NamedTuple):
    """Marker returned instead of hunks when either side is binary."""

    old_id: ObjectID | None
    new_id: ObjectID | None


def is_binary(content: bytes) -> bool:
    """See if the first few bytes contain any null characters.

    Args:
        content: Bytestring to check for binary content
    """
    return b"\0" in content[:FIRST_FEW_BYTES]


def _middle_snake(
    a: Sequence[bytes],
    b: Sequence[bytes],
    a_lo: int,
    a_hi: int,
    b_lo: int,
    b_hi: int,
    max_cost: int,
) -> tuple[int, int] | None:
    """Find the point where a shortest edit script crosses the middle.

    Runs the forward and backward searches of Myers' linear space
    refinement until they overlap, keeping a single vector per direction.

    Returns:
        An (x, y) split point in absolute indexes, or None if the two ranges
        need more than 2 * max_cost edits
    """
    n = a_hi - a_lo
    m = b_hi - b_lo
    max_d = min((n + m + 1) // 2, max_cost)
    v_offset = max_d + 1
    v_length = 2 * v_offset + 1
    forward = [-1] * v_length
    backward = [-1] * v_length
    forward[v_offset + 1] = 0
    backward[v_offset + 1] = 0
    delta = n - m
    # With an odd delta the forward path is the one to detect the overlap.
    front = delta % 2 != 0
    k1start = k1end = k2start = k2end = 0
    for d in range(max_d + 1):
        for k1 in range(-d + k1start, d + 1 - k1end, 2):
            k1_offset = v_offset + k1
            if k1 == -d or (k1 != d and forward[k1_offset - 1] < forward[k1_offset + 1]):
                x1 = forward[k1_offset + 1]
            else:
                x1 = forward[k1_offset - 1] + 1
            y1 = x1 - k1
            while x1 < n and y1 < m and a[a_lo + x1] == b[b_lo + y1]:
                x1 += 1
                y1 += 1
            forward[k1_offset] = x1
            if x1 > n:
                k1end += 2
            elif y1 > m:
                k1start += 2
            elif front:
                k2_offset = v_offset + delta - k1
                if 0 <= k2_offset < v_length and backward[k2_offset] != -1:
                    if x1 >= n - backward[k2_offset]:
                        return a_lo + x1, b_lo + y1
        for k2 in range(-d + k2start, d + 1 - k2end, 2):
            k2_offset = v_offset + k2
            if k2 == -d or (k2 != d and backward[k2_offset - 1] < backward[k2_offset + 1]):
                x2 = backward[k2_offset + 1]
            else:
                x2 = backward[k2_offset - 1] + 1
            y2 = x2 - k2
            while (
                x2 < n
                and y2 < m
                and a[a_hi - x2 - 1] == b[b_hi - y2 - 1]
            ):
                x2 += 1
                y2 += 1
            backward[k2_offset] = x2
            if x2 > n:
                k2end += 2
            elif y2 > m:
                k2start += 2
            elif not front:
                k1_offset = v_offset + delta - k2
                if 0 <= k1_offset < v_length and forward[k1_offset] != -1:
                    x1 = forward[k1_offset]
                    y1 = v_offset + x1 - k1_offset
                    if x1 >= n - x2:
                        return a_lo + x1, b_lo + y1
    return None


def myers_opcodes(
    a: Sequence[bytes], b: Sequence[bytes], max_cost: int = DEFAULT_MAX_DIFF_COST
) -> list[Opcode]:
    """Compute difflib-style opcodes for turning a into b.

    Ranges are split at the middle snake of a shortest edit script and the
    halves processed in order, so memory stays linear in the input. Common
    leading and trailing lines of every range are matched directly.

    Args:
        a: Old lines
        b: New lines
        max_cost: Search bound per range. A range that needs more than
            about twice this many edits is reported as a single replacement
            instead of being searched further.

    Returns:
        List of (tag, i1, i2, j1, j2) tuples, where tag is one of "equal",
        "delete", "insert" or "replace"
    """
    opcodes: list[Opcode] = []
    pending: tuple[int, int] | None = None

    def flush(i: int, j: int) -> None:
        nonlocal pending
        if pending is None:
            return
        pi, pj = pending
        if pi < i and pj < j:
            opcodes.append(("replace", pi, i, pj, j))
        elif pi < i:
            opcodes.append(("delete", pi, i, pj, j))
        elif pj < j:
            opcodes.append(("insert", pi, i, pj, j))
        pending = None

    def equal(i1: int, i2: int, j1: int, j2: int) -> None:
        if i1 == i2:
            return
        flush(i1, j1)
        if opcodes and opcodes[-1][0] == "equal":
            _, pi1, _, pj1, _ = opcodes[-1]
            opcodes[-1] = ("equal", pi1, i2, pj1, j2)
        else:
            opcodes.append(("equal", i1, i2, j1, j2))

    def change(i1: int, j1: int) -> None:
        nonlocal pending
        if pending is None:
            pending = (i1, j1)

    # Work items are processed in order: ranges to diff, and common
    # suffixes to emit once the range before them is done.
    stack: list[tuple[bool, int, int, int, int]] = [(True, 0, len(a), 0, len(b))]
    while stack:
        is_range, i1, i2, j1, j2 = stack.pop()
        if not is_range:
            equal(i1, i2, j1, j2)
            continue
        start_i = i1
        while i1 < i2 and j1 < j2 and a[i1] == b[j1]:
            i1 += 1
            j1 += 1
        equal(start_i, i1, j1 - (i1 - start_i), j1)
        end_i = i2
        while i2 > i1 and j2 > j1 and a[i2 - 1] == b[j2 - 1]:
            i2 -= 1
            j2 -= 1
        if i2 < end_i:
            stack.append((False, i2, end_i, j2, j2 + (end_i - i2)))
        if i1 == i2 and j1 == j2:
            continue
        if i1 == i2 or j1 == j2:
            change(i1, j1)
            continue
        split = _middle_snake(a, b, i1, i2, j1, j2, max_cost)
        if split is None or split in ((i1, j1), (i2, j2)):
            change(i1, j1)
            continue
        x, y = split
        stack.append((True, x, i2, y, j2))
        stack.append((True, i1, x, j1, y))
    flush(len(a), len(b))
    return opcodes


def _group_opcodes(opcodes: list[Opcode], n: int) -> Iterator[list[Opcode]]:
    """Isolate change clusters by eliminating ranges with no changes.

    Changes separated by at most 2*n unchanged lines share a group.
    """
    codes = list(opcodes)
    if not codes or all(code[0] == "equal" for code in codes):
        return
    if codes[0][0] == "equal":
        tag, i1, i2, j1, j2 = codes[0]
        codes[0] = tag, max(i1, i2 - n), i2, max(j1, j2 - n), j2
    if codes[-1][0] == "equal":
        tag, i1, i2, j1, j2 = codes[-1]
        codes[-1] = tag, i1, min(i2, i1 + n), j1, min(j2, j1 + n)

    nn = n + n
    group: list[Opcode] = []
    for tag, i1, i2, j1, j2 in codes:
        # End the current group and start a new one whenever
        # there is a large range with no changes.
        if tag == "equal" and i2 - i1 > nn:
            group.append((tag, i1, min(i2, i1 + n), j1, min(j2, j1 + n)))
            yield group
            group = []
            i1, j1 = max(i1, i2 - n), max(j1, j2 - n)
        group.append((tag, i1, i2, j1, j2))
    if group and not (len(group) == 1 and group[0][0] == "equal"):
        yield group


def _unified_start(start: int, count: int) -> int:
    # Empty ranges begin at the line just before the range.
    return start + 1 if count else start


def diff_lines(
    a: Sequence[bytes], b: Sequence[bytes], context: int = DEFAULT_CONTEXT_LINES
) -> list[Hunk]:
    """Diff two sequences of lines.

    Args:
        a: Old lines, with line endings
        b: New lines, with line endings
        context: Number of unchanged lines to show around each change

    Returns:
        List of hunks; empty if the sequences are equal
    """
    if context < 0:
        raise ValueError("context must not be negative")
    hunks = []
    for group in _group_opcodes(myers_opcodes(a, b), context):
        lines = []
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                for offset in range(i2 - i1):
                    lines.append(
                        DiffLine(LINE_CONTEXT, a[i1 + offset], i1 + offset + 1, j1 + offset + 1)
                    )
                continue
            if tag in ("replace", "delete"):
                for i in range(i1, i2):
                    lines.append(DiffLine(LINE_DELETE, a[i], i + 1, None))
            if tag in ("replace", "insert"):
                for j in range(j1, j2):
                    lines.append(DiffLine(LINE_ADD, b[j], None, j + 1))
        first, last = group[0], group[-1]
        old_count = last[2] - first[1]
        new_count = last[4] - first[3]
        hunks.append(
            Hunk(
                _unified_start(first[1], old_count),
                old_count,
                _unified_start(first[3], new_count),
                new_count,
                lines,
            )
        )
    return hunks


def _blob_data(lookup_obj: Callable[[ObjectID], ShaFile], sha: ObjectID | None) -> bytes:
    if sha is None:
        return b""
    obj = lookup_obj(sha)
    if not isinstance(obj, Blob):
        raise NotBlobError(sha)
    return obj.data


def _diff_data(
    old: bytes,
    new: bytes,
    old_id: ObjectID | None,
    new_id: ObjectID | None,
    context: int,
) -> list[Hunk] | BinaryChange:
    if is_binary(old) or is_binary(new):
        return BinaryChange(old_id, new_id)
    return diff_lines(
        old.splitlines(keepends=True), new.splitlines(keepends=True), context
    )


def blob_diff(
    lookup_obj: Callable[[ObjectID], ShaFile],
    old_id: ObjectID | None,
    new_id: ObjectID | None,
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[Hunk] | BinaryChange:
    """Diff two blobs line by line.

    Args:
        lookup_obj: Callback for retrieving objects by id
        old_id: Id of the old blob, or None for an empty old side
        new_id: Id of the new blob, or None for an empty new side
        context: Number of unchanged lines to show around each change

    Returns:
        A list of hunks, or a BinaryChange if either side looks binary

    Raises:
        NotBlobError: If either id names something other than a blob
    """
    return _diff_data(
        _blob_data(lookup_obj, old_id),
        _blob_data(lookup_obj, new_id),
        old_id,
        new_id,
        context,
    )


def _entry_content(
    lookup_obj: Callable[[ObjectID], ShaFile], mode: int | None, sha: ObjectID | None
) -> bytes:
    if sha is None:
        return b""
    if mode is not None and S_ISGITLINK(mode):
        return b"Subproject commit " + sha + b"\n"
    return _blob_data(lookup_obj, sha)


def object_diff(
    lookup_obj: Callable[[ObjectID], ShaFile],
    old_file: tuple[int | None, ObjectID | None],
    new_file: tuple[int | None, ObjectID | None],
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[Hunk] | BinaryChange:
    """Diff two tree entries, given as (mode, sha) tuples.

    Submodule entries are compared by the commit they point at, the way
    ``git diff`` shows them.
    """
    (old_mode, old_id) = old_file
    (new_mode, new_id) = new_file
    return _diff_data(
        _entry_content(lookup_obj, old_mode, old_id),
        _entry_content(lookup_obj, new_mode, new_id),
        old_id,
        new_id,
        context,
    )


def _format_range(start: int, count: int) -> str:
    if count == 1:
        return f"{start}"
    return f"{start},{count}"


def unified_diff(
    hunks: Sequence[Hunk], fromfile: bytes = b"", tofile: bytes = b""
) -> Iterator[bytes]:
    """Render hunks as unified diff lines.

    Lines lacking a trailing newline are followed by a
    ``\\ No newline at end of file`` marker, as git does.
    """
    if not hunks:
        return
    yield b"--- " + fromfile + b"\n"
    yield b"+++ " + tofile + b"\n"
    for hunk in hunks:
        yield hunk.header() + b"\n"
        for line in hunk.lines:
            text = line.text
            if not text.endswith(b"\n"):
                text += b"\n\\ No newline at end of file\n"
            yield line.kind.encode("ascii") + text


def shortid(hexsha: bytes | None) -> bytes:
    if hexsha is None:
        return b"0" * 7
    return hexsha[:7]


def patch_filename(p: bytes | None, root: bytes) -> bytes:
    if p is None:
        return b"/dev/null"
    return root + b"/" + p


def gen_diff_header(
    paths: tuple[bytes | None, bytes | None],
    modes: tuple[int | None, int | None],
    shas: tuple[bytes | None, bytes | None],
) -> Iterator[bytes]:
    """Write a blob diff header.

    Args:
        paths: Tuple with old and new path
        modes: Tuple with old and new modes
        shas: Tuple with old and new shas
    """
    (old_path, new_path) = paths
    (old_mode, new_mode) = modes
    (old_sha, new_sha) = shas
    if old_path is None and new_path is not None:
        old_path = new_path
    if new_path is None and old_path is not None:
        new_path = old_path
    old_path = patch_filename(old_path, b"a")
    new_path = patch_filename(new_path, b"b")
    yield b"diff --git " + old_path + b" " + new_path + b"\n"

    if old_mode != new_mode:
        if new_mode is not None:
            if old_mode is not None:
                yield (f"old mode {old_mode:o}\n").encode("ascii")
                yield (f"new mode {new_mode:o}\n").encode("ascii")
            else:
                yield (f"new file mode {new_mode:o}\n").encode("ascii")
        else:
            yield (f"deleted file mode {old_mode:o}\n").encode("ascii")
    yield b"index " + shortid(old_sha) + b".." + shortid(new_sha)
    if new_mode is not None and old_mode is not None and old_mode == new_mode:
        yield (f" {new_mode:o}").encode("ascii")
    yield b"\n"


def write_object_diff(
    f: IO[bytes],
    lookup_obj: Callable[[ObjectID], ShaFile],
    old_file: tuple[bytes | None, int | None, ObjectID | None],
    new_file: tuple[bytes | None, int | None, ObjectID | None],
    context: int = DEFAULT_CONTEXT_LINES,
) -> None:
    """Write the diff for an object.

    Args:
        f: File-like object to write to
        lookup_obj: Callback for retrieving objects by id
        old_file: (path, mode, hexsha) tuple
        new_file: (path, mode, hexsha) tuple
        context: Number of unchanged lines to show around each change

    Note: the tuple elements should be None for nonexistent files
    """
    (old_path, old_mode, old_id) = old_file
    (new_path, new_mode, new_id) = new_file
    patched_old_path = patch_filename(old_path, b"a")
    patched_new_path = patch_filename(new_path, b"b")
    f.writelines(
        gen_diff_header((old_path, new_path), (old_mode, new_mode), (old_id, new_id))
    )
    result = object_diff(lookup_obj, (old_mode, old_id), (new_mode, new_id), context)
    if isinstance(result, BinaryChange):
        f.write(
            b"Binary files "
            + patched_old_path
            + b" and "
            + patched_new_path
            + b" differ\n"
        )
    else:
        f.writelines(unified_diff(result, patched_old_path, patched_new_path))


def write_tree_diff(
    f: IO[bytes],
    lookup_obj: Callable[[ObjectID], ShaFile],
    old_tree: ObjectID | None,
    new_tree: ObjectID | None,
    context: int = DEFAULT_CONTEXT_LINES,
) -> None:
    """Write tree diff.

    Args:
        f: File-like object to write to.
        lookup_obj: Callback for retrieving objects by id
        old_tree: Old tree id
        new_tree: New tree id
        context: Number of unchanged lines to show around each change
    """
    for change in tree_changes(lookup_obj, old_tree, new_tree):
        old = change.old
        new = change.new
        write_object_diff(
            f,
            lookup_obj,
            (old.path, old.mode, old.sha) if old else (None, None, None),
            (new.path, new.mode, new.sha) if new else (None, None, None),
            context,
        )
