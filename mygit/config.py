# config.py - Reading git-style config files
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

"""Reading of git-style config files.

Only reading is supported. Section and variable names are matched
case-insensitively, subsection names case-sensitively, as git does.
Include directives are not followed.
"""

import os
from collections.abc import Iterator
from typing import IO

from .errors import CorruptFormat

Section = tuple[bytes, ...]
Name = bytes
Value = bytes

SectionLike = bytes | str | tuple[bytes | str, ...]
NameLike = bytes | str


_ESCAPE_TABLE = {
    ord(b"\\"): ord(b"\\"),
    ord(b'"'): ord(b'"'),
    ord(b"n"): ord(b"\n"),
    ord(b"t"): ord(b"\t"),
    ord(b"b"): ord(b"\b"),
}
_COMMENT_CHARS = [ord(b"#"), ord(b";")]
_WHITESPACE_CHARS = [ord(b"\t"), ord(b" ")]


def _parse_string(value: bytes) -> bytes:
    value_array = bytearray(value.strip())
    ret = bytearray()
    whitespace = bytearray()
    in_quotes = False
    i = 0
    while i < len(value_array):
        c = value_array[i]
        if c == ord(b"\\"):
            i += 1
            if whitespace:
                ret.extend(whitespace)
                whitespace = bytearray()
            if i >= len(value_array):
                ret.append(ord(b"\\"))
            elif value_array[i] in _ESCAPE_TABLE:
                ret.append(_ESCAPE_TABLE[value_array[i]])
            else:
                # Unknown escape; keep the backslash and reprocess the next byte.
                ret.append(ord(b"\\"))
                i -= 1
        elif c == ord(b'"'):
            in_quotes = not in_quotes
        elif c in _COMMENT_CHARS and not in_quotes:
            break
        elif c in _WHITESPACE_CHARS:
            whitespace.append(c)
        else:
            if whitespace:
                ret.extend(whitespace)
                whitespace = bytearray()
            ret.append(c)
        i += 1

    if in_quotes:
        raise CorruptFormat("missing end quote")

    return bytes(ret)


def _check_variable_name(name: bytes) -> bool:
    return bool(name) and all(
        name[i : i + 1].isalnum() or name[i : i + 1] == b"-" for i in range(len(name))
    )


def _check_section_name(name: bytes) -> bool:
    return all(
        name[i : i + 1].isalnum() or name[i : i + 1] in (b"-", b".")
        for i in range(len(name))
    )


def _strip_comments(line: bytes) -> bytes:
    string_open = False
    for i, character in enumerate(line):
        # Comment characters outside balanced quotes denote comment start
        if character == ord(b'"'):
            string_open = not string_open
        elif not string_open and character in _COMMENT_CHARS:
            return line[:i]
    return line


def _is_line_continuation(value: bytes) -> bool:
    """Check if a value ends with an unescaped line continuation backslash."""
    content = value.rstrip(b"\r\n")
    if content == value or not content.endswith(b"\\"):
        return False
    backslash_count = len(content) - len(content.rstrip(b"\\"))
    return backslash_count % 2 == 1


def _parse_section_header_line(line: bytes) -> tuple[Section, bytes]:
    # Parse section header ("[bla]")
    line = _strip_comments(line).rstrip()
    in_quotes = False
    escaped = False
    for i, c in enumerate(line):
        if escaped:
            escaped = False
            continue
        if c == ord(b'"'):
            in_quotes = not in_quotes
        if c == ord(b"\\"):
            escaped = True
        if c == ord(b"]") and not in_quotes:
            last = i
            break
    else:
        raise CorruptFormat("expected trailing ]")
    pts = line[1:last].split(b" ", 1)
    line = line[last + 1 :]
    if not _check_section_name(pts[0]):
        raise CorruptFormat(f"invalid section name {pts[0]!r}")
    section: Section
    if len(pts) == 2:
        if not (pts[1][:1] == b'"' and pts[1][-1:] == b'"'):
            raise CorruptFormat(f"Invalid subsection {pts[1]!r}")
        subsection = pts[1][1:-1].replace(b'\\"', b'"').replace(b"\\\\", b"\\")
        section = (pts[0].lower(), subsection)
    else:
        # Deprecated [section.subsection] syntax.
        parts = pts[0].split(b".", 1)
        if len(parts) == 2:
            section = (parts[0].lower(), parts[1])
        else:
            section = (parts[0].lower(),)
    return section, line


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def _normalize_section(section: SectionLike) -> Section:
    if not isinstance(section, tuple):
        section = (section,)
    parts = [_to_bytes(part) for part in section]
    parts[0] = parts[0].lower()
    return tuple(parts)


class ConfigFile:
    """A Git configuration file, like .git/config."""

    def __init__(self) -> None:
        self._values: dict[Section, dict[Name, list[Value]]] = {}
        self.path: str | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "ConfigFile":
        """Read configuration from a file-like object.

        Raises:
            CorruptFormat: If the file can not be parsed
        """
        ret = cls()
        section: Section | None = None
        setting: bytes | None = None
        continuation = b""
        for lineno, line in enumerate(f.readlines()):
            if lineno == 0 and line.startswith(b"\xef\xbb\xbf"):
                line = line[3:]
            if setting is not None:
                # Continuation of the previous value.
                if _is_line_continuation(line):
                    continuation += line.rstrip(b"\r\n")[:-1]
                    continue
                continuation += line
                assert section is not None
                ret._add(section, setting, _parse_string(continuation))
                setting = None
                continue
            line = line.lstrip()
            if line[:1] == b"[":
                section, line = _parse_section_header_line(line)
                ret._values.setdefault(section, {})
            if _strip_comments(line).strip() == b"":
                continue
            if section is None:
                raise CorruptFormat(f"setting {line!r} without section")
            name, sep, value = line.partition(b"=")
            name = name.strip()
            if not sep:
                # A bare name is an implicit boolean true.
                name = _strip_comments(name).strip()
                value = b"true"
            if not _check_variable_name(name):
                raise CorruptFormat(f"invalid variable name {name!r}")
            if _is_line_continuation(value):
                setting = name
                continuation = value.rstrip(b"\r\n")[:-1]
            else:
                ret._add(section, name, _parse_string(value))
        if setting is not None and section is not None:
            ret._add(section, setting, _parse_string(continuation))
        return ret

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "ConfigFile":
        """Read configuration from a file on disk."""
        with open(path, "rb") as f:
            ret = cls.from_file(f)
        ret.path = os.fspath(path)
        return ret

    def _add(self, section: Section, name: Name, value: Value) -> None:
        self._values.setdefault(section, {}).setdefault(name.lower(), []).append(
            value
        )

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Retrieve the contents of a configuration setting.

        The last occurrence wins, as in git.

        Args:
            section: Tuple with section name and optional subsection name
            name: Variable name

        Returns:
            Contents of the setting

        Raises:
            KeyError: if the value is not set
        """
        return self._values[_normalize_section(section)][_to_bytes(name).lower()][-1]

    def get_int(
        self, section: SectionLike, name: NameLike, default: int | None = None
    ) -> int | None:
        """Retrieve a configuration setting as integer.

        Raises:
            ValueError: If the value is not a valid integer
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        return int(value.strip())

    def items(self, section: SectionLike) -> Iterator[tuple[Name, Value]]:
        """Iterate over the (name, last value) pairs of a section."""
        section_dict = self._values.get(_normalize_section(section), {})
        return iter([(name, values[-1]) for name, values in section_dict.items()])
