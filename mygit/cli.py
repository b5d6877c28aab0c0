#
# mygit - Simple command-line interface to mygit
# Copyright (C) 2026 The mygit contributors
# vim: expandtab
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

"""Simple command-line interface to mygit.

A thin wrapper around :class:`mygit.browse.RepositoryBrowser`, mostly
useful for inspecting repositories the way the web front end sees them.
"""

__all__ = [
    "Command",
    "commands",
    "main",
    "to_display_str",
]

import argparse
import io
import logging
import signal
import stat
import sys
import time
import types
from collections.abc import Sequence
from typing import TextIO

from .browse import RepositoryBrowser
from .errors import (
    CorruptFormat,
    DeltaResolutionError,
    IntegrityError,
    NotFound,
    NotGitRepository,
    Unsupported,
)
from .log_utils import _configure_logging_from_trace
from .objects import (
    Blob,
    Commit,
    Identity,
    Tag,
    Tree,
    format_mode,
    format_timezone,
    mode_kind,
    type_num_to_name,
)
from .patch import write_object_diff, write_tree_diff
from .registry import RepositoryRegistry
from .walk import WalkEntry


def to_display_str(value: bytes | str) -> str:
    """Convert a bytes or string value to a display string.

    Args:
        value: The value to convert (bytes or str)

    Returns:
        A string suitable for display
    """
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting."""
    sys.exit(1)


def format_identity_date(identity: Identity) -> str:
    time_tuple = time.gmtime(identity.time + identity.timezone)
    time_str = time.strftime("%a %b %d %Y %H:%M:%S", time_tuple)
    return time_str + " " + format_timezone(identity.timezone).decode("ascii")


def print_commit(commit: Commit, outstream: TextIO) -> None:
    """Write a human-readable commit log entry."""
    outstream.write("-" * 50 + "\n")
    outstream.write("commit: " + commit.id.decode("ascii") + "\n")
    if len(commit.parents) > 1:
        outstream.write(
            "merge: "
            + "...".join([c.decode("ascii") for c in commit.parents[1:]])
            + "\n"
        )
    outstream.write("Author: " + to_display_str(bytes(commit.author)) + "\n")
    if commit.author != commit.committer:
        outstream.write("Committer: " + to_display_str(bytes(commit.committer)) + "\n")
    outstream.write("Date:   " + format_identity_date(commit.author) + "\n")
    if commit.message:
        outstream.write("\n")
        outstream.write(to_display_str(commit.message) + "\n")
        outstream.write("\n")


def print_tag(tag: Tag, outstream: TextIO) -> None:
    """Write a human-readable tag."""
    outstream.write("tag: " + to_display_str(tag.name) + "\n")
    outstream.write(
        "object: "
        + type_num_to_name(tag.object[0]).decode("ascii")
        + " "
        + tag.object[1].decode("ascii")
        + "\n"
    )
    if tag.tagger is not None:
        outstream.write("Tagger: " + to_display_str(bytes(tag.tagger)) + "\n")
        outstream.write("Date:   " + format_identity_date(tag.tagger) + "\n")
    outstream.write("\n")
    outstream.write(to_display_str(tag.message))
    outstream.write("\n")


def _open_browser(path: str) -> RepositoryBrowser:
    return RepositoryBrowser.open(path)


class Command:
    """A mygit subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


def _repo_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "-C",
        dest="repo",
        default=".",
        help="Path to the repository (default: current directory)",
    )
    return parser


class cmd_repos(Command):
    """List the repositories below a project root."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser()
        parser.add_argument("project_root", help="Directory holding repositories")
        parser.add_argument(
            "--all",
            action="store_true",
            help="Include repositories without the git-daemon-export-ok marker",
        )
        parsed_args = parser.parse_args(args)
        if parsed_args.all:
            registry = RepositoryRegistry.scan(parsed_args.project_root, export_ok=None)
        else:
            registry = RepositoryRegistry.scan(parsed_args.project_root)
        with registry:
            summaries = registry.summaries()
        for summary in summaries:
            if summary.last_modified is not None:
                last_modified = format_identity_date(summary.last_modified)
            else:
                last_modified = "never"
            sys.stdout.write(
                "\t".join(
                    [
                        summary.name,
                        to_display_str(summary.description or b""),
                        to_display_str(summary.owner or b""),
                        last_modified,
                    ]
                )
                + "\n"
            )


class cmd_refs(Command):
    """List references."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            for ref in browser.list_refs():
                if ref.error is not None:
                    sys.stdout.write(
                        f"error: {to_display_str(ref.name)}: {ref.error}\n"
                    )
                    continue
                assert ref.id is not None
                sys.stdout.write(
                    f"{ref.id.decode('ascii')} {ref.kind}\t{to_display_str(ref.name)}\n"
                )
                if ref.peeled is not None:
                    sys.stdout.write(
                        f"{ref.peeled.decode('ascii')} {ref.kind}\t"
                        f"{to_display_str(ref.name)}^{{}}\n"
                    )


class cmd_log(Command):
    """Show commit logs."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        parser.add_argument(
            "-n", "--max-count", type=int, default=None, help="Limit the number of commits"
        )
        parser.add_argument("--skip", type=int, default=0, help="Skip commits")
        parser.add_argument(
            "--first-parent",
            action="store_true",
            help="Follow only the first parent of merge commits",
        )
        parser.add_argument("revision", nargs="?", default="HEAD")
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            walker = browser.log(
                parsed_args.revision,
                limit=parsed_args.max_count,
                skip=parsed_args.skip,
                first_parent_only=parsed_args.first_parent,
            )
            entry: WalkEntry
            for entry in walker:
                if entry.commit is None:
                    sys.stdout.write("-" * 50 + "\n")
                    sys.stdout.write(
                        f"commit: {entry.commit_id.decode('ascii')} (unreadable: {entry.error})\n"
                    )
                    continue
                print_commit(entry.commit, sys.stdout)


class cmd_ls_tree(Command):
    """List the contents of a tree object."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        parser.add_argument("treeish", nargs="?", default="HEAD", help="Tree-ish to list")
        parser.add_argument("path", nargs="?", default="", help="Directory to list")
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            tree_id = browser.repo.get_tree_for(
                browser.repo.parse_revision(parsed_args.treeish)
            ).id
            if parsed_args.path:
                entry = browser.tree_at_path(tree_id, parsed_args.path)
                if not stat.S_ISDIR(entry.mode):
                    raise NotFound(entry.path)
                tree_id = entry.sha
            for entry in browser.get_tree(tree_id):
                sys.stdout.write(
                    f"{format_mode(entry.mode)} {mode_kind(entry.mode)} "
                    f"{entry.sha.decode('ascii')}\t{to_display_str(entry.path)}\n"
                )


class cmd_show(Command):
    """Show a commit and the changes it introduced."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        parser.add_argument("-U", "--unified", type=int, default=3, help="Context lines")
        parser.add_argument("revision", nargs="?", default="HEAD")
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            diff = browser.commit_diff(parsed_args.revision, parsed_args.unified)
            print_commit(diff.commit, sys.stdout)
            lookup = browser.repo.object_store.__getitem__
            for file_diff in diff.files:
                if file_diff.error is not None:
                    sys.stdout.write(
                        f"error: {to_display_str(file_diff.change.path)}: {file_diff.error}\n"
                    )
                    continue
                old = file_diff.change.old
                new = file_diff.change.new
                buf = io.BytesIO()
                write_object_diff(
                    buf,
                    lookup,
                    (old.path, old.mode, old.sha) if old else (None, None, None),
                    (new.path, new.mode, new.sha) if new else (None, None, None),
                    parsed_args.unified,
                )
                sys.stdout.write(to_display_str(buf.getvalue()))


class cmd_cat_file(Command):
    """Show the contents of an object."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        group = parser.add_mutually_exclusive_group()
        group.add_argument("-t", dest="show_type", action="store_true", help="Show type")
        group.add_argument("-s", dest="show_size", action="store_true", help="Show size")
        parser.add_argument("object", help="Object to show")
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            sha = browser.repo.parse_revision(parsed_args.object)
            type_num, data = browser.repo.object_store.get_raw(sha)
            if parsed_args.show_type:
                sys.stdout.write(type_num_to_name(type_num).decode("ascii") + "\n")
                return
            if parsed_args.show_size:
                sys.stdout.write(f"{len(data)}\n")
                return
            obj = browser.repo[sha]
            if isinstance(obj, Blob):
                sys.stdout.write(to_display_str(obj.data))
            elif isinstance(obj, Tree):
                for entry in obj.iteritems():
                    sys.stdout.write(
                        f"{entry.mode:06o} {mode_kind(entry.mode)} "
                        f"{entry.sha.decode('ascii')}\t{to_display_str(entry.path)}\n"
                    )
            elif isinstance(obj, Commit):
                print_commit(obj, sys.stdout)
            elif isinstance(obj, Tag):
                print_tag(obj, sys.stdout)


class cmd_diff(Command):
    """Show changes between two commits or trees."""

    def run(self, args: Sequence[str]) -> None:
        parser = _repo_parser()
        parser.add_argument("-U", "--unified", type=int, default=3, help="Context lines")
        parser.add_argument("old", help="Old commit or tree")
        parser.add_argument("new", help="New commit or tree")
        parsed_args = parser.parse_args(args)
        with _open_browser(parsed_args.repo) as browser:
            repo = browser.repo
            old_tree = repo.get_tree_for(repo.parse_revision(parsed_args.old)).id
            new_tree = repo.get_tree_for(repo.parse_revision(parsed_args.new)).id
            buf = io.BytesIO()
            write_tree_diff(
                buf,
                repo.object_store.__getitem__,
                old_tree,
                new_tree,
                parsed_args.unified,
            )
            sys.stdout.write(to_display_str(buf.getvalue()))


commands = {
    "cat-file": cmd_cat_file,
    "diff": cmd_diff,
    "log": cmd_log,
    "ls-tree": cmd_ls_tree,
    "refs": cmd_refs,
    "repos": cmd_repos,
    "show": cmd_show,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the mygit CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="mygit", description="Simple command-line interface to mygit"
        )
        parser.add_argument(
            "command",
            nargs="?",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    # Try to configure from MYGIT_TRACE, fall back to default if it fails
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
        )

    cmd = argv[0]
    cmd_args = argv[1:]

    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logging.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(cmd_args)
    except NotGitRepository as e:
        logging.fatal("%s", e)
        return 128
    except (
        NotFound,
        CorruptFormat,
        IntegrityError,
        DeltaResolutionError,
        Unsupported,
        ValueError,
    ) as e:
        logging.fatal("%s", e)
        return 1


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)

    sys.exit(main())


if __name__ == "__main__":
    _main()
