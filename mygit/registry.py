# registry.py -- The set of repositories being served.
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

"""The set of repositories being served.

A :class:`RepositoryRegistry` maps public repository names to paths on
disk. It is built once, either from an explicit mapping or by scanning a
project root, and never changes afterwards. Names coming from requests are
validated before they are used, so that no path outside the registry can be
opened through it.
"""

__all__ = [
    "DEFAULT_EXPORT_OK",
    "RepositoryRegistry",
    "check_repo_name",
]

import os
import threading
from collections.abc import Iterator, Mapping
from types import MappingProxyType

from .browse import RepositoryBrowser, RepositorySummary
from .errors import ITEM_ERRORS, NotFound, NotGitRepository
from .log_utils import getLogger
from .repo import EXPORT_OK_FILENAME, Repo

# Marker file a repository must carry to be picked up by a scan.
DEFAULT_EXPORT_OK = EXPORT_OK_FILENAME

logger = getLogger(__name__)


def check_repo_name(name: str) -> bool:
    """Check whether a repository name is safe to use as a path component.

    Names containing path separators or NUL bytes, and names starting with
    a dot (which includes ``.`` and ``..``), are rejected.
    """
    if not name or name.startswith("."):
        return False
    return not any(c in name for c in ("/", "\\", "\0"))


class RepositoryRegistry:
    """Immutable mapping of repository names to paths.

    Repositories opened through the registry stay open until :meth:`close`.
    """

    def __init__(self, repos: Mapping[str, str | os.PathLike[str]]) -> None:
        """Create a registry from an explicit name to path mapping.

        Raises:
            ValueError: If a name is not a safe repository name
        """
        paths = {}
        for name, path in repos.items():
            if not check_repo_name(name):
                raise ValueError(f"invalid repository name {name!r}")
            paths[name] = os.fspath(path)
        self._paths = MappingProxyType(paths)
        self._repos: dict[str, Repo] = {}
        self._lock = threading.Lock()

    @classmethod
    def scan(
        cls,
        project_root: str | os.PathLike[str],
        export_ok: str | None = DEFAULT_EXPORT_OK,
    ) -> "RepositoryRegistry":
        """Build a registry from the repositories directly below a directory.

        Args:
            project_root: Directory holding the repositories
            export_ok: Name of the marker file a repository's control
                directory must contain to be included, or None to include
                every repository

        Entries that are not repositories, or that cannot be opened, are
        skipped.
        """
        repos = {}
        try:
            entries = sorted(os.scandir(project_root), key=lambda e: e.name)
        except OSError as e:
            logger.warning("Unable to read project root %s: %s", project_root, e)
            entries = []
        for entry in entries:
            if not check_repo_name(entry.name) or not entry.is_dir():
                continue
            try:
                repo = Repo(entry.path)
            except NotGitRepository:
                logger.debug("Skipping %s: not a git repository", entry.path)
                continue
            except (OSError, *ITEM_ERRORS) as e:
                logger.warning("Skipping repository %s: %s", entry.path, e)
                continue
            try:
                if export_ok is not None and not os.path.exists(
                    os.path.join(repo.controldir(), export_ok)
                ):
                    logger.debug("Skipping %s: %s not present", entry.path, export_ok)
                    continue
            finally:
                repo.close()
            repos[entry.name] = entry.path
        return cls(repos)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({dict(self._paths)!r})"

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __contains__(self, name: object) -> bool:
        return name in self._paths

    def names(self) -> list[str]:
        """Return the sorted names of all repositories."""
        return sorted(self._paths)

    def path(self, name: str) -> str:
        """Return the path of a repository.

        Raises:
            NotFound: If the name is invalid or not registered
        """
        if not check_repo_name(name) or name not in self._paths:
            raise NotFound(name)
        return self._paths[name]

    def _get_repo(self, name: str) -> Repo:
        path = self.path(name)
        with self._lock:
            repo = self._repos.get(name)
            if repo is not None and not os.path.isdir(repo.controldir()):
                logger.debug("Repository %s has gone away", name)
                del self._repos[name]
                repo.close()
                repo = None
            if repo is None:
                logger.debug("Opening repository %s", name)
                repo = Repo(path)
                self._repos[name] = repo
            return repo

    def open(self, name: str) -> RepositoryBrowser:
        """Open a repository by name.

        Each repository is opened once and shared by every browser returned
        for its name, so open packs and cached objects outlive a request.
        Closing the browser leaves the repository open; :meth:`close`
        releases it.

        Raises:
            NotFound: If the name is invalid or not registered
            NotGitRepository: If the repository has gone away
        """
        return RepositoryBrowser(self._get_repo(name), name, close_repo=False)

    def close(self) -> None:
        """Close every repository opened through the registry."""
        with self._lock:
            repos = list(self._repos.values())
            self._repos.clear()
        for repo in repos:
            repo.close()

    def __enter__(self) -> "RepositoryRegistry":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def summaries(self) -> list[RepositorySummary]:
        """Summarize every repository, in name order.

        Repositories that fail to open are logged and left out.
        """
        ret = []
        for name in self.names():
            try:
                browser = self.open(name)
            except (OSError, NotGitRepository, *ITEM_ERRORS) as e:
                logger.warning("Unable to open repository %s: %s", name, e)
                continue
            with browser:
                ret.append(browser.summary())
        return ret
