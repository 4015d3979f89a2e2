"""
Discovery Adapter.

Enumerates configuration files matching a glob pattern across every current
workspace folder. Discovery only feeds loads; it never removes entries.
"""

import asyncio
import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_GLOB = "**/fsconfig.json"

# Directories never searched for configuration files
IGNORED_DIRECTORIES = {
    'node_modules', '.git', '__pycache__', '.pytest_cache',
    '.venv', 'venv', '.cache', '.mypy_cache', '.tox',
    '.svn', '.hg', '.nyc_output'
}

FolderProvider = Callable[[], Sequence[Path]]


def matches_glob(relative_path: str, pattern: str) -> bool:
    """
    Match a folder-relative POSIX path against a workspace glob.

    A leading ``**/`` matches zero or more directories.
    """
    if pattern.startswith("**/"):
        tail = pattern[3:]
        return fnmatch(relative_path, tail) or fnmatch(relative_path, f"*/{tail}")
    return fnmatch(relative_path, pattern)


class ConfigDiscovery:
    """Finds configuration files under the workspace folders"""

    def __init__(
        self,
        folder_provider: FolderProvider,
        ignored_directories: Optional[Iterable[str]] = None
    ):
        """
        Initialize discovery.

        Args:
            folder_provider: Returns the current workspace folders
            ignored_directories: Directory names to skip while walking
        """
        self.folder_provider = folder_provider
        self.ignored_directories: Set[str] = set(
            IGNORED_DIRECTORIES if ignored_directories is None else ignored_directories
        )
        self._last_result: List[Path] = []

    async def discover(self, glob_pattern: str = DEFAULT_CONFIG_GLOB) -> List[Path]:
        """
        Enumerate configuration files in every workspace folder.

        Args:
            glob_pattern: Workspace-relative glob (e.g. ``**/fsconfig.json``)

        Returns:
            Resolved, de-duplicated, sorted file paths
        """
        folders = list(self.folder_provider())
        found = await asyncio.to_thread(self._enumerate, folders, glob_pattern)
        self._last_result = found
        logger.info(f"Discovered {len(found)} config file(s) in {len(folders)} folder(s)")
        return found

    def _enumerate(self, folders: Sequence[Path], glob_pattern: str) -> List[Path]:
        results: Set[Path] = set()
        for folder in folders:
            root = Path(folder).expanduser()
            if not root.is_dir():
                logger.warning(f"Workspace folder is not a directory: {root}")
                continue
            results.update(self._walk_folder(root.resolve(), glob_pattern))
        return sorted(results)

    def _walk_folder(self, root: Path, glob_pattern: str) -> List[Path]:
        matches = []
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune in place so os.walk skips ignored trees
            dirnames[:] = [d for d in dirnames if d not in self.ignored_directories]
            for filename in filenames:
                file_path = Path(dirpath) / filename
                relative = file_path.relative_to(root).as_posix()
                if matches_glob(relative, glob_pattern):
                    matches.append(file_path.resolve())
        return matches

    @property
    def last_result(self) -> List[Path]:
        return list(self._last_result)
