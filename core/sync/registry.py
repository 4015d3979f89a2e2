"""
Config Registry.

Maps configuration-file paths to their loaded entries and enforces
at-most-one-entry-per-path with tear-down-then-build reloads.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union
from weakref import WeakValueDictionary

import aiofiles

from ..errors import ConfigLoadError, TaskStopError
from ..models.config import NamedSyncGroup, SyncConfigFile, SyncDefinition
from .router import CONFIG_CHANGE, LogCallback
from .task import SyncTaskFactory, SyncTaskHandle

logger = logging.getLogger(__name__)

ConfigReader = Callable[[Path], Awaitable[str]]


async def read_config_file(path: Path) -> str:
    """Default asynchronous file read"""
    async with aiofiles.open(path, 'r', encoding='utf-8') as f:
        return await f.read()


@dataclass
class ConfigEntry:
    """One loaded configuration file and the task handles it owns"""

    path: Path
    groups: List[NamedSyncGroup]
    loaded_at: datetime = field(default_factory=datetime.now)

    def handles(self) -> List[SyncTaskHandle]:
        """Task handles owned by this entry, in group order"""
        return [group.task_handle for group in self.groups if group.task_handle is not None]

    def iter_definitions(self) -> Iterator[Tuple[NamedSyncGroup, SyncDefinition]]:
        """Every (group, definition) pair, in file order"""
        for group in self.groups:
            for definition in group.sync_definitions:
                yield group, definition

    @property
    def running_count(self) -> int:
        return sum(handle.running_count for handle in self.handles())

    def get_status(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "groups": [group.name for group in self.groups],
            "running": self.running_count,
            "loaded_at": self.loaded_at.isoformat()
        }


class ConfigRegistry:
    """
    Registry of active configuration files.

    Invariants:
    - a path has an entry iff its file exists and last parsed successfully
    - at most one entry per path at any instant
    - a reload tears the old entry down completely before building the new one

    Loads and removals of the same path are serialized with a per-path lock;
    different paths may interleave at their await points.
    """

    def __init__(
        self,
        task_factory: SyncTaskFactory,
        log_callback: LogCallback,
        reader: ConfigReader = read_config_file
    ):
        """
        Initialize the registry.

        Args:
            task_factory: Builds engine tasks for the handles of loaded entries
            log_callback: Receives (type, action, data) events from tasks and teardown
            reader: Asynchronous file read operation
        """
        self.task_factory = task_factory
        self.log_callback = log_callback
        self.reader = reader

        self._entries: Dict[Path, ConfigEntry] = {}
        # A lock lives only while some load/remove of its path holds or awaits it
        self._path_locks: "WeakValueDictionary[Path, asyncio.Lock]" = WeakValueDictionary()

        # Operation tracking
        self._load_count = 0
        self._load_failures = 0
        self._remove_count = 0

    @staticmethod
    def normalize_path(path: Union[str, Path]) -> Path:
        """Registry key for a path"""
        return Path(path).expanduser().resolve()

    def _lock_for(self, key: Path) -> asyncio.Lock:
        lock = self._path_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._path_locks[key] = lock
        return lock

    async def load(self, path: Union[str, Path]) -> ConfigEntry:
        """
        Load (or reload) a configuration file.

        Any existing entry for the path is torn down before the file is read.
        A read or parse failure leaves the path without an entry.

        Args:
            path: Configuration file path

        Returns:
            The newly installed entry

        Raises:
            ConfigLoadError: If the file cannot be read or parsed
        """
        key = self.normalize_path(path)

        async with self._lock_for(key):
            if await self._teardown(key):
                logger.debug(f"Tore down previous entry for {key}")

            try:
                text = await self.reader(key)
            except (OSError, UnicodeDecodeError) as e:
                self._load_failures += 1
                raise ConfigLoadError(key, f"unreadable: {e}") from e

            try:
                config = SyncConfigFile.parse(text, key)
            except ConfigLoadError:
                self._load_failures += 1
                raise

            entry = ConfigEntry(path=key, groups=config.configs)
            for group in entry.groups:
                group.attach_handle(
                    SyncTaskHandle(key, group, self.task_factory, self.log_callback)
                )

            self._entries[key] = entry
            self._load_count += 1
            logger.info(f"Loaded {key} with {len(entry.groups)} group(s)")
            return entry

    async def remove(self, path: Union[str, Path]) -> bool:
        """
        Stop and release every task handle of the entry, then drop it.

        Args:
            path: Configuration file path

        Returns:
            True if an entry was removed, False if the path was not registered
        """
        key = self.normalize_path(path)
        async with self._lock_for(key):
            removed = await self._teardown(key)
        if removed:
            self._remove_count += 1
            logger.info(f"Removed {key}")
        return removed

    async def _teardown(self, key: Path) -> bool:
        """Remove the entry and release its handles. Must hold the path lock."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False

        for group in entry.groups:
            handle = group.detach_handle()
            if handle is None:
                continue
            try:
                await handle.release()
            except TaskStopError as e:
                # The handle is released regardless; report and continue
                self.log_callback(CONFIG_CHANGE, "TaskStopError", {"path": key, "error": e})
        return True

    async def clear(self) -> int:
        """Release every entry. Returns the number of entries removed."""
        removed = 0
        for key in list(self._entries):
            if await self.remove(key):
                removed += 1
        return removed

    def entries(self, predicate: Optional[Callable[[ConfigEntry], bool]] = None) -> List[ConfigEntry]:
        """
        Snapshot of current entries, optionally filtered.

        Mutations during iteration of the returned list do not affect it.
        """
        snapshot = list(self._entries.values())
        if predicate is None:
            return snapshot
        return [entry for entry in snapshot if predicate(entry)]

    def all(self) -> Mapping[Path, ConfigEntry]:
        """Read-only view of the registry"""
        return MappingProxyType(self._entries)

    def get(self, path: Union[str, Path]) -> Optional[ConfigEntry]:
        return self._entries.get(self.normalize_path(path))

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.normalize_path(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def running_count(self) -> int:
        return sum(entry.running_count for entry in self._entries.values())

    def get_status(self) -> Dict[str, Any]:
        """Get registry status information"""
        return {
            "entries": len(self._entries),
            "running_tasks": self.running_count,
            "load_count": self._load_count,
            "load_failures": self._load_failures,
            "remove_count": self._remove_count,
            "files": {str(key): entry.get_status() for key, entry in self._entries.items()}
        }
