"""
Lifecycle Controller.

Reacts to config file discovery/change/delete events, workspace and settings
changes, and operator commands, and drives registry mutation and task
start/stop accordingly.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar, Union

import aiofiles

from ..errors import ConfigLoadError, PromptCancelled, TaskStartError, TaskStopError
from ..models.config import NamedSyncGroup, SyncDefinition, WorkspaceSettings
from .discovery import DEFAULT_CONFIG_GLOB, ConfigDiscovery, FolderProvider
from .registry import ConfigEntry, ConfigRegistry
from .router import CONFIG_CHANGE, LogRouter

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOGGLE_PLACEHOLDER = "Select the FileSyncs you want to enable"
CREATE_PLACEHOLDER = "Where to save fsconfig.json file"


@dataclass(eq=False)
class SyncItem:
    """One selectable (group, definition) row of the toggle picker"""
    label: str
    picked: bool
    entry_path: Path
    group: NamedSyncGroup
    definition: SyncDefinition
    description: str = ""


class MultiSelectPrompt(Protocol):
    """Multi-select prompt. Returns None when the operator cancels."""

    async def pick_many(self, items: Sequence[SyncItem], placeholder: str) -> Optional[Sequence[SyncItem]]:
        ...


class ChoicePrompt(Protocol):
    """Single-choice prompt. Returns None when the operator cancels."""

    async def pick_one(self, options: Sequence[T], placeholder: str) -> Optional[T]:
        ...


class LifecycleController:
    """
    Keeps the set of running sync tasks consistent with the configuration
    files on disk and with operator commands.

    State is "which (path, group, definition) triples have a running task";
    the registry owns the entries and their handles, the controller decides
    when they are loaded, removed, started and stopped.
    """

    def __init__(
        self,
        registry: ConfigRegistry,
        discovery: ConfigDiscovery,
        router: LogRouter,
        folder_provider: FolderProvider,
        settings_provider: Callable[[], WorkspaceSettings],
        multi_select_prompt: Optional[MultiSelectPrompt] = None,
        choice_prompt: Optional[ChoicePrompt] = None,
        template_factory: Optional[Callable[[Path], Dict[str, Any]]] = None,
        config_glob: str = DEFAULT_CONFIG_GLOB,
        config_file_name: str = "fsconfig.json"
    ):
        """
        Initialize the lifecycle controller.

        Args:
            registry: Registry of loaded configuration files
            discovery: Enumerates configuration files in the workspace
            router: Operator log router
            folder_provider: Returns the current workspace folders
            settings_provider: Reads the current workspace settings
            multi_select_prompt: Prompt used by toggle_file_syncs
            choice_prompt: Prompt used by create_config_file
            template_factory: Builds the default configuration file content for a folder
            config_glob: Glob used for discovery
            config_file_name: Name of configuration files
        """
        self.registry = registry
        self.discovery = discovery
        self.router = router
        self.folder_provider = folder_provider
        self.settings_provider = settings_provider
        self.multi_select_prompt = multi_select_prompt
        self.choice_prompt = choice_prompt
        self.template_factory = template_factory
        self.config_glob = config_glob
        self.config_file_name = config_file_name

        self.settings = WorkspaceSettings()

    def _log(self, action: str, data: Any = None) -> None:
        self.router.record(CONFIG_CHANGE, action, data)

    # Config file events

    async def handle_config_changed(self, path: Union[str, Path]) -> Optional[ConfigEntry]:
        """
        Load or reload a configuration file (create, change and discovery events).

        Definitions flagged ``active`` in the file are started once the new
        entry is installed.

        Returns:
            The new entry, or None if loading failed
        """
        try:
            entry = await self.registry.load(path)
        except ConfigLoadError as e:
            logger.warning(str(e))
            self._log("ConfigLoadError", {"path": e.path, "reason": e.reason})
            return None

        await self._autostart(entry)
        self._log("load", {
            "path": entry.path,
            "groups": len(entry.groups),
            "running": entry.running_count
        })
        return entry

    async def _autostart(self, entry: ConfigEntry) -> None:
        for group in entry.groups:
            handle = group.task_handle
            if handle is None:
                continue
            for definition in [d for d in group.sync_definitions if d.active]:
                try:
                    await handle.start_syncs(definition)
                except TaskStartError as e:
                    self._log("TaskStartError", {"path": entry.path, "error": e})

    async def handle_config_deleted(self, path: Union[str, Path]) -> bool:
        """
        Stop the deleted file's tasks and drop its entry.

        Returns:
            True if the file had an entry
        """
        await self.stop_all_syncs(path_filter=path)
        removed = await self.registry.remove(path)
        if removed:
            self._log("delete", {"path": self.registry.normalize_path(path)})
        return removed

    async def handle_workspace_changed(self) -> List[Path]:
        """
        Re-run discovery over all current workspace folders and load every
        configuration file found. Redundant loads of unchanged files are safe.

        Returns:
            The discovered paths
        """
        paths = await self.discovery.discover(self.config_glob)
        self._log("discover", {"count": len(paths)})
        for path in paths:
            await self.handle_config_changed(path)
        return paths

    def handle_settings_changed(self) -> WorkspaceSettings:
        """Re-read settings and apply status indicator visibility"""
        self.settings = self.settings_provider()
        self._log("update", self.settings)

        indicator = self.router.status_indicator
        if indicator is not None:
            if self.settings.show_status_bar_info:
                indicator.show()
            else:
                indicator.hide()
        return self.settings

    # Broadcast commands

    def _entries_for(self, path_filter: Optional[Union[str, Path]]) -> List[ConfigEntry]:
        if path_filter is None:
            return self.registry.entries()
        key = self.registry.normalize_path(path_filter)
        return self.registry.entries(lambda entry: entry.path == key)

    async def start_all_syncs(self, path_filter: Optional[Union[str, Path]] = None) -> int:
        """
        Start every task of every entry, or only of the entry at ``path_filter``.

        Returns:
            Number of tasks started
        """
        started = 0
        for entry in self._entries_for(path_filter):
            for handle in entry.handles():
                try:
                    started += await handle.start_syncs()
                except TaskStartError as e:
                    self._log("TaskStartError", {"path": entry.path, "error": e})
        logger.info(f"Started {started} sync task(s)")
        return started

    async def stop_all_syncs(self, path_filter: Optional[Union[str, Path]] = None) -> int:
        """
        Stop every task of every entry, or only of the entry at ``path_filter``.

        Returns:
            Number of tasks stopped
        """
        stopped = 0
        for entry in self._entries_for(path_filter):
            for handle in entry.handles():
                try:
                    stopped += await handle.stop_syncs()
                except TaskStopError as e:
                    self._log("TaskStopError", {"path": entry.path, "error": e})
        logger.info(f"Stopped {stopped} sync task(s)")
        return stopped

    # Toggle

    def build_sync_items(self) -> List[SyncItem]:
        """Flat list of every (group, definition) with its current state"""
        items = []
        for entry in self.registry.entries():
            for group, definition in entry.iter_definitions():
                items.append(SyncItem(
                    label=definition.label(group.name),
                    picked=definition.active,
                    entry_path=entry.path,
                    group=group,
                    definition=definition,
                    description=str(definition.destination_path)
                ))
        return items

    async def toggle_file_syncs(self) -> bool:
        """
        Let the operator choose which syncs run.

        The confirmed selection is applied as a full overwrite of the
        presented snapshot: selected items are started, every other presented
        item is stopped. Cancelling changes nothing.

        Returns:
            True if a selection was applied, False if cancelled
        """
        if self.multi_select_prompt is None:
            raise RuntimeError("No multi-select prompt configured")

        items = self.build_sync_items()
        try:
            selection = await self.multi_select_prompt.pick_many(items, TOGGLE_PLACEHOLDER)
        except PromptCancelled:
            selection = None

        if selection is None:
            logger.debug("Toggle prompt cancelled")
            return False

        for item in items:
            handle = item.group.task_handle
            if handle is None:
                # Entry was reloaded or removed while the prompt was open
                continue
            try:
                if item in selection:
                    await handle.start_syncs(item.definition)
                else:
                    await handle.stop_syncs(item.definition)
            except TaskStartError as e:
                self._log("TaskStartError", {"path": item.entry_path, "error": e})
            except TaskStopError as e:
                self._log("TaskStopError", {"path": item.entry_path, "error": e})
        return True

    # Config file creation

    async def create_config_file(self) -> Optional[Path]:
        """
        Ask for a workspace folder and write the default configuration file there.

        An existing file is left untouched.

        Returns:
            Path of the written file, or None if cancelled or already present
        """
        if self.choice_prompt is None:
            raise RuntimeError("No choice prompt configured")

        folders = list(self.folder_provider())
        if not folders:
            logger.warning("No workspace folders to create a config file in")
            return None

        try:
            folder = await self.choice_prompt.pick_one(folders, CREATE_PLACEHOLDER)
        except PromptCancelled:
            folder = None
        if folder is None:
            return None

        return await self.write_default_config(Path(folder))

    async def write_default_config(self, folder: Path, overwrite: bool = False) -> Optional[Path]:
        """Write the default configuration template into ``folder``"""
        dest_path = Path(folder) / self.config_file_name
        if dest_path.exists() and not overwrite:
            self._log("exists", {"path": dest_path})
            return None

        template = self.template_factory(folder) if self.template_factory else {"configs": []}
        async with aiofiles.open(dest_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(template, indent=2) + "\n")

        self._log("create", {"path": dest_path})
        return dest_path

    # Deactivation

    async def shutdown(self) -> None:
        """Stop every task and release every entry"""
        await self.stop_all_syncs()
        removed = await self.registry.clear()
        logger.info(f"Lifecycle controller shut down ({removed} entries released)")

    def get_status(self) -> Dict[str, Any]:
        """Get controller status information"""
        return {
            "settings": self.settings.to_dict(),
            "folders": [str(folder) for folder in self.folder_provider()],
            "registry": self.registry.get_status(),
            "router": self.router.get_status()
        }
