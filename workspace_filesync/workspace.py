"""
Workspace folder model.

An ordered list of workspace folders, optionally backed by a workspace file
of the form ``{"folders": [{"path": "..."}]}``.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

WorkspaceListener = Callable[[], None]


class Workspace:
    """Multi-root workspace: the folders discovery and the watcher operate on"""

    def __init__(
        self,
        folders: Iterable[Union[str, Path]] = (),
        workspace_file: Optional[Union[str, Path]] = None
    ):
        self.workspace_file = Path(workspace_file).expanduser().resolve() if workspace_file else None
        self._folders: List[Path] = []
        self._listeners: List[WorkspaceListener] = []

        # Folders given explicitly survive a workspace file refresh
        self._explicit: List[Path] = [Path(f).expanduser().resolve() for f in folders]
        for folder in self._explicit:
            self._append(folder)
        if self.workspace_file is not None:
            for folder in self.read_workspace_file(self.workspace_file):
                self._append(folder)

    @classmethod
    def from_file(cls, workspace_file: Union[str, Path]) -> 'Workspace':
        """Create a workspace from a workspace file"""
        return cls(workspace_file=workspace_file)

    @staticmethod
    def read_workspace_file(workspace_file: Path) -> List[Path]:
        """
        Read folder paths from a workspace file.

        Relative folder paths resolve against the file's directory. An
        unreadable file yields no folders.
        """
        try:
            with open(workspace_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read workspace file {workspace_file}: {e}")
            return []

        folders = []
        entries = data.get("folders", []) if isinstance(data, dict) else []
        for entry in entries:
            raw = entry.get("path") if isinstance(entry, dict) else entry
            if not isinstance(raw, str) or not raw:
                logger.warning(f"Skipping invalid folder entry in {workspace_file}: {entry!r}")
                continue
            path = Path(raw).expanduser()
            if not path.is_absolute():
                path = workspace_file.parent / path
            folders.append(path.resolve())
        return folders

    @property
    def folders(self) -> List[Path]:
        return list(self._folders)

    def __call__(self) -> List[Path]:
        return self.folders

    def __len__(self) -> int:
        return len(self._folders)

    def _append(self, folder: Union[str, Path]) -> bool:
        path = Path(folder).expanduser().resolve()
        if path in self._folders:
            return False
        self._folders.append(path)
        return True

    def add_listener(self, listener: WorkspaceListener) -> None:
        """Register a callback fired whenever the folder list changes"""
        self._listeners.append(listener)

    def remove_listener(self, listener: WorkspaceListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.warning(f"Workspace listener failed: {e}")

    def add_folder(self, folder: Union[str, Path]) -> bool:
        """Add a folder. Returns False if it was already present."""
        if not self._append(folder):
            return False
        self._explicit.append(Path(folder).expanduser().resolve())
        logger.info(f"Added workspace folder {folder}")
        self._notify()
        return True

    def remove_folder(self, folder: Union[str, Path]) -> bool:
        """Remove a folder. Returns False if it was not present."""
        path = Path(folder).expanduser().resolve()
        if path not in self._folders:
            return False
        self._folders.remove(path)
        if path in self._explicit:
            self._explicit.remove(path)
        logger.info(f"Removed workspace folder {path}")
        self._notify()
        return True

    def set_folders(self, folders: Iterable[Union[str, Path]], notify: bool = True) -> bool:
        """
        Replace the folder list.

        Returns:
            True if the list changed
        """
        new_folders: List[Path] = []
        for folder in folders:
            path = Path(folder).expanduser().resolve()
            if path not in new_folders:
                new_folders.append(path)
        if new_folders == self._folders:
            return False
        self._folders = new_folders
        if notify:
            self._notify()
        return True

    def refresh(self, notify: bool = False) -> bool:
        """Re-read the workspace file, if any. Returns True if the folders changed."""
        if self.workspace_file is None:
            return False
        folders = self._explicit + self.read_workspace_file(self.workspace_file)
        return self.set_folders(folders, notify=notify)
