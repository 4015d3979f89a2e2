"""
Mirror Sync Task.

Default sync engine: mirrors whole files from a source directory to a
destination directory and keeps them mirrored while running. Each task
reports ``fsync`` log events through its log callback.
"""

import asyncio
import logging
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, List, Optional

from watchdog.events import (
    FileSystemEvent as WatchdogEvent,
    FileSystemEventHandler,
    FileCreatedEvent,
    FileModifiedEvent,
    FileDeletedEvent,
    FileMovedEvent,
)
from watchdog.observers import Observer

from ..models.config import SyncDefinition
from .router import FSYNC, LogCallback

logger = logging.getLogger(__name__)


class MirrorSyncTask:
    """
    Whole-file mirror of one sync definition.

    Start copies the matching source files when ``copy_on_start`` is set, then
    watches the source tree: created or modified files are copied, deleted
    files are removed from the destination.
    """

    def __init__(self, task_id: str, definition: SyncDefinition, log_callback: LogCallback):
        self.task_id = task_id
        self.definition = definition
        self._log_callback = log_callback
        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._generation = 0
        self._files_copied = 0
        self._files_deleted = 0

    @property
    def source(self) -> Path:
        return self.definition.source_path

    @property
    def destination(self) -> Path:
        return self.definition.destination_path

    @property
    def is_running(self) -> bool:
        return self._running

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _emit(self, action: str, data: Dict[str, Any]) -> None:
        # Log callbacks only ever run on the loop thread
        loop = self._loop
        if loop is not None and not loop.is_closed() and not self._on_loop_thread():
            try:
                loop.call_soon_threadsafe(self._deliver, action, data)
            except RuntimeError as e:
                logger.debug(f"Dropped {action} event for {self.task_id}: {e}")
            return
        self._deliver(action, data)

    def _deliver(self, action: str, data: Dict[str, Any]) -> None:
        try:
            self._log_callback(FSYNC, action, data)
        except Exception as e:
            logger.warning(f"Log callback failed for {self.task_id}: {e}")

    def _payload(self, **extra: Any) -> Dict[str, Any]:
        payload = {"task_id": self.task_id, "src": self.source, "dest": self.destination}
        payload.update(extra)
        return payload

    async def start(self) -> None:
        """
        Start mirroring.

        The task counts as running from the first await on, so a second start
        is a no-op and a stop issued meanwhile keeps the observer from starting.

        Raises:
            FileNotFoundError: If the source is not a directory
        """
        if self._running:
            return
        if not self.source.is_dir():
            raise FileNotFoundError(f"Source directory does not exist: {self.source}")

        self._running = True
        self._generation += 1
        generation = self._generation
        self._loop = asyncio.get_running_loop()
        try:
            await asyncio.to_thread(self.destination.mkdir, parents=True, exist_ok=True)
            if self.definition.copy_on_start:
                await asyncio.to_thread(self.copy_all)
            # Stopped (or stopped and restarted) while copying
            if self._generation != generation:
                return

            observer = Observer()
            observer.schedule(MirrorEventHandler(self), str(self.source), recursive=self.definition.recursive)
            observer.start()
        except Exception:
            if self._generation == generation:
                self._running = False
            raise

        self._observer = observer
        self._emit("start", self._payload())

    async def stop(self) -> None:
        """Stop mirroring. Files already copied are left in place."""
        if not self._running:
            return
        self._running = False
        self._generation += 1
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        observer.stop()
        await asyncio.to_thread(observer.join, 5.0)
        self._emit("stop", self._payload(copied=self._files_copied, deleted=self._files_deleted))

    def matches(self, relative_path: Path) -> bool:
        """Check a source-relative path against the include/exclude globs"""
        if not self.definition.recursive and len(relative_path.parts) > 1:
            return False
        posix = relative_path.as_posix()
        candidates = (posix, relative_path.name)
        if not any(fnmatch(c, pattern) for c in candidates for pattern in self.definition.include):
            return False
        return not any(fnmatch(c, pattern) for c in candidates for pattern in self.definition.exclude)

    def _relative(self, path: Path) -> Optional[Path]:
        try:
            return path.relative_to(self.source)
        except ValueError:
            return None

    def _iter_source_files(self) -> List[Path]:
        pattern = "**/*" if self.definition.recursive else "*"
        return [p for p in self.source.glob(pattern) if p.is_file()]

    def copy_all(self) -> int:
        """Copy every matching source file. Returns the number of files copied."""
        copied = 0
        for file_path in self._iter_source_files():
            if self.copy_file(file_path):
                copied += 1
        return copied

    def copy_file(self, file_path: Path) -> bool:
        """Copy one source file to its destination counterpart"""
        relative = self._relative(file_path)
        if relative is None or not self.matches(relative):
            return False
        target = self.destination / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(file_path, target)
        except OSError as e:
            self._emit("error", self._payload(src=file_path, error=e))
            return False
        self._files_copied += 1
        self._emit("copy", self._payload(src=file_path, dest=target))
        return True

    def delete_file(self, file_path: Path) -> bool:
        """Remove the destination counterpart of a deleted source file"""
        relative = self._relative(file_path)
        if relative is None or not self.matches(relative):
            return False
        target = self.destination / relative
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            self._emit("error", self._payload(src=file_path, error=e))
            return False
        self._files_deleted += 1
        self._emit("delete", self._payload(src=file_path, dest=target))
        return True

    def handle_watchdog_event(self, event: WatchdogEvent) -> None:
        """Apply one source change. Runs on the event loop thread."""
        if event.is_directory or not self.is_running:
            return
        if isinstance(event, FileMovedEvent):
            self.delete_file(Path(event.src_path))
            self.copy_file(Path(event.dest_path))
        elif isinstance(event, (FileCreatedEvent, FileModifiedEvent)):
            self.copy_file(Path(event.src_path))
        elif isinstance(event, FileDeletedEvent):
            self.delete_file(Path(event.src_path))

    def get_status(self) -> Dict[str, Any]:
        """Get task status information"""
        return {
            "task_id": self.task_id,
            "src": str(self.source),
            "dest": str(self.destination),
            "running": self.is_running,
            "files_copied": self._files_copied,
            "files_deleted": self._files_deleted
        }


class MirrorEventHandler(FileSystemEventHandler):
    """Forwards source tree events from the observer thread to the task's loop"""

    def __init__(self, task: MirrorSyncTask):
        super().__init__()
        self.task = task

    def on_any_event(self, event: WatchdogEvent) -> None:
        loop = self.task._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.task.handle_watchdog_event, event)
        except RuntimeError as e:
            if "closed" not in str(e).lower():
                logger.error(f"Failed to schedule mirror event on loop: {e}")


def mirror_task_factory(task_id: str, definition: SyncDefinition, log_callback: LogCallback) -> MirrorSyncTask:
    """SyncTaskFactory building MirrorSyncTask instances"""
    return MirrorSyncTask(task_id, definition, log_callback)
