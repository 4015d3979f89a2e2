"""
Config File System Watcher.

Watches every workspace folder for create, change and delete of configuration
files, plus the optional settings and workspace files, and sends debounced
orchestrator events into the event channel.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from watchdog.events import (
    FileSystemEvent as WatchdogEvent,
    FileSystemEventHandler,
    FileCreatedEvent,
    FileModifiedEvent,
    FileDeletedEvent,
    FileMovedEvent,
)
from watchdog.observers import Observer

from .discovery import IGNORED_DIRECTORIES
from .events import EventKind, OrchestratorEvent
from .queue import EventChannel

logger = logging.getLogger(__name__)


class ConfigFileWatcher:
    """
    Watchdog-based watcher for configuration files.

    Features:
    - One recursive watch per workspace folder
    - File name filtering (only ``fsconfig.json`` by default)
    - A move is reported as a delete of the old path plus a create of the new one
    - Per-path debouncing keeps only the latest event for a path
    - Optional settings / workspace file watches
    """

    def __init__(
        self,
        channel: EventChannel,
        folders: Iterable[Path] = (),
        config_file_name: str = "fsconfig.json",
        debounce_ms: int = 500,
        settings_file: Optional[Path] = None,
        workspace_file: Optional[Path] = None
    ):
        """
        Initialize the watcher.

        Args:
            channel: Channel to send orchestrator events to
            folders: Workspace folders to watch
            config_file_name: Name of configuration files
            debounce_ms: Milliseconds to wait before forwarding an event
            settings_file: Settings file to watch, if any
            workspace_file: Workspace file to watch, if any
        """
        self.channel = channel
        self.folders: List[Path] = [Path(f).expanduser().resolve() for f in folders]
        self.config_file_name = config_file_name
        self.debounce_ms = debounce_ms
        self.settings_file = Path(settings_file).expanduser().resolve() if settings_file else None
        self.workspace_file = Path(workspace_file).expanduser().resolve() if workspace_file else None

        self.observer: Optional[Observer] = None
        self.event_handler: Optional['ConfigEventHandler'] = None
        self._watches: Dict[Path, Any] = {}

        # Debouncing state
        self._pending_events: Dict[str, OrchestratorEvent] = {}
        self._debounce_tasks: Dict[str, asyncio.Task] = {}

        self._is_monitoring = False
        self._monitor_start_time: Optional[datetime] = None
        self._events_forwarded = 0
        self._error_count = 0
        self._last_error: Optional[str] = None

    async def start_monitoring(self) -> bool:
        """
        Start watching.

        Returns:
            True if monitoring started successfully, False otherwise
        """
        if self._is_monitoring:
            logger.warning("Config file watcher is already active")
            return True

        try:
            loop = asyncio.get_running_loop()
            self.event_handler = ConfigEventHandler(self, loop)
            self.observer = Observer()

            for folder in self.folders:
                self._schedule(folder)
            for extra in self._extra_files():
                self._schedule(extra.parent, recursive=False)

            self.observer.start()
        except Exception as e:
            logger.error(f"Failed to start config file watcher: {e}")
            self._last_error = str(e)
            self._error_count += 1
            await self.stop_monitoring(force=True)
            return False

        self._is_monitoring = True
        self._monitor_start_time = datetime.now()
        logger.info(f"Watching {len(self._watches)} folder(s) for {self.config_file_name}")
        return True

    async def stop_monitoring(self, force: bool = False) -> None:
        """Stop watching and cancel pending debounced events"""
        if not self._is_monitoring and not force:
            return
        self._is_monitoring = False

        if self.event_handler:
            self.event_handler.detach()

        if self.observer:
            try:
                self.observer.stop()
                self.observer.join(timeout=5.0)
            except RuntimeError as e:
                # Observer thread was never started
                logger.debug(f"Error stopping observer: {e}")
            finally:
                self.observer = None
        self._watches.clear()

        pending = [task for task in self._debounce_tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._debounce_tasks.clear()
        self._pending_events.clear()

        self.event_handler = None
        logger.info("Stopped config file watcher")

    def _extra_files(self) -> List[Path]:
        return [f for f in (self.settings_file, self.workspace_file) if f is not None]

    def _schedule(self, directory: Path, recursive: bool = True) -> None:
        if directory in self._watches or self.observer is None:
            return
        if not directory.is_dir():
            logger.warning(f"Cannot watch missing folder: {directory}")
            return
        self._watches[directory] = self.observer.schedule(
            self.event_handler, str(directory), recursive=recursive
        )
        logger.debug(f"Watching {directory} (recursive={recursive})")

    def _unschedule(self, directory: Path) -> None:
        watch = self._watches.pop(directory, None)
        if watch is not None and self.observer is not None:
            self.observer.unschedule(watch)
            logger.debug(f"Stopped watching {directory}")

    def update_folders(self, folders: Iterable[Path]) -> None:
        """
        Replace the set of watched workspace folders.

        Folders no longer present are unscheduled, new ones are scheduled.
        """
        new_folders = [Path(f).expanduser().resolve() for f in folders]
        if self._is_monitoring:
            keep = set(new_folders) | {f.parent for f in self._extra_files()}
            for folder in list(self._watches):
                if folder not in keep:
                    self._unschedule(folder)
            for folder in new_folders:
                self._schedule(folder)
        self.folders = new_folders
        logger.info(f"Workspace folders updated ({len(new_folders)} folder(s))")

    def is_config_file(self, file_path: Path) -> bool:
        """Check whether a path is a watched configuration file"""
        if file_path.name != self.config_file_name:
            return False
        return not any(parent.name in IGNORED_DIRECTORIES for parent in file_path.parents)

    def convert_watchdog_event(self, event: WatchdogEvent) -> List[OrchestratorEvent]:
        """
        Convert a watchdog event to orchestrator events.

        Args:
            event: Watchdog file system event

        Returns:
            Zero, one or two orchestrator events
        """
        if event.is_directory:
            return []

        if isinstance(event, FileMovedEvent):
            return (
                self._convert_path(Path(event.src_path), EventKind.CONFIG_DELETED)
                + self._convert_path(Path(event.dest_path), EventKind.CONFIG_CREATED)
            )
        if isinstance(event, FileCreatedEvent):
            return self._convert_path(Path(event.src_path), EventKind.CONFIG_CREATED)
        if isinstance(event, FileModifiedEvent):
            return self._convert_path(Path(event.src_path), EventKind.CONFIG_CHANGED)
        if isinstance(event, FileDeletedEvent):
            return self._convert_path(Path(event.src_path), EventKind.CONFIG_DELETED)

        logger.debug(f"Ignoring watchdog event type: {type(event).__name__}")
        return []

    def _convert_path(self, path: Path, kind: EventKind) -> List[OrchestratorEvent]:
        path = path.resolve()
        if path == self.settings_file:
            if kind == EventKind.CONFIG_DELETED:
                return []
            return [OrchestratorEvent.create_settings_changed(source="watcher", file_path=path)]
        if path == self.workspace_file:
            if kind == EventKind.CONFIG_DELETED:
                return []
            return [OrchestratorEvent.create_workspace_changed(source="watcher", file_path=path)]
        if not self.is_config_file(path):
            return []
        return [OrchestratorEvent(kind=kind, file_path=path, source="watcher")]

    def handle_watchdog_event(self, event: WatchdogEvent) -> None:
        """Convert and debounce a watchdog event. Runs on the event loop thread."""
        try:
            for converted in self.convert_watchdog_event(event):
                self.debounce_event(converted)
        except Exception as e:
            logger.error(f"Error handling watchdog event {event}: {e}")
            self._error_count += 1
            self._last_error = str(e)

    def debounce_event(self, event: OrchestratorEvent) -> None:
        """
        Debounce an event: a newer event for the same path replaces the pending one.
        """
        key = str(event.file_path) if event.file_path is not None else event.kind.value

        existing = self._debounce_tasks.get(key)
        if existing is not None and not existing.done():
            existing.cancel()

        self._pending_events[key] = event
        self._debounce_tasks[key] = asyncio.create_task(
            self._forward_after_delay(key, self.debounce_ms / 1000.0)
        )

    async def _forward_after_delay(self, key: str, delay_seconds: float) -> None:
        try:
            await asyncio.sleep(delay_seconds)
        except asyncio.CancelledError:
            return

        event = self._pending_events.pop(key, None)
        self._debounce_tasks.pop(key, None)
        if event is None:
            return

        if self.channel.send(event):
            self._events_forwarded += 1
            logger.debug(f"Forwarded debounced event: {event}")
        else:
            logger.warning(f"Failed to forward event: {event}")

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    @property
    def monitoring_duration(self) -> Optional[timedelta]:
        """Get duration of current monitoring session"""
        if not self._monitor_start_time:
            return None
        return datetime.now() - self._monitor_start_time

    @property
    def watched_paths(self) -> Set[Path]:
        return set(self._watches)

    def get_status(self) -> Dict[str, Any]:
        """Get watcher status information"""
        return {
            "is_monitoring": self._is_monitoring,
            "folders": [str(folder) for folder in self.folders],
            "config_file_name": self.config_file_name,
            "debounce_ms": self.debounce_ms,
            "settings_file": str(self.settings_file) if self.settings_file else None,
            "workspace_file": str(self.workspace_file) if self.workspace_file else None,
            "monitoring_duration": str(self.monitoring_duration) if self.monitoring_duration else None,
            "pending_events": len(self._pending_events),
            "events_forwarded": self._events_forwarded,
            "error_count": self._error_count,
            "last_error": self._last_error
        }

    async def __aenter__(self):
        """Async context manager entry"""
        await self.start_monitoring()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.stop_monitoring()


class ConfigEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler that forwards events to ConfigFileWatcher.

    Bridges the watchdog observer thread to the asyncio loop.
    """

    def __init__(self, watcher: ConfigFileWatcher, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.watcher = watcher
        self._event_loop: Optional[asyncio.AbstractEventLoop] = loop

    def detach(self) -> None:
        """Drop the loop reference so late events are discarded"""
        self._event_loop = None

    def on_any_event(self, event: WatchdogEvent) -> None:
        loop = self._event_loop
        if loop is None or loop.is_closed():
            logger.debug(f"No event loop available, dropping event: {event}")
            return
        try:
            loop.call_soon_threadsafe(self.watcher.handle_watchdog_event, event)
        except RuntimeError as e:
            # Event loop might be closing
            if "closed" not in str(e).lower():
                logger.error(f"Failed to schedule event on loop: {e}")
