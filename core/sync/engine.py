"""
File Sync Orchestrator.

Central coordinator built once at startup. Owns the registry, the lifecycle
controller, the log router, the config file watcher and the single event
channel every external source sends into, and runs the dispatch loop that
consumes it.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Union

from ..models.config import GlobalSettings, WorkspaceSettings
from .discovery import ConfigDiscovery, FolderProvider
from .events import Command, EventKind, OrchestratorEvent
from .lifecycle import ChoicePrompt, LifecycleController, MultiSelectPrompt
from .mirror import mirror_task_factory
from .queue import EventChannel
from .registry import ConfigReader, ConfigRegistry, read_config_file
from .router import CONFIG_CHANGE, LogRouter, LogSink, StatusIndicator
from .task import SyncTaskFactory
from .watcher import ConfigFileWatcher

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorMetrics:
    """Dispatch metrics for the orchestrator"""
    events_dispatched: int = 0
    events_failed: int = 0
    events_by_kind: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    last_error_message: Optional[str] = None
    last_error_time: Optional[datetime] = None


class FileSyncOrchestrator:
    """
    Explicit orchestrator replacing a global extension instance.

    One dispatch loop receives events from the channel and spawns one handler
    task per event, so a handler awaiting I/O (a file read, a prompt, a task
    start) does not block later events. Handlers for the same config path are
    serialized by the registry's per-path lock.

    Features:
    - Single event channel fed by the watcher, workspace, settings and commands
    - Error containment: a failing handler is logged, the loop keeps running
    - Deactivation waits for in-flight handlers and stops every sync task
    """

    def __init__(
        self,
        folder_provider: FolderProvider,
        log_sink: LogSink,
        settings_provider: Callable[[], WorkspaceSettings] = WorkspaceSettings,
        status_indicator: Optional[StatusIndicator] = None,
        task_factory: SyncTaskFactory = mirror_task_factory,
        multi_select_prompt: Optional[MultiSelectPrompt] = None,
        choice_prompt: Optional[ChoicePrompt] = None,
        template_factory: Optional[Callable[[Path], Dict[str, Any]]] = None,
        global_settings: Optional[GlobalSettings] = None,
        reader: ConfigReader = read_config_file,
        workspace_refresh: Optional[Callable[[], Any]] = None,
        settings_file: Optional[Path] = None,
        workspace_file: Optional[Path] = None,
        watch: bool = True,
        max_queue_size: int = 1000,
        shutdown_timeout_s: float = 10.0
    ):
        """
        Initialize the orchestrator.

        Args:
            folder_provider: Returns the current workspace folders
            log_sink: Operator log stream
            settings_provider: Reads the current workspace settings
            status_indicator: Single-line status display, if any
            task_factory: Builds sync engine tasks (default: whole-file mirror)
            multi_select_prompt: Prompt for toggleSyncs
            choice_prompt: Prompt for createConfigFile
            template_factory: Builds the default fsconfig.json content for a folder
            global_settings: Process-wide settings
            reader: Asynchronous config file read
            workspace_refresh: Called before rediscovery on workspace changes
            settings_file: Settings file to watch
            workspace_file: Workspace file to watch
            watch: Whether to watch the filesystem at all
            max_queue_size: Maximum pending events
            shutdown_timeout_s: Seconds to wait for in-flight handlers on deactivation
        """
        self.settings = global_settings or GlobalSettings()
        self.folder_provider = folder_provider
        self.workspace_refresh = workspace_refresh
        self.shutdown_timeout_s = shutdown_timeout_s

        self.channel = EventChannel(max_size=max_queue_size)
        self.router = LogRouter(log_sink, status_indicator)
        self.registry = ConfigRegistry(task_factory, self.router.record, reader=reader)
        self.discovery = ConfigDiscovery(folder_provider)
        self.controller = LifecycleController(
            registry=self.registry,
            discovery=self.discovery,
            router=self.router,
            folder_provider=folder_provider,
            settings_provider=settings_provider,
            multi_select_prompt=multi_select_prompt,
            choice_prompt=choice_prompt,
            template_factory=template_factory,
            config_glob=self.settings.config_glob,
            config_file_name=self.settings.config_file_name
        )
        self.watcher: Optional[ConfigFileWatcher] = None
        if watch:
            self.watcher = ConfigFileWatcher(
                self.channel,
                folders=folder_provider(),
                config_file_name=self.settings.config_file_name,
                debounce_ms=self.settings.debounce_ms,
                settings_file=settings_file,
                workspace_file=workspace_file
            )

        self._command_handlers: Dict[Command, Callable[[], Any]] = {
            Command.CREATE_CONFIG_FILE: self.controller.create_config_file,
            Command.TOGGLE_SYNCS: self.controller.toggle_file_syncs,
            Command.START_ALL_SYNCS: self.controller.start_all_syncs,
            Command.STOP_ALL_SYNCS: self.controller.stop_all_syncs,
        }

        self._loop_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self.is_running = False
        self.start_time: Optional[datetime] = None
        self.metrics = OrchestratorMetrics()

    async def activate(self) -> bool:
        """
        Start the dispatch loop and the watcher, apply settings and queue the
        initial discovery.

        Returns:
            True if activation succeeded
        """
        if self.is_running:
            logger.warning("Orchestrator is already active")
            return True

        logger.info("Activating FileSyncOrchestrator")
        await self.channel.start()
        self.is_running = True
        self.start_time = datetime.now()
        self._loop_task = asyncio.create_task(self._dispatch_loop())

        self.controller.handle_settings_changed()

        if self.watcher is not None and not await self.watcher.start_monitoring():
            logger.warning("Config file watcher failed to start; changes will not be picked up")

        self.send(OrchestratorEvent.create_workspace_changed(source="activation"))
        return True

    async def deactivate(self) -> None:
        """
        Stop the watcher and the dispatch loop, wait for in-flight handlers,
        then stop every sync task and clear the registry.
        """
        if not self.is_running:
            return

        logger.info("Deactivating FileSyncOrchestrator")
        self.is_running = False

        if self.watcher is not None:
            await self.watcher.stop_monitoring()

        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        if self._in_flight:
            done, pending = await asyncio.wait(set(self._in_flight), timeout=self.shutdown_timeout_s)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} handler(s) still running at deactivation")
                await asyncio.gather(*pending, return_exceptions=True)

        await self.channel.stop()
        await self.controller.shutdown()
        logger.info("FileSyncOrchestrator deactivated")

    def send(self, event: OrchestratorEvent) -> bool:
        """Send an event into the channel"""
        return self.channel.send(event)

    def execute_command(self, command: Union[Command, str], source: str = "operator") -> bool:
        """
        Queue an operator command.

        Args:
            command: Command or its stable name (e.g. ``"toggleSyncs"``)

        Raises:
            ValueError: If the command name is unknown
        """
        return self.send(OrchestratorEvent.create_command(Command(command), source=source))

    def notify_workspace_changed(self, source: str = "workspace") -> bool:
        return self.send(OrchestratorEvent.create_workspace_changed(source=source))

    def notify_settings_changed(self, source: str = "settings") -> bool:
        return self.send(OrchestratorEvent.create_settings_changed(source=source))

    async def wait_idle(self) -> None:
        """Wait until every queued event has been handled"""
        await self.channel.join()

    async def _dispatch_loop(self) -> None:
        logger.debug("Dispatch loop started")
        while self.is_running:
            event = await self.channel.receive()
            if event is None:
                continue
            task = asyncio.create_task(self._handle(event))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
        logger.debug("Dispatch loop stopped")

    async def _handle(self, event: OrchestratorEvent) -> None:
        try:
            await self.dispatch(event)
        finally:
            self.channel.task_done()

    async def dispatch(self, event: OrchestratorEvent) -> bool:
        """
        Route one event to the lifecycle controller.

        Every failure is caught and logged here, at the handler boundary.

        Returns:
            True if the handler completed without an error
        """
        self.metrics.events_by_kind[event.kind.value] += 1
        try:
            await self._route(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.metrics.events_failed += 1
            self.metrics.last_error_message = f"{event}: {e}"
            self.metrics.last_error_time = datetime.now()
            logger.exception(f"Error handling event {event}")
            self.router.record(CONFIG_CHANGE, "error", {"event": str(event), "error": e})
            return False

        self.metrics.events_dispatched += 1
        return True

    async def _route(self, event: OrchestratorEvent) -> None:
        kind = event.kind
        if kind in (EventKind.CONFIG_CREATED, EventKind.CONFIG_CHANGED):
            await self.controller.handle_config_changed(event.file_path)
        elif kind == EventKind.CONFIG_DELETED:
            await self.controller.handle_config_deleted(event.file_path)
        elif kind == EventKind.WORKSPACE_CHANGED:
            await self._on_workspace_changed()
        elif kind == EventKind.SETTINGS_CHANGED:
            self.controller.handle_settings_changed()
        elif kind == EventKind.COMMAND:
            await self._command_handlers[event.command]()
        else:
            logger.warning(f"Unhandled event kind: {kind}")

    async def _on_workspace_changed(self) -> None:
        if self.workspace_refresh is not None:
            self.workspace_refresh()
        if self.watcher is not None:
            self.watcher.update_folders(self.folder_provider())
        await self.controller.handle_workspace_changed()

    def get_status(self) -> Dict[str, Any]:
        """Get comprehensive orchestrator status"""
        uptime = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0.0
        return {
            "is_running": self.is_running,
            "uptime_seconds": uptime,
            "in_flight": len(self._in_flight),
            "metrics": {
                "events_dispatched": self.metrics.events_dispatched,
                "events_failed": self.metrics.events_failed,
                "events_by_kind": dict(self.metrics.events_by_kind),
                "last_error_message": self.metrics.last_error_message,
                "last_error_time": self.metrics.last_error_time.isoformat() if self.metrics.last_error_time else None
            },
            "channel": self.channel.get_metrics(),
            "controller": self.controller.get_status(),
            "watcher": self.watcher.get_status() if self.watcher else None
        }

    async def __aenter__(self):
        """Async context manager entry"""
        await self.activate()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.deactivate()
