"""
Config-file driven synchronization orchestration.

Key Components:
- OrchestratorEvent / EventChannel: the single event stream
- SyncTaskHandle: start/stop of the sync tasks of one group
- ConfigRegistry: config file path -> loaded entry
- LifecycleController: reactions to config, workspace and settings events and commands
- LogRouter: operator log stream and status projection
- ConfigDiscovery / ConfigFileWatcher: where config events come from
- MirrorSyncTask: default whole-file sync engine
- FileSyncOrchestrator: central coordinator
"""

from ..errors import ConfigLoadError, FileSyncError, PromptCancelled, TaskStartError, TaskStopError
from .events import Command, EventKind, OrchestratorEvent
from .queue import EventChannel
from .router import LogRouter, FormattedMessage, StatusProjection, format_log_message, format_path
from .task import SyncTask, SyncTaskHandle
from .registry import ConfigEntry, ConfigRegistry
from .discovery import ConfigDiscovery
from .lifecycle import LifecycleController, SyncItem
from .watcher import ConfigFileWatcher
from .mirror import MirrorSyncTask, mirror_task_factory
from .engine import FileSyncOrchestrator

__all__ = [
    "FileSyncError",
    "ConfigLoadError",
    "TaskStartError",
    "TaskStopError",
    "PromptCancelled",
    "Command",
    "EventKind",
    "OrchestratorEvent",
    "EventChannel",
    "LogRouter",
    "FormattedMessage",
    "StatusProjection",
    "format_log_message",
    "format_path",
    "SyncTask",
    "SyncTaskHandle",
    "ConfigEntry",
    "ConfigRegistry",
    "ConfigDiscovery",
    "LifecycleController",
    "SyncItem",
    "ConfigFileWatcher",
    "MirrorSyncTask",
    "mirror_task_factory",
    "FileSyncOrchestrator",
]
