"""
Workspace FileSync - fsconfig.json driven file synchronization for multi-root workspaces.

Discovers fsconfig.json files in every workspace folder, keeps their sync
groups loaded as files change, and lets an operator start, stop and toggle
the syncs they describe.
"""

__version__ = "1.0.0"

from core.models.config import SyncDefinition, NamedSyncGroup, SyncConfigFile, WorkspaceSettings
from core.sync.engine import FileSyncOrchestrator

__all__ = [
    "SyncDefinition",
    "NamedSyncGroup",
    "SyncConfigFile",
    "WorkspaceSettings",
    "FileSyncOrchestrator",
    "__version__",
]
