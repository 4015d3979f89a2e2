"""
workspace-filesync core package

Discovery and lifecycle orchestration of fsconfig.json sync definitions.
"""

__version__ = "1.0.0"

from .models import SyncDefinition, NamedSyncGroup, SyncConfigFile, WorkspaceSettings, GlobalSettings

__all__ = [
    "SyncDefinition",
    "NamedSyncGroup",
    "SyncConfigFile",
    "WorkspaceSettings",
    "GlobalSettings"
]
