"""
Core data models for workspace-filesync

Pydantic models for the fsconfig.json schema and settings.
"""

from .config import (
    SyncDefinition,
    NamedSyncGroup,
    SyncConfigFile,
    WorkspaceSettings,
    GlobalSettings,
)

__all__ = [
    # Config file schema
    "SyncDefinition",
    "NamedSyncGroup",
    "SyncConfigFile",

    # Settings
    "WorkspaceSettings",
    "GlobalSettings"
]
