"""
Orchestrator Event Models.

Defines the event kinds, operator commands, and the event data structure that
every external source (file watcher, workspace, settings, commands) sends
into the orchestrator's single event channel.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
import uuid


class EventKind(Enum):
    """Kinds of events the orchestrator dispatches"""
    CONFIG_CREATED = "config_created"         # fsconfig.json appeared
    CONFIG_CHANGED = "config_changed"         # fsconfig.json modified (or discovered)
    CONFIG_DELETED = "config_deleted"         # fsconfig.json removed
    WORKSPACE_CHANGED = "workspace_changed"   # workspace folders added/removed
    SETTINGS_CHANGED = "settings_changed"     # settings file modified
    COMMAND = "command"                       # operator command


class Command(Enum):
    """Operator commands. Names are stable and argument-free."""
    CREATE_CONFIG_FILE = "createConfigFile"
    TOGGLE_SYNCS = "toggleSyncs"
    START_ALL_SYNCS = "startAllSyncs"
    STOP_ALL_SYNCS = "stopAllSyncs"


FILE_EVENT_KINDS = {EventKind.CONFIG_CREATED, EventKind.CONFIG_CHANGED, EventKind.CONFIG_DELETED}


class OrchestratorEvent(BaseModel):
    """
    One unit of work for the orchestrator's dispatch loop.

    Config file events carry the absolute path of the file; command events
    carry the command.
    """

    # Event identification
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: EventKind

    # Payload
    file_path: Optional[Path] = None
    command: Optional[Command] = None

    # Timing
    timestamp: datetime = Field(default_factory=datetime.now)

    # Origin of the event (watcher, discovery, cli, ...)
    source: str = "unknown"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('file_path')
    @classmethod
    def validate_file_path(cls, v: Optional[Path]) -> Optional[Path]:
        """Ensure file path is absolute"""
        if v is not None and not v.is_absolute():
            raise ValueError('File path must be absolute')
        return v

    @model_validator(mode='after')
    def validate_payload(self) -> 'OrchestratorEvent':
        """Ensure each kind carries the payload it needs"""
        if self.kind in FILE_EVENT_KINDS and self.file_path is None:
            raise ValueError(f'{self.kind.value} events require a file_path')
        if self.kind == EventKind.COMMAND and self.command is None:
            raise ValueError('command events require a command')
        return self

    @classmethod
    def create_config_created(cls, file_path: Path, **kwargs) -> 'OrchestratorEvent':
        """Create a config file creation event"""
        return cls(kind=EventKind.CONFIG_CREATED, file_path=file_path, **kwargs)

    @classmethod
    def create_config_changed(cls, file_path: Path, **kwargs) -> 'OrchestratorEvent':
        """Create a config file change event"""
        return cls(kind=EventKind.CONFIG_CHANGED, file_path=file_path, **kwargs)

    @classmethod
    def create_config_deleted(cls, file_path: Path, **kwargs) -> 'OrchestratorEvent':
        """Create a config file deletion event"""
        return cls(kind=EventKind.CONFIG_DELETED, file_path=file_path, **kwargs)

    @classmethod
    def create_workspace_changed(cls, **kwargs) -> 'OrchestratorEvent':
        """Create a workspace-folder change event"""
        return cls(kind=EventKind.WORKSPACE_CHANGED, **kwargs)

    @classmethod
    def create_settings_changed(cls, **kwargs) -> 'OrchestratorEvent':
        """Create a settings change event"""
        return cls(kind=EventKind.SETTINGS_CHANGED, **kwargs)

    @classmethod
    def create_command(cls, command: Command, **kwargs) -> 'OrchestratorEvent':
        """Create an operator command event"""
        return cls(kind=EventKind.COMMAND, command=Command(command), **kwargs)

    @property
    def is_file_event(self) -> bool:
        return self.kind in FILE_EVENT_KINDS

    @property
    def age_seconds(self) -> float:
        """Get event age in seconds"""
        return (datetime.now() - self.timestamp).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization"""
        return {
            "event_id": self.event_id,
            "kind": self.kind.value,
            "file_path": str(self.file_path) if self.file_path else None,
            "command": self.command.value if self.command else None,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "age_seconds": self.age_seconds
        }

    def __str__(self) -> str:
        """String representation for logging"""
        if self.file_path is not None:
            return f"{self.kind.value.upper()}: {self.file_path}"
        if self.command is not None:
            return f"COMMAND: {self.command.value}"
        return self.kind.value.upper()
