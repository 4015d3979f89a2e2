"""
Configuration models for workspace-filesync.

Handles the fsconfig.json schema (sync groups and sync definitions),
workspace-level settings, and process-wide settings.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigLoadError


class SyncDefinition(BaseModel):
    """One source -> destination synchronization rule"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        populate_by_name=True
    )

    name: Optional[str] = None
    source_path: Path = Field(alias="src")
    destination_path: Path = Field(alias="dest")

    # Only field the controller mutates after load
    active: bool = False

    # Mirror options
    include: List[str] = Field(default_factory=lambda: ["*"])
    exclude: List[str] = Field(default_factory=list)
    recursive: bool = True
    copy_on_start: bool = Field(default=True, alias="copyOnStart")

    @field_validator('source_path', 'destination_path')
    @classmethod
    def resolve_path(cls, v: Path, info: ValidationInfo) -> Path:
        """Resolve paths relative to the directory holding the config file"""
        v = v.expanduser()
        base_dir = (info.context or {}).get("base_dir")
        if not v.is_absolute() and base_dir is not None:
            v = Path(base_dir) / v
        return v.resolve()

    @field_validator('include', 'exclude')
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        """Drop blank glob patterns"""
        return [pattern.strip() for pattern in v if pattern and pattern.strip()]

    def label(self, group_name: str) -> str:
        """Display label used by the toggle picker"""
        from core.sync.router import format_path
        return f"{group_name} - {format_path(self.source_path)}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk JSON shape"""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data['src'] = str(data['src'])
        data['dest'] = str(data['dest'])
        return data


class NamedSyncGroup(BaseModel):
    """A named collection of sync definitions ("config" in fsconfig.json)"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True
    )

    name: str = Field(..., min_length=1)
    sync_definitions: List[SyncDefinition] = Field(alias="sync", min_length=1)

    # Owned Sync Task Handle; never serialized
    _task_handle: Any = PrivateAttr(default=None)

    @field_validator('sync_definitions', mode='before')
    @classmethod
    def normalize_sync(cls, v: Any) -> Any:
        """Accept either a single sync object or an array of them"""
        if isinstance(v, dict):
            return [v]
        return v

    @property
    def task_handle(self) -> Any:
        """The Sync Task Handle owned by this group, if attached"""
        return self._task_handle

    def attach_handle(self, handle: Any) -> None:
        """Attach the group's Sync Task Handle (one per group)"""
        if self._task_handle is not None and handle is not None:
            raise ValueError(f"Group '{self.name}' already owns a task handle")
        self._task_handle = handle

    def detach_handle(self) -> Any:
        """Detach and return the owned handle"""
        handle, self._task_handle = self._task_handle, None
        return handle


class SyncConfigFile(BaseModel):
    """Parsed contents of one fsconfig.json file"""
    model_config = ConfigDict(populate_by_name=True)

    configs: List[NamedSyncGroup] = Field(...)

    @classmethod
    def parse(cls, text: str, path: Path) -> 'SyncConfigFile':
        """
        Parse and validate raw file content.

        Args:
            text: Raw JSON content of the file
            path: Path of the file, used for relative paths and errors

        Raises:
            ConfigLoadError: If the content is not valid JSON or fails validation
        """
        path = Path(path)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigLoadError(path, "top-level value must be an object")

        try:
            return cls.model_validate(data, context={"base_dir": path.parent})
        except ValidationError as e:
            raise ConfigLoadError(path, f"schema error: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk JSON shape"""
        return {
            "configs": [
                {
                    "name": group.name,
                    "sync": [definition.to_dict() for definition in group.sync_definitions]
                }
                for group in self.configs
            ]
        }


class WorkspaceSettings(BaseModel):
    """Operator-facing settings, re-read on every settings change"""
    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore"
    )

    show_status_bar_info: bool = Field(default=True, alias="showStatusBarInfo")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return self.model_dump(by_alias=True)


class GlobalSettings(BaseSettings):
    """Process-wide settings with environment variable support"""
    model_config = SettingsConfigDict(
        env_prefix="FILESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Discovery
    config_file_name: str = "fsconfig.json"
    config_glob: str = "**/fsconfig.json"

    # Watcher
    debounce_ms: int = Field(default=500, ge=0, le=10000)

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_file: Optional[Path] = None
