"""
Error taxonomy for the synchronization core.

All of these are non-fatal to the orchestrator: they are caught at the
handler boundary and routed to the operator log.
"""

from pathlib import Path
from typing import Any, List, Optional, Tuple


class FileSyncError(Exception):
    """Base class for all workspace-filesync errors"""


class ConfigLoadError(FileSyncError):
    """A configuration file could not be read or failed schema parsing"""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to load {self.path}: {reason}")


class _TaskError(FileSyncError):
    """Aggregated failures of one start/stop broadcast over sibling tasks"""

    verb = "process"

    def __init__(self, failures: List[Tuple[Any, BaseException]], group_name: Optional[str] = None):
        self.failures = failures
        self.group_name = group_name
        details = "; ".join(f"{_describe(definition)}: {error}" for definition, error in failures)
        prefix = f"[{group_name}] " if group_name else ""
        super().__init__(f"{prefix}failed to {self.verb} {len(failures)} sync task(s): {details}")


class TaskStartError(_TaskError):
    """One or more sync tasks failed to start"""
    verb = "start"


class TaskStopError(_TaskError):
    """One or more sync tasks failed to stop"""
    verb = "stop"


class PromptCancelled(FileSyncError):
    """The operator dismissed a selection prompt; treated as a no-op"""


def _describe(definition: Any) -> str:
    source = getattr(definition, "source_path", None)
    return str(source) if source is not None else repr(definition)
