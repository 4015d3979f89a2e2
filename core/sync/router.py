"""
Event & Log Router.

Formats log events coming from lifecycle actions ("configChange") and from
running sync tasks ("fsync") into one ordered operator log stream and a
condensed one-line status projection.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, Union

logger = logging.getLogger(__name__)

# (type, action, data)
LogCallback = Callable[[str, str, Any], None]

CONFIG_CHANGE = "configChange"
FSYNC = "fsync"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
STATUS_PREFIX = "FileSync"


class LogSink(Protocol):
    """Append-only operator log stream"""

    def append_line(self, line: str) -> None:
        ...


class StatusIndicator(Protocol):
    """Persistent single-line status display"""

    text: str

    def show(self) -> None:
        ...

    def hide(self) -> None:
        ...


@dataclass(frozen=True)
class FormattedMessage:
    """A formatted log event ready for display"""
    date: str
    msg: str

    @property
    def line(self) -> str:
        """Log stream line: ``[date] msg``"""
        return f"[{self.date}] {self.msg}"


@dataclass
class StatusProjection:
    """Condensed view of the most recent log event"""
    last_log_line: str = ""
    timestamp: Optional[datetime] = None


def format_path(path: Union[str, Path, None]) -> str:
    """Shorten a path for display, collapsing the home directory to ``~``"""
    if path is None:
        return "<none>"
    path = Path(path)
    try:
        return str(Path("~") / path.relative_to(Path.home()))
    except ValueError:
        return str(path)


def _get(data: Any, key: str, default: Any = None) -> Any:
    if isinstance(data, dict):
        return data.get(key, default)
    return getattr(data, key, default)


def _summarize(data: Any) -> str:
    if data is None:
        return ""
    if hasattr(data, "to_dict"):
        data = data.to_dict()
    if isinstance(data, dict):
        return ", ".join(f"{key}={value}" for key, value in data.items())
    return str(data)


_FORMATTERS: Dict[Tuple[str, str], Callable[[Any], str]] = {
    (CONFIG_CHANGE, "update"): lambda d: f"settings updated ({_summarize(d)})",
    (CONFIG_CHANGE, "load"): lambda d: (
        f"loaded {format_path(_get(d, 'path'))} "
        f"({_get(d, 'groups', 0)} group(s), {_get(d, 'running', 0)} running)"
    ),
    (CONFIG_CHANGE, "delete"): lambda d: f"removed {format_path(_get(d, 'path'))}",
    (CONFIG_CHANGE, "create"): lambda d: f"created {format_path(_get(d, 'path'))}",
    (CONFIG_CHANGE, "exists"): lambda d: f"{format_path(_get(d, 'path'))} already exists",
    (CONFIG_CHANGE, "discover"): lambda d: f"found {_get(d, 'count', 0)} config file(s)",
    (CONFIG_CHANGE, "ConfigLoadError"): lambda d: (
        f"failed to load {format_path(_get(d, 'path'))}: {_get(d, 'reason', d)}"
    ),
    (CONFIG_CHANGE, "TaskStartError"): lambda d: str(_get(d, 'error', d)),
    (CONFIG_CHANGE, "TaskStopError"): lambda d: str(_get(d, 'error', d)),
    (FSYNC, "start"): lambda d: (
        f"started {format_path(_get(d, 'src'))} -> {format_path(_get(d, 'dest'))}"
    ),
    (FSYNC, "stop"): lambda d: (
        f"stopped {format_path(_get(d, 'src'))} -> {format_path(_get(d, 'dest'))}"
    ),
    (FSYNC, "copy"): lambda d: (
        f"copied {format_path(_get(d, 'src'))} -> {format_path(_get(d, 'dest'))}"
    ),
    (FSYNC, "delete"): lambda d: f"deleted {format_path(_get(d, 'dest'))}",
    (FSYNC, "error"): lambda d: (
        f"error syncing {format_path(_get(d, 'src'))}: {_get(d, 'error', '')}"
    ),
}


def format_log_message(
    log_type: str,
    action: str,
    data: Any = None,
    now: Optional[datetime] = None
) -> FormattedMessage:
    """
    Format a log event for display. Pure: no side effects.

    Args:
        log_type: Event origin ("configChange" or "fsync")
        action: What happened
        data: Event payload (dict, model, or plain value)
        now: Timestamp to use (defaults to the current time)

    Returns:
        FormattedMessage with display date and message
    """
    date = (now or datetime.now()).strftime(DATE_FORMAT)
    formatter = _FORMATTERS.get((log_type, action))
    if formatter is not None:
        try:
            return FormattedMessage(date=date, msg=formatter(data))
        except Exception as e:
            logger.debug(f"Formatter for {log_type}/{action} failed: {e}")

    summary = _summarize(data)
    msg = f"{log_type} {action}: {summary}" if summary else f"{log_type} {action}"
    return FormattedMessage(date=date, msg=msg)


class LogRouter:
    """
    Single ordered fan-in for every log event.

    ``record`` is synchronous and unbuffered, so lines reach the sink in the
    order ``record`` is called.
    """

    def __init__(
        self,
        sink: LogSink,
        status_indicator: Optional[StatusIndicator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.sink = sink
        self.status_indicator = status_indicator
        self._clock = clock
        self._status = StatusProjection()
        self._record_count = 0

    def record(self, log_type: str, action: str, data: Any = None) -> FormattedMessage:
        """
        Format an event, append it to the sink and update the status projection.

        Args:
            log_type: Event origin ("configChange" or "fsync")
            action: What happened
            data: Event payload

        Returns:
            The formatted message
        """
        now = self._clock()
        message = format_log_message(log_type, action, data, now=now)

        self.sink.append_line(message.line)
        self._status = StatusProjection(last_log_line=message.msg, timestamp=now)
        self._record_count += 1

        if self.status_indicator is not None:
            self.status_indicator.text = f"{STATUS_PREFIX}: {message.msg}"

        level = logging.WARNING if action.endswith("Error") or action == "error" else logging.INFO
        logger.log(level, message.line)
        return message

    @property
    def status(self) -> StatusProjection:
        """Most recent status projection"""
        return self._status

    def get_status(self) -> Dict[str, Any]:
        """Get router status information"""
        return {
            "records": self._record_count,
            "last_log_line": self._status.last_log_line,
            "timestamp": self._status.timestamp.isoformat() if self._status.timestamp else None
        }
