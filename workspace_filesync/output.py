"""
Console log sink and status indicator.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, TextIO

from rich.console import Console
from rich.text import Text

logger = logging.getLogger(__name__)


class ConsoleOutputChannel:
    """
    Append-only operator log stream rendered on a rich console.

    Lines are also appended to ``log_file`` when given, and the most recent
    ones are kept in memory for the ``status`` view.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        log_file: Optional[Path] = None,
        history_size: int = 200
    ):
        self.console = console or Console()
        self.log_file = Path(log_file).expanduser() if log_file else None
        self._history: Deque[str] = deque(maxlen=history_size)
        self._file: Optional[TextIO] = None

    def append_line(self, line: str) -> None:
        self._history.append(line)
        self.console.print(Text(line), highlight=False)

        if self.log_file is not None:
            try:
                if self._file is None:
                    self.log_file.parent.mkdir(parents=True, exist_ok=True)
                    self._file = open(self.log_file, 'a', encoding='utf-8')
                self._file.write(line + "\n")
                self._file.flush()
            except OSError as e:
                logger.error(f"Failed to write to log file {self.log_file}: {e}")
                self.log_file = None

    @property
    def lines(self) -> List[str]:
        """Most recent log lines, oldest first"""
        return list(self._history)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class ConsoleStatusIndicator:
    """Single-line status display; its text follows the latest log event"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.text = ""
        self.visible = False

    def show(self) -> None:
        self.visible = True

    def hide(self) -> None:
        self.visible = False

    def render(self) -> None:
        """Print the status line if it is visible"""
        if self.visible and self.text:
            self.console.print(Text(self.text, style="bold cyan"), highlight=False)
