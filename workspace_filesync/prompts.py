"""
Console prompts for the toggle picker and the folder picker.

Input is read off the event loop thread so other events keep being handled
while the operator is choosing.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Set, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from core.sync.lifecycle import SyncItem

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCEL_INPUTS = {"q", "quit", "cancel"}


def parse_indices(text: str, count: int) -> List[int]:
    """
    Parse 1-based numbers and ranges (``1 3 5-7``, commas allowed).

    Raises:
        ValueError: On anything that is not a valid number or range
    """
    indices = []
    for token in text.replace(",", " ").split():
        if "-" in token:
            start, _, end = token.partition("-")
            first, last = int(start), int(end)
            if first > last:
                raise ValueError(f"Invalid range: {token}")
            numbers = range(first, last + 1)
        else:
            numbers = [int(token)]
        for number in numbers:
            if not 1 <= number <= count:
                raise ValueError(f"{number} is out of range (1-{count})")
            indices.append(number - 1)
    return indices


class _ConsolePrompt:
    def __init__(self, console: Optional[Console] = None, input_func: Callable[[str], str] = input):
        self.console = console or Console()
        self.input_func = input_func

    async def _read(self, prompt: str) -> Optional[str]:
        """Read one line; None on end of input"""
        try:
            return (await asyncio.to_thread(self.input_func, prompt)).strip()
        except EOFError:
            return None


class ConsoleMultiSelectPrompt(_ConsolePrompt):
    """
    Numbered checklist. Numbers toggle items, ``a`` selects all, ``n`` clears,
    an empty line confirms, ``q`` cancels.
    """

    def _render(self, items: Sequence[SyncItem], selected: Set[int], placeholder: str) -> None:
        table = Table(title=placeholder)
        table.add_column("#", style="cyan", no_wrap=True)
        table.add_column("On", no_wrap=True)
        table.add_column("Sync", style="white")
        table.add_column("Destination", style="dim")
        for index, item in enumerate(items):
            mark = "[green]x[/green]" if index in selected else ""
            table.add_row(str(index + 1), mark, escape(item.label), escape(item.description))
        self.console.print(table)

    async def pick_many(self, items: Sequence[SyncItem], placeholder: str) -> Optional[List[SyncItem]]:
        if not items:
            self.console.print("[yellow]No syncs are configured[/yellow]")
            return None

        selected = {index for index, item in enumerate(items) if item.picked}
        while True:
            self._render(items, selected, placeholder)
            answer = await self._read("Toggle numbers, [a]ll, [n]one, Enter to confirm, [q] to cancel: ")
            if answer is None or answer.lower() in CANCEL_INPUTS:
                return None
            if answer == "":
                return [item for index, item in enumerate(items) if index in selected]
            if answer.lower() == "a":
                selected = set(range(len(items)))
                continue
            if answer.lower() == "n":
                selected = set()
                continue
            try:
                indices = parse_indices(answer, len(items))
            except ValueError as e:
                self.console.print(f"[red]{escape(str(e))}[/red]")
                continue
            for index in indices:
                selected ^= {index}


class ConsoleChoicePrompt(_ConsolePrompt):
    """Numbered single choice. An empty line or ``q`` cancels."""

    async def pick_one(self, options: Sequence[T], placeholder: str) -> Optional[T]:
        if not options:
            return None

        table = Table(title=placeholder)
        table.add_column("#", style="cyan", no_wrap=True)
        table.add_column("Option", style="white")
        for index, option in enumerate(options):
            table.add_row(str(index + 1), escape(str(option)))

        while True:
            self.console.print(table)
            answer = await self._read("Number, or Enter to cancel: ")
            if answer is None or answer == "" or answer.lower() in CANCEL_INPUTS:
                return None
            try:
                indices = parse_indices(answer, len(options))
            except ValueError as e:
                self.console.print(f"[red]{escape(str(e))}[/red]")
                continue
            if len(indices) != 1:
                self.console.print("[red]Pick exactly one option[/red]")
                continue
            return options[indices[0]]
