"""
Unit tests for the workspace folder model, console output and prompts.
"""

import io
import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest
from rich.console import Console

from core.models.config import NamedSyncGroup
from core.sync.lifecycle import SyncItem
from workspace_filesync.output import ConsoleOutputChannel, ConsoleStatusIndicator
from workspace_filesync.prompts import ConsoleChoicePrompt, ConsoleMultiSelectPrompt, parse_indices
from workspace_filesync.workspace import Workspace


class TestWorkspace:
    """Test Workspace folder management"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir).resolve()
        self.one = self.root / "one"
        self.two = self.root / "two"
        self.one.mkdir()
        self.two.mkdir()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_folders_deduplicated_in_order(self):
        workspace = Workspace([self.two, self.one, self.two])
        assert workspace() == [self.two, self.one]
        assert len(workspace) == 2

    def test_workspace_file_relative_paths(self):
        workspace_file = self.root / "team.workspace.json"
        workspace_file.write_text(json.dumps({"folders": [{"path": "one"}, str(self.two), {"name": "x"}]}))

        workspace = Workspace.from_file(workspace_file)

        assert workspace.folders == [self.one, self.two]
        assert workspace.workspace_file == workspace_file

    def test_unreadable_workspace_file(self):
        workspace_file = self.root / "broken.json"
        workspace_file.write_text("[")
        assert Workspace.read_workspace_file(workspace_file) == []

    def test_add_and_remove_notify_listeners(self):
        listener = Mock()
        workspace = Workspace([self.one])
        workspace.add_listener(listener)

        assert workspace.add_folder(self.two) is True
        assert workspace.add_folder(self.two) is False
        assert workspace.remove_folder(self.one) is True
        assert workspace.remove_folder(self.one) is False

        assert listener.call_count == 2
        assert workspace.folders == [self.two]

    def test_failing_listener_does_not_break_others(self):
        second = Mock()
        workspace = Workspace([self.one])
        workspace.add_listener(Mock(side_effect=RuntimeError("boom")))
        workspace.add_listener(second)

        workspace.add_folder(self.two)

        second.assert_called_once_with()

    def test_refresh_keeps_explicit_folders(self):
        """Test a workspace file refresh keeps folders given explicitly"""
        workspace_file = self.root / "team.workspace.json"
        workspace_file.write_text(json.dumps({"folders": [{"path": "one"}]}))
        workspace = Workspace([self.two], workspace_file=workspace_file)
        assert workspace.folders == [self.two, self.one]

        workspace_file.write_text(json.dumps({"folders": []}))

        assert workspace.refresh() is True
        assert workspace.folders == [self.two]
        assert workspace.refresh() is False

    def test_refresh_without_file(self):
        assert Workspace([self.one]).refresh() is False

    def test_set_folders_without_notify(self):
        listener = Mock()
        workspace = Workspace([self.one])
        workspace.add_listener(listener)

        assert workspace.set_folders([self.two], notify=False) is True
        listener.assert_not_called()


class TestConsoleOutput:
    """Test console log sink and status indicator"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.buffer = io.StringIO()
        self.console = Console(file=self.buffer, width=200)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_lines_printed_verbatim(self):
        """Test markup-like text is not interpreted"""
        channel = ConsoleOutputChannel(self.console)
        channel.append_line("[2024-01-01 00:00:00] copied [bold]x[/bold]")

        assert "[bold]x[/bold]" in self.buffer.getvalue()
        assert channel.lines == ["[2024-01-01 00:00:00] copied [bold]x[/bold]"]

    def test_history_is_bounded(self):
        channel = ConsoleOutputChannel(self.console, history_size=2)
        for index in range(4):
            channel.append_line(f"line {index}")
        assert channel.lines == ["line 2", "line 3"]

    def test_log_file_appended(self):
        log_file = Path(self.temp_dir) / "nested" / "fsync.log"
        channel = ConsoleOutputChannel(self.console, log_file=log_file)
        channel.append_line("first")
        channel.append_line("second")
        channel.close()

        assert log_file.read_text(encoding="utf-8") == "first\nsecond\n"

    def test_status_indicator_render(self):
        indicator = ConsoleStatusIndicator(self.console)
        indicator.text = "FileSync: started"

        indicator.render()
        assert self.buffer.getvalue() == ""

        indicator.show()
        indicator.render()
        assert "FileSync: started" in self.buffer.getvalue()


def make_items(count):
    group = NamedSyncGroup.model_validate({
        "name": "g",
        "sync": [{"src": f"/srv/s{index}", "dest": f"/out/s{index}", "active": index == 0} for index in range(count)]
    })
    return [
        SyncItem(
            label=definition.label(group.name),
            picked=definition.active,
            entry_path=Path("/ws/fsconfig.json"),
            group=group,
            definition=definition
        )
        for definition in group.sync_definitions
    ]


def scripted_input(*answers):
    pending = list(answers)

    def input_func(prompt):
        if not pending:
            raise EOFError
        return pending.pop(0)

    return input_func


class TestParseIndices:
    def test_numbers_and_ranges(self):
        assert parse_indices("1 3, 5-6", 6) == [0, 2, 4, 5]

    @pytest.mark.parametrize("text", ["0", "7", "a", "4-2", "1-"])
    def test_invalid_input(self, text):
        with pytest.raises(ValueError):
            parse_indices(text, 6)


class TestConsolePrompts:
    """Test console multi-select and choice prompts"""

    def setup_method(self):
        self.console = Console(file=io.StringIO(), width=200)

    @pytest.mark.asyncio
    async def test_confirm_preselected(self):
        items = make_items(3)
        prompt = ConsoleMultiSelectPrompt(self.console, scripted_input(""))

        assert await prompt.pick_many(items, "Select") == [items[0]]

    @pytest.mark.asyncio
    async def test_toggle_numbers(self):
        items = make_items(3)
        prompt = ConsoleMultiSelectPrompt(self.console, scripted_input("1 3", ""))

        assert await prompt.pick_many(items, "Select") == [items[2]]

    @pytest.mark.asyncio
    async def test_all_and_none(self):
        items = make_items(3)

        assert await ConsoleMultiSelectPrompt(self.console, scripted_input("a", "")).pick_many(items, "S") == items
        assert await ConsoleMultiSelectPrompt(self.console, scripted_input("n", "")).pick_many(items, "S") == []

    @pytest.mark.asyncio
    async def test_invalid_input_changes_nothing(self):
        items = make_items(3)
        prompt = ConsoleMultiSelectPrompt(self.console, scripted_input("2 9", ""))

        assert await prompt.pick_many(items, "Select") == [items[0]]
        assert "out of range" in self.console.file.getvalue()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answers", [("q",), ("cancel",), ()])
    async def test_cancel(self, answers):
        prompt = ConsoleMultiSelectPrompt(self.console, scripted_input(*answers))
        assert await prompt.pick_many(make_items(2), "Select") is None

    @pytest.mark.asyncio
    async def test_no_items(self):
        prompt = ConsoleMultiSelectPrompt(self.console, scripted_input(""))
        assert await prompt.pick_many([], "Select") is None

    @pytest.mark.asyncio
    async def test_pick_one(self):
        options = [Path("/ws/a"), Path("/ws/b")]
        prompt = ConsoleChoicePrompt(self.console, scripted_input("1 2", "2"))

        assert await prompt.pick_one(options, "Where") == Path("/ws/b")
        assert "exactly one" in self.console.file.getvalue()

    @pytest.mark.asyncio
    async def test_pick_one_cancel(self):
        prompt = ConsoleChoicePrompt(self.console, scripted_input(""))
        assert await prompt.pick_one([Path("/ws/a")], "Where") is None
