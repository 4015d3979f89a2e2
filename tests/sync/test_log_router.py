"""
Tests for log formatting and the LogRouter fan-in.
"""

from datetime import datetime
from pathlib import Path

import pytest

from core.errors import TaskStartError
from core.models.config import WorkspaceSettings
from core.sync.router import (
    CONFIG_CHANGE,
    FSYNC,
    LogRouter,
    format_log_message,
    format_path,
)

from tests.fixtures.sync_fakes import FakeStatusIndicator, RecordingSink

FIXED_TIME = datetime(2024, 3, 1, 12, 30, 45)


class TestFormatLogMessage:
    """Test pure log formatting"""

    def test_date_format(self):
        message = format_log_message(FSYNC, "start", {"src": "/a", "dest": "/b"}, now=FIXED_TIME)

        assert message.date == "2024-03-01 12:30:45"
        assert message.line == "[2024-03-01 12:30:45] started /a -> /b"

    def test_config_change_actions(self):
        path = Path("/ws/fsconfig.json")

        assert format_log_message(CONFIG_CHANGE, "delete", {"path": path}).msg == "removed /ws/fsconfig.json"
        assert format_log_message(CONFIG_CHANGE, "discover", {"count": 3}).msg == "found 3 config file(s)"
        loaded = format_log_message(CONFIG_CHANGE, "load", {"path": path, "groups": 2, "running": 1}).msg
        assert loaded == "loaded /ws/fsconfig.json (2 group(s), 1 running)"

    def test_config_load_error(self):
        msg = format_log_message(
            CONFIG_CHANGE, "ConfigLoadError", {"path": "/ws/fsconfig.json", "reason": "invalid JSON"}
        ).msg

        assert msg == "failed to load /ws/fsconfig.json: invalid JSON"

    def test_task_error_uses_exception_text(self):
        error = TaskStartError([(None, RuntimeError("boom"))], "web")
        msg = format_log_message(CONFIG_CHANGE, "TaskStartError", {"error": error}).msg

        assert msg.startswith("[web] failed to start 1 sync task(s)")
        assert "boom" in msg

    def test_settings_model_is_summarized(self):
        msg = format_log_message(CONFIG_CHANGE, "update", WorkspaceSettings(showStatusBarInfo=False)).msg
        assert msg == "settings updated (showStatusBarInfo=False)"

    def test_unknown_action_falls_back(self):
        assert format_log_message(FSYNC, "scan", {"files": 4}).msg == "fsync scan: files=4"
        assert format_log_message(FSYNC, "idle").msg == "fsync idle"
        assert format_log_message("custom", "note", "plain text").msg == "custom note: plain text"

    def test_home_directory_collapsed(self):
        assert format_path(Path.home() / "proj" / "fsconfig.json") == str(Path("~") / "proj" / "fsconfig.json")
        assert format_path(None) == "<none>"


class TestLogRouter:
    """Test LogRouter ordering and status projection"""

    def setup_method(self):
        self.sink = RecordingSink()
        self.indicator = FakeStatusIndicator()
        self.router = LogRouter(self.sink, self.indicator, clock=lambda: FIXED_TIME)

    def test_lines_in_record_order(self):
        """Test both origins share one ordered stream"""
        self.router.record(CONFIG_CHANGE, "discover", {"count": 1})
        self.router.record(FSYNC, "start", {"src": "/a", "dest": "/b"})
        self.router.record(CONFIG_CHANGE, "load", {"path": "/ws/fsconfig.json", "groups": 1, "running": 1})

        assert [line.split("] ", 1)[1] for line in self.sink.lines] == [
            "found 1 config file(s)",
            "started /a -> /b",
            "loaded /ws/fsconfig.json (1 group(s), 1 running)",
        ]

    def test_status_projection_tracks_last_event(self):
        self.router.record(FSYNC, "copy", {"src": "/a/x", "dest": "/b/x"})
        message = self.router.record(FSYNC, "delete", {"dest": "/b/y"})

        assert self.router.status.last_log_line == message.msg == "deleted /b/y"
        assert self.router.status.timestamp == FIXED_TIME
        assert self.indicator.text == "FileSync: deleted /b/y"

    def test_without_status_indicator(self):
        router = LogRouter(self.sink)
        router.record(FSYNC, "stop", {"src": "/a", "dest": "/b"})
        assert self.sink.lines[-1].endswith("stopped /a -> /b")

    def test_get_status(self):
        self.router.record(FSYNC, "start", {"src": "/a", "dest": "/b"})
        status = self.router.get_status()

        assert status["records"] == 1
        assert status["last_log_line"] == "started /a -> /b"
        assert status["timestamp"] == FIXED_TIME.isoformat()

    def test_errors_logged_as_warnings(self, caplog):
        with caplog.at_level("WARNING", logger="core.sync.router"):
            self.router.record(FSYNC, "error", {"src": "/a", "error": "denied"})

        assert any("error syncing /a: denied" in record.getMessage() for record in caplog.records)

    @pytest.mark.parametrize("action", ["start", "stop", "copy"])
    def test_fsync_actions_render_paths(self, action):
        message = self.router.record(FSYNC, action, {"src": "/src/f", "dest": "/dst/f"})
        assert "/src/f -> /dst/f" in message.msg
