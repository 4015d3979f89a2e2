"""
Unit tests for settings loader functionality.

Tests settings file loading, environment overrides and the default config template.
"""

import json
import pytest
import tempfile
from pathlib import Path

from config.loader import SettingsLoader
from config.defaults import DEFAULT_SETTINGS, ENV_VAR_MAPPING
from core.models.config import SyncConfigFile, WorkspaceSettings


class TestSettingsLoader:
    """Test SettingsLoader functionality"""

    def setup_method(self):
        """Setup test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)

    def teardown_method(self):
        """Cleanup test environment"""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @pytest.fixture(autouse=True)
    def clear_env(self, monkeypatch):
        for env_var in ENV_VAR_MAPPING:
            monkeypatch.delenv(env_var, raising=False)

    def test_defaults_without_file(self):
        """Test defaults when no settings file is given"""
        settings = SettingsLoader().load_settings()

        assert isinstance(settings, WorkspaceSettings)
        assert settings.show_status_bar_info is DEFAULT_SETTINGS["showStatusBarInfo"]

    def test_top_level_settings_file(self):
        """Test settings at the top level of the file"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text(json.dumps({"showStatusBarInfo": False}))

        settings = SettingsLoader(settings_file).load_settings()

        assert settings.show_status_bar_info is False

    def test_section_settings_file(self):
        """Test settings under the filesync section"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text(json.dumps({
            "editor.fontSize": 12,
            "filesync": {"showStatusBarInfo": False}
        }))

        settings = SettingsLoader(settings_file).load_settings()

        assert settings.show_status_bar_info is False

    def test_loader_is_callable_provider(self):
        """Test the loader can be used directly as a settings provider"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text(json.dumps({"showStatusBarInfo": False}))
        loader = SettingsLoader(settings_file)

        assert loader().show_status_bar_info is False

        settings_file.write_text(json.dumps({"showStatusBarInfo": True}))
        assert loader().show_status_bar_info is True

    def test_invalid_json_falls_back_to_defaults(self):
        """Test an unparsable settings file"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text("{broken")

        settings = SettingsLoader(settings_file).load_settings()

        assert settings.show_status_bar_info is True

    def test_invalid_value_falls_back_to_defaults(self):
        """Test a settings value of the wrong type"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text(json.dumps({"showStatusBarInfo": "sometimes"}))

        settings = SettingsLoader(settings_file).load_settings()

        assert settings.show_status_bar_info is True

    def test_missing_file_uses_defaults(self):
        settings = SettingsLoader(self.temp_path / "absent.json").load_settings()
        assert settings.show_status_bar_info is True

    def test_environment_override(self, monkeypatch):
        """Test environment variables override the file"""
        settings_file = self.temp_path / "settings.json"
        settings_file.write_text(json.dumps({"showStatusBarInfo": True}))
        monkeypatch.setenv("FILESYNC_SHOW_STATUS_BAR_INFO", "off")

        settings = SettingsLoader(settings_file).load_settings()

        assert settings.show_status_bar_info is False

    def test_convert_env_value(self):
        """Test environment value conversion"""
        loader = SettingsLoader()

        assert loader._convert_env_value("true") is True
        assert loader._convert_env_value("No") is False
        assert loader._convert_env_value("42") == 42
        assert loader._convert_env_value("1.5") == 1.5
        assert loader._convert_env_value("text") == "text"

    def test_set_nested_value(self):
        """Test dot notation assignment"""
        loader = SettingsLoader()
        data = {}

        loader._set_nested_value(data, "filesync.showStatusBarInfo", "false")

        assert data == {"filesync": {"showStatusBarInfo": False}}


class TestDefaultConfigTemplate:
    """Test default fsconfig.json generation"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_template_substitutes_folder_name(self):
        """Test the group is named after the folder"""
        folder = self.temp_path / "my-project"
        folder.mkdir()

        template = SettingsLoader().build_config_template(folder)

        assert template["configs"][0]["name"] == "my-project"
        assert template["configs"][0]["sync"][0]["active"] is False

    def test_write_default_config_file(self):
        """Test the written file parses as a valid config"""
        written = SettingsLoader().write_default_config_file(self.temp_path)

        assert written == (self.temp_path / "fsconfig.json").resolve()
        config = SyncConfigFile.parse(written.read_text(), written)
        assert len(config.configs) == 1
        assert config.configs[0].sync_definitions[0].source_path == (self.temp_path / "src").resolve()

    def test_existing_file_not_overwritten(self):
        """Test an existing config file is left untouched"""
        existing = self.temp_path / "fsconfig.json"
        existing.write_text('{"configs": []}')

        result = SettingsLoader().write_default_config_file(self.temp_path)

        assert result is None
        assert existing.read_text() == '{"configs": []}'

    def test_overwrite_existing_file(self):
        existing = self.temp_path / "fsconfig.json"
        existing.write_text('{"configs": []}')

        result = SettingsLoader().write_default_config_file(self.temp_path, overwrite=True)

        assert result is not None
        assert "configs" in json.loads(existing.read_text())
        assert json.loads(existing.read_text())["configs"]

    def test_missing_folder_rejected(self):
        with pytest.raises(ValueError, match="does not exist"):
            SettingsLoader().write_default_config_file(self.temp_path / "nope")

    def test_custom_config_file_name(self):
        written = SettingsLoader(config_file_name="sync.json").write_default_config_file(self.temp_path)
        assert written.name == "sync.json"
