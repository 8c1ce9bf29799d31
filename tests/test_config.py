"""Tests for config module."""

import json
import time

import rig_architect.config as config


class TestEnvOverrides:
    def test_defaults(self):
        assert config.start_timeout() == config.CLAUDE_START_TIMEOUT
        assert config.settle_delay() == config.SHUTDOWN_NOTIFY_DELAY
        assert config.tmux_socket() is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("GT_START_TIMEOUT", "5")
        monkeypatch.setenv("GT_SETTLE_DELAY", "0")
        monkeypatch.setenv("GT_TMUX_SOCKET", "gt")
        assert config.start_timeout() == 5.0
        assert config.settle_delay() == 0.0
        assert config.tmux_socket() == "gt"

    def test_bad_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("GT_START_TIMEOUT", "soon")
        assert config.start_timeout() == config.CLAUDE_START_TIMEOUT


class TestTownSettings:
    def test_defaults_when_no_file(self, tmp_path):
        settings = config.load_town_settings(tmp_path)
        assert settings["default_agent"] == "claude"
        assert settings["role_agents"] == {}

    def test_reads_from_file(self, tmp_path):
        (tmp_path / "settings").mkdir()
        (tmp_path / "settings" / "config.json").write_text(json.dumps({"default_agent": "codex", "extra": 1}))
        settings = config.load_town_settings(tmp_path)
        assert settings["default_agent"] == "codex"
        assert settings["extra"] == 1
        assert settings["agents"] == {}

    def test_invalid_json_uses_defaults(self, tmp_path):
        (tmp_path / "settings").mkdir()
        (tmp_path / "settings" / "config.json").write_text("{oops")
        assert config.load_town_settings(tmp_path)["default_agent"] == "claude"

    def test_caching(self, tmp_path):
        (tmp_path / "settings").mkdir()
        (tmp_path / "settings" / "config.json").write_text(json.dumps({"default_agent": "codex"}))
        assert config.load_town_settings(tmp_path) is config.load_town_settings(tmp_path)

    def test_reloads_on_change(self, tmp_path):
        config_file = tmp_path / "settings" / "config.json"
        config_file.parent.mkdir()
        config_file.write_text(json.dumps({"default_agent": "codex"}))
        assert config.load_town_settings(tmp_path)["default_agent"] == "codex"
        time.sleep(0.05)
        config_file.write_text(json.dumps({"default_agent": "gemini"}))
        assert config.load_town_settings(tmp_path)["default_agent"] == "gemini"


class TestRigSettings:
    def test_defaults(self, tmp_path):
        settings = config.load_rig_settings(tmp_path)
        assert settings["agent"] is None
