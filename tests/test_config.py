"""Tests for settings persistence."""

import json

from lualink.config import Settings, load_settings, save_settings


class TestSettings:
    """Test settings loading."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        settings = load_settings(tmp_path / "missing.json")
        assert settings.port == 3000
        assert settings.primary_port == 9026
        assert settings.secondary_port == 9021
        assert settings.probe_timeout == 0.1
        assert settings.session_timeout == 30.0
        assert settings.header_delay == 0.1
        assert settings.scan_batch_size == 50
        assert settings.crash_payload == "elf_loader.lua"

    def test_file_overrides_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"session_timeout_ms": 5000, "scan_batch_size": 10}))
        settings = load_settings(path)
        assert settings.session_timeout == 5.0
        assert settings.scan_batch_size == 10
        assert settings.port == 3000

    def test_port_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        assert load_settings(tmp_path / "missing.json").port == 8080

    def test_invalid_json_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert load_settings(path) == Settings()

    def test_invalid_values_fall_back(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"scan_batch_size": 0}))
        assert load_settings(path).scan_batch_size == 50

    def test_save_and_reload(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        path = tmp_path / "nested" / "settings.json"
        assert save_settings(Settings(header_delay_ms=250), path)
        assert load_settings(path).header_delay_ms == 250
