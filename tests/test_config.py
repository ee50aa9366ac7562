"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from kudos.config import load_config


class TestLoadConfig:
    def test_reads_required_and_optional_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "program_name: Northside Martial Arts\n"
            "api_port: 8080\n"
            "admin_role: owner\n"
            "timezone: America/Chicago\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.program_name == "Northside Martial Arts"
        assert cfg.api_port == 8080
        assert cfg.admin_role == "owner"
        assert cfg.timezone == "America/Chicago"

    def test_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("program_name: Dojo\napi_port: '9000'\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.api_port == 9000
        assert cfg.admin_role == "admin"
        assert cfg.timezone == "UTC"

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("program_name: Env Dojo\napi_port: 1\n", encoding="utf-8")
        monkeypatch.setenv("KUDOS_CONFIG", str(path))
        assert load_config().program_name == "Env Dojo"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "absent.yaml")

    def test_missing_required_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("program_name: Dojo\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)
