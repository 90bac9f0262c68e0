"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from ctxvault.config import DEFAULT_CONFIG, Config
from ctxvault.exceptions import ConfigError


def test_defaults_without_file(temp_dir):
    config = Config(config_path=temp_dir / "absent.toml", use_env=False)

    assert config.get("indexer", "max_file_size") == 1048576
    assert config.get("indexer", "max_chunk_size") == 2000
    assert config.get("jobs", "max_logs") == 50
    assert config.get("search", "default_top_k") == 3
    assert config.get("server", "port") == 3000
    assert config.get("missing", "key", default="x") == "x"


def test_toml_is_merged_over_defaults(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text('[indexer]\nmax_chunk_size = 500\n\n[server]\nhost = "0.0.0.0"\n')

    config = Config(config_path=path, use_env=False)

    assert config.get("indexer", "max_chunk_size") == 500
    assert config.get("indexer", "max_file_size") == 1048576
    assert config.server["host"] == "0.0.0.0"


def test_broken_toml_uses_defaults(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text("[indexer\nmax_chunk_size = ")

    config = Config(config_path=path, use_env=False)

    assert config.get("indexer", "max_chunk_size") == 2000


def test_environment_overrides(temp_dir, monkeypatch):
    monkeypatch.setenv("CTXVAULT_PORT", "8123")
    monkeypatch.setenv("DEFAULT_PROJECT_ID", "env-proj")
    monkeypatch.setenv("CTXVAULT_DB_PATH", str(temp_dir / "env.lance"))

    config = Config(config_path=temp_dir / "absent.toml")

    assert config.get("server", "port") == 8123
    assert config.get("mcp", "default_project_id") == "env-proj"
    assert config.db_path == temp_dir / "env.lance"


def test_db_path_defaults_to_home(temp_dir, monkeypatch):
    monkeypatch.setenv("CTXVAULT_HOME", str(temp_dir / "home"))
    monkeypatch.delenv("CTXVAULT_DB_PATH", raising=False)

    config = Config()

    assert config.config_path == temp_dir / "home" / "config.toml"
    assert config.db_path == Path(temp_dir / "home" / "data.lance")


def test_set_does_not_leak_into_defaults(temp_dir):
    config = Config(config_path=temp_dir / "absent.toml", use_env=False)
    config.set("indexer", "extra_exclude", value=["generated/"])
    config.get("indexer", "extra_exclude").append("more/")

    assert DEFAULT_CONFIG["indexer"]["extra_exclude"] == []
    assert Config(config_path=temp_dir / "absent.toml", use_env=False).get("indexer", "extra_exclude") == []


def test_invalid_port_override(temp_dir, monkeypatch):
    monkeypatch.setenv("CTXVAULT_PORT", "not-a-port")

    with pytest.raises(ConfigError):
        Config(config_path=temp_dir / "absent.toml")
