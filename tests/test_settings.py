"""Tests for ledgerstream.settings - TOML engine config and env loading."""

import os
from pathlib import Path

import pytest

from ledgerstream.errors import ConfigError
from ledgerstream.schemas.config import EngineConfig
from ledgerstream.schemas.messages import Role
from ledgerstream.settings import _load_env_file, load_engine_config

# Path to the real config file shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "ledgerstream" / "config"


@pytest.fixture(autouse=True)
def _clear_overrides(monkeypatch):
    monkeypatch.delenv("LEDGERSTREAM_API_BASE", raising=False)
    monkeypatch.delenv("LEDGERSTREAM_DB_PATH", raising=False)


class TestLoadEngineConfig:
    def test_loads_real_config(self):
        config = load_engine_config(_CONFIG_DIR / "defaults.toml")
        assert config == EngineConfig()

    def test_default_path(self):
        config = load_engine_config()
        assert config.api_base == "http://localhost:8080/api/v1"
        assert config.read_timeout is None
        assert config.responder_role is Role.ASSISTANT

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "nope.toml")

    def test_custom_toml(self, tmp_path):
        path = tmp_path / "engine.toml"
        path.write_text(
            '[engine]\napi_base = "https://api.example.test/v2"\n'
            "read_timeout = 30.0\npersist_messages = false\n"
        )
        config = load_engine_config(path)
        assert config.api_base == "https://api.example.test/v2"
        assert config.read_timeout == 30.0
        assert config.persist_messages is False
        assert config.connect_timeout == 10.0

    def test_no_engine_section_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.toml"
        path.write_text("# nothing here\n")
        assert load_engine_config(path) == EngineConfig()

    def test_invalid_toml_raises(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[engine\napi_base = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_engine_config(path)

    def test_engine_not_a_table_raises(self, tmp_path):
        path = tmp_path / "flat.toml"
        path.write_text('engine = "fast"\n')
        with pytest.raises(ConfigError, match="must be a table"):
            load_engine_config(path)

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[engine]\nconnect_timeout = -1\n")
        with pytest.raises(ConfigError, match="Invalid engine config"):
            load_engine_config(path)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGERSTREAM_API_BASE", "http://staging:9000/api")
        monkeypatch.setenv("LEDGERSTREAM_DB_PATH", "/tmp/ls.db")
        config = load_engine_config()
        assert config.api_base == "http://staging:9000/api"
        assert config.message_db_path == "/tmp/ls.db"


class TestLoadEnvFile:
    def test_sets_missing_vars_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LEDGERSTREAM_API_BASE", "from-shell")
        monkeypatch.setenv("LEDGERSTREAM_DB_PATH", "")
        env = tmp_path / ".env"
        env.write_text(
            "# comment\n"
            "LEDGERSTREAM_API_BASE=from-file\n"
            "LEDGERSTREAM_DB_PATH='/data/messages.db'\n"
            "not a pair\n"
        )
        _load_env_file(env)

        assert os.environ["LEDGERSTREAM_API_BASE"] == "from-shell"
        assert os.environ["LEDGERSTREAM_DB_PATH"] == "/data/messages.db"
