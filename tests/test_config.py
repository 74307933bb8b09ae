"""
Tests for configuration loading, resolution and typed settings.
"""

from pathlib import Path

import pytest

from feedsync.config import Config, Settings, load_config, resolve_config
from feedsync.exceptions import ConfigurationError

BASE_CONFIG = """
source:
  host: ${FEEDSYNC_TEST_HOST}
  username: feed
  password: ${FEEDSYNC_TEST_PASSWORD}
feed:
  file_name: TobaccoData.xml
queue:
  backend: memory
catalog:
  path: data/{env}/catalog.duckdb
worker:
  high_water: 8
  low_water: 2
"""


def _write(project: Path, name: str, text: str) -> None:
    (project / name).write_text(text, encoding="utf-8")


class TestConfig:
    def test_dot_access(self):
        config = Config({"source": {"host": "h", "port": 21}, "flag": False})
        assert config.get("source.host") == "h"
        assert config.get("source.missing", "x") == "x"
        assert config.get("flag") is False
        assert config["source.port"] == 21
        assert isinstance(config["source"], Config)
        assert "source.host" in config
        assert "source.user" not in config

    def test_missing_key(self):
        with pytest.raises(KeyError):
            Config({})["nope"]

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            Config({"source": "ftp://host"}).section("source")
        assert Config({}).section("source") == {}


class TestResolveConfig:
    def test_env_vars_and_env_placeholder(self, monkeypatch):
        monkeypatch.setenv("FEEDSYNC_TEST_HOST", "ftp.example.com")
        monkeypatch.delenv("FEEDSYNC_TEST_PASSWORD", raising=False)

        resolved = resolve_config(
            {"host": "${FEEDSYNC_TEST_HOST}", "password": "${FEEDSYNC_TEST_PASSWORD}", "path": "data/{env}", "n": 3},
            env="prod",
        )

        assert resolved["host"] == "ftp.example.com"
        assert resolved["password"] == "${FEEDSYNC_TEST_PASSWORD}"
        assert resolved["path"] == "data/prod"
        assert resolved["n"] == 3


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path)

    def test_invalid_yaml(self, tmp_path: Path):
        _write(tmp_path, "config.yaml", "source: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Error parsing"):
            load_config(tmp_path)

    def test_env_overlay(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FEEDSYNC_TEST_HOST", "ftp.example.com")
        _write(tmp_path, "config.yaml", BASE_CONFIG)
        _write(tmp_path, "config.prod.yaml", "queue:\n  backend: redis\n  url: redis://cache:6379/1\n")

        config = load_config(tmp_path, env="prod")

        assert config.get("queue.backend") == "redis"
        assert config.get("queue.url") == "redis://cache:6379/1"
        assert config.get("feed.file_name") == "TobaccoData.xml"
        assert config.get("catalog.path") == "data/prod/catalog.duckdb"
        assert config.get("source.host") == "ftp.example.com"


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_config(Config({"source": {"host": "ftp.example.com"}}))
        assert settings.source.protocol == "ftp"
        assert settings.source.effective_port == 21
        assert settings.source.directory == "TOBACCO"
        assert settings.feed.file_name == "TobaccoData.xml"
        assert settings.feed.schedule == "0 */12 * * *"
        assert settings.queue.backend == "memory"
        assert settings.queue.retention == 30
        assert settings.worker.concurrency == 1
        assert settings.worker.high_water > settings.worker.low_water

    def test_sftp_default_port(self):
        settings = Settings.from_config(Config({"source": {"host": "h", "protocol": "SFTP"}}))
        assert settings.source.protocol == "sftp"
        assert settings.source.effective_port == 22

    def test_host_required(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("FEEDSYNC_TEST_HOST", raising=False)
        _write(tmp_path, "config.yaml", BASE_CONFIG)
        with pytest.raises(ConfigurationError, match="source.host"):
            Settings.from_config(load_config(tmp_path))

    @pytest.mark.parametrize(
        "data,match",
        [
            ({"source": {"host": "h", "protocol": "scp"}}, "protocol"),
            ({"source": {"host": "h"}, "queue": {"backend": "kafka"}}, "backend"),
            ({"source": {"host": "h"}, "worker": {"high_water": 4, "low_water": 4}}, "low_water"),
        ],
    )
    def test_invalid_values(self, data, match):
        with pytest.raises(ConfigurationError, match=match):
            Settings.from_config(Config(data))

    def test_concurrency_floor(self):
        settings = Settings.from_config(Config({"source": {"host": "h"}, "worker": {"concurrency": 0}}))
        assert settings.worker.concurrency == 1
