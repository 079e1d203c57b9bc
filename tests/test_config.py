"""Tests for configuration loading."""

import pytest
from pathlib import Path

from tiandao.config import load_config

ENV_KEYS = [
    "TIANDAO_CACHE_MAX_ENTRIES",
    "TIANDAO_CACHE_MAX_SIZE",
    "TIANDAO_CACHE_TTL",
    "TIANDAO_CACHE_PERSIST",
    "TIANDAO_MAX_RECENT_CHAPTERS",
    "TIANDAO_DATA_DIR",
    "TIANDAO_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self):
        config = load_config()
        assert config.cache.max_entries == 100
        assert config.cache.max_size == 10 * 1024 * 1024
        assert config.cache.ttl == 1800
        assert config.cache.enable_persistence is True
        assert config.memory.max_recent_chapters == 10
        assert config.data_dir.name == "data"
        assert config.log_level == "INFO"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TIANDAO_CACHE_MAX_ENTRIES", "5")
        monkeypatch.setenv("TIANDAO_CACHE_TTL", "60")
        monkeypatch.setenv("TIANDAO_CACHE_PERSIST", "off")
        monkeypatch.setenv("TIANDAO_MAX_RECENT_CHAPTERS", "3")

        config = load_config()
        assert config.cache.max_entries == 5
        assert config.cache.ttl == 60.0
        assert config.cache.enable_persistence is False
        assert config.memory.max_recent_chapters == 3

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "custom.toml"
        toml_path.write_text("""
data_dir = "/srv/novel"
log_level = "DEBUG"

[cache]
max_entries = 50
ttl = 300
enable_persistence = false

[memory]
max_recent_chapters = 4
""")
        config = load_config(toml_path)
        assert config.cache.max_entries == 50
        assert config.cache.ttl == 300
        assert config.cache.enable_persistence is False
        assert config.memory.max_recent_chapters == 4
        assert config.data_dir == Path("/srv/novel")
        assert config.log_level == "DEBUG"

    def test_toml_in_cwd(self, tmp_path: Path):
        (tmp_path / "tiandao.toml").write_text("[cache]\nmax_size = 2048\n")
        assert load_config().cache.max_size == 2048

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TIANDAO_CACHE_MAX_ENTRIES", "7")
        monkeypatch.setenv("TIANDAO_DATA_DIR", str(tmp_path / "state"))

        toml_path = tmp_path / "tiandao.toml"
        toml_path.write_text("""
data_dir = "/srv/novel"

[cache]
max_entries = 50
""")
        config = load_config(toml_path)
        assert config.cache.max_entries == 7  # env wins
        assert config.data_dir == tmp_path / "state"
