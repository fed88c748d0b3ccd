"""Tests for configuration loading."""

import pytest

from devproxy.config import Config
from devproxy.errors import ConfigError

ENV_VARS = ("BUILD_DIR", "INCLUDES_DIR", "SERVER_HOST", "SERVER_PORT", "TARGET_URL", "PROXY_TIMEOUT", "CONFIG_GLOBAL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so that values loaded from .env files are undone too
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestFromEnv:

    def test_defaults(self, tmp_path):
        config = Config.from_env(tmp_path)
        assert config.root == tmp_path.resolve()
        assert config.build_dir == tmp_path.resolve() / "public"
        assert config.includes_dir == tmp_path.resolve() / "includes"
        assert config.host == "localhost"
        assert config.port == 3000
        assert config.target == "http://localhost:3000"
        assert config.mount == "/public"
        assert config.timeout == 30.0
        assert not config.tls

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SERVER_HOST", "0.0.0.0")
        monkeypatch.setenv("SERVER_PORT", "8080")
        monkeypatch.setenv("TARGET_URL", "https://www.example.com")
        monkeypatch.setenv("BUILD_DIR", str(tmp_path / "out"))
        monkeypatch.setenv("PROXY_TIMEOUT", "2.5")
        config = Config.from_env(tmp_path)
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.target == "https://www.example.com"
        assert config.build_dir == (tmp_path / "out").resolve()
        assert config.timeout == 2.5

    def test_dotenv_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("SERVER_PORT=4000\nTARGET_URL=http://origin.test\n")
        config = Config.from_env(tmp_path)
        assert config.port == 4000
        assert config.target == "http://origin.test"

    def test_invalid_port(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SERVER_PORT", "http")
        with pytest.raises(ConfigError):
            Config.from_env(tmp_path)

    def test_invalid_target(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TARGET_URL", "localhost:3000")
        with pytest.raises(ConfigError):
            Config.from_env(tmp_path)

    def test_invalid_timeout(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROXY_TIMEOUT", "0")
        with pytest.raises(ConfigError):
            Config.from_env(tmp_path)


class TestOverride:

    def test_none_values_are_ignored(self, config):
        assert config.override(host=None, port=None) == config

    def test_values_are_applied(self, config, tmp_path):
        updated = config.override(port="9000", target="http://other.test", build_dir=str(tmp_path / "b"), tls=True)
        assert updated.port == 9000
        assert updated.target == "http://other.test"
        assert updated.build_dir == (tmp_path / "b").resolve()
        assert updated.tls

    def test_invalid_override(self, config):
        with pytest.raises(ConfigError):
            config.override(port=70000)
