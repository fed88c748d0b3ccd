import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv

from .errors import ConfigError

APP_NAME = "devproxy"
if sys.platform == "linux":
    CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / APP_NAME
else:
    CONFIG_DIR = Path.home() / f".{APP_NAME}"

DEFAULT_MOUNT = "/public"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3000
DEFAULT_TARGET = "http://localhost:3000"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CONFIG_GLOBAL = "traveltek_config_base"


@dataclass(frozen=True)
class Config:
    root: Path
    build_dir: Path
    includes_dir: Path
    mount: str = DEFAULT_MOUNT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    target: str = DEFAULT_TARGET
    timeout: float = DEFAULT_TIMEOUT
    config_global: str = DEFAULT_CONFIG_GLOBAL
    tls: bool = False

    @classmethod
    def from_env(cls, root: Optional[Path] = None) -> "Config":
        """Reads the configuration from the environment, after loading `.env`."""
        root = Path(root or os.getcwd()).resolve()
        load_dotenv(root / ".env")
        config = cls(
            root=root,
            build_dir=Path(os.environ.get("BUILD_DIR") or root / "public").resolve(),
            includes_dir=Path(os.environ.get("INCLUDES_DIR") or root / "includes").resolve(),
            host=os.environ.get("SERVER_HOST") or DEFAULT_HOST,
            port=_parse_port(os.environ.get("SERVER_PORT", DEFAULT_PORT)),
            target=os.environ.get("TARGET_URL") or DEFAULT_TARGET,
            timeout=_parse_timeout(os.environ.get("PROXY_TIMEOUT", DEFAULT_TIMEOUT)),
            config_global=os.environ.get("CONFIG_GLOBAL") or DEFAULT_CONFIG_GLOBAL,
        )
        config.validate()
        return config

    def override(self, **values) -> "Config":
        """Returns a copy with the given non-None values applied (CLI options)."""
        changes = {k: v for k, v in values.items() if v is not None}
        if "port" in changes:
            changes["port"] = _parse_port(changes["port"])
        if "build_dir" in changes:
            changes["build_dir"] = Path(changes["build_dir"]).resolve()
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self):
        parts = urlsplit(self.target)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigError(f"Target URL must be an absolute http(s) URL: {self.target!r}")
        if not self.mount.startswith("/") or self.mount.endswith("/"):
            raise ConfigError(f"Mount must start with '/' and not end with one: {self.mount!r}")


def _parse_port(value) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"Port out of range: {port}")
    return port


def _parse_timeout(value) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid timeout: {value!r}") from None
    if timeout <= 0:
        raise ConfigError(f"Timeout must be positive: {timeout}")
    return timeout
