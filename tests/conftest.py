"""Pytest configuration and fixtures for devproxy tests."""

import pytest
from pathlib import Path

from devproxy.config import Config
from devproxy.expander import expander_for
from devproxy.includes import IncludeStore


def write_include(root: Path, name: str, template: str) -> Path:
    path = root / "includes" / name / "partial.html"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(template, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project tree with a single `header` include."""
    write_include(tmp_path, "header", "<div>%STATIC%/logo.png</div>")
    return tmp_path


@pytest.fixture
def config(project: Path) -> Config:
    return Config(
        root=project,
        build_dir=project / "public",
        includes_dir=project / "includes",
        timeout=5.0,
    )


@pytest.fixture
def store(config: Config) -> IncludeStore:
    return IncludeStore(config.includes_dir, config.mount)


@pytest.fixture
def expander(config: Config, store: IncludeStore):
    return expander_for(config, store)
