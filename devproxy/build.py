import json
import logging
import re
import shutil
from pathlib import Path
from typing import Callable, List

import yaml

from .config import Config
from .errors import BuildError
from .includes import NAME_RE, PARTIAL_FILE

logger = logging.getLogger("devproxy.build")

STEPS = ("display", "includes", "locales", "config")

CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
CSS_SPACE_RE = re.compile(r"\s+")
CSS_PUNCT_RE = re.compile(r"\s*([{};,>])\s*")


def minify_css(css: str) -> str:
    css = CSS_COMMENT_RE.sub("", css)
    css = CSS_SPACE_RE.sub(" ", css)
    css = CSS_PUNCT_RE.sub(r"\1", css)
    return css.replace(";}", "}").strip()


# --- Builder ---
class Builder:
    """Populates the build directory from the project sources.

    `display/*.css` -> `variables.css`
    `includes/<name>/partial.html`, `includes/<name>/static/*` -> `includes/<name>/`
    `locales/**/*.json` -> `locales/`
    `config/**/*.yaml` -> `config/**/*.json`
    """

    def __init__(self, config: Config):
        self.config = config
        self.root = config.root
        self.output = config.build_dir
        self.listeners: List[Callable[[str], None]] = []

    def on_rebuild(self, callback: Callable[[str], None]):
        self.listeners.append(callback)

    def notify(self, step: str):
        for callback in self.listeners:
            try:
                callback(step)
            except Exception as e:
                logger.error(f"Rebuild listener failed for '{step}': {e}")

    def clean(self):
        if self.output.exists():
            logger.info(f"Removing {self.output}")
            try:
                shutil.rmtree(self.output)
            except OSError as e:
                raise BuildError(f"Could not remove {self.output}: {e}") from e

    def init(self):
        self.output.mkdir(parents=True, exist_ok=True)
        (self.output / "blank.js").touch()

    def display(self) -> Path:
        sources = sorted((self.root / "display").glob("*.css"))
        target = self.output / "variables.css"
        css = "".join(minify_css(self._read(p)) for p in sources)
        self._write(target, css)
        logger.info(f"Compiled {len(sources)} stylesheet(s) into {target}")
        return target

    def includes(self) -> List[str]:
        source = self.config.includes_dir
        names = []
        if source.is_dir():
            for directory in sorted(p for p in source.iterdir() if p.is_dir()):
                if not NAME_RE.match(directory.name):
                    logger.warning(f"Skipping include with invalid name: {directory.name}")
                    continue
                self._copy_include(directory)
                names.append(directory.name)
        logger.info(f"Copied {len(names)} include(s)")
        return names

    def _copy_include(self, directory: Path):
        target = self.output / "includes" / directory.name
        partial = directory / PARTIAL_FILE
        if partial.is_file():
            self._copy(partial, target / PARTIAL_FILE)
        static = directory / "static"
        if not static.is_dir():
            return
        for path in sorted(p for p in static.iterdir() if p.is_file()):
            if path.suffix == ".css":
                self._write(target / path.name, minify_css(self._read(path)))
            else:
                self._copy(path, target / path.name)

    def locales(self) -> int:
        source = self.root / "locales"
        paths = sorted(source.rglob("*.json")) if source.is_dir() else []
        for path in paths:
            self._copy(path, self.output / "locales" / path.relative_to(source))
        logger.info(f"Copied {len(paths)} locale file(s)")
        return len(paths)

    def compile_config(self) -> int:
        source = self.root / "config"
        paths = sorted(source.rglob("*.yaml")) if source.is_dir() else []
        for path in paths:
            try:
                data = yaml.safe_load(self._read(path))
            except yaml.YAMLError as e:
                raise BuildError(f"Invalid YAML in {path}: {e}") from e
            target = (self.output / "config" / path.relative_to(source)).with_suffix(".json")
            self._write(target, json.dumps(data, indent=2, default=str))
        logger.info(f"Compiled {len(paths)} config file(s)")
        return len(paths)

    def step(self, name: str):
        """Runs a single asset step and notifies the listeners."""
        if name not in STEPS:
            raise BuildError(f"Unknown build step: {name}")
        self.init()
        getattr(self, "compile_config" if name == "config" else name)()
        self.notify(name)

    def compile(self):
        self.display()
        self.includes()
        self.locales()
        self.compile_config()

    def build(self):
        self.clean()
        self.init()
        self.compile()
        logger.info(f"Build complete in {self.output}")
        self.notify("build")

    # --- File helpers ---
    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise BuildError(f"Could not read {path}: {e}") from e

    def _write(self, path: Path, content: str):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise BuildError(f"Could not write {path}: {e}") from e

    def _copy(self, source: Path, target: Path):
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            raise BuildError(f"Could not copy {source} to {target}: {e}") from e
