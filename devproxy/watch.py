import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import STEPS, Builder
from .errors import BuildError

logger = logging.getLogger("devproxy.watch")

DEBOUNCE = 0.2
IGNORED_PATTERNS = ("/.", "~", ".swp", ".tmp")


class SourceChangeHandler(FileSystemEventHandler):
    """Hands changed source paths over to the watcher's event loop."""

    def __init__(self, watcher: "Watcher"):
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return
        path = str(event.src_path)
        if any(pattern in path for pattern in IGNORED_PATTERNS):
            return
        self.watcher.loop.call_soon_threadsafe(self.watcher.changed, Path(path))


# --- Watcher ---
class Watcher:
    """Runs the matching build step when a source file changes."""

    def __init__(self, builder: Builder, loop: Optional[asyncio.AbstractEventLoop] = None,
                 debounce: float = DEBOUNCE):
        self.builder = builder
        self.loop = loop or asyncio.get_event_loop()
        self.debounce = debounce
        self.sources: Dict[str, Path] = {
            "display": builder.root / "display",
            "includes": builder.config.includes_dir,
            "locales": builder.root / "locales",
            "config": builder.root / "config",
        }
        self.pending: Dict[str, asyncio.TimerHandle] = {}
        self.observer: Optional[Observer] = None

    def step_for(self, path: Path) -> Optional[str]:
        for step in STEPS:
            source = self.sources[step]
            if path == source or source in path.parents:
                return step
        return None

    def changed(self, path: Path):
        step = self.step_for(path)
        if step is None:
            return
        logger.debug(f"{path} changed, scheduling '{step}'")
        handle = self.pending.pop(step, None)
        if handle is not None:
            handle.cancel()
        self.pending[step] = self.loop.call_later(self.debounce, self.rebuild, step)

    def rebuild(self, step: str):
        self.pending.pop(step, None)
        logger.info(f"Rebuilding {step}")
        try:
            self.builder.step(step)
        except BuildError as e:
            logger.error(f"Rebuild of {step} failed: {e}")

    def start(self):
        self.observer = Observer()
        handler = SourceChangeHandler(self)
        for step, path in self.sources.items():
            if path.is_dir():
                self.observer.schedule(handler, str(path), recursive=True)
                logger.info(f"Watching {path} for {step}")
        self.observer.start()

    def stop(self):
        for handle in self.pending.values():
            handle.cancel()
        self.pending.clear()
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
