import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger("devproxy.includes")

STATIC_TOKEN = "%STATIC%"
PARTIAL_FILE = "partial.html"
NAME_RE = re.compile(r"^[a-z]+$")


@dataclass(frozen=True)
class IncludeFragment:
    name: str
    template: str
    static_path: str

    def render(self) -> str:
        return self.template.replace(STATIC_TOKEN, self.static_path)


def static_path(mount: str, name: str) -> str:
    return posixpath.join(mount, "includes", name)


# --- Include Store ---
class IncludeStore:
    """Reads include fragments from `<root>/<name>/partial.html`.

    Nothing is cached: every lookup reads the file again, so a rebuild that
    rewrites a partial is visible to the next response. A read that races a
    concurrent write gets whatever is on disk at that moment.
    """

    def __init__(self, root: Union[str, Path], mount: str = "/public"):
        self.root = Path(root)
        self.mount = mount

    def path(self, name: str) -> Path:
        return self.root / name / PARTIAL_FILE

    def get(self, name: str) -> Optional[IncludeFragment]:
        if not NAME_RE.match(name):
            return None
        path = self.path(name)
        try:
            template = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            logger.warning(f"Include '{name}' is not valid UTF-8 ({path}): {e}")
            return None
        except OSError as e:
            logger.warning(f"Include '{name}' could not be read ({path}): {e}")
            return None
        return IncludeFragment(name, template, static_path(self.mount, name))

    def names(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if NAME_RE.match(p.name) and (p / PARTIAL_FILE).is_file()
        )
