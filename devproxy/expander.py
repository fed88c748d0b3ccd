import logging
import re
from typing import Dict, Optional

from .includes import IncludeStore

logger = logging.getLogger("devproxy.expander")

TOKEN_RE = re.compile(r"%[A-Z]+%")
INJECTION_TOKEN = "%CLIENTINCLUDES%"


def token_name(token: str) -> str:
    return token.strip("%").lower()


# --- Macro Expander ---
class MacroExpander:
    """Rewrites proxied HTML in two stages.

    1. The first `%CLIENTINCLUDES%` marker is replaced with the snippet that
       loads the compiled stylesheet and publishes the mount point to the
       page. Later markers are left as they are.
    2. Every other `%NAME%` token whose lowercase name has an include in the
       store is replaced, at all of its occurrences, with the rendered
       include. Unknown tokens are left verbatim.

    Both stages run once. Tokens carried in by an include's own text are not
    expanded in the same call, which keeps self-referencing includes finite.
    """

    def __init__(self, store: IncludeStore, mount: str = "/public",
                 config_global: str = "traveltek_config_base"):
        self.store = store
        self.mount = mount
        self.config_global = config_global

    @property
    def injection(self) -> str:
        return (
            f'<link rel="stylesheet" type="text/css" href="{self.mount}/variables.css" />'
            f'<script type="text/javascript">window.{self.config_global} = "{self.mount}"</script>'
        )

    def inject(self, text: str) -> str:
        return text.replace(INJECTION_TOKEN, self.injection, 1)

    def resolve(self, text: str) -> Dict[str, str]:
        """Maps each distinct include token of `text` to its rendered include,
        in the order the tokens first appear. Unknown tokens are omitted."""
        resolved: Dict[str, str] = {}
        missing = []
        for token in dict.fromkeys(TOKEN_RE.findall(text)):
            if token == INJECTION_TOKEN:
                continue
            fragment = self.store.get(token_name(token))
            if fragment is None:
                missing.append(token)
            else:
                resolved[token] = fragment.render()
        if missing:
            logger.warning(f"Unresolved include tokens left as-is: {', '.join(missing)}")
        return resolved

    def expand(self, text: str) -> str:
        if not text:
            return text
        text = self.inject(text)
        resolved = self.resolve(text)
        if not resolved:
            return text
        return TOKEN_RE.sub(lambda m: resolved.get(m.group(0), m.group(0)), text)


def expander_for(config, store: Optional[IncludeStore] = None) -> MacroExpander:
    store = store or IncludeStore(config.includes_dir, config.mount)
    return MacroExpander(store, config.mount, config.config_global)
