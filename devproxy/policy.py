import logging
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from multidict import CIMultiDict
from yarl import URL

logger = logging.getLogger("devproxy.policy")

DEVELOPMENT_HEADER = "X-Build-Development"

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

CONDITIONAL_HEADERS = {
    "if-none-match",
    "if-modified-since",
    "if-match",
    "if-unmodified-since",
    "if-range",
}

# The body is rewritten, so the upstream size and encoding no longer apply.
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


# --- Proxy Policy ---
class ProxyPolicy:
    """Decides what is proxied and how forwarded requests are shaped."""

    def __init__(self, target: str, mount: str = "/public"):
        self.target = URL(target)
        self.mount = mount

    @property
    def authority(self) -> str:
        host = self.target.raw_host or "localhost"
        if self.target.explicit_port is not None:
            return f"{host}:{self.target.explicit_port}"
        return host

    def is_local(self, path: str) -> bool:
        return path == self.mount or path.startswith(self.mount + "/")

    def upstream_url(self, path_qs: str) -> URL:
        prefix = self.target.raw_path.rstrip("/")
        return URL(f"{self.target.scheme}://{self.authority}{prefix}{path_qs}", encoded=True)

    def request_headers(self, headers: Mapping[str, str]) -> CIMultiDict:
        out: CIMultiDict = CIMultiDict()
        for name, value in headers.items():
            lname = name.lower()
            if lname in HOP_BY_HOP_HEADERS or lname in CONDITIONAL_HEADERS:
                continue
            if lname in ("host", "content-length", "accept-encoding"):
                continue
            out.add(name, value)
        out["Host"] = self.authority
        out["Accept-Encoding"] = ""
        out[DEVELOPMENT_HEADER] = "1"
        return out

    def response_headers(self, headers: Mapping[str, str], local_host: Optional[str] = None) -> CIMultiDict:
        out: CIMultiDict = CIMultiDict()
        for name, value in headers.items():
            if name.lower() in STRIPPED_RESPONSE_HEADERS:
                continue
            if name.lower() == "location" and local_host:
                value = self.rewrite_location(value, local_host)
            out.add(name, value)
        return out

    def rewrite_location(self, location: str, local_host: str) -> str:
        """Points redirects to the target back at the dev server, over HTTP."""
        parts = urlsplit(location)
        if not parts.netloc:
            return location
        target_hosts = {self.authority.lower(), (self.target.raw_host or "").lower()}
        if parts.netloc.lower() not in target_hosts:
            return location
        rewritten = urlunsplit(("http", local_host, parts.path, parts.query, parts.fragment))
        logger.debug(f"Rewrote redirect {location} -> {rewritten}")
        return rewritten
