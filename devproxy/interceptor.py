import logging
from typing import Callable, List, Optional

from aiohttp import web

from .errors import BufferClosedError

logger = logging.getLogger("devproxy.interceptor")

DEFAULT_ENCODING = "utf-8"
REWRITABLE_CONTENT_TYPES = {"text/html", "application/xhtml+xml"}

Rewrite = Callable[[str], str]


def is_rewritable(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() in REWRITABLE_CONTENT_TYPES


# --- Response Buffer ---
class ResponseBuffer:
    """Accumulates the body of one proxied exchange."""

    def __init__(self, encoding: str = DEFAULT_ENCODING):
        self.encoding = encoding
        self.completed = False
        self._chunks: List[bytes] = []
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def append(self, data: bytes):
        if self.completed:
            raise BufferClosedError("Response buffer already completed")
        self._chunks.append(bytes(data))
        self._size += len(data)

    def complete(self) -> bytes:
        """Marks the buffer complete and returns an immutable snapshot."""
        self.completed = True
        snapshot = b"".join(self._chunks)
        self._chunks = [snapshot]
        return snapshot

    def discard(self):
        self.completed = True
        self._chunks = []
        self._size = 0


# --- Writers ---
class StreamingWriter:
    """Forwards every chunk to the client as soon as it arrives."""

    def __init__(self, request: web.Request, response: web.StreamResponse):
        self.request = request
        self.response = response

    async def _ensure_prepared(self):
        if not self.response.prepared:
            await self.response.prepare(self.request)

    async def write(self, data: bytes):
        await self._ensure_prepared()
        await self.response.write(data)

    async def write_eof(self) -> web.StreamResponse:
        await self._ensure_prepared()
        await self.response.write_eof()
        return self.response

    def abort(self):
        if self.request.transport is not None:
            self.request.transport.close()


class BufferingWriter:
    """Holds the whole body back, rewrites it, and sends it in one write.

    Nothing reaches the client before `write_eof`. The outgoing
    `Content-Length` is the size of the rewritten body.
    """

    def __init__(self, request: web.Request, response: web.StreamResponse,
                 rewrite: Rewrite, encoding: Optional[str] = None):
        self.request = request
        self.response = response
        self.rewrite = rewrite
        self.buffer = ResponseBuffer(encoding or DEFAULT_ENCODING)

    async def write(self, data: bytes):
        self.buffer.append(data)

    def render(self, body: bytes) -> bytes:
        encoding = self.buffer.encoding
        try:
            text = body.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            logger.warning(f"Passing {self.request.path} through unmodified, body is not {encoding}: {e}")
            return body
        # Include text may hold characters the page charset lacks.
        return self.rewrite(text).encode(encoding, errors="xmlcharrefreplace")

    async def write_eof(self) -> web.StreamResponse:
        body = self.render(self.buffer.complete())
        self.response.content_length = len(body)
        await self.response.prepare(self.request)
        await self.response.write(body)
        await self.response.write_eof()
        return self.response

    def abort(self):
        self.buffer.discard()


def writer_for(request: web.Request, response: web.StreamResponse,
               content_type: Optional[str], rewrite: Rewrite,
               charset: Optional[str] = None):
    if request.method != "HEAD" and is_rewritable(content_type):
        return BufferingWriter(request, response, rewrite, charset)
    return StreamingWriter(request, response)
