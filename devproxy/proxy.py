import asyncio
import logging
from typing import Optional

import aiohttp
from aiohttp import web

from .expander import MacroExpander
from .interceptor import writer_for
from .policy import ProxyPolicy

logger = logging.getLogger("devproxy.proxy")

CLIENT_SESSION = web.AppKey("client_session", aiohttp.ClientSession)
CHUNK_SIZE = 64 * 1024


def client_session_context(timeout: float):
    """Cleanup context owning the application's single upstream session."""
    async def context(app: web.Application):
        async with aiohttp.ClientSession(
            auto_decompress=True,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as session:
            app[CLIENT_SESSION] = session
            yield
    return context


# --- Proxy Logic ---
class ProxyHandler:
    """Forwards a request to the origin and streams the answer back through
    the interceptor. Each call owns its own writer and buffer."""

    def __init__(self, policy: ProxyPolicy, expander: MacroExpander):
        self.policy = policy
        self.expander = expander

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if self.policy.is_local(request.path):
            # The mount is served from the build directory, never proxied.
            raise web.HTTPNotFound()
        session = request.app[CLIENT_SESSION]
        url = self.policy.upstream_url(request.path_qs)
        headers = self.policy.request_headers(request.headers)
        body = await request.read()
        logger.info(f"{request.method} {request.path_qs} -> {url}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Upstream request headers: {dict(headers)}")

        writer = None
        try:
            async with session.request(
                request.method, url, headers=headers, data=body or None,
                allow_redirects=False,
            ) as upstream:
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(f"Upstream response: {upstream.status} {dict(upstream.headers)}")
                response = web.StreamResponse(
                    status=upstream.status,
                    reason=upstream.reason,
                    headers=self.policy.response_headers(upstream.headers, request.host),
                )
                writer = writer_for(
                    request, response,
                    upstream.headers.get("Content-Type"),
                    self.expander.expand,
                    upstream.charset,
                )
                async for chunk in upstream.content.iter_chunked(CHUNK_SIZE):
                    await writer.write(chunk)
                return await writer.write_eof()
        except asyncio.TimeoutError:
            return self.fail(request, writer, 504, f"Upstream timed out: {url}")
        except aiohttp.ClientError as e:
            return self.fail(request, writer, 502, f"Upstream error: {e}")
        except asyncio.CancelledError:
            if writer is not None:
                writer.abort()
            raise

    def fail(self, request: web.Request, writer, status: int, message: str) -> web.Response:
        logger.error(f"{request.method} {request.path_qs}: {message}")
        if writer is not None:
            writer.abort()
            if writer.response.prepared:
                # Part of the body is already on the wire, the connection is all we can drop.
                raise ConnectionResetError(message)
        return web.Response(text=message, status=status)


def proxy_handler_for(config, expander: MacroExpander, policy: Optional[ProxyPolicy] = None) -> ProxyHandler:
    policy = policy or ProxyPolicy(config.target, config.mount)
    return ProxyHandler(policy, expander)
