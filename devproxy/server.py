import logging
from typing import Optional

from aiohttp import web

from .config import Config
from .expander import MacroExpander, expander_for
from .proxy import client_session_context, proxy_handler_for

logger = logging.getLogger("devproxy.server")

SHUTDOWN_TIMEOUT = 5.0


def create_app(config: Config, expander: Optional[MacroExpander] = None) -> web.Application:
    """Local files under the mount, everything else through the proxy."""
    expander = expander or expander_for(config)
    app = web.Application()
    app.cleanup_ctx.append(client_session_context(config.timeout))
    config.build_dir.mkdir(parents=True, exist_ok=True)
    app.router.add_static(config.mount, config.build_dir, append_version=False)
    app.router.add_route("*", "/{path_info:.*}", proxy_handler_for(config, expander).handle)
    return app


# --- Dev Server ---
class DevServer:
    def __init__(self, config: Config, expander: Optional[MacroExpander] = None,
                 shutdown_timeout: float = SHUTDOWN_TIMEOUT):
        self.config = config
        self.app = create_app(config, expander)
        self.shutdown_timeout = shutdown_timeout
        self.runner: Optional[web.AppRunner] = None

    @property
    def url(self) -> str:
        scheme = "https" if self.config.tls else "http"
        return f"{scheme}://{self.config.host}:{self.config.port}"

    @property
    def running(self) -> bool:
        return self.runner is not None

    async def start(self):
        ssl_ctx = None
        if self.config.tls:
            from .certs import ssl_context
            ssl_ctx = ssl_context(self.config.host)
        self.runner = web.AppRunner(self.app, shutdown_timeout=self.shutdown_timeout)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.config.host, self.config.port, ssl_context=ssl_ctx)
        await site.start()
        logger.info(f"Serving {self.config.build_dir} on {self.url}{self.config.mount}")
        logger.info(f"Proxying everything else on {self.url} to {self.config.target}")

    async def stop(self):
        """Stops listening, lets in-flight exchanges finish within the
        shutdown timeout, then closes what is left."""
        if self.runner is None:
            return
        runner, self.runner = self.runner, None
        logger.info("Shutting down dev server")
        await runner.cleanup()
