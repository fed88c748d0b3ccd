import argparse
import asyncio
import logging
import sys
import threading
from signal import SIGINT, SIGTERM
from typing import List, Optional

from . import __version__
from .build import Builder
from .config import Config
from .errors import DevProxyError
from .server import DevServer
from .watch import Watcher

logger = logging.getLogger("devproxy")

EXIT_COMMANDS = {"exit"}
REBUILD_COMMANDS = {"reload", "rebuild"}


# --- Control loop ---
def read_lines(loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Optional[str]]", stream=None):
    """Feeds stdin lines to the loop. A daemon thread, so a pending read
    never holds the process open."""
    stream = stream or sys.stdin

    def reader():
        for line in stream:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    thread = threading.Thread(target=reader, name="devproxy-stdin", daemon=True)
    thread.start()
    return thread


async def handle_command(line: str, builder: Builder, stop: asyncio.Event):
    command = line.strip()
    if not command:
        return
    if command in EXIT_COMMANDS:
        stop.set()
    elif command in REBUILD_COMMANDS:
        try:
            await asyncio.to_thread(builder.build)
        except DevProxyError as e:
            logger.error(f"Rebuild failed: {e}")
    else:
        logger.warning(f"Unrecognised command: {command}")


async def control_loop(builder: Builder, stop: asyncio.Event, queue: "asyncio.Queue[Optional[str]]"):
    while not stop.is_set():
        line = await queue.get()
        if line is None:
            # stdin closed
            stop.set()
            break
        await handle_command(line, builder, stop)


async def serve(config: Config, builder: Builder, watch: bool = True, interactive: bool = True):
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    signals = []
    for sig in (SIGINT, SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            signals.append(sig)
        except NotImplementedError:
            pass

    server = DevServer(config)
    watcher = None
    console = None
    try:
        await server.start()
        if watch:
            watcher = Watcher(builder, loop)
            watcher.start()
        if interactive:
            queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
            read_lines(loop, queue)
            console = asyncio.create_task(control_loop(builder, stop, queue))
            print("Type 'reload' to rebuild, 'exit' to stop.")
        await stop.wait()
    finally:
        if console is not None:
            console.cancel()
        if watcher is not None:
            watcher.stop()
        await server.stop()
        for sig in signals:
            loop.remove_signal_handler(sig)


# --- Main ---
def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devproxy",
        description="Development proxy that injects locally built assets into a remote site",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose request/response logs")
    parser.add_argument("--host", help="Host to listen on (SERVER_HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (SERVER_PORT)")
    parser.add_argument("--target", help="Origin URL to proxy (TARGET_URL)")
    parser.add_argument("--build-dir", help="Build output directory (BUILD_DIR)")
    parser.add_argument("--tls", action="store_true", default=None, help="Serve over HTTPS with a self-signed certificate")
    parser.add_argument("--no-watch", action="store_true", help="Do not rebuild when sources change")
    parser.add_argument(
        "command", nargs="?", default="start",
        choices=("build", "clean", "serve", "start"),
        help="build: clean and compile assets, clean: remove the build directory, "
             "serve: run the proxy, start: build, serve, then clean",
    )
    return parser.parse_args(args)


def main(args: Optional[List[str]] = None) -> int:
    options = parse_args(args)
    level = logging.DEBUG if options.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        config = Config.from_env().override(
            host=options.host,
            port=options.port,
            target=options.target,
            build_dir=options.build_dir,
            tls=options.tls,
        )
        builder = Builder(config)
        builder.on_rebuild(lambda step: logger.info(f"Rebuild complete: {step}"))
        if options.command == "clean":
            builder.clean()
        elif options.command == "build":
            builder.build()
        elif options.command == "serve":
            asyncio.run(serve(config, builder, watch=not options.no_watch))
        else:
            builder.build()
            try:
                asyncio.run(serve(config, builder, watch=not options.no_watch))
            finally:
                builder.clean()
    except DevProxyError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
