"""Tests for the command line and the interactive control loop."""

import asyncio
import io
import logging

import pytest

from devproxy import cli
from devproxy.build import Builder


class FakeBuilder:
    def __init__(self, error=None):
        self.builds = 0
        self.error = error

    def build(self):
        self.builds += 1
        if self.error:
            raise self.error


class TestHandleCommand:

    async def test_exit(self):
        stop = asyncio.Event()
        await cli.handle_command("exit\n", FakeBuilder(), stop)
        assert stop.is_set()

    @pytest.mark.parametrize("command", ["reload", "rebuild", "  reload  "])
    async def test_rebuild(self, command):
        builder = FakeBuilder()
        stop = asyncio.Event()
        await cli.handle_command(command, builder, stop)
        assert builder.builds == 1
        assert not stop.is_set()

    async def test_failed_rebuild_is_logged(self, caplog):
        from devproxy.errors import BuildError
        builder = FakeBuilder(BuildError("boom"))
        with caplog.at_level(logging.ERROR, logger="devproxy"):
            await cli.handle_command("reload", builder, asyncio.Event())
        assert "boom" in caplog.text

    async def test_unknown_command(self, caplog):
        with caplog.at_level(logging.WARNING, logger="devproxy"):
            await cli.handle_command("deploy", FakeBuilder(), asyncio.Event())
        assert "Unrecognised command: deploy" in caplog.text

    async def test_blank_line(self, caplog):
        builder = FakeBuilder()
        with caplog.at_level(logging.WARNING, logger="devproxy"):
            await cli.handle_command("\n", builder, asyncio.Event())
        assert caplog.text == ""
        assert builder.builds == 0


class TestControlLoop:

    async def test_lines_until_eof(self):
        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()
        builder = FakeBuilder()
        stop = asyncio.Event()
        cli.read_lines(loop, queue, io.StringIO("reload\nreload\n"))
        await asyncio.wait_for(cli.control_loop(builder, stop, queue), 5)
        assert builder.builds == 2
        assert stop.is_set()

    async def test_exit_stops_reading(self):
        queue = asyncio.Queue()
        for line in ("exit\n", "reload\n"):
            queue.put_nowait(line)
        builder = FakeBuilder()
        stop = asyncio.Event()
        await asyncio.wait_for(cli.control_loop(builder, stop, queue), 5)
        assert builder.builds == 0


class TestMain:

    def test_parse_args_defaults(self):
        options = cli.parse_args([])
        assert options.command == "start"
        assert options.tls is None
        assert not options.verbose

    def test_parse_args(self):
        options = cli.parse_args(["-v", "--port", "4000", "--target", "http://x.test", "--tls", "serve"])
        assert options.command == "serve"
        assert options.port == 4000
        assert options.target == "http://x.test"
        assert options.tls

    def test_build_and_clean(self, project, monkeypatch):
        monkeypatch.chdir(project)
        monkeypatch.delenv("BUILD_DIR", raising=False)
        assert cli.main(["build"]) == 0
        assert (project / "public" / "blank.js").exists()
        assert cli.main(["clean"]) == 0
        assert not (project / "public").exists()

    def test_config_error_exit_code(self, project, monkeypatch):
        monkeypatch.chdir(project)
        assert cli.main(["--target", "nowhere", "build"]) == 1

    async def test_serve_stops_on_exit_command(self, config, monkeypatch, unused_tcp_port_factory):
        from dataclasses import replace
        config = replace(config, host="127.0.0.1", port=unused_tcp_port_factory())
        queue_lines = io.StringIO("exit\n")
        monkeypatch.setattr(cli.sys, "stdin", queue_lines)
        await asyncio.wait_for(cli.serve(config, Builder(config), watch=False), 10)
