"""Tests for cursor_tab.cli module.

CLI commands are called directly with a FakeBackend; stdout and stderr are
captured with StringIO patches.
"""

import json
import socket
import pytest
from io import StringIO
from unittest.mock import patch

from cursor_tab.errors import UpstreamError
from stream_mock import FakeBackend, FakeChunkStream, edit_units, rng, text


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def source_file(tmp_path):
    """A small Python file to send as the current file."""
    path = tmp_path / "math_utils.py"
    path.write_text("def add(a, b):\n    return a + b\n")
    return path


# ─────────────────────────────────────────────────────────────────────
# SUGGEST COMMAND
# ─────────────────────────────────────────────────────────────────────


class TestSuggestCommand:
    """Tests for `cursor-tab-server suggest`."""

    @pytest.mark.asyncio
    async def test_prints_one_line_per_suggestion(self, source_file, first_unit, second_unit):
        from cursor_tab.cli import _cmd_suggest

        stream = FakeChunkStream(edit_units(first_unit, second_unit))
        backend = FakeBackend(stream)

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            code = await _cmd_suggest(backend, str(source_file), line=1, column=4)

        assert code == 0
        lines = mock_stdout.getvalue().strip().split("\n")
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["suggestion"] == "    return a - b"
        assert first["binding_id"] == "bind-1"
        assert first["range_replace"]["start_line"] == 5
        assert stream.closed

    @pytest.mark.asyncio
    async def test_request_built_from_file(self, source_file, first_unit):
        from cursor_tab.cli import _cmd_suggest

        backend = FakeBackend(FakeChunkStream(edit_units(first_unit)))

        with patch("sys.stdout", new_callable=StringIO):
            await _cmd_suggest(backend, str(source_file), line=1, column=4, workspace="/ws")

        sent = backend.requests[0].current_file
        assert sent.relative_workspace_path == "math_utils.py"
        assert sent.language_id == "python"
        assert sent.workspace_root_path == "/ws"
        assert sent.total_number_of_lines == 3
        assert sent.cursor_position.line == 1

    @pytest.mark.asyncio
    async def test_cursor_line_range_gets_cursor_column(self, source_file):
        from cursor_tab.cli import _cmd_suggest

        backend = FakeBackend(FakeChunkStream(edit_units([rng(2, 2), text("    return a + b + 0")])))

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            await _cmd_suggest(backend, str(source_file), line=1, column=4)

        result = json.loads(mock_stdout.getvalue())
        assert result["range_replace"]["end_column"] == 4

    @pytest.mark.asyncio
    async def test_no_suggestions_to_stderr(self, source_file):
        from cursor_tab.cli import _cmd_suggest

        backend = FakeBackend(FakeChunkStream(edit_units()))

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout, \
             patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            code = await _cmd_suggest(backend, str(source_file), line=0, column=0)

        assert code == 0
        assert mock_stdout.getvalue() == ""
        assert "No suggestions" in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_upstream_error(self, source_file):
        from cursor_tab.cli import _cmd_suggest

        backend = FakeBackend(error=UpstreamError("StreamCpp returned HTTP 401"))

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            code = await _cmd_suggest(backend, str(source_file), line=0, column=0)

        assert code == 1
        assert "401" in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_missing_backend(self, source_file):
        from cursor_tab.cli import _cmd_suggest

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            code = await _cmd_suggest(None, str(source_file), line=0, column=0)

        assert code == 1
        assert "not initialized" in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_unreadable_file(self, tmp_path):
        from cursor_tab.cli import _cmd_suggest

        backend = FakeBackend()

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            code = await _cmd_suggest(backend, str(tmp_path / "missing.py"), line=0, column=0)

        assert code == 1
        assert "Cannot read" in mock_stderr.getvalue()
        assert backend.requests == []


# ─────────────────────────────────────────────────────────────────────
# SERVE COMMAND
# ─────────────────────────────────────────────────────────────────────


class TestServeCommand:

    @pytest.mark.asyncio
    async def test_bind_failure_exits_nonzero(self):
        from cursor_tab.cli import _cmd_serve
        from cursor_tab.config import Settings

        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen(1)
        port = holder.getsockname()[1]
        try:
            with patch("sys.stdout", new_callable=StringIO) as mock_stdout, \
                 patch("sys.stderr", new_callable=StringIO) as mock_stderr:
                code = await _cmd_serve(Settings(port=port), backend=None)
        finally:
            holder.close()

        assert code == 1
        assert "SERVER_PORT" not in mock_stdout.getvalue()
        assert str(port) in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_announces_port_before_serving(self):
        from cursor_tab.cli import _cmd_serve
        from cursor_tab.config import Settings

        async def fake_serve(app, sock):
            sock.close()

        with patch("cursor_tab.server.serve", fake_serve), \
             patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            code = await _cmd_serve(Settings(port=0), backend=None)

        assert code == 0
        first_line = mock_stdout.getvalue().split("\n")[0]
        assert first_line.startswith("SERVER_PORT=")
        assert int(first_line.split("=")[1]) > 0


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


class TestArgParsing:
    """Tests for CLI argument parsing."""

    def test_build_parser_default_is_serve(self):
        from cursor_tab.cli import _build_parser
        parser = _build_parser()
        args = parser.parse_args([])
        assert args.command is None
        assert args.port is None
        assert not args.verbose

    def test_build_parser_serve_options(self):
        from cursor_tab.cli import _build_parser
        parser = _build_parser()
        args = parser.parse_args(["--port", "0", "--log-file", "/tmp/x.log", "-v", "serve"])
        assert args.command == "serve"
        assert args.port == 0
        assert args.log_file == "/tmp/x.log"
        assert args.verbose is True

    def test_build_parser_suggest(self):
        from cursor_tab.cli import _build_parser
        parser = _build_parser()
        args = parser.parse_args([
            "suggest",
            "--file", "main.go",
            "--line", "12",
            "--column", "3",
            "--language", "go",
        ])
        assert args.command == "suggest"
        assert args.file == "main.go"
        assert args.line == 12
        assert args.column == 3
        assert args.language == "go"
        assert args.workspace is None

    def test_build_parser_suggest_requires_file(self):
        from cursor_tab.cli import _build_parser
        parser = _build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["suggest", "--line", "1"])
