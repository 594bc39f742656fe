"""CLI entry point for cursor-tab.

Entry point:
    cursor-tab-server [--port N] [--log-file PATH] [-v] [serve]
    cursor-tab-server suggest --file <path> --line N --column N [--language ID]

`serve` prints SERVER_PORT=<port> as the first stdout line so the editor
plugin can find an OS-assigned port. All logging goes to the log file.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cursor-tab-server",
        description="Local relay for Cursor tab-completion suggestions.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file", default=None, help="Log file path (default: $CURSOR_TAB_LOG_FILE or /tmp/cursor-tab.log)"
    )
    parser.add_argument(
        "--port", type=int, default=None, help="Port to listen on (0 = OS assigns available port)"
    )
    sub = parser.add_subparsers(dest="command")

    # serve
    sub.add_parser("serve", help="Run the local suggestion server (default)")

    # suggest
    suggest_p = sub.add_parser("suggest", help="Send one StreamCpp request and print every suggestion")
    suggest_p.add_argument("--file", required=True, help="File whose contents are sent")
    suggest_p.add_argument("--line", type=int, default=0, help="Zero-based cursor line")
    suggest_p.add_argument("--column", type=int, default=0, help="Zero-based cursor column")
    suggest_p.add_argument("--language", default="", help="Language id (default: from extension)")
    suggest_p.add_argument("--workspace", default=None, help="Workspace root (default: cwd)")

    return parser


def _configure_logging(log_file: str, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        filename=log_file,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_backend(settings):
    """Create the upstream adapter, or None if credentials are unavailable."""
    from cursor_tab.adapters.cursor import CursorAdapter
    from cursor_tab.errors import CredentialsError

    try:
        return CursorAdapter.from_environment(
            base_url=settings.api_base_url,
            timeout_seconds=settings.upstream_timeout,
        )
    except CredentialsError as e:
        logger.error(f"Failed to initialize Cursor client: {e}")
        return None


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_serve(settings, backend) -> int:
    """Bind, announce the port, and serve until interrupted. Returns exit code."""
    from cursor_tab.server import ServerContext, bind_socket, create_app, serve

    try:
        sock = bind_socket(settings.port)
    except OSError as e:
        logger.error(f"Failed to create listener on port {settings.port}: {e}")
        print(f"Failed to bind port {settings.port}: {e}", file=sys.stderr)
        return 1

    port = sock.getsockname()[1]
    # Must be the first stdout line; the editor parses it
    print(f"SERVER_PORT={port}", flush=True)

    context = ServerContext.create(backend=backend, settings=settings)
    app = create_app(context)
    logger.info(
        f"Server starting on {sock.getsockname()[0]}:{port} "
        "(POST /suggestion/new, GET /suggestion/{id})"
    )
    await serve(app, sock)
    return 0


_LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".lua": "lua",
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".java": "java",
    ".rb": "ruby",
    ".sh": "shellscript",
}


async def _cmd_suggest(
    backend,
    file_path: str,
    line: int,
    column: int,
    language: str = "",
    workspace: Optional[str] = None,
) -> int:
    """Print every suggestion for one request as JSON lines. Returns exit code."""
    from cursor_tab.config import NewSuggestionRequest
    from cursor_tab.decoder import decode_all
    from cursor_tab.errors import CursorTabError
    from cursor_tab.orchestrator import build_stream_request, synthesize_range

    if backend is None:
        print("Cursor client not initialized (no access token found)", file=sys.stderr)
        return 1

    path = Path(file_path)
    try:
        contents = path.read_text()
    except OSError as e:
        print(f"Cannot read {file_path}: {e}", file=sys.stderr)
        return 1

    request = NewSuggestionRequest(
        file_contents=contents,
        line=line,
        column=column,
        file_path=path.name,
        language_id=language or _LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), ""),
        workspace_path=workspace or os.getcwd(),
    )

    stream = None
    try:
        stream = await backend.stream_cpp(build_stream_request(request))
        suggestions = await decode_all(stream)
    except CursorTabError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if stream is not None:
            await stream.aclose()

    for decoded in suggestions:
        rng = synthesize_range(decoded.line_range, line, column)
        json.dump({
            "suggestion": decoded.text,
            "range_replace": rng.model_dump() if rng else None,
            "binding_id": decoded.binding_id,
        }, sys.stdout)
        sys.stdout.write("\n")

    if not suggestions:
        print("No suggestions returned", file=sys.stderr)
    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    # Load env
    from dotenv import load_dotenv
    load_dotenv()

    from cursor_tab.config import Settings

    settings = Settings.from_env()
    if args.log_file:
        settings.log_file = args.log_file
    if args.port is not None:
        settings.port = args.port

    _configure_logging(settings.log_file, args.verbose)
    backend = _build_backend(settings)

    if args.command in (None, "serve"):
        try:
            code = asyncio.run(_cmd_serve(settings, backend))
        except KeyboardInterrupt:
            code = 0
    elif args.command == "suggest":
        code = asyncio.run(_cmd_suggest(
            backend,
            file_path=args.file,
            line=args.line,
            column=args.column,
            language=args.language,
            workspace=args.workspace,
        ))
    else:
        parser.print_help()
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
