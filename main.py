# main.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "start button" for the Gmail MCP server. An MCP client
# (Cursor, Claude Desktop, ...) launches "python main.py" and talks to it
# over stdin/stdout; or you start it yourself in HTTP mode.
#
# It does five things:
#   1. Loads API keys and OAuth settings from the .env file
#   2. Shows where the token and style guide live
#   3. Logs in to Gmail (opens the browser the very first time)
#   4. Makes sure the personal email style guide exists
#   5. Serves MCP over stdio, or the HTTP endpoints via uvicorn
#
# USAGE:
#   python main.py                     → stdio mode (what MCP clients run)
#   python main.py --http              → HTTP mode on port 8080
#   python main.py --http 9090         → HTTP mode on another port
#   python main.py --http --host 127.0.0.1
#
# NOTE: In stdio mode STDOUT is the protocol channel. All our messages go
# to STDERR.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import argparse
import asyncio
import sys

# ── LOAD ENVIRONMENT VARIABLES ─────────────────────────────────────────
# Must happen BEFORE importing our modules: config/settings.py reads the
# environment at import time.

from dotenv import load_dotenv

load_dotenv()

from rich.console import Console
from rich.markup import escape

from agents.base_agent import describe_providers
from agents.style_guide_agent import StyleGuideError, ensure_style_guide_exists
from config.settings import DEFAULT_HTTP_HOST, DEFAULT_HTTP_PORT, SERVER_NAME, SERVER_VERSION
from mcp_servers.context import ServerContext
from mcp_servers.gmail_server import run_stdio
from storage.app_data import get_app_data_dir, style_guide_path, token_path
from tools.gmail_tools import GmailAuthError, GmailClient, GmailToolError

console = Console(stderr=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"{SERVER_NAME}: Gmail tools for AI assistants over MCP"
    )

    # "--http" alone means the default port; "--http 9090" picks one.
    parser.add_argument(
        '--http', nargs='?', type=int, const=DEFAULT_HTTP_PORT, default=None,
        metavar='PORT',
        help=f"Run in HTTP mode instead of stdio (default port: {DEFAULT_HTTP_PORT})"
    )
    parser.add_argument(
        '--host', type=str, default=DEFAULT_HTTP_HOST,
        help=f"Host to bind to in HTTP mode (default: {DEFAULT_HTTP_HOST})"
    )
    return parser.parse_args(argv)


def log_file_locations() -> None:
    console.print(f"[*] App data directory: {escape(str(get_app_data_dir()))}")
    console.print(f"[*] Token file: {escape(str(token_path()))}")
    console.print(f"[*] Style guide file: {escape(str(style_guide_path()))}")


def serve_http(ctx: ServerContext, host: str, port: int) -> None:
    """Verify Gmail access, then serve the HTTP endpoints until Ctrl+C."""
    # uvicorn and the web app are only needed in HTTP mode
    import uvicorn
    from web.app import create_app

    console.print("[*] Verifying Gmail access...")
    try:
        ctx.gmail.get_user_profile()
    except GmailToolError as e:
        console.print(f"[red]ERROR[/red] Gmail authentication failed: {escape(str(e))}")
        sys.exit(1)
    ctx.authenticated = True
    console.print("[green]OK[/green] Gmail authentication successful!")

    console.print(f"[*] HTTP server starting on http://localhost:{port}")
    console.print(f"    Health check: http://localhost:{port}/health")
    console.print("    For full MCP support, point your client at stdio mode.")

    uvicorn.run(create_app(ctx, port), host=host, port=port, log_level="info")


def main(argv=None):
    """Parse arguments, log in to Gmail, and start serving."""
    args = parse_args(argv)

    console.print(f"[bold]{SERVER_NAME}[/bold] v{SERVER_VERSION}")
    log_file_locations()
    console.print(f"[*] LLM provider: {escape(describe_providers())}")

    try:
        gmail = GmailClient.connect()
    except (GmailAuthError, GmailToolError, OSError) as e:
        console.print(f"[red]ERROR[/red] Failed to create Gmail client: {escape(str(e))}")
        sys.exit(1)

    ctx = ServerContext.create(gmail)

    # A missing style guide is not fatal: the tools still work without it
    try:
        ensure_style_guide_exists(gmail)
    except StyleGuideError as e:
        console.print(f"[yellow]WARN[/yellow] {escape(str(e))}")

    if args.http is not None:
        serve_http(ctx, args.host, args.http)
    else:
        console.print("[*] Starting in stdio mode. Waiting for an MCP client...")
        console.print("    (Use Ctrl+C to stop the server)")
        asyncio.run(run_stdio(ctx))


# ── ENTRY POINT ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
