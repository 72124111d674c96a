# web/app.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# HTTP mode: a small web server that runs the Gmail MCP server as a
# long-lived process. Gmail login happens once at startup (main.py) and the
# process keeps running, so OAuth is never repeated.
#
# ENDPOINTS:
#   GET       /        → Info page with a client config snippet and tool list
#   GET       /health  → JSON health check
#   GET|POST  /mcp     → Placeholder JSON-RPC endpoint; full MCP is stdio
#
# CORS is open to every origin so browser-based clients can call us.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────
import sys
from datetime import datetime, timezone

# FastAPI framework imports
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

# Our project imports
from config.settings import SERVER_NAME, SERVER_VERSION
from mcp_servers.context import ServerContext
from mcp_servers.gmail_server import tool_definitions


# ── RESPONSE MODELS ───────────────────────────────────────────────────

class HealthStatus(BaseModel):
    """What /health reports."""
    status: str
    server: str
    version: str
    timestamp: str
    gmail_authenticated: bool


def _short_description(description: str) -> str:
    """First line of a tool description, for the info page."""
    return description.strip().splitlines()[0]


def render_info_page(port: int) -> str:
    """The HTML served at "/"."""
    tool_items = "\n".join(
        f"<li>{tool.name} - {_short_description(tool.description or '')}</li>"
        for tool in tool_definitions()
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>{SERVER_NAME}</title></head>
<body>
<h1>{SERVER_NAME}</h1>
<p><strong>Status:</strong> Running in HTTP mode on port {port}</p>
<p><strong>Client Configuration:</strong></p>
<pre>
{{
  "mcpServers": {{
    "gmail-http": {{
      "url": "http://localhost:{port}"
    }}
  }}
}}
</pre>
<p><em>Copy the above configuration to your MCP client settings.</em></p>
<h2>Available Tools:</h2>
<ul>
{tool_items}
</ul>
</body>
</html>"""


# ── APP FACTORY ────────────────────────────────────────────────────────

def create_app(ctx: ServerContext, port: int) -> FastAPI:
    """
    Build the FastAPI app for HTTP mode.

    Args:
        ctx:  The shared server context (already authenticated).
        port: The port we're served on, shown on the info page.
    """
    app = FastAPI(
        title=SERVER_NAME,
        description="Gmail tools for AI assistants over the Model Context Protocol",
        version=SERVER_VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/", response_class=HTMLResponse)
    async def info_page():
        return HTMLResponse(content=render_info_page(port))

    @app.get("/health", response_model=HealthStatus)
    async def health():
        return HealthStatus(
            status="healthy",
            server=SERVER_NAME,
            version=SERVER_VERSION,
            timestamp=datetime.now(timezone.utc).isoformat(timespec='seconds'),
            gmail_authenticated=ctx.authenticated,
        )

    @app.api_route("/mcp", methods=["GET", "POST"])
    async def mcp_endpoint():
        # Full MCP over HTTP isn't implemented; point clients at stdio.
        return {
            "jsonrpc": "2.0",
            "result": {
                "message": f"{SERVER_NAME} HTTP endpoint",
                "note": "For full MCP support, use stdio mode. HTTP mode is experimental.",
                "stdio_command": sys.argv[0],
            },
        }

    return app
