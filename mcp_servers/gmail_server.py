# mcp_servers/gmail_server.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the MCP (Model Context Protocol) server: the part an AI client
# (Cursor, Claude Desktop, ...) actually talks to. It advertises what we
# can do and routes each request to the Gmail client.
#
# Think of MCP like a USB port: a standard plug that lets any AI client
# connect to any tool. This server IS the peripheral.
#
# WHAT IT ADVERTISES:
#   Tools:     search_threads, create_draft, get_personal_email_style_guide,
#              extract_attachment_by_filename, extract_attachment_text,
#              fetch_email_bodies
#   Resource:  file://personal-email-style-guide (the style guide markdown)
#   Prompts:   generate-email-tone (rebuild the style guide),
#              server-status (where our files live, and whether they exist)
#
# HOW A TOOL CALL FLOWS:
#   1. Client: "call search_threads with query='is:unread'"
#   2. call_tool() hands it to dispatch_tool() on a worker thread (Gmail
#      calls block; the event loop must keep serving the protocol)
#   3. dispatch_tool() checks the arguments, calls GmailClient, and returns
#      the result as indented JSON text
#   4. An exception becomes an MCP error result the client can read
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import asyncio
import json

# The low-level MCP server: we register handlers with decorators and it
# deals with the JSON-RPC protocol details.
from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents

# stdio transport: the client starts us as a subprocess and talks to us
# through stdin/stdout pipes.
from mcp.server.stdio import stdio_server

from rich.console import Console

from agents.style_guide_agent import (
    StyleGuideError, ensure_style_guide_exists, generate_style_guide, llm_available,
)
from config.settings import (
    DEFAULT_MAX_THREADS, MAX_THREAD_IDS_PER_REQUEST, SERVER_NAME, SERVER_VERSION,
    STYLE_GUIDE_RESOURCE_URI,
)
from mcp_servers.context import ServerContext
from storage.app_data import read_style_guide

console = Console(stderr=True)

STYLE_GUIDE_MIME = "text/markdown"


# ── TOOL DEFINITIONS ───────────────────────────────────────────────────

SEARCH_THREADS_DESCRIPTION = """Search Gmail threads using Gmail's query syntax.

Results include each thread's subject, sender, snippet, message count, any
attachments (with the messageId to extract them from) and any existing drafts.

GMAIL SEARCH OPERATORS:
  from:amy@example.com           - From a specific sender
  to:me / cc:john@example.com    - Sent to / CC'd to someone
  subject:"quarterly review"     - Subject contains text
  after:2025/06/01 before:2025/06/07 - Date range
  older_than:7d / newer_than:2m  - Relative age (d/m/y)
  has:attachment / filename:pdf  - Attachments
  label:important / category:promotions
  is:unread / is:starred / is:important
  in:sent / in:trash / in:anywhere
  "exact phrase" / (dinner movie) / dinner -movie
  from:amy OR from:bob / from:amy AND to:david
  larger:10M / smaller:1M

EXAMPLE QUERIES:
  "is:unread"                              - All unread emails
  "subject:invoice older_than:30d"         - Old invoices
  "has:attachment filename:pdf"            - PDF attachments
  "(urgent OR important) newer_than:1d"    - Recent urgent/important emails"""


def tool_definitions() -> list[types.Tool]:
    """
    Describe every tool we offer.

    Returns:
        Tool objects with names, descriptions, and JSON input schemas.
    """
    return [
        types.Tool(
            name="search_threads",
            description=SEARCH_THREADS_DESCRIPTION,
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": (
                            "Gmail search query using the operators above "
                            "(e.g., 'from:example@gmail.com', 'subject:meeting', 'is:unread')"
                        ),
                    },
                    "max_results": {
                        "type": "number",
                        "description": f"Maximum number of threads to return (default: {DEFAULT_MAX_THREADS})",
                    },
                },
                "required": ["query"],
            },
        ),
        types.Tool(
            name="create_draft",
            description=(
                "Create a Gmail draft email or update an existing draft if one exists for "
                "the thread. When a thread_id is provided, an existing draft in that thread "
                "is overwritten, so the draft can be revised over several calls. Important: "
                "before writing any email, read the file://personal-email-style-guide resource "
                "(or call get_personal_email_style_guide) to match the user's writing style."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "to": {"type": "string", "description": "Recipient email address"},
                    "subject": {"type": "string", "description": "Email subject line"},
                    "body": {"type": "string", "description": "Email body content"},
                    "thread_id": {
                        "type": "string",
                        "description": (
                            "Thread ID if this is a reply (optional). If a draft exists for "
                            "this thread, it is updated instead of creating a new one."
                        ),
                    },
                },
                "required": ["to", "subject", "body"],
            },
        ),
        types.Tool(
            name="get_personal_email_style_guide",
            description=(
                "Get the user's personal email writing style guide. Call this BEFORE "
                "drafting any email to match the user's writing style and tone. Same "
                "content as the file://personal-email-style-guide resource, for clients "
                "that can't read resources."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        types.Tool(
            name="extract_attachment_by_filename",
            description=(
                "Extract readable text from an email attachment (PDF, DOCX, TXT) by "
                "filename. Use search_threads first to find messages with attachments. "
                "Prefer this over extract_attachment_text: filenames are stable, "
                "attachment IDs are not."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "message_id": {
                        "type": "string",
                        "description": "The Gmail message ID containing the attachment (from search_threads results)",
                    },
                    "filename": {
                        "type": "string",
                        "description": "The filename of the attachment to extract (e.g., 'document.pdf', 'CV.docx')",
                    },
                },
                "required": ["message_id", "filename"],
            },
        ),
        types.Tool(
            name="extract_attachment_text",
            description=(
                "Extract readable text from an email attachment (PDF, DOCX, TXT) by "
                "attachment ID. The ID must come from a recent search_threads call."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "message_id": {
                        "type": "string",
                        "description": "The Gmail message ID containing the attachment",
                    },
                    "attachment_id": {
                        "type": "string",
                        "description": "The attachment ID from search_threads results",
                    },
                },
                "required": ["message_id", "attachment_id"],
            },
        ),
        types.Tool(
            name="fetch_email_bodies",
            description=(
                "Fetch full email bodies for specific threads after browsing with "
                "snippets. Can fetch several threads at once."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "thread_ids": {
                        "type": "string",
                        "description": (
                            "A comma-separated list of thread IDs to fetch full email "
                            f"content for (e.g., 'id1,id2,id3'), at most {MAX_THREAD_IDS_PER_REQUEST}"
                        ),
                    },
                },
                "required": ["thread_ids"],
            },
        ),
    ]


# ── ARGUMENT HELPERS ───────────────────────────────────────────────────

def _require_string(arguments: dict, key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} parameter is required and must be a string")
    return value


def _optional_string(arguments: dict, key: str) -> str:
    value = arguments.get(key)
    return value if isinstance(value, str) else ""


def _max_results(arguments: dict) -> int:
    value = arguments.get('max_results')
    # JSON numbers can arrive as floats; bool is an int subclass, ignore it
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return DEFAULT_MAX_THREADS


def parse_thread_ids(raw: str) -> list[str]:
    """
    Split "id1, id2,id3" into ids, validating the count.

    Raises:
        ValueError: no ids at all, or more than MAX_THREAD_IDS_PER_REQUEST.
    """
    thread_ids = [tid.strip() for tid in raw.split(',') if tid.strip()]
    if not thread_ids:
        raise ValueError("At least one thread_id must be provided")
    if len(thread_ids) > MAX_THREAD_IDS_PER_REQUEST:
        raise ValueError(f"Maximum {MAX_THREAD_IDS_PER_REQUEST} thread_ids allowed per request")
    return thread_ids


def _to_json(result) -> str:
    return json.dumps(result, indent=2, default=str)


# ── STYLE GUIDE ACCESS ─────────────────────────────────────────────────

def load_style_guide_text(ctx: ServerContext) -> str:
    """
    Return the style guide markdown (frontmatter removed).

    Generates the guide first when the file doesn't exist yet.

    Raises:
        StyleGuideError: missing and could not be generated.
    """
    guide = read_style_guide()
    if guide is None:
        ensure_style_guide_exists(ctx.gmail)
        guide = read_style_guide()
        if guide is None:
            raise StyleGuideError(f"failed to read generated style guide at {ctx.style_guide_path}")
    return guide['content']


# ── TOOL DISPATCH ──────────────────────────────────────────────────────

def dispatch_tool(ctx: ServerContext, name: str, arguments: dict | None) -> str:
    """
    Run one tool call and return its result as text.

    This is synchronous (Gmail and LLM calls block); call_tool() runs it on
    a worker thread.

    Raises:
        ValueError:      Unknown tool or bad arguments.
        GmailToolError:  The Gmail operation failed.
        StyleGuideError: The style guide is missing and couldn't be made.
    """
    arguments = arguments or {}
    gmail = ctx.gmail

    if name == "search_threads":
        query = _require_string(arguments, 'query')
        return _to_json(gmail.search_threads(query, _max_results(arguments)))

    elif name == "create_draft":
        return _to_json(gmail.create_draft(
            to=_require_string(arguments, 'to'),
            subject=_require_string(arguments, 'subject'),
            body=_require_string(arguments, 'body'),
            thread_id=_optional_string(arguments, 'thread_id'),
        ))

    elif name == "get_personal_email_style_guide":
        return load_style_guide_text(ctx)

    elif name == "extract_attachment_by_filename":
        return _to_json(gmail.extract_attachment_by_filename(
            _require_string(arguments, 'message_id'),
            _require_string(arguments, 'filename'),
        ))

    elif name == "extract_attachment_text":
        return _to_json(gmail.extract_attachment_text(
            _require_string(arguments, 'message_id'),
            _require_string(arguments, 'attachment_id'),
        ))

    elif name == "fetch_email_bodies":
        thread_ids = parse_thread_ids(_require_string(arguments, 'thread_ids'))
        return _to_json(gmail.fetch_email_bodies(thread_ids))

    # If the client asked for a tool we don't have, raise an error
    raise ValueError(f"Unknown tool: {name}")


# ── PROMPTS ────────────────────────────────────────────────────────────

def prompt_definitions() -> list[types.Prompt]:
    return [
        types.Prompt(
            name="generate-email-tone",
            description="Generate email tone personalization by analyzing your sent emails",
        ),
        types.Prompt(
            name="server-status",
            description="Show Gmail MCP server status and file locations",
        ),
    ]


def _found(path) -> str:
    return "Found" if path.exists() else "Not found"


def server_status_text(ctx: ServerContext) -> str:
    """The markdown status report shown by the server-status prompt."""
    return (
        f"**{SERVER_NAME} Status**\n\n"
        f"**App Data Directory:** {ctx.app_dir}\n\n"
        f"**Token File:** {ctx.token_path}\n"
        f"   Status: {_found(ctx.token_path)}\n\n"
        f"**Style Guide File:** {ctx.style_guide_path}\n"
        f"   Status: {_found(ctx.style_guide_path)}\n\n"
        f"**Available Commands:**\n"
        f"- Use /generate-email-tone to create email tone personalization\n"
        f"- Use tools: search_threads (includes drafts), create_draft (create/update), "
        f"extract_attachment_by_filename, extract_attachment_text, fetch_email_bodies, "
        f"get_personal_email_style_guide\n"
        f"- Use resource: {STYLE_GUIDE_RESOURCE_URI}"
    )


def generate_tone_text(ctx: ServerContext) -> str:
    """Regenerate the style guide and describe how it went."""
    if not llm_available():
        return "Cannot generate tone: no LLM API key set (OPENAI_API_KEY or ANTHROPIC_API_KEY)"

    try:
        path = generate_style_guide(ctx.gmail)
    except StyleGuideError as e:
        return f"Failed to generate tone: {e}"

    return (
        f"Successfully generated personal email style guide at: {path}\n\n"
        f"You can now use the {STYLE_GUIDE_RESOURCE_URI} resource for personalized email writing."
    )


def _prompt_result(description: str, text: str) -> types.GetPromptResult:
    return types.GetPromptResult(
        description=description,
        messages=[
            types.PromptMessage(
                role="user",
                content=types.TextContent(type="text", text=text),
            )
        ],
    )


# ── SERVER ASSEMBLY ────────────────────────────────────────────────────

def _same_uri(uri, expected: str) -> bool:
    # URL parsing may add a trailing slash to "file://name"
    return str(uri).rstrip('/') == expected.rstrip('/')


def build_server(ctx: ServerContext) -> Server:
    """
    Create the MCP server with every handler bound to ctx.

    Args:
        ctx: The shared server context built in main.py.

    Returns:
        A ready-to-run low-level MCP Server.
    """
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return tool_definitions()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        console.print(f"   [TOOL] {name}", markup=False)
        text = await asyncio.to_thread(dispatch_tool, ctx, name, arguments)
        return [types.TextContent(type="text", text=text)]

    @server.list_resources()
    async def list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=STYLE_GUIDE_RESOURCE_URI,
                name="Personal Email Style Guide",
                description="Instructions on how to write emails in the user's personal style and tone",
                mimeType=STYLE_GUIDE_MIME,
            )
        ]

    @server.read_resource()
    async def read_resource(uri) -> list[ReadResourceContents]:
        if not _same_uri(uri, STYLE_GUIDE_RESOURCE_URI):
            raise ValueError(f"Unknown resource: {uri}")
        text = await asyncio.to_thread(load_style_guide_text, ctx)
        return [ReadResourceContents(content=text, mime_type=STYLE_GUIDE_MIME)]

    @server.list_prompts()
    async def list_prompts() -> list[types.Prompt]:
        return prompt_definitions()

    @server.get_prompt()
    async def get_prompt(name: str, arguments: dict | None) -> types.GetPromptResult:
        if name == "generate-email-tone":
            text = await asyncio.to_thread(generate_tone_text, ctx)
            return _prompt_result("Email tone generation", text)
        if name == "server-status":
            return _prompt_result("Server status", server_status_text(ctx))
        raise ValueError(f"Unknown prompt: {name}")

    return server


# ── SERVER STARTUP ─────────────────────────────────────────────────────

async def run_stdio(ctx: ServerContext) -> None:
    """
    Serve MCP over stdin/stdout until the client disconnects.

    The client starts this program as a subprocess and talks to it via
    those pipes, which is why nothing else may ever print to stdout.
    """
    server = build_server(ctx)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
