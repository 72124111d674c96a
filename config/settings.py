# config/settings.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "control panel" for the Gmail MCP server. Every setting that
# might change (file names, API keys, model names, size limits) lives here
# in one place, so nothing is hard-coded deep inside the tools.
#
# Values that are secrets (OAuth client, LLM keys) are read from environment
# variables. main.py loads the .env file BEFORE importing this module, so
# anything written in .env shows up here.
# ============================================================================

import os


# ── APP DATA FILES ─────────────────────────────────────────────────────
# The server keeps its state in a per-user folder:
#   Windows:    %APPDATA%\auto-gmail
#   Mac/Linux:  ~/.auto-gmail
# Set AUTO_GMAIL_HOME to point it somewhere else (containers, tests).

APP_DIR_NAME = "auto-gmail"
APP_DIR_OVERRIDE = os.environ.get("AUTO_GMAIL_HOME", "")

# The cached OAuth token (JSON, written after the first consent).
TOKEN_FILENAME = "token.json"

# The generated personal email style guide (markdown + YAML frontmatter).
STYLE_GUIDE_FILENAME = "personal-email-style-guide.md"


# ── GMAIL / OAUTH SETTINGS ─────────────────────────────────────────────

GMAIL_CLIENT_ID = os.environ.get("GMAIL_CLIENT_ID", "")
GMAIL_CLIENT_SECRET = os.environ.get("GMAIL_CLIENT_SECRET", "")
REDIRECT_URL = os.environ.get("REDIRECT_URL", "")

# Read mail and compose drafts. Nothing here can send or delete.
GMAIL_SCOPES = [
    'https://www.googleapis.com/auth/gmail.readonly',
    'https://www.googleapis.com/auth/gmail.compose',
]

# Gmail's shorthand for "the authenticated account".
GMAIL_USER_ID = "me"

# The consent flow starts a tiny local web server to catch Google's redirect.
OAUTH_CALLBACK_PORT = 8080
OAUTH_TIMEOUT_SECONDS = 300


# ── TOOL LIMITS ────────────────────────────────────────────────────────

# search_threads returns this many threads when the caller doesn't say.
DEFAULT_MAX_THREADS = 10

# fetch_email_bodies refuses requests for more threads than this.
MAX_THREAD_IDS_PER_REQUEST = 20

# Full bodies are cut here (8000 chars is roughly 2000 tokens).
FULL_BODY_CHAR_LIMIT = 8000

# Draft previews in search results are cut here.
DRAFT_SNIPPET_CHARS = 200

# PDFs longer than this are only partially read.
PDF_MAX_PAGES = 50

# Attachment filename used when Gmail doesn't give one.
UNNAMED_ATTACHMENT = "unnamed_attachment"


# ── STYLE GUIDE GENERATION ─────────────────────────────────────────────

# How many sent emails to look at, and how many of them to keep as samples.
STYLE_GUIDE_SENT_SCAN = 50
STYLE_GUIDE_MAX_SAMPLES = 25

# Emails shorter than this ("Thanks!", "ok") say nothing about style.
STYLE_GUIDE_MIN_BODY_CHARS = 50

# Used in the prompt when the Gmail profile can't be read.
UNKNOWN_EMAIL_ADDRESS = "unknown@example.com"


# ── LLM (Large Language Model) SETTINGS ────────────────────────────────
# OpenAI is the primary provider; Anthropic is the fallback.

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o")

ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

# Low temperature keeps the guide focused and repeatable.
STYLE_GUIDE_TEMPERATURE = 0.3

MAX_TOKENS = 4096


# ── RETRY SETTINGS ──────────────────────────────────────────────────
# Exponential backoff for rate-limited / overloaded LLM calls:
# 2s, 4s, 8s, 16s ... (plus or minus 25% jitter).

API_MAX_RETRIES = 5
API_RETRY_BASE_DELAY = 2.0
RETRYABLE_STATUS_CODES = (429, 502, 503, 529)


# ── SERVER SETTINGS ────────────────────────────────────────────────────

SERVER_NAME = "Gmail MCP Server"
SERVER_VERSION = "1.0.0"

DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 8080

STYLE_GUIDE_RESOURCE_URI = "file://personal-email-style-guide"
