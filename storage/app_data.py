# storage/app_data.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Manages the server's little corner of the filesystem: the per-user app
# data folder, the cached OAuth token, and the personal email style guide.
#
# The style guide is a markdown file with YAML "frontmatter" on top:
#
#   ---
#   generated_at: '2026-10-19T17:00:00+00:00'
#   email_address: me@example.com
#   sample_count: 25
#   ---
#   # Personal Email Style Guide for me@example.com
#   ...
#
# The frontmatter is bookkeeping for us; agents only ever get the markdown.
#
# IMPORTANT: No Gmail and no AI in here. Pure file operations.
# ============================================================================

import os
import sys
from pathlib import Path

import yaml
from rich.console import Console
from rich.markup import escape

from config import settings

console = Console(stderr=True)


# ── LOCATIONS ──────────────────────────────────────────────────────────

def get_app_data_dir() -> Path:
    """
    Return the app data folder, creating it if needed.

    Falls back to the current directory (with a warning) when the folder
    can't be created.
    """
    if settings.APP_DIR_OVERRIDE:
        app_dir = Path(settings.APP_DIR_OVERRIDE).expanduser()
    elif sys.platform == "win32":
        app_dir = Path(os.environ.get("APPDATA", ".")) / settings.APP_DIR_NAME
    else:
        app_dir = Path.home() / f".{settings.APP_DIR_NAME}"

    try:
        app_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        console.print(f"[yellow]WARN[/yellow] Could not create app data directory: {escape(str(e))}")
        return Path(".")

    return app_dir


def get_app_file_path(filename: str) -> Path:
    """Absolute path of a file inside the app data folder."""
    return get_app_data_dir() / filename


def token_path() -> Path:
    return get_app_file_path(settings.TOKEN_FILENAME)


def style_guide_path() -> Path:
    return get_app_file_path(settings.STYLE_GUIDE_FILENAME)


# ── STYLE GUIDE FILE ───────────────────────────────────────────────────

def write_style_guide(content: str, metadata: dict | None = None) -> Path:
    """
    Save the style guide, with optional frontmatter metadata.

    Args:
        content:  The markdown guide produced by the LLM.
        metadata: Key/value pairs stored as YAML frontmatter.

    Returns:
        Path of the written file.
    """
    path = style_guide_path()
    text = content.strip() + "\n"

    if metadata:
        yaml_str = yaml.safe_dump(metadata, default_flow_style=False, sort_keys=False)
        text = f"---\n{yaml_str}---\n\n{text}"

    path.write_text(text, encoding='utf-8')
    console.print(f"[green]OK[/green] Style guide written: {escape(str(path))}")
    return path


def read_style_guide() -> dict | None:
    """
    Read the style guide and split frontmatter from the markdown body.

    Returns:
        {'frontmatter': {...}, 'content': '...', 'filepath': '...'},
        or None if the file doesn't exist.
    """
    path = style_guide_path()
    if not path.exists():
        return None

    text = path.read_text(encoding='utf-8')
    frontmatter = {}
    content = text.strip()

    if text.startswith('---'):
        parts = text.split('---', 2)
        if len(parts) >= 3:
            try:
                frontmatter = yaml.safe_load(parts[1]) or {}
            except yaml.YAMLError:
                # Hand-edited guide with broken metadata: keep the text.
                frontmatter = {}
            content = parts[2].strip()

    return {
        'frontmatter': frontmatter,
        'content': content,
        'filepath': str(path),
    }
