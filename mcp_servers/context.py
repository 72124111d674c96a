# mcp_servers/context.py
#
# Everything a request handler needs, gathered in one object.
#
# main.py builds exactly one ServerContext after logging in to Gmail and
# hands it to build_server() (stdio) or create_app() (HTTP). Handlers read
# from it; nothing about the running server lives in module globals.

from dataclasses import dataclass
from pathlib import Path

from storage.app_data import get_app_data_dir, style_guide_path, token_path
from tools.gmail_tools import GmailClient


@dataclass
class ServerContext:
    """The Gmail client plus the file locations the server reports on."""
    gmail: GmailClient
    app_dir: Path
    token_path: Path
    style_guide_path: Path

    # Set once a Gmail call has succeeded with the current credentials.
    authenticated: bool = False

    @classmethod
    def create(cls, gmail: GmailClient, authenticated: bool = False) -> "ServerContext":
        return cls(
            gmail=gmail,
            app_dir=get_app_data_dir(),
            token_path=token_path(),
            style_guide_path=style_guide_path(),
            authenticated=authenticated,
        )
