# tests/test_main.py
#
# Tests for the command line and startup sequence. Gmail, the style guide
# and the transports are all mocked.

import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from agents.style_guide_agent import StyleGuideError
from tools.gmail_tools import GmailAuthError


class TestParseArgs:

    def test_default_is_stdio(self):
        args = main.parse_args([])
        assert args.http is None
        assert args.host == "0.0.0.0"

    def test_http_default_port(self):
        assert main.parse_args(["--http"]).http == 8080

    def test_http_custom_port(self):
        assert main.parse_args(["--http", "9090"]).http == 9090

    def test_host(self):
        assert main.parse_args(["--http", "--host", "127.0.0.1"]).host == "127.0.0.1"


class TestStartup:

    @pytest.fixture(autouse=True)
    def app_dir(self, tmp_path, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, 'APP_DIR_OVERRIDE', str(tmp_path))

    @patch('main.GmailClient')
    def test_auth_failure_exits(self, mock_client_cls):
        mock_client_cls.connect.side_effect = GmailAuthError("GMAIL_CLIENT_ID environment variable not set")
        with pytest.raises(SystemExit) as excinfo:
            main.main([])
        assert excinfo.value.code == 1

    @patch('main.run_stdio', new_callable=MagicMock)
    @patch('main.asyncio.run')
    @patch('main.ensure_style_guide_exists', side_effect=StyleGuideError("no key"))
    @patch('main.GmailClient')
    def test_missing_style_guide_is_not_fatal(self, mock_client_cls, mock_ensure, mock_run, mock_run_stdio):
        main.main([])

        mock_ensure.assert_called_once_with(mock_client_cls.connect.return_value)
        mock_run.assert_called_once()
        ctx = mock_run_stdio.call_args.args[0]
        assert ctx.gmail is mock_client_cls.connect.return_value

    @patch('main.serve_http')
    @patch('main.ensure_style_guide_exists')
    @patch('main.GmailClient')
    def test_http_mode(self, mock_client_cls, mock_ensure, mock_serve_http):
        main.main(["--http", "9000", "--host", "127.0.0.1"])
        ctx, host, port = mock_serve_http.call_args.args
        assert (host, port) == ("127.0.0.1", 9000)

    @patch('uvicorn.run')
    def test_serve_http_verifies_gmail_first(self, mock_uvicorn_run):
        from mcp_servers.context import ServerContext
        ctx = ServerContext.create(MagicMock())

        main.serve_http(ctx, "0.0.0.0", 8080)

        ctx.gmail.get_user_profile.assert_called_once()
        assert ctx.authenticated is True
        assert mock_uvicorn_run.call_args.kwargs['port'] == 8080
