# tests/test_retry.py
#
# Tests for the exponential backoff retry logic and provider fallback in
# BaseAgent. We mock the LLM clients to simulate API errors without making
# real calls.

import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from anthropic import APIStatusError
from agents.base_agent import BaseAgent


def _make_api_error(status_code: int) -> APIStatusError:
    """Create a mock APIStatusError with the given status code."""
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.headers = {}
    mock_response.json.return_value = {"error": {"type": "overloaded_error", "message": "Overloaded"}}
    return APIStatusError(
        message=f"Error code: {status_code}",
        response=mock_response,
        body={"error": {"type": "overloaded_error", "message": "Overloaded"}},
    )


class _OpenAIStatusError(Exception):
    """Any exception carrying a status_code, like the OpenAI SDK's errors."""

    def __init__(self, status_code: int):
        super().__init__(f"Error code: {status_code}")
        self.status_code = status_code


def _anthropic_response(text: str):
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


def _openai_response(text: str):
    response = MagicMock()
    response.choices[0].message.content = text
    return response


class TestAnthropicRetryLogic:
    """Tests for _call_anthropic retry with exponential backoff."""

    def setup_method(self):
        """Create a fresh BaseAgent for each test."""
        self.agent = BaseAgent()
        self.agent.system_prompt = "test"

    @patch('agents.base_agent.anthropic_client')
    def test_success_on_first_try(self, mock_client):
        """API call succeeds immediately, no retries needed."""
        mock_client.messages.create.return_value = _anthropic_response("hello")

        result = self.agent._call_anthropic("prompt")

        assert result == "hello"
        assert mock_client.messages.create.call_count == 1

    @patch('agents.base_agent.anthropic_client')
    def test_request_shape(self, mock_client):
        mock_client.messages.create.return_value = _anthropic_response("ok")
        self.agent.temperature = 0.3

        self.agent._call_anthropic("write a guide")

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs['system'] == "test"
        assert kwargs['temperature'] == 0.3
        assert kwargs['messages'] == [{"role": "user", "content": "write a guide"}]

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_retry_on_529_then_succeed(self, mock_client, mock_sleep):
        """529 error on first attempt, success on second."""
        mock_client.messages.create.side_effect = [_make_api_error(529), _anthropic_response("ok")]

        result = self.agent._call_anthropic("prompt")

        assert result == "ok"
        assert mock_client.messages.create.call_count == 2
        mock_sleep.assert_called_once()

    @patch('agents.base_agent.random.random', return_value=0.5)
    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_exponential_backoff_delays(self, mock_client, mock_sleep, mock_random):
        """Verify backoff doubles with jitter: base * 2^attempt ± 25%."""
        error_529 = _make_api_error(529)
        mock_client.messages.create.side_effect = [
            error_529, error_529, error_529, _anthropic_response("ok")
        ]

        self.agent._call_anthropic("prompt")

        # With random()=0.5, jitter = base*0.25*(2*0.5-1) = 0, so delays are exact
        sleep_calls = [call.args[0] for call in mock_sleep.call_args_list]
        from config.settings import API_RETRY_BASE_DELAY
        expected = [API_RETRY_BASE_DELAY * (2 ** i) for i in range(3)]
        assert sleep_calls == expected

    @patch('agents.base_agent.random.random', return_value=1.0)
    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_jitter_upper_bound(self, mock_client, mock_sleep, mock_random):
        mock_client.messages.create.side_effect = [_make_api_error(429), _anthropic_response("ok")]

        self.agent._call_anthropic("prompt")

        from config.settings import API_RETRY_BASE_DELAY
        assert mock_sleep.call_args.args[0] == pytest.approx(API_RETRY_BASE_DELAY * 1.25)

    @patch('config.settings.API_MAX_RETRIES', 3)
    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_exhausted_retries_raises(self, mock_client, mock_sleep):
        """All retries exhausted: the error propagates to the caller."""
        mock_client.messages.create.side_effect = _make_api_error(529)

        with pytest.raises(APIStatusError):
            self.agent._call_anthropic("prompt")

        assert mock_client.messages.create.call_count == 3

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_non_retryable_error_raises_immediately(self, mock_client, mock_sleep):
        """A 400 Bad Request should NOT be retried."""
        mock_client.messages.create.side_effect = _make_api_error(400)

        with pytest.raises(APIStatusError):
            self.agent._call_anthropic("prompt")

        assert mock_client.messages.create.call_count == 1
        mock_sleep.assert_not_called()

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_gateway_errors_are_retried(self, mock_client, mock_sleep):
        """502 and 503 are transient and retried like 429/529."""
        mock_client.messages.create.side_effect = [
            _make_api_error(502), _make_api_error(503), _anthropic_response("ok")
        ]

        assert self.agent._call_anthropic("prompt") == "ok"
        assert mock_sleep.call_count == 2


class TestOpenAIRetryLogic:

    def setup_method(self):
        self.agent = BaseAgent()
        self.agent.system_prompt = "system text"

    @patch('agents.base_agent.openai_client')
    def test_request_shape(self, mock_client):
        mock_client.chat.completions.create.return_value = _openai_response("guide")
        self.agent.temperature = 0.3

        assert self.agent._call_openai("prompt") == "guide"

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs['temperature'] == 0.3
        assert kwargs['messages'][0] == {"role": "system", "content": "system text"}
        assert kwargs['messages'][1] == {"role": "user", "content": "prompt"}

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.openai_client')
    def test_retry_on_429(self, mock_client, mock_sleep):
        mock_client.chat.completions.create.side_effect = [_OpenAIStatusError(429), _openai_response("ok")]

        assert self.agent._call_openai("prompt") == "ok"
        assert mock_client.chat.completions.create.call_count == 2

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.openai_client')
    def test_500_error_not_retried(self, mock_client, mock_sleep):
        """500 Internal Server Error is not in our retryable set."""
        mock_client.chat.completions.create.side_effect = _OpenAIStatusError(500)

        with pytest.raises(_OpenAIStatusError):
            self.agent._call_openai("prompt")

        mock_sleep.assert_not_called()


class TestProviderFallback:
    """Tests for OpenAI → Anthropic fallback logic."""

    def setup_method(self):
        self.agent = BaseAgent()

    @patch('agents.base_agent.USE_OPENAI', True)
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.openai_client')
    @patch('agents.base_agent.anthropic_client')
    def test_fallback_on_openai_failure(self, mock_anthropic, mock_openai):
        """When OpenAI fails, should fall back to Anthropic."""
        mock_openai.chat.completions.create.side_effect = Exception("OpenAI down")
        mock_anthropic.messages.create.return_value = _anthropic_response("from claude")

        result = self.agent._call_llm("prompt")

        assert result == "from claude"
        mock_openai.chat.completions.create.assert_called_once()
        mock_anthropic.messages.create.assert_called_once()

    @patch('agents.base_agent.USE_OPENAI', True)
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    @patch('agents.base_agent.openai_client')
    def test_openai_failure_without_fallback_raises(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = Exception("OpenAI down")
        with pytest.raises(Exception, match="OpenAI down"):
            self.agent._call_llm("prompt")

    @patch('agents.base_agent.USE_OPENAI', False)
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.anthropic_client')
    def test_anthropic_only(self, mock_anthropic):
        """When only Anthropic is configured, use it directly."""
        mock_anthropic.messages.create.return_value = _anthropic_response("answer")

        assert self.agent._call_llm("prompt") == "answer"

    @patch('agents.base_agent.USE_OPENAI', False)
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    def test_no_provider_raises(self):
        """When no provider is configured, raise RuntimeError."""
        with pytest.raises(RuntimeError, match="No LLM provider available"):
            self.agent._call_llm("prompt")

    @patch('agents.base_agent.USE_OPENAI', True)
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    @patch('agents.base_agent.openai_client')
    def test_run_strips_and_records_model(self, mock_openai):
        mock_openai.chat.completions.create.return_value = _openai_response("  # Guide\n\n")

        assert self.agent.run("prompt") == "# Guide"
        from config.settings import OPENAI_MODEL
        assert self.agent.last_model == OPENAI_MODEL
