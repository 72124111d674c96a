# tests/test_config.py
#
# Tests for configuration constants: validates settings exist and have
# sensible values.

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import (
    API_MAX_RETRIES,
    API_RETRY_BASE_DELAY,
    DEFAULT_MAX_THREADS,
    DRAFT_SNIPPET_CHARS,
    FULL_BODY_CHAR_LIMIT,
    GMAIL_SCOPES,
    MAX_THREAD_IDS_PER_REQUEST,
    PDF_MAX_PAGES,
    RETRYABLE_STATUS_CODES,
    STYLE_GUIDE_MAX_SAMPLES,
    STYLE_GUIDE_SENT_SCAN,
    STYLE_GUIDE_TEMPERATURE,
)


class TestConfigConstants:
    """Validate configuration values."""

    def test_max_retries_is_reasonable(self):
        """More than 10 retries would wait too long with exponential backoff."""
        assert 0 < API_MAX_RETRIES <= 10

    def test_retry_base_delay_is_reasonable(self):
        """Base delay should be between 0.1s and 10s."""
        assert 0.1 <= API_RETRY_BASE_DELAY <= 10.0

    def test_max_backoff_time(self):
        """Total worst-case wait should be under 10 minutes."""
        total_wait = sum(
            API_RETRY_BASE_DELAY * (2 ** i) for i in range(API_MAX_RETRIES - 1)
        )
        assert total_wait < 600

    def test_retryable_codes_are_rate_limits_and_overloads(self):
        assert set(RETRYABLE_STATUS_CODES) == {429, 502, 503, 529}
        assert 500 not in RETRYABLE_STATUS_CODES

    def test_scopes_cannot_send_or_delete(self):
        """We only read mail and compose drafts."""
        assert all(s.endswith(('gmail.readonly', 'gmail.compose')) for s in GMAIL_SCOPES)

    def test_tool_limits(self):
        assert DEFAULT_MAX_THREADS == 10
        assert MAX_THREAD_IDS_PER_REQUEST == 20
        assert FULL_BODY_CHAR_LIMIT == 8000
        assert DRAFT_SNIPPET_CHARS == 200

    def test_pdf_page_cap(self):
        assert PDF_MAX_PAGES == 50

    def test_style_guide_sampling(self):
        """We keep fewer samples than we scan."""
        assert STYLE_GUIDE_MAX_SAMPLES <= STYLE_GUIDE_SENT_SCAN

    def test_temperature_in_range(self):
        assert 0.0 <= STYLE_GUIDE_TEMPERATURE <= 1.0
