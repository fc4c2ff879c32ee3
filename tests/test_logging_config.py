"""Tests for log redaction."""

import logging

from utils.logging_config import SensitiveDataFilter, configure_logging, redact


class TestRedaction:
    """Test masking of caller data and credentials."""

    def test_phone_masked(self):
        """Test that phone numbers keep only area code and last four digits."""
        assert redact("Caller at 512-267-7233 asked") == "Caller at 512-***-7233 asked"

    def test_api_keys_removed(self):
        """Test provider key redaction."""
        text = redact("using sk-abcdefghijklmnop1234 and tvly-abcdefghij12345")

        assert "sk-abc" not in text
        assert "tvly-abc" not in text
        assert text.count("[REDACTED_API_KEY]") == 2

    def test_bearer_and_key_value(self):
        """Test header and assignment style secrets."""
        assert redact("Authorization: Bearer abc.def.ghi") == "Authorization: Bearer [REDACTED_TOKEN]"
        assert redact("api_key=secret123") == "api_key=[REDACTED]"

    def test_email_removed(self):
        """Test email redaction."""
        assert redact("contact jane.doe@example.com") == "contact [REDACTED_EMAIL]"

    def test_empty(self):
        """Test empty input."""
        assert redact("") == ""

    def test_filter_rewrites_record(self):
        """Test that the logging filter redacts formatted messages."""
        record = logging.LogRecord(
            "test", logging.INFO, __file__, 1, "Caller %s said %s", ("512-267-7233", "hi"), None
        )

        assert SensitiveDataFilter().filter(record) is True
        assert record.getMessage() == "Caller 512-***-7233 said hi"

    def test_configure_logging(self):
        """Test that configuration installs one filtered handler."""
        configure_logging(verbose=True)
        root = logging.getLogger()

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert any(isinstance(f, SensitiveDataFilter) for f in root.handlers[0].filters)

        configure_logging(verbose=False)
        assert root.level == logging.WARNING
