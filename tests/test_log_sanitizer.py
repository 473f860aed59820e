"""Tests for log redaction."""

import logging

from utils.log_sanitizer import SanitizingFilter, mask_token, mask_tokens, sanitize_log


class TestSanitizeLog:
    """Test secrets are redacted."""

    def test_bearer_header(self):
        assert "secret-value" not in sanitize_log("Authorization: Bearer secret-value.abc")

    def test_fcm_token(self):
        token = "dXk2bW9ja2lk:APA91bHkLm3nQ0pR7sT9uVwXyZ012345"
        assert sanitize_log(f"send to {token} failed") == "send to [FCM_TOKEN] failed"

    def test_email(self):
        assert sanitize_log("user me@example.com") == "user [EMAIL]"

    def test_anthropic_key(self):
        assert sanitize_log("bad key sk-ant-api03-abcdefghijkl") == "bad key [ANTHROPIC_KEY]"

    def test_query_param(self):
        assert sanitize_log("GET /rest/v1/reminders?apikey=abcdefghijk123") == "GET /rest/v1/reminders?apikey=[REDACTED]"

    def test_plain_text_untouched(self):
        assert sanitize_log("Supabase GET reminders failed") == "Supabase GET reminders failed"


class TestSanitizingFilter:
    """Test the logging filter."""

    def test_rewrites_formatted_message(self):
        record = logging.LogRecord("nudge", logging.ERROR, __file__, 1, "failed: %s", ("Bearer abc.def",), None)

        assert SanitizingFilter().filter(record) is True
        assert record.getMessage() == "failed: Bearer [REDACTED]"

    def test_leaves_clean_records_alone(self):
        record = logging.LogRecord("nudge", logging.INFO, __file__, 1, "sent %d", (3,), None)

        SanitizingFilter().filter(record)

        assert record.args == (3,)


class TestMaskToken:
    """Test token masking."""

    def test_long_token(self):
        assert mask_token("abcdefghijklmnop") == "abcd…mnop"

    def test_short_token(self):
        assert mask_token("abc") == "***"

    def test_missing(self):
        assert mask_token(None) == "<none>"

    def test_many(self):
        assert mask_tokens(["abcdefghij", "xy"]) == "abcd…ghij, **"
