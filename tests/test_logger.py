"""
Tests for log redaction.
"""

from medimind.utils.logger import redact_sensitive


class TestRedaction:
    """Document text and secrets are masked before rendering."""

    def test_sensitive_values_masked(self):
        event = redact_sensitive(None, "info", {
            "event": "Answering question",
            "query": "Is my hemoglobin low?",
            "api_key": "secret",
            "document_id": "labs.pdf-1",
        })

        assert event["query"] == "<redacted len=21>"
        assert event["api_key"] == "<redacted len=6>"
        assert event["document_id"] == "labs.pdf-1"
        assert event["event"] == "Answering question"

    def test_non_string_values_masked(self):
        event = redact_sensitive(None, "info", {"event": "x", "content": {"a": 1}})
        assert event["content"] == "<redacted>"
