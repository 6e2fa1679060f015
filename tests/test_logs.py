"""Tests for log redaction."""

import logging

from bulksync.logs import RedactingFilter, redact, setup_logging


def test_redact_tokens():
    assert redact("Authorization: Token abc123") == "Authorization: Token ***"
    assert redact("Bearer eyJhbGciOi.x-y") == "Bearer ***"
    assert redact("GET /rows?token=s3cret&page=1") == "GET /rows?token=***&page=1"
    assert redact("apiKey=XYZ") == "apiKey=***"


def test_plain_text_untouched():
    assert redact("Import finished: 3 uploaded") == "Import finished: 3 uploaded"


def test_filter_rewrites_formatted_message():
    record = logging.LogRecord(
        "bulksync", logging.INFO, __file__, 1,
        "headers=%s", ("Token abc123",), None,
    )
    assert RedactingFilter().filter(record)
    assert record.getMessage() == "headers=Token ***"


def test_setup_logging_levels():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    try:
        setup_logging(verbose=True)
        assert root.level == logging.DEBUG
        assert any(
            isinstance(f, RedactingFilter) for h in root.handlers for f in h.filters
        )
        setup_logging(verbose=False)
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.setLevel(saved[0])
        for handler in saved[1]:
            root.addHandler(handler)
