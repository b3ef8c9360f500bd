"""Tests for structured logging: context binding and credential redaction."""

import json
import logging
from uuid import uuid4

import pytest

from crosspost.logging import bind_context, clear_context, configure_structlog, get_logger, with_context
from crosspost.logging.structured import (
    REDACTED,
    add_request_context,
    add_service_info,
    redact_secrets,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


class TestProcessors:
    def test_redacts_token_fields(self):
        event = redact_secrets(
            None,
            "info",
            {
                "event": "account_refreshed",
                "access_token": "EAAB-secret",
                "Refresh_Token": "r-secret",
                "account_id": "123",
                "token": None,
            },
        )

        assert event["access_token"] == REDACTED
        assert event["Refresh_Token"] == REDACTED
        assert event["account_id"] == "123"
        assert event["token"] is None

    def test_service_name(self):
        assert add_service_info(None, "info", {})["service"] == "crosspost"

    def test_bound_context_added_without_overriding(self):
        workspace_id = uuid4()
        bind_context(request_id="req-1", workspace_id=workspace_id)

        event = add_request_context(None, "info", {"event": "x", "request_id": "explicit"})

        assert event["request_id"] == "explicit"
        assert event["workspace_id"] == str(workspace_id)

    def test_clear_context(self):
        bind_context(user_id=uuid4(), job_id=uuid4())
        clear_context()

        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_with_context_skips_none(self):
        added = with_context(operation="scheduler_sweep", batch_size=100, cursor=None)

        assert added == {"operation": "scheduler_sweep", "batch_size": 100}
        event = add_request_context(None, "info", {})
        assert event["batch_size"] == "100"
        assert "cursor" not in event


class TestJsonOutput:
    def test_json_lines_are_redacted(self, caplog):
        configure_structlog(json_format=True, log_level="INFO")
        try:
            with caplog.at_level(logging.INFO):
                bind_context(request_id="req-9")
                get_logger("tests.logging").info("token_stored", access_token="EAAB-secret", platform="facebook")
        finally:
            configure_structlog(json_format=False, log_level="INFO")

        record = json.loads(caplog.records[-1].getMessage())
        assert record["event"] == "token_stored"
        assert record["access_token"] == REDACTED
        assert record["request_id"] == "req-9"
        assert record["level"] == "info"
        assert "EAAB-secret" not in caplog.text
