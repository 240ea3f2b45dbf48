"""Tests for keeping credential material out of logs and errors."""

from __future__ import annotations

import logging

import pytest

from managedcluster.security import (
    REDACTED,
    log_security_audit_event,
    mask_identifier,
    redact_command,
    scrub,
)


class TestMaskIdentifier:
    """Tests for identifier truncation."""

    def test_long_identifier_truncated(self) -> None:
        assert mask_identifier("11111111-2222-3333-4444-555555555555") == "11111111..."

    def test_short_identifier_unchanged(self) -> None:
        assert mask_identifier("abc") == "abc"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty(self, value: str | None) -> None:
        assert mask_identifier(value) == ""


class TestRedactCommand:
    """Tests for command line redaction."""

    def test_secret_flag_value_hidden(self) -> None:
        args = ["kubelogin", "--client-id", "abc", "--client-secret", "hunter2", "--tenant-id", "t"]

        redacted = redact_command(args)

        assert redacted == [
            "kubelogin",
            "--client-id",
            "abc",
            "--client-secret",
            REDACTED,
            "--tenant-id",
            "t",
        ]

    def test_known_secret_hidden_anywhere(self) -> None:
        assert redact_command(["tool", "hunter2"], ["hunter2"]) == ["tool", REDACTED]

    def test_original_untouched(self) -> None:
        args = ["--password", "hunter2"]
        redact_command(args)
        assert args == ["--password", "hunter2"]

    def test_empty_secret_ignored(self) -> None:
        assert redact_command(["tool", ""], [""]) == ["tool", ""]


class TestScrub:
    """Tests for free-text scrubbing."""

    def test_every_occurrence_replaced(self) -> None:
        text = "secret hunter2 rejected; retry with hunter2"
        assert scrub(text, ["hunter2"]) == f"secret {REDACTED} rejected; retry with {REDACTED}"

    def test_no_secrets(self) -> None:
        assert scrub("plain text", []) == "plain text"


class TestAuditEvent:
    """Tests for security audit logging."""

    def test_structured_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="managedcluster.security")

        log_security_audit_event(
            "kubeconfig_conversion", "cluster1", action="convert", result="success"
        )

        record = caplog.records[-1]
        assert record.getMessage() == "Security audit: kubeconfig_conversion"
        assert record.security_audit is True
        assert record.cluster == "cluster1"
        assert record.action == "convert"
        assert record.result == "success"
