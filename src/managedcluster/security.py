"""Helpers that keep credential material out of logs and error messages.

SECURITY INVARIANTS:
1. A client secret is never written to a log record or exception message
2. Identifiers (client id, tenant id) are logged truncated
3. Helper command lines are redacted before they are logged
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

REDACTED = "<redacted>"

# Flags whose following argument is a secret value
SECRET_FLAGS: tuple[str, ...] = ("--client-secret", "--password")


def mask_identifier(value: str | None) -> str:
    """Truncate an identifier for logging (first 8 characters)."""
    if not value:
        return ""
    return value[:8] + "..." if len(value) > 8 else value


def redact_command(args: Sequence[str], secrets: Iterable[str] = ()) -> list[str]:
    """Return a copy of ``args`` safe to log.

    Values following any flag in SECRET_FLAGS are replaced, as is any
    argument equal to one of ``secrets``.
    """
    known = {s for s in secrets if s}
    redacted: list[str] = []
    hide_next = False
    for arg in args:
        if hide_next or arg in known:
            redacted.append(REDACTED)
        else:
            redacted.append(arg)
        hide_next = arg in SECRET_FLAGS
    return redacted


def scrub(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of a secret in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def log_security_audit_event(
    event_type: str,
    cluster_name: str,
    target_resource: str | None = None,
    action: str | None = None,
    result: str | None = None,
) -> None:
    """Log a security-relevant audit event with structured fields."""
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "cluster": cluster_name,
            "target_resource": target_resource,
            "action": action,
            "result": result,
        },
    )
