"""Logging configuration and helpers for credential-safe log lines."""

import hashlib
import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a consistent format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def token_fingerprint(token: str | None) -> str:
    """Return a short, non-reversible identifier for a credential.

    Used in log lines so that failed verifications can be correlated
    without ever writing the bearer value itself.
    """
    if not token:
        return "<empty>"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
