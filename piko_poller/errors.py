# piko_poller/errors.py

from __future__ import annotations


class PikoError(Exception):
    """Base class for all poller errors."""


class ConfigurationError(PikoError):
    """Invalid configuration; fatal at startup."""


class SchemaError(ConfigurationError):
    """The static field table is inconsistent."""


# ----------------------------------------------------------------------
# Recoverable poll failures. Raised inside a poll cycle and converted to a
# failed PollOutcome at its boundary.
# ----------------------------------------------------------------------

class PollError(PikoError):
    reason = "PollError"


class TransportError(PollError):
    reason = "TransportError"


class UnexpectedStatus(PollError):
    reason = "UnexpectedStatus"

    def __init__(self, status_code: int, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"unexpected status code: {status_code}")


class ParseError(PollError):
    reason = "ParseError"


class FieldConversionError(PikoError):
    """Raw text of a field could not be converted to its declared type."""

    def __init__(self, field_id: str, raw_value: str, message: str | None = None):
        self.field_id = field_id
        self.raw_value = raw_value
        super().__init__(message or f"{field_id}: cannot convert {raw_value!r}")


class ExhaustedRetries(PikoError):
    """Retry budget used up; polling stops until the process is restarted."""

    def __init__(self, failures: int, max_retries: int):
        self.failures = failures
        self.max_retries = max_retries
        super().__init__(
            f"giving up after {failures} consecutive failures (max retries {max_retries})"
        )
