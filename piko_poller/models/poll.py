# piko_poller/models/poll.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from piko_poller.models.field import FieldDescriptor


@dataclass
class RawExtraction:
    descriptor: FieldDescriptor
    raw_value: str | None
    raw_unit: str | None = None
    error: str | None = None   # set when the field is misconfigured

    @property
    def present(self) -> bool:
        return self.raw_value is not None and self.error is None


@dataclass
class TypedValue:
    value: float | str
    unit: str | None = None


@dataclass
class Conversion:
    """Result of converting one raw value: either a value or an error."""

    value: float | str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PollOutcome:
    success: bool
    reason: str | None = None          # TransportError / UnexpectedStatus / ParseError
    status_code: int | None = None
    message: str | None = None
    published: dict[str, Any] = field(default_factory=dict)
    field_errors: dict[str, str] = field(default_factory=dict)
    timestamp: datetime | None = None

    @classmethod
    def failure(cls, exc, *, timestamp: datetime | None = None) -> "PollOutcome":
        return cls(
            success=False,
            reason=getattr(exc, "reason", type(exc).__name__),
            status_code=getattr(exc, "status_code", None),
            message=str(exc),
            timestamp=timestamp,
        )
