# piko_poller/services/value_converter.py

from __future__ import annotations

import math
import re

from piko_poller.errors import FieldConversionError
from piko_poller.models.field import ValueType
from piko_poller.models.poll import Conversion

NUMBER_PATTERN = re.compile(r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$")


def to_number(raw: str) -> float:
    """Parse a numeric literal; non-numeric or non-finite text is rejected."""
    text = raw.strip()
    # float() also takes underscores and non-ASCII digits
    if not NUMBER_PATTERN.match(text):
        raise ValueError(f"not a number: {raw!r}")
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def convert(raw: str, value_type: ValueType) -> float | str:
    if value_type == ValueType.NUMBER:
        return to_number(raw)
    if value_type == ValueType.STRING:
        return raw
    # The field table is static; anything else is a programming error.
    raise TypeError(f"unknown cast type - {value_type!r}")


def convert_field(field_id: str, raw: str, value_type: ValueType, log=None) -> Conversion:
    """Convert one field, reporting bad source data instead of raising."""
    if log is not None:
        log.debug("try to convert %s to %s", raw, getattr(value_type, "value", value_type))
    try:
        return Conversion(value=convert(raw, value_type))
    except ValueError as exc:
        err = FieldConversionError(field_id, raw, f"{field_id}: {exc}")
        if log is not None:
            log.warning("%s", err)
        return Conversion(error=str(err))
