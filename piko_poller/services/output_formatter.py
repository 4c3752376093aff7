# piko_poller/services/output_formatter.py

from __future__ import annotations

import json
from typing import Sequence

from piko_poller.models.field import FieldDescriptor
from piko_poller.models.poll import PollOutcome


def _unit_for(store, field_id: str) -> str | None:
    if store is None:
        return None
    obj = store.get_object(field_id)
    if not obj:
        return None
    return obj["common"].get("unit")


def emit_json(outcome: PollOutcome, fields: Sequence[FieldDescriptor], store=None) -> None:
    values = []
    for desc in fields:
        if desc.id not in outcome.published:
            continue
        values.append(
            {
                "id": desc.id,
                "name": desc.name,
                "value": outcome.published[desc.id],
                "unit": _unit_for(store, desc.id),
            }
        )
    result = {
        "connected": outcome.success,
        "reason": outcome.reason,
        "status_code": outcome.status_code,
        "message": outcome.message,
        "values": values,
        "field_errors": outcome.field_errors,
    }
    print(json.dumps(result, indent=2))


def emit_human(outcome: PollOutcome, fields: Sequence[FieldDescriptor], store=None) -> None:
    if not outcome.success:
        print(f"OFFLINE: {outcome.reason} - {outcome.message}")
        return

    width = max((len(desc.id) for desc in fields), default=0)
    for desc in fields:
        if desc.id in outcome.published:
            value = outcome.published[desc.id]
            unit = _unit_for(store, desc.id)
            unit_txt = f" {unit}" if unit else ""
            print(f"{desc.id.ljust(width)}  {value}{unit_txt}")
        elif desc.id in outcome.field_errors:
            print(f"{desc.id.ljust(width)}  ERROR: {outcome.field_errors[desc.id]}")
