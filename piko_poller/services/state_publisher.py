# piko_poller/services/state_publisher.py

from __future__ import annotations

import sqlite3
from typing import Any, Dict

from piko_poller.models.field import FieldDescriptor
from piko_poller.models.poll import TypedValue

CONNECTION_ID = "info.connection"

CONNECTION_COMMON: Dict[str, Any] = {
    "name": "Device or service connected",
    "type": "boolean",
    "role": "indicator.connected",
    "read": True,
    "write": False,
}


def build_common(desc: FieldDescriptor, unit: str | None) -> Dict[str, Any]:
    common: Dict[str, Any] = {
        "name": desc.name,
        "type": desc.type.value,
        "read": desc.read,
        "write": desc.write,
        "role": desc.role,
    }
    if unit is not None:
        common["unit"] = unit
    return common


class StatePublisher:
    """Creates destination objects on demand and writes acknowledged values."""

    def __init__(self, store, log):
        self.store = store
        self.log = log

    # ------------------------------------------------------------------
    def publish(self, desc: FieldDescriptor, typed: TypedValue) -> bool:
        try:
            created = self.store.ensure_object_exists(desc.id, build_common(desc, typed.unit))
            if created:
                self.log.debug("created object %s", desc.id)
            # Object and value are separate writes; a failed write leaves the
            # object without a value until the next successful cycle.
            self.store.write_value(desc.id, typed.value, ack=True)
        except sqlite3.Error as exc:
            self.log.error("failed to publish %s: %s", desc.id, exc)
            return False
        return True

    # ------------------------------------------------------------------
    def set_connection(self, connected: bool) -> None:
        try:
            self.store.ensure_object_exists(CONNECTION_ID, CONNECTION_COMMON)
            self.store.write_value(CONNECTION_ID, bool(connected), ack=True)
        except sqlite3.Error as exc:
            self.log.error("failed to publish %s: %s", CONNECTION_ID, exc)
