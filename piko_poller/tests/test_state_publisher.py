import sqlite3

from piko_poller.logging import ConsoleLog, get_logger
from piko_poller.models.field import FieldDescriptor, ValueType
from piko_poller.models.poll import TypedValue
from piko_poller.services.state_publisher import CONNECTION_ID, StatePublisher, build_common
from piko_poller.tests.fakes import RecordingStore


ConsoleLog(level="INFO", quiet=True).setup()
LOG = get_logger("test")

POWER = FieldDescriptor("power", "Power", "//Power/@Value", "//Power/@Unit", ValueType.NUMBER, role="value.power")


def test_common_metadata():
    assert build_common(POWER, "W") == {
        "name": "Power",
        "type": "number",
        "read": True,
        "write": False,
        "role": "value.power",
        "unit": "W",
    }
    assert "unit" not in build_common(POWER, None)


def test_publish_creates_object_and_acks_value():
    store = RecordingStore()
    publisher = StatePublisher(store, LOG)

    assert publisher.publish(POWER, TypedValue(523.0, "W")) is True
    assert store.get_object("power")["common"]["unit"] == "W"
    assert store.writes == [("power", 523.0, True)]


def test_publish_keeps_existing_metadata():
    store = RecordingStore()
    store.ensure_object_exists("power", {"name": "Renamed by operator", "unit": "kW"})
    publisher = StatePublisher(store, LOG)

    publisher.publish(POWER, TypedValue(100.0, "W"))
    assert store.get_object("power")["common"] == {"name": "Renamed by operator", "unit": "kW"}
    assert store.get_state("power")["val"] == 100.0


class BrokenWriteStore(RecordingStore):
    def write_value(self, obj_id, value, ack=True):
        raise sqlite3.OperationalError("database is locked")


def test_failed_write_leaves_object_and_reports_failure():
    store = BrokenWriteStore()
    publisher = StatePublisher(store, LOG)

    assert publisher.publish(POWER, TypedValue(1.0, "W")) is False
    assert store.get_object("power") is not None
    assert store.get_state("power") is None


def test_connection_indicator():
    store = RecordingStore()
    publisher = StatePublisher(store, LOG)
    publisher.set_connection(True)
    publisher.set_connection(False)
    assert store.connection_writes() == [True, False]
    assert store.get_object(CONNECTION_ID)["common"]["role"] == "indicator.connected"
