# piko_poller/services/field_schema.py

from __future__ import annotations

from typing import Iterable, Sequence

from lxml import etree

from piko_poller.errors import SchemaError
from piko_poller.models.field import FieldDescriptor, ValueType


# ============================================================================
# Selector helpers
# ============================================================================

def _device(attr: str) -> str:
    return f"//Device/@{attr}"


def _measurement(kind: str, attr: str = "Value") -> str:
    return f"//Measurements/Measurement[@Type='{kind}']/@{attr}"


def _yield(kind: str, slot: str, attr: str = "Value") -> str:
    base = f"//Yields/Yield[@Type='{kind}' and @Slot='{slot}']"
    if attr == "Unit":
        return f"{base}/@Unit"
    return f"{base}/YieldValue/@{attr}"


def _measured(field_id: str, name: str, kind: str, role: str = "value") -> FieldDescriptor:
    return FieldDescriptor(
        id=field_id,
        name=name,
        xpath_value=_measurement(kind),
        xpath_unit=_measurement(kind, "Unit"),
        type=ValueType.NUMBER,
        role=role,
    )


def _yielded(field_id: str, name: str, slot: str) -> FieldDescriptor:
    return FieldDescriptor(
        id=field_id,
        name=name,
        xpath_value=_yield("Produced", slot),
        xpath_unit=_yield("Produced", slot, "Unit"),
        type=ValueType.NUMBER,
        role="value.energy",
    )


# ============================================================================
# PIKO MP plus /all.xml
# ============================================================================

FIELDS: tuple[FieldDescriptor, ...] = (
    # Identity
    FieldDescriptor("device.name", "Device name", _device("Name")),
    FieldDescriptor("device.type", "Device type", _device("Type")),
    FieldDescriptor("device.platform", "Platform", _device("Platform")),
    FieldDescriptor("device.hmi_platform", "HMI platform", _device("HmiPlatform")),
    FieldDescriptor("device.nominal_power", "Nominal power", _device("NominalPower"), type=ValueType.NUMBER),
    FieldDescriptor("device.user_power_limit", "User power limit", _device("UserPowerLimit")),
    FieldDescriptor("device.country_power_limit", "Country power limit", _device("CountryPowerLimit")),
    FieldDescriptor("device.serial", "Serial number", _device("Serial")),
    FieldDescriptor("device.oem_serial", "OEM serial number", _device("OEMSerial")),
    FieldDescriptor("device.bus_address", "Bus address", _device("BusAddress"), type=ValueType.NUMBER),
    FieldDescriptor("device.netbios_name", "NetBIOS name", _device("NetBiosName")),
    FieldDescriptor("device.web_portal", "Web portal", _device("WebPortal")),
    FieldDescriptor("device.manufacturer_url", "Manufacturer URL", _device("ManufacturerURL")),
    FieldDescriptor("device.ip_address", "IP address", _device("IpAddress")),
    FieldDescriptor("device.date_time", "Device time", _device("DateTime"), role="date"),
    # AC side
    _measured("measurements.ac_voltage", "AC voltage", "AC_Voltage", "value.voltage"),
    _measured("measurements.ac_current", "AC current", "AC_Current", "value.current"),
    _measured("measurements.ac_power", "AC power", "AC_Power", "value.power"),
    _measured("measurements.ac_power_fast", "AC power (fast)", "AC_Power_fast", "value.power"),
    _measured("measurements.ac_frequency", "AC frequency", "AC_Frequency", "value.frequency"),
    # DC side
    _measured("measurements.dc_voltage", "DC voltage", "DC_Voltage", "value.voltage"),
    _measured("measurements.dc_current", "DC current", "DC_Current", "value.current"),
    _measured("measurements.link_voltage", "Link voltage", "LINK_Voltage", "value.voltage"),
    # Grid / consumption (only reported with an energy meter attached)
    _measured("measurements.grid_power", "Grid power", "GridPower", "value.power"),
    _measured("measurements.grid_consumed_power", "Grid consumed power", "GridConsumedPower", "value.power"),
    _measured("measurements.grid_injected_power", "Grid injected power", "GridInjectedPower", "value.power"),
    _measured("measurements.own_consumed_power", "Own consumed power", "OwnConsumedPower", "value.power"),
    _measured("measurements.derating", "Derating", "Derating"),
    # Yields
    _yielded("yields.produced_total", "Total yield", "Total"),
    _yielded("yields.produced_year", "Yield this year", "Year"),
    _yielded("yields.produced_month", "Yield this month", "Month"),
    _yielded("yields.produced_day", "Yield today", "Day"),
)


# ============================================================================
# Validation / rendering
# ============================================================================

def _compile(field_id: str, expr: str) -> None:
    try:
        compiled = etree.XPath(expr)
        # boolean()/number()/string() yield a value even when nothing matches
        result = compiled(etree.Element("root"))
    except etree.XPathError as exc:
        raise SchemaError(f"{field_id}: invalid selector {expr!r}: {exc}") from exc
    if not isinstance(result, list):
        raise SchemaError(f"{field_id}: selector {expr!r} does not select nodes")


def validate_schema(fields: Iterable[FieldDescriptor]) -> tuple[FieldDescriptor, ...]:
    """Check ids are unique and every selector is present, compiles and selects nodes."""
    seen: set[str] = set()
    validated = tuple(fields)
    for desc in validated:
        if not desc.id:
            raise SchemaError("field with empty id")
        if desc.id in seen:
            raise SchemaError(f"duplicate field id: {desc.id}")
        seen.add(desc.id)
        if not desc.xpath_value or not desc.xpath_value.strip():
            raise SchemaError(f"{desc.id}: empty value selector")
        if not isinstance(desc.type, ValueType):
            raise SchemaError(f"{desc.id}: unsupported type {desc.type!r}")
        _compile(desc.id, desc.xpath_value)
        if desc.xpath_unit is not None:
            _compile(desc.id, desc.xpath_unit)
    return validated


def render_schema_table(fields: Sequence[FieldDescriptor]) -> str:
    lines = [
        "|Id|Name|Value Type|xPath Value|xPath Unit|",
        "|---|---|---|---|---|",
    ]
    for desc in fields:
        lines.append(
            f"|{desc.id}|{desc.name}|{desc.type.value}|{desc.xpath_value}|{desc.xpath_unit or '-'}|"
        )
    return "\n".join(lines)


def load_schema() -> tuple[FieldDescriptor, ...]:
    return validate_schema(FIELDS)
