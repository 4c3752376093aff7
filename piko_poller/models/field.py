# piko_poller/models/field.py
from dataclasses import dataclass
from enum import Enum


class ValueType(str, Enum):
    NUMBER = "number"
    STRING = "string"


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    name: str
    xpath_value: str
    xpath_unit: str | None = None
    type: ValueType = ValueType.STRING
    read: bool = True
    write: bool = False
    role: str = "state"
