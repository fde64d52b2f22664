# hassagent/sensors/interface.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol

from ..models import DeviceClass, EntityCategory, SensorType, StateClass


@dataclass(frozen=True)
class SensorUpdate:
    id: str                 # e.g. "battery_level"
    name: str               # e.g. "Battery Level"
    state: Any = None
    icon: str = ""          # e.g. "mdi:battery"
    attributes: Optional[Dict[str, Any]] = None
    sensor_type: SensorType = SensorType.SENSOR
    device_class: Optional[DeviceClass] = None
    state_class: Optional[StateClass] = None
    category: Optional[EntityCategory] = None
    units: str = ""


class _Closed:
    def __repr__(self) -> str:
        return "CLOSED"


# Put on a producer queue to retire that producer.
CLOSED = _Closed()


class SensorProducer(Protocol):
    """
    Minimal interface all sensor producers must implement.
    One instance typically samples one subsystem (battery, memory, ...) and
    may emit several sensors per poll.
    """

    id: str  # producer id, e.g. "memory"

    def poll(self) -> Iterable[SensorUpdate]:
        """
        Sample the subsystem once and return zero or more updates.

        A producer whose subsystem is absent (no battery) returns nothing.
        """
        ...
