# hassagent/sensors/memory.py
from __future__ import annotations
from typing import Iterable

import psutil

from ..models import DeviceClass, EntityCategory, StateClass
from .interface import SensorProducer, SensorUpdate

_MB = 1024 * 1024


def _mem_sensor(sensor_id: str, name: str, value_bytes: int, icon: str = "mdi:memory") -> SensorUpdate:
    return SensorUpdate(
        id=sensor_id,
        name=name,
        state=round(value_bytes / _MB),
        icon=icon,
        device_class=DeviceClass.DATA_SIZE,
        state_class=StateClass.MEASUREMENT,
        category=EntityCategory.DIAGNOSTIC,
        units="MB",
    )


class MemoryProducer(SensorProducer):
    def __init__(self) -> None:
        self.id = "memory"

    def poll(self) -> Iterable[SensorUpdate]:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()
        updates = [
            _mem_sensor("memory_total", "Memory Total", vm.total),
            _mem_sensor("memory_available", "Memory Available", vm.available),
            _mem_sensor("memory_used", "Memory Used", vm.used),
            SensorUpdate(
                id="memory_usage",
                name="Memory Usage",
                state=vm.percent,
                icon="mdi:memory",
                state_class=StateClass.MEASUREMENT,
                units="%",
            ),
        ]
        if swap.total:
            updates += [
                _mem_sensor("swap_memory_total", "Swap Memory Total", swap.total, "mdi:harddisk"),
                _mem_sensor("swap_memory_used", "Swap Memory Used", swap.used, "mdi:harddisk"),
                _mem_sensor("swap_memory_free", "Swap Memory Free", swap.free, "mdi:harddisk"),
            ]
        return updates
