# hassagent/sensors/battery.py
from __future__ import annotations
from typing import Iterable, List

import psutil

from ..models import DeviceClass, SensorType, StateClass
from .interface import SensorProducer, SensorUpdate


class BatteryProducer(SensorProducer):
    """Battery charge, charging state and remaining time. Emits nothing on hosts without a battery."""

    def __init__(self) -> None:
        self.id = "battery"

    def _icon(self, percent: float, plugged: bool) -> str:
        if plugged:
            return "mdi:battery-charging"
        rounded = int(percent // 10 * 10)
        if rounded >= 100:
            return "mdi:battery"
        if rounded <= 0:
            return "mdi:battery-outline"
        return f"mdi:battery-{rounded}"

    def poll(self) -> Iterable[SensorUpdate]:
        bat = psutil.sensors_battery()
        if bat is None:
            return []
        plugged = bool(bat.power_plugged)
        updates: List[SensorUpdate] = [
            SensorUpdate(
                id="battery_level",
                name="Battery Level",
                state=round(bat.percent),
                icon=self._icon(bat.percent, plugged),
                device_class=DeviceClass.BATTERY,
                state_class=StateClass.MEASUREMENT,
                units="%",
                attributes={"Data Source": "psutil"},
            ),
            SensorUpdate(
                id="battery_charging",
                name="Battery Charging",
                state=plugged,
                icon="mdi:power-plug" if plugged else "mdi:power-plug-off",
                sensor_type=SensorType.BINARY_SENSOR,
                device_class=DeviceClass.BATTERY_CHARGING,
            ),
        ]
        # secsleft is a negative sentinel while charging or when unknown
        if bat.secsleft not in (psutil.POWER_TIME_UNLIMITED, psutil.POWER_TIME_UNKNOWN) and bat.secsleft >= 0:
            updates.append(
                SensorUpdate(
                    id="battery_time_remaining",
                    name="Battery Time Remaining",
                    state=round(bat.secsleft / 60),
                    icon="mdi:timer-outline",
                    device_class=DeviceClass.DURATION,
                    state_class=StateClass.MEASUREMENT,
                    units="min",
                )
            )
        return updates
