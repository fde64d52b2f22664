# hassagent/sensors/system.py
from __future__ import annotations
import time
from datetime import datetime, timezone
from typing import Iterable, List

import psutil

from ..models import DeviceClass, EntityCategory, StateClass
from .interface import SensorProducer, SensorUpdate


class SystemProducer(SensorProducer):
    """Boot time, uptime, CPU usage and load averages."""

    def __init__(self) -> None:
        self.id = "system"
        psutil.cpu_percent(interval=None)  # prime (first call returns 0)

    def poll(self) -> Iterable[SensorUpdate]:
        boot = psutil.boot_time()
        updates: List[SensorUpdate] = [
            SensorUpdate(
                id="last_reboot",
                name="Last Reboot",
                state=datetime.fromtimestamp(boot, tz=timezone.utc).isoformat(),
                icon="mdi:restart",
                device_class=DeviceClass.TIMESTAMP,
                category=EntityCategory.DIAGNOSTIC,
            ),
            SensorUpdate(
                id="uptime",
                name="Uptime",
                state=round((time.time() - boot) / 3600, 2),
                icon="mdi:timer-outline",
                device_class=DeviceClass.DURATION,
                state_class=StateClass.MEASUREMENT,
                category=EntityCategory.DIAGNOSTIC,
                units="h",
            ),
            SensorUpdate(
                id="cpu_usage",
                name="CPU Usage",
                state=psutil.cpu_percent(interval=None),
                icon="mdi:chip",
                state_class=StateClass.MEASUREMENT,
                units="%",
            ),
        ]
        for minutes, load in zip((1, 5, 15), psutil.getloadavg()):
            updates.append(
                SensorUpdate(
                    id=f"load_average_{minutes}_min",
                    name=f"CPU load average ({minutes} min)",
                    state=round(load, 2),
                    icon="mdi:chip",
                    state_class=StateClass.MEASUREMENT,
                    units="load",
                )
            )
        return updates
