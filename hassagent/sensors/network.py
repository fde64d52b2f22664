# hassagent/sensors/network.py
from __future__ import annotations
from typing import Iterable, List

import psutil

from ..models import DeviceClass, SensorType, StateClass
from .interface import SensorProducer, SensorUpdate


class NetworkProducer(SensorProducer):
    """Traffic counters and link state across all non-loopback interfaces."""

    def __init__(self) -> None:
        self.id = "network"

    def _active_links(self) -> List[str]:
        stats = psutil.net_if_stats()
        return sorted(
            name for name, s in stats.items()
            if s.isup and not name.startswith("lo")
        )

    def poll(self) -> Iterable[SensorUpdate]:
        counters = psutil.net_io_counters()
        links = self._active_links()
        return [
            SensorUpdate(
                id="bytes_sent",
                name="Bytes Sent",
                state=counters.bytes_sent,
                icon="mdi:upload-network",
                device_class=DeviceClass.DATA_SIZE,
                state_class=StateClass.TOTAL_INCREASING,
                units="B",
                attributes={"Packets": counters.packets_sent},
            ),
            SensorUpdate(
                id="bytes_received",
                name="Bytes Received",
                state=counters.bytes_recv,
                icon="mdi:download-network",
                device_class=DeviceClass.DATA_SIZE,
                state_class=StateClass.TOTAL_INCREASING,
                units="B",
                attributes={"Packets": counters.packets_recv},
            ),
            SensorUpdate(
                id="network_connected",
                name="Network Connected",
                state=bool(links),
                icon="mdi:lan-connect" if links else "mdi:lan-disconnect",
                sensor_type=SensorType.BINARY_SENSOR,
                device_class=DeviceClass.CONNECTIVITY,
                attributes={"Interfaces": links},
            ),
        ]
