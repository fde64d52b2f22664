from __future__ import annotations
import logging
import threading
from typing import Dict, List, Optional

from .errors import DuplicateIDError
from .models import ResponseOutcome, SensorState
from .sensors.interface import SensorUpdate

logger = logging.getLogger(__name__)


class SensorRegistry:
    """
    In-memory store of sensor id -> SensorState.

    The registry is the only owner of SensorState instances. Callers get
    copies from get(); metadata changes go through apply_outcome().

    All methods take `lock`. It is re-entrant so the tracker can hold it
    across an exists/add/update sequence and still call these methods.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.lock = threading.RLock()
        self._sensors: Dict[str, SensorState] = {}
        self._log = log or logger

    def __len__(self) -> int:
        with self.lock:
            return len(self._sensors)

    def add(self, update: SensorUpdate) -> SensorState:
        with self.lock:
            if update.id in self._sensors:
                self._log.error(f"Sensor {update.id} already exists, not adding")
                raise DuplicateIDError(update.id)
            state = SensorState.from_update(update)
            self._sensors[update.id] = state
            self._log.debug(f"Added sensor {update.id}")
            return state.model_copy(deep=True)

    def update(self, update: SensorUpdate) -> Optional[SensorState]:
        with self.lock:
            state = self._sensors.get(update.id)
            if state is None:
                self._log.warning(f"Sensor {update.id} not found, dropping update")
                return None
            state.merge(update)
            return state.model_copy(deep=True)

    def get(self, sensor_id: str) -> Optional[SensorState]:
        with self.lock:
            state = self._sensors.get(sensor_id)
            return state.model_copy(deep=True) if state is not None else None

    def exists(self, sensor_id: str) -> bool:
        with self.lock:
            return sensor_id in self._sensors

    def list(self) -> List[str]:
        with self.lock:
            return list(self._sensors)

    def apply_outcome(self, sensor_id: str, outcome: ResponseOutcome) -> Optional[SensorState]:
        """Apply registered/disabled changes decoded from a sink response."""
        with self.lock:
            state = self._sensors.get(sensor_id)
            if state is None:
                self._log.warning(f"Sensor {sensor_id} not found, ignoring response")
                return None
            meta = state.metadata
            if outcome.registered and not meta.registered:
                meta.registered = True
                self._log.info(f"Sensor {state.name} registered.")
            if outcome.disabled is not None and outcome.disabled != meta.disabled:
                meta.disabled = outcome.disabled
                self._log.info(f"Sensor {state.name} {'disabled' if meta.disabled else 're-enabled'}.")
            return state.model_copy(deep=True)
