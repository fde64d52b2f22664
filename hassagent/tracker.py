from __future__ import annotations
import logging
import queue
import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from .api import APIClient
from .codec import RequestType, SensorRequest, decode_response
from .errors import AgentError, MalformedResponseError, MissingSecretError, TransportError, UnknownIDError
from .models import SensorState
from .registry import SensorRegistry
from .sensors.interface import CLOSED, SensorUpdate

logger = logging.getLogger(__name__)


class SensorTracker:
    """
    Fans in updates from any number of producer queues, merges them into the
    registry and reports every change to the sink.

    Threads:
      - one consumer per producer queue, so a slow producer blocks nobody else
      - at most one reporter per sensor id, draining that id's pending
        snapshots in emission order; different ids report in parallel
    """

    def __init__(
        self,
        registry: SensorRegistry,
        client: APIClient,
        log: Optional[logging.Logger] = None,
        poll_timeout: float = 0.5,
    ) -> None:
        self.registry = registry
        self.client = client
        self.poll_timeout = poll_timeout
        self._log = log or logger
        self._stop = threading.Event()
        self._consumers: List[threading.Thread] = []
        self._dispatch_lock = threading.Lock()
        self._idle = threading.Condition(self._dispatch_lock)
        self._pending: Dict[str, Deque[SensorState]] = {}
        self._reporters: Dict[str, threading.Thread] = {}

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    # --- producers ----------------------------------------------------------

    def start(self, *producers: "queue.Queue[object]") -> None:
        for i, q in enumerate(producers):
            t = threading.Thread(
                target=self._consume, args=(q,), name=f"consumer-{i}", daemon=True
            )
            t.start()
            self._consumers.append(t)
        self._log.info(f"Tracking sensors from {len(producers)} producers")

    def _consume(self, q: "queue.Queue[object]") -> None:
        while not self._stop.is_set():
            try:
                item = q.get(timeout=self.poll_timeout)
            except queue.Empty:
                continue
            if item is CLOSED:
                self._log.debug(f"{threading.current_thread().name}: producer finished")
                return
            if not isinstance(item, SensorUpdate):
                self._log.warning(f"Ignoring unexpected item on producer queue: {item!r}")
                continue
            try:
                self.handle(item)
            except AgentError as e:
                self._log.error(f"Could not handle update for {item.id}: {e}")

    def handle(self, update: SensorUpdate) -> RequestType:
        """
        Merge one update into the registry and schedule its report.

        The exists/add/update decision is made under the registry lock so two
        first updates for the same id cannot both take the add branch.
        Returns REGISTER_SENSOR when the sensor was added, otherwise
        UPDATE_SENSOR_STATES.
        """
        with self.registry.lock:
            if self.registry.exists(update.id):
                state = self.registry.update(update)
                branch = RequestType.UPDATE_SENSOR_STATES
            else:
                state = self.registry.add(update)
                branch = RequestType.REGISTER_SENSOR
            if state is not None:
                self._schedule(state)
        return branch

    # --- reporting ----------------------------------------------------------

    def _schedule(self, state: SensorState) -> None:
        with self._dispatch_lock:
            if self._stop.is_set():
                return
            self._pending.setdefault(state.id, deque()).append(state)
            if state.id in self._reporters:
                return
            t = threading.Thread(
                target=self._drain, args=(state.id,), name=f"report-{state.id}", daemon=True
            )
            self._reporters[state.id] = t
        t.start()

    def _drain(self, sensor_id: str) -> None:
        try:
            while True:
                with self._dispatch_lock:
                    pending = self._pending.get(sensor_id)
                    if self._stop.is_set() or not pending:
                        self._release(sensor_id)
                        return
                    snapshot = pending.popleft()
                try:
                    self._report(snapshot)
                except Exception:
                    self._log.exception(f"Unexpected error reporting sensor {sensor_id}")
        finally:
            with self._dispatch_lock:
                if self._reporters.get(sensor_id) is threading.current_thread():
                    self._release(sensor_id)

    def _release(self, sensor_id: str) -> None:
        # caller holds _dispatch_lock
        self._pending.pop(sensor_id, None)
        self._reporters.pop(sensor_id, None)
        self._idle.notify_all()

    def _report(self, snapshot: SensorState) -> None:
        live = self.registry.get(snapshot.id)
        if live is None:
            return
        # values from the emission, registration state from now
        snapshot.metadata = live.metadata
        request = SensorRequest(snapshot)
        try:
            body = self.client.send(request)
            outcome = decode_response(body, snapshot.id, self.client.secret)
        except MissingSecretError as e:
            self._log.error(f"Not sending {snapshot.id}: {e}")
            return
        except TransportError as e:
            self._log.warning(f"Report for {snapshot.id} failed: {e}")
            return
        except MalformedResponseError as e:
            self._log.debug(f"No usable response for {snapshot.name} ({request.request_type().value}): {e}")
            return

        if outcome.success is False:
            if outcome.error is not None:
                self._log.warning(
                    f"Could not update sensor {snapshot.name}, "
                    f"{outcome.error.code}: {outcome.error.message}"
                )
            else:
                self._log.warning(f"Sink reported failure for sensor {snapshot.name} without details")
        else:
            self._log.debug(
                f"Sensor {snapshot.name} ({snapshot.id}) sent. "
                f"State is now: {snapshot.reported_state} {snapshot.units}".rstrip()
            )
        self.registry.apply_outcome(snapshot.id, outcome)

    # --- lifecycle ----------------------------------------------------------

    def stop(self) -> None:
        """Stop consuming; reports already on the wire finish on their own."""
        self._stop.set()
        with self._dispatch_lock:
            self._pending.clear()
        self._log.info("Sensor tracker stopping")

    def join(self, timeout: Optional[float] = None) -> None:
        for t in self._consumers:
            t.join(timeout)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no report is pending or in flight."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._reporters, timeout)

    # --- read-only views ----------------------------------------------------

    def sensor_list(self) -> List[str]:
        return sorted(self.registry.list())

    def sensor_value(self, sensor_id: str) -> SensorState:
        state = self.registry.get(sensor_id)
        if state is None:
            raise UnknownIDError(sensor_id)
        return state
