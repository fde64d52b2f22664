# hassagent/sensors/manager.py
from __future__ import annotations
import logging
import queue
import threading
from typing import List, Optional, Sequence

from ..config import POLL_INTERVAL
from .battery import BatteryProducer
from .interface import CLOSED, SensorProducer
from .memory import MemoryProducer
from .network import NetworkProducer
from .system import SystemProducer
from .users import UsersProducer

logger = logging.getLogger(__name__)


def default_producers() -> List[SensorProducer]:
    return [
        BatteryProducer(),
        MemoryProducer(),
        NetworkProducer(),
        SystemProducer(),
        UsersProducer(),
    ]


def run_producer(
    producer: SensorProducer,
    interval_s: float,
    out: "queue.Queue[object]",
    stop: threading.Event,
    max_polls: Optional[int] = None,
) -> None:
    """
    Poll a producer every interval_s seconds and put its updates on `out`.

    Puts CLOSED on the queue when stopped or after max_polls polls, which
    retires this producer in the tracker.
    """
    logger.info(f"Sensor worker started for {producer.id} with interval {interval_s}s")
    polls = 0
    try:
        while not stop.is_set():
            try:
                for update in producer.poll():
                    out.put(update)
            except Exception as e:
                logger.error(f"Producer {producer.id} poll failed: {e}")
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            stop.wait(interval_s)
    finally:
        out.put(CLOSED)
        logger.debug(f"Sensor worker for {producer.id} stopped")


def start_producers(
    producers: Sequence[SensorProducer],
    stop: threading.Event,
    interval_s: float = POLL_INTERVAL,
) -> List["queue.Queue[object]"]:
    """
    Start one worker thread per producer and return their queues, in the
    same order, ready to hand to SensorTracker.start().
    """
    queues: List["queue.Queue[object]"] = []
    for producer in producers:
        q: "queue.Queue[object]" = queue.Queue()
        t = threading.Thread(
            target=run_producer,
            args=(producer, interval_s, q, stop),
            name=f"producer-{producer.id}",
            daemon=True,
        )
        t.start()
        queues.append(q)
    logger.info(f"Started {len(queues)} sensor workers")
    return queues
