"""Progress event channel decoupling orchestration from presentation."""

import logging
import queue
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BATCH_STARTED = "batch_started"
JOB_STARTED = "job_started"
STEP = "step"
JOB_SUCCEEDED = "job_succeeded"
JOB_FAILED = "job_failed"
PERSISTED = "persisted"
BATCH_FINISHED = "batch_finished"
ABORTED = "aborted"


@dataclass(frozen=True)
class EnrichmentEvent:
    kind: str
    url: str = ""
    message: str = ""
    step: int = 0


class EventBus:
    """Fan-out of events to any number of subscriber queues."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[queue.Queue] = []

    def subscribe(self) -> queue.Queue:
        channel: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: queue.Queue) -> None:
        with self._lock:
            if channel in self._subscribers:
                self._subscribers.remove(channel)

    def publish(self, event: EnrichmentEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("[EVENT] %s %s %s", event.kind, event.url, event.message)
        for channel in subscribers:
            channel.put(event)
