"""In-memory fan-out of progress events to live listeners (SSE connections)."""
import itertools
import logging
from typing import Callable

from fossgen.jobs.phases import TERMINAL_PHASES
from fossgen.schemas.progress import ProgressMessage

logger = logging.getLogger(__name__)

Listener = Callable[[ProgressMessage], None]


class ProgressBroker:
    """Per-job subscriber registry.

    Listeners are called synchronously from ``publish`` so every listener sees
    a job's messages in the order they were produced. After a terminal message
    every listener of that job is dropped; late publishes reach nobody.
    """

    def __init__(self):
        self._listeners: dict[str, dict[int, Listener]] = {}
        self._tokens = itertools.count()

    def subscribe(self, job_id: str, on_message: Listener) -> Callable[[], None]:
        """Register a listener. Returns an idempotent unsubscribe function."""
        token = next(self._tokens)
        self._listeners.setdefault(job_id, {})[token] = on_message

        def unsubscribe() -> None:
            listeners = self._listeners.get(job_id)
            if listeners is None:
                return
            listeners.pop(token, None)
            if not listeners:
                del self._listeners[job_id]

        return unsubscribe

    def publish(self, job_id: str, message: ProgressMessage) -> None:
        listeners = self._listeners.get(job_id)
        if listeners:
            for token, listener in list(listeners.items()):
                try:
                    listener(message)
                except Exception:
                    logger.exception(f"Progress listener failed for job {job_id}, dropping it")
                    listeners.pop(token, None)
        if message.phase in TERMINAL_PHASES:
            self._listeners.pop(job_id, None)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._listeners.get(job_id, {}))

    def drop(self, job_id: str) -> None:
        """Forget every listener of a job (used when the job expires)."""
        self._listeners.pop(job_id, None)
