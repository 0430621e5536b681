from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable
from uuid import UUID

logger = logging.getLogger(__name__)


class BaseQueue:
    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover


class LocalQueue(BaseQueue):
    """Runs render jobs one at a time on a daemon thread, in arrival order."""

    def __init__(self, processor: Callable[[UUID], None]) -> None:
        self._processor = processor
        self._queue: Queue[UUID] = Queue()
        self._thread = threading.Thread(target=self._run, name="render-worker", daemon=True)
        self._thread.start()

    def enqueue(self, job_id: UUID) -> None:
        self._queue.put(job_id)

    def join(self) -> None:
        self._queue.join()

    def _run(self) -> None:
        while True:
            job_id = self._queue.get()
            try:
                self._processor(job_id)
            except Exception:
                logger.exception("render worker crashed on job", extra={"job_id": str(job_id)})
            finally:
                self._queue.task_done()
