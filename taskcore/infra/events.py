from __future__ import annotations

import logging
import threading

from taskcore.domain.entities import Intent

logger = logging.getLogger(__name__)


class LoggingEventSink:
    """Default sink: records intents in the log for whoever tails it."""

    def emit(self, intent: Intent) -> None:
        logger.info("intent %s task=%s payload=%s", intent.kind.value, intent.task_id, intent.payload)


class CollectingEventSink:
    """Keeps emitted intents in memory, e.g. for the CLI summary."""

    def __init__(self) -> None:
        self.intents: list[Intent] = []
        self._lock = threading.Lock()

    def emit(self, intent: Intent) -> None:
        with self._lock:
            self.intents.append(intent)
