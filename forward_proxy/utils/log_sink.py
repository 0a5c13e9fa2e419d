"""
Single-writer log sink.

Every request runs in its own task, so records are funnelled through one
queue and written by a single ``QueueListener`` thread. The handlers
themselves (uvicorn's console handlers, or whatever the deployment
configured) stay in charge of placement and formatting, and each record only
reaches the handlers of the logger that produced it.
"""

import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import Dict, List, Optional, Sequence, Tuple

DEFAULT_SINK_LOGGERS = ("uvicorn", "uvicorn.access")


class RecordQueueHandler(QueueHandler):
    """
    Enqueues records untouched, tagged with the logger they belong to.

    The stock ``prepare`` pre-formats the message and drops ``args``, but
    uvicorn's access formatter reads the request fields from ``args``. The
    listener runs in this process, so the record can travel as it is.
    """

    def __init__(self, queue, route: str):
        super().__init__(queue)
        self.route = route

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        self.queue.put_nowait((self.route, record))


class RoutingQueueListener(QueueListener):
    """Hands each queued record to the handlers of the logger that queued it."""

    def __init__(self, queue, routes: Dict[str, List[logging.Handler]]):
        super().__init__(queue, respect_handler_level=True)
        self.routes = routes

    def handle(self, item: Tuple[str, logging.LogRecord]) -> None:
        route, record = item
        for handler in self.routes.get(route, ()):
            if record.levelno >= handler.level:
                handler.handle(record)


class QueueLogSink:
    """Moves the handlers of the given loggers behind one queue."""

    def __init__(self, logger_names: Sequence[str] = DEFAULT_SINK_LOGGERS):
        self.logger_names = tuple(logger_names)
        self.queue: "queue.Queue[Tuple[str, logging.LogRecord]]" = queue.Queue()
        self._listener: Optional[RoutingQueueListener] = None
        self._moved: Dict[str, List[logging.Handler]] = {}
        self._queue_handlers: Dict[str, RecordQueueHandler] = {}

    @property
    def running(self) -> bool:
        return self._listener is not None

    def start(self) -> "QueueLogSink":
        if self._listener is not None:
            return self

        for name in self.logger_names:
            target = logging.getLogger(name)
            moved = [h for h in target.handlers if not isinstance(h, QueueHandler)]
            if not moved:
                continue
            for handler in moved:
                target.removeHandler(handler)
            queue_handler = RecordQueueHandler(self.queue, name)
            target.addHandler(queue_handler)
            self._moved[name] = moved
            self._queue_handlers[name] = queue_handler

        self._listener = RoutingQueueListener(self.queue, self._moved)
        self._listener.start()
        return self

    def stop(self) -> None:
        """Flush pending records and give the loggers their handlers back."""
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None

        for name, handlers in self._moved.items():
            target = logging.getLogger(name)
            target.removeHandler(self._queue_handlers[name])
            for handler in handlers:
                target.addHandler(handler)
        self._moved = {}
        self._queue_handlers = {}


def install_queue_sink(
    logger_names: Sequence[str] = DEFAULT_SINK_LOGGERS,
) -> QueueLogSink:
    return QueueLogSink(logger_names).start()
