"""
Event sources deliver notifications to registered handlers.

EventSource calls its handlers immediately, on the caller's stack.
QueuedEventSource decouples the producer from the handlers: fire() only enqueues,
and the events are handed to the handlers in emission order by a single consumer,
either by draining with publish() or by running pump() as a task.
"""
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)


class EventSource(object):

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        for e in events:
            self._fire(e)

    def _fire(self, *args, **kwargs):
        for handler in self._handlers:
            handler(*args, **kwargs)


class QueuedEventSource(EventSource):
    """
    fire() posts events to the queue. Handlers are invoked when the consumer
    calls publish(), or continuously while pump() runs. Handlers may be plain callables
    or coroutine functions; coroutine handlers are awaited before the next event is
    delivered, so handling never overlaps and never reorders.

    A handler that raises is logged and does not stop delivery of later events.
    """
    def __init__(self):
        super().__init__()
        self.event_queue = asyncio.Queue()

    def fire(self, event):
        self.event_queue.put_nowait(event)

    def fire_all(self, events):
        for e in events:
            self.fire(e)

    async def publish(self):
        """ delivers every event queued so far to the handlers, in order. """
        queue = self.event_queue
        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
            queue.task_done()
        for event in events:
            await self._deliver(event)

    async def pump(self):
        """ delivers events as they arrive, until cancelled. """
        queue = self.event_queue
        while True:
            event = await queue.get()
            try:
                await self._deliver(event)
            finally:
                queue.task_done()

    async def _deliver(self, event):
        for handler in self.handlers():
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("event handler %r failed on %r" % (handler, event))
