import asyncio
import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_, empty, equal_to

from wabridge.support.events import EventSource, QueuedEventSource


class EventsTest(unittest.TestCase):

    def test_handlers_empty(self):
        sut = EventSource()
        assert_that(sut.handlers(), is_(empty()))

    def test_handlers_not_empty(self):
        sut = EventSource()
        handler = Mock()
        sut.add(handler)
        assert_that(list(sut.handlers()), is_([handler]))

    def test_no_listeners(self):
        sut = EventSource()
        sut.fire(1)

    def test_manage_handlers(self):
        sut = EventSource()
        m1 = Mock()
        sut.add(m1)
        assert_that(sut._handlers, is_([m1]))

        sut.remove(m1)
        assert_that(sut._handlers, is_([]))

        sut.remove(m1)
        assert_that(sut._handlers, is_([]))

        sut += m1
        assert_that(sut._handlers, is_([m1]))

        sut -= m1
        assert_that(sut._handlers, is_([]))

    def test_listeners(self):
        sut = EventSource()
        l1 = Mock()
        l2 = Mock()
        sut += l1
        sut += l2
        sut.fire(1, v="hey")
        l1.assert_called_once_with(1, v="hey")
        l2.assert_called_once_with(1, v="hey")

        l1.reset_mock()
        sut.fire_all([1, 2, 3])
        l1.assert_has_calls([call(1), call(2), call(3)])


class QueuedEventSourceTest(unittest.IsolatedAsyncioTestCase):

    async def test_fire_only_enqueues(self):
        sut = QueuedEventSource()
        handler = Mock()
        sut.add(handler)
        sut.fire(1)
        handler.assert_not_called()
        assert_that(sut.event_queue.qsize(), is_(1))

    async def test_publish_delivers_in_order(self):
        sut = QueuedEventSource()
        handler = Mock()
        sut.add(handler)
        sut.fire_all([1, 2, 3])
        await sut.publish()
        handler.assert_has_calls([call(1), call(2), call(3)])
        assert_that(sut.event_queue.empty(), is_(True))

    async def test_publish_empty(self):
        sut = QueuedEventSource()
        handler = Mock()
        sut.add(handler)
        await sut.publish()
        handler.assert_not_called()

    async def test_coroutine_handlers_do_not_overlap(self):
        sut = QueuedEventSource()
        seen = []

        async def handler(event):
            seen.append(('start', event))
            await asyncio.sleep(0)
            seen.append(('end', event))

        sut.add(handler)
        sut.fire_all(['a', 'b'])
        await sut.publish()
        assert_that(seen, is_(equal_to([('start', 'a'), ('end', 'a'), ('start', 'b'), ('end', 'b')])))

    async def test_failing_handler_does_not_stop_delivery(self):
        sut = QueuedEventSource()
        failing = Mock(side_effect=ValueError("boom"))
        handler = Mock()
        sut.add(failing)
        sut.add(handler)
        sut.fire_all([1, 2])
        await sut.publish()
        handler.assert_has_calls([call(1), call(2)])

    async def test_pump_delivers_until_cancelled(self):
        sut = QueuedEventSource()
        handler = Mock()
        sut.add(handler)
        task = asyncio.ensure_future(sut.pump())
        sut.fire_all([1, 2])
        await asyncio.wait_for(sut.event_queue.join(), 1)
        handler.assert_has_calls([call(1), call(2)])
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task


if __name__ == '__main__':  # pragma no cover
    unittest.main()
