import unittest

from hamcrest import assert_that, is_, instance_of, calling, raises, contains_string

from wabridge.connector.base import DisconnectPolicy, LoggedOutError, AuthenticationRejectedError, \
    TransientConnectionError, ConnectorError, load_socket_factory, ConnectionClosedEvent
from wabridge.support.fakes import FakeSocket


class DisconnectPolicyTest(unittest.TestCase):

    def setUp(self):
        self.sut = DisconnectPolicy(logged_out_code=401, auth_rejected_codes=[405, 500])

    def test_logged_out(self):
        assert_that(self.sut.classify(401), is_(instance_of(LoggedOutError)))

    def test_auth_rejected(self):
        assert_that(self.sut.classify(405), is_(instance_of(AuthenticationRejectedError)))
        assert_that(self.sut.classify(500), is_(instance_of(AuthenticationRejectedError)))

    def test_anything_else_is_transient(self):
        for code in (408, 428, 440, 515, 503, None):
            assert_that(self.sut.classify(code), is_(instance_of(TransientConnectionError)))

    def test_all_are_connector_errors(self):
        for code in (401, 405, 408):
            assert_that(self.sut.classify(code), is_(instance_of(ConnectorError)))

    def test_message_includes_code_and_reason(self):
        assert_that(str(self.sut.classify(408, 'timed out')), contains_string('code 408'))
        assert_that(str(self.sut.classify(408, 'timed out')), contains_string('timed out'))


class SocketEventTest(unittest.TestCase):

    def test_events_compare_by_value(self):
        socket = object()
        assert_that(ConnectionClosedEvent(socket, 408) == ConnectionClosedEvent(socket, 408), is_(True))
        assert_that(ConnectionClosedEvent(socket, 408) == ConnectionClosedEvent(socket, 401), is_(False))


class LoadSocketFactoryTest(unittest.TestCase):

    def test_loads_callable(self):
        factory = load_socket_factory('wabridge.support.fakes:FakeSocket')
        assert_that(factory, is_(FakeSocket))

    def test_rejects_malformed_path(self):
        assert_that(calling(load_socket_factory).with_args('wabridge.support.fakes'), raises(ValueError))
        assert_that(calling(load_socket_factory).with_args(''), raises(ValueError))

    def test_rejects_non_callable(self):
        assert_that(calling(load_socket_factory).with_args('wabridge.support.fakes:logger.name'),
                    raises(ValueError))

    def test_missing_module(self):
        assert_that(calling(load_socket_factory).with_args('wabridge.nowhere:factory'), raises(ImportError))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
