import importlib
import logging
from abc import abstractmethod

from wabridge.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """ Indicates an error condition with a connection. """


class TransientConnectionError(ConnectorError):
    """ The connection was lost or could not be established. Retried with backoff. """


class AuthenticationRejectedError(ConnectorError):
    """ The network rejected the stored credentials. New credentials are needed. """


class LoggedOutError(ConnectorError):
    """ The session was logged out. It is not resumed until a connect is requested. """


class NotConnectedError(ConnectorError):
    """ Indicates the connection is not open when an open connection is required. """


class SocketEvent(CommonEqualityMixin, StringerMixin):
    """ base class for socket events. """
    def __init__(self, socket):
        self.socket = socket


class ScanTokenEvent(SocketEvent):
    """ A new scan token must be presented by the counterpart device to authorize the session. """
    def __init__(self, socket, token):
        super().__init__(socket)
        self.token = token


class ConnectionOpenedEvent(SocketEvent):
    """ The session is open and authenticated.
    :param identity the address of the account the session belongs to, e.g. '5215512345678:3@s.whatsapp.net'
    """
    def __init__(self, socket, identity):
        super().__init__(socket)
        self.identity = identity


class ConnectionClosedEvent(SocketEvent):
    """ The connection closed. The code classifies the cause. """
    def __init__(self, socket, code=None, reason=None):
        super().__init__(socket)
        self.code = code
        self.reason = reason


class MessagesReceivedEvent(SocketEvent):
    """
    A batch of messages arrived.
    :param messages a list of message dicts, each with 'key', 'message' and optionally 'pushName'
    :param kind 'notify' for new messages, other values for history synchronization
    """
    def __init__(self, socket, messages, kind='notify'):
        super().__init__(socket)
        self.messages = messages
        self.kind = kind


class SessionSocket:
    """
    The connection to the messaging network, as provided by the protocol library.

    Sockets are created by a socket factory, which is called as::

        factory(credentials, emit, save_credentials, **options)

    - credentials       the mutable credential set (slot name to bytes) the session runs with
    - emit              callable posting a SocketEvent; the socket passes itself as the event source
    - save_credentials  callable invoked with the changed slots whenever the library mutates credentials.
        A slot mapped to None has been removed.
    """

    @abstractmethod
    async def start(self):
        """ Starts connecting. Progress is reported through events. Raises if the
        connection cannot even be attempted. """
        raise NotImplementedError

    @abstractmethod
    async def send_text(self, address, text):
        raise NotImplementedError

    @abstractmethod
    async def send_image(self, address, url, caption=None):
        raise NotImplementedError

    @abstractmethod
    async def download_media(self, message) -> bytes:
        """ Retrieves the media content of a received message. """
        raise NotImplementedError

    @abstractmethod
    async def logout(self):
        """ Ends the session permanently. """
        raise NotImplementedError

    @abstractmethod
    def end(self):
        """ Closes the connection without ending the session. """
        raise NotImplementedError


class DisconnectPolicy(CommonEqualityMixin):
    """
    Classifies close-reason codes.
    """
    def __init__(self, logged_out_code=401, auth_rejected_codes=(405, 500)):
        self.logged_out_code = logged_out_code
        self.auth_rejected_codes = tuple(auth_rejected_codes)

    def classify(self, code, reason=None) -> ConnectorError:
        """
        >>> type(DisconnectPolicy().classify(401)).__name__
        'LoggedOutError'
        >>> type(DisconnectPolicy().classify(408)).__name__
        'TransientConnectionError'
        """
        message = "connection closed (code %s)%s" % (code, ': ' + reason if reason else '')
        if code == self.logged_out_code:
            return LoggedOutError(message)
        if code in self.auth_rejected_codes:
            return AuthenticationRejectedError(message)
        return TransientConnectionError(message)


def load_socket_factory(path):
    """
    Resolves a socket factory from an import path of the form 'package.module:attribute'.
    """
    module_name, sep, attribute = (path or '').partition(':')
    if not sep or not module_name or not attribute:
        raise ValueError("socket factory must be given as 'module:callable', not '%s'" % path)
    module = importlib.import_module(module_name)
    factory = module
    for part in attribute.split('.'):
        factory = getattr(factory, part)
    if not callable(factory):
        raise ValueError("socket factory '%s' is not callable" % path)
    logger.debug("using socket factory %s" % path)
    return factory
