"""
An in-memory SessionSocket. The tests drive it by calling the emit_* methods, which post the same
events the protocol library would. It can also stand in for the library for a local dry run:

    [socket]
    factory = wabridge.support.fakes:FakeSocket
"""
import logging

from wabridge.connector.base import SessionSocket, ScanTokenEvent, ConnectionOpenedEvent, ConnectionClosedEvent, \
    MessagesReceivedEvent

logger = logging.getLogger(__name__)


class FakeSocket(SessionSocket):

    def __init__(self, credentials, emit, save_credentials, **options):
        self.credentials = credentials
        self._emit = emit
        self._save_credentials = save_credentials
        self.options = options
        self.started = False
        self.ended = False
        self.logged_out = False
        self.sent = []
        self.media = {}
        self.start_error = None
        self.send_error = None

    async def start(self):
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        logger.debug("fake socket started with %d credential slots" % len(self.credentials))

    async def send_text(self, address, text):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((address, text))

    async def send_image(self, address, url, caption=None):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((address, url, caption))

    async def download_media(self, message):
        message_id = message['key'].get('id')
        if message_id not in self.media:
            raise IOError("no media for message %s" % message_id)
        return self.media[message_id]

    async def logout(self):
        self.logged_out = True
        self.emit_closed(401, 'logged out')

    def end(self):
        self.ended = True
        self.emit_closed(428, 'connection closed')

    def emit_scan_token(self, token):
        self._emit(ScanTokenEvent(self, token))

    def emit_opened(self, identity):
        self._emit(ConnectionOpenedEvent(self, identity))

    def emit_closed(self, code, reason=None):
        self._emit(ConnectionClosedEvent(self, code, reason))

    def emit_messages(self, messages, kind='notify'):
        self._emit(MessagesReceivedEvent(self, messages, kind))

    def update_credentials(self, changes):
        """ mutates the credential set the way the protocol library does, and reports the change """
        for slot, value in changes.items():
            if value is None:
                self.credentials.pop(slot, None)
            else:
                self.credentials[slot] = value
        self._save_credentials(changes)


class FakeSocketFactory:
    """ creates FakeSocket instances and remembers them, most recent last. """

    def __init__(self):
        self.sockets = []
        self.error = None

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1] if self.sockets else None

    def __call__(self, credentials, emit, save_credentials, **options):
        if self.error is not None:
            raise self.error
        socket = FakeSocket(credentials, emit, save_credentials, **options)
        self.sockets.append(socket)
        return socket
