"""
Maintains the session with the messaging network.

The ConnectionController owns the one live SessionSocket. It opens it with the credentials supplied by
the synchronizer, follows the socket's events through the phases of ConnectionState, and after a
disconnect decides whether to reconnect, how long to wait, and whether the credentials are still usable.

All socket events arrive on a single queue and are handled one at a time, in the order the socket
emitted them.
"""
import asyncio
import enum
import logging

from wabridge.addressing import phone_id
from wabridge.connector.base import ConnectorError, TransientConnectionError, AuthenticationRejectedError, \
    LoggedOutError, NotConnectedError, DisconnectPolicy, ScanTokenEvent, ConnectionOpenedEvent, \
    ConnectionClosedEvent, MessagesReceivedEvent
from wabridge.credentials.sync import HybridCredentialSynchronizer
from wabridge.support.events import EventSource, QueuedEventSource
from wabridge.support.retry_strategy import RetryPolicy

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    AWAITING_SCAN = 'waiting_qr'
    CONNECTED = 'connected'


class ConnectionState:
    """
    The state of the connection. Only the ConnectionController changes it.

    - the scan token is set only while awaiting a scan
    - the identity is set exactly when connected
    - in_flight is set from the start of a connect attempt until it opens, closes or fails
    """

    def __init__(self):
        self._phase = Phase.DISCONNECTED
        self._scan_token = None
        self._identity = None
        self._reconnect_attempts = 0
        self._in_flight = False

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def scan_token(self):
        return self._scan_token

    @property
    def identity(self):
        return self._identity

    @property
    def reconnect_attempts(self):
        return self._reconnect_attempts

    @property
    def in_flight(self):
        return self._in_flight

    @property
    def connected(self):
        return self._phase is Phase.CONNECTED

    def begin_connect(self):
        """
        :return: False if an attempt is already in flight or the session is open,
            otherwise marks the attempt started.
        """
        if self._in_flight or self._phase is Phase.CONNECTED:
            return False
        self._in_flight = True
        self._enter(Phase.CONNECTING)
        return True

    def awaiting_scan(self, token):
        self._enter(Phase.AWAITING_SCAN)
        self._scan_token = token
        self._reconnect_attempts = 0

    def opened(self, identity):
        self._enter(Phase.CONNECTED)
        self._identity = identity
        self._in_flight = False
        self._reconnect_attempts = 0

    def closed(self):
        self._enter(Phase.DISCONNECTED)
        self._in_flight = False

    def count_attempt(self):
        self._reconnect_attempts += 1
        return self._reconnect_attempts

    def reset_attempts(self):
        self._reconnect_attempts = 0

    def _enter(self, phase):
        self._phase = phase
        self._scan_token = None
        self._identity = None

    def __repr__(self):
        return "ConnectionState(phase=%s, identity=%s, attempts=%d, in_flight=%s)" % \
               (self._phase.value, self._identity, self._reconnect_attempts, self._in_flight)


class ConnectionController:
    """
    Drives the connection lifecycle.

    :param socket_factory   creates a SessionSocket, see wabridge.connector.base.SessionSocket
    :param synchronizer     supplies and persists the credentials
    :param retry_policy     backoff between attempts, and the number of attempts before the credentials are discarded
    :param disconnect_policy    classifies close-reason codes
    :param sync_delay       seconds to wait after the session opens before pushing credentials to the durable store
    :param reconnect_delay  seconds to wait before the connect issued by a manual reconnect
    :param socket_options   passed to the socket factory

    Fires on `scan_tokens` each new scan token, and on `messages` each MessagesReceivedEvent.
    """

    def __init__(self, socket_factory, synchronizer: HybridCredentialSynchronizer,
                 retry_policy: RetryPolicy = None, disconnect_policy: DisconnectPolicy = None,
                 sync_delay=2.0, reconnect_delay=1.0, socket_options=None):
        self.socket_factory = socket_factory
        self.synchronizer = synchronizer
        self.retry_policy = retry_policy or RetryPolicy()
        self.disconnect_policy = disconnect_policy or DisconnectPolicy()
        self.sync_delay = sync_delay
        self.reconnect_delay = reconnect_delay
        self.socket_options = socket_options or {}
        self.state = ConnectionState()
        self.events = QueuedEventSource()
        self.events.add(self._handle_event)
        self.messages = EventSource()
        self.scan_tokens = EventSource()
        self.retry_delay = None         # the delay of the most recently scheduled connect
        self._socket = None
        self._generation = 0            # advanced whenever the current attempt is abandoned
        self._retry_handle = None
        self._pump_task = None
        self._tasks = set()

    @property
    def socket(self):
        return self._socket

    def require_socket(self):
        """
        :return: the socket of the open session.
        Raises NotConnectedError unless connected.
        """
        socket = self._socket
        if not self.state.connected or socket is None:
            raise NotConnectedError("not connected (%s)" % self.state.phase.value)
        return socket

    @property
    def retry_scheduled(self):
        return self._retry_handle is not None

    def start(self):
        """ starts handling socket events and makes the first connection attempt. """
        if self._pump_task is None:
            self._pump_task = asyncio.ensure_future(self.events.pump())
        self._spawn(self.connect())

    async def stop(self):
        self._cancel_retry()
        self._drop_socket()
        tasks = list(self._tasks)
        if self._pump_task is not None:
            tasks.append(self._pump_task)
            self._pump_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.synchronizer.close()

    async def connect(self):
        """
        Attempts to connect. Ignored when an attempt is already in flight or the session is open.
        :return: True if the attempt was started
        """
        if not self.state.begin_connect():
            logger.debug("connect already in flight or connected, skipping")
            return False
        self._cancel_retry()
        generation = self._generation
        socket = None
        logger.info("connecting")
        try:
            credentials = await self.synchronizer.load_or_restore()
            if generation != self._generation:
                logger.debug("connect attempt superseded while loading credentials")
                return False
            socket = self.socket_factory(credentials, self.events.fire, self.synchronizer.persist,
                                         **self.socket_options)
            self._socket = socket
            await socket.start()
        except asyncio.CancelledError:
            if generation == self._generation and self._socket is socket:
                self._socket = None
                self.state.closed()
            raise
        except Exception as e:
            if generation != self._generation:
                logger.debug("superseded connect attempt failed: %s" % e)
                return False
            if socket is not None and self._socket is not socket:
                logger.debug("connect attempt failed after its close was handled: %s" % e)
                return False
            logger.exception("connection attempt failed: %s" % e)
            self._socket = None
            self.state.closed()
            await self._resolve(TransientConnectionError(str(e)))
            return False
        return True

    async def reconnect(self):
        """
        Drops the current connection and credentials, then connects afresh with new credentials.
        """
        logger.info("manual reconnect requested")
        self._cancel_retry()
        self._drop_socket()
        await self.synchronizer.invalidate()
        self.state.reset_attempts()
        self._schedule_connect(self.reconnect_delay)

    async def logout(self):
        """
        Ends the session. The credentials are discarded and no reconnection is attempted until
        connect() is called.
        """
        logger.info("logout requested")
        self._cancel_retry()
        socket = self._socket
        self._socket = None
        self._generation += 1
        try:
            if socket is not None:
                await socket.logout()
        finally:
            self.state.closed()
            self.state.reset_attempts()
            await self.synchronizer.invalidate()

    async def clear_session(self):
        """ discards the stored credentials, leaving the connection as it is. """
        logger.info("clearing session credentials")
        await self.synchronizer.invalidate()

    def _drop_socket(self):
        """ force-closes the current socket. Its remaining events are ignored. """
        socket, self._socket = self._socket, None
        self._generation += 1
        self.state.closed()
        if socket is not None:
            socket.end()

    async def _handle_event(self, event):
        if event.socket is not self._socket:
            logger.debug("ignoring %s from a previous socket" % type(event).__name__)
            return
        if isinstance(event, ScanTokenEvent):
            self._on_scan_token(event)
        elif isinstance(event, ConnectionOpenedEvent):
            self._on_opened(event)
        elif isinstance(event, ConnectionClosedEvent):
            await self._on_closed(event)
        elif isinstance(event, MessagesReceivedEvent):
            if self.state.connected:
                self.messages.fire(event)
            else:
                logger.debug("ignoring %d messages while %s" % (len(event.messages), self.state.phase.value))

    def _on_scan_token(self, event):
        if self.state.connected:
            logger.debug("ignoring scan token while connected")
            return
        self.state.awaiting_scan(event.token)
        logger.info("scan token available, waiting for the device to scan it")
        self.scan_tokens.fire(event.token)

    def _on_opened(self, event):
        identity = event.identity or ''
        self.state.opened(phone_id(identity) or identity)
        logger.info("connected as %s" % self.state.identity)
        self.synchronizer.schedule_push(self.sync_delay)

    async def _on_closed(self, event):
        self._socket = None
        self.state.closed()
        error = self.disconnect_policy.classify(event.code, event.reason)
        logger.warning("%s" % error)
        await self._resolve(error)

    async def _resolve(self, error: ConnectorError):
        """ decides what follows a failed or closed connection. """
        state = self.state
        if isinstance(error, LoggedOutError):
            logger.warning("logged out, credentials discarded; waiting for a connect request")
            self._cancel_retry()
            state.reset_attempts()
            await self.synchronizer.invalidate()
            return
        if isinstance(error, AuthenticationRejectedError):
            logger.warning("credentials rejected, discarding them and starting a new session")
            await self.synchronizer.invalidate()
            state.reset_attempts()
        else:
            attempts = state.count_attempt()
            if self.retry_policy.exhausted(attempts):
                logger.warning("%d consecutive failures, discarding credentials" % attempts)
                await self.synchronizer.invalidate()
                state.reset_attempts()
        self._schedule_connect(self.retry_policy.delay(state.reconnect_attempts))

    def _schedule_connect(self, delay):
        self._cancel_retry()
        self.retry_delay = delay
        logger.info("reconnecting in %.1f seconds (attempt %d)" % (delay, self.state.reconnect_attempts))
        self._retry_handle = asyncio.get_running_loop().call_later(delay, self._scheduled_connect)

    def _scheduled_connect(self):
        self._retry_handle = None
        self._spawn(self.connect())

    def _cancel_retry(self):
        handle, self._retry_handle = self._retry_handle, None
        if handle is not None:
            handle.cancel()

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
