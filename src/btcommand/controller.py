"""
The connection controller runs the connection state machine.

It holds at most one connector and one session. Every transition runs under a single lock, cancels the
connector and session it replaces without waiting for their threads, and fires exactly one StateChangedEvent.
Signals from a connector or session that has since been replaced are ignored.
"""
import logging
import threading
from enum import IntEnum

from btcommand.conduit.base import Conduit
from btcommand.config.config import ConnectionSettings
from btcommand.connector.base import Connector, Endpoint, Transport, default_strategies
from btcommand.events import DeviceNameEvent, StateChangedEvent, ToastEvent
from btcommand.protocol.frames import encode_command
from btcommand.session import Session
from btcommand.support.events import EventSource

logger = logging.getLogger(__name__)

CONNECTION_LOST_MESSAGE = "Device connection was lost"


class ConnectionState(IntEnum):
    NONE = 0            # doing nothing
    LISTENING = 1       # idle, ready to connect
    CONNECTING = 2      # an outgoing connection attempt is running
    CONNECTED = 3       # connected to a remote device


class ConnectionController:
    """
    :param transport creates the conduits to remote devices
    :param events receives the controller's notifications, and the raw payload from the session
    :param settings the connection settings
    :param strategies the connection strategies, by default the configured service then the fallback channel
    """

    def __init__(self, transport: Transport, events=None, settings: ConnectionSettings=None, strategies=None,
                 log=logger):
        self.transport = transport
        self.events = events if events is not None else EventSource()
        self.settings = settings or ConnectionSettings()
        self.strategies = strategies if strategies is not None else default_strategies(self.settings)
        self.logger = log
        self._lock = threading.RLock()
        self._state = ConnectionState.NONE
        self._connector = None
        self._session = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def connector(self):
        with self._lock:
            return self._connector

    @property
    def session(self):
        with self._lock:
            return self._session

    def _set_state(self, state):
        self.logger.debug("setState() %d -> %d" % (self._state, state))
        self._state = state
        self.events.fire(StateChangedEvent(state))

    def _cancel_connector(self):
        if self._connector is not None:
            self._connector.cancel()
            self._connector = None

    def _cancel_session(self):
        if self._session is not None:
            self._session.cancel()
            self._session = None

    def start(self):
        """ Cancels any connection attempt or connection, and waits for a connect request. """
        with self._lock:
            self._cancel_connector()
            self._cancel_session()
            self._set_state(ConnectionState.LISTENING)

    def connect(self, endpoint: Endpoint):
        """
        Starts connecting to the endpoint on a background thread, replacing any attempt or connection in progress.
        The outcome is reported through the events.
        """
        with self._lock:
            self.logger.debug("connect to: %s" % endpoint.display_name)
            self._cancel_connector()
            self._cancel_session()
            connector = Connector(endpoint, self.transport, self.strategies,
                                  self._connector_succeeded, self._connector_failed)
            self._connector = connector
            self._set_state(ConnectionState.CONNECTING)
            connector.start()

    def connected(self, conduit: Conduit, endpoint: Endpoint):
        """
        Starts a session on a connected conduit, replacing any attempt or connection in progress.
        """
        with self._lock:
            self.logger.debug("connected to %s" % endpoint.display_name)
            self._cancel_connector()
            self._cancel_session()
            session = Session(conduit, self.events, read_size=self.settings.read_size)
            session.lost_handlers += self._session_lost
            self._session = session
            self.events.fire(DeviceNameEvent(endpoint.display_name))
            self._set_state(ConnectionState.CONNECTED)
            session.start()

    def stop(self):
        """ Cancels any connection attempt or connection. """
        with self._lock:
            self.logger.debug("stop")
            self._cancel_connector()
            self._cancel_session()
            self._set_state(ConnectionState.NONE)

    def write(self, data) -> bool:
        """
        Writes to the connected device. The write itself runs outside the controller lock.
        :return: False when not connected or the write failed.
        """
        with self._lock:
            if self._state != ConnectionState.CONNECTED:
                return False
            session = self._session
        return session.write(data)

    def send_command(self, command) -> bool:
        return self.write(encode_command(command))

    def _connector_succeeded(self, connector, conduit):
        with self._lock:
            if connector is not self._connector:
                self.logger.debug("ignoring connection from replaced connector to %s" % connector.endpoint)
                conduit.close()
                return
            self.connected(conduit, connector.endpoint)

    def _connector_failed(self, connector, error):
        with self._lock:
            if connector is not self._connector:
                return
            self._connector = None
            self._set_state(ConnectionState.LISTENING)
            self.events.fire(ToastEvent(str(error)))

    def _session_lost(self, session, error):
        with self._lock:
            if session is not self._session:
                return
            self._session = None
            session.conduit.close()
            self._set_state(ConnectionState.LISTENING)
            self.events.fire(ToastEvent(CONNECTION_LOST_MESSAGE))
