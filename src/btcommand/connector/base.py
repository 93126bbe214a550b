import logging
import threading
from abc import abstractmethod

from btcommand.conduit.base import PendingConduit, StreamIOError
from btcommand.support.background import BackgroundLoop

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """ The connection to the endpoint could not be established. """


class ConnectCancelledError(ConnectorError):
    """ The connection attempt was cancelled before it completed. """


class Endpoint:
    """
    Identifies the remote peer to connect to.
    :param address the transport address, such as a bluetooth device address or serial port name
    :param name the display name of the peer, if known
    """

    __slots__ = ('_address', '_name')

    def __init__(self, address, name=None):
        object.__setattr__(self, '_address', address)
        object.__setattr__(self, '_name', name)

    def __setattr__(self, key, value):
        raise AttributeError("Endpoint is immutable")

    @property
    def address(self):
        return self._address

    @property
    def name(self):
        return self._name

    @property
    def display_name(self):
        """
        >>> Endpoint('00:11:22:33:44:55', 'remote').display_name
        'remote'
        >>> Endpoint('00:11:22:33:44:55').display_name
        '00:11:22:33:44:55'
        """
        return self._name or str(self._address)

    def __eq__(self, other):
        return isinstance(other, Endpoint) and (self._address, self._name) == (other._address, other._name)

    def __hash__(self):
        return hash((self._address, self._name))

    def __repr__(self):
        return "Endpoint(%r, %r)" % (self._address, self._name)


class Transport:
    """
    Creates conduits to endpoints over a particular transport.
    A transport may also offer channel_conduit(endpoint, channel), an insecure connection to a numbered channel,
    used as a fallback when the service connection is refused.
    """

    @abstractmethod
    def cancel_discovery(self):
        """ stops any device discovery in progress, since it slows down or blocks new connections. """
        raise NotImplementedError

    @abstractmethod
    def service_conduit(self, endpoint: Endpoint, service_uuid) -> PendingConduit:
        """ creates an unconnected secure conduit to the service with the given uuid on the endpoint """
        raise NotImplementedError


def supports_channel_conduits(transport) -> bool:
    return callable(getattr(transport, 'channel_conduit', None))


class ConnectionStrategy:
    """ One way of opening a conduit to an endpoint. Strategies are tried in order until one connects. """

    def supported_by(self, transport) -> bool:
        return True

    @abstractmethod
    def create(self, transport, endpoint: Endpoint) -> PendingConduit:
        raise NotImplementedError


class ServiceStrategy(ConnectionStrategy):
    """ connects securely to a service identified by uuid """

    def __init__(self, service_uuid):
        self.service_uuid = service_uuid

    def create(self, transport, endpoint):
        return transport.service_conduit(endpoint, self.service_uuid)

    def __repr__(self):
        return "ServiceStrategy(%s)" % self.service_uuid


class ChannelStrategy(ConnectionStrategy):
    """ connects insecurely to a fixed channel number, for peers that refuse service based connections """

    def __init__(self, channel=1):
        self.channel = channel

    def supported_by(self, transport):
        return supports_channel_conduits(transport)

    def create(self, transport, endpoint):
        return transport.channel_conduit(endpoint, self.channel)

    def __repr__(self):
        return "ChannelStrategy(%d)" % self.channel


def default_strategies(settings):
    return [ServiceStrategy(settings.service_uuid), ChannelStrategy(settings.fallback_channel)]


class Connector(BackgroundLoop):
    """
    Makes one outgoing connection attempt to an endpoint on a background thread.
    The attempt either succeeds, calling on_connected(connector, conduit), or fails, calling
    on_failed(connector, error). When the attempt is cancelled neither is called.
    There is no retry.

    :param endpoint the peer to connect to
    :param transport the transport used to create conduits
    :param strategies the connection strategies, tried in order
    """

    def __init__(self, endpoint: Endpoint, transport: Transport, strategies, on_connected=None, on_failed=None,
                 log=logger):
        super().__init__(name="ConnectThread", log=log)
        self.endpoint = endpoint
        self.transport = transport
        self.strategies = list(strategies)
        self.on_connected = on_connected
        self.on_failed = on_failed
        self._lock = threading.Lock()
        self._pending = None
        self._cancelled = False

    @property
    def cancelled(self):
        return self._cancelled

    def loop(self):
        """ runs a single attempt, then lets the thread exit """
        self.signal_stop()
        try:
            conduit = self.attempt()
        except ConnectCancelledError:
            self.logger.debug("connection attempt to %s cancelled" % (self.endpoint,))
            return
        except ConnectorError as e:
            self.logger.warning("unable to connect to %s: %s" % (self.endpoint, e))
            if self.on_failed:
                self.on_failed(self, e)
            return
        if self.on_connected:
            self.on_connected(self, conduit)

    def attempt(self) -> PendingConduit:
        """
        Cancels discovery, then tries each strategy supported by the transport in turn.
        :return: the connected conduit
        :raises ConnectorError: when no strategy connects
        :raises ConnectCancelledError: when the attempt was cancelled
        """
        self.transport.cancel_discovery()
        last_error = None
        for strategy in self.strategies:
            if not strategy.supported_by(self.transport):
                self.logger.debug("%s not supported by transport, skipping" % strategy)
                continue
            self._check_cancelled(last_error)
            try:
                conduit = self._connect_with(strategy)
                self._check_cancelled(None, conduit)
                return conduit
            except ConnectCancelledError:
                raise
            except (StreamIOError, OSError) as e:
                last_error = e
                self.logger.info("%s to %s failed: %s" % (strategy, self.endpoint, e))
        self._check_cancelled(last_error)
        raise ConnectorError("unable to connect to %s: %s" % (self.endpoint.display_name, last_error)) from last_error

    def _connect_with(self, strategy) -> PendingConduit:
        conduit = strategy.create(self.transport, self.endpoint)
        with self._lock:
            if self._cancelled:
                conduit.close()
                raise ConnectCancelledError()
            self._pending = conduit
        try:
            conduit.connect()
        except BaseException:
            conduit.close()
            raise
        finally:
            with self._lock:
                self._pending = None
        return conduit

    def _check_cancelled(self, cause, conduit=None):
        if self._cancelled:
            if conduit is not None:
                conduit.close()
            raise ConnectCancelledError() from cause

    def cancel(self):
        """
        Cancels the attempt by closing the conduit being connected, which makes a blocked connect fail.
        Does not wait for the background thread.
        """
        with self._lock:
            self._cancelled = True
            pending = self._pending
        self.signal_stop()
        if pending is not None:
            pending.close()
