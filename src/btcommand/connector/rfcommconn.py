"""
Connects to a bluetooth device over RFCOMM using the operating system's bluetooth sockets.
"""
import logging
import socket
import struct

from btcommand.conduit.base import PendingConduit, StreamIOError
from btcommand.conduit.socket_conduit import SocketConduit
from btcommand.connector.base import Endpoint, Transport

logger = logging.getLogger(__name__)

AF_BLUETOOTH = getattr(socket, 'AF_BLUETOOTH', 31)
BTPROTO_RFCOMM = getattr(socket, 'BTPROTO_RFCOMM', 3)
SOL_BLUETOOTH = getattr(socket, 'SOL_BLUETOOTH', 274)
BT_SECURITY = 4
BT_SECURITY_MEDIUM = 2


class ServiceChannelResolver:
    """
    Resolves a service uuid to the RFCOMM channel the service listens on.
    The lookup uses a fixed table of known services, normally the service_channels configuration setting.
    """

    def __init__(self, channels=None):
        self.channels = {str(k).upper(): int(v) for k, v in (channels or {}).items()}

    def __call__(self, endpoint: Endpoint, service_uuid) -> int:
        try:
            return self.channels[str(service_uuid).upper()]
        except KeyError:
            raise StreamIOError("no channel known for service %s on %s" %
                                (service_uuid, endpoint.display_name)) from None


class RfcommTransport(Transport):
    """
    Creates RFCOMM socket conduits.
    Service conduits request an authenticated, encrypted link. Channel conduits connect to the raw
    channel number without asking for link security.

    :param resolver maps (endpoint, service_uuid) to a channel number
    :param socket_factory creates an unconnected socket
    """

    def __init__(self, resolver=None, socket_factory=None, log=logger):
        self.resolver = resolver or ServiceChannelResolver()
        self.socket_factory = socket_factory or self._new_socket
        self.logger = log

    @staticmethod
    def _new_socket():
        return socket.socket(AF_BLUETOOTH, socket.SOCK_STREAM, BTPROTO_RFCOMM)

    def cancel_discovery(self):
        """ inquiry is not started by this transport, so there is none to cancel """

    def service_conduit(self, endpoint, service_uuid) -> PendingConduit:
        channel = self.resolver(endpoint, service_uuid)
        self.logger.debug("service %s on %s is channel %d" % (service_uuid, endpoint.display_name, channel))
        sock = self._open_socket()
        try:
            sock.setsockopt(SOL_BLUETOOTH, BT_SECURITY, struct.pack("BB", BT_SECURITY_MEDIUM, 0))
        except OSError as e:
            sock.close()
            raise StreamIOError("unable to request link security: %s" % e) from e
        return SocketConduit(sock, (endpoint.address, channel))

    def channel_conduit(self, endpoint, channel) -> PendingConduit:
        return SocketConduit(self._open_socket(), (endpoint.address, channel))

    def _open_socket(self):
        try:
            return self.socket_factory()
        except OSError as e:
            raise StreamIOError("bluetooth sockets not available: %s" % e) from e


def rfcomm_transport(settings) -> RfcommTransport:
    """ creates the transport from the connection settings """
    return RfcommTransport(ServiceChannelResolver(settings.service_channels))
