import logging

from btcommand.conduit.base import PendingConduit
from btcommand.conduit.serial_conduit import serial_conduit_factory, serial_ports
from btcommand.connector.base import Transport

logger = logging.getLogger(__name__)


class SerialTransport(Transport):
    """
    A transport for bluetooth serial port profile links the operating system has bound to a serial port,
    such as /dev/rfcomm0 or a COM port. The endpoint address is the port name.
    The port is already bound to the service, so there are no channel conduits.
    """

    def __init__(self, baudrate=9600, conduit_factory=serial_conduit_factory):
        self.baudrate = baudrate
        self.conduit_factory = conduit_factory

    def cancel_discovery(self):
        """ No discovery to cancel """

    def service_conduit(self, endpoint, service_uuid) -> PendingConduit:
        logger.debug("serial port %s for service %s" % (endpoint.address, service_uuid))
        return self.conduit_factory(endpoint.address, baudrate=self.baudrate)

    def available(self, endpoint) -> bool:
        return endpoint.address in serial_ports()


def serial_transport(settings) -> SerialTransport:
    return SerialTransport(settings.baudrate)
