"""
A helper to watch a connection for manual testing.

    python -m btcommand.monitor 00:11:22:33:44:55
    python -m btcommand.monitor /dev/rfcomm0

A device address connects over RFCOMM, anything else is taken as a serial port name.
Every notification is logged until interrupted.
"""
import logging
import re
import sys
import time

from btcommand.config import load_settings
from btcommand.connector.base import Endpoint
from btcommand.connector.rfcommconn import rfcomm_transport
from btcommand.connector.serialconn import serial_transport
from btcommand.controller import ConnectionController
from btcommand.events import RawPayloadEvent
from btcommand.protocol.frames import hexlify
from btcommand.support.events import QueuedEventSource

logger = logging.getLogger(__name__)

DEVICE_ADDRESS = re.compile(r'^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$')


def is_device_address(address):
    """
    >>> is_device_address('00:11:22:33:AA:bb')
    True
    >>> is_device_address('/dev/rfcomm0')
    False
    """
    return DEVICE_ADDRESS.match(address) is not None


def transport_for(address, settings):
    return rfcomm_transport(settings) if is_device_address(address) else serial_transport(settings)


def log_event(event):
    if isinstance(event, RawPayloadEvent):
        logger.info("received %d bytes: %s" % (event.count, hexlify(event.data)))
    else:
        logger.info(event)


def monitor(argv=None):
    """ connects to the address given on the command line and logs notifications. """
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: python -m btcommand.monitor <device address or serial port>")
        return 2
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler()])
    address = argv[0]
    settings = load_settings()
    events = QueuedEventSource()
    events += log_event
    controller = ConnectionController(transport_for(address, settings), events, settings)
    controller.start()
    controller.connect(Endpoint(address))
    try:
        while True:
            time.sleep(0.1)
            events.publish()
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop()
        events.publish()
    return 0


if __name__ == '__main__':
    sys.exit(monitor())
