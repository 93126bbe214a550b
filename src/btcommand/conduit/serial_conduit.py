"""
Implements a conduit over a serial port. Bluetooth serial port profile links show up as serial ports
once bound, e.g. /dev/rfcomm0 on linux or an outgoing COM port on windows.
"""

import logging
import threading

import serial
from serial.tools import list_ports

from btcommand.conduit.base import PendingConduit, StreamIOError

logger = logging.getLogger(__name__)


class SerialConduit(PendingConduit):
    """
    A conduit that provides comms via a serial port.
    :param ser the serial port, configured but not yet open.
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser
        self._closed = False
        self._close_lock = threading.Lock()
        # flushing locks up if the port goes away during the flush
        ser.flush = self._no_flush

    def _no_flush(self, *args, **kwargs):
        pass

    @property
    def target(self):
        return self.ser

    @property
    def open(self) -> bool:
        return not self._closed and self.ser.is_open

    def connect(self):
        if self._closed:
            raise StreamIOError("serial port %s was closed" % self.ser.port)
        try:
            self.ser.open()
        except (serial.SerialException, OSError, ValueError) as e:
            raise StreamIOError("error opening serial port %s: %s" % (self.ser.port, e)) from e
        logger.info("opened serial port %s" % self.ser.port)

    def read(self, size) -> bytes:
        """ blocks for the first byte, then takes whatever else has already arrived, up to size bytes. """
        try:
            data = self.ser.read(1)
            if data:
                waiting = min(self.ser.in_waiting, size - 1)
                if waiting > 0:
                    data += self.ser.read(waiting)
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            raise StreamIOError(str(e)) from e
        if not data:
            raise StreamIOError("serial port %s closed" % self.ser.port)
        return data

    def write(self, data):
        try:
            self.ser.write(bytes(data))
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            raise StreamIOError(str(e)) from e

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.ser.is_open and hasattr(self.ser, 'cancel_read'):
            self.ser.cancel_read()
        self.ser.close()


def serial_port_info():
    """
    :return: a tuple of serial port info objects
    """
    return tuple(list_ports.comports())


def serial_ports():
    """
    Returns a generator for all available serial port device names.
    """
    for port in serial_port_info():
        yield port[0]


def serial_conduit_factory(port, baudrate=9600):
    """
    Creates a serial conduit for the given port name. The port is opened when the conduit is connected.
    """
    ser = serial.Serial()
    ser.port = port
    ser.baudrate = baudrate
    ser.timeout = None
    return SerialConduit(ser)
