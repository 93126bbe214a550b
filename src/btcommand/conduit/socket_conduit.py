import logging
import socket
import threading

from btcommand.conduit.base import PendingConduit, StreamIOError

logger = logging.getLogger(__name__)


class SocketConduit(PendingConduit):
    """
    A conduit that provides communication via a stream socket, such as an RFCOMM socket.
    :param sock The socket, not yet connected
    :param address The address passed to sock.connect()
    """
    def __init__(self, sock: socket.socket, address):
        self.sock = sock
        self.address = address
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def target(self):
        return self.sock

    @property
    def open(self) -> bool:
        return not self._closed and self.sock.fileno() >= 0

    def connect(self):
        try:
            self.sock.connect(self.address)
        except OSError as e:
            raise StreamIOError("connect to %s failed: %s" % (str(self.address), e)) from e
        logger.info("opened socket to %s" % str(self.address))

    def read(self, size) -> bytes:
        try:
            data = self.sock.recv(size)
        except OSError as e:
            raise StreamIOError(str(e)) from e
        if not data:
            raise StreamIOError("stream closed by peer")
        return data

    def write(self, data):
        try:
            self.sock.sendall(bytes(data))
        except OSError as e:
            raise StreamIOError(str(e)) from e

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            # shutdown wakes a thread blocked in recv() or connect(), close alone may not
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # the peer may have closed the socket, or it was never connected
        finally:
            self.sock.close()
