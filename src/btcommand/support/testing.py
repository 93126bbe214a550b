"""
Helpers shared by the unit tests.
"""
import sys
import threading
from queue import Queue

from btcommand.conduit.base import PendingConduit, StreamIOError


def debug_timeout(value):
    """
    Replaces the timeout value with a very large one if the tests are running under a debugger.
    This prevents the main thread from throwing an exception and exiting when the test times out
    due to a breakpoint.
    """
    return value if sys.gettrace() is None else 100000


class FakeConduit(PendingConduit):
    """
    An in-memory conduit scripted by the test.
    Reads block until data is fed or the conduit is closed, like a socket. Writes are recorded.
    Set block_connect to make connect() wait until release_connect() or close() is called.
    Set block_write to make write() wait until close() is called, like a send to a peer that stopped reading.
    """

    _CLOSED = object()

    def __init__(self, connect_error=None, block_connect=False, block_write=False):
        self.inbound = Queue()
        self.writes = []
        self.connect_error = connect_error
        self.write_error = None
        self.connected = False
        self.close_count = 0
        self._closed = threading.Event()
        self._connect_gate = threading.Event()
        self.connect_entered = threading.Event()
        self.block_write = block_write
        self.write_entered = threading.Event()
        if not block_connect:
            self._connect_gate.set()

    @property
    def target(self):
        return self

    @property
    def open(self):
        return self.connected and not self._closed.is_set()

    @property
    def closed(self):
        return self._closed.is_set()

    def feed(self, *chunks):
        """ queues data to be returned by read(). An exception instance is raised by the read instead. """
        for chunk in chunks:
            self.inbound.put(chunk)

    def release_connect(self):
        self._connect_gate.set()

    def connect(self):
        self.connect_entered.set()
        self._connect_gate.wait()
        if self._closed.is_set():
            raise StreamIOError("connect aborted: conduit closed")
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def read(self, size):
        if self._closed.is_set():
            raise StreamIOError("conduit closed")
        item = self.inbound.get()
        if item is self._CLOSED:
            self.inbound.put(item)
            raise StreamIOError("conduit closed")
        if isinstance(item, BaseException):
            raise item
        return bytes(item[:size])

    def write(self, data):
        if self._closed.is_set():
            raise StreamIOError("conduit closed")
        if self.block_write:
            self.write_entered.set()
            self._closed.wait()
            raise StreamIOError("write aborted: conduit closed")
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(bytes(data))

    def close(self):
        self.close_count += 1
        if not self._closed.is_set():
            self._closed.set()
            self.inbound.put(self._CLOSED)
        self._connect_gate.set()
