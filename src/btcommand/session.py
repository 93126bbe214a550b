"""
A session owns the live conduit to the peripheral once a connection is made.

The receive loop runs on its own thread. It reads from the conduit, answers the handshake and data frames
with acks, and forwards every read to listeners as a RawPayloadEvent. A failed read ends the loop
and is reported once as a lost connection, including the read failure caused by cancel() closing the conduit.
"""
import logging
import threading

from btcommand.conduit.base import Conduit, StreamIOError
from btcommand.events import RawPayloadEvent
from btcommand.protocol.frames import TERMINATE_SENTINEL, FrameCodec, FrameKind, HandshakeState
from btcommand.support.background import BackgroundLoop
from btcommand.support.events import EventSource

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 1024


class SessionError(Exception):
    """ The session was used in a way its lifecycle does not allow. """


class Session(BackgroundLoop):
    """
    :param conduit the connected conduit. The session takes ownership and closes it when done.
    :param events receives RawPayloadEvents
    :param codec decodes inbound frames
    :param read_size the maximum number of bytes taken by one read
    """

    def __init__(self, conduit: Conduit, events=None, codec: FrameCodec=None, read_size=DEFAULT_READ_SIZE,
                 log=logger):
        super().__init__(name="ConnectedThread", log=log)
        self.conduit = conduit
        self.events = events if events is not None else EventSource()
        self.codec = codec or FrameCodec(log)
        self.read_size = read_size
        self.handshake = HandshakeState()
        self.frame_count = 0
        self.stopping = False
        self.lost_handlers = EventSource()
        self._write_lock = threading.Lock()
        self._lost = False
        self._lost_lock = threading.Lock()

    def start(self):
        if self.stopping or self._lost:
            raise SessionError("a stopped session cannot be restarted")
        return super().start()

    @property
    def lost(self):
        return self._lost

    def loop(self):
        try:
            data = self.conduit.read(self.read_size)
        except StreamIOError as e:
            self.signal_stop()
            self._connection_lost(e)
            return
        self.received(data)

    def received(self, data):
        """ handles one read from the peripheral """
        decision = self.codec.decode(data, self.handshake)
        if decision.kind is FrameKind.DATA:
            self.frame_count += 1
        if decision.ack is not None:
            self.write(decision.ack)
        self.events.fire(RawPayloadEvent(data, len(data)))

    def write(self, data) -> bool:
        """
        Writes data to the peripheral. Writes from any thread are serialized.
        A failed write closes the conduit, which ends the receive loop as a lost connection.
        :return: True if the data was written.
        """
        with self._write_lock:
            try:
                self.conduit.write(data)
                return True
            except StreamIOError as e:
                self.logger.info("Exception during write: %s" % e)
        self.conduit.close()
        return False

    def cancel(self):
        """
        Asks the peripheral to stop by writing the terminate sentinel, then closes the conduit.
        The sentinel is skipped while another write is in progress, since only closing the conduit
        unblocks that write. Does not wait for the receive loop to exit.
        """
        self.stopping = True
        self.signal_stop()
        if self._write_lock.acquire(blocking=False):
            try:
                self.conduit.write(TERMINATE_SENTINEL)
            except StreamIOError as e:
                self.logger.debug("terminate not sent: %s" % e)
            finally:
                self._write_lock.release()
        else:
            self.logger.debug("terminate not sent: a write is in progress")
        self.conduit.close()

    def _connection_lost(self, error):
        with self._lost_lock:
            if self._lost:
                return
            self._lost = True
        if self.stopping:
            self.logger.debug("session closed: %s" % error)
        else:
            self.logger.info("connection lost: %s" % error)
        self.lost_handlers.fire(self, error)
