"""
Decodes the frames sent by the peripheral and builds the acknowledgments sent back.

Each read from the stream is handled as one frame. The first byte is the marker 0xA5 and the
second byte is the frame type.

- config frame (type 0x55): sent once when the link comes up. Answered with the fixed config ack.
- data frame (type 0xAA): carries a sequence byte at offset 3 and a checksum byte at offset 60 over
  bytes 0..58. Answered with a data ack echoing the sequence byte, only when the checksum matches.

Anything else is unrecognized and not answered.
"""
import logging
from enum import Enum, IntEnum

from btcommand.crc8 import checksum

logger = logging.getLogger(__name__)

FRAME_MARKER = 0xA5
CONFIG_FRAME_TYPE = 0x55
DATA_FRAME_TYPE = 0xAA

TYPE_OFFSET = 1
SEQUENCE_OFFSET = 3
CHECKSUM_SPAN = 59          # the inbound checksum covers bytes 0..58
CHECKSUM_OFFSET = 60        # the byte the peripheral's checksum is compared against
FRAME_WINDOW = 61           # bytes of a data frame that take part in the protocol

CONFIG_ACK = bytes([FRAME_MARKER, CONFIG_FRAME_TYPE, 0x01, 0x00, 0xA2])
DATA_ACK_TEMPLATE = bytes([FRAME_MARKER, DATA_FRAME_TYPE, 0x02, 0x00, 0x00, 0x00])
DATA_ACK_CHECKSUM_SPAN = 5
DATA_ACK_SEQUENCE_OFFSET = 3
DATA_ACK_CHECKSUM_OFFSET = 5


class ProtocolError(IOError):
    """ The peripheral sent something that does not satisfy the frame protocol. """


class ChecksumMismatch(ProtocolError):
    """ A data frame's checksum byte does not match the checksum of its contents. """
    def __init__(self, expected, actual):
        super().__init__("checksum mismatch: frame carries %02x, computed %02x" % (expected, actual))
        self.expected = expected
        self.actual = actual


class Command(IntEnum):
    """ Single byte commands written to the peripheral. """
    EXIT = -1
    VOLUME_UP = 1
    VOLUME_DOWN = 2
    MOUSE_MOVE = 3


def encode_command(command) -> bytes:
    """
    Encodes a command as the single byte written on the wire.
    >>> encode_command(Command.EXIT)
    b'\\xff'
    >>> encode_command(Command.VOLUME_DOWN)
    b'\\x02'
    """
    return bytes([int(command) & 0xFF])


TERMINATE_SENTINEL = encode_command(Command.EXIT)


class FrameKind(Enum):
    CONFIG = 'config'
    DATA = 'data'
    UNRECOGNIZED = 'unrecognized'


class HandshakeState:
    """
    Tracks whether the config frame has been seen on this link.
    It starts out awaiting the config frame, and once received never goes back.
    """

    def __init__(self):
        self._awaiting_config = True

    @property
    def awaiting_config(self) -> bool:
        return self._awaiting_config

    def config_received(self):
        self._awaiting_config = False

    def __repr__(self):
        return "HandshakeState(awaiting_config=%s)" % self._awaiting_config


class FrameDecision:
    """
    The outcome of decoding one inbound buffer.
    :param kind the FrameKind
    :param ack the bytes to send back, or None
    :param sequence the data frame sequence byte, None for other kinds
    :param checksum_ok whether a data frame passed its checksum, None for other kinds
    """

    def __init__(self, kind, ack=None, sequence=None, checksum_ok=None):
        self.kind = kind
        self.ack = ack
        self.sequence = sequence
        self.checksum_ok = checksum_ok

    def __eq__(self, other):
        return isinstance(other, FrameDecision) and self.__dict__ == other.__dict__

    def __repr__(self):
        return "FrameDecision(kind=%s, ack=%s, sequence=%s, checksum_ok=%s)" % \
               (self.kind, hexlify(self.ack) if self.ack is not None else None, self.sequence, self.checksum_ok)


def hexlify(data) -> str:
    """
    >>> hexlify(bytes([0xA5, 0x55, 0x01]))
    'a55501'
    """
    return bytes(data).hex()


def frame_byte(buffer, offset) -> int:
    """
    Reads an unsigned byte from the buffer. Offsets past the end of a short read read as zero, as they would from
    a fresh zero filled receive buffer.
    >>> frame_byte(bytes([0xA5, 0xAA]), 1)
    170
    >>> frame_byte(bytes([0xA5]), 60)
    0
    """
    return buffer[offset] & 0xFF if offset < len(buffer) else 0


def frame_window(buffer, size=FRAME_WINDOW) -> bytes:
    """ the first size bytes of the buffer, zero padded when the buffer is shorter. """
    data = bytes(buffer[:size])
    return data + bytes(size - len(data))


def classify(buffer, handshake: HandshakeState) -> FrameKind:
    frame_type = frame_byte(buffer, TYPE_OFFSET)
    if len(buffer) > TYPE_OFFSET:
        if handshake.awaiting_config and frame_type == CONFIG_FRAME_TYPE:
            return FrameKind.CONFIG
        if not handshake.awaiting_config and frame_type == DATA_FRAME_TYPE:
            return FrameKind.DATA
    return FrameKind.UNRECOGNIZED


def build_config_ack() -> bytes:
    return CONFIG_ACK


def build_data_ack(buffer) -> bytes:
    """
    Builds the data ack for a data frame. The type and sequence bytes are copied from the frame
    and the last byte is the checksum of the first five.
    """
    ack = bytearray(DATA_ACK_TEMPLATE)
    ack[TYPE_OFFSET] = frame_byte(buffer, TYPE_OFFSET)
    ack[DATA_ACK_SEQUENCE_OFFSET] = frame_byte(buffer, SEQUENCE_OFFSET)
    ack[DATA_ACK_CHECKSUM_OFFSET] = checksum(ack[:DATA_ACK_CHECKSUM_SPAN])
    return bytes(ack)


def data_frame_checksum(buffer) -> int:
    return checksum(frame_window(buffer)[:CHECKSUM_SPAN])


def verify_data_checksum(buffer):
    """
    Raises ChecksumMismatch unless the checksum of bytes 0..58 equals byte 60.
    """
    actual = data_frame_checksum(buffer)
    expected = frame_byte(buffer, CHECKSUM_OFFSET)
    if actual != expected:
        raise ChecksumMismatch(expected, actual)


class FrameCodec:
    """
    Decodes inbound buffers against the handshake state of a link and decides the ack to send.
    The codec keeps no state of its own. The handshake state belongs to the caller.
    """

    def __init__(self, log=logger):
        self.logger = log

    def decode(self, buffer, handshake: HandshakeState) -> FrameDecision:
        kind = classify(buffer, handshake)
        if kind is FrameKind.CONFIG:
            handshake.config_received()
            return FrameDecision(kind, build_config_ack())
        if kind is FrameKind.DATA:
            return self._decode_data(buffer)
        return FrameDecision(kind)

    def _decode_data(self, buffer) -> FrameDecision:
        sequence = frame_byte(buffer, SEQUENCE_OFFSET)
        ack = build_data_ack(buffer)
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("data frame %s" % hexlify(frame_window(buffer)))
            self.logger.debug("ack %s" % hexlify(ack))
        try:
            verify_data_checksum(buffer)
        except ChecksumMismatch as e:
            self.logger.debug("dropping ack for frame %d: %s" % (sequence, e))
            return FrameDecision(FrameKind.DATA, None, sequence, False)
        return FrameDecision(FrameKind.DATA, ack, sequence, True)
