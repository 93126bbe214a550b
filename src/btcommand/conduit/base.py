from abc import abstractmethod


class StreamIOError(IOError):
    """ A read or write on a live conduit failed, or the stream was closed. """


class Conduit:
    """
    A conduit is a live, two-way byte stream to the remote peer.
    Reads block until at least one byte arrives. Closing the conduit from another thread
    makes a blocked read fail with StreamIOError.
    """

    @property
    @abstractmethod
    def target(self):
        """ the underlying resource, such as a socket or serial port """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        """ determines if this conduit is open and can be read from/written to. """
        raise NotImplementedError

    @abstractmethod
    def read(self, size) -> bytes:
        """
        Blocks until data is available and returns between 1 and size bytes.
        Raises StreamIOError when the stream fails or is closed, including end of stream.
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, data):
        """
        Writes all of data to the stream.
        Raises StreamIOError when the stream fails or is closed.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError


class PendingConduit(Conduit):
    """
    A conduit that has been created but not yet connected to the peer.
    connect() blocks until the connection is made. Calling close() from another thread
    causes a blocked connect() to fail.
    """

    @abstractmethod
    def connect(self):
        raise NotImplementedError
