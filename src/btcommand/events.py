"""
Notifications sent by the connection controller and its session to listeners.
"""


class ConnectionEvent:
    """ base class for connection events. Events with the same type and attributes are equal. """

    def __eq__(self, other):
        return type(other) is type(self) and other.__dict__ == self.__dict__

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self):
        return "%s(%s)" % (type(self).__name__,
                           ", ".join("%s=%r" % (k, v) for k, v in sorted(self.__dict__.items())))


class StateChangedEvent(ConnectionEvent):
    """ The controller moved to a new ConnectionState. """
    def __init__(self, state):
        self.state = state


class DeviceNameEvent(ConnectionEvent):
    """ A connection was made to the named device. """
    def __init__(self, name):
        self.name = name


class RawPayloadEvent(ConnectionEvent):
    """
    A chunk of bytes was read from the peripheral.
    :param data the bytes read
    :param count the number of bytes read
    """
    def __init__(self, data, count=None):
        self.data = data
        self.count = len(data) if count is None else count


class ToastEvent(ConnectionEvent):
    """ A short message for the user. """
    def __init__(self, text):
        self.text = text
