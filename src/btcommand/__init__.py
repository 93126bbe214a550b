"""

Bluetooth Command Connections

- Conduit: a live, two-way byte stream to the peripheral. SocketConduit wraps an RFCOMM socket,
  SerialConduit wraps a serial port bound to a bluetooth serial port profile link.
- Transport: creates unconnected conduits to an endpoint. RfcommTransport and SerialTransport.
- Connector: makes one outgoing connection attempt, trying the secure service connection first
  and an insecure channel connection as the fallback.
- Session: owns the conduit once connected. Answers the config handshake and the data frames with acks,
  forwards everything read as RawPayloadEvents and reports a lost connection once.
- ConnectionController: the state machine tying these together. NONE, LISTENING, CONNECTING, CONNECTED.


## Threading

Connecting and reading block, and there are no timeouts. Each connection attempt runs on its own
thread, and so does each session's receive loop. Control calls (start, connect, stop, write) come
from the caller's thread and never block on I/O.

The only way to unblock a connect or read is to close the conduit. Cancelling a connector or session
closes its conduit and moves on without waiting for the thread to exit.

The controller serializes its transitions with one lock. Writes take the session handle under that lock
and write outside it, so a slow write never holds up a transition. Writes to the conduit are serialized
by the session.

Notifications are fired on whichever thread made the change. Use a QueuedEventSource and call publish()
to receive them all on one thread, in the order they were fired.

"""
