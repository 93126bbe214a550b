"""
The conduit package provides an abstraction of the live bi-directional byte stream to the peer.
Concrete implementations are an RFCOMM socket and a serial port bound to the peer's serial port profile.
"""
