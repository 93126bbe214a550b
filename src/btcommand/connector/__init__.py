"""
Connectors make the outgoing connection to the peripheral and hand over a live conduit.
"""
