"""
The frame protocol spoken with the peripheral over a live conduit.
"""
