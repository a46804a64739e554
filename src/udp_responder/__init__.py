"""
UDP address/timestamp responder
Replies to every datagram with the sender's address and the current UNIX time,
written out as binary octet groups
"""

__version__ = "1.0.0"
