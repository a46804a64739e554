#!/usr/bin/env python3
"""
Responder Query Client
Sends one datagram to a responder port and decodes the binary reply
"""

import socket
import logging
import argparse
from typing import Tuple

from .encoding import decode_reply
from .port_responder import MAX_DATAGRAM_SIZE

logger = logging.getLogger(__name__)


def query(host: str, port: int, timeout: float = 2.0,
          payload: bytes = b"ping") -> Tuple[str, int]:
    """Return (address the responder saw, its UNIX timestamp)"""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.settimeout(timeout)
        sock.sendto(payload, (host, port))
        data, _ = sock.recvfrom(MAX_DATAGRAM_SIZE)

    address, timestamp = decode_reply(data.decode('ascii'))
    logger.debug(f"Reply from {host}:{port}: {address!r} {timestamp!r}")
    return address.decode('ascii'), int(timestamp)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Query a UDP address/timestamp responder")
    parser.add_argument("host")
    parser.add_argument("port", type=int, nargs="?", default=2600)
    parser.add_argument("--timeout", type=float, default=2.0)
    args = parser.parse_args(argv)

    address, timestamp = query(args.host, args.port, args.timeout)
    print(f"{address} {timestamp}")


if __name__ == "__main__":
    main()
