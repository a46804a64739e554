#!/usr/bin/env python3
"""
Port Responder
Owns one UDP socket and answers every datagram on it with the sender's
address and the current UNIX timestamp as binary octet groups
"""

import socket
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from prometheus_client import Counter

from .config_loader import ListenerConfig
from .encoding import ReplyPayload, build_reply

logger = logging.getLogger(__name__)

# A UDP datagram inside an IP frame never exceeds 1500 bytes on ethernet
MAX_DATAGRAM_SIZE = 1500

datagrams_received_counter = Counter(
    'responder_datagrams_received',
    'Datagrams received by the responder',
    ['port']
)

replies_sent_counter = Counter(
    'responder_replies_sent',
    'Encoded replies sent back to senders',
    ['port']
)

failures_counter = Counter(
    'responder_failures',
    'Responders stopped by a bind or I/O failure',
    ['port', 'kind']
)


class ResponderError(Exception):
    """Base class for failures that stop a port responder"""

    def __init__(self, port: int, message: str):
        super().__init__(f"Port {port}: {message}")
        self.port = port


class BindError(ResponderError):
    """Port already in use or permission denied"""


class ReceiveError(ResponderError):
    """I/O failure while waiting for a datagram"""


class SendError(ResponderError):
    """I/O failure while sending a reply"""


@dataclass
class InboundDatagram:
    """One received datagram, payload content is never interpreted"""
    source_address: str
    source_port: int
    payload: bytes


class PortResponder:
    """Serves a single UDP port for the lifetime of the process"""

    def __init__(self, port: int, config: ListenerConfig,
                 clock: Callable[[], float] = time.time):
        self.port = port
        self.config = config
        self.clock = clock
        self.sock: Optional[socket.socket] = None

    def bind(self, port: Optional[int] = None):
        """Acquire an exclusive UDP socket on the port"""
        if port is not None:
            self.port = port

        family = socket.AF_INET6 if ":" in self.config.bind_host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.bind((self.config.bind_host, self.port))
        except OSError as e:
            sock.close()
            failures_counter.labels(port=str(self.port), kind='bind').inc()
            raise BindError(self.port, f"cannot bind {self.config.bind_host}: {e.strerror or e}") from e

        self.sock = sock
        # Port 0 resolves to whatever ephemeral port the OS picked
        self.port = sock.getsockname()[1]
        if self.config.debug_enabled:
            logger.info(f"Responder started on port {self.port}")

    def _socket(self, error_class) -> socket.socket:
        sock = self.sock
        if sock is None:
            raise error_class(self.port, "socket is not bound")
        return sock

    def receive(self) -> InboundDatagram:
        """Block until a datagram arrives"""
        sock = self._socket(ReceiveError)
        try:
            data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
        except OSError as e:
            failures_counter.labels(port=str(self.port), kind='receive').inc()
            raise ReceiveError(self.port, f"receive failed: {e}") from e

        datagrams_received_counter.labels(port=str(self.port)).inc()
        if self.config.debug_enabled:
            text = data.decode('utf-8', errors='replace')
            logger.info(f"Received datagram (Port {self.port}): {text}")

        return InboundDatagram(source_address=addr[0], source_port=addr[1], payload=data)

    def build_reply(self, datagram: InboundDatagram) -> ReplyPayload:
        return build_reply(datagram.source_address, self.clock())

    def send(self, reply: ReplyPayload, address: str, port: int):
        """Send the encoded reply to the original sender"""
        sock = self._socket(SendError)
        try:
            sock.sendto(reply.encoded_text.encode('ascii'), (address, port))
        except OSError as e:
            failures_counter.labels(port=str(self.port), kind='send').inc()
            raise SendError(self.port, f"send to {address}:{port} failed: {e}") from e

        replies_sent_counter.labels(port=str(self.port)).inc()
        if self.config.debug_enabled:
            logger.info(f"Sent data:\n{reply.plain_text}\nEncoded as:\n{reply.encoded_text}")

    def serve_once(self) -> InboundDatagram:
        """One WAITING -> REPLYING cycle"""
        datagram = self.receive()
        reply = self.build_reply(datagram)
        self.send(reply, datagram.source_address, datagram.source_port)
        return datagram

    def run(self):
        """Serve forever; returns only by raising ReceiveError or SendError"""
        while True:
            self.serve_once()

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None
