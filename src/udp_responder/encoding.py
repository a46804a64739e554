#!/usr/bin/env python3
"""
Reply Payload Encoding
Turns "<address><unix seconds>" into space separated binary octet groups,
breaking the line after the address portion and after the last octet
"""

import time
from dataclasses import dataclass
from typing import Optional, Tuple

OCTET_SEPARATOR = " "
LINE_BREAK = "\n"


@dataclass(frozen=True)
class ReplyPayload:
    """Reply for one datagram: the plain text and its binary rendering"""
    plain_text: str
    encoded_text: str


def encode_octets(data: bytes, split_index: int) -> str:
    """Render each byte as 8 binary digits, MSB first.

    A line break follows the group at ``split_index`` and the final group,
    every other group is followed by a single space. When both positions are
    the same byte only one line break is written.
    """
    last_index = len(data) - 1
    groups = []
    for i, byte in enumerate(data):
        separator = LINE_BREAK if i in (split_index, last_index) else OCTET_SEPARATOR
        groups.append(f"{byte:08b}{separator}")
    return "".join(groups)


def build_reply(address: str, now: Optional[float] = None) -> ReplyPayload:
    """Build the reply for a sender address at wall clock time ``now``"""
    if now is None:
        now = time.time()

    plain_text = f"{address}{int(now)}"
    # Address text is ASCII, so its character count is its byte count
    data = plain_text.encode("ascii")
    return ReplyPayload(plain_text=plain_text,
                        encoded_text=encode_octets(data, len(address) - 1))


def decode_reply(encoded_text: str) -> Tuple[bytes, bytes]:
    """Split an encoded reply back into (address bytes, timestamp bytes)"""
    lines = encoded_text.split(LINE_BREAK)
    address = _decode_groups(lines[0])
    timestamp = b"".join(_decode_groups(line) for line in lines[1:])
    return address, timestamp


def _decode_groups(line: str) -> bytes:
    groups = line.split()
    for group in groups:
        if len(group) != 8 or set(group) - {"0", "1"}:
            raise ValueError(f"Malformed octet group: {group!r}")
    return bytes(int(group, 2) for group in groups)
