# server_utils.py
import time
from collections import namedtuple

from protocol_constants import MIN_MESSAGE_BYTES

Message = namedtuple("Message", ["opcode", "payload"])
Coords = namedtuple("Coords", ["x", "y"])


class DecodeError(ValueError):
    """Raised when a datagram is too short to carry an opcode and payload."""


def current_time_ms():
    return int(time.time() * 1000)


def encode_message(message: Message) -> bytes:
    return bytes([message.opcode]) + bytes(message.payload)


def decode_message(raw: bytes) -> Message:
    """
    Split a datagram into opcode (first byte) and payload (the rest).
    The opcode value is not checked here; unknown opcodes are rejected
    by the protocol handler.
    """
    if len(raw) < MIN_MESSAGE_BYTES:
        raise DecodeError(f"payload too short ({len(raw)} bytes)")
    return Message(raw[0], bytes(raw[1:]))


def send_packet(sock, addr, message: Message) -> int:
    """
    Encode and send one datagram. Socket errors are left to the caller.
    """
    packet = encode_message(message)
    return sock.sendto(packet, addr)
