# client_utils.py
from protocol_constants import *
from server_utils import Coords, DecodeError, Message, decode_message, encode_message


def _check_byte(name, value):
    if not 0 <= value <= 255:
        raise ValueError(f"{name} must be in 0..255, got {value}")


def build_handshake(client_id: int) -> bytes:
    _check_byte("client_id", client_id)
    return encode_message(Message(MSG_HANDSHAKE, bytes([client_id])))


def build_position_update(client_id: int, x: int, y: int) -> bytes:
    _check_byte("client_id", client_id)
    _check_byte("x", x)
    _check_byte("y", y)
    return encode_message(Message(MSG_POSITION_UPDATE, bytes([client_id, x, y])))


def parse_handshake_response(raw: bytes):
    """Return the acknowledged client id, or None if raw is not a handshake response."""
    try:
        message = decode_message(raw)
    except DecodeError:
        return None
    if message.opcode != MSG_HANDSHAKE_RESPONSE:
        return None
    return message.payload[0]


def parse_position_response(raw: bytes):
    """
    Parse a position reply into {client_id: Coords}.

    A reply listing no other players is a single opcode byte, so this does
    not go through decode_message. Either response opcode is accepted.
    A trailing partial triple is ignored. Returns None if raw is empty or
    carries another opcode.
    """
    if not raw or raw[0] not in (MSG_HANDSHAKE_RESPONSE, MSG_POSITION_RESPONSE):
        return None
    payload = raw[1:]
    positions = {}
    for i in range(0, len(payload) - len(payload) % 3, 3):
        positions[payload[i]] = Coords(payload[i + 1], payload[i + 2])
    return positions
