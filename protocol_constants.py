# protocol_constants.py

# Message types
MSG_HANDSHAKE = 0x01
MSG_HANDSHAKE_RESPONSE = 0x02
MSG_POSITION_UPDATE = 0x03
MSG_POSITION_RESPONSE = 0x04

# Deployed clients expect position replies tagged with the handshake response opcode
LEGACY_POSITION_OPCODE = MSG_HANDSHAKE_RESPONSE

# opcode byte + at least one payload byte
MIN_MESSAGE_BYTES = 2
HANDSHAKE_PAYLOAD_BYTES = 1
POSITION_PAYLOAD_BYTES = 3   # client_id, x, y

# Network
SERVER_HOST = "0.0.0.0"
SERVER_PORT = 25565
MAX_DATAGRAM_BYTES = 32
RECV_TIMEOUT_S = 0.05

# Metrics
CPU_SAMPLE_EVERY = 50   # packets between psutil samples
