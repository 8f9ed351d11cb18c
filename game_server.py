# game_server.py
import csv
import logging
import socket
import threading
import time
from collections import Counter

import psutil

from protocol_constants import *
import server_utils
from server_utils import Coords, DecodeError, Message

log = logging.getLogger(__name__)

DROP_KINDS = ("malformed", "duplicate", "unknown_opcode", "send_failure", "decode")


# --- Shared position state ---
class PositionStore:
    """
    Last reported coordinates of every registered client, keyed by client id.

    Entries are never removed while the server runs. Every read and write
    holds the same lock, so a snapshot from get_all() never shows a
    half-applied update and concurrent writers on different ids all survive.
    """

    def __init__(self):
        self._positions = {}   # client_id -> Coords
        self._lock = threading.Lock()

    def set_position(self, client_id, x, y):
        with self._lock:
            self._positions[client_id] = Coords(x, y)

    def register(self, client_id):
        """Insert client_id at the origin. Returns False if it was already present."""
        with self._lock:
            if client_id in self._positions:
                return False
            self._positions[client_id] = Coords(0, 0)
            return True

    def contains(self, client_id):
        with self._lock:
            return client_id in self._positions

    def get_all(self):
        with self._lock:
            return list(self._positions.items())

    def __len__(self):
        with self._lock:
            return len(self._positions)


# Performance metrics
class ServerMetrics:
    def __init__(self):
        self.start_time = time.time()
        self.packets_received = 0
        self.packets_sent = 0
        self.handshakes = 0
        self.position_updates = 0
        self.drops = Counter()
        self.cpu_samples = []
        self._lock = threading.Lock()

    def log_packet_recv(self):
        with self._lock:
            self.packets_received += 1
            due = self.packets_received % CPU_SAMPLE_EVERY == 0
        if due:
            self.sample_cpu()

    def log_packet_sent(self):
        with self._lock:
            self.packets_sent += 1

    def log_handshake(self):
        with self._lock:
            self.handshakes += 1

    def log_position_update(self):
        with self._lock:
            self.position_updates += 1

    def log_drop(self, kind):
        with self._lock:
            self.drops[kind] += 1

    def sample_cpu(self):
        cpu = psutil.cpu_percent(interval=None)
        with self._lock:
            self.cpu_samples.append(cpu)

    def get_stats(self):
        elapsed = time.time() - self.start_time
        with self._lock:
            stats = {
                'uptime_seconds': elapsed,
                'packets_received': self.packets_received,
                'packets_sent': self.packets_sent,
                'handshakes': self.handshakes,
                'position_updates': self.position_updates,
                'packet_rate': self.packets_received / elapsed if elapsed > 0 else 0,
                'avg_cpu': sum(self.cpu_samples) / len(self.cpu_samples) if self.cpu_samples else 0,
                'max_cpu': max(self.cpu_samples) if self.cpu_samples else 0,
            }
            for kind in DROP_KINDS:
                stats[f'drops_{kind}'] = self.drops[kind]
        return stats

    def save_csv(self, path):
        """Write get_stats() as a one-row CSV."""
        stats = self.get_stats()
        with open(path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=list(stats.keys()))
            writer.writeheader()
            writer.writerow(stats)
        log.info("[SERVER] Metrics saved to %s", path)


def log_final_stats(metrics):
    stats = metrics.get_stats()
    log.info("=" * 60)
    log.info("SERVER PERFORMANCE STATISTICS")
    log.info("=" * 60)
    log.info("Uptime: %.1f seconds", stats['uptime_seconds'])
    log.info("Packets Received: %d", stats['packets_received'])
    log.info("Packets Sent: %d", stats['packets_sent'])
    log.info("Handshakes: %d", stats['handshakes'])
    log.info("Position Updates: %d", stats['position_updates'])
    log.info("Dropped: %s", ", ".join(f"{k}={stats['drops_' + k]}" for k in DROP_KINDS))
    log.info("Average CPU: %.1f%%", stats['avg_cpu'])
    log.info("Max CPU: %.1f%%", stats['max_cpu'])
    log.info("=" * 60)


def build_position_payload(entries, exclude_id):
    """Concatenate [id, x, y] for every entry except exclude_id, in the given order."""
    payload = bytearray()
    for other_id, coords in entries:
        if other_id == exclude_id:
            continue
        payload += bytes((other_id, coords.x, coords.y))
        log.debug("[SERVER] position data player=%d x=%d y=%d", other_id, coords.x, coords.y)
    return bytes(payload)


class PositionServer:
    """
    Handles handshakes and position updates from UDP clients.

    Each datagram is decoded on the receive loop and handled on its own
    daemon thread. The only state shared between handler threads is the
    PositionStore (and the metrics counters, which carry their own lock).
    """

    def __init__(self, sock, store=None, metrics=None, response_opcode=LEGACY_POSITION_OPCODE):
        self.sock = sock
        self.store = store if store is not None else PositionStore()
        self.metrics = metrics if metrics is not None else ServerMetrics()
        self.response_opcode = response_opcode
        self._stop_event = threading.Event()
        self._handlers = {
            MSG_HANDSHAKE: self.handle_handshake,
            MSG_POSITION_UPDATE: self.handle_position_update,
        }

    # --- Request handling ---
    def handle(self, message, addr):
        log.debug("[SERVER] Received opcode=%02x from %s", message.opcode, addr)
        handler = self._handlers.get(message.opcode)
        if handler is None:
            log.error("[SERVER] Unknown opcode %02x from %s", message.opcode, addr)
            self.metrics.log_drop("unknown_opcode")
            return
        handler(message, addr)

    def handle_handshake(self, message, addr):
        log.debug("[SERVER] Handshake data=%s", message.payload.hex())
        if len(message.payload) < HANDSHAKE_PAYLOAD_BYTES:
            self._reject_malformed(message, addr)
            return

        client_id = message.payload[0]
        if not self.store.register(client_id):
            log.error("[SERVER] Player %d is already present, handshake from %s ignored", client_id, addr)
            self.metrics.log_drop("duplicate")
            return

        self.metrics.log_handshake()
        log.info("[SERVER] New player %d from %s", client_id, addr)
        self._reply(addr, Message(MSG_HANDSHAKE_RESPONSE, bytes([client_id])))

    def handle_position_update(self, message, addr):
        log.debug("[SERVER] Position data=%s", message.payload.hex())
        if len(message.payload) < POSITION_PAYLOAD_BYTES:
            self._reject_malformed(message, addr)
            return

        client_id, x, y = message.payload[:POSITION_PAYLOAD_BYTES]
        # unknown ids are registered implicitly
        self.store.set_position(client_id, x, y)
        self.metrics.log_position_update()

        payload = build_position_payload(self.store.get_all(), client_id)
        self._reply(addr, Message(self.response_opcode, payload))

    def _reject_malformed(self, message, addr):
        log.error("[SERVER] Data too short for opcode %02x from %s: %s",
                  message.opcode, addr, message.payload.hex())
        self.metrics.log_drop("malformed")

    def _reply(self, addr, message):
        try:
            server_utils.send_packet(self.sock, addr, message)
        except OSError as e:
            log.error("[SERVER] Response to %s failed: %s", addr, e)
            self.metrics.log_drop("send_failure")
            return False
        self.metrics.log_packet_sent()
        log.debug("[SERVER] Response sent opcode=%02x data=%s to %s",
                  message.opcode, message.payload.hex(), addr)
        return True

    # --- Receive loop ---
    def dispatch_datagram(self, data, addr):
        """
        Decode one datagram and start a handler thread for it.
        Returns the started thread, or None when the datagram was dropped.
        """
        self.metrics.log_packet_recv()
        try:
            message = server_utils.decode_message(data)
        except DecodeError as e:
            log.error("[SERVER] UDP packet from %s dropped: %s", addr, e)
            self.metrics.log_drop("decode")
            return None

        worker = threading.Thread(target=self.handle, args=(message, addr), daemon=True)
        worker.start()
        return worker

    def serve_forever(self):
        self.sock.settimeout(RECV_TIMEOUT_S)
        host, port = self.sock.getsockname()[:2]
        log.info("[SERVER] Listening on %s:%d", host, port)

        while not self._stop_event.is_set():
            try:
                data, addr = self.sock.recvfrom(MAX_DATAGRAM_BYTES)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set() or self.sock.fileno() == -1:
                    break
                log.error("[SERVER] UDP packet dropped due to error: %s", e)
                continue
            self.dispatch_datagram(data, addr)

        log.info("[SERVER] Receive loop stopped")

    def stop(self):
        self._stop_event.set()
