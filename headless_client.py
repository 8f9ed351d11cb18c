#!/usr/bin/env python3
import argparse
import csv
import logging
import random
import signal
import socket
import sys
import threading
import time

import psutil

from protocol_constants import *
from client_utils import (
    build_handshake,
    build_position_update,
    parse_handshake_response,
    parse_position_response,
)
from server_utils import current_time_ms

log = logging.getLogger("headless_client")

BUFFER_SIZE = 4096
METRIC_FIELDS = [
    'client_id', 'seq_num', 'sent_time_ms', 'recv_time_ms', 'latency_ms',
    'jitter_ms', 'x', 'y', 'peers', 'cpu_percent', 'bandwidth_kbps',
]

metrics = []
metrics_lock = threading.Lock()
stop_event = threading.Event()
output_csv_path = None


def save_metrics():
    """Save metrics to CSV - called on exit"""
    if not output_csv_path:
        return
    with metrics_lock:
        rows = list(metrics)
    with open(output_csv_path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=METRIC_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
    log.info("[CLIENT] Saved %d metrics to %s", len(rows), output_csv_path)


def signal_handler(sig, frame):
    log.info("[CLIENT] Received signal %s, shutting down...", sig)
    stop_event.set()


def connect(sock, server_addr, client_id, attempts=10):
    """Handshake with the server, retrying with a growing timeout"""
    request = build_handshake(client_id)
    for attempt in range(attempts):
        try:
            sock.sendto(request, server_addr)
            sock.settimeout(0.5 + attempt * 0.2)
            data, _ = sock.recvfrom(BUFFER_SIZE)
        except socket.timeout:
            log.warning("[CLIENT] Timeout connecting (attempt %d/%d)", attempt + 1, attempts)
            continue
        except OSError as e:
            log.error("[CLIENT] Connect error: %s", e)
            continue
        if parse_handshake_response(data) == client_id:
            log.info("[CLIENT] Connected as player %d", client_id)
            return True
    log.error("[CLIENT] All connection attempts failed")
    return False


def random_walk(x, y, step=3):
    x = min(255, max(0, x + random.randint(-step, step)))
    y = min(255, max(0, y + random.randint(-step, step)))
    return x, y


def discard_replies(sock, quiet_s=0.0):
    """
    Drop datagrams already waiting on sock. With quiet_s > 0, also keep
    dropping until nothing arrives for quiet_s seconds (at most 4 * quiet_s
    in total). Returns the number of datagrams dropped.

    Position replies carry no sequence number, so a late reply left in
    the buffer would otherwise be read as the answer to the next update.
    """
    dropped = 0
    give_up = time.time() + 4 * quiet_s
    if quiet_s > 0:
        sock.settimeout(quiet_s)
    else:
        sock.setblocking(False)
    try:
        while True:
            sock.recvfrom(BUFFER_SIZE)
            dropped += 1
            if quiet_s > 0 and time.time() >= give_up:
                break
    except (BlockingIOError, socket.timeout):
        pass
    return dropped


def update_loop(sock, server_addr, client_id, duration, rate_hz):
    """
    Send position updates at rate_hz and record one metric row per reply.
    Lost replies are skipped; the next update is sent on schedule.
    """
    interval = 1.0 / rate_hz
    x, y = 0, 0
    seq = 0
    last_latency = None
    bytes_received = 0
    start = time.time()

    while time.time() - start < duration and not stop_event.is_set():
        tick = time.time()
        x, y = random_walk(x, y)
        try:
            stale = discard_replies(sock)
            if stale:
                log.debug("[CLIENT] Dropped %d stale replies before update %d", stale, seq)
            sock.settimeout(interval)
            sent_ts = current_time_ms()
            sock.sendto(build_position_update(client_id, x, y), server_addr)
            data, _ = sock.recvfrom(BUFFER_SIZE)
        except socket.timeout:
            log.debug("[CLIENT] No reply for update %d", seq)
            # let a late reply land and be dropped before the next update
            discard_replies(sock, quiet_s=interval)
            seq += 1
            continue
        except OSError as e:
            log.error("[CLIENT] Send/receive error: %s", e)
            break

        recv_ts = current_time_ms()
        peers = parse_position_response(data)
        if peers is None:
            log.warning("[CLIENT] Unexpected reply %s", data.hex())
            seq += 1
            continue

        latency = max(0, recv_ts - sent_ts)
        jitter = abs(latency - last_latency) if last_latency is not None else 0
        last_latency = latency
        bytes_received += len(data)
        elapsed = max(time.time() - start, 0.001)

        with metrics_lock:
            metrics.append({
                'client_id': client_id,
                'seq_num': seq,
                'sent_time_ms': sent_ts,
                'recv_time_ms': recv_ts,
                'latency_ms': latency,
                'jitter_ms': jitter,
                'x': x,
                'y': y,
                'peers': len(peers),
                'cpu_percent': psutil.cpu_percent(interval=None),
                'bandwidth_kbps': bytes_received * 8 / 1000 / elapsed,
            })

        seq += 1
        if seq % 20 == 0:
            log.info("[CLIENT] %d updates, %d peers, latency=%dms", seq, len(peers), latency)

        time.sleep(max(0, interval - (time.time() - tick)))

    log.info("[CLIENT] Update loop ending. Collected %d metrics", len(metrics))


def main(argv=None):
    global output_csv_path

    parser = argparse.ArgumentParser(description="Headless client for position sync load testing")
    parser.add_argument("--server", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=SERVER_PORT)
    parser.add_argument("--client-id", type=int, required=True)
    parser.add_argument("--duration", type=float, default=30)
    parser.add_argument("--rate", type=float, default=20, help="position updates per second")
    parser.add_argument("--output_csv", type=str, required=True)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    output_csv_path = args.output_csv

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    server_addr = (args.server, args.port)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("0.0.0.0", 0))

    try:
        if not connect(sock, server_addr, args.client_id):
            # position updates register the id even without a handshake reply
            log.warning("[CLIENT] Continuing unregistered as player %d", args.client_id)
        update_loop(sock, server_addr, args.client_id, args.duration, args.rate)
    finally:
        sock.close()
        save_metrics()
    return 0


if __name__ == "__main__":
    sys.exit(main())
