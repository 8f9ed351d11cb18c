#!/usr/bin/env python3
import argparse
import logging
import socket
import sys

from protocol_constants import *
from game_server import PositionServer, ServerMetrics, log_final_stats

log = logging.getLogger("server")

POSITION_OPCODES = {
    "legacy": LEGACY_POSITION_OPCODE,
    "declared": MSG_POSITION_RESPONSE,
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="UDP position sync server")
    parser.add_argument("--host", type=str, default=SERVER_HOST)
    parser.add_argument("--port", type=int, default=SERVER_PORT)
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log every datagram and reply")
    parser.add_argument("--position-opcode", choices=sorted(POSITION_OPCODES), default="legacy",
                        help="opcode for position replies: legacy=2 (wire compatible), declared=4")
    parser.add_argument("--metrics-csv", type=str,
                        help="write a metrics summary CSV on shutdown")
    return parser.parse_args(argv)


def setup_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def bind_socket(host, port):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        sock = bind_socket(args.host, args.port)
    except OSError as e:
        log.critical("[SERVER] Cannot bind %s:%d: %s", args.host, args.port, e)
        return 1

    metrics = ServerMetrics()
    server = PositionServer(sock, metrics=metrics,
                            response_opcode=POSITION_OPCODES[args.position_opcode])
    log.info("[SERVER] Position replies use opcode %d", server.response_opcode)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("[SERVER] Shutting down")
        server.stop()
    finally:
        sock.close()

    log_final_stats(metrics)
    if args.metrics_csv:
        metrics.save_csv(args.metrics_csv)
    return 0


if __name__ == "__main__":
    sys.exit(main())
