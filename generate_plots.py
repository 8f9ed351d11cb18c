#!/usr/bin/env python3
import argparse
import csv
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def load_metrics(path):
    """Load a headless client CSV into a list of dictionaries."""
    rows = []
    try:
        with open(path) as f:
            reader = csv.DictReader(f)
            for row in reader:
                rows.append({
                    "client_id": int(row["client_id"]),
                    "seq_num": int(row["seq_num"]),
                    "recv_time_ms": int(row["recv_time_ms"]),
                    "latency_ms": float(row["latency_ms"]),
                    "jitter_ms": float(row["jitter_ms"]),
                    "peers": int(row["peers"]),
                })
    except (OSError, KeyError, ValueError) as e:
        print(f"[ERROR] Failed to load CSV {path}: {e}")
    return rows


def compute_update_rate(metrics):
    """Replies per second over the span of the run."""
    if not metrics:
        return 0
    start = metrics[0]["recv_time_ms"]
    end = metrics[-1]["recv_time_ms"]
    duration = max(0.001, (end - start) / 1000.0)
    return len(metrics) / duration


# -------------------------------------------------------------------
# Plotting functions
# -------------------------------------------------------------------

def plot_latency_over_time(client_metrics, plot_dir):
    fig, ax = plt.subplots(figsize=(10, 6))
    for client_id, metrics in client_metrics.items():
        if not metrics:
            continue
        t0 = metrics[0]["recv_time_ms"]
        times = [(m["recv_time_ms"] - t0) / 1000.0 for m in metrics]
        rate = compute_update_rate(metrics)
        ax.plot(times, [m["latency_ms"] for m in metrics],
                label=f"client {client_id} ({rate:.1f} Hz)")

    ax.set_title("Position Reply Latency")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Latency (ms)")
    ax.grid(True)
    ax.legend()
    fig.tight_layout()
    path = os.path.join(plot_dir, "latency_over_time.png")
    fig.savefig(path)
    plt.close(fig)
    print("Saved: latency_over_time.png")
    return path


def plot_latency_histogram(client_metrics, plot_dir):
    latencies = [m["latency_ms"] for metrics in client_metrics.values() for m in metrics]

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(latencies, bins=30, color="purple")
    ax.set_title("Latency Distribution")
    ax.set_xlabel("Latency (ms)")
    ax.set_ylabel("Replies")
    ax.grid(axis="y")
    fig.tight_layout()
    path = os.path.join(plot_dir, "latency_histogram.png")
    fig.savefig(path)
    plt.close(fig)
    print("Saved: latency_histogram.png")
    return path


def plot_peers_over_time(client_metrics, plot_dir):
    fig, ax = plt.subplots(figsize=(10, 5))
    for client_id, metrics in client_metrics.items():
        ax.step([m["seq_num"] for m in metrics], [m["peers"] for m in metrics],
                where="post", label=f"client {client_id}")

    ax.set_title("Peers Reported per Position Reply")
    ax.set_xlabel("Update #")
    ax.set_ylabel("Peers")
    ax.grid(True)
    ax.legend()
    fig.tight_layout()
    path = os.path.join(plot_dir, "peers_over_time.png")
    fig.savefig(path)
    plt.close(fig)
    print("Saved: peers_over_time.png")
    return path


# -------------------------------------------------------------------
# Main entry point
# -------------------------------------------------------------------

def generate_all_plots(csv_files, plot_dir="results/plots"):
    os.makedirs(plot_dir, exist_ok=True)

    client_metrics = {}
    for path in csv_files:
        metrics = load_metrics(path)
        if metrics:
            client_metrics[metrics[0]["client_id"]] = metrics

    print("Loaded metrics for clients:")
    for client_id, metrics in client_metrics.items():
        print(f" - {client_id}: {len(metrics)} rows")

    if not client_metrics:
        print("No metrics to plot")
        return []

    paths = [
        plot_latency_over_time(client_metrics, plot_dir),
        plot_latency_histogram(client_metrics, plot_dir),
        plot_peers_over_time(client_metrics, plot_dir),
    ]
    print(f"\nAll plots saved to: {plot_dir}/\n")
    return paths


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Plot headless client metrics")
    parser.add_argument("csv_files", nargs="+")
    parser.add_argument("--plot_dir", type=str, default="results/plots")
    args = parser.parse_args()
    generate_all_plots(args.csv_files, args.plot_dir)
