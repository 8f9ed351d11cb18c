#!/usr/bin/env python3
"""
Statistics report over headless client metric CSVs.
Reports mean, median, 95th percentile and max for latency and jitter,
plus how many peers each client saw in its position replies.
"""

import argparse
import sys

import numpy as np
import pandas as pd

STAT_COLUMNS = ['latency_ms', 'jitter_ms']


def summarize(values):
    data = np.asarray(values, dtype=float)
    if data.size == 0:
        return {'mean': 0.0, 'median': 0.0, 'p95': 0.0, 'max': 0.0}
    return {
        'mean': float(np.mean(data)),
        'median': float(np.median(data)),
        'p95': float(np.percentile(data, 95)),
        'max': float(np.max(data)),
    }


def load_metrics(paths):
    """Concatenate client CSVs, skipping files that are missing or empty."""
    frames = []
    for path in paths:
        try:
            df = pd.read_csv(path)
        except (FileNotFoundError, pd.errors.EmptyDataError):
            print(f"Skipping {path}: no data")
            continue
        if not df.empty:
            frames.append(df)
    if not frames:
        return pd.DataFrame(columns=['client_id', 'peers'] + STAT_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def analyze(df, label="all"):
    if df.empty:
        return None

    stats = {
        'label': label,
        'num_clients': int(df['client_id'].nunique()),
        'total_samples': int(len(df)),
        'peers_mean': float(df['peers'].mean()),
    }
    for column in STAT_COLUMNS:
        prefix = column.rsplit('_', 1)[0]
        for name, value in summarize(df[column]).items():
            stats[f'{prefix}_{name}'] = value
    return stats


def print_statistics(stats):
    print(f"\n{'='*80}")
    print(f"RUN: {stats['label'].upper()}")
    print(f"{'='*80}")
    print(f"Clients: {stats['num_clients']}")
    print(f"Total Samples: {stats['total_samples']}")
    print(f"Mean peers per reply: {stats['peers_mean']:.2f}")
    print(f"\n{'-'*80}")
    print(f"{'Metric':<30} {'Mean':>10} {'Median':>10} {'95th %ile':>10} {'Max':>10}")
    print(f"{'-'*80}")
    for title, prefix in (('Latency (ms)', 'latency'), ('Jitter (ms)', 'jitter')):
        print(f"{title:<30} {stats[prefix + '_mean']:>10.2f} {stats[prefix + '_median']:>10.2f} "
              f"{stats[prefix + '_p95']:>10.2f} {stats[prefix + '_max']:>10.2f}")
    print(f"{'-'*80}\n")


def save_statistics_csv(stats, output_file):
    pd.DataFrame([stats]).to_csv(output_file, index=False)
    print(f"Statistics saved to: {output_file}\n")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Summarize headless client metrics")
    parser.add_argument("csv_files", nargs="+")
    parser.add_argument("--label", type=str, default="all")
    parser.add_argument("--output", type=str, default="statistics_summary.csv")
    args = parser.parse_args(argv)

    stats = analyze(load_metrics(args.csv_files), args.label)
    if stats is None:
        print("No statistics generated. Check that result files exist.")
        return 1

    print_statistics(stats)
    save_statistics_csv(stats, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
