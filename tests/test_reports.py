# tests/test_reports.py
import csv
import os

import pytest

import generate_plots
import generate_statistics
from headless_client import METRIC_FIELDS


def write_client_csv(path, client_id, latencies, peers=1):
    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=METRIC_FIELDS)
        writer.writeheader()
        last = None
        for seq, latency in enumerate(latencies):
            writer.writerow({
                'client_id': client_id,
                'seq_num': seq,
                'sent_time_ms': 1000 + seq * 50,
                'recv_time_ms': 1000 + seq * 50 + latency,
                'latency_ms': latency,
                'jitter_ms': abs(latency - last) if last is not None else 0,
                'x': seq,
                'y': seq,
                'peers': peers,
                'cpu_percent': 1.0,
                'bandwidth_kbps': 0.5,
            })
            last = latency
    return str(path)


@pytest.fixture
def client_csvs(tmp_path):
    return [
        write_client_csv(tmp_path / "client_1.csv", 1, [1, 2, 3, 4], peers=1),
        write_client_csv(tmp_path / "client_2.csv", 2, [5, 6, 7, 8], peers=3),
    ]


def test_summarize():
    stats = generate_statistics.summarize(list(range(1, 101)))
    assert stats['mean'] == pytest.approx(50.5)
    assert stats['median'] == pytest.approx(50.5)
    assert stats['p95'] == pytest.approx(95.05)
    assert stats['max'] == 100


def test_summarize_empty():
    assert generate_statistics.summarize([]) == {'mean': 0.0, 'median': 0.0, 'p95': 0.0, 'max': 0.0}


def test_analyze_client_csvs(client_csvs, tmp_path):
    df = generate_statistics.load_metrics(client_csvs + [str(tmp_path / "missing.csv")])
    stats = generate_statistics.analyze(df, "baseline")

    assert stats['num_clients'] == 2
    assert stats['total_samples'] == 8
    assert stats['latency_mean'] == pytest.approx(4.5)
    assert stats['latency_max'] == 8
    assert stats['jitter_max'] == 1
    assert stats['peers_mean'] == pytest.approx(2.0)


def test_analyze_without_data(tmp_path):
    df = generate_statistics.load_metrics([str(tmp_path / "missing.csv")])
    assert generate_statistics.analyze(df) is None


def test_statistics_main_writes_summary(client_csvs, tmp_path, capsys):
    output = str(tmp_path / "summary.csv")
    assert generate_statistics.main(client_csvs + ["--output", output]) == 0
    assert "Latency (ms)" in capsys.readouterr().out
    with open(output, newline='') as f:
        rows = list(csv.DictReader(f))
    assert rows[0]['label'] == 'all'
    assert float(rows[0]['latency_median']) == pytest.approx(4.5)


def test_statistics_main_without_data(tmp_path):
    assert generate_statistics.main([str(tmp_path / "missing.csv")]) == 1


def test_load_metrics_for_plots(client_csvs):
    rows = generate_plots.load_metrics(client_csvs[0])
    assert len(rows) == 4
    assert rows[0]['client_id'] == 1
    assert generate_plots.compute_update_rate(rows) > 0


def test_generate_all_plots(client_csvs, tmp_path):
    plot_dir = str(tmp_path / "plots")
    paths = generate_plots.generate_all_plots(client_csvs, plot_dir)

    assert len(paths) == 3
    for path in paths:
        assert os.path.getsize(path) > 0


def test_generate_plots_without_data(tmp_path):
    assert generate_plots.generate_all_plots([str(tmp_path / "missing.csv")], str(tmp_path)) == []
