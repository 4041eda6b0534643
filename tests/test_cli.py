"""End-to-end runs of the command line entry point over a candle CSV."""

from pathlib import Path

import pandas as pd

from main import load_candles, main

from conftest import drop_closes, make_frame

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config.yaml"
EPOCH_2024 = 1704067200


def write_csv(path, closes):
    frame = make_frame(closes)
    frame["time"] = [EPOCH_2024 + 3600 * i for i in range(len(closes))]
    frame.to_csv(path, index=False)
    return path


def test_load_candles_epoch_seconds(tmp_path):
    df = load_candles(write_csv(tmp_path / "candles.csv", drop_closes()))
    assert len(df) == 155
    assert df["time"].iloc[0] == pd.Timestamp("2024-01-01", tz="UTC")
    assert list(df.columns) == ["time", "open", "high", "low", "close", "volume"]


def test_backtest_command(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    csv = write_csv(tmp_path / "candles.csv", drop_closes(150, tail=45))
    argv = ["backtest", "--config", str(REPO_CONFIG), "--candles", str(csv), "--strategy", "mean-reversion",
            "--monte-carlo", "50", "--seed", "1"]
    assert main(argv) == 0
    out = capsys.readouterr().out
    assert "--- Backtest Results ---" in out
    assert "Strategy: mean-reversion" in out
    assert "--- Monte Carlo (50 reshuffles) ---" in out


def test_compare_command(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    csv = write_csv(tmp_path / "candles.csv", drop_closes(150, tail=45))
    assert main(["backtest", "--config", str(REPO_CONFIG), "--candles", str(csv), "--compare"]) == 0
    out = capsys.readouterr().out
    assert "--- Strategy Comparison" in out
    assert "mean-reversion:" in out


def test_backtest_errors_exit_one(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    csv = write_csv(tmp_path / "candles.csv", drop_closes(150, tail=45))
    assert main(["backtest", "--config", str(REPO_CONFIG)]) == 1
    assert main(["backtest", "--config", str(REPO_CONFIG), "--candles", str(csv), "--strategy", "scalper"]) == 1


def test_live_paper_command(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    csv = write_csv(tmp_path / "candles.csv", drop_closes(150, tail=45))
    assert main(["live", "--config", str(REPO_CONFIG), "--candles", str(csv), "--symbol", "aaa"]) == 0
    out = capsys.readouterr().out
    assert "--- Paper Session ---" in out
    assert "Risk level:" in out
