"""Tests for the run_detector CLI."""

import json
from pathlib import Path

import pytest

import run_detector
from loop_arbitrage.version import get_version

REPO_ROOT = Path(__file__).resolve().parents[2]
SNAPSHOT = REPO_ROOT / "configs" / "sample_snapshot.json"
CONFIG = REPO_ROOT / "configs" / "detector.yaml"


def test_table_output(capsys):
    exit_code = run_detector.main(["--snapshot", str(SNAPSHOT), "--config", str(CONFIG)])
    out = capsys.readouterr().out

    assert exit_code == 0
    assert "direct" in out
    assert "triangular" in out
    assert "opportunities |" in out


def test_json_output(capsys):
    exit_code = run_detector.main(
        ["--snapshot", str(SNAPSHOT), "--chain-id", "8453", "--json"]
    )
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    kinds = {opp["kind"] for opp in payload["opportunities"]}
    assert kinds == {"direct", "triangular"}
    assert len(payload["records"]) == len(payload["opportunities"])
    assert all(r["chain_id"] == 8453 for r in payload["records"])
    assert payload["stats"]["decimals_defaulted"] == []

    profits = [opp["profit_usd"] for opp in payload["opportunities"]]
    assert profits == sorted(profits, reverse=True)


def test_token_universe_flag(capsys):
    weth = "0x4200000000000000000000000000000000000006"
    usdc = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
    exit_code = run_detector.main(
        ["--snapshot", str(SNAPSHOT), "--tokens", f"{weth},{usdc}", "--json"]
    )
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert {opp["kind"] for opp in payload["opportunities"]} == {"direct"}
    assert "records" not in payload


def test_other_chain_finds_nothing(capsys):
    exit_code = run_detector.main(["--snapshot", str(SNAPSHOT), "--chain-id", "1"])
    assert exit_code == 0
    assert "No profitable loops found" in capsys.readouterr().out


def test_missing_snapshot(tmp_path, capsys):
    exit_code = run_detector.main(["--snapshot", str(tmp_path / "missing.json")])
    assert exit_code == 1
    assert "Snapshot error" in capsys.readouterr().err


def test_invalid_config(tmp_path, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("detector:\n  trade_size_usd: -5\n")

    exit_code = run_detector.main(["--snapshot", str(SNAPSHOT), "--config", str(config)])
    assert exit_code == 1
    assert "Config error" in capsys.readouterr().err


def test_snapshot_is_required():
    with pytest.raises(SystemExit):
        run_detector.parse_args([])


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc_info:
        run_detector.parse_args(["--version"])
    assert exc_info.value.code == 0
    assert get_version() in capsys.readouterr().out
