from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

import find_available
from conftest import FakeProbe
from find_available import (
    DEFAULT_TIMEOUT_S,
    DEFAULT_WORKERS,
    Outcome,
    build_arg_parser,
    config_from_args,
    configure_logging,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("FIND_AVAILABLE_WORKERS", "FIND_AVAILABLE_TIMEOUT_S", "FIND_AVAILABLE_WHOIS_SERVER"):
        monkeypatch.delenv(var, raising=False)


def parse(*argv):
    return config_from_args(build_arg_parser().parse_args(list(argv)))


def test_defaults():
    config = parse("exampl?.com")
    assert config.pattern == "exampl?.com"
    assert config.label_width == 11
    assert config.workers == DEFAULT_WORKERS
    assert config.concurrency == 8
    assert config.batch_size == 10
    assert config.interval == 0.25
    assert config.poll_interval is None
    assert config.timeout_s == DEFAULT_TIMEOUT_S
    assert config.whois_server is None
    assert config.csv_path is None


def test_environment_fills_defaults_and_flags_win(monkeypatch):
    monkeypatch.setenv("FIND_AVAILABLE_WORKERS", "3")
    monkeypatch.setenv("FIND_AVAILABLE_TIMEOUT_S", "1.5")
    monkeypatch.setenv("FIND_AVAILABLE_WHOIS_SERVER", "whois.example.net")

    config = parse("a?")
    assert config.workers == 3
    assert config.timeout_s == 1.5
    assert config.whois_server == "whois.example.net"

    config = parse("--workers", "7", "--whois-server", "w.test", "--csv", "out/r.csv", "a?")
    assert config.workers == 7
    assert config.whois_server == "w.test"
    assert config.csv_path == Path("out/r.csv")


def test_bad_environment_value_is_reported(monkeypatch):
    monkeypatch.setenv("FIND_AVAILABLE_WORKERS", "many")
    with pytest.raises(ValueError, match="FIND_AVAILABLE_WORKERS"):
        parse("a?")


@pytest.mark.parametrize("argv", [
    [],
    ["a?", "b?"],
    ["--threads", "3", "a?"],
    ["--workers", "zero", "a?"],
])
def test_invalid_invocation_prints_usage(argv, capsys, monkeypatch):
    monkeypatch.setattr(find_available, "main_async", pytest.fail)
    with pytest.raises(SystemExit) as exc:
        find_available.main(argv)
    assert exc.value.code == 2
    assert "usage: find-available" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [
    ["--workers", "0", "a?"],
    ["--concurrency", "0", "a?"],
    ["--batch-size", "0", "a?"],
    ["--wildcard", "??", "a?"],
    ["--interval", "0", "a?"],
])
def test_semantic_validation_fails_before_work(argv, capsys, monkeypatch):
    monkeypatch.setattr(find_available, "main_async", pytest.fail)
    with pytest.raises(SystemExit) as exc:
        find_available.main(argv + ["--dotenv", "/nonexistent/.env"])
    assert exc.value.code == 2
    assert "usage:" in capsys.readouterr().err


def test_configure_logging_levels(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

    configure_logging(0)
    configure_logging(1)
    configure_logging(2, "scan.log")

    assert [c["level"] for c in calls] == [logging.WARNING, logging.INFO, logging.DEBUG]
    assert calls[2]["filename"] == "scan.log"
    assert calls[0]["format"] == "%(asctime)s | %(levelname)s | %(message)s"


def test_main_async_end_to_end(monkeypatch, capsys, tmp_path):
    fake = FakeProbe(outcomes={"qb": Outcome.AVAILABLE, "qy": Outcome.AVAILABLE}, errors={"qe"})
    monkeypatch.setattr(find_available, "DomainProbe", lambda http, whois: fake)
    monkeypatch.setattr(find_available.shutil, "get_terminal_size", lambda: os.terminal_size((80, 24)))

    config = parse("--workers", "2", "--interval", "0.01", "--csv", str(tmp_path / "r.csv"), "q?")
    assert asyncio.run(find_available.main_async(config)) == 0

    out = capsys.readouterr().out
    assert out.startswith("Checking addresses matching pattern 'q?':\n")
    found_block = out.split("Found addresses:\n", 1)[1]
    assert found_block.startswith("qb qy\n")
    assert found_block.split("Failed to check:\n", 1)[1] == "qe\n"
    assert sorted(fake.calls) == [f"q{c}" for c in "abcdefghijklmnopqrstuvwxyz"]
    assert (tmp_path / "r.csv").read_text(encoding="utf-8").splitlines()[0] == "domain,status"
