"""Tests for the command-line interface."""

import json

import pytest
import yaml

from tests.conftest import LEDGER_TURNS
from hierarchical_memory.cli.main import main


@pytest.fixture
def cli(tmp_path):
    config_path = tmp_path / "hierarchical-memory.yaml"
    config_path.write_text(yaml.dump({
        "budget": {"max_chars": 2000, "l1_floor": 3, "l1_ceiling": 3, "base_l1_threshold": 3},
        "compression": {"retry_backoff": [0, 0, 0], "timeout_seconds": 1.0},
        "storage": {"root": str(tmp_path / "profiles")},
    }))

    def run(*argv):
        main(["--config", str(config_path), *argv])

    return run


@pytest.fixture
def ledger_file(tmp_path):
    path = tmp_path / "ledger.jsonl"
    lines = [json.dumps({"role": role, "text": text}) for role, text in LEDGER_TURNS]
    lines.append(json.dumps({"role": "user", "text": "I'm really worried about the cutover"}))
    path.write_text("\n".join(lines) + "\n")
    return path


def test_ingest_and_stats(cli, ledger_file, tmp_path, capsys):
    cli("ingest", "alice", str(ledger_file))
    out = capsys.readouterr().out
    assert "Ingested 5 messages into alice" in out
    assert "Summaries created: 1" in out
    assert (tmp_path / "profiles" / "alice.profile.json").is_file()

    cli("stats", "alice")
    out = capsys.readouterr().out
    assert "Messages:       5" in out
    assert "Summaries:      1" in out
    assert "L1" in out


def test_ingest_appends_to_stored_profile(cli, ledger_file, capsys):
    cli("ingest", "alice", str(ledger_file))
    cli("ingest", "alice", str(ledger_file))
    capsys.readouterr()
    cli("stats", "alice")
    assert "Messages:       10" in capsys.readouterr().out


def test_ingest_rejects_bad_role(cli, tmp_path, capsys):
    path = tmp_path / "bad.jsonl"
    path.write_text(json.dumps({"role": "system", "text": "x"}) + "\n")
    with pytest.raises(SystemExit) as exc_info:
        cli("ingest", "alice", str(path))
    assert exc_info.value.code == 1
    assert "unknown role" in capsys.readouterr().err


def test_search_and_context(cli, ledger_file, capsys):
    cli("ingest", "alice", str(ledger_file))
    capsys.readouterr()

    cli("search", "alice", "postgres ledger")
    out = capsys.readouterr().out
    assert "tags:" in out

    cli("context", "alice", "postgres", "--max-chars", "500")
    out = capsys.readouterr().out
    assert "[Memory L1]" in out
    assert "User: I'm really worried about the cutover" in out


def test_emotions(cli, ledger_file, capsys):
    cli("ingest", "alice", str(ledger_file), "--observe-emotions")
    capsys.readouterr()
    cli("emotions", "alice")
    assert "**Dominant emotion:** worried" in capsys.readouterr().out


def test_export(cli, ledger_file, capsys):
    cli("ingest", "alice", str(ledger_file))
    capsys.readouterr()
    cli("export", "alice")
    data = json.loads(capsys.readouterr().out)
    assert data["entity_id"] == "alice"
    assert len(data["items"]) == 6


def test_entities(cli, ledger_file, capsys):
    cli("entities")
    assert "No stored profiles yet." in capsys.readouterr().out
    cli("ingest", "bob", str(ledger_file))
    cli("ingest", "alice", str(ledger_file))
    capsys.readouterr()
    cli("entities")
    assert capsys.readouterr().out.split() == ["alice", "bob"]


def test_unknown_entity(cli, capsys):
    cli("stats", "nobody")
    assert "No stored memory for nobody." in capsys.readouterr().out
    with pytest.raises(SystemExit):
        cli("context", "nobody", "anything")


def test_corrupt_profile_exits_2(cli, tmp_path, capsys):
    root = tmp_path / "profiles"
    root.mkdir()
    (root / "alice.profile.json").write_text("{broken")
    with pytest.raises(SystemExit) as exc_info:
        cli("stats", "alice")
    assert exc_info.value.code == 2
    assert "corrupt" in capsys.readouterr().err


def test_config_validate(cli, capsys):
    cli("config", "validate")
    out = capsys.readouterr().out
    assert "Config is valid." in out
    assert "truncation summaries" in out


def test_config_validate_errors(tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.dump({"budget": {"max_chars": 100}}))
    with pytest.raises(SystemExit):
        main(["--config", str(path), "config", "validate"])
    assert "max_summary_chars" in capsys.readouterr().out


def test_no_command(capsys):
    with pytest.raises(SystemExit):
        main([])


def test_undecodable_profile_exits_2(cli, tmp_path, capsys):
    root = tmp_path / "profiles"
    root.mkdir()
    (root / "alice.profile.json").write_bytes(b"\xff\xfe\x80\x81")
    with pytest.raises(SystemExit) as exc_info:
        cli("stats", "alice")
    assert exc_info.value.code == 2
