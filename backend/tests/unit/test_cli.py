"""Tests for the command line interface."""

import json

import pytest

from app import cli


def test_parser_ingest_arguments():
    args = cli.build_parser().parse_args(["ingest", "payload.json", "--repeat", "3"])
    assert args.command == "ingest"
    assert args.file == "payload.json"
    assert args.repeat == 3
    assert args.func is cli.cmd_ingest


def test_ingest_rejects_zero_repeat(capsys):
    args = cli.build_parser().parse_args(["ingest", "payload.json", "--repeat", "0"])
    assert cli.cmd_ingest(args) == 1
    assert "--repeat" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_replay_is_idempotent(tmp_path, monkeypatch, session_maker, sample_payload, capsys):
    monkeypatch.setattr("app.models.base.async_session_maker", session_maker)
    payload_file = tmp_path / "payload.json"
    payload_file.write_text(json.dumps(sample_payload))

    assert await cli.replay_payload(payload_file, repeat=2, notify=False) is True

    out = capsys.readouterr().out
    lines = [line for line in out.splitlines() if line.startswith("SUCCESS:")]
    assert len(lines) == 2
    second = json.loads(lines[1].removeprefix("SUCCESS: "))
    assert second["created"] == []
    assert second["image_count"] == 1
    # Only the first submission added content
    assert out.count("Would notify") == 1


@pytest.mark.asyncio
async def test_replay_missing_file(tmp_path, capsys):
    assert await cli.replay_payload(tmp_path / "absent.json", repeat=1, notify=False) is False
    assert "Cannot read payload file" in capsys.readouterr().err
