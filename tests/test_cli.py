import json

import httpx
import pytest
from typer.testing import CliRunner

from micnotes import cli, config

runner = CliRunner()


@pytest.fixture
def fake(fake_openai):
    return fake_openai


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch, make_orchestrator, fake):
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.delenv(config.API_KEY_ENV, raising=False)
    orchestrator = make_orchestrator(fake)
    monkeypatch.setattr(cli, "build_orchestrator", lambda cfg=None: orchestrator)
    return orchestrator


@pytest.fixture
def audio(tmp_path):
    path = tmp_path / "note.m4a"
    path.write_bytes(b"\x00" * 256)
    return path


def test_list_when_empty():
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "No recordings found" in result.output


def test_process_now_prints_summary(audio, isolated):
    result = runner.invoke(cli.app, ["process", str(audio), "--kind", "personal", "--language", "en"])
    assert result.exit_code == 0, result.output
    assert "A short summary." in result.output
    assert "$0.0094" in result.output
    assert isolated.store.processed_count == 1


def test_later_then_process_pending(audio, isolated, fake):
    result = runner.invoke(cli.app, ["process", str(audio), "--later"])
    assert result.exit_code == 0, result.output
    assert fake.requests == []
    (record,) = isolated.store.list_records()

    listing = runner.invoke(cli.app, ["list"])
    assert "pending" in listing.output

    result = runner.invoke(cli.app, ["process-pending", record.id])
    assert result.exit_code == 0, result.output
    assert isolated.store.get(record.id).status.value == "processed"


def test_failed_processing_exits_non_zero(audio, isolated, fake):
    fake.transcription_response = httpx.Response(401, text="bad key")
    result = runner.invoke(cli.app, ["process", str(audio)])
    assert result.exit_code == 1
    assert "401" in result.output
    assert len(isolated.store) == 0


def test_veterinary_needs_a_dog(audio):
    result = runner.invoke(cli.app, ["process", str(audio), "--kind", "veterinary"])
    assert result.exit_code == 1


def test_stats_and_delete(audio, isolated):
    runner.invoke(cli.app, ["process", str(audio), "--later", "--kind", "couple"])
    (record,) = isolated.store.list_records()

    stats = runner.invoke(cli.app, ["stats"])
    assert "Pending: 1" in stats.output
    assert "couple=1" in stats.output

    result = runner.invoke(cli.app, ["delete", record.id])
    assert result.exit_code == 0
    assert len(isolated.store) == 0
    assert not audio.exists()


def test_login_validates_prefix(tmp_path):
    bad = runner.invoke(cli.app, ["login", "--api-key", "nope"])
    assert bad.exit_code == 1

    good = runner.invoke(cli.app, ["login", "--api-key", "sk-live-123"])
    assert good.exit_code == 0
    assert json.loads((tmp_path / "config.json").read_text())["openai_api_key"] == "sk-live-123"


def test_config_show_masks_key():
    config.update_config(openai_api_key="sk-secretvalue")
    result = runner.invoke(cli.app, ["config", "--show"])
    assert result.exit_code == 0
    assert "sk-secretvalue" not in result.output
    assert "sk-sec..." in result.output
