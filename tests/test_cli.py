"""Tests for the lcdm-cli entry point."""

import json

import pytest

from lcdm_fakes import make_reply
from LCDM import cli
from LCDM.lcdm_core import LcdmDispenser


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"lcdm": {"port_name": "COM4"}}))
    return str(path)


@pytest.fixture
def patched(monkeypatch, make_dispenser):
    seen = {}

    def fake_from_config(cls, cfg, **overrides):
        seen["cfg"] = cfg
        seen["overrides"] = overrides
        return make_dispenser()

    monkeypatch.setattr(LcdmDispenser, "from_config", classmethod(fake_from_config))
    return seen


def test_status_prints_sensors(config_path, patched, fake_serial, capsys):
    fake_serial.feed(b"\x06", make_reply(0x46, bytes([0x30, 0x01, 0x00])))
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", config_path, "status"])
    assert exc_info.value.code == 0
    out = capsys.readouterr().out
    assert "[STATUS] 0x30 Good" in out
    assert "check_sensor_1   True" in out
    assert patched["cfg"].lcdm_port_name == "COM4"


def test_dispense_prints_counts(config_path, patched, fake_serial, capsys):
    fake_serial.feed(b"\x06", make_reply(0x55, b"01010202" + bytes([0x30, 0x31])))
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", config_path, "--port", "COM9", "-v", "dispense", "1", "2"])
    assert exc_info.value.code == 0
    out = capsys.readouterr().out
    assert "cashbox: Near end" in out
    assert "lower: checked 2, exited 2" in out
    assert patched["overrides"]["port"] == "COM9"
    assert patched["overrides"]["verbose"] is True


def test_error_exits_nonzero(config_path, patched, fake_serial, capsys):
    fake_serial.feed(b"\x15")
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", config_path, "reset"])
    assert exc_info.value.code == 1
    assert "ResponseNotAcknowledged" in capsys.readouterr().out
    assert not fake_serial.is_open


def test_bad_count_exits_nonzero(config_path, patched, fake_serial):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", config_path, "upper", "250"])
    assert exc_info.value.code == 1
    assert fake_serial.writes == []
