import json

import pytest
import structlog
from typer.testing import CliRunner

from soboss.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def _write(path, name, data):
    (path / ("%s.json" % name)).write_text(json.dumps(data), encoding="utf-8")


def test_check_config_reports_directory_and_results(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SOBOSS_LOG_LEVEL", "WARNING")
    _write(tmp_path, "ping", {"defaultInterval": 5000, "timeOutMs": 1000})
    _write(tmp_path, "sonos", {"speakers": {"S1": {"identifier": "kitchen"}}})
    _write(tmp_path, "genericDevices", [{"identifier": "tv", "hostAddress": "10.0.0.4", "checks": ["ping"]}])

    result = runner.invoke(app, ["check-config", "--config-dir", str(tmp_path)])

    assert result.exit_code == 0
    assert "Checking %s" % tmp_path.resolve() in result.output
    assert "OK    sonos_config: 1 speaker(s) configured" in result.output


def test_check_config_fails_on_missing_sections(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SOBOSS_LOG_LEVEL", "WARNING")
    _write(tmp_path, "ping", {})

    result = runner.invoke(app, ["check-config", "--config-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "FAIL  sonos_config" in result.output
