"""Tests for the command-line interface."""

import asyncio
from datetime import datetime, timezone

import pytest
from click.testing import CliRunner

from netsentinel import __version__
from netsentinel.cli import main
from netsentinel.config import AppSettings
from netsentinel.models import AlertSeverity, Device, SecurityAlert
from netsentinel.storage import JsonStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def config_file(tmp_path, data_dir):
    path = tmp_path / "config.yaml"
    path.write_text(f"data_dir: {data_dir}\n")
    return path


class TestMain:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_bad_config(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("scan: [oops\n")

        result = runner.invoke(main, ["-c", str(path), "rules"])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestSubnet:
    """Subnet arithmetic from the command line."""

    def test_summary(self, runner):
        result = runner.invoke(main, ["subnet", "192.168.1.10", "255.255.255.0"])

        assert result.exit_code == 0
        assert "192.168.1.0/24" in result.output
        assert "192.168.1.255" in result.output
        assert "254" in result.output

    def test_list(self, runner):
        result = runner.invoke(main, ["subnet", "10.0.0.5", "255.255.255.252", "--list"])

        assert result.exit_code == 0
        assert "10.0.0.5\n10.0.0.6\n" in result.output

    def test_invalid(self, runner):
        result = runner.invoke(main, ["subnet", "300.1.1.1", "255.255.255.0"])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestStoredData:
    """Commands that read the data directory."""

    def test_rules_use_stored_threshold(self, runner, config_file, data_dir):
        asyncio.run(JsonStore(data_dir).save_settings(AppSettings(traffic_spike_threshold_kbps=2500)))

        result = runner.invoke(main, ["-c", str(config_file), "rules"])

        assert result.exit_code == 0
        assert "2500" in result.output

    def test_alerts_empty(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "alerts"])

        assert result.exit_code == 0
        assert "No alerts" in result.output

    def test_alerts_mark_read(self, runner, config_file, data_dir):
        alert = SecurityAlert(severity=AlertSeverity.CRITICAL, title="Spoof", description="gateway changed")
        asyncio.run(JsonStore(data_dir).record_alert(alert))

        listed = runner.invoke(main, ["-c", str(config_file), "alerts"])
        assert listed.exit_code == 0
        assert "Spoof" in listed.output

        marked = runner.invoke(main, ["-c", str(config_file), "alerts", "--mark-read", alert.alert_id])
        assert marked.exit_code == 0

        unread = runner.invoke(main, ["-c", str(config_file), "alerts", "--unread"])
        assert "No alerts" in unread.output

    def test_alerts_mark_unknown(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "alerts", "--mark-read", "missing"])

        assert result.exit_code == 1

    def test_devices_all_json(self, runner, config_file, data_dir):
        ts = datetime(2026, 3, 1, tzinfo=timezone.utc)
        asyncio.run(JsonStore(data_dir).upsert_device(Device(
            mac_address="AA:00:00:00:00:01", ip_address="172.16.5.9", first_seen=ts, last_seen=ts,
        )))

        result = runner.invoke(main, ["-c", str(config_file), "devices", "--all", "--json"])

        assert result.exit_code == 0
        assert "AA:00:00:00:00:01" in result.output

    def test_rules_corrupt_settings(self, runner, config_file, data_dir):
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "settings.json").write_text("{not json")

        result = runner.invoke(main, ["-c", str(config_file), "rules"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_rules_invalid_settings(self, runner, config_file, data_dir):
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "settings.json").write_text('{"scan_interval_minutes": 0}')

        result = runner.invoke(main, ["-c", str(config_file), "rules"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_alerts_corrupt_log(self, runner, config_file, data_dir):
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "alerts.json").write_text("[{")

        result = runner.invoke(main, ["-c", str(config_file), "alerts"])

        assert result.exit_code == 1
        assert "Error" in result.output
