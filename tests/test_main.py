import pytest
from click.testing import CliRunner

import main
from hassagent.errors import ConfigError
from hassagent.preferences import PREF_DEVICE_ID, PREF_DEVICE_NAME, Preferences


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    prefs_file = str(tmp_path / "preferences.json")
    monkeypatch.setattr("hassagent.preferences.PREFERENCES_FILE", prefs_file)
    monkeypatch.setattr(main, "configure_logging", lambda prefs: None)
    return prefs_file


@pytest.fixture
def runner():
    return CliRunner()


def test_version(runner):
    result = runner.invoke(main.cli, ["version"])
    assert result.exit_code == 0
    assert result.output.strip() == "hass-agent: 0.4.0"


def test_info(runner):
    Preferences().set_many({PREF_DEVICE_NAME: "laptop", PREF_DEVICE_ID: "abc"})
    result = runner.invoke(main.cli, ["info"])
    assert result.exit_code == 0
    assert result.output.strip() == "Device Name laptop. Device ID abc. Not registered."


def test_host_options_are_registered(runner):
    result = runner.invoke(main.cli, ["register", "--help"])
    assert result.exit_code == 0
    for flag in ("--server", "--token", "--tls", "--force"):
        assert flag in result.output


def test_register_failure_exits_non_zero(runner, monkeypatch):
    def fail(*args, **kwargs):
        raise ConfigError("boom")

    monkeypatch.setattr(main, "register", fail)
    result = runner.invoke(main.cli, ["register", "--server", "ha.local:8123", "--token", "t"])
    assert result.exit_code == 1


def test_register_passes_force(runner, monkeypatch):
    calls = []
    monkeypatch.setattr(main, "register", lambda prefs, provider, force=False: calls.append(force))
    result = runner.invoke(main.cli, ["register", "--server", "ha.local:8123", "--token", "t", "--force"])
    assert result.exit_code == 0
    assert calls == [True]


def test_run_requires_valid_config(runner, monkeypatch):
    monkeypatch.setattr(main, "register", lambda prefs, provider: None)
    result = runner.invoke(main.cli, ["run", "--no-api", "--server", "ha.local:8123", "--token", "t"])
    assert result.exit_code == 1


def test_corrupt_preferences_exit_non_zero(runner, isolated):
    with open(isolated, "w", encoding="utf-8") as f:
        f.write("{not json")
    result = runner.invoke(main.cli, ["info"])
    assert result.exit_code == 1
