from pathlib import Path

import pytest

from config import load_config

_VARS = (
    "ALARM_STORAGE_PATH",
    "ALARM_STORAGE_KEY",
    "ALARM_TIMEZONE",
    "ALARM_REARM_ON_LOAD",
    "ALARM_CHECK_INTERVAL_MS",
    "ALARM_FALLBACK_SOUND_PATH",
    "LOG_LEVEL",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = load_config(tmp_path / "missing.env")
    assert config.alarms_path == Path("data/alarms.json")
    assert config.storage_key == "alarms"
    assert config.timezone_name is None
    assert config.rearm_on_load is True
    assert config.check_interval_ms == 800
    assert config.log_level == "INFO"


def test_env_file_is_loaded(tmp_path):
    env = tmp_path / ".env"
    env.write_text(
        "ALARM_STORAGE_PATH=/var/lib/alarms.json\n"
        "ALARM_TIMEZONE=Europe/Berlin\n"
        "ALARM_REARM_ON_LOAD=no\n"
        "ALARM_CHECK_INTERVAL_MS=250\n"
        "LOG_LEVEL=warning\n",
        encoding="utf-8",
    )
    config = load_config(env)
    assert config.alarms_path == Path("/var/lib/alarms.json")
    assert config.timezone_name == "Europe/Berlin"
    assert config.rearm_on_load is False
    assert config.check_interval_ms == 250
    assert config.log_level == "WARNING"


def test_debug_forces_debug_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("DEBUG", "1")
    assert load_config(tmp_path / "missing.env").log_level == "DEBUG"


@pytest.mark.parametrize("value", ["soon", "0"])
def test_bad_check_interval(tmp_path, monkeypatch, value):
    monkeypatch.setenv("ALARM_CHECK_INTERVAL_MS", value)
    with pytest.raises(ValueError):
        load_config(tmp_path / "missing.env")
