import pytest

from dailytemp.config import Config, ConfigError, DEFAULT_COUNT_MEASUREMENT


def test_rejects_zero_measurements():
    with pytest.raises(ConfigError):
        Config(token="abc", count_measurement=0)


def test_rejects_empty_token():
    with pytest.raises(ConfigError):
        Config(token="", count_measurement=4)


def test_from_env(monkeypatch):
    monkeypatch.setenv("OPENWEATHER_TOKEN", "abc")
    monkeypatch.setenv("OPENWEATHER_COUNT_MEASUREMENT", "8")

    assert Config.from_env() == Config(token="abc", count_measurement=8)


def test_from_env_default_count(monkeypatch):
    monkeypatch.setenv("OPENWEATHER_TOKEN", "abc")
    monkeypatch.delenv("OPENWEATHER_COUNT_MEASUREMENT", raising=False)

    assert Config.from_env().count_measurement == DEFAULT_COUNT_MEASUREMENT


def test_from_env_bad_count(monkeypatch):
    monkeypatch.setenv("OPENWEATHER_TOKEN", "abc")
    monkeypatch.setenv("OPENWEATHER_COUNT_MEASUREMENT", "many")

    with pytest.raises(ConfigError):
        Config.from_env()


def test_from_env_missing_token(monkeypatch):
    monkeypatch.delenv("OPENWEATHER_TOKEN", raising=False)

    with pytest.raises(ConfigError):
        Config.from_env()
