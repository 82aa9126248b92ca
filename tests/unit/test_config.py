import logging

from pydantic import SecretStr

from hassflow import HassflowConfig


def test_env_overrides_are_used(test_config_class, monkeypatch):
    """Environment overrides win when constructing a HassflowConfig."""
    monkeypatch.setenv("hassflow__websocket_response_timeout_seconds", "7")

    config = test_config_class()

    assert config.websocket_response_timeout_seconds == 7, (
        f"Expected 7, got {config.websocket_response_timeout_seconds}"
    )


def test_token_read_from_alias_env(monkeypatch):
    """The token can be provided through any of its environment aliases and is never shown."""
    monkeypatch.setenv("HA_TOKEN", "super-secret")

    config = HassflowConfig(_env_file=None, log_level=logging.getLevelName(logging.getLogger("hassflow").level))

    assert isinstance(config.token, SecretStr), "Token should be a SecretStr"
    assert config.token.get_secret_value() == "super-secret", "Token should come from HA_TOKEN"
    assert "super-secret" not in repr(config), "Token should not appear in repr"


def test_log_level_is_coerced(test_config_class):
    """Log levels are upper-cased and invalid values fall back to INFO."""
    assert test_config_class(log_level="debug").log_level == "DEBUG", "Log level should be upper-cased"
    assert test_config_class(log_level="loud").log_level == "INFO", "Invalid log level should fall back to INFO"


def test_defaults(test_config_class):
    """Unset values use their defaults."""
    config = test_config_class()

    assert config.base_url == "http://127.0.0.1:8123", f"Unexpected base_url {config.base_url}"
    assert config.latitude is None and config.longitude is None, "Location should be unset by default"
