"""Tests for configuration loading."""

from __future__ import annotations

import pytest
import toml

from natpmpc.config import config as config_mod
from natpmpc.config.config import ConfigManager
from natpmpc.exceptions import ConfigurationError
from natpmpc.models import ClientConfig, Config, LogLevel

pytestmark = [pytest.mark.unit, pytest.mark.config]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config discovery away from the real home and working directories."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr(config_mod, "_config_manager", None)


def test_defaults_without_file():
    """Test defaults apply when no config file exists."""
    manager = ConfigManager()

    assert manager.config_file is None
    assert manager.config.client.max_attempts == 9
    assert manager.config.client.gateway is None
    assert manager.config.observability.log_level == LogLevel.WARNING


def test_finds_config_in_cwd(tmp_path):
    """Test natpmpc.toml in the working directory is picked up."""
    (tmp_path / "natpmpc.toml").write_text("[client]\ntimeout = 1.5\n")

    manager = ConfigManager()

    assert manager.config_file == tmp_path / "natpmpc.toml"
    assert manager.config.client.timeout == 1.5


def test_explicit_config_file(tmp_path):
    """Test an explicit file path is loaded."""
    config_file = tmp_path / "custom.toml"
    config_file.write_text(
        """
[client]
gateway = "192.168.0.1"
max_attempts = 3
retry_backoff = true

[observability]
log_level = "DEBUG"
"""
    )

    manager = ConfigManager(config_file=str(config_file))

    assert manager.config.client.gateway == "192.168.0.1"
    assert manager.config.client.max_attempts == 3
    assert manager.config.client.retry_backoff is True
    assert manager.config.observability.log_level == LogLevel.DEBUG


def test_malformed_toml_falls_back_to_defaults(tmp_path):
    """Test a TOML syntax error is logged and ignored."""
    config_file = tmp_path / "bad.toml"
    config_file.write_text("[client\ntimeout = ")

    manager = ConfigManager(config_file=config_file)

    assert manager.config == Config()


def test_invalid_values_raise(tmp_path):
    """Test validation errors become ConfigurationError."""
    config_file = tmp_path / "invalid.toml"
    config_file.write_text("[client]\nmax_attempts = 0\n")

    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        ConfigManager(config_file=config_file)


def test_invalid_gateway_raises(tmp_path):
    """Test a non-IPv4 gateway is rejected."""
    config_file = tmp_path / "gw.toml"
    config_file.write_text('[client]\ngateway = "fe80::1"\n')

    with pytest.raises(ConfigurationError):
        ConfigManager(config_file=config_file)


def test_env_overrides_file(tmp_path, monkeypatch):
    """Test environment variables take precedence over the file."""
    config_file = tmp_path / "env.toml"
    config_file.write_text("[client]\ntimeout = 1.0\nmax_attempts = 4\n")
    monkeypatch.setenv("NATPMPC_TIMEOUT", "0.5")
    monkeypatch.setenv("NATPMPC_RETRY_BACKOFF", "yes")
    monkeypatch.setenv("NATPMPC_LOG_LEVEL", "INFO")

    manager = ConfigManager(config_file=config_file)

    assert manager.config.client.timeout == 0.5
    assert manager.config.client.max_attempts == 4
    assert manager.config.client.retry_backoff is True
    assert manager.config.observability.log_level == LogLevel.INFO


def test_env_numeric_values_not_booleans(monkeypatch):
    """Test "1" parses as an integer attempt count."""
    monkeypatch.setenv("NATPMPC_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("NATPMPC_STRUCTURED_LOGGING", "off")

    manager = ConfigManager()

    assert manager.config.client.max_attempts == 1
    assert manager.config.observability.structured_logging is False


def test_env_string_paths_kept_verbatim(monkeypatch):
    """Test gateway and log file are not coerced."""
    monkeypatch.setenv("NATPMPC_GATEWAY", "10.0.0.1")
    monkeypatch.setenv("NATPMPC_LOG_FILE", "123")

    manager = ConfigManager()

    assert manager.config.client.gateway == "10.0.0.1"
    assert manager.config.observability.log_file == "123"


def test_export_round_trips(tmp_path):
    """Test exported TOML loads back into the same configuration."""
    manager = ConfigManager()
    manager.config.client.mapping_lifetime = 600

    exported = manager.export()
    data = toml.loads(exported)

    assert "gateway" not in data["client"]
    assert data["client"]["mapping_lifetime"] == 600
    assert Config(**data) == manager.config


def test_global_config_helpers(tmp_path):
    """Test init, get, set and reload of the global configuration."""
    with pytest.raises(ConfigurationError, match="not initialized"):
        config_mod.reload_config()

    config_file = tmp_path / "global.toml"
    config_file.write_text("[client]\nmax_attempts = 2\n")
    manager = config_mod.init_config(config_file)
    assert config_mod.get_config() is manager.config
    assert config_mod.get_config().client.max_attempts == 2

    config_mod.set_config(Config(client=ClientConfig(max_attempts=7)))
    assert config_mod.get_config().client.max_attempts == 7

    assert config_mod.reload_config().client.max_attempts == 2


def test_get_config_lazily_creates_manager():
    """Test get_config builds a manager on first use."""
    assert config_mod.get_config() == Config()
    assert config_mod._config_manager is not None


def test_gateway_validated():
    """Test the gateway must be an IPv4 address."""
    assert ClientConfig(gateway="192.168.1.1").gateway == "192.168.1.1"
    with pytest.raises(ValueError):
        ClientConfig(gateway="router.local")


def test_missing_explicit_config_file(tmp_path):
    """Test a config path that does not exist is reported."""
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager(config_file=tmp_path / "typo.toml")


def test_env_log_level_case_insensitive(monkeypatch):
    """Test lower-case log levels from the environment are accepted."""
    monkeypatch.setenv("NATPMPC_LOG_LEVEL", "debug")

    manager = ConfigManager()

    assert manager.config.observability.log_level == LogLevel.DEBUG
