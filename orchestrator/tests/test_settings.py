import os

import pytest

from orchestrator.settings import ConfigError, Settings, clear_settings_cache, get_settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("FOUNDRYCTL"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


def test_defaults_when_no_file(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings == Settings()
    assert settings.cli_binary == "foundry"
    assert settings.runtime_url is None


def test_file_then_env_precedence(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("http_timeout: 10\ndefault_ttl: 60\nruntime_url: http://127.0.0.1:5273\n")
    monkeypatch.setenv("FOUNDRYCTL__HTTP_TIMEOUT", "5")
    settings = load_settings(cfg)
    assert settings.http_timeout == 5
    assert settings.default_ttl == 60
    assert settings.runtime_url == "http://127.0.0.1:5273"


def test_config_path_from_env(tmp_path, monkeypatch):
    cfg = tmp_path / "alt.yaml"
    cfg.write_text("cli_binary: /opt/foundry/bin/foundry\n")
    monkeypatch.setenv("FOUNDRYCTL_CONFIG", str(cfg))
    assert get_settings().cli_binary == "/opt/foundry/bin/foundry"
    # Cached until cleared
    cfg.write_text("cli_binary: other\n")
    assert get_settings().cli_binary == "/opt/foundry/bin/foundry"
    clear_settings_cache()
    assert get_settings().cli_binary == "other"


def test_unknown_key_rejected(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("no_such_setting: 1\n")
    with pytest.raises(ConfigError):
        load_settings(cfg)


def test_bad_value_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("FOUNDRYCTL__COMMAND_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "missing.yaml")


def test_non_mapping_file_rejected(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_settings(cfg)


def test_malformed_yaml_rejected(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("cli_binary: [unclosed\n")
    with pytest.raises(ConfigError, match="invalid YAML"):
        load_settings(cfg)


def test_log_level_must_be_a_level_name(tmp_path, monkeypatch):
    monkeypatch.setenv("FOUNDRYCTL__LOG_LEVEL", "verbose")
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "missing.yaml")
    monkeypatch.setenv("FOUNDRYCTL__LOG_LEVEL", "DEBUG")
    assert load_settings(tmp_path / "missing.yaml").log_level == "DEBUG"
