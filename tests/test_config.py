"""Tests for configuration loading."""

from __future__ import annotations

import json

import pytest

from symmetric_encryption import ConfigError, config, dev_config, generate_data_keys, rotate_keys


@pytest.fixture
def config_file(tmp_path) -> str:
    path = tmp_path / "symmetric-encryption.json"
    path.write_text(json.dumps({"test": dev_config()}))
    return str(path)


def test_load() -> None:
    registry = config.load(dev_config())
    assert registry.versions == [1]
    assert not registry.randomize_iv


def test_load_randomize_iv() -> None:
    settings = dict(dev_config(), randomize_iv=True)
    assert config.load(settings).randomize_iv


def test_load_requires_ciphers() -> None:
    with pytest.raises(ConfigError):
        config.load({})


def test_load_file(config_file: str) -> None:
    registry = config.load_file(config_file, env="test")
    assert registry.primary.cipher_name == "aes-128-cbc"


def test_load_file_from_environment(monkeypatch, config_file: str) -> None:
    monkeypatch.setenv("SYMMETRIC_ENCRYPTION_CONFIG", config_file)
    monkeypatch.setenv("SYMMETRIC_ENCRYPTION_ENV", "test")
    assert config.load_file().primary.version == 1


def test_app_env_fallback(monkeypatch, config_file: str) -> None:
    monkeypatch.delenv("SYMMETRIC_ENCRYPTION_ENV", raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    assert config.current_environment() == "test"
    assert config.load_file(config_file).primary.version == 1


def test_missing_environment(config_file: str) -> None:
    with pytest.raises(ConfigError):
        config.load_file(config_file, env="production")


def test_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        config.load_file(str(tmp_path / "missing.json"), env="test")


def test_invalid_json(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        config.load_file(str(path), env="test")


@pytest.mark.parametrize("keystore", ["file", "memory"])
def test_generated_config_saved_and_loaded(tmp_path, key_path: str, keystore: str) -> None:
    full_config = generate_data_keys(
        keystore=keystore,
        environments=("test", "production"),
        app_name="my_app",
        key_path=key_path,
    )
    file_name = str(tmp_path / "config" / "symmetric-encryption.json")
    config.write_file(file_name, full_config)

    registry = config.load_file(file_name, env="production")
    encrypted = registry.encrypt("Hello World")
    assert config.load(full_config["production"]).decrypt(encrypted) == "Hello World"

    with open(file_name) as f:
        rotated = rotate_keys(json.load(f), app_name="my_app")
    config.write_file(file_name, rotated)

    registry = config.load_file(file_name, env="production")
    assert registry.versions == [2, 1]
    assert registry.decrypt(encrypted) == "Hello World"
