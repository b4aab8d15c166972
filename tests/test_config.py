"""Tests for configuration loading."""

import logging

import pytest

from derive.config import Config, load_config
from derive.errors import ConfigError


@pytest.fixture(autouse=True)
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_defaults():
    assert load_config(environ={}) == Config()


def test_file_values(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("system: aarch64-linux\ndescriptor: shell.nix\nlog_level: DEBUG\n")
    config = load_config(path, environ={})
    assert config.system == "aarch64-linux"
    assert config.descriptor == "shell.nix"
    assert config.log_level == "DEBUG"
    assert config.catalog is None


def test_catalog_relative_to_file(tmp_path):
    (tmp_path / "etc").mkdir()
    path = tmp_path / "etc" / "derive.yaml"
    path.write_text("catalog: catalog.yaml\n")
    assert load_config(path, environ={}).catalog == str(tmp_path / "etc" / "catalog.yaml")


def test_implicit_file_in_cwd(tmp_path):
    (tmp_path / "derive.yaml").write_text("descriptor: shell.nix\n")
    assert load_config(environ={}).descriptor == "shell.nix"


def test_config_from_environment_variable(tmp_path):
    path = tmp_path / "other.yaml"
    path.write_text("descriptor: other.nix\n")
    assert load_config(environ={"DERIVE_CONFIG": str(path)}).descriptor == "other.nix"


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("system: aarch64-linux\n")
    config = load_config(path, environ={"DERIVE_SYSTEM": "x86_64-darwin", "DERIVE_CATALOG": "/c.yaml"})
    assert config.system == "x86_64-darwin"
    assert config.catalog == "/c.yaml"


def test_empty_file(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("")
    assert load_config(path, environ={}) == Config()


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml", environ={})


def test_not_a_mapping(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path, environ={})


def test_invalid_yaml(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("system: [unclosed\n")
    with pytest.raises(ConfigError, match="invalid YAML"):
        load_config(path, environ={})


def test_non_string_value(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text("system: 42\n")
    with pytest.raises(ConfigError, match="must be a string"):
        load_config(path, environ={})


def test_unknown_key_logged(tmp_path, caplog):
    path = tmp_path / "conf.yaml"
    path.write_text("colour: blue\n")
    with caplog.at_level(logging.WARNING, logger="derive.config"):
        assert load_config(path, environ={}) == Config()
    assert "colour" in caplog.text


def test_update_skips_none():
    config = Config(system="aarch64-linux").update(system=None, descriptor="x.nix")
    assert config.system == "aarch64-linux"
    assert config.descriptor == "x.nix"
