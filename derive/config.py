"""Configuration for the derive command line.

Sources, lowest precedence first:

1. defaults below
2. a YAML file: --config PATH, else $DERIVE_CONFIG, else ./derive.yaml if present
3. environment: DERIVE_CATALOG, DERIVE_SYSTEM, DERIVE_LOG_LEVEL
4. command line flags (applied by derive.main)

Example derive.yaml:

    system: x86_64-linux
    catalog: catalog.yaml
    descriptor: default.nix
    log_level: INFO
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from derive.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "derive.yaml"

_ENV_VARS = {
    "DERIVE_CATALOG": "catalog",
    "DERIVE_SYSTEM": "system",
    "DERIVE_LOG_LEVEL": "log_level",
}


@dataclass
class Config:
    system: str | None = None  # None: use the catalog's
    catalog: str | None = None
    descriptor: str = "default.nix"
    log_level: str = "WARNING"

    def update(self, **values) -> Config:
        """Return a copy with the non-None values applied."""
        return dataclasses.replace(self, **{k: v for k, v in values.items() if v is not None})


def _read_yaml(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _from_mapping(config: Config, data: dict, source: str) -> Config:
    known = {f.name for f in dataclasses.fields(Config)}
    values = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("ignoring unknown config key %r in %s", key, source)
            continue
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"config key {key!r} in {source} must be a string")
        values[key] = value
    return config.update(**values)


def load_config(path: str | os.PathLike | None = None, environ=None) -> Config:
    """Build a Config from the file and environment sources.

    An explicitly named file (argument or $DERIVE_CONFIG) must exist; the
    implicit ./derive.yaml is only read when present. Relative catalog
    paths in a file are taken relative to that file.
    """
    environ = os.environ if environ is None else environ
    config = Config()

    if path is None:
        path = environ.get("DERIVE_CONFIG")
    if path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        path = DEFAULT_CONFIG_FILE

    if path is not None:
        path = Path(path)
        config = _from_mapping(config, _read_yaml(path), str(path))
        if config.catalog is not None and not Path(config.catalog).is_absolute():
            config = config.update(catalog=str(path.parent / config.catalog))
        logger.debug("loaded config from %s", path)

    env_values = {attr: environ[var] for var, attr in _ENV_VARS.items() if environ.get(var)}
    return _from_mapping(config, env_values, "environment")
