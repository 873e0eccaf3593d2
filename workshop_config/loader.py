"""
Configuration Loader (``workshop_config.loader``).

Responsibility
--------------
Reads one YAML file and parses it into the frozen ``WorkshopConfig``
dataclasses.  Applications call ``workshop_config.get_active_config()``
instead of this module.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema.
"""

from __future__ import annotations

import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from workshop_config.schema import (
    CheckoutSettings,
    DatabaseSettings,
    LoggingSettings,
    ReceivingSettings,
    TransactionSettings,
    WorkshopConfig,
)

CONFIG_PATH_ENV = "WORKSHOP_CONFIG"
DATABASE_URL_ENV = "WORKSHOP_DATABASE_URL"

_SECTIONS = {
    "database": DatabaseSettings,
    "transactions": TransactionSettings,
    "receiving": ReceivingSettings,
    "checkout": CheckoutSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _parse_section(name: str, cls, data: Any):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{name}: unknown key(s) {unknown}")
    return cls(**data)


def parse_config(data: dict[str, Any], source: str | None = None) -> WorkshopConfig:
    """Build a ``WorkshopConfig`` from an already-parsed mapping."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"unknown configuration section(s) {unknown}")
    sections = {
        name: _parse_section(name, cls, data.get(name))
        for name, cls in _SECTIONS.items()
    }
    return WorkshopConfig(source=source, **sections)


def load_config(path: Path) -> WorkshopConfig:
    return parse_config(load_yaml_file(path), source=str(path))


def apply_environment(config: WorkshopConfig, environ: dict[str, str] | None = None) -> WorkshopConfig:
    """Apply ``WORKSHOP_DATABASE_URL`` on top of the file values."""
    env = os.environ if environ is None else environ
    url = env.get(DATABASE_URL_ENV)
    if url:
        return replace(config, database=replace(config.database, url=url))
    return config
