"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Reads YAML settings files and parses them into the frozen dataclasses of
``ledger_config.schema``.

Invariants enforced
-------------------
* Override files are merged section by section over the packaged
  defaults; keys the schema does not know are rejected with ``ValueError``
  rather than ignored.
* ``LEDGER_DATABASE_URL`` in the environment replaces ``database.url``.
* ``compute_checksum`` is deterministic for identical settings.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a wrongly typed value  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AccountRoles,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    MatchingSettings,
    PayablesSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "LEDGER_DATABASE_URL"

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "matching": MatchingSettings,
    "payables": PayablesSettings,
    "accounts": AccountRoles,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load one YAML file as a dict (empty if the file is empty).

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


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge; override keys win."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Settings section {name!r} must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def parse_section(name: str, data: dict[str, Any]) -> Any:
    """Build the dataclass for one section, checking keys and scalar types."""
    cls = _SECTIONS.get(name)
    if cls is None:
        raise ValueError(f"Unknown settings section {name!r}")

    fields = {f.name: f for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - set(fields))
    if unknown:
        raise ValueError(f"Unknown keys in settings section {name!r}: {', '.join(unknown)}")

    defaults = cls()
    values: dict[str, Any] = {}
    for key, raw in data.items():
        expected = type(getattr(defaults, key))
        if expected is int and (isinstance(raw, bool) or not isinstance(raw, int)):
            raise ValueError(f"{name}.{key} must be an integer, got {raw!r}")
        if expected is bool and not isinstance(raw, bool):
            raise ValueError(f"{name}.{key} must be true or false, got {raw!r}")
        # Account numbers may be written unquoted in YAML
        values[key] = str(raw) if expected is str else raw
    return cls(**values)


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    sections = {name: parse_section(name, values or {}) for name, values in data.items()}
    settings = LedgerSettings(**sections)
    if settings.matching.date_tolerance_days < 0:
        raise ValueError("matching.date_tolerance_days must be non-negative")
    return settings


def compute_checksum(settings: LedgerSettings) -> str:
    """SHA-256 of the canonical JSON form of the settings."""
    canonical = json.dumps(dataclasses.asdict(settings), sort_keys=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Packaged defaults, merged with ``path`` when given, then the
    environment.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data = merge_settings(data, {"database": {"url": env_url}})

    return parse_settings(data)
