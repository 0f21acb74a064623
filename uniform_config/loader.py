"""
Configuration Loader (``uniform_config.loader``).

Responsibility
--------------
Reads YAML settings files and parses them into the frozen
``KernelSettings`` dataclass.  Runtime callers go through
``uniform_config.get_active_settings()`` rather than this module.

Invariants enforced
-------------------
* Unknown keys and ill-typed values raise ``ValueError`` with the
  offending key in the message; nothing is silently defaulted once a
  key is present.
* ``stock_retry_attempts >= 1`` and ``stock_retry_backoff_seconds >= 0``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class KernelSettings:
    """Runtime settings for the uniform kernel."""

    database_url: str = "sqlite://"
    echo_sql: bool = False
    log_level: str = "INFO"
    stock_retry_attempts: int = 5
    stock_retry_backoff_seconds: float = 0.05
    prune_orphan_reports: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.database_url, str) or not self.database_url:
            raise ValueError("database_url must be a non-empty string")
        if not isinstance(self.echo_sql, bool):
            raise ValueError("echo_sql must be a boolean")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {self.log_level!r}"
            )
        if (
            isinstance(self.stock_retry_attempts, bool)
            or not isinstance(self.stock_retry_attempts, int)
            or self.stock_retry_attempts < 1
        ):
            raise ValueError("stock_retry_attempts must be an integer >= 1")
        if (
            isinstance(self.stock_retry_backoff_seconds, bool)
            or not isinstance(self.stock_retry_backoff_seconds, (int, float))
            or self.stock_retry_backoff_seconds < 0
        ):
            raise ValueError("stock_retry_backoff_seconds must be a number >= 0")
        if not isinstance(self.prune_orphan_reports, bool):
            raise ValueError("prune_orphan_reports must be a boolean")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


_FIELD_NAMES = frozenset(f.name for f in fields(KernelSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_settings(data: dict[str, Any], base: KernelSettings | None = None) -> KernelSettings:
    """
    Overlay ``data`` onto ``base`` (or the built-in defaults).

    Only keys present in ``data`` change; validation runs on the result.
    """
    unknown = sorted(set(data) - _FIELD_NAMES)
    if unknown:
        raise ValueError(f"Unknown settings key(s): {', '.join(unknown)}")
    overrides = dict(data)
    if "log_level" in overrides and isinstance(overrides["log_level"], str):
        overrides["log_level"] = overrides["log_level"].upper()
    return replace(base or KernelSettings(), **overrides)


def load_settings(*paths: Path) -> KernelSettings:
    """Apply each YAML file in order, later files overriding earlier ones."""
    settings = KernelSettings()
    for path in paths:
        settings = parse_settings(load_yaml_file(path), settings)
    return settings
