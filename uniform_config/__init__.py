"""
uniform_config -- single public entrypoint for kernel settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads settings files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``uniform_kernel``.  The kernel never
    imports this package; callers read settings here and pass the values
    into the store and services they construct.

Resolution order:
    1. ``uniform_config/defaults.yaml``
    2. The YAML file named by ``UNIFORM_CONFIG_FILE``, if set.
    3. ``UNIFORM_DATABASE_URL``, if set.

Failure modes:
    - ``FileNotFoundError`` -- ``UNIFORM_CONFIG_FILE`` names a missing file.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from uniform_config.loader import KernelSettings, load_settings, parse_settings

_logger = logging.getLogger("uniform_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_FILE_ENV = "UNIFORM_CONFIG_FILE"
DATABASE_URL_ENV = "UNIFORM_DATABASE_URL"


def get_active_settings(
    environ: Mapping[str, str] | None = None,
    defaults_file: Path | None = None,
) -> KernelSettings:
    """The ONLY public settings entrypoint.

    Args:
        environ: Environment mapping; defaults to ``os.environ``.
        defaults_file: Override for the packaged defaults file.

    Returns:
        A validated, frozen ``KernelSettings``.
    """
    env = os.environ if environ is None else environ

    paths = [defaults_file or DEFAULTS_FILE]
    override = env.get(CONFIG_FILE_ENV)
    if override:
        paths.append(Path(override))
    settings = load_settings(*paths)

    database_url = env.get(DATABASE_URL_ENV)
    if database_url:
        settings = parse_settings({"database_url": database_url}, settings)

    _logger.info(
        "settings_loaded",
        extra={
            "sources": [str(p) for p in paths],
            "database_override": bool(database_url),
            "stock_retry_attempts": settings.stock_retry_attempts,
            "prune_orphan_reports": settings.prune_orphan_reports,
        },
    )
    return settings


__all__ = [
    "CONFIG_FILE_ENV",
    "DATABASE_URL_ENV",
    "DEFAULTS_FILE",
    "KernelSettings",
    "get_active_settings",
    "load_settings",
    "parse_settings",
]
