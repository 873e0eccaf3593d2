"""
workshop_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way applications obtain settings.
    It reads one YAML file (``WORKSHOP_CONFIG`` when set, else the packaged
    ``defaults.yaml``), applies ``WORKSHOP_DATABASE_URL`` and returns a
    frozen ``WorkshopConfig``.

Architecture position:
    Configuration.  Sits above ``workshop_kernel`` and ``workshop_modules``;
    neither of them imports this package.  ``bridges.build_engines`` turns
    a config into wired engines.

Failure modes:
    - ``FileNotFoundError`` -- ``WORKSHOP_CONFIG`` names a missing file.
    - ``ValueError`` -- unknown keys or invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.
"""

from __future__ import annotations

import os
from pathlib import Path

from workshop_config.loader import CONFIG_PATH_ENV, apply_environment, load_config
from workshop_config.schema import WorkshopConfig
from workshop_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> WorkshopConfig:
    """The public configuration entrypoint.

    Args:
        path: Explicit YAML file.  Defaults to ``$WORKSHOP_CONFIG``, then
            the packaged ``defaults.yaml``.

    Returns:
        WorkshopConfig with environment overrides applied.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    config = apply_environment(load_config(Path(path)))
    logger.info(
        "workshop_config_loaded",
        extra={
            "source": config.source,
            "dialect": config.database.url.split(":", 1)[0],
            "max_attempts": config.transactions.max_attempts,
        },
    )
    return config


def build_engines(config: WorkshopConfig, clock=None, *, create_schema: bool = True):
    """Wire engines for ``config``; see ``workshop_config.bridges``."""
    from workshop_config.bridges import build_engines as _build

    return _build(config, clock, create_schema=create_schema)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "WorkshopConfig",
    "build_engines",
    "get_active_config",
]
