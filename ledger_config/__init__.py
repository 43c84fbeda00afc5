"""
ledger_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  No other component reads settings files or LEDGER_*
    environment variables directly.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel``; the kernel never imports
    from ``ledger_config``.  The recurring orchestrator, the trigger and the
    operator CLI receive a ``LedgerSettings`` instance.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``SettingsError`` (a ``ValueError``) -- values failed validation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from ledger_config.loader import apply_env_overrides, load_yaml_file
from ledger_config.settings import (
    DEV_CRON_SECRET,
    DueProcessingSettings,
    LedgerSettings,
    RateLimitSettings,
    SettingsError,
    parse_settings,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


def get_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: YAML file to load; defaults to the packaged settings.yaml.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    data = apply_env_overrides(load_yaml_file(settings_path), environ)
    settings = parse_settings(data)

    _logger.info(
        "settings_loaded",
        extra={
            "settings_path": str(settings_path),
            "environment": settings.environment,
            "rate_limit_max_calls": settings.rate_limit.max_calls,
            "rate_limit_window_seconds": settings.rate_limit.window_seconds,
            "fail_fast": settings.due_processing.fail_fast,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DEV_CRON_SECRET",
    "DueProcessingSettings",
    "LedgerSettings",
    "RateLimitSettings",
    "SettingsError",
    "get_settings",
    "load_yaml_file",
    "parse_settings",
]
