"""
YAML loading for ledger settings.

Responsibility:
    Read a settings file into a plain dict and overlay the LEDGER_*
    environment variables.  Parsing into typed settings happens in
    ``ledger_config.settings``.

Failure modes:
    * Missing file      -> ``FileNotFoundError`` propagates.
    * Malformed YAML    -> ``yaml.YAMLError`` propagates.
    * Non-mapping root  -> ``ValueError``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

# Environment variable -> top-level settings key
ENV_OVERRIDES: dict[str, str] = {
    "LEDGER_ENV": "environment",
    "LEDGER_DATABASE_URL": "database_url",
    "LEDGER_CRON_SECRET": "cron_secret",
    "LEDGER_LOG_LEVEL": "log_level",
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Preconditions:
        - ``path`` must point to an existing, readable YAML file.
    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document root is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping at the top level")
    return data


def apply_env_overrides(
    data: dict[str, Any], environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return a copy of ``data`` with non-empty LEDGER_* variables applied."""
    environ = os.environ if environ is None else environ
    merged = dict(data)
    for var, key in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is not None and value.strip():
            merged[key] = value.strip()
    return merged
