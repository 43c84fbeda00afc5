"""
Typed runtime settings.

Invariants enforced:
    - Settings are frozen once built.
    - In production the cron secret is mandatory and at least 16 characters;
      elsewhere a development default is used when none is configured.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEV_CRON_SECRET = "dev-cron-secret"
MIN_PRODUCTION_SECRET_LENGTH = 16
ENVIRONMENTS = ("development", "test", "production")


class SettingsError(ValueError):
    """Settings failed validation."""


@dataclass(frozen=True)
class RateLimitSettings:
    max_calls: int = 5
    window_seconds: int = 60


@dataclass(frozen=True)
class DueProcessingSettings:
    # Re-raise the first rule failure instead of isolating it.
    fail_fast: bool = False


@dataclass(frozen=True)
class LedgerSettings:
    """Everything the runtime reads from configuration."""

    environment: str = "development"
    database_url: str = "sqlite:///ledger.db"
    cron_secret: str = DEV_CRON_SECRET
    log_level: str = "INFO"
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    due_processing: DueProcessingSettings = field(default_factory=DueProcessingSettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise SettingsError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _flag(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise SettingsError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Build LedgerSettings from a raw mapping (YAML + environment).

    Raises:
        SettingsError: unknown environment, bad numeric or boolean values,
            or a missing / short cron secret in production.
    """
    environment = str(data.get("environment", "development")).strip().lower()
    if environment not in ENVIRONMENTS:
        raise SettingsError(
            f"environment must be one of {', '.join(ENVIRONMENTS)}, got {environment!r}"
        )

    secret = data.get("cron_secret")
    secret = str(secret).strip() if secret is not None else ""
    if environment == "production":
        if not secret:
            raise SettingsError("cron_secret is required in production")
        if len(secret) < MIN_PRODUCTION_SECRET_LENGTH:
            raise SettingsError(
                f"cron_secret must be at least {MIN_PRODUCTION_SECRET_LENGTH} "
                "characters in production"
            )
    elif not secret:
        secret = DEV_CRON_SECRET

    rate = data.get("rate_limit") or {}
    due = data.get("due_processing") or {}
    defaults = LedgerSettings()

    return LedgerSettings(
        environment=environment,
        database_url=str(data.get("database_url") or defaults.database_url),
        cron_secret=secret,
        log_level=str(data.get("log_level") or defaults.log_level).upper(),
        rate_limit=RateLimitSettings(
            max_calls=_positive_int(
                "rate_limit", "max_calls", rate.get("max_calls", RateLimitSettings.max_calls),
            ),
            window_seconds=_positive_int(
                "rate_limit", "window_seconds",
                rate.get("window_seconds", RateLimitSettings.window_seconds),
            ),
        ),
        due_processing=DueProcessingSettings(
            fail_fast=_flag("due_processing", "fail_fast", due.get("fail_fast", False)),
        ),
    )
