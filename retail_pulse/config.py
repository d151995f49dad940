"""
config.py – Load and validate required environment variables.

All configuration is loaded from environment variables (or a .env file at
the repository root).  Call `get_config()` once at startup to obtain a
validated Config object.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from retail_pulse.constants import DEFAULT_PERIOD, PERIOD_DAYS

# Repository root: one level above the retail_pulse package.
_REPO_ROOT = Path(__file__).resolve().parent.parent

_env_file = _REPO_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


@dataclass
class Config:
    """Validated runtime configuration."""

    database_url: str
    secret_key: str
    token_ttl_seconds: int = 3600
    default_period: str = DEFAULT_PERIOD
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


_REQUIRED_VARS = [
    "DATABASE_URL",
    "RETAIL_PULSE_SECRET",
]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise EnvironmentError(f"{name} must be an integer, got {raw!r}") from exc


def get_config() -> Config:
    """
    Read environment variables, validate presence, and return a Config.

    Raises
    ------
    EnvironmentError
        If any required variable is missing or an optional one is malformed.
    """
    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise EnvironmentError(
            f"Missing required environment variable(s): {', '.join(missing)}\n"
            "Copy .env.example → .env and fill in the values."
        )

    cfg = Config(
        database_url=os.environ["DATABASE_URL"],
        secret_key=os.environ["RETAIL_PULSE_SECRET"],
        token_ttl_seconds=_int_env("RETAIL_PULSE_TOKEN_TTL", 3600),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )

    period = os.environ.get("RETAIL_PULSE_DEFAULT_PERIOD")
    if period:
        if period not in PERIOD_DAYS:
            raise EnvironmentError(
                f"RETAIL_PULSE_DEFAULT_PERIOD must be one of {', '.join(PERIOD_DAYS)}, got {period!r}"
            )
        cfg.default_period = period

    origins = os.environ.get("CORS_ORIGINS")
    if origins:
        cfg.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

    return cfg
