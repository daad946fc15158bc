"""Config loading — env vars for deployment overrides, config.toml for everything else."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.core.errors import ConfigError

# ── Enums ──────────────────────────────────────────────────────────────


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


# ── Models ─────────────────────────────────────────────────────────────

DEFAULT_RATE_ENDPOINTS = [
    "https://api.exchangerate-api.com/v4/latest/USD",
    "https://api.exchangerate.host/latest?base=USD",
    "https://open.er-api.com/v6/latest/USD",
]

DEFAULT_RETRYABLE_PATTERNS = [
    "network",
    "timeout",
    "connection failed",
    "fetch failed",
    "failed to fetch",
    "server error",
    "500",
    "502",
    "503",
    "504",
]


class RetrySettings(BaseModel):
    """Default backoff policy. Delays are in seconds."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    retryable_message_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_PATTERNS)
    )


class RateSettings(BaseModel):
    endpoints: list[str] = Field(default_factory=lambda: list(DEFAULT_RATE_ENDPOINTS))
    base_currency: str = Field(default="USD", description="Currency the endpoints quote from")
    quote_currency: str = Field(default="KRW", description="Currency the rate converts into")
    default_rate: float = Field(default=1300.0, gt=0, allow_inf_nan=False)
    request_timeout: float = Field(
        default=10.0, gt=0, description="Hard per-endpoint timeout in seconds"
    )
    refresh_interval: float = Field(
        default=60.0, gt=0, description="Seconds between routine refreshes"
    )
    retry_delay: float = Field(
        default=5.0, ge=0, description="Seconds before a scheduled retry after total failure"
    )
    max_scheduled_retries: int = Field(default=3, ge=0)
    cycle_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(max_attempts=2, base_delay=1.0, max_delay=5.0)
    )

    @model_validator(mode="after")
    def _normalise_codes(self) -> "RateSettings":
        self.base_currency = self.base_currency.upper()
        self.quote_currency = self.quote_currency.upper()
        if not self.endpoints:
            raise ValueError("at least one exchange rate endpoint is required")
        return self


class ConnectivitySettings(BaseModel):
    probe_url: str = "https://www.gstatic.com/generate_204"
    probe_timeout: float = Field(default=5.0, gt=0)
    initially_online: bool = True


class AppSettings(BaseModel):
    env: Environment = Environment.DEVELOPMENT
    show_developer_details: bool | None = Field(
        default=None,
        description="Expose raw error text in AppError.details; defaults to env != production",
    )
    error_history_size: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _default_details_flag(self) -> "AppSettings":
        if self.show_developer_details is None:
            self.show_developer_details = self.env != Environment.PRODUCTION
        return self


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    app: AppSettings = Field(default_factory=AppSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rates: RateSettings = Field(default_factory=RateSettings)
    connectivity: ConnectivitySettings = Field(default_factory=ConnectivitySettings)


# ── Loading ────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config.toml"


def _load_dotenv(dotenv_path: Path) -> None:
    """Minimal .env loader — no extra dependencies."""
    if not dotenv_path.exists():
        return
    for line in dotenv_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not key:
            continue
        os.environ.setdefault(key, value)


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings from .env + env vars + config.toml.

    Raises ConfigError when the file or the merged values fail validation.
    """
    _load_dotenv(_PROJECT_ROOT / ".env")

    path = config_path or _DEFAULT_CONFIG_PATH
    file_cfg: dict = {}
    if path.exists():
        try:
            file_cfg = tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"{path}: {exc}") from exc

    app_cfg = dict(file_cfg.get("app", {}))
    rates_cfg = dict(file_cfg.get("rates", {}))
    conn_cfg = dict(file_cfg.get("connectivity", {}))

    env = os.environ.get("APP_ENV")
    if env:
        app_cfg["env"] = env

    endpoints = os.environ.get("EXCHANGE_RATE_ENDPOINTS")
    if endpoints:
        rates_cfg["endpoints"] = [e.strip() for e in endpoints.split(",") if e.strip()]

    probe_url = os.environ.get("CONNECTIVITY_PROBE_URL")
    if probe_url:
        conn_cfg["probe_url"] = probe_url

    try:
        return Settings(
            app=AppSettings(**app_cfg),
            retry=RetrySettings(**file_cfg.get("retry", {})),
            rates=RateSettings(**rates_cfg),
            connectivity=ConnectivitySettings(**conn_cfg),
        )
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
