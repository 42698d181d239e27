"""Runtime configuration for the mortgage rate ingestion job."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

DEFAULT_SERIES_ID = "MORTGAGE30US"
DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_MAX_RATE = 15.0
DEFAULT_RATE_TYPE = "Fixed"
SOURCE_TERM_YEARS = 30

# Derived term -> offset subtracted from the 30-year rate.
DEFAULT_TERM_OFFSETS: Mapping[int, float] = {15: 0.625, 20: 0.3125}

BACKEND_SUPABASE = "supabase"
BACKEND_DUCKDB = "duckdb"
STORE_BACKENDS = (BACKEND_SUPABASE, BACKEND_DUCKDB)

DEFAULT_DB_PATH = Path("data/rate_history.duckdb")


class ConfigurationError(RuntimeError):
    """Raised when a required setting is absent or malformed."""


@dataclass(frozen=True)
class RateJobConfig:
    """Everything the ingestion job needs, resolved up front."""

    fred_api_key: str
    store_backend: str = BACKEND_SUPABASE
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    db_path: Path = DEFAULT_DB_PATH
    series_id: str = DEFAULT_SERIES_ID
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    max_rate: float = DEFAULT_MAX_RATE
    rate_type: str = DEFAULT_RATE_TYPE
    term_offsets: Mapping[int, float] = field(
        default_factory=lambda: dict(DEFAULT_TERM_OFFSETS)
    )
    fetch_attempts: int = 1

    def __post_init__(self) -> None:
        if not self.fred_api_key:
            raise ConfigurationError("FRED API key not configured")
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"Unknown rate store backend '{self.store_backend}' "
                f"(expected one of: {', '.join(STORE_BACKENDS)})"
            )
        if self.store_backend == BACKEND_SUPABASE:
            if not self.supabase_url:
                raise ConfigurationError("SUPABASE_URL not configured")
            if not self.supabase_service_key:
                raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY not configured")
        if self.lookback_days < 1:
            raise ConfigurationError("RATE_LOOKBACK_DAYS must be at least 1")
        if self.max_rate <= 0:
            raise ConfigurationError("RATE_MAX_VALUE must be positive")
        if self.fetch_attempts < 1:
            raise ConfigurationError("RATE_FETCH_ATTEMPTS must be at least 1")
        for term, offset in self.term_offsets.items():
            if term == SOURCE_TERM_YEARS:
                raise ConfigurationError(
                    f"RATE_TERM_OFFSETS cannot redefine the {SOURCE_TERM_YEARS}-year source term"
                )
            if offset < 0:
                raise ConfigurationError(
                    f"Offset for the {term}-year term must not be negative"
                )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        store_backend: str | None = None,
    ) -> "RateJobConfig":
        """Build a config from ``environ`` (``os.environ`` after loading ``.env``)."""

        if environ is None:
            load_dotenv()
            environ = os.environ

        return cls(
            fred_api_key=environ.get("FRED_API_KEY", ""),
            store_backend=(
                store_backend
                or environ.get("RATE_STORE_BACKEND")
                or BACKEND_SUPABASE
            ).strip().lower(),
            supabase_url=environ.get("SUPABASE_URL") or None,
            supabase_service_key=environ.get("SUPABASE_SERVICE_ROLE_KEY") or None,
            db_path=Path(environ.get("RATE_HISTORY_DB_PATH") or DEFAULT_DB_PATH),
            series_id=environ.get("FRED_SERIES_ID") or DEFAULT_SERIES_ID,
            lookback_days=_env_int(environ, "RATE_LOOKBACK_DAYS", DEFAULT_LOOKBACK_DAYS),
            max_rate=_env_float(environ, "RATE_MAX_VALUE", DEFAULT_MAX_RATE),
            term_offsets=parse_term_offsets(environ.get("RATE_TERM_OFFSETS")),
            fetch_attempts=_env_int(environ, "RATE_FETCH_ATTEMPTS", 1),
        )


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from exc


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'") from exc


def parse_term_offsets(raw: str | None) -> dict[int, float]:
    """Parse ``"15:0.625,20:0.3125"`` into ``{15: 0.625, 20: 0.3125}``.

    Order is preserved; it decides the order of derived rates in the output.
    """

    if not raw or not raw.strip():
        return dict(DEFAULT_TERM_OFFSETS)

    offsets: dict[int, float] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            term, offset = item.split(":", 1)
            offsets[int(term)] = float(offset)
        except ValueError as exc:
            raise ConfigurationError(
                "RATE_TERM_OFFSETS must use the format '<term>:<offset>,...' "
                "(e.g. '15:0.625,20:0.3125')."
            ) from exc
    return offsets


__all__ = [
    "BACKEND_DUCKDB",
    "BACKEND_SUPABASE",
    "ConfigurationError",
    "DEFAULT_DB_PATH",
    "DEFAULT_TERM_OFFSETS",
    "RateJobConfig",
    "SOURCE_TERM_YEARS",
    "STORE_BACKENDS",
    "parse_term_offsets",
]
