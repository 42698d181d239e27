"""St. Louis Fed (FRED) mortgage rate ingestor."""

from __future__ import annotations

import logging
import math
from datetime import UTC, date, datetime, timedelta
from typing import Any, Mapping

import httpx

from jobs.config import RateJobConfig, SOURCE_TERM_YEARS
from pipelines.common import fetch_json
from pipelines.model import RateObservation

FRED_BASE_URL = "https://api.stlouisfed.org/fred/series/observations"

_SENTINEL_VALUES = {".", "NA", "N/A", ""}

logger = logging.getLogger(__name__)


class InvalidObservationError(ValueError):
    """The FRED payload did not contain a usable observation."""


def _parse_observation_date(raw_date: str) -> date | None:
    try:
        return date.fromisoformat(raw_date)
    except ValueError:
        try:
            return datetime.strptime(raw_date, "%Y-%m-%d").date()
        except ValueError:
            return None


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if stripped in _SENTINEL_VALUES:
            return None
        try:
            numeric = float(stripped)
        except ValueError:
            return None
    else:
        return None

    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def build_query_params(config: RateJobConfig, *, today: date | None = None) -> dict[str, Any]:
    """Query for the single most recent observation inside the lookback window."""

    end = today or datetime.now(UTC).date()
    start = end - timedelta(days=config.lookback_days)
    return {
        "series_id": config.series_id,
        "api_key": config.fred_api_key,
        "file_type": "json",
        "sort_order": "desc",
        "limit": 1,
        "observation_start": start.isoformat(),
        "observation_end": end.isoformat(),
    }


def parse_latest_observation(payload: Any, config: RateJobConfig) -> RateObservation:
    """Validate a FRED observations payload and return its first entry.

    Raises ``InvalidObservationError`` when the payload is empty, the value is
    not numeric, or the value is outside ``(0, config.max_rate]``.
    """

    observations = payload.get("observations") if isinstance(payload, Mapping) else None
    if not isinstance(observations, list) or not observations:
        raise InvalidObservationError("No rate data found")

    obs = observations[0]
    if not isinstance(obs, Mapping):
        raise InvalidObservationError(f"Malformed observation: {obs!r}")

    observed_on = _parse_observation_date(str(obs.get("date", "")))
    if observed_on is None:
        raise InvalidObservationError(f"Invalid observation date: {obs.get('date')!r}")

    value = _coerce_float(obs.get("value"))
    if value is None or value <= 0 or value > config.max_rate:
        raise InvalidObservationError(f"Invalid rate value: {obs.get('value')!r}")

    return RateObservation(
        date=observed_on,
        rate_type=config.rate_type,
        value=value,
        term_years=SOURCE_TERM_YEARS,
    )


async def fetch_latest_mortgage_rate(
    config: RateJobConfig,
    *,
    today: date | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RateObservation | None:
    """Fetch the latest 30-year fixed rate, or ``None`` if no valid rate is available."""

    logger.info("Fetching %s-year rate from FRED (series=%s)...", SOURCE_TERM_YEARS, config.series_id)
    try:
        payload = await fetch_json(
            FRED_BASE_URL,
            params=build_query_params(config, today=today),
            headers={"Accept": "application/json"},
            attempts=config.fetch_attempts,
            transport=transport,
        )
        observation = parse_latest_observation(payload, config)
    except httpx.HTTPStatusError as exc:
        logger.error(
            "FRED API error: %s %s", exc.response.status_code, exc.response.reason_phrase
        )
        return None
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Error fetching %s-year rate: %s", SOURCE_TERM_YEARS, exc)
        return None

    logger.info(
        "FRED %s observation for %s: %s%%", config.series_id, observation.date, observation.value
    )
    return observation


__all__ = [
    "FRED_BASE_URL",
    "InvalidObservationError",
    "build_query_params",
    "fetch_latest_mortgage_rate",
    "parse_latest_observation",
]
